from enum import Enum


class ProviderEnum(str, Enum):
    GMAIL = "gmail"
    OUTLOOK = "outlook"
    YAHOO = "yahoo"
    OTHER = "other"

    @classmethod
    def values(cls):
        return [item.value for item in cls]

    @classmethod
    def oauth_capable(cls):
        return [cls.GMAIL.value, cls.OUTLOOK.value]
