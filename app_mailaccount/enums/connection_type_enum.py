from enum import Enum


class ConnectionTypeEnum(str, Enum):
    OAUTH = "oauth"
    SMTP = "smtp"
