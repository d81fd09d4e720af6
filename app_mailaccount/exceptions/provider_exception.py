"""
Failure signals of the external mail providers
"""
from typing import Optional

from common.exceptions.base_exception import CheckedException


class ProviderException(CheckedException):
    """Base exception for provider calls"""

    def __init__(self, message: str, provider_code: Optional[str] = None, status_code: Optional[int] = None):
        self.message = message
        self.provider_code = provider_code
        self.status_code = status_code
        super().__init__(self.message)


class ProviderGrantException(ProviderException):
    """The grant or credential is invalid/expired/revoked, retrying will not help"""
    pass


class ProviderTransportException(ProviderException):
    """Network error, timeout or provider 5xx"""
    pass
