"""
Exceptions of the mail account application

Operational exceptions (validation, conflict, not found, auth) are the caller's
business and are returned to it as typed failures. CryptoException and anything
unclassified are wrapped into SystemException before they leave the services.
"""
from typing import Optional

from common.consts.response_const import (
    RET_INVALID_PARAM,
    RET_RESOURCE_EXISTS,
    RET_RESOURCE_NOT_FOUND,
    RET_TOKEN_REVOKED,
    RET_CRYPTO_ERROR,
    RET_DEPENDENCY_ERROR,
    RET_LOCK_FAILED,
)
from common.exceptions.base_exception import CheckedException


class MailAccountException(CheckedException):
    """Base exception for mail account errors"""

    code = RET_DEPENDENCY_ERROR
    is_operational = True

    def __init__(self, message: str, error_code: Optional[str] = None, details: Optional[dict] = None):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationException(MailAccountException):
    """Malformed input"""
    code = RET_INVALID_PARAM


class ConflictException(MailAccountException):
    """Uniqueness or invariant violation"""
    code = RET_RESOURCE_EXISTS


class RefreshInProgressException(ConflictException):
    """Another worker holds the refresh lease of the account"""
    code = RET_LOCK_FAILED


class NotFoundException(MailAccountException):
    """Missing, or not owned by the caller"""
    code = RET_RESOURCE_NOT_FOUND


class AuthException(MailAccountException):
    """Stored credential is invalid or revoked, the user has to reconnect the account"""
    code = RET_TOKEN_REVOKED

    def __init__(self, message: str, error_code: Optional[str] = None, details: Optional[dict] = None,
                 reauth_required: bool = True):
        super().__init__(message, error_code, details)
        self.reauth_required = reauth_required


class CryptoException(MailAccountException):
    """Credential envelope is corrupt, tampered or bound to another record"""
    code = RET_CRYPTO_ERROR
    is_operational = False


class SystemException(MailAccountException):
    """Transient or infrastructure failure, the external caller may retry"""
    code = RET_DEPENDENCY_ERROR
    is_operational = False

    def __init__(self, message: str, error_code: Optional[str] = None, details: Optional[dict] = None,
                 retryable: bool = True):
        super().__init__(message, error_code, details)
        self.retryable = retryable
