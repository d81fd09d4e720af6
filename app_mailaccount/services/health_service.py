"""
Health tracker

Error counting and the derived health status of an account. The status is
never stored; it is evaluated from is_active, error_count and token_expiry
every time an account is read.
"""
import logging
from typing import Any, Dict, List, Optional

from app_mailaccount.consts.account_const import (
    DEFAULT_MAX_ERRORS,
    DEFAULT_ERRORS_THRESHOLD,
    DEFAULT_WARNING_THRESHOLD,
    ERROR_CODE_UNKNOWN,
    STALE_ACCOUNT_DAYS,
)
from app_mailaccount.enums.health_status_enum import HealthStatusEnum
from app_mailaccount.models.email_account import EmailAccount
from app_mailaccount.repos import email_account_repo
from common.components.singleton import Singleton
from common.utils.date_util import get_now_timestamp_ms, MS_PER_DAY

logger = logging.getLogger(__name__)

# statuses reported as "needs attention" in listings
ATTENTION_STATUSES = (
    HealthStatusEnum.TOKEN_EXPIRED,
    HealthStatusEnum.ERRORS,
    HealthStatusEnum.CRITICAL,
)


def is_token_expired(account: EmailAccount, now: Optional[int] = None) -> bool:
    if not account.token_expiry:
        return False
    now = now if now is not None else get_now_timestamp_ms()
    return account.token_expiry <= now


def compute_health_status(
        account: EmailAccount,
        now: Optional[int] = None,
        max_errors: int = DEFAULT_MAX_ERRORS,
        errors_threshold: int = DEFAULT_ERRORS_THRESHOLD,
        warning_threshold: int = DEFAULT_WARNING_THRESHOLD,
) -> HealthStatusEnum:
    """
    Evaluate the health of an account

    The first matching rule wins: inactive, critical, errors, token_expired,
    warning, healthy.
    """
    if not account.is_active:
        return HealthStatusEnum.INACTIVE
    if account.error_count >= max_errors:
        return HealthStatusEnum.CRITICAL
    if account.error_count >= errors_threshold:
        return HealthStatusEnum.ERRORS
    if is_token_expired(account, now):
        return HealthStatusEnum.TOKEN_EXPIRED
    if account.error_count >= warning_threshold:
        return HealthStatusEnum.WARNING
    return HealthStatusEnum.HEALTHY


class HealthService(Singleton):
    """Records failures and successes, and reports account health"""

    def __init__(
            self,
            max_errors: int = DEFAULT_MAX_ERRORS,
            errors_threshold: int = DEFAULT_ERRORS_THRESHOLD,
            warning_threshold: int = DEFAULT_WARNING_THRESHOLD,
    ):
        self.max_errors = max_errors
        self.errors_threshold = errors_threshold
        self.warning_threshold = warning_threshold

    def record_error(self, account_id, message: str, error_code: Optional[str] = None,
                     now: Optional[int] = None) -> bool:
        """
        Count one failure of the account

        Reaching max_errors deactivates the account and clears its default flag
        in the same statement.

        Returns:
            True if the account exists
        """
        updated = email_account_repo.increment_error(
            account_id,
            message=message,
            error_code=error_code or ERROR_CODE_UNKNOWN,
            max_errors=self.max_errors,
            now=now,
        )
        if updated:
            logger.warning(f"[HealthService.record_error] account={account_id} code={error_code}: {message}")
        return updated

    def clear_errors(self, account_id, now: Optional[int] = None, sync: bool = False) -> bool:
        """Reset the failure state after a verified success and re-activate the account"""
        return email_account_repo.reset_errors(account_id, now=now, sync=sync)

    def status_of(self, account: EmailAccount, now: Optional[int] = None) -> HealthStatusEnum:
        return compute_health_status(
            account,
            now=now,
            max_errors=self.max_errors,
            errors_threshold=self.errors_threshold,
            warning_threshold=self.warning_threshold,
        )

    def build_health_report(self, account: EmailAccount, now: Optional[int] = None) -> Dict[str, Any]:
        """
        Build the health check of an account

        Returns:
            Dictionary with status, token expiry flag, error state, last use
            and recommendations
        """
        now = now if now is not None else get_now_timestamp_ms()
        status = self.status_of(account, now)
        token_expired = is_token_expired(account, now)

        recommendations: List[str] = []
        if not account.is_active:
            recommendations.append("Account is inactive. Reconnect it to resume sending.")
        if token_expired:
            recommendations.append("Access token has expired. Refresh the token or reconnect the account.")
        if account.error_count >= self.errors_threshold:
            recommendations.append("Too many recent errors. Test the connection and check the credentials.")
        if account.last_used and now - account.last_used > STALE_ACCOUNT_DAYS * MS_PER_DAY:
            recommendations.append(f"Account has not been used in {STALE_ACCOUNT_DAYS} days.")

        return {
            'account_id': str(account.id),
            'status': status.value,
            'is_token_expired': token_expired,
            'error_count': account.error_count,
            'last_error': account.last_error_message,
            'last_error_code': account.last_error_code,
            'last_used': account.last_used,
            'recommendations': recommendations,
        }


def get_health_service() -> HealthService:
    """Get the health service built from configuration"""
    from app_mailaccount.config import get_app_config

    config = get_app_config()
    return HealthService(
        max_errors=config["max_errors"],
        errors_threshold=config["errors_threshold"],
        warning_threshold=config["warning_threshold"],
    )
