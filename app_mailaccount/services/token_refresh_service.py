"""
Token refresh orchestrator

Refreshes OAuth access tokens with at most one attempt in flight per account:
callers in the same process join the running attempt and get its outcome,
workers in other processes are kept out by the refresh lease column. A rejected
grant is permanent and needs the user to reconnect; everything else is
transient and may be retried by the caller.
"""
import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from app_mailaccount.consts.account_const import (
    DEFAULT_REFRESH_LOOKAHEAD_MINUTES,
    DEFAULT_REFRESH_LEASE_SECONDS,
    ERROR_CODE_TOKEN_REVOKED,
    ERROR_CODE_REFRESH_FAILED,
    ERROR_CODE_CRYPTO,
)
from app_mailaccount.enums.connection_type_enum import ConnectionTypeEnum
from app_mailaccount.enums.refresh_outcome_enum import RefreshOutcomeEnum
from app_mailaccount.exceptions.account_exception import (
    MailAccountException,
    AuthException,
    CryptoException,
    NotFoundException,
    RefreshInProgressException,
    SystemException,
    ValidationException,
)
from app_mailaccount.exceptions.provider_exception import ProviderGrantException, ProviderTransportException
from app_mailaccount.models.email_account import EmailAccount
from app_mailaccount.repos import email_account_repo
from common.components.singleton import Singleton
from common.utils.date_util import get_now_timestamp_ms, get_timestamp_ms_after_seconds, MS_PER_MINUTE, MS_PER_SECOND

logger = logging.getLogger(__name__)


class _InflightRefresh:
    """One running refresh attempt, shared by every caller that joins it"""

    def __init__(self):
        self.done = threading.Event()
        self.result: Optional[Dict[str, Any]] = None
        self.error: Optional[BaseException] = None


class TokenRefreshService(Singleton):
    """Token refresh orchestrator"""

    def __init__(
            self,
            cipher,
            health_service,
            provider_factory: Callable,
            lookahead_minutes: int = DEFAULT_REFRESH_LOOKAHEAD_MINUTES,
            lease_seconds: int = DEFAULT_REFRESH_LEASE_SECONDS,
    ):
        self.cipher = cipher
        self.health_service = health_service
        self.provider_factory = provider_factory
        self.lookahead_ms = lookahead_minutes * MS_PER_MINUTE
        self.lease_ms = lease_seconds * MS_PER_SECOND
        self._lock = threading.Lock()
        self._inflight: Dict[str, _InflightRefresh] = {}

    def is_stale(self, account: EmailAccount, now: Optional[int] = None) -> bool:
        """The access token is expired or expires within the look-ahead window"""
        if account.token_expiry is None:
            return True
        now = now if now is not None else get_now_timestamp_ms()
        return account.token_expiry <= now + self.lookahead_ms

    def refresh_account(self, account_id, user_id: Optional[int] = None) -> Dict[str, Any]:
        """
        Refresh the access token of an account

        Args:
            account_id: Account ID
            user_id: Owning user ID, checked when given

        Returns:
            Dictionary with account_id, outcome and the new token_expiry

        Raises:
            NotFoundException: The account does not exist or belongs to another user
            ValidationException: The account does not use OAuth
            AuthException: The grant was rejected, the user must reconnect
            RefreshInProgressException: Another process is refreshing the account
            SystemException: Transient failure, may be retried
        """
        account = email_account_repo.get_account_by_id(account_id)
        if account is None or (user_id is not None and account.user_id != user_id):
            raise NotFoundException(f"Email account {account_id} not found", error_code="ACCOUNT_NOT_FOUND")

        key = str(account.id)
        with self._lock:
            entry = self._inflight.get(key)
            is_leader = entry is None
            if is_leader:
                entry = _InflightRefresh()
                self._inflight[key] = entry

        if not is_leader:
            logger.info(f"[TokenRefreshService.refresh_account] Joining in-flight refresh of {key}")
            entry.done.wait()
            if entry.error is not None:
                raise entry.error
            return entry.result

        try:
            entry.result = self._refresh_leased(account)
            return entry.result
        except BaseException as e:
            entry.error = e
            raise
        finally:
            with self._lock:
                self._inflight.pop(key, None)
            entry.done.set()

    def _refresh_leased(self, account: EmailAccount) -> Dict[str, Any]:
        self._check_refreshable(account)

        now = get_now_timestamp_ms()
        lease_until = email_account_repo.acquire_refresh_lease(account.id, self.lease_ms, now=now)
        if lease_until is None:
            raise RefreshInProgressException(f"Token refresh of {account.id} is already in progress",
                                             error_code="REFRESH_IN_PROGRESS")
        try:
            # the row may have been refreshed between the first read and the lease
            current = email_account_repo.get_account_by_id(account.id)
            if current is None:
                raise NotFoundException(f"Email account {account.id} not found", error_code="ACCOUNT_NOT_FOUND")
            self._check_refreshable(current)
            if current.access_token != account.access_token and not self.is_stale(current):
                logger.info(f"[TokenRefreshService._refresh_leased] Token of {account.id} was refreshed meanwhile")
                return {
                    'account_id': str(current.id),
                    'outcome': RefreshOutcomeEnum.SUCCEEDED.value,
                    'token_expiry': current.token_expiry,
                }
            return self._refresh(current)
        finally:
            email_account_repo.release_refresh_lease(account.id, lease_until)

    @staticmethod
    def _check_refreshable(account: EmailAccount):
        if not account.is_active:
            raise AuthException("Email account is inactive, reconnect it", error_code="ACCOUNT_INACTIVE")
        if account.connection_type != ConnectionTypeEnum.OAUTH.value or not account.refresh_token:
            raise ValidationException("Email account does not use OAuth", error_code="NOT_OAUTH_ACCOUNT")

    def _refresh(self, account: EmailAccount) -> Dict[str, Any]:
        try:
            provider = self.provider_factory(account.provider)
        except ValueError as e:
            raise ValidationException(str(e), error_code="PROVIDER_NOT_SUPPORTED") from e

        try:
            refresh_secret = self.cipher.decrypt(account.id, account.refresh_token)
            grant = provider.refresh(refresh_secret)
        except ProviderGrantException as e:
            self.health_service.record_error(account.id, e.message, ERROR_CODE_TOKEN_REVOKED)
            raise AuthException("Refresh token was rejected, reconnect the account",
                                error_code=ERROR_CODE_TOKEN_REVOKED,
                                details={'account_id': str(account.id), 'outcome': RefreshOutcomeEnum.PERMANENT_FAILURE.value}) from e
        except ProviderTransportException as e:
            self.health_service.record_error(account.id, e.message, ERROR_CODE_REFRESH_FAILED)
            raise SystemException("Token refresh failed, try again later",
                                  error_code=ERROR_CODE_REFRESH_FAILED,
                                  details={'account_id': str(account.id), 'outcome': RefreshOutcomeEnum.TRANSIENT_FAILURE.value}) from e
        except CryptoException as e:
            logger.exception(f"[TokenRefreshService._refresh] Stored credential of {account.id} is unreadable")
            self.health_service.record_error(account.id, e.message, ERROR_CODE_CRYPTO)
            raise SystemException("Stored credential could not be read", error_code=ERROR_CODE_CRYPTO,
                                  retryable=False) from e
        except MailAccountException:
            raise
        except Exception as e:
            logger.exception(f"[TokenRefreshService._refresh] Unexpected error refreshing {account.id}: {e}")
            self.health_service.record_error(account.id, str(e), ERROR_CODE_REFRESH_FAILED)
            raise SystemException("Token refresh failed, try again later",
                                  error_code=ERROR_CODE_REFRESH_FAILED) from e

        now = get_now_timestamp_ms()
        token_expiry = get_timestamp_ms_after_seconds(grant.expires_in, base_ms=now)
        email_account_repo.update_credentials(
            self.cipher,
            account.id,
            access_secret=grant.access_token,
            refresh_secret=grant.refresh_token,
            token_expiry=token_expiry,
            now=now,
        )
        self.health_service.clear_errors(account.id, now=now, sync=True)
        logger.info(f"[TokenRefreshService._refresh] Refreshed token of {account.id}")
        return {
            'account_id': str(account.id),
            'outcome': RefreshOutcomeEnum.SUCCEEDED.value,
            'token_expiry': token_expiry,
        }

    def refresh_all_for_user(self, user_id: int) -> Dict[str, Any]:
        """
        Refresh every active OAuth account of the user

        Failures are reported per account and do not stop the others.
        """
        accounts = email_account_repo.list_oauth_accounts_by_user(user_id)
        return self._refresh_many(accounts)

    def refresh_expired_tokens(self) -> Dict[str, Any]:
        """
        Refresh all stale tokens

        Accounts already at the errors threshold are left alone until they
        are tested or cleaned up.
        """
        now = get_now_timestamp_ms()
        accounts = email_account_repo.list_accounts_to_refresh(
            stale_before=now + self.lookahead_ms,
            max_error_count=self.health_service.errors_threshold,
        )
        logger.info(f"[TokenRefreshService.refresh_expired_tokens] {len(accounts)} accounts to refresh")
        return self._refresh_many(accounts)

    def _refresh_many(self, accounts: List[EmailAccount]) -> Dict[str, Any]:
        results = []
        refreshed = failed = skipped = 0
        for account in accounts:
            try:
                results.append(self.refresh_account(account.id))
                refreshed += 1
            except RefreshInProgressException:
                skipped += 1
                results.append({'account_id': str(account.id), 'outcome': RefreshOutcomeEnum.PENDING.value})
            except MailAccountException as e:
                failed += 1
                outcome = (RefreshOutcomeEnum.PERMANENT_FAILURE if isinstance(e, AuthException)
                           else RefreshOutcomeEnum.TRANSIENT_FAILURE)
                results.append({'account_id': str(account.id), 'outcome': outcome.value, 'error': e.message})
        return {
            'total': len(accounts),
            'refreshed': refreshed,
            'failed': failed,
            'skipped': skipped,
            'results': results,
        }

    def get_refresh_stats(self) -> Dict[str, Any]:
        """Token state of all active OAuth accounts, overall and per provider"""
        now = get_now_timestamp_ms()
        stale_before = now + self.lookahead_ms
        stats = {'total': 0, 'needs_refresh': 0, 'expired': 0, 'with_errors': 0, 'healthy': 0, 'by_provider': {}}

        for row in email_account_repo.list_refresh_stat_rows():
            expiry = row['token_expiry']
            expired = expiry is not None and expiry <= now
            needs_refresh = expiry is None or expiry <= stale_before

            provider_stats = stats['by_provider'].setdefault(
                row['provider'], {'total': 0, 'needs_refresh': 0, 'expired': 0})
            stats['total'] += 1
            provider_stats['total'] += 1
            if needs_refresh:
                stats['needs_refresh'] += 1
                provider_stats['needs_refresh'] += 1
            if expired:
                stats['expired'] += 1
                provider_stats['expired'] += 1
            if row['error_count'] > 0:
                stats['with_errors'] += 1
            elif not expired:
                stats['healthy'] += 1
        return stats

    def cleanup_failed_accounts(self, max_errors: Optional[int] = None) -> List[str]:
        """
        Deactivate every active account with at least max_errors errors

        Returns:
            Ids of the deactivated accounts
        """
        max_errors = max_errors if max_errors is not None else self.health_service.max_errors
        if not isinstance(max_errors, int) or max_errors <= 0:
            raise ValidationException("max_errors must be positive", error_code="INVALID_MAX_ERRORS")
        account_ids = email_account_repo.deactivate_failed_accounts(max_errors)
        if account_ids:
            logger.warning(f"[TokenRefreshService.cleanup_failed_accounts] Deactivated {len(account_ids)} accounts")
        return account_ids


def get_token_refresh_service() -> TokenRefreshService:
    """Get the process-wide refresh orchestrator built from configuration"""
    from app_mailaccount.apis.oauth_api import get_oauth_provider
    from app_mailaccount.config import get_app_config
    from app_mailaccount.services.credential_cipher import get_credential_cipher
    from app_mailaccount.services.health_service import get_health_service

    config = get_app_config()
    return TokenRefreshService(
        cipher=get_credential_cipher(),
        health_service=get_health_service(),
        provider_factory=get_oauth_provider,
        lookahead_minutes=config["refresh_lookahead_minutes"],
        lease_seconds=config["refresh_lease_seconds"],
    )
