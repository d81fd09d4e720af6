"""
Connection tester

Verifies that the stored credentials of an account still work. OAuth accounts
look up the mailbox identity and get one refresh when the access token is
rejected; SMTP accounts log in to the SMTP server and, when configured, the
IMAP server.
"""
import json
import logging
from typing import Any, Dict

from app_mailaccount.consts.account_const import ERROR_CODE_CONNECTION_FAILED, ERROR_CODE_CRYPTO
from app_mailaccount.enums.connection_type_enum import ConnectionTypeEnum
from app_mailaccount.exceptions.account_exception import (
    MailAccountException,
    CryptoException,
    NotFoundException,
    RefreshInProgressException,
    SystemException,
    ValidationException,
)
from app_mailaccount.exceptions.provider_exception import ProviderException, ProviderGrantException
from app_mailaccount.models.email_account import EmailAccount
from app_mailaccount.repos import email_account_repo
from common.components.singleton import Singleton
from common.utils.date_util import get_now_timestamp_ms

logger = logging.getLogger(__name__)


def load_smtp_credentials(cipher, account: EmailAccount) -> Dict[str, Any]:
    """
    Decrypt the SMTP credentials of an account and merge the server settings

    Raises:
        CryptoException: The stored credential is unreadable
    """
    payload = cipher.decrypt(account.id, account.access_token)
    try:
        secret = json.loads(payload or '{}')
    except ValueError as e:
        raise CryptoException("Stored SMTP credential is not valid JSON", error_code="INVALID_PLAINTEXT") from e
    settings = account.settings or {}
    return {
        'username': secret.get('username'),
        'password': secret.get('password'),
        'smtp': settings.get('smtp') or {},
        'imap': settings.get('imap') or {},
    }


class ConnectionTestService(Singleton):
    """Connection tester"""

    def __init__(self, cipher, health_service, refresh_service, provider_factory, smtp_provider):
        self.cipher = cipher
        self.health_service = health_service
        self.refresh_service = refresh_service
        self.provider_factory = provider_factory
        self.smtp_provider = smtp_provider

    def test(self, account_id, user_id: int, skip_receive: bool = False) -> Dict[str, Any]:
        """
        Test the connection of an account

        Args:
            account_id: Account ID
            user_id: Owning user ID
            skip_receive: Skip the IMAP login of SMTP accounts

        Returns:
            Dictionary with healthy flag, detail and per-protocol results. While
            another caller holds the refresh lease, healthy is None and
            in_progress is set; nothing is recorded for such a test.

        Raises:
            NotFoundException: The account does not exist or belongs to another user
            SystemException: The stored credential is unreadable
        """
        account = email_account_repo.get_account_of_user(account_id, user_id)
        if account is None:
            raise NotFoundException(f"Email account {account_id} not found", error_code="ACCOUNT_NOT_FOUND")

        try:
            if account.connection_type == ConnectionTypeEnum.OAUTH.value:
                result = self._test_oauth(account)
            elif account.connection_type == ConnectionTypeEnum.SMTP.value:
                result = self._test_smtp(account, skip_receive)
            else:
                raise ValidationException(f"Unknown connection type {account.connection_type}")
        except CryptoException as e:
            logger.exception(f"[ConnectionTestService.test] Stored credential of {account.id} is unreadable")
            self.health_service.record_error(account.id, e.message, ERROR_CODE_CRYPTO)
            raise SystemException("Stored credential could not be read", error_code=ERROR_CODE_CRYPTO,
                                  retryable=False) from e

        now = get_now_timestamp_ms()
        result['account_id'] = str(account.id)
        result['tested_at'] = now
        if result.get('in_progress'):
            return result
        if result['healthy']:
            self.health_service.clear_errors(account.id, now=now, sync=True)
            email_account_repo.mark_as_used(account.id, now=now, count_email=False)
        elif not result.pop('recorded', False):
            self.health_service.record_error(account.id, result['detail'], ERROR_CODE_CONNECTION_FAILED, now=now)
        self._store_test_result(account, result)
        return result

    def _test_oauth(self, account: EmailAccount) -> Dict[str, Any]:
        try:
            provider = self.provider_factory(account.provider)
        except ValueError as e:
            raise ValidationException(str(e), error_code="PROVIDER_NOT_SUPPORTED") from e

        access_secret = self.cipher.decrypt(account.id, account.access_token)
        try:
            identity = provider.get_identity(access_secret)
            return {'healthy': True, 'detail': f"Connected as {identity.email}", 'refreshed': False}
        except ProviderGrantException:
            logger.info(f"[ConnectionTestService._test_oauth] Access token of {account.id} rejected, refreshing")
        except ProviderException as e:
            return {'healthy': False, 'detail': e.message, 'refreshed': False}

        # the refresh records its own success or failure
        try:
            refresh_result = self.refresh_service.refresh_account(account.id)
        except RefreshInProgressException:
            return {'healthy': None, 'detail': 'Token refresh in progress, test again shortly',
                    'refreshed': False, 'in_progress': True}
        except MailAccountException as e:
            return {'healthy': False, 'detail': e.message, 'refreshed': False, 'recorded': True,
                    'reauth_required': getattr(e, 'reauth_required', False)}
        return {'healthy': True, 'detail': 'Access token refreshed', 'refreshed': True,
                'token_expiry': refresh_result.get('token_expiry')}

    def _test_smtp(self, account: EmailAccount, skip_receive: bool) -> Dict[str, Any]:
        credentials = load_smtp_credentials(self.cipher, account)
        result: Dict[str, Any] = {'healthy': True, 'detail': 'Connection successful'}

        try:
            result['smtp'] = self.smtp_provider.test_send(credentials)
        except ProviderException as e:
            result['smtp'] = {'success': False, 'message': e.message}

        if skip_receive:
            result['imap'] = {'success': True, 'skipped': True, 'message': 'IMAP test skipped'}
        else:
            try:
                result['imap'] = self.smtp_provider.test_receive(credentials)
            except ProviderException as e:
                result['imap'] = {'success': False, 'message': e.message}

        failures = [f"{name.upper()}: {result[name]['message']}" for name in ('smtp', 'imap')
                    if not result[name]['success']]
        if failures:
            result['healthy'] = False
            result['detail'] = '; '.join(failures)
        return result

    def _store_test_result(self, account: EmailAccount, result: Dict[str, Any]):
        email_account_repo.update_account_settings(account.id, {
            'last_test': {
                'healthy': result['healthy'],
                'detail': result['detail'],
                'tested_at': result['tested_at'],
            },
        })


def get_connection_test_service() -> ConnectionTestService:
    from app_mailaccount.apis.oauth_api import get_oauth_provider
    from app_mailaccount.apis.smtp_api import get_smtp_provider
    from app_mailaccount.services.credential_cipher import get_credential_cipher
    from app_mailaccount.services.health_service import get_health_service
    from app_mailaccount.services.token_refresh_service import get_token_refresh_service

    return ConnectionTestService(
        cipher=get_credential_cipher(),
        health_service=get_health_service(),
        refresh_service=get_token_refresh_service(),
        provider_factory=get_oauth_provider,
        smtp_provider=get_smtp_provider(),
    )
