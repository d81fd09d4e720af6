"""
Email account service

Caller-facing facade over the mail account components:
- Parameter validation and normalization
- Account creation from an OAuth code or SMTP/IMAP credentials
- Default account, refresh, connection test and health operations
- Data transformation (Model -> secure dict)
- Error classification: operational errors pass through, the rest is wrapped
  into SystemException
"""
import json
import logging
import re
from functools import wraps
from typing import Any, Dict, List, Optional

from django.db import transaction

from app_mailaccount.consts.account_const import (
    DB_ALIAS,
    MAX_DISPLAY_NAME_LENGTH,
    MAX_SIGNATURE_LENGTH,
    SMTP_SCOPE,
    UPDATABLE_SETTING_KEYS,
)
from app_mailaccount.consts.provider_const import PROVIDER_PRESETS, DOMAIN_PROVIDER_MAP
from app_mailaccount.enums.connection_type_enum import ConnectionTypeEnum
from app_mailaccount.enums.provider_enum import ProviderEnum
from app_mailaccount.exceptions.account_exception import (
    MailAccountException,
    AuthException,
    ConflictException,
    CryptoException,
    NotFoundException,
    SystemException,
    ValidationException,
)
from app_mailaccount.exceptions.provider_exception import ProviderGrantException, ProviderTransportException
from app_mailaccount.repos import email_account_repo
from app_mailaccount.services.account_projection import to_secure_dict
from common.components.singleton import Singleton
from common.consts.query_const import FIRST_PAGE, LIMIT_PAGE
from common.utils.date_util import get_now_timestamp_ms, get_timestamp_ms_after_seconds

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _service_method(func):
    """Pass operational errors through, wrap everything else into SystemException"""

    @wraps(func)
    def wrapper(self, *args, **kwargs):
        try:
            return func(self, *args, **kwargs)
        except CryptoException as e:
            logger.exception(f"[EmailAccountService.{func.__name__}] Credential error: {e}")
            raise SystemException("Stored credential could not be read", error_code=e.error_code,
                                  retryable=False) from e
        except MailAccountException as e:
            if e.is_operational:
                logger.warning(f"[EmailAccountService.{func.__name__}] {type(e).__name__}: {e.message}")
            raise
        except Exception as e:
            logger.exception(f"[EmailAccountService.{func.__name__}] Unexpected error: {e}")
            raise SystemException(f"Unexpected error in {func.__name__}", retryable=True) from e

    return wrapper


def detect_provider(email: str) -> str:
    """Infer the provider from the domain of an email address"""
    domain = email.rsplit('@', 1)[-1].lower()
    for fragment, provider in DOMAIN_PROVIDER_MAP:
        if fragment in domain:
            return provider
    return ProviderEnum.OTHER.value


def _normalize_email(email) -> str:
    email = (email or '').strip().lower()
    if not EMAIL_PATTERN.match(email):
        raise ValidationException("A valid email address is required", error_code="INVALID_EMAIL")
    return email


def _validate_port(name: str, port) -> int:
    try:
        port = int(port)
    except (TypeError, ValueError) as e:
        raise ValidationException(f"{name} port must be an integer", error_code="INVALID_PORT") from e
    if not 1 <= port <= 65535:
        raise ValidationException(f"{name} port must be between 1 and 65535", error_code="INVALID_PORT")
    return port


class EmailAccountService(Singleton):
    """Email account service"""

    def __init__(self, cipher, health_service, default_service, refresh_service, tester, query_service,
                 provider_factory, smtp_provider):
        self.cipher = cipher
        self.health_service = health_service
        self.default_service = default_service
        self.refresh_service = refresh_service
        self.tester = tester
        self.query_service = query_service
        self.provider_factory = provider_factory
        self.smtp_provider = smtp_provider

    # ---------- creation ----------

    @_service_method
    def get_authorization_url(self, provider: str, state: str) -> Dict[str, Any]:
        """Build the consent page url of an OAuth provider"""
        oauth = self._oauth_provider(provider)
        if not state:
            raise ValidationException("state is required", error_code="MISSING_STATE")
        return {
            'provider': provider,
            'auth_url': oauth.get_authorization_url(state),
            'state': state,
        }

    @_service_method
    def create_from_oauth(self, user_id: int, provider: str, code: str) -> Dict[str, Any]:
        """
        Connect a mailbox from an OAuth authorization code

        Args:
            user_id: Owning user ID
            provider: gmail or outlook
            code: Authorization code returned to the redirect uri

        Returns:
            Secure dict of the created account

        Raises:
            ValidationException: Unknown provider or missing code
            AuthException: The provider rejected the code
            ConflictException: The mailbox is already connected
            SystemException: The provider could not be reached
        """
        oauth = self._oauth_provider(provider)
        if not code:
            raise ValidationException("Authorization code is required", error_code="MISSING_CODE")

        try:
            grant = oauth.exchange_code(code)
            identity = oauth.get_identity(grant.access_token)
        except ProviderGrantException as e:
            raise AuthException(f"{provider} rejected the authorization: {e.message}",
                                error_code="OAUTH_CODE_REJECTED", reauth_required=True) from e
        except ProviderTransportException as e:
            raise SystemException(f"{provider} could not be reached: {e.message}",
                                  error_code="OAUTH_PROVIDER_UNAVAILABLE") from e

        if not grant.refresh_token:
            raise AuthException("Provider granted no refresh token, reconnect and grant offline access",
                                error_code="MISSING_REFRESH_TOKEN")
        email = _normalize_email(identity.email)

        now = get_now_timestamp_ms()
        account = email_account_repo.create_account(
            self.cipher,
            user_id=user_id,
            email=email,
            provider=provider,
            connection_type=ConnectionTypeEnum.OAUTH.value,
            access_secret=grant.access_token,
            refresh_secret=grant.refresh_token,
            token_expiry=get_timestamp_ms_after_seconds(grant.expires_in, base_ms=now),
            provider_id=identity.provider_id,
            display_name=(identity.display_name or email)[:MAX_DISPLAY_NAME_LENGTH],
            scopes=grant.scopes,
            is_verified=True,
            now=now,
        )
        logger.info(f"[EmailAccountService.create_from_oauth] user={user_id} connected {provider} account")
        return self._after_create(account)

    @_service_method
    def create_from_smtp(self, user_id: int, config: Dict[str, Any], skip_receive: bool = False) -> Dict[str, Any]:
        """
        Connect a mailbox from SMTP/IMAP credentials

        The credentials are tested before anything is stored.

        Args:
            user_id: Owning user ID
            config: {email, username, password, display_name, provider, smtp: {...}, imap: {...}}
            skip_receive: Skip the IMAP login test

        Returns:
            Secure dict of the created account and the test results

        Raises:
            ValidationException: Invalid configuration
            AuthException: The server rejected the credentials
            ConflictException: The mailbox is already connected
            SystemException: The server could not be reached
        """
        smtp_config = self.validate_smtp_config(config)
        email = smtp_config['email']
        if email_account_repo.get_account_by_user_and_email(user_id, email):
            # checked again on insert, this only avoids a pointless server login
            raise ConflictException(f"Email account {email} is already connected", error_code="ACCOUNT_EXISTS")

        credentials = {
            'username': smtp_config['username'],
            'password': smtp_config['password'],
            'smtp': smtp_config['smtp'],
            'imap': smtp_config['imap'],
        }
        try:
            smtp_result = self.smtp_provider.test_send(credentials)
            if skip_receive:
                imap_result = {'success': True, 'skipped': True, 'message': 'IMAP test skipped'}
            else:
                imap_result = self.smtp_provider.test_receive(credentials)
        except ProviderGrantException as e:
            raise AuthException(e.message, error_code="SMTP_AUTH_FAILED", reauth_required=False) from e
        except ProviderTransportException as e:
            raise SystemException(e.message, error_code="SMTP_CONNECTION_FAILED") from e

        now = get_now_timestamp_ms()
        account = email_account_repo.create_account(
            self.cipher,
            user_id=user_id,
            email=email,
            provider=smtp_config['provider'],
            connection_type=ConnectionTypeEnum.SMTP.value,
            access_secret=json.dumps({'username': smtp_config['username'], 'password': smtp_config['password']}),
            provider_id=f"smtp_{email}",
            display_name=smtp_config['display_name'],
            scopes=[SMTP_SCOPE],
            settings={
                'smtp': smtp_config['smtp'],
                'imap': smtp_config['imap'],
                'last_test': {'healthy': True, 'detail': 'Connection successful', 'tested_at': now},
            },
            is_verified=True,
            now=now,
        )
        logger.info(f"[EmailAccountService.create_from_smtp] user={user_id} connected smtp account")
        data = self._after_create(account)
        data['test_results'] = {'smtp': smtp_result, 'imap': imap_result}
        return data

    def validate_smtp_config(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """
        Validate SMTP/IMAP credentials and fill missing server settings from the provider presets

        Raises:
            ValidationException: If a required value is missing or out of range
        """
        if not isinstance(config, dict):
            raise ValidationException("SMTP configuration must be an object", error_code="INVALID_SMTP_CONFIG")

        email = _normalize_email(config.get('email'))
        username = (config.get('username') or email).strip()
        password = config.get('password') or ''
        if not password:
            raise ValidationException("password is required", error_code="MISSING_PASSWORD")

        provider = config.get('provider') or detect_provider(email)
        if provider not in ProviderEnum.values():
            raise ValidationException(f"Unknown provider {provider}", error_code="INVALID_PROVIDER")
        preset = PROVIDER_PRESETS[provider]

        smtp = {**preset['smtp'], **{k: v for k, v in (config.get('smtp') or {}).items() if v is not None}}
        if not smtp.get('host'):
            raise ValidationException("smtp.host is required", error_code="MISSING_SMTP_HOST")
        smtp['port'] = _validate_port('SMTP', smtp.get('port'))

        imap_input = config.get('imap')
        imap = {**preset['imap'], **{k: v for k, v in (imap_input or {}).items() if v is not None}}
        if imap.get('host'):
            imap['port'] = _validate_port('IMAP', imap.get('port'))
        else:
            imap = {}

        display_name = (config.get('display_name') or email).strip()
        if len(display_name) > MAX_DISPLAY_NAME_LENGTH:
            raise ValidationException(f"display_name must be at most {MAX_DISPLAY_NAME_LENGTH} characters",
                                      error_code="DISPLAY_NAME_TOO_LONG")

        return {
            'email': email,
            'username': username,
            'password': password,
            'provider': provider,
            'display_name': display_name,
            'smtp': smtp,
            'imap': imap,
        }

    def _after_create(self, account) -> Dict[str, Any]:
        self.default_service.ensure_default(account.user_id)
        account = email_account_repo.get_account_by_id(account.id)
        return to_secure_dict(account, self.health_service.status_of(account).value)

    # ---------- reads ----------

    @_service_method
    def list_accounts(self, user_id: int, is_active: Optional[bool] = None, provider: Optional[str] = None,
                      page: int = FIRST_PAGE, limit: int = LIMIT_PAGE) -> Dict[str, Any]:
        return self.query_service.list_accounts(user_id, is_active=is_active, provider=provider,
                                                page=page, limit=limit)

    @_service_method
    def get_account_detail(self, account_id, user_id: int) -> Dict[str, Any]:
        """
        Get one account of the user with its health

        Raises:
            NotFoundException: If the account is missing or owned by another user
        """
        account = self._get_owned(account_id, user_id)
        data = to_secure_dict(account, self.health_service.status_of(account).value)
        data['health'] = self.health_service.build_health_report(account)
        data['can_refresh'] = (account.is_active and account.connection_type == ConnectionTypeEnum.OAUTH.value
                               and bool(account.refresh_token))
        return data

    @_service_method
    def check_health(self, account_id, user_id: int) -> Dict[str, Any]:
        return self.health_service.build_health_report(self._get_owned(account_id, user_id))

    def get_provider_presets(self) -> Dict[str, Any]:
        return {provider: dict(preset) for provider, preset in PROVIDER_PRESETS.items()}

    # ---------- updates ----------

    @_service_method
    def update_settings(self, account_id, user_id: int, updates: Dict[str, Any]) -> Dict[str, Any]:
        """
        Update display name, signature, auto reply and aliases of an account

        Raises:
            ValidationException: Unknown key or invalid value
            NotFoundException: If the account is missing or owned by another user
        """
        if not isinstance(updates, dict) or not updates:
            raise ValidationException("No settings to update", error_code="EMPTY_UPDATE")
        unknown = set(updates) - set(UPDATABLE_SETTING_KEYS) - {'display_name'}
        if unknown:
            raise ValidationException(f"Settings not updatable: {', '.join(sorted(unknown))}",
                                      error_code="INVALID_SETTING_KEY")

        account = self._get_owned(account_id, user_id)

        display_name = None
        if 'display_name' in updates:
            display_name = (updates['display_name'] or '').strip()
            if not display_name or len(display_name) > MAX_DISPLAY_NAME_LENGTH:
                raise ValidationException(f"display_name must be 1 to {MAX_DISPLAY_NAME_LENGTH} characters",
                                          error_code="INVALID_DISPLAY_NAME")
        patch = {key: updates[key] for key in UPDATABLE_SETTING_KEYS if key in updates}
        self._validate_settings_patch(patch)

        with transaction.atomic(using=DB_ALIAS):
            if display_name is not None:
                email_account_repo.update_account_fields(account.id, display_name=display_name)
            if patch:
                email_account_repo.update_account_settings(account.id, patch)

        account = email_account_repo.get_account_by_id(account.id)
        return to_secure_dict(account, self.health_service.status_of(account).value)

    def _validate_settings_patch(self, patch: Dict[str, Any]):
        signature = patch.get('default_signature')
        if signature is not None and (not isinstance(signature, str) or len(signature) > MAX_SIGNATURE_LENGTH):
            raise ValidationException(f"default_signature must be at most {MAX_SIGNATURE_LENGTH} characters",
                                      error_code="INVALID_SIGNATURE")
        auto_reply = patch.get('auto_reply')
        if auto_reply is not None:
            if not isinstance(auto_reply, dict) or not isinstance(auto_reply.get('enabled', False), bool):
                raise ValidationException("auto_reply must be an object with an enabled flag",
                                          error_code="INVALID_AUTO_REPLY")
        aliases = patch.get('allowed_aliases')
        if aliases is not None:
            if not isinstance(aliases, list):
                raise ValidationException("allowed_aliases must be a list", error_code="INVALID_ALIASES")
            patch['allowed_aliases'] = [_normalize_email(alias) for alias in aliases]

    @_service_method
    def set_default(self, account_id, user_id: int) -> Dict[str, Any]:
        account = self.default_service.set_default(account_id, user_id)
        return to_secure_dict(account, self.health_service.status_of(account).value)

    @_service_method
    def mark_as_used(self, account_id, user_id: int) -> Dict[str, Any]:
        """Count one sent email on an active account of the user"""
        account = self._get_owned(account_id, user_id)
        if not account.is_active:
            raise NotFoundException(f"Email account {account_id} not found", error_code="ACCOUNT_NOT_FOUND")
        email_account_repo.mark_as_used(account.id)
        account = email_account_repo.get_account_by_id(account.id)
        return to_secure_dict(account, self.health_service.status_of(account).value)

    @_service_method
    def disconnect(self, account_id, user_id: int) -> Dict[str, Any]:
        """
        Delete an account of the user

        When the default account is removed the most recently used active
        account becomes the new default.
        """
        account = self._get_owned(account_id, user_id)
        email_account_repo.delete_account(account.id)
        new_default = self.default_service.ensure_default(user_id) if account.is_default else None
        logger.info(f"[EmailAccountService.disconnect] user={user_id} removed account {account.id}")
        return {
            'account_id': str(account.id),
            'deleted': True,
            'new_default_id': str(new_default.id) if new_default else None,
        }

    # ---------- refresh & test ----------

    @_service_method
    def refresh_now(self, account_id, user_id: int) -> Dict[str, Any]:
        return self.refresh_service.refresh_account(account_id, user_id=user_id)

    @_service_method
    def refresh_all_for_user(self, user_id: int) -> Dict[str, Any]:
        return self.refresh_service.refresh_all_for_user(user_id)

    @_service_method
    def refresh_expired_tokens(self) -> Dict[str, Any]:
        return self.refresh_service.refresh_expired_tokens()

    @_service_method
    def get_refresh_stats(self) -> Dict[str, Any]:
        return self.refresh_service.get_refresh_stats()

    @_service_method
    def cleanup_failed_accounts(self, max_errors: Optional[int] = None) -> List[str]:
        return self.refresh_service.cleanup_failed_accounts(max_errors)

    @_service_method
    def test_connection(self, account_id, user_id: int, skip_receive: bool = False) -> Dict[str, Any]:
        return self.tester.test(account_id, user_id, skip_receive=skip_receive)

    # ---------- helpers ----------

    def _get_owned(self, account_id, user_id: int):
        account = email_account_repo.get_account_of_user(account_id, user_id)
        if account is None:
            raise NotFoundException(f"Email account {account_id} not found", error_code="ACCOUNT_NOT_FOUND")
        return account

    def _oauth_provider(self, provider: str):
        if provider not in ProviderEnum.oauth_capable():
            raise ValidationException(f"Provider {provider} does not support OAuth", error_code="INVALID_PROVIDER")
        return self.provider_factory(provider)


def get_email_account_service() -> EmailAccountService:
    """Get the facade wired from configuration"""
    from app_mailaccount.apis.oauth_api import get_oauth_provider
    from app_mailaccount.apis.smtp_api import get_smtp_provider
    from app_mailaccount.services.account_query_service import get_account_query_service
    from app_mailaccount.services.connection_test_service import get_connection_test_service
    from app_mailaccount.services.credential_cipher import get_credential_cipher
    from app_mailaccount.services.default_account_service import DefaultAccountService
    from app_mailaccount.services.health_service import get_health_service
    from app_mailaccount.services.token_refresh_service import get_token_refresh_service

    return EmailAccountService(
        cipher=get_credential_cipher(),
        health_service=get_health_service(),
        default_service=DefaultAccountService(),
        refresh_service=get_token_refresh_service(),
        tester=get_connection_test_service(),
        query_service=get_account_query_service(),
        provider_factory=get_oauth_provider,
        smtp_provider=get_smtp_provider(),
    )
