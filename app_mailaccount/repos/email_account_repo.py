"""
Email account repository

This module provides database operations for the EmailAccount model. Secrets
handed to create/update are sealed by the credential cipher before they reach
the database; the state transitions used by the services (error counting,
refresh lease, default switching, usage) are single conditional UPDATEs.
"""
import logging
import uuid
from typing import Optional, Dict, Any, List

from django.db import IntegrityError
from django.db.models import F, Q, Case, When, Value, BooleanField

from app_mailaccount.consts.account_const import DB_ALIAS, MAX_ERROR_MESSAGE_LENGTH
from app_mailaccount.enums.connection_type_enum import ConnectionTypeEnum
from app_mailaccount.exceptions.account_exception import ConflictException
from app_mailaccount.models.email_account import EmailAccount
from common.utils.date_util import get_now_timestamp_ms

logger = logging.getLogger(__name__)

# list order, reproducible across pages
ACCOUNT_ORDERING = ("-last_used", "-ct", "id")


def _objects():
    return EmailAccount.objects.using(DB_ALIAS)


def get_account_by_id(account_id) -> Optional[EmailAccount]:
    """
    Get email account by ID

    Args:
        account_id: Account ID

    Returns:
        EmailAccount instance or None if not found
    """
    try:
        return _objects().filter(id=account_id).first()
    except Exception as e:
        logger.exception(f"[get_account_by_id] Error getting account: {e}")
        raise


def get_account_of_user(account_id, user_id: int) -> Optional[EmailAccount]:
    """Get email account by ID, None when it belongs to another user"""
    try:
        return _objects().filter(id=account_id, user_id=user_id).first()
    except Exception as e:
        logger.exception(f"[get_account_of_user] Error getting account: {e}")
        raise


def get_account_by_user_and_email(user_id: int, email: str) -> Optional[EmailAccount]:
    """
    Get email account by owner and address

    Args:
        user_id: Owning user ID
        email: Email address (compared lower-cased)

    Returns:
        EmailAccount instance or None if not found
    """
    try:
        return _objects().filter(user_id=user_id, email=email.strip().lower()).first()
    except Exception as e:
        logger.exception(f"[get_account_by_user_and_email] Error getting account: {e}")
        raise


def list_active_accounts_by_user(user_id: int) -> List[EmailAccount]:
    """List active accounts of the user, most recently used first"""
    try:
        return list(_objects().filter(user_id=user_id, is_active=True).order_by(*ACCOUNT_ORDERING))
    except Exception as e:
        logger.exception(f"[list_active_accounts_by_user] Error listing accounts: {e}")
        raise


def get_default_account(user_id: int) -> Optional[EmailAccount]:
    """Get the active default account of the user"""
    try:
        return _objects().filter(user_id=user_id, is_active=True, is_default=True).first()
    except Exception as e:
        logger.exception(f"[get_default_account] Error getting default account: {e}")
        raise


def _filtered_query(user_id: int, is_active: Optional[bool] = None, provider: Optional[str] = None):
    query = _objects().filter(user_id=user_id)
    if is_active is not None:
        query = query.filter(is_active=is_active)
    if provider:
        query = query.filter(provider=provider)
    return query


def list_accounts_by_user(
        user_id: int,
        offset: int = 0,
        limit: int = 20,
        is_active: Optional[bool] = None,
        provider: Optional[str] = None,
) -> Dict[str, Any]:
    """
    List email accounts of the user with pagination and filtering

    Args:
        user_id: Owning user ID
        offset: Pagination offset
        limit: Pagination limit
        is_active: Filter by active status
        provider: Filter by provider

    Returns:
        Dictionary with 'data' (list of accounts) and 'total_num' (total count)
    """
    try:
        query = _filtered_query(user_id, is_active, provider)
        total = query.count()
        accounts = list(query.order_by(*ACCOUNT_ORDERING)[offset:offset + limit])
        return {
            'data': accounts,
            'total_num': total,
        }
    except Exception as e:
        logger.exception(f"[list_accounts_by_user] Error listing accounts: {e}")
        raise


def list_health_fields_by_user(
        user_id: int,
        is_active: Optional[bool] = None,
        provider: Optional[str] = None,
) -> List[EmailAccount]:
    """Load the columns health is computed from, for every account matching the filters"""
    try:
        return list(
            _filtered_query(user_id, is_active, provider)
            .only('id', 'is_active', 'error_count', 'token_expiry', 'connection_type')
        )
    except Exception as e:
        logger.exception(f"[list_health_fields_by_user] Error listing accounts: {e}")
        raise


def create_account(
        cipher,
        user_id: int,
        email: str,
        provider: str,
        connection_type: str,
        access_secret: str,
        refresh_secret: Optional[str] = None,
        token_expiry: Optional[int] = None,
        provider_id: str = '',
        display_name: str = '',
        scopes: Optional[list] = None,
        settings: Optional[dict] = None,
        is_verified: bool = False,
        now: Optional[int] = None,
) -> EmailAccount:
    """
    Create email account

    The row id is generated first, then the secrets are sealed with it as
    associated data.

    Args:
        cipher: CredentialCipher sealing the secrets
        user_id: Owning user ID
        email: Email address
        provider: Provider name
        connection_type: oauth or smtp
        access_secret: Access token, or serialized smtp credentials
        refresh_secret: Refresh token (oauth only)
        token_expiry: Access token expiry in ms (oauth only)
        provider_id: Provider-side identity
        display_name: Display name
        scopes: Granted scopes
        settings: Provider settings
        is_verified: Whether the credentials were verified
        now: Creation timestamp in ms

    Returns:
        Created EmailAccount instance

    Raises:
        ConflictException: If the user already connected this address
    """
    email = email.strip().lower()
    if get_account_by_user_and_email(user_id, email):
        raise ConflictException(f"Email account {email} is already connected", error_code="ACCOUNT_EXISTS")

    ct = now if now is not None else get_now_timestamp_ms()
    account_id = uuid.uuid4()
    try:
        return _objects().create(
            id=account_id,
            user_id=user_id,
            email=email,
            display_name=display_name or '',
            provider=provider,
            provider_id=provider_id or '',
            connection_type=connection_type,
            access_token=cipher.encrypt(account_id, access_secret) or '',
            refresh_token=cipher.encrypt(account_id, refresh_secret),
            token_expiry=token_expiry,
            scopes=scopes or [],
            settings=settings or {},
            is_active=True,
            is_verified=is_verified,
            is_default=False,
            error_count=0,
            last_used=0,
            ct=ct,
            ut=ct,
        )
    except IntegrityError as e:
        # lost the race against a concurrent create of the same address
        logger.warning(f"[create_account] Duplicate email account user={user_id}: {e}")
        raise ConflictException(f"Email account {email} is already connected", error_code="ACCOUNT_EXISTS") from e
    except Exception as e:
        logger.exception(f"[create_account] Error creating account: {e}")
        raise


def update_account_fields(account_id, now: Optional[int] = None, **fields) -> bool:
    """
    Update plain columns of the account

    Returns:
        True if the row was updated, False if not found
    """
    if not fields:
        return False
    fields['ut'] = now if now is not None else get_now_timestamp_ms()
    try:
        return _objects().filter(id=account_id).update(**fields) == 1
    except Exception as e:
        logger.exception(f"[update_account_fields] Error updating account: {e}")
        raise


def update_account_settings(account_id, settings_patch: Dict[str, Any], now: Optional[int] = None) -> Optional[EmailAccount]:
    """
    Merge keys into the settings of the account

    Args:
        account_id: Account ID
        settings_patch: Keys to set; a None value removes the key

    Returns:
        Updated EmailAccount instance or None if not found
    """
    try:
        account = get_account_by_id(account_id)
        if not account:
            return None

        merged = dict(account.settings or {})
        for key, value in settings_patch.items():
            if value is None:
                merged.pop(key, None)
            else:
                merged[key] = value

        account.settings = merged
        account.ut = now if now is not None else get_now_timestamp_ms()
        account.save(using=DB_ALIAS, update_fields=['settings', 'ut'])
        return account
    except Exception as e:
        logger.exception(f"[update_account_settings] Error updating account: {e}")
        raise


def update_credentials(
        cipher,
        account_id,
        access_secret: str,
        refresh_secret: Optional[str] = None,
        token_expiry: Optional[int] = None,
        now: Optional[int] = None,
) -> bool:
    """
    Store refreshed secrets of the account

    The refresh secret is kept when the provider did not rotate it.

    Returns:
        True if the row was updated, False if not found
    """
    fields = {
        'access_token': cipher.encrypt(account_id, access_secret) or '',
        'token_expiry': token_expiry,
    }
    if refresh_secret:
        fields['refresh_token'] = cipher.encrypt(account_id, refresh_secret)
    return update_account_fields(account_id, now=now, **fields)


def delete_account(account_id) -> bool:
    """
    Delete email account (hard delete)

    Args:
        account_id: Account ID

    Returns:
        True if deleted successfully, False if account not found
    """
    try:
        deleted, _ = _objects().filter(id=account_id).delete()
        return deleted > 0
    except Exception as e:
        logger.exception(f"[delete_account] Error deleting account: {e}")
        raise


def increment_error(
        account_id,
        message: str,
        error_code: str,
        max_errors: int,
        now: Optional[int] = None,
) -> bool:
    """
    Count one failure of the account in a single UPDATE

    When the new count reaches max_errors the account is deactivated and loses
    its default flag in the same statement.

    Returns:
        True if the row was updated, False if not found
    """
    now = now if now is not None else get_now_timestamp_ms()
    reaches_max = Q(error_count__gte=max_errors - 1)
    try:
        updated = _objects().filter(id=account_id).update(
            error_count=F('error_count') + 1,
            last_error_message=(message or '')[:MAX_ERROR_MESSAGE_LENGTH],
            last_error_code=error_code,
            last_error_at=now,
            is_active=Case(When(reaches_max, then=Value(False)), default=F('is_active'),
                           output_field=BooleanField()),
            is_default=Case(When(reaches_max, then=Value(False)), default=F('is_default'),
                            output_field=BooleanField()),
            ut=now,
        )
        return updated == 1
    except Exception as e:
        logger.exception(f"[increment_error] Error recording failure: {e}")
        raise


def reset_errors(account_id, now: Optional[int] = None, sync: bool = False) -> bool:
    """
    Reset the failure state of the account and re-activate it

    Args:
        account_id: Account ID
        now: Timestamp in ms
        sync: Also stamp last_sync_at

    Returns:
        True if the row was updated, False if not found
    """
    now = now if now is not None else get_now_timestamp_ms()
    fields = {
        'error_count': 0,
        'last_error_message': None,
        'last_error_code': None,
        'last_error_at': None,
        'is_active': True,
        'ut': now,
    }
    if sync:
        fields['last_sync_at'] = now
    try:
        return _objects().filter(id=account_id).update(**fields) == 1
    except Exception as e:
        logger.exception(f"[reset_errors] Error clearing failures: {e}")
        raise


def acquire_refresh_lease(account_id, lease_ms: int, now: Optional[int] = None) -> Optional[int]:
    """
    Take the refresh lease of an active account

    Returns:
        Lease expiry in ms when taken, None when another worker holds it or
        the account is missing or inactive
    """
    now = now if now is not None else get_now_timestamp_ms()
    lease_until = now + lease_ms
    try:
        updated = _objects().filter(
            id=account_id,
            is_active=True,
            refresh_lease_until__lte=now,
        ).update(refresh_lease_until=lease_until)
        return lease_until if updated == 1 else None
    except Exception as e:
        logger.exception(f"[acquire_refresh_lease] Error taking lease: {e}")
        raise


def release_refresh_lease(account_id, lease_until: int) -> bool:
    """Release the lease, unless it already expired and was taken by someone else"""
    try:
        return _objects().filter(
            id=account_id,
            refresh_lease_until=lease_until,
        ).update(refresh_lease_until=0) == 1
    except Exception as e:
        logger.exception(f"[release_refresh_lease] Error releasing lease: {e}")
        raise


def lock_accounts_of_user(user_id: int) -> List[EmailAccount]:
    """
    Lock every account row of the user

    Must be called inside transaction.atomic(using=DB_ALIAS).
    """
    return list(_objects().select_for_update().filter(user_id=user_id).order_by('id'))


def clear_default_flags(user_id: int, except_id=None, now: Optional[int] = None) -> int:
    """
    Clear is_default on the accounts of the user

    Returns:
        Number of rows updated
    """
    now = now if now is not None else get_now_timestamp_ms()
    query = _objects().filter(user_id=user_id, is_default=True)
    if except_id is not None:
        query = query.exclude(id=except_id)
    return query.update(is_default=False, ut=now)


def set_default_flag(account_id, user_id: int, now: Optional[int] = None) -> bool:
    """Set is_default on an active account of the user"""
    now = now if now is not None else get_now_timestamp_ms()
    return _objects().filter(id=account_id, user_id=user_id, is_active=True).update(
        is_default=True,
        ut=now,
    ) == 1


def mark_as_used(account_id, now: Optional[int] = None, count_email: bool = True) -> bool:
    """
    Stamp last_used and count one sent email

    Returns:
        True if the row was updated, False if not found
    """
    now = now if now is not None else get_now_timestamp_ms()
    fields = {'last_used': now, 'ut': now}
    if count_email:
        fields['emails_sent'] = F('emails_sent') + 1
    try:
        return _objects().filter(id=account_id).update(**fields) == 1
    except Exception as e:
        logger.exception(f"[mark_as_used] Error updating usage: {e}")
        raise


def deactivate_failed_accounts(max_errors: int, now: Optional[int] = None) -> List[str]:
    """
    Deactivate active accounts whose error count reached max_errors

    Returns:
        Ids of the deactivated accounts
    """
    now = now if now is not None else get_now_timestamp_ms()
    try:
        query = _objects().filter(is_active=True, error_count__gte=max_errors)
        account_ids = [str(account_id) for account_id in query.values_list('id', flat=True)]
        if account_ids:
            _objects().filter(id__in=account_ids, is_active=True).update(
                is_active=False,
                is_default=False,
                ut=now,
            )
        return account_ids
    except Exception as e:
        logger.exception(f"[deactivate_failed_accounts] Error deactivating accounts: {e}")
        raise


def _oauth_refreshable():
    return _objects().filter(
        is_active=True,
        connection_type=ConnectionTypeEnum.OAUTH.value,
        refresh_token__isnull=False,
    ).exclude(refresh_token='')


def list_accounts_to_refresh(stale_before: int, max_error_count: int, user_id: Optional[int] = None) -> List[EmailAccount]:
    """
    List active oauth accounts whose access token expires before stale_before

    Accounts with error_count >= max_error_count are left for the cleanup.
    """
    try:
        query = _oauth_refreshable().filter(
            token_expiry__lte=stale_before,
            error_count__lt=max_error_count,
        )
        if user_id is not None:
            query = query.filter(user_id=user_id)
        return list(query.order_by('token_expiry', 'id'))
    except Exception as e:
        logger.exception(f"[list_accounts_to_refresh] Error listing accounts: {e}")
        raise


def list_oauth_accounts_by_user(user_id: int) -> List[EmailAccount]:
    """List active oauth accounts of the user holding a refresh token"""
    try:
        return list(_oauth_refreshable().filter(user_id=user_id).order_by(*ACCOUNT_ORDERING))
    except Exception as e:
        logger.exception(f"[list_oauth_accounts_by_user] Error listing accounts: {e}")
        raise


def list_refresh_stat_rows() -> List[Dict[str, Any]]:
    """Load provider, expiry and error count of every active oauth account"""
    try:
        return list(_objects().filter(
            is_active=True,
            connection_type=ConnectionTypeEnum.OAUTH.value,
        ).values('provider', 'token_expiry', 'error_count'))
    except Exception as e:
        logger.exception(f"[list_refresh_stat_rows] Error loading stats: {e}")
        raise
