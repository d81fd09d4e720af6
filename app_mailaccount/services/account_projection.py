"""
Secure projection of an email account

Secret columns (access_token, refresh_token) and the refresh lease never leave
the service layer; every dict handed to a caller is built here.
"""
from typing import Any, Dict, Optional

from app_mailaccount.models.email_account import EmailAccount
from common.utils.date_util import get_iso_str_of_timestamp_ms


def to_secure_dict(account: EmailAccount, health_status: Optional[str] = None) -> Dict[str, Any]:
    data = {
        'id': str(account.id),
        'user_id': account.user_id,
        'email': account.email,
        'display_name': account.display_name,
        'provider': account.provider,
        'provider_id': account.provider_id,
        'connection_type': account.connection_type,
        'scopes': list(account.scopes or []),
        'token_expiry': account.token_expiry,
        'is_active': account.is_active,
        'is_verified': account.is_verified,
        'is_default': account.is_default,
        'error_count': account.error_count,
        'last_error': _last_error(account),
        'emails_sent': account.emails_sent,
        'last_used': account.last_used,
        'last_used_at': get_iso_str_of_timestamp_ms(account.last_used),
        'last_sync_at': account.last_sync_at,
        'settings': dict(account.settings or {}),
        'ct': account.ct,
        'ut': account.ut,
    }
    if health_status is not None:
        data['health_status'] = health_status
    return data


def _last_error(account: EmailAccount) -> Optional[Dict[str, Any]]:
    if not account.last_error_message and not account.last_error_code:
        return None
    return {
        'message': account.last_error_message,
        'code': account.last_error_code,
        'at': account.last_error_at,
    }
