"""
Mail account repositories

This module exports the repository functions for database operations.
"""
from app_mailaccount.repos.email_account_repo import (
    get_account_by_id,
    get_account_of_user,
    get_account_by_user_and_email,
    list_active_accounts_by_user,
    get_default_account,
    list_accounts_by_user,
    create_account,
    update_account_fields,
    update_account_settings,
    update_credentials,
    delete_account,
)

__all__ = [
    'get_account_by_id',
    'get_account_of_user',
    'get_account_by_user_and_email',
    'list_active_accounts_by_user',
    'get_default_account',
    'list_accounts_by_user',
    'create_account',
    'update_account_fields',
    'update_account_settings',
    'update_credentials',
    'delete_account',
]
