"""
Default account coordinator

Keeps at most one active default account per user. Every transition runs in
one transaction holding row locks on all accounts of the user, so concurrent
switches are serialized; the partial unique constraint on the table rejects
anything that slips past.
"""
import logging
from typing import Optional

from django.db import transaction

from app_mailaccount.consts.account_const import DB_ALIAS
from app_mailaccount.exceptions.account_exception import NotFoundException
from app_mailaccount.models.email_account import EmailAccount
from app_mailaccount.repos import email_account_repo
from common.components.singleton import Singleton
from common.utils.date_util import get_now_timestamp_ms

logger = logging.getLogger(__name__)


class DefaultAccountService(Singleton):
    """Default account coordinator"""

    def set_default(self, account_id, user_id: int) -> EmailAccount:
        """
        Make the account the default of its user

        Args:
            account_id: Account ID
            user_id: Owning user ID

        Returns:
            The new default account

        Raises:
            NotFoundException: If the account is missing, inactive or owned by another user
        """
        now = get_now_timestamp_ms()
        with transaction.atomic(using=DB_ALIAS):
            accounts = email_account_repo.lock_accounts_of_user(user_id)
            target = next((a for a in accounts if str(a.id) == str(account_id)), None)
            if target is None or not target.is_active:
                raise NotFoundException(f"Email account {account_id} not found", error_code="ACCOUNT_NOT_FOUND")

            # clear first, the partial unique index allows one default at a time
            email_account_repo.clear_default_flags(user_id, except_id=target.id, now=now)
            if not target.is_default:
                email_account_repo.set_default_flag(target.id, user_id, now=now)

        logger.info(f"[DefaultAccountService.set_default] user={user_id} default={account_id}")
        return email_account_repo.get_account_by_id(target.id)

    def ensure_default(self, user_id: int) -> Optional[EmailAccount]:
        """
        Make sure the user has a default account when any account is active

        The active account with the greatest last_used becomes default, ties
        broken by the greatest ct.

        Returns:
            The default account, or None if the user has no active account
        """
        now = get_now_timestamp_ms()
        with transaction.atomic(using=DB_ALIAS):
            accounts = email_account_repo.lock_accounts_of_user(user_id)
            active = [a for a in accounts if a.is_active]
            if not active:
                return None

            current = next((a for a in active if a.is_default), None)
            if current is not None:
                return current

            candidate = max(active, key=lambda a: (a.last_used or 0, a.ct or 0))
            email_account_repo.clear_default_flags(user_id, now=now)
            email_account_repo.set_default_flag(candidate.id, user_id, now=now)

        logger.info(f"[DefaultAccountService.ensure_default] user={user_id} promoted={candidate.id}")
        return email_account_repo.get_account_by_id(candidate.id)

    def unset_all_defaults(self, user_id: int) -> int:
        """
        Clear the default flag on every account of the user

        Returns:
            Number of accounts updated
        """
        with transaction.atomic(using=DB_ALIAS):
            email_account_repo.lock_accounts_of_user(user_id)
            return email_account_repo.clear_default_flags(user_id)
