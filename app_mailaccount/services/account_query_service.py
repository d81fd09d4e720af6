"""
Account query service

Paged listing of the accounts of a user with computed health and a summary
over the whole filtered set.
"""
import logging
from typing import Any, Dict, Optional

from app_mailaccount.enums.health_status_enum import HealthStatusEnum
from app_mailaccount.enums.provider_enum import ProviderEnum
from app_mailaccount.exceptions.account_exception import ValidationException
from app_mailaccount.repos import email_account_repo
from app_mailaccount.services.account_projection import to_secure_dict
from app_mailaccount.services.health_service import ATTENTION_STATUSES
from common.components.singleton import Singleton
from common.consts.query_const import FIRST_PAGE, LIMIT_PAGE, LIMIT_LIST
from common.consts.string_const import EMPTY_STRING
from common.utils.date_util import get_now_timestamp_ms
from common.utils.page_util import build_numbered_page

logger = logging.getLogger(__name__)


class AccountQueryService(Singleton):
    """Account query service"""

    def __init__(self, health_service):
        self.health_service = health_service

    def list_accounts(
            self,
            user_id: int,
            is_active: Optional[bool] = None,
            provider: Optional[str] = None,
            page: int = FIRST_PAGE,
            limit: int = LIMIT_PAGE,
    ) -> Dict[str, Any]:
        """
        List the accounts of a user

        Args:
            user_id: Owning user ID
            is_active: Filter by active status (optional)
            provider: Filter by provider (optional)
            page: Page number, starting from 1
            limit: Page size, 1 to 100

        Returns:
            Dictionary with accounts, total, page, limit, total_pages, has_next
            and summary

        Raises:
            ValidationException: If page, limit or provider is out of range
        """
        if not isinstance(page, int) or page < FIRST_PAGE:
            raise ValidationException(f"page must be an integer >= {FIRST_PAGE}", error_code="INVALID_PAGE")
        if not isinstance(limit, int) or not 1 <= limit <= LIMIT_LIST:
            raise ValidationException(f"limit must be an integer between 1 and {LIMIT_LIST}",
                                      error_code="INVALID_LIMIT")
        if provider == EMPTY_STRING:
            provider = None
        if provider is not None and provider not in ProviderEnum.values():
            raise ValidationException(f"Unknown provider {provider}", error_code="INVALID_PROVIDER")

        now = get_now_timestamp_ms()
        result = email_account_repo.list_accounts_by_user(
            user_id,
            offset=(page - 1) * limit,
            limit=limit,
            is_active=is_active,
            provider=provider,
        )
        accounts = [to_secure_dict(account, self.health_service.status_of(account, now).value)
                    for account in result['data']]

        page_data = build_numbered_page(accounts, page, limit, result['total_num'])
        return {
            'accounts': page_data['data'],
            'total': page_data['total_num'],
            'page': page,
            'limit': limit,
            'total_pages': page_data['total_pages'],
            'has_next': page_data['has_next'],
            'summary': self._summarize(user_id, is_active, provider, now),
        }

    def _summarize(self, user_id: int, is_active: Optional[bool], provider: Optional[str], now: int) -> Dict[str, int]:
        summary = {'total': 0, 'active': 0, 'healthy': 0, 'needs_attention': 0}
        for account in email_account_repo.list_health_fields_by_user(user_id, is_active, provider):
            status = self.health_service.status_of(account, now)
            summary['total'] += 1
            if account.is_active:
                summary['active'] += 1
            if status == HealthStatusEnum.HEALTHY:
                summary['healthy'] += 1
            elif status in ATTENTION_STATUSES:
                summary['needs_attention'] += 1
        return summary


def get_account_query_service() -> AccountQueryService:
    from app_mailaccount.services.health_service import get_health_service

    return AccountQueryService(get_health_service())
