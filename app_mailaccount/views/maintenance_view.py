"""
Maintenance REST API views: token refresh stats, sweep and failed account cleanup
"""
import logging

from rest_framework.views import APIView

from app_mailaccount.services.email_account_service import get_email_account_service
from app_mailaccount.views.error_response import resp_account_exception
from common.utils.http_util import resp_ok, with_type

logger = logging.getLogger(__name__)


class RefreshStatsView(APIView):

    def get(self, request, *args, **kwargs):
        try:
            return resp_ok(get_email_account_service().get_refresh_stats())
        except Exception as e:
            return resp_account_exception(e)


class RefreshExpiredView(APIView):

    def post(self, request, *args, **kwargs):
        try:
            return resp_ok(get_email_account_service().refresh_expired_tokens())
        except Exception as e:
            return resp_account_exception(e)


class CleanupFailedAccountsView(APIView):

    def post(self, request, *args, **kwargs):
        """
        Request body (JSON):
        {
            "max_errors": 10   # Optional, defaults to the configured maximum
        }
        """
        try:
            max_errors = request.data.get('max_errors')
            if max_errors is not None:
                max_errors = with_type(max_errors)
            account_ids = get_email_account_service().cleanup_failed_accounts(max_errors)
            return resp_ok({'deactivated': account_ids, 'count': len(account_ids)})
        except Exception as e:
            return resp_account_exception(e)
