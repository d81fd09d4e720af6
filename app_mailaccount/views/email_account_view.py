"""
Email account REST API views

Accounts are addressed under the owning user: users/<user_id>/accounts/...
"""
import logging

from rest_framework.views import APIView

from app_mailaccount.services.email_account_service import get_email_account_service
from app_mailaccount.views.error_response import resp_account_exception
from common.consts.query_const import FIRST_PAGE, LIMIT_PAGE
from common.consts.string_const import EMPTY_STRING
from common.utils.http_util import resp_ok, with_type

logger = logging.getLogger(__name__)


class EmailAccountListView(APIView):
    """List accounts of a user, connect an SMTP account"""

    def get(self, request, user_id, *args, **kwargs):
        """
        List accounts with pagination and filtering

        Query parameters:
        - page: Page number (default: 1)
        - limit: Page size (default: 20, max: 100)
        - is_active: Filter by active status (optional, true/false)
        - provider: Filter by provider (optional)
        """
        try:
            page = with_type(request.GET.get("page", FIRST_PAGE))
            limit = with_type(request.GET.get("limit", LIMIT_PAGE))
            is_active_str = request.GET.get("is_active", EMPTY_STRING)
            provider = request.GET.get("provider", EMPTY_STRING)

            is_active = with_type(is_active_str) if is_active_str else None

            result = get_email_account_service().list_accounts(
                user_id,
                is_active=is_active,
                provider=provider or None,
                page=page,
                limit=limit,
            )
            return resp_ok(result)
        except Exception as e:
            return resp_account_exception(e)

    def post(self, request, user_id, *args, **kwargs):
        """
        Connect an account with SMTP/IMAP credentials

        Request body (JSON):
        {
            "email": "user@example.com",        # Required
            "password": "app-password",          # Required
            "username": "user@example.com",      # Optional, defaults to email
            "display_name": "Work",              # Optional
            "provider": "yahoo",                 # Optional, inferred from the email domain
            "smtp": {"host": "...", "port": 587, "secure": false},   # Optional for known providers
            "imap": {"host": "...", "port": 993, "secure": true},    # Optional
            "skip_receive": false                # Optional, skip the IMAP login test
        }
        """
        try:
            data = dict(request.data)
            skip_receive = bool(with_type(data.pop('skip_receive', False)))
            result = get_email_account_service().create_from_smtp(user_id, data, skip_receive=skip_receive)
            return resp_ok(result)
        except Exception as e:
            return resp_account_exception(e)


class EmailAccountDetailView(APIView):
    """Get, update settings of, and disconnect an account"""

    def get(self, request, user_id, account_id, *args, **kwargs):
        try:
            return resp_ok(get_email_account_service().get_account_detail(account_id, user_id))
        except Exception as e:
            return resp_account_exception(e)

    def put(self, request, user_id, account_id, *args, **kwargs):
        """
        Update account settings

        Request body (JSON), every key optional:
        {
            "display_name": "Work",
            "default_signature": "Regards",
            "auto_reply": {"enabled": true, "message": "Out of office"},
            "allowed_aliases": ["alias@example.com"]
        }
        """
        try:
            result = get_email_account_service().update_settings(account_id, user_id, dict(request.data))
            return resp_ok(result)
        except Exception as e:
            return resp_account_exception(e)

    def delete(self, request, user_id, account_id, *args, **kwargs):
        try:
            return resp_ok(get_email_account_service().disconnect(account_id, user_id))
        except Exception as e:
            return resp_account_exception(e)


class EmailAccountDefaultView(APIView):
    """Make an account the default of its user"""

    def post(self, request, user_id, account_id, *args, **kwargs):
        try:
            return resp_ok(get_email_account_service().set_default(account_id, user_id))
        except Exception as e:
            return resp_account_exception(e)


class EmailAccountRefreshView(APIView):
    """Refresh the OAuth token of an account now"""

    def post(self, request, user_id, account_id, *args, **kwargs):
        try:
            return resp_ok(get_email_account_service().refresh_now(account_id, user_id))
        except Exception as e:
            return resp_account_exception(e)


class EmailAccountRefreshAllView(APIView):
    """Refresh the OAuth tokens of every account of a user"""

    def post(self, request, user_id, *args, **kwargs):
        try:
            return resp_ok(get_email_account_service().refresh_all_for_user(user_id))
        except Exception as e:
            return resp_account_exception(e)


class EmailAccountTestView(APIView):
    """Test the connection of an account"""

    def post(self, request, user_id, account_id, *args, **kwargs):
        try:
            skip_receive = bool(with_type(request.data.get('skip_receive', False)))
            result = get_email_account_service().test_connection(account_id, user_id, skip_receive=skip_receive)
            return resp_ok(result)
        except Exception as e:
            return resp_account_exception(e)


class EmailAccountHealthView(APIView):
    """Health check of an account"""

    def get(self, request, user_id, account_id, *args, **kwargs):
        try:
            return resp_ok(get_email_account_service().check_health(account_id, user_id))
        except Exception as e:
            return resp_account_exception(e)


class EmailAccountUsageView(APIView):
    """Count one email sent through an account"""

    def post(self, request, user_id, account_id, *args, **kwargs):
        try:
            return resp_ok(get_email_account_service().mark_as_used(account_id, user_id))
        except Exception as e:
            return resp_account_exception(e)
