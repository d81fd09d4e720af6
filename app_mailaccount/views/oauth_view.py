"""
OAuth connection and provider REST API views
"""
import logging

from rest_framework.views import APIView

from app_mailaccount.services.email_account_service import get_email_account_service
from app_mailaccount.views.error_response import resp_account_exception
from common.consts.response_const import RET_MISSING_PARAM
from common.utils.http_util import resp_ok, resp_err

logger = logging.getLogger(__name__)


class OAuthAuthorizeView(APIView):
    """Get the consent page url of a provider"""

    def get(self, request, provider, *args, **kwargs):
        """
        Query parameters:
        - state: Opaque value echoed back to the redirect uri (required)
        """
        state = request.GET.get("state", "")
        if not state:
            return resp_err("state is required", code=RET_MISSING_PARAM)
        try:
            return resp_ok(get_email_account_service().get_authorization_url(provider, state))
        except Exception as e:
            return resp_account_exception(e)


class OAuthConnectView(APIView):
    """Connect an account from the authorization code"""

    def post(self, request, user_id, provider, *args, **kwargs):
        """
        Request body (JSON):
        {
            "code": "4/0AX4Xf..."   # Required, authorization code
        }
        """
        code = request.data.get('code', '')
        if not code:
            return resp_err("code is required", code=RET_MISSING_PARAM)
        try:
            return resp_ok(get_email_account_service().create_from_oauth(user_id, provider, code))
        except Exception as e:
            return resp_account_exception(e)


class ProviderPresetView(APIView):
    """Known SMTP/IMAP settings per provider"""

    def get(self, request, *args, **kwargs):
        return resp_ok(get_email_account_service().get_provider_presets())
