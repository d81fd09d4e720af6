"""
Mapping of the mail account exceptions to API responses
"""
import logging

from rest_framework import status as http_status

from app_mailaccount.exceptions.account_exception import MailAccountException, AuthException, SystemException
from common.consts.response_const import RET_UNKNOWN
from common.utils.http_util import resp_err, resp_exception

logger = logging.getLogger(__name__)


def resp_account_exception(e: Exception):
    """
    Build the error response of an exception raised by the email account service

    Unknown exceptions never reach here from the service, they are wrapped
    into SystemException there.
    """
    if not isinstance(e, MailAccountException):
        logger.exception(f"[resp_account_exception] Unexpected error: {e}")
        return resp_exception(e, code=RET_UNKNOWN)

    data = {'error_code': e.error_code}
    if e.details:
        data['details'] = e.details
    if isinstance(e, AuthException):
        data['reauth_required'] = e.reauth_required
    if isinstance(e, SystemException):
        data['retryable'] = e.retryable
    return resp_err(e.message, code=e.code, status=http_status.HTTP_200_OK, data=data)
