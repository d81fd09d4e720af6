import logging
from datetime import datetime, timedelta, timezone
from urllib import parse as urllib_parse

from django.conf import settings
from rest_framework import status as http_status
from rest_framework.response import Response

from common.consts.http_const import RET_CODE_OK
from common.utils.date_util import get_date_str_of_datetime


logger = logging.getLogger(__name__)


def with_type(data):
    """
    Convert string to int, true to True, false to False

    @param data: data to convert
    @return: converted data
    """
    try:
        if isinstance(data, list):
            return [with_type(item) for item in data]
        if isinstance(data, dict):
            return {key: with_type(value) for key, value in data.items()}

        if data is None:
            return None
        if isinstance(data, (int, bool)):
            return data
        if isinstance(data, float):
            return data
        if isinstance(data, str):
            if data.isnumeric():
                return int(data)
            if data.lower() == "true":
                return True
            if data.lower() == "false":
                return False
            return urllib_parse.unquote(data)

        raise TypeError(f"Unsupported data type: {type(data)}")
    except Exception as e:
        logger.error(f"Error processing data: {data}, error: {e}")
        raise


def resp_ok(data=None):
    response = Response({
        "data": data,
        "code": RET_CODE_OK,
        "errmsg": ""
    }, status=http_status.HTTP_200_OK)
    response["Expires"] = get_date_str_of_datetime((datetime.now(timezone.utc) + timedelta(seconds=5)),
                                                   "%a, %d %b %Y %H:%M:%S %Z")
    return response


def resp_err(message, code=-1, status=http_status.HTTP_200_OK, data=None):
    return Response({
        "data": data,
        "code": code,
        "errmsg": message
    }, status=status)


def resp_exception(e: Exception, code=-1, status=http_status.HTTP_200_OK):
    if settings.DEBUG:
        message = repr(e)
    else:
        message = str(e)
    return Response({
        "data": None,
        "code": code,
        "errmsg": message
    }, status=status)
