RET_CODE_OK = 0

HEADER_AUTHORIZATION = "Authorization"
BEARER_PREFIX = "Bearer "
