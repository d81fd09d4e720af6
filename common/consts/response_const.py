"""
Error code definitions
"""

# =========================
# Base
# =========================

RET_OK = 0                  # success
RET_ERR = 1                 # generic error
RET_UNKNOWN = 2             # unknown error


# =========================
# Request & Parameters (100–199)
# =========================

RET_INVALID_PARAM = 100         # invalid parameter
RET_MISSING_PARAM = 101         # missing required parameter
RET_PARAM_OUT_OF_RANGE = 103    # parameter out of range


# =========================
# Auth & Permission (200–299)
# =========================

RET_UNAUTHORIZED = 200          # unauthorized
RET_TOKEN_INVALID = 211         # token invalid
RET_TOKEN_EXPIRED = 212         # token expired
RET_TOKEN_REVOKED = 213         # token revoked, re-authorization required


# =========================
# Business Logic (300–399)
# =========================

RET_BUSINESS_ERROR = 300         # generic business error
RET_RESOURCE_NOT_FOUND = 301     # resource not found
RET_RESOURCE_EXISTS = 302        # resource already exists
RET_INVALID_STATE = 303          # invalid state


# =========================
# External Dependency (400–499)
# =========================

RET_DEPENDENCY_ERROR = 400         # dependency error
RET_HTTP_TIMEOUT = 401             # http request timeout
RET_THIRD_PARTY_ERROR = 430        # third-party service error


# =========================
# Data & Storage (500–599)
# =========================

RET_DB_ERROR = 500               # database error
RET_CRYPTO_ERROR = 540           # credential envelope corrupt or tampered


# =========================
# Concurrency & Protection (600–699)
# =========================

RET_CONCURRENCY_ERROR = 600      # concurrency error
RET_LOCK_FAILED = 601            # lock acquire failed


# =========================
# Ops & Environment (800–899)
# =========================

RET_CONFIG_ERROR = 800            # configuration error
