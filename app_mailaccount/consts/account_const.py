# db alias of the account store
DB_ALIAS = "mailaccount_rw"

# health thresholds (error counts)
DEFAULT_MAX_ERRORS = 10
DEFAULT_ERRORS_THRESHOLD = 5
DEFAULT_WARNING_THRESHOLD = 1

# token refresh
DEFAULT_REFRESH_LOOKAHEAD_MINUTES = 30
DEFAULT_REFRESH_LEASE_SECONDS = 60
DEFAULT_ACCESS_TOKEN_TTL_SECONDS = 3600

# external provider calls
DEFAULT_PROVIDER_TIMEOUT_SECONDS = 10

# an account unused for this long gets a recommendation in the health check
STALE_ACCOUNT_DAYS = 30

# field limits
MAX_DISPLAY_NAME_LENGTH = 100
MAX_SIGNATURE_LENGTH = 500
MAX_ERROR_MESSAGE_LENGTH = 1000

# error codes stored in last_error_code
ERROR_CODE_UNKNOWN = "UNKNOWN"
ERROR_CODE_TOKEN_REVOKED = "TOKEN_REVOKED"
ERROR_CODE_REFRESH_FAILED = "TOKEN_REFRESH_FAILED"
ERROR_CODE_CONNECTION_FAILED = "CONNECTION_FAILED"
ERROR_CODE_CRYPTO = "CREDENTIAL_DECRYPT_FAILED"

# scope granted to smtp accounts
SMTP_SCOPE = "smtp"

# settings keys the caller may update
UPDATABLE_SETTING_KEYS = (
    "default_signature",
    "auto_reply",
    "allowed_aliases",
)
UPDATABLE_ACCOUNT_FIELDS = (
    "display_name",
)
