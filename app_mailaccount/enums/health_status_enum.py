from enum import Enum


class HealthStatusEnum(str, Enum):
    """Derived account health, listed in evaluation priority order"""
    INACTIVE = "inactive"
    CRITICAL = "critical"
    ERRORS = "errors"
    TOKEN_EXPIRED = "token_expired"
    WARNING = "warning"
    HEALTHY = "healthy"
