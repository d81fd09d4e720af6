from enum import Enum


class RefreshOutcomeEnum(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    TRANSIENT_FAILURE = "transient_failure"
    PERMANENT_FAILURE = "permanent_failure"
