from datetime import datetime, timezone
from typing import Optional

MS_PER_SECOND = 1000
MS_PER_MINUTE = 60 * MS_PER_SECOND
MS_PER_DAY = 24 * 60 * MS_PER_MINUTE


def get_now_timestamp_ms() -> int:
    """
    Get the current timestamp in milliseconds
    """
    now = datetime.now()
    return int(round(now.timestamp() * 1000))


def get_timestamp_ms_after_seconds(seconds: int, base_ms: Optional[int] = None) -> int:
    """
    Get the timestamp (milliseconds) some seconds after base_ms
    (1714521600000, 3600) -> 1714525200000

    @param seconds: seconds after
    @param base_ms: base timestamp in milliseconds, now if omitted
    @return: timestamp in milliseconds
    """
    if base_ms is None:
        base_ms = get_now_timestamp_ms()
    return base_ms + int(seconds) * MS_PER_SECOND


def get_datetime_of_timestamp_ms(timestamp_ms: int) -> datetime:
    """
    Convert timestamp in milliseconds to an aware UTC datetime
    1714521600000 -> 2024-05-01 00:00:00+00:00

    @param timestamp_ms:
    @return: datetime
    """
    return datetime.fromtimestamp(timestamp_ms / MS_PER_SECOND, tz=timezone.utc)


def get_iso_str_of_timestamp_ms(timestamp_ms: Optional[int]) -> Optional[str]:
    """
    Convert timestamp in milliseconds to ISO-8601 string, None stays None
    1714521600000 -> "2024-05-01T00:00:00+00:00"
    """
    if not timestamp_ms:
        return None
    return get_datetime_of_timestamp_ms(timestamp_ms).isoformat()


def get_date_str_of_datetime(date_obj: datetime, date_format: str) -> str:
    """
    Convert datetime to date string
    2024-05-01 00:00:00 -> "20240501"

    @param date_obj:
    @param date_format:
    @return: date string
    """
    return date_obj.strftime(date_format)
