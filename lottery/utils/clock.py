"""Epoch-millisecond helpers; event timestamps are stored as client epoch ms."""

from datetime import datetime, timezone as dt_timezone

from django.utils import timezone


def now_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(timezone.now().timestamp() * 1000)


def from_epoch_ms(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=dt_timezone.utc)
