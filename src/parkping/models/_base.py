"""Shared pydantic plumbing for parkping models.

Provider timestamps arrive as epoch numbers in either seconds or
milliseconds, or as datetimes.  :data:`Timestamp` coerces all of them
to timezone-aware UTC datetimes so the state machine can compare them.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict

# Threshold to distinguish seconds from milliseconds.
_MS_THRESHOLD = 1_000_000_000_000


def parse_timestamp(value: Any) -> datetime | None:
    """Convert an epoch timestamp (seconds **or** milliseconds) to a UTC datetime.

    Naive datetimes are assumed to be UTC.  ``None`` passes through.
    """
    if value is None:
        return value
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    ts = float(value)
    if ts >= _MS_THRESHOLD:
        ts /= 1000.0
    return datetime.fromtimestamp(ts, tz=UTC)


Timestamp = Annotated[datetime, BeforeValidator(parse_timestamp)]
"""Annotated type that coerces epoch numbers and naive datetimes to UTC datetimes."""

OptionalTimestamp = Annotated[datetime | None, BeforeValidator(parse_timestamp)]


class ParkPingModel(BaseModel):
    """Base for immutable parkping value objects."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )
