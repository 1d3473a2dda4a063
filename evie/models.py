"""
Data model (CanonicalRecord)
============================

Each GeoJSON feature that survives normalization becomes a `CanonicalRecord`.
Records are immutable (`frozen=True`) so that:
- filters never edit data, they only decide visibility, and
- `record_id` (the position in the loaded sequence) stays a stable identity
  for the lifetime of one dataset load.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from types import MappingProxyType
from typing import Any, Mapping, Optional

# Category used when a feature has no (or an empty) event_type.
DEFAULT_CATEGORY = "Event"

# Property names carried through untouched for popups / exports.
DISPLAY_FIELDS = ("event_date", "fatalities", "actor1", "actor2", "notes", "country", "admin1", "location")

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ONE_MS = timedelta(milliseconds=1)

# Timestamps must be representable as a datetime (years 1..9999).
MIN_DATE_MS = (datetime(1, 1, 1, tzinfo=timezone.utc) - _EPOCH) // _ONE_MS
MAX_DATE_MS = (datetime(9999, 12, 31, 23, 59, 59, 999000, tzinfo=timezone.utc) - _EPOCH) // _ONE_MS


def is_valid_date_ms(ms: int) -> bool:
    return MIN_DATE_MS <= ms <= MAX_DATE_MS


def datetime_to_ms(dt: datetime) -> int:
    """Epoch milliseconds of an aware datetime."""
    return (dt - _EPOCH) // _ONE_MS


def format_date_ms(ms: int) -> str:
    """Return the `YYYY-MM-DD` (UTC) label for an epoch-millisecond value."""
    return (_EPOCH + timedelta(milliseconds=ms)).date().isoformat()


@dataclass(frozen=True)
class CanonicalRecord:
    """One normalized event."""
    record_id: int
    longitude: float
    latitude: float
    # epoch milliseconds; None when no date field could be resolved
    timestamp_ms: Optional[int]
    category: str = DEFAULT_CATEGORY
    display_fields: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)

    def __post_init__(self) -> None:
        # read-only view so a frozen record cannot be changed through its bag
        object.__setattr__(self, "display_fields", MappingProxyType(dict(self.display_fields)))

    @property
    def has_timestamp(self) -> bool:
        return self.timestamp_ms is not None

    def date_label(self) -> Optional[str]:
        if not self.has_timestamp:
            return None
        return format_date_ms(self.timestamp_ms)
