"""
Indices (precomputed lookup tables)
===================================

EVIE builds two read-only indices right after a dataset is loaded:

- `distinct_timestamps`: every resolved event time, deduplicated and sorted.
  Slider handles are *positions* into this sequence, so position `i` always
  means "the i-th distinct date present in the data".
- `distinct_categories`: every event type, deduplicated and sorted, used to
  build the category checkboxes.

The index is built once per load and replaced wholesale on reload; filter
changes never touch it.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Iterable, Tuple
from bisect import bisect_left, bisect_right
from .models import CanonicalRecord

@dataclass(frozen=True)
class EventIndex:
    """Container of the derived, immutable indices for one dataset."""
    distinct_timestamps: Tuple[int, ...] = ()
    distinct_categories: Tuple[str, ...] = ()

    @property
    def range_enabled(self) -> bool:
        """A date range needs at least two distinct dates to slide over."""
        return len(self.distinct_timestamps) >= 2

    @property
    def last_position(self) -> int:
        """Highest valid slider position (-1 when there are no dates)."""
        return len(self.distinct_timestamps) - 1

def build_index(records: Iterable[CanonicalRecord]) -> EventIndex:
    """Build indices from the normalized dataset.

    Categories are ordered by plain string comparison (code point order), which
    is total and stable across calls.
    """
    timestamps = set()
    categories = set()
    for r in records:
        if r.has_timestamp:
            timestamps.add(r.timestamp_ms)
        categories.add(r.category)
    return EventIndex(
        distinct_timestamps=tuple(sorted(timestamps)),
        distinct_categories=tuple(sorted(categories)),
    )

def position_of(idx: EventIndex, timestamp_ms: int, upper: bool = False) -> int:
    """Translate a concrete time into a slider position.

    By default returns the first distinct date >= timestamp_ms (a "from"
    handle); with `upper=True` the last distinct date <= timestamp_ms (a "to"
    handle). Results are clamped to valid positions. Returns -1 when the index
    holds no dates.
    """
    if not idx.distinct_timestamps:
        return -1
    if upper:
        pos = bisect_right(idx.distinct_timestamps, timestamp_ms) - 1
        return max(pos, 0)
    pos = bisect_left(idx.distinct_timestamps, timestamp_ms)
    return min(pos, idx.last_position)
