"""
Core engine (EVIE)
==================

EVIE works like a tiny in-memory "map filter engine":

1) Load dataset -> list of CanonicalRecord (immutable)
2) Build indices -> distinct dates + distinct categories (once per load)
3) Hold the *filter state*: a date range as positions into the distinct dates,
   plus a set of selected categories
4) After every filter change, rescan all records and publish the visible set

A record is visible iff its date is inside the range AND its category is
selected. An empty category selection means "no restriction", so a freshly
loaded map never starts empty.

Every mutator is synchronous: when it returns, the visible set and all
listeners already reflect the new state. Before the first successful load
the mutators are silent no-ops, so UI wiring can call them while the data is
still loading.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Set, Tuple, Union
import logging
from .models import CanonicalRecord, format_date_ms
from .indices import EventIndex, build_index
from .loader import DatasetLoadError, features_from_document, load_geojson, normalize

logger = logging.getLogger(__name__)

Listener = Callable[[List[CanonicalRecord]], None]
Bounds = Tuple[Tuple[float, float], Tuple[float, float]]

@dataclass
class FilterState:
    """Current filter selection (slider positions + checked categories)."""
    range_low: int = 0
    range_high: int = 0
    # empty = unrestricted
    selected_categories: Set[str] = field(default_factory=set)

@dataclass
class EVIE:
    """Event Visibility & Indexing Engine.

    The engine stores:
    - records: all CanonicalRecord objects of the current dataset
    - idx: indices built once per load
    - state: the current FilterState (None until a dataset is loaded)

    Filters update `state` and recompute the visible list; records and
    indices are never modified.
    """
    # show records without a resolved date regardless of the date range
    include_undated: bool = False
    dataset_path: Optional[str] = None
    records: List[CanonicalRecord] = field(default_factory=list, init=False)
    idx: Optional[EventIndex] = field(default=None, init=False)
    state: Optional[FilterState] = field(default=None, init=False)

    _visible: List[CanonicalRecord] = field(default_factory=list, init=False, repr=False)
    _listeners: List[Listener] = field(default_factory=list, init=False, repr=False)

    # ---------------- Loading ----------------
    @property
    def is_ready(self) -> bool:
        return self.idx is not None

    def load_records(self, records: Sequence[CanonicalRecord]) -> None:
        """Install an already-normalized dataset, replacing everything."""
        records = list(records)
        idx = build_index(records)
        self.records = records
        self.idx = idx
        self.state = self._full_state()
        undated = sum(1 for r in records if not r.has_timestamp)
        if undated:
            logger.warning("%d record(s) have no resolvable date", undated)
        if not idx.range_enabled:
            logger.info("Fewer than 2 distinct dates; date range filter is inactive")
        self._recompute()

    def load_document(self, doc: Mapping[str, Any]) -> None:
        """Load a parsed GeoJSON document (FeatureCollection or single Feature)."""
        self.load_records(normalize(features_from_document(doc)))

    def load_dataset(self, path: Union[str, Path]) -> None:
        """Load a GeoJSON file.

        Raises DatasetLoadError; on failure the engine keeps whatever it had
        before (nothing, on the first load).
        """
        records = load_geojson(path)
        self.load_records(records)
        self.dataset_path = str(path)
        logger.info("Dataset ready: %d records, %d dates, %d categories",
                    len(records), len(self.idx.distinct_timestamps), len(self.idx.distinct_categories))

    def reload(self) -> None:
        if not self.dataset_path:
            raise DatasetLoadError("No dataset path to reload from")
        self.load_dataset(self.dataset_path)

    def _full_state(self) -> FilterState:
        return FilterState(range_low=0, range_high=max(self.idx.last_position, 0))

    # ---------------- Filters ----------------
    def _clamp(self, pos: int) -> int:
        return min(max(int(pos), 0), self.idx.last_position)

    def set_range_low(self, pos: int) -> None:
        """Move the "from" handle; the "to" handle is pushed up if crossed."""
        if not self.is_ready or not self.idx.distinct_timestamps:
            return
        pos = self._clamp(pos)
        self.state.range_low = pos
        if pos > self.state.range_high:
            self.state.range_high = pos
        self._recompute()

    def set_range_high(self, pos: int) -> None:
        """Move the "to" handle; the "from" handle is pushed down if crossed."""
        if not self.is_ready or not self.idx.distinct_timestamps:
            return
        pos = self._clamp(pos)
        self.state.range_high = pos
        if pos < self.state.range_low:
            self.state.range_low = pos
        self._recompute()

    def toggle_category(self, category: str) -> None:
        """Check/uncheck one category. Unknown names are accepted and match nothing."""
        if not self.is_ready:
            return
        selected = self.state.selected_categories
        if category in selected:
            selected.discard(category)
        else:
            selected.add(category)
        self._recompute()

    def reset(self) -> None:
        """Full date span, no category restriction."""
        if not self.is_ready:
            return
        self.state = self._full_state()
        self._recompute()

    # ---------------- Visibility ----------------
    def _date_ok(self, r: CanonicalRecord) -> bool:
        ts = self.idx.distinct_timestamps
        if not ts:
            # no dates anywhere: nothing to filter on
            return True
        if not r.has_timestamp:
            return self.include_undated
        return ts[self.state.range_low] <= r.timestamp_ms <= ts[self.state.range_high]

    def _category_ok(self, r: CanonicalRecord) -> bool:
        selected = self.state.selected_categories
        return not selected or r.category in selected

    def is_visible(self, r: CanonicalRecord) -> bool:
        if not self.is_ready:
            return False
        return self._date_ok(r) and self._category_ok(r)

    def visible_set(self) -> List[CanonicalRecord]:
        """Records passing both filters, in load order."""
        return list(self._visible)

    def _recompute(self) -> None:
        # full rescan, O(n) per change
        self._visible = [r for r in self.records if self.is_visible(r)]
        logger.debug("Visible %d / %d (range=%d..%d, categories=%s)",
                     len(self._visible), len(self.records),
                     self.state.range_low, self.state.range_high,
                     sorted(self.state.selected_categories) or "all")
        for cb in list(self._listeners):
            cb(self.visible_set())

    # ---------------- Listeners ----------------
    def subscribe(self, callback: Listener) -> None:
        """Register a callback receiving the visible list after every change."""
        self._listeners.append(callback)
        if self.is_ready:
            callback(self.visible_set())

    def unsubscribe(self, callback: Listener) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    # ---------------- Rendering hints ----------------
    @property
    def distinct_timestamps(self) -> Tuple[int, ...]:
        return self.idx.distinct_timestamps if self.idx else ()

    @property
    def distinct_categories(self) -> Tuple[str, ...]:
        return self.idx.distinct_categories if self.idx else ()

    @property
    def range_enabled(self) -> bool:
        """False when the date slider should be disabled (fewer than 2 dates)."""
        return bool(self.idx and self.idx.range_enabled)

    def date_labels(self) -> Optional[Tuple[str, str]]:
        """`YYYY-MM-DD` labels for the current low/high handles, or None without dates."""
        if not self.is_ready or not self.idx.distinct_timestamps:
            return None
        ts = self.idx.distinct_timestamps
        return format_date_ms(ts[self.state.range_low]), format_date_ms(ts[self.state.range_high])

    def bounds(self, visible_only: bool = True) -> Optional[Bounds]:
        """((south, west), (north, east)) of the visible (or all) records."""
        rows = self._visible if visible_only else self.records
        if not rows:
            return None
        lats = [r.latitude for r in rows]
        lons = [r.longitude for r in rows]
        return (min(lats), min(lons)), (max(lats), max(lons))

    # ---------------- Output operations ----------------
    def export_csv(self, path: Union[str, Path]) -> None:
        import csv
        with open(path, "w", newline="", encoding="utf-8") as f:
            w = csv.writer(f)
            w.writerow(["record_id","longitude","latitude","date","timestamp_ms","category",
                        "fatalities","actor1","actor2","country","admin1","location","notes"])
            for r in self._visible:
                d = r.display_fields
                w.writerow([r.record_id, r.longitude, r.latitude, r.date_label() or "", r.timestamp_ms,
                            r.category, d.get("fatalities"), d.get("actor1"), d.get("actor2"),
                            d.get("country"), d.get("admin1"), d.get("location"), d.get("notes")])

    def export_geojson(self, path: Union[str, Path]) -> None:
        """Export the visible set as a FeatureCollection.

        Unlike CSV this keeps the original property names, so the file can be
        loaded back into EVIE.
        """
        import json
        payload = {
            "type": "FeatureCollection",
            "features": [_to_feature(r) for r in self._visible],
        }
        with open(path, "w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, indent=2)

# ---------------- Helpers ----------------
def _to_feature(r: CanonicalRecord) -> Dict[str, Any]:
    props: Dict[str, Any] = dict(r.display_fields)
    props["event_type"] = r.category
    if r.has_timestamp:
        props["event_date_ms"] = r.timestamp_ms
    return {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": [r.longitude, r.latitude]},
        "properties": props,
    }
