"""
Dataset loader (GeoJSON -> CanonicalRecord list)
================================================

This module reads a GeoJSON export and converts each feature into a
`CanonicalRecord`.

Key ideas:
- Real-world exports are imperfect, so normalization never raises: features
  with broken geometry are dropped, unparseable dates become `None`, missing
  categories become "Event".
- The timestamp is resolved from several possible fields, first success wins.
- Only a broken *document* (missing file, bad JSON, not a Feature /
  FeatureCollection) is an error, reported as `DatasetLoadError`.
"""

from __future__ import annotations
import json
import logging
import math
import re
from numbers import Real
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Optional, Tuple, Union
import pandas as pd
from .models import CanonicalRecord, DEFAULT_CATEGORY, DISPLAY_FIELDS, datetime_to_ms, is_valid_date_ms

logger = logging.getLogger(__name__)

_ISO_PREFIX = re.compile(r"\s*\d{4}-\d{2}")


class DatasetLoadError(RuntimeError):
    """Raised when a dataset document cannot be read or has the wrong shape."""


def _is_number(x: Any) -> bool:
    # bool is a subclass of int but never a coordinate or a timestamp
    return isinstance(x, Real) and not isinstance(x, bool)


def _finite_float(x: Any) -> Optional[float]:
    """Return x as a finite float, or None."""
    if not _is_number(x):
        return None
    fx = float(x)
    return fx if math.isfinite(fx) else None


def _coords(feature: Mapping[str, Any]) -> Optional[Tuple[float, float]]:
    geometry = feature.get("geometry")
    if not isinstance(geometry, Mapping):
        return None
    c = geometry.get("coordinates")
    if not isinstance(c, (list, tuple)) or len(c) != 2:
        return None
    lon, lat = _finite_float(c[0]), _finite_float(c[1])
    if lon is None or lat is None:
        return None
    return lon, lat


def _checked_ms(fx: Optional[float]) -> Optional[int]:
    # finite but outside the datetime range counts as unresolved
    if fx is None or not math.isfinite(fx):
        return None
    ms = int(fx)
    return ms if is_valid_date_ms(ms) else None


def _ms_from_number(x: Any) -> Optional[int]:
    return _checked_ms(_finite_float(x))


def _ms_from_numeric_string(x: Any) -> Optional[int]:
    if not isinstance(x, str) or not x.strip():
        return None
    try:
        fx = float(x.strip())
    except ValueError:
        return None
    return _checked_ms(fx)


def parse_date_ms(x: Any) -> Optional[int]:
    """Parse an ISO-like date string; naive values are taken as UTC.

    Only strings starting with `YYYY-MM` are tried, so relative words such as
    "now" or "today" never resolve to the wall clock.
    """
    if not isinstance(x, str) or not _ISO_PREFIX.match(x):
        return None
    try:
        ts = pd.to_datetime(x.strip(), utc=True, errors="coerce")
        if pd.isna(ts):
            return None
        ms = datetime_to_ms(ts.to_pydatetime())
    except (ValueError, OverflowError, TypeError, pd.errors.OutOfBoundsDatetime):
        return None
    return ms if is_valid_date_ms(ms) else None


def resolve_timestamp(props: Mapping[str, Any]) -> Optional[int]:
    """Resolve epoch milliseconds: numeric ms -> numeric-string ms -> ISO date."""
    ms_field = props.get("event_date_ms")
    ms = _ms_from_number(ms_field)
    if ms is None:
        ms = _ms_from_numeric_string(ms_field)
    if ms is None:
        ms = parse_date_ms(props.get("event_date"))
    return ms


def resolve_category(props: Mapping[str, Any]) -> str:
    v = props.get("event_type")
    if v is None or (_is_number(v) and pd.isna(v)):
        return DEFAULT_CATEGORY
    s = str(v).strip()
    return s or DEFAULT_CATEGORY


def normalize(raw_records: Iterable[Mapping[str, Any]]) -> List[CanonicalRecord]:
    """Convert raw GeoJSON features into canonical records.

    Output order mirrors input order; features without a valid
    `[longitude, latitude]` pair are skipped.
    """
    records: List[CanonicalRecord] = []
    dropped = 0
    for feature in raw_records:
        coords = _coords(feature) if isinstance(feature, Mapping) else None
        if coords is None:
            dropped += 1
            continue
        props = feature.get("properties")
        if not isinstance(props, Mapping):
            props = {}
        records.append(CanonicalRecord(
            record_id=len(records),
            longitude=coords[0],
            latitude=coords[1],
            timestamp_ms=resolve_timestamp(props),
            category=resolve_category(props),
            display_fields={k: props[k] for k in DISPLAY_FIELDS if k in props},
        ))
    if dropped:
        logger.debug("Dropped %d feature(s) with missing or non-finite coordinates", dropped)
    return records


def features_from_document(doc: Any) -> List[Mapping[str, Any]]:
    """Return the feature list of a FeatureCollection, or [doc] for a single Feature."""
    if not isinstance(doc, Mapping):
        raise DatasetLoadError(f"Expected a GeoJSON object, got {type(doc).__name__}")
    kind = doc.get("type")
    if kind == "Feature":
        return [doc]
    features = doc.get("features")
    if kind == "FeatureCollection" or features is not None:
        if not isinstance(features, list):
            raise DatasetLoadError("FeatureCollection has no 'features' list")
        return features
    raise DatasetLoadError(f"Unsupported GeoJSON type: {kind!r}")


def load_geojson(path: Union[str, Path]) -> List[CanonicalRecord]:
    """Read a GeoJSON file and return its normalized records."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            doc = json.load(f)
    except (OSError, ValueError) as e:
        raise DatasetLoadError(f"Failed to load {path}: {e}") from e
    features = features_from_document(doc)
    records = normalize(features)
    logger.info("Loaded %d of %d feature(s) from %s", len(records), len(features), path)
    return records
