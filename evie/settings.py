"""
Settings (environment configuration)
====================================

Defaults for the CLI and the map renderer, read from `EVIE_*` environment
variables:

- `EVIE_DATA_PATH`: GeoJSON file loaded when `--geojson` is not given
- `EVIE_INCLUDE_UNDATED`: 1/true/yes/on to always show undated records
- `EVIE_CLUSTER_ZOOM`: zoom level at which marker clustering switches off
- `EVIE_MARKER_RADIUS`: circle marker radius in pixels

Command-line flags override these values.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

_TRUTHY = ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    data_path: Optional[Path] = None
    include_undated: bool = False
    disable_clustering_at_zoom: int = 10
    marker_radius: int = 5


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def load_settings() -> Settings:
    env_path = os.environ.get("EVIE_DATA_PATH")
    data_path = Path(env_path).expanduser().resolve() if env_path else None
    include_undated = os.environ.get("EVIE_INCLUDE_UNDATED", "").strip().lower() in _TRUTHY
    return Settings(
        data_path=data_path,
        include_undated=include_undated,
        disable_clustering_at_zoom=_env_int("EVIE_CLUSTER_ZOOM", 10),
        marker_radius=_env_int("EVIE_MARKER_RADIUS", 5),
    )
