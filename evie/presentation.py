"""
Presentation adapters
---------------------
The engine only decides *which* records are visible. Anything that draws
points implements `PointLayerSink` (clear all layers, add one point) and is
kept in sync by `MarkerSync`, which clears and rebuilds the sink after every
filter change. At a few thousand points a full rebuild is fast enough, so no
incremental diffing is attempted.

Two sinks ship with EVIE:
- `RecordingLayer`: keeps the current points in a list (tests, CLI counters).
- `FoliumClusterLayer`: Leaflet map with a marker-cluster group of coloured
  circle markers, saved as a standalone HTML page.
"""

from __future__ import annotations
import html
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Union

import folium
from folium.plugins import MarkerCluster

from .engine import EVIE, Bounds
from .models import CanonicalRecord
from .settings import Settings


PALETTE = ["#e74c3c", "#f39c12", "#f1c40f", "#2ecc71", "#3498db", "#9b59b6", "#1abc9c", "#e67e22"]


def color_for_category(category: str) -> str:
    """Deterministic palette colour for a category (31-multiplier string hash)."""
    h = 0
    for ch in category:
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    return PALETTE[h % len(PALETTE)]


def tooltip_text(record: CanonicalRecord) -> str:
    label = record.date_label() or record.display_fields.get("event_date")
    return f"{record.category} · {label}" if label else record.category


def popup_html(record: CanonicalRecord) -> str:
    """Info panel for one marker: type, date, fatalities, actors, location, notes.

    All values are HTML-escaped; empty fields are left out.
    """
    d = record.display_fields

    def safe(v: Any) -> str:
        return "" if v is None else html.escape(str(v))

    parts = ['<div style="font:14px/1.3 system-ui,Segoe UI,Roboto,Arial">']
    parts.append(f'<div style="font-weight:700;font-size:15px">{safe(record.category)}</div>')
    date = d.get("event_date") or record.date_label()
    if date:
        parts.append(f"<div>{safe(date)}</div>")
    if "fatalities" in d:
        parts.append(f"<div><b>Fatalities:</b> {safe(d['fatalities'])}</div>")
    if d.get("actor1") or d.get("actor2"):
        actors = safe(d.get("actor1"))
        if d.get("actor2"):
            actors += " → " + safe(d["actor2"])
        parts.append(f"<div><b>Actors:</b> {actors}</div>")
    place = [safe(v) for v in (d.get("location"), d.get("admin1"), d.get("country")) if v]
    if place:
        parts.append(f"<div><b>Location:</b> {', '.join(place)}</div>")
    if d.get("notes"):
        parts.append('<hr style="border:0;border-top:1px solid #ddd;margin:8px 0">')
        parts.append(f'<div style="white-space:pre-wrap">{safe(d["notes"])}</div>')
    parts.append("</div>")
    return "".join(parts)


class PointLayerSink(Protocol):
    def clear_layers(self) -> None: ...

    def add_point(self, record: CanonicalRecord) -> None: ...


class MarkerSync:
    """Keep a sink showing exactly the engine's visible set."""

    def __init__(self, engine: EVIE, sink: PointLayerSink) -> None:
        self.engine = engine
        self.sink = sink
        self.rebuilds = 0
        engine.subscribe(self._on_change)

    def _on_change(self, visible: List[CanonicalRecord]) -> None:
        self.sink.clear_layers()
        for r in visible:
            self.sink.add_point(r)
        self.rebuilds += 1

    def detach(self) -> None:
        self.engine.unsubscribe(self._on_change)


class RecordingLayer:
    """In-memory sink."""

    def __init__(self) -> None:
        self.points: List[CanonicalRecord] = []

    def clear_layers(self) -> None:
        self.points.clear()

    def add_point(self, record: CanonicalRecord) -> None:
        self.points.append(record)

    @property
    def ids(self) -> List[int]:
        return [r.record_id for r in self.points]


class FoliumClusterLayer:
    """Marker-cluster group on a folium map.

    `clear_layers()` starts a fresh cluster group; `to_map()` assembles the
    basemap, the current cluster and the view bounds.
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or Settings()
        self.count = 0
        self._cluster = self._new_cluster()

    def _new_cluster(self) -> MarkerCluster:
        return MarkerCluster(
            name="Events",
            options={
                "chunkedLoading": True,
                "spiderfyOnMaxZoom": True,
                "showCoverageOnHover": False,
                "disableClusteringAtZoom": self.settings.disable_clustering_at_zoom,
            },
        )

    def clear_layers(self) -> None:
        self._cluster = self._new_cluster()
        self.count = 0

    def add_point(self, record: CanonicalRecord) -> None:
        fill = color_for_category(record.category)
        folium.CircleMarker(
            location=[record.latitude, record.longitude],  # folium wants [lat, lon]
            radius=self.settings.marker_radius,
            weight=1,
            color="#222",
            fill=True,
            fill_color=fill,
            fill_opacity=0.85,
            tooltip=tooltip_text(record),
            popup=folium.Popup(popup_html(record), max_width=360),
        ).add_to(self._cluster)
        self.count += 1

    def to_map(self, bounds: Optional[Bounds] = None) -> folium.Map:
        m = folium.Map(location=[12, 0], zoom_start=5, tiles="OpenStreetMap", prefer_canvas=True)
        self._cluster.add_to(m)
        if bounds is not None:
            (south, west), (north, east) = bounds
            m.fit_bounds([[south, west], [north, east]], padding=(40, 40))
        return m

    def save(self, path: Union[str, Path], bounds: Optional[Bounds] = None) -> None:
        self.to_map(bounds).save(str(path))


def render_map(engine: EVIE, path: Union[str, Path], settings: Optional[Settings] = None,
               fit: str = "data") -> Dict[str, Any]:
    """Render the engine's visible set to an HTML map.

    `fit` is "data" (all loaded records) or "visible" (current selection).
    Returns a small summary (marker count and the bounds used).
    """
    if fit not in ("data", "visible"):
        raise ValueError("fit must be: data | visible")
    layer = FoliumClusterLayer(settings)
    sync = MarkerSync(engine, layer)
    sync.detach()
    bounds = engine.bounds(visible_only=(fit == "visible"))
    layer.save(path, bounds)
    return {"markers": layer.count, "bounds": bounds}
