"""
EVIE package
============

This package contains the Event Visibility & Indexing Engine (EVIE).

- The CLI entry point is in `evie/cli.py`.
- The core engine (date range + category filters, visible set) is in `evie/engine.py`.
- GeoJSON loading and record normalization is in `evie/loader.py`.
- Map rendering (folium marker clusters) is in `evie/presentation.py`.
"""

__version__ = '0.1.0'
