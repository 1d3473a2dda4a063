from __future__ import annotations

import pytest


def feature(lon=30.0, lat=10.0, **props):
    return {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": [lon, lat]},
        "properties": props,
    }


@pytest.fixture
def make_feature():
    return feature


@pytest.fixture
def scenario_doc():
    """Three dated events: Raid, Protest, Raid."""
    return {
        "type": "FeatureCollection",
        "features": [
            feature(1.0, 11.0, event_date="2020-01-01", event_type="Raid", country="Mali"),
            feature(2.0, 12.0, event_date="2020-06-01", event_type="Protest", country="Niger"),
            feature(3.0, 13.0, event_date="2021-01-01", event_type="Raid", country="Chad"),
        ],
    }
