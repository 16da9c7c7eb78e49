"""
Pytest configuration and shared fixtures for map clustering tests.

This file provides:
- Point data fixtures (tight groups, stacked points, scattered city points)
- Marker-like entity fixtures for the feature adapter
- A recording map widget for controller callbacks
"""

from types import SimpleNamespace
from typing import Any, Dict, List

import numpy as np
import pytest

from src.spatial import (
    ClusterOptions,
    Coordinate,
    Feature,
    adapt_entities,
)


# ==============================================================================
# Sample Points
# ==============================================================================

TOKYO_STATION = Coordinate(35.6812, 139.7671)


@pytest.fixture
def tokyo_station() -> Coordinate:
    return TOKYO_STATION


@pytest.fixture
def tight_points() -> List[Dict[str, Any]]:
    """Five points within ~25m of each other, each ~10m from its neighbours."""
    offsets = [
        (0.0, 0.0),
        (0.0001, 0.0),
        (0.0, 0.0001),
        (0.0001, 0.0001),
        (0.0002, 0.0001),
    ]
    return [
        {
            "id": f"tight_{i}",
            "name": f"Kiosk {i}",
            "lat": TOKYO_STATION.lat + dlat,
            "lng": TOKYO_STATION.lng + dlng,
        }
        for i, (dlat, dlng) in enumerate(offsets)
    ]


@pytest.fixture
def tight_features(tight_points) -> List[Feature]:
    return adapt_entities(tight_points).features


@pytest.fixture
def stacked_points() -> List[Dict[str, Any]]:
    """Eight points sharing one location (same building entrance)."""
    return [
        {"id": f"stacked_{i}", "lat": TOKYO_STATION.lat, "lng": TOKYO_STATION.lng}
        for i in range(8)
    ]


@pytest.fixture
def city_points() -> List[Dict[str, Any]]:
    """Scattered points over central Tokyo (deterministic)."""
    rng = np.random.RandomState(42)
    lats = rng.uniform(35.60, 35.76, size=400)
    lngs = rng.uniform(139.60, 139.85, size=400)
    return [
        {"id": f"poi_{i}", "lat": float(lat), "lng": float(lng)}
        for i, (lat, lng) in enumerate(zip(lats, lngs))
    ]


@pytest.fixture
def city_features(city_points) -> List[Feature]:
    return adapt_entities(city_points).features


@pytest.fixture
def default_options() -> ClusterOptions:
    return ClusterOptions(radius=40, max_zoom=20, min_zoom=0, min_points=2, extent=512, node_size=64)


# ==============================================================================
# Marker-like Entities
# ==============================================================================

@pytest.fixture
def marker_entities() -> List[Any]:
    """Entities shaped like rendering-layer children."""
    return [
        SimpleNamespace(
            key="m0",
            coordinate=SimpleNamespace(latitude=35.6812, longitude=139.7671),
        ),
        SimpleNamespace(key="polyline", points=[(35.0, 139.0), (35.1, 139.1)]),
        {"key": "m2", "coordinate": {"latitude": 35.7148, "longitude": 139.7967}},
    ]


# ==============================================================================
# Mock Map Widget
# ==============================================================================

class RecordingMapWidget:
    """Collects controller callbacks in call order."""

    def __init__(self):
        self.calls: List[tuple] = []
        self.markers: List[tuple] = []
        self.presses: List[tuple] = []
        self.fits: List[tuple] = []
        self.regions: List[tuple] = []

    def on_markers_change(self, result_set):
        self.calls.append(("markers", len(result_set)))
        self.markers.append(result_set)

    def on_cluster_press(self, cluster, leaves):
        self.calls.append(("press", cluster.cluster_id))
        self.presses.append((cluster, leaves))

    def fit_to_coordinates(self, coordinates, edge_padding):
        self.calls.append(("fit", len(coordinates)))
        self.fits.append((coordinates, edge_padding))

    def on_region_change_complete(self, region, result_set):
        self.calls.append(("region", len(result_set)))
        self.regions.append((region, result_set))

    def callbacks(self) -> Dict[str, Any]:
        return {
            "on_markers_change": self.on_markers_change,
            "on_cluster_press": self.on_cluster_press,
            "fit_to_coordinates": self.fit_to_coordinates,
            "on_region_change_complete": self.on_region_change_complete,
        }


@pytest.fixture
def map_widget() -> RecordingMapWidget:
    return RecordingMapWidget()


# ==============================================================================
# Utilities
# ==============================================================================

def assert_approx_equal(a: float, b: float, tolerance: float = 1e-9):
    """Assert two floats are approximately equal."""
    assert abs(a - b) < tolerance, f"{a} != {b} (tolerance={tolerance})"
