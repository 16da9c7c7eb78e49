"""
Geographic primitives shared by the clustering pipeline.

This module provides:
1. Coordinate and Region value types (what the map widget reports)
2. Web-mercator projection into the unit square used by the cluster index
3. Longitude wrapping and latitude clamping helpers
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Tuple


BBox = Tuple[float, float, float, float]
"""Bounding box as (west, south, east, north) in degrees."""

WORLD_BBOX: BBox = (-180.0, -90.0, 180.0, 90.0)


@dataclass(frozen=True)
class Coordinate:
    """Simple container for a geographic coordinate."""

    lat: float
    lng: float

    def as_tuple(self) -> Tuple[float, float]:
        return (self.lat, self.lng)


@dataclass(frozen=True)
class Region:
    """
    Visible map region as reported by the map widget.

    Attributes:
        lat: Latitude of the region centre
        lng: Longitude of the region centre
        lat_span: Visible latitude extent in degrees
        lng_span: Visible longitude extent in degrees
    """

    lat: float
    lng: float
    lat_span: float
    lng_span: float

    @property
    def center(self) -> Coordinate:
        return Coordinate(self.lat, self.lng)


def wrap_lng(lng: float) -> float:
    """Wrap a longitude into [-180, 180)."""
    return ((lng + 180.0) % 360.0 + 360.0) % 360.0 - 180.0


def clamp_lat(lat: float) -> float:
    return max(-90.0, min(90.0, lat))


def lng_to_x(lng: float) -> float:
    return lng / 360.0 + 0.5


def lat_to_y(lat: float) -> float:
    sin = math.sin(lat * math.pi / 180.0)
    if sin >= 1.0:
        return 0.0
    if sin <= -1.0:
        return 1.0
    y = 0.5 - 0.25 * math.log((1.0 + sin) / (1.0 - sin)) / math.pi
    return min(1.0, max(0.0, y))


def x_to_lng(x: float) -> float:
    return (x - 0.5) * 360.0


def y_to_lat(y: float) -> float:
    y2 = (180.0 - y * 360.0) * math.pi / 180.0
    return 360.0 * math.atan(math.exp(y2)) / math.pi - 90.0


def is_valid_coordinate(lat: float, lng: float) -> bool:
    """Return True when ``lat``/``lng`` are finite and inside the globe."""
    if not (math.isfinite(lat) and math.isfinite(lng)):
        return False
    return -90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0


__all__ = [
    "BBox",
    "Coordinate",
    "Region",
    "WORLD_BBOX",
    "clamp_lat",
    "is_valid_coordinate",
    "lat_to_y",
    "lng_to_x",
    "wrap_lng",
    "x_to_lng",
    "y_to_lat",
]
