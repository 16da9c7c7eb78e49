"""
Viewport math: map region -> bounding box -> zoom -> cluster query.

Zoom follows the web-mercator tile relationship: the world is 256 px wide at
zoom 0 and doubles with every level, so each level halves the visible
longitude span for a fixed screen width.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

from .geometry import BBox, Coordinate, Region, clamp_lat, wrap_lng
from .supercluster import ClusterIndex, ClusterItem


logger = logging.getLogger(__name__)

GLOBE_WIDTH_PX = 256
"""World width in pixels at zoom 0."""

DEFAULT_DEVICE_WIDTH = 390
DEFAULT_DEVICE_HEIGHT = 844
DEFAULT_MAX_ZOOM = 20

MIN_FIT_SPAN = 0.0005
"""Smallest span (degrees) produced when fitting a single location."""


@dataclass(frozen=True)
class EdgePadding:
    """Screen padding in pixels kept clear when fitting coordinates."""

    top: int = 50
    left: int = 50
    right: int = 50
    bottom: int = 50


@dataclass(frozen=True)
class ViewportQuery:
    """Result of querying an index for one region."""

    bbox: BBox
    zoom: int
    result_set: Tuple[ClusterItem, ...] = ()

    @property
    def num_clusters(self) -> int:
        return sum(1 for item in self.result_set if item.is_cluster)


def _wrap_edge(lng: float) -> float:
    """Wrap a box edge, keeping +180 as 180 rather than -180."""
    wrapped = wrap_lng(lng)
    if wrapped == -180.0 and lng > -180.0:
        return 180.0
    return wrapped


def _lng_span(region: Region) -> float:
    span = region.lng_span
    if span < 0:
        span += 360.0
    return span


def compute_bbox(region: Region) -> BBox:
    """
    Compute (west, south, east, north) for a region.

    Longitudes are wrapped into [-180, 180]; ``west > east`` means the box
    crosses the antimeridian. Spans of 360 degrees or more cover the world.
    Latitudes are clamped to [-90, 90].
    """
    lat_half = abs(region.lat_span) / 2.0
    south = clamp_lat(region.lat - lat_half)
    north = clamp_lat(region.lat + lat_half)

    lng_span = _lng_span(region)
    if not math.isfinite(lng_span) or lng_span >= 360.0:
        return (-180.0, south, 180.0, north)
    if lng_span == 0.0:
        lng = _wrap_edge(region.lng)
        return (lng, south, lng, north)

    lng_half = lng_span / 2.0
    west = _wrap_edge(region.lng - lng_half)
    east = _wrap_edge(region.lng + lng_half)
    return (west, south, east, north)


def compute_zoom(
    region: Region,
    bbox: BBox,
    min_zoom: int,
    *,
    max_zoom: int = DEFAULT_MAX_ZOOM,
    device_width: int = DEFAULT_DEVICE_WIDTH,
) -> int:
    """
    Derive an integer zoom from the visible longitude span.

    Returns ``max_zoom`` for a zero-span (single point) region and
    ``min_zoom`` for a region spanning the whole world. The result is always
    within [min_zoom, max_zoom].
    """
    lng_span = _lng_span(region)
    if not math.isfinite(lng_span) or lng_span >= 360.0:
        return min_zoom
    if lng_span <= 0.0:
        return max_zoom

    west, _, east, _ = bbox
    angle = east - west
    if angle < 0:
        angle += 360.0
    if angle >= 360.0:
        return min_zoom
    if angle <= 0.0:
        return max_zoom

    raw = math.log2(device_width * 360.0 / angle / GLOBE_WIDTH_PX)
    zoom = int(math.floor(raw + 0.5))
    return max(min_zoom, min(zoom, max_zoom))


def region_for_zoom(
    center: Coordinate,
    zoom: int,
    *,
    device_width: int = DEFAULT_DEVICE_WIDTH,
    device_height: int = DEFAULT_DEVICE_HEIGHT,
) -> Region:
    """Return the region a screen of ``device_width`` shows at ``zoom``."""
    lng_span = device_width * 360.0 / (GLOBE_WIDTH_PX * 2 ** zoom)
    lat_span = lng_span * device_height / device_width
    return Region(center.lat, center.lng, min(lat_span, 180.0), min(lng_span, 360.0))


def query(
    index: Optional[ClusterIndex],
    region: Region,
    min_zoom: Optional[int] = None,
    *,
    device_width: int = DEFAULT_DEVICE_WIDTH,
) -> ViewportQuery:
    """
    Query ``index`` for the clusters visible in ``region``.

    An absent index (clustering disabled) or an empty one yields an empty
    result set rather than an error.
    """
    max_zoom = index.options.max_zoom if index is not None else DEFAULT_MAX_ZOOM
    if min_zoom is None:
        min_zoom = index.options.min_zoom if index is not None else 0

    bbox = compute_bbox(region)
    zoom = compute_zoom(region, bbox, min_zoom, max_zoom=max_zoom, device_width=device_width)

    if index is None or index.is_empty:
        return ViewportQuery(bbox=bbox, zoom=zoom)

    result_set = tuple(index.get_clusters(bbox, zoom))
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(
            "Viewport query bbox=%s zoom=%d -> %d items",
            tuple(round(v, 6) for v in bbox),
            zoom,
            len(result_set),
        )
    return ViewportQuery(bbox=bbox, zoom=zoom, result_set=result_set)


def fit_region(
    coordinates: Iterable[Coordinate],
    padding: Optional[EdgePadding] = None,
    *,
    width: int = DEFAULT_DEVICE_WIDTH,
    height: int = DEFAULT_DEVICE_HEIGHT,
) -> Region:
    """
    Compute the region that shows every coordinate inside the padded screen.

    Coordinates straddling the antimeridian are fitted across it rather than
    around the whole globe.
    """
    coords = list(coordinates)
    if not coords:
        raise ValueError("Cannot fit a region to zero coordinates")
    padding = padding or EdgePadding()

    lats = [c.lat for c in coords]
    lngs = [c.lng for c in coords]
    if max(lngs) - min(lngs) > 180.0:
        lngs = [lng + 360.0 if lng < 0 else lng for lng in lngs]

    south, north = min(lats), max(lats)
    west, east = min(lngs), max(lngs)

    usable_w = max(1, width - padding.left - padding.right)
    usable_h = max(1, height - padding.top - padding.bottom)

    lng_span = max(east - west, MIN_FIT_SPAN) * width / usable_w
    lat_span = max(north - south, MIN_FIT_SPAN) * height / usable_h

    center_lng = (west + east) / 2.0 + (padding.right - padding.left) / 2.0 * (lng_span / width)
    center_lat = (south + north) / 2.0 + (padding.top - padding.bottom) / 2.0 * (lat_span / height)

    return Region(
        lat=clamp_lat(center_lat),
        lng=wrap_lng(center_lng),
        lat_span=min(lat_span, 180.0),
        lng_span=min(lng_span, 360.0),
    )


__all__ = [
    "DEFAULT_DEVICE_HEIGHT",
    "DEFAULT_DEVICE_WIDTH",
    "EdgePadding",
    "GLOBE_WIDTH_PX",
    "ViewportQuery",
    "compute_bbox",
    "compute_zoom",
    "fit_region",
    "query",
    "region_for_zoom",
]
