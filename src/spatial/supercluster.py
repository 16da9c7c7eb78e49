"""
Hierarchical greedy point clustering across map zoom levels.

This module provides:
1. ClusterOptions: validated clustering parameters
2. ClusterIndex: an immutable multi-resolution cluster structure
3. Cluster queries by bounding box, cluster drill-down (children, leaves)
4. IndexDiagnostics for build telemetry

Algorithm:
- Points are projected to web-mercator unit space and indexed at the raw
  level ``max_zoom + 1``, which is reached only through drill-down;
  ``get_clusters`` serves zooms ``min_zoom`` to ``max_zoom``.
- For each zoom from ``max_zoom`` down to ``min_zoom``, items of the level
  above are merged greedily with every unclaimed neighbour within
  ``radius / (extent * 2**zoom)``. A merge becomes a cluster at the
  point-count weighted centroid only when it holds ``min_points`` points.
- Each level gets its own static KD-tree (``node_size`` per leaf node).

Cluster ids encode the item position and the zoom of the level they were
formed from, so drill-down needs no extra lookup tables. Ids are only
meaningful for the index instance that produced them.
"""

from __future__ import annotations

import json
import logging
import math
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from .features import Feature
from .geometry import (
    BBox,
    Coordinate,
    clamp_lat,
    lat_to_y,
    lng_to_x,
    wrap_lng,
    x_to_lng,
    y_to_lat,
)
from .kdtree import PointTree


logger = logging.getLogger(__name__)

# Column layout of a level's item array
X, Y, ZOOM, ID, PARENT, NUM = range(6)
STRIDE = 6

# Cluster ids reserve 5 bits for the origin zoom
MAX_SUPPORTED_ZOOM = 30


class NotFoundError(LookupError):
    """Raised when a cluster id does not exist in the held index."""

    def __init__(self, cluster_id: Any):
        super().__init__(f"No cluster with id {cluster_id!r} in this index")
        self.cluster_id = cluster_id


@dataclass(frozen=True)
class ClusterOptions:
    """Configuration for building a cluster index."""

    radius: float = 40.0
    """Cluster radius in pixels."""

    max_zoom: int = 20
    """Highest zoom level that clusters are generated on."""

    min_zoom: int = 1
    """Lowest zoom level that clusters are generated on."""

    min_points: int = 2
    """Minimum number of points needed to form a cluster."""

    extent: int = 512
    """Tile extent in pixels; radius is relative to it."""

    node_size: int = 64
    """KD-tree leaf node size. Performance only, never affects results."""

    def __post_init__(self):
        if self.min_zoom < 0:
            raise ValueError(f"min_zoom must be >= 0, got {self.min_zoom}")
        if self.max_zoom > MAX_SUPPORTED_ZOOM:
            raise ValueError(f"max_zoom must be <= {MAX_SUPPORTED_ZOOM}, got {self.max_zoom}")
        if self.min_zoom > self.max_zoom:
            raise ValueError(
                f"min_zoom ({self.min_zoom}) must not exceed max_zoom ({self.max_zoom})"
            )
        if self.radius <= 0:
            raise ValueError(f"radius must be positive, got {self.radius}")
        if self.extent <= 0:
            raise ValueError(f"extent must be positive, got {self.extent}")
        if self.node_size < 1:
            raise ValueError(f"node_size must be >= 1, got {self.node_size}")
        if self.min_points < 1:
            raise ValueError(f"min_points must be >= 1, got {self.min_points}")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ClusterAggregate:
    """A cluster standing in for several nearby points at one zoom level."""

    cluster_id: int
    coordinate: Coordinate
    point_count: int

    is_cluster = True

    @property
    def lat(self) -> float:
        return self.coordinate.lat

    @property
    def lng(self) -> float:
        return self.coordinate.lng

    @property
    def point_count_abbreviated(self) -> str:
        count = self.point_count
        if count >= 10000:
            return f"{int(count / 1000 + 0.5)}k"
        if count >= 1000:
            return f"{int(count / 100 + 0.5) / 10:g}k"
        return str(count)


ClusterItem = Union[Feature, ClusterAggregate]


@dataclass
class IndexDiagnostics:
    """Build telemetry for a cluster index."""

    num_points: int
    """Number of features indexed."""

    min_zoom: int
    max_zoom: int

    items_per_zoom: Dict[int, int] = field(default_factory=dict)
    """Top-level items (points + clusters) at each zoom."""

    clusters_per_zoom: Dict[int, int] = field(default_factory=dict)
    """Cluster aggregates present at each zoom."""

    build_time_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


@dataclass
class _Level:
    data: np.ndarray
    tree: PointTree


def _empty_level(node_size: int) -> _Level:
    data = np.empty((0, STRIDE), dtype=np.float64)
    return _Level(data, PointTree(data[:, X], data[:, Y], node_size))


class ClusterIndex:
    """
    Immutable multi-resolution cluster index.

    Build with :meth:`build`; every query is read-only, so one instance can be
    shared freely. Rebuilding means building a new instance and swapping the
    reference.
    """

    def __init__(
        self,
        points: Tuple[Feature, ...],
        options: ClusterOptions,
        levels: Dict[int, _Level],
        diagnostics: IndexDiagnostics,
    ):
        self._points = points
        self._options = options
        self._levels = levels
        self._diagnostics = diagnostics

    @classmethod
    def build(
        cls,
        features: Sequence[Feature],
        options: Optional[ClusterOptions] = None,
    ) -> "ClusterIndex":
        """
        Build the cluster hierarchy for ``features``.

        Args:
            features: Features to index (order defines leaf order)
            options: Clustering parameters (defaults if None)

        Returns:
            A fully built, immutable ClusterIndex
        """
        options = options or ClusterOptions()
        started = time.perf_counter()

        points = tuple(features)
        data = np.empty((len(points), STRIDE), dtype=np.float64)
        for i, feature in enumerate(points):
            data[i] = (lng_to_x(feature.lng), lat_to_y(feature.lat), math.inf, i, -1, 1)

        diagnostics = IndexDiagnostics(
            num_points=len(points),
            min_zoom=options.min_zoom,
            max_zoom=options.max_zoom,
        )

        level = _Level(data, PointTree(data[:, X], data[:, Y], options.node_size))
        levels: Dict[int, _Level] = {options.max_zoom + 1: level}

        for zoom in range(options.max_zoom, options.min_zoom - 1, -1):
            next_data, num_clusters = _cluster_level(level, zoom, len(points), options)
            level = (
                _Level(next_data, PointTree(next_data[:, X], next_data[:, Y], options.node_size))
                if len(next_data)
                else _empty_level(options.node_size)
            )
            levels[zoom] = level
            diagnostics.items_per_zoom[zoom] = len(next_data)
            diagnostics.clusters_per_zoom[zoom] = num_clusters

        diagnostics.build_time_ms = (time.perf_counter() - started) * 1000.0

        logger.debug(
            "Built cluster index: %d points, zooms %d..%d in %.1f ms",
            len(points),
            options.min_zoom,
            options.max_zoom,
            diagnostics.build_time_ms,
        )

        return cls(points, options, levels, diagnostics)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def options(self) -> ClusterOptions:
        return self._options

    @property
    def features(self) -> Tuple[Feature, ...]:
        return self._points

    @property
    def num_points(self) -> int:
        return len(self._points)

    @property
    def is_empty(self) -> bool:
        return not self._points

    def diagnostics(self) -> IndexDiagnostics:
        return self._diagnostics

    def limit_zoom(self, zoom: float) -> int:
        """Floor ``zoom`` and clamp it to [min_zoom, max_zoom]."""
        return max(self._options.min_zoom, min(int(math.floor(zoom)), self._options.max_zoom))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_clusters(self, bbox: BBox, zoom: float) -> List[ClusterItem]:
        """
        Return the top-level items at ``zoom`` inside ``bbox``.

        ``bbox`` is (west, south, east, north). A box with ``west > east``
        wraps across the antimeridian. The box is widened by the cluster
        radius so items drawn across its edge are kept.
        """
        west, south, east, north = bbox
        min_lng = 180.0 if west == 180 else wrap_lng(west)
        min_lat = clamp_lat(south)
        max_lng = 180.0 if east == 180 else wrap_lng(east)
        max_lat = clamp_lat(north)

        if east - west >= 360:
            min_lng, max_lng = -180.0, 180.0
        elif min_lng > max_lng:
            eastern = self.get_clusters((min_lng, min_lat, 180.0, max_lat), zoom)
            western = self.get_clusters((-180.0, min_lat, max_lng, max_lat), zoom)
            return eastern + western

        level_zoom = self.limit_zoom(zoom)
        level = self._levels[level_zoom]
        pad = self._options.radius / (self._options.extent * 2 ** level_zoom)

        ids = level.tree.range(
            max(0.0, lng_to_x(min_lng) - pad),
            max(0.0, lat_to_y(max_lat) - pad),
            min(1.0, lng_to_x(max_lng) + pad),
            min(1.0, lat_to_y(min_lat) + pad),
        )
        return [self._item(level.data, k) for k in ids]

    def get_children(self, cluster_id: int) -> List[ClusterItem]:
        """Return the items one zoom level below a cluster."""
        origin_id, origin_zoom = self._origin(cluster_id)
        level = self._levels.get(origin_zoom)
        if level is None or origin_id >= len(level.data):
            raise NotFoundError(cluster_id)

        r = self._options.radius / (self._options.extent * 2 ** (origin_zoom - 1))
        data = level.data
        ids = level.tree.within(data[origin_id, X], data[origin_id, Y], r)

        children = [self._item(data, k) for k in ids if data[k, PARENT] == cluster_id]
        if not children:
            raise NotFoundError(cluster_id)
        return children

    def get_leaves(
        self,
        cluster_id: int,
        limit: Optional[float] = None,
        offset: int = 0,
    ) -> List[Feature]:
        """
        Return the original features beneath a cluster.

        Args:
            cluster_id: Id of a cluster returned by this index
            limit: Maximum number of leaves (None or ``math.inf`` = all)
            offset: Number of leaves to skip

        Raises:
            NotFoundError: If ``cluster_id`` is not part of this index
        """
        if limit is None:
            limit = math.inf
        leaves: List[Feature] = []
        if limit <= 0:
            # Still validate the id so stale references surface consistently
            self.get_children(cluster_id)
            return leaves
        self._append_leaves(leaves, cluster_id, limit, offset, 0)
        return leaves

    def get_cluster_expansion_zoom(self, cluster_id: int) -> int:
        """Return the zoom at which a cluster splits into several items."""
        expansion_zoom = self._origin(cluster_id)[1] - 1
        while expansion_zoom <= self._options.max_zoom:
            children = self.get_children(cluster_id)
            expansion_zoom += 1
            if len(children) != 1 or not children[0].is_cluster:
                break
            cluster_id = children[0].cluster_id
        return expansion_zoom

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _origin(self, cluster_id: int) -> Tuple[int, int]:
        if isinstance(cluster_id, bool) or not isinstance(cluster_id, (int, np.integer)):
            raise NotFoundError(cluster_id)
        offset = int(cluster_id) - len(self._points)
        if offset < 0:
            raise NotFoundError(cluster_id)
        return offset >> 5, offset % 32

    def _item(self, data: np.ndarray, k: int) -> ClusterItem:
        row = data[k]
        if row[NUM] > 1:
            return ClusterAggregate(
                cluster_id=int(row[ID]),
                coordinate=Coordinate(float(y_to_lat(row[Y])), float(x_to_lng(row[X]))),
                point_count=int(row[NUM]),
            )
        return self._points[int(row[ID])]

    def _append_leaves(
        self,
        result: List[Feature],
        cluster_id: int,
        limit: float,
        offset: int,
        skipped: int,
    ) -> int:
        for child in self.get_children(cluster_id):
            if child.is_cluster:
                if skipped + child.point_count <= offset:
                    skipped += child.point_count
                else:
                    skipped = self._append_leaves(result, child.cluster_id, limit, offset, skipped)
            elif skipped < offset:
                skipped += 1
            else:
                result.append(child)

            if len(result) >= limit:
                break
        return skipped


def _cluster_level(
    level: _Level,
    zoom: int,
    num_points: int,
    options: ClusterOptions,
) -> Tuple[np.ndarray, int]:
    """
    Merge the items of ``level`` at ``zoom``.

    Marks each consumed item of ``level`` with ``zoom`` and its parent id.
    Returns the item array for the new level and the number of clusters in
    it.
    """
    r = options.radius / (options.extent * 2 ** zoom)
    data = level.data
    next_rows: List[Tuple[float, ...]] = []

    for i in range(len(data)):
        if data[i, ZOOM] <= zoom:
            continue
        data[i, ZOOM] = zoom

        x, y = data[i, X], data[i, Y]
        # Sorted so merge order never depends on the tree layout
        neighbor_ids = sorted(level.tree.within(x, y, r))

        num_points_origin = data[i, NUM]
        num_points_total = num_points_origin
        for k in neighbor_ids:
            if data[k, ZOOM] > zoom:
                num_points_total += data[k, NUM]

        if num_points_total > num_points_origin and num_points_total >= options.min_points:
            wx = x * num_points_origin
            wy = y * num_points_origin
            cluster_id = (i << 5) + (zoom + 1) + num_points

            for k in neighbor_ids:
                if data[k, ZOOM] <= zoom:
                    continue
                data[k, ZOOM] = zoom
                n = data[k, NUM]
                wx += data[k, X] * n
                wy += data[k, Y] * n
                data[k, PARENT] = cluster_id

            data[i, PARENT] = cluster_id
            next_rows.append(
                (wx / num_points_total, wy / num_points_total, math.inf, cluster_id, -1, num_points_total)
            )
        else:
            next_rows.append(tuple(data[i]))
            if num_points_total > 1:
                for k in neighbor_ids:
                    if data[k, ZOOM] <= zoom:
                        continue
                    data[k, ZOOM] = zoom
                    next_rows.append(tuple(data[k]))

    if not next_rows:
        return np.empty((0, STRIDE), dtype=np.float64), 0
    next_data = np.array(next_rows, dtype=np.float64)
    return next_data, int((next_data[:, NUM] > 1).sum())


def build_index(
    features: Sequence[Feature],
    options: Optional[ClusterOptions] = None,
) -> ClusterIndex:
    """Convenience wrapper around :meth:`ClusterIndex.build`."""
    return ClusterIndex.build(features, options)


__all__ = [
    "ClusterAggregate",
    "ClusterIndex",
    "ClusterItem",
    "ClusterOptions",
    "IndexDiagnostics",
    "NotFoundError",
    "build_index",
]
