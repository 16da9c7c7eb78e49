"""
src/spatial: Point clustering, viewport math, and spiderfy layout.

Usage:
    from src.spatial import adapt_entities, build_index, query, Region

    adapted = adapt_entities(markers)
    index = build_index(adapted.features, ClusterOptions(radius=40))
    result = query(index, Region(35.68, 139.76, 0.05, 0.05))
"""

from .geometry import BBox, Coordinate, Region, WORLD_BBOX
from .features import (
    AdaptedEntities,
    Feature,
    Passthrough,
    SkippedEntity,
    adapt_entities,
    adapt_entity,
    features_from_dataframe,
)
from .kdtree import PointTree
from .supercluster import (
    ClusterAggregate,
    ClusterIndex,
    ClusterItem,
    ClusterOptions,
    IndexDiagnostics,
    NotFoundError,
    build_index,
)
from .viewport import (
    EdgePadding,
    ViewportQuery,
    compute_bbox,
    compute_zoom,
    fit_region,
    query,
    region_for_zoom,
)
from .spiral import SpiralConfig, SpiralPosition, generate_spiral, spiderfy

__all__ = [
    # Geometry
    "BBox",
    "Coordinate",
    "Region",
    "WORLD_BBOX",

    # Feature adapter
    "AdaptedEntities",
    "Feature",
    "Passthrough",
    "SkippedEntity",
    "adapt_entities",
    "adapt_entity",
    "features_from_dataframe",

    # Index
    "PointTree",
    "ClusterAggregate",
    "ClusterIndex",
    "ClusterItem",
    "ClusterOptions",
    "IndexDiagnostics",
    "NotFoundError",
    "build_index",

    # Viewport
    "EdgePadding",
    "ViewportQuery",
    "compute_bbox",
    "compute_zoom",
    "fit_region",
    "query",
    "region_for_zoom",

    # Spiderfy
    "SpiralConfig",
    "SpiralPosition",
    "generate_spiral",
    "spiderfy",
]
