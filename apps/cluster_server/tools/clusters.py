"""Cluster index storage and marker conversion for the action server."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from cachetools import TTLCache

from src.spatial import (
    AdaptedEntities,
    ClusterIndex,
    ClusterItem,
    ClusterOptions,
    SpiralConfig,
    SpiralPosition,
    adapt_entities,
    build_index,
    generate_spiral,
    spiderfy,
)
from src.tools.config_loader import ConfigLoader, cluster_options_from_profile

from ..schemas.models import (
    ClusterMarker,
    LatLng,
    LoadPointsRequest,
    SkippedRecord,
    SpiralPoint,
)

# Built indexes are kept for an hour of inactivity
TTL_INDEX = 60 * 60
MAX_INDEXES = 256


@dataclass
class StoredIndex:
    """A built index plus the adapter output it came from."""

    index: ClusterIndex
    adapted: AdaptedEntities


class IndexStore:
    """TTL cache of built cluster indexes keyed by dataset id."""

    def __init__(self, maxsize: int = MAX_INDEXES, ttl: int = TTL_INDEX):
        self._cache = TTLCache(maxsize=maxsize, ttl=ttl)

    def get(self, dataset_id: str) -> Optional[StoredIndex]:
        return self._cache.get(dataset_id)

    def set(self, dataset_id: str, stored: StoredIndex) -> None:
        # Replaces any previous index for the id as a whole
        self._cache[dataset_id] = stored

    def clear(self) -> None:
        self._cache.clear()

    def stats(self) -> Dict[str, Any]:
        return {
            "size": len(self._cache),
            "maxsize": self._cache.maxsize,
            "ttl": self._cache.ttl,
        }


# Global store instance
_index_store = IndexStore()


def get_index_store() -> IndexStore:
    return _index_store


def dataset_id_for(points: List[Dict[str, Any]], options: ClusterOptions) -> str:
    """Deterministic id for a point set and its options."""
    payload = json.dumps({"points": points, "options": options.to_dict()}, sort_keys=True, default=str)
    return hashlib.sha256(payload.encode()).hexdigest()[:16]


def resolve_options(request: LoadPointsRequest) -> ClusterOptions:
    """Explicit options win over a named profile, which wins over defaults."""
    if request.options is not None:
        return request.options.to_options()
    if request.profile:
        return cluster_options_from_profile(ConfigLoader.load_profile(request.profile))
    return ClusterOptions()


def load_points(request: LoadPointsRequest, store: Optional[IndexStore] = None) -> tuple:
    """Adapt and index the request's points; returns (dataset_id, stored)."""
    store = store or _index_store
    options = resolve_options(request)
    points = [point.model_dump(exclude_none=True) for point in request.points]

    adapted = adapt_entities(points)
    index = build_index(adapted.features, options)

    dataset_id = request.dataset_id or dataset_id_for(points, options)
    stored = StoredIndex(index=index, adapted=adapted)
    store.set(dataset_id, stored)
    return dataset_id, stored


def skipped_records(adapted: AdaptedEntities) -> List[SkippedRecord]:
    return [
        SkippedRecord(original_index=s.original_index, reason=s.reason)
        for s in adapted.skipped
    ]


def marker_from_item(item: ClusterItem) -> ClusterMarker:
    if item.is_cluster:
        return ClusterMarker(
            is_cluster=True,
            lat=item.lat,
            lng=item.lng,
            cluster_id=item.cluster_id,
            point_count=item.point_count,
            point_count_abbreviated=item.point_count_abbreviated,
        )
    return ClusterMarker(
        is_cluster=False,
        lat=item.lat,
        lng=item.lng,
        original_index=item.original_index,
        properties=dict(item.properties),
    )


def spiral_point(position: SpiralPosition) -> SpiralPoint:
    return SpiralPoint(
        original_index=position.original_index,
        lat=position.coordinate.lat,
        lng=position.coordinate.lng,
        center=LatLng(lat=position.center.lat, lng=position.center.lng),
    )


def spiral_positions(
    index: ClusterIndex,
    result_set: List[ClusterItem],
    cluster_id: Optional[int] = None,
    config: Optional[SpiralConfig] = None,
) -> List[SpiralPosition]:
    """Explode one cluster of ``result_set`` (or all of them)."""
    if cluster_id is None:
        return spiderfy(index, result_set, config)

    # Raises NotFoundError for ids from another index
    index.get_children(cluster_id)

    for position, item in enumerate(result_set):
        if item.is_cluster and item.cluster_id == cluster_id:
            leaves = index.get_leaves(cluster_id)
            return generate_spiral(item, leaves, result_set, position, config)
    return []
