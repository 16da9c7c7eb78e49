"""
Feature adapter: normalize point entities into indexable features.

Entities are whatever the rendering layer hands over (marker objects, dicts,
dataframe rows). Each one is checked for a coordinate capability and routed
either to a :class:`Feature` (participates in clustering) or to a
:class:`Passthrough` (rendered as-is, never clustered). Ordering is preserved
through ``original_index`` so a leaf can always be mapped back to its source.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from numbers import Real
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

import pandas as pd

from .geometry import Coordinate, is_valid_coordinate


logger = logging.getLogger(__name__)

# Entity keys that carry position or structure, never copied into properties
_COORDINATE_KEYS = ("coordinate", "children", "lat", "lng")


@dataclass(frozen=True)
class Feature:
    """A single clusterable point, 1:1 with a source entity."""

    original_index: int
    """Position of the source entity in the input sequence."""

    coordinate: Coordinate
    """Geographic position of the point."""

    properties: Dict[str, Any] = field(default_factory=dict, compare=False)
    """Scalar metadata copied from the entity (id, name, ...)."""

    is_cluster = False

    @property
    def lat(self) -> float:
        return self.coordinate.lat

    @property
    def lng(self) -> float:
        return self.coordinate.lng


@dataclass(frozen=True)
class Passthrough:
    """An entity that does not take part in clustering."""

    original_index: int
    entity: Any = field(compare=False)
    reason: str = "no coordinate"


@dataclass(frozen=True)
class SkippedEntity:
    """Record of an entity routed to passthrough, for diagnostics."""

    original_index: int
    reason: str


@dataclass
class AdaptedEntities:
    """Result of adapting an entity sequence."""

    features: List[Feature]
    passthrough: List[Any]
    skipped: List[SkippedEntity] = field(default_factory=list)

    @property
    def num_entities(self) -> int:
        return len(self.features) + len(self.passthrough)


def _lookup(entity: Any, key: str) -> Any:
    if isinstance(entity, Mapping):
        return entity.get(key)
    return getattr(entity, key, None)


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, Real):
        return None
    return float(value)


def _extract_lat_lng(entity: Any) -> Tuple[Optional[float], Optional[float]]:
    """Pull a lat/lng pair out of the supported entity shapes."""

    coordinate = _lookup(entity, "coordinate")
    if isinstance(coordinate, Coordinate):
        return coordinate.lat, coordinate.lng
    if coordinate is not None:
        lat = _lookup(coordinate, "latitude")
        lng = _lookup(coordinate, "longitude")
        if lat is None and lng is None:
            lat = _lookup(coordinate, "lat")
            lng = _lookup(coordinate, "lng")
        return _as_float(lat), _as_float(lng)

    return _as_float(_lookup(entity, "lat")), _as_float(_lookup(entity, "lng"))


def _entity_properties(entity: Any) -> Dict[str, Any]:
    if isinstance(entity, Mapping):
        items = entity.items()
    elif hasattr(entity, "__dict__"):
        items = vars(entity).items()
    else:
        return {}
    return {
        key: value
        for key, value in items
        if key not in _COORDINATE_KEYS and isinstance(value, (str, int, float, bool, type(None)))
    }


def adapt_entity(entity: Any, index: int) -> Union[Feature, Passthrough]:
    """
    Classify one entity as a clusterable Feature or a Passthrough.

    An entity is clusterable when it carries a finite, in-range coordinate
    and has not opted out with ``cluster=False``.
    """
    if entity is None:
        return Passthrough(index, entity, "empty entity")

    if _lookup(entity, "cluster") is False:
        return Passthrough(index, entity, "clustering disabled for entity")

    lat, lng = _extract_lat_lng(entity)
    if lat is None or lng is None:
        return Passthrough(index, entity, "no coordinate")
    if not is_valid_coordinate(lat, lng):
        return Passthrough(index, entity, f"invalid coordinate ({lat}, {lng})")

    return Feature(
        original_index=index,
        coordinate=Coordinate(lat, lng),
        properties=_entity_properties(entity),
    )


def adapt_entities(entities: Iterable[Any]) -> AdaptedEntities:
    """
    Split an ordered entity sequence into features and passthrough entities.

    Args:
        entities: Ordered child entities from the rendering layer

    Returns:
        AdaptedEntities with features (in input order), passthrough entities
        (unchanged, in input order) and a skip record per passthrough entity
    """
    features: List[Feature] = []
    passthrough: List[Any] = []
    skipped: List[SkippedEntity] = []

    for index, entity in enumerate(entities):
        adapted = adapt_entity(entity, index)
        if isinstance(adapted, Feature):
            features.append(adapted)
        else:
            passthrough.append(entity)
            skipped.append(SkippedEntity(index, adapted.reason))

    if skipped and logger.isEnabledFor(logging.DEBUG):
        logger.debug(
            "Feature adapter skipped %d of %d entities: %s",
            len(skipped),
            len(features) + len(passthrough),
            [(s.original_index, s.reason) for s in skipped],
        )

    return AdaptedEntities(features=features, passthrough=passthrough, skipped=skipped)


def features_from_dataframe(
    df: pd.DataFrame,
    *,
    lat_col: str = "lat",
    lng_col: str = "lng",
) -> AdaptedEntities:
    """
    Adapt a points dataframe, one entity per row.

    Rows keep their positional order as ``original_index``. Rows with a
    missing or invalid coordinate are returned as passthrough records (the
    row as a dict).
    """
    if df.empty:
        return AdaptedEntities(features=[], passthrough=[])

    if lat_col not in df.columns or lng_col not in df.columns:
        raise ValueError(f"Dataframe must contain '{lat_col}' and '{lng_col}' columns")

    records = df.to_dict(orient="records")
    for record in records:
        record["lat"] = record.pop(lat_col)
        record["lng"] = record.pop(lng_col)
        for key in ("lat", "lng"):
            value = record[key]
            if isinstance(value, Real) and not isinstance(value, bool) and math.isnan(value):
                record[key] = None
    return adapt_entities(records)


__all__ = [
    "AdaptedEntities",
    "Feature",
    "Passthrough",
    "SkippedEntity",
    "adapt_entities",
    "adapt_entity",
    "features_from_dataframe",
]
