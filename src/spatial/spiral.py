"""
Spiderfy layout: spread the leaves of a same-pixel cluster around its centre.

Small groups are placed evenly on one circle; larger groups follow an
Archimedean spiral whose radius and angle both grow with every step, so no
two leaves share a position. The start angle depends on the cluster's
position in the result set so neighbouring stacks do not mirror each other.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from .features import Feature
from .geometry import Coordinate, clamp_lat, wrap_lng
from .supercluster import ClusterAggregate, ClusterIndex, ClusterItem


GOLDEN_ANGLE = math.pi * (3.0 - math.sqrt(5.0))

# Longitude offsets are divided by cos(lat); keep that finite near the poles
_MIN_COS_LAT = 0.01


@dataclass(frozen=True)
class SpiralConfig:
    """Geometry of the spiderfy layout (distances in degrees of latitude)."""

    circle_threshold: int = 6
    """Leaf counts up to this use a single circle."""

    circle_radius: float = 0.00015
    """Circle radius."""

    spiral_start: float = 0.00015
    """Radius of the first spiral position."""

    spiral_growth: float = 0.00003
    """Radius added per spiral step."""

    spiral_angle_step: float = 0.9
    """Angle added per spiral step (radians)."""

    def __post_init__(self):
        if self.circle_threshold < 1:
            raise ValueError("circle_threshold must be >= 1")
        if self.circle_radius <= 0 or self.spiral_start <= 0:
            raise ValueError("circle_radius and spiral_start must be positive")
        if self.spiral_growth <= 0 or self.spiral_angle_step <= 0:
            raise ValueError("spiral_growth and spiral_angle_step must be positive")


@dataclass(frozen=True)
class SpiralPosition:
    """A leaf drawn away from its cluster centre."""

    original_index: int
    coordinate: Coordinate
    center: Coordinate


def _offsets(n: int, phase: float, config: SpiralConfig) -> np.ndarray:
    """Return an (n, 2) array of (radius, angle) per leaf."""
    steps = np.arange(n, dtype=np.float64)
    if n <= config.circle_threshold:
        radii = np.full(n, config.circle_radius)
        angles = phase + steps * (2.0 * math.pi / n)
    else:
        radii = config.spiral_start + config.spiral_growth * steps
        angles = phase + config.spiral_angle_step * steps
    return np.column_stack([radii, angles])


def generate_spiral(
    cluster: ClusterAggregate,
    leaves: Sequence[Feature],
    result_set: Sequence[ClusterItem] = (),
    position: Optional[int] = None,
    config: Optional[SpiralConfig] = None,
) -> List[SpiralPosition]:
    """
    Lay out the leaves of ``cluster`` around its coordinate.

    Args:
        cluster: The cluster being exploded
        leaves: Its leaf features (output keeps this order)
        result_set: The result set the cluster was taken from
        position: Index of the cluster in ``result_set``; looked up by
            cluster id when omitted
        config: Layout geometry (defaults if None)

    Returns:
        One SpiralPosition per leaf, all sharing ``cluster.coordinate`` as
        their centre
    """
    config = config or SpiralConfig()
    if not leaves:
        return []

    if position is None:
        position = next(
            (
                i
                for i, item in enumerate(result_set)
                if item.is_cluster and item.cluster_id == cluster.cluster_id
            ),
            0,
        )

    center = cluster.coordinate
    phase = (position * GOLDEN_ANGLE) % (2.0 * math.pi)
    offsets = _offsets(len(leaves), phase, config)

    lng_scale = 1.0 / max(math.cos(math.radians(center.lat)), _MIN_COS_LAT)
    lats = center.lat + offsets[:, 0] * np.cos(offsets[:, 1])
    lngs = center.lng + offsets[:, 0] * np.sin(offsets[:, 1]) * lng_scale

    return [
        SpiralPosition(
            original_index=leaf.original_index,
            coordinate=Coordinate(clamp_lat(float(lat)), wrap_lng(float(lng))),
            center=center,
        )
        for leaf, lat, lng in zip(leaves, lats, lngs)
    ]


def spiderfy(
    index: ClusterIndex,
    result_set: Sequence[ClusterItem],
    config: Optional[SpiralConfig] = None,
) -> List[SpiralPosition]:
    """Explode every cluster in ``result_set`` into spiral positions."""
    positions: List[SpiralPosition] = []
    for i, item in enumerate(result_set):
        if not item.is_cluster:
            continue
        leaves = index.get_leaves(item.cluster_id)
        positions.extend(generate_spiral(item, leaves, result_set, i, config))
    return positions


__all__ = [
    "GOLDEN_ANGLE",
    "SpiralConfig",
    "SpiralPosition",
    "generate_spiral",
    "spiderfy",
]
