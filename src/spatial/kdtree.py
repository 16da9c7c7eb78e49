"""
Static 2D point tree for box and radius queries.

Thin wrapper around :class:`scipy.spatial.cKDTree`. The tree is built once
per cluster level and never modified; ``node_size`` is passed through as the
leaf size, so it tunes speed only.
"""

from __future__ import annotations

from typing import List

import numpy as np
from scipy.spatial import cKDTree


# Slack on the box half-width so points on the box edge survive float rounding
_EDGE_EPS = 1e-12


class PointTree:
    """Point index over (x, y) unit-square coordinates."""

    def __init__(self, xs: np.ndarray, ys: np.ndarray, node_size: int = 64):
        if node_size < 1:
            raise ValueError(f"node_size must be >= 1, got {node_size}")

        xs = np.asarray(xs, dtype=np.float64)
        ys = np.asarray(ys, dtype=np.float64)
        if xs.shape != ys.shape:
            raise ValueError("xs and ys must have the same length")

        self.node_size = node_size
        self.coords = np.column_stack([xs, ys]) if len(xs) else np.empty((0, 2), dtype=np.float64)
        self._tree = cKDTree(self.coords, leafsize=node_size) if len(xs) else None

    def __len__(self) -> int:
        return len(self.coords)

    def range(self, min_x: float, min_y: float, max_x: float, max_y: float) -> List[int]:
        """Return ids of all points inside the axis-aligned box (inclusive)."""
        if self._tree is None or min_x > max_x or min_y > max_y:
            return []

        center = ((min_x + max_x) / 2.0, (min_y + max_y) / 2.0)
        half = max(max_x - min_x, max_y - min_y) / 2.0
        candidates = np.asarray(
            self._tree.query_ball_point(center, half * (1.0 + _EDGE_EPS) + _EDGE_EPS, p=np.inf),
            dtype=np.int64,
        )
        if not len(candidates):
            return []

        x = self.coords[candidates, 0]
        y = self.coords[candidates, 1]
        inside = (x >= min_x) & (x <= max_x) & (y >= min_y) & (y <= max_y)
        return sorted(int(k) for k in candidates[inside])

    def within(self, qx: float, qy: float, r: float) -> List[int]:
        """Return ids of all points within distance ``r`` of (qx, qy), sorted."""
        if self._tree is None:
            return []
        return sorted(int(k) for k in self._tree.query_ball_point((qx, qy), r))


__all__ = ["PointTree"]
