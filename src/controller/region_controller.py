"""
Region/activation controller for a clustered map view.

The controller is an explicit state machine:

    IDLE --viewport changed--> CLUSTERING --> IDLE | SPIDERFYING
    IDLE --cluster pressed--> IDLE (fit request / press callback)
    SPIDERFYING --viewport changed below threshold--> CLUSTERING --> IDLE

Transitions are pure functions over an immutable :class:`ViewState`.
:class:`RegionController` is the event-driven shell around them: it owns the
current index reference, feeds map events into the transitions and invokes
the output callbacks. The index is rebuilt only when the entity set, the
clustering options or the clustering flag change, and is swapped in as a
whole.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, List, Optional, Sequence, Tuple

from src.spatial.features import Feature, SkippedEntity, adapt_entities
from src.spatial.geometry import BBox, Coordinate, Region
from src.spatial.spiral import SpiralConfig, SpiralPosition, spiderfy
from src.spatial.supercluster import (
    ClusterAggregate,
    ClusterIndex,
    ClusterItem,
    ClusterOptions,
    NotFoundError,
    build_index,
)
from src.spatial.viewport import (
    DEFAULT_DEVICE_HEIGHT,
    DEFAULT_DEVICE_WIDTH,
    EdgePadding,
    ViewportQuery,
    fit_region,
    query,
)


logger = logging.getLogger(__name__)


class Phase(Enum):
    """Controller states."""
    IDLE = "idle"
    CLUSTERING = "clustering"
    SPIDERFYING = "spiderfying"


@dataclass(frozen=True)
class ControllerConfig:
    """Behaviour switches for the controller."""

    clustering_enabled: bool = True
    """When False, every entity is passed through and no index is built."""

    spiral_enabled: bool = True
    """Whether same-pixel clusters are spiderfied at high zoom."""

    spiderfy_zoom_threshold: int = 18
    """Zoom at or above which clusters are spiderfied."""

    spiderfy_requires_activation: bool = True
    """Only spiderfy after a cluster has been pressed."""

    preserve_cluster_press_behavior: bool = False
    """When True, a press only notifies the caller and skips the fit request."""

    edge_padding: EdgePadding = field(default_factory=EdgePadding)
    """Screen padding kept clear when fitting a pressed cluster."""

    device_width: int = DEFAULT_DEVICE_WIDTH
    device_height: int = DEFAULT_DEVICE_HEIGHT

    spiral: SpiralConfig = field(default_factory=SpiralConfig)


@dataclass(frozen=True)
class ViewState:
    """Everything the renderer needs for one frame."""

    phase: Phase = Phase.IDLE
    region: Optional[Region] = None
    bbox: Optional[BBox] = None
    zoom: Optional[int] = None
    result_set: Tuple[ClusterItem, ...] = ()
    spiral_positions: Tuple[SpiralPosition, ...] = ()
    activated_leaves: Optional[Tuple[Feature, ...]] = None


INITIAL_VIEW_STATE = ViewState()


@dataclass(frozen=True)
class Activation:
    """Outcome of pressing a cluster."""

    view: ViewState
    cluster: ClusterAggregate
    leaves: Tuple[Feature, ...]
    coordinates: Tuple[Coordinate, ...]
    fit_region: Optional[Region] = None
    """Region covering the leaves, None when the press behaviour is preserved."""


# ==============================================================================
# Pure transitions
# ==============================================================================

def should_spiderfy(view: ViewState, zoom: int, result_set: Sequence[ClusterItem], config: ControllerConfig) -> bool:
    if not config.spiral_enabled:
        return False
    if zoom < config.spiderfy_zoom_threshold or not result_set:
        return False
    if config.spiderfy_requires_activation and not view.activated_leaves:
        return False
    return True


def begin_viewport_change(view: ViewState, region: Region) -> ViewState:
    """IDLE/SPIDERFYING -> CLUSTERING."""
    return replace(view, phase=Phase.CLUSTERING, region=region)


def complete_viewport_change(
    view: ViewState,
    index: ClusterIndex,
    result: ViewportQuery,
    config: ControllerConfig,
) -> ViewState:
    """CLUSTERING -> IDLE or SPIDERFYING, depending on the new result set."""
    if should_spiderfy(view, result.zoom, result.result_set, config):
        positions = tuple(spiderfy(index, result.result_set, config.spiral))
        phase = Phase.SPIDERFYING
    else:
        positions = ()
        phase = Phase.IDLE

    return replace(
        view,
        phase=phase,
        bbox=result.bbox,
        zoom=result.zoom,
        result_set=result.result_set,
        spiral_positions=positions,
    )


def apply_viewport_change(
    view: ViewState,
    index: ClusterIndex,
    region: Region,
    config: ControllerConfig,
) -> ViewState:
    """Run a full viewport-change cycle against ``index``."""
    clustering = begin_viewport_change(view, region)
    result = query(index, region, device_width=config.device_width)
    return complete_viewport_change(clustering, index, result, config)


def _find_cluster(result_set: Sequence[ClusterItem], cluster_id: int) -> Optional[ClusterAggregate]:
    for item in result_set:
        if item.is_cluster and item.cluster_id == cluster_id:
            return item
    return None


def apply_cluster_activation(
    view: ViewState,
    index: ClusterIndex,
    cluster_id: int,
    config: ControllerConfig,
) -> Activation:
    """
    Resolve a pressed cluster into its leaves and the region that fits them.

    The phase is left unchanged; only a later viewport change can move the
    controller into SPIDERFYING.

    Raises:
        NotFoundError: If ``cluster_id`` does not belong to ``index``
    """
    leaves = tuple(index.get_leaves(cluster_id))
    coordinates = tuple(leaf.coordinate for leaf in leaves)

    cluster = _find_cluster(view.result_set, cluster_id)
    if cluster is None:
        cluster = ClusterAggregate(
            cluster_id=cluster_id,
            coordinate=Coordinate(
                sum(c.lat for c in coordinates) / len(coordinates),
                sum(c.lng for c in coordinates) / len(coordinates),
            ),
            point_count=len(leaves),
        )

    region = None
    if not config.preserve_cluster_press_behavior:
        region = fit_region(
            coordinates,
            config.edge_padding,
            width=config.device_width,
            height=config.device_height,
        )

    return Activation(
        view=replace(view, activated_leaves=leaves),
        cluster=cluster,
        leaves=leaves,
        coordinates=coordinates,
        fit_region=region,
    )


# ==============================================================================
# Event-driven shell
# ==============================================================================

def _noop(*_args: Any) -> None:
    return None


class RegionController:
    """
    Drives clustering for one map view.

    Feed it map events (:meth:`on_region_change_complete`,
    :meth:`on_cluster_press`) and entity updates (:meth:`set_entities`); it
    answers through the callbacks given at construction.
    """

    def __init__(
        self,
        entities: Sequence[Any] = (),
        options: Optional[ClusterOptions] = None,
        config: Optional[ControllerConfig] = None,
        *,
        initial_region: Optional[Region] = None,
        on_markers_change: Optional[Callable[[Tuple[ClusterItem, ...]], None]] = None,
        on_cluster_press: Optional[Callable[[ClusterAggregate, Tuple[Feature, ...]], None]] = None,
        fit_to_coordinates: Optional[Callable[[Tuple[Coordinate, ...], EdgePadding], None]] = None,
        on_region_change_complete: Optional[Callable[[Region, Tuple[ClusterItem, ...]], None]] = None,
    ):
        self._options = options or ClusterOptions()
        self._config = config or ControllerConfig()
        self._on_markers_change = on_markers_change or _noop
        self._on_cluster_press = on_cluster_press or _noop
        self._fit_to_coordinates = fit_to_coordinates or _noop
        self._on_region_change_complete = on_region_change_complete or _noop

        self._view = replace(INITIAL_VIEW_STATE, region=initial_region)
        self._index: Optional[ClusterIndex] = None
        self._entities: List[Any] = []
        self._passthrough: List[Any] = []
        self._skipped: List[SkippedEntity] = []

        self.set_entities(entities)

    # ------------------------------------------------------------------
    # Read-only accessors
    # ------------------------------------------------------------------

    @property
    def index(self) -> Optional[ClusterIndex]:
        """The currently held cluster index (None when clustering is off)."""
        return self._index

    @property
    def view(self) -> ViewState:
        return self._view

    @property
    def phase(self) -> Phase:
        return self._view.phase

    @property
    def result_set(self) -> Tuple[ClusterItem, ...]:
        return self._view.result_set

    @property
    def spiral_positions(self) -> Tuple[SpiralPosition, ...]:
        return self._view.spiral_positions

    @property
    def passthrough(self) -> List[Any]:
        return list(self._passthrough)

    @property
    def skipped(self) -> List[SkippedEntity]:
        return list(self._skipped)

    @property
    def config(self) -> ControllerConfig:
        return self._config

    @property
    def options(self) -> ClusterOptions:
        return self._options

    # ------------------------------------------------------------------
    # Rebuild triggers
    # ------------------------------------------------------------------

    def set_entities(self, entities: Sequence[Any]) -> None:
        self._entities = list(entities)
        self._rebuild()

    def set_options(self, options: ClusterOptions) -> None:
        self._options = options
        self._rebuild()

    def set_clustering_enabled(self, enabled: bool) -> None:
        if enabled == self._config.clustering_enabled:
            return
        self._config = replace(self._config, clustering_enabled=enabled)
        self._rebuild()

    def _rebuild(self) -> None:
        region = self._view.region
        if not self._config.clustering_enabled:
            self._index = None
            self._passthrough = list(self._entities)
            self._skipped = []
            self._view = ViewState(region=region)
            logger.debug("Clustering disabled: %d entities passed through", len(self._entities))
            return

        adapted = adapt_entities(self._entities)
        index = build_index(adapted.features, self._options)

        self._index = index
        self._passthrough = adapted.passthrough
        self._skipped = adapted.skipped

        # Leaves and spiral positions belong to the previous index
        view = ViewState(region=region)
        self._view = view
        if region is not None:
            self._view = apply_viewport_change(view, index, region, self._config)
            self._on_markers_change(self._view.result_set)

    # ------------------------------------------------------------------
    # Map events
    # ------------------------------------------------------------------

    def on_region_change_complete(self, region: Optional[Region]) -> ViewState:
        """Handle the end of a pan/zoom gesture."""
        index = self._index
        if index is None or region is None:
            self._on_region_change_complete(region, ())
            return self._view

        previous = self._view.phase
        self._view = begin_viewport_change(self._view, region)
        result = query(index, region, device_width=self._config.device_width)
        self._view = complete_viewport_change(self._view, index, result, self._config)

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "Controller %s -> %s (zoom=%d, items=%d, spiral=%d)",
                previous.value,
                self._view.phase.value,
                result.zoom,
                len(result.result_set),
                len(self._view.spiral_positions),
            )

        self._on_markers_change(self._view.result_set)
        self._on_region_change_complete(region, self._view.result_set)
        return self._view

    def on_cluster_press(self, cluster_id: int) -> Optional[Activation]:
        """
        Handle a press on a cluster marker.

        A stale ``cluster_id`` (from a replaced index) is logged and ignored.
        """
        index = self._index
        if index is None:
            logger.info("Ignoring press on cluster %s: clustering is disabled", cluster_id)
            return None

        try:
            activation = apply_cluster_activation(self._view, index, cluster_id, self._config)
        except NotFoundError:
            logger.info("Ignoring press on stale cluster id %s", cluster_id)
            return None

        self._view = activation.view

        if not self._config.preserve_cluster_press_behavior:
            self._fit_to_coordinates(activation.coordinates, self._config.edge_padding)

        self._on_cluster_press(activation.cluster, activation.leaves)
        return activation


__all__ = [
    "Activation",
    "ControllerConfig",
    "INITIAL_VIEW_STATE",
    "Phase",
    "RegionController",
    "ViewState",
    "apply_cluster_activation",
    "apply_viewport_change",
    "begin_viewport_change",
    "complete_viewport_change",
    "should_spiderfy",
]
