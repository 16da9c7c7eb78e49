"""Viewport and cluster-activation state machine."""

from .region_controller import (
    Activation,
    ControllerConfig,
    INITIAL_VIEW_STATE,
    Phase,
    RegionController,
    ViewState,
    apply_cluster_activation,
    apply_viewport_change,
    begin_viewport_change,
    complete_viewport_change,
    should_spiderfy,
)

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
