"""
Integration tests for the clustered map pipeline.

These tests drive the controller the way a map widget would: entities in,
region changes and cluster presses as events, markers and spiral positions
out through the callbacks.
"""

import pandas as pd
import pytest

from src.controller import ControllerConfig, Phase, RegionController
from src.spatial import (
    ClusterOptions,
    Coordinate,
    WORLD_BBOX,
    adapt_entities,
    build_index,
    compute_bbox,
    compute_zoom,
    features_from_dataframe,
    fit_region,
    query,
    region_for_zoom,
)
from src.spatial.geometry import Region


@pytest.mark.integration
class TestClusteringScenarios:
    """Reference scenarios for the index and adapter."""

    def test_five_points_one_cluster_then_five_features(self, tight_features, default_options):
        index = build_index(tight_features, default_options)

        low = index.get_clusters(WORLD_BBOX, 10)
        assert len(low) == 1
        assert low[0].point_count == 5

        high = index.get_clusters(WORLD_BBOX, 20)
        assert len(high) == 5
        assert sorted(f.original_index for f in high) == [0, 1, 2, 3, 4]

    def test_three_entities_one_passthrough(self, marker_entities):
        adapted = adapt_entities(marker_entities)
        assert len(adapted.features) == 2
        assert adapted.passthrough == [marker_entities[1]]

    def test_zoom_extremes(self):
        world = Region(0.0, 0.0, 170.0, 360.0)
        point = Region(35.0, 139.0, 0.0, 0.0)
        assert compute_zoom(world, compute_bbox(world), 1, max_zoom=20) == 1
        assert compute_zoom(point, compute_bbox(point), 1, max_zoom=20) == 20

    def test_dataframe_to_markers(self, city_points, default_options, tokyo_station):
        df = pd.DataFrame(city_points)
        adapted = features_from_dataframe(df)
        index = build_index(adapted.features, default_options)

        result = query(index, region_for_zoom(tokyo_station, 11))
        assert result.num_clusters > 0
        for item in result.result_set:
            if item.is_cluster:
                assert len(index.get_leaves(item.cluster_id)) == item.point_count

    def test_rebuild_is_deterministic(self, city_points):
        first = RegionController(city_points, ClusterOptions(min_zoom=0))
        second = RegionController(list(city_points), ClusterOptions(min_zoom=0))
        region = Region(35.68, 139.72, 0.2, 0.3)

        a = first.on_region_change_complete(region)
        b = second.on_region_change_complete(region)
        assert a.result_set == b.result_set


@pytest.mark.integration
class TestSpiderfyFlow:
    """Press a stacked cluster, zoom in, and watch it explode."""

    @pytest.fixture
    def controller(self, stacked_points, map_widget):
        return RegionController(stacked_points, ClusterOptions(min_zoom=0), **map_widget.callbacks())

    def test_activation_at_zoom_19(self, controller, map_widget, tokyo_station):
        region = region_for_zoom(tokyo_station, 19)

        view = controller.on_region_change_complete(region)
        assert view.phase == Phase.IDLE
        assert len(view.result_set) == 1
        cluster = view.result_set[0]
        assert cluster.point_count == 8

        activation = controller.on_cluster_press(cluster.cluster_id)
        assert activation is not None
        assert len(map_widget.fits) == 1

        # The widget answers the fit request with a new region
        fitted = fit_region(activation.coordinates, controller.config.edge_padding)
        controller.on_region_change_complete(region_for_zoom(fitted.center, 19))

        assert controller.phase == Phase.SPIDERFYING
        positions = controller.spiral_positions
        assert len(positions) == 8
        assert len({p.coordinate for p in positions}) == 8
        assert len({p.center for p in positions}) == 1
        assert sorted(p.original_index for p in positions) == list(range(8))

    def test_zoom_out_leaves_spiderfy(self, controller, tokyo_station):
        controller.on_region_change_complete(region_for_zoom(tokyo_station, 19))
        controller.on_cluster_press(controller.result_set[0].cluster_id)
        controller.on_region_change_complete(region_for_zoom(tokyo_station, 19))
        assert controller.phase == Phase.SPIDERFYING

        controller.on_region_change_complete(region_for_zoom(tokyo_station, 12))
        assert controller.phase == Phase.IDLE
        assert controller.spiral_positions == ()

    def test_threshold_is_inclusive(self, controller, tokyo_station):
        controller.on_region_change_complete(region_for_zoom(tokyo_station, 18))
        controller.on_cluster_press(controller.result_set[0].cluster_id)
        controller.on_region_change_complete(region_for_zoom(tokyo_station, 18))
        assert controller.phase == Phase.SPIDERFYING

    def test_no_spiderfy_without_press(self, controller, tokyo_station):
        controller.on_region_change_complete(region_for_zoom(tokyo_station, 20))
        assert controller.phase == Phase.IDLE
        assert controller.spiral_positions == ()

    def test_spiderfy_without_activation_when_configured(self, stacked_points, tokyo_station):
        config = ControllerConfig(spiderfy_requires_activation=False)
        controller = RegionController(stacked_points, ClusterOptions(min_zoom=0), config)

        controller.on_region_change_complete(region_for_zoom(tokyo_station, 19))
        assert controller.phase == Phase.SPIDERFYING
        assert len(controller.spiral_positions) == 8

    def test_spiral_disabled(self, stacked_points, tokyo_station):
        config = ControllerConfig(spiral_enabled=False, spiderfy_requires_activation=False)
        controller = RegionController(stacked_points, ClusterOptions(min_zoom=0), config)

        controller.on_region_change_complete(region_for_zoom(tokyo_station, 19))
        assert controller.phase == Phase.IDLE

    def test_spiderfy_cleared_by_rebuild(self, controller, stacked_points, tokyo_station):
        controller.on_region_change_complete(region_for_zoom(tokyo_station, 19))
        controller.on_cluster_press(controller.result_set[0].cluster_id)
        controller.on_region_change_complete(region_for_zoom(tokyo_station, 19))
        assert controller.phase == Phase.SPIDERFYING

        controller.set_entities(stacked_points + [{"lat": 0.0, "lng": 0.0}])
        assert controller.phase == Phase.IDLE
        assert controller.spiral_positions == ()

    def test_spiral_centered_on_cluster(self, controller, tokyo_station):
        controller.on_region_change_complete(region_for_zoom(tokyo_station, 19))
        cluster = controller.result_set[0]
        controller.on_cluster_press(cluster.cluster_id)
        controller.on_region_change_complete(region_for_zoom(tokyo_station, 19))

        center = controller.spiral_positions[0].center
        assert isinstance(center, Coordinate)
        assert abs(center.lat - tokyo_station.lat) < 1e-9
        assert abs(center.lng - tokyo_station.lng) < 1e-9
