"""
Unit Tests for Profile Loading (src/tools/config_loader.py)
"""

import pytest

from src.controller import ControllerConfig
from src.spatial import ClusterOptions, EdgePadding, SpiralConfig
from src.tools.config_loader import (
    ConfigLoader,
    cluster_options_from_profile,
    controller_config_from_profile,
    get_config,
)


class TestConfigLoader:
    """Test YAML profile discovery."""

    @pytest.mark.parametrize("profile", ["default", "dense-city", "sparse"])
    def test_bundled_profiles_load(self, profile):
        config = ConfigLoader.load_profile(profile)
        assert "clustering" in config
        cluster_options_from_profile(config)
        controller_config_from_profile(config)

    def test_unknown_profile(self):
        with pytest.raises(FileNotFoundError) as excinfo:
            ConfigLoader.load_profile("nope")
        assert "default" in str(excinfo.value)

    def test_env_profile(self, monkeypatch):
        monkeypatch.setenv("CLUSTER_PROFILE", "sparse")
        assert ConfigLoader.get_profile_from_env() == "sparse"
        assert get_config()["clustering"]["radius"] == 30

    def test_default_without_env(self, monkeypatch):
        monkeypatch.delenv("CLUSTER_PROFILE", raising=False)
        assert get_config()["clustering"]["radius"] == 40


class TestProfileConversion:
    """Test profile dictionaries -> option objects."""

    def test_default_profile_matches_defaults(self):
        profile = ConfigLoader.load_profile("default")
        assert cluster_options_from_profile(profile) == ClusterOptions()
        assert controller_config_from_profile(profile) == ControllerConfig()

    def test_empty_profile(self):
        assert cluster_options_from_profile({}) == ClusterOptions()
        assert controller_config_from_profile({}) == ControllerConfig()

    def test_dense_city(self):
        profile = ConfigLoader.load_profile("dense-city")
        options = cluster_options_from_profile(profile)
        config = controller_config_from_profile(profile)

        assert options.radius == 60
        assert options.min_points == 3
        assert config.spiderfy_zoom_threshold == 17
        assert config.edge_padding == EdgePadding(40, 40, 40, 40)
        assert config.spiral.circle_radius == 0.0001

    def test_sparse(self):
        profile = ConfigLoader.load_profile("sparse")
        options = cluster_options_from_profile(profile)
        config = controller_config_from_profile(profile)

        assert options.max_zoom == 18
        assert options.min_zoom == 0
        assert config.spiderfy_requires_activation is False
        assert config.spiral == SpiralConfig()

    def test_partial_edge_padding(self):
        config = controller_config_from_profile({"controller": {"edge_padding": {"top": 5}}})
        assert config.edge_padding == EdgePadding(top=5)

    def test_invalid_values_raise(self):
        with pytest.raises(ValueError):
            cluster_options_from_profile({"clustering": {"min_zoom": 10, "max_zoom": 5}})
