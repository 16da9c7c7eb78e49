"""
Configuration loader for clustering profiles and environment variables.
"""

import os
from pathlib import Path
from typing import Dict, Any, Optional
import yaml

from src.controller.region_controller import ControllerConfig
from src.spatial.spiral import SpiralConfig
from src.spatial.supercluster import ClusterOptions
from src.spatial.viewport import EdgePadding


class ConfigLoader:
    """Load and manage configuration from YAML files and environment."""

    CONFIG_DIR = Path(__file__).parent.parent.parent / "configs"
    DEFAULT_PROFILE = "default"

    @classmethod
    def load_profile(cls, profile_name: str = DEFAULT_PROFILE) -> Dict[str, Any]:
        """
        Load a clustering profile.

        Args:
            profile_name: Name of the profile (default, dense-city, sparse)

        Returns:
            Dictionary with configuration values

        Raises:
            FileNotFoundError: If profile doesn't exist
        """
        profile_path = cls.CONFIG_DIR / f"{profile_name}.yaml"

        if not profile_path.exists():
            available = sorted(f.stem for f in cls.CONFIG_DIR.glob("*.yaml"))
            raise FileNotFoundError(
                f"Profile '{profile_name}' not found. Available profiles: {', '.join(available)}"
            )

        with open(profile_path, "r") as f:
            return yaml.safe_load(f) or {}

    @classmethod
    def get_profile_from_env(cls) -> Optional[str]:
        """Get profile name from CLUSTER_PROFILE environment variable."""
        return os.getenv("CLUSTER_PROFILE")

    @classmethod
    def load_default_or_env_profile(cls) -> Dict[str, Any]:
        """
        Load profile from environment variable or use the default profile.

        Returns:
            Configuration dictionary
        """
        profile = cls.get_profile_from_env() or cls.DEFAULT_PROFILE
        return cls.load_profile(profile)


def cluster_options_from_profile(profile: Dict[str, Any]) -> ClusterOptions:
    """Build ClusterOptions from the ``clustering`` section of a profile."""
    section = profile.get("clustering", {}) or {}
    defaults = ClusterOptions()
    return ClusterOptions(
        radius=float(section.get("radius", defaults.radius)),
        max_zoom=int(section.get("max_zoom", defaults.max_zoom)),
        min_zoom=int(section.get("min_zoom", defaults.min_zoom)),
        min_points=int(section.get("min_points", defaults.min_points)),
        extent=int(section.get("extent", defaults.extent)),
        node_size=int(section.get("node_size", defaults.node_size)),
    )


def controller_config_from_profile(profile: Dict[str, Any]) -> ControllerConfig:
    """Build ControllerConfig from the ``controller`` and ``spiral`` sections."""
    section = profile.get("controller", {}) or {}
    spiral_section = profile.get("spiral", {}) or {}
    defaults = ControllerConfig()

    padding = section.get("edge_padding")
    if isinstance(padding, (int, float)):
        edge_padding = EdgePadding(int(padding), int(padding), int(padding), int(padding))
    elif isinstance(padding, dict):
        edge_padding = EdgePadding(**{k: int(v) for k, v in padding.items()})
    else:
        edge_padding = defaults.edge_padding

    return ControllerConfig(
        clustering_enabled=bool(section.get("clustering_enabled", defaults.clustering_enabled)),
        spiral_enabled=bool(section.get("spiral_enabled", defaults.spiral_enabled)),
        spiderfy_zoom_threshold=int(
            section.get("spiderfy_zoom_threshold", defaults.spiderfy_zoom_threshold)
        ),
        spiderfy_requires_activation=bool(
            section.get("spiderfy_requires_activation", defaults.spiderfy_requires_activation)
        ),
        preserve_cluster_press_behavior=bool(
            section.get("preserve_cluster_press_behavior", defaults.preserve_cluster_press_behavior)
        ),
        edge_padding=edge_padding,
        device_width=int(section.get("device_width", defaults.device_width)),
        device_height=int(section.get("device_height", defaults.device_height)),
        spiral=SpiralConfig(**spiral_section),
    )


def get_config() -> Dict[str, Any]:
    """Convenience function to get current configuration."""
    return ConfigLoader.load_default_or_env_profile()
