"""Configuration tools and utilities."""

from .config_loader import (
    ConfigLoader,
    cluster_options_from_profile,
    controller_config_from_profile,
    get_config,
)

__all__ = [
    "ConfigLoader",
    "cluster_options_from_profile",
    "controller_config_from_profile",
    "get_config",
]
