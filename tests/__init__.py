"""Test package for geo-map-clustering.

This package contains:
- Unit tests (test_features.py, test_index.py, test_viewport.py, test_spiral.py,
  test_controller.py, test_config.py)
- Action server tests (test_actions.py)
- Integration tests (test_integration.py)
- Test configuration (conftest.py)
"""
