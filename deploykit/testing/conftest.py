"""
Pytest plugin for deploykit testing fixtures.

To use these fixtures in your tests, add this to your conftest.py:

    pytest_plugins = ["deploykit.testing.conftest"]
"""

from deploykit.testing.fixtures import (
    artifact_store,
    fake_clock,
    fake_runner,
    mock_deployments,
    mock_github,
    patch_recovery,
    recovery_pipeline,
    settings,
)

__all__ = [
    "artifact_store",
    "fake_clock",
    "fake_runner",
    "mock_deployments",
    "mock_github",
    "patch_recovery",
    "recovery_pipeline",
    "settings",
]
