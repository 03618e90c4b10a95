"""Shared fixtures for the deploykit test-suite."""

pytest_plugins = ["deploykit.testing.conftest"]
