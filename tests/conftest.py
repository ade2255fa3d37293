"""Test configuration and fixtures."""

import pytest

from tests.helpers import FakeRegistry, os_image
from volume_populator.store import LocalStore


@pytest.fixture
def store(tmp_path):
    """Empty local store in a temporary directory."""
    return LocalStore(tmp_path / "store")


@pytest.fixture
def image():
    """Complete bootable image."""
    return os_image()


@pytest.fixture
def registry(image):
    """Registry serving the complete image as os:v1."""
    return FakeRegistry({"os:v1": image})


# Pytest configuration
def pytest_configure(config):
    """Configure pytest markers and settings."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test requiring registry"
    )
    config.addinivalue_line("markers", "unit: mark test as unit test (default)")
