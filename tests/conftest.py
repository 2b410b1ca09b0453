"""Pytest configuration for django-redis-storage tests."""

import pytest

from django_redis_storage.pool import ClusterConnectionManager, ConnectionManager
from tests.fixtures import (
    fake_server,
    make_cluster_storage,
    make_storage,
    mock_cluster,
    storage,
)

# Re-export fixtures so pytest can discover them
__all__ = [
    "fake_server",
    "make_cluster_storage",
    "make_storage",
    "mock_cluster",
    "reset_connection_registries",
    "storage",
]


@pytest.fixture(autouse=True)
def reset_connection_registries():
    """Drop process-wide persistent pools and cluster clients between tests."""
    yield
    ConnectionManager._pools.clear()
    ClusterConnectionManager._clusters.clear()
