"""Test fixtures for django-redis-storage."""

from tests.fixtures.storage import (
    fake_server,
    make_cluster_storage,
    make_storage,
    mock_cluster,
    storage,
)

__all__ = [
    "fake_server",
    "make_cluster_storage",
    "make_storage",
    "mock_cluster",
    "storage",
]
