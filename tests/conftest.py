"""
Pytest configuration and shared fixtures for hclust tests.

This module provides:
- Shared test fixtures
- Vector generators with known cluster structure
- Redis and stop-token store fixtures
- Global state resets between tests
"""

import os
from unittest.mock import MagicMock

import numpy as np
import pytest
import redis
import structlog

# Set test environment variables
os.environ["TESTING"] = "true"
os.environ["LOG_LEVEL"] = "DEBUG"


# =============================================================================
# Test Data Generators
# =============================================================================

@pytest.fixture
def two_points():
    """Two 2D points at distance sqrt(8)."""
    return [[1.0, 2.0], [3.0, 4.0]]


@pytest.fixture
def line_points():
    """
    Four 1D points at 0, 1, 3 and 7.

    Average linkage merges (0,1) at 1.0, then (2, {0,1}) at 2.5,
    then (3, {0,1,2}) at 17/3.
    """
    return [[0.0], [1.0], [3.0], [7.0]]


@pytest.fixture
def small_vectors():
    """Generate small set of vectors for quick tests."""
    rng = np.random.default_rng(42)
    return rng.normal(size=(12, 5))


@pytest.fixture
def clustered_vectors():
    """
    Generate vectors with clear cluster structure.

    Creates 3 well-separated clusters of 6 points each in 4 dimensions.
    """
    rng = np.random.default_rng(7)
    n_per_cluster = 6
    centers = np.array([
        [0.0, 0.0, 0.0, 0.0],
        [10.0, 0.0, 0.0, 0.0],
        [0.0, 10.0, 0.0, 0.0],
    ])

    vectors = []
    labels = []
    for label, center in enumerate(centers):
        vectors.append(center + rng.normal(scale=0.1, size=(n_per_cluster, 4)))
        labels.extend([label] * n_per_cluster)

    return np.vstack(vectors), np.array(labels)


# =============================================================================
# Cancellation Fixtures
# =============================================================================

@pytest.fixture
def mock_redis():
    """Mock Redis client for testing."""
    mock = MagicMock(spec=redis.Redis)
    mock.ping.return_value = True
    mock.set.return_value = True
    mock.delete.return_value = 1
    mock.exists.return_value = 0
    return mock


@pytest.fixture
def local_store():
    """Fresh in-process stop-token store."""
    from hclust.core.cancellation import LocalStopTokenStore

    return LocalStopTokenStore()


# =============================================================================
# Cleanup
# =============================================================================

@pytest.fixture(autouse=True)
def reset_global_state():
    """Drop cached settings, stores and engines around each test."""
    from hclust.config.settings_loader import ConfigManager
    from hclust.core.cancellation import reset_stop_token_store
    from hclust.core.clustering_engine import shutdown_engine

    ConfigManager.reset()
    reset_stop_token_store()
    yield
    shutdown_engine()
    reset_stop_token_store()
    ConfigManager.reset()
    structlog.reset_defaults()


# =============================================================================
# Markers
# =============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests for individual components"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests for component interactions"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take >1 second"
    )
    config.addinivalue_line(
        "markers", "requires_redis: Tests requiring a live Redis server"
    )
