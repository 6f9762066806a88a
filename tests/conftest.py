"""
Pytest configuration and shared fixtures for the jax_fsi test suite.

Provides grids, body configurations and initialised marker sets used across
the unit and integration tests.
"""

import numpy as np
import pytest

from jax_fsi import backends
from jax_fsi.base import grids
from jax_fsi.base.particle_class import BoundaryMarkerSet
from jax_fsi.config import BodyConfig, FSIConfig, MotionConfig

# =============================================================================
# Test Configuration
# =============================================================================


def pytest_collection_modifyitems(config, items):
    """Add markers based on test paths."""
    for item in items:
        test_path = str(item.fspath)

        if "/unit/" in test_path:
            item.add_marker(pytest.mark.unit)
        elif "/integration/" in test_path:
            item.add_marker(pytest.mark.integration)

        if "large" in item.name or "slow" in item.name:
            item.add_marker(pytest.mark.slow)


# =============================================================================
# Helpers
# =============================================================================


def circle_body(n, radius, center=(0.0, 0.0), **kwargs):
    """Body configuration with `n` markers evenly spaced on a circle."""
    theta = 2 * np.pi * np.arange(n) / n
    return BodyConfig(
        num_points=n,
        x=list(center[0] + radius * np.cos(theta)),
        y=list(center[1] + radius * np.sin(theta)),
        **kwargs,
    )


def unit_square_body(**kwargs):
    """Four markers on the corners of a unit square centred at the origin."""
    return BodyConfig(
        name="square",
        num_points=4,
        x=[-0.5, 0.5, 0.5, -0.5],
        y=[-0.5, -0.5, 0.5, 0.5],
        **kwargs,
    )


# =============================================================================
# Grid Fixtures
# =============================================================================


@pytest.fixture
def grid4():
    """4x4 cells on [-2, 2]^2."""
    return grids.Grid((4, 4), domain=((-2.0, 2.0), (-2.0, 2.0)))


@pytest.fixture
def grid16():
    """16x16 cells on [-2, 2]^2."""
    return grids.Grid((16, 16), domain=((-2.0, 2.0), (-2.0, 2.0)))


@pytest.fixture
def stretched_grid():
    """12x10 cells with geometrically stretched spacing away from the origin."""
    def nodes(n, ratio):
        half = np.cumsum(ratio ** np.arange(n // 2))
        half = half / half[-1] * 2.0
        return np.concatenate([-half[::-1], [0.0], half])
    return grids.Grid(nodes=(nodes(12, 1.1), nodes(10, 1.15)))


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture
def square_config():
    """One static unit-square body with zero initial velocity."""
    return FSIConfig(bodies=[unit_square_body()])


@pytest.fixture
def two_body_config():
    """A static cylinder and a translating cylinder, 20 markers in total."""
    return FSIConfig(
        bodies=[
            circle_body(12, 0.4, center=(-0.8, 0.1), name="fixed"),
            circle_body(
                8,
                0.3,
                center=(0.7, -0.2),
                name="moving",
                motion=MotionConfig(kind="rigid_translation", velocity=(0.5, 0.25)),
            ),
        ],
        dt=0.05,
    )


@pytest.fixture
def spring_config():
    """A single spring-mounted cylinder free to move along y."""
    return FSIConfig(
        bodies=[
            circle_body(
                10,
                0.35,
                name="spring",
                motion=MotionConfig(kind="spring_mounted", mass=2.0, stiffness=4.0, damping=0.1),
            )
        ],
        dt=0.05,
    )


# =============================================================================
# Marker Set Fixtures
# =============================================================================


@pytest.fixture
def square_markers(square_config, grid4):
    markers = BoundaryMarkerSet()
    markers.initialise(square_config, grid4)
    return markers


@pytest.fixture
def two_body_markers(two_body_config, grid16):
    markers = BoundaryMarkerSet()
    markers.initialise(two_body_config, grid16)
    return markers


# =============================================================================
# Backend Fixtures
# =============================================================================


@pytest.fixture
def sequential_backend():
    return backends.create_backend("sequential")


@pytest.fixture
def parallel_backend():
    return backends.create_backend("parallel", precision="float64")
