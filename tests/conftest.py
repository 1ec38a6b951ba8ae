"""Shared fixtures for the strata-pml test suite.

Most tests run on a 2D level of 64x64 cells with a 1 um cell size, either
as one interior grid or split into several. The L-shaped layout (three
quadrants of the square) is the smallest domain that is not a single box.
"""

import pytest

from strata_pml.core import Box, BoxArray, DistributionMapping, Geometry

# =============================================================================
# Geometry
# =============================================================================


@pytest.fixture
def geom2d():
    """64x64 non-periodic level with 1 um cells."""
    return Geometry.uniform(shape=(64, 64), resolution=1e-6)


@pytest.fixture
def domain2d():
    return Box((0, 0), (63, 63))


# =============================================================================
# Interior grids
# =============================================================================


@pytest.fixture
def single_grid():
    """The whole 64x64 domain as one grid, on one rank."""
    ba = BoxArray([Box((0, 0), (63, 63))])
    return ba, DistributionMapping.from_box_array(ba)


@pytest.fixture
def quadrant_grids():
    """The 64x64 domain split into four 32x32 grids."""
    ba = BoxArray(
        [
            Box((0, 0), (31, 31)),
            Box((32, 0), (63, 31)),
            Box((0, 32), (31, 63)),
            Box((32, 32), (63, 63)),
        ]
    )
    return ba, DistributionMapping.from_box_array(ba)


@pytest.fixture
def halves_grids():
    """The 64x64 domain split along x over two ranks."""
    ba = BoxArray([Box((0, 0), (31, 63)), Box((32, 0), (63, 63))])
    return ba, DistributionMapping([0, 1], nprocs=2)


@pytest.fixture
def l_shaped_grids():
    """Three quadrants of the 64x64 square; the high-x, high-y one is missing."""
    ba = BoxArray(
        [
            Box((0, 0), (31, 31)),
            Box((32, 0), (63, 31)),
            Box((0, 32), (31, 63)),
        ]
    )
    return ba, DistributionMapping.from_box_array(ba)
