"""
Unit tests for the PML box layout.

Tests verify:
- Faces, edges and corners around a single-box domain
- Disabled sides and zero thickness
- Layers placed inside the domain
- Layers around a domain that is not a single box
"""

import numpy as np
import pytest

from strata_pml.boundaries import (
    make_box_array,
    make_box_array_multiple,
    make_box_array_single,
    neighbour_offsets,
    pml_envelope,
    reduce_grids_for_pml,
)
from strata_pml.core import Box, BoxArray
from strata_pml.exceptions import PMLGeometryError


def coverage_mask(boxes, region):
    """Number of boxes covering each cell of ``region``."""
    mask = np.zeros(region.shape, dtype=int)
    for b in boxes:
        isect = b & region
        if isect.ok:
            mask[isect.slices(region)] += 1
    return mask


# =============================================================================
# Helper Tests
# =============================================================================


class TestNeighbourOffsets:
    def test_counts(self):
        """Test there are 3**dim - 1 neighbour positions."""
        assert len(neighbour_offsets(1)) == 2
        assert len(neighbour_offsets(2)) == 8
        assert len(neighbour_offsets(3)) == 26
        assert (0, 0) not in neighbour_offsets(2)


class TestEnvelope:
    def test_grown_on_enabled_sides(self, domain2d):
        """Test the envelope only grows on enabled sides."""
        env = pml_envelope(domain2d, 8, (1, 0), (1, 1), False)
        assert env == Box((-8, 0), (71, 71))

    def test_in_domain(self, domain2d):
        """Test the envelope is the domain for an in-domain layer."""
        assert pml_envelope(domain2d, 8, (1, 1), (1, 1), True) == domain2d


# =============================================================================
# Single-Box Domain Tests
# =============================================================================


class TestSingleBoxLayout:
    def test_eight_boxes_2d(self, domain2d):
        """Test four faces and four corners around a square."""
        env = pml_envelope(domain2d, 8, (1, 1), (1, 1), False)
        ba = make_box_array_single(domain2d, env, 8, (1, 1), (1, 1))

        assert len(ba) == 8
        assert ba.num_pts() == 80 * 80 - 64 * 64
        mask = coverage_mask(ba, env)
        assert mask.max() == 1
        assert np.all(mask[8:72, 8:72] == 0)

    def test_box_order(self, domain2d):
        """Test boxes follow the neighbour-offset order."""
        env = pml_envelope(domain2d, 8, (1, 1), (1, 1), False)
        ba = make_box_array_single(domain2d, env, 8, (1, 1), (1, 1))

        assert ba[0] == Box((-8, -8), (-1, -1))
        assert ba[1] == Box((-8, 0), (-1, 63))
        assert ba[6] == Box((64, 0), (71, 63))

    def test_26_boxes_3d(self):
        """Test faces, edges and corners around a cube."""
        domain = Box((0, 0, 0), (15, 15, 15))
        env = pml_envelope(domain, 4, (1, 1, 1), (1, 1, 1), False)
        ba = make_box_array_single(domain, env, 4, (1, 1, 1), (1, 1, 1))

        assert len(ba) == 26
        assert ba.num_pts() == 24**3 - 16**3

    def test_disabled_side(self, domain2d):
        """Test no box is placed on a disabled side."""
        env = pml_envelope(domain2d, 8, (1, 1), (0, 1), False)
        ba = make_box_array_single(domain2d, env, 8, (1, 1), (0, 1))

        assert len(ba) == 5
        assert ba.num_pts() == 72 * 80 - 64 * 64
        assert all(b.hi[0] <= 63 for b in ba)

    def test_per_axis_thickness(self, domain2d):
        """Test different thicknesses per axis."""
        env = pml_envelope(domain2d, (4, 8), (1, 1), (1, 1), False)
        ba = make_box_array_single(domain2d, env, (4, 8), (1, 1), (1, 1))

        assert ba[0] == Box((-4, -8), (-1, -1))

    def test_zero_thickness(self, domain2d):
        """Test ncell = 0 gives an empty layout."""
        env = pml_envelope(domain2d, 0, (1, 1), (1, 1), False)
        ba = make_box_array_single(domain2d, env, 0, (1, 1), (1, 1))
        assert len(ba) == 0


# =============================================================================
# In-Domain Tests
# =============================================================================


class TestInDomainLayout:
    def test_reduce_single_grid(self, single_grid):
        """Test the interior grid shrinks away from every enabled side."""
        grid_ba, _ = single_grid
        reduced = reduce_grids_for_pml(grid_ba, 8, (1, 1), (1, 1))
        assert list(reduced) == [Box((8, 8), (55, 55))]

    def test_reduce_only_outer_sides(self, halves_grids):
        """Test sides shared between grids are not moved."""
        grid_ba, _ = halves_grids
        reduced = reduce_grids_for_pml(grid_ba, 8, (1, 1), (1, 1))

        assert reduced[0] == Box((8, 8), (31, 55))
        assert reduced[1] == Box((32, 8), (55, 55))

    def test_reduce_disabled_side(self, single_grid):
        """Test disabled sides keep their extent."""
        grid_ba, _ = single_grid
        reduced = reduce_grids_for_pml(grid_ba, 8, (0, 1), (1, 0))
        assert list(reduced) == [Box((0, 8), (55, 63))]

    def test_grid_too_small(self):
        """Test a grid thinner than both layers is rejected."""
        with pytest.raises(PMLGeometryError, match="too small"):
            reduce_grids_for_pml(BoxArray([Box((0, 0), (9, 9))]), 8, (1, 1), (1, 1))

    def test_layout_inside_domain(self, single_grid, domain2d):
        """Test the layer fills the frame between reduced grid and domain."""
        grid_ba, _ = single_grid
        reduced = reduce_grids_for_pml(grid_ba, 8, (1, 1), (1, 1))
        ba = make_box_array(True, reduced.minimal_box(), domain2d, reduced, 8, True, (1, 1), (1, 1))

        assert len(ba) == 8
        assert ba.num_pts() == 64 * 64 - 48 * 48
        assert all(domain2d.contains(b) for b in ba)


# =============================================================================
# Multiple-Grid Tests
# =============================================================================


class TestMultipleGridLayout:
    def test_l_shaped_domain(self, l_shaped_grids, domain2d):
        """Test the layer covers exactly the uncovered cells near the grids."""
        grid_ba, _ = l_shaped_grids
        env = pml_envelope(domain2d, 8, (1, 1), (1, 1), False)
        ba = make_box_array_multiple(grid_ba, env, 8, False, (1, 1), (1, 1))

        expected = np.zeros(env.shape, dtype=bool)
        for g in grid_ba:
            expected |= coverage_mask([g.grow(8) & env], env) > 0
        expected &= coverage_mask(grid_ba, env) == 0

        mask = coverage_mask(ba, env)
        assert mask.max() == 1
        np.testing.assert_array_equal(mask > 0, expected)

    def test_notch_is_absorbing(self, l_shaped_grids, domain2d):
        """Test the missing quadrant near the grids belongs to the layer."""
        grid_ba, _ = l_shaped_grids
        ba = make_box_array(False, domain2d, domain2d, grid_ba, 8, False, (1, 1), (1, 1))

        assert any(b.contains_point((35, 35)) for b in ba)
        assert not any(b.contains_point((50, 50)) for b in ba)

    def test_grid_not_longer_than_layer(self, domain2d):
        """Test grids must be longer than the layer outside the domain."""
        grid_ba = BoxArray([Box((0, 0), (7, 63)), Box((8, 0), (63, 63))])
        env = pml_envelope(domain2d, 8, (1, 1), (1, 1), False)
        with pytest.raises(PMLGeometryError, match="not longer"):
            make_box_array_multiple(grid_ba, env, 8, False, (1, 1), (1, 1))
