"""
Box layout of the absorbing layer.

The layer occupies the cells within ``ncell`` of the interior grids that
the grids themselves do not cover, limited to an envelope: the physical
domain grown by ``ncell`` on every enabled side, or the physical domain
itself when the layer sits inside it (``do_pml_in_domain``). In the latter
case the interior grids are first shrunk away from the enabled sides by
:func:`reduce_grids_for_pml`.

Example:
    >>> from strata_pml.core import Box
    >>> domain = Box((0, 0), (63, 63))
    >>> envelope = pml_envelope(domain, 8, (1, 1), (1, 1), False)
    >>> len(make_box_array_single(domain, envelope, 8, (1, 1), (1, 1)))
    8
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Sequence

from strata_pml.core.box import Box, BoxArray, as_intvect
from strata_pml.exceptions import PMLGeometryError

logger = logging.getLogger(__name__)


def neighbour_offsets(dim: int) -> list[tuple[int, ...]]:
    """The ``3**dim - 1`` non-zero offsets in ``{-1, 0, 1}**dim``."""
    zero = (0,) * dim
    return [o for o in itertools.product((-1, 0, 1), repeat=dim) if o != zero]


def reduce_grids_for_pml(
    grid_ba: BoxArray,
    ncell: int | Sequence[int],
    do_pml_lo: Sequence[int],
    do_pml_hi: Sequence[int],
) -> BoxArray:
    """Shrink the interior grids away from the enabled outer sides.

    A grid side lying on the outer boundary of the union of grids (no other
    grid is adjacent to it) is moved inwards by ``ncell`` when the layer is
    enabled on that side.

    Raises:
        PMLGeometryError: If a grid is not longer than the layer
    """
    ncell = as_intvect(ncell, grid_ba.dim)
    reduced = []
    for grid_box in grid_ba:
        b = grid_box
        for idim in range(grid_box.dim):
            if do_pml_lo[idim] and not grid_ba.intersects(grid_box.adj_cell_lo(idim, 1)):
                b = b.grow_lo(idim, -ncell[idim])
            if do_pml_hi[idim] and not grid_ba.intersects(grid_box.adj_cell_hi(idim, 1)):
                b = b.grow_hi(idim, -ncell[idim])
        if not b.ok:
            raise PMLGeometryError(
                f"Grid {grid_box} is too small to hold a PML of {ncell} cells inside the domain"
            )
        reduced.append(b)
    return BoxArray(reduced)


def pml_envelope(
    domain: Box,
    ncell: int | Sequence[int],
    do_pml_lo: Sequence[int],
    do_pml_hi: Sequence[int],
    do_pml_in_domain: bool,
) -> Box:
    """Region the layer may occupy."""
    if do_pml_in_domain:
        return domain
    ncell = as_intvect(ncell, domain.dim)
    envelope = domain
    for idim in range(domain.dim):
        if do_pml_lo[idim]:
            envelope = envelope.grow_lo(idim, ncell[idim])
        if do_pml_hi[idim]:
            envelope = envelope.grow_hi(idim, ncell[idim])
    return envelope


def make_box_array_single(
    regdomain: Box,
    envelope: Box,
    ncell: int | Sequence[int],
    do_pml_lo: Sequence[int],
    do_pml_hi: Sequence[int],
) -> BoxArray:
    """One PML box per neighbour position of a single interior box.

    Faces, edges and corners of ``regdomain`` each give one box of
    thickness ``ncell``, skipping disabled sides and anything outside the
    envelope.
    """
    ncell = as_intvect(ncell, envelope.dim)
    boxes = []
    for offset in neighbour_offsets(regdomain.dim):
        if any(
            (o < 0 and not do_pml_lo[d]) or (o > 0 and not do_pml_hi[d])
            for d, o in enumerate(offset)
        ):
            continue
        lo, hi = [], []
        for d, o in enumerate(offset):
            if o < 0:
                lo.append(regdomain.lo[d] - ncell[d])
                hi.append(regdomain.lo[d] - 1)
            elif o > 0:
                lo.append(regdomain.hi[d] + 1)
                hi.append(regdomain.hi[d] + ncell[d])
            else:
                lo.append(regdomain.lo[d])
                hi.append(regdomain.hi[d])
        b = Box(lo, hi, regdomain.ixtype) & envelope
        if b.ok:
            boxes.append(b)
    return BoxArray(boxes)


def make_box_array_multiple(
    grid_ba: BoxArray,
    envelope: Box,
    ncell: int | Sequence[int],
    do_pml_in_domain: bool,
    do_pml_lo: Sequence[int],
    do_pml_hi: Sequence[int],
) -> BoxArray:
    """PML boxes around an arbitrary union of interior grids.

    Around every grid, the uncovered cells within ``ncell`` are split along
    the grid's neighbour positions; overlaps between the pieces of
    different grids are removed, earlier grids taking precedence.

    Raises:
        PMLGeometryError: If the layer lies outside the domain and a grid
            is not longer than ``ncell`` along an enabled axis
    """
    ncell = as_intvect(ncell, envelope.dim)
    boxes = []
    for grid_box in grid_ba:
        if not do_pml_in_domain:
            for idim in range(grid_box.dim):
                if (do_pml_lo[idim] or do_pml_hi[idim]) and grid_box.size[idim] <= ncell[idim]:
                    raise PMLGeometryError(
                        f"Grid {grid_box} is not longer than the PML ({ncell[idim]} cells) "
                        f"along axis {idim}; use a larger blocking factor"
                    )
        bx = grid_box.grow(ncell) & envelope
        if not bx.ok:
            continue
        noncovered = grid_ba.complement_in(bx)
        for offset in neighbour_offsets(grid_box.dim):
            shift = tuple(o * n for o, n in zip(offset, grid_box.size))
            bndry = grid_box.shift(shift) & bx
            if not bndry.ok:
                continue
            for piece in noncovered:
                b = piece & bndry
                if b.ok:
                    boxes.append(b)
    return BoxArray(boxes).remove_overlap()


def make_box_array(
    is_single_box_domain: bool,
    regdomain: Box,
    domain: Box,
    grid_ba: BoxArray,
    ncell: int | Sequence[int],
    do_pml_in_domain: bool,
    do_pml_lo: Sequence[int],
    do_pml_hi: Sequence[int],
) -> BoxArray:
    """PML layout around ``grid_ba`` inside the envelope of ``domain``."""
    envelope = pml_envelope(domain, ncell, do_pml_lo, do_pml_hi, do_pml_in_domain)
    if is_single_box_domain:
        ba = make_box_array_single(regdomain, envelope, ncell, do_pml_lo, do_pml_hi)
    else:
        ba = make_box_array_multiple(
            grid_ba, envelope, ncell, do_pml_in_domain, do_pml_lo, do_pml_hi
        )
    logger.debug(
        "PML layout (%s mode): %d boxes, %d cells",
        "single" if is_single_box_domain else "multiple",
        len(ba),
        ba.num_pts(),
    )
    return ba
