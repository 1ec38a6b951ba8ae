"""
Distributed field storage on a block-structured mesh.

A :class:`FieldArray` holds one numpy array per locally owned box. Each
array covers the box grown by ``ngrow`` guard cells on every side and has a
trailing component axis, so a split field with two sub-components on a 2D
box of 16x16 cells and 2 guard cells is stored as an array of shape
``(20, 20, 2)``.

Field components are staggered on the Yee mesh. :func:`field_ixtype` gives
the index type of every component kind:

    - E and J: cell-centred along their own axis, nodal elsewhere
    - B: nodal along its own axis, cell-centred elsewhere
    - F: nodal everywhere
    - G: cell-centred everywhere

On a collocated grid every component is nodal. In fewer than three
dimensions the trailing axes (``z``, then ``y``) are dropped and fields are
invariant along them.

Example:
    >>> from strata_pml.core import Box, BoxArray, DistributionMapping
    >>> ba = BoxArray([Box((0, 0), (15, 15)), Box((16, 0), (31, 15))])
    >>> dm = DistributionMapping.from_box_array(ba)
    >>> ex = FieldArray(ba, dm, ncomp=2, ngrow=2, ixtype=field_ixtype("E", 0, 2))
    >>> ex[0].shape
    (20, 21, 2)
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Literal

import numpy as np
from numpy.typing import DTypeLike, NDArray

from .box import Box, BoxArray, IntVect, as_intvect, box_diff
from .geometry import DistributionMapping

if TYPE_CHECKING:
    from .geometry import Geometry

logger = logging.getLogger(__name__)

FieldKind = Literal["E", "B", "J", "F", "G"]
GridType = Literal["staggered", "collocated"]

AXIS_NAMES = ("x", "y", "z")


def field_ixtype(
    kind: FieldKind,
    component: int,
    dim: int,
    grid_type: GridType = "staggered",
) -> IntVect:
    """Index type of one field component on the Yee mesh.

    Args:
        kind: Field kind, one of ``"E"``, ``"B"``, ``"J"``, ``"F"``, ``"G"``
        component: Vector component (0 = x, 1 = y, 2 = z). Ignored for the
            scalar kinds F and G.
        dim: Number of spatial dimensions (1, 2 or 3)
        grid_type: ``"staggered"`` or ``"collocated"``

    Returns:
        Tuple of ``dim`` entries, 0 for cell-centred and 1 for nodal
    """
    if kind not in ("E", "B", "J", "F", "G"):
        raise ValueError(f"Unknown field kind: {kind!r}")
    if grid_type == "collocated":
        return (1,) * dim
    if grid_type != "staggered":
        raise ValueError(f"Unknown grid type: {grid_type!r}")
    if kind == "F":
        return (1,) * dim
    if kind == "G":
        return (0,) * dim
    if kind in ("E", "J"):
        return tuple(0 if d == component else 1 for d in range(dim))
    return tuple(1 if d == component else 0 for d in range(dim))


class FieldArray:
    """Multi-component field distributed over the boxes of a BoxArray.

    Args:
        box_array: Cell-centred decomposition the field lives on
        dm: Owning rank of every box; only local boxes are allocated
        ncomp: Number of components per point
        ngrow: Guard cells on each side, scalar or per axis
        ixtype: Index type per axis (default: cell-centred)
        dtype: Element type of the storage arrays
        name: Label used in logs and checkpoints

    Attributes:
        box_array: Valid boxes in the field's own index type
        ngrow: Guard width per axis
        ncomp: Number of components
    """

    def __init__(
        self,
        box_array: BoxArray,
        dm: DistributionMapping,
        ncomp: int = 1,
        ngrow: int | Sequence[int] = 0,
        ixtype: Sequence[int] | None = None,
        dtype: DTypeLike = np.float64,
        name: str = "",
    ):
        if len(box_array) != len(dm):
            raise ValueError(
                f"BoxArray has {len(box_array)} boxes but mapping has {len(dm)} entries"
            )
        if ncomp < 1:
            raise ValueError(f"ncomp must be >= 1, got {ncomp}")
        dim = box_array.dim
        self.ixtype: IntVect = tuple(ixtype) if ixtype is not None else (0,) * dim
        self.box_array = box_array.convert(self.ixtype) if len(box_array) else box_array
        self.dm = dm
        self.ncomp = ncomp
        self.ngrow: IntVect = as_intvect(ngrow, dim)
        if any(g < 0 for g in self.ngrow):
            raise ValueError(f"ngrow must be non-negative, got {self.ngrow}")
        self.dtype = np.dtype(dtype)
        self.name = name
        self._fabs: dict[int, NDArray] = {
            i: np.zeros(self.grown_box(i).shape + (ncomp,), dtype=self.dtype)
            for i in dm.local_indices()
        }

    @property
    def dim(self) -> int:
        return self.box_array.dim

    def __len__(self) -> int:
        return len(self.box_array)

    def __getitem__(self, index: int) -> NDArray:
        return self._fabs[index]

    def __setitem__(self, index: int, value: NDArray) -> None:
        self._fabs[index][...] = value

    def __repr__(self) -> str:
        return (
            f"FieldArray(name={self.name!r}, boxes={len(self)}, ncomp={self.ncomp}, "
            f"ngrow={self.ngrow}, ixtype={self.ixtype})"
        )

    def local_indices(self) -> list[int]:
        return sorted(self._fabs)

    def valid_box(self, index: int) -> Box:
        return self.box_array[index]

    def grown_box(self, index: int, ngrow: int | Sequence[int] | None = None) -> Box:
        if ngrow is None:
            ngrow = self.ngrow
        return self.box_array[index].grow(ngrow)

    def _check_ngrow(self, ngrow: int | Sequence[int]) -> IntVect:
        nv = as_intvect(ngrow, self.dim)
        if any(n > g for n, g in zip(nv, self.ngrow)):
            raise ValueError(f"{self.name or 'field'}: ngrow {nv} exceeds allocated {self.ngrow}")
        return nv

    def _comp_slice(self, comp: int, ncomp: int | None) -> slice:
        if ncomp is None:
            ncomp = self.ncomp - comp
        if comp < 0 or ncomp < 0 or comp + ncomp > self.ncomp:
            raise ValueError(
                f"{self.name or 'field'}: components [{comp}, {comp + ncomp}) "
                f"out of range for ncomp={self.ncomp}"
            )
        return slice(comp, comp + ncomp)

    def view(
        self,
        index: int,
        region: Box | None = None,
        comps: int | slice | None = None,
    ) -> NDArray:
        """Writable view of ``region`` (default: the valid box) of one box.

        ``region`` is interpreted in the field's index space; its index type
        label is ignored. ``comps`` selects one component (dropping the
        component axis) or a slice of components.
        """
        if region is None:
            region = self.valid_box(index)
        grown = self.grown_box(index)
        if not grown.with_ixtype(region.ixtype).contains(region):
            raise ValueError(f"{self.name or 'field'}: region {region} outside {grown}")
        if comps is None:
            comps = slice(None)
        return self._fabs[index][region.slices(grown) + (comps,)]

    def set_val(
        self,
        value: float | complex,
        comp: int = 0,
        ncomp: int | None = None,
        ngrow: int | Sequence[int] | None = None,
    ) -> None:
        """Set components ``[comp, comp + ncomp)`` over the valid box grown by ``ngrow``."""
        cs = self._comp_slice(comp, ncomp)
        nv = self.ngrow if ngrow is None else self._check_ngrow(ngrow)
        for i in self._fabs:
            region = self.valid_box(i).grow(nv)
            self.view(i, region, cs)[...] = value

    def copy(
        self,
        src: FieldArray,
        src_comp: int = 0,
        dst_comp: int = 0,
        ncomp: int | None = None,
        ngrow: int | Sequence[int] = 0,
    ) -> None:
        """Local copy between two fields defined on the same boxes."""
        if src.box_array != self.box_array:
            raise ValueError("copy requires identical box arrays; use parallel_copy")
        if ncomp is None:
            ncomp = min(src.ncomp - src_comp, self.ncomp - dst_comp)
        scs = src._comp_slice(src_comp, ncomp)
        dcs = self._comp_slice(dst_comp, ncomp)
        nv = self._check_ngrow(ngrow)
        src._check_ngrow(nv)
        for i in self._fabs:
            region = self.valid_box(i).grow(nv)
            self.view(i, region, dcs)[...] = src.view(i, region, scs)

    def lin_comb_components(self, coeffs: Sequence[float], name: str = "") -> FieldArray:
        """Single-component field ``sum(coeffs[c] * self[c])`` over the valid boxes."""
        if len(coeffs) != self.ncomp:
            raise ValueError(f"expected {self.ncomp} coefficients, got {len(coeffs)}")
        result = FieldArray(
            self.cell_box_array(),
            self.dm,
            ncomp=1,
            ngrow=0,
            ixtype=self.ixtype,
            dtype=self.dtype,
            name=name or self.name,
        )
        weights = np.asarray(coeffs, dtype=self.dtype)
        for i in self._fabs:
            result[i][..., 0] = self.view(i) @ weights
        return result

    def sum_components(self, name: str = "") -> FieldArray:
        """Single-component field holding the sum of all split components."""
        return self.lin_comb_components([1.0] * self.ncomp, name=name)

    def cell_box_array(self) -> BoxArray:
        return self.box_array.convert((0,) * self.dim)

    def _shifts(self, periodicity: Geometry | None) -> list[IntVect]:
        if periodicity is None:
            return [(0,) * self.dim]
        return periodicity.periodic_shifts()

    def parallel_copy(
        self,
        src: FieldArray,
        src_comp: int = 0,
        dst_comp: int = 0,
        ncomp: int | None = None,
        src_ngrow: int | Sequence[int] = 0,
        dst_ngrow: int | Sequence[int] = 0,
        periodicity: Geometry | None = None,
    ) -> None:
        """Copy overlapping data from a field on a different decomposition.

        Every point of this field's valid boxes grown by ``dst_ngrow`` that
        lies in a source box grown by ``src_ngrow`` (or one of its periodic
        images when ``periodicity`` is given) receives the source value.
        Points covered by no source box are left untouched. Where several
        source boxes overlap, the later one in box order wins.
        """
        if src.ixtype != self.ixtype:
            raise ValueError(
                f"index type mismatch in parallel_copy: {src.ixtype} vs {self.ixtype}"
            )
        if ncomp is None:
            ncomp = min(src.ncomp - src_comp, self.ncomp - dst_comp)
        scs = src._comp_slice(src_comp, ncomp)
        dcs = self._comp_slice(dst_comp, ncomp)
        dng = self._check_ngrow(dst_ngrow)
        sng = src._check_ngrow(src_ngrow)
        shifts = self._shifts(periodicity)
        for i in self._fabs:
            dst_region = self.valid_box(i).grow(dng)
            for j in src.local_indices():
                src_region = src.valid_box(j).grow(sng)
                for shift in shifts:
                    isect = dst_region & src_region.shift(shift)
                    if not isect.ok:
                        continue
                    back = tuple(-s for s in shift)
                    self.view(i, isect, dcs)[...] = src.view(j, isect.shift(back), scs)

    def override_sync(self, periodicity: Geometry | None = None) -> None:
        """Make nodes shared by several boxes agree.

        A node on the common face of two boxes takes the value held by the
        box with the lower index. A node shared with the periodic image of
        the same box takes the value at the low end of the domain.
        """
        if not any(self.ixtype):
            return
        shifts = self._shifts(periodicity)
        for i in self._fabs:
            valid_i = self.valid_box(i)
            for j in self.local_indices():
                if j > i:
                    break
                for shift in shifts:
                    if j == i and not _is_positive(shift):
                        continue
                    isect = valid_i & self.valid_box(j).shift(shift)
                    if not isect.ok:
                        continue
                    back = tuple(-s for s in shift)
                    self.view(i, isect)[...] = self.view(j, isect.shift(back))

    def fill_boundary(
        self,
        periodicity: Geometry | None = None,
        nodal_sync: bool = False,
    ) -> None:
        """Fill guard cells from the valid data of neighbouring boxes.

        Guard cells covered by no valid box (outside a non-periodic domain)
        are left untouched. With ``nodal_sync`` the shared nodes are made
        consistent first, see :meth:`override_sync`.
        """
        if nodal_sync:
            self.override_sync(periodicity)
        if not any(self.ngrow):
            return
        shifts = self._shifts(periodicity)
        zero = (0,) * self.dim
        for i in self._fabs:
            valid_i = self.valid_box(i)
            ghosts = box_diff(self.grown_box(i), valid_i)
            for j in self.local_indices():
                valid_j = self.valid_box(j)
                for shift in shifts:
                    if j == i and shift == zero:
                        continue
                    source = valid_j.shift(shift)
                    back = tuple(-s for s in shift)
                    for ghost in ghosts:
                        isect = ghost & source
                        if isect.ok:
                            self.view(i, isect)[...] = self.view(j, isect.shift(back))


def _is_positive(shift: IntVect) -> bool:
    for s in shift:
        if s != 0:
            return s > 0
    return False


def make_vector_field(
    kind: FieldKind,
    box_array: BoxArray,
    dm: DistributionMapping,
    ncomp: int,
    ngrow: int | Sequence[int],
    grid_type: GridType = "staggered",
    suffix: str = "",
) -> tuple[FieldArray, FieldArray, FieldArray]:
    """Allocate the x, y and z components of a staggered vector field.

    Components are named ``Ex_fp``-style from ``kind`` and ``suffix``; the
    current uses a lowercase ``j``.
    """
    dim = box_array.dim
    prefix = "j" if kind == "J" else kind
    fields = tuple(
        FieldArray(
            box_array,
            dm,
            ncomp=ncomp,
            ngrow=ngrow,
            ixtype=field_ixtype(kind, a, dim, grid_type),
            name=f"{prefix}{AXIS_NAMES[a]}{suffix}",
        )
        for a in range(3)
    )
    logger.debug(
        "Allocated %s%s on %d boxes (ncomp=%d, ngrow=%s)",
        prefix, suffix, len(box_array), ncomp, as_intvect(ngrow, dim),
    )
    return fields
