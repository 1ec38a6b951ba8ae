"""
Integer index boxes for block-structured meshes.

A :class:`Box` is a rectangular region of index space with inclusive
``lo``/``hi`` corners and a per-axis index type: ``0`` for cell-centred
and ``1`` for nodal. Converting a cell box to nodal along an axis adds
one point on the high side, which is how staggered (Yee) field components
are laid out on the same cell decomposition.

A :class:`BoxArray` is an ordered collection of boxes sharing an index
type, the unit of domain decomposition.

Example:
    >>> domain = Box((0, 0), (63, 63))
    >>> domain.size
    (64, 64)
    >>> domain.convert((0, 1)).hi
    (63, 64)
    >>> [b.size for b in box_diff(domain, Box((8, 8), (55, 55)))]
    [(8, 64), (8, 64), (48, 8), (48, 8)]
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass

import numpy as np

IntVect = tuple[int, ...]


def as_intvect(value: int | Sequence[int], dim: int) -> IntVect:
    """Broadcast a scalar or sequence to a ``dim``-length integer tuple."""
    if np.isscalar(value):
        return (int(value),) * dim
    values = tuple(int(v) for v in value)
    if len(values) < dim:
        raise ValueError(f"expected {dim} values, got {len(values)}")
    return values[:dim]


@dataclass(frozen=True)
class Box:
    """Rectangular index region with inclusive corners.

    Args:
        lo: Lowest index along each axis
        hi: Highest index along each axis (inclusive)
        ixtype: Index type per axis, 0 = cell-centred, 1 = nodal
            (default: cell-centred on every axis)

    A box is ``ok`` when ``hi >= lo`` on every axis. Intersections of
    disjoint boxes are returned as boxes that are not ``ok`` rather than
    raising.
    """

    lo: IntVect
    hi: IntVect
    ixtype: IntVect | None = None

    def __post_init__(self):
        lo = tuple(int(v) for v in self.lo)
        hi = tuple(int(v) for v in self.hi)
        if len(lo) != len(hi):
            raise ValueError(f"lo and hi must have the same length, got {lo} and {hi}")
        if self.ixtype is None:
            ixtype = (0,) * len(lo)
        else:
            ixtype = tuple(int(v) for v in self.ixtype)
            if len(ixtype) != len(lo) or any(t not in (0, 1) for t in ixtype):
                raise ValueError(f"ixtype must hold {len(lo)} entries of 0 or 1, got {ixtype}")
        object.__setattr__(self, "lo", lo)
        object.__setattr__(self, "hi", hi)
        object.__setattr__(self, "ixtype", ixtype)

    @property
    def dim(self) -> int:
        return len(self.lo)

    @property
    def ok(self) -> bool:
        """Whether the box contains at least one point."""
        return all(h >= l for l, h in zip(self.lo, self.hi))

    @property
    def size(self) -> IntVect:
        """Number of points along each axis."""
        return tuple(h - l + 1 for l, h in zip(self.lo, self.hi))

    @property
    def shape(self) -> IntVect:
        """Numpy shape of an array covering the box (empty boxes give zeros)."""
        return tuple(max(n, 0) for n in self.size)

    @property
    def num_pts(self) -> int:
        if not self.ok:
            return 0
        return int(np.prod(self.size, dtype=np.int64))

    @property
    def is_cell_centered(self) -> bool:
        return not any(self.ixtype)

    def _check_compatible(self, other: Box) -> None:
        if self.dim != other.dim:
            raise ValueError(f"dimension mismatch: {self.dim} vs {other.dim}")
        if self.ixtype != other.ixtype:
            raise ValueError(f"index type mismatch: {self.ixtype} vs {other.ixtype}")

    def __and__(self, other: Box) -> Box:
        self._check_compatible(other)
        lo = tuple(max(a, b) for a, b in zip(self.lo, other.lo))
        hi = tuple(min(a, b) for a, b in zip(self.hi, other.hi))
        return Box(lo, hi, self.ixtype)

    def intersects(self, other: Box) -> bool:
        return (self & other).ok

    def contains(self, other: Box) -> bool:
        self._check_compatible(other)
        return other.ok and all(
            a <= b for a, b in zip(self.lo, other.lo)
        ) and all(a >= b for a, b in zip(self.hi, other.hi))

    def contains_point(self, point: Sequence[int]) -> bool:
        return all(l <= p <= h for l, p, h in zip(self.lo, point, self.hi))

    def grow(self, n: int | Sequence[int]) -> Box:
        """Grow by ``n`` points on both sides of every axis."""
        nv = as_intvect(n, self.dim)
        lo = tuple(l - g for l, g in zip(self.lo, nv))
        hi = tuple(h + g for h, g in zip(self.hi, nv))
        return Box(lo, hi, self.ixtype)

    def grow_dir(self, idim: int, n: int) -> Box:
        """Grow by ``n`` points on both sides of axis ``idim``."""
        return self.grow_lo(idim, n).grow_hi(idim, n)

    def grow_lo(self, idim: int, n: int) -> Box:
        lo = list(self.lo)
        lo[idim] -= n
        return Box(lo, self.hi, self.ixtype)

    def grow_hi(self, idim: int, n: int) -> Box:
        hi = list(self.hi)
        hi[idim] += n
        return Box(self.lo, hi, self.ixtype)

    def shift(self, offset: Sequence[int]) -> Box:
        lo = tuple(l + o for l, o in zip(self.lo, offset))
        hi = tuple(h + o for h, o in zip(self.hi, offset))
        return Box(lo, hi, self.ixtype)

    def adj_cell_lo(self, idim: int, n: int = 1) -> Box:
        """The ``n`` cells just below the box along axis ``idim``."""
        lo = list(self.lo)
        hi = list(self.hi)
        lo[idim] = self.lo[idim] - n
        hi[idim] = self.lo[idim] - 1
        return Box(lo, hi, self.ixtype)

    def adj_cell_hi(self, idim: int, n: int = 1) -> Box:
        """The ``n`` cells just above the box along axis ``idim``."""
        lo = list(self.lo)
        hi = list(self.hi)
        lo[idim] = self.hi[idim] + 1
        hi[idim] = self.hi[idim] + n
        return Box(lo, hi, self.ixtype)

    def convert(self, ixtype: Sequence[int]) -> Box:
        """Change the index type, adding or removing the high-side node."""
        ixtype = tuple(int(t) for t in ixtype)
        hi = list(self.hi)
        for d, (old, new) in enumerate(zip(self.ixtype, ixtype)):
            if old == 0 and new == 1:
                hi[d] += 1
            elif old == 1 and new == 0:
                hi[d] -= 1
        return Box(self.lo, hi, ixtype)

    def with_ixtype(self, ixtype: Sequence[int]) -> Box:
        """Relabel the index type without changing the corners."""
        return Box(self.lo, self.hi, ixtype)

    def enclosed_cells(self) -> Box:
        return self.convert((0,) * self.dim)

    def coarsen(self, ratio: int | Sequence[int]) -> Box:
        rv = as_intvect(ratio, self.dim)
        lo = tuple(l // r for l, r in zip(self.lo, rv))
        hi = []
        for h, r, t in zip(self.hi, rv, self.ixtype):
            hi.append(-((-h) // r) if t else h // r)
        return Box(lo, hi, self.ixtype)

    def refine(self, ratio: int | Sequence[int]) -> Box:
        rv = as_intvect(ratio, self.dim)
        lo = tuple(l * r for l, r in zip(self.lo, rv))
        hi = []
        for h, r, t in zip(self.hi, rv, self.ixtype):
            hi.append(h * r if t else (h + 1) * r - 1)
        return Box(lo, hi, self.ixtype)

    def slices(self, origin: Box) -> tuple[slice, ...]:
        """Numpy slices selecting this box inside an array covering ``origin``."""
        return tuple(
            slice(l - o, h - o + 1) for l, h, o in zip(self.lo, self.hi, origin.lo)
        )

    def __repr__(self) -> str:
        return f"Box(lo={self.lo}, hi={self.hi}, ixtype={self.ixtype})"


def box_diff(a: Box, b: Box) -> list[Box]:
    """Disjoint boxes covering ``a`` minus ``b``."""
    if not a.ok:
        return []
    isect = a & b
    if not isect.ok:
        return [a]
    pieces = []
    lo = list(a.lo)
    hi = list(a.hi)
    for d in range(a.dim):
        if lo[d] < isect.lo[d]:
            piece_hi = list(hi)
            piece_hi[d] = isect.lo[d] - 1
            pieces.append(Box(lo, piece_hi, a.ixtype))
            lo[d] = isect.lo[d]
        if hi[d] > isect.hi[d]:
            piece_lo = list(lo)
            piece_lo[d] = isect.hi[d] + 1
            pieces.append(Box(piece_lo, hi, a.ixtype))
            hi[d] = isect.hi[d]
    return pieces


class BoxArray(Sequence[Box]):
    """Ordered collection of boxes sharing dimension and index type.

    Args:
        boxes: Boxes in decomposition order. Empty (not ``ok``) boxes are
            dropped.

    Example:
        >>> ba = BoxArray([Box((0, 0), (31, 63)), Box((32, 0), (63, 63))])
        >>> ba.minimal_box()
        Box(lo=(0, 0), hi=(63, 63), ixtype=(0, 0))
        >>> ba.is_single_box()
        True
    """

    def __init__(self, boxes: Iterable[Box] = ()):
        self._boxes = tuple(b for b in boxes if b.ok)
        if self._boxes:
            first = self._boxes[0]
            for b in self._boxes[1:]:
                first._check_compatible(b)

    def __getitem__(self, index):
        if isinstance(index, slice):
            return BoxArray(self._boxes[index])
        return self._boxes[index]

    def __len__(self) -> int:
        return len(self._boxes)

    def __iter__(self) -> Iterator[Box]:
        return iter(self._boxes)

    def __eq__(self, other) -> bool:
        if not isinstance(other, BoxArray):
            return NotImplemented
        return self._boxes == other._boxes

    def __hash__(self) -> int:
        return hash(self._boxes)

    def __repr__(self) -> str:
        return f"BoxArray({list(self._boxes)!r})"

    @property
    def dim(self) -> int:
        return self._boxes[0].dim if self._boxes else 0

    @property
    def ixtype(self) -> IntVect | None:
        return self._boxes[0].ixtype if self._boxes else None

    def minimal_box(self) -> Box:
        """Smallest box enclosing every box of the array."""
        if not self._boxes:
            raise ValueError("minimal_box of an empty BoxArray")
        lo = tuple(min(b.lo[d] for b in self._boxes) for d in range(self.dim))
        hi = tuple(max(b.hi[d] for b in self._boxes) for d in range(self.dim))
        return Box(lo, hi, self.ixtype)

    def num_pts(self) -> int:
        return sum(b.num_pts for b in self._boxes)

    def is_single_box(self) -> bool:
        """Whether the (non-overlapping) boxes tile their minimal box exactly."""
        return bool(self._boxes) and self.minimal_box().num_pts == self.num_pts()

    def intersections(self, box: Box, grow: int | Sequence[int] = 0) -> list[tuple[int, Box]]:
        """(index, overlap) pairs of boxes that, grown by ``grow``, meet ``box``."""
        result = []
        for i, b in enumerate(self._boxes):
            isect = b.grow(grow) & box
            if isect.ok:
                result.append((i, isect))
        return result

    def intersects(self, box: Box, grow: int | Sequence[int] = 0) -> bool:
        return any(b.grow(grow).intersects(box) for b in self._boxes)

    def complement_in(self, box: Box) -> list[Box]:
        """Disjoint boxes covering the part of ``box`` no array box covers."""
        remaining = [box] if box.ok else []
        for b in self._boxes:
            if not remaining:
                break
            next_remaining = []
            for r in remaining:
                next_remaining.extend(box_diff(r, b))
            remaining = next_remaining
        return remaining

    def remove_overlap(self) -> BoxArray:
        """Keep earlier boxes whole and trim later boxes so none overlap."""
        kept: list[Box] = []
        for b in self._boxes:
            pieces = [b]
            for k in kept:
                next_pieces = []
                for p in pieces:
                    next_pieces.extend(box_diff(p, k))
                pieces = next_pieces
            kept.extend(pieces)
        return BoxArray(kept)

    def coarsen(self, ratio: int | Sequence[int]) -> BoxArray:
        return BoxArray(b.coarsen(ratio) for b in self._boxes)

    def refine(self, ratio: int | Sequence[int]) -> BoxArray:
        return BoxArray(b.refine(ratio) for b in self._boxes)

    def convert(self, ixtype: Sequence[int]) -> BoxArray:
        return BoxArray(b.convert(ixtype) for b in self._boxes)

    def grow(self, n: int | Sequence[int]) -> BoxArray:
        return BoxArray(b.grow(n) for b in self._boxes)
