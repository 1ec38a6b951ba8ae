"""
Problem geometry and box-to-rank ownership.

Classes:
    Geometry: Index domain, physical extent and periodicity of one level
    DistributionMapping: Owning rank of every box of a BoxArray

Example:
    >>> from strata_pml.core import Box, BoxArray, Geometry, DistributionMapping
    >>>
    >>> geom = Geometry.uniform(shape=(64, 64), resolution=1e-6)
    >>> geom.cell_size
    (1e-06, 1e-06)
    >>>
    >>> ba = BoxArray([Box((0, 0), (31, 63)), Box((32, 0), (63, 63))])
    >>> dm = DistributionMapping.from_box_array(ba, nprocs=2)
    >>> list(dm)
    [0, 1]
"""

from __future__ import annotations

import itertools
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field

import numpy as np
from numpy.typing import NDArray

from .box import Box, BoxArray, IntVect, as_intvect


@dataclass
class Geometry:
    """Index domain and physical coordinates of one refinement level.

    Args:
        domain: Cell-centred index box of the whole level
        prob_lo: Physical coordinates of the low corner (meters)
        prob_hi: Physical coordinates of the high corner (meters)
        is_periodic: Periodicity flag per axis (default: not periodic)

    Attributes:
        dim: Number of spatial dimensions
        cell_size: Cell spacing per axis
        period: Domain length in cells per axis (used for periodic images)

    Example:
        >>> geom = Geometry(Box((0, 0, 0), (9, 9, 19)), (0, 0, 0), (1.0, 1.0, 2.0))
        >>> geom.cell_size
        (0.1, 0.1, 0.1)
    """

    domain: Box
    prob_lo: Sequence[float]
    prob_hi: Sequence[float]
    is_periodic: Sequence[bool] | None = None
    _cell_size: tuple[float, ...] = field(init=False, repr=False)

    def __post_init__(self):
        if not self.domain.ok:
            raise ValueError(f"Geometry domain must not be empty, got {self.domain}")
        if not self.domain.is_cell_centered:
            raise ValueError("Geometry domain must be cell-centred")
        dim = self.domain.dim
        self.prob_lo = tuple(float(v) for v in self.prob_lo)
        self.prob_hi = tuple(float(v) for v in self.prob_hi)
        if len(self.prob_lo) != dim or len(self.prob_hi) != dim:
            raise ValueError(f"prob_lo and prob_hi must have {dim} entries")
        if any(h <= l for l, h in zip(self.prob_lo, self.prob_hi)):
            raise ValueError("prob_hi must exceed prob_lo on every axis")
        if self.is_periodic is None:
            self.is_periodic = (False,) * dim
        else:
            self.is_periodic = tuple(bool(p) for p in self.is_periodic)
        self._cell_size = tuple(
            (h - l) / n for l, h, n in zip(self.prob_lo, self.prob_hi, self.domain.size)
        )

    @classmethod
    def uniform(
        cls,
        shape: Sequence[int],
        resolution: float,
        is_periodic: Sequence[bool] | None = None,
    ) -> Geometry:
        """Geometry of ``shape`` cells of equal spacing starting at the origin."""
        dim = len(shape)
        domain = Box((0,) * dim, tuple(n - 1 for n in shape))
        prob_hi = tuple(n * resolution for n in shape)
        return cls(domain, (0.0,) * dim, prob_hi, is_periodic)

    @property
    def dim(self) -> int:
        return self.domain.dim

    @property
    def cell_size(self) -> tuple[float, ...]:
        return self._cell_size

    @property
    def period(self) -> IntVect:
        return self.domain.size

    @property
    def is_any_periodic(self) -> bool:
        return any(self.is_periodic)

    def periodic_shifts(self) -> list[IntVect]:
        """Index shifts to every periodic image, the zero shift first."""
        choices = []
        for periodic, length in zip(self.is_periodic, self.period):
            choices.append((0, -length, length) if periodic else (0,))
        return [tuple(s) for s in itertools.product(*choices)]

    def cell_centers(self, idim: int) -> NDArray[np.float64]:
        """Physical cell-centre coordinates along axis ``idim``."""
        dx = self._cell_size[idim]
        n = self.domain.size[idim]
        return self.prob_lo[idim] + (np.arange(n) + 0.5) * dx

    def physical_extent(self) -> tuple[float, ...]:
        return tuple(h - l for l, h in zip(self.prob_lo, self.prob_hi))

    def refine(self, ratio: int | Sequence[int]) -> Geometry:
        return Geometry(self.domain.refine(ratio), self.prob_lo, self.prob_hi, self.is_periodic)

    def coarsen(self, ratio: int | Sequence[int]) -> Geometry:
        return Geometry(self.domain.coarsen(ratio), self.prob_lo, self.prob_hi, self.is_periodic)


class DistributionMapping(Sequence[int]):
    """Owning rank of every box of a BoxArray.

    Args:
        ranks: Rank owning each box, in BoxArray order
        nprocs: Number of ranks (default: ``max(ranks) + 1``)
        my_rank: Rank of this process. ``None`` treats every box as local,
            which is the serial and shared-memory case.

    Containers built on a mapping (field arrays, sigma boxes) only hold the
    boxes for which :meth:`is_local` is true.
    """

    def __init__(self, ranks: Sequence[int], nprocs: int | None = None, my_rank: int | None = None):
        self._ranks = tuple(int(r) for r in ranks)
        if nprocs is None:
            nprocs = max(self._ranks, default=0) + 1
        if nprocs < 1:
            raise ValueError("nprocs must be >= 1")
        if any(r < 0 or r >= nprocs for r in self._ranks):
            raise ValueError(f"ranks must lie in [0, {nprocs})")
        if my_rank is not None and not 0 <= my_rank < nprocs:
            raise ValueError(f"my_rank must lie in [0, {nprocs})")
        self.nprocs = nprocs
        self.my_rank = my_rank

    def __getitem__(self, index):
        return self._ranks[index]

    def __len__(self) -> int:
        return len(self._ranks)

    def __iter__(self) -> Iterator[int]:
        return iter(self._ranks)

    def __eq__(self, other) -> bool:
        if not isinstance(other, DistributionMapping):
            return NotImplemented
        return self._ranks == other._ranks and self.nprocs == other.nprocs

    def __hash__(self) -> int:
        return hash((self._ranks, self.nprocs))

    def __repr__(self) -> str:
        return f"DistributionMapping({list(self._ranks)}, nprocs={self.nprocs}, my_rank={self.my_rank})"

    def is_local(self, index: int) -> bool:
        return self.my_rank is None or self._ranks[index] == self.my_rank

    def local_indices(self) -> list[int]:
        return [i for i in range(len(self._ranks)) if self.is_local(i)]

    @classmethod
    def from_box_array(
        cls,
        box_array: BoxArray,
        nprocs: int = 1,
        my_rank: int | None = None,
    ) -> DistributionMapping:
        """Balance boxes over ranks by number of points.

        Boxes are visited largest first and each goes to the currently
        least-loaded rank.
        """
        loads = [0] * nprocs
        ranks = [0] * len(box_array)
        order = sorted(range(len(box_array)), key=lambda i: (-box_array[i].num_pts, i))
        for i in order:
            rank = min(range(nprocs), key=lambda r: (loads[r], r))
            ranks[i] = rank
            loads[rank] += box_array[i].num_pts
        return cls(ranks, nprocs, my_rank)

    @classmethod
    def make_similar(
        cls,
        box_array: BoxArray,
        ref_box_array: BoxArray,
        ref_dm: DistributionMapping,
        ngrow: int | Sequence[int] = 0,
    ) -> DistributionMapping:
        """Place each box on the rank owning most of its grown neighbourhood.

        Each box of ``box_array``, grown by ``ngrow``, goes to the rank of
        ``ref_dm`` whose boxes in ``ref_box_array`` overlap it the most. Boxes
        overlapping nothing go to the least-loaded rank.
        """
        nprocs = ref_dm.nprocs
        loads = [0] * nprocs
        ranks = []
        for b in box_array:
            grown = b.grow(as_intvect(ngrow, b.dim))
            overlap = [0] * nprocs
            for j, isect in ref_box_array.intersections(grown):
                overlap[ref_dm[j]] += isect.num_pts
            if max(overlap) > 0:
                rank = max(range(nprocs), key=lambda r: (overlap[r], -r))
            else:
                rank = min(range(nprocs), key=lambda r: (loads[r], r))
            ranks.append(rank)
            loads[rank] += b.num_pts
        return cls(ranks, nprocs, ref_dm.my_rank)
