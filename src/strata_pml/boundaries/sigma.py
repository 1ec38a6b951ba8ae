"""
Damping-coefficient profiles of the absorbing layer.

Every PML box carries, for each axis, a set of 1D coefficient arrays:

    - ``sigma``: damping rate at the nodes (E-type locations)
    - ``sigma_cumsum``: its running integral, used to damp the current
    - ``sigma_star``: damping rate at the cell centres (B-type locations)
    - ``sigma_star_cumsum``: its running integral
    - ``*_fac``: the per-time-step multiplicative factors derived from them

The rate grows quadratically with the depth into the layer,

    sigma(d) = fac * d**2,    fac = 4 * v_sigma / (dx * delta**2)

and is held at ``sigma_max = 4 * v_sigma / dx`` beyond ``d = delta``. It is
exactly zero at every point of the interior domain.

Two construction modes exist. When the interior grids tile one box the
profile is a function of the distance to that box. Otherwise every interior
grid near the PML box contributes over the part of the PML box it faces,
see :meth:`SigmaBox.define_multiple`.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping, Sequence

import numpy as np
from numpy.typing import NDArray

from strata_pml.core.box import Box, BoxArray, as_intvect
from strata_pml.core.geometry import DistributionMapping
from strata_pml.exceptions import PMLGeometryError

logger = logging.getLogger(__name__)

_PROFILE_NAMES = (
    "sigma",
    "sigma_cumsum",
    "sigma_star",
    "sigma_star_cumsum",
    "sigma_fac",
    "sigma_cumsum_fac",
    "sigma_star_fac",
    "sigma_star_cumsum_fac",
)


class Sigma:
    """Coefficients over the index range ``[lo, hi)`` of one axis.

    Args:
        lo: First index covered
        hi: One past the last index covered
    """

    def __init__(self, lo: int, hi: int):
        if hi < lo:
            raise ValueError(f"Sigma range is empty: [{lo}, {hi})")
        self.lo = lo
        self.hi = hi
        self.values: NDArray[np.float64] = np.zeros(hi - lo, dtype=np.float64)

    def __len__(self) -> int:
        return self.hi - self.lo

    def __array__(self, dtype=None, copy=None):
        if dtype is None:
            return self.values
        return self.values.astype(dtype)

    def __repr__(self) -> str:
        return f"Sigma(lo={self.lo}, hi={self.hi})"

    def at(self, first: int, last: int) -> NDArray[np.float64]:
        """Writable view of the entries for global indices ``first..last``."""
        return self.values[first - self.lo : last - self.lo + 1]


def ramp(
    offset: NDArray[np.float64],
    fac: float,
    delta: int,
    v_sigma: float,
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """Damping rate and its integral at depth ``offset`` (in cells).

    The rate is ``fac * offset**2`` up to ``delta`` and constant beyond.
    The integral is divided by ``v_sigma`` so that ``exp(-cumsum * dx)`` is
    dimensionless.
    """
    inside = np.minimum(offset, delta)
    beyond = offset - inside
    sigma = fac * inside**2
    cumsum = (fac * inside**3 / 3.0 + fac * delta**2 * beyond) / v_sigma
    return sigma, cumsum


class SigmaBox:
    """Damping profiles of one PML box along every axis.

    Args:
        box: Cell-centred PML box
        grids: Interior grids the layer surrounds (used in multiple-region
            mode)
        dx: Cell size per axis
        ncell: Layer thickness in cells, scalar or per axis
        delta: Ramp width in cells, scalar or per axis
        regdomain: Interior domain when it is a single box, otherwise an
            empty box to select multiple-region mode
        v_sigma: Wave speed entering the profile

    Node arrays cover ``box.lo .. box.hi + 1`` and cell arrays
    ``box.lo .. box.hi`` (stored with the same length, last entry unused).
    """

    def __init__(
        self,
        box: Box,
        grids: BoxArray,
        dx: Sequence[float],
        ncell: int | Sequence[int],
        delta: int | Sequence[int],
        regdomain: Box | None,
        v_sigma: float,
    ):
        self.box = box
        self.dim = box.dim
        self.dx = tuple(float(d) for d in dx)
        self.ncell = as_intvect(ncell, self.dim)
        self.delta = as_intvect(delta, self.dim)
        self.v_sigma = v_sigma
        self.fac = tuple(
            4.0 * v_sigma / (d * n * n) if n > 0 else 0.0 for d, n in zip(self.dx, self.delta)
        )
        for name in _PROFILE_NAMES:
            setattr(
                self,
                name,
                [Sigma(box.lo[d], box.hi[d] + 2) for d in range(self.dim)],
            )

        if regdomain is not None and regdomain.ok:
            self.define_single(regdomain)
        else:
            self.define_multiple(grids)

    @property
    def sigma_max(self) -> tuple[float, ...]:
        return tuple(4.0 * self.v_sigma / d for d in self.dx)

    def fill_lo(self, idim: int, olo: int, ohi: int, glo: int) -> None:
        """Ramp below the interior edge ``glo`` over cells ``olo..ohi``."""
        nodes = np.arange(olo, ohi + 2, dtype=np.float64)
        sig, cum = ramp(glo - nodes, self.fac[idim], self.delta[idim], self.v_sigma)
        self.sigma[idim].at(olo, ohi + 1)[:] = sig
        self.sigma_cumsum[idim].at(olo, ohi + 1)[:] = cum

        cells = np.arange(olo, ohi + 1, dtype=np.float64)
        sig, cum = ramp(glo - cells - 0.5, self.fac[idim], self.delta[idim], self.v_sigma)
        self.sigma_star[idim].at(olo, ohi)[:] = sig
        self.sigma_star_cumsum[idim].at(olo, ohi)[:] = cum

    def fill_hi(self, idim: int, olo: int, ohi: int, ghi: int) -> None:
        """Ramp above the interior edge ``ghi`` over cells ``olo..ohi``."""
        nodes = np.arange(olo, ohi + 2, dtype=np.float64)
        sig, cum = ramp(nodes - ghi - 1, self.fac[idim], self.delta[idim], self.v_sigma)
        self.sigma[idim].at(olo, ohi + 1)[:] = sig
        self.sigma_cumsum[idim].at(olo, ohi + 1)[:] = cum

        cells = np.arange(olo, ohi + 1, dtype=np.float64)
        sig, cum = ramp(cells - ghi - 0.5, self.fac[idim], self.delta[idim], self.v_sigma)
        self.sigma_star[idim].at(olo, ohi)[:] = sig
        self.sigma_star_cumsum[idim].at(olo, ohi)[:] = cum

    def fill_zero(self, idim: int, olo: int, ohi: int) -> None:
        """Zero the profiles over cells ``olo..ohi`` (interior-facing)."""
        self.sigma[idim].at(olo, ohi + 1)[:] = 0.0
        self.sigma_cumsum[idim].at(olo, ohi + 1)[:] = 0.0
        self.sigma_star[idim].at(olo, ohi)[:] = 0.0
        self.sigma_star_cumsum[idim].at(olo, ohi)[:] = 0.0

    def define_single(self, regdomain: Box) -> None:
        """Profiles as a function of the distance to one interior box."""
        ncell = self.ncell
        for idim in range(self.dim):
            slo, shi = self.box.lo[idim], self.box.hi[idim]
            dlo, dhi = regdomain.lo[idim], regdomain.hi[idim]

            olo, ohi = max(slo, dlo - ncell[idim]), min(shi, dlo - 1)
            if ohi >= olo:
                self.fill_lo(idim, olo, ohi, dlo)

            olo, ohi = max(slo, dlo), min(shi, dhi)
            if ohi >= olo:
                self.fill_zero(idim, olo, ohi)

            olo, ohi = max(slo, dhi + 1), min(shi, dhi + ncell[idim])
            if ohi >= olo:
                self.fill_hi(idim, olo, ohi, dhi)

    def _grow_others(self, b: Box, idim: int) -> Box:
        for jdim in range(self.dim):
            if jdim != idim:
                b = b.grow_dir(jdim, self.ncell[jdim])
        return b

    def _fill_adjacent(self, grid_box: Box, idim: int, grow_others: bool) -> None:
        lobox = grid_box.adj_cell_lo(idim, self.ncell[idim])
        hibox = grid_box.adj_cell_hi(idim, self.ncell[idim])
        if grow_others:
            lobox = self._grow_others(lobox, idim)
            hibox = self._grow_others(hibox, idim)
        looverlap = lobox & self.box
        hioverlap = hibox & self.box
        if looverlap.ok:
            self.fill_lo(idim, looverlap.lo[idim], looverlap.hi[idim], grid_box.lo[idim])
        if hioverlap.ok:
            self.fill_hi(idim, hioverlap.lo[idim], hioverlap.hi[idim], grid_box.hi[idim])
        if not looverlap.ok and not hioverlap.ok:
            raise PMLGeometryError(
                f"Interior grid {grid_box} classified as adjacent along axis {idim} "
                f"does not touch PML box {self.box}"
            )

    def _fill_side(self, grid_box: Box, idim: int) -> None:
        overlap = self._grow_others(grid_box, idim) & self.box
        if not overlap.ok:
            raise PMLGeometryError(
                f"Interior grid {grid_box} classified as side-on along axis {idim} "
                f"does not touch PML box {self.box}"
            )
        self.fill_zero(idim, overlap.lo[idim], overlap.hi[idim])

    def define_multiple(self, grids: BoxArray) -> None:
        """Profiles from every interior grid within ``ncell`` of the box.

        Along axis ``idim`` each nearby grid is one of

            - a direct face: grown along ``idim`` it reaches the box
            - a side face: grown along one other axis it reaches the box
            - a direct-side edge (3D): grown along ``idim`` and one other axis
            - a side-side edge (3D): grown along both other axes
            - a corner: reached only when grown along every axis

        Grids facing the box along ``idim`` contribute a ramp, the others
        zeros. Later categories in the order corners, side-side edges,
        direct-side edges, side faces, direct faces overwrite earlier ones.
        """
        ncell = self.ncell
        dim = self.dim
        candidates = [gid for gid, _ in grids.intersections(self.box, ncell)]

        for idim in range(dim):
            others = [d for d in range(dim) if d != idim]
            direct_faces, side_faces = [], []
            direct_side_edges, side_side_edges, corners = [], [], []

            for gid in candidates:
                grid_box = grids[gid]
                if grid_box.grow_dir(idim, ncell[idim]).intersects(self.box):
                    direct_faces.append(gid)
                elif any(grid_box.grow_dir(jdim, ncell[jdim]).intersects(self.box) for jdim in others):
                    side_faces.append(gid)
                elif dim == 3 and any(
                    grid_box.grow_dir(idim, ncell[idim]).grow_dir(jdim, ncell[jdim]).intersects(self.box)
                    for jdim in others
                ):
                    direct_side_edges.append(gid)
                elif dim == 3 and self._grow_others(grid_box, idim).intersects(self.box):
                    side_side_edges.append(gid)
                elif grid_box.grow(ncell).intersects(self.box):
                    corners.append(gid)
                else:
                    raise PMLGeometryError(
                        f"Interior grid {grid_box} is a candidate for PML box {self.box} "
                        "but overlaps it in no direction"
                    )

            if len(direct_faces) > 1:
                raise PMLGeometryError(
                    f"PML box {self.box} faces {len(direct_faces)} interior grids "
                    f"directly along axis {idim}"
                )

            for gid in corners:
                self._fill_adjacent(grids[gid], idim, grow_others=True)
            for gid in side_side_edges:
                self._fill_side(grids[gid], idim)
            for gid in direct_side_edges:
                self._fill_adjacent(grids[gid], idim, grow_others=True)
            for gid in side_faces:
                self._fill_side(grids[gid], idim)
            for gid in direct_faces:
                self._fill_adjacent(grids[gid], idim, grow_others=False)

    def compute_pml_factors_b(self, dx: Sequence[float], dt: float) -> None:
        """Factors at the B-type (cell-centre) locations."""
        for idim in range(self.dim):
            self.sigma_star_fac[idim].values[:] = np.exp(-self.sigma_star[idim].values * dt)
            self.sigma_star_cumsum_fac[idim].values[:] = np.exp(
                -self.sigma_star_cumsum[idim].values * dx[idim]
            )

    def compute_pml_factors_e(self, dx: Sequence[float], dt: float) -> None:
        """Factors at the E-type (node) locations."""
        for idim in range(self.dim):
            self.sigma_fac[idim].values[:] = np.exp(-self.sigma[idim].values * dt)
            self.sigma_cumsum_fac[idim].values[:] = np.exp(
                -self.sigma_cumsum[idim].values * dx[idim]
            )


class MultiSigmaBox(Mapping[int, SigmaBox]):
    """One :class:`SigmaBox` per locally owned PML box.

    Args:
        ba: PML box layout
        dm: Owning rank of every PML box
        grid_ba: Interior grids the layer surrounds
        dx: Cell size per axis
        ncell: Layer thickness in cells, scalar or per axis
        delta: Ramp width in cells, scalar or per axis
        regdomain: Interior domain in single-region mode, else ``None``
        v_sigma: Wave speed entering the profile

    The time steps last used for the B and E factors are cached, so that
    recomputing with the same ``dt`` is a no-op.
    """

    def __init__(
        self,
        ba: BoxArray,
        dm: DistributionMapping,
        grid_ba: BoxArray,
        dx: Sequence[float],
        ncell: int | Sequence[int],
        delta: int | Sequence[int],
        regdomain: Box | None,
        v_sigma: float,
    ):
        self.box_array = ba
        self.dm = dm
        self._boxes = {
            i: SigmaBox(ba[i], grid_ba, dx, ncell, delta, regdomain, v_sigma)
            for i in dm.local_indices()
        }
        self.dt_b = -1.0e10
        self.dt_e = -1.0e10

    def __getitem__(self, index: int) -> SigmaBox:
        return self._boxes[index]

    def __iter__(self) -> Iterator[int]:
        return iter(sorted(self._boxes))

    def __len__(self) -> int:
        return len(self._boxes)

    @property
    def factors_computed(self) -> bool:
        return self.dt_b != -1.0e10 and self.dt_e != -1.0e10

    def compute_pml_factors_b(self, dx: Sequence[float], dt: float) -> None:
        if dt == self.dt_b:
            logger.debug("B-type PML factors already current for dt=%g", dt)
            return
        logger.debug("Computing B-type PML factors on %d boxes (dt=%g)", len(self), dt)
        for sigma_box in self._boxes.values():
            sigma_box.compute_pml_factors_b(dx, dt)
        self.dt_b = dt

    def compute_pml_factors_e(self, dx: Sequence[float], dt: float) -> None:
        if dt == self.dt_e:
            logger.debug("E-type PML factors already current for dt=%g", dt)
            return
        logger.debug("Computing E-type PML factors on %d boxes (dt=%g)", len(self), dt)
        for sigma_box in self._boxes.values():
            sigma_box.compute_pml_factors_e(dx, dt)
        self.dt_e = dt
