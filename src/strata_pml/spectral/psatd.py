"""
Spectral (PSATD) push of the split fields inside the absorbing layer.

Each locally owned PML box is transformed on its own, over the box grown by
the spectral guard width, and treated as periodic. The split components are
advanced analytically over one time step:

    C = cos(c |k| dt),    S = sin(c |k| dt) / (c |k|)

    E_a[0] = C E_a[0] + i c^2 S k_{a+1} B_{a+2}
    E_a[1] = C E_a[1] - i c^2 S k_{a+2} B_{a+1}
    B_a[0] = C B_a[0] - i S k_{a+1} E_{a+2}
    B_a[1] = C B_a[1] + i S k_{a+2} E_{a+1}

where unsplit symbols are the sums of the split components and axis
indices are taken modulo 3. With divergence cleaning the diagonal split
``E_a[2]`` couples to F (and ``B_a[2]`` to G). A current deposited by
particles in the layer, constant over the step, is split evenly over the
two curl components of E and enters B through its curl.

The damping itself is not part of the push; see ``PML.damp``.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

import numpy as np
from numpy.typing import NDArray
from scipy import fft
from scipy.constants import c as SPEED_OF_LIGHT
from scipy.constants import epsilon_0

from strata_pml.core.box import Box, BoxArray, as_intvect
from strata_pml.core.fields import FieldArray
from strata_pml.core.geometry import DistributionMapping
from strata_pml.exceptions import PMLConfigurationError

from .kspace import SpectralKSpace

logger = logging.getLogger(__name__)

VectorField = Sequence[FieldArray]


class PMLSpectralSolver:
    """Per-box spectral update of the PML split fields.

    Args:
        box_array: Cell-centred PML layout
        dm: Owning rank of every PML box
        dx: Cell size per axis
        dt: Time step
        spectral_order: Stencil order per axis (-1 for infinite order)
        grid_type: ``"staggered"`` or ``"collocated"``
        ngrow: Guard width of the transformed region per axis
        dive_cleaning: Update F and the diagonal split of E
        divb_cleaning: Update G and the diagonal split of B
        has_particles: Include the PML current as a source
        fill_guards: Axes along which guard cells are written back
        j_in_time: Time dependence of the current, only ``"constant"``

    Raises:
        PMLConfigurationError: In 1D, on a hybrid grid or for a current
            linear in time
    """

    def __init__(
        self,
        box_array: BoxArray,
        dm: DistributionMapping,
        dx: Sequence[float],
        dt: float,
        spectral_order: Sequence[int],
        grid_type: str = "staggered",
        ngrow: int | Sequence[int] = 0,
        dive_cleaning: bool = False,
        divb_cleaning: bool = False,
        has_particles: bool = False,
        fill_guards: int | Sequence[int] = 0,
        j_in_time: str = "constant",
    ):
        dim = box_array.dim
        if dim == 1:
            raise PMLConfigurationError("The spectral PML is not supported in 1D")
        if grid_type not in ("staggered", "collocated"):
            raise PMLConfigurationError(
                f"The spectral PML does not support grid_type={grid_type!r}"
            )
        if j_in_time == "linear":
            raise PMLConfigurationError(
                "The spectral PML does not support a current linear in time"
            )
        self.box_array = box_array
        self.dm = dm
        self.dim = dim
        self.dx = tuple(dx[:dim])
        self.dt = dt
        self.spectral_order = as_intvect(spectral_order, dim)
        self.grid_type = grid_type
        self.ngrow = as_intvect(ngrow, dim)
        self.dive_cleaning = dive_cleaning
        self.divb_cleaning = divb_cleaning
        self.has_particles = has_particles
        self.fill_guards = as_intvect(fill_guards, dim)
        self._kspaces: dict[tuple[int, ...], SpectralKSpace] = {}
        self._coefficients: dict[tuple[int, ...], tuple[NDArray, NDArray, NDArray]] = {}

    def spectral_box(self, index: int) -> Box:
        """Cell-centred region transformed for box ``index``."""
        return self.box_array[index].grow(self.ngrow)

    def kspace(self, shape: tuple[int, ...]) -> SpectralKSpace:
        if shape not in self._kspaces:
            self._kspaces[shape] = SpectralKSpace(
                shape,
                self.dx,
                self.spectral_order,
                staggered=self.grid_type == "staggered",
            )
        return self._kspaces[shape]

    def coefficients(self, shape: tuple[int, ...]) -> tuple[NDArray, NDArray, NDArray]:
        """``C``, ``S`` and ``X1`` on the wave vectors of a box of ``shape``."""
        if shape not in self._coefficients:
            ks = self.kspace(shape)
            ck = SPEED_OF_LIGHT * ks.k_norm
            dt = self.dt
            C = np.cos(ck * dt)
            with np.errstate(divide="ignore", invalid="ignore"):
                S = np.where(ck == 0, dt, np.sin(ck * dt) / ck)
                X1 = np.where(ck == 0, dt**2 / (2.0 * epsilon_0), (1.0 - C) / (epsilon_0 * ck**2))
            self._coefficients[shape] = (C, S, X1)
        return self._coefficients[shape]

    def _region(self, field: FieldArray, sb: Box) -> Box:
        return sb.with_ixtype(field.ixtype)

    def _forward(self, field: FieldArray, index: int, sb: Box, ks: SpectralKSpace, comp: int):
        data = field.view(index, self._region(field, sb), comp)
        return fft.fftn(data) * ks.shift(field.ixtype, forward=True)

    def _backward(self, field: FieldArray, index: int, sb: Box, ks: SpectralKSpace, comp: int, values):
        region = self._region(field, sb)
        result = fft.ifftn(values * ks.shift(field.ixtype, forward=False)).real
        valid = field.valid_box(index)
        lo, hi = [], []
        for d in range(self.dim):
            if self.fill_guards[d]:
                lo.append(region.lo[d])
                hi.append(region.hi[d])
            else:
                lo.append(valid.lo[d])
                hi.append(min(valid.hi[d], region.hi[d]))
        out = Box(lo, hi, field.ixtype)
        field.view(index, out, comp)[...] = result[out.slices(region)]

    def push(
        self,
        e: VectorField,
        b: VectorField,
        f: FieldArray | None = None,
        g: FieldArray | None = None,
        j: VectorField | None = None,
    ) -> None:
        """Advance the split fields by one time step, in place."""
        c2 = SPEED_OF_LIGHT**2
        use_j = self.has_particles and j is not None
        for index in e[0].local_indices():
            sb = self.spectral_box(index)
            shape = sb.shape
            ks = self.kspace(shape)
            k = ks.k_mod
            C, S, X1 = self.coefficients(shape)

            ek = [[self._forward(e[a], index, sb, ks, s) for s in range(e[a].ncomp)] for a in range(3)]
            bk = [[self._forward(b[a], index, sb, ks, s) for s in range(b[a].ncomp)] for a in range(3)]
            etot = [sum(comps) for comps in ek]
            btot = [sum(comps) for comps in bk]
            fk = gk = None
            if self.dive_cleaning and f is not None:
                fk = [self._forward(f, index, sb, ks, d) for d in range(3)]
                ftot = sum(fk)
            if self.divb_cleaning and g is not None:
                gk = [self._forward(g, index, sb, ks, d) for d in range(3)]
                gtot = sum(gk)
            if use_j:
                jk = [self._forward(j[a], index, sb, ks, 0) for a in range(3)]

            new_e, new_b = [], []
            for a in range(3):
                a1, a2 = (a + 1) % 3, (a + 2) % 3
                ea = [
                    C * ek[a][0] + 1j * c2 * S * k[a1] * btot[a2],
                    C * ek[a][1] - 1j * c2 * S * k[a2] * btot[a1],
                ]
                ba = [
                    C * bk[a][0] - 1j * S * k[a1] * etot[a2],
                    C * bk[a][1] + 1j * S * k[a2] * etot[a1],
                ]
                if fk is not None:
                    ea.append(C * ek[a][2] + 1j * c2 * S * k[a] * ftot)
                elif len(ek[a]) > 2:
                    ea.append(ek[a][2])
                if gk is not None:
                    ba.append(C * bk[a][2] + 1j * c2 * S * k[a] * gtot)
                elif len(bk[a]) > 2:
                    ba.append(bk[a][2])
                if use_j:
                    ea[0] = ea[0] - 0.5 * S * jk[a] / epsilon_0
                    ea[1] = ea[1] - 0.5 * S * jk[a] / epsilon_0
                    ba[0] = ba[0] + 1j * X1 * k[a1] * jk[a2]
                    ba[1] = ba[1] - 1j * X1 * k[a2] * jk[a1]
                new_e.append(ea)
                new_b.append(ba)

            for a in range(3):
                for s, values in enumerate(new_e[a]):
                    self._backward(e[a], index, sb, ks, s, values)
                for s, values in enumerate(new_b[a]):
                    self._backward(b[a], index, sb, ks, s, values)
            if fk is not None:
                for d in range(3):
                    self._backward(f, index, sb, ks, d, C * fk[d] + 1j * S * k[d] * etot[d])
            if gk is not None:
                for d in range(3):
                    self._backward(g, index, sb, ks, d, C * gk[d] + 1j * S * k[d] * btot[d])
        logger.debug("Spectral PML push on %d boxes", len(e[0].local_indices()))
