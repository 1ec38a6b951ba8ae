"""
Perfectly Matched Layer around the domain of one refinement level.

The PML surrounds the interior grids with absorbing boxes. Inside them the
electromagnetic fields are stored split: each component is the sum of two
sub-components (three with divergence cleaning), one per axis of the curl
terms that feed it, and each sub-component is damped by the profile of its
own axis. For ``E_a`` and ``B_a`` the split components are

    0: the part driven along axis (a + 1) % 3
    1: the part driven along axis (a + 2) % 3
    2: the part driven along axis a (cleaning only)

and component ``d`` of F and G belongs to axis ``d``.

A time step as seen from the interior solver:

    >>> pml = PML(0, grid_ba, grid_dm, geom, config=PMLConfig(ncell=8, delta=8))
    >>> pml.compute_pml_factors(dt)
    >>> pml.exchange_e(e_fp)          # interior <-> layer
    >>> pml.exchange_b(b_fp)
    >>> ...                           # finite-difference update of the split fields
    >>> pml.damp()

With ``use_psatd`` the update and the damping are both done by
:meth:`PML.push_psatd`, which must not be followed by another ``damp``.
"""

from __future__ import annotations

import json
import logging
import warnings
from collections.abc import Iterator, Sequence
from enum import Enum
from pathlib import Path

import numpy as np
from numpy.typing import NDArray

from strata_pml.core.box import BoxArray, as_intvect, box_diff
from strata_pml.core.fields import (
    AXIS_NAMES,
    FieldArray,
    field_ixtype,
    make_vector_field,
)
from strata_pml.core.geometry import DistributionMapping, Geometry
from strata_pml.exceptions import (
    CheckpointError,
    PMLConfigurationError,
    PMLStateError,
)
from strata_pml.io.checkpoint import CheckpointReader, CheckpointWriter
from strata_pml.spectral.psatd import PMLSpectralSolver

from .config import PMLConfig
from .layout import make_box_array, reduce_grids_for_pml
from .sigma import MultiSigmaBox, SigmaBox

logger = logging.getLogger(__name__)

VectorField = tuple[FieldArray, FieldArray, FieldArray]


class PatchType(Enum):
    """Field representation of a level: its own (fine) or the coarse auxiliary one."""

    FINE = "fp"
    COARSE = "cp"


class CopyPolicy(Enum):
    """How the layer and the interior share data in :func:`exchange_field`.

    OVERWRITE: the layer lies outside the interior valid region. The layer
        total only ever reaches the interior guard cells.
    DOMAIN_MASKED: the layer overlaps the interior valid region. The layer
        total replaces the interior values it covers, and the layer keeps its
        own split values there.
    """

    OVERWRITE = "overwrite"
    DOMAIN_MASKED = "domain_masked"

    @classmethod
    def from_pml_in_domain(cls, do_pml_in_domain: bool) -> CopyPolicy:
        return cls.DOMAIN_MASKED if do_pml_in_domain else cls.OVERWRITE


def split_axis(component: int, split: int) -> int:
    """Axis whose profile damps split component ``split`` of ``E/B[component]``."""
    if split == 0:
        return (component + 1) % 3
    if split == 1:
        return (component + 2) % 3
    return component


def exchange_field(
    pml: FieldArray,
    reg: FieldArray,
    geom: Geometry,
    policy: CopyPolicy,
) -> None:
    """Exchange one field component between the layer and the interior.

    1. Sum the split components of the layer.
    2. OVERWRITE: copy the sum into the interior guard cells only.
       DOMAIN_MASKED: copy it into the interior valid cells the layer covers.
    3. Build the interior valid data as split components (the value in
       component 0, zeros elsewhere). DOMAIN_MASKED: where the layer is
       valid, use the layer's own split values instead.
    4. Copy that into the layer, valid and guard cells.
    """
    ngr = reg.ngrow
    ngp = pml.ngrow
    ncp = pml.ncomp

    totpml = pml.sum_components(name=f"{pml.name}_total")
    if policy is CopyPolicy.DOMAIN_MASKED:
        reg.parallel_copy(totpml, 0, 0, 1, 0, 0, geom)
    elif max(ngr, default=0) > 0:
        tmpreg = FieldArray(reg.cell_box_array(), reg.dm, 1, ngr, reg.ixtype, reg.dtype)
        tmpreg.copy(reg, 0, 0, 1, ngr)
        tmpreg.parallel_copy(totpml, 0, 0, 1, 0, ngr, geom)
        for i in reg.local_indices():
            for ghost in box_diff(reg.grown_box(i), reg.valid_box(i)):
                reg.view(i, ghost, 0)[...] = tmpreg.view(i, ghost, 0)

    tmpregmf = FieldArray(reg.cell_box_array(), reg.dm, ncp, 0, reg.ixtype, reg.dtype)
    tmpregmf.copy(reg, 0, 0, 1, 0)
    if policy is CopyPolicy.DOMAIN_MASKED:
        tmpregmf.parallel_copy(pml, 0, 0, ncp, 0, 0, geom)
    pml.parallel_copy(tmpregmf, 0, 0, ncp, 0, ngp, geom)


def _profile(values: NDArray, axis: int, ndim: int) -> NDArray:
    shape = [1] * ndim
    shape[axis] = values.shape[0]
    return values.reshape(shape)


class PML:
    """Absorbing layer of one refinement level.

    Args:
        level: Refinement level (0 is the coarsest)
        grid_ba: Interior grids of the level
        grid_dm: Owning rank of every interior grid
        geom: Geometry of the level
        cgeom: Geometry of the coarse patch; ``None`` for no coarse patch
        config: Layer parameters (default: ``PMLConfig()``)
        dt: Time step, required for the spectral push

    Raises:
        PMLConfigurationError: For an unsupported combination of parameters
        PMLGeometryError: If the interior grids cannot hold the layer

    When the layout is empty (no enabled side, ``ncell == 0``) or the ramp
    width is zero, the PML is constructed but :attr:`ok` is false and no
    arrays are allocated.
    """

    def __init__(
        self,
        level: int,
        grid_ba: BoxArray,
        grid_dm: DistributionMapping,
        geom: Geometry,
        cgeom: Geometry | None = None,
        config: PMLConfig | None = None,
        dt: float | None = None,
    ):
        dim = geom.dim
        self.level = level
        self.geom = geom
        self.cgeom = cgeom
        self.config = (config or PMLConfig()).for_dim(dim)
        self.dt = dt
        cfg = self.config
        self._check_config(dim)

        self.pml_e_fp = self.pml_b_fp = self.pml_j_fp = None
        self.pml_e_cp = self.pml_b_cp = self.pml_j_cp = None
        self.pml_f_fp = self.pml_f_cp = None
        self.pml_g_fp = self.pml_g_cp = None
        self.pml_edge_lengths = None
        self.pml_face_areas = None
        self.sigba_fp = self.sigba_cp = None
        self.spectral_solver_fp = self.spectral_solver_cp = None
        self.dm = self.cba = self.cdm = None

        ncell = as_intvect(cfg.ncell, dim)
        delta = as_intvect(cfg.delta, dim)
        do_pml_lo, do_pml_hi = cfg.do_pml_lo, cfg.do_pml_hi

        if cfg.do_pml_in_domain:
            grid_ba_reduced = reduce_grids_for_pml(grid_ba, ncell, do_pml_lo, do_pml_hi)
        else:
            grid_ba_reduced = grid_ba
        domain0 = grid_ba_reduced.minimal_box()
        self.is_single_box_domain = grid_ba_reduced.is_single_box()
        self.regdomain = domain0 if self.is_single_box_domain else None

        self.ba = make_box_array(
            self.is_single_box_domain,
            domain0,
            geom.domain,
            grid_ba_reduced,
            ncell,
            cfg.do_pml_in_domain,
            do_pml_lo,
            do_pml_hi,
        )
        self._ok = len(self.ba) > 0 and any(d > 0 for d in delta)
        if not self._ok:
            logger.info(
                "PML on level %d is empty (%d boxes, delta=%d); nothing allocated",
                level, len(self.ba), cfg.delta,
            )
            return
        if cfg.delta > cfg.ncell:
            warnings.warn(
                f"PML delta ({cfg.delta}) exceeds ncell ({cfg.ncell}); "
                "the damping never reaches its maximum",
                UserWarning,
                stacklevel=2,
            )

        nge, ngb, ngf = self._guard_cells(dim, fine=True)
        if cfg.do_similar_dm_pml:
            self.dm = DistributionMapping.make_similar(self.ba, grid_ba, grid_dm, nge)
        else:
            self.dm = DistributionMapping.from_box_array(self.ba, grid_dm.nprocs, grid_dm.my_rank)

        self.pml_e_fp, self.pml_b_fp, self.pml_j_fp, self.pml_f_fp, self.pml_g_fp = (
            self._allocate(self.ba, self.dm, nge, ngb, ngf, "_fp")
        )

        if cfg.use_geometric_factors:
            self.pml_edge_lengths = self._unit_factors("E", "edge_lengths", self.ba, self.dm)
            self.pml_face_areas = self._unit_factors("B", "face_areas", self.ba, self.dm)

        self.sigba_fp = MultiSigmaBox(
            self.ba,
            self.dm,
            grid_ba_reduced,
            geom.cell_size,
            ncell,
            delta,
            self.regdomain,
            cfg.v_sigma_sb,
        )
        if cfg.use_psatd:
            self.spectral_solver_fp = self._make_spectral_solver(self.ba, self.dm, geom, nge)

        logger.info(
            "PML on level %d: %d fine boxes, %d cells (%s mode)",
            level,
            len(self.ba),
            self.ba.num_pts(),
            "single-box" if self.is_single_box_domain else "multiple-box",
        )

        if cgeom is not None:
            self._build_coarse_patch(grid_ba, ncell, delta)

    def _check_config(self, dim: int) -> None:
        cfg = self.config
        if cfg.grid_type == "hybrid":
            raise PMLConfigurationError("The PML does not support hybrid grids")
        if cfg.do_moving_window and self.level > 1:
            raise PMLConfigurationError(
                "The PML with a moving window is only supported up to level 1"
            )
        if cfg.use_psatd:
            if dim == 1:
                raise PMLConfigurationError("The spectral PML is not supported in 1D")
            if cfg.j_in_time == "linear":
                raise PMLConfigurationError(
                    "The spectral PML does not support a current linear in time"
                )
            if cfg.psatd_solution_type == "second-order":
                raise PMLConfigurationError(
                    "The spectral PML only implements the first-order solution"
                )
            if any(cfg.fill_guards_current):
                raise PMLConfigurationError(
                    "The spectral PML does not write back the current, "
                    f"so fill_guards_current must be zero, got {cfg.fill_guards_current}"
                )
            if self.dt is None:
                raise PMLConfigurationError("The spectral PML requires the time step dt")

    def _guard_cells(self, dim: int, fine: bool) -> tuple[list[int], list[int], list[int]]:
        cfg = self.config
        if fine:
            nge, ngb = [2] * dim, [2] * dim
            if cfg.do_moving_window:
                d = cfg.moving_window_dir
                if d < dim:
                    rr = cfg.ref_ratio[d]
                    nge[d] = max(nge[d], rr)
                    ngb[d] = max(ngb[d], rr)
        else:
            nge, ngb = [1] * dim, [1] * dim
        ngf = [0] * dim
        if cfg.use_psatd:
            for d in range(dim):
                order = cfg.spectral_order[d]
                if order == -1:
                    ngfft = 0
                elif cfg.grid_type == "collocated":
                    ngfft = order
                else:
                    ngfft = order // 2
                if not fine:
                    nge[d] = ngb[d] = 2
                ng = max(ngfft, nge[d], ngb[d], ngf[d])
                nge[d] = ngb[d] = ngf[d] = ng
        return nge, ngb, ngf

    def _allocate(self, ba, dm, nge, ngb, ngf, suffix):
        cfg = self.config
        ncompe = 3 if cfg.do_pml_dive_cleaning else 2
        ncompb = 3 if cfg.do_pml_divb_cleaning else 2
        dim = ba.dim
        e = make_vector_field("E", ba, dm, ncompe, nge, cfg.grid_type, suffix)
        b = make_vector_field("B", ba, dm, ncompb, ngb, cfg.grid_type, suffix)
        j = make_vector_field("J", ba, dm, 1, ngb, cfg.grid_type, suffix)
        f = g = None
        if cfg.do_pml_dive_cleaning:
            f = FieldArray(
                ba, dm, 3, ngf, field_ixtype("F", 0, dim, cfg.grid_type), name=f"F{suffix}"
            )
        if cfg.do_pml_divb_cleaning:
            g = FieldArray(
                ba, dm, 3, ngf, field_ixtype("G", 0, dim, cfg.grid_type), name=f"G{suffix}"
            )
        return e, b, j, f, g

    def _unit_factors(self, kind: str, prefix: str, ba: BoxArray, dm: DistributionMapping):
        cfg = self.config
        factors = []
        for a in range(3):
            fa = FieldArray(
                ba,
                dm,
                1,
                cfg.max_guard_eb,
                field_ixtype(kind, a, ba.dim, cfg.grid_type),
                name=f"{prefix}_{AXIS_NAMES[a]}",
            )
            fa.set_val(1.0)
            factors.append(fa)
        return tuple(factors)

    def _make_spectral_solver(self, ba, dm, geom, ngrow) -> PMLSpectralSolver:
        cfg = self.config
        return PMLSpectralSolver(
            ba,
            dm,
            geom.cell_size,
            self.dt,
            cfg.spectral_order,
            grid_type=cfg.grid_type,
            ngrow=ngrow,
            dive_cleaning=cfg.do_pml_dive_cleaning,
            divb_cleaning=cfg.do_pml_divb_cleaning,
            has_particles=cfg.pml_has_particles,
            fill_guards=cfg.fill_guards_fields,
            j_in_time=cfg.j_in_time,
        )

    def _build_coarse_patch(self, grid_ba, ncell, delta) -> None:
        cfg = self.config
        cgeom = self.cgeom
        dim = cgeom.dim
        rr = cfg.ref_ratio
        grid_cba = grid_ba.coarsen(rr)
        cncell = tuple(n // r for n, r in zip(ncell, rr))
        cdelta = tuple(n // r for n, r in zip(delta, rr))

        if cfg.do_pml_in_domain:
            grid_cba_reduced = reduce_grids_for_pml(grid_cba, cncell, cfg.do_pml_lo, cfg.do_pml_hi)
        else:
            grid_cba_reduced = grid_cba
        cdomain = self.regdomain.coarsen(rr) if self.is_single_box_domain else None

        cba = make_box_array(
            self.is_single_box_domain,
            cdomain if cdomain is not None else grid_cba_reduced.minimal_box(),
            cgeom.domain,
            grid_cba_reduced,
            cncell,
            cfg.do_pml_in_domain,
            cfg.do_pml_lo,
            cfg.do_pml_hi,
        )
        if len(cba) == 0:
            logger.info("Coarse PML patch on level %d is empty; skipped", self.level)
            return

        nge, ngb, ngf = self._guard_cells(dim, fine=False)
        if cfg.do_similar_dm_pml:
            cdm = DistributionMapping.make_similar(cba, self.ba.coarsen(rr), self.dm, nge)
        else:
            cdm = DistributionMapping.from_box_array(cba, self.dm.nprocs, self.dm.my_rank)
        self.cba, self.cdm = cba, cdm

        self.pml_e_cp, self.pml_b_cp, self.pml_j_cp, self.pml_f_cp, self.pml_g_cp = (
            self._allocate(cba, cdm, nge, ngb, ngf, "_cp")
        )
        self.sigba_cp = MultiSigmaBox(
            cba, cdm, grid_cba_reduced, cgeom.cell_size, cncell, cdelta, cdomain, cfg.v_sigma_sb
        )
        if cfg.use_psatd:
            self.spectral_solver_cp = self._make_spectral_solver(cba, cdm, cgeom, nge)
        logger.info("Coarse PML patch on level %d: %d boxes", self.level, len(cba))

    # =========================================================================
    # State and accessors
    # =========================================================================

    @property
    def ok(self) -> bool:
        """Whether the layer has at least one box and a non-zero ramp."""
        return self._ok

    def _require_ok(self, operation: str) -> None:
        if not self._ok:
            raise PMLStateError(f"{operation} called on an empty PML (level {self.level})")

    def get_e_fp(self) -> VectorField | None:
        return self.pml_e_fp

    def get_b_fp(self) -> VectorField | None:
        return self.pml_b_fp

    def get_j_fp(self) -> VectorField | None:
        return self.pml_j_fp

    def get_e_cp(self) -> VectorField | None:
        return self.pml_e_cp

    def get_b_cp(self) -> VectorField | None:
        return self.pml_b_cp

    def get_j_cp(self) -> VectorField | None:
        return self.pml_j_cp

    def get_edge_lengths(self) -> tuple[FieldArray | None, FieldArray | None, FieldArray | None]:
        return self.pml_edge_lengths or (None, None, None)

    def get_face_areas(self) -> tuple[FieldArray | None, FieldArray | None, FieldArray | None]:
        return self.pml_face_areas or (None, None, None)

    def get_f_fp(self) -> FieldArray | None:
        return self.pml_f_fp

    def get_f_cp(self) -> FieldArray | None:
        return self.pml_f_cp

    def get_g_fp(self) -> FieldArray | None:
        return self.pml_g_fp

    def get_g_cp(self) -> FieldArray | None:
        return self.pml_g_cp

    def multi_sigma_box_fp(self) -> MultiSigmaBox | None:
        return self.sigba_fp

    def multi_sigma_box_cp(self) -> MultiSigmaBox | None:
        return self.sigba_cp

    def _patch_geom(self, patch_type: PatchType) -> Geometry:
        return self.geom if patch_type is PatchType.FINE else self.cgeom

    def _patches(self, patch_type: PatchType | None) -> list[PatchType]:
        if patch_type is not None:
            return [patch_type]
        patches = [PatchType.FINE]
        if self.pml_e_cp is not None:
            patches.append(PatchType.COARSE)
        return patches

    def _patch_fields(self, patch_type: PatchType):
        if patch_type is PatchType.FINE:
            return self.pml_e_fp, self.pml_b_fp, self.pml_j_fp, self.pml_f_fp, self.pml_g_fp
        return self.pml_e_cp, self.pml_b_cp, self.pml_j_cp, self.pml_f_cp, self.pml_g_cp

    # =========================================================================
    # Damping factors
    # =========================================================================

    def compute_pml_factors(self, dt: float) -> None:
        """Convert the profiles into the multiplicative factors for ``dt``.

        A no-op for a patch whose factors are already current for ``dt``.
        """
        self._require_ok("compute_pml_factors")
        self.sigba_fp.compute_pml_factors_b(self.geom.cell_size, dt)
        self.sigba_fp.compute_pml_factors_e(self.geom.cell_size, dt)
        if self.sigba_cp is not None:
            self.sigba_cp.compute_pml_factors_b(self.cgeom.cell_size, dt)
            self.sigba_cp.compute_pml_factors_e(self.cgeom.cell_size, dt)

    # =========================================================================
    # Exchange with the interior
    # =========================================================================

    def exchange(
        self,
        pml_fields: Sequence[FieldArray],
        reg_fields: Sequence[FieldArray | None],
        patch_type: PatchType,
        do_pml_in_domain: bool | None = None,
    ) -> None:
        """Exchange every component of a field with the interior."""
        self._require_ok("exchange")
        if do_pml_in_domain is None:
            do_pml_in_domain = self.config.do_pml_in_domain
        policy = CopyPolicy.from_pml_in_domain(do_pml_in_domain)
        geom = self._patch_geom(patch_type)
        for pml, reg in zip(pml_fields, reg_fields):
            if pml is not None and reg is not None:
                exchange_field(pml, reg, geom, policy)

    def exchange_e(self, e_fp: Sequence[FieldArray], e_cp: Sequence[FieldArray] | None = None) -> None:
        self.exchange(self.pml_e_fp, e_fp, PatchType.FINE)
        if e_cp is not None and self.pml_e_cp is not None:
            self.exchange(self.pml_e_cp, e_cp, PatchType.COARSE)

    def exchange_b(self, b_fp: Sequence[FieldArray], b_cp: Sequence[FieldArray] | None = None) -> None:
        self.exchange(self.pml_b_fp, b_fp, PatchType.FINE)
        if b_cp is not None and self.pml_b_cp is not None:
            self.exchange(self.pml_b_cp, b_cp, PatchType.COARSE)

    def exchange_f(self, f_fp: FieldArray, f_cp: FieldArray | None = None) -> None:
        if not self.config.do_pml_dive_cleaning:
            raise PMLConfigurationError("exchange_f requires do_pml_dive_cleaning")
        self.exchange([self.pml_f_fp], [f_fp], PatchType.FINE)
        if f_cp is not None and self.pml_f_cp is not None:
            self.exchange([self.pml_f_cp], [f_cp], PatchType.COARSE)

    def exchange_g(self, g_fp: FieldArray, g_cp: FieldArray | None = None) -> None:
        if not self.config.do_pml_divb_cleaning:
            raise PMLConfigurationError("exchange_g requires do_pml_divb_cleaning")
        self.exchange([self.pml_g_fp], [g_fp], PatchType.FINE)
        if g_cp is not None and self.pml_g_cp is not None:
            self.exchange([self.pml_g_cp], [g_cp], PatchType.COARSE)

    def copy_j_to_pml(self, patch_type: PatchType, j: Sequence[FieldArray]) -> None:
        """Copy the interior current into the layer's valid and guard cells."""
        self._require_ok("copy_j_to_pml")
        pml_j = self.pml_j_fp if patch_type is PatchType.FINE else self.pml_j_cp
        if pml_j is None:
            return
        geom = self._patch_geom(patch_type)
        for pml, reg in zip(pml_j, j):
            if reg is not None:
                pml.parallel_copy(reg, 0, 0, 1, 0, pml.ngrow, geom)

    def copy_j_to_pmls(
        self,
        j_fp: Sequence[FieldArray],
        j_cp: Sequence[FieldArray] | None = None,
    ) -> None:
        self.copy_j_to_pml(PatchType.FINE, j_fp)
        if j_cp is not None:
            self.copy_j_to_pml(PatchType.COARSE, j_cp)

    # =========================================================================
    # Guard cells
    # =========================================================================

    def _fill_boundary(self, fields, patch_type: PatchType, nodal_sync: bool | None) -> None:
        self._require_ok("fill_boundary")
        if nodal_sync is None:
            nodal_sync = self.config.nodal_sync
        geom = self._patch_geom(patch_type)
        for field in fields:
            if field is not None:
                field.fill_boundary(geom, nodal_sync)

    def fill_boundary_e(self, patch_type: PatchType = PatchType.FINE, nodal_sync: bool | None = None) -> None:
        e = self.pml_e_fp if patch_type is PatchType.FINE else self.pml_e_cp
        self._fill_boundary(e or (), patch_type, nodal_sync)

    def fill_boundary_b(self, patch_type: PatchType = PatchType.FINE, nodal_sync: bool | None = None) -> None:
        b = self.pml_b_fp if patch_type is PatchType.FINE else self.pml_b_cp
        self._fill_boundary(b or (), patch_type, nodal_sync)

    def fill_boundary_f(self, patch_type: PatchType = PatchType.FINE, nodal_sync: bool | None = None) -> None:
        f = self.pml_f_fp if patch_type is PatchType.FINE else self.pml_f_cp
        self._fill_boundary([f], patch_type, nodal_sync)

    def fill_boundary_g(self, patch_type: PatchType = PatchType.FINE, nodal_sync: bool | None = None) -> None:
        g = self.pml_g_fp if patch_type is PatchType.FINE else self.pml_g_cp
        self._fill_boundary([g], patch_type, nodal_sync)

    # =========================================================================
    # Time advance
    # =========================================================================

    def push_psatd(self) -> None:
        """Spectral push of the split fields of every patch, then damping.

        The push already calls :meth:`damp` on each patch it advances; do not
        damp again in the same step.
        """
        if self.spectral_solver_fp is None:
            raise PMLConfigurationError(
                "push_psatd requires a PML constructed with use_psatd=True"
            )
        solvers = [
            (PatchType.FINE, self.spectral_solver_fp),
            (PatchType.COARSE, self.spectral_solver_cp),
        ]
        for patch_type, solver in solvers:
            if solver is None:
                continue
            e, b, j, f, g = self._patch_fields(patch_type)
            solver.push(e, b, f, g, j if self.config.pml_has_particles else None)
            self.damp(patch_type)

    def _sigma_box(self, patch_type: PatchType, index: int) -> SigmaBox:
        sigba = self.sigba_fp if patch_type is PatchType.FINE else self.sigba_cp
        if sigba is None or not sigba.factors_computed:
            raise PMLStateError("PML factors must be computed before damping")
        return sigba[index]

    def _damp_split(self, field: FieldArray, splits: Sequence[int], patch_type: PatchType) -> None:
        dim = field.dim
        for i in field.local_indices():
            sigma_box = self._sigma_box(patch_type, i)
            for s, axis in enumerate(splits):
                if axis >= dim:
                    continue
                if field.ixtype[axis]:
                    factor = sigma_box.sigma_fac[axis].values
                else:
                    factor = sigma_box.sigma_star_fac[axis].values[:-1]
                field.view(i, comps=s)[...] *= _profile(factor, axis, dim)

    def damp(self, patch_type: PatchType | None = None) -> None:
        """Damp every split component by the factor of its axis.

        Raises:
            PMLStateError: If the factors have not been computed
        """
        self._require_ok("damp")
        cfg = self.config
        for patch in self._patches(patch_type):
            e, b, _, f, g = self._patch_fields(patch)
            if e is None:
                continue
            for a in range(3):
                esplits = [split_axis(a, s) for s in range(e[a].ncomp)]
                bsplits = [split_axis(a, s) for s in range(b[a].ncomp)]
                self._damp_split(e[a], esplits, patch)
                self._damp_split(b[a], bsplits, patch)
            if f is not None and cfg.do_pml_dive_cleaning:
                self._damp_split(f, [0, 1, 2], patch)
            if g is not None and cfg.do_pml_divb_cleaning:
                self._damp_split(g, [0, 1, 2], patch)

    def damp_j(self, patch_type: PatchType | None = None) -> None:
        """Damp the layer current by the product of the integrated profiles.

        Raises:
            PMLStateError: If the factors have not been computed
        """
        self._require_ok("damp_j")
        for patch in self._patches(patch_type):
            j = self._patch_fields(patch)[2]
            if j is None:
                continue
            for field in j:
                dim = field.dim
                for i in field.local_indices():
                    sigma_box = self._sigma_box(patch, i)
                    factor = 1.0
                    for d in range(dim):
                        if field.ixtype[d]:
                            values = sigma_box.sigma_cumsum_fac[d].values
                        else:
                            values = sigma_box.sigma_star_cumsum_fac[d].values[:-1]
                        factor = factor * _profile(values, d, dim)
                    field.view(i, comps=0)[...] *= factor

    # =========================================================================
    # Checkpoint / restart
    # =========================================================================

    @property
    def group_name(self) -> str:
        return f"pml_lev{self.level}"

    def named_fields(self) -> Iterator[tuple[str, FieldArray]]:
        """Every allocated field array with its checkpoint entry name."""
        for suffix, (e, b, j, f, g) in (
            ("_fp", self._patch_fields(PatchType.FINE)),
            ("_cp", self._patch_fields(PatchType.COARSE)),
        ):
            for prefix, vec in (("E", e), ("B", b), ("j", j)):
                if vec is None:
                    continue
                for a in range(3):
                    yield f"{prefix}{AXIS_NAMES[a]}{suffix}", vec[a]
            if f is not None:
                yield f"F{suffix}", f
            if g is not None:
                yield f"G{suffix}", g
        for prefix, vec in (("edge_lengths", self.pml_edge_lengths), ("face_areas", self.pml_face_areas)):
            if vec is None:
                continue
            for a in range(3):
                yield f"{prefix}_{AXIS_NAMES[a]}", vec[a]

    def checkpoint(self, path: str | Path) -> None:
        """Write every allocated field array to group ``pml_lev{level}`` of ``path``."""
        self._require_ok("checkpoint")
        attrs = {
            "level": self.level,
            "config": json.dumps(self.config.to_dict(), sort_keys=True),
        }
        with CheckpointWriter(path) as writer:
            writer.create_group(self.group_name, attrs)
            for name, field in self.named_fields():
                writer.write_field_array(self.group_name, name, field)
        logger.info("Wrote PML level %d checkpoint to %s", self.level, path)

    def restart(self, path: str | Path) -> None:
        """Load the field arrays written by :meth:`checkpoint`.

        Only the parameters that fix the layout and the profiles must match
        (see :data:`~strata_pml.boundaries.config.LAYOUT_PARAMETERS`). Entries
        absent from the file are set to zero, and an entry with fewer split
        components than this PML (a checkpoint written without divergence
        cleaning) fills the leading components.

        Raises:
            CheckpointError: If the file was written by a PML with a different
                layout or profile
        """
        self._require_ok("restart")
        with CheckpointReader(path) as reader:
            attrs = reader.group_attrs(self.group_name)
            if "config" in attrs:
                stored = json.loads(attrs["config"])
                current = json.loads(json.dumps(self.config.layout_parameters()))
                differing = sorted(
                    name for name, value in current.items()
                    if name in stored and stored[name] != value
                )
                if differing:
                    raise CheckpointError(
                        f"PML parameters in {path} differ from this PML's configuration: "
                        f"{', '.join(differing)}"
                    )
            else:
                logger.info("Checkpoint %s stores no PML parameters; not checked", path)
            for name, field in self.named_fields():
                if not reader.read_field_array(self.group_name, name, field):
                    logger.info("Checkpoint %s has no entry %s; set to zero", path, name)
                    field.set_val(0.0)
        logger.info("Restarted PML level %d from %s", self.level, path)
