"""
Construction parameters of a PML.

Example:
    >>> config = PMLConfig(ncell=8, delta=8, do_pml_hi=(0, 1))
    >>> config.for_dim(2).do_pml_lo
    (1, 1)
    >>> PMLConfig.from_dict(config.to_dict()) == config
    True
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import asdict, dataclass, fields, replace
from typing import Any

from scipy.constants import c as SPEED_OF_LIGHT

from strata_pml.core.box import as_intvect

GRID_TYPES = ("staggered", "collocated", "hybrid")
TIME_DEPENDENCIES = ("constant", "linear")
PSATD_SOLUTION_TYPES = ("first-order", "second-order")

# Fields that may be given as a scalar and are stored per axis
_PER_AXIS = (
    "ref_ratio",
    "spectral_order",
    "fill_guards_fields",
    "fill_guards_current",
    "do_pml_lo",
    "do_pml_hi",
)

# Parameters that fix the box layout and the damping profiles; a checkpoint
# can only be restored into a PML that agrees on all of them
LAYOUT_PARAMETERS = (
    "ncell",
    "delta",
    "do_pml_lo",
    "do_pml_hi",
    "do_pml_in_domain",
    "ref_ratio",
    "v_sigma_sb",
    "grid_type",
)


@dataclass(frozen=True)
class PMLConfig:
    """Parameters of the absorbing layer and the solver it couples to.

    Args:
        ncell: Thickness of the absorbing layer in cells
        delta: Ramp width in cells; the damping coefficient reaches its
            maximum ``4 * v_sigma_sb / dx`` at depth ``delta``
        ref_ratio: Refinement ratio between this level and the coarse patch
        do_similar_dm_pml: Place PML boxes on the ranks owning the
            neighbouring interior grids instead of load balancing them
        spectral_order: Spectral stencil order per axis (even, or -1 for
            infinite order)
        grid_type: ``"staggered"``, ``"collocated"`` or ``"hybrid"``
        do_moving_window: Whether a moving window shifts this level
        moving_window_dir: Axis the window moves along
        pml_has_particles: Whether particles deposit current in the layer
        do_pml_in_domain: Place the layer inside the physical domain
        psatd_solution_type: ``"first-order"`` or ``"second-order"``
        j_in_time: Time dependence of J in the spectral push
        rho_in_time: Time dependence of rho in the spectral push
        do_pml_dive_cleaning: Carry F and the diagonal split of E
        do_pml_divb_cleaning: Carry G and the diagonal split of B
        fill_guards_fields: Axes along which the spectral push writes back
            the guard cells of the fields
        fill_guards_current: Same for the current
        max_guard_eb: Guard width of the geometric-factor arrays
        v_sigma_sb: Wave speed used in the damping profile (m/s)
        do_pml_lo: Enable the layer on the low side of each axis
        do_pml_hi: Enable the layer on the high side of each axis
        use_psatd: Allocate a spectral solver for each patch
        use_geometric_factors: Allocate unit edge lengths and face areas
        nodal_sync: Default of the node-synchronisation pass of
            ``fill_boundary``

    Raises:
        ValueError: If any value is out of range
    """

    ncell: int = 10
    delta: int = 10
    ref_ratio: int | Sequence[int] = 2
    do_similar_dm_pml: bool = True
    spectral_order: int | Sequence[int] = 16
    grid_type: str = "staggered"
    do_moving_window: bool = False
    moving_window_dir: int = 0
    pml_has_particles: bool = False
    do_pml_in_domain: bool = False
    psatd_solution_type: str = "first-order"
    j_in_time: str = "constant"
    rho_in_time: str = "linear"
    do_pml_dive_cleaning: bool = False
    do_pml_divb_cleaning: bool = False
    fill_guards_fields: int | Sequence[int] = 0
    fill_guards_current: int | Sequence[int] = 0
    max_guard_eb: int = 0
    v_sigma_sb: float = SPEED_OF_LIGHT
    do_pml_lo: int | Sequence[int] = 1
    do_pml_hi: int | Sequence[int] = 1
    use_psatd: bool = False
    use_geometric_factors: bool = False
    nodal_sync: bool = True

    def __post_init__(self):
        for name in _PER_AXIS:
            value = getattr(self, name)
            if not isinstance(value, int):
                object.__setattr__(self, name, tuple(int(v) for v in value))

        if self.ncell < 0:
            raise ValueError(f"ncell must be non-negative, got {self.ncell}")
        if self.delta < 0:
            raise ValueError(f"delta must be non-negative, got {self.delta}")
        if self.max_guard_eb < 0:
            raise ValueError(f"max_guard_eb must be non-negative, got {self.max_guard_eb}")
        if self.v_sigma_sb <= 0:
            raise ValueError(f"v_sigma_sb must be positive, got {self.v_sigma_sb}")
        if any(r < 1 for r in self._values("ref_ratio")):
            raise ValueError(f"ref_ratio must be >= 1, got {self.ref_ratio}")
        for order in self._values("spectral_order"):
            if order != -1 and (order <= 0 or order % 2):
                raise ValueError(
                    f"spectral_order must be a positive even number or -1, got {order}"
                )
        for name in ("do_pml_lo", "do_pml_hi"):
            if any(v not in (0, 1) for v in self._values(name)):
                raise ValueError(f"{name} entries must be 0 or 1, got {getattr(self, name)}")
        for name in ("fill_guards_fields", "fill_guards_current"):
            if any(v < 0 for v in self._values(name)):
                raise ValueError(f"{name} entries must be non-negative")
        if self.grid_type not in GRID_TYPES:
            raise ValueError(f"grid_type must be one of {GRID_TYPES}, got {self.grid_type!r}")
        if self.psatd_solution_type not in PSATD_SOLUTION_TYPES:
            raise ValueError(
                f"psatd_solution_type must be one of {PSATD_SOLUTION_TYPES}, "
                f"got {self.psatd_solution_type!r}"
            )
        for name in ("j_in_time", "rho_in_time"):
            if getattr(self, name) not in TIME_DEPENDENCIES:
                raise ValueError(
                    f"{name} must be one of {TIME_DEPENDENCIES}, got {getattr(self, name)!r}"
                )
        if self.moving_window_dir not in (0, 1, 2):
            raise ValueError(f"moving_window_dir must be 0, 1 or 2, got {self.moving_window_dir}")

    def _values(self, name: str) -> tuple[int, ...]:
        value = getattr(self, name)
        return (value,) if isinstance(value, int) else value

    def axis_values(self, name: str, dim: int) -> tuple[int, ...]:
        """Per-axis value of a broadcastable field."""
        if name not in _PER_AXIS:
            raise KeyError(f"{name!r} is not a per-axis parameter")
        return as_intvect(getattr(self, name), dim)

    def for_dim(self, dim: int) -> PMLConfig:
        """Copy with every per-axis parameter expanded to ``dim`` entries."""
        return replace(self, **{name: self.axis_values(name, dim) for name in _PER_AXIS})

    def to_dict(self) -> dict[str, Any]:
        """JSON-compatible dictionary of every parameter."""
        data = asdict(self)
        for name in _PER_AXIS:
            if isinstance(data[name], tuple):
                data[name] = list(data[name])
        return data

    def layout_parameters(self) -> dict[str, Any]:
        """The subset of :meth:`to_dict` that fixes layout and profiles."""
        data = self.to_dict()
        return {name: data[name] for name in LAYOUT_PARAMETERS}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PMLConfig:
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown PMLConfig parameters: {sorted(unknown)}")
        return cls(**data)
