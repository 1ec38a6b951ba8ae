"""Spectral wavenumbers and the spectral push of the PML split fields."""

from strata_pml.spectral.kspace import (
    SpectralKSpace,
    exact_wavenumbers,
    modified_wavenumbers,
    shift_factor,
    stencil_coefficients,
)
from strata_pml.spectral.psatd import PMLSpectralSolver

__all__ = [
    "PMLSpectralSolver",
    "SpectralKSpace",
    "exact_wavenumbers",
    "modified_wavenumbers",
    "shift_factor",
    "stencil_coefficients",
]
