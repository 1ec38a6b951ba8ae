"""
Strata PML - absorbing boundary layers for block-structured field solvers.

Main exports:
- PML: Perfectly Matched Layer of one refinement level
- PMLConfig: Layer parameters
- Sigma, SigmaBox, MultiSigmaBox: Damping-coefficient profiles
- Box, BoxArray, DistributionMapping, Geometry: Mesh description
- FieldArray: Distributed multi-component field storage
- PMLSpectralSolver: Spectral push of the split fields
"""

from strata_pml.boundaries import (
    PML,
    CopyPolicy,
    MultiSigmaBox,
    PatchType,
    PMLConfig,
    Sigma,
    SigmaBox,
)
from strata_pml.core import (
    Box,
    BoxArray,
    DistributionMapping,
    FieldArray,
    Geometry,
    field_ixtype,
    make_vector_field,
)
from strata_pml.exceptions import (
    CheckpointError,
    PMLConfigurationError,
    PMLError,
    PMLGeometryError,
    PMLStateError,
)
from strata_pml.spectral import PMLSpectralSolver

# Submodules for more specific imports
from . import boundaries, core, io, spectral

__version__ = "0.1.0"

__all__ = [
    # PML
    "PML",
    "PMLConfig",
    "PatchType",
    "CopyPolicy",
    "Sigma",
    "SigmaBox",
    "MultiSigmaBox",
    "PMLSpectralSolver",
    # Mesh
    "Box",
    "BoxArray",
    "DistributionMapping",
    "Geometry",
    "FieldArray",
    "field_ixtype",
    "make_vector_field",
    # Errors
    "PMLError",
    "PMLConfigurationError",
    "PMLGeometryError",
    "PMLStateError",
    "CheckpointError",
    # Submodules
    "boundaries",
    "core",
    "io",
    "spectral",
]
