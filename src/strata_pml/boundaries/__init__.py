"""Perfectly Matched Layer: damping profiles, box layout and orchestration."""

from strata_pml.boundaries._pml import (
    PML,
    CopyPolicy,
    PatchType,
    exchange_field,
    split_axis,
)
from strata_pml.boundaries.config import PMLConfig
from strata_pml.boundaries.layout import (
    make_box_array,
    make_box_array_multiple,
    make_box_array_single,
    neighbour_offsets,
    pml_envelope,
    reduce_grids_for_pml,
)
from strata_pml.boundaries.sigma import MultiSigmaBox, Sigma, SigmaBox

__all__ = [
    "PML",
    "PMLConfig",
    "PatchType",
    "CopyPolicy",
    "exchange_field",
    "split_axis",
    "Sigma",
    "SigmaBox",
    "MultiSigmaBox",
    "make_box_array",
    "make_box_array_single",
    "make_box_array_multiple",
    "neighbour_offsets",
    "pml_envelope",
    "reduce_grids_for_pml",
]
