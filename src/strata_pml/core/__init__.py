"""Block-structured mesh primitives: boxes, geometry, ownership and fields."""

from strata_pml.core.box import Box, BoxArray, IntVect, as_intvect, box_diff
from strata_pml.core.fields import (
    AXIS_NAMES,
    FieldArray,
    field_ixtype,
    make_vector_field,
)
from strata_pml.core.geometry import DistributionMapping, Geometry

__all__ = [
    "Box",
    "BoxArray",
    "IntVect",
    "as_intvect",
    "box_diff",
    "Geometry",
    "DistributionMapping",
    "FieldArray",
    "field_ixtype",
    "make_vector_field",
    "AXIS_NAMES",
]
