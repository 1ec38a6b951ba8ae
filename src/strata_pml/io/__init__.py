"""HDF5 checkpoint persistence of field arrays."""

from strata_pml.io.checkpoint import (
    FORMAT_VERSION,
    CheckpointReader,
    CheckpointWriter,
    read_field_array,
    write_field_array,
)

__all__ = [
    "CheckpointWriter",
    "CheckpointReader",
    "write_field_array",
    "read_field_array",
    "FORMAT_VERSION",
]
