"""HDF5 persistence of distributed field arrays.

A checkpoint file holds one group per saved object (for a PML, one group
``pml_lev{level}`` per refinement level). Each field array is a subgroup
of that group:

    pml_lev0/
        Ex_fp/                  attrs: ncomp, ngrow, ixtype, boxes_lo, boxes_hi
            box_0               (nx, ny, ncomp) including guard cells
            box_1
            ...

Every locally owned box is written including its guard cells, so a
restart into the same layout restores the arrays bit for bit. Reading a
field into an array with a different layout raises
:class:`~strata_pml.exceptions.CheckpointError`; an array with more
components than were stored takes them as its leading components.

Example:
    >>> with CheckpointWriter("chk.h5") as writer:
    ...     writer.create_group("pml_lev0", {"dt": 1e-15})
    ...     writer.write_field_array("pml_lev0", "Ex_fp", ex)
    >>> with CheckpointReader("chk.h5") as reader:
    ...     reader.read_field_array("pml_lev0", "Ex_fp", ex)
    True
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import h5py
import numpy as np

from strata_pml.core.fields import FieldArray
from strata_pml.exceptions import CheckpointError

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1


def _layout(field: FieldArray) -> tuple[np.ndarray, np.ndarray]:
    lo = np.array([b.lo for b in field.box_array], dtype=np.int64)
    hi = np.array([b.hi for b in field.box_array], dtype=np.int64)
    return lo, hi


def write_field_array(
    group: h5py.Group,
    name: str,
    field: FieldArray,
    compression: str | None = "gzip",
    compression_level: int = 4,
) -> None:
    """Write the local boxes of ``field`` as subgroup ``name`` of ``group``.

    An existing subgroup of the same name is replaced.
    """
    if name in group:
        del group[name]
    sub = group.create_group(name)
    lo, hi = _layout(field)
    sub.attrs["ncomp"] = field.ncomp
    sub.attrs["ngrow"] = list(field.ngrow)
    sub.attrs["ixtype"] = list(field.ixtype)
    sub.attrs["boxes_lo"] = lo
    sub.attrs["boxes_hi"] = hi
    compression_opts = compression_level if compression == "gzip" else None
    for i in field.local_indices():
        sub.create_dataset(
            f"box_{i}",
            data=field[i],
            compression=compression,
            compression_opts=compression_opts,
        )


def read_field_array(group: h5py.Group, name: str, field: FieldArray) -> bool:
    """Load subgroup ``name`` of ``group`` into ``field``.

    An entry with fewer components than ``field`` fills its leading
    components and zeroes the rest.

    Returns:
        False when the entry is absent (``field`` is left untouched)

    Raises:
        CheckpointError: If the stored layout differs from ``field``'s, or
            the entry has more components than ``field``
    """
    if name not in group:
        return False
    sub = group[name]
    lo, hi = _layout(field)
    ncomp = int(sub.attrs["ncomp"])
    if (
        ncomp > field.ncomp
        or tuple(int(v) for v in sub.attrs["ngrow"]) != field.ngrow
        or tuple(int(v) for v in sub.attrs["ixtype"]) != field.ixtype
        or not np.array_equal(sub.attrs["boxes_lo"], lo)
        or not np.array_equal(sub.attrs["boxes_hi"], hi)
    ):
        raise CheckpointError(f"Checkpoint entry {name!r} does not match the field layout")
    if ncomp < field.ncomp:
        logger.debug(
            "Checkpoint entry %s has %d of %d components; the rest set to zero",
            name, ncomp, field.ncomp,
        )
    for i in field.local_indices():
        key = f"box_{i}"
        if key not in sub:
            raise CheckpointError(f"Checkpoint entry {name!r} has no data for box {i}")
        if ncomp == field.ncomp:
            sub[key].read_direct(field[i])
        else:
            field[i][..., :ncomp] = sub[key][...]
            field[i][..., ncomp:] = 0.0
    return True


class CheckpointWriter:
    """Writer for checkpoint files.

    Args:
        filename: Output file path
        mode: ``"a"`` to add to an existing file (default), ``"w"`` to truncate
        compression: Compression algorithm ('gzip', 'lzf', None)
        compression_level: Compression level (0-9 for gzip)
    """

    def __init__(
        self,
        filename: str | Path,
        mode: str = "a",
        compression: str | None = "gzip",
        compression_level: int = 4,
    ):
        self.filename = Path(filename)
        self.file = h5py.File(filename, mode)
        self.compression = compression
        self.compression_level = compression_level

        meta = self.file.require_group("metadata")
        meta.attrs["format_version"] = FORMAT_VERSION
        meta.attrs["written_at"] = datetime.now(timezone.utc).isoformat()

    def create_group(self, name: str, attrs: dict[str, Any] | None = None) -> h5py.Group:
        """Create (or replace) a top-level group with the given attributes."""
        if name in self.file:
            del self.file[name]
        group = self.file.create_group(name)
        for key, value in (attrs or {}).items():
            group.attrs[key] = value
        return group

    def write_field_array(self, group_name: str, name: str, field: FieldArray) -> None:
        write_field_array(
            self.file[group_name],
            name,
            field,
            compression=self.compression,
            compression_level=self.compression_level,
        )

    def close(self):
        if self.file:
            self.file.flush()
            self.file.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class CheckpointReader:
    """Reader for checkpoint files written by :class:`CheckpointWriter`."""

    def __init__(self, filename: str | Path):
        self.filename = Path(filename)
        self.file = h5py.File(filename, "r")

    def has_group(self, name: str) -> bool:
        return name in self.file

    def group_attrs(self, name: str) -> dict[str, Any]:
        if name not in self.file:
            raise CheckpointError(f"Checkpoint {self.filename} has no group {name!r}")
        return dict(self.file[name].attrs)

    def entry_names(self, group_name: str) -> list[str]:
        return list(self.file[group_name].keys())

    def read_field_array(self, group_name: str, name: str, field: FieldArray) -> bool:
        if group_name not in self.file:
            raise CheckpointError(f"Checkpoint {self.filename} has no group {group_name!r}")
        return read_field_array(self.file[group_name], name, field)

    def close(self):
        if self.file:
            self.file.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
