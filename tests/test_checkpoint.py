"""
Tests for HDF5 checkpointing of field arrays and PML state.

Tests verify:
- Field arrays round trip bit for bit, guard cells included
- Layout mismatches are detected
- PML checkpoint and restart, including missing entries
- Rejection of checkpoints written with different parameters
"""

import logging

import h5py
import numpy as np
import pytest

from strata_pml import PML, CheckpointError, PMLConfig, PMLStateError
from strata_pml.core import Box, BoxArray, DistributionMapping, FieldArray
from strata_pml.io import (
    FORMAT_VERSION,
    CheckpointReader,
    CheckpointWriter,
    read_field_array,
    write_field_array,
)


@pytest.fixture
def rng():
    return np.random.default_rng(42)


@pytest.fixture
def two_box_field(rng):
    ba = BoxArray([Box((0, 0), (7, 15)), Box((8, 0), (15, 15))])
    field = FieldArray(ba, DistributionMapping.from_box_array(ba), ncomp=2, ngrow=2, ixtype=(0, 1))
    for i in field.local_indices():
        field[i] = rng.standard_normal(field[i].shape)
    return field


def blank_like(field, **overrides):
    kwargs = dict(ncomp=field.ncomp, ngrow=field.ngrow, ixtype=field.ixtype)
    kwargs.update(overrides)
    return FieldArray(field.cell_box_array(), field.dm, **kwargs)


def fill_random(pml, rng):
    for _, field in pml.named_fields():
        for i in field.local_indices():
            field[i] = rng.standard_normal(field[i].shape)


# =============================================================================
# Field Array I/O Tests
# =============================================================================


class TestFieldArrayIO:
    def test_round_trip(self, tmp_path, two_box_field):
        """Test a field is restored bit for bit, guard cells included."""
        path = tmp_path / "field.h5"
        with h5py.File(path, "w") as f:
            write_field_array(f, "Ex", two_box_field)

        restored = blank_like(two_box_field)
        with h5py.File(path, "r") as f:
            assert read_field_array(f, "Ex", restored)

        for i in two_box_field.local_indices():
            np.testing.assert_array_equal(restored[i], two_box_field[i])

    def test_uncompressed(self, tmp_path, two_box_field):
        """Test writing without compression."""
        path = tmp_path / "field.h5"
        with h5py.File(path, "w") as f:
            write_field_array(f, "Ex", two_box_field, compression=None)
            assert f["Ex/box_0"].compression is None

    def test_layout_attributes(self, tmp_path, two_box_field):
        """Test the layout is stored with the data."""
        path = tmp_path / "field.h5"
        with h5py.File(path, "w") as f:
            write_field_array(f, "Ex", two_box_field)

        with h5py.File(path, "r") as f:
            attrs = f["Ex"].attrs
            assert attrs["ncomp"] == 2
            assert list(attrs["ngrow"]) == [2, 2]
            assert list(attrs["ixtype"]) == [0, 1]
            np.testing.assert_array_equal(attrs["boxes_hi"], [[7, 16], [15, 16]])
            assert f["Ex/box_1"].shape == (12, 21, 2)

    def test_missing_entry(self, tmp_path, two_box_field):
        """Test reading an absent entry returns False and leaves the field alone."""
        path = tmp_path / "field.h5"
        with h5py.File(path, "w") as f:
            f.create_group("empty")

        before = two_box_field[0].copy()
        with h5py.File(path, "r") as f:
            assert not read_field_array(f["empty"], "Ex", two_box_field)
        np.testing.assert_array_equal(two_box_field[0], before)

    @pytest.mark.parametrize(
        "overrides",
        [{"ncomp": 1}, {"ngrow": 1}, {"ixtype": (1, 0)}],
    )
    def test_layout_mismatch(self, tmp_path, two_box_field, overrides):
        """Test a field with a different layout cannot be restored."""
        path = tmp_path / "field.h5"
        with h5py.File(path, "w") as f:
            write_field_array(f, "Ex", two_box_field)

        other = blank_like(two_box_field, **overrides)
        with h5py.File(path, "r") as f:
            with pytest.raises(CheckpointError, match="does not match"):
                read_field_array(f, "Ex", other)

    def test_fewer_components(self, tmp_path, two_box_field):
        """Test an entry with fewer components fills the leading ones."""
        path = tmp_path / "field.h5"
        with h5py.File(path, "w") as f:
            write_field_array(f, "Ex", two_box_field)

        wider = blank_like(two_box_field, ncomp=3)
        wider.set_val(7.0)
        with h5py.File(path, "r") as f:
            assert read_field_array(f, "Ex", wider)

        for i in wider.local_indices():
            np.testing.assert_array_equal(wider[i][..., :2], two_box_field[i])
            assert np.all(wider[i][..., 2] == 0.0)

    def test_box_mismatch(self, tmp_path, two_box_field):
        """Test a field on different boxes cannot be restored."""
        path = tmp_path / "field.h5"
        with h5py.File(path, "w") as f:
            write_field_array(f, "Ex", two_box_field)

        ba = BoxArray([Box((0, 0), (3, 15)), Box((4, 0), (15, 15))])
        other = FieldArray(ba, two_box_field.dm, ncomp=2, ngrow=2, ixtype=(0, 1))
        with h5py.File(path, "r") as f:
            with pytest.raises(CheckpointError):
                read_field_array(f, "Ex", other)

    def test_missing_box(self, tmp_path, two_box_field):
        """Test a box written by no process is reported."""
        path = tmp_path / "field.h5"
        partial = FieldArray(
            two_box_field.cell_box_array(),
            DistributionMapping([0, 1], my_rank=0),
            ncomp=2,
            ngrow=2,
            ixtype=(0, 1),
        )
        with h5py.File(path, "w") as f:
            write_field_array(f, "Ex", partial)

        with h5py.File(path, "r") as f:
            with pytest.raises(CheckpointError, match="box 1"):
                read_field_array(f, "Ex", blank_like(two_box_field))


class TestCheckpointFiles:
    def test_metadata(self, tmp_path):
        """Test the writer records the format version."""
        path = tmp_path / "chk.h5"
        with CheckpointWriter(path, mode="w"):
            pass

        with h5py.File(path, "r") as f:
            assert f["metadata"].attrs["format_version"] == FORMAT_VERSION
            assert "written_at" in f["metadata"].attrs

    def test_groups(self, tmp_path, two_box_field):
        """Test groups, attributes and entries."""
        path = tmp_path / "chk.h5"
        with CheckpointWriter(path, mode="w") as writer:
            writer.create_group("pml_lev0", {"level": 0})
            writer.write_field_array("pml_lev0", "Ex_fp", two_box_field)

        with CheckpointReader(path) as reader:
            assert reader.has_group("pml_lev0")
            assert not reader.has_group("pml_lev1")
            assert reader.group_attrs("pml_lev0")["level"] == 0
            assert reader.entry_names("pml_lev0") == ["Ex_fp"]
            with pytest.raises(CheckpointError, match="no group"):
                reader.group_attrs("pml_lev1")
            with pytest.raises(CheckpointError, match="no group"):
                reader.read_field_array("pml_lev1", "Ex_fp", two_box_field)

    def test_group_replaced(self, tmp_path, two_box_field):
        """Test re-creating a group discards its old entries."""
        path = tmp_path / "chk.h5"
        with CheckpointWriter(path, mode="w") as writer:
            writer.create_group("pml_lev0")
            writer.write_field_array("pml_lev0", "Ex_fp", two_box_field)
        with CheckpointWriter(path) as writer:
            writer.create_group("pml_lev0", {"level": 0})

        with CheckpointReader(path) as reader:
            assert reader.entry_names("pml_lev0") == []


# =============================================================================
# PML Checkpoint Tests
# =============================================================================


@pytest.fixture
def full_config():
    return PMLConfig(
        ncell=8,
        delta=8,
        do_pml_dive_cleaning=True,
        do_pml_divb_cleaning=True,
        use_geometric_factors=True,
    )


def build_pml(grids, geom, config, level=0):
    grid_ba, grid_dm = grids
    return PML(level, grid_ba, grid_dm, geom, cgeom=geom.coarsen(2), config=config)


class TestPMLCheckpoint:
    def test_named_fields(self, single_grid, geom2d, full_config):
        """Test every allocated array has a checkpoint entry."""
        pml = build_pml(single_grid, geom2d, full_config)
        names = [name for name, _ in pml.named_fields()]

        assert names[:3] == ["Ex_fp", "Ey_fp", "Ez_fp"]
        assert "jz_fp" in names
        assert "F_fp" in names and "G_cp" in names
        assert names[-1] == "face_areas_z"
        assert len(names) == 2 * (9 + 2) + 6

    def test_round_trip(self, tmp_path, single_grid, geom2d, full_config, rng):
        """Test restart restores every array bit for bit."""
        path = tmp_path / "chk.h5"
        original = build_pml(single_grid, geom2d, full_config)
        fill_random(original, rng)
        original.checkpoint(path)

        restored = build_pml(single_grid, geom2d, full_config)
        restored.restart(path)

        for (name, a), (_, b) in zip(original.named_fields(), restored.named_fields()):
            for i in a.local_indices():
                np.testing.assert_array_equal(b[i], a[i], err_msg=name)

    def test_profiles_rebuilt(self, tmp_path, single_grid, geom2d, full_config):
        """Test the damping profiles of a restarted PML match the original."""
        path = tmp_path / "chk.h5"
        original = build_pml(single_grid, geom2d, full_config)
        original.checkpoint(path)
        restored = build_pml(single_grid, geom2d, full_config)
        restored.restart(path)

        for i in original.multi_sigma_box_fp():
            a = original.multi_sigma_box_fp()[i]
            b = restored.multi_sigma_box_fp()[i]
            for d in range(2):
                np.testing.assert_array_equal(a.sigma[d].values, b.sigma[d].values)
                np.testing.assert_array_equal(a.sigma_star_cumsum[d].values, b.sigma_star_cumsum[d].values)

    def test_group_attributes(self, tmp_path, single_grid, geom2d, full_config):
        """Test the level and the parameters are stored."""
        path = tmp_path / "chk.h5"
        build_pml(single_grid, geom2d, full_config, level=1).checkpoint(path)

        with CheckpointReader(path) as reader:
            attrs = reader.group_attrs("pml_lev1")
        assert attrs["level"] == 1
        assert '"ncell": 8' in attrs["config"]

    def test_missing_entry_zeroed(self, tmp_path, single_grid, geom2d, full_config, rng, caplog):
        """Test entries absent from the file are set to zero."""
        path = tmp_path / "chk.h5"
        original = build_pml(single_grid, geom2d, full_config)
        fill_random(original, rng)
        original.checkpoint(path)
        with h5py.File(path, "a") as f:
            del f["pml_lev0/Ex_fp"]

        restored = build_pml(single_grid, geom2d, full_config)
        ex = restored.get_e_fp()[0]
        ex.set_val(9.0)
        with caplog.at_level(logging.INFO, logger="strata_pml"):
            restored.restart(path)

        assert all(np.all(ex[i] == 0.0) for i in ex.local_indices())
        assert "Ex_fp" in caplog.text
        np.testing.assert_array_equal(restored.get_e_fp()[1][1], original.get_e_fp()[1][1])

    def test_levels_share_a_file(self, tmp_path, single_grid, geom2d, full_config, rng):
        """Test several levels can be written to one file."""
        path = tmp_path / "chk.h5"
        lev0 = build_pml(single_grid, geom2d, full_config, level=0)
        lev1 = build_pml(single_grid, geom2d, full_config, level=1)
        fill_random(lev0, rng)
        fill_random(lev1, rng)
        lev0.checkpoint(path)
        lev1.checkpoint(path)

        restored = build_pml(single_grid, geom2d, full_config, level=0)
        restored.restart(path)
        np.testing.assert_array_equal(restored.get_b_fp()[2][0], lev0.get_b_fp()[2][0])

    def test_config_mismatch(self, tmp_path, single_grid, geom2d, full_config):
        """Test a checkpoint written with other parameters is rejected."""
        path = tmp_path / "chk.h5"
        build_pml(single_grid, geom2d, full_config).checkpoint(path)

        other = PMLConfig(**{**full_config.to_dict(), "v_sigma_sb": 1.0e8})
        restored = build_pml(single_grid, geom2d, other)
        with pytest.raises(CheckpointError, match="differ.*v_sigma_sb"):
            restored.restart(path)

    def test_restart_enables_cleaning(self, tmp_path, single_grid, geom2d, rng):
        """Test a checkpoint without cleaning restores into a PML with cleaning.

        The split E components written by the older run fill the leading
        components; the diagonal split and F start from zero.
        """
        path = tmp_path / "chk.h5"
        original = build_pml(single_grid, geom2d, PMLConfig(ncell=8, delta=8))
        fill_random(original, rng)
        original.checkpoint(path)

        restored = build_pml(
            single_grid, geom2d, PMLConfig(ncell=8, delta=8, do_pml_dive_cleaning=True)
        )
        for field in (*restored.get_e_fp(), restored.get_f_fp(), restored.get_f_cp()):
            field.set_val(5.0)
        restored.restart(path)

        for field in (restored.get_f_fp(), restored.get_f_cp()):
            assert all(np.all(field[i] == 0.0) for i in field.local_indices())
        for old, new in zip(original.get_e_fp(), restored.get_e_fp()):
            for i in new.local_indices():
                np.testing.assert_array_equal(new[i][..., :2], old[i])
                assert np.all(new[i][..., 2] == 0.0)
        np.testing.assert_array_equal(restored.get_b_fp()[0][0], original.get_b_fp()[0][0])

    def test_other_parameters_not_checked(self, tmp_path, single_grid, geom2d, full_config, rng):
        """Test parameters that leave layout and profiles alone may change."""
        path = tmp_path / "chk.h5"
        original = build_pml(single_grid, geom2d, full_config)
        fill_random(original, rng)
        original.checkpoint(path)

        other = PMLConfig(**{**full_config.to_dict(), "nodal_sync": False, "do_similar_dm_pml": False})
        restored = build_pml(single_grid, geom2d, other)
        restored.restart(path)

        np.testing.assert_array_equal(restored.get_e_fp()[1][0], original.get_e_fp()[1][0])

    def test_parameters_attribute_optional(self, tmp_path, single_grid, geom2d, full_config, rng):
        """Test a checkpoint without stored parameters is restored unchecked."""
        path = tmp_path / "chk.h5"
        original = build_pml(single_grid, geom2d, full_config)
        fill_random(original, rng)
        original.checkpoint(path)
        with h5py.File(path, "a") as f:
            del f["pml_lev0"].attrs["config"]

        restored = build_pml(single_grid, geom2d, full_config)
        restored.restart(path)

        np.testing.assert_array_equal(restored.get_g_fp()[0], original.get_g_fp()[0])

    def test_missing_level(self, tmp_path, single_grid, geom2d, full_config):
        """Test restarting a level that was never written."""
        path = tmp_path / "chk.h5"
        build_pml(single_grid, geom2d, full_config, level=0).checkpoint(path)

        with pytest.raises(CheckpointError, match="pml_lev1"):
            build_pml(single_grid, geom2d, full_config, level=1).restart(path)

    def test_empty_pml(self, tmp_path, single_grid, geom2d):
        """Test an empty PML cannot be checkpointed."""
        pml = build_pml(single_grid, geom2d, PMLConfig(ncell=0, delta=0))
        with pytest.raises(PMLStateError):
            pml.checkpoint(tmp_path / "chk.h5")
