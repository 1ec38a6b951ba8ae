"""
Unit tests for PMLConfig.

Tests verify:
- Defaults and per-axis broadcasting
- Validation of every constrained parameter
- Dictionary round trip used by checkpoints
"""

import pytest
from scipy.constants import c

from strata_pml import PMLConfig


class TestPMLConfigDefaults:
    def test_defaults(self):
        """Test the default layer parameters."""
        config = PMLConfig()

        assert config.ncell == 10
        assert config.delta == 10
        assert config.grid_type == "staggered"
        assert config.v_sigma_sb == pytest.approx(c)
        assert config.do_similar_dm_pml is True
        assert config.do_pml_in_domain is False
        assert config.nodal_sync is True

    def test_for_dim_broadcasts(self):
        """Test scalar per-axis parameters expand to the dimension."""
        config = PMLConfig(ref_ratio=4).for_dim(3)

        assert config.ref_ratio == (4, 4, 4)
        assert config.do_pml_lo == (1, 1, 1)
        assert config.spectral_order == (16, 16, 16)

    def test_for_dim_truncates(self):
        """Test per-axis tuples are cut to the dimension."""
        config = PMLConfig(do_pml_hi=(0, 1, 1)).for_dim(2)
        assert config.do_pml_hi == (0, 1)

    def test_axis_values(self):
        """Test per-axis lookup of broadcastable parameters."""
        config = PMLConfig(fill_guards_fields=(1, 0))

        assert config.axis_values("fill_guards_fields", 2) == (1, 0)
        with pytest.raises(KeyError):
            config.axis_values("ncell", 2)

    def test_frozen(self):
        """Test that configurations are immutable."""
        config = PMLConfig()
        with pytest.raises(AttributeError):
            config.ncell = 4


class TestPMLConfigValidation:
    @pytest.mark.parametrize(
        "kwargs, match",
        [
            ({"ncell": -1}, "ncell"),
            ({"delta": -2}, "delta"),
            ({"max_guard_eb": -1}, "max_guard_eb"),
            ({"v_sigma_sb": 0.0}, "v_sigma_sb"),
            ({"ref_ratio": 0}, "ref_ratio"),
            ({"spectral_order": 3}, "spectral_order"),
            ({"spectral_order": (16, 0)}, "spectral_order"),
            ({"do_pml_lo": (1, 2)}, "do_pml_lo"),
            ({"fill_guards_current": -1}, "fill_guards_current"),
            ({"grid_type": "yee"}, "grid_type"),
            ({"psatd_solution_type": "third-order"}, "psatd_solution_type"),
            ({"j_in_time": "quadratic"}, "j_in_time"),
            ({"rho_in_time": "none"}, "rho_in_time"),
            ({"moving_window_dir": 3}, "moving_window_dir"),
        ],
    )
    def test_invalid_values(self, kwargs, match):
        """Test that out-of-range parameters are rejected."""
        with pytest.raises(ValueError, match=match):
            PMLConfig(**kwargs)

    def test_infinite_spectral_order_allowed(self):
        """Test -1 selects infinite order."""
        assert PMLConfig(spectral_order=-1).spectral_order == -1

    def test_hybrid_grid_is_a_valid_parameter(self):
        """Test the hybrid grid type is accepted by the configuration itself."""
        assert PMLConfig(grid_type="hybrid").grid_type == "hybrid"


class TestPMLConfigSerialization:
    def test_round_trip(self):
        """Test from_dict(to_dict()) reproduces the configuration."""
        config = PMLConfig(ncell=8, delta=6, do_pml_hi=(0, 1), spectral_order=(8, 16))

        data = config.to_dict()
        assert data["do_pml_hi"] == [0, 1]
        assert PMLConfig.from_dict(data) == config

    def test_unknown_key(self):
        """Test that unknown parameters are rejected."""
        with pytest.raises(ValueError, match="Unknown"):
            PMLConfig.from_dict({"ncell": 8, "thickness": 3})
