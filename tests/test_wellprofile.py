import matplotlib
import numpy as np
import pytest

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402

from wellsim.geometry.wellprofile import WellProfile, sort_profile  # noqa: E402

# Sample Data
md_list = [0, 100, 200, 300, 400, 500, 600, 700, 800, 900, 1000]
vd_list = [0, 95, 180, 270, 350, 375, 400, 410, 415, 420, 425]
wp = WellProfile(md_list, vd_list)

vert = WellProfile.vertical(2000)


def test_initialization():
    """Test WellProfile initialization with valid inputs"""
    assert len(wp.md_ray) == len(wp.vd_ray) == len(wp.hd_ray)
    assert wp.final_md == 1000


def test_initialization_invalid_lengths():
    """Test initialization failure for mismatched lengths"""
    with pytest.raises(ValueError, match="Lists for Measured Depth and Vertical Depth need to be the same length"):
        WellProfile([0, 100], [0, 80, 150])


def test_initialization_invalid_order():
    """Test initialization failure for measured depth being too short"""
    with pytest.raises(ValueError, match="Measured Depth needs to extend farther than Vertical Depth"):
        WellProfile([0, 80, 150], [0, 100, 200])


def test_initialization_single_station():
    with pytest.raises(ValueError, match="at least two survey stations"):
        WellProfile([0], [0])


def test_vd_interp():
    """Test vertical depth interpolation"""
    item_md = 350
    assert wp.vd_interp(item_md) <= item_md
    assert wp.vd_interp(item_md) == pytest.approx(310, 0.05)


def test_hd_interp():
    """Test horizontal distance interpolation"""
    item_md = 350
    assert wp.hd_interp(item_md) <= item_md
    assert wp.hd_interp(item_md) == pytest.approx(160, 0.05)


def test_md_interp():
    """Test measured depth interpolation"""
    item_vd = 190
    assert wp.md_interp(item_vd) >= item_vd
    assert wp.md_interp(item_vd) == pytest.approx(210, 0.01)


def test_interp_outside_survey():
    with pytest.raises(ValueError, match="not inside survey boundary"):
        wp.vd_interp(1200)


def test_interp_boundary_tolerance():
    """Stacked floating point depths a hair past TD still resolve"""
    assert wp.vd_interp(1000 + 1e-8) == pytest.approx(425)
    assert wp.covers(1000)
    assert not wp.covers(1000.1)


def test_vertical_profile():
    assert vert.vd_interp(1234.5) == pytest.approx(1234.5)
    assert vert.hd_interp(1500) == pytest.approx(0)


def test_sort_profile_drops_repeats():
    md_ray, vd_ray = sort_profile(np.array([200.0, 0.0, 100.0, 100.0]), np.array([190.0, 0.0, 99.0, 98.0]))
    assert list(md_ray) == [0, 100, 200]
    assert list(vd_ray) == [0, 99, 190]


def test_plot_raw(monkeypatch):
    monkeypatch.setattr(plt, "show", lambda: None)
    wp.plot_raw()
    assert plt.gca().yaxis_inverted()
    plt.close("all")
