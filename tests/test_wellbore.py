import math

import pytest

from wellsim.geometry.wellbore import AnnulusSection, StringSection, Wellbore, circle_area
from wellsim.geometry.wellprofile import WellProfile
from wellsim.utils.errors import MissingGeometry

wb = Wellbore.vertical(2000)
cased = Wellbore.vertical(2000, shoe_md=1200, casing_id=0.2245)

# deviated well with a tapered string
profile = WellProfile([0, 500, 1000, 1500, 2500], [0, 500, 950, 1300, 1800])
tapered = Wellbore(
    [
        AnnulusSection(0, 1000, 0.2245, cased=True, name="intermediate"),
        AnnulusSection(1000, 2500, 0.2159, name="open hole"),
    ],
    [
        StringSection(0, 2200, 0.127, 0.1086, name="drill pipe"),
        StringSection(2200, 2500, 0.1651, 0.0714, name="collars"),
    ],
    profile,
)


def test_circle_area():
    assert circle_area(0.2) == pytest.approx(math.pi * 0.01)


def test_vertical_volumes():
    """Capacity, annulus and steel add up to the hole"""
    hole = wb.volume_in_hole(0, 1000)
    assert hole == pytest.approx(circle_area(0.2159) * 1000)
    assert wb.volume_in_string(0, 1000) == pytest.approx(circle_area(0.1086) * 1000)
    assert wb.volume_of_string_od(0, 1000) + wb.volume_in_annulus(0, 1000) == pytest.approx(hole)
    steel = wb.volume_of_string_od(0, 1000) - wb.volume_in_string(0, 1000)
    assert steel == pytest.approx(wb.steel_area(500) * 1000)


def test_volume_order_does_not_matter():
    assert wb.volume_in_annulus(800, 300) == pytest.approx(wb.volume_in_annulus(300, 800))
    assert wb.volume_in_annulus(300, 300) == 0


def test_tapered_volumes_across_breaks():
    vol = tapered.volume_in_string(2100, 2300)
    assert vol == pytest.approx(circle_area(0.1086) * 100 + circle_area(0.0714) * 100)
    ann = tapered.volume_in_annulus(900, 1100)
    expected = (circle_area(0.2245) - circle_area(0.127)) * 100 + (circle_area(0.2159) - circle_area(0.127)) * 100
    assert ann == pytest.approx(expected)


def test_pipe_and_hole_lookup():
    assert tapered.pipe_od(2300) == pytest.approx(0.1651)
    assert tapered.pipe_id(100) == pytest.approx(0.1086)
    assert tapered.hole_diameter(500) == pytest.approx(0.2245)
    assert tapered.hole_diameter(2000) == pytest.approx(0.2159)


def test_shoe_and_td():
    assert wb.hole_td == 2000
    assert wb.shoe_md == 2000  # nothing cased, falls back to TD
    assert cased.shoe_md == 1200
    assert tapered.shoe_md == 1000


def test_tvd_follows_profile():
    assert tapered.tvd(1250) == pytest.approx(1125)
    assert wb.tvd(1500) == pytest.approx(1500)


def test_with_pipe():
    casing = wb.with_pipe(0.1778, 0.1594)
    assert casing.pipe_od(1500) == pytest.approx(0.1778)
    assert casing.volume_in_string(0, 100) == pytest.approx(circle_area(0.1594) * 100)
    assert wb.pipe_od(1500) == pytest.approx(0.127)  # original untouched


def test_validate_ok():
    tapered.validate(0, 1000, 2500)


def test_validate_no_annulus():
    empty = Wellbore([], [StringSection(0, 100, 0.127, 0.1086)], WellProfile.vertical(100))
    with pytest.raises(MissingGeometry, match="No annulus sections"):
        empty.validate()


def test_validate_no_string():
    empty = Wellbore([AnnulusSection(0, 100, 0.2)], [], WellProfile.vertical(100))
    with pytest.raises(MissingGeometry, match="No drill string sections"):
        empty.validate()


def test_validate_below_td():
    with pytest.raises(MissingGeometry, match="below hole TD"):
        wb.validate(2100)


def test_validate_outside_survey():
    short = Wellbore([AnnulusSection(0, 3000, 0.2)], [StringSection(0, 3000, 0.127, 0.1086)], WellProfile.vertical(2000))
    with pytest.raises(MissingGeometry, match="outside the survey"):
        short.validate(2500)


def test_invalid_sections():
    with pytest.raises(ValueError, match="must be below top"):
        AnnulusSection(100, 50, 0.2)
    with pytest.raises(ValueError, match="diameter must be positive"):
        AnnulusSection(0, 50, 0)
    with pytest.raises(ValueError, match="0 <= ID < OD"):
        StringSection(0, 50, 0.1, 0.12)
