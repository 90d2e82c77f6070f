import math

import pytest

from wellsim.flow.hydraulics import (
    KPA_PER_M,
    BinghamAPL,
    NoSwabSurge,
    PowerLawAPL,
    PowerLawSwabSurge,
    SimplifiedAPL,
    annulus_segments,
    esd_with_back_pressure,
    float_state_label,
    power_law_from_dials,
    required_back_pressure,
    swab_model_for,
)
from wellsim.fluids.layers import FluidLayer, equivalent_static_density, hydrostatic_pressure, uniform_column
from wellsim.geometry.wellbore import Wellbore
from wellsim.utils.errors import NonConvergentBackPressureSolve

wb = Wellbore.vertical(2000)
annulus = uniform_column(1200, 0, 2000)


def test_back_pressure_scenario():
    assert required_back_pressure(1200, 1250, 2000) == pytest.approx(50 * 0.00981 * 2000)


def test_back_pressure_never_negative():
    assert required_back_pressure(1300, 1250, 2000) == 0
    assert required_back_pressure(1200, 1250, 0) == 0


def test_back_pressure_round_trip():
    """Applying the solved SABP reproduces the target"""
    layers = (FluidLayer(0, 700, 1050), FluidLayer(700, 1600, 1180), FluidLayer(1600, 2000, 1230))
    esd = equivalent_static_density(layers, 1800, wb.tvd)
    sabp = required_back_pressure(esd, 1260, wb.tvd(1800))
    assert esd_with_back_pressure(esd, sabp, wb.tvd(1800)) == pytest.approx(1260)
    total = hydrostatic_pressure(layers, 0, 1800, wb.tvd) + sabp
    assert total / (KPA_PER_M * 1800) == pytest.approx(1260)


def test_back_pressure_non_finite():
    with pytest.raises(NonConvergentBackPressureSolve, match="non-finite"):
        required_back_pressure(math.nan, 1250, 2000)


def test_float_state_label():
    assert float_state_label(0, 10) == "CLOSED 100%"
    assert float_state_label(10, 10) == "OPEN 100%"
    assert float_state_label(3, 10) == "OPEN 30%"
    assert float_state_label(0, 0) == "CLOSED 100%"


def test_power_law_constants():
    k_cons, n_flow = power_law_from_dials(60, 40)
    assert n_flow == pytest.approx(math.log(1.5) / math.log(2), rel=1e-3)
    assert k_cons > 0
    with pytest.raises(ValueError, match="Dial readings must be positive"):
        power_law_from_dials(0, 40)


def test_annulus_segments_cover_bit():
    total = sum(length for _, _, length in annulus_segments(annulus, 1234.0, 10.0))
    assert total == pytest.approx(1234.0)


def test_no_surge_at_zero_speed():
    model = PowerLawSwabSurge(60, 40)
    assert model.pressure(annulus, 2000, 0.0, 1.2, wb) == 0
    assert NoSwabSurge().pressure(annulus, 2000, 1.0, 1.2, wb) == 0


def test_swab_grows_with_speed_and_eccentricity():
    model = PowerLawSwabSurge(60, 40)
    slow = model.pressure(annulus, 2000, 0.2, 1.0, wb)
    fast = model.pressure(annulus, 2000, 0.5, 1.0, wb)
    ecc = model.pressure(annulus, 2000, 0.5, 1.5, wb)
    assert 0 < slow < fast < ecc


def test_open_float_swabs_less():
    model = PowerLawSwabSurge(60, 40)
    closed = model.pressure(annulus, 2000, 0.5, 1.2, wb, float_open=False)
    opened = model.pressure(annulus, 2000, 0.5, 1.2, wb, float_open=True)
    assert opened < closed


def test_simplified_apl():
    gap = 0.2159 - 0.127
    expected = 5e-5 * 1200 * 2000 * 1.0**2 / gap
    assert SimplifiedAPL().pressure(annulus, 2000, 1.0, wb) == pytest.approx(expected)
    assert SimplifiedAPL().pressure(annulus, 2000, 0.0005, wb) == 0


@pytest.mark.parametrize("model", [SimplifiedAPL(), BinghamAPL(20, 8), PowerLawAPL(60, 40)])
def test_apl_rises_with_rate(model):
    assert model.pressure(annulus, 2000, 0.5, wb) < model.pressure(annulus, 2000, 1.0, wb)


def test_swab_model_for():
    assert isinstance(swab_model_for(None, None), NoSwabSurge)
    assert isinstance(swab_model_for(60, 40), PowerLawSwabSurge)
