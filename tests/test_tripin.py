import pytest

from wellsim.engine.state import WellboreState
from wellsim.engine.tripin import TripIn, TripInInput, float_text
from wellsim.flow.hydraulics import PowerLawSwabSurge
from wellsim.fluids.layers import uniform_column
from wellsim.geometry.wellbore import Wellbore
from wellsim.utils.errors import InvalidRange

wb = Wellbore.vertical(2000)
casing = wb.with_pipe(0.1778, 0.1594)


def pulled_state(bit):
    """Bit partway out of the hole, the rest left as open hole"""
    return WellboreState(
        bit_md=bit,
        bit_tvd=wb.tvd(bit),
        control_md=2000.0,
        esd_at_control=1200.0,
        sabp=0.0,
        dynamic_sabp=0.0,
        float_state="CLOSED",
        string_layers=uniform_column(1200, 0, bit),
        annulus_layers=uniform_column(1200, 0, bit),
        pocket_layers=uniform_column(1200, bit, 2000),
    )


def run_in(start, end, **kwargs):
    settings = {"control_md": 2000.0, "target_esd": 1200.0, "fill_density": 1200.0}
    settings.update(kwargs)
    return TripInInput(start_md=start, end_md=end, **settings)


def test_depths_include_end():
    assert run_in(0, 250, step=100).depths() == [0, 100, 200, 250]
    assert run_in(1000, 1200, step=100).depths() == [1000, 1100, 1200]


def test_invalid_range():
    with pytest.raises(InvalidRange, match="deeper than start"):
        run_in(1500, 1000)


def test_fill_and_returns():
    steps = TripIn(wb, run_in(1000, 2000, step=100)).run(pulled_state(1000))
    assert len(steps) == 11
    assert steps[0].step_fill == 0
    assert steps[0].step_returns == 0
    for prev, step in zip(steps[:-1], steps[1:]):
        assert step.step_fill == pytest.approx(wb.volume_in_string(prev.bit_md, step.bit_md))
        # closed end pipe displaces its full OD
        assert step.step_returns == pytest.approx(wb.volume_of_string_od(prev.bit_md, step.bit_md), rel=1e-6)
    final = steps[-1]
    assert final.cumulative_fill == pytest.approx(wb.volume_in_string(1000, 2000))
    assert final.pocket_layers == ()
    assert final.float_state == "Full"


def test_uniform_mud_needs_no_choke():
    steps = TripIn(wb, run_in(1000, 2000, step=250)).run(pulled_state(1000))
    for step in steps:
        assert step.required_choke == pytest.approx(0, abs=1e-6)
        assert step.esd_at_control == pytest.approx(1200)


def test_light_fill_drops_below_target():
    state = pulled_state(1000)
    steps = TripIn(wb, run_in(1000, 2000, step=500, target_esd=1250)).run(state)
    assert all(step.is_below_target for step in steps)
    assert steps[-1].required_choke == pytest.approx(50 * 0.00981 * 2000, rel=1e-6)


def test_surge_reduces_dynamic_choke():
    model = PowerLawSwabSurge(60, 40)
    inp = run_in(1000, 1500, step=250, target_esd=1250, trip_speed=0.5)
    final = TripIn(wb, inp, swab_model=model).run(pulled_state(1000))[-1]
    assert final.surge > 0
    assert final.dynamic_choke == pytest.approx(max(0.0, final.required_choke - final.surge))


def empty_casing():
    return WellboreState(
        bit_md=0.0,
        bit_tvd=0.0,
        control_md=2000.0,
        esd_at_control=1200.0,
        sabp=0.0,
        dynamic_sabp=0.0,
        float_state="CLOSED",
        string_layers=(),
        annulus_layers=(),
        pocket_layers=uniform_column(1200, 0, 2000),
    )


def test_floated_casing_runs_air_below_float_sub():
    start = empty_casing()
    inp = run_in(0, 1000, step=250, is_floated_casing=True, float_sub_md=500)
    steps = TripIn(casing, inp).run(start)
    assert [step.float_state for step in steps[:2]] == ["Full", "Full"]
    # same mud on both sides of the float sub, the air below it does not count
    assert steps[2].float_state == "CLOSED 100%"
    assert steps[-1].float_state == "CLOSED 100%"
    assert steps[-1].cumulative_fill == pytest.approx(casing.volume_in_string(0, 500))
    assert steps[-1].string_layers[0].density == 1200
    assert steps[-1].string_layers[-1].density == pytest.approx(1.2)
    assert steps[-1].differential_pressure > 2100


def test_end_below_hole():
    with pytest.raises(InvalidRange, match="below the hole"):
        TripIn(wb, run_in(1000, 2100)).run(pulled_state(1000))


def test_float_text():
    assert float_text(0, 0) == "OPEN 100%"
    assert float_text(-1, 0) == "CLOSED 100%"
    assert float_text(1050, 2100) == "CLOSED 50%"
    assert float_text(2100, 2100) == "OPEN 50%"
    assert float_text(4200, 2100) == "OPEN 100%"


def test_light_fill_opens_float_sub():
    inp = run_in(0, 1250, step=250, is_floated_casing=True, float_sub_md=1000, fill_density=900.0)
    steps = TripIn(casing, inp).run(empty_casing())
    # 300 kg/m3 over 1000 m is 2943 kPa against a 2100 kPa crack
    assert steps[3].float_state == "Full"
    assert steps[4].float_state == "OPEN 90%"
    assert steps[5].float_state == "OPEN 90%"
    assert steps[5].string_layers[-1].density == pytest.approx(1.2)
