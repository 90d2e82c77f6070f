import pytest

from wellsim.engine.state import WellboreState
from wellsim.engine.tripout import TripOut, TripOutInput, state_after
from wellsim.flow.hydraulics import PowerLawSwabSurge
from wellsim.fluids.layers import FluidLayer, stack_volume, uniform_column
from wellsim.geometry.wellbore import Wellbore
from wellsim.utils.errors import InvalidRange

wb = Wellbore.vertical(2000)


def static_state(string, annulus, bit=2000.0, pocket=()):
    return WellboreState(
        bit_md=bit,
        bit_tvd=wb.tvd(bit),
        control_md=2000.0,
        esd_at_control=1200.0,
        sabp=0.0,
        dynamic_sabp=0.0,
        float_state="CLOSED",
        string_layers=string,
        annulus_layers=annulus,
        pocket_layers=pocket,
    )


uniform = static_state(uniform_column(1200, 0, 2000), uniform_column(1200, 0, 2000))


def trip(start=2000.0, end=1500.0, **kwargs):
    settings = {"control_md": 2000.0, "target_esd": 1200.0, "base_density": 1200.0, "backfill_density": 1200.0}
    settings.update(kwargs)
    return TripOutInput(start_md=start, end_md=end, **settings)


def test_scenario_uniform_mud():
    """Pulling out of a uniform mud needs no back pressure"""
    steps = TripOut(wb, trip(step=50)).run(uniform)
    assert len(steps) == 11
    assert [step.bit_md for step in steps][-1] == 1500
    for step in steps:
        assert step.sabp == pytest.approx(0, abs=1e-6)
        assert step.esd_at_control == pytest.approx(1200)


def test_scenario_held_target():
    """Holding 1250 on 1200 mud needs a constant 981 kPa"""
    steps = TripOut(wb, trip(end=1800, step=50, target_esd=1250)).run(uniform)
    sabps = [step.sabp for step in steps]
    assert sabps[0] == pytest.approx(50 * 0.00981 * 2000)
    for prev, nxt in zip(sabps[:-1], sabps[1:]):
        assert nxt > 0
        assert nxt >= prev - 1e-6


def test_closed_float_fills_od_volume():
    steps = TripOut(wb, trip(end=1900, step=50)).run(uniform)
    for step in steps[1:]:
        assert step.float_state == "CLOSED 100%"
        assert step.step_backfill == pytest.approx(step.expected_fill_closed)
    assert steps[-1].cumulative_backfill == pytest.approx(wb.volume_of_string_od(1900, 2000))


def test_open_float_fills_steel_volume():
    """Heavy string contents below crack pressure keep the float open, dry pipe"""
    state = static_state(uniform_column(1300, 0, 2000), uniform_column(1200, 0, 2000))
    steps = TripOut(wb, trip(end=1950, step=50)).run(state)
    assert steps[0].float_state == "CLOSED"
    assert steps[-1].float_state == "OPEN 100%"
    assert steps[-1].step_backfill == pytest.approx(steps[-1].expected_fill_open)
    assert steps[-1].slug_contribution == 0


def test_fluid_volume_conserved():
    """String, annulus and open hole contents always fill the hole around the steel"""
    steps = TripOut(wb, trip(end=1800, step=50, target_esd=1250)).run(uniform)
    final = steps[-1]
    total = (
        stack_volume(final.string_layers, "string", wb)
        + stack_volume(final.annulus_layers, "annulus", wb)
        + stack_volume(final.pocket_layers, "pocket", wb)
    )
    assert final.pocket_layers[0].top_md == pytest.approx(1800)
    assert total == pytest.approx(wb.volume_in_hole(0, 2000) - wb.volume_of_string_od(0, 1800) + wb.volume_in_string(0, 1800))


def test_initial_slug_equalizes():
    """A 200 m slug drains until the U-tube balances, about 50 m of air"""
    string = (FluidLayer(0, 200, 1500), FluidLayer(200, 2000, 1200))
    state = static_state(string, uniform_column(1200, 0, 2000))
    first = next(TripOut(wb, trip(end=1990, step=10, crack_float=0.0)).steps(state))
    expected = 50.05 * wb.string_area(100)
    assert first.float_state == "OPEN (Initial Slug)"
    assert first.slug_contribution == pytest.approx(expected, abs=0.015)
    assert first.pit_gain == first.slug_contribution
    assert first.string_layers[0].density == pytest.approx(1.2)


def test_observed_pit_gain_sizes_slug():
    string = (FluidLayer(0, 200, 1500), FluidLayer(200, 2000, 1200))
    state = static_state(string, uniform_column(1200, 0, 2000))
    first = next(TripOut(wb, trip(end=1990, step=10, observed_pit_gain=0.2)).steps(state))
    assert first.slug_contribution == pytest.approx(0.2, abs=1e-6)


def test_backfill_switches_to_base():
    inp = trip(end=1800, step=50, backfill_density=1400, fixed_backfill_volume=0.5, switch_to_base_after_fixed=True)
    steps = TripOut(wb, inp).run(uniform)
    final = steps[-1]
    assert steps[0].backfill_remaining == pytest.approx(0.5)
    assert final.backfill_remaining == 0
    assert final.annulus_layers[0].density == 1200
    assert any(lay.density == 1400 for lay in final.annulus_layers)


def test_fixed_backfill_without_switch_stays_kill_mud():
    inp = trip(end=1900, step=50, backfill_density=1400, fixed_backfill_volume=0.5)
    final = TripOut(wb, inp).run(uniform)[-1]
    assert final.annulus_layers[0].density == 1400


def test_hold_sabp_open():
    steps = TripOut(wb, trip(end=1900, step=50, target_esd=1250, hold_sabp_open=True)).run(uniform)
    for step in steps:
        assert step.sabp == 0
        assert step.sabp_raw == pytest.approx(981, rel=0.01)


def test_swab_adds_to_dynamic():
    model = PowerLawSwabSurge(60, 40)
    steps = TripOut(wb, trip(end=1900, step=50, trip_speed=0.5), swab_model=model).run(uniform)
    assert steps[-1].swab > 0
    assert steps[-1].dynamic_sabp == pytest.approx(steps[-1].sabp + steps[-1].swab)


def test_start_must_match_bit():
    with pytest.raises(InvalidRange, match="but the bit is at"):
        TripOut(wb, trip(start=1900, end=1500)).run(uniform)


def test_invalid_range():
    with pytest.raises(InvalidRange, match="deeper than end"):
        trip(start=1000, end=1500)


def test_state_after():
    final = TripOut(wb, trip(end=1950, step=50)).run(uniform)[-1]
    state = state_after(final, 2000.0)
    assert state.bit_md == 1950
    assert state.hole_td == pytest.approx(2000)
