import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
import pytest  # noqa: E402

from wellsim.assembly.sequencer import Sequencer  # noqa: E402
from wellsim.assembly.timeline import Timeline, TimelinePoint  # noqa: E402
from wellsim.fluids.mud import Mud, MudCatalog, PumpQueue, PumpStage  # noqa: E402
from wellsim.geometry.wellbore import Wellbore  # noqa: E402

wb = Wellbore.vertical(2000)
catalog = MudCatalog([Mud("m1", "Base OBM", 1200), Mud("m2", "Kill Mud", 1400)])


def planned():
    seq = Sequencer(wb, catalog)
    seq.bootstrap()
    seq.add_operation("trip_out", end_md=1800, step=50, target_esd=1250)
    seq.add_operation("circulate", pump_queue=PumpQueue((PumpStage("m2", 2.0),)))
    seq.add_operation("trip_in", trip_in_step=100)
    return seq


@pytest.fixture(scope="module")
def timeline():
    seq = planned()
    seq.run_all()
    return Timeline(seq.operations, wb.tvd)


def test_length(timeline):
    # 5 trip out records, initial plus 4 pumped increments, 3 trip in records
    assert len(timeline) == 13
    assert [point.global_index for point in timeline.points()] == list(range(13))


def test_operation_ranges(timeline):
    ranges = timeline.operation_ranges()
    assert [(rng.start, rng.end) for rng in ranges] == [(0, 4), (5, 9), (10, 12)]
    assert timeline.operation_boundaries() == [(0, "1. Trip Out"), (5, "2. Circulate"), (10, "3. Trip In")]


def test_locate(timeline):
    assert timeline.locate(0) == (0, 0)
    assert timeline.locate(5) == (1, 0)
    assert timeline.locate(12) == (2, 2)
    with pytest.raises(IndexError, match="past the end"):
        timeline.locate(13)
    with pytest.raises(IndexError, match="negative"):
        timeline.locate(-1)


def test_step_and_wellbore_at(timeline):
    assert timeline.step_at(5).description == "Initial state at 1800m"
    display = timeline.wellbore_at(0)
    assert display.label == "1. Trip Out @ 2000m"
    assert display.bit_md == 2000
    assert timeline.wellbore_at(12).pocket_layers == ()


def test_points_carry_pressures(timeline):
    points = timeline.points()
    assert points[0].sabp == pytest.approx(981, rel=1e-3)
    assert points[0].total_esd == pytest.approx(1250, rel=1e-4)
    assert points[6].kind == "circulate"
    assert points[6].pump_rate > 0
    assert points[6].apl > 0
    assert points[11].pump_rate == 0


def test_total_esd():
    point = TimelinePoint(0, 0, "trip_out", "1. Trip Out", 2000, 1200, 981, 981, 2000, 0, 0)
    assert point.total_esd == pytest.approx(1250)


def test_final_state(timeline):
    assert timeline.final_state().bit_md == 2000


def test_to_frame(timeline):
    df = timeline.to_frame()
    assert len(df) == 13
    assert list(df.columns)[-1] == "total_esd"
    assert df["bit_md"].iloc[4] == 1800
    assert df["kind"].iloc[7] == "circulate"


def test_incomplete_operations_are_skipped():
    seq = planned()
    seq.run(0)
    partial = Timeline(seq.operations, wb.tvd)
    assert len(partial) == 5
    assert partial.final_state().bit_md == 1800
    assert Timeline([], wb.tvd).final_state() is None


def test_plot(timeline):
    fig = timeline.plot(show=False)
    assert len(fig.axes) == 3
    plt.close(fig)
