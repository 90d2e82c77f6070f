"""Timeline Aggregator

Joins the records of every completed operation into one global index so the
whole sequence can be scrubbed, charted or exported as a single table.
"""

from dataclasses import asdict, dataclass

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from wellsim.assembly.operation import Operation
from wellsim.engine.state import WellboreState
from wellsim.flow.hydraulics import esd_with_back_pressure


@dataclass(frozen=True)
class TimelinePoint:
    """One record on the global timeline, pressures kPa and densities kg/m3"""

    global_index: int
    operation_index: int
    kind: str
    label: str
    bit_md: float
    esd: float
    sabp: float
    dynamic_sabp: float
    control_tvd: float
    pump_rate: float
    apl: float

    @property
    def total_esd(self) -> float:
        """ESD with the static back pressure added"""
        return esd_with_back_pressure(self.esd, self.sabp, self.control_tvd)


@dataclass(frozen=True)
class OperationRange:
    start: int
    end: int
    kind: str
    label: str


@dataclass(frozen=True)
class WellboreDisplay:
    """Layers to draw at one point of the timeline"""

    bit_md: float
    string_layers: tuple
    annulus_layers: tuple
    pocket_layers: tuple
    label: str


def _pressures(oper: Operation, step) -> tuple[float, float, float, float]:
    """Static and dynamic back pressure, pump rate and APL of any record"""
    if oper.kind == "trip_out":
        return step.sabp, step.dynamic_sabp, 0.0, 0.0
    if oper.kind == "ream_out":
        return step.sabp, step.dynamic_sabp, step.pump_rate, step.apl
    if oper.kind == "trip_in":
        return step.required_choke, step.dynamic_choke, 0.0, 0.0
    if oper.kind == "ream_in":
        return step.required_choke, step.dynamic_choke, step.pump_rate, step.apl
    return step.static_sabp, step.required_sabp, step.pump_rate, step.apl


class Timeline:
    """Global view over the records of a sequence"""

    def __init__(self, operations: list[Operation], tvd) -> None:
        """Create a Timeline

        Args:
            operations (list): Operations in run order, incomplete ones are skipped
            tvd (callable): MD to TVD of the wellbore, used for the control depth
        """
        self.operations = operations
        self.tvd = tvd

    def _counts(self) -> list[int]:
        return [len(oper.steps) if oper.is_complete else 0 for oper in self.operations]

    def __len__(self) -> int:
        return sum(self._counts())

    def _label(self, op_idx: int) -> str:
        return f"{op_idx + 1}. {self.operations[op_idx].label}"

    def points(self) -> list[TimelinePoint]:
        points = []
        glob = 0
        for op_idx, oper in enumerate(self.operations):
            if not oper.is_complete:
                continue
            control_tvd = self.tvd(oper.output_state.control_md)
            label = self._label(op_idx)
            for step in oper.steps:
                sabp, dyn, rate, apl = _pressures(oper, step)
                points.append(
                    TimelinePoint(
                        global_index=glob,
                        operation_index=op_idx,
                        kind=oper.kind,
                        label=label,
                        bit_md=step.bit_md,
                        esd=step.esd_at_control,
                        sabp=sabp,
                        dynamic_sabp=dyn,
                        control_tvd=control_tvd,
                        pump_rate=rate,
                        apl=apl,
                    )
                )
                glob += 1
        return points

    def operation_ranges(self) -> list[OperationRange]:
        """First and last global index of every operation with records"""
        ranges = []
        idx = 0
        for op_idx, count in enumerate(self._counts()):
            if count > 0:
                oper = self.operations[op_idx]
                ranges.append(OperationRange(idx, idx + count - 1, oper.kind, self._label(op_idx)))
            idx += count
        return ranges

    def operation_boundaries(self) -> list[tuple[int, str]]:
        return [(rng.start, rng.label) for rng in self.operation_ranges()]

    def locate(self, global_index: int) -> tuple[int, int]:
        """Operation index and record index of a global index

        Raises:
            IndexError: global index is outside the timeline
        """
        if global_index < 0:
            raise IndexError(f"Timeline index {global_index} is negative")
        remaining = global_index
        for op_idx, count in enumerate(self._counts()):
            if remaining < count:
                return op_idx, remaining
            remaining -= count
        raise IndexError(f"Timeline index {global_index} is past the end at {len(self) - 1}")

    def step_at(self, global_index: int):
        op_idx, step_idx = self.locate(global_index)
        return self.operations[op_idx].steps[step_idx]

    def wellbore_at(self, global_index: int) -> WellboreDisplay:
        op_idx, step_idx = self.locate(global_index)
        oper = self.operations[op_idx]
        step = oper.steps[step_idx]
        return WellboreDisplay(
            bit_md=step.bit_md,
            string_layers=step.string_layers,
            annulus_layers=step.annulus_layers,
            pocket_layers=step.pocket_layers,
            label=f"{op_idx + 1}. {oper.label} @ {step.bit_md:.0f}m",
        )

    def final_state(self) -> WellboreState | None:
        """Output of the last completed operation"""
        for oper in reversed(self.operations):
            if oper.is_complete:
                return oper.output_state
        return None

    def to_frame(self) -> pd.DataFrame:
        """Timeline as a DataFrame, one row per record"""
        rows = []
        for point in self.points():
            row = asdict(point)
            row["total_esd"] = point.total_esd
            rows.append(row)
        columns = [*TimelinePoint.__dataclass_fields__, "total_esd"]
        return pd.DataFrame(rows, columns=columns)

    def plot(self, show: bool = True):
        """Plot the Timeline

        Bit depth on top, ESD with and without back pressure in the middle and
        the back pressures on the bottom. Operation starts are marked.

        Args:
            show (bool): Call plt.show once drawn

        Returns:
            fig (Figure): The matplotlib figure
        """
        df = self.to_frame()
        fig, (ax1, ax2, ax3) = plt.subplots(3, 1, sharex=True, figsize=(10, 8))
        glob = df["global_index"].to_numpy()

        ax1.plot(glob, df["bit_md"], color="k")
        ax1.invert_yaxis()
        ax1.set_ylabel("Bit MD, m")

        ax2.plot(glob, df["esd"], label="ESD")
        ax2.plot(glob, df["total_esd"], linestyle="--", label="ESD + SABP")
        ax2.set_ylabel("Density, kg/m³")
        ax2.legend()

        ax3.plot(glob, df["sabp"], label="SABP")
        ax3.plot(glob, df["dynamic_sabp"], linestyle="--", label="Dynamic SABP")
        if np.any(df["apl"].to_numpy() > 0):
            ax3.plot(glob, df["apl"], linestyle=":", label="APL")
        ax3.set_ylabel("Pressure, kPa")
        ax3.set_xlabel("Timeline Step")
        ax3.legend()

        for start, label in self.operation_boundaries():
            for ax in (ax1, ax2, ax3):
                ax.axvline(start, color="grey", linewidth=0.5)
            ax1.annotate(label, xy=(start, 0), xytext=(2, 2), textcoords="offset points", rotation=30)

        ax1.title.set_text("Simulation Timeline")
        if show:
            plt.show()
        return fig
