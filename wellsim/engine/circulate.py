"""Circulation Engine

Pumps the queue down the string with the bit stationary. Fluid enters the top of
the string, leaves the bit into the bottom of the annulus and the oldest annulus
fluid returns at surface. The open hole below the bit is not swept.

The choke only has to supply what the friction of the returns does not. When the
annular pressure loss at the maximum rate already exceeds the static back pressure,
the rate is cut back with a brentq root solve so the annulus is not over pressured.
"""

import logging
from dataclasses import dataclass
from typing import Iterator

from scipy import optimize as opt

from wellsim.engine.state import CirculationStep, WellboreState
from wellsim.flow.hydraulics import (
    EPS,
    M3_TO_BBL,
    MIN_FLOW_RATE,
    AnnularPressureLossModel,
    SimplifiedAPL,
    required_back_pressure,
)
from wellsim.fluids.layers import (
    Parcel,
    coalesce,
    equivalent_static_density,
    insert_at_bottom,
    insert_at_top,
    normalize,
)
from wellsim.utils.errors import QueueExhaustedEarly

logger = logging.getLogger(__name__)

RATE_TOL = 1e-4  # m3/min


@dataclass(frozen=True)
class PumpedFluid:
    """Queue entry with the mud already resolved"""

    name: str
    density: float
    volume: float
    color: str | None = None


@dataclass(frozen=True)
class CirculateInput:
    """Resolved Circulation Settings

    Args:
        bit_md (float): Bit depth, meters
        control_md (float): Depth the target density is held at, meters
        target_esd (float): Density to hold at control, kg/m3
        stages (tuple): Fluids to pump, in order
        max_pump_rate (float): Highest pump rate, m3/min
        min_pump_rate (float): Lowest pump rate, m3/min
        pump_output (float): Pump displacement, m3/stroke
    """

    bit_md: float
    control_md: float
    target_esd: float
    stages: tuple[PumpedFluid, ...]
    max_pump_rate: float = 1.0
    min_pump_rate: float = 0.2
    pump_output: float = 0.01

    def __post_init__(self):
        if self.min_pump_rate > self.max_pump_rate:
            raise ValueError(f"Min pump rate {self.min_pump_rate} is above max pump rate {self.max_pump_rate}")
        if self.pump_output <= 0:
            raise ValueError(f"Pump output must be positive, got {self.pump_output}")

    @property
    def total_volume(self) -> float:
        return sum(stage.volume for stage in self.stages)


def pump_around(string, annulus, bit: float, parcel: Parcel, geom):
    """Push One Parcel Around the Circuit

    Down the string, out the bit, up the annulus.

    Returns:
        string (tuple): New string stack
        annulus (tuple): New annulus stack
        returns (list): Parcels that reached surface, first out first
    """
    string, out_bit = insert_at_top(string, "string", parcel.density, parcel.volume, geom, parcel.color, (0.0, bit))
    annulus, returns = insert_at_bottom(annulus, "annulus", coalesce(out_bit), geom, span=(0.0, bit))
    return normalize(string, 0.0, bit), normalize(annulus, 0.0, bit), returns


def solve_pump_rate(apl_at, static_sabp: float, max_rate: float, min_rate: float) -> tuple[float, float, float]:
    """Pump Rate and Choke for a Static Back Pressure

    Args:
        apl_at (callable): Annular pressure loss at a pump rate, kPa
        static_sabp (float): Back pressure needed with the pumps off, kPa
        max_rate (float): Highest pump rate, m3/min
        min_rate (float): Lowest pump rate, m3/min

    Returns:
        rate (float): Pump rate, m3/min
        apl (float): Annular pressure loss at that rate, kPa
        choke (float): Back pressure to hold at surface, kPa
    """
    if max_rate <= MIN_FLOW_RATE:
        return max_rate, 0.0, static_sabp
    apl = apl_at(max_rate)
    if apl <= static_sabp:
        return max_rate, apl, static_sabp - apl

    floor_apl = apl_at(min_rate)
    if floor_apl > static_sabp:
        # friction alone overshoots the target even at the slowest rate
        return min_rate, floor_apl, 0.0

    rate = float(opt.brentq(lambda q: apl_at(q) - static_sabp, min_rate, max_rate, xtol=RATE_TOL))
    apl = apl_at(rate)
    return rate, apl, max(0.0, static_sabp - apl)


class Circulate:
    """Circulation Simulation"""

    def __init__(self, geom, inp: CirculateInput, apl_model: AnnularPressureLossModel | None = None) -> None:
        """Create a Circulation

        Args:
            geom (GeometryProvider): Wellbore geometry
            inp (CirculateInput): Resolved settings
            apl_model (AnnularPressureLossModel): Friction correlation, defaults to SimplifiedAPL
        """
        self.geom = geom
        self.inp = inp
        self.apl_model = apl_model or SimplifiedAPL()
        self.control_tvd = geom.tvd(inp.control_md)

    def steps(self, state: WellboreState) -> Iterator[CirculationStep]:
        """Run the Circulation

        Args:
            state (WellboreState): Wellbore before pumping

        Yields:
            step (CirculationStep): Initial record, then one per pumped increment
        """
        inp, geom = self.inp, self.geom
        total = inp.total_volume
        if not inp.stages or total <= EPS:
            raise QueueExhaustedEarly(
                "Pump queue is empty, nothing to circulate", suggestion="Add at least one mud with a volume"
            )
        for num, stage in enumerate(inp.stages, start=1):
            if stage.volume <= EPS:
                raise QueueExhaustedEarly(
                    f"Pump stage {num} ({stage.name}) has no volume",
                    suggestion="Give every queued mud a positive volume or remove it",
                    details={"stage": num},
                )

        bit = state.bit_md
        string = normalize(state.string_layers, 0.0, bit)
        annulus = normalize(state.annulus_layers, 0.0, bit)
        pocket = tuple(state.pocket_layers)

        esd = equivalent_static_density(annulus + pocket, inp.control_md, geom.tvd)
        initial_sabp = required_back_pressure(esd, inp.target_esd, self.control_tvd)
        prev_sabp = initial_sabp
        yield CirculationStep(
            step_index=0,
            bit_md=bit,
            volume_pumped=0.0,
            volume_pumped_bbl=0.0,
            strokes=0.0,
            esd_at_control=esd,
            static_sabp=initial_sabp,
            required_sabp=initial_sabp,
            delta_sabp=0.0,
            cumulative_delta_sabp=0.0,
            description=f"Initial state at {int(bit)}m",
            pump_rate=0.0,
            apl=0.0,
            string_layers=string,
            annulus_layers=annulus,
            pocket_layers=pocket,
        )

        step_vol = max(0.5, total / 200)
        pumped_total = 0.0
        idx = 1
        for stage in inp.stages:
            pumped = 0.0
            while stage.volume - pumped > EPS:
                vol = min(step_vol, stage.volume - pumped)
                pumped += vol
                pumped_total += vol
                string, annulus, returns = pump_around(
                    string, annulus, bit, Parcel(stage.density, vol, stage.color), geom
                )

                esd = equivalent_static_density(annulus + pocket, inp.control_md, geom.tvd)
                static = required_back_pressure(esd, inp.target_esd, self.control_tvd)
                rate, apl, choke = solve_pump_rate(
                    lambda q: self.apl_model.pressure(annulus, bit, q, geom),
                    static,
                    inp.max_pump_rate,
                    inp.min_pump_rate,
                )

                if abs(stage.volume - pumped) < 0.01:
                    desc = f"End: {stage.name} ({stage.volume:.1f}m³)"
                elif returns:
                    desc = f"Out: {int(returns[0].density)} kg/m³"
                else:
                    desc = f"Pumping {stage.name}..."

                yield CirculationStep(
                    step_index=idx,
                    bit_md=bit,
                    volume_pumped=pumped_total,
                    volume_pumped_bbl=pumped_total * M3_TO_BBL,
                    strokes=pumped_total / inp.pump_output,
                    esd_at_control=esd,
                    static_sabp=static,
                    required_sabp=choke,
                    delta_sabp=choke - prev_sabp,
                    cumulative_delta_sabp=choke - initial_sabp,
                    description=desc,
                    pump_rate=rate,
                    apl=apl,
                    string_layers=string,
                    annulus_layers=annulus,
                    pocket_layers=pocket,
                )
                prev_sabp = choke
                idx += 1
        logger.debug("circulated %.2f m3 in %d increments", pumped_total, idx - 1)

    def run(self, state: WellboreState) -> list[CirculationStep]:
        """Run the Circulation and Collect Every Record"""
        return list(self.steps(state))


def state_after(step: CirculationStep, control_md: float, bit_tvd: float) -> WellboreState:
    """Wellbore state left by a circulation record"""
    return WellboreState(
        bit_md=step.bit_md,
        bit_tvd=bit_tvd,
        control_md=control_md,
        esd_at_control=step.esd_at_control,
        sabp=step.static_sabp,
        dynamic_sabp=step.required_sabp,
        float_state="OPEN",
        string_layers=step.string_layers,
        annulus_layers=step.annulus_layers,
        pocket_layers=step.pocket_layers,
    )
