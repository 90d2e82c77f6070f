"""Ream Engines

Reaming is a trip with the pumps on. The pipe moves exactly as it does on a trip
while the ream mud is pushed around the circuit at the ream pump rate, so every
internal step also pumps rate times the time the step took. Friction of the
returns (APL) adds to the bottom hole pressure and is taken off the choke.
"""

import logging

from wellsim.engine.circulate import pump_around
from wellsim.engine.state import ReamInStep, ReamOutStep, WellboreState
from wellsim.engine.tripin import TripIn, TripInInput
from wellsim.engine.tripout import TripOut, TripOutInput
from wellsim.flow.hydraulics import (
    EPS,
    KPA_PER_M,
    AnnularPressureLossModel,
    SimplifiedAPL,
    SwabSurgeModel,
)
from wellsim.fluids.layers import Parcel

logger = logging.getLogger(__name__)


def ream_volume(pump_rate: float, dl: float, trip_speed: float) -> float:
    """Volume pumped while the pipe moves dl meters, m3

    Args:
        pump_rate (float): Pump rate, m3/min
        dl (float): Distance moved, meters
        trip_speed (float): Pipe speed, m/s, zero pumps nothing
    """
    if trip_speed <= EPS or pump_rate <= EPS or dl <= EPS:
        return 0.0
    return pump_rate * dl / (trip_speed * 60)


def ecd_from(esd: float, surface: float, control_tvd: float) -> float:
    """Equivalent circulating density from the static density and the pressure added on top, kg/m3"""
    if control_tvd <= EPS:
        return esd
    return esd + surface / (KPA_PER_M * control_tvd)


class _ReamPump:
    """Mixin that pumps the ream mud around as the pipe moves"""

    def _circulate(self, string, annulus, bit: float, dl: float):
        vol = ream_volume(self.pump_rate, dl, self.inp.trip_speed)
        if vol <= EPS:
            return string, annulus
        string, annulus, _ = pump_around(string, annulus, bit, Parcel(self.ream_density, vol, self.ream_color), self.geom)
        return string, annulus


class ReamOut(_ReamPump, TripOut):
    """Ream Out Simulation"""

    def __init__(
        self,
        geom,
        inp: TripOutInput,
        pump_rate: float,
        ream_density: float,
        ream_color: str | None = None,
        swab_model: SwabSurgeModel | None = None,
        apl_model: AnnularPressureLossModel | None = None,
    ) -> None:
        """Create a Ream Out

        Args:
            geom (GeometryProvider): Wellbore geometry
            inp (TripOutInput): Trip settings the pipe movement follows
            pump_rate (float): Ream pump rate, m3/min
            ream_density (float): Density of the mud pumped, kg/m3
            ream_color (str): Display color of the mud pumped
            swab_model (SwabSurgeModel): Swab correlation, defaults to none
            apl_model (AnnularPressureLossModel): Friction correlation, defaults to SimplifiedAPL
        """
        super().__init__(geom, inp, swab_model)
        self.pump_rate = pump_rate
        self.ream_density = ream_density
        self.ream_color = ream_color
        self.apl_model = apl_model or SimplifiedAPL()

    def steps(self, state: WellboreState):
        for step in super().steps(state):
            apl = self.apl_model.pressure(step.annulus_layers, step.bit_md, self.pump_rate, self.geom)
            dyn = max(0.0, step.sabp + step.swab - apl)
            ecd = ecd_from(step.esd_at_control, dyn + apl, self.control_tvd)
            yield ReamOutStep.from_trip(step, self.pump_rate, apl, dyn, ecd)

    def run(self, state: WellboreState) -> list[ReamOutStep]:
        return list(self.steps(state))


class ReamIn(_ReamPump, TripIn):
    """Ream In Simulation

    Surge and APL both act on the bottom of the hole, the choke supplies whatever
    is still missing.
    """

    def __init__(
        self,
        geom,
        inp: TripInInput,
        pump_rate: float,
        ream_density: float,
        ream_color: str | None = None,
        swab_model: SwabSurgeModel | None = None,
        apl_model: AnnularPressureLossModel | None = None,
    ) -> None:
        super().__init__(geom, inp, swab_model)
        self.pump_rate = pump_rate
        self.ream_density = ream_density
        self.ream_color = ream_color
        self.apl_model = apl_model or SimplifiedAPL()

    def steps(self, state: WellboreState):
        for step in super().steps(state):
            apl = self.apl_model.pressure(step.annulus_layers, step.bit_md, self.pump_rate, self.geom)
            dyn = max(0.0, step.required_choke - apl - step.surge)
            ecd = ecd_from(step.esd_at_control, dyn + apl + step.surge, self.control_tvd)
            yield ReamInStep.from_trip(step, self.pump_rate, apl, dyn, ecd)

    def run(self, state: WellboreState) -> list[ReamInStep]:
        return list(self.steps(state))
