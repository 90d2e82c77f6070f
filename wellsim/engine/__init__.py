"""Step Engines

Each engine takes a WellboreState and yields immutable step records. The last
record of a run is turned back into a WellboreState for the next operation.
"""

from wellsim.engine.circulate import Circulate, CirculateInput, PumpedFluid
from wellsim.engine.ream import ReamIn, ReamOut
from wellsim.engine.state import (
    CirculationStep,
    ReamInStep,
    ReamOutStep,
    TripInStep,
    TripOutStep,
    WellboreState,
)
from wellsim.engine.tripin import TripIn, TripInInput
from wellsim.engine.tripout import TripOut, TripOutInput

__all__ = [
    "Circulate",
    "CirculateInput",
    "CirculationStep",
    "PumpedFluid",
    "ReamIn",
    "ReamInStep",
    "ReamOut",
    "ReamOutStep",
    "TripIn",
    "TripInInput",
    "TripInStep",
    "TripOut",
    "TripOutInput",
    "TripOutStep",
    "WellboreState",
]
