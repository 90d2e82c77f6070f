from wellsim.fluids.layers import FluidLayer, Parcel
from wellsim.fluids.mud import Mud, MudCatalog, PumpQueue, PumpStage

__all__ = ["FluidLayer", "Mud", "MudCatalog", "Parcel", "PumpQueue", "PumpStage"]
