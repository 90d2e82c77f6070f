from wellsim.utils.errors import (
    Cancelled,
    InvalidRange,
    MissingGeometry,
    NonConvergentBackPressureSolve,
    QueueExhaustedEarly,
    UnresolvedMud,
    WellSimError,
)

__all__ = [
    "Cancelled",
    "InvalidRange",
    "MissingGeometry",
    "NonConvergentBackPressureSolve",
    "QueueExhaustedEarly",
    "UnresolvedMud",
    "WellSimError",
]
