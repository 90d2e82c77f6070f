"""Operation Configuration

One entry of the simulation timeline. Holds the user configuration of a trip,
circulation or ream along with its run status and results. Only the
configuration is serialized, results are rebuilt by running the sequence.
"""

from dataclasses import asdict, dataclass, field, fields
from typing import Optional

from wellsim.engine.state import WellboreState
from wellsim.fluids.mud import PumpQueue, PumpStage

KINDS = ("trip_out", "trip_in", "circulate", "ream_out", "ream_in")
KIND_LABELS = {
    "trip_out": "Trip Out",
    "trip_in": "Trip In",
    "circulate": "Circulate",
    "ream_out": "Ream Out",
    "ream_in": "Ream In",
}
STATUSES = ("pending", "running", "complete", "error", "blocked")


def as_pump_queue(value) -> PumpQueue:
    """Pump queue from a PumpQueue or a list of stages or stage dictionaries"""
    if isinstance(value, PumpQueue):
        return value
    if not isinstance(value, (list, tuple)):
        raise ValueError(f"Invalid pump queue: {value!r}. Expected a PumpQueue or a list of stages.")
    stages = (item if isinstance(item, PumpStage) else PumpStage(item["mud_id"], item["volume"]) for item in value)
    return PumpQueue(tuple(stages))


# settings a new operation picks up from the one before it
INHERITED = (
    "control_md",
    "target_esd",
    "base_mud_id",
    "backfill_mud_id",
    "fill_mud_id",
    "switch_to_active_after_displacement",
    "use_override_displacement_volume",
    "override_displacement_volume",
    "trip_in_speed",
)

# run time fields, never part of the configuration
RESULT_FIELDS = ("status", "error", "output_state", "steps")


@dataclass
class Operation:
    """Configured Operation

    Attributes:
        kind: One of trip_out, trip_in, circulate, ream_out, ream_in
        label: Display label, defaults to the kind
        start_md: Bit depth at the start, meters
        end_md: Bit depth at the end, meters, equal to start for a circulation
        target_esd: Density held at the control depth, kg/m3
        control_md: Control depth, meters, None uses the deepest casing shoe
        hold_sabp_open: Keep the choke open on trips out
        eccentricity: Pipe eccentricity factor for swab and surge
        theta600: Fann 35 600 rpm dial reading for the power law models
        theta300: Fann 35 300 rpm dial reading for the power law models
        base_mud_id: Active mud of the trip out
        backfill_mud_id: Mud used to backfill the annulus on trips out
        trip_speed: Pulling speed for trips and reams out, m/s
        step: Record interval for trips and reams out, meters
        crack_float: Float crack pressure, kPa
        initial_sabp: Back pressure held before the first step, kPa
        switch_to_active_after_displacement: Backfill with the base mud once the override volume is used
        use_override_displacement_volume: Backfill a fixed volume of backfill mud
        override_displacement_volume: Fixed backfill volume, m3
        use_observed_pit_gain: Size the initial slug drain from a measured pit gain
        observed_initial_pit_gain: Measured pit gain, m3
        pipe_od: Outer diameter of the string run in, meters
        pipe_id: Inner diameter of the string run in, meters
        fill_mud_id: Mud used to fill the string on trips in
        is_floated_casing: String runs empty below the float sub
        float_sub_md: Float sub depth, meters
        trip_in_step: Record interval for trips and reams in, meters
        trip_in_speed: Running speed for trips and reams in, m/s, zero disables surge
        pump_queue: Muds and volumes to circulate
        max_pump_rate: Highest circulating rate, m3/min
        min_pump_rate: Lowest circulating rate, m3/min
        pump_output: Pump displacement, m3/stroke
        ream_pump_rate: Pump rate while reaming, m3/min
        ream_mud_id: Mud pumped while reaming
    """

    kind: str
    label: str = ""

    # shared
    start_md: float = 0.0
    end_md: float = 0.0
    target_esd: float = 1200.0
    control_md: Optional[float] = None
    hold_sabp_open: bool = False
    eccentricity: float = 1.2
    theta600: Optional[float] = None
    theta300: Optional[float] = None

    # trip out
    base_mud_id: Optional[str] = None
    backfill_mud_id: Optional[str] = None
    trip_speed: float = 0.5
    step: float = 10.0
    crack_float: float = 2100.0
    initial_sabp: float = 0.0
    switch_to_active_after_displacement: bool = False
    use_override_displacement_volume: bool = False
    override_displacement_volume: float = 0.0
    use_observed_pit_gain: bool = False
    observed_initial_pit_gain: Optional[float] = None

    # trip in
    pipe_od: float = 0.127
    pipe_id: float = 0.1086
    fill_mud_id: Optional[str] = None
    is_floated_casing: bool = False
    float_sub_md: float = 0.0
    trip_in_step: float = 100.0
    trip_in_speed: float = 0.0

    # circulate
    pump_queue: PumpQueue = field(default_factory=PumpQueue)
    max_pump_rate: float = 1.0
    min_pump_rate: float = 0.2
    pump_output: float = 0.01

    # ream
    ream_pump_rate: float = 0.5
    ream_mud_id: Optional[str] = None

    # results
    status: str = "pending"
    error: Optional[str] = None
    output_state: Optional[WellboreState] = None
    steps: list = field(default_factory=list)

    def __post_init__(self):
        if self.kind not in KINDS:
            raise ValueError(f"Invalid operation kind: {self.kind}. Expected {', '.join(KINDS)}.")
        if not self.label:
            self.label = KIND_LABELS[self.kind]
        self.pump_queue = as_pump_queue(self.pump_queue)

    @property
    def is_complete(self) -> bool:
        return self.status == "complete"

    @property
    def moves_up(self) -> bool:
        return self.kind in ("trip_out", "ream_out")

    @property
    def moves_down(self) -> bool:
        return self.kind in ("trip_in", "ream_in")

    @property
    def depth_label(self) -> str:
        if self.kind == "circulate":
            return f"@ {self.start_md:.0f}m"
        return f"{self.start_md:.0f}m → {self.end_md:.0f}m"

    def progress_message(self, index: int, total: int) -> str:
        """Progress text shown while the operation runs, index counts from zero"""
        if self.kind == "circulate":
            return f"Circulating @ {self.start_md:.0f}m ({index + 1}/{total})..."
        return f"{KIND_LABELS[self.kind]} {self.start_md:.0f}→{self.end_md:.0f}m ({index + 1}/{total})..."

    def invalidate(self) -> None:
        """Drop results and return to pending"""
        self.status = "pending"
        self.error = None
        self.output_state = None
        self.steps = []

    def config_names(self) -> list[str]:
        return [fld.name for fld in fields(self) if fld.name not in RESULT_FIELDS]

    def to_dict(self) -> dict:
        """Configuration only, safe to write as JSON"""
        data = {name: getattr(self, name) for name in self.config_names()}
        data["pump_queue"] = self.pump_queue.to_list()
        return data

    @classmethod
    def from_dict(cls, data: dict):
        known = {fld.name for fld in fields(cls)} - set(RESULT_FIELDS)
        vals = {key: val for key, val in data.items() if key in known}
        vals["pump_queue"] = PumpQueue.from_list(data.get("pump_queue", []))
        return cls(**vals)

    def results_dict(self) -> dict:
        """Status and every step record, for report export"""
        return {
            "status": self.status,
            "error": self.error,
            "output_state": asdict(self.output_state) if self.output_state else None,
            "steps": [step.to_dict() for step in self.steps],
        }
