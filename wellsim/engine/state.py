"""Wellbore State and Step Records

A WellboreState is the hand off between operations. Step records are what an
operation produces at every increment. Both are frozen and hold their layers as
tuples of values, so a record never points back into engine state.
"""

from dataclasses import asdict, dataclass, fields

from wellsim.fluids.layers import FluidLayer

Layers = tuple[FluidLayer, ...]


@dataclass(frozen=True)
class WellboreState:
    """Wellbore Snapshot

    Args:
        bit_md (float): Bit measured depth, meters
        bit_tvd (float): Bit vertical depth, meters
        control_md (float): Depth the density target is held at, meters
        esd_at_control (float): Static equivalent density at control, kg/m3
        sabp (float): Surface annulus back pressure, kPa
        dynamic_sabp (float): Back pressure with swab, surge and APL, kPa
        float_state (str): Float valve text
        string_layers (tuple): Fluid inside the string, surface to bit
        annulus_layers (tuple): Fluid outside the string, surface to bit
        pocket_layers (tuple): Open hole fluid, bit to hole TD
    """

    bit_md: float
    bit_tvd: float
    control_md: float
    esd_at_control: float
    sabp: float
    dynamic_sabp: float
    float_state: str
    string_layers: Layers
    annulus_layers: Layers
    pocket_layers: Layers

    @property
    def hole_td(self) -> float:
        """Deepest pocket boundary, the bit when there is no pocket"""
        if self.pocket_layers:
            return self.pocket_layers[-1].bottom_md
        return self.bit_md

    @property
    def well_layers(self) -> Layers:
        """Annulus and pocket as one column from surface to TD"""
        return self.annulus_layers + self.pocket_layers

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict):
        vals = dict(data)
        for key in ("string_layers", "annulus_layers", "pocket_layers"):
            vals[key] = tuple(FluidLayer.from_dict(item) for item in data[key])
        return cls(**vals)


def _values(record) -> dict:
    """Shallow field copy of a dataclass, keeps nested layers as objects"""
    return {fld.name: getattr(record, fld.name) for fld in fields(record)}


@dataclass(frozen=True)
class TripOutStep:
    """One recorded increment of a trip out

    Volumes are m3, pressures kPa, densities kg/m3. The step_ fields hold what
    happened since the previous record, the cumulative_ fields the running totals.
    """

    bit_md: float
    bit_tvd: float
    sabp: float
    sabp_raw: float
    esd_at_control: float
    esd_at_bit: float
    swab: float
    dynamic_sabp: float
    float_state: str
    step_backfill: float
    cumulative_backfill: float
    expected_fill_closed: float
    expected_fill_open: float
    slug_contribution: float
    cumulative_slug_contribution: float
    pit_gain: float
    cumulative_pit_gain: float
    tank_delta: float
    cumulative_tank_delta: float
    backfill_remaining: float
    string_layers: Layers
    annulus_layers: Layers
    pocket_layers: Layers

    @property
    def choke_pressure(self) -> float:
        return self.sabp

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class ReamOutStep(TripOutStep):
    """Trip out record with circulation at the ream pump rate"""

    pump_rate: float = 0.0
    apl: float = 0.0
    ecd: float = 0.0

    @property
    def choke_pressure(self) -> float:
        return self.dynamic_sabp

    @classmethod
    def from_trip(cls, step: TripOutStep, pump_rate: float, apl: float, dynamic_sabp: float, ecd: float):
        vals = _values(step)
        vals["dynamic_sabp"] = dynamic_sabp
        return cls(**vals, pump_rate=pump_rate, apl=apl, ecd=ecd)


@dataclass(frozen=True)
class TripInStep:
    """One recorded increment of a trip in"""

    step_index: int
    bit_md: float
    bit_tvd: float
    step_fill: float
    cumulative_fill: float
    expected_fill_closed: float
    expected_fill_open: float
    step_returns: float
    cumulative_returns: float
    esd_at_control: float
    esd_at_bit: float
    required_choke: float
    is_below_target: bool
    surge: float
    dynamic_choke: float
    differential_pressure: float
    float_state: str
    string_layers: Layers
    annulus_layers: Layers
    pocket_layers: Layers

    @property
    def choke_pressure(self) -> float:
        return self.required_choke

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class ReamInStep(TripInStep):
    """Trip in record with circulation at the ream pump rate"""

    pump_rate: float = 0.0
    apl: float = 0.0
    ecd: float = 0.0

    @property
    def choke_pressure(self) -> float:
        return self.dynamic_choke

    @classmethod
    def from_trip(cls, step: TripInStep, pump_rate: float, apl: float, dynamic_choke: float, ecd: float):
        vals = _values(step)
        vals["dynamic_choke"] = dynamic_choke
        return cls(**vals, pump_rate=pump_rate, apl=apl, ecd=ecd)


@dataclass(frozen=True)
class CirculationStep:
    """One pumped increment of a circulation"""

    step_index: int
    bit_md: float
    volume_pumped: float
    volume_pumped_bbl: float
    strokes: float
    esd_at_control: float
    static_sabp: float
    required_sabp: float
    delta_sabp: float
    cumulative_delta_sabp: float
    description: str
    pump_rate: float
    apl: float
    string_layers: Layers
    annulus_layers: Layers
    pocket_layers: Layers

    @property
    def choke_pressure(self) -> float:
        return self.required_sabp

    def to_dict(self) -> dict:
        return asdict(self)
