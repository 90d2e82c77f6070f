"""Trip In Engine

Runs pipe from start_md down to end_md. Open hole fluid swept by the pipe is
pushed into the bottom of the annulus and the displaced annulus fluid returns at
surface. The string is filled from surface with the fill mud, except floated
casing below the float sub which runs in empty.
"""

import logging
from dataclasses import dataclass
from typing import Iterator

from wellsim.engine.state import TripInStep, WellboreState
from wellsim.flow.hydraulics import (
    ECCENTRICITY,
    EPS,
    RHO_AIR,
    NoSwabSurge,
    SwabSurgeModel,
    required_back_pressure,
)
from wellsim.fluids.layers import (
    Parcel,
    equivalent_static_density,
    hydrostatic_pressure,
    insert_at_bottom,
    insert_at_top,
    normalize,
    parcels_from_layers,
    split_at,
)
from wellsim.utils.errors import InvalidRange

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TripInInput:
    """Resolved Trip In Settings

    Args:
        start_md (float): Starting bit depth, meters
        end_md (float): Final bit depth, meters
        control_md (float): Depth the target density is held at, meters
        target_esd (float): Density to hold at control, kg/m3
        fill_density (float): Mud used to fill the string, kg/m3
        step (float): Distance between records, meters
        trip_speed (float): Running speed, m/s, zero for no surge
        crack_float (float): Float crack pressure, kPa
        is_floated_casing (bool): String runs empty below the float sub
        float_sub_md (float): Float sub depth, meters
        eccentricity (float): Pipe eccentricity factor for surge
    """

    start_md: float
    end_md: float
    control_md: float
    target_esd: float
    fill_density: float
    fill_color: str | None = None
    step: float = 100.0
    trip_speed: float = 0.0
    crack_float: float = 2100.0
    is_floated_casing: bool = False
    float_sub_md: float = 0.0
    eccentricity: float = ECCENTRICITY

    def __post_init__(self):
        if self.start_md >= self.end_md:
            raise InvalidRange(
                f"Trip in needs end {self.end_md} m deeper than start {self.start_md} m",
                details={"start_md": self.start_md, "end_md": self.end_md},
            )
        if self.start_md < 0:
            raise InvalidRange(f"Trip in start depth {self.start_md} m is above surface")
        if self.step <= 0:
            raise ValueError(f"Trip in step must be positive, got {self.step}")

    def depths(self) -> list[float]:
        """Record depths from start to end, end always included"""
        mds = []
        md = self.start_md
        while md <= self.end_md + EPS:
            mds.append(min(md, self.end_md))
            md += self.step
        if abs(mds[-1] - self.end_md) > EPS:
            mds.append(self.end_md)
        return mds


def float_text(diff: float, crack: float) -> str:
    """Floated Casing Valve Text

    Args:
        diff (float): Annulus minus string pressure at the float, kPa
        crack (float): Crack pressure, kPa
    """
    if crack <= EPS:
        return "OPEN 100%" if diff >= 0 else "CLOSED 100%"
    if diff >= crack:
        return f"OPEN {min(100, int((diff / crack - 1) * 100 + 50))}%"
    return f"CLOSED {int((1 - diff / crack) * 100)}%"


class TripIn:
    """Trip In Simulation"""

    def __init__(self, geom, inp: TripInInput, swab_model: SwabSurgeModel | None = None) -> None:
        """Create a Trip In

        Args:
            geom (GeometryProvider): Wellbore geometry with the string being run
            inp (TripInInput): Resolved settings
            swab_model (SwabSurgeModel): Surge correlation, defaults to none
        """
        self.geom = geom
        self.inp = inp
        self.swab_model = swab_model or NoSwabSurge()
        self.control_tvd = geom.tvd(inp.control_md)

    def _circulate(self, string, annulus, bit: float, dl: float):
        """Circulation while moving, nothing is pumped on a plain trip"""
        return string, annulus

    def steps(self, state: WellboreState) -> Iterator[TripInStep]:
        """Run the Trip In

        Args:
            state (WellboreState): Wellbore at the start of the trip

        Yields:
            step (TripInStep): One record per depth, starting with the start depth
        """
        inp, geom = self.inp, self.geom
        if abs(state.bit_md - inp.start_md) > 0.01:
            raise InvalidRange(
                f"Trip in starts at {inp.start_md} m but the bit is at {state.bit_md:.2f} m",
                suggestion="Chain the start depth from the previous operation",
            )
        if inp.end_md > state.hole_td + 1e-6:
            raise InvalidRange(f"Trip in end {inp.end_md} m is below the hole at {state.hole_td:.1f} m")

        string = normalize(state.string_layers, 0.0, inp.start_md)
        annulus = normalize(state.annulus_layers, 0.0, inp.start_md)
        pocket = tuple(state.pocket_layers)
        cum_fill = cum_returns = 0.0
        prev = inp.start_md

        for idx, md in enumerate(inp.depths()):
            step_fill = step_returns = 0.0
            if md - prev > EPS:
                swept, pocket = split_at(pocket, md)
                parcels = parcels_from_layers(swept, "pocket", geom)
                annulus, returns = insert_at_bottom(annulus, "annulus", parcels, geom, span=(0.0, md))
                step_returns = sum(p.volume for p in returns)

                capacity = geom.volume_in_string(prev, md)
                if inp.is_floated_casing and md > inp.float_sub_md:
                    # air stays below the mud column already in the casing
                    string, _ = insert_at_bottom(string, "string", [Parcel(RHO_AIR, capacity)], geom, span=(0.0, md))
                else:
                    string, _ = insert_at_top(
                        string, "string", inp.fill_density, capacity, geom, inp.fill_color, span=(0.0, md)
                    )
                    step_fill = capacity
                annulus = normalize(annulus, 0.0, md)
                string = normalize(string, 0.0, md)
                string, annulus = self._circulate(string, annulus, md, md - prev)
            cum_fill += step_fill
            cum_returns += step_returns

            esd = equivalent_static_density(annulus + pocket, inp.control_md, geom.tvd)
            choke = required_back_pressure(esd, inp.target_esd, self.control_tvd)
            p_ann = hydrostatic_pressure(annulus, 0.0, md, geom.tvd)
            p_str = hydrostatic_pressure(string, 0.0, md, geom.tvd)
            if inp.is_floated_casing and md >= inp.float_sub_md:
                sub = inp.float_sub_md
                # differential across the float sub, not at the bit
                diff_at_sub = hydrostatic_pressure(annulus, 0.0, sub, geom.tvd)
                diff_at_sub -= hydrostatic_pressure(string, 0.0, sub, geom.tvd)
                float_state = float_text(diff_at_sub, inp.crack_float)
            else:
                float_state = "Full"
            surge = self.swab_model.pressure(
                annulus, md, inp.trip_speed, inp.eccentricity, geom, float_open=not inp.is_floated_casing
            )

            yield TripInStep(
                step_index=idx,
                bit_md=md,
                bit_tvd=geom.tvd(md),
                step_fill=step_fill,
                cumulative_fill=cum_fill,
                expected_fill_closed=geom.volume_in_string(0.0, md),
                expected_fill_open=geom.volume_of_string_od(0.0, md) - geom.volume_in_string(0.0, md),
                step_returns=step_returns,
                cumulative_returns=cum_returns,
                esd_at_control=esd,
                esd_at_bit=equivalent_static_density(annulus, md, geom.tvd),
                required_choke=choke,
                is_below_target=esd < inp.target_esd,
                surge=surge,
                dynamic_choke=max(0.0, choke - surge),
                differential_pressure=p_ann - p_str,
                float_state=float_state,
                string_layers=string,
                annulus_layers=annulus,
                pocket_layers=pocket,
            )
            prev = md

    def run(self, state: WellboreState) -> list[TripInStep]:
        """Run the Trip In and Collect Every Record"""
        return list(self.steps(state))


def state_after(step: TripInStep, control_md: float) -> WellboreState:
    """Wellbore state left by a trip in record"""
    return WellboreState(
        bit_md=step.bit_md,
        bit_tvd=step.bit_tvd,
        control_md=control_md,
        esd_at_control=step.esd_at_control,
        sabp=step.required_choke,
        dynamic_sabp=step.dynamic_choke,
        float_state=step.float_state,
        string_layers=step.string_layers,
        annulus_layers=step.annulus_layers,
        pocket_layers=step.pocket_layers,
    )
