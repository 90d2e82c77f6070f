"""Trip Out Engine

Pulls the string from start_md up to end_md. Fluid falls into the open hole left
below the rising bit, the annulus is backfilled from surface and the float valve
decides whether the string contents rise with the pipe (closed, wet pipe) or stay
behind and drain into the hole (open, dry pipe).

Before the pipe moves, a string heavier than the annulus (a slug) is drained in
small parcels until the U-tube balances, with air entering the top of the string
and the displaced annulus fluid showing up at surface as pit gain.
"""

import logging
from dataclasses import dataclass
from typing import Iterator

from wellsim.engine.state import TripOutStep, WellboreState
from wellsim.flow.hydraulics import (
    ECCENTRICITY,
    EPS,
    FLOAT_TOLERANCE,
    RHO_AIR,
    NoSwabSurge,
    SwabSurgeModel,
    float_state_label,
    required_back_pressure,
)
from wellsim.fluids.layers import (
    FluidLayer,
    Parcel,
    equivalent_static_density,
    hydrostatic_pressure,
    insert_at_bottom,
    insert_at_top,
    merge_layers,
    mix_parcels,
    normalize,
    parcels_from_layers,
    shift,
    split_at,
)
from wellsim.utils.errors import InvalidRange

logger = logging.getLogger(__name__)

PULSE_VOLUME = 0.01  # m3, parcel size drained per U-tube iteration
MAX_INITIAL_PULSES = 10000
MAX_STEP_PULSES = 1000
FINE_STEP = 1.0  # m
COARSE_STEP = 5.0  # m
COARSE_MARGIN = 50.0  # kPa


@dataclass(frozen=True)
class TripOutInput:
    """Resolved Trip Out Settings

    Mud ids are already resolved to densities and colors.

    Args:
        start_md (float): Starting bit depth, meters
        end_md (float): Final bit depth, meters
        control_md (float): Depth the target density is held at, meters
        target_esd (float): Density to hold at control, kg/m3
        base_density (float): Active mud density, kg/m3
        backfill_density (float): Backfill mud density, kg/m3
        step (float): Distance between records, meters
        trip_speed (float): Pulling speed, m/s
        crack_float (float): Float crack pressure, kPa
        initial_sabp (float): Back pressure before the first solve, kPa
        fixed_backfill_volume (float): Volume of backfill mud before switching, m3, zero is unlimited
        switch_to_base_after_fixed (bool): Switch to the base mud once the fixed volume is used
        hold_sabp_open (bool): Keep the choke open, SABP forced to zero
        eccentricity (float): Pipe eccentricity factor for swab
        observed_pit_gain (float): Measured initial pit gain used to size the slug drain, m3
    """

    start_md: float
    end_md: float
    control_md: float
    target_esd: float
    base_density: float
    backfill_density: float
    base_color: str | None = None
    backfill_color: str | None = None
    step: float = 10.0
    trip_speed: float = 0.5
    crack_float: float = 2100.0
    initial_sabp: float = 0.0
    fixed_backfill_volume: float = 0.0
    switch_to_base_after_fixed: bool = False
    hold_sabp_open: bool = False
    eccentricity: float = ECCENTRICITY
    observed_pit_gain: float | None = None

    def __post_init__(self):
        if self.start_md <= self.end_md:
            raise InvalidRange(
                f"Trip out needs start {self.start_md} m deeper than end {self.end_md} m",
                details={"start_md": self.start_md, "end_md": self.end_md},
            )
        if self.end_md < 0:
            raise InvalidRange(f"Trip out end depth {self.end_md} m is above surface")
        if self.step <= 0:
            raise ValueError(f"Trip out step must be positive, got {self.step}")


class TripOut:
    """Trip Out Simulation

    Stepping is adaptive: coarse internal steps while the float is solidly closed
    and fine steps near a float transition. Records are only produced every
    ``step`` meters and at the final depth.
    """

    def __init__(self, geom, inp: TripOutInput, swab_model: SwabSurgeModel | None = None) -> None:
        """Create a Trip Out

        Args:
            geom (GeometryProvider): Wellbore geometry
            inp (TripOutInput): Resolved settings
            swab_model (SwabSurgeModel): Swab correlation, defaults to none
        """
        self.geom = geom
        self.inp = inp
        self.swab_model = swab_model or NoSwabSurge()
        self.control_tvd = geom.tvd(inp.control_md)

    def _p_string(self, string, bit: float) -> float:
        return hydrostatic_pressure(string, 0.0, bit, self.geom.tvd)

    def _p_annulus(self, annulus, bit: float, sabp: float) -> float:
        return sabp + hydrostatic_pressure(annulus, 0.0, bit, self.geom.tvd)

    def _esd(self, annulus, pocket) -> float:
        return equivalent_static_density(annulus + pocket, self.inp.control_md, self.geom.tvd)

    def _drain(self, string, annulus, bit: float, volume: float):
        """Drain One Parcel of String Fluid into the Annulus

        Air enters the top of the string, the parcel leaving the string bottom
        enters the annulus bottom and annulus fluid overflows at surface.

        Returns:
            string (tuple): New string stack
            annulus (tuple): New annulus stack
            drained (float): Volume that left the string, m3
        """
        string, out_bit = insert_at_top(string, "string", RHO_AIR, volume, self.geom, span=(0.0, bit))
        drained = sum(p.volume for p in out_bit if p.density > RHO_AIR + EPS)
        annulus, _ = insert_at_bottom(annulus, "annulus", out_bit, self.geom, span=(0.0, bit))
        return string, annulus, drained

    def _backfill(self, need: float, remaining: float) -> tuple[list[Parcel], float]:
        """Split a Backfill Volume Between Backfill and Base Mud

        Returns:
            pieces (list): Parcels added at surface, in pumping order
            remaining (float): Fixed backfill volume left, m3
        """
        inp = self.inp
        if inp.fixed_backfill_volume <= EPS:
            return [Parcel(inp.backfill_density, need, inp.backfill_color)], remaining
        use_kill = min(need, max(0.0, remaining)) if inp.switch_to_base_after_fixed else need
        pieces = [Parcel(inp.backfill_density, use_kill, inp.backfill_color)]
        remaining -= use_kill
        if inp.switch_to_base_after_fixed and need - use_kill > EPS:
            pieces.append(Parcel(inp.base_density, need - use_kill, inp.base_color))
        return pieces, remaining

    def _circulate(self, string, annulus, bit: float, dl: float):
        """Circulation while moving, nothing is pumped on a plain trip"""
        return string, annulus

    def steps(self, state: WellboreState) -> Iterator[TripOutStep]:
        """Run the Trip Out

        Args:
            state (WellboreState): Wellbore at the start of the trip

        Yields:
            step (TripOutStep): Initial record, then one per step interval
        """
        inp, geom = self.inp, self.geom
        if abs(state.bit_md - inp.start_md) > 0.01:
            raise InvalidRange(
                f"Trip out starts at {inp.start_md} m but the bit is at {state.bit_md:.2f} m",
                suggestion="Chain the start depth from the previous operation",
            )
        bit = inp.start_md
        string = normalize(state.string_layers, 0.0, bit) or (FluidLayer(0.0, bit, inp.base_density, inp.base_color),)
        annulus = normalize(state.annulus_layers, 0.0, bit) or (FluidLayer(0.0, bit, inp.base_density, inp.base_color),)
        pocket = tuple(state.pocket_layers)
        sabp = inp.initial_sabp

        # initial slug equalization
        slug = 0.0
        pulses = 0
        if inp.observed_pit_gain is not None and inp.observed_pit_gain > 0:
            remaining = inp.observed_pit_gain
            while remaining > EPS and pulses < MAX_INITIAL_PULSES:
                pulses += 1
                string, annulus, drained = self._drain(string, annulus, bit, min(PULSE_VOLUME, remaining))
                if drained <= EPS:
                    break
                slug += drained
                remaining -= drained
            logger.debug("calibrated slug drain of %.3f m3 against observed pit gain", slug)
        else:
            while pulses < MAX_INITIAL_PULSES:
                if self._p_string(string, bit) <= self._p_annulus(annulus, bit, sabp) + inp.crack_float:
                    break
                pulses += 1
                string, annulus, drained = self._drain(string, annulus, bit, PULSE_VOLUME)
                if drained <= EPS:
                    break
                slug += drained
            if slug > 0:
                logger.debug("initial slug drained %.3f m3 in %d pulses", slug, pulses)

        esd = self._esd(annulus, pocket)
        sabp_raw = required_back_pressure(esd, inp.target_esd, self.control_tvd)
        sabp = 0.0 if inp.hold_sabp_open else sabp_raw

        cum_backfill = 0.0
        cum_slug = slug
        cum_pit = slug
        cum_tank = slug
        backfill_remaining = inp.fixed_backfill_volume

        yield TripOutStep(
            bit_md=bit,
            bit_tvd=geom.tvd(bit),
            sabp=sabp,
            sabp_raw=sabp_raw,
            esd_at_control=esd,
            esd_at_bit=equivalent_static_density(annulus, bit, geom.tvd),
            swab=0.0,
            dynamic_sabp=sabp,
            float_state="OPEN (Initial Slug)" if slug > 0 else "CLOSED",
            step_backfill=0.0,
            cumulative_backfill=0.0,
            expected_fill_closed=0.0,
            expected_fill_open=0.0,
            slug_contribution=slug,
            cumulative_slug_contribution=cum_slug,
            pit_gain=slug,
            cumulative_pit_gain=cum_pit,
            tank_delta=slug,
            cumulative_tank_delta=cum_tank,
            backfill_remaining=max(0.0, backfill_remaining),
            string_layers=string,
            annulus_layers=annulus,
            pocket_layers=pocket,
        )

        next_record = bit - inp.step
        step_backfill = step_slug = step_pit = 0.0
        step_closed_fill = step_open_fill = 0.0
        step_swab = 0.0
        internal = open_count = 0

        while bit > inp.end_md + EPS:
            p_str = self._p_string(string, bit)
            p_ann = self._p_annulus(annulus, bit, sabp)
            closed = p_str <= p_ann + FLOAT_TOLERANCE
            margin = p_ann + FLOAT_TOLERANCE - p_str
            sub = COARSE_STEP if closed and margin > COARSE_MARGIN else FINE_STEP
            nxt = max(inp.end_md, next_record, bit - sub)
            dl = bit - nxt

            od_vol = geom.volume_of_string_od(nxt, bit)
            steel_vol = od_vol - geom.volume_in_string(nxt, bit)
            step_closed_fill += od_vol
            step_open_fill += steel_vol

            if not closed:
                pulses = 0
                while pulses < MAX_STEP_PULSES:
                    if self._p_string(string, bit) <= self._p_annulus(annulus, bit, sabp) + inp.crack_float:
                        break
                    pulses += 1
                    string, annulus, drained = self._drain(string, annulus, bit, PULSE_VOLUME)
                    if drained <= EPS:
                        break
                    step_slug += drained
                    step_pit += drained
                closed = self._p_string(string, bit) <= self._p_annulus(annulus, bit, sabp) + FLOAT_TOLERANCE

            annulus, ann_cut = split_at(annulus, nxt)
            to_pocket = parcels_from_layers(ann_cut, "annulus", geom)
            if closed:
                # wet pipe, string contents ride up with the pipe
                string = shift(string, -dl, 0.0, nxt)
                need = od_vol
            else:
                # dry pipe, string contents stay put and fall into the hole
                string, str_cut = split_at(string, nxt)
                to_pocket += parcels_from_layers(str_cut, "string", geom)
                need = steel_vol

            pieces, backfill_remaining = self._backfill(need, backfill_remaining)
            for piece in pieces:
                annulus, overflow = insert_at_top(
                    annulus, "annulus", piece.density, piece.volume, geom, piece.color, span=(0.0, nxt)
                )
                to_pocket += overflow
            fell = mix_parcels(to_pocket, inp.base_density)
            pocket = merge_layers((FluidLayer(nxt, bit, fell.density, fell.color),) + pocket)

            bit = nxt
            annulus = normalize(annulus, 0.0, bit)
            string = normalize(string, 0.0, bit)
            string, annulus = self._circulate(string, annulus, bit, dl)
            step_backfill += need
            internal += 1
            open_count += 0 if closed else 1
            step_swab += self.swab_model.pressure(
                annulus, bit, inp.trip_speed, inp.eccentricity, geom, float_open=not closed
            )

            if abs(bit - next_record) < 1e-6 or bit <= inp.end_md + EPS:
                esd = self._esd(annulus, pocket)
                sabp_raw = required_back_pressure(esd, inp.target_esd, self.control_tvd)
                sabp = 0.0 if inp.hold_sabp_open else sabp_raw
                swab = step_swab / internal if internal else 0.0
                tank_delta = step_pit - step_backfill
                cum_backfill += step_backfill
                cum_slug += step_slug
                cum_pit += step_pit
                cum_tank += tank_delta

                yield TripOutStep(
                    bit_md=bit,
                    bit_tvd=geom.tvd(bit),
                    sabp=sabp,
                    sabp_raw=sabp_raw,
                    esd_at_control=esd,
                    esd_at_bit=equivalent_static_density(annulus, bit, geom.tvd),
                    swab=swab,
                    dynamic_sabp=max(0.0, sabp + swab),
                    float_state=float_state_label(open_count, internal),
                    step_backfill=step_backfill,
                    cumulative_backfill=cum_backfill,
                    expected_fill_closed=step_closed_fill,
                    expected_fill_open=step_open_fill,
                    slug_contribution=step_slug,
                    cumulative_slug_contribution=cum_slug,
                    pit_gain=step_pit,
                    cumulative_pit_gain=cum_pit,
                    tank_delta=tank_delta,
                    cumulative_tank_delta=cum_tank,
                    backfill_remaining=max(0.0, backfill_remaining),
                    string_layers=string,
                    annulus_layers=annulus,
                    pocket_layers=pocket,
                )
                next_record = bit - inp.step
                step_backfill = step_slug = step_pit = 0.0
                step_closed_fill = step_open_fill = 0.0
                step_swab = 0.0
                internal = open_count = 0

    def run(self, state: WellboreState) -> list[TripOutStep]:
        """Run the Trip Out and Collect Every Record"""
        return list(self.steps(state))


def state_after(step: TripOutStep, control_md: float) -> WellboreState:
    """Wellbore state left by a trip out record"""
    return WellboreState(
        bit_md=step.bit_md,
        bit_tvd=step.bit_tvd,
        control_md=control_md,
        esd_at_control=step.esd_at_control,
        sabp=step.sabp,
        dynamic_sabp=step.dynamic_sabp,
        float_state=step.float_state,
        string_layers=step.string_layers,
        annulus_layers=step.annulus_layers,
        pocket_layers=step.pocket_layers,
    )
