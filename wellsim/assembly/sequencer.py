"""Operation Sequencer

Keeps the ordered list of operations and runs them as one timeline. The output
state of each operation is the input of the next, so editing, removing or moving
an operation throws away its results and everything after it.

Runs are sequential. A run can be handed to a worker thread with progress flowing
back through a queue and a threading.Event to stop it between steps.
"""

import logging
import queue
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Optional, Union

from wellsim.assembly.operation import INHERITED, Operation, as_pump_queue
from wellsim.engine import circulate, tripin, tripout
from wellsim.engine.circulate import Circulate, CirculateInput, PumpedFluid
from wellsim.engine.ream import ReamIn, ReamOut
from wellsim.engine.state import WellboreState
from wellsim.engine.tripin import TripIn, TripInInput
from wellsim.engine.tripout import TripOut, TripOutInput
from wellsim.flow.hydraulics import PowerLawAPL, SimplifiedAPL, swab_model_for
from wellsim.fluids.layers import equivalent_static_density, uniform_column
from wellsim.fluids.mud import MudCatalog
from wellsim.geometry.wellbore import Wellbore
from wellsim.utils.errors import Cancelled, InvalidRange, WellSimError

logger = logging.getLogger(__name__)

BLOCKED = "blocked by upstream error"


@dataclass(frozen=True)
class Progress:
    """Progress of a running sequence

    Attributes:
        operation_index: Operation being run
        step_index: Records produced so far by that operation
        message: Human readable status
    """

    operation_index: int
    step_index: int
    message: str


ProgressSink = Union[Callable[[Progress], None], queue.Queue, None]


def _emit(sink: ProgressSink, prog: Progress) -> None:
    if sink is None:
        return
    if isinstance(sink, queue.Queue):
        sink.put(prog)
    else:
        sink(prog)


class Sequencer:
    """Ordered operations chained through their wellbore states"""

    def __init__(
        self,
        wellbore: Wellbore,
        catalog: MudCatalog,
        operations: Optional[list[Operation]] = None,
        swab_model=None,
        apl_model=None,
        debug: bool = False,
    ) -> None:
        """Create a Sequencer

        Args:
            wellbore (Wellbore): Project geometry
            catalog (MudCatalog): Muds the operations refer to by id
            operations (list): Starting operations, defaults to none
            swab_model (SwabSurgeModel): Overrides the per operation swab model
            apl_model (AnnularPressureLossModel): Overrides the per operation APL model
            debug (bool): True - engine errors are raised, False - errors are stored on the operation
        """
        self.wellbore = wellbore
        self.catalog = catalog
        self.operations = list(operations or [])
        self.swab_model = swab_model
        self.apl_model = apl_model
        self.debug = debug
        self.initial_state: Optional[WellboreState] = None
        self.active_mud_id: Optional[str] = None

    def __len__(self) -> int:
        return len(self.operations)

    # setup

    def bootstrap(
        self,
        initial_state: Optional[WellboreState] = None,
        mud_id: Optional[str] = None,
        bit_md: Optional[float] = None,
    ) -> WellboreState:
        """Seed the Input of the First Operation

        Without an explicit state the well is one mud from surface to TD with the
        bit at bit_md. The mud also becomes the default base and fill mud.

        Args:
            initial_state (WellboreState): Starting state, built when None
            mud_id (str): Mud filling the well, defaults to the first catalog mud
            bit_md (float): Bit depth, defaults to hole TD

        Returns:
            state (WellboreState): The seeded state
        """
        if mud_id is None and len(self.catalog):
            mud_id = next(iter(self.catalog)).id
        self.active_mud_id = mud_id
        if initial_state is not None:
            self.initial_state = initial_state
            return initial_state

        wb = self.wellbore
        td = wb.hole_td
        bit = td if bit_md is None else bit_md
        wb.validate(bit)
        mud = self.catalog.get(mud_id)
        control = wb.shoe_md
        string = uniform_column(mud.density, 0.0, bit, mud.color)
        annulus = uniform_column(mud.density, 0.0, bit, mud.color)
        pocket = uniform_column(mud.density, bit, td, mud.color)
        self.initial_state = WellboreState(
            bit_md=bit,
            bit_tvd=wb.tvd(bit),
            control_md=control,
            esd_at_control=equivalent_static_density(annulus + pocket, control, wb.tvd),
            sabp=0.0,
            dynamic_sabp=0.0,
            float_state="CLOSED",
            string_layers=string,
            annulus_layers=annulus,
            pocket_layers=pocket,
        )
        logger.info("bootstrapped %s at bit %.1f m, control %.1f m", mud.name, bit, control)
        return self.initial_state

    # editing

    def add_operation(self, kind: str, **config) -> Operation:
        """Append an Operation

        Settings not given are inherited from the previous operation and the
        start depth chains from where the previous one left the bit.
        """
        defaults: dict = {}
        home = self.initial_state.bit_md if self.initial_state else self.wellbore.hole_td
        if self.operations:
            last = self.operations[-1]
            defaults = {name: getattr(last, name) for name in INHERITED}
            prev_end = last.output_state.bit_md if last.output_state else last.end_md
            start = prev_end
        else:
            if self.initial_state is not None:
                defaults["control_md"] = self.initial_state.control_md
            start = 0.0 if kind in ("trip_in", "ream_in") else home

        if kind in ("trip_out", "ream_out"):
            end = 0.0
        elif kind in ("trip_in", "ream_in"):
            end = home
        else:
            end = start
        defaults.update(start_md=start, end_md=end)
        defaults.update(config)
        oper = Operation(kind=kind, **defaults)
        self.operations.append(oper)
        return oper

    def update_operation(self, index: int, **changes) -> Operation:
        """Change configuration, results from index onward are dropped"""
        oper = self.operations[index]
        names = oper.config_names()
        for key, val in changes.items():
            if key not in names or key == "kind":
                raise ValueError(f"Invalid operation setting: {key}")
            if key == "pump_queue":
                val = as_pump_queue(val)
            setattr(oper, key, val)
        self.invalidate_from(index)
        return oper

    def remove_operation(self, index: int) -> Operation:
        oper = self.operations.pop(index)
        self.invalidate_from(index)
        return oper

    def move_operation(self, source: int, destination: int) -> None:
        """Move an operation so it ends up at destination"""
        if source == destination:
            return
        oper = self.operations.pop(source)
        self.operations.insert(destination, oper)
        self.invalidate_from(min(source, destination))

    def invalidate_from(self, index: int) -> None:
        for oper in self.operations[index:]:
            oper.invalidate()

    # running

    def input_state(self, index: int) -> Optional[WellboreState]:
        if index == 0:
            return self.initial_state
        return self.operations[index - 1].output_state

    def _control_md(self, oper: Operation) -> float:
        return self.wellbore.shoe_md if oper.control_md is None else oper.control_md

    def _models(self, oper: Operation):
        swab = self.swab_model or swab_model_for(oper.theta600, oper.theta300)
        if self.apl_model is not None:
            apl = self.apl_model
        elif oper.theta600 and oper.theta300:
            apl = PowerLawAPL(oper.theta600, oper.theta300)
        else:
            apl = SimplifiedAPL()
        return swab, apl

    def _check_range(self, oper: Operation) -> None:
        if oper.end_md < 0:
            raise InvalidRange(f"End depth {oper.end_md} m is above surface")
        if oper.moves_up and oper.start_md <= oper.end_md:
            raise InvalidRange(
                f"{oper.label} needs start {oper.start_md} m deeper than end {oper.end_md} m",
                suggestion="Trips and reams out move the bit up",
            )
        if oper.moves_down and oper.start_md >= oper.end_md:
            raise InvalidRange(
                f"{oper.label} needs end {oper.end_md} m deeper than start {oper.start_md} m",
                suggestion="Trips and reams in move the bit down",
            )
        if oper.kind in ("ream_out", "ream_in") and oper.ream_pump_rate > 0:
            speed = oper.trip_speed if oper.moves_up else oper.trip_in_speed
            if speed <= 0:
                raise InvalidRange(
                    f"{oper.label} pumps at {oper.ream_pump_rate} m3/min with a pipe speed of {speed} m/s",
                    suggestion="Set a pipe speed so the ream mud volume per step is defined",
                )
        self.wellbore.validate(oper.start_md, oper.end_md, self._control_md(oper))

    def _trip_out_input(self, oper: Operation) -> TripOutInput:
        base = self.catalog.get(oper.base_mud_id or self.active_mud_id)
        backfill = self.catalog.get(oper.backfill_mud_id) if oper.backfill_mud_id else base
        return TripOutInput(
            start_md=oper.start_md,
            end_md=oper.end_md,
            control_md=self._control_md(oper),
            target_esd=oper.target_esd,
            base_density=base.density,
            backfill_density=backfill.density,
            base_color=base.color,
            backfill_color=backfill.color,
            step=oper.step,
            trip_speed=oper.trip_speed,
            crack_float=oper.crack_float,
            initial_sabp=oper.initial_sabp,
            fixed_backfill_volume=oper.override_displacement_volume if oper.use_override_displacement_volume else 0.0,
            switch_to_base_after_fixed=oper.switch_to_active_after_displacement,
            hold_sabp_open=oper.hold_sabp_open,
            eccentricity=oper.eccentricity,
            observed_pit_gain=oper.observed_initial_pit_gain if oper.use_observed_pit_gain else None,
        )

    def _trip_in_input(self, oper: Operation) -> TripInInput:
        fill = self.catalog.get(oper.fill_mud_id or self.active_mud_id)
        return TripInInput(
            start_md=oper.start_md,
            end_md=oper.end_md,
            control_md=self._control_md(oper),
            target_esd=oper.target_esd,
            fill_density=fill.density,
            fill_color=fill.color,
            step=oper.trip_in_step,
            trip_speed=oper.trip_in_speed,
            crack_float=oper.crack_float,
            is_floated_casing=oper.is_floated_casing,
            float_sub_md=oper.float_sub_md,
            eccentricity=oper.eccentricity,
        )

    def _engine(self, oper: Operation, state: WellboreState):
        """Build the step engine and the function that turns its last record into a state"""
        swab, apl = self._models(oper)
        control = self._control_md(oper)
        wb = self.wellbore
        if oper.kind == "trip_out":
            return TripOut(wb, self._trip_out_input(oper), swab), lambda s: tripout.state_after(s, control)
        if oper.kind == "trip_in":
            geom = wb.with_pipe(oper.pipe_od, oper.pipe_id)
            return TripIn(geom, self._trip_in_input(oper), swab), lambda s: tripin.state_after(s, control)
        if oper.kind == "ream_out":
            mud = self.catalog.get(oper.ream_mud_id or oper.base_mud_id or self.active_mud_id)
            engine = ReamOut(wb, self._trip_out_input(oper), oper.ream_pump_rate, mud.density, mud.color, swab, apl)
            return engine, lambda s: tripout.state_after(s, control)
        if oper.kind == "ream_in":
            mud = self.catalog.get(oper.ream_mud_id or oper.fill_mud_id or self.active_mud_id)
            geom = wb.with_pipe(oper.pipe_od, oper.pipe_id)
            engine = ReamIn(geom, self._trip_in_input(oper), oper.ream_pump_rate, mud.density, mud.color, swab, apl)
            return engine, lambda s: tripin.state_after(s, control)

        stages = []
        for stage in oper.pump_queue:
            mud = self.catalog.get(stage.mud_id)
            stages.append(PumpedFluid(mud.name, mud.density, stage.volume, mud.color))
        inp = CirculateInput(
            bit_md=state.bit_md,
            control_md=control,
            target_esd=oper.target_esd,
            stages=tuple(stages),
            max_pump_rate=oper.max_pump_rate,
            min_pump_rate=oper.min_pump_rate,
            pump_output=oper.pump_output,
        )
        bit_tvd = wb.tvd(state.bit_md)
        return Circulate(wb, inp, apl), lambda s: circulate.state_after(s, control, bit_tvd)

    def run(
        self,
        index: int,
        progress: ProgressSink = None,
        cancel: Optional[threading.Event] = None,
        total: Optional[int] = None,
    ) -> Operation:
        """Run One Operation

        The input is the previous operation's output, or the bootstrap state for
        the first. Engine errors are stored on the operation with whatever records
        were produced, unless the sequencer is in debug mode.

        Args:
            index (int): Operation to run
            progress (callable or Queue): Receives Progress after every record
            cancel (Event): Set to stop between records
            total (int): Operation count used in progress text

        Returns:
            oper (Operation): The operation with its new status

        Raises:
            Cancelled: cancel was set while the operation ran
        """
        oper = self.operations[index]
        total = total or len(self.operations)
        state = self.input_state(index)
        if state is None:
            oper.invalidate()
            oper.status = "blocked"
            oper.error = BLOCKED
            logger.warning("operation %d (%s) is %s", index + 1, oper.label, BLOCKED)
            return oper

        oper.invalidate()
        oper.status = "running"
        message = oper.progress_message(index, total)
        logger.info(message)
        _emit(progress, Progress(index, 0, message))
        try:
            self._check_range(oper)
            engine, finish = self._engine(oper, state)
            for step in engine.steps(state):
                if cancel is not None and cancel.is_set():
                    raise Cancelled("cancelled", details={"operation": index})
                oper.steps.append(step)
                _emit(progress, Progress(index, len(oper.steps), message))
        except Cancelled:
            oper.status = "error"
            oper.error = "cancelled"
            logger.info("operation %d (%s) cancelled after %d records", index + 1, oper.label, len(oper.steps))
            raise
        except (WellSimError, ValueError) as exc:
            oper.status = "error"
            oper.error = str(exc)
            if self.debug:
                logger.exception("operation %d (%s) failed", index + 1, oper.label)
                raise
            logger.warning("operation %d (%s) failed: %s", index + 1, oper.label, exc)
            return oper

        if not oper.steps:
            oper.status = "error"
            oper.error = "operation produced no records"
            return oper
        oper.output_state = finish(oper.steps[-1])
        oper.status = "complete"
        logger.info("operation %d (%s) complete with %d records", index + 1, oper.label, len(oper.steps))
        return oper

    def run_from(
        self,
        index: int = 0,
        progress: ProgressSink = None,
        cancel: Optional[threading.Event] = None,
    ) -> list[Operation]:
        """Re-run Operations from index to the end

        Results from index onward are dropped first. A failed operation leaves the
        ones after it blocked. Cancelling stops the run and leaves the running
        operation in error with its completed records.
        """
        if self.initial_state is None:
            raise WellSimError("Sequencer has no starting state", suggestion="Call bootstrap before running")
        self.invalidate_from(index)
        total = len(self.operations)
        for idx in range(index, total):
            try:
                self.run(idx, progress, cancel, total)
            except Cancelled:
                _emit(progress, Progress(idx, len(self.operations[idx].steps), "Cancelled"))
                return self.operations
        _emit(progress, Progress(max(total - 1, 0), 0, "Complete"))
        return self.operations

    def run_all(self, progress: ProgressSink = None, cancel: Optional[threading.Event] = None) -> list[Operation]:
        return self.run_from(0, progress, cancel)

    def run_in_background(
        self, index: int = 0, cancel: Optional[threading.Event] = None
    ) -> tuple[Future, queue.Queue]:
        """Run from index on a worker thread

        Returns:
            future (Future): Resolves to the operation list
            channel (Queue): Progress messages in order
        """
        channel: queue.Queue = queue.Queue()
        executor = ThreadPoolExecutor(max_workers=1)
        future = executor.submit(self.run_from, index, channel, cancel)
        executor.shutdown(wait=False)
        return future, channel
