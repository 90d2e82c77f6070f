from wellsim.assembly.operation import KINDS, Operation
from wellsim.assembly.presets import PresetStore
from wellsim.assembly.sequencer import Progress, Sequencer
from wellsim.assembly.timeline import Timeline, TimelinePoint

__all__ = ["KINDS", "Operation", "PresetStore", "Progress", "Sequencer", "Timeline", "TimelinePoint"]
