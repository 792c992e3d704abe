"""
Phase state machine shared by the timed test flows.

Each flow (GPE, Lecturette, Screening) declares an ordered list of stages and
a static transition table ``(phase, trigger) -> phase``. The machine only ever
moves forward through that list; ``Trigger.RESET`` is the single way back and
always lands on the first stage. Rendering and side effects live in the
owning session; the machine only answers "where does this trigger lead".
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Generic, Hashable, List, Mapping, Optional, Sequence, Tuple, TypeVar

P = TypeVar("P", bound=Hashable)


class Trigger(str, Enum):
    ADVANCE = "advance"  # plain user action ("proceed", "start")
    SUBMIT = "submit"  # user action carrying captured content
    SKIP = "skip"
    TIMEOUT = "timeout"
    RESOLVED = "resolved"  # final evaluation returned (result or error)
    RESET = "reset"


class PhaseError(Exception):
    """Raised when a trigger is not legal in the current phase."""


@dataclass(frozen=True)
class StageSpec(Generic[P]):
    name: P
    duration_seconds: Optional[int] = None
    skippable: bool = False
    # SUBMIT needs non-empty content; TIMEOUT does not check it
    requires_content: bool = False
    # Countdown waits for an explicit start and can be paused
    pausable: bool = False
    terminal: bool = False


class PhaseMachine(Generic[P]):
    def __init__(self, stages: Sequence[StageSpec[P]], transitions: Mapping[Tuple[P, Trigger], P]) -> None:
        if not stages:
            raise ValueError("a phase machine needs at least one stage")
        self._stages: Dict[P, StageSpec[P]] = {}
        self._order: Dict[P, int] = {}
        for index, stage in enumerate(stages):
            if stage.name in self._stages:
                raise ValueError(f"duplicate stage {stage.name!r}")
            self._stages[stage.name] = stage
            self._order[stage.name] = index
        self._initial: P = stages[0].name
        self._table: Dict[Tuple[P, Trigger], P] = {}
        for (source, trigger), target in transitions.items():
            if source not in self._stages or target not in self._stages:
                raise ValueError(f"transition {source!r} -> {target!r} names an unknown stage")
            if trigger is Trigger.RESET:
                raise ValueError("RESET is implicit and must not appear in the table")
            if self._order[target] <= self._order[source]:
                raise ValueError(f"transition {source!r} -> {target!r} moves backwards")
            if self._stages[target].terminal and trigger is not Trigger.RESOLVED:
                raise ValueError(f"terminal stage {target!r} is only reachable through RESOLVED")
            if trigger is Trigger.SKIP and not self._stages[source].skippable:
                raise ValueError(f"stage {source!r} is not skippable")
            self._table[(source, trigger)] = target
        self.phase: P = self._initial
        # Bumped on every accepted transition; async results carry the epoch
        # they were requested in and are dropped once it moves on.
        self.epoch = 0

    @property
    def stage(self) -> StageSpec[P]:
        return self._stages[self.phase]

    @property
    def initial(self) -> P:
        return self._initial

    def spec(self, phase: P) -> StageSpec[P]:
        return self._stages[phase]

    def allowed(self) -> List[Trigger]:
        triggers = [trigger for (source, trigger) in self._table if source == self.phase]
        if self.phase != self._initial:
            triggers.append(Trigger.RESET)
        return triggers

    def can(self, trigger: Trigger) -> bool:
        return trigger in self.allowed()

    def target(self, trigger: Trigger) -> Optional[P]:
        if trigger is Trigger.RESET:
            return self._initial
        return self._table.get((self.phase, trigger))

    def is_current(self, epoch: int) -> bool:
        return epoch == self.epoch

    def advance(self, trigger: Trigger, content: Optional[str] = None) -> P:
        if trigger is Trigger.RESET:
            if self.phase == self._initial:
                raise PhaseError(f"already at {self._label(self.phase)}")
            return self.reset()
        target = self._table.get((self.phase, trigger))
        if target is None:
            raise PhaseError(f"{trigger.value} is not allowed during {self._label(self.phase)}")
        if trigger is Trigger.SUBMIT and self.stage.requires_content and not (content or "").strip():
            raise PhaseError(f"{self._label(self.phase)} cannot be submitted empty")
        self.phase = target
        self.epoch += 1
        return target

    def reset(self) -> P:
        self.phase = self._initial
        self.epoch += 1
        return self.phase

    @staticmethod
    def _label(phase: P) -> str:
        return str(getattr(phase, "value", phase))
