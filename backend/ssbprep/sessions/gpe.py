"""
Group Planning Exercise
=======================

Model explanation, story reading, five minutes of correlation, ten minutes of
individual writing, a fifteen-minute group discussion simulated by the model,
then the candidate's final group plan (typed or spoken) and a GTO evaluation.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, List, Optional

from .. import evaluations
from ..gateway import DiscussionPoint, Gateway
from ..media import MediaClip
from ..models import GPEScenario
from ..phases import PhaseError, PhaseMachine, StageSpec, Trigger
from .base import DbFactory, TimedSession

logger = logging.getLogger(__name__)

FREE_SCENARIO_TITLE = "Free Practice GPE"
CANDIDATE = "You"


class GPEPhase(str, Enum):
    SELECTION = "SELECTION"
    MODEL_EXPLANATION = "MODEL_EXPLANATION"
    STORY_READING = "STORY_READING"
    CORRELATION = "CORRELATION"
    INDIVIDUAL_SOLUTION = "INDIVIDUAL_SOLUTION"
    GROUP_DISCUSSION = "GROUP_DISCUSSION"
    FINAL_PLAN = "FINAL_PLAN"
    EVALUATING = "EVALUATING"
    COMPLETED = "COMPLETED"


STAGES = [
    StageSpec(GPEPhase.SELECTION),
    StageSpec(GPEPhase.MODEL_EXPLANATION),
    StageSpec(GPEPhase.STORY_READING),
    StageSpec(GPEPhase.CORRELATION, duration_seconds=300, skippable=True),
    StageSpec(GPEPhase.INDIVIDUAL_SOLUTION, duration_seconds=600, requires_content=True),
    StageSpec(GPEPhase.GROUP_DISCUSSION, duration_seconds=900, skippable=True),
    StageSpec(GPEPhase.FINAL_PLAN, requires_content=True),
    StageSpec(GPEPhase.EVALUATING),
    StageSpec(GPEPhase.COMPLETED, terminal=True),
]

TRANSITIONS = {
    (GPEPhase.SELECTION, Trigger.ADVANCE): GPEPhase.MODEL_EXPLANATION,
    (GPEPhase.MODEL_EXPLANATION, Trigger.ADVANCE): GPEPhase.STORY_READING,
    (GPEPhase.STORY_READING, Trigger.ADVANCE): GPEPhase.CORRELATION,
    (GPEPhase.CORRELATION, Trigger.TIMEOUT): GPEPhase.INDIVIDUAL_SOLUTION,
    (GPEPhase.CORRELATION, Trigger.SKIP): GPEPhase.INDIVIDUAL_SOLUTION,
    (GPEPhase.INDIVIDUAL_SOLUTION, Trigger.SUBMIT): GPEPhase.GROUP_DISCUSSION,
    (GPEPhase.INDIVIDUAL_SOLUTION, Trigger.TIMEOUT): GPEPhase.GROUP_DISCUSSION,
    (GPEPhase.GROUP_DISCUSSION, Trigger.SKIP): GPEPhase.FINAL_PLAN,
    (GPEPhase.GROUP_DISCUSSION, Trigger.TIMEOUT): GPEPhase.FINAL_PLAN,
    (GPEPhase.FINAL_PLAN, Trigger.SUBMIT): GPEPhase.EVALUATING,
    (GPEPhase.EVALUATING, Trigger.RESOLVED): GPEPhase.COMPLETED,
}


def new_machine() -> PhaseMachine[GPEPhase]:
    return PhaseMachine(STAGES, TRANSITIONS)


def guest_allowed(scenario: GPEScenario) -> bool:
    return scenario.title == FREE_SCENARIO_TITLE


class GPESession(TimedSession[GPEPhase]):
    kind = "gpe"

    def __init__(
        self, username: str, gateway: Gateway, *, db_factory: Optional[DbFactory] = None, guest: bool = False
    ) -> None:
        super().__init__(username, new_machine(), gateway, db_factory=db_factory, guest=guest)
        self.scenario: Optional[Dict[str, Any]] = None
        self.solution = ""
        self.final_plan = ""
        self.discussion: List[DiscussionPoint] = []
        self.discussion_error: Optional[str] = None
        self.on_enter(GPEPhase.GROUP_DISCUSSION, self._begin_discussion)
        self.on_enter(GPEPhase.EVALUATING, self._begin_evaluation)

    def on_reset(self) -> None:
        self.scenario = None
        self.solution = ""
        self.final_plan = ""
        self.discussion = []
        self.discussion_error = None

    # -- candidate actions ---------------------------------------------------

    def select(self, scenario: GPEScenario) -> GPEPhase:
        self.expect(GPEPhase.SELECTION)
        self.scenario = {
            "id": scenario.id,
            "title": scenario.title,
            "narrative": scenario.narrative,
            "difficulty": scenario.difficulty,
            "image_url": scenario.image_url,
        }
        return self.fire(Trigger.ADVANCE)

    def draft(self, text: str) -> None:
        """Save work in progress; a timeout carries whatever was saved last."""
        if self.phase is GPEPhase.INDIVIDUAL_SOLUTION:
            self.solution = text
        elif self.phase is GPEPhase.FINAL_PLAN:
            self.final_plan = text
        else:
            raise PhaseError("nothing to write during this stage")

    def submit_solution(self, text: str) -> GPEPhase:
        self.expect(GPEPhase.INDIVIDUAL_SOLUTION)
        self.solution = text
        return self.fire(Trigger.SUBMIT, text)

    def add_point(self, text: str) -> DiscussionPoint:
        self.expect(GPEPhase.GROUP_DISCUSSION)
        if not text.strip():
            raise PhaseError("a discussion point cannot be empty")
        point = DiscussionPoint(speaker=CANDIDATE, text=text.strip())
        self.discussion.append(point)
        return point

    async def submit_final_plan(self, text: Optional[str] = None, audio: Optional[MediaClip] = None) -> GPEPhase:
        self.expect(GPEPhase.FINAL_PLAN)
        plan = (text or "").strip()
        if not plan and audio is not None:
            epoch = self.machine.epoch
            with self.recording.hold("final_plan"):
                transcribed = await self.gateway.transcribe_audio(audio)
            if not self.machine.is_current(epoch):
                raise PhaseError("the stage changed while the recording was transcribed")
            if not transcribed.ok:
                raise PhaseError("could not transcribe the recording; type the plan instead")
            plan = (transcribed.value or "").strip()
        self.final_plan = plan
        return self.fire(Trigger.SUBMIT, plan)

    async def narrate(self) -> Optional[MediaClip]:
        """GTO reading of the situation, played during story reading."""
        self.expect(GPEPhase.STORY_READING)
        spoken = await self.gateway.speak(self.scenario["narrative"] if self.scenario else "")
        return spoken.value if spoken.ok else None

    # -- entry effects -------------------------------------------------------

    def _begin_discussion(self, epoch: int) -> None:
        self.spawn(self._fetch_discussion(epoch), "discussion fetch")

    async def _fetch_discussion(self, epoch: int) -> None:
        narrative = self.scenario["narrative"] if self.scenario else ""
        fetched = await self.gateway.simulate_discussion(narrative, self.solution)
        if not self.machine.is_current(epoch):
            logger.info("GPE %s: discussion arrived after the stage ended, dropped", self.session_id)
            return
        if fetched.ok:
            self.discussion.extend(fetched.value or [])
        else:
            self.discussion_error = "The group could not be simulated. Continue with your own points or skip."

    def inputs(self) -> Dict[str, Any]:
        return {
            "scenario_title": (self.scenario or {}).get("title"),
            "narrative": (self.scenario or {}).get("narrative", ""),
            "solution": self.solution,
            "final_plan": self.final_plan,
            "discussion": [{"speaker": p.speaker, "text": p.text} for p in self.discussion],
        }

    def _begin_evaluation(self, epoch: int) -> None:
        self.spawn(self._evaluate(epoch), "GPE evaluation")

    async def _evaluate(self, epoch: int) -> None:
        inputs = self.inputs()
        outcome = await evaluations.evaluate(self.gateway, evaluations.GPE, inputs)
        if not self.machine.is_current(epoch):
            return
        self.conclude(evaluations.GPE, outcome, inputs, "Evaluation failed due to technical issues. Retry it from your history.")

    def view(self) -> Dict[str, Any]:
        return {
            "scenario": self.scenario,
            "solution": self.solution,
            "final_plan": self.final_plan,
            "discussion": [{"speaker": p.speaker, "text": p.text} for p in self.discussion],
            "discussion_error": self.discussion_error,
        }
