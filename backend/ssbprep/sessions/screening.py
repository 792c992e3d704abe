"""
Screening Battery
=================

Two Officer Intelligence Rating tests followed by a Picture Perception and
Description Test, scored together into an IN / BORDERLINE / OUT decision.

Test sets come from the catalog: OIR sets and PPDT scenarios labelled
"screening" are grouped by the number in their title/description. When the
admin has not labelled any, the first available sets are paired up instead.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from .. import evaluations, store
from ..gateway import Gateway
from ..media import MediaClip
from ..models import OIRSet, PPDTScenario
from ..phases import PhaseError, PhaseMachine, StageSpec, Trigger
from ..scoring import UNANSWERED, oir_percentage
from .base import DbFactory, TimedSession

logger = logging.getLogger(__name__)

MAX_TEST_SETS = 5
SCREENING_LABEL = "screening"


@dataclass
class ScreeningSet:
    id: str
    title: str
    oir1: OIRSet
    oir2: OIRSet
    ppdt: PPDTScenario

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "oir1": {"id": self.oir1.id, "title": self.oir1.title, "time_limit_seconds": self.oir1.time_limit_seconds},
            "oir2": {"id": self.oir2.id, "title": self.oir2.title, "time_limit_seconds": self.oir2.time_limit_seconds},
            "ppdt": {"id": self.ppdt.id, "description": self.ppdt.description},
        }


def assemble_sets(oir_sets: List[OIRSet], scenarios: List[PPDTScenario]) -> List[ScreeningSet]:
    labelled_oir = [s for s in oir_sets if SCREENING_LABEL in s.title.lower()]
    labelled_ppdt = [p for p in scenarios if SCREENING_LABEL in (p.description or "").lower()]
    tests: List[ScreeningSet] = []
    if len(labelled_oir) >= 2 and labelled_ppdt:
        for number in range(1, MAX_TEST_SETS + 1):
            tag = str(number)
            matching = [s for s in labelled_oir if tag in s.title]
            ppdt = next((p for p in labelled_ppdt if tag in (p.description or "")), None)
            if len(matching) >= 2 and ppdt is not None:
                tests.append(ScreeningSet(f"screening-{number}", f"Screening TEST {number}", matching[0], matching[1], ppdt))
    if not tests and len(oir_sets) >= 2 and scenarios:
        for i in range(min(MAX_TEST_SETS, len(oir_sets) // 2)):
            tests.append(
                ScreeningSet(
                    f"virtual-screening-{i + 1}",
                    f"Screening TEST {i + 1}",
                    oir_sets[i * 2],
                    oir_sets[i * 2 + 1],
                    scenarios[i % len(scenarios)],
                )
            )
    return tests


def available_sets(db: Session) -> List[ScreeningSet]:
    return assemble_sets(store.list_oir_sets(db), store.list_ppdt_scenarios(db))


class ScreeningPhase(str, Enum):
    LOBBY = "LOBBY"
    OIR_1_INSTRUCTIONS = "OIR_1_INSTRUCTIONS"
    OIR_1_TEST = "OIR_1_TEST"
    OIR_2_INSTRUCTIONS = "OIR_2_INSTRUCTIONS"
    OIR_2_TEST = "OIR_2_TEST"
    PPDT_INSTRUCTIONS = "PPDT_INSTRUCTIONS"
    PPDT_IMAGE = "PPDT_IMAGE"
    PPDT_STORY = "PPDT_STORY"
    PPDT_NARRATION = "PPDT_NARRATION"
    EVALUATING = "EVALUATING"
    RESULT = "RESULT"


STAGES = [
    StageSpec(ScreeningPhase.LOBBY),
    StageSpec(ScreeningPhase.OIR_1_INSTRUCTIONS),
    # OIR durations come from the chosen set
    StageSpec(ScreeningPhase.OIR_1_TEST),
    StageSpec(ScreeningPhase.OIR_2_INSTRUCTIONS),
    StageSpec(ScreeningPhase.OIR_2_TEST),
    StageSpec(ScreeningPhase.PPDT_INSTRUCTIONS),
    StageSpec(ScreeningPhase.PPDT_IMAGE, duration_seconds=30),
    StageSpec(ScreeningPhase.PPDT_STORY, duration_seconds=240),
    StageSpec(ScreeningPhase.PPDT_NARRATION, duration_seconds=60),
    StageSpec(ScreeningPhase.EVALUATING),
    StageSpec(ScreeningPhase.RESULT, terminal=True),
]

TRANSITIONS = {
    (ScreeningPhase.LOBBY, Trigger.ADVANCE): ScreeningPhase.OIR_1_INSTRUCTIONS,
    (ScreeningPhase.OIR_1_INSTRUCTIONS, Trigger.ADVANCE): ScreeningPhase.OIR_1_TEST,
    (ScreeningPhase.OIR_1_TEST, Trigger.SUBMIT): ScreeningPhase.OIR_2_INSTRUCTIONS,
    (ScreeningPhase.OIR_1_TEST, Trigger.TIMEOUT): ScreeningPhase.OIR_2_INSTRUCTIONS,
    (ScreeningPhase.OIR_2_INSTRUCTIONS, Trigger.ADVANCE): ScreeningPhase.OIR_2_TEST,
    (ScreeningPhase.OIR_2_TEST, Trigger.SUBMIT): ScreeningPhase.PPDT_INSTRUCTIONS,
    (ScreeningPhase.OIR_2_TEST, Trigger.TIMEOUT): ScreeningPhase.PPDT_INSTRUCTIONS,
    (ScreeningPhase.PPDT_INSTRUCTIONS, Trigger.ADVANCE): ScreeningPhase.PPDT_IMAGE,
    (ScreeningPhase.PPDT_IMAGE, Trigger.TIMEOUT): ScreeningPhase.PPDT_STORY,
    (ScreeningPhase.PPDT_STORY, Trigger.SUBMIT): ScreeningPhase.PPDT_NARRATION,
    (ScreeningPhase.PPDT_STORY, Trigger.TIMEOUT): ScreeningPhase.PPDT_NARRATION,
    (ScreeningPhase.PPDT_NARRATION, Trigger.SUBMIT): ScreeningPhase.EVALUATING,
    (ScreeningPhase.PPDT_NARRATION, Trigger.TIMEOUT): ScreeningPhase.EVALUATING,
    (ScreeningPhase.EVALUATING, Trigger.RESOLVED): ScreeningPhase.RESULT,
}

_TESTS = {ScreeningPhase.OIR_1_TEST: 0, ScreeningPhase.OIR_2_TEST: 1}


def new_machine() -> PhaseMachine[ScreeningPhase]:
    return PhaseMachine(STAGES, TRANSITIONS)


class ScreeningSession(TimedSession[ScreeningPhase]):
    kind = "screening"

    def __init__(
        self, username: str, gateway: Gateway, *, db_factory: Optional[DbFactory] = None, guest: bool = False
    ) -> None:
        super().__init__(username, new_machine(), gateway, db_factory=db_factory, guest=guest)
        self.on_reset()
        self.on_enter(ScreeningPhase.PPDT_INSTRUCTIONS, self._prepare_stimulus)
        self.on_enter(ScreeningPhase.EVALUATING, self._begin_evaluation)

    def on_reset(self) -> None:
        self.test_set: Optional[Dict[str, Any]] = None
        self.time_limits: List[int] = [0, 0]
        self.questions: List[List[Dict[str, Any]]] = [[], []]
        self.answers: List[List[int]] = [[], []]
        self.ppdt_description: Optional[str] = None
        self.stimulus_url: Optional[str] = None
        self.story = ""
        self.narration = ""

    def duration_for(self, phase: ScreeningPhase) -> Optional[int]:
        if phase in _TESTS:
            return self.time_limits[_TESTS[phase]]
        return super().duration_for(phase)

    # -- candidate actions ---------------------------------------------------

    def load(self, test_set: ScreeningSet, oir1: List[Dict[str, Any]], oir2: List[Dict[str, Any]]) -> ScreeningPhase:
        self.expect(ScreeningPhase.LOBBY)
        if not oir1 or not oir2:
            raise PhaseError("the selected test has no questions")
        self.test_set = test_set.as_dict()
        self.time_limits = [test_set.oir1.time_limit_seconds, test_set.oir2.time_limit_seconds]
        self.questions = [oir1, oir2]
        self.answers = [[UNANSWERED] * len(oir1), [UNANSWERED] * len(oir2)]
        self.ppdt_description = test_set.ppdt.description
        self.stimulus_url = test_set.ppdt.image_url
        return self.fire(Trigger.ADVANCE)

    def answer(self, index: int, option: int) -> None:
        if self.phase not in _TESTS:
            raise PhaseError("answers are only accepted during an OIR test")
        test = _TESTS[self.phase]
        if not 0 <= index < len(self.questions[test]):
            raise PhaseError(f"no question {index}")
        options = self.questions[test][index].get("options") or []
        if option != UNANSWERED and not 0 <= option < len(options):
            raise PhaseError(f"question {index} has no option {option}")
        self.answers[test][index] = option

    def write_story(self, text: str) -> None:
        self.expect(ScreeningPhase.PPDT_STORY)
        self.story = text

    async def upload_story(self, image: MediaClip) -> str:
        """Replace the story with the transcription of a handwritten sheet."""
        self.expect(ScreeningPhase.PPDT_STORY)
        transcribed = await self.gateway.transcribe_handwriting(image)
        if not transcribed.ok:
            raise PhaseError("could not read the handwritten story; type it instead")
        # Writing time may have run out while the sheet was being read
        if self.phase not in (ScreeningPhase.PPDT_STORY, ScreeningPhase.PPDT_NARRATION):
            raise PhaseError("the test moved on while the story was read")
        self.story = (transcribed.value or "").strip()
        return self.story

    async def narrate(self, text: Optional[str] = None, audio: Optional[MediaClip] = None) -> str:
        self.expect(ScreeningPhase.PPDT_NARRATION)
        if audio is not None:
            epoch = self.machine.epoch
            with self.recording.hold("narration"):
                transcribed = await self.gateway.transcribe_audio(audio)
            if not self.machine.is_current(epoch):
                raise PhaseError("narration time ended while the recording was transcribed")
            if not transcribed.ok:
                raise PhaseError("could not transcribe the narration; try again")
            text = transcribed.value
        text = (text or "").strip()
        if text:
            self.narration = f"{self.narration} {text}".strip()
        return self.narration

    # -- scoring -------------------------------------------------------------

    def percentages(self) -> List[float]:
        return [
            oir_percentage([q["correct_index"] for q in self.questions[i]], self.answers[i])
            for i in range(2)
        ]

    def inputs(self) -> Dict[str, Any]:
        oir1, oir2 = self.percentages()
        return {
            "test_set": (self.test_set or {}).get("title"),
            "oir1_perc": oir1,
            "oir2_perc": oir2,
            "story": self.story,
            "narration": self.narration,
            "description": self.ppdt_description,
        }

    # -- entry effects -------------------------------------------------------

    def _prepare_stimulus(self, epoch: int) -> None:
        if not self.stimulus_url:
            self.spawn(self._generate_stimulus(), "stimulus generation")

    async def _generate_stimulus(self) -> None:
        stimulus = await self.gateway.generate_ppdt_stimulus(self.ppdt_description)
        if self.phase in (ScreeningPhase.PPDT_INSTRUCTIONS, ScreeningPhase.PPDT_IMAGE) and not self.stimulus_url:
            self.stimulus_url = stimulus.url

    def _begin_evaluation(self, epoch: int) -> None:
        self.spawn(self._evaluate(epoch), "screening evaluation")

    async def _evaluate(self, epoch: int) -> None:
        inputs = self.inputs()
        outcome = await evaluations.evaluate(self.gateway, evaluations.SCREENING, inputs)
        if not self.machine.is_current(epoch):
            return
        self.conclude(evaluations.SCREENING, outcome, inputs, "Evaluation failed. Please try again from your history.")

    def view(self) -> Dict[str, Any]:
        view: Dict[str, Any] = {"test_set": self.test_set, "story": self.story, "narration": self.narration}
        if self.phase in _TESTS:
            test = _TESTS[self.phase]
            # Correct answers stay server-side
            view["questions"] = [
                {"id": q["id"], "text": q["text"], "image_url": q["image_url"], "options": q["options"]}
                for q in self.questions[test]
            ]
            view["answers"] = list(self.answers[test])
        if self.phase in (ScreeningPhase.PPDT_IMAGE, ScreeningPhase.PPDT_INSTRUCTIONS):
            view["stimulus_url"] = self.stimulus_url
        return view
