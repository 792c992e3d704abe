"""Lecturette: three minutes to prepare a topic, three minutes to speak on it."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Dict, Optional

from .. import evaluations, store
from ..gateway import Gateway
from ..media import MediaClip
from ..phases import PhaseError, PhaseMachine, StageSpec, Trigger
from .base import DbFactory, TimedSession

logger = logging.getLogger(__name__)

WARNING_MARK = 30

LECTURETTE_TOPICS = [
    {"title": "Indo-US Relations", "difficulty": "High", "category": "International"},
    {"title": "Women in Combat Roles", "difficulty": "Medium", "category": "Social"},
    {"title": "Cyber Warfare", "difficulty": "High", "category": "Technology"},
    {"title": "Atmanirbhar Bharat in Defense", "difficulty": "Medium", "category": "National"},
    {"title": "Climate Change & Security", "difficulty": "Low", "category": "Global"},
    {"title": "Role of Youth in Nation Building", "difficulty": "Low", "category": "Social"},
    {"title": "Artificial Intelligence in Modern Warfare", "difficulty": "High", "category": "Tech"},
    {"title": "India's Nuclear Policy", "difficulty": "High", "category": "Defense"},
    {"title": "NEP 2020", "difficulty": "Medium", "category": "Education"},
    {"title": "G20 Presidency Impact", "difficulty": "Medium", "category": "International"},
]


def find_topic(title: str) -> Optional[Dict[str, str]]:
    for topic in LECTURETTE_TOPICS:
        if topic["title"].lower() == title.strip().lower():
            return topic
    return None


class LecturettePhase(str, Enum):
    SELECTION = "SELECTION"
    PREPARATION = "PREPARATION"
    SPEAKING = "SPEAKING"
    EVALUATING = "EVALUATING"
    COMPLETED = "COMPLETED"


STAGES = [
    StageSpec(LecturettePhase.SELECTION),
    StageSpec(LecturettePhase.PREPARATION, duration_seconds=180, pausable=True),
    StageSpec(LecturettePhase.SPEAKING, duration_seconds=180, requires_content=True),
    StageSpec(LecturettePhase.EVALUATING),
    StageSpec(LecturettePhase.COMPLETED, terminal=True),
]

TRANSITIONS = {
    (LecturettePhase.SELECTION, Trigger.ADVANCE): LecturettePhase.PREPARATION,
    (LecturettePhase.PREPARATION, Trigger.ADVANCE): LecturettePhase.SPEAKING,
    (LecturettePhase.PREPARATION, Trigger.TIMEOUT): LecturettePhase.SPEAKING,
    (LecturettePhase.SPEAKING, Trigger.SUBMIT): LecturettePhase.EVALUATING,
    (LecturettePhase.SPEAKING, Trigger.TIMEOUT): LecturettePhase.EVALUATING,
    (LecturettePhase.EVALUATING, Trigger.RESOLVED): LecturettePhase.COMPLETED,
}


def new_machine() -> PhaseMachine[LecturettePhase]:
    return PhaseMachine(STAGES, TRANSITIONS)


class LecturetteSession(TimedSession[LecturettePhase]):
    kind = "lecturette"

    def __init__(
        self, username: str, gateway: Gateway, *, db_factory: Optional[DbFactory] = None, guest: bool = False
    ) -> None:
        super().__init__(username, new_machine(), gateway, db_factory=db_factory, guest=guest)
        self.topic: Optional[Dict[str, str]] = None
        self.outline: Optional[Dict[str, Any]] = None
        self.outline_error: Optional[str] = None
        self.transcript = ""
        self.on_enter(LecturettePhase.PREPARATION, self._begin_preparation)
        self.on_enter(LecturettePhase.EVALUATING, self._begin_evaluation)

    def on_reset(self) -> None:
        self.topic = None
        self.outline = None
        self.outline_error = None
        self.transcript = ""

    def warnings_for(self, phase: LecturettePhase) -> Dict[int, Callable[[], Any]]:
        if phase is LecturettePhase.SPEAKING:
            return {WARNING_MARK: lambda: self.notices.append(f"{WARNING_MARK} seconds remaining")}
        return {}

    # -- candidate actions ---------------------------------------------------

    def select(self, title: str) -> LecturettePhase:
        self.expect(LecturettePhase.SELECTION)
        if not title.strip():
            raise PhaseError("pick a topic first")
        # Candidates may bring their own topic
        self.topic = find_topic(title) or {"title": title.strip(), "difficulty": "Custom", "category": "General"}
        return self.fire(Trigger.ADVANCE)

    def begin_speaking(self) -> LecturettePhase:
        return self.fire(Trigger.ADVANCE)

    def add_transcript(self, text: str) -> None:
        self.expect(LecturettePhase.SPEAKING)
        text = text.strip()
        if text:
            self.transcript = f"{self.transcript} {text}".strip()

    async def submit_speech(self, transcript: Optional[str] = None, audio: Optional[MediaClip] = None) -> LecturettePhase:
        self.expect(LecturettePhase.SPEAKING)
        if transcript:
            self.add_transcript(transcript)
        if audio is not None:
            epoch = self.machine.epoch
            with self.recording.hold("speech"):
                transcribed = await self.gateway.transcribe_audio(audio)
            if not self.machine.is_current(epoch):
                raise PhaseError("the stage changed while the recording was transcribed")
            if not transcribed.ok:
                raise PhaseError("could not transcribe the recording; try again")
            self.add_transcript(transcribed.value or "")
        return self.fire(Trigger.SUBMIT, self.transcript)

    # -- entry effects -------------------------------------------------------

    def _begin_preparation(self, epoch: int) -> None:
        self.spawn(self._load_outline(epoch), "outline fetch")

    async def _load_outline(self, epoch: int) -> None:
        title = self.topic["title"] if self.topic else ""
        cached = self.persist(lambda db: store.get_lecturette_outline(db, title))
        if cached:
            outline: Optional[Dict[str, Any]] = cached
        else:
            fetched = await self.gateway.generate_lecturette_outline(title)
            outline = fetched.value if fetched.ok else None
            if outline is not None:
                category = self.topic.get("category") if self.topic else None
                try:
                    self.persist(lambda db: store.save_lecturette_outline(db, title, category, outline))
                except Exception as exc:
                    logger.error("Could not cache outline for %r: %s", title, exc)
        if not self.machine.is_current(epoch):
            return
        if outline is None:
            self.outline_error = "Could not prepare the outline. Prepare from your own notes."
        else:
            self.outline = outline

    def inputs(self) -> Dict[str, Any]:
        return {
            "topic": self.topic["title"] if self.topic else "",
            "transcript": self.transcript,
            "outline": self.outline,
        }

    def _begin_evaluation(self, epoch: int) -> None:
        self.spawn(self._evaluate(epoch), "lecturette evaluation")

    async def _evaluate(self, epoch: int) -> None:
        inputs = self.inputs()
        if not self.transcript.strip():
            # Time ran out with nothing said; there is nothing to assess
            self.error = "No speech was captured before time ran out."
            self.fire(Trigger.RESOLVED)
            return
        outcome = await evaluations.evaluate(self.gateway, evaluations.LECTURETTE, inputs)
        if not self.machine.is_current(epoch):
            return
        self.conclude(evaluations.LECTURETTE, outcome, inputs, "Evaluation failed. Retry it from your history.")

    def view(self) -> Dict[str, Any]:
        return {
            "topic": self.topic,
            "outline": self.outline,
            "outline_error": self.outline_error,
            "transcript": self.transcript,
        }
