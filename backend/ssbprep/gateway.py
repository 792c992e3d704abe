"""
AI Gateway
==========

Typed wrappers around every Gemini call the tests need: briefing, outlines,
simulated group discussion, evaluations, transcription, stimulus images and
speech. Each call opens a short-lived ``GeminiClient``, closes it, and returns
an ``Outcome``. Network errors and malformed model output are logged and come
back as failed outcomes; nothing here raises to the caller.

Local quality rules live here too: a PPDT submission with fewer than
``MIN_PPDT_WORDS`` words never reaches the model.
"""

from __future__ import annotations

import logging
import random
import re
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, TypeVar

from .gemini_client import GeminiClient
from .media import MediaClip, MediaError
from .outcome import Outcome
from .protocol import BLOCK_END, BLOCK_START, extract_json
from .settings import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

MIN_PPDT_WORDS = 20

ClientFactory = Callable[[str], GeminiClient]


# ============================================================================
# RESULT TYPES
# ============================================================================

@dataclass
class Evaluation:
    """Scored assessment on the 0-10 scale used across all tests."""

    score: float
    verdict: str
    strengths: List[str] = field(default_factory=list)
    weaknesses: List[str] = field(default_factory=list)
    recommendations: str = ""
    sub_scores: Dict[str, float] = field(default_factory=dict)
    # Test-specific structured fields (perception, story analysis, OLQ notes)
    detail: Dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "Evaluation":
        known = {"score", "verdict", "strengths", "weaknesses", "recommendations", "subScores", "sub_scores"}
        sub_scores: Dict[str, float] = {}
        for key, value in (data.get("subScores") or data.get("sub_scores") or {}).items():
            num = _safe_float(value)
            if num is not None:
                sub_scores[key] = _clamp_score(num)
        return cls(
            score=_clamp_score(_safe_float(data.get("score")) or 0.0),
            verdict=str(data.get("verdict") or "Assessment Complete").strip(),
            strengths=_string_list(data.get("strengths")),
            weaknesses=_string_list(data.get("weaknesses")),
            recommendations=str(data.get("recommendations") or "").strip(),
            sub_scores=sub_scores,
            detail={k: v for k, v in data.items() if k not in known},
        )


INSUFFICIENT_PPDT = Evaluation(
    score=0.0,
    verdict="Insufficient Data",
    strengths=[],
    weaknesses=["Story and narration were too short to assess perception."],
    recommendations=(
        "Write a complete story (what led to the scene, what is happening, the outcome) "
        "and narrate it for the full minute before submitting."
    ),
    detail={"insufficient": True},
)


@dataclass(frozen=True)
class DiscussionPoint:
    speaker: str
    text: str


@dataclass(frozen=True)
class Stimulus:
    url: str
    description: str
    generated: bool


def _safe_float(value: Any) -> Optional[float]:
    try:
        if value is None:
            return None
        return float(value)
    except (TypeError, ValueError):
        return None


def _clamp_score(value: float) -> float:
    return max(0.0, min(10.0, value))


def _string_list(value: Any) -> List[str]:
    if isinstance(value, str):
        return [value.strip()] if value.strip() else []
    if not isinstance(value, list):
        return []
    return [str(v).strip() for v in value if str(v).strip()]


def word_count(*texts: Optional[str]) -> int:
    return sum(len(re.findall(r"\S+", t or "")) for t in texts)


# ============================================================================
# SCHEMAS
# ============================================================================

_STR = {"type": "STRING"}
_NUM = {"type": "NUMBER"}
_STR_LIST = {"type": "ARRAY", "items": _STR}


def _evaluation_schema(sub_scores: Sequence[str], extra: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    properties: Dict[str, Any] = {
        "score": _NUM,
        "verdict": _STR,
        "strengths": _STR_LIST,
        "weaknesses": _STR_LIST,
        "recommendations": _STR,
        "subScores": {"type": "OBJECT", "properties": {name: _NUM for name in sub_scores}},
    }
    properties.update(extra or {})
    return {
        "type": "OBJECT",
        "properties": properties,
        "required": ["score", "verdict", "strengths", "weaknesses", "recommendations"],
    }


GPE_SCHEMA = _evaluation_schema(
    ["planning", "resource_utilisation", "prioritisation", "group_contribution"],
    {"olqAssessment": _STR},
)
LECTURETTE_SCHEMA = _evaluation_schema(
    ["content", "structure", "delivery", "time_management"],
    {"olqAssessment": _STR},
)
PPDT_SCHEMA = _evaluation_schema(
    ["perception", "story", "narration"],
    {
        "perception": {
            "type": "OBJECT",
            "properties": {"heroAge": _STR, "heroSex": _STR, "heroMood": _STR, "mainTheme": _STR},
        },
        "storyAnalysis": {
            "type": "OBJECT",
            "properties": {"action": _STR, "outcome": _STR, "coherence": _STR},
        },
    },
)
OUTLINE_SCHEMA = {
    "type": "OBJECT",
    "properties": {"introduction": _STR, "keyPoints": _STR_LIST, "conclusion": _STR},
    "required": ["introduction", "keyPoints", "conclusion"],
}
DISCUSSION_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "points": {
            "type": "ARRAY",
            "items": {"type": "OBJECT", "properties": {"speaker": _STR, "text": _STR}, "required": ["speaker", "text"]},
        }
    },
    "required": ["points"],
}

MENTOR_PERSONA = """
You are Major Veer, a senior SSB assessor and mentor for defence aspirants.
Guide candidates through the five-day SSB procedure: screening (OIR, PPDT),
psychology (TAT, WAT, SRT, SD), GTO tasks, personal interview and conference.
Tone: professional, encouraging, concise, military-like. Speak of Officer Like
Qualities (OLQs). Keep answers structured, use bullet points where possible.
If asked about non-defence topics, redirect to SSB preparation.
""".strip()

_STOCK_STIMULI = [
    "https://images.unsplash.com/photo-1542744173-8e7e53415bb0?auto=format&fit=crop&w=800&q=80&sat=-100&blur=2&contrast=20",
    "https://images.unsplash.com/photo-1529156069898-49953e39b3ac?auto=format&fit=crop&w=800&q=80&sat=-100&blur=2&contrast=20",
    "https://images.unsplash.com/photo-1517048676732-d65bc937f952?auto=format&fit=crop&w=800&q=80&sat=-100&blur=2&contrast=20",
]

PPDT_SCENES = [
    "A group of 3 young men standing near a jeep discussing a map",
    "A doctor checking a patient while a woman watches anxiously",
    "A man helping another man climb a steep ledge",
    "Students sitting in a circle having a discussion",
    "A farmer talking to a man in formal clothes in a field",
    "A scene of an accident on the road with a few people gathering",
    "Two people pushing a cart uphill",
    "A person saving someone from drowning",
]


# ============================================================================
# GATEWAY
# ============================================================================

def _default_factory(model: str) -> GeminiClient:
    return GeminiClient(model=model)


class Gateway:
    def __init__(self, client_factory: Optional[ClientFactory] = None) -> None:
        self._factory = client_factory or _default_factory

    async def _call(self, model: str, label: str, fn: Callable[[GeminiClient], Awaitable[T]]) -> Outcome[T]:
        client: Optional[GeminiClient] = None
        try:
            client = self._factory(model)
            return Outcome.success(await fn(client))
        except Exception as exc:
            logger.error("%s failed: %s", label, exc)
            return Outcome.failure(f"{label} failed: {exc}")
        finally:
            if client is not None:
                await client.aclose()

    async def _structured(self, model: str, label: str, parts: List[Dict[str, Any]], schema: Dict[str, Any]) -> Outcome[Dict[str, Any]]:
        raw = await self._call(model, label, lambda c: c.generate_json(parts, schema))
        if not raw.ok:
            return Outcome(error=raw.error)
        parsed = extract_json(raw.value)
        if not parsed.ok:
            logger.warning("%s returned malformed JSON: %.500s", label, raw.value)
        return parsed

    async def _evaluation(self, label: str, parts: List[Dict[str, Any]], schema: Dict[str, Any]) -> Outcome[Evaluation]:
        parsed = await self._structured(settings.gemini_model, label, parts, schema)
        return parsed.map(Evaluation.from_payload)

    # -- content -------------------------------------------------------------

    async def fetch_daily_briefing(self, today: date) -> Outcome[Tuple[str, List[Dict[str, str]]]]:
        prompt = f"""
Act as a defence intelligence officer preparing the daily briefing for SSB aspirants on {today.isoformat()}.
Search for the most important news of the last 24-48 hours on Indian defence, geopolitics,
national affairs and science & technology. Report 6 to 8 items.

Use exactly this format for every item and nothing else:
{BLOCK_START}
HEADLINE: <one line>
TAG: <Defence|International|National|Economy|Science>
SUMMARY: <two or three factual sentences>
SSB_RELEVANCE: <why an aspirant should know this, one sentence>
{BLOCK_END}
""".strip()
        return await self._call(settings.gemini_model_fast, "daily briefing", lambda c: c.generate_grounded(prompt))

    async def generate_lecturette_outline(self, topic: str) -> Outcome[Dict[str, Any]]:
        prompt = (
            f"Prepare a three-minute SSB lecturette outline on \"{topic}\".\n"
            "Give a crisp introduction, 4 to 6 key points covering history, current status, "
            "challenges, India's perspective and the way forward, and a one-paragraph conclusion."
        )
        parsed = await self._structured(settings.gemini_model_fast, "lecturette outline", [{"text": prompt}], OUTLINE_SCHEMA)
        if not parsed.ok:
            return parsed
        data = parsed.value or {}
        points = _string_list(data.get("keyPoints"))
        introduction = str(data.get("introduction") or "").strip()
        if not introduction or not points:
            return Outcome.failure("lecturette outline incomplete", raw=str(data))
        return Outcome.success(
            {"introduction": introduction, "keyPoints": points, "conclusion": str(data.get("conclusion") or "").strip()}
        )

    async def simulate_discussion(self, narrative: str, solution: str) -> Outcome[List[DiscussionPoint]]:
        prompt = f"""
Simulate the group discussion stage of an SSB Group Planning Exercise.
Five other candidates ("Candidate 2" to "Candidate 6") each raise one point, some agreeing and
some challenging the candidate's plan; finish with one remark from the "GTO".

Situation:
{narrative}

Candidate's individual solution:
{solution or "(no solution written)"}
""".strip()
        parsed = await self._structured(settings.gemini_model, "group discussion", [{"text": prompt}], DISCUSSION_SCHEMA)
        if not parsed.ok:
            return Outcome(error=parsed.error, raw=parsed.raw)
        points = [
            DiscussionPoint(speaker=str(p.get("speaker") or "Candidate").strip(), text=str(p.get("text") or "").strip())
            for p in (parsed.value or {}).get("points") or []
            if isinstance(p, dict) and str(p.get("text") or "").strip()
        ]
        if not points:
            return Outcome.failure("group discussion returned no points")
        return Outcome.success(points)

    async def generate_ppdt_stimulus(self, description: Optional[str] = None) -> Stimulus:
        scene = description or random.choice(PPDT_SCENES)
        prompt = (
            f"Charcoal sketch of: {scene}. Style: rough, vintage, black and white sketch on paper. "
            "Details: ambiguous, hazy, high contrast, no colours."
        )
        image = await self._call(
            settings.gemini_model_image,
            "stimulus image",
            lambda c: c.generate_inline([{"text": prompt}], {"responseModalities": ["IMAGE"]}),
        )
        if image.ok:
            mime, data = image.value  # type: ignore[misc]
            return Stimulus(url=f"data:{mime};base64,{data}", description=scene, generated=True)
        logger.warning("Using stock PPDT stimulus for %r", scene)
        return Stimulus(url=random.choice(_STOCK_STIMULI), description=scene, generated=False)

    async def speak(self, text: str) -> Outcome[MediaClip]:
        config = {
            "responseModalities": ["AUDIO"],
            "speechConfig": {"voiceConfig": {"prebuiltVoiceConfig": {"voiceName": settings.gemini_tts_voice}}},
        }
        spoken = await self._call(
            settings.gemini_model_tts,
            "speech synthesis",
            lambda c: c.generate_inline([{"text": f"Read this briefing like a GTO, calm and clear: {text}"}], config),
        )
        if not spoken.ok:
            return Outcome(error=spoken.error)
        mime, data = spoken.value  # type: ignore[misc]
        try:
            return Outcome.success(MediaClip.from_base64(data, mime))
        except MediaError as exc:
            logger.warning("Speech synthesis returned unusable audio: %s", exc)
            return Outcome.failure(str(exc))

    async def chat(self, history: Sequence[Dict[str, str]], message: str) -> Outcome[str]:
        contents = [
            {"role": "model" if turn.get("role") in ("model", "assistant") else "user", "parts": [{"text": turn.get("text", "")}]}
            for turn in history
            if turn.get("text")
        ]
        contents.append({"role": "user", "parts": [{"text": message}]})
        return await self._call(settings.gemini_model, "mentor chat", lambda c: c.chat(contents, system=MENTOR_PERSONA))

    # -- transcription --------------------------------------------------------

    async def transcribe_audio(self, clip: MediaClip) -> Outcome[str]:
        parts = [
            {"text": "Transcribe this spoken English (Indian accent likely) verbatim. Return only the transcript."},
            clip.as_inline_part(),
        ]
        return await self._call(settings.gemini_model_fast, "audio transcription", lambda c: c.generate_multimodal(parts))

    async def transcribe_handwriting(self, clip: MediaClip) -> Outcome[str]:
        parts = [
            clip.as_inline_part(),
            {
                "text": "Transcribe this handwritten SSB story accurately. If there is a character box "
                "(age, sex, mood), ignore it. Return the story text only."
            },
        ]
        return await self._call(settings.gemini_model_fast, "handwriting transcription", lambda c: c.generate_multimodal(parts))

    # -- evaluation -----------------------------------------------------------

    async def evaluate_gpe(
        self,
        narrative: str,
        solution: str,
        final_plan: str,
        discussion: Sequence[DiscussionPoint] = (),
    ) -> Outcome[Evaluation]:
        transcript = "\n".join(f"{p.speaker}: {p.text}" for p in discussion) or "(discussion skipped)"
        prompt = f"""
Act as a Group Testing Officer assessing a Group Planning Exercise.
Score out of 10 and judge planning, prioritisation of problems, use of resources and time,
and contribution to the group plan. Note the OLQs projected.

Situation:
{narrative}

Individual solution:
{solution or "(none written)"}

Group discussion:
{transcript}

Final group plan given by the candidate:
{final_plan or "(none given)"}
""".strip()
        return await self._evaluation("GPE evaluation", [{"text": prompt}], GPE_SCHEMA)

    async def evaluate_lecturette(self, topic: str, transcript: str, outline: Optional[Dict[str, Any]] = None) -> Outcome[Evaluation]:
        outline_text = ""
        if outline:
            outline_text = "\nReference outline key points:\n" + "\n".join(f"- {p}" for p in outline.get("keyPoints") or [])
        prompt = f"""
Act as a GTO assessing a three-minute SSB lecturette on "{topic}".
Score out of 10 on content, structure, delivery and time management, and note the OLQs projected.
{outline_text}

Candidate's speech (transcribed):
{transcript}
""".strip()
        return await self._evaluation("lecturette evaluation", [{"text": prompt}], LECTURETTE_SCHEMA)

    async def evaluate_ppdt(
        self,
        story: str,
        narration: str,
        stimulus_description: Optional[str] = None,
        *,
        stimulus_image: Optional[MediaClip] = None,
        story_image: Optional[MediaClip] = None,
    ) -> Outcome[Evaluation]:
        if word_count(story, narration) < MIN_PPDT_WORDS:
            logger.info("PPDT submission below %d words, skipping model evaluation", MIN_PPDT_WORDS)
            return Outcome.success(Evaluation(**INSUFFICIENT_PPDT.as_dict()))
        parts: List[Dict[str, Any]] = []
        if stimulus_image is not None:
            parts += [{"text": "Input 1: visual stimulus (hazy picture shown to the candidate):"}, stimulus_image.as_inline_part()]
        if story_image is not None:
            parts += [{"text": "Input 2: candidate's handwritten response (story and character box):"}, story_image.as_inline_part()]
        parts.append(
            {
                "text": f"""
Act as an expert SSB psychologist for the Picture Perception and Description Test.
Transcribed story: "{story}"
Oral narration transcript: "{narration}"
Context description of the picture: "{stimulus_description or 'Unknown'}"

Compare the story with the stimulus for accuracy of perception, read the character box if visible,
evaluate the hero, the action and the outcome, and check that story and narration are consistent.
Score out of 10.
""".strip()
            }
        )
        return await self._evaluation("PPDT evaluation", parts, PPDT_SCHEMA)


_gateway = Gateway()


def get_gateway() -> Gateway:
    return _gateway
