"""Final evaluation of each test type, from the raw inputs kept in history.

Sessions and the retry of a PENDING record go through the same evaluator, so
a retried record ends up exactly as it would have the first time.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict

from sqlalchemy.orm import Session

from . import store
from .gateway import DiscussionPoint, Gateway
from .models import HistoryEntry
from .outcome import Outcome
from .scoring import score_screening, screening_feedback

logger = logging.getLogger(__name__)

GPE = "GPE"
LECTURETTE = "LECTURETTE"
PPDT = "PPDT"
SCREENING = "SCREENING_TEST"

Evaluator = Callable[[Gateway, Dict[str, Any]], Awaitable[Outcome[Dict[str, Any]]]]


async def _gpe(gateway: Gateway, inputs: Dict[str, Any]) -> Outcome[Dict[str, Any]]:
    discussion = [
        DiscussionPoint(speaker=p.get("speaker", ""), text=p.get("text", ""))
        for p in inputs.get("discussion") or []
    ]
    evaluated = await gateway.evaluate_gpe(
        inputs.get("narrative", ""),
        inputs.get("solution", ""),
        inputs.get("final_plan", ""),
        discussion,
    )
    return evaluated.map(lambda e: {**e.as_dict(), "scenario": inputs.get("scenario_title")})


async def _lecturette(gateway: Gateway, inputs: Dict[str, Any]) -> Outcome[Dict[str, Any]]:
    evaluated = await gateway.evaluate_lecturette(inputs.get("topic", ""), inputs.get("transcript", ""), inputs.get("outline"))
    return evaluated.map(lambda e: {**e.as_dict(), "topic": inputs.get("topic")})


async def _ppdt(gateway: Gateway, inputs: Dict[str, Any]) -> Outcome[Dict[str, Any]]:
    evaluated = await gateway.evaluate_ppdt(inputs.get("story", ""), inputs.get("narration", ""), inputs.get("description"))
    return evaluated.map(lambda e: e.as_dict())


async def _screening(gateway: Gateway, inputs: Dict[str, Any]) -> Outcome[Dict[str, Any]]:
    ppdt = await _ppdt(gateway, inputs)
    if not ppdt.ok:
        return ppdt
    ppdt_result = ppdt.value or {}
    result = score_screening(float(inputs.get("oir1_perc", 0)), float(inputs.get("oir2_perc", 0)), float(ppdt_result["score"]))
    return Outcome.success(
        {
            **result.as_dict(),
            "score": result.final_score,
            "ppdt": ppdt_result,
            "feedback": screening_feedback(result, ppdt_result.get("recommendations", "")),
        }
    )


EVALUATORS: Dict[str, Evaluator] = {
    GPE: _gpe,
    LECTURETTE: _lecturette,
    PPDT: _ppdt,
    SCREENING: _screening,
}


async def evaluate(gateway: Gateway, test_type: str, inputs: Dict[str, Any]) -> Outcome[Dict[str, Any]]:
    evaluator = EVALUATORS.get(test_type)
    if evaluator is None:
        return Outcome.failure(f"no evaluator for {test_type}")
    return await evaluator(gateway, inputs)


def record(db: Session, username: str, test_type: str, outcome: Outcome[Dict[str, Any]], inputs: Dict[str, Any]) -> HistoryEntry:
    """Persist an attempt. Failed evaluations are kept as PENDING for retry."""
    if outcome.ok:
        return store.save_attempt(db, username, test_type, outcome.value, status=store.STATUS_COMPLETED, inputs=inputs)
    logger.info("Saving %s attempt for %s as PENDING: %s", test_type, username, outcome.error)
    return store.save_attempt(db, username, test_type, None, status=store.STATUS_PENDING, inputs=inputs)


async def retry(db: Session, gateway: Gateway, row: HistoryEntry) -> Outcome[Dict[str, Any]]:
    if row.status != store.STATUS_PENDING:
        return Outcome.failure("only pending evaluations can be retried")
    outcome = await evaluate(gateway, row.test_type, store.attempt_inputs(row))
    if outcome.ok:
        store.update_attempt(db, row.id, result=outcome.value, status=store.STATUS_COMPLETED)
    return outcome
