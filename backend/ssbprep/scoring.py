"""Weighted screening decision combining the OIR battery and PPDT."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional, Sequence

OBJECTIVE_WEIGHT = 0.4
SUBJECTIVE_WEIGHT = 0.6
IN_THRESHOLD = 7.5
BORDERLINE_THRESHOLD = 6.0
MIN_SUBJECTIVE_SCORE = 5.0
MIN_OBJECTIVE_AVERAGE = 40.0
MIN_OBJECTIVE_EACH = 50.0

UNANSWERED = -1


@dataclass(frozen=True)
class ScreeningResult:
	oir1_perc: float
	oir2_perc: float
	oir_avg_perc: float
	oir_score: float
	ppdt_score: float
	final_score: float
	status: str  # IN | BORDERLINE | OUT
	reason: str = ""

	def as_dict(self) -> Dict[str, Any]:
		return asdict(self)


def oir_percentage(correct_indices: Sequence[int], answers: Sequence[int]) -> float:
	"""Percentage of questions answered correctly; unanswered count as wrong."""
	if not correct_indices:
		return 0.0
	correct = sum(
		1
		for i, expected in enumerate(correct_indices)
		if i < len(answers) and answers[i] != UNANSWERED and answers[i] == expected
	)
	return correct / len(correct_indices) * 100


def _elimination_reason(oir1_perc: float, oir2_perc: float, oir_avg_perc: float, ppdt_score: float) -> Optional[str]:
	if ppdt_score < MIN_SUBJECTIVE_SCORE:
		return "PPDT performance below minimum threshold (Score < 5)."
	if oir_avg_perc < MIN_OBJECTIVE_AVERAGE:
		return "OIR average percentage below minimum threshold (Average < 40%)."
	if oir1_perc < MIN_OBJECTIVE_EACH and oir2_perc < MIN_OBJECTIVE_EACH:
		return "Failed to score above 50% in both OIR tests."
	return None


def score_screening(oir1_perc: float, oir2_perc: float, ppdt_score: float) -> ScreeningResult:
	oir_avg_perc = (oir1_perc + oir2_perc) / 2
	oir_score = oir_avg_perc / 10
	final_score = OBJECTIVE_WEIGHT * oir_score + SUBJECTIVE_WEIGHT * ppdt_score
	if final_score >= IN_THRESHOLD:
		status = "IN"
	elif final_score >= BORDERLINE_THRESHOLD:
		status = "BORDERLINE"
	else:
		status = "OUT"
	reason = _elimination_reason(oir1_perc, oir2_perc, oir_avg_perc, ppdt_score)
	if reason:
		status = "OUT"
	return ScreeningResult(
		oir1_perc=oir1_perc,
		oir2_perc=oir2_perc,
		oir_avg_perc=oir_avg_perc,
		oir_score=oir_score,
		ppdt_score=ppdt_score,
		final_score=final_score,
		status=status,
		reason=reason or "",
	)


def screening_feedback(result: ScreeningResult, ppdt_recommendations: str) -> str:
	lines = [
		"Based on your performance in the Screening Test:",
		f"- OIR 1: {result.oir1_perc:.1f}%",
		f"- OIR 2: {result.oir2_perc:.1f}%",
		f"- PPDT Score: {result.ppdt_score:g}/10",
		"",
		f"Final Weighted Score: {result.final_score:.2f}/10",
	]
	if result.reason:
		lines += ["", f"Elimination Rule Triggered: {result.reason}"]
	if ppdt_recommendations:
		lines += ["", f"PPDT Analysis: {ppdt_recommendations}"]
	return "\n".join(lines)
