"""Content and result store backed by the relational database."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from .models import DailyCache, GPEScenario, HistoryEntry, LecturetteTopic, OIRQuestion, OIRSet, PPDTScenario

logger = logging.getLogger(__name__)

STATUS_PENDING = "PENDING"
STATUS_COMPLETED = "COMPLETED"


def _loads(text: Optional[str]) -> Any:
	if not text:
		return None
	try:
		return json.loads(text)
	except ValueError:
		logger.warning("Stored JSON is corrupt: %.200s", text)
		return None


# ---- daily cache ----

def get_cached(db: Session, category: str, date_key: str) -> Any:
	row = db.query(DailyCache).filter(DailyCache.category == category, DailyCache.date_key == date_key).first()
	return _loads(row.content) if row else None


def put_cached(db: Session, category: str, date_key: str, content: Any) -> None:
	row = db.query(DailyCache).filter(DailyCache.category == category, DailyCache.date_key == date_key).first()
	payload = json.dumps(content)
	if row is None:
		db.add(DailyCache(category=category, date_key=date_key, content=payload))
	else:
		row.content = payload
	try:
		db.commit()
	except Exception:
		db.rollback()
		logger.exception("Cache write failed for %s/%s", category, date_key)
		raise


# ---- lecturette outlines ----

def get_lecturette_outline(db: Session, topic: str) -> Optional[Dict[str, Any]]:
	row = db.get(LecturetteTopic, topic)
	return _loads(row.content) if row else None


def save_lecturette_outline(db: Session, topic: str, category: Optional[str], content: Dict[str, Any]) -> None:
	row = LecturetteTopic(topic=topic, board="SSB", category=category, content=json.dumps(content))
	db.merge(row)
	db.commit()


# ---- test history ----

def save_attempt(
	db: Session,
	username: str,
	test_type: str,
	result: Optional[Dict[str, Any]],
	*,
	status: str = STATUS_COMPLETED,
	inputs: Optional[Dict[str, Any]] = None,
) -> HistoryEntry:
	row = HistoryEntry(
		username=username,
		test_type=test_type,
		score=float((result or {}).get("score") or 0),
		status=status,
		result_data=json.dumps(result) if result is not None else None,
		inputs=json.dumps(inputs) if inputs is not None else None,
	)
	db.add(row)
	db.commit()
	db.refresh(row)
	return row


def update_attempt(db: Session, record_id: int, **fields: Any) -> Optional[HistoryEntry]:
	row = db.get(HistoryEntry, record_id)
	if row is None:
		return None
	if "result" in fields:
		result = fields.pop("result")
		row.result_data = json.dumps(result) if result is not None else None
		row.score = float((result or {}).get("score") or 0)
	for key, value in fields.items():
		setattr(row, key, value)
	db.commit()
	db.refresh(row)
	return row


def get_attempt(db: Session, record_id: int, username: str) -> Optional[HistoryEntry]:
	row = db.get(HistoryEntry, record_id)
	if row is None or row.username != username:
		return None
	return row


def list_attempts(db: Session, username: str, limit: int = 10) -> List[HistoryEntry]:
	return (
		db.query(HistoryEntry)
		.filter(HistoryEntry.username == username)
		.order_by(HistoryEntry.created_at.desc(), HistoryEntry.id.desc())
		.limit(limit)
		.all()
	)


def attempt_as_dict(row: HistoryEntry) -> Dict[str, Any]:
	return {
		"id": row.id,
		"type": row.test_type,
		"status": row.status,
		"score": row.score,
		"timestamp": row.created_at.isoformat() if row.created_at else None,
		"result": _loads(row.result_data),
	}


def attempt_inputs(row: HistoryEntry) -> Dict[str, Any]:
	return _loads(row.inputs) or {}


# ---- catalog ----

def list_gpe_scenarios(db: Session) -> List[GPEScenario]:
	return db.query(GPEScenario).order_by(GPEScenario.id.asc()).all()


def list_oir_sets(db: Session) -> List[OIRSet]:
	return db.query(OIRSet).order_by(OIRSet.created_at.desc(), OIRSet.id.desc()).all()


def list_oir_questions(db: Session, set_id: int) -> List[Dict[str, Any]]:
	rows = db.query(OIRQuestion).filter(OIRQuestion.set_id == set_id).order_by(OIRQuestion.id.asc()).all()
	return [
		{
			"id": q.id,
			"text": q.text,
			"image_url": q.image_url,
			"options": _loads(q.options) or [],
			"correct_index": q.correct_index,
		}
		for q in rows
	]


def list_ppdt_scenarios(db: Session) -> List[PPDTScenario]:
	return db.query(PPDTScenario).order_by(PPDTScenario.id.asc()).all()


# ---- catalog administration ----

def create_gpe_scenario(db: Session, title: str, narrative: str, difficulty: str = "Medium", image_url: Optional[str] = None) -> GPEScenario:
	row = GPEScenario(title=title, narrative=narrative, difficulty=difficulty, image_url=image_url)
	db.add(row)
	db.commit()
	db.refresh(row)
	return row


def delete_gpe_scenario(db: Session, scenario_id: int) -> bool:
	row = db.get(GPEScenario, scenario_id)
	if row is None:
		return False
	db.delete(row)
	db.commit()
	return True


def create_oir_set(db: Session, title: str, time_limit_seconds: int) -> OIRSet:
	row = OIRSet(title=title, time_limit_seconds=time_limit_seconds)
	db.add(row)
	db.commit()
	db.refresh(row)
	return row


def delete_oir_set(db: Session, set_id: int) -> bool:
	row = db.get(OIRSet, set_id)
	if row is None:
		return False
	# SQLite leaves foreign keys unenforced, so questions go explicitly
	db.query(OIRQuestion).filter(OIRQuestion.set_id == set_id).delete(synchronize_session=False)
	db.delete(row)
	db.commit()
	return True


def add_oir_question(
	db: Session,
	set_id: int,
	text: str,
	options: List[str],
	correct_index: int,
	image_url: Optional[str] = None,
) -> Optional[OIRQuestion]:
	if db.get(OIRSet, set_id) is None:
		return None
	row = OIRQuestion(set_id=set_id, text=text, image_url=image_url, options=json.dumps(options), correct_index=correct_index)
	db.add(row)
	db.commit()
	db.refresh(row)
	return row


def delete_oir_question(db: Session, question_id: int) -> bool:
	row = db.get(OIRQuestion, question_id)
	if row is None:
		return False
	db.delete(row)
	db.commit()
	return True


def create_ppdt_scenario(db: Session, description: Optional[str], image_url: Optional[str]) -> PPDTScenario:
	row = PPDTScenario(description=description, image_url=image_url)
	db.add(row)
	db.commit()
	db.refresh(row)
	return row


def delete_ppdt_scenario(db: Session, scenario_id: int) -> bool:
	row = db.get(PPDTScenario, scenario_id)
	if row is None:
		return False
	db.delete(row)
	db.commit()
	return True
