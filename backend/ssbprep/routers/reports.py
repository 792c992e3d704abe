from __future__ import annotations
from html import escape
from typing import Any, Dict, List
import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import HTMLResponse
from sqlalchemy.orm import Session

from .. import evaluations, store
from ..db import get_db
from ..gateway import Gateway, get_gateway
from .auth import User, require_member

router = APIRouter(prefix="/reports", tags=["reports"])

logger = logging.getLogger(__name__)


def _record(db: Session, record_id: int, user: User):
	row = store.get_attempt(db, record_id, user.username)
	if row is None:
		raise HTTPException(status_code=404, detail="record not found")
	return row


@router.get("")
async def history(limit: int = Query(default=10, ge=1, le=100), user: User = Depends(require_member), db: Session = Depends(get_db)):
	return [store.attempt_as_dict(r) for r in store.list_attempts(db, user.username, limit)]


@router.get("/{record_id}")
async def show(record_id: int, user: User = Depends(require_member), db: Session = Depends(get_db)):
	return store.attempt_as_dict(_record(db, record_id, user))


@router.post("/{record_id}/retry")
async def retry(record_id: int, user: User = Depends(require_member), db: Session = Depends(get_db), gateway: Gateway = Depends(get_gateway)):
	row = _record(db, record_id, user)
	if row.status != store.STATUS_PENDING:
		raise HTTPException(status_code=409, detail="this report is already complete")
	outcome = await evaluations.retry(db, gateway, row)
	if not outcome.ok:
		raise HTTPException(status_code=502, detail="evaluation failed again; try later")
	return store.attempt_as_dict(_record(db, record_id, user))


def _items(title: str, values: List[str]) -> str:
	if not values:
		return ""
	lis = "".join(f"<li>{escape(str(v))}</li>" for v in values)
	return f"<h2>{escape(title)}</h2><ul>{lis}</ul>"


def render_report(record: Dict[str, Any]) -> str:
	result = record.get("result") or {}
	score = result.get("score", record.get("score"))
	parts = [
		f"<h1>{escape(record['type'])} report</h1>",
		f"<p>Date: {escape(record.get('timestamp') or '')}</p>",
		f"<p>Score: {escape(f'{float(score or 0):.1f}')}/10</p>",
	]
	for key in ("verdict", "status", "reason"):
		if result.get(key):
			parts.append(f"<p><b>{escape(key.title())}:</b> {escape(str(result[key]))}</p>")
	parts.append(_items("Strengths", result.get("strengths") or []))
	parts.append(_items("Areas to improve", result.get("weaknesses") or []))
	if result.get("recommendations"):
		parts.append(f"<h2>Recommendations</h2><p>{escape(result['recommendations'])}</p>")
	if result.get("feedback"):
		parts.append(f"<h2>Feedback</h2><pre>{escape(result['feedback'])}</pre>")
	body = "".join(p for p in parts if p)
	return f"<!doctype html><html><head><meta charset=\"utf-8\"><title>SSB report</title></head><body>{body}</body></html>"


@router.get("/{record_id}/print", response_class=HTMLResponse)
async def print_view(record_id: int, user: User = Depends(require_member), db: Session = Depends(get_db)):
	row = _record(db, record_id, user)
	if row.status != store.STATUS_COMPLETED:
		raise HTTPException(status_code=409, detail="the evaluation is still pending")
	return HTMLResponse(render_report(store.attempt_as_dict(row)))
