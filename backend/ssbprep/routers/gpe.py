"""
Group Planning Exercise API
===========================

- GET  /gpe/scenarios: catalog, with guest-locked scenarios marked
- POST /gpe/sessions: pick a scenario and enter the model explanation
- GET  /gpe/sessions/{id}: current view of the session
- POST /gpe/sessions/{id}/select | /advance | /skip | /draft | /solution | /points | /final-plan | /reset
- GET  /gpe/sessions/{id}/narration: GTO reading of the situation
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..db import get_db
from ..gateway import Gateway, get_gateway
from ..models import GPEScenario
from ..phases import Trigger
from ..sessions.base import DbFactory
from ..sessions.gpe import GPESession, guest_allowed
from .auth import User, get_current_user
from .deps import MediaBody, TextBody, decode_media, get_db_factory, lookup, new_registry, phase_guard

router = APIRouter(prefix="/gpe", tags=["gpe"])

_sessions = new_registry()


class StartRequest(BaseModel):
	scenario_id: int


def _session(session_id: str, user: User) -> GPESession:
	return lookup(_sessions, session_id, user)  # type: ignore[return-value]


def _scenario(db: Session, scenario_id: int, user: User) -> GPEScenario:
	scenario = db.get(GPEScenario, scenario_id)
	if scenario is None:
		raise HTTPException(status_code=404, detail="scenario not found")
	if user.is_guest and not guest_allowed(scenario):
		raise HTTPException(status_code=403, detail="log in to unlock this scenario")
	return scenario


@router.get("/scenarios")
async def scenarios(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	rows = db.query(GPEScenario).order_by(GPEScenario.id.asc()).all()
	return [
		{
			"id": s.id,
			"title": s.title,
			"difficulty": s.difficulty,
			"image_url": s.image_url,
			"locked": user.is_guest and not guest_allowed(s),
		}
		for s in rows
	]


@router.post("/sessions", status_code=201)
async def start(
	req: StartRequest,
	user: User = Depends(get_current_user),
	db: Session = Depends(get_db),
	gateway: Gateway = Depends(get_gateway),
	db_factory: DbFactory = Depends(get_db_factory),
):
	scenario = _scenario(db, req.scenario_id, user)
	session = GPESession(user.username, gateway, db_factory=db_factory, guest=user.is_guest)
	with phase_guard():
		session.select(scenario)
	_sessions.add(session)
	return session.snapshot()


@router.get("/sessions/{session_id}")
async def show(session_id: str, user: User = Depends(get_current_user)):
	return _session(session_id, user).snapshot()


@router.post("/sessions/{session_id}/select")
async def select(session_id: str, req: StartRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	session = _session(session_id, user)
	scenario = _scenario(db, req.scenario_id, user)
	with phase_guard():
		session.select(scenario)
	return session.snapshot()


@router.post("/sessions/{session_id}/advance")
async def advance(session_id: str, user: User = Depends(get_current_user)):
	session = _session(session_id, user)
	with phase_guard():
		session.fire(Trigger.ADVANCE)
	return session.snapshot()


@router.post("/sessions/{session_id}/skip")
async def skip(session_id: str, user: User = Depends(get_current_user)):
	session = _session(session_id, user)
	with phase_guard():
		session.fire(Trigger.SKIP)
	return session.snapshot()


@router.post("/sessions/{session_id}/draft")
async def draft(session_id: str, body: TextBody, user: User = Depends(get_current_user)):
	session = _session(session_id, user)
	with phase_guard():
		session.draft(body.text)
	return session.snapshot()


@router.post("/sessions/{session_id}/solution")
async def submit_solution(session_id: str, body: TextBody, user: User = Depends(get_current_user)):
	session = _session(session_id, user)
	with phase_guard():
		session.submit_solution(body.text)
	return session.snapshot()


@router.post("/sessions/{session_id}/points")
async def add_point(session_id: str, body: TextBody, user: User = Depends(get_current_user)):
	session = _session(session_id, user)
	with phase_guard():
		session.add_point(body.text)
	return session.snapshot()


@router.post("/sessions/{session_id}/final-plan")
async def submit_final_plan(session_id: str, body: MediaBody, user: User = Depends(get_current_user)):
	session = _session(session_id, user)
	audio = decode_media(body)
	with phase_guard():
		await session.submit_final_plan(body.text, audio)
	return session.snapshot()


@router.get("/sessions/{session_id}/narration")
async def narration(session_id: str, user: User = Depends(get_current_user)):
	session = _session(session_id, user)
	with phase_guard():
		clip = await session.narrate()
	if clip is None:
		raise HTTPException(status_code=503, detail="narration unavailable; read the situation yourself")
	return {"audio": clip.to_data_url()}


@router.post("/sessions/{session_id}/reset")
async def reset(session_id: str, user: User = Depends(get_current_user)):
	session = _session(session_id, user)
	with phase_guard():
		session.reset()
	return session.snapshot()


@router.delete("/sessions/{session_id}", status_code=204)
async def close(session_id: str, user: User = Depends(get_current_user)):
	_session(session_id, user)
	_sessions.discard(session_id)
