"""
Screening Test API
==================

Registered candidates only. The battery runs OIR 1, OIR 2 and PPDT back to
back; the result combines both with the weighted screening model.

- GET  /screening/sets: available screening tests
- POST /screening/sessions: load a test and open the OIR 1 instructions
- GET  /screening/sessions/{id}: current view (questions only during a test)
- POST /screening/sessions/{id}/load: pick another test after a reset
- POST /screening/sessions/{id}/advance: start the next test / show the picture
- POST /screening/sessions/{id}/answers: mark an option (-1 clears it)
- POST /screening/sessions/{id}/finish: end the current test early
- POST /screening/sessions/{id}/story | /story/upload | /narration
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from .. import store
from ..db import get_db
from ..gateway import Gateway, get_gateway
from ..media import MediaClip
from ..phases import Trigger
from ..sessions.base import DbFactory
from ..sessions.screening import ScreeningSession, available_sets
from .auth import User, require_member
from .deps import MediaBody, TextBody, decode_media, get_db_factory, lookup, new_registry, phase_guard

router = APIRouter(prefix="/screening", tags=["screening"])

_sessions = new_registry()


class StartRequest(BaseModel):
	set_id: str


class AnswerRequest(BaseModel):
	index: int
	option: int


def _session(session_id: str, user: User) -> ScreeningSession:
	return lookup(_sessions, session_id, user)  # type: ignore[return-value]


def _load(db: Session, session: ScreeningSession, set_id: str) -> None:
	chosen = next((s for s in available_sets(db) if s.id == set_id), None)
	if chosen is None:
		raise HTTPException(status_code=404, detail="screening test not found")
	oir1 = store.list_oir_questions(db, chosen.oir1.id)
	oir2 = store.list_oir_questions(db, chosen.oir2.id)
	with phase_guard():
		session.load(chosen, oir1, oir2)


@router.get("/sets")
async def sets(user: User = Depends(require_member), db: Session = Depends(get_db)):
	return [s.as_dict() for s in available_sets(db)]


@router.post("/sessions", status_code=201)
async def start(
	req: StartRequest,
	user: User = Depends(require_member),
	db: Session = Depends(get_db),
	gateway: Gateway = Depends(get_gateway),
	db_factory: DbFactory = Depends(get_db_factory),
):
	session = ScreeningSession(user.username, gateway, db_factory=db_factory, guest=user.is_guest)
	_load(db, session, req.set_id)
	_sessions.add(session)
	return session.snapshot()


@router.get("/sessions/{session_id}")
async def show(session_id: str, user: User = Depends(require_member)):
	return _session(session_id, user).snapshot()


@router.post("/sessions/{session_id}/load")
async def load(session_id: str, req: StartRequest, user: User = Depends(require_member), db: Session = Depends(get_db)):
	session = _session(session_id, user)
	_load(db, session, req.set_id)
	return session.snapshot()


@router.post("/sessions/{session_id}/advance")
async def advance(session_id: str, user: User = Depends(require_member)):
	session = _session(session_id, user)
	with phase_guard():
		session.fire(Trigger.ADVANCE)
	return session.snapshot()


@router.post("/sessions/{session_id}/answers")
async def answer(session_id: str, req: AnswerRequest, user: User = Depends(require_member)):
	session = _session(session_id, user)
	with phase_guard():
		session.answer(req.index, req.option)
	return session.snapshot()


@router.post("/sessions/{session_id}/finish")
async def finish(session_id: str, user: User = Depends(require_member)):
	session = _session(session_id, user)
	with phase_guard():
		session.fire(Trigger.SUBMIT)
	return session.snapshot()


@router.post("/sessions/{session_id}/story")
async def story(session_id: str, body: TextBody, user: User = Depends(require_member)):
	session = _session(session_id, user)
	with phase_guard():
		session.write_story(body.text)
	return session.snapshot()


@router.post("/sessions/{session_id}/story/upload")
async def upload_story(session_id: str, body: MediaBody, user: User = Depends(require_member)):
	session = _session(session_id, user)
	if not body.media_base64:
		raise HTTPException(status_code=400, detail="a photo of the handwritten story is required")
	with phase_guard():
		mime = body.mime_type if body.mime_type.startswith("image/") else "image/jpeg"
		image = MediaClip.from_base64(body.media_base64, mime)
		await session.upload_story(image)
	return session.snapshot()


@router.post("/sessions/{session_id}/narration")
async def narration(session_id: str, body: MediaBody, user: User = Depends(require_member)):
	session = _session(session_id, user)
	audio = decode_media(body)
	with phase_guard():
		await session.narrate(body.text, audio)
	return session.snapshot()


@router.post("/sessions/{session_id}/reset")
async def reset(session_id: str, user: User = Depends(require_member)):
	session = _session(session_id, user)
	with phase_guard():
		session.reset()
	return session.snapshot()


@router.delete("/sessions/{session_id}", status_code=204)
async def close(session_id: str, user: User = Depends(require_member)):
	_session(session_id, user)
	_sessions.discard(session_id)
