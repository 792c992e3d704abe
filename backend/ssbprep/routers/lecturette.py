"""
Lecturette API
==============

- GET  /lecturette/topics: topic catalog with difficulty and category
- POST /lecturette/sessions: pick a topic; the outline is prepared in the background
- GET  /lecturette/sessions/{id}: current view, including outline and countdown
- POST /lecturette/sessions/{id}/timer/start | /timer/pause | /timer/resume: preparation clock
- POST /lecturette/sessions/{id}/speak: move on to the three-minute talk
- POST /lecturette/sessions/{id}/transcript: append live transcript text
- POST /lecturette/sessions/{id}/submit: finish with transcript and/or recording
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from ..gateway import Gateway, get_gateway
from ..sessions.base import DbFactory
from ..sessions.lecturette import LECTURETTE_TOPICS, LecturetteSession
from .auth import User, get_current_user
from .deps import MediaBody, TextBody, decode_media, get_db_factory, lookup, new_registry, phase_guard

router = APIRouter(prefix="/lecturette", tags=["lecturette"])

_sessions = new_registry()


class StartRequest(BaseModel):
	topic: str


def _session(session_id: str, user: User) -> LecturetteSession:
	return lookup(_sessions, session_id, user)  # type: ignore[return-value]


@router.get("/topics")
async def topics():
	return LECTURETTE_TOPICS


@router.post("/sessions", status_code=201)
async def start(
	req: StartRequest,
	user: User = Depends(get_current_user),
	gateway: Gateway = Depends(get_gateway),
	db_factory: DbFactory = Depends(get_db_factory),
):
	session = LecturetteSession(user.username, gateway, db_factory=db_factory, guest=user.is_guest)
	with phase_guard():
		session.select(req.topic)
	_sessions.add(session)
	return session.snapshot()


@router.get("/sessions/{session_id}")
async def show(session_id: str, user: User = Depends(get_current_user)):
	return _session(session_id, user).snapshot()


@router.post("/sessions/{session_id}/select")
async def select(session_id: str, req: StartRequest, user: User = Depends(get_current_user)):
	session = _session(session_id, user)
	with phase_guard():
		session.select(req.topic)
	return session.snapshot()


@router.post("/sessions/{session_id}/timer/{action}")
async def timer(session_id: str, action: str, user: User = Depends(get_current_user)):
	session = _session(session_id, user)
	actions = {"start": session.start_timer, "pause": session.pause_timer, "resume": session.resume_timer}
	if action not in actions:
		raise HTTPException(status_code=404, detail="unknown timer action")
	with phase_guard():
		actions[action]()
	return session.snapshot()


@router.post("/sessions/{session_id}/speak")
async def speak(session_id: str, user: User = Depends(get_current_user)):
	session = _session(session_id, user)
	with phase_guard():
		session.begin_speaking()
	return session.snapshot()


@router.post("/sessions/{session_id}/transcript")
async def transcript(session_id: str, body: TextBody, user: User = Depends(get_current_user)):
	session = _session(session_id, user)
	with phase_guard():
		session.add_transcript(body.text)
	return session.snapshot()


@router.post("/sessions/{session_id}/submit")
async def submit(session_id: str, body: MediaBody, user: User = Depends(get_current_user)):
	session = _session(session_id, user)
	audio = decode_media(body)
	with phase_guard():
		await session.submit_speech(body.text, audio)
	return session.snapshot()


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
