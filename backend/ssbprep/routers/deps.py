from __future__ import annotations
from contextlib import contextmanager
from typing import Iterator, Optional
import logging

from fastapi import HTTPException
from pydantic import BaseModel

from ..db import SessionLocal
from ..media import MediaClip, MediaError, RecordingBusy
from ..phases import PhaseError
from ..sessions.base import DbFactory, SessionRegistry, TimedSession
from ..settings import settings
from .auth import User

logger = logging.getLogger(__name__)


def new_registry() -> SessionRegistry:
	return SessionRegistry(idle_seconds=settings.session_idle_minutes * 60, per_user=settings.sessions_per_user)


def get_db_factory() -> DbFactory:
	"""Session factory for background work that outlives the request."""
	return SessionLocal


class TextBody(BaseModel):
	text: str = ""


class MediaBody(BaseModel):
	text: Optional[str] = None
	# base64 or data URL of the recording / image
	media_base64: Optional[str] = None
	mime_type: str = "audio/webm"


@contextmanager
def phase_guard() -> Iterator[None]:
	"""Translate domain errors raised by a session into HTTP errors."""
	try:
		yield
	except PhaseError as e:
		raise HTTPException(status_code=409, detail=str(e))
	except RecordingBusy as e:
		raise HTTPException(status_code=409, detail=str(e))
	except MediaError as e:
		raise HTTPException(status_code=400, detail=str(e))


def lookup(registry: SessionRegistry, session_id: str, user: User) -> TimedSession:
	session = registry.get(session_id, user.username)
	if session is None:
		raise HTTPException(status_code=404, detail="session not found")
	return session


def decode_media(body: MediaBody) -> Optional[MediaClip]:
	if not body.media_base64:
		return None
	try:
		return MediaClip.from_base64(body.media_base64, body.mime_type)
	except MediaError as e:
		raise HTTPException(status_code=400, detail=str(e))
