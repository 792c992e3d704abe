from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..briefing import get_daily_briefing
from ..db import get_db
from ..gateway import Gateway, get_gateway
from ..resources import GD_TOPICS, INTERVIEW_QUESTIONS, wat_entries
from ..sessions.lecturette import LECTURETTE_TOPICS

router = APIRouter(prefix="/resources", tags=["resources"])


@router.get("/wat")
async def wat(limit: int = Query(default=50, ge=1, le=50)):
	return wat_entries(limit)


@router.get("/gd-topics")
async def gd_topics():
	return GD_TOPICS


@router.get("/interview")
async def interview():
	return INTERVIEW_QUESTIONS


@router.get("/lecturette-topics")
async def lecturette_topics():
	return LECTURETTE_TOPICS


@router.get("/blog")
async def blog(db: Session = Depends(get_db), gateway: Gateway = Depends(get_gateway)):
	briefing = await get_daily_briefing(db, gateway)
	if not briefing.ok:
		raise HTTPException(status_code=503, detail="Current affairs are unavailable right now. Please retry.")
	return briefing.value.items
