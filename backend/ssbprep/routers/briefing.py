from __future__ import annotations
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..briefing import get_daily_briefing
from ..db import get_db
from ..gateway import Gateway, get_gateway
from .auth import User, get_current_user

router = APIRouter(prefix="/briefing", tags=["briefing"])

logger = logging.getLogger(__name__)


@router.get("/today")
async def today(user: User = Depends(get_current_user), db: Session = Depends(get_db), gateway: Gateway = Depends(get_gateway)):
	briefing = await get_daily_briefing(db, gateway)
	if not briefing.ok:
		logger.error("Daily briefing unavailable: %s", briefing.error)
		raise HTTPException(status_code=503, detail="Today's briefing could not be loaded. Please retry in a moment.")
	return briefing.value.as_dict()
