from typing import List
from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..db import get_db
from ..gateway import Gateway, get_gateway
from ..models import AuthUser
from .auth import get_current_user, User

router = APIRouter(prefix="/bot", tags=["bot"])


class ChatTurn(BaseModel):
	role: str
	text: str


class ChatRequest(BaseModel):
	message: str
	history: List[ChatTurn] = []


@router.post("/chat")
async def chat(req: ChatRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db), gateway: Gateway = Depends(get_gateway)):
	if not req.message.strip():
		raise HTTPException(status_code=400, detail="message is required")
	# Enforce per-user request limits
	row = db.query(AuthUser).filter(AuthUser.username == user.username).first()
	if row:
		if row.requests_used >= row.requests_limit:
			raise HTTPException(status_code=429, detail="request limit reached")
		row.requests_used += 1
		db.add(row)
		db.commit()
	reply = await gateway.chat([t.model_dump() for t in req.history], req.message.strip())
	if not reply.ok:
		raise HTTPException(status_code=502, detail="Major Veer is unavailable right now. Try again shortly.")
	return {"text": reply.value}
