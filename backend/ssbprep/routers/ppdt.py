from __future__ import annotations
from typing import Optional
import logging

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from sqlalchemy.orm import Session

from .. import evaluations
from ..db import get_db
from ..gateway import Gateway, get_gateway
from ..media import MediaClip, MediaError
from .auth import User, get_current_user

router = APIRouter(prefix="/ppdt", tags=["ppdt"])

logger = logging.getLogger(__name__)


async def _read_image(file: Optional[UploadFile]) -> Optional[MediaClip]:
	if file is None:
		return None
	try:
		return MediaClip.image(await file.read())
	except MediaError as e:
		raise HTTPException(status_code=400, detail=f"Could not use {file.filename or 'upload'}: {e}")


@router.get("/stimulus")
async def stimulus(description: Optional[str] = None, user: User = Depends(get_current_user), gateway: Gateway = Depends(get_gateway)):
	picture = await gateway.generate_ppdt_stimulus(description)
	return {"url": picture.url, "description": picture.description, "generated": picture.generated}


@router.post("/transcribe")
async def transcribe(file: UploadFile = File(...), user: User = Depends(get_current_user), gateway: Gateway = Depends(get_gateway)):
	image = await _read_image(file)
	text = await gateway.transcribe_handwriting(image)
	if not text.ok:
		raise HTTPException(status_code=502, detail="could not read the handwritten story; type it instead")
	return {"text": text.value}


@router.post("/evaluate")
async def evaluate(
	story: str = Form(""),
	narration: str = Form(""),
	description: Optional[str] = Form(None),
	story_image: Optional[UploadFile] = File(None),
	user: User = Depends(get_current_user),
	db: Session = Depends(get_db),
	gateway: Gateway = Depends(get_gateway),
):
	sheet = await _read_image(story_image)
	if sheet is not None and not story.strip():
		read = await gateway.transcribe_handwriting(sheet)
		if not read.ok:
			raise HTTPException(status_code=502, detail="could not read the handwritten story; type it instead")
		story = read.value or ""
	evaluated = await gateway.evaluate_ppdt(story, narration, description, story_image=sheet)
	outcome = evaluated.map(lambda e: e.as_dict())
	# Guest attempts are not kept in history
	if user.is_guest:
		if not outcome.ok:
			raise HTTPException(status_code=502, detail="evaluation failed; please try again")
		return {"record_id": None, "story": story, "result": outcome.value}
	inputs = {"story": story, "narration": narration, "description": description}
	row = evaluations.record(db, user.username, evaluations.PPDT, outcome, inputs)
	if not outcome.ok:
		raise HTTPException(status_code=502, detail=f"evaluation failed; saved as pending record {row.id}")
	return {"record_id": row.id, "story": story, "result": outcome.value}
