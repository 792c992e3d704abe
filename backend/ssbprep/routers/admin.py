"""
Catalog Administration API
==========================

Restricted to the usernames listed in ``ADMIN_USERNAMES``.

- GET    /admin/gpe-scenarios, POST /admin/gpe-scenarios, DELETE /admin/gpe-scenarios/{id}
- GET    /admin/oir-sets, POST /admin/oir-sets, DELETE /admin/oir-sets/{id}
- GET    /admin/oir-sets/{id}/questions, POST /admin/oir-sets/{id}/questions
- DELETE /admin/oir-questions/{id}
- GET    /admin/ppdt-scenarios, POST /admin/ppdt-scenarios (image upload or URL), DELETE /admin/ppdt-scenarios/{id}

Screening sets are assembled from OIR sets titled "Screening OIR <n> ..." and
PPDT scenarios described "Screening <n>: ...".
"""

from __future__ import annotations
from typing import List, Optional
import logging

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from .. import store
from ..db import get_db
from ..media import MediaClip, MediaError
from .auth import User, require_admin

router = APIRouter(prefix="/admin", tags=["admin"])

logger = logging.getLogger(__name__)

DIFFICULTIES = ("Easy", "Medium", "Hard")


class GPEScenarioRequest(BaseModel):
	title: str = Field(min_length=1)
	narrative: str = Field(min_length=1)
	difficulty: str = "Medium"
	image_url: Optional[str] = None

	@field_validator("difficulty")
	@classmethod
	def _known_difficulty(cls, value: str) -> str:
		if value not in DIFFICULTIES:
			raise ValueError(f"difficulty must be one of {', '.join(DIFFICULTIES)}")
		return value


class OIRSetRequest(BaseModel):
	title: str = Field(min_length=1)
	time_limit_seconds: int = Field(default=900, gt=0)


class OIRQuestionRequest(BaseModel):
	text: str = Field(min_length=1)
	options: List[str] = Field(min_length=2)
	correct_index: int = Field(ge=0)
	image_url: Optional[str] = None


def _gone(kind: str) -> HTTPException:
	return HTTPException(status_code=404, detail=f"{kind} not found")


@router.get("/gpe-scenarios")
async def gpe_scenarios(user: User = Depends(require_admin), db: Session = Depends(get_db)):
	return [
		{"id": s.id, "title": s.title, "difficulty": s.difficulty, "image_url": s.image_url, "narrative": s.narrative}
		for s in store.list_gpe_scenarios(db)
	]


@router.post("/gpe-scenarios", status_code=201)
async def create_gpe_scenario(req: GPEScenarioRequest, user: User = Depends(require_admin), db: Session = Depends(get_db)):
	row = store.create_gpe_scenario(db, req.title.strip(), req.narrative.strip(), req.difficulty, req.image_url)
	logger.info("%s added GPE scenario %s", user.username, row.id)
	return {"id": row.id, "title": row.title}


@router.delete("/gpe-scenarios/{scenario_id}", status_code=204)
async def delete_gpe_scenario(scenario_id: int, user: User = Depends(require_admin), db: Session = Depends(get_db)):
	if not store.delete_gpe_scenario(db, scenario_id):
		raise _gone("scenario")


@router.get("/oir-sets")
async def oir_sets(user: User = Depends(require_admin), db: Session = Depends(get_db)):
	return [{"id": s.id, "title": s.title, "time_limit_seconds": s.time_limit_seconds} for s in store.list_oir_sets(db)]


@router.post("/oir-sets", status_code=201)
async def create_oir_set(req: OIRSetRequest, user: User = Depends(require_admin), db: Session = Depends(get_db)):
	row = store.create_oir_set(db, req.title.strip(), req.time_limit_seconds)
	logger.info("%s added OIR set %s", user.username, row.id)
	return {"id": row.id, "title": row.title, "time_limit_seconds": row.time_limit_seconds}


@router.delete("/oir-sets/{set_id}", status_code=204)
async def delete_oir_set(set_id: int, user: User = Depends(require_admin), db: Session = Depends(get_db)):
	if not store.delete_oir_set(db, set_id):
		raise _gone("OIR set")


@router.get("/oir-sets/{set_id}/questions")
async def oir_questions(set_id: int, user: User = Depends(require_admin), db: Session = Depends(get_db)):
	return store.list_oir_questions(db, set_id)


@router.post("/oir-sets/{set_id}/questions", status_code=201)
async def add_oir_question(set_id: int, req: OIRQuestionRequest, user: User = Depends(require_admin), db: Session = Depends(get_db)):
	if req.correct_index >= len(req.options):
		raise HTTPException(status_code=400, detail="correct_index must point at one of the options")
	row = store.add_oir_question(db, set_id, req.text.strip(), req.options, req.correct_index, req.image_url)
	if row is None:
		raise _gone("OIR set")
	return {"id": row.id, "set_id": set_id}


@router.delete("/oir-questions/{question_id}", status_code=204)
async def delete_oir_question(question_id: int, user: User = Depends(require_admin), db: Session = Depends(get_db)):
	if not store.delete_oir_question(db, question_id):
		raise _gone("question")


@router.get("/ppdt-scenarios")
async def ppdt_scenarios(user: User = Depends(require_admin), db: Session = Depends(get_db)):
	return [{"id": s.id, "description": s.description, "image_url": s.image_url} for s in store.list_ppdt_scenarios(db)]


@router.post("/ppdt-scenarios", status_code=201)
async def upload_ppdt_scenario(
	description: str = Form(...),
	image_url: Optional[str] = Form(None),
	image: Optional[UploadFile] = File(None),
	user: User = Depends(require_admin),
	db: Session = Depends(get_db),
):
	if image is not None:
		try:
			image_url = MediaClip.image(await image.read()).to_data_url()
		except MediaError as e:
			raise HTTPException(status_code=400, detail=f"Could not use {image.filename or 'upload'}: {e}")
	if not description.strip():
		raise HTTPException(status_code=400, detail="a description is required")
	row = store.create_ppdt_scenario(db, description.strip(), image_url)
	logger.info("%s added PPDT scenario %s", user.username, row.id)
	return {"id": row.id, "description": row.description, "image_url": row.image_url}


@router.delete("/ppdt-scenarios/{scenario_id}", status_code=204)
async def delete_ppdt_scenario(scenario_id: int, user: User = Depends(require_admin), db: Session = Depends(get_db)):
	if not store.delete_ppdt_scenario(db, scenario_id):
		raise _gone("PPDT scenario")
