from fastapi import APIRouter

from ..settings import settings

router = APIRouter(tags=["health"])


@router.get("/health")
async def health():
	return {"status": "ok", "gemini_configured": bool(settings.gemini_api_key)}
