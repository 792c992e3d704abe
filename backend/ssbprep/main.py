import asyncio
import logging

from fastapi import FastAPI

from .db import Base, engine, SessionLocal, ensure_schema
from .cleanup import purge_stale_rows
from .logging_config import configure_logging
from .seed import seed_catalog
from .routers import admin, auth, bot, briefing, gpe, health, lecturette, ppdt, reports, resources, screening

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="SSB Prep API")
app.include_router(health.router)
app.include_router(auth.router)
app.include_router(briefing.router)
app.include_router(gpe.router)
app.include_router(lecturette.router)
app.include_router(screening.router)
app.include_router(ppdt.router)
app.include_router(resources.router)
app.include_router(bot.router)
app.include_router(reports.router)
app.include_router(admin.router)

_SESSION_REGISTRIES = (gpe._sessions, lecturette._sessions, screening._sessions)


def _purge() -> None:
	db = SessionLocal()
	try:
		purge_stale_rows(db)
	except Exception as exc:
		logger.error("Cleanup failed: %s", exc)
	finally:
		db.close()


def _sweep_sessions() -> None:
	for registry in _SESSION_REGISTRIES:
		registry.sweep()


async def _cleanup_watcher():
	# Idle sessions hourly; stale rows daily (startup already ran one pass)
	hours = 0
	while True:
		await asyncio.sleep(60 * 60)
		_sweep_sessions()
		hours += 1
		if hours % 24 == 0:
			_purge()


@app.on_event("startup")
async def startup_event():
	Base.metadata.create_all(bind=engine)
	# Apply lightweight dev migrations
	try:
		ensure_schema()
	except Exception as exc:
		logger.warning("Schema migration skipped: %s", exc)
	db = SessionLocal()
	try:
		seed_catalog(db)
	finally:
		db.close()
	_purge()
	app.state.cleanup_task = asyncio.create_task(_cleanup_watcher())


@app.on_event("shutdown")
async def shutdown_event():
	task = getattr(app.state, "cleanup_task", None)
	if task is not None:
		task.cancel()
	# Stop every live countdown and background evaluation
	for registry in _SESSION_REGISTRIES:
		registry.close_all()
