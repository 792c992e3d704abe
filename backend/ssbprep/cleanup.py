from __future__ import annotations
import logging
from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy import delete
from sqlalchemy.orm import Session

from .models import AuthSession, DailyCache
from .settings import settings

logger = logging.getLogger(__name__)


def purge_stale_rows(db: Session, now: Optional[datetime] = None) -> int:
	now = now or datetime.utcnow()
	removed = 0
	# Daily content is keyed by date; old days are never read again
	cache_threshold = now - timedelta(days=settings.cache_retention_days)
	res = db.execute(delete(DailyCache).where(DailyCache.created_at < cache_threshold))
	removed += res.rowcount or 0

	# Login sessions idle for a week
	session_threshold = now - timedelta(days=7)
	res = db.execute(delete(AuthSession).where(AuthSession.last_activity_at < session_threshold))
	removed += res.rowcount or 0

	db.commit()
	if removed:
		logger.info("Purged %d stale row(s)", removed)
	return removed
