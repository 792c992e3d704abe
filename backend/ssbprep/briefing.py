"""Daily current-affairs briefing, generated once per day and cached."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from . import store
from .gateway import Gateway
from .outcome import Outcome
from .protocol import parse_news_blocks

logger = logging.getLogger(__name__)

CATEGORY = "daily_briefing"
# Fewer valid items than this is served but not cached, so the next load retries
MIN_CACHEABLE_ITEMS = 3


@dataclass
class Briefing:
	date_key: str
	items: List[Dict[str, str]] = field(default_factory=list)
	sources: List[Dict[str, str]] = field(default_factory=list)
	cached: bool = False
	from_cache: bool = False

	def as_dict(self) -> Dict[str, Any]:
		return {
			"date": self.date_key,
			"items": self.items,
			"sources": self.sources,
			"cached": self.cached,
			"from_cache": self.from_cache,
		}


async def get_daily_briefing(db: Session, gateway: Gateway, today: Optional[date] = None) -> Outcome[Briefing]:
	today = today or date.today()
	date_key = today.isoformat()
	hit = store.get_cached(db, CATEGORY, date_key)
	if isinstance(hit, dict) and hit.get("items"):
		return Outcome.success(
			Briefing(date_key=date_key, items=hit["items"], sources=hit.get("sources") or [], cached=True, from_cache=True)
		)

	fetched = await gateway.fetch_daily_briefing(today)
	if not fetched.ok:
		return Outcome(error=fetched.error)
	text, sources = fetched.value  # type: ignore[misc]
	parsed = parse_news_blocks(text)
	items = [item.as_dict() for item in parsed.items]
	briefing = Briefing(date_key=date_key, items=items, sources=sources)
	if parsed.valid_count >= MIN_CACHEABLE_ITEMS:
		try:
			store.put_cached(db, CATEGORY, date_key, {"items": items, "sources": sources})
			briefing.cached = True
		except Exception as exc:
			# Serving the fresh briefing still works without the cache
			logger.error("Briefing cache write failed: %s", exc)
	else:
		logger.info(
			"Briefing for %s has %d valid item(s) (< %d); not caching",
			date_key,
			parsed.valid_count,
			MIN_CACHEABLE_ITEMS,
		)
	if not items:
		return Outcome.failure("briefing contained no usable items", raw=text)
	return Outcome.success(briefing)
