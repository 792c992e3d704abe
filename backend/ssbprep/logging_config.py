"""Logging configuration helpers for the API process."""

from __future__ import annotations

import logging
from logging import Logger
from typing import Optional

from .settings import settings


def configure_logging(level: Optional[str] = None) -> Logger:
	"""Configure basic logging for the application and return its logger."""
	logging.basicConfig(
		level=(level or settings.log_level).upper(),
		format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
	)
	logging.getLogger("passlib").setLevel(logging.ERROR)
	logging.getLogger("httpx").setLevel(logging.WARNING)
	return logging.getLogger("ssbprep")
