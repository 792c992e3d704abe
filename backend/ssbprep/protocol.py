"""
Text protocols spoken with the model.

Two formats come back from Gemini:

1. Labeled blocks, used by the daily briefing because grounded (search-tool)
   calls cannot request JSON output::

       ---NEWS_BLOCK---
       HEADLINE: ...
       TAG: ...
       SUMMARY: ...
       SSB_RELEVANCE: ...
       ---END_BLOCK---

   Blocks are split on the start delimiter; the end delimiter is optional.
   Each field is ``LABEL: value`` on its own line. HEADLINE and SUMMARY are
   required, TAG and SSB_RELEVANCE fall back to defaults.

2. JSON objects, optionally wrapped in markdown code fences or surrounded by
   chatter.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .outcome import Outcome

logger = logging.getLogger(__name__)

BLOCK_START = "---NEWS_BLOCK---"
BLOCK_END = "---END_BLOCK---"

# label -> (attribute, default); default None means the field is required
BLOCK_FIELDS: Dict[str, Tuple[str, Optional[str]]] = {
    "HEADLINE": ("headline", None),
    "TAG": ("tag", "General"),
    "SUMMARY": ("summary", None),
    "SSB_RELEVANCE": ("relevance", "General Awareness"),
}

MIN_SUMMARY_CHARS = 20
PLACEHOLDER_PHRASES = ("no summary available",)

_FIELD_RE = re.compile(r"^\s*\**([A-Z_]+)\**\s*:\s*(.*?)\s*$", re.MULTILINE | re.IGNORECASE)
_FENCE_RE = re.compile(r"```(?:json)?\s*|\s*```", re.IGNORECASE)


@dataclass
class NewsItem:
    headline: str
    tag: str
    summary: str
    relevance: str

    def as_dict(self) -> Dict[str, str]:
        return {
            "headline": self.headline,
            "tag": self.tag,
            "summary": self.summary,
            "relevance": self.relevance,
        }


@dataclass
class BlockParse:
    items: List[NewsItem] = field(default_factory=list)
    # (block index, reason) for every block that was dropped
    rejected: List[Tuple[int, str]] = field(default_factory=list)

    @property
    def valid_count(self) -> int:
        return len(self.items)


def summary_problem(summary: str) -> Optional[str]:
    """Return why a summary is unusable, or None if it passes."""
    text = (summary or "").strip()
    if len(text) < MIN_SUMMARY_CHARS:
        return f"summary shorter than {MIN_SUMMARY_CHARS} characters"
    lowered = text.lower()
    for phrase in PLACEHOLDER_PHRASES:
        if phrase in lowered:
            return "summary is a placeholder"
    return None


def _parse_block(body: str) -> Tuple[Optional[NewsItem], Optional[str]]:
    body = body.split(BLOCK_END, 1)[0]
    found: Dict[str, str] = {}
    for match in _FIELD_RE.finditer(body):
        label = match.group(1).upper()
        if label in BLOCK_FIELDS and label not in found:
            found[label] = match.group(2).strip().strip("*").strip()
    values: Dict[str, str] = {}
    for label, (attr, default) in BLOCK_FIELDS.items():
        value = found.get(label, "")
        if not value:
            if default is None:
                return None, f"missing {label}"
            value = default
        values[attr] = value
    problem = summary_problem(values["summary"])
    if problem:
        return None, problem
    return NewsItem(**values), None


def parse_news_blocks(text: Optional[str]) -> BlockParse:
    result = BlockParse()
    if not text:
        return result
    # Anything before the first delimiter is preamble
    for index, body in enumerate(text.split(BLOCK_START)[1:]):
        item, problem = _parse_block(body)
        if item is None:
            result.rejected.append((index, problem or "invalid block"))
            continue
        result.items.append(item)
    if result.rejected:
        logger.info("Dropped %d briefing block(s): %s", len(result.rejected), result.rejected)
    return result


def extract_json(text: Optional[str]) -> Outcome[Dict[str, Any]]:
    """Parse a JSON object out of model text.

    Tries the fence-stripped text first, then the outermost ``{...}`` span.
    """
    if not text or not text.strip():
        return Outcome.failure("empty response", raw=text)
    cleaned = _FENCE_RE.sub("", text).strip()
    candidates = [cleaned]
    first = cleaned.find("{")
    last = cleaned.rfind("}")
    if first != -1 and last > first:
        candidates.append(cleaned[first : last + 1])
    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(data, dict):
            return Outcome.success(data)
    logger.warning("Model returned non-JSON output: %.500s", text)
    return Outcome.failure("model did not return valid JSON", raw=text)
