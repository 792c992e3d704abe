"""Shared pytest fixtures."""

import os
import tempfile

# Point the app at a throwaway database before anything imports settings
_DB_DIR = tempfile.mkdtemp(prefix="ssbprep-tests-")
os.environ["DATABASE_URL"] = "sqlite:///" + os.path.join(_DB_DIR, "ssbprep.db")
os.environ.setdefault("GEMINI_API_KEY", "test-key")

import base64
import json
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ssbprep import models  # noqa: F401  registers tables
from ssbprep.db import Base
from ssbprep.gateway import Gateway

LONG_STORY = (
    "Three friends on a trek found the bridge washed away. Ravi, the eldest, calmed the group, "
    "studied the map and led them along the ridge to the next village, where they alerted the "
    "panchayat and helped rebuild a temporary crossing before nightfall."
)


def evaluation_json(score: float = 7.0, **extra: Any) -> str:
    payload: Dict[str, Any] = {
        "score": score,
        "verdict": "Recommended",
        "strengths": ["Clear prioritisation"],
        "weaknesses": ["Time estimates missing"],
        "recommendations": "Practise timing each sub-task.",
        "subScores": {"planning": 7},
    }
    payload.update(extra)
    return json.dumps(payload)


def news_blocks(count: int, *, summary: Optional[str] = None) -> str:
    blocks: List[str] = ["Here is today's briefing."]
    for i in range(count):
        blocks.append(
            "---NEWS_BLOCK---\n"
            f"HEADLINE: Headline {i}\n"
            "TAG: Defence\n"
            f"SUMMARY: {summary or f'The ministry announced item {i} with details that matter to aspirants.'}\n"
            "SSB_RELEVANCE: Useful for the GD and interview.\n"
            "---END_BLOCK---"
        )
    return "\n".join(blocks)


@pytest.fixture
def fake_client() -> MagicMock:
    client = MagicMock()
    client.generate = AsyncMock(return_value="")
    client.generate_json = AsyncMock(return_value=evaluation_json())
    client.generate_grounded = AsyncMock(return_value=(news_blocks(4), [{"title": "PIB", "uri": "https://pib.gov.in"}]))
    client.generate_multimodal = AsyncMock(return_value="transcribed text")
    client.generate_inline = AsyncMock(return_value=("audio/wav", base64.b64encode(b"RIFF0000WAVE").decode()))
    client.chat = AsyncMock(return_value="Jai Hind. Focus on your OLQs.")
    client.aclose = AsyncMock()
    return client


@pytest.fixture
def gateway(fake_client: MagicMock) -> Gateway:
    return Gateway(client_factory=lambda model: fake_client)


@pytest.fixture
def db_factory():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    yield factory
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(db_factory):
    session = db_factory()
    yield session
    session.close()


@pytest.fixture
def client(gateway):
    from fastapi.testclient import TestClient

    from ssbprep.db import engine
    from ssbprep.gateway import get_gateway
    from ssbprep.main import app
    from ssbprep.routers.auth import User, get_current_user

    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_current_user] = lambda: User(username="cadet")
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    Base.metadata.drop_all(bind=engine)
