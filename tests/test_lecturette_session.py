import json

import pytest

from ssbprep import store
from ssbprep.models import HistoryEntry
from ssbprep.phases import PhaseError, Trigger
from ssbprep.sessions.lecturette import LecturettePhase, LecturetteSession, find_topic

from .conftest import evaluation_json

OUTLINE = json.dumps(
    {
        "introduction": "Cyber space is the fifth domain of warfare.",
        "keyPoints": ["Stuxnet and state actors", "India's CERT-In", "Way forward"],
        "conclusion": "Build capacity and deterrence.",
    }
)


@pytest.fixture
def session(gateway, db_factory):
    lecturette = LecturetteSession("cadet", gateway, db_factory=db_factory)
    yield lecturette
    lecturette.close()


async def test_preparation_loads_outline_and_waits_for_start(session, fake_client, db):
    fake_client.generate_json.return_value = OUTLINE
    session.select("cyber warfare")
    assert session.phase is LecturettePhase.PREPARATION
    assert session.topic["title"] == "Cyber Warfare"
    countdown = session.timers.current
    assert countdown.total == 180
    assert not countdown.running
    await session.settle()
    assert session.outline["keyPoints"][0] == "Stuxnet and state actors"
    assert store.get_lecturette_outline(db, "Cyber Warfare")["conclusion"] == "Build capacity and deterrence."


async def test_cached_outline_skips_the_model(gateway, db_factory, fake_client, db):
    store.save_lecturette_outline(db, "Cyber Warfare", "Technology", json.loads(OUTLINE))
    session = LecturetteSession("cadet", gateway, db_factory=db_factory)
    try:
        session.select("Cyber Warfare")
        await session.settle()
        assert session.outline["introduction"].startswith("Cyber space")
        fake_client.generate_json.assert_not_awaited()
    finally:
        session.close()


async def test_outline_failure_is_reported(session, fake_client):
    fake_client.generate_json.side_effect = RuntimeError("overloaded")
    session.select("My Own Topic")
    await session.settle()
    assert session.topic["difficulty"] == "Custom"
    assert session.outline is None
    assert session.outline_error


async def test_preparation_timer_pauses_and_resumes(session, fake_client):
    fake_client.generate_json.return_value = OUTLINE
    session.select("NEP 2020")
    session.start_timer()
    assert session.timers.current.running
    await session.timers.current.tick()
    session.pause_timer()
    snapshot = session.snapshot()
    assert snapshot["timer"]["paused"]
    assert snapshot["timer"]["remaining"] == 179
    session.resume_timer()
    assert session.timers.current.running
    await session.settle()


async def test_speaking_timer_cannot_be_paused_and_warns(session, fake_client):
    fake_client.generate_json.return_value = OUTLINE
    session.select("NEP 2020")
    session.begin_speaking()
    assert session.timers.current.running
    with pytest.raises(PhaseError):
        session.pause_timer()
    countdown = session.timers.current
    for _ in range(150):
        await countdown.tick()
    assert session.notices == ["30 seconds remaining"]
    await session.settle()


async def test_empty_speech_cannot_be_submitted(session, fake_client):
    fake_client.generate_json.return_value = OUTLINE
    session.select("NEP 2020")
    session.begin_speaking()
    with pytest.raises(PhaseError):
        await session.submit_speech()
    assert session.phase is LecturettePhase.SPEAKING
    await session.settle()


async def test_timeout_with_nothing_said_ends_without_record(session, fake_client, db):
    fake_client.generate_json.return_value = OUTLINE
    session.select("NEP 2020")
    await session.settle()
    session.begin_speaking()
    countdown = session.timers.current
    for _ in range(180):
        await countdown.tick()
    await session.settle()
    assert session.phase is LecturettePhase.COMPLETED
    assert session.error == "No speech was captured before time ran out."
    assert session.record_id is None
    assert db.query(HistoryEntry).count() == 0


async def test_submitted_speech_is_evaluated(session, fake_client, db):
    fake_client.generate_json.side_effect = [OUTLINE, evaluation_json(6.5)]
    session.select("Cyber Warfare")
    await session.settle()
    session.begin_speaking()
    session.add_transcript("Good morning everyone.")
    await session.submit_speech("Today I will speak on cyber warfare.")
    assert session.transcript == "Good morning everyone. Today I will speak on cyber warfare."
    await session.settle()
    assert session.phase is LecturettePhase.COMPLETED
    assert session.result["topic"] == "Cyber Warfare"
    row = db.get(HistoryEntry, session.record_id)
    assert row.score == 6.5
    assert row.test_type == "LECTURETTE"


async def test_blank_topic_is_rejected(session):
    with pytest.raises(PhaseError):
        session.select("   ")
    assert session.phase is LecturettePhase.SELECTION


def test_find_topic_is_case_insensitive():
    assert find_topic("  indo-us relations ")["category"] == "International"
    assert find_topic("Quantum Computing") is None
