from datetime import datetime, timedelta

from ssbprep import evaluations, store
from ssbprep.cleanup import purge_stale_rows
from ssbprep.models import AuthSession, DailyCache, GPEScenario, OIRSet, PPDTScenario
from ssbprep.outcome import Outcome
from ssbprep.seed import seed_catalog

from .conftest import LONG_STORY, evaluation_json


def test_put_cached_upserts(db):
    store.put_cached(db, "daily_briefing", "2026-10-19", {"items": [1]})
    store.put_cached(db, "daily_briefing", "2026-10-19", {"items": [1, 2]})
    assert store.get_cached(db, "daily_briefing", "2026-10-19") == {"items": [1, 2]}
    assert db.query(DailyCache).count() == 1
    assert store.get_cached(db, "daily_briefing", "2026-10-18") is None


def test_lecturette_outline_round_trip(db):
    assert store.get_lecturette_outline(db, "Cyber Warfare") is None
    store.save_lecturette_outline(db, "Cyber Warfare", "Technology", {"introduction": "x", "keyPoints": ["a"]})
    store.save_lecturette_outline(db, "Cyber Warfare", "Technology", {"introduction": "y", "keyPoints": ["b"]})
    assert store.get_lecturette_outline(db, "Cyber Warfare")["introduction"] == "y"


def test_attempts_are_private_and_newest_first(db):
    first = store.save_attempt(db, "cadet", "GPE", {"score": 6})
    second = store.save_attempt(db, "cadet", "LECTURETTE", {"score": 7.5})
    store.save_attempt(db, "other", "GPE", {"score": 9})
    rows = store.list_attempts(db, "cadet")
    assert [r.id for r in rows] == [second.id, first.id]
    assert store.get_attempt(db, first.id, "other") is None
    as_dict = store.attempt_as_dict(second)
    assert as_dict["type"] == "LECTURETTE"
    assert as_dict["score"] == 7.5
    assert as_dict["status"] == store.STATUS_COMPLETED


def test_failed_evaluation_is_recorded_pending_with_inputs(db):
    inputs = {"story": LONG_STORY, "narration": "", "description": "Men near a jeep"}
    row = evaluations.record(db, "cadet", evaluations.PPDT, Outcome.failure("timeout"), inputs)
    assert row.status == store.STATUS_PENDING
    assert row.result_data is None
    assert store.attempt_inputs(row) == inputs


async def test_retry_completes_pending_record(db, gateway, fake_client):
    inputs = {"story": LONG_STORY, "narration": "", "description": "Men near a jeep"}
    row = evaluations.record(db, "cadet", evaluations.PPDT, Outcome.failure("timeout"), inputs)
    fake_client.generate_json.return_value = evaluation_json(6)
    outcome = await evaluations.retry(db, gateway, row)
    assert outcome.ok
    refreshed = store.get_attempt(db, row.id, "cadet")
    assert refreshed.status == store.STATUS_COMPLETED
    assert refreshed.score == 6
    assert store.attempt_as_dict(refreshed)["result"]["verdict"] == "Recommended"


async def test_retry_failure_keeps_record_pending(db, gateway, fake_client):
    row = evaluations.record(db, "cadet", evaluations.GPE, Outcome.failure("timeout"), {"narrative": "Flood"})
    fake_client.generate_json.side_effect = RuntimeError("still down")
    outcome = await evaluations.retry(db, gateway, row)
    assert not outcome.ok
    assert store.get_attempt(db, row.id, "cadet").status == store.STATUS_PENDING


async def test_completed_record_cannot_be_retried(db, gateway, fake_client):
    row = store.save_attempt(db, "cadet", "GPE", {"score": 6})
    outcome = await evaluations.retry(db, gateway, row)
    assert not outcome.ok
    fake_client.generate_json.assert_not_awaited()


async def test_screening_evaluation_combines_oir_and_ppdt(gateway, fake_client):
    fake_client.generate_json.return_value = evaluation_json(8)
    outcome = await evaluations.evaluate(
        gateway,
        evaluations.SCREENING,
        {"oir1_perc": 80, "oir2_perc": 80, "story": LONG_STORY, "narration": "", "description": None},
    )
    assert outcome.value["status"] == "IN"
    assert outcome.value["ppdt"]["score"] == 8
    assert "Final Weighted Score" in outcome.value["feedback"]


async def test_unknown_test_type_is_a_failure(gateway):
    outcome = await evaluations.evaluate(gateway, "TAT", {})
    assert not outcome.ok


def test_seed_catalog_runs_once(db):
    assert seed_catalog(db)
    assert not seed_catalog(db)
    assert db.query(GPEScenario).count() == 2
    assert db.query(OIRSet).count() == 2
    assert db.query(PPDTScenario).count() == 1
    assert len(store.list_oir_questions(db, store.list_oir_sets(db)[0].id)) == 5


def test_purge_removes_only_stale_rows(db):
    now = datetime(2026, 10, 19, 12, 0)
    db.add(DailyCache(category="daily_briefing", date_key="2026-10-01", content="{}", created_at=now - timedelta(days=18)))
    db.add(DailyCache(category="daily_briefing", date_key="2026-10-19", content="{}", created_at=now))
    db.add(AuthSession(session_id="old", username="cadet", last_activity_at=now - timedelta(days=8)))
    db.add(AuthSession(session_id="new", username="cadet", last_activity_at=now))
    db.commit()
    assert purge_stale_rows(db, now=now) == 2
    assert [r.date_key for r in db.query(DailyCache).all()] == ["2026-10-19"]
    assert [s.session_id for s in db.query(AuthSession).all()] == ["new"]
