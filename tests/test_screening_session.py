import asyncio

import pytest

from ssbprep import store
from ssbprep.media import MediaClip
from ssbprep.models import HistoryEntry, OIRSet, PPDTScenario
from ssbprep.phases import PhaseError, Trigger
from ssbprep.seed import seed_catalog
from ssbprep.sessions.screening import ScreeningPhase, ScreeningSession, assemble_sets, available_sets

from .conftest import LONG_STORY, evaluation_json
from .test_media import _png


@pytest.fixture
def session(gateway, db_factory):
    screening = ScreeningSession("cadet", gateway, db_factory=db_factory)
    yield screening
    screening.close()


@pytest.fixture
def loaded(session, db):
    seed_catalog(db)
    test_set = available_sets(db)[0]
    test_set.ppdt.image_url = "https://example.org/hazy.jpg"
    session.load(
        test_set,
        store.list_oir_questions(db, test_set.oir1.id),
        store.list_oir_questions(db, test_set.oir2.id),
    )
    return session


def _answer_all(session, correct):
    test = 0 if session.phase is ScreeningPhase.OIR_1_TEST else 1
    for i, question in enumerate(session.questions[test]):
        session.answer(i, question["correct_index"] if i < correct else (question["correct_index"] + 1) % 4)


async def _to_story(session):
    session.fire(Trigger.ADVANCE)
    _answer_all(session, 4)
    session.fire(Trigger.SUBMIT)
    session.fire(Trigger.ADVANCE)
    _answer_all(session, 4)
    session.fire(Trigger.SUBMIT)
    session.fire(Trigger.ADVANCE)
    assert session.phase is ScreeningPhase.PPDT_IMAGE
    countdown = session.timers.current
    for _ in range(30):
        await countdown.tick()
    assert session.phase is ScreeningPhase.PPDT_STORY


def test_labelled_sets_are_grouped_by_number():
    oir = [
        OIRSet(id=1, title="Screening OIR 1 - Verbal", time_limit_seconds=900),
        OIRSet(id=2, title="Screening OIR 1 - Non-Verbal", time_limit_seconds=900),
        OIRSet(id=3, title="Screening OIR 2 - Verbal", time_limit_seconds=900),
    ]
    ppdt = [PPDTScenario(id=1, description="Screening 1: jeep"), PPDTScenario(id=2, description="Screening 2: cart")]
    sets = assemble_sets(oir, ppdt)
    assert [s.id for s in sets] == ["screening-1"]
    assert sets[0].oir2.id == 2


def test_unlabelled_sets_are_paired_virtually():
    oir = [OIRSet(id=i, title=f"Practice {i}", time_limit_seconds=600) for i in range(1, 6)]
    ppdt = [PPDTScenario(id=1, description="A farmer in a field")]
    sets = assemble_sets(oir, ppdt)
    assert [s.id for s in sets] == ["virtual-screening-1", "virtual-screening-2"]
    assert sets[1].oir1.id == 3
    assert assemble_sets(oir[:1], ppdt) == []


async def test_oir_timer_uses_set_time_limit(loaded):
    assert loaded.phase is ScreeningPhase.OIR_1_INSTRUCTIONS
    loaded.fire(Trigger.ADVANCE)
    assert loaded.timers.current.total == 900
    view = loaded.snapshot()
    assert len(view["questions"]) == 5
    assert "correct_index" not in view["questions"][0]
    assert view["answers"] == [-1] * 5


async def test_answers_only_during_tests(loaded):
    with pytest.raises(PhaseError):
        loaded.answer(0, 1)
    loaded.fire(Trigger.ADVANCE)
    with pytest.raises(PhaseError):
        loaded.answer(9, 0)
    with pytest.raises(PhaseError):
        loaded.answer(0, 7)
    loaded.answer(0, 1)
    loaded.answer(0, -1)
    assert loaded.answers[0][0] == -1


async def test_oir_timeout_keeps_partial_answers(loaded):
    loaded.fire(Trigger.ADVANCE)
    _answer_all(loaded, 2)
    loaded.fire(Trigger.TIMEOUT)
    assert loaded.phase is ScreeningPhase.OIR_2_INSTRUCTIONS
    assert loaded.percentages()[0] == 40


async def test_full_battery_is_scored(loaded, fake_client, db):
    fake_client.generate_json.return_value = evaluation_json(8)
    await _to_story(loaded)
    loaded.write_story(LONG_STORY)
    loaded.fire(Trigger.SUBMIT)
    await loaded.narrate("Ravi calmed the group and led them to safety.")
    loaded.fire(Trigger.SUBMIT)
    await loaded.settle()
    assert loaded.phase is ScreeningPhase.RESULT
    assert loaded.result["status"] == "IN"
    assert loaded.result["oir1_perc"] == 80
    row = db.get(HistoryEntry, loaded.record_id)
    assert row.test_type == "SCREENING_TEST"
    assert row.score == pytest.approx(8.0)


async def test_short_ppdt_is_scored_locally_as_out(loaded, fake_client):
    await _to_story(loaded)
    loaded.write_story("Men near a jeep.")
    loaded.fire(Trigger.TIMEOUT)
    loaded.fire(Trigger.TIMEOUT)
    await loaded.settle()
    assert loaded.result["status"] == "OUT"
    assert loaded.result["ppdt"]["verdict"] == "Insufficient Data"
    fake_client.generate_json.assert_not_awaited()


async def test_evaluation_failure_lands_on_result_with_pending_record(loaded, fake_client, db):
    fake_client.generate_json.side_effect = RuntimeError("down")
    await _to_story(loaded)
    loaded.write_story(LONG_STORY)
    loaded.fire(Trigger.SUBMIT)
    loaded.fire(Trigger.SUBMIT)
    await loaded.settle()
    assert loaded.phase is ScreeningPhase.RESULT
    assert loaded.error
    assert db.get(HistoryEntry, loaded.record_id).status == store.STATUS_PENDING


async def test_handwritten_story_replaces_typed_text(loaded, fake_client):
    fake_client.generate_multimodal.return_value = "  A handwritten story.  "
    await _to_story(loaded)
    loaded.write_story("draft")
    assert await loaded.upload_story(MediaClip.image(_png())) == "A handwritten story."
    assert loaded.story == "A handwritten story."


async def test_missing_stimulus_is_generated(session, db, fake_client):
    seed_catalog(db)
    test_set = available_sets(db)[0]
    fake_client.generate_inline.return_value = ("image/png", "aGVsbG8=")
    session.load(test_set, store.list_oir_questions(db, test_set.oir1.id), store.list_oir_questions(db, test_set.oir2.id))
    for trigger in (Trigger.ADVANCE, Trigger.SUBMIT, Trigger.ADVANCE, Trigger.SUBMIT):
        session.fire(trigger)
    assert session.phase is ScreeningPhase.PPDT_INSTRUCTIONS
    await session.settle()
    assert session.snapshot()["stimulus_url"] == "data:image/png;base64,aGVsbG8="


def test_load_requires_lobby_and_questions(session, db):
    seed_catalog(db)
    test_set = available_sets(db)[0]
    with pytest.raises(PhaseError):
        session.load(test_set, [], [])
    assert session.phase is ScreeningPhase.LOBBY


async def test_zero_time_limit_ends_the_test_at_once(session, db):
    seed_catalog(db)
    test_set = available_sets(db)[0]
    test_set.oir1.time_limit_seconds = 0
    session.load(test_set, store.list_oir_questions(db, test_set.oir1.id), store.list_oir_questions(db, test_set.oir2.id))
    session.fire(Trigger.ADVANCE)
    for _ in range(5):
        await asyncio.sleep(0)
    assert session.phase is ScreeningPhase.OIR_2_INSTRUCTIONS
