import asyncio
import json

import pytest

from ssbprep import store
from ssbprep.media import MediaClip
from ssbprep.models import GPEScenario, HistoryEntry
from ssbprep.phases import PhaseError, Trigger
from ssbprep.sessions.base import SessionRegistry
from ssbprep.sessions.gpe import GPEPhase, GPESession, guest_allowed

from .conftest import evaluation_json

DISCUSSION = json.dumps(
    {
        "points": [
            {"speaker": "Candidate 2", "text": "The child in the well cannot wait."},
            {"speaker": "GTO", "text": "Good, now agree on the timings."},
        ]
    }
)


@pytest.fixture
def scenario(db):
    row = GPEScenario(title="Free Practice GPE", narrative="A bus accident, a bridge threat and a child in a well.")
    db.add(row)
    db.commit()
    return row


@pytest.fixture
def session(gateway, db_factory):
    gpe = GPESession("cadet", gateway, db_factory=db_factory)
    yield gpe
    gpe.close()


async def _to_individual_solution(session, scenario):
    session.select(scenario)
    session.fire(Trigger.ADVANCE)
    session.fire(Trigger.ADVANCE)
    assert session.phase is GPEPhase.CORRELATION
    assert session.timers.current.total == 300
    session.fire(Trigger.SKIP)
    assert session.phase is GPEPhase.INDIVIDUAL_SOLUTION


async def test_full_exercise_is_evaluated_and_recorded(session, scenario, fake_client, db):
    fake_client.generate_json.side_effect = [DISCUSSION, evaluation_json(7.5)]
    await _to_individual_solution(session, scenario)

    session.submit_solution("Jeep to the accident, two men to the bridge, ropes for the well.")
    assert session.phase is GPEPhase.GROUP_DISCUSSION
    assert session.timers.current.total == 900
    await session.settle()
    assert [p.speaker for p in session.discussion] == ["Candidate 2", "GTO"]

    session.add_point("I will take the bicycle to the post office.")
    session.fire(Trigger.SKIP)
    await session.submit_final_plan("Well first, then the bridge, then the bus.")
    assert session.phase is GPEPhase.EVALUATING
    await session.settle()

    assert session.phase is GPEPhase.COMPLETED
    assert session.result["score"] == 7.5
    assert session.result["scenario"] == "Free Practice GPE"
    row = db.get(HistoryEntry, session.record_id)
    assert row.status == store.STATUS_COMPLETED
    assert row.test_type == "GPE"
    assert len(store.attempt_inputs(row)["discussion"]) == 3


async def test_individual_solution_timeout_carries_draft(session, scenario, fake_client):
    fake_client.generate_json.return_value = DISCUSSION
    await _to_individual_solution(session, scenario)
    session.draft("Half-finished plan")
    countdown = session.timers.current
    for _ in range(600):
        await countdown.tick()
    assert session.phase is GPEPhase.GROUP_DISCUSSION
    assert session.solution == "Half-finished plan"
    await session.settle()


async def test_empty_timeout_still_moves_on(session, scenario, fake_client):
    fake_client.generate_json.return_value = DISCUSSION
    await _to_individual_solution(session, scenario)
    session.fire(Trigger.TIMEOUT)
    assert session.phase is GPEPhase.GROUP_DISCUSSION
    await session.settle()


async def test_empty_solution_cannot_be_submitted(session, scenario):
    await _to_individual_solution(session, scenario)
    with pytest.raises(PhaseError):
        session.submit_solution("  ")
    assert session.phase is GPEPhase.INDIVIDUAL_SOLUTION


async def test_late_discussion_is_dropped(session, scenario, fake_client):
    release = asyncio.Event()

    async def slow_discussion(*args, **kwargs):
        await release.wait()
        return DISCUSSION

    fake_client.generate_json.side_effect = slow_discussion
    await _to_individual_solution(session, scenario)
    session.submit_solution("Plan")
    session.fire(Trigger.SKIP)
    assert session.phase is GPEPhase.FINAL_PLAN
    release.set()
    await session.settle()
    assert session.discussion == []


async def test_discussion_failure_is_reported(session, scenario, fake_client):
    fake_client.generate_json.side_effect = RuntimeError("overloaded")
    await _to_individual_solution(session, scenario)
    session.submit_solution("Plan")
    await session.settle()
    assert session.discussion_error
    assert session.phase is GPEPhase.GROUP_DISCUSSION


async def test_failed_evaluation_is_saved_pending(session, scenario, fake_client, db):
    fake_client.generate_json.side_effect = [DISCUSSION, "not json at all"]
    await _to_individual_solution(session, scenario)
    session.submit_solution("Plan")
    await session.settle()
    session.fire(Trigger.SKIP)
    await session.submit_final_plan("Final plan")
    await session.settle()
    assert session.phase is GPEPhase.COMPLETED
    assert session.result is None
    assert session.error
    assert db.get(HistoryEntry, session.record_id).status == store.STATUS_PENDING


async def test_spoken_final_plan_is_transcribed(session, scenario, fake_client):
    fake_client.generate_json.side_effect = [DISCUSSION, evaluation_json()]
    fake_client.generate_multimodal.return_value = "Rescue the child first."
    await _to_individual_solution(session, scenario)
    session.submit_solution("Plan")
    session.fire(Trigger.SKIP)
    await session.submit_final_plan(audio=MediaClip.audio(b"\x1aE\xdf\xa3"))
    assert session.final_plan == "Rescue the child first."
    assert not session.recording.busy
    await session.settle()


async def test_reset_returns_to_selection_and_stops_timer(session, scenario):
    await _to_individual_solution(session, scenario)
    countdown = session.timers.current
    session.reset()
    assert session.phase is GPEPhase.SELECTION
    assert countdown.cancelled
    assert session.timers.current is None
    assert session.scenario is None
    assert session.snapshot()["allowed"] == ["advance"]


async def test_closed_session_rejects_triggers(session, scenario):
    session.select(scenario)
    session.close()
    with pytest.raises(PhaseError):
        session.fire(Trigger.ADVANCE)


def test_only_free_scenario_is_open_to_guests():
    assert guest_allowed(GPEScenario(title="Free Practice GPE", narrative="x"))
    assert not guest_allowed(GPEScenario(title="Coal Mine Crisis", narrative="x"))


async def test_guest_attempt_is_evaluated_but_not_saved(gateway, db_factory, scenario, fake_client, db):
    fake_client.generate_json.side_effect = [DISCUSSION, evaluation_json(6)]
    guest = GPESession("guest", gateway, db_factory=db_factory, guest=True)
    try:
        await _to_individual_solution(guest, scenario)
        guest.submit_solution("Plan")
        await guest.settle()
        guest.fire(Trigger.SKIP)
        await guest.submit_final_plan("Final plan")
        await guest.settle()
        assert guest.phase is GPEPhase.COMPLETED
        assert guest.result["score"] == 6
        assert guest.record_id is None
        assert db.query(HistoryEntry).count() == 0
    finally:
        guest.close()


def test_registry_drops_idle_sessions(gateway):
    now = [0.0]
    registry = SessionRegistry(idle_seconds=60, clock=lambda: now[0])
    first = registry.add(GPESession("cadet", gateway))
    now[0] = 30.0
    assert registry.get(first.session_id, "cadet") is first
    now[0] = 120.0
    second = registry.add(GPESession("other", gateway))
    assert first.closed
    assert registry.get(first.session_id, "cadet") is None
    assert len(registry) == 1
    now[0] = 500.0
    assert registry.sweep() == 1
    assert second.closed
    assert len(registry) == 0


def test_registry_keeps_newest_session_per_member(gateway):
    registry = SessionRegistry(per_user=1)
    first = registry.add(GPESession("cadet", gateway))
    second = registry.add(GPESession("cadet", gateway))
    assert first.closed
    assert registry.get(second.session_id, "cadet") is second
    guests = [registry.add(GPESession("guest", gateway, guest=True)) for _ in range(2)]
    assert not any(g.closed for g in guests)
    assert len(registry) == 3
