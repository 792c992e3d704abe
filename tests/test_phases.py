"""Tests for the phase state machine."""

import pytest

from ssbprep.phases import PhaseError, PhaseMachine, StageSpec, Trigger
from ssbprep.sessions.gpe import GPEPhase, new_machine


def _to_individual_solution() -> PhaseMachine:
    machine = new_machine()
    machine.advance(Trigger.ADVANCE)
    machine.advance(Trigger.ADVANCE)
    machine.advance(Trigger.ADVANCE)
    machine.advance(Trigger.SKIP)
    assert machine.phase is GPEPhase.INDIVIDUAL_SOLUTION
    return machine


def test_submit_with_text_moves_to_group_discussion():
    machine = _to_individual_solution()
    assert machine.advance(Trigger.SUBMIT, "Send two members by jeep to the bus accident.") is GPEPhase.GROUP_DISCUSSION


def test_timeout_with_empty_text_moves_to_group_discussion():
    machine = _to_individual_solution()
    assert machine.advance(Trigger.TIMEOUT, "") is GPEPhase.GROUP_DISCUSSION


def test_submit_with_blank_text_is_rejected():
    machine = _to_individual_solution()
    with pytest.raises(PhaseError):
        machine.advance(Trigger.SUBMIT, "   ")
    assert machine.phase is GPEPhase.INDIVIDUAL_SOLUTION


def test_unknown_trigger_raises_and_keeps_phase():
    machine = new_machine()
    with pytest.raises(PhaseError):
        machine.advance(Trigger.SKIP)
    assert machine.phase is GPEPhase.SELECTION
    assert machine.epoch == 0


def test_epoch_increments_on_every_transition():
    machine = new_machine()
    machine.advance(Trigger.ADVANCE)
    epoch = machine.epoch
    assert machine.is_current(epoch)
    machine.advance(Trigger.ADVANCE)
    assert not machine.is_current(epoch)
    assert machine.epoch == epoch + 1


def test_completed_only_allows_reset():
    machine = _to_individual_solution()
    machine.advance(Trigger.SUBMIT, "plan")
    machine.advance(Trigger.SKIP)
    machine.advance(Trigger.SUBMIT, "final plan")
    assert machine.phase is GPEPhase.EVALUATING
    machine.advance(Trigger.RESOLVED)
    assert machine.phase is GPEPhase.COMPLETED
    assert machine.allowed() == [Trigger.RESET]
    assert machine.advance(Trigger.RESET) is GPEPhase.SELECTION


def test_reset_not_offered_on_first_stage():
    machine = new_machine()
    assert Trigger.RESET not in machine.allowed()
    machine.advance(Trigger.ADVANCE)
    assert Trigger.RESET in machine.allowed()


def test_backward_transition_rejected_at_construction():
    stages = [StageSpec("a"), StageSpec("b")]
    with pytest.raises(ValueError):
        PhaseMachine(stages, {("b", Trigger.ADVANCE): "a"})


def test_skip_requires_skippable_stage():
    stages = [StageSpec("a"), StageSpec("b")]
    with pytest.raises(ValueError):
        PhaseMachine(stages, {("a", Trigger.SKIP): "b"})


def test_terminal_stage_only_reached_by_resolved():
    stages = [StageSpec("a"), StageSpec("done", terminal=True)]
    with pytest.raises(ValueError):
        PhaseMachine(stages, {("a", Trigger.SUBMIT): "done"})
    machine = PhaseMachine(stages, {("a", Trigger.RESOLVED): "done"})
    assert machine.advance(Trigger.RESOLVED) == "done"


def test_reset_in_table_rejected():
    stages = [StageSpec("a"), StageSpec("b")]
    with pytest.raises(ValueError):
        PhaseMachine(stages, {("a", Trigger.RESET): "b"})


def test_reset_on_first_stage_is_rejected():
    machine = new_machine()
    with pytest.raises(PhaseError):
        machine.advance(Trigger.RESET)
    assert machine.epoch == 0
