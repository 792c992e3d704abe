"""
Timed Test Sessions
===================

A session is one candidate's run through a timed test. It owns the phase
machine, the single live countdown, the recording slot and any background
work started on stage entry (discussion fetch, outline fetch, evaluation).

Every state change goes through ``fire``. Entering a stage cancels the
previous countdown, releases the recording slot, starts the new stage's
countdown when it has one, and runs the stage's entry hook. Background work
captures the machine epoch when it starts and drops its result if the epoch
has moved on by the time it finishes.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, Set

from sqlalchemy.orm import Session

from .. import evaluations
from ..db import SessionLocal
from ..gateway import Gateway
from ..media import RecordingSlot
from ..outcome import Outcome
from ..phases import P, PhaseError, PhaseMachine, Trigger
from ..timer import Countdown, TimerError, TimerSlot

logger = logging.getLogger(__name__)

DbFactory = Callable[[], Session]


class TimedSession(Generic[P]):
    kind = "session"

    def __init__(
        self,
        username: str,
        machine: PhaseMachine[P],
        gateway: Gateway,
        *,
        db_factory: Optional[DbFactory] = None,
        guest: bool = False,
    ) -> None:
        self.session_id = uuid.uuid4().hex
        self.username = username
        # Guest attempts are evaluated but never written to history
        self.guest = guest
        self.touched_at = time.monotonic()
        self.machine = machine
        self.gateway = gateway
        self.db_factory: DbFactory = db_factory or SessionLocal
        self.timers = TimerSlot()
        self.recording = RecordingSlot()
        self.notices: List[str] = []
        self.error: Optional[str] = None
        self.result: Optional[Dict[str, Any]] = None
        self.record_id: Optional[int] = None
        self.closed = False
        self._tasks: Set[asyncio.Task] = set()
        self._entry_hooks: Dict[P, Callable[[int], None]] = {}

    # -- transitions ---------------------------------------------------------

    @property
    def phase(self) -> P:
        return self.machine.phase

    def on_enter(self, phase: P, hook: Callable[[int], None]) -> None:
        """Register ``hook(epoch)`` to run each time ``phase`` is entered."""
        self._entry_hooks[phase] = hook

    def fire(self, trigger: Trigger, content: Optional[str] = None) -> P:
        if self.closed:
            raise PhaseError("session is closed")
        phase = self.machine.advance(trigger, content)
        self._enter(phase)
        return phase

    def reset(self) -> P:
        phase = self.fire(Trigger.RESET)
        self.notices = []
        self.error = None
        self.result = None
        self.record_id = None
        self.on_reset()
        return phase

    def on_reset(self) -> None:
        """Clear feature state when the candidate starts over."""

    def duration_for(self, phase: P) -> Optional[int]:
        return self.machine.spec(phase).duration_seconds

    def _enter(self, phase: P) -> None:
        self.timers.clear()
        self.recording.release()
        epoch = self.machine.epoch
        seconds = self.duration_for(phase)
        if seconds is not None:
            countdown = Countdown(
                seconds,
                lambda: self._timed_out(epoch),
                pausable=self.machine.spec(phase).pausable,
                warnings=self.warnings_for(phase),
            )
            self.timers.replace(countdown)
            # Pausable stages wait for the candidate to start the clock
            if not countdown.pausable:
                countdown.start()
        hook = self._entry_hooks.get(phase)
        if hook is not None:
            hook(epoch)

    def warnings_for(self, phase: P) -> Dict[int, Callable[[], Any]]:
        return {}

    def _timed_out(self, epoch: int) -> None:
        if self.closed or not self.machine.is_current(epoch):
            return
        if not self.machine.can(Trigger.TIMEOUT):
            logger.warning("%s %s: countdown ended in %s with no timeout transition", self.kind, self.session_id, self.phase)
            return
        self.fire(Trigger.TIMEOUT)

    # -- countdown control ---------------------------------------------------

    def _countdown(self) -> Countdown:
        countdown = self.timers.current
        if countdown is None:
            raise PhaseError("this stage is not timed")
        return countdown

    def start_timer(self) -> None:
        self._countdown().start()

    def pause_timer(self) -> None:
        try:
            self._countdown().pause()
        except TimerError as exc:
            raise PhaseError(str(exc)) from exc

    def resume_timer(self) -> None:
        try:
            self._countdown().resume()
        except TimerError as exc:
            raise PhaseError(str(exc)) from exc

    # -- background work -----------------------------------------------------

    def spawn(self, coro: Awaitable[Any], label: str) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)

        def _done(t: asyncio.Task) -> None:
            self._tasks.discard(t)
            if not t.cancelled() and t.exception() is not None:
                logger.error("%s %s: %s failed: %s", self.kind, self.session_id, label, t.exception())

        task.add_done_callback(_done)
        return task

    @property
    def pending(self) -> bool:
        return bool(self._tasks)

    async def settle(self) -> None:
        """Wait for all background work, including work it starts."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def expect(self, *phases: P) -> None:
        if self.phase not in phases:
            names = ", ".join(str(getattr(p, "value", p)) for p in phases)
            raise PhaseError(f"only allowed during {names}")

    def persist(self, fn: Callable[[Session], Any]) -> Any:
        db = self.db_factory()
        try:
            return fn(db)
        finally:
            db.close()

    def conclude(self, test_type: str, outcome: Outcome[Dict[str, Any]], inputs: Dict[str, Any], failure: str) -> None:
        """Save the attempt and leave the evaluating stage, with a result or an error."""
        if self.guest:
            logger.debug("%s %s: guest attempt not saved", self.kind, self.session_id)
        else:
            try:
                row = self.persist(lambda db: evaluations.record(db, self.username, test_type, outcome, inputs))
                self.record_id = row.id
            except Exception as exc:
                logger.error("%s %s: could not save %s attempt: %s", self.kind, self.session_id, test_type, exc)
        if outcome.ok:
            self.result = outcome.value
        else:
            self.error = failure
        self.fire(Trigger.RESOLVED)

    # -- view ----------------------------------------------------------------

    def snapshot(self) -> Dict[str, Any]:
        countdown = self.timers.current
        timer = None
        if countdown is not None:
            timer = {
                "remaining": countdown.remaining,
                "total": countdown.total,
                "running": countdown.running,
                "paused": countdown.paused,
                "pausable": countdown.pausable,
            }
        view = {
            "session_id": self.session_id,
            "kind": self.kind,
            "phase": str(getattr(self.phase, "value", self.phase)),
            "epoch": self.machine.epoch,
            "allowed": [t.value for t in self.machine.allowed()],
            "timer": timer,
            "recording": self.recording.owner,
            "notices": list(self.notices),
            "error": self.error,
            "result": self.result,
            "record_id": self.record_id,
        }
        view.update(self.view())
        return view

    def view(self) -> Dict[str, Any]:
        return {}

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.timers.close()
        self.recording.release()
        for task in list(self._tasks):
            task.cancel()
        logger.debug("%s %s closed", self.kind, self.session_id)


class SessionRegistry:
    """In-process sessions keyed by id. Sessions share no state.

    Each lookup marks a session as touched. Sessions idle for longer than
    ``idle_seconds`` are closed and dropped whenever a new one is added or
    ``sweep`` runs, and each member keeps at most ``per_user`` live sessions,
    the oldest going first.
    """

    def __init__(
        self,
        *,
        idle_seconds: float = 2 * 60 * 60,
        per_user: int = 1,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._sessions: Dict[str, TimedSession] = {}
        self.idle_seconds = idle_seconds
        self.per_user = per_user
        self._clock = clock

    def add(self, session: TimedSession) -> TimedSession:
        self.sweep()
        # Guests share a username, so only idle expiry applies to them
        if not session.guest:
            owned = sorted(
                (s for s in self._sessions.values() if s.username == session.username),
                key=lambda s: s.touched_at,
            )
            for old in owned[: max(len(owned) - self.per_user + 1, 0)]:
                logger.info("%s %s replaced by a newer session of %s", old.kind, old.session_id, old.username)
                self.discard(old.session_id)
        session.touched_at = self._clock()
        self._sessions[session.session_id] = session
        return session

    def get(self, session_id: str, username: str) -> Optional[TimedSession]:
        session = self._sessions.get(session_id)
        if session is None or session.username != username:
            return None
        session.touched_at = self._clock()
        return session

    def sweep(self) -> int:
        """Close sessions idle past the limit. Returns how many were dropped."""
        cutoff = self._clock() - self.idle_seconds
        stale = [sid for sid, s in self._sessions.items() if s.closed or s.touched_at < cutoff]
        for session_id in stale:
            self.discard(session_id)
        if stale:
            logger.info("Dropped %d idle sessions", len(stale))
        return len(stale)

    def discard(self, session_id: str) -> None:
        session = self._sessions.pop(session_id, None)
        if session is not None:
            session.close()

    def close_all(self) -> None:
        for session_id in list(self._sessions):
            self.discard(session_id)

    def __len__(self) -> int:
        return len(self._sessions)
