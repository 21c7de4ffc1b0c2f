"""Deterministic session controller for the addition drill.

The controller owns a single :class:`SessionState` for the active run and is
its only mutator. Time comes from an injected :class:`~math_trainer.clock.Clock`
and every asynchronous action (the per-problem countdown and the delayed
auto-advance) goes through an injected
:class:`~math_trainer.clock.Scheduler`, so the whole lifecycle can be driven
headlessly by a fake clock in tests.

Lifecycle::

    IDLE --start--> RUNNING --submit (auto_next)--> AWAITING_ADVANCE
                       ^  |                               |
                       |  +----------advance--------------+
                       |                 |
                       +--next problem---+--exhausted--> FINISHED -> IDLE

``stop`` returns any non-idle run to ``IDLE``. Finishing or stopping turns the
run into a :class:`~math_trainer.results.SessionRecord`, prepends it to the
history (capped at 50) and hands the whole history to the store.

Scheduled callbacks capture the run epoch at scheduling time. The epoch is
bumped on every start, stop, finish and problem change, so a callback left
over from an earlier problem or run does nothing when it fires.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from .clock import Clock, Scheduler, TimerHandle
from .persistence import HistoryStore
from .problems import Problem, ProblemGenerator, SessionConfig
from .results import HISTORY_LIMIT, SessionRecord, StopReason, to_iso, utc_now

logger = logging.getLogger(__name__)

AUTO_ADVANCE_DELAY_S = 0.5
TICK_INTERVAL_S = 1.0

# ASCII digits only; int() would also take "4_2" or full-width digits.
_INTEGER_RE = re.compile(r"[+-]?[0-9]+")


class SessionPhase(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    AWAITING_ADVANCE = "awaiting_advance"
    FINISHED = "finished"


@dataclass(frozen=True, slots=True)
class Feedback:
    ok: bool
    correct: int
    given: int | None = None
    timed_out: bool = False


@dataclass(slots=True)
class SessionState:
    config: SessionConfig
    problems: list[Problem]
    started_at_s: float
    started_at: datetime
    index: int = 0
    score: int = 0
    feedback: Feedback | None = None
    pending_answer: str = ""
    elapsed_s: int = 0
    remaining_s: int | None = None

    @property
    def current(self) -> Problem | None:
        if 0 <= self.index < len(self.problems):
            return self.problems[self.index]
        return None


@dataclass(frozen=True, slots=True)
class DrillSnapshot:
    """View model for the UI (pure data)."""

    phase: SessionPhase
    prompt: str
    pending_answer: str
    index: int
    total: int
    score: int
    feedback: Feedback | None
    elapsed_s: int | None
    remaining_s: int | None
    run_time_s: int
    last_record: SessionRecord | None = None
    history: tuple[SessionRecord, ...] = field(default_factory=tuple)


class SessionController:
    def __init__(
        self,
        *,
        clock: Clock,
        scheduler: Scheduler,
        history: HistoryStore,
        generator: ProblemGenerator | None = None,
        wall_clock: Callable[[], datetime] = utc_now,
        auto_advance_delay_s: float = AUTO_ADVANCE_DELAY_S,
    ) -> None:
        self._clock = clock
        self._scheduler = scheduler
        self._store = history
        self._generator = generator if generator is not None else ProblemGenerator()
        self._wall_clock = wall_clock
        self._auto_advance_delay_s = float(auto_advance_delay_s)

        self._phase = SessionPhase.IDLE
        self._state: SessionState | None = None
        self._epoch = 0
        self._tick_handle: TimerHandle | None = None
        self._advance_handle: TimerHandle | None = None
        self._last_record: SessionRecord | None = None
        self._history: list[SessionRecord] = list(self._store.load_history())[:HISTORY_LIMIT]

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    @property
    def state(self) -> SessionState | None:
        return self._state

    @property
    def seed(self) -> int:
        return self._generator.seed

    @property
    def history(self) -> list[SessionRecord]:
        return list(self._history)

    @property
    def last_record(self) -> SessionRecord | None:
        return self._last_record

    def current_problem(self) -> Problem | None:
        if self._state is None or self._phase is SessionPhase.IDLE:
            return None
        return self._state.current

    # -- Operations ---------------------------------------------------------
    def start(self, config: SessionConfig) -> None:
        if self._phase is not SessionPhase.IDLE:
            logger.info("Restarting drill; discarding run in progress")
        self._cancel_timers()
        self._epoch += 1
        self._state = SessionState(
            config=config,
            problems=self._generator.generate(config),
            started_at_s=self._clock.now(),
            started_at=self._wall_clock(),
        )
        self._last_record = None
        self._phase = SessionPhase.RUNNING
        logger.info(
            "Drill started: %d problems in [%d, %d], timer=%ss auto_next=%s shuffle=%s seed=%d",
            len(self._state.problems),
            config.min_operand,
            config.max_operand,
            config.time_per_problem_s,
            config.auto_next,
            config.shuffle,
            self._generator.seed,
        )
        self._enter_problem()

    def set_pending_answer(self, text: str) -> None:
        if self._state is None or self._phase is SessionPhase.IDLE:
            return
        self._state.pending_answer = str(text)

    def submit_answer(self, raw: str | None = None) -> bool:
        """Check an answer for the current problem. Returns True if accepted.

        Unparseable text counts as an incorrect answer. Submissions are
        ignored outside RUNNING, when there is no current problem, and once
        the current problem already has feedback.
        """

        if self._phase is not SessionPhase.RUNNING or self._state is None:
            return False
        st = self._state
        problem = st.current
        if problem is None or st.feedback is not None:
            return False

        text = st.pending_answer if raw is None else str(raw)
        given = _parse_answer(text)
        ok = given is not None and given == problem.answer
        st.feedback = Feedback(ok=ok, correct=problem.answer, given=given)
        if ok:
            st.score += 1
        logger.debug("Answer %r for %s%d: %s", text, problem.prompt, problem.answer, "ok" if ok else "wrong")

        self._cancel_tick()
        if st.config.auto_next:
            self._phase = SessionPhase.AWAITING_ADVANCE
            self._schedule_advance()
        return True

    def advance(self) -> bool:
        if self._phase not in (SessionPhase.RUNNING, SessionPhase.AWAITING_ADVANCE):
            return False
        assert self._state is not None
        self._cancel_timers()
        st = self._state
        st.feedback = None
        st.pending_answer = ""

        if st.index + 1 < len(st.problems):
            st.index += 1
            self._epoch += 1
            self._phase = SessionPhase.RUNNING
            self._enter_problem()
            return True

        self._phase = SessionPhase.FINISHED
        self._finish(StopReason.FINISHED.value)
        return True

    def stop(self, reason: str = StopReason.USER.value) -> SessionRecord | None:
        if self._phase is SessionPhase.IDLE:
            return None
        self._cancel_timers()
        return self._finish(str(reason))

    def clear_history(self) -> None:
        self._history = []
        self._store.clear_history()

    def snapshot(self) -> DrillSnapshot:
        st = self._state
        if st is None or self._phase is SessionPhase.IDLE:
            return DrillSnapshot(
                phase=SessionPhase.IDLE,
                prompt="",
                pending_answer="",
                index=0,
                total=0,
                score=0,
                feedback=None,
                elapsed_s=None,
                remaining_s=None,
                run_time_s=0,
                last_record=self._last_record,
                history=tuple(self._history),
            )
        problem = st.current
        return DrillSnapshot(
            phase=self._phase,
            prompt="" if problem is None else problem.prompt,
            pending_answer=st.pending_answer,
            index=st.index,
            total=len(st.problems),
            score=st.score,
            feedback=st.feedback,
            elapsed_s=st.elapsed_s if st.config.timed else None,
            remaining_s=st.remaining_s,
            run_time_s=self._run_time_s(st),
            last_record=self._last_record,
            history=tuple(self._history),
        )

    # -- Internals ----------------------------------------------------------
    def _enter_problem(self) -> None:
        st = self._state
        assert st is not None
        st.elapsed_s = 0
        st.remaining_s = None
        if not st.config.timed or st.current is None:
            return
        st.remaining_s = int(st.config.time_per_problem_s)
        epoch = self._epoch
        self._tick_handle = self._scheduler.call_every(TICK_INTERVAL_S, lambda: self._on_tick(epoch))

    def _on_tick(self, epoch: int) -> None:
        if epoch != self._epoch or self._phase is not SessionPhase.RUNNING:
            return
        st = self._state
        assert st is not None and st.remaining_s is not None
        st.elapsed_s += 1
        st.remaining_s = max(0, st.remaining_s - 1)
        if st.remaining_s > 0:
            return

        self._cancel_tick()
        problem = st.current
        if problem is None:
            return
        st.feedback = Feedback(ok=False, correct=problem.answer, timed_out=True)
        logger.debug("Time expired on problem %d", st.index + 1)
        if st.config.auto_next:
            self.advance()

    def _schedule_advance(self) -> None:
        epoch = self._epoch
        self._advance_handle = self._scheduler.call_later(
            self._auto_advance_delay_s,
            lambda: self._on_auto_advance(epoch),
        )

    def _on_auto_advance(self, epoch: int) -> None:
        if epoch != self._epoch or self._phase is not SessionPhase.AWAITING_ADVANCE:
            return
        self._advance_handle = None
        self.advance()

    def _finish(self, reason: str) -> SessionRecord:
        st = self._state
        assert st is not None
        record = SessionRecord(
            date=to_iso(self._wall_clock()),
            solved=st.score,
            total=len(st.problems) or max(0, int(st.config.count)),
            duration_s=self._run_time_s(st),
            reason=reason,
        )
        self._epoch += 1
        self._phase = SessionPhase.IDLE
        self._last_record = record
        self._history = ([record] + self._history)[:HISTORY_LIMIT]
        self._store.save_history(list(self._history))
        logger.info(
            "Drill ended (%s): %d/%d in %ds", record.reason, record.solved, record.total, record.duration_s
        )
        return record

    def _run_time_s(self, st: SessionState) -> int:
        return max(0, int(round(self._clock.now() - st.started_at_s)))

    def _cancel_tick(self) -> None:
        if self._tick_handle is not None:
            self._tick_handle.cancel()
            self._tick_handle = None

    def _cancel_timers(self) -> None:
        self._cancel_tick()
        if self._advance_handle is not None:
            self._advance_handle.cancel()
            self._advance_handle = None


def _parse_answer(text: str) -> int | None:
    cleaned = str(text).strip()
    if _INTEGER_RE.fullmatch(cleaned) is None:
        return None
    return int(cleaned)
