from __future__ import annotations

from dataclasses import dataclass

from math_trainer.clock import ManualScheduler
from math_trainer.persistence import LocalHistoryStore, MemoryStorage
from math_trainer.problems import ProblemGenerator, SessionConfig
from math_trainer.session import Feedback, SessionController, SessionPhase


@dataclass
class FakeClock:
    t: float = 0.0

    def now(self) -> float:
        return self.t

    def advance(self, dt: float) -> None:
        self.t += dt


def _make():
    clock = FakeClock()
    sched = ManualScheduler(clock)
    store = LocalHistoryStore(MemoryStorage())
    ctl = SessionController(clock=clock, scheduler=sched, history=store, generator=ProblemGenerator(seed=5))
    return ctl, clock, sched, store


def _tick(clock: FakeClock, sched: ManualScheduler, seconds: float = 1.0) -> None:
    clock.advance(seconds)
    sched.run_due()


def test_auto_next_advances_after_delay() -> None:
    ctl, clock, sched, _ = _make()
    ctl.start(SessionConfig(count=3, auto_next=True, shuffle=False))
    p = ctl.current_problem()
    assert p is not None

    assert ctl.submit_answer(str(p.answer)) is True
    assert ctl.phase is SessionPhase.AWAITING_ADVANCE
    assert ctl.submit_answer(str(p.answer)) is False

    _tick(clock, sched, 0.4)
    assert ctl.phase is SessionPhase.AWAITING_ADVANCE
    _tick(clock, sched, 0.1)
    assert ctl.phase is SessionPhase.RUNNING
    assert ctl.state is not None and ctl.state.index == 1


def test_auto_advance_on_last_problem_finishes() -> None:
    ctl, clock, sched, store = _make()
    ctl.start(SessionConfig(count=1, auto_next=True))
    p = ctl.current_problem()
    assert p is not None

    ctl.submit_answer(str(p.answer))
    _tick(clock, sched, 0.5)

    assert ctl.phase is SessionPhase.IDLE
    history = store.load_history()
    assert len(history) == 1
    assert (history[0].solved, history[0].total, history[0].reason) == (1, 1, "finished")


def test_manual_advance_voids_pending_auto_advance() -> None:
    ctl, clock, sched, _ = _make()
    ctl.start(SessionConfig(count=3, auto_next=True))
    p = ctl.current_problem()
    assert p is not None

    ctl.submit_answer(str(p.answer))
    ctl.advance()
    _tick(clock, sched, 1.0)
    assert ctl.state is not None and ctl.state.index == 1


def test_stop_voids_pending_auto_advance() -> None:
    ctl, clock, sched, store = _make()
    ctl.start(SessionConfig(count=3, auto_next=True))
    p = ctl.current_problem()
    assert p is not None
    ctl.submit_answer(str(p.answer))

    ctl.stop()
    _tick(clock, sched, 1.0)
    assert ctl.phase is SessionPhase.IDLE
    assert len(store.load_history()) == 1
    assert sched.pending_count() == 0


def test_restart_voids_pending_auto_advance() -> None:
    ctl, clock, sched, _ = _make()
    ctl.start(SessionConfig(count=3, auto_next=True))
    p = ctl.current_problem()
    assert p is not None
    ctl.submit_answer(str(p.answer))

    ctl.start(SessionConfig(count=3, auto_next=True))
    _tick(clock, sched, 1.0)
    st = ctl.state
    assert st is not None
    assert ctl.phase is SessionPhase.RUNNING
    assert (st.index, st.score, st.feedback) == (0, 0, None)


def test_timer_expiry_without_auto_next_shows_feedback() -> None:
    ctl, clock, sched, _ = _make()
    ctl.start(SessionConfig(count=2, time_per_problem_s=5, auto_next=False))
    p = ctl.current_problem()
    assert p is not None

    for expected in range(1, 5):
        _tick(clock, sched)
        st = ctl.state
        assert st is not None
        assert st.elapsed_s == expected
        assert st.remaining_s == 5 - expected
        assert st.feedback is None

    _tick(clock, sched)
    st = ctl.state
    assert st is not None
    assert st.feedback == Feedback(ok=False, correct=p.answer, timed_out=True)
    assert ctl.phase is SessionPhase.RUNNING
    assert st.index == 0

    # Countdown stopped; late answers are ignored.
    _tick(clock, sched, 3.0)
    assert st.elapsed_s == 5
    assert ctl.submit_answer(str(p.answer)) is False
    assert st.score == 0


def test_timer_expiry_with_auto_next_advances() -> None:
    ctl, clock, sched, _ = _make()
    ctl.start(SessionConfig(count=2, time_per_problem_s=5, auto_next=True))

    _tick(clock, sched, 5.0)
    st = ctl.state
    assert st is not None
    assert ctl.phase is SessionPhase.RUNNING
    assert st.index == 1
    assert st.feedback is None
    assert (st.elapsed_s, st.remaining_s) == (0, 5)

    _tick(clock, sched, 5.0)
    assert ctl.phase is SessionPhase.IDLE
    record = ctl.last_record
    assert record is not None
    assert (record.solved, record.total, record.reason, record.duration_s) == (0, 2, "finished", 10)


def test_answering_stops_the_countdown() -> None:
    ctl, clock, sched, _ = _make()
    ctl.start(SessionConfig(count=2, time_per_problem_s=3, auto_next=False))
    p = ctl.current_problem()
    assert p is not None

    _tick(clock, sched)
    ctl.submit_answer(str(p.answer))
    _tick(clock, sched, 10.0)

    st = ctl.state
    assert st is not None
    assert st.feedback is not None and st.feedback.ok is True
    assert st.elapsed_s == 1


def test_advance_restarts_countdown() -> None:
    ctl, clock, sched, _ = _make()
    ctl.start(SessionConfig(count=3, time_per_problem_s=4, auto_next=False))

    _tick(clock, sched, 3.0)
    ctl.advance()
    st = ctl.state
    assert st is not None
    assert (st.index, st.elapsed_s, st.remaining_s) == (1, 0, 4)

    _tick(clock, sched)
    assert st.elapsed_s == 1
    assert sched.pending_count() == 1


def test_stale_tick_after_restart_is_ignored() -> None:
    ctl, clock, sched, _ = _make()
    cfg = SessionConfig(count=3, time_per_problem_s=10, auto_next=False)
    ctl.start(cfg)
    _tick(clock, sched, 3.0)

    ctl.start(cfg)
    assert sched.pending_count() == 1
    _tick(clock, sched)
    st = ctl.state
    assert st is not None
    assert st.elapsed_s == 1


def test_stop_cancels_countdown() -> None:
    ctl, clock, sched, _ = _make()
    ctl.start(SessionConfig(count=3, time_per_problem_s=2, auto_next=True))
    ctl.stop()

    assert sched.pending_count() == 0
    _tick(clock, sched, 10.0)
    assert ctl.phase is SessionPhase.IDLE


def test_snapshot_reports_elapsed_when_timed() -> None:
    ctl, clock, sched, _ = _make()
    ctl.start(SessionConfig(count=2, time_per_problem_s=6, auto_next=False))
    _tick(clock, sched, 2.0)

    snap = ctl.snapshot()
    assert snap.elapsed_s == 2
    assert snap.remaining_s == 4
    assert snap.run_time_s == 2
