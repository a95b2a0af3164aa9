"""Timer state machine for Peemodoro.

Transitions are pure functions of ``(TimerState, TimerConfig, now)`` that
return a new ``TimerState``. Remaining time is always derived from the
wall clock (``now - started_at``) rather than a decremented counter, so any
process can pick up the timer where another left off.

An inapplicable transition returns the state unchanged.
"""

import logging
import signal
import time
from dataclasses import replace
from typing import Callable, Optional

from .models import PeeState, TimerConfig, TimerState, TimerStatus

logger = logging.getLogger(__name__)

MAX_SNOOZE_MINUTES = 15
DEFAULT_SNOOZE_MINUTES = 5

# Fraction of work time remaining above which each urgency level applies
URGENCY_THRESHOLDS = {1: 0.75, 2: 0.25, 3: 0.0}


def _now(now: Optional[float]) -> float:
    return time.time() if now is None else now


def urgency_level(time_remaining: int, work_duration: int) -> int:
    """Urgency tier 1 (fresh) to 4 (overdue) from the fraction of time left."""
    if time_remaining <= 0:
        return 4
    fraction = time_remaining / work_duration
    for level, threshold in URGENCY_THRESHOLDS.items():
        if fraction > threshold:
            return level
    return 4


def initial_state(config: TimerConfig) -> TimerState:
    """Fresh paused timer at the start of cycle 1."""
    return TimerState(status=TimerStatus.PAUSED, time_remaining=config.work_duration)


def recompute(state: TimerState, config: TimerConfig, now: Optional[float] = None) -> TimerState:
    """Refresh time-derived fields from the wall clock.

    Running and focus timers get ``time_remaining`` from ``started_at``; an
    expired focus period drops back to running. Applying this twice gives
    the same result as applying it once.
    """
    now = _now(now)
    if state.status not in (TimerStatus.RUNNING, TimerStatus.FOCUS):
        return state

    updated = state
    if state.started_at > 0:
        elapsed = int(now - state.started_at)
        updated = replace(updated, time_remaining=max(0, config.work_duration - elapsed))

    if (
        updated.status == TimerStatus.FOCUS
        and updated.focus_until is not None
        and now >= updated.focus_until
    ):
        updated = replace(updated, status=TimerStatus.RUNNING, focus_until=None)
    return updated


def advance(state: TimerState, config: TimerConfig, now: Optional[float] = None) -> TimerState:
    """Recompute, then start a break if a running timer has run out."""
    now = _now(now)
    updated = recompute(state, config, now)
    if updated.status == TimerStatus.RUNNING and updated.time_remaining <= 0:
        updated = start_break(updated, config, now)
    return updated


def start(state: TimerState, config: TimerConfig, now: Optional[float] = None) -> TimerState:
    """paused -> running.

    ``started_at`` is placed so that the frozen ``time_remaining`` carries
    on counting down; for a fresh timer that is exactly ``now``. A timer
    paused during a break holds break time, not work time: starting it ends
    the break and begins the next cycle's full work period.
    """
    if state.status != TimerStatus.PAUSED:
        return state
    now = _now(now)
    if state.break_started_at is not None:
        return end_break(state, config, now)
    remaining = state.time_remaining if state.time_remaining > 0 else config.work_duration
    return replace(
        state,
        status=TimerStatus.RUNNING,
        time_remaining=remaining,
        started_at=now - (config.work_duration - remaining),
    )


def pause(state: TimerState, config: TimerConfig, now: Optional[float] = None) -> TimerState:
    """running/focus/break -> paused, freezing the remaining time."""
    if state.status == TimerStatus.PAUSED:
        return state
    frozen = recompute(state, config, now)
    return replace(frozen, status=TimerStatus.PAUSED, focus_until=None)


def reset(state: TimerState, config: TimerConfig) -> TimerState:
    """Back to a paused cycle 1 with a full work period."""
    return initial_state(config)


def enter_focus(
    state: TimerState,
    config: TimerConfig,
    minutes: Optional[int] = None,
    now: Optional[float] = None,
) -> TimerState:
    """running -> focus until ``now + min(requested, focus_max_duration)``.

    Asking again while already focused moves the deadline.
    """
    if state.status not in (TimerStatus.RUNNING, TimerStatus.FOCUS):
        return state
    now = _now(now)
    duration = config.focus_max_duration
    if minutes:
        duration = min(minutes * 60, config.focus_max_duration)
    return replace(state, status=TimerStatus.FOCUS, focus_until=now + duration)


def exit_focus(state: TimerState) -> TimerState:
    """focus -> running."""
    if state.status != TimerStatus.FOCUS:
        return state
    return replace(state, status=TimerStatus.RUNNING, focus_until=None)


def snooze(
    state: TimerState,
    config: TimerConfig,
    minutes: int = DEFAULT_SNOOZE_MINUTES,
    now: Optional[float] = None,
) -> TimerState:
    """Push the next break reminder ``minutes`` (capped at 15) into the future.

    Counts the snooze for the current cycle and stamps ``break_reminder_at``
    on the first one. Snoozing an active break defers it and returns to
    running without completing a cycle.
    """
    if state.status not in (TimerStatus.RUNNING, TimerStatus.BREAK):
        return state
    now = _now(now)
    duration = max(1, min(minutes, MAX_SNOOZE_MINUTES)) * 60
    return replace(
        state,
        status=TimerStatus.RUNNING,
        time_remaining=duration,
        started_at=now - (config.work_duration - duration),
        current_snooze_count=state.current_snooze_count + 1,
        break_reminder_at=state.break_reminder_at or now,
        break_started_at=None,
    )


def start_break(state: TimerState, config: TimerConfig, now: Optional[float] = None) -> TimerState:
    """running -> break, long if this was the last cycle before a long break."""
    if state.status == TimerStatus.BREAK:
        return state
    now = _now(now)
    is_long = state.current_cycle >= config.cycles_before_long_break
    return replace(
        state,
        status=TimerStatus.BREAK,
        time_remaining=config.long_break_duration if is_long else config.break_duration,
        focus_until=None,
        last_break_at=now,
        break_started_at=now,
    )


def end_break(state: TimerState, config: TimerConfig, now: Optional[float] = None) -> TimerState:
    """break -> running for the next cycle; also used when a break is logged early."""
    now = _now(now)
    return replace(
        state,
        status=TimerStatus.RUNNING,
        time_remaining=config.work_duration,
        started_at=now,
        focus_until=None,
        cycle_count=state.cycle_count + 1,
        current_cycle=(state.current_cycle % config.cycles_before_long_break) + 1,
        current_snooze_count=0,
        break_reminder_at=None,
        break_started_at=None,
    )


class PeemodoroTimer:
    """Cooperative ticker over the shared live state.

    Each tick reads the live state, advances it with the wall clock, persists
    any status change and fires local callbacks. It never owns a tick count:
    every instance derives the same remaining time from the same timestamps.
    """

    def __init__(self, state_sync, clock: Callable[[], float] = time.time):
        """Initialize the ticker.

        Args:
            state_sync: StateSync shared with the rest of the process
            clock: Source of the current time (for testing)
        """
        self.state_sync = state_sync
        self.clock = clock
        self._running = False
        self._last_urgency: Optional[int] = None

        self.on_tick: Optional[Callable[[PeeState], None]] = None
        self.on_urgency_change: Optional[Callable[[int], None]] = None
        self.on_break_time: Optional[Callable[[PeeState], None]] = None
        self.on_focus_expired: Optional[Callable[[PeeState], None]] = None

    def tick(self) -> PeeState:
        """Advance the shared timer once and fire callbacks.

        Returns:
            The state after this tick
        """
        now = self.clock()
        state = self.state_sync.read_raw()
        before = state.timer
        after = advance(before, state.config, now)

        if after.status != before.status:
            # Status changes are persisted; plain countdown is derived on read
            if not self.state_sync.write({"timer": after}):
                logger.warning("Could not persist timer transition, will retry next tick")
        state.timer = after

        if before.status == TimerStatus.FOCUS and after.status != TimerStatus.FOCUS:
            self._fire(self.on_focus_expired, state)
        if before.status != TimerStatus.BREAK and after.status == TimerStatus.BREAK:
            self._fire(self.on_break_time, state)

        if after.status in (TimerStatus.RUNNING, TimerStatus.FOCUS):
            level = urgency_level(after.time_remaining, state.config.work_duration)
            if self._last_urgency is not None and level != self._last_urgency:
                self._fire(self.on_urgency_change, level)
            self._last_urgency = level
        else:
            self._last_urgency = None

        self._fire(self.on_tick, state)
        return state

    @staticmethod
    def _fire(callback: Optional[Callable], arg) -> None:
        if callback is not None:
            callback(arg)

    def _signal_handler(self, signum, frame):
        """Handle termination signals."""
        logger.info(f"Received signal {signum}, stopping ticker")
        self._running = False

    def run(self, interval: float = 1.0) -> None:
        """Tick every ``interval`` seconds until SIGINT/SIGTERM or ``stop()``."""
        signal.signal(signal.SIGTERM, self._signal_handler)
        signal.signal(signal.SIGINT, self._signal_handler)
        self._running = True
        while self._running:
            self.tick()
            time.sleep(interval)

    def stop(self) -> None:
        """Ask the run loop to exit after the current tick."""
        self._running = False
