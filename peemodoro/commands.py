"""Command layer for Peemodoro: ties the event store, badges and live state together."""

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Optional

from . import timer as timer_fsm
from .badges import STREAK_MILESTONES
from .config import parse_timer_setting
from .context import AppContext
from .models import (
    Badge,
    BreakRecord,
    BreakType,
    PeeState,
    TimerConfig,
    TimerMode,
    TimerState,
    TimerStatus,
    UserStats,
)
from .notifications import TelegramNotifier

logger = logging.getLogger(__name__)

# Breaks fed to badge evaluation; bounds the day-based badges' lookback
BADGE_LOOKBACK = 500


class StateBusyError(RuntimeError):
    """The live state could not be written; nothing was changed there."""

    def __init__(self):
        super().__init__("Timer state is busy (another session holds the lock). Try again.")


@dataclass
class BreakResult:
    """Outcome of logging a break."""
    record: BreakRecord
    stats: UserStats
    new_badges: list[Badge]


@dataclass
class StatsView:
    """Everything the stats screen shows."""
    stats: UserStats
    unlocked: list[Badge]
    next_badges: list[Badge]


class PeemodoroCommands:
    """User-facing operations."""

    def __init__(
        self,
        ctx: AppContext,
        notifier: Optional[TelegramNotifier] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        """Initialize commands.

        Args:
            ctx: Application context for this process
            notifier: Optional remote notifier, built from config if omitted
            clock: Source of the current time, defaults to the live state clock
        """
        self.ctx = ctx
        self.notifier = notifier or TelegramNotifier(ctx.config.telegram)
        self.clock = clock or ctx.state_sync.clock

    @property
    def state_sync(self):
        return self.ctx.state_sync

    def _write(self, partial: dict) -> None:
        if not self.state_sync.write(partial):
            raise StateBusyError()

    def _transition(self, apply: Callable[[PeeState, float], TimerState]) -> bool:
        """Apply a timer transition to the live state.

        Returns:
            False if the transition did not apply in the current status

        Raises:
            StateBusyError: If the new state could not be written
        """
        state = self.state_sync.read()
        updated = apply(state, self.clock())
        if updated == state.timer:
            return False
        self._write({"timer": updated})
        return True

    # Timer control

    def start(self) -> bool:
        """Start or resume a paused timer."""
        return self._transition(lambda s, now: timer_fsm.start(s.timer, s.config, now))

    def resume(self) -> bool:
        """Resume a paused timer."""
        return self.start()

    def pause(self) -> bool:
        """Pause the timer, freezing the remaining time."""
        return self._transition(lambda s, now: timer_fsm.pause(s.timer, s.config, now))

    def reset(self) -> None:
        """Reset the timer to a paused first cycle."""
        state = self.state_sync.read()
        self._write({"timer": timer_fsm.reset(state.timer, state.config)})

    def focus(self, minutes: Optional[int] = None) -> Optional[int]:
        """Enter focus mode.

        Args:
            minutes: Requested length, capped at the configured maximum

        Returns:
            Granted minutes, or None if the timer is not running
        """
        state = self.state_sync.read()
        now = self.clock()
        updated = timer_fsm.enter_focus(state.timer, state.config, minutes, now)
        if updated.status != TimerStatus.FOCUS:
            return None
        self._write({"timer": updated})
        return round((updated.focus_until - now) / 60)

    def exit_focus(self) -> bool:
        """Leave focus mode early."""
        return self._transition(lambda s, now: timer_fsm.exit_focus(s.timer))

    def snooze(self, minutes: int = timer_fsm.DEFAULT_SNOOZE_MINUTES) -> Optional[int]:
        """Postpone the next break reminder.

        Returns:
            Granted minutes, or None if there is nothing to snooze
        """
        applied = self._transition(
            lambda s, now: timer_fsm.snooze(s.timer, s.config, minutes, now)
        )
        if not applied:
            return None
        return max(1, min(minutes, timer_fsm.MAX_SNOOZE_MINUTES))

    def mark_break_reminder(self) -> None:
        """Record when the break prompt was first shown, to time the response."""
        state = self.state_sync.read()
        if state.timer.break_reminder_at is None:
            self._write({"timer": {"break_reminder_at": self.clock()}})

    def reminder_urgency(self) -> int:
        """Urgency level (1-4) of the current work period."""
        state = self.state_sync.read()
        return timer_fsm.urgency_level(state.timer.time_remaining, state.config.work_duration)

    # Breaks

    def log_break(self, break_type: BreakType = BreakType.PEE) -> BreakResult:
        """Record a break, evaluate badges and start the next work cycle.

        The break is stored in the event store before the live state is
        touched, so a busy live state never loses history.

        Raises:
            StateBusyError: If the live state could not be updated
        """
        state = self.state_sync.read()
        now = self.clock()
        timer = state.timer

        reference = timer.break_reminder_at or timer.last_break_at or timer.started_at or now
        duration = max(0, int(now - reference))
        snooze_count = timer.current_snooze_count

        storage = self.ctx.storage
        record = storage.record_break(
            break_type,
            duration,
            snooze_count > 0,
            snooze_count,
            now=datetime.fromtimestamp(now),
        )
        storage.record_mode_usage(state.config.mode, now=datetime.fromtimestamp(now))

        stats = storage.get_stats()
        new_badges = self.ctx.badges.check_and_unlock(
            stats,
            storage.get_breaks(BADGE_LOOKBACK),
            storage.get_hydration_mode_days(),
            now=datetime.fromtimestamp(now),
        )
        for badge in self.ctx.badges.get_all_badges():
            storage.save_badge(badge)

        config = self._adapted_config(state)
        partial = {
            "timer": timer_fsm.end_break(timer, config, now),
            "stats": stats,
            "badges": self.ctx.badges.get_all_badges(),
        }
        if config != state.config:
            partial["config"] = config
        self._write(partial)

        for badge in new_badges:
            self.notifier.notify_badge_unlocked(badge)
            if badge.id in STREAK_MILESTONES:
                self.notifier.notify_streak_milestone(stats.current_streak)

        return BreakResult(record=record, stats=stats, new_badges=new_badges)

    def _adapted_config(self, state: PeeState) -> TimerConfig:
        """Work duration learned from break habits, in adaptive mode only."""
        adaptive = self.ctx.config.adaptive
        if state.config.mode != TimerMode.ADAPTIVE or not adaptive.learning_enabled:
            return state.config

        patterns = self.ctx.storage.analyze_break_patterns()
        learned = int(patterns.average_interval)
        work = max(adaptive.min_work_duration, min(learned, adaptive.max_work_duration))
        if work != state.config.work_duration:
            logger.info(f"Adaptive mode: work duration {state.config.work_duration}s -> {work}s")
        return replace(state.config, work_duration=work)

    def end_session(self) -> int:
        """Credit the current work period's elapsed time as focus time.

        Returns:
            Seconds credited
        """
        state = self.state_sync.read()
        if state.timer.status not in (TimerStatus.RUNNING, TimerStatus.FOCUS):
            return 0
        worked = max(0, state.config.work_duration - state.timer.time_remaining)
        if worked:
            self.ctx.storage.add_focus_time(worked, now=datetime.fromtimestamp(self.clock()))
        return worked

    # Stats and configuration

    def stats(self) -> StatsView:
        badges = self.ctx.badges
        return StatsView(
            stats=self.ctx.storage.get_stats(),
            unlocked=badges.get_unlocked_badges(),
            next_badges=badges.get_next_badges(3),
        )

    def set_config(self, key: str, value: str) -> None:
        """Change a timer setting in the config file and the live state.

        Raises:
            ValueError: If the key is unknown or the value invalid
            StateBusyError: If the live state could not be updated
        """
        cm = self.ctx.config_manager
        config = self.ctx.config
        config.timer = parse_timer_setting(config.timer, key, value)
        cm.save(config)

        # The live config keeps its own copy so other sessions pick it up
        live = self.state_sync.read().config
        self._write({"config": parse_timer_setting(live, key, value)})
