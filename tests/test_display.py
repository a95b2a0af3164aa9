"""Tests for rendering and notifications."""

import click

from peemodoro.config import DisplayConfig, TelegramConfig
from peemodoro.display import format_time, progress_bar, render_statusline, urgency_emoji
from peemodoro.models import PeeState, TimerState, TimerStatus, UserStats
from peemodoro.notifications import TelegramNotifier


def statusline(timer: TimerState, **kwargs) -> str:
    state = PeeState(timer=timer, stats=UserStats(current_streak=4))
    return click.unstyle(render_statusline(state, **kwargs))


class TestFormatting:
    def test_format_time(self):
        assert format_time(2700) == "45:00"
        assert format_time(61) == "01:01"
        assert format_time(-90) == "-01:30"

    def test_progress_bar(self):
        assert progress_bar(5, 10, width=4) == "██░░"
        assert progress_bar(20, 10, width=4) == "████"
        assert progress_bar(1, 0, width=4) == "░░░░"

    def test_urgency_emoji(self):
        assert urgency_emoji(2700, 2700) == "💧"
        assert urgency_emoji(60, 2700) == "🆘"
        assert urgency_emoji(0, 2700) == "🚽"


class TestStatusline:
    def test_running(self):
        line = statusline(TimerState(status=TimerStatus.RUNNING, time_remaining=1500))
        assert "25:00" in line
        assert "🔥4" in line

    def test_overdue(self):
        line = statusline(TimerState(status=TimerStatus.RUNNING, time_remaining=0))
        assert "TIME TO PEE" in line

    def test_paused_and_break(self):
        assert "PAUSED" in statusline(TimerState())
        assert "BREAK" in statusline(TimerState(status=TimerStatus.BREAK, time_remaining=300))

    def test_display_preferences(self):
        timer = TimerState(status=TimerStatus.RUNNING, time_remaining=1500)
        line = statusline(timer, display=DisplayConfig(show_streak=False, show_progress_bar=False))
        assert "🔥" not in line
        assert "█" not in line
        assert statusline(timer, compact=True).split() == ["💦", "25:00"]


class TestNotifier:
    def test_disabled_notifier_sends_nothing(self):
        notifier = TelegramNotifier(TelegramConfig(bot_token="123:abc", chat_id="", enabled=True))
        assert not notifier.enabled
        assert not notifier.notify_break_reminder(4)
        assert not notifier.notify_focus_expired()
