"""Tests for the command layer."""

import json

import pytest

from peemodoro.commands import PeemodoroCommands, StateBusyError
from peemodoro.models import BreakType, TimerMode, TimerStatus


@pytest.fixture
def commands(app, clock):
    return PeemodoroCommands(app, clock=clock)


def hold_lock(app, clock):
    """Simulate another session holding a fresh lock."""
    app.config_manager.lock_file.write_text(
        json.dumps({"instance_id": "pee-other", "timestamp": clock.now, "pid": 1})
    )


class TestTimerControl:
    def test_start_and_pause(self, app, commands, clock):
        assert commands.start()
        assert not commands.start()

        clock.advance(600)
        assert commands.pause()
        timer = app.state_sync.read().timer
        assert timer.status == TimerStatus.PAUSED
        assert timer.time_remaining == app.config.timer.work_duration - 600

        assert not commands.pause()
        assert commands.resume()

    def test_reset(self, app, commands, clock):
        commands.start()
        clock.advance(600)
        commands.reset()
        timer = app.state_sync.read().timer
        assert timer.status == TimerStatus.PAUSED
        assert timer.time_remaining == app.config.timer.work_duration

    def test_focus_requires_running_timer(self, app, commands):
        assert commands.focus(30) is None

        commands.start()
        assert commands.focus(30) == 30
        assert commands.focus(500) == app.config.timer.focus_max_duration // 60
        assert app.state_sync.read().timer.status == TimerStatus.FOCUS

        assert commands.exit_focus()
        assert app.state_sync.read().timer.status == TimerStatus.RUNNING

    def test_snooze_is_capped(self, app, commands):
        assert commands.snooze(5) is None

        commands.start()
        assert commands.snooze(30) == 15
        timer = app.state_sync.read().timer
        assert timer.time_remaining == 15 * 60
        assert timer.current_snooze_count == 1

    def test_busy_state_raises(self, app, commands, clock):
        hold_lock(app, clock)
        with pytest.raises(StateBusyError):
            commands.start()
        assert app.state_sync.read().timer.status == TimerStatus.PAUSED

    def test_reminder_urgency(self, app, commands, clock):
        commands.start()
        assert commands.reminder_urgency() == 1
        clock.advance(app.config.timer.work_duration - 300)
        assert commands.reminder_urgency() == 3


class TestLogBreak:
    def test_log_break_measures_response_time(self, app, commands, clock):
        commands.start()
        clock.advance(app.config.timer.work_duration)
        commands.mark_break_reminder()
        clock.advance(20)

        result = commands.log_break(BreakType.PEE)

        assert result.record.duration == 20
        assert result.record.type == BreakType.PEE
        assert result.stats.total_breaks == 1
        assert "first-flush" in {b.id for b in result.new_badges}

    def test_log_break_starts_next_cycle(self, app, commands, clock):
        commands.start()
        clock.advance(app.config.timer.work_duration)
        commands.log_break(BreakType.STRETCH)

        state = app.state_sync.read()
        assert state.timer.status == TimerStatus.RUNNING
        assert state.timer.cycle_count == 1
        assert state.timer.current_cycle == 2
        assert state.timer.time_remaining == app.config.timer.work_duration
        assert state.stats.stretch_breaks == 1
        assert len(state.badges) == 22

    def test_log_break_persists_badges(self, app, commands):
        commands.log_break(BreakType.PEE)
        saved = {row["id"]: row for row in app.storage.get_badges()}
        assert saved["first-flush"]["unlocked_at"] is not None
        assert saved["ten-timer"]["progress"] == 10

    def test_log_break_records_snoozes(self, app, commands, clock):
        commands.start()
        commands.snooze(5)
        clock.advance(60)
        commands.snooze(5)
        clock.advance(60)

        result = commands.log_break(BreakType.PEE)
        assert result.record.snoozed
        assert result.record.snooze_count == 2
        assert result.record.duration == 120
        assert app.state_sync.read().timer.current_snooze_count == 0

    def test_busy_state_keeps_history(self, app, commands, clock):
        hold_lock(app, clock)
        with pytest.raises(StateBusyError):
            commands.log_break(BreakType.PEE)
        assert app.storage.get_stats().total_breaks == 1

    def test_adaptive_mode_learns_work_duration(self, app, commands, clock):
        commands.set_config("mode", "adaptive")
        commands.start()
        commands.log_break(BreakType.PEE)
        clock.advance(30 * 60)
        commands.log_break(BreakType.PEE)

        config = app.state_sync.read().config
        assert config.mode == TimerMode.ADAPTIVE
        assert config.work_duration == 30 * 60

    def test_adaptive_mode_clamps_to_bounds(self, app, commands, clock):
        commands.set_config("mode", "adaptive")
        commands.log_break(BreakType.PEE)
        clock.advance(5 * 60)
        commands.log_break(BreakType.PEE)

        config = app.state_sync.read().config
        assert config.work_duration == app.config.adaptive.min_work_duration

    def test_other_modes_do_not_adapt(self, app, commands, clock):
        commands.log_break(BreakType.PEE)
        clock.advance(30 * 60)
        commands.log_break(BreakType.PEE)
        assert app.state_sync.read().config.work_duration == 45 * 60


class TestSessionAndStats:
    def test_end_session_credits_elapsed_work(self, app, commands, clock):
        commands.start()
        clock.advance(600)
        assert commands.end_session() == 600
        assert app.storage.get_stats().total_focus_time == 600

    def test_end_session_when_paused(self, app, commands):
        assert commands.end_session() == 0
        assert app.storage.get_stats().total_focus_time == 0

    def test_stats_view(self, commands):
        commands.log_break(BreakType.PEE)
        view = commands.stats()
        assert view.stats.total_breaks == 1
        assert [b.id for b in view.unlocked] == ["first-flush"]
        assert len(view.next_badges) == 3


class TestSetConfig:
    def test_updates_file_and_live_state(self, app, commands):
        commands.set_config("work", "30")
        assert app.config_manager.load().timer.work_duration == 1800
        assert app.state_sync.read().config.work_duration == 1800

    def test_invalid_value_changes_nothing(self, app, commands):
        with pytest.raises(ValueError):
            commands.set_config("work", "500")
        assert not app.config_manager.is_configured()
        assert app.state_sync.read().config.work_duration == 45 * 60
