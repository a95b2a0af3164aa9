"""Tests for the shared live state store."""

import json
import threading
import time
from dataclasses import replace

from peemodoro.models import Badge, BadgeCategory, TimerConfig, TimerState, TimerStatus, UserStats
from peemodoro.state_sync import LOCK_TIMEOUT, StateSync, generate_instance_id


def write_lock(path, instance_id, timestamp):
    path.write_text(json.dumps({"instance_id": instance_id, "timestamp": timestamp, "pid": 1}))


class TestRead:
    def test_missing_file_gives_default_state(self, state_sync):
        state = state_sync.read()
        assert state.timer.status == TimerStatus.PAUSED
        assert state.timer.time_remaining == TimerConfig().work_duration
        assert state.config == TimerConfig()
        assert state.badges == []
        assert not state_sync.state_file.exists()

    def test_corrupt_file_gives_default_state(self, state_sync):
        state_sync.state_file.write_text("{not json")
        assert state_sync.read().timer.status == TimerStatus.PAUSED

    def test_wrong_shape_gives_default_state(self, state_sync):
        state_sync.state_file.write_text(json.dumps({"config": 5, "timer": []}))
        assert state_sync.read().config == TimerConfig()

    def test_default_uses_configured_timer(self, tmp_path, clock):
        config = TimerConfig(work_duration=1500)
        sync = StateSync(tmp_path / "s.json", tmp_path / "s.lock", default_config=config, clock=clock)
        assert sync.read().timer.time_remaining == 1500

    def test_running_time_recomputed_from_wall_clock(self, state_sync, clock):
        state_sync.write({"timer": {"status": "running", "started_at": clock.now}})
        clock.advance(600)
        assert state_sync.read().timer.time_remaining == TimerConfig().work_duration - 600

    def test_remaining_time_clamped_at_zero(self, state_sync, clock):
        state_sync.write({"timer": {"status": "running", "started_at": clock.now}})
        clock.advance(10 * 3600)
        timer = state_sync.read().timer
        assert timer.time_remaining == 0
        # Only a ticker starts the break
        assert timer.status == TimerStatus.RUNNING


class TestFocusExpiryOnRead:
    def test_expired_focus_reads_as_running_every_time(self, state_sync, clock):
        state_sync.write({
            "timer": TimerState(
                status=TimerStatus.FOCUS,
                started_at=clock.now,
                focus_until=clock.now + 60,
            )
        })
        clock.advance(120)
        stored = state_sync.state_file.read_text()

        first = state_sync.read()
        second = state_sync.read()

        assert first.timer.status == TimerStatus.RUNNING
        assert first.timer.focus_until is None
        assert second.timer == first.timer
        # Reads never write the transition back
        assert state_sync.state_file.read_text() == stored
        assert state_sync.read_raw().timer.status == TimerStatus.FOCUS

    def test_active_focus_is_kept(self, state_sync, clock):
        state_sync.write({
            "timer": {"status": "focus", "started_at": clock.now, "focus_until": clock.now + 600}
        })
        clock.advance(60)
        assert state_sync.read().timer.status == TimerStatus.FOCUS


class TestWrite:
    def test_partial_update_changes_only_named_field(self, state_sync):
        default = state_sync.read()
        assert state_sync.write({"timer": {"status": "paused"}})

        after = state_sync.read()
        assert after.timer.status == TimerStatus.PAUSED
        assert after.to_dict() == default.to_dict()

    def test_partial_update_keeps_other_sections(self, state_sync):
        default = state_sync.read()
        assert state_sync.write({"timer": {"cycle_count": 3}})

        after = state_sync.read()
        assert after.timer.cycle_count == 3
        assert after.config == default.config
        assert after.stats == default.stats
        assert after.timer.status == default.timer.status

    def test_write_stamps_instance_and_time(self, state_sync, clock):
        clock.advance(30)
        state_sync.write({})
        state = state_sync.read_raw()
        assert state.instance_id == state_sync.instance_id
        assert state.last_updated == clock.now

    def test_unknown_sections_are_ignored(self, state_sync):
        assert state_sync.write({"bogus": {"x": 1}})
        assert "bogus" not in json.loads(state_sync.state_file.read_text())

    def test_invalid_update_is_rejected(self, state_sync):
        assert not state_sync.write({"timer": {"status": "sleeping"}})
        assert not state_sync.state_file.exists()

    def test_no_temp_files_left_behind(self, state_sync):
        state_sync.write({"timer": {"cycle_count": 1}})
        leftovers = [p for p in state_sync.state_file.parent.iterdir() if p.suffix == ".tmp"]
        assert leftovers == []

    def test_lock_released_after_write(self, state_sync):
        state_sync.write({})
        assert not state_sync.lock_file.exists()

    def test_convenience_writers(self, state_sync):
        assert state_sync.update_timer(status="running", started_at=1.0)
        assert state_sync.update_config(work_duration=1500)
        assert state_sync.update_stats(UserStats(total_breaks=4))
        badge = Badge("first-flush", "First Flush", "", "🚽", BadgeCategory.MILESTONE, 1, unlocked_at=5.0)
        assert state_sync.add_badge(badge)

        state = state_sync.read_raw()
        assert state.timer.status == TimerStatus.RUNNING
        assert state.config.work_duration == 1500
        assert state.stats.total_breaks == 4
        assert [b.id for b in state.badges] == ["first-flush"]

    def test_add_badge_replaces_same_id(self, state_sync):
        badge = Badge("ten-timer", "Ten Timer", "", "🔟", BadgeCategory.MILESTONE, 10, progress=10)
        state_sync.add_badge(badge)
        badge.progress = 50
        state_sync.add_badge(badge)
        badges = state_sync.read_raw().badges
        assert len(badges) == 1
        assert badges[0].progress == 50


class TestLocking:
    def test_stale_lock_is_recovered(self, state_sync, clock):
        write_lock(state_sync.lock_file, "pee-dead", clock.now - LOCK_TIMEOUT - 1)
        assert state_sync.write({"timer": {"cycle_count": 2}})
        assert state_sync.read().timer.cycle_count == 2
        assert not state_sync.lock_file.exists()

    def test_corrupt_lock_is_recovered(self, state_sync):
        state_sync.lock_file.write_text("garbage\x00")
        assert state_sync.write({"timer": {"cycle_count": 2}})
        assert not state_sync.lock_file.exists()

    def test_fresh_foreign_lock_blocks_write(self, state_sync, clock):
        write_lock(state_sync.lock_file, "pee-other", clock.now)
        assert not state_sync.write({"timer": {"cycle_count": 2}})
        assert not state_sync.state_file.exists()
        # The other holder's lock is untouched
        assert json.loads(state_sync.lock_file.read_text())["instance_id"] == "pee-other"

    def test_lock_payload_names_holder(self, state_sync, clock):
        assert state_sync._acquire_lock()
        payload = json.loads(state_sync.lock_file.read_text())
        assert payload["instance_id"] == state_sync.instance_id
        assert payload["timestamp"] == clock.now
        assert "pid" in payload

    def test_lock_appears_with_payload_and_no_temp_files(self, state_sync):
        assert state_sync._acquire_lock()
        assert json.loads(state_sync.lock_file.read_text())["instance_id"] == state_sync.instance_id
        leftovers = [p for p in state_sync.lock_file.parent.iterdir() if p.suffix == ".tmp"]
        assert leftovers == []

    def test_busy_lock_leaves_no_temp_files(self, state_sync, clock):
        write_lock(state_sync.lock_file, "pee-other", clock.now)
        assert not state_sync._acquire_lock()
        leftovers = [p for p in state_sync.lock_file.parent.iterdir() if p.suffix == ".tmp"]
        assert leftovers == []

    def test_release_only_by_holder(self, state_sync):
        assert state_sync._acquire_lock()
        write_lock(state_sync.lock_file, "pee-newcomer", 0)
        state_sync._release_lock()
        assert state_sync.lock_file.exists()

    def test_release_own_lock(self, state_sync):
        assert state_sync._acquire_lock()
        state_sync._release_lock()
        assert not state_sync.lock_file.exists()


class TestLeadership:
    def test_last_writer_is_leader(self, tmp_path, clock):
        a = StateSync(tmp_path / "s.json", tmp_path / "s.lock", clock=clock)
        b = StateSync(tmp_path / "s.json", tmp_path / "s.lock", clock=clock)
        a.write({})
        assert a.is_leader()
        assert not b.is_leader()

        assert b.claim_leadership()
        assert b.is_leader()
        assert not a.is_leader()

    def test_instance_ids_are_unique(self):
        ids = {generate_instance_id() for _ in range(50)}
        assert len(ids) == 50
        assert all(i.startswith("pee-") for i in ids)


class TestConcurrentWriters:
    """Writes are last-writer-wins: a full section written from a stale
    read silently drops what another instance wrote in between."""

    def test_stale_full_section_overwrites_other_change(self, tmp_path, clock):
        a = StateSync(tmp_path / "s.json", tmp_path / "s.lock", clock=clock)
        b = StateSync(tmp_path / "s.json", tmp_path / "s.lock", clock=clock)
        a.write({})

        seen_by_a = a.read()
        assert b.write({"timer": {"cycle_count": 5}})
        assert a.read().timer.cycle_count == 5

        assert a.write({"timer": seen_by_a.timer})
        assert b.read().timer.cycle_count == 0
        assert a.is_leader()

    def test_both_persisting_focus_expiry_drops_pending_change(self, tmp_path, clock):
        a = StateSync(tmp_path / "s.json", tmp_path / "s.lock", clock=clock)
        b = StateSync(tmp_path / "s.json", tmp_path / "s.lock", clock=clock)
        a.write({
            "timer": TimerState(
                status=TimerStatus.FOCUS,
                started_at=clock.now,
                focus_until=clock.now + 60,
            )
        })
        clock.advance(120)

        expired_for_a = a.read().timer
        expired_for_b = b.read().timer
        assert expired_for_a.status == expired_for_b.status == TimerStatus.RUNNING

        # B persists the expiry along with a snooze of its own
        assert b.write({"timer": replace(expired_for_b, current_snooze_count=1)})
        # A persists the same expiry from its earlier read
        assert a.write({"timer": expired_for_a})

        final = b.read_raw().timer
        assert final.status == TimerStatus.RUNNING
        assert final.focus_until is None
        assert final.current_snooze_count == 0


class TestWatch:
    def test_emit_ignores_own_writes(self, tmp_path, clock):
        local = StateSync(tmp_path / "s.json", tmp_path / "s.lock", clock=clock)
        other = StateSync(tmp_path / "s.json", tmp_path / "s.lock", clock=clock)
        seen = []
        local._on_state_change = seen.append

        local.write({"timer": {"cycle_count": 1}})
        local._emit()
        assert seen == []

        other.write({"timer": {"cycle_count": 2}})
        local._emit()
        assert len(seen) == 1
        assert seen[0].timer.cycle_count == 2

    def test_poll_detects_change_once(self, state_sync):
        state_sync._on_state_change = lambda state: None
        state_sync.write({})
        assert state_sync._poll()
        assert not state_sync._poll()
        state_sync.unwatch()

    def test_watch_notifies_on_foreign_write(self, tmp_path):
        local = StateSync(tmp_path / "s.json", tmp_path / "s.lock")
        other = StateSync(tmp_path / "s.json", tmp_path / "s.lock")
        changed = threading.Event()
        received = []

        def on_change(state):
            received.append(state)
            changed.set()

        local.watch(on_change, interval=0.05)
        try:
            time.sleep(0.1)
            other.write({"timer": {"cycle_count": 7}})
            assert changed.wait(timeout=5)
        finally:
            local.cleanup()

        assert received[-1].instance_id == other.instance_id
        assert received[-1].timer.cycle_count == 7
