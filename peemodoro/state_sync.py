"""Shared live state for Peemodoro.

Every terminal session reads and writes one JSON document. Writers
serialize through an advisory lock file created with exclusive-create
semantics; readers never lock and may see a slightly stale snapshot.

Locking protocol:
- The lock file holds ``{"instance_id", "timestamp", "pid"}`` of its holder.
  It is hard-linked into place from a temp file, so it is never empty.
- A lock older than ``LOCK_TIMEOUT`` seconds, or one whose content cannot be
  parsed, is presumed abandoned: it is deleted and acquisition is retried
  once.
- Release deletes the lock only if it still names this instance.

Staleness is judged by wall-clock age, not by a fencing token, so a holder
slower than ``LOCK_TIMEOUT`` can briefly share the lock with a newcomer.
Writes are last-writer-wins.

Quirk: ``read()`` applies the timer's read-triggered transitions (focus
expiry) to the state it returns without writing them back. Two instances
may both observe the same expiry; the transition is idempotent. Reads never
start a break: a running timer with no ticker stays ``running`` at zero
remaining until some ticker calls ``timer.advance``.
"""

import json
import logging
import os
import random
import string
import tempfile
import threading
import time
from dataclasses import replace
from datetime import date
from pathlib import Path
from typing import Callable, Optional

from .models import Badge, PeeState, TimerConfig, UserStats
from .timer import initial_state, recompute

logger = logging.getLogger(__name__)

LOCK_TIMEOUT = 5.0  # seconds
MAX_LOCK_ATTEMPTS = 3
WATCH_INTERVAL = 0.5  # seconds between polls
WATCH_DEBOUNCE = 0.1  # seconds


def generate_instance_id() -> str:
    """Unique id for this process, e.g. ``pee-1718000000000-k3j9xa``."""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=6))
    return f"pee-{int(time.time() * 1000)}-{suffix}"


class StateSync:
    """Cross-process live state store."""

    def __init__(
        self,
        state_file: Path,
        lock_file: Path,
        default_config: Optional[TimerConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the store.

        Args:
            state_file: Path of the shared JSON document
            lock_file: Path of the lock sentinel, next to the state file
            default_config: Timer config used when no state exists yet
            clock: Source of the current time (for testing)
        """
        self.state_file = state_file
        self.lock_file = lock_file
        self.default_config = default_config or TimerConfig()
        self.clock = clock
        self.instance_id = generate_instance_id()

        self._watch_thread: Optional[threading.Thread] = None
        self._watch_stop = threading.Event()
        self._debounce: Optional[threading.Timer] = None
        self._last_mtime: Optional[float] = None
        self._on_state_change: Optional[Callable[[PeeState], None]] = None

        try:
            self.state_file.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning(f"Cannot create state directory: {e}")

    # Locking

    def _acquire_lock(self, _retry: bool = True) -> bool:
        """Try once to create the lock file.

        The payload is written to a private temp file first and hard-linked
        into place, so the lock never exists without its content.

        Args:
            _retry: Internal parameter allowing one retry after stale cleanup

        Returns:
            True if this instance now holds the lock
        """
        payload = {
            "instance_id": self.instance_id,
            "timestamp": self.clock(),
            "pid": os.getpid(),
        }
        tmp_path = None
        try:
            tmp_fd, tmp_path = tempfile.mkstemp(
                dir=str(self.lock_file.parent),
                prefix=f".{self.lock_file.name}.",
                suffix=".tmp",
            )
            with os.fdopen(tmp_fd, "w") as f:
                json.dump(payload, f)
            os.link(tmp_path, self.lock_file)
        except FileExistsError:
            if _retry and self._lock_is_stale():
                logger.info("Removing stale state lock")
                try:
                    self.lock_file.unlink()
                except FileNotFoundError:
                    pass
                except OSError as e:
                    logger.warning(f"Cannot remove stale lock: {e}")
                    return False
                return self._acquire_lock(_retry=False)
            return False
        except OSError as e:
            logger.warning(f"Cannot create lock file: {e}")
            return False
        finally:
            if tmp_path:
                try:
                    os.unlink(tmp_path)
                except OSError:
                    pass
        return True

    def _read_lock(self) -> Optional[dict]:
        """Parse the lock file, or None if it is missing or corrupted."""
        try:
            data = json.loads(self.lock_file.read_text())
            float(data["timestamp"])
            return data
        except (OSError, ValueError, KeyError, TypeError):
            return None

    def _lock_is_stale(self) -> bool:
        """Whether the existing lock is older than ``LOCK_TIMEOUT`` or unreadable."""
        data = self._read_lock()
        if data is None:
            return True
        return self.clock() - float(data["timestamp"]) > LOCK_TIMEOUT

    def _release_lock(self) -> None:
        """Delete the lock file if this instance still holds it."""
        data = self._read_lock()
        if data is None or data.get("instance_id") != self.instance_id:
            return
        try:
            self.lock_file.unlink()
        except OSError as e:
            logger.debug(f"Lock already gone on release: {e}")

    # Reading

    def create_default_state(self) -> PeeState:
        """Fresh state for when no usable document exists."""
        config = self.default_config
        return PeeState(
            config=config,
            timer=initial_state(config),
            stats=UserStats(
                average_break_interval=config.work_duration,
                last_active_date=date.today().isoformat(),
            ),
            badges=[],
            instance_id=self.instance_id,
            last_updated=self.clock(),
        )

    def read_raw(self) -> PeeState:
        """Load the document as stored, without recomputing time fields.

        Never raises: a missing or corrupted document yields the default state.
        """
        try:
            data = json.loads(self.state_file.read_text())
            return PeeState.from_dict(data)
        except FileNotFoundError:
            pass
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.debug(f"Unusable state file, using defaults: {e}")
        return self.create_default_state()

    def read(self) -> PeeState:
        """Current state with time-derived fields refreshed from the wall clock."""
        state = self.read_raw()
        state.timer = recompute(state.timer, state.config, self.clock())
        return state

    # Writing

    def write(self, partial: dict) -> bool:
        """Merge ``partial`` into the stored state under the lock.

        Args:
            partial: Sections to update, e.g. ``{"timer": {"status": "paused"}}``

        Returns:
            False if the lock could not be acquired or the file not written;
            the stored state is then unchanged.
        """
        for attempt in range(1, MAX_LOCK_ATTEMPTS + 1):
            if not self._acquire_lock():
                logger.debug(f"State lock busy (attempt {attempt}/{MAX_LOCK_ATTEMPTS})")
                continue
            try:
                return self._write_locked(partial)
            finally:
                self._release_lock()
        logger.warning("Could not acquire state lock, update dropped")
        return False

    def _write_locked(self, partial: dict) -> bool:
        try:
            current = self.read()
            new_state = current.merge(partial)
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Rejected state update {partial!r}: {e}")
            return False
        new_state = replace(new_state, instance_id=self.instance_id, last_updated=self.clock())

        tmp_path = None
        try:
            tmp_fd, tmp_path = tempfile.mkstemp(
                dir=str(self.state_file.parent),
                prefix=f".{self.state_file.name}.",
                suffix=".tmp",
            )
            with os.fdopen(tmp_fd, "w") as f:
                json.dump(new_state.to_dict(), f, indent=2)
            os.replace(tmp_path, self.state_file)
            return True
        except OSError as e:
            logger.warning(f"Failed to write state: {e}")
            if tmp_path:
                try:
                    os.unlink(tmp_path)
                except OSError:
                    pass
            return False

    def update_timer(self, **fields) -> bool:
        """Write selected timer fields."""
        return self.write({"timer": fields})

    def update_config(self, **fields) -> bool:
        """Write selected timer config fields."""
        return self.write({"config": fields})

    def update_stats(self, stats: UserStats) -> bool:
        """Replace the cached statistics snapshot."""
        return self.write({"stats": stats})

    def add_badge(self, badge: Badge) -> bool:
        """Insert or replace one badge in the cached badge list."""
        badges = [b for b in self.read_raw().badges if b.id != badge.id]
        badges.append(badge)
        return self.write({"badges": badges})

    # Leadership

    def is_leader(self) -> bool:
        """Whether this instance wrote the current state."""
        return self.read_raw().instance_id == self.instance_id

    def claim_leadership(self) -> bool:
        """Stamp the state with this instance's id."""
        return self.write({})

    # Watching

    def watch(self, callback: Callable[[PeeState], None], interval: float = WATCH_INTERVAL) -> None:
        """Call ``callback`` when another instance changes the state.

        Polls the file's modification time on a daemon thread; changes within
        ``WATCH_DEBOUNCE`` of each other produce a single callback.
        """
        self.unwatch()
        self._on_state_change = callback
        self._last_mtime = self._state_mtime()
        self._watch_stop.clear()
        self._watch_thread = threading.Thread(
            target=self._watch_loop, args=(interval,), name="peemodoro-watch", daemon=True
        )
        self._watch_thread.start()

    def unwatch(self) -> None:
        """Stop watching for changes."""
        self._watch_stop.set()
        if self._watch_thread is not None:
            self._watch_thread.join(timeout=2)
            self._watch_thread = None
        if self._debounce is not None:
            self._debounce.cancel()
            self._debounce = None

    def _state_mtime(self) -> Optional[float]:
        try:
            return self.state_file.stat().st_mtime
        except OSError:
            return None

    def _watch_loop(self, interval: float) -> None:
        while not self._watch_stop.wait(interval):
            self._poll()

    def _poll(self) -> bool:
        """Schedule a debounced notification if the file changed.

        Returns:
            True if a change was seen
        """
        mtime = self._state_mtime()
        if mtime == self._last_mtime:
            return False
        self._last_mtime = mtime
        if self._debounce is not None:
            self._debounce.cancel()
        self._debounce = threading.Timer(WATCH_DEBOUNCE, self._emit)
        self._debounce.daemon = True
        self._debounce.start()
        return True

    def _emit(self) -> None:
        """Invoke the watch callback unless this instance made the change."""
        state = self.read()
        if state.instance_id == self.instance_id or self._on_state_change is None:
            return
        try:
            self._on_state_change(state)
        except Exception as e:
            logger.error(f"State change callback failed: {e}")

    def cleanup(self) -> None:
        """Stop watching and drop any lock this instance still holds."""
        self.unwatch()
        self._release_lock()
