"""SQLite event store for Peemodoro: break history, daily counters, badges."""

import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Optional, Iterator

from .models import Badge, BreakRecord, BreakType, TimerMode, UserStats


DEFAULT_BREAK_INTERVAL = 45 * 60

SCHEMA = """
-- Append-only break log
CREATE TABLE IF NOT EXISTS breaks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp REAL NOT NULL,
    type TEXT NOT NULL,
    duration INTEGER NOT NULL,
    snoozed INTEGER NOT NULL DEFAULT 0,
    snooze_count INTEGER NOT NULL DEFAULT 0
);

-- Aggregated per-day counters
CREATE TABLE IF NOT EXISTS daily_stats (
    date TEXT PRIMARY KEY,
    total_breaks INTEGER NOT NULL DEFAULT 0,
    pee_breaks INTEGER NOT NULL DEFAULT 0,
    stretch_breaks INTEGER NOT NULL DEFAULT 0,
    skipped_breaks INTEGER NOT NULL DEFAULT 0,
    total_focus_time INTEGER NOT NULL DEFAULT 0
);

-- Badge progress cache
CREATE TABLE IF NOT EXISTS badges (
    id TEXT PRIMARY KEY,
    unlocked_at REAL,
    progress REAL DEFAULT 0
);

-- Key-value metadata (streak counters)
CREATE TABLE IF NOT EXISTS meta (
    key TEXT PRIMARY KEY,
    value TEXT
);

-- Timer mode used on each day
CREATE TABLE IF NOT EXISTS mode_usage (
    date TEXT PRIMARY KEY,
    mode TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_breaks_timestamp ON breaks(timestamp);
CREATE INDEX IF NOT EXISTS idx_breaks_type ON breaks(type);
"""

_BREAK_COLUMNS = "id, timestamp, type, duration, snoozed, snooze_count"


@dataclass
class BreakPatterns:
    """Observed break habits, used by adaptive mode."""
    average_interval: float  # seconds between pee breaks
    preferred_hours: list[int]
    average_duration: float  # seconds


class Storage:
    """SQLite database operations."""

    def __init__(self, db_path: Path):
        """Initialize storage with database path.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        self._init_db()

    def _init_db(self) -> None:
        """Initialize database schema."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connection() as conn:
            conn.executescript(SCHEMA)
            # Initialize streak tracking if not exists
            cursor = conn.execute("SELECT value FROM meta WHERE key = 'current_streak'")
            if cursor.fetchone() is None:
                conn.executemany(
                    "INSERT INTO meta (key, value) VALUES (?, ?)",
                    [("current_streak", "0"), ("longest_streak", "0"), ("last_break_date", "")],
                )

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Get database connection context manager."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    # Break operations

    def record_break(
        self,
        break_type: BreakType,
        duration: int,
        snoozed: bool,
        snooze_count: int,
        now: Optional[datetime] = None,
    ) -> BreakRecord:
        """Append a break and update daily counters and streak.

        Args:
            break_type: Kind of break taken
            duration: Seconds between the reminder and the response
            snoozed: Whether the reminder was snoozed first
            snooze_count: Number of snoozes before responding
            now: Time of the break (defaults to the current time)

        Returns:
            The stored record with its assigned ID
        """
        now = now or datetime.now()
        timestamp = now.timestamp()
        today = now.date().isoformat()

        is_pee = int(break_type == BreakType.PEE)
        is_stretch = int(break_type == BreakType.STRETCH)
        is_skip = int(break_type == BreakType.SKIP)

        with self._connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO breaks (timestamp, type, duration, snoozed, snooze_count)
                VALUES (?, ?, ?, ?, ?)
                """,
                (timestamp, break_type.value, duration, int(snoozed), snooze_count),
            )
            record_id = cursor.lastrowid

            conn.execute(
                """
                INSERT INTO daily_stats (date, total_breaks, pee_breaks, stretch_breaks, skipped_breaks)
                VALUES (?, 1, ?, ?, ?)
                ON CONFLICT(date) DO UPDATE SET
                    total_breaks = total_breaks + 1,
                    pee_breaks = pee_breaks + excluded.pee_breaks,
                    stretch_breaks = stretch_breaks + excluded.stretch_breaks,
                    skipped_breaks = skipped_breaks + excluded.skipped_breaks
                """,
                (today, is_pee, is_stretch, is_skip),
            )
            self._update_streak(conn, today)

        return BreakRecord(
            id=record_id,
            timestamp=timestamp,
            type=break_type,
            duration=duration,
            snoozed=snoozed,
            snooze_count=snooze_count,
        )

    def _update_streak(self, conn: sqlite3.Connection, today_str: str) -> None:
        """Update streak metadata for activity on ``today_str``."""
        last_break_date = self._get_meta(conn, "last_break_date")
        current_streak = int(self._get_meta(conn, "current_streak") or 0)
        longest_streak = int(self._get_meta(conn, "longest_streak") or 0)

        if last_break_date:
            yesterday = (date.fromisoformat(today_str) - timedelta(days=1)).isoformat()
            if last_break_date == yesterday:
                current_streak += 1
            elif last_break_date != today_str:
                # Streak broken, start fresh
                current_streak = 1
        else:
            # First break ever
            current_streak = 1

        self._set_meta(conn, "current_streak", str(current_streak))
        self._set_meta(conn, "last_break_date", today_str)
        if current_streak > longest_streak:
            self._set_meta(conn, "longest_streak", str(current_streak))

    def add_focus_time(self, seconds: int, now: Optional[datetime] = None) -> None:
        """Credit focus time to the day's counters.

        Args:
            seconds: Focus time to add
            now: Day to credit (defaults to today)
        """
        today = (now or datetime.now()).date().isoformat()
        with self._connection() as conn:
            conn.execute(
                """
                INSERT INTO daily_stats (date, total_focus_time)
                VALUES (?, ?)
                ON CONFLICT(date) DO UPDATE SET
                    total_focus_time = total_focus_time + excluded.total_focus_time
                """,
                (today, int(seconds)),
            )

    def get_breaks(self, limit: int = 100, offset: int = 0) -> list[BreakRecord]:
        """Get recent breaks.

        Args:
            limit: Maximum number of breaks to return
            offset: Number of most recent breaks to skip

        Returns:
            List of breaks, most recent first
        """
        with self._connection() as conn:
            cursor = conn.execute(
                f"SELECT {_BREAK_COLUMNS} FROM breaks "
                "ORDER BY timestamp DESC, id DESC LIMIT ? OFFSET ?",
                (limit, offset),
            )
            return [BreakRecord.from_row(tuple(row)) for row in cursor.fetchall()]

    def get_breaks_for_date(self, date_str: str) -> list[BreakRecord]:
        """Get all breaks taken on a local calendar day.

        Args:
            date_str: Date in YYYY-MM-DD format

        Returns:
            List of breaks, oldest first
        """
        start = datetime.combine(date.fromisoformat(date_str), datetime.min.time())
        end = start + timedelta(days=1)
        with self._connection() as conn:
            cursor = conn.execute(
                f"SELECT {_BREAK_COLUMNS} FROM breaks "
                "WHERE timestamp >= ? AND timestamp < ? ORDER BY timestamp ASC, id ASC",
                (start.timestamp(), end.timestamp()),
            )
            return [BreakRecord.from_row(tuple(row)) for row in cursor.fetchall()]

    # Statistics

    def get_stats(self) -> UserStats:
        """Aggregate statistics over all recorded days."""
        with self._connection() as conn:
            totals = conn.execute(
                """
                SELECT
                    COALESCE(SUM(total_breaks), 0),
                    COALESCE(SUM(pee_breaks), 0),
                    COALESCE(SUM(stretch_breaks), 0),
                    COALESCE(SUM(skipped_breaks), 0),
                    COALESCE(SUM(total_focus_time), 0)
                FROM daily_stats
                """
            ).fetchone()

            avg_interval = conn.execute(
                """
                SELECT AVG(timestamp - prev_timestamp) FROM (
                    SELECT timestamp, LAG(timestamp) OVER (ORDER BY timestamp) AS prev_timestamp
                    FROM breaks
                    WHERE type != 'skip'
                )
                WHERE prev_timestamp IS NOT NULL
                """
            ).fetchone()[0]

            return UserStats(
                total_breaks=totals[0],
                pee_breaks=totals[1],
                stretch_breaks=totals[2],
                skipped_breaks=totals[3],
                current_streak=int(self._get_meta(conn, "current_streak") or 0),
                longest_streak=int(self._get_meta(conn, "longest_streak") or 0),
                total_focus_time=totals[4],
                average_break_interval=avg_interval or DEFAULT_BREAK_INTERVAL,
                last_active_date=self._get_meta(conn, "last_break_date")
                or date.today().isoformat(),
            )

    def analyze_break_patterns(self) -> BreakPatterns:
        """Summarize pee break habits for adaptive mode."""
        with self._connection() as conn:
            avg_interval = conn.execute(
                """
                SELECT AVG(timestamp - prev_timestamp) FROM (
                    SELECT timestamp, LAG(timestamp) OVER (ORDER BY timestamp) AS prev_timestamp
                    FROM breaks
                    WHERE type = 'pee'
                )
                WHERE prev_timestamp IS NOT NULL
                """
            ).fetchone()[0]

            cursor = conn.execute(
                """
                SELECT CAST(strftime('%H', timestamp, 'unixepoch', 'localtime') AS INTEGER) AS hour,
                       COUNT(*) AS count
                FROM breaks
                WHERE type = 'pee'
                GROUP BY hour
                ORDER BY count DESC, hour ASC
                LIMIT 5
                """
            )
            preferred_hours = [row["hour"] for row in cursor.fetchall()]

            avg_duration = conn.execute(
                "SELECT AVG(duration) FROM breaks WHERE type = 'pee' AND duration > 0"
            ).fetchone()[0]

        return BreakPatterns(
            average_interval=avg_interval or DEFAULT_BREAK_INTERVAL,
            preferred_hours=preferred_hours,
            average_duration=avg_duration or 5 * 60,
        )

    # Badge operations

    def save_badge(self, badge: Badge) -> None:
        """Persist a badge's unlock time and progress.

        Args:
            badge: Badge to save
        """
        with self._connection() as conn:
            conn.execute(
                """
                INSERT INTO badges (id, unlocked_at, progress)
                VALUES (?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    unlocked_at = excluded.unlocked_at,
                    progress = excluded.progress
                """,
                (badge.id, badge.unlocked_at, badge.progress),
            )

    def get_badges(self) -> list[dict]:
        """Get stored badge progress.

        Returns:
            List of dicts with ``id``, ``unlocked_at`` and ``progress``
        """
        with self._connection() as conn:
            cursor = conn.execute("SELECT id, unlocked_at, progress FROM badges")
            return [
                {
                    "id": row["id"],
                    "unlocked_at": row["unlocked_at"],
                    "progress": row["progress"] or 0,
                }
                for row in cursor.fetchall()
            ]

    # Mode usage

    def record_mode_usage(self, mode: TimerMode, now: Optional[datetime] = None) -> None:
        """Record the timer mode used today. The last mode of a day wins.

        Args:
            mode: Mode currently in use
            now: Day to record (defaults to today)
        """
        today = (now or datetime.now()).date().isoformat()
        with self._connection() as conn:
            conn.execute(
                """
                INSERT INTO mode_usage (date, mode) VALUES (?, ?)
                ON CONFLICT(date) DO UPDATE SET mode = excluded.mode
                """,
                (today, mode.value),
            )

    def get_hydration_mode_days(self) -> int:
        """Count days on which hydration mode was used."""
        with self._connection() as conn:
            cursor = conn.execute(
                "SELECT COUNT(*) FROM mode_usage WHERE mode = ?",
                (TimerMode.HYDRATION.value,),
            )
            return cursor.fetchone()[0]

    # Metadata

    @staticmethod
    def _get_meta(conn: sqlite3.Connection, key: str) -> Optional[str]:
        row = conn.execute("SELECT value FROM meta WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    @staticmethod
    def _set_meta(conn: sqlite3.Connection, key: str, value: str) -> None:
        conn.execute(
            """
            INSERT INTO meta (key, value) VALUES (?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value
            """,
            (key, value),
        )
