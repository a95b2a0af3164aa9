"""Badge evaluation for Peemodoro.

Badges are recomputed from aggregate stats and a window of break history on
every evaluation. The only state kept between evaluations is each badge's
progress and unlock time, which only ever move forward.
"""

import logging
from collections import defaultdict
from dataclasses import replace
from datetime import date, datetime
from typing import Callable, Iterable, Optional, TypeVar

from .models import Badge, BadgeCategory, BreakRecord, BreakType, UserStats

logger = logging.getLogger(__name__)

RECENT_WINDOW = 50

T = TypeVar("T")


def _badge(id, name, description, emoji, category, requirement, hidden=False) -> Badge:
    return Badge(
        id=id,
        name=name,
        description=description,
        emoji=emoji,
        category=category,
        requirement=requirement,
        hidden=hidden,
    )


BADGE_DEFINITIONS: tuple[Badge, ...] = (
    # Milestones
    _badge("first-flush", "First Flush", "Complete your first break", "🚽", BadgeCategory.MILESTONE, 1),
    _badge("ten-timer", "Ten Timer", "Complete 10 breaks", "🔟", BadgeCategory.MILESTONE, 10),
    _badge("century-club", "Century Club", "Complete 100 breaks", "💯", BadgeCategory.MILESTONE, 100),
    _badge("five-hundred", "High Fiver", "Complete 500 breaks", "🖐️", BadgeCategory.MILESTONE, 500),
    _badge("thousand", "Grand Master", "Complete 1000 breaks", "👑", BadgeCategory.MILESTONE, 1000),
    _badge("week-warrior", "Week Warrior", "Maintain a 7-day streak", "⚔️", BadgeCategory.MILESTONE, 7),
    _badge("month-master", "Month Master", "Maintain a 30-day streak", "📅", BadgeCategory.MILESTONE, 30),
    _badge("quarter-champion", "Quarter Champion", "Maintain a 90-day streak", "🏆", BadgeCategory.MILESTONE, 90),
    # Behavior
    _badge("early-bird", "Early Bird", "Take 10 breaks before 9 AM", "🐦", BadgeCategory.BEHAVIOR, 10),
    _badge("night-owl", "Night Owl", "Take 10 breaks after 10 PM", "🦉", BadgeCategory.BEHAVIOR, 10),
    _badge("speed-peeer", "Speed Pee-er", "Complete 10 breaks in under 2 minutes", "⚡", BadgeCategory.BEHAVIOR, 10),
    _badge("consistent-carl", "Consistent Carl", "Take breaks at the same time for 5 days", "⏰", BadgeCategory.BEHAVIOR, 5),
    _badge("perfect-week", "Perfect Week", "Never skip a break for 7 days straight", "✨", BadgeCategory.BEHAVIOR, 7),
    # Humor
    _badge("bladder-of-steel", "Bladder of Steel", "Snooze 3 times before taking a break (not recommended)", "🛡️", BadgeCategory.HUMOR, 3),
    _badge("waterfall", "Waterfall", "Respond to a break reminder within 30 seconds, 10 times", "💦", BadgeCategory.HUMOR, 10),
    _badge("camel-mode", "Camel Mode", "Use hydration mode for 30 days", "🐪", BadgeCategory.HUMOR, 30),
    _badge("aquaholic", "Aquaholic", "Log 20+ pee breaks in a single day", "🌊", BadgeCategory.HUMOR, 20),
    # Secret, hidden until unlocked
    _badge("midnight-owl", "Midnight Owl", "Take a break exactly at midnight", "🌙", BadgeCategory.SECRET, 1, hidden=True),
    _badge("lucky-seven", "Lucky Seven", "Complete a break at 7:07:07", "🍀", BadgeCategory.SECRET, 1, hidden=True),
    _badge("new-year-pee", "New Year Pee", "Take a break on January 1st", "🎊", BadgeCategory.SECRET, 1, hidden=True),
    _badge("friday-feeling", "TGIF", "Complete a 7-day streak on a Friday", "🎉", BadgeCategory.SECRET, 1, hidden=True),
    _badge("palindrome", "Palindrome Master", "Take a break when total breaks is a palindrome (101, 111, etc)", "🔄", BadgeCategory.SECRET, 1, hidden=True),
)

BREAK_MILESTONES = ("first-flush", "ten-timer", "century-club", "five-hundred", "thousand")
STREAK_MILESTONES = ("week-warrior", "month-master", "quarter-champion")


def merge_saved_badges(saved: Iterable[dict]) -> list[Badge]:
    """Combine stored progress with the static definitions.

    Definitions win for name, description, emoji, category and requirement;
    stored values win for ``unlocked_at`` and ``progress``. Stored ids with
    no definition are dropped.
    """
    by_id = {row["id"]: row for row in saved}
    merged = []
    for definition in BADGE_DEFINITIONS:
        row = by_id.get(definition.id)
        if row is None:
            merged.append(replace(definition))
            continue
        unlocked_at = row.get("unlocked_at")
        merged.append(
            replace(
                definition,
                unlocked_at=unlocked_at,
                progress=row.get("progress") or 0,
                hidden=definition.hidden and unlocked_at is None,
            )
        )
    return merged


def local_date(timestamp: float) -> date:
    """Local calendar date of an epoch timestamp."""
    return datetime.fromtimestamp(timestamp).date()


def local_hour(timestamp: float) -> int:
    """Local hour of day of an epoch timestamp."""
    return datetime.fromtimestamp(timestamp).hour


def is_palindrome(number: int) -> bool:
    """Whether ``number`` has at least 3 digits and reads the same reversed."""
    text = str(number)
    return len(text) >= 3 and text == text[::-1]


def longest_consecutive_run(
    buckets: dict[date, T],
    qualifies: Callable[[T], bool] = lambda value: True,
    continues: Callable[[T, T], bool] = lambda previous, current: True,
) -> int:
    """Longest run of adjacent calendar days.

    Days are scanned in order. A day that fails ``qualifies`` ends the run.
    A qualifying day extends the run when it is exactly one day after the
    previous qualifying day and ``continues(previous, current)`` holds;
    otherwise it starts a new run of length 1.

    Args:
        buckets: Per-day values, e.g. the hours of that day's breaks
        qualifies: Whether a day can be part of a run at all
        continues: Whether two adjacent days belong to the same run

    Returns:
        Length of the longest run, 0 if no day qualifies
    """
    best = 0
    run = 0
    previous_day: Optional[date] = None
    for day in sorted(buckets):
        value = buckets[day]
        if not qualifies(value):
            run = 0
            previous_day = None
            continue
        if (
            run
            and previous_day is not None
            and (day - previous_day).days == 1
            and continues(buckets[previous_day], value)
        ):
            run += 1
        else:
            run = 1
        best = max(best, run)
        previous_day = day
    return best


def _hours_within(previous: list[int], current: list[int], tolerance: int = 1) -> bool:
    return any(abs(p - c) <= tolerance for p in previous for c in current)


class BadgeSystem:
    """Evaluates badge progress and unlocks."""

    def __init__(self, existing_badges: Optional[Iterable[Badge]] = None):
        """Initialize with every defined badge.

        Args:
            existing_badges: Previously saved badges whose progress and unlock
                state take precedence over a fresh definition
        """
        existing = {b.id: b for b in (existing_badges or [])}
        self._badges: dict[str, Badge] = {}
        for definition in BADGE_DEFINITIONS:
            self._badges[definition.id] = existing.get(definition.id) or replace(definition)

    def check_and_unlock(
        self,
        stats: UserStats,
        break_records: Iterable[BreakRecord] = (),
        hydration_days: int = 0,
        now: Optional[datetime] = None,
    ) -> list[Badge]:
        """Update progress and return the badges unlocked by this call.

        Args:
            stats: Aggregate statistics from the event store
            break_records: Recent break history, in any order
            hydration_days: Days on which hydration mode was used
            now: Evaluation time for instant badges (defaults to now)

        Returns:
            Badges that went from locked to unlocked during this call
        """
        now = now or datetime.now()
        unlocked_at = now.timestamp()
        newly_unlocked: list[Badge] = []
        records = sorted(break_records, key=lambda r: (r.timestamp, r.id))

        def update(badge_id: str, current: float) -> None:
            badge = self._badges.get(badge_id)
            if badge is None or badge.unlocked:
                return
            progress = min(100.0, 100.0 * current / badge.requirement)
            badge.progress = max(badge.progress, progress)
            if current >= badge.requirement:
                badge.unlocked_at = unlocked_at
                newly_unlocked.append(badge)
                logger.info(f"Badge unlocked: {badge_id}")

        # Thresholds
        for badge_id in BREAK_MILESTONES:
            update(badge_id, stats.total_breaks)
        for badge_id in STREAK_MILESTONES:
            update(badge_id, stats.current_streak)

        # Counts within the most recent breaks
        if records:
            recent = records[-RECENT_WINDOW:]
            update("early-bird", sum(1 for r in recent if local_hour(r.timestamp) < 9))
            update("night-owl", sum(1 for r in recent if local_hour(r.timestamp) >= 22))
            # Zero durations come from timer restarts and are not real responses
            update("speed-peeer", sum(1 for r in recent if 0 < r.duration < 120))
            update("waterfall", sum(1 for r in recent if 0 < r.duration < 30))
            update("bladder-of-steel", max(r.snooze_count for r in recent))

        self._check_daily_badges(records, hydration_days, update)
        self._check_secret_badges(stats, now, unlocked_at, newly_unlocked)
        return newly_unlocked

    @staticmethod
    def _check_daily_badges(
        records: list[BreakRecord],
        hydration_days: int,
        update: Callable[[str, float], None],
    ) -> None:
        pee_per_day: dict[date, int] = defaultdict(int)
        pee_hours_per_day: dict[date, list[int]] = defaultdict(list)
        skips_per_day: dict[date, int] = defaultdict(int)

        for record in records:
            day = local_date(record.timestamp)
            skips_per_day[day] += int(record.type == BreakType.SKIP)
            if record.type == BreakType.PEE:
                pee_per_day[day] += 1
                pee_hours_per_day[day].append(local_hour(record.timestamp))

        update("aquaholic", max(pee_per_day.values(), default=0))
        update("consistent-carl", longest_consecutive_run(pee_hours_per_day, continues=_hours_within))
        update("perfect-week", longest_consecutive_run(skips_per_day, qualifies=lambda skips: skips == 0))
        update("camel-mode", hydration_days)

    def _check_secret_badges(
        self,
        stats: UserStats,
        now: datetime,
        unlocked_at: float,
        newly_unlocked: list[Badge],
    ) -> None:
        triggered = {
            "midnight-owl": now.hour == 0 and now.minute == 0,
            "lucky-seven": (now.hour, now.minute, now.second) == (7, 7, 7),
            "new-year-pee": now.month == 1 and now.day == 1,
            "friday-feeling": now.weekday() == 4 and stats.current_streak >= 7,
            "palindrome": is_palindrome(stats.total_breaks),
        }
        for badge_id, hit in triggered.items():
            badge = self._badges.get(badge_id)
            if not hit or badge is None or badge.unlocked:
                continue
            badge.unlocked_at = unlocked_at
            badge.hidden = False
            badge.progress = 100.0
            newly_unlocked.append(badge)
            logger.info(f"Secret badge unlocked: {badge_id}")

    def get_badge(self, badge_id: str) -> Optional[Badge]:
        return self._badges.get(badge_id)

    def get_all_badges(self) -> list[Badge]:
        return list(self._badges.values())

    def get_unlocked_badges(self) -> list[Badge]:
        return [b for b in self._badges.values() if b.unlocked]

    def get_visible_badges(self) -> list[Badge]:
        """Badges that may be listed: everything except locked secrets."""
        return [b for b in self._badges.values() if not b.hidden or b.unlocked]

    def get_next_badges(self, limit: int = 3) -> list[Badge]:
        """Closest visible locked badges, highest progress first."""
        locked = [b for b in self._badges.values() if not b.unlocked and not b.hidden]
        return sorted(locked, key=lambda b: b.progress, reverse=True)[:limit]
