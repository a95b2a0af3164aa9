"""Data models for Peemodoro."""

from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any, Optional


class TimerMode(Enum):
    """Preset family for timer durations."""
    CLASSIC = "classic"
    HYDRATION = "hydration"
    ADAPTIVE = "adaptive"


class TimerStatus(Enum):
    """Timer state enumeration."""
    RUNNING = "running"
    BREAK = "break"
    PAUSED = "paused"
    FOCUS = "focus"


class BreakType(Enum):
    """Type of logged break."""
    PEE = "pee"
    STRETCH = "stretch"
    SKIP = "skip"


class BadgeCategory(Enum):
    """Badge grouping."""
    MILESTONE = "milestone"
    BEHAVIOR = "behavior"
    HUMOR = "humor"
    SECRET = "secret"


def _pick(data: dict, key: str, default: Any, cast=None) -> Any:
    """Return ``data[key]`` passed through ``cast``, or ``default`` if absent."""
    value = data.get(key)
    if value is None:
        return default
    return cast(value) if cast else value


@dataclass
class TimerConfig:
    """Durations driving the work/break cycle (all in seconds)."""
    mode: TimerMode = TimerMode.HYDRATION
    work_duration: int = 45 * 60
    break_duration: int = 10 * 60
    long_break_duration: int = 20 * 60
    cycles_before_long_break: int = 4
    focus_max_duration: int = 90 * 60
    sound_enabled: bool = True

    def __post_init__(self) -> None:
        for name in (
            "work_duration",
            "break_duration",
            "long_break_duration",
            "cycles_before_long_break",
            "focus_max_duration",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON/TOML serialization."""
        return {
            "mode": self.mode.value,
            "work_duration": self.work_duration,
            "break_duration": self.break_duration,
            "long_break_duration": self.long_break_duration,
            "cycles_before_long_break": self.cycles_before_long_break,
            "focus_max_duration": self.focus_max_duration,
            "sound_enabled": self.sound_enabled,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TimerConfig":
        """Create TimerConfig from dictionary.

        Persisted values win field by field; missing fields keep the defaults.
        """
        default = cls()
        return cls(
            mode=_pick(data, "mode", default.mode, TimerMode),
            work_duration=_pick(data, "work_duration", default.work_duration, int),
            break_duration=_pick(data, "break_duration", default.break_duration, int),
            long_break_duration=_pick(
                data, "long_break_duration", default.long_break_duration, int
            ),
            cycles_before_long_break=_pick(
                data, "cycles_before_long_break", default.cycles_before_long_break, int
            ),
            focus_max_duration=_pick(
                data, "focus_max_duration", default.focus_max_duration, int
            ),
            sound_enabled=_pick(data, "sound_enabled", default.sound_enabled, bool),
        )


@dataclass
class TimerState:
    """Live timer state shared between terminal sessions."""
    status: TimerStatus = TimerStatus.PAUSED
    time_remaining: int = 45 * 60
    cycle_count: int = 0
    current_cycle: int = 1
    started_at: float = 0
    focus_until: Optional[float] = None
    last_break_at: Optional[float] = None
    break_reminder_at: Optional[float] = None
    break_started_at: Optional[float] = None
    current_snooze_count: int = 0

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "status": self.status.value,
            "time_remaining": self.time_remaining,
            "cycle_count": self.cycle_count,
            "current_cycle": self.current_cycle,
            "started_at": self.started_at,
            "focus_until": self.focus_until,
            "last_break_at": self.last_break_at,
            "break_reminder_at": self.break_reminder_at,
            "break_started_at": self.break_started_at,
            "current_snooze_count": self.current_snooze_count,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TimerState":
        """Create TimerState from dictionary."""
        return cls(
            status=TimerStatus(data.get("status", "paused")),
            time_remaining=int(data.get("time_remaining", 45 * 60)),
            cycle_count=int(data.get("cycle_count", 0)),
            current_cycle=int(data.get("current_cycle", 1)),
            started_at=float(data.get("started_at") or 0),
            focus_until=_pick(data, "focus_until", None, float),
            last_break_at=_pick(data, "last_break_at", None, float),
            break_reminder_at=_pick(data, "break_reminder_at", None, float),
            break_started_at=_pick(data, "break_started_at", None, float),
            current_snooze_count=int(data.get("current_snooze_count") or 0),
        )


@dataclass
class UserStats:
    """Aggregate statistics derived from the event store."""
    total_breaks: int = 0
    pee_breaks: int = 0
    stretch_breaks: int = 0
    skipped_breaks: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    total_focus_time: int = 0  # seconds
    average_break_interval: float = 45 * 60  # seconds
    last_active_date: str = ""  # YYYY-MM-DD format

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: dict) -> "UserStats":
        """Create UserStats from dictionary."""
        default = cls()
        return cls(
            total_breaks=int(data.get("total_breaks", default.total_breaks)),
            pee_breaks=int(data.get("pee_breaks", default.pee_breaks)),
            stretch_breaks=int(data.get("stretch_breaks", default.stretch_breaks)),
            skipped_breaks=int(data.get("skipped_breaks", default.skipped_breaks)),
            current_streak=int(data.get("current_streak", default.current_streak)),
            longest_streak=int(data.get("longest_streak", default.longest_streak)),
            total_focus_time=int(data.get("total_focus_time", default.total_focus_time)),
            average_break_interval=float(
                data.get("average_break_interval", default.average_break_interval)
            ),
            last_active_date=str(data.get("last_active_date", default.last_active_date)),
        )


@dataclass(frozen=True)
class BreakRecord:
    """A single logged break. Never mutated after insert."""
    id: int
    timestamp: float
    type: BreakType
    duration: int  # seconds between reminder and response
    snoozed: bool = False
    snooze_count: int = 0

    @classmethod
    def from_row(cls, row: tuple) -> "BreakRecord":
        """Create BreakRecord from database row."""
        return cls(
            id=row[0],
            timestamp=row[1],
            type=BreakType(row[2]),
            duration=row[3],
            snoozed=bool(row[4]),
            snooze_count=row[5],
        )


@dataclass
class Badge:
    """An achievement with progress and a one-way unlock."""
    id: str
    name: str
    description: str
    emoji: str
    category: BadgeCategory
    requirement: int
    unlocked_at: Optional[float] = None
    progress: float = 0
    hidden: bool = False

    @property
    def unlocked(self) -> bool:
        return self.unlocked_at is not None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "emoji": self.emoji,
            "category": self.category.value,
            "requirement": self.requirement,
            "unlocked_at": self.unlocked_at,
            "progress": self.progress,
            "hidden": self.hidden,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Badge":
        """Create Badge from dictionary."""
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            description=data.get("description", ""),
            emoji=data.get("emoji", ""),
            category=BadgeCategory(data.get("category", "milestone")),
            requirement=int(data.get("requirement", 1)),
            unlocked_at=_pick(data, "unlocked_at", None, float),
            progress=float(data.get("progress") or 0),
            hidden=bool(data.get("hidden", False)),
        )


@dataclass
class PeeState:
    """The live state document shared by every running instance."""
    config: TimerConfig = field(default_factory=TimerConfig)
    timer: TimerState = field(default_factory=TimerState)
    stats: UserStats = field(default_factory=UserStats)
    badges: list[Badge] = field(default_factory=list)
    instance_id: str = ""
    last_updated: float = 0

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "config": self.config.to_dict(),
            "timer": self.timer.to_dict(),
            "stats": self.stats.to_dict(),
            "badges": [b.to_dict() for b in self.badges],
            "instance_id": self.instance_id,
            "last_updated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PeeState":
        """Create PeeState from dictionary.

        Raises:
            ValueError, KeyError, TypeError: if the document is malformed
        """
        return cls(
            config=TimerConfig.from_dict(data["config"]),
            timer=TimerState.from_dict(data["timer"]),
            stats=UserStats.from_dict(data.get("stats", {})),
            badges=[Badge.from_dict(b) for b in data.get("badges", [])],
            instance_id=str(data.get("instance_id", "")),
            last_updated=float(data.get("last_updated", 0)),
        )

    def merge(self, partial: dict) -> "PeeState":
        """Apply a partial update and return the merged state.

        ``config``, ``timer`` and ``stats`` merge field by field with the
        partial's keys winning; ``badges`` replaces the whole list. Sections
        may be given as dicts or as their dataclass. Unknown sections are
        ignored.
        """
        merged = replace(self)
        sections = {
            "config": TimerConfig,
            "timer": TimerState,
            "stats": UserStats,
        }
        for name, section_cls in sections.items():
            update = partial.get(name)
            if update is None:
                continue
            if isinstance(update, section_cls):
                update = update.to_dict()
            current = getattr(self, name).to_dict()
            current.update(update)
            setattr(merged, name, section_cls.from_dict(current))

        if "badges" in partial:
            merged.badges = [
                b if isinstance(b, Badge) else Badge.from_dict(b)
                for b in partial["badges"]
            ]
        return merged
