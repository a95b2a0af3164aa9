"""Configuration management for Peemodoro."""

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Optional

import toml

from .models import TimerConfig, TimerMode

logger = logging.getLogger(__name__)

STATE_FILENAME = "state.json"
LOCK_FILENAME = "state.lock"
DB_FILENAME = "history.db"
CONFIG_FILENAME = "config.toml"

MODE_PRESETS: dict[TimerMode, dict[str, int]] = {
    TimerMode.CLASSIC: {
        "work_duration": 25 * 60,
        "break_duration": 5 * 60,
        "long_break_duration": 15 * 60,
        "cycles_before_long_break": 4,
    },
    TimerMode.HYDRATION: {
        "work_duration": 45 * 60,
        "break_duration": 10 * 60,
        "long_break_duration": 20 * 60,
        "cycles_before_long_break": 4,
    },
    # Starts as hydration, then adapts to the observed break interval
    TimerMode.ADAPTIVE: {
        "work_duration": 45 * 60,
        "break_duration": 10 * 60,
        "long_break_duration": 20 * 60,
        "cycles_before_long_break": 4,
    },
}


@dataclass
class DisplayConfig:
    """Statusline display preferences."""
    show_progress_bar: bool = True
    show_mood_emoji: bool = True
    show_streak: bool = True
    compact_mode: bool = False


@dataclass
class AdaptiveConfig:
    """Bounds for adaptive mode learning (seconds)."""
    learning_enabled: bool = True
    min_work_duration: int = 20 * 60
    max_work_duration: int = 90 * 60


@dataclass
class TelegramConfig:
    """Telegram bot configuration."""
    bot_token: str = ""
    chat_id: str = ""
    enabled: bool = False


@dataclass
class Config:
    """Main application configuration."""
    timer: TimerConfig = field(default_factory=TimerConfig)
    display: DisplayConfig = field(default_factory=DisplayConfig)
    adaptive: AdaptiveConfig = field(default_factory=AdaptiveConfig)
    telegram: TelegramConfig = field(default_factory=TelegramConfig)

    @classmethod
    def from_dict(cls, data: dict) -> "Config":
        """Create Config from dictionary.

        Every field takes the file's value when present and the default
        otherwise; a section with an invalid duration falls back to defaults.
        """
        display_data = data.get("display", {})
        adaptive_data = data.get("adaptive", {})
        telegram_data = data.get("telegram", {})

        try:
            timer = TimerConfig.from_dict(data.get("timer", {}))
        except ValueError as e:
            logger.warning(f"Invalid timer settings, using defaults: {e}")
            timer = TimerConfig()

        return cls(
            timer=timer,
            display=DisplayConfig(
                show_progress_bar=display_data.get("show_progress_bar", True),
                show_mood_emoji=display_data.get("show_mood_emoji", True),
                show_streak=display_data.get("show_streak", True),
                compact_mode=display_data.get("compact_mode", False),
            ),
            adaptive=AdaptiveConfig(
                learning_enabled=adaptive_data.get("learning_enabled", True),
                min_work_duration=adaptive_data.get("min_work_duration", 20 * 60),
                max_work_duration=adaptive_data.get("max_work_duration", 90 * 60),
            ),
            telegram=TelegramConfig(
                bot_token=telegram_data.get("bot_token", ""),
                chat_id=telegram_data.get("chat_id", ""),
                enabled=telegram_data.get("enabled", False),
            ),
        )

    def to_dict(self) -> dict:
        """Convert Config to dictionary."""
        return {
            "timer": self.timer.to_dict(),
            "display": {
                "show_progress_bar": self.display.show_progress_bar,
                "show_mood_emoji": self.display.show_mood_emoji,
                "show_streak": self.display.show_streak,
                "compact_mode": self.display.compact_mode,
            },
            "adaptive": {
                "learning_enabled": self.adaptive.learning_enabled,
                "min_work_duration": self.adaptive.min_work_duration,
                "max_work_duration": self.adaptive.max_work_duration,
            },
            "telegram": {
                "bot_token": self.telegram.bot_token,
                "chat_id": self.telegram.chat_id,
                "enabled": self.telegram.enabled,
            },
        }


def apply_mode(timer: TimerConfig, mode: TimerMode) -> TimerConfig:
    """Return ``timer`` switched to ``mode`` with that mode's preset durations.

    Focus cap and sound settings are not part of a preset and are kept.
    """
    return replace(timer, mode=mode, **MODE_PRESETS[mode])


# (field, minimum minutes, maximum minutes) for the minute-valued settings
_MINUTE_SETTINGS = {
    "work": ("work_duration", 1, 120),
    "break": ("break_duration", 1, 30),
    "long-break": ("long_break_duration", 1, 60),
    "focus-max": ("focus_max_duration", 5, 240),
}

SETTING_KEYS = ("mode", *_MINUTE_SETTINGS, "cycles", "sound")


def parse_timer_setting(timer: TimerConfig, key: str, value: str) -> TimerConfig:
    """Apply a ``config set`` style key/value to a timer configuration.

    Args:
        timer: Current timer configuration
        key: One of ``SETTING_KEYS``
        value: Raw value from the command line

    Returns:
        Updated copy of the timer configuration

    Raises:
        ValueError: If the key is unknown or the value is out of range
    """
    if key == "mode":
        try:
            mode = TimerMode(value.lower())
        except ValueError:
            raise ValueError("Invalid mode. Use: classic, hydration, or adaptive") from None
        return apply_mode(timer, mode)

    if key in _MINUTE_SETTINGS:
        field_name, low, high = _MINUTE_SETTINGS[key]
        try:
            minutes = int(value)
        except ValueError:
            raise ValueError(f"{key} must be a whole number of minutes") from None
        if not low <= minutes <= high:
            raise ValueError(f"{key} must be between {low} and {high} minutes")
        return replace(timer, **{field_name: minutes * 60})

    if key == "cycles":
        try:
            cycles = int(value)
        except ValueError:
            raise ValueError("cycles must be a whole number") from None
        if not 1 <= cycles <= 12:
            raise ValueError("cycles must be between 1 and 12")
        return replace(timer, cycles_before_long_break=cycles)

    if key == "sound":
        return replace(timer, sound_enabled=value.lower() in ("on", "true", "yes", "1"))

    raise ValueError(f"Unknown config key: {key}")


class ConfigManager:
    """Manages the data directory and configuration file."""

    def __init__(self, config_dir: Optional[Path] = None):
        """Initialize config manager.

        Args:
            config_dir: Override data directory (for testing)
        """
        if config_dir is None:
            home = os.environ.get("PEEMODORO_HOME")
            self.config_dir = Path(home) if home else Path.home() / ".peemodoro"
        else:
            self.config_dir = config_dir

        self.config_file = self.config_dir / CONFIG_FILENAME
        self.db_file = self.config_dir / DB_FILENAME
        self.state_file = self.config_dir / STATE_FILENAME
        self.lock_file = self.config_dir / LOCK_FILENAME

    def ensure_dirs(self) -> None:
        """Create data directory if it doesn't exist."""
        self.config_dir.mkdir(parents=True, exist_ok=True)

    def load(self) -> Config:
        """Load configuration from file.

        Returns:
            Config object with loaded or default values
        """
        if not self.config_file.exists():
            return Config()

        try:
            data = toml.load(self.config_file)
            return Config.from_dict(data)
        except Exception as e:
            logger.warning(f"Failed to load {self.config_file}, using defaults: {e}")
            return Config()

    def save(self, config: Config) -> None:
        """Save configuration to file.

        Args:
            config: Configuration to save
        """
        self.ensure_dirs()
        with open(self.config_file, "w") as f:
            toml.dump(config.to_dict(), f)

    def is_configured(self) -> bool:
        """Check if a configuration file has been written."""
        return self.config_file.exists()
