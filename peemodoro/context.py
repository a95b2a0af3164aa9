"""Per-process application context for Peemodoro."""

from dataclasses import dataclass
from typing import Optional

from .badges import BadgeSystem, merge_saved_badges
from .config import Config, ConfigManager
from .state_sync import StateSync
from .storage import Storage


@dataclass
class AppContext:
    """Everything a command needs, built once at process entry."""
    config_manager: ConfigManager
    config: Config
    storage: Storage
    state_sync: StateSync
    badges: BadgeSystem

    @classmethod
    def create(cls, config_manager: Optional[ConfigManager] = None) -> "AppContext":
        """Open the data directory and wire up the stores.

        Args:
            config_manager: Override config manager (for testing)
        """
        cm = config_manager or ConfigManager()
        cm.ensure_dirs()
        config = cm.load()
        storage = Storage(cm.db_file)
        state_sync = StateSync(cm.state_file, cm.lock_file, default_config=config.timer)
        badges = BadgeSystem(merge_saved_badges(storage.get_badges()))
        return cls(
            config_manager=cm,
            config=config,
            storage=storage,
            state_sync=state_sync,
            badges=badges,
        )

    def close(self) -> None:
        """Release process-held resources."""
        self.state_sync.cleanup()
