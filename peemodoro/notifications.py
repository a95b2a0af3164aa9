"""Remote break nudges for Peemodoro over Telegram.

Delivery is best effort: failures are logged and reported as ``False`` so a
flaky network never breaks a command.
"""

import asyncio
import logging
from typing import Optional

from .config import TelegramConfig
from .models import Badge

logger = logging.getLogger(__name__)

REMINDER_TEXT = {
    1: "💧 Stay hydrated, plenty of time left.",
    2: "💦 A break is coming up soon.",
    3: "😰 Almost time. Wrap up what you're doing.",
    4: "🚽 <b>Time for a break!</b>\n\nStand up, stretch, go.",
}

BADGE_TEXT = "🏆 <b>Badge Unlocked!</b>\n\n{emoji} {name}\n<i>{description}</i>"
STREAK_TEXT = "🔥 <b>{streak}-day streak!</b>\n\nYour bladder thanks you."
FOCUS_EXPIRED_TEXT = "🎯 <b>Focus mode over</b>\n\nGood moment for a quick break."
CHECK_TEXT = "🚽 <b>Peemodoro</b>\n\nNotifications are working."


def missing_setting(config: TelegramConfig) -> Optional[str]:
    """Why ``config`` cannot send, or None if it has what it needs."""
    if not config.bot_token:
        return "Bot token not configured"
    if not config.chat_id:
        return "Chat ID not configured"
    return None


async def _deliver(config: TelegramConfig, text: str) -> str:
    """Send one HTML message and return the bot's username.

    Raises:
        ImportError: If python-telegram-bot is not installed
        telegram.error.TelegramError: On API or network failure
    """
    from telegram import Bot

    async with Bot(token=config.bot_token) as bot:
        await bot.send_message(chat_id=config.chat_id, text=text, parse_mode="HTML")
        return bot.username


class TelegramNotifier:
    """Sends break nudges to one Telegram chat."""

    def __init__(self, config: TelegramConfig):
        self.config = config

    @property
    def enabled(self) -> bool:
        return self.config.enabled and missing_setting(self.config) is None

    def send(self, text: str) -> bool:
        """Deliver ``text`` if notifications are enabled.

        Returns:
            True if Telegram accepted the message
        """
        if not self.enabled:
            return False
        try:
            asyncio.run(_deliver(self.config, text))
        except ImportError:
            logger.warning("python-telegram-bot not installed, skipping Telegram nudge")
            return False
        except Exception as e:
            logger.error(f"Telegram delivery failed: {e}")
            return False
        return True

    def notify_break_reminder(self, urgency: int) -> bool:
        """Reminder matching the urgency level (1-4)."""
        return self.send(REMINDER_TEXT.get(urgency, REMINDER_TEXT[4]))

    def notify_badge_unlocked(self, badge: Badge) -> bool:
        return self.send(
            BADGE_TEXT.format(emoji=badge.emoji, name=badge.name, description=badge.description)
        )

    def notify_streak_milestone(self, streak: int) -> bool:
        return self.send(STREAK_TEXT.format(streak=streak))

    def notify_focus_expired(self) -> bool:
        return self.send(FOCUS_EXPIRED_TEXT)


def check_connection(config: TelegramConfig) -> tuple[bool, str]:
    """Send a test message with ``config``.

    Args:
        config: Telegram settings to try, enabled or not

    Returns:
        Tuple of (success, human readable detail)
    """
    problem = missing_setting(config)
    if problem:
        return False, problem
    try:
        username = asyncio.run(_deliver(config, CHECK_TEXT))
    except ImportError:
        return False, "python-telegram-bot is not installed (pip install 'peemodoro[telegram]')"
    except Exception as e:
        return False, f"Connection failed: {e}"
    return True, f"Connected as @{username}"
