"""Display formatting for Peemodoro - statusline, progress bars, and screens."""

import click
from typing import Optional

from .config import Config, DisplayConfig
from .models import Badge, PeeState, TimerStatus, UserStats
from .timer import urgency_level

FOCUS_EMOJI = "🎯"
BREAK_EMOJI = "🚽"

URGENCY_COLORS = {1: "green", 2: "yellow", 3: "bright_red", 4: "red"}

MODE_NAMES = {
    "classic": "Classic Pomodoro (25/5)",
    "hydration": "Hydration Mode (45/10)",
    "adaptive": "Adaptive Mode",
}


def format_time(seconds: int) -> str:
    """Format seconds as MM:SS, with a leading minus when overdue.

    Args:
        seconds: Number of seconds

    Returns:
        Formatted time string
    """
    sign = "-" if seconds < 0 else ""
    minutes, secs = divmod(abs(int(seconds)), 60)
    return f"{sign}{minutes:02d}:{secs:02d}"


def progress_bar(current: int, total: int, width: int = 20, filled: str = "█", empty: str = "░") -> str:
    """Create an ASCII progress bar.

    Args:
        current: Current value
        total: Total value
        width: Width of the bar in characters
        filled: Character for filled portion
        empty: Character for empty portion

    Returns:
        Progress bar string
    """
    if total <= 0:
        return empty * width

    ratio = max(0.0, min(current / total, 1.0))
    filled_width = round(width * ratio)
    return filled * filled_width + empty * (width - filled_width)


def urgency_emoji(time_remaining: int, work_duration: int) -> str:
    """Bladder-themed mood for the fraction of work time remaining."""
    if time_remaining <= 0:
        return "🚽"
    if time_remaining <= 90:
        return "🆘"
    fraction = time_remaining / work_duration
    if fraction <= 0.15:
        return "🫠"
    if fraction <= 0.25:
        return "😰"
    if fraction <= 0.40:
        return "😅"
    if fraction <= 0.60:
        return "💦"
    return "💧"


def render_statusline(
    state: PeeState,
    display: Optional[DisplayConfig] = None,
    compact: bool = False,
) -> str:
    """One-line timer summary for embedding in another tool's status bar.

    Args:
        state: Current live state
        display: Display preferences
        compact: Drop the progress bar and streak

    Returns:
        Styled statusline text
    """
    display = display or DisplayConfig()
    compact = compact or display.compact_mode
    timer = state.timer
    config = state.config

    if timer.status == TimerStatus.PAUSED:
        return click.style("💧 PAUSED", fg="bright_black")

    if timer.status == TimerStatus.BREAK:
        text = f"{BREAK_EMOJI} BREAK {format_time(timer.time_remaining)}"
        if not compact and display.show_progress_bar:
            text += " " + progress_bar(
                config.break_duration - timer.time_remaining, config.break_duration, width=8
            )
        return click.style(text, fg="cyan")

    is_focus = timer.status == TimerStatus.FOCUS
    level = urgency_level(timer.time_remaining, config.work_duration)
    label = "TIME TO PEE" if timer.time_remaining <= 0 else format_time(timer.time_remaining)

    parts = []
    if display.show_mood_emoji:
        parts.append(FOCUS_EMOJI if is_focus else urgency_emoji(timer.time_remaining, config.work_duration))
    if is_focus:
        parts.append(click.style(label, fg="bright_black"))
    else:
        parts.append(click.style(label, fg=URGENCY_COLORS[level], bold=level == 4))

    if not compact:
        if display.show_progress_bar:
            parts.append(progress_bar(timer.time_remaining, config.work_duration, width=8))
        if display.show_streak and state.stats.current_streak > 0:
            parts.append(f"🔥{state.stats.current_streak}")
    return " ".join(parts)


def print_header(text: str) -> None:
    """Print a styled header.

    Args:
        text: Header text
    """
    width = 50
    click.echo()
    click.echo("═" * width)
    click.echo(f" {text}")
    click.echo("═" * width)


def print_subheader(text: str) -> None:
    """Print a styled subheader."""
    click.echo()
    click.echo(f"── {text} ──")


def format_badge_unlock(badge: Badge) -> str:
    """Banner for a newly unlocked badge."""
    return f"🎊 BADGE UNLOCKED! 🎊\n{badge.emoji} {badge.name}\n\"{badge.description}\""


def print_badge_unlocks(badges: list[Badge]) -> None:
    for badge in badges:
        click.echo()
        click.secho(format_badge_unlock(badge), fg="yellow", bold=True)


def format_duration(seconds: int) -> str:
    """Format seconds as e.g. ``3h 25m``."""
    hours, rest = divmod(int(seconds), 3600)
    return f"{hours}h {rest // 60}m"


def print_stats(stats: UserStats, unlocked: list[Badge], next_badges: list[Badge]) -> None:
    """Print break statistics and badge progress.

    Args:
        stats: Aggregate statistics
        unlocked: Unlocked badges
        next_badges: Closest locked badges
    """
    print_header("📊 Peemodoro Stats")

    click.echo(f"\n🚽 Total Breaks: {stats.total_breaks}")
    click.echo(f"   💧 Pee breaks: {stats.pee_breaks}")
    click.echo(f"   🧘 Stretch breaks: {stats.stretch_breaks}")
    click.echo(f"   ⏭️  Skipped: {stats.skipped_breaks}")

    click.echo(f"\n🔥 Current Streak: {stats.current_streak} day{'s' if stats.current_streak != 1 else ''}")
    click.echo(f"🏆 Longest Streak: {stats.longest_streak} day{'s' if stats.longest_streak != 1 else ''}")
    click.echo(f"🎯 Total Focus Time: {format_duration(stats.total_focus_time)}")

    click.secho(f"\n🏅 Badges Unlocked: {len(unlocked)}", fg="yellow", bold=True)
    if unlocked:
        click.echo("   " + " ".join(b.emoji for b in unlocked))

    if next_badges:
        print_subheader("📈 Next Badges")
        for badge in next_badges:
            bar = progress_bar(int(badge.progress), 100, width=10)
            click.echo(f"  {badge.emoji} {badge.name}: [{bar}] {round(badge.progress)}%")


def print_badges(badges: list[Badge]) -> None:
    """Print a badge list grouped by category."""
    print_header("🏅 Badges")
    category = None
    for badge in badges:
        if badge.category != category:
            category = badge.category
            print_subheader(category.value.title())
        if badge.unlocked:
            click.secho(f"  ✓ {badge.emoji} {badge.name} - {badge.description}", fg="green")
        elif badge.hidden:
            click.secho("  ? ??? (secret)", fg="bright_black")
        else:
            bar = progress_bar(int(badge.progress), 100, width=10)
            click.echo(f"  ○ {badge.emoji} {badge.name} [{bar}] - {badge.description}")


def print_config(config: Config) -> None:
    """Print current timer and display configuration."""
    timer = config.timer
    check = {True: "✓", False: "✗"}

    print_header("⚙️  Peemodoro Configuration")
    click.echo(f"\n📋 Mode: {MODE_NAMES[timer.mode.value]}")
    click.echo(f"⏱️  Work Duration: {timer.work_duration // 60} minutes")
    click.echo(f"☕ Break Duration: {timer.break_duration // 60} minutes")
    click.echo(f"🛋️  Long Break: {timer.long_break_duration // 60} minutes")
    click.echo(f"🔄 Cycles before long break: {timer.cycles_before_long_break}")
    click.echo(f"🎯 Max focus: {timer.focus_max_duration // 60} minutes")

    print_subheader("Display")
    click.echo(f"  Progress bar: {check[config.display.show_progress_bar]}")
    click.echo(f"  Mood emoji: {check[config.display.show_mood_emoji]}")
    click.echo(f"  Streak counter: {check[config.display.show_streak]}")

    print_subheader("Notifications")
    click.echo(f"  Sound: {check[timer.sound_enabled]}")
    click.echo(f"  Telegram: {check[config.telegram.enabled]}")

    click.secho('\nUse "peemodoro config set <key> <value>" to change settings', dim=True)


def print_timer_status(state: PeeState) -> None:
    """Print the current timer status in full."""
    timer = state.timer
    titles = {
        TimerStatus.RUNNING: ("💧 WORKING", "green"),
        TimerStatus.FOCUS: ("🎯 FOCUS MODE", "blue"),
        TimerStatus.BREAK: ("🚽 BREAK TIME", "cyan"),
        TimerStatus.PAUSED: ("⏸  PAUSED", "yellow"),
    }
    title, color = titles[timer.status]
    click.secho(f"\n{title}", fg=color, bold=True)
    click.echo(f"\n   {format_time(timer.time_remaining)}")
    click.echo(f"   [{progress_bar(timer.time_remaining, state.config.work_duration, width=30)}]")
    click.echo(f"\n   Cycle {timer.current_cycle}/{state.config.cycles_before_long_break}"
               f" · {timer.cycle_count} completed")
