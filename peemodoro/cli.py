"""Main CLI entry point for Peemodoro - a pomodoro timer that reminds you to pee."""

import logging
import re
from typing import Optional

import click

from . import __version__
from .commands import PeemodoroCommands, StateBusyError
from .config import SETTING_KEYS
from .context import AppContext
from .display import (
    MODE_NAMES,
    URGENCY_COLORS,
    format_time,
    print_badge_unlocks,
    print_badges,
    print_config,
    print_header,
    print_stats,
    print_subheader,
    print_timer_status,
    render_statusline,
)
from .models import BreakType, TimerMode, TimerStatus
from .notifications import REMINDER_TEXT, TelegramNotifier, check_connection, missing_setting
from .timer import MAX_SNOOZE_MINUTES, PeemodoroTimer

logger = logging.getLogger(__name__)

MODE_CHOICES = [mode.value for mode in TimerMode]


def get_app(ctx: click.Context) -> AppContext:
    """Get the process context, creating it on first use."""
    root = ctx.find_root()
    if root.obj is None:
        root.obj = AppContext.create()
        root.call_on_close(root.obj.close)
    return root.obj


def get_commands(ctx: click.Context) -> PeemodoroCommands:
    """Get command layer bound to this process's context."""
    return PeemodoroCommands(get_app(ctx))


def run_command(ctx: click.Context, func, *args):
    """Run a command, mapping a busy live state to a retry hint."""
    try:
        return func(*args)
    except StateBusyError as e:
        click.secho(str(e), fg="yellow")
        ctx.exit(1)


@click.group(invoke_without_command=True)
@click.option("--version", is_flag=True, help="Show version")
@click.option("--debug", is_flag=True, help="Log debug output to stderr")
@click.pass_context
def main(ctx: click.Context, version: bool, debug: bool) -> None:
    """Peemodoro - Pomodoro timer that reminds you to pee. Seriously.

    Use 'peemodoro start' to begin and 'peemodoro pee' to log a break.
    """
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if version:
        click.echo(f"peemodoro {__version__}")
        return

    if ctx.invoked_subcommand is None:
        ctx.invoke(status)


# ============================================================================
# Timer Commands
# ============================================================================

@main.command()
@click.pass_context
def start(ctx: click.Context) -> None:
    """Start the timer."""
    commands = get_commands(ctx)
    if run_command(ctx, commands.start):
        click.secho("🚀 Peemodoro started! Stay hydrated!", fg="green")
    else:
        click.echo("Timer is already running.")


@main.command()
@click.pass_context
def pause(ctx: click.Context) -> None:
    """Pause the timer."""
    commands = get_commands(ctx)
    if run_command(ctx, commands.pause):
        click.secho("⏸️  Peemodoro paused", fg="yellow")
    else:
        click.echo("Timer is already paused.")


@main.command()
@click.pass_context
def resume(ctx: click.Context) -> None:
    """Resume a paused timer."""
    commands = get_commands(ctx)
    if run_command(ctx, commands.resume):
        click.secho("▶️  Peemodoro resumed", fg="green")
    else:
        click.echo("Timer is not paused.")


@main.command()
@click.pass_context
def reset(ctx: click.Context) -> None:
    """Reset the timer to the first cycle."""
    commands = get_commands(ctx)
    run_command(ctx, commands.reset)
    click.secho("🔄 Peemodoro reset", fg="blue")


@main.command()
@click.argument("minutes", type=click.IntRange(min=1), required=False)
@click.pass_context
def focus(ctx: click.Context, minutes: Optional[int]) -> None:
    """Enter focus mode (quiets reminders)."""
    commands = get_commands(ctx)
    granted = run_command(ctx, commands.focus, minutes)
    if granted is None:
        click.echo("Timer is not running. Use 'peemodoro start' first.")
        return
    click.secho(f"🎯 Focus mode on. Reminders are quiet for {granted} minutes.", fg="blue")


@main.command()
@click.argument("minutes", type=click.IntRange(min=1), default=5)
@click.pass_context
def snooze(ctx: click.Context, minutes: int) -> None:
    """Snooze the break reminder (max 15 minutes)."""
    commands = get_commands(ctx)
    granted = run_command(ctx, commands.snooze, minutes)
    if granted is None:
        click.echo("Nothing to snooze. The timer is paused or in focus mode.")
        return
    click.secho(f"😬 Snoozed for {granted} minutes. Your bladder is counting.", fg="yellow")
    if minutes > MAX_SNOOZE_MINUTES:
        click.secho(f"(Snooze is capped at {MAX_SNOOZE_MINUTES} minutes.)", dim=True)


# ============================================================================
# Break Commands
# ============================================================================

def _log_break(ctx: click.Context, break_type: BreakType) -> None:
    commands = get_commands(ctx)
    result = run_command(ctx, commands.log_break, break_type)

    if break_type == BreakType.SKIP:
        click.secho("⏭️  Break skipped.", fg="yellow")
        click.secho("(Your bladder will remember this...)", dim=True)
    else:
        click.secho(f"✓ {break_type.value.title()} break logged. Timer restarted.", fg="green")

    if result.stats.current_streak > 1:
        click.echo(f"🔥 {result.stats.current_streak}-day streak")
    print_badge_unlocks(result.new_badges)


@main.command()
@click.pass_context
def pee(ctx: click.Context) -> None:
    """Log a pee break (ends the current break)."""
    _log_break(ctx, BreakType.PEE)


@main.command()
@click.pass_context
def stretch(ctx: click.Context) -> None:
    """Log a stretch break."""
    _log_break(ctx, BreakType.STRETCH)


@main.command()
@click.pass_context
def skip(ctx: click.Context) -> None:
    """Skip this break (not recommended!)."""
    _log_break(ctx, BreakType.SKIP)


@main.command(name="break")
@click.pass_context
def break_screen(ctx: click.Context) -> None:
    """Show the break screen and start timing your response."""
    commands = get_commands(ctx)
    run_command(ctx, commands.mark_break_reminder)

    view = commands.stats()
    print_header("🚽 BREAK TIME")
    click.echo("\nStand up. Stretch. Hydrate. Go.")
    click.echo("\nLog it with 'peemodoro pee', 'peemodoro stretch' or 'peemodoro skip'.")
    click.echo(f"\n🔥 Streak: {view.stats.current_streak} · 🚽 Total breaks: {view.stats.total_breaks}")


@main.command()
@click.pass_context
def reminder(ctx: click.Context) -> None:
    """Show the reminder for the current urgency level."""
    level = get_commands(ctx).reminder_urgency()
    text = re.sub(r"</?b>", "", REMINDER_TEXT[level])
    click.secho(text, fg=URGENCY_COLORS[level], bold=level == 4)


# ============================================================================
# Status Commands
# ============================================================================

@main.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show current timer status."""
    app = get_app(ctx)
    print_timer_status(app.state_sync.read())


@main.command()
@click.option("--compact", is_flag=True, help="Omit progress bar and streak")
@click.pass_context
def statusline(ctx: click.Context, compact: bool) -> None:
    """Output a one-line status for editor/tool status bars."""
    app = get_app(ctx)
    click.echo(render_statusline(app.state_sync.read(), app.config.display, compact=compact))


@main.command()
@click.pass_context
def stats(ctx: click.Context) -> None:
    """Show your stats and badges."""
    view = get_commands(ctx).stats()
    print_stats(view.stats, view.unlocked, view.next_badges)


@main.command()
@click.option("--all", "show_all", is_flag=True, help="Include locked secret badges")
@click.pass_context
def badges(ctx: click.Context, show_all: bool) -> None:
    """List badges and their progress."""
    system = get_app(ctx).badges
    print_badges(system.get_all_badges() if show_all else system.get_visible_badges())


# ============================================================================
# Configuration
# ============================================================================

@main.group(invoke_without_command=True)
@click.pass_context
def config(ctx: click.Context) -> None:
    """Show or change configuration."""
    if ctx.invoked_subcommand is None:
        print_config(get_app(ctx).config)


@config.command(name="set")
@click.argument("key", type=click.Choice(SETTING_KEYS))
@click.argument("value")
@click.pass_context
def config_set(ctx: click.Context, key: str, value: str) -> None:
    """Update a setting (durations in minutes)."""
    commands = get_commands(ctx)
    try:
        run_command(ctx, commands.set_config, key, value)
    except ValueError as e:
        click.secho(str(e), fg="red")
        ctx.exit(1)
    click.secho(f"✓ {key} set to {value}", fg="green")


@main.command()
@click.option("--mode", type=click.Choice(MODE_CHOICES), help="Timer mode")
@click.option("--telegram-token", help="Telegram bot token (from @BotFather)")
@click.option("--telegram-chat-id", help="Telegram chat ID (from @userinfobot)")
@click.pass_context
def setup(
    ctx: click.Context,
    mode: Optional[str],
    telegram_token: Optional[str],
    telegram_chat_id: Optional[str],
) -> None:
    """Pick a timer mode and optional Telegram nudges."""
    app = get_app(ctx)
    settings = app.config

    print_header("🚽 Peemodoro Setup")

    if mode is None:
        mode = click.prompt(
            "Timer mode",
            type=click.Choice(MODE_CHOICES),
            default=settings.timer.mode.value,
        )

    print_subheader("Telegram nudges (optional, leave blank to skip)")
    if telegram_token is None:
        telegram_token = click.prompt(
            "Bot token", default=settings.telegram.bot_token, show_default=False
        )
    if telegram_chat_id is None:
        telegram_chat_id = click.prompt(
            "Chat ID", default=settings.telegram.chat_id, show_default=False
        )

    telegram = settings.telegram
    telegram.bot_token = telegram_token.strip()
    telegram.chat_id = telegram_chat_id.strip()
    telegram.enabled = missing_setting(telegram) is None

    if telegram.enabled:
        ok, detail = check_connection(telegram)
        click.secho(f"{'✓' if ok else '✗'} {detail}", fg="green" if ok else "red")
        if not ok and not click.confirm("Keep these Telegram settings anyway?", default=True):
            telegram.enabled = False

    # Saves the whole config file and mirrors the mode into the live state
    run_command(ctx, get_commands(ctx).set_config, "mode", mode)
    click.secho(f"\n✓ Ready in {MODE_NAMES[mode]}. Run 'peemodoro start'.", fg="green", bold=True)


# ============================================================================
# Background
# ============================================================================

@main.command()
@click.option("--interval", default=1.0, type=click.FloatRange(min=0.1), help="Seconds between ticks")
@click.pass_context
def watch(ctx: click.Context, interval: float) -> None:
    """Run the timer in this terminal and nudge when a break is due."""
    app = get_app(ctx)
    commands = PeemodoroCommands(app)
    notifier = TelegramNotifier(app.config.telegram)
    ticker = PeemodoroTimer(app.state_sync, clock=app.state_sync.clock)

    def on_urgency_change(level: int) -> None:
        click.echo(f"\n{render_statusline(app.state_sync.read(), app.config.display)}")
        if level >= 3:
            notifier.notify_break_reminder(level)

    def on_break_time(state) -> None:
        click.secho(f"\n🚽 Time for a break! ({format_time(state.timer.time_remaining)})", fg="red", bold=True)
        notifier.notify_break_reminder(4)
        try:
            commands.mark_break_reminder()
        except StateBusyError as e:
            click.secho(str(e), fg="yellow")

    def on_focus_expired(state) -> None:
        click.secho("\n🎯 Focus mode ended.", fg="blue")
        notifier.notify_focus_expired()

    def on_remote_change(state) -> None:
        if state.timer.status == TimerStatus.PAUSED:
            click.secho("\n⏸  Paused from another session", dim=True)

    ticker.on_urgency_change = on_urgency_change
    ticker.on_break_time = on_break_time
    ticker.on_focus_expired = on_focus_expired
    app.state_sync.watch(on_remote_change)

    click.echo("Watching timer. Press Ctrl+C to stop.")
    try:
        ticker.run(interval)
    finally:
        app.state_sync.unwatch()
    click.echo("\nStopped watching.")


@main.command(name="on-session-end")
@click.pass_context
def on_session_end(ctx: click.Context) -> None:
    """Credit work time when an editor session ends (hook target)."""
    credited = get_commands(ctx).end_session()
    logger.debug(f"Credited {credited}s focus time")


if __name__ == "__main__":
    main()
