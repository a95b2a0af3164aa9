"""Peemodoro - Pomodoro timer that reminds you to take bathroom and stretch breaks."""

__version__ = "1.0.0"
