"""benodoro - pomodoro timer mirrored across devices."""

__version__ = "0.1.0"
