"""Visitboard: accounts with visit counters and a shared public chat log."""

__version__ = "1.0.0"
