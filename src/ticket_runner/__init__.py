"""Ticket runner: advance pipeline tickets by delegating each one to an agent CLI."""

__version__ = "0.1.0"
