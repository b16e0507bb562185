"""Calmirror - one-way Google Calendar mirroring."""

__version__ = "0.1.0"
