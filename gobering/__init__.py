"""Gobering booking core: availability engine and waitlist lifecycle."""

__version__ = "0.1.0"
