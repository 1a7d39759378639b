from __future__ import annotations


class SynesthesiaError(Exception):
    """Base error for the synesthesia library."""


class InvalidColorError(SynesthesiaError, ValueError):
    """Raised when a hue/lightness sample falls outside the color wheel."""


class UnknownModelError(SynesthesiaError, KeyError):
    """Raised when a model key is not in the registry."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the message readable.
        return str(self.args[0]) if self.args else ""


class AudioUnavailableError(SynesthesiaError):
    """Raised when no real-time audio backend or output device can be opened."""


class InvalidSettingsError(SynesthesiaError):
    """Raised when engine settings cannot be parsed or validated."""
