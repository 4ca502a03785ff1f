"""ABOUTME: Error types shared by the phase engine, scheduler and synth.
ABOUTME: Only ClockUnavailableError is meant to reach the user."""


class FasesError(Exception):
    """Base class for engine errors."""


class ClockUnavailableError(FasesError):
    """The audio clock is not running (no output device, or it failed to resume)."""


class TriggerRejectedError(FasesError):
    """The synth could not honour a note request, e.g. polyphony exhausted."""


class InvalidVoiceConfigError(FasesError, ValueError):
    """Bad voice or scheduler configuration. Raised at construction time."""
