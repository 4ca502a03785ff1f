"""ABOUTME: Shared phase arithmetic for the scheduler and the renderer.
ABOUTME: One elapsed-time formula gives both trigger instants and per-frame phase."""

import math
from typing import Callable, List, NamedTuple, Optional, Tuple

from music.voices import VoiceRegistry, VoiceSpec


class PhaseState(NamedTuple):
    """Immutable snapshot of everything the two loops read.

    Writers build a new snapshot and swap the reference in one assignment,
    so a reader holding a snapshot sees either all old or all new offsets.
    """
    origin: Optional[float]
    playing: bool
    offsets: Tuple[Optional[float], ...]


def frac(x: float) -> float:
    """Fractional part, always in [0, 1) for finite x."""
    return x - math.floor(x)


def elapsed_in_loop(period: float, offset: float, origin: float, time: float) -> float:
    """How far the voice has travelled since its last reference crossing, in loops."""
    return (time - origin + offset) / period


def phase_of(period: float, offset: float, origin: float, time: float) -> float:
    """Phase of a voice at an absolute time, in [0, 1).

    0 means the voice sits on the playhead. The value decreases as time
    advances because the indicator travels against the direction of
    elapsed time.
    """
    phase = 1.0 - frac(elapsed_in_loop(period, offset, origin, time))
    # 1 - frac(k) is exactly 1.0 on a crossing
    if phase >= 1.0:
        return 0.0
    return phase


def resting_phase(period: float, offset: Optional[float]) -> float:
    """Phase shown while idle: the 'time = origin' arrangement."""
    return phase_of(period, offset or 0.0, 0.0, 0.0)


def next_crossing_index(period: float, offset: float, origin: float, now: float) -> int:
    """Loop index of the first reference crossing strictly after the current loop position."""
    return int(math.floor(elapsed_in_loop(period, offset, origin, now))) + 1


def crossing_instant(period: float, offset: float, origin: float, index: int) -> float:
    """Absolute time of a voice's index-th reference crossing after origin."""
    return origin + index * period - offset


def next_trigger_instant(period: float, offset: float, origin: float, now: float) -> float:
    """Smallest crossing instant at or after now, derived only from origin, offset and period."""
    return crossing_instant(period, offset, origin, next_crossing_index(period, offset, origin, now))


def playhead_distance(phase: float) -> float:
    """Distance of a phase from the playhead, in loop fractions (0 to 0.5)."""
    return min(phase, 1.0 - phase)


class PhaseSampler:
    """Pull-side view of the phase model, polled by the renderer every frame.

    Reads the engine's current PhaseState through state_source and never
    writes anything, so it is safe to call from the render loop while the
    scheduler is ticking elsewhere.
    """

    def __init__(self, registry: VoiceRegistry, state_source: Callable[[], PhaseState]):
        self.registry = registry
        self._state_source = state_source

    def _phase_from(self, state: PhaseState, voice: VoiceSpec, time: float) -> float:
        offset = state.offsets[self.registry.position_of(voice.voice_id)]
        if not state.playing or state.origin is None:
            return resting_phase(voice.loop_period, offset)
        return phase_of(voice.loop_period, offset or 0.0, state.origin, time)

    def phase_of(self, voice_id: int, time: float) -> float:
        """Phase of one voice at an absolute audio-clock time."""
        return self._phase_from(self._state_source(), self.registry.get(voice_id), time)

    def sample(self, time: float) -> List[Tuple[int, float]]:
        """(voice_id, phase) for every voice, all taken from a single snapshot."""
        state = self._state_source()
        return [(voice.voice_id, self._phase_from(state, voice, time)) for voice in self.registry]
