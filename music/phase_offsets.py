"""ABOUTME: Random phase offsets for each voice, computed independently of playback.
ABOUTME: Idempotent unless regeneration is forced, so audio and visuals share one arrangement."""

import logging
import random
from typing import Iterable, Optional, Sequence, Tuple

from music.errors import InvalidVoiceConfigError
from music.voices import VoiceSpec

logger = logging.getLogger(__name__)


def validate_offsets(voices: Sequence[VoiceSpec], offsets: Sequence[Optional[float]]) -> Tuple[Optional[float], ...]:
    """Check explicit offsets against their voices; None means 'not assigned yet'."""
    if len(offsets) != len(voices):
        raise InvalidVoiceConfigError(f"Expected {len(voices)} offsets, got {len(offsets)}")
    for voice, offset in zip(voices, offsets):
        if offset is None:
            continue
        if not 0.0 <= offset < voice.loop_period:
            raise InvalidVoiceConfigError(
                f"Voice {voice.name!r}: offset {offset!r} outside [0, {voice.loop_period})"
            )
    return tuple(offsets)


class PhaseOffsetGenerator:
    """Draws a uniform starting position inside each voice's loop."""

    def __init__(self, seed: Optional[int] = None):
        """
        Args:
            seed: Optional seed for reproducible arrangements (tests, --seed)
        """
        self._rng = random.Random(seed)

    def draw(self, voice: VoiceSpec) -> float:
        """One independent draw in [0, loop_period)."""
        position = self._rng.random()
        offset = position * voice.loop_period
        # position * period can round up to period itself
        if offset >= voice.loop_period:
            offset = 0.0
        return offset

    def assign_offsets(
        self,
        voices: Iterable[VoiceSpec],
        offsets: Optional[Sequence[Optional[float]]] = None,
        force_regenerate: bool = False,
    ) -> Tuple[Optional[float], ...]:
        """
        Give every voice a phase offset.

        Voices that already have an offset keep it unless force_regenerate
        is set. When nothing needs drawing the input tuple is returned as-is.

        Args:
            voices: Voices in display order
            offsets: Current offsets (same order), None entries are unassigned
            force_regenerate: Re-roll every voice

        Returns:
            Tuple of offsets in the same order as voices
        """
        voices = list(voices)
        if offsets is None:
            offsets = (None,) * len(voices)
        current = validate_offsets(voices, offsets)

        if not force_regenerate and all(offset is not None for offset in current):
            for voice, offset in zip(voices, current):
                logger.debug("Voice %s: keeping existing random offset %.2fs", voice.name, offset)
            if isinstance(offsets, tuple):
                return offsets
            return current

        assigned = []
        for voice, offset in zip(voices, current):
            if force_regenerate or offset is None:
                offset = self.draw(voice)
                logger.debug(
                    "Voice %s: random offset %.2fs (%.0f%% through its loop)",
                    voice.name, offset, 100.0 * offset / voice.loop_period,
                )
            assigned.append(offset)
        return tuple(assigned)
