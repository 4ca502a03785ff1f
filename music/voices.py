"""ABOUTME: Voice table for the seven looping tape voices.
ABOUTME: Holds loop periods, base pitches and display colours; owns no timing state."""

import math
from typing import Dict, Iterable, List, Optional

from music.errors import InvalidVoiceConfigError


# Base frequencies as played in the piece (before octave shift)
BASE_FREQUENCIES = {
    "A♭5": 830.61,
    "C5": 523.25,
    "D♭5": 554.37,
    "F5": 698.46,
    "E♭5": 622.25,
    "A♭4": 415.30,
    "F4": 349.23,
}

DEFAULT_OCTAVE_SHIFT = -1
MIN_OCTAVE_SHIFT = -3
MAX_OCTAVE_SHIFT = 2


def _is_positive_number(value) -> bool:
    # bool is an int subclass but never a valid period or frequency
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value) and value > 0


class VoiceSpec:
    """One looping voice: identity, loop period and pitch.

    Instances are immutable once built. Phase offsets are not stored here,
    they live in the engine's published PhaseState.
    """

    __slots__ = ("voice_id", "name", "loop_period", "base_pitch", "color")

    def __init__(self, voice_id: int, name: str, loop_period: float, base_pitch: float, color: str = "#ffffff"):
        if not _is_positive_number(loop_period):
            raise InvalidVoiceConfigError(f"Voice {name!r}: loop period must be a positive number, got {loop_period!r}")
        if not _is_positive_number(base_pitch):
            raise InvalidVoiceConfigError(f"Voice {name!r}: pitch must be a positive frequency, got {base_pitch!r}")
        object.__setattr__(self, "voice_id", voice_id)
        object.__setattr__(self, "name", name)
        object.__setattr__(self, "loop_period", float(loop_period))
        object.__setattr__(self, "base_pitch", float(base_pitch))
        object.__setattr__(self, "color", color)

    def __setattr__(self, key, value):
        raise AttributeError(f"VoiceSpec is immutable (tried to set {key!r})")

    def __repr__(self):
        return f"VoiceSpec({self.voice_id}, {self.name!r}, loop_period={self.loop_period}, base_pitch={self.base_pitch})"


def default_voices() -> List[VoiceSpec]:
    """The reference seven-voice instantiation, in display order."""
    return [
        VoiceSpec(0, "High A♭", 17.8, BASE_FREQUENCIES["A♭5"], "#E57373"),
        VoiceSpec(1, "C", 20.1, BASE_FREQUENCIES["C5"], "#FFB74D"),
        VoiceSpec(2, "D♭", 31.8, BASE_FREQUENCIES["D♭5"], "#FFF176"),
        VoiceSpec(3, "High F", 19.6, BASE_FREQUENCIES["F5"], "#AED581"),
        VoiceSpec(4, "E♭", 16.2, BASE_FREQUENCIES["E♭5"], "#4FC3F7"),
        VoiceSpec(5, "Low A♭", 21.3, BASE_FREQUENCIES["A♭4"], "#7986CB"),
        VoiceSpec(6, "Low F", 24.7, BASE_FREQUENCIES["F4"], "#BA68C8"),
    ]


class VoiceRegistry:
    """Ordered, read-mostly table of voices.

    Insertion order is display order. The only mutable setting is the
    octave shift, which scales every pitch by 2**shift and never touches
    loop periods.
    """

    def __init__(self, voices: Optional[Iterable[VoiceSpec]] = None, octave_shift: int = DEFAULT_OCTAVE_SHIFT):
        """
        Args:
            voices: Voice specs in display order (defaults to the seven reference voices)
            octave_shift: Octaves to shift every pitch by (negative = down)
        """
        self._voices = list(voices) if voices is not None else default_voices()
        if not self._voices:
            raise InvalidVoiceConfigError("At least one voice is required")

        self._index: Dict[int, int] = {}
        for position, voice in enumerate(self._voices):
            if voice.voice_id in self._index:
                raise InvalidVoiceConfigError(f"Duplicate voice id {voice.voice_id!r}")
            self._index[voice.voice_id] = position

        self.octave_shift = self._check_shift(octave_shift)

    @staticmethod
    def _check_shift(shift: int) -> int:
        if not MIN_OCTAVE_SHIFT <= int(shift) <= MAX_OCTAVE_SHIFT:
            raise InvalidVoiceConfigError(
                f"Octave shift must be in [{MIN_OCTAVE_SHIFT}, {MAX_OCTAVE_SHIFT}], got {shift}"
            )
        return int(shift)

    def __len__(self) -> int:
        return len(self._voices)

    def __iter__(self):
        return iter(self._voices)

    @property
    def voices(self) -> List[VoiceSpec]:
        return list(self._voices)

    def get(self, voice_id: int) -> VoiceSpec:
        """Look up a voice by id (KeyError if unknown)."""
        return self._voices[self._index[voice_id]]

    def position_of(self, voice_id: int) -> int:
        """Display position of a voice (its index in the offsets tuple)."""
        return self._index[voice_id]

    def set_octave_shift(self, shift: int) -> float:
        """Set the octave shift and return the resulting frequency multiplier."""
        self.octave_shift = self._check_shift(shift)
        return self.octave_multiplier()

    def octave_multiplier(self) -> float:
        return 2.0 ** self.octave_shift

    def pitch_of(self, voice: VoiceSpec) -> float:
        """Frequency actually sent to the synth for a voice."""
        return voice.base_pitch * self.octave_multiplier()

    def get_voices(self) -> List[dict]:
        """Ordered voice records for UI collaborators."""
        return [
            {
                "id": voice.voice_id,
                "name": voice.name,
                "loop_period": voice.loop_period,
                "pitch": self.pitch_of(voice),
                "color": voice.color,
            }
            for voice in self._voices
        ]
