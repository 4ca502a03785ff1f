"""ABOUTME: Application-level phase engine tying voices, offsets, transport and scheduler together.
ABOUTME: The single object the UI and the renderer talk to; built once by the app root."""

import logging
import threading
from typing import Callable, List, Optional, Sequence, Tuple

from music.clock import Clock
from music.errors import ClockUnavailableError
from music.lookahead_scheduler import (
    DEFAULT_LOOKAHEAD_WINDOW,
    DEFAULT_TICK_INTERVAL,
    LookAheadScheduler,
    NoteListener,
)
from music.phase import PhaseSampler, PhaseState
from music.phase_offsets import PhaseOffsetGenerator
from music.transport import Transport
from music.voices import MAX_OCTAVE_SHIFT, MIN_OCTAVE_SHIFT, VoiceRegistry

logger = logging.getLogger(__name__)

PlayStateListener = Callable[[bool], None]


class PhaseEngine:
    """
    Owns the shared phase model and exposes it to both loops.

    Push side: the LookAheadScheduler commits notes into the synth and
    notifies note listeners. Pull side: the PhaseSampler answers phase
    queries from the renderer. Both read the same PhaseState snapshot
    published by the Transport, and every writer here holds one lock.
    """

    def __init__(
        self,
        synth,
        clock: Optional[Clock] = None,
        registry: Optional[VoiceRegistry] = None,
        offset_generator: Optional[PhaseOffsetGenerator] = None,
        offsets: Optional[Sequence[Optional[float]]] = None,
        lookahead_window: float = DEFAULT_LOOKAHEAD_WINDOW,
        tick_interval: float = DEFAULT_TICK_INTERVAL,
        timer_factory=None,
    ):
        """
        Args:
            synth: Note collaborator (trigger_note / stop_all); also the clock when clock is None
            clock: Clock source, defaults to the synth's own audio clock
            registry: Voice table, defaults to the seven reference voices
            offset_generator: Source of random offsets
            offsets: Explicit starting offsets (validated), drawn randomly if omitted
            lookahead_window: Scheduler look-ahead in seconds
            tick_interval: Scheduler cadence in seconds
            timer_factory: Scheduler re-arm timer factory (tests inject a manual one)
        """
        self.synth = synth
        self.clock = clock if clock is not None else synth
        self.registry = registry or VoiceRegistry()
        self.offset_generator = offset_generator or PhaseOffsetGenerator()
        self._lock = threading.RLock()
        self._play_state_listeners: List[PlayStateListener] = []

        # Offsets exist before playback so the renderer can show the arrangement
        initial = self.offset_generator.assign_offsets(self.registry, offsets)
        self.transport = Transport(self.clock, initial, lock=self._lock)
        self.scheduler = LookAheadScheduler(
            self.registry,
            self.clock,
            synth,
            self.transport.snapshot,
            lookahead_window=lookahead_window,
            tick_interval=tick_interval,
            timer_factory=timer_factory,
            lock=self._lock,
        )
        self.sampler = PhaseSampler(self.registry, self.transport.snapshot)
        self._prepare_synth(self.registry.octave_shift)

    def _prepare_synth(self, octave_shift: int):
        """Let a synth that renders tones do so before the lock is ever held."""
        prepare = getattr(self.synth, "prepare", None)
        if prepare is None or not MIN_OCTAVE_SHIFT <= octave_shift <= MAX_OCTAVE_SHIFT:
            return
        multiplier = 2.0 ** octave_shift
        prepare([voice.base_pitch * multiplier for voice in self.registry])

    # ── Queries ──────────────────────────────────────────────────

    def snapshot(self) -> PhaseState:
        return self.transport.snapshot()

    def is_playing(self) -> bool:
        return self.transport.is_playing()

    def get_voices(self) -> List[dict]:
        return self.registry.get_voices()

    def offsets(self) -> Tuple[Optional[float], ...]:
        return self.transport.snapshot().offsets

    def current_time(self) -> float:
        """Audio-clock time for renderers; falls back to the origin while the clock is down."""
        if self.clock.is_available():
            return self.clock.now()
        return self.transport.origin or 0.0

    def phase_of(self, voice_id: int, time: Optional[float] = None) -> float:
        """Phase of a voice in [0, 1) at an audio-clock time (now if omitted)."""
        if time is None:
            time = self.current_time()
        return self.sampler.phase_of(voice_id, time)

    def sample_phases(self, time: Optional[float] = None) -> List[Tuple[int, float]]:
        """Phases of every voice from one consistent snapshot."""
        if time is None:
            time = self.current_time()
        return self.sampler.sample(time)

    # ── Listeners ────────────────────────────────────────────────

    def add_note_listener(self, listener: NoteListener):
        self.scheduler.add_listener(listener)

    def remove_note_listener(self, listener: NoteListener):
        self.scheduler.remove_listener(listener)

    def add_play_state_listener(self, listener: PlayStateListener):
        if listener not in self._play_state_listeners:
            self._play_state_listeners.append(listener)

    def remove_play_state_listener(self, listener: PlayStateListener):
        if listener in self._play_state_listeners:
            self._play_state_listeners.remove(listener)

    def _notify_play_state(self, playing: bool):
        for listener in list(self._play_state_listeners):
            try:
                listener(playing)
            except Exception:
                logger.exception("Play state listener %r failed", listener)

    # ── Transport control ────────────────────────────────────────

    def _start(self) -> bool:
        if not self.transport.start():
            return False
        committed = self.scheduler.start()
        logger.info("Playback started for %d voices (%d notes in first window)", len(self.registry), len(committed))
        return True

    def _pause(self) -> bool:
        if not self.transport.is_playing():
            return False
        self.scheduler.stop()
        self.transport.stop()
        return True

    def start(self) -> bool:
        """Start playback. Raises ClockUnavailableError if the audio clock cannot run."""
        with self._lock:
            started = self._start()
        if started:
            self._notify_play_state(True)
        return started

    def pause(self) -> bool:
        """Stop playback, cancel pending scheduling and silence scheduled notes."""
        with self._lock:
            paused = self._pause()
        if paused:
            self._notify_play_state(False)
        return paused

    stop = pause

    def toggle(self) -> bool:
        """Toggle play/pause. Returns the new playing state."""
        if self.is_playing():
            self.pause()
        else:
            self.start()
        return self.is_playing()

    def regenerate(self) -> Tuple[Optional[float], ...]:
        """
        Re-roll every voice's offset.

        Pauses if playing, publishes the new offsets in one snapshot swap,
        then resumes with a new origin. Holding the lock throughout keeps a
        scheduler tick from running in between.
        """
        with self._lock:
            was_playing = self._pause()
            offsets = self.offset_generator.assign_offsets(
                self.registry, self.transport.snapshot().offsets, force_regenerate=True
            )
            self.transport.publish_offsets(offsets)
            logger.info("Generated new random arrangement")
            if was_playing:
                self._resume_after_change()
        return offsets

    def _resume_after_change(self):
        try:
            self._start()
        except ClockUnavailableError:
            # Listeners last heard "playing"; tell them it stopped
            self._notify_play_state(False)
            raise

    def set_octave_shift(self, shift: int) -> float:
        """Shift every voice by whole octaves, restarting playback if it was running."""
        self._prepare_synth(shift)
        with self._lock:
            was_playing = self._pause()
            multiplier = self.registry.set_octave_shift(shift)
            logger.info("Octave shift set to %d (multiplier %.2f)", shift, multiplier)
            if was_playing:
                self._resume_after_change()
        return multiplier

    def close(self):
        """Stop playback; the synth is closed by whoever created it."""
        self.pause()
