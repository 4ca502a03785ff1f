"""ABOUTME: Look-ahead note scheduler running on the audio clock.
ABOUTME: Commits each voice's reference crossings into the synth shortly before they sound."""

import functools
import logging
import threading
from enum import Enum
from typing import Callable, List, NamedTuple, Optional

from music.clock import Clock
from music.errors import InvalidVoiceConfigError, TriggerRejectedError
from music.phase import PhaseState, crossing_instant, next_crossing_index
from music.voices import VoiceRegistry, VoiceSpec

logger = logging.getLogger(__name__)

DEFAULT_LOOKAHEAD_WINDOW = 0.5  # seconds of audio committed ahead of now
DEFAULT_TICK_INTERVAL = 0.1     # seconds between scheduling passes

NoteListener = Callable[[int, float], None]


class SchedulerState(Enum):
    IDLE = "idle"
    RUNNING = "running"


class NoteEvent(NamedTuple):
    """A committed trigger: which voice, when, and at what pitch."""
    voice_id: int
    time: float
    pitch: float


def daemon_timer(interval: float, callback: Callable[[], None]) -> threading.Timer:
    """Default re-arm timer: a one-shot daemon threading.Timer."""
    timer = threading.Timer(interval, callback)
    timer.daemon = True
    return timer


class LookAheadScheduler:
    """
    Pushes note triggers into the synth ahead of time.

    Every tick looks lookahead_window seconds into the future and commits
    any reference crossing that falls inside it. Crossing instants come
    from origin, offset and loop period alone (never from the time of the
    previous trigger), so the schedule cannot drift however long it runs.

    Re-arming is single-flight: the next timer is created only after the
    current pass has finished, and a stale timer from before a stop/start
    is ignored.
    """

    def __init__(
        self,
        registry: VoiceRegistry,
        clock: Clock,
        synth,
        state_source: Callable[[], PhaseState],
        lookahead_window: float = DEFAULT_LOOKAHEAD_WINDOW,
        tick_interval: float = DEFAULT_TICK_INTERVAL,
        timer_factory: Optional[Callable[[float, Callable[[], None]], object]] = None,
        lock: Optional[threading.RLock] = None,
    ):
        """
        Args:
            registry: Voice table (periods and pitches)
            clock: Audio clock the trigger times are expressed in
            synth: Collaborator with trigger_note(pitch, start_time) and stop_all(handles)
            state_source: Returns the current published PhaseState
            lookahead_window: How far ahead triggers may be committed (seconds)
            tick_interval: Cadence of scheduling passes, must be below lookahead_window
            timer_factory: Builds a one-shot timer with start()/cancel() (defaults to threading.Timer)
            lock: Lock shared with the writers of the PhaseState
        """
        if tick_interval <= 0 or lookahead_window <= 0:
            raise InvalidVoiceConfigError("Scheduler intervals must be positive")
        if tick_interval >= lookahead_window:
            raise InvalidVoiceConfigError(
                f"tick_interval ({tick_interval}) must be shorter than lookahead_window ({lookahead_window})"
            )

        self.registry = registry
        self.clock = clock
        self.synth = synth
        self.lookahead_window = float(lookahead_window)
        self.tick_interval = float(tick_interval)
        self._state_source = state_source
        self._timer_factory = timer_factory or daemon_timer
        self._lock = lock or threading.RLock()

        self.state = SchedulerState.IDLE
        self._timer = None
        self._generation = 0
        self._clock_suspended = False

        # Highest loop index committed per voice (display order); 0 = none yet
        self._committed: List[int] = [0] * len(registry)
        self._handles: list = []
        self._listeners: List[NoteListener] = []

    # ── Listeners ────────────────────────────────────────────────

    def add_listener(self, listener: NoteListener):
        """Register fn(voice_id, time) called for every committed note."""
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: NoteListener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    # ── Lifecycle ────────────────────────────────────────────────

    @property
    def is_running(self) -> bool:
        return self.state is SchedulerState.RUNNING

    def start(self) -> List[NoteEvent]:
        """Start ticking from the current PhaseState origin.

        Runs the first pass immediately and returns what it committed.
        Does nothing if already running.
        """
        with self._lock:
            if self.is_running:
                return []
            self.state = SchedulerState.RUNNING
            self._generation += 1
            self._committed = [0] * len(self.registry)
            self._clock_suspended = False
            try:
                return self.run_pass()
            finally:
                self._arm()

    def stop(self):
        """Cancel the pending re-arm and silence everything already handed to the synth."""
        with self._lock:
            if not self.is_running:
                return
            self.state = SchedulerState.IDLE
            self._generation += 1
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            handles, self._handles = self._handles, []
            try:
                self.synth.stop_all(handles)
            except Exception:
                logger.exception("Synth failed to stop %d scheduled notes", len(handles))

    def _arm(self):
        if not self.is_running:
            return
        timer = self._timer_factory(self.tick_interval, functools.partial(self._on_timer, self._generation))
        self._timer = timer
        timer.start()

    def _on_timer(self, generation: int):
        with self._lock:
            if generation != self._generation or not self.is_running:
                return
            self._timer = None
            try:
                self.run_pass()
            finally:
                self._arm()

    # ── Scheduling ───────────────────────────────────────────────

    def run_pass(self) -> List[NoteEvent]:
        """One scheduling pass over every voice. Returns the notes committed."""
        with self._lock:
            if not self.is_running:
                return []

            if not self.clock.is_available():
                if not self._clock_suspended:
                    logger.info("Audio clock suspended, holding scheduling until it resumes")
                    self._clock_suspended = True
                return []
            if self._clock_suspended:
                logger.info("Audio clock resumed, scheduling continues")
                self._clock_suspended = False

            state = self._state_source()
            if not state.playing or state.origin is None:
                return []

            now = self.clock.now()
            window_end = now + self.lookahead_window
            committed = []

            for position, voice in enumerate(self.registry):
                offset = state.offsets[position] or 0.0
                period = voice.loop_period
                index = max(
                    next_crossing_index(period, offset, state.origin, now),
                    self._committed[position] + 1,
                )
                instant = crossing_instant(period, offset, state.origin, index)
                while instant < window_end:
                    event = self._commit(voice, instant)
                    if event is not None:
                        committed.append(event)
                    # A rejected note is skipped, not retried
                    self._committed[position] = index
                    index += 1
                    instant = crossing_instant(period, offset, state.origin, index)

            self._prune_handles(now)
            logger.debug(
                "Scheduling pass at %.3f (window to %.3f): %d notes", now, window_end, len(committed)
            )
            return committed

    def _commit(self, voice: VoiceSpec, instant: float) -> Optional[NoteEvent]:
        pitch = self.registry.pitch_of(voice)
        try:
            handle = self.synth.trigger_note(pitch, instant)
        except TriggerRejectedError as e:
            logger.warning("Voice %s: note at %.3fs rejected by synth: %s", voice.name, instant, e)
            return None
        except Exception:
            logger.exception("Voice %s: synth failed to schedule note at %.3fs", voice.name, instant)
            return None

        if handle is not None:
            self._handles.append(handle)
        logger.debug("Scheduled note for voice %d (%s) at %.3fs", voice.voice_id, voice.name, instant)

        for listener in list(self._listeners):
            try:
                listener(voice.voice_id, instant)
            except Exception:
                logger.exception("Note listener %r failed", listener)
        return NoteEvent(voice.voice_id, instant, pitch)

    def _prune_handles(self, now: float):
        """Forget handles whose notes have fully finished sounding."""
        self._handles = [h for h in self._handles if getattr(h, "end_time", float("inf")) > now]

    def in_flight(self) -> list:
        """Handles of notes handed to the synth that may still be sounding."""
        return list(self._handles)

    def committed_index(self, voice_id: int) -> int:
        """Highest loop index committed for a voice since the last start."""
        return self._committed[self.registry.position_of(voice_id)]
