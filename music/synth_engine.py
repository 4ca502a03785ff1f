"""Synthesizer engine: renders scheduled electric-piano notes and provides the audio clock."""
import logging
import queue
import random as _rnd
import threading
from typing import Dict, Iterable, List, NamedTuple, Optional

import numpy as np

from music.clock import Clock
from music.errors import ClockUnavailableError, TriggerRejectedError

# Check for PyAudio availability
try:
    import pyaudio
    AUDIO_AVAILABLE = True
except ImportError:
    AUDIO_AVAILABLE = False
    pyaudio = None

logger = logging.getLogger(__name__)


class NoteHandle:
    """A note handed to the engine, pinned to an absolute sample position."""

    __slots__ = ("pitch", "start_time", "start_frame", "end_time", "samples", "position", "stopping", "done")

    def __init__(self, pitch: float, start_time: float, start_frame: int, samples: np.ndarray, sample_rate: int):
        self.pitch = pitch
        self.start_time = start_time
        self.start_frame = start_frame
        self.samples = samples
        self.end_time = start_time + len(samples) / sample_rate
        self.position = 0          # next sample of the note to render
        self.stopping = False      # fade out over the next buffer, then drop
        self.done = False

    def __repr__(self):
        return f"NoteHandle(pitch={self.pitch:.2f}, start_time={self.start_time:.3f})"


class SynthEngine(Clock):
    """
    Polyphonic note player driven by a PyAudio callback stream.

    The number of frames rendered so far is the audio clock: now() is
    frames / sample_rate and only advances while the stream runs. Notes
    are queued with an absolute start time on that clock and begin on the
    exact sample it maps to.
    """

    NOTE_DURATION = 3.0   # seconds, sustain before release tail
    NOTE_GAIN = 0.35
    ATTACK = 0.02
    RELEASE = 0.3
    TAIL = 0.5            # extra seconds rendered after the release point
    TONE_VARIANTS = 3     # detuned renders kept per pitch
    MAX_CACHED_PITCHES = 14

    def __init__(self, master_volume: float = 0.7, max_polyphony: int = 32):
        self.sample_rate = 48000
        self.buffer_size = 256
        self.max_polyphony = max_polyphony
        self.master_volume = max(0.0, min(1.0, master_volume))

        self.audio = None
        self.stream = None
        self.running = False

        self._frames_rendered = 0
        self._event_queue = queue.Queue()
        self._notes: List[NoteHandle] = []          # audio thread only
        self._live: set = set()                     # handles not yet finished
        self._live_lock = threading.Lock()
        self._tones: Dict[float, List[np.ndarray]] = {}
        self._tones_lock = threading.Lock()
        self._fade = np.linspace(1.0, 0.0, self.buffer_size, dtype=np.float32)

    # ── Clock ────────────────────────────────────────────────────

    def now(self) -> float:
        return self._frames_rendered / self.sample_rate

    def is_available(self) -> bool:
        return AUDIO_AVAILABLE and self.running

    def resume(self):
        """Open and start the output stream if it is not running yet."""
        if self.is_available():
            return
        if not AUDIO_AVAILABLE or pyaudio is None:
            raise ClockUnavailableError("PyAudio is not installed, no audio clock available")
        try:
            if self.audio is None:
                self.audio = pyaudio.PyAudio()
            if self.stream is None:
                default_output = self.audio.get_default_output_device_info()
                self.stream = self.audio.open(
                    format=pyaudio.paInt16, channels=2, rate=self.sample_rate,
                    output=True, output_device_index=default_output['index'],
                    frames_per_buffer=self.buffer_size, stream_callback=self._audio_callback, start=False
                )
            self.stream.start_stream()
            self.running = True
        except Exception as e:
            self.running = False
            raise ClockUnavailableError(f"Audio initialization failed: {e}") from e

    def warm_up(self):
        """Try to start the stream early so the first play is instant."""
        try:
            self.resume()
        except ClockUnavailableError as e:
            logger.warning("%s", e)

    # ── Note rendering ───────────────────────────────────────────

    def _render_note(self, frequency: float, duration: float, gain: float) -> np.ndarray:
        """Rhodes-like tone: fundamental, two decaying overtones and a slow chorus partial."""
        total = duration + self.TAIL
        t = np.arange(int(total * self.sample_rate), dtype=np.float64) / self.sample_rate

        # -5..+5 cents so repeated notes are not bit-identical
        detune = 2.0 ** (_rnd.uniform(-5.0, 5.0) / 1200.0)
        f = frequency * detune

        tone = np.sin(2 * np.pi * f * t)
        tone += 0.5 * np.sin(2 * np.pi * 2 * f * t) * np.exp(-4 * t)
        tone += 0.3 * np.sin(2 * np.pi * 3 * f * t) * np.exp(-6 * t)
        tone += 0.1 * np.sin(2 * np.pi * f * 1.0045 * t + 0.2 * np.sin(2 * np.pi * 4 * t))

        env = np.clip(t / self.ATTACK, 0.0, 1.0)
        env *= 0.9 + 0.1 * np.exp(-(np.maximum(t - self.ATTACK, 0.0)) / 0.1)
        release_start = duration - self.RELEASE
        env *= np.where(t < release_start, 1.0, np.exp(-(t - release_start) / (self.RELEASE / 3.0)))

        return (tone * env * gain * 0.5).astype(np.float32)

    def prepare(self, pitches: Iterable[float]):
        """Render the tones for these pitches now so trigger_note never has to."""
        for pitch in pitches:
            self._tone_for(pitch)

    def _tone_for(self, pitch: float) -> np.ndarray:
        key = round(pitch, 4)
        variants = self._tones.get(key)
        if variants is None:
            variants = [
                self._render_note(pitch, self.NOTE_DURATION, self.NOTE_GAIN)
                for _ in range(self.TONE_VARIANTS)
            ]
            with self._tones_lock:
                # Oldest pitches go first (octave changes leave old ones behind)
                while len(self._tones) >= self.MAX_CACHED_PITCHES:
                    self._tones.pop(next(iter(self._tones)))
                self._tones[key] = variants
        return _rnd.choice(variants)

    def trigger_note(self, pitch: float, start_time: float) -> NoteHandle:
        """
        Queue a note to start at an absolute audio-clock time.

        Raises:
            TriggerRejectedError: polyphony exhausted
        """
        if self.active_count() >= self.max_polyphony:
            raise TriggerRejectedError(f"Polyphony exhausted ({self.max_polyphony} notes)")
        samples = self._tone_for(pitch)
        start_frame = int(round(start_time * self.sample_rate))
        handle = NoteHandle(pitch, start_time, start_frame, samples, self.sample_rate)
        with self._live_lock:
            self._live.add(handle)
        self._event_queue.put({'type': 'note_on', 'note': handle})
        return handle

    def stop_all(self, handles: Optional[Iterable[NoteHandle]] = None):
        """Fade out the given handles (every live note if None), including ones not started yet."""
        if handles is None:
            with self._live_lock:
                handles = list(self._live)
        self._event_queue.put({'type': 'stop', 'notes': list(handles)})

    def active_count(self) -> int:
        with self._live_lock:
            return len(self._live)

    def _process_events(self):
        """Drain the event queue at the start of each buffer (audio thread)."""
        while True:
            try:
                e = self._event_queue.get_nowait()
            except queue.Empty:
                break
            if e['type'] == 'note_on':
                self._notes.append(e['note'])
            elif e['type'] == 'stop':
                for note in e['notes']:
                    note.stopping = True

    def _finish(self, note: NoteHandle):
        note.done = True
        with self._live_lock:
            self._live.discard(note)

    def render(self, frame_count: int) -> np.ndarray:
        """
        Mix the next frame_count frames (mono float32) and advance the clock.

        Called from the stream callback; tests call it directly.
        """
        self._process_events()
        block_start = self._frames_rendered
        mix = np.zeros(frame_count, dtype=np.float32)
        fade = self._fade if frame_count == self.buffer_size else np.linspace(1.0, 0.0, frame_count, dtype=np.float32)

        remaining = []
        for note in self._notes:
            if note.stopping:
                # Not started yet: drop silently. Sounding: one-buffer fade.
                if note.position > 0:
                    chunk = note.samples[note.position:note.position + frame_count]
                    mix[:len(chunk)] += chunk * fade[:len(chunk)]
                self._finish(note)
                continue

            if note.position == 0:
                lead = note.start_frame - block_start
                if lead >= frame_count:
                    remaining.append(note)
                    continue
                # A note queued after its start time plays from the block start
                dest = max(0, lead)
            else:
                dest = 0

            chunk = note.samples[note.position:note.position + (frame_count - dest)]
            mix[dest:dest + len(chunk)] += chunk
            note.position += len(chunk)
            if note.position >= len(note.samples):
                self._finish(note)
            else:
                remaining.append(note)

        self._notes = remaining
        self._frames_rendered = block_start + frame_count
        return mix * self.master_volume

    def _audio_callback(self, in_data, frame_count, time_info, status):
        try:
            mono = np.tanh(self.render(frame_count))
            out = np.empty(frame_count * 2, dtype=np.int16)
            pcm = np.clip(mono * 32767, -32767, 32767)
            out[0::2] = pcm
            out[1::2] = pcm
            return (out.tobytes(), pyaudio.paContinue)
        except Exception:
            self._frames_rendered += frame_count
            return (np.zeros(frame_count * 2, dtype=np.int16).tobytes(), pyaudio.paContinue)

    def set_master_volume(self, volume: float):
        self.master_volume = max(0.0, min(1.0, volume))

    def close(self):
        self.running = False
        if self.stream: self.stream.stop_stream(); self.stream.close()
        if self.audio: self.audio.terminate()
        self.stream = None
        self.audio = None


class SilentNote(NamedTuple):
    pitch: float
    start_time: float
    end_time: float


class SilentSynth:
    """Visual-only stand-in for --silent: accepts notes and never makes a sound."""

    def __init__(self):
        self.triggered = 0

    def trigger_note(self, pitch: float, start_time: float) -> SilentNote:
        self.triggered += 1
        return SilentNote(pitch, start_time, start_time + SynthEngine.NOTE_DURATION + SynthEngine.TAIL)

    def stop_all(self, handles=None):
        pass

    def close(self):
        pass
