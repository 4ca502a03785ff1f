"""ABOUTME: Hand-driven clock, synth and timer used by the test scripts.
ABOUTME: Lets tests step audio time and scheduler ticks deterministically."""

import sys
import traceback
from pathlib import Path

# Add project root to path for imports when run as a script
sys.path.insert(0, str(Path(__file__).parent))

from music.clock import Clock
from music.errors import ClockUnavailableError, TriggerRejectedError


class ManualClock(Clock):
    """Audio clock whose time only moves when the test says so."""

    def __init__(self, start: float = 0.0, available: bool = True, can_resume: bool = True):
        self.time = start
        self.available = available
        self.can_resume = can_resume
        self.resume_calls = 0

    def now(self) -> float:
        return self.time

    def advance(self, seconds: float):
        self.time += seconds

    def is_available(self) -> bool:
        return self.available

    def resume(self):
        self.resume_calls += 1
        if not self.can_resume:
            raise ClockUnavailableError("gesture required")
        self.available = True


class FakeNote:
    def __init__(self, pitch, start_time):
        self.pitch = pitch
        self.start_time = start_time
        self.end_time = start_time + 3.5


class RecordingSynth:
    """Collects every trigger; can be told to reject pitches."""

    def __init__(self):
        self.notes = []
        self.stopped = []
        self.rejected_pitches = set()
        self.rejections = 0

    def trigger_note(self, pitch, start_time):
        if round(pitch, 2) in self.rejected_pitches:
            self.rejections += 1
            raise TriggerRejectedError("no free voice")
        note = FakeNote(pitch, start_time)
        self.notes.append(note)
        return note

    def stop_all(self, handles):
        self.stopped.extend(handles)

    def times_for(self, pitch):
        return [n.start_time for n in self.notes if abs(n.pitch - pitch) < 1e-6]


class ManualTimer:
    def __init__(self, interval, callback):
        self.interval = interval
        self.callback = callback
        self.started = False
        self.cancelled = False
        self.fired = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True


class ManualTimerFactory:
    """Stands in for threading.Timer; fire() runs the newest live timer."""

    def __init__(self):
        self.timers = []

    def __call__(self, interval, callback):
        timer = ManualTimer(interval, callback)
        self.timers.append(timer)
        return timer

    def live(self):
        return [t for t in self.timers if t.started and not t.cancelled and not t.fired]

    def fire(self):
        live = self.live()
        if not live:
            return False
        timer = live[-1]
        timer.fired = True
        timer.callback()
        return True


def run_tests(title, tests):
    """Script runner mirroring pytest for `python test_x.py`."""
    print("\n" + "=" * 60)
    print(title)
    print("=" * 60)
    failed = 0
    for test in tests:
        try:
            test()
            print(f"✓ {test.__name__}")
        except Exception:
            failed += 1
            print(f"✗ {test.__name__}")
            traceback.print_exc()
    print(f"\n{len(tests) - failed}/{len(tests)} passed")
    return 1 if failed else 0
