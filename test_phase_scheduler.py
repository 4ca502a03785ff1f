#!/usr/bin/env python3
"""ABOUTME: Look-ahead scheduler tests - trigger instants, window boundary, pause/resume.
ABOUTME: Checks that every committed note lands exactly where the sampler shows phase 0."""

import math
import sys
import time
from pathlib import Path

import pytest

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent))

from music.errors import ClockUnavailableError, InvalidVoiceConfigError
from music.phase import playhead_distance
from music.phase_engine import PhaseEngine
from music.phase_offsets import PhaseOffsetGenerator
from music.voices import VoiceRegistry, VoiceSpec
from testing_fakes import ManualClock, ManualTimerFactory, RecordingSynth, run_tests


def make_engine(voices=None, offsets=None, clock=None, lookahead=0.5, tick=0.1, seed=7):
    clock = clock or ManualClock()
    synth = RecordingSynth()
    timers = ManualTimerFactory()
    engine = PhaseEngine(
        synth,
        clock=clock,
        registry=VoiceRegistry(voices, octave_shift=0),
        offset_generator=PhaseOffsetGenerator(seed=seed),
        offsets=offsets,
        lookahead_window=lookahead,
        tick_interval=tick,
        timer_factory=timers,
    )
    return engine, clock, synth, timers


def run_for(clock, timers, seconds, step=0.1):
    """Advance audio time in tick-sized steps, firing the scheduler after each."""
    for _ in range(int(round(seconds / step))):
        clock.advance(step)
        timers.fire()


def single_voice(period=20.1, pitch=523.25):
    return [VoiceSpec(0, "C", period, pitch)]


def test_first_and_second_trigger_instants():
    """Period 20.1, offset 5.0, origin 0: triggers at 15.1 then 35.2."""
    engine, clock, synth, timers = make_engine(single_voice(), offsets=[5.0])
    engine.start()
    assert engine.snapshot().origin == 0.0

    run_for(clock, timers, 40.0)

    times = synth.times_for(523.25)
    assert len(times) == 2
    assert times[0] == pytest.approx(15.1, abs=1e-9)
    assert times[1] == pytest.approx(35.2, abs=1e-9)


def test_phase_at_ten_seconds():
    engine, clock, synth, timers = make_engine(single_voice(), offsets=[5.0])
    engine.start()
    # elapsed 15 -> 1 - frac(15 / 20.1)
    assert engine.phase_of(0, 10.0) == pytest.approx(0.2537313432835821, abs=1e-9)


def test_trigger_just_outside_window_waits_one_tick():
    """Next trigger 0.55s ahead: not committed now, committed on the next tick."""
    engine, clock, synth, timers = make_engine(single_voice(), offsets=[20.1 - 0.55])
    engine.start()
    assert synth.notes == []

    clock.advance(0.1)
    timers.fire()
    assert len(synth.notes) == 1
    assert synth.notes[0].start_time == pytest.approx(0.55, abs=1e-9)


def test_triggers_match_sampler_zero_crossings():
    """For every voice, committed instants are exactly the phase-0 crossings."""
    engine, clock, synth, timers = make_engine()
    engine.start()
    origin = engine.snapshot().origin
    run_for(clock, timers, 200.0)
    window_end = clock.now() + engine.scheduler.lookahead_window

    for voice, offset in zip(engine.registry, engine.offsets()):
        times = synth.times_for(voice.base_pitch)
        expected = [
            origin + k * voice.loop_period - offset
            for k in range(1, 20)
            if origin + k * voice.loop_period - offset < window_end
        ]
        # No missed coverage, nothing committed twice
        assert times == pytest.approx(expected, abs=1e-9)
        for t in times:
            assert playhead_distance(engine.phase_of(voice.voice_id, t)) < 1e-9
        for earlier, later in zip(times, times[1:]):
            assert later - earlier == pytest.approx(voice.loop_period, abs=1e-9)
            midpoint = (earlier + later) / 2
            assert playhead_distance(engine.phase_of(voice.voice_id, midpoint)) > 0.4


def test_pause_then_start_uses_later_origin_and_does_not_replay():
    engine, clock, synth, timers = make_engine()
    engine.start()
    run_for(clock, timers, 30.0)
    first_origin = engine.snapshot().origin
    before = [n.start_time for n in synth.notes]
    in_flight = engine.scheduler.in_flight()

    engine.pause()
    assert not engine.is_playing()
    assert timers.live() == []
    assert synth.stopped == in_flight

    # Resume without the clock moving at all
    engine.start()
    second_origin = engine.snapshot().origin
    assert second_origin > first_origin
    assert second_origin >= 30.0 - 1e-9

    run_for(clock, timers, 30.0)
    after = [n.start_time for n in synth.notes[len(before):]]
    assert after
    assert all(t >= second_origin for t in after)
    assert not set(after) & set(before)


def test_start_while_running_is_noop():
    engine, clock, synth, timers = make_engine()
    assert engine.start() is True
    assert engine.start() is False
    assert len(timers.live()) == 1


def test_stale_timer_after_restart_is_ignored():
    engine, clock, synth, timers = make_engine()
    engine.start()
    stale = timers.live()[-1]
    engine.pause()
    engine.start()
    committed_before = len(synth.notes)

    stale.callback()

    assert len(timers.live()) == 1
    assert len(synth.notes) == committed_before


def test_pause_while_idle_is_noop():
    engine, clock, synth, timers = make_engine()
    assert engine.pause() is False
    assert synth.stopped == []


def test_rejected_trigger_skips_only_that_voice():
    voices = [VoiceSpec(0, "A", 10.0, 100.0), VoiceSpec(1, "B", 12.0, 200.0)]
    engine, clock, synth, timers = make_engine(voices, offsets=[9.7, 11.7])
    synth.rejected_pitches.add(100.0)

    engine.start()
    assert synth.rejections == 1
    assert synth.times_for(200.0) == [pytest.approx(0.3, abs=1e-9)]

    synth.rejected_pitches.clear()
    run_for(clock, timers, 12.0)
    # The rejected crossing is not retried; the next one plays
    assert synth.times_for(100.0) == [pytest.approx(10.3, abs=1e-9)]
    assert synth.times_for(200.0) == [pytest.approx(0.3, abs=1e-9), pytest.approx(12.3, abs=1e-9)]


def test_suspended_clock_pauses_ticking_then_resumes_with_same_origin():
    engine, clock, synth, timers = make_engine(single_voice(period=10.0, pitch=440.0), offsets=[0.0])
    engine.start()
    origin = engine.snapshot().origin

    run_for(clock, timers, 5.0)
    clock.available = False
    run_for(clock, timers, 10.0)
    assert synth.notes == []
    # Still re-arming while suspended
    assert len(timers.live()) == 1

    clock.available = True
    run_for(clock, timers, 10.0)
    assert engine.snapshot().origin == origin
    assert synth.times_for(440.0) == [pytest.approx(20.0, abs=1e-9)]


def test_start_with_unavailable_clock_raises_until_resumable():
    clock = ManualClock(available=False, can_resume=False)
    engine, clock, synth, timers = make_engine(clock=clock)

    with pytest.raises(ClockUnavailableError):
        engine.start()
    assert not engine.is_playing()
    assert timers.live() == []

    clock.can_resume = True
    assert engine.start() is True
    assert clock.resume_calls == 2


def test_note_listeners_see_every_commit_and_failures_are_contained():
    engine, clock, synth, timers = make_engine()
    heard = []

    def broken(voice_id, time):
        raise RuntimeError("listener bug")

    engine.add_note_listener(broken)
    engine.add_note_listener(lambda voice_id, time: heard.append((voice_id, time)))
    engine.start()
    run_for(clock, timers, 40.0)

    assert len(heard) == len(synth.notes)
    assert [t for _, t in heard] == [n.start_time for n in synth.notes]


def test_tick_must_be_shorter_than_window():
    with pytest.raises(InvalidVoiceConfigError):
        make_engine(lookahead=0.1, tick=0.1)
    with pytest.raises(InvalidVoiceConfigError):
        make_engine(lookahead=0.5, tick=0.0)


def test_long_run_does_not_drift():
    """After many loops the instants still sit on origin + k * period - offset."""
    engine, clock, synth, timers = make_engine(single_voice(period=0.7, pitch=330.0), offsets=[0.25])
    engine.start()
    run_for(clock, timers, 300.0)
    times = synth.times_for(330.0)
    assert len(times) > 400
    for k, t in enumerate(times, start=1):
        assert math.isclose(t, k * 0.7 - 0.25, abs_tol=1e-6)


def test_default_timer_ticks_on_its_own_and_stops_cleanly():
    """No injected timer factory: the daemon threading.Timer drives the passes."""
    clock = ManualClock()
    synth = RecordingSynth()
    engine = PhaseEngine(
        synth,
        clock=clock,
        registry=VoiceRegistry(single_voice(period=0.02, pitch=440.0), octave_shift=0),
        offsets=[0.0],
        lookahead_window=0.05,
        tick_interval=0.01,
    )
    engine.start()
    # First pass alone covers 0.02 and 0.04
    assert len(synth.notes) == 2

    clock.advance(1.0)
    time.sleep(0.1)
    assert len(synth.notes) > 2

    engine.pause()
    assert engine.scheduler._timer is None
    committed = len(synth.notes)
    clock.advance(1.0)
    time.sleep(0.05)
    assert len(synth.notes) == committed


def main():
    return run_tests("LOOK-AHEAD SCHEDULER", [
        test_first_and_second_trigger_instants,
        test_phase_at_ten_seconds,
        test_trigger_just_outside_window_waits_one_tick,
        test_triggers_match_sampler_zero_crossings,
        test_pause_then_start_uses_later_origin_and_does_not_replay,
        test_start_while_running_is_noop,
        test_stale_timer_after_restart_is_ignored,
        test_pause_while_idle_is_noop,
        test_rejected_trigger_skips_only_that_voice,
        test_suspended_clock_pauses_ticking_then_resumes_with_same_origin,
        test_start_with_unavailable_clock_raises_until_resumable,
        test_note_listeners_see_every_commit_and_failures_are_contained,
        test_tick_must_be_shorter_than_window,
        test_long_run_does_not_drift,
        test_default_timer_ticks_on_its_own_and_stops_cleanly,
    ])


if __name__ == "__main__":
    sys.exit(main())
