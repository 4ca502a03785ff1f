#!/usr/bin/env python3
"""ABOUTME: Orbit renderer tests - radii ordering, playhead geometry and frame rasterising.
ABOUTME: Calls the pure drawing helpers directly; no running Textual app required."""

import sys
from pathlib import Path

import pytest

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent))

from components.header_widget import HeaderWidget, status_line
from components.orbit_widget import PULSE_SECONDS, OrbitWidget, dot_position, orbit_radii
from components.voice_legend import VoiceLegend
from music.voices import VoiceRegistry
from testing_fakes import run_tests


class StubEngine:
    """Just enough of PhaseEngine for the widget's constructor and listeners."""

    def __init__(self):
        self.listeners = []

    def add_note_listener(self, listener):
        self.listeners.append(listener)

    def remove_note_listener(self, listener):
        self.listeners.remove(listener)


def voice_records():
    return VoiceRegistry().get_voices()


def test_longest_loop_gets_outermost_orbit():
    voices = voice_records()
    radii = orbit_radii(voices, 10.0)
    by_radius = sorted(voices, key=lambda v: radii[v["id"]], reverse=True)
    periods = [v["loop_period"] for v in by_radius]
    assert periods == sorted(periods, reverse=True)
    assert max(radii.values()) == pytest.approx(10.0)
    assert min(radii.values()) == pytest.approx(2.0)


def test_orbits_are_equally_spaced():
    radii = sorted(orbit_radii(voice_records(), 9.0).values())
    gaps = [b - a for a, b in zip(radii, radii[1:])]
    assert all(gap == pytest.approx(gaps[0]) for gap in gaps)


def test_single_voice_orbit():
    assert orbit_radii([{"id": 4, "loop_period": 10.0}], 6.0) == {4: 6.0}
    assert orbit_radii([], 6.0) == {}


def test_phase_zero_sits_on_playhead():
    assert dot_position(0.0, 5.0, (20.0, 10.0)) == (20, 5)


def test_quarter_phase_positions():
    center = (20.0, 10.0)
    # Phase runs clockwise on screen: a quarter turn lands to the right
    assert dot_position(0.25, 5.0, center) == (30, 10)
    assert dot_position(0.5, 5.0, center) == (20, 15)
    assert dot_position(0.75, 5.0, center) == (10, 10)


def test_frame_has_requested_size():
    widget = OrbitWidget(StubEngine())
    voices = voice_records()
    phases = {v["id"]: 0.3 for v in voices}
    frame = widget.build_frame(50, 20, voices, phases)
    lines = frame.plain.split("\n")
    assert len(lines) == 20
    assert all(len(line) == 50 for line in lines)


def test_all_voices_aligned_on_playhead():
    widget = OrbitWidget(StubEngine())
    voices = voice_records()
    phases = {v["id"]: 0.0 for v in voices}
    lines = widget.build_frame(41, 21, voices, phases).plain.split("\n")
    column = [line[20] for line in lines]
    assert column.count("●") == 7


def test_pulsing_voice_is_highlighted():
    widget = OrbitWidget(StubEngine())
    voices = voice_records()
    phases = {v["id"]: 0.0 for v in voices}
    plain = widget.build_frame(41, 21, voices, phases, pulses={1: 1.0}).plain
    assert plain.count("◉") == 1
    assert plain.count("●") == 6


def test_pulses_follow_note_events_and_fade():
    engine = StubEngine()
    widget = OrbitWidget(engine)
    widget._on_note_start(2, 10.0)

    fresh = widget.pulsing_voices(10.0)
    assert fresh == {2: pytest.approx(1.0)}
    half = widget.pulsing_voices(10.0 + PULSE_SECONDS / 2)
    assert half[2] == pytest.approx(0.5)
    assert widget.pulsing_voices(10.0 + PULSE_SECONDS + 0.01) == {}
    # Scheduled ahead of now: not pulsing yet
    assert widget.pulsing_voices(9.9) == {}


def test_legend_lists_every_voice():
    voices = voice_records()
    offsets = [v["loop_period"] / 2 for v in voices]
    legend = VoiceLegend(voices, offsets)
    text = legend._build_legend(voices, offsets)
    lines = text.split("\n")
    assert len(lines) == 7
    assert "High A♭" in lines[0]
    assert "17.8s" in lines[0]
    assert all("start  50%" in line for line in lines)


def test_status_line_shows_transport_and_octave():
    assert "Playing" in status_line(True, -1)
    assert "octave -1" in status_line(True, -1)
    assert "Paused" in status_line(False, 2)
    assert "octave +2" in status_line(False, 2)


def test_boxed_title_is_centred_and_closed():
    box = HeaderWidget._create_boxed_title("2 / 1", 20).split("\n")
    assert len(box) == 3
    assert len({len(line) for line in box}) == 1
    assert box[1].startswith("║") and box[1].endswith("║")
    assert "2 / 1" in box[1]


def main():
    return run_tests("ORBIT WIDGET", [
        test_longest_loop_gets_outermost_orbit,
        test_orbits_are_equally_spaced,
        test_single_voice_orbit,
        test_phase_zero_sits_on_playhead,
        test_quarter_phase_positions,
        test_frame_has_requested_size,
        test_all_voices_aligned_on_playhead,
        test_pulsing_voice_is_highlighted,
        test_pulses_follow_note_events_and_fade,
        test_legend_lists_every_voice,
        test_status_line_shows_transport_and_octave,
        test_boxed_title_is_centred_and_closed,
    ])


if __name__ == "__main__":
    sys.exit(main())
