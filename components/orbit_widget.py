"""ABOUTME: Orbit view of the seven voices, redrawn once per frame from sampled phases.
ABOUTME: Read-only with respect to the engine; pulses come from note-start events."""
import math
from collections import deque
from typing import Dict, List, Optional, Sequence, Tuple

from rich.text import Text
from textual.widgets import Static

# Terminal cells are roughly twice as tall as they are wide
CELL_ASPECT = 2.0
PLAYHEAD_ANGLE = -math.pi / 2   # straight up in screen coordinates
PULSE_SECONDS = 0.35


def orbit_radii(voices: Sequence[dict], max_radius: float) -> Dict[int, float]:
    """Equidistant orbit radii, longest loop outermost, innermost at 20% of max."""
    if not voices:
        return {}
    min_radius = max_radius * 0.2
    step = (max_radius - min_radius) / (len(voices) - 1) if len(voices) > 1 else 0.0
    by_length = sorted(voices, key=lambda v: v["loop_period"], reverse=True)
    return {voice["id"]: max_radius - index * step for index, voice in enumerate(by_length)}


def dot_position(phase: float, radius: float, center: Tuple[float, float],
                 playhead_angle: float = PLAYHEAD_ANGLE) -> Tuple[int, int]:
    """Cell (col, row) of a voice dot. Phase 0 sits on the playhead."""
    angle = phase * 2 * math.pi + playhead_angle
    cx, cy = center
    col = cx + math.cos(angle) * radius * CELL_ASPECT
    row = cy + math.sin(angle) * radius
    return int(round(col)), int(round(row))


class OrbitWidget(Static):
    """Concentric orbits, a fixed playhead and one dot per voice."""

    DEFAULT_CSS = """
    OrbitWidget {
        width: 100%;
        height: 1fr;
        min-height: 15;
        content-align: center middle;
    }
    """

    def __init__(self, engine, frame_rate: int = 30, **kwargs):
        super().__init__("", **kwargs)
        self.engine = engine
        self.frame_rate = frame_rate
        self._frame_timer = None
        self._note_events: deque = deque(maxlen=64)

    def on_mount(self) -> None:
        self.engine.add_note_listener(self._on_note_start)
        self.refresh_frame()

    def on_unmount(self) -> None:
        self.engine.remove_note_listener(self._on_note_start)
        self.stop_animation(redraw=False)

    def on_resize(self, event) -> None:
        self.refresh_frame()

    def _on_note_start(self, voice_id: int, time: float):
        # Scheduler thread: only touch the deque
        self._note_events.append((voice_id, time))

    def start_animation(self):
        if self._frame_timer is not None:
            return
        self._frame_timer = self.set_interval(1.0 / self.frame_rate, self.refresh_frame)

    def stop_animation(self, redraw: bool = True):
        if self._frame_timer is not None:
            self._frame_timer.stop()
            self._frame_timer = None
        self._note_events.clear()
        # One last frame so the idle arrangement shows
        if redraw:
            self.refresh_frame()

    def pulsing_voices(self, now: float) -> Dict[int, float]:
        """voice_id -> pulse strength (1 at the trigger, fading to 0)."""
        pulses = {}
        for voice_id, time in list(self._note_events):
            age = now - time
            if 0.0 <= age < PULSE_SECONDS:
                pulses[voice_id] = max(pulses.get(voice_id, 0.0), 1.0 - age / PULSE_SECONDS)
        return pulses

    def refresh_frame(self):
        """Sample every phase at one instant and redraw."""
        width = max(self.size.width, 1)
        height = max(self.size.height, 1)
        now = self.engine.current_time()
        phases = dict(self.engine.sample_phases(now))
        pulses = self.pulsing_voices(now) if self.engine.is_playing() else {}
        self.update(self.build_frame(width, height, self.engine.get_voices(), phases, pulses))

    def build_frame(self, width: int, height: int, voices: List[dict],
                    phases: Dict[int, float], pulses: Optional[Dict[int, float]] = None) -> Text:
        """Rasterise one frame into a Rich Text block of width x height cells."""
        pulses = pulses or {}
        chars = [[" "] * width for _ in range(height)]
        styles: List[List[Optional[str]]] = [[None] * width for _ in range(height)]

        def plot(col, row, char, style=None):
            if 0 <= row < height and 0 <= col < width:
                chars[row][col] = char
                styles[row][col] = style

        center = ((width - 1) / 2.0, (height - 1) / 2.0)
        max_radius = max(1.0, min(center[0] / CELL_ASPECT, center[1]) * 0.9)
        radii = orbit_radii(voices, max_radius)

        for voice in voices:
            radius = radii[voice["id"]]
            steps = max(24, int(radius * 2 * math.pi * CELL_ASPECT))
            for i in range(steps):
                col, row = dot_position(i / steps, radius, center)
                plot(col, row, "·", "#555555")

        top = int(round(center[1] - max_radius * 1.1))
        col = int(round(center[0]))
        for row in range(max(top, 0), int(round(center[1])) + 1):
            plot(col, row, "│", "bold white")

        for voice in voices:
            phase = phases.get(voice["id"], 0.0)
            radius = radii[voice["id"]]
            col, row = dot_position(phase, radius, center)
            strength = pulses.get(voice["id"], 0.0)
            if strength > 0.0:
                ring = "○" if strength < 0.5 else "◎"
                for dc, dr in ((-2, 0), (2, 0), (0, -1), (0, 1)):
                    plot(col + dc, row + dr, ring, voice["color"])
                plot(col, row, "◉", f"bold {voice['color']}")
            else:
                plot(col, row, "●", voice["color"])

        text = Text(no_wrap=True, overflow="crop")
        for row in range(height):
            for c in range(width):
                text.append(chars[row][c], style=styles[row][c])
            if row < height - 1:
                text.append("\n")
        return text
