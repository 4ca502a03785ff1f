"""ABOUTME: The player mode: orbit view, voice legend and transport keybinds.
ABOUTME: Talks to the PhaseEngine only; never touches scheduling state directly."""
import logging

from textual.binding import Binding
from textual.containers import Center, Vertical

from components.header_widget import HeaderWidget, status_line
from components.orbit_widget import OrbitWidget
from components.voice_legend import VoiceLegend
from music.errors import ClockUnavailableError, InvalidVoiceConfigError
from music.voices import MAX_OCTAVE_SHIFT, MIN_OCTAVE_SHIFT

logger = logging.getLogger(__name__)


class PhaseMode(Vertical):
    """Seven loops drifting against a fixed playhead."""

    DEFAULT_CSS = """
    PhaseMode:focus {
        border: heavy $accent;
    }
    PhaseMode {
        align: center top;
        padding: 0 1;
    }
    #voice-legend-row {
        height: auto;
        margin-top: 1;
    }
    """

    BINDINGS = [
        Binding("space", "toggle_playback", "Play/Pause", show=True),
        Binding("p", "toggle_playback", "Play/Pause", show=False),
        Binding("r", "regenerate", "Reshuffle", show=True),
        Binding("up", "octave_up", "Octave +", show=False),
        Binding("down", "octave_down", "Octave -", show=False),
        Binding("right_square_bracket", "volume_up", "Volume +", show=False),
        Binding("left_square_bracket", "volume_down", "Volume -", show=False),
    ]

    can_focus = True

    def __init__(self, engine, config_manager, synth=None, frame_rate: int = 30):
        super().__init__()
        self.engine = engine
        self.config_manager = config_manager
        self.synth = synth
        self.frame_rate = frame_rate

    def compose(self):
        yield HeaderWidget(title="2 / 1", status=self._status_text(self.engine.is_playing()))
        yield OrbitWidget(self.engine, frame_rate=self.frame_rate, id="orbits")
        with Center(id="voice-legend-row"):
            yield VoiceLegend(self.engine.get_voices(), self.engine.offsets(), id="voice-legend")

    def on_mount(self):
        self.engine.add_play_state_listener(self._on_play_state)
        self.focus()

    def on_unmount(self):
        self.engine.remove_play_state_listener(self._on_play_state)

    def _status_text(self, playing: bool) -> str:
        return status_line(playing, self.engine.registry.octave_shift)

    def _on_play_state(self, playing: bool):
        orbits = self.query_one("#orbits", OrbitWidget)
        if playing:
            orbits.start_animation()
        else:
            orbits.stop_animation()
        self.query_one(HeaderWidget).set_status(self._status_text(playing))

    def _refresh_legend(self):
        self.query_one("#voice-legend", VoiceLegend).update_voices(self.engine.get_voices(), self.engine.offsets())
        self.query_one("#orbits", OrbitWidget).refresh_frame()

    def _clock_failed(self, error: ClockUnavailableError):
        logger.warning("Cannot start playback: %s", error)
        self.app.notify(f"Audio unavailable: {error}. Press SPACE to retry.", severity="error", timeout=6)

    def action_toggle_playback(self):
        try:
            self.engine.toggle()
        except ClockUnavailableError as e:
            self._clock_failed(e)

    def action_regenerate(self):
        try:
            self.engine.regenerate()
        except ClockUnavailableError as e:
            self._clock_failed(e)
        else:
            self.app.notify("New arrangement generated!", timeout=2)
        # Offsets are swapped even when the restart failed
        self._refresh_legend()

    def _shift_octave(self, delta: int):
        shift = self.engine.registry.octave_shift + delta
        if not MIN_OCTAVE_SHIFT <= shift <= MAX_OCTAVE_SHIFT:
            return
        try:
            self.engine.set_octave_shift(shift)
        except ClockUnavailableError as e:
            self._clock_failed(e)
        except InvalidVoiceConfigError as e:
            logger.error("%s", e)
            return
        self.config_manager.set_octave_shift(shift)
        self._refresh_legend()
        self.query_one(HeaderWidget).set_status(self._status_text(self.engine.is_playing()))

    def action_octave_up(self):
        self._shift_octave(1)

    def action_octave_down(self):
        self._shift_octave(-1)

    def _change_volume(self, delta: float):
        if self.synth is None or not hasattr(self.synth, "set_master_volume"):
            return
        volume = max(0.0, min(1.0, self.config_manager.get_master_volume() + delta))
        self.synth.set_master_volume(volume)
        self.config_manager.set_master_volume(volume)
        self.app.notify(f"Volume {volume * 100:.0f}%", timeout=1)

    def action_volume_up(self):
        self._change_volume(0.05)

    def action_volume_down(self):
        self._change_volume(-0.05)
