#!/usr/bin/env python3
"""Fases - generative phasing player - Main Entry Point."""
import argparse
import logging
import sys
from typing import Optional

from textual.app import App
from textual.binding import Binding
from textual.containers import Container
from textual.logging import TextualHandler
from textual.screen import Screen
from textual.widgets import Footer, Header, Static

from config_manager import ConfigManager
from components.confirmation_dialog import ConfirmationDialog
from modes.phase_mode import PhaseMode
from music.clock import MonotonicClock
from music.phase_engine import PhaseEngine
from music.phase_offsets import PhaseOffsetGenerator
from music.synth_engine import SilentSynth, SynthEngine
from music.voices import VoiceRegistry

logger = logging.getLogger(__name__)


class PhaseHelpBar(Static):
    """Keybind reminder shown under the player."""

    def render(self) -> str:
        return r"SPACE: Play/Pause | R: Reshuffle | ↑/↓: Octave | \[/\]: Volume | ESC: Quit"


class MainScreen(Screen):
    """Main screen: the player mode above a help bar."""

    CSS = """
    MainScreen {
        layout: vertical;
    }

    #content-area {
        height: 1fr;
        width: 100%;
        align: center middle;
    }

    #phase-help-bar {
        width: 100%;
        height: auto;
        text-align: center;
        color: $text-muted;
        border-top: solid $accent;
    }
    """

    BINDINGS = [
        Binding("escape", "quit_app", "Quit", show=True),
        Binding("q", "quit_app", "Quit", show=False),
    ]

    def __init__(self, app_context):
        super().__init__()
        self.app_context = app_context

    def compose(self):
        yield Header()
        with Container(id="content-area"):
            yield self.app_context["create_phase_mode"]()
        yield PhaseHelpBar(id="phase-help-bar")
        yield Footer()

    def action_quit_app(self):
        """Quit with confirmation."""
        def check_quit(result):
            if result:
                self.app.exit()

        engine = self.app_context["engine"]
        detail = "The loops are still playing." if engine.is_playing() else ""
        self.app.push_screen(ConfirmationDialog("Quit Fases?", detail=detail), check_quit)


class FasesApp(App):
    """Seven tape loops of different lengths, drifting in and out of phase."""

    VERSION = "1.0.0"

    def __init__(self, silent: bool = False, seed: Optional[int] = None, config_manager: Optional[ConfigManager] = None):
        super().__init__()
        self.title = f"Fases v{self.VERSION}"
        self.config_manager = config_manager or ConfigManager()
        self.silent = silent

        if silent:
            self.synth = SilentSynth()
            clock = MonotonicClock()
        else:
            self.synth = SynthEngine(master_volume=self.config_manager.get_master_volume())
            # Open the output stream early; a failure surfaces when play is pressed
            self.synth.warm_up()
            clock = self.synth

        self.engine = PhaseEngine(
            self.synth,
            clock=clock,
            registry=VoiceRegistry(octave_shift=self.config_manager.get_octave_shift()),
            offset_generator=PhaseOffsetGenerator(seed=seed),
            lookahead_window=self.config_manager.get_lookahead_window(),
            tick_interval=self.config_manager.get_tick_interval(),
        )

        self.app_context = {
            "engine": self.engine,
            "synth": self.synth,
            "config_manager": self.config_manager,
            "create_phase_mode": self._create_phase_mode,
        }

    def on_mount(self):
        self.sub_title = "visual only (silent)" if self.silent else "Music for Airports 2/1"
        for voice in self.engine.get_voices():
            logger.info("%s: %.1f second loop (%.2f Hz)", voice["name"], voice["loop_period"], voice["pitch"])
        self.push_screen(MainScreen(self.app_context))

    def _create_phase_mode(self):
        return PhaseMode(
            self.engine,
            self.config_manager,
            synth=self.synth,
            frame_rate=self.config_manager.get_frame_rate(),
        )

    def on_unmount(self):
        """Clean up on exit."""
        self.engine.close()
        self.synth.close()


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Generative phasing player: seven loops that never line up the same way twice.")
    parser.add_argument("--silent", action="store_true", help="visual only: no audio output, wall-clock timing")
    parser.add_argument("--seed", type=int, default=None, help="seed for the starting arrangement")
    parser.add_argument("--log-level", default="WARNING", choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        help="log level for the Textual devtools console")
    return parser.parse_args(argv)


def configure_logging(level: str):
    """Send log records to the Textual console instead of the terminal the TUI owns."""
    logging.basicConfig(level=getattr(logging, level), handlers=[TextualHandler()], force=True)


def main(argv=None):
    """Main entry point."""
    args = parse_args(argv)
    configure_logging(args.log_level)
    app = FasesApp(silent=args.silent, seed=args.seed)
    app.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
