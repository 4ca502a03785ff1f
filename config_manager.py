"""Configuration file management."""
import json
import logging
import math
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


class ConfigManager:
    """Manages application configuration.

    Phase offsets are deliberately absent: every session starts from a
    fresh arrangement.
    """

    def __init__(self, config_file: Optional[Path] = None):
        self.config_file = Path(config_file) if config_file else Path(__file__).parent / "config.json"
        self.config = self._load_config()

    def _load_config(self) -> dict:
        """Load configuration from file."""
        config = self._default_config()
        if self.config_file.exists():
            try:
                with open(self.config_file, 'r') as f:
                    config.update(json.load(f))
            except Exception as e:
                logger.warning("Could not read %s, using defaults: %s", self.config_file, e)
                return self._default_config()
        return config

    def _default_config(self) -> dict:
        """Return default configuration."""
        return {
            "octave_shift": -1,
            "master_volume": 0.7,
            "lookahead_window": 0.5,
            "tick_interval": 0.1,
            "frame_rate": 30,
        }

    def save_config(self):
        """Save configuration to file."""
        try:
            with open(self.config_file, 'w') as f:
                json.dump(self.config, f, indent=2)
        except Exception as e:
            logger.error("Error saving config: %s", e)

    # ── Voices ───────────────────────────────────────────────────

    def get_octave_shift(self) -> int:
        """Octave shift applied to every voice (default -1, clamped to [-3, 2])."""
        try:
            shift = int(self.config.get("octave_shift", -1))
        except (TypeError, ValueError):
            logger.warning("Ignoring invalid octave_shift %r", self.config.get("octave_shift"))
            return -1
        return max(-3, min(2, shift))

    def set_octave_shift(self, shift: int):
        """Persist the octave shift. Clamped to [-3, 2]."""
        self.config["octave_shift"] = int(max(-3, min(2, shift)))
        self.save_config()

    # ── Output ───────────────────────────────────────────────────

    def get_master_volume(self) -> float:
        return float(self.config.get("master_volume", 0.7))

    def set_master_volume(self, volume: float):
        """Persist master volume. Clamped to [0, 1]."""
        self.config["master_volume"] = round(max(0.0, min(1.0, float(volume))), 2)
        self.save_config()

    # ── Scheduling / rendering ───────────────────────────────────

    def _scheduler_timing(self) -> tuple:
        """(lookahead_window, tick_interval), or the defaults if the pair is unusable."""
        try:
            window = float(self.config.get("lookahead_window", 0.5))
            tick = float(self.config.get("tick_interval", 0.1))
        except (TypeError, ValueError):
            window, tick = -1.0, -1.0
        if not (0 < tick < window and math.isfinite(window)):
            logger.warning(
                "Invalid scheduler timing (lookahead_window=%r, tick_interval=%r), using 0.5 / 0.1",
                self.config.get("lookahead_window"), self.config.get("tick_interval"),
            )
            return 0.5, 0.1
        return window, tick

    def get_lookahead_window(self) -> float:
        return self._scheduler_timing()[0]

    def get_tick_interval(self) -> float:
        """Scheduler cadence, always shorter than the look-ahead window."""
        return self._scheduler_timing()[1]

    def get_frame_rate(self) -> int:
        """Render frames per second (clamped to [5, 60])."""
        try:
            rate = int(self.config.get("frame_rate", 30))
        except (TypeError, ValueError):
            return 30
        return max(5, min(60, rate))
