"""Voice legend listing each loop's period, pitch and starting offset."""
from typing import List, Optional, Sequence

from textual.widgets import Static


class VoiceLegend(Static):
    """One line per voice in display order."""

    DEFAULT_CSS = """
    VoiceLegend {
        width: auto;
        height: auto;
        padding: 0 2;
        color: $text-muted;
    }
    """

    def __init__(self, voices: List[dict], offsets: Sequence[Optional[float]], **kwargs):
        super().__init__(self._build_legend(voices, offsets), **kwargs)

    def _build_legend(self, voices: List[dict], offsets: Sequence[Optional[float]]) -> str:
        lines = []
        for voice, offset in zip(voices, offsets):
            position = 0.0 if offset is None else offset / voice["loop_period"]
            lines.append(
                f"[{voice['color']}]●[/] {voice['name']:<8} "
                f"{voice['loop_period']:>5.1f}s  {voice['pitch']:>7.2f} Hz  "
                f"start {position * 100:>3.0f}%"
            )
        return "\n".join(lines)

    def update_voices(self, voices: List[dict], offsets: Sequence[Optional[float]]):
        """Redraw after a regenerate or octave change."""
        self.update(self._build_legend(voices, offsets))
