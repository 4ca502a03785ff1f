"""Boxed title with a transport status line underneath."""
from textual.app import ComposeResult
from textual.containers import Center, Vertical
from textual.css.query import NoMatches
from textual.widgets import Static

PLAY_GLYPH = "▶"
PAUSE_GLYPH = "❚❚"


def status_line(playing: bool, octave_shift: int) -> str:
    """Markup for the line under the title, e.g. '▶ Playing · octave -1'."""
    if playing:
        return f"[bold green]{PLAY_GLYPH}[/] [italic]Playing  ·  octave {octave_shift:+d}[/]"
    return f"[dim]{PAUSE_GLYPH}[/] [italic #888888]Paused  ·  octave {octave_shift:+d}[/]"


class HeaderWidget(Vertical):
    """Title box for the player, with an updatable status line."""

    DEFAULT_CSS = """
    HeaderWidget {
        width: 100%;
        height: auto;
        align: center top;
    }

    HeaderWidget .title-box {
        width: auto;
        height: auto;
        color: $accent;
    }

    HeaderWidget #transport-status {
        width: 100%;
        text-align: center;
    }
    """

    def __init__(self, title: str, status: str = "", width: int = 40, **kwargs):
        super().__init__(**kwargs)
        self.title_text = title
        self.status_markup = status
        self.box_width = width

    def compose(self) -> ComposeResult:
        with Center():
            yield Static(self._create_boxed_title(self.title_text, self.box_width), classes="title-box")
        yield Static(self.status_markup, id="transport-status")

    @staticmethod
    def _create_boxed_title(title: str, width: int) -> str:
        """Title centred in a double-line box at least width cells wide."""
        inner = max(width - 2, len(title) + 4)
        return "\n".join([
            "╔" + "═" * inner + "╗",
            "║" + f" {title} ".center(inner) + "║",
            "╚" + "═" * inner + "╝",
        ])

    def set_status(self, markup: str):
        """Replace the status line (no-op before the widget is composed)."""
        self.status_markup = markup
        try:
            self.query_one("#transport-status", Static).update(markup)
        except NoMatches:
            pass
