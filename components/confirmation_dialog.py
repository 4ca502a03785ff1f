"""Quit prompt shown over the player."""
from textual.binding import Binding
from textual.containers import Vertical
from textual.screen import ModalScreen
from textual.widgets import Label


class ConfirmationDialog(ModalScreen[bool]):
    """Yes/no modal. Dismisses with True when the user confirms.

    An optional detail line sits under the question, e.g. to warn that
    the loops currently sounding will be cut off.
    """

    BINDINGS = [
        Binding("y", "answer(True)", "Yes", show=False),
        Binding("enter", "answer(True)", "Yes", show=False),
        Binding("n", "answer(False)", "No", show=False),
        Binding("escape", "answer(False)", "No", show=False),
    ]

    CSS = """
    ConfirmationDialog {
        align: center middle;
        background: $background 60%;
    }

    #quit-box {
        width: 46;
        height: auto;
        border: round $accent;
        background: $panel;
        padding: 1 3;
    }

    #quit-question {
        width: 100%;
        text-align: center;
        text-style: bold;
    }

    #quit-detail {
        width: 100%;
        text-align: center;
        color: $warning;
    }

    #quit-keys {
        width: 100%;
        text-align: center;
        color: $text-muted;
        margin-top: 1;
    }
    """

    def __init__(self, message: str = "Quit?", detail: str = ""):
        super().__init__()
        self.message = message
        self.detail = detail

    def compose(self):
        with Vertical(id="quit-box"):
            yield Label(self.message, id="quit-question")
            if self.detail:
                yield Label(self.detail, id="quit-detail")
            yield Label("y / enter: quit    n / esc: stay", id="quit-keys", markup=False)

    def action_answer(self, confirmed: bool):
        self.dismiss(confirmed)
