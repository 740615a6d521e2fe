# =============================================================================
# Reading Screen
# =============================================================================
# Full-screen view of one message. Escape (or q) goes back to the inbox.
# =============================================================================

from textual.app import ComposeResult
from textual.binding import Binding
from textual.screen import Screen
from textual.widgets import Footer, Header

from ectt.core.message import ParsedEmail
from ectt.ui.widgets.message_preview import MessagePreview


class ReadingScreen(Screen):
    """Shows a single message."""

    BINDINGS = [
        Binding("escape", "back", "Back"),
        Binding("q", "back", "Back", show=False),
    ]

    def __init__(self, email: ParsedEmail) -> None:
        super().__init__()
        self.email = email

    def compose(self) -> ComposeResult:
        yield Header()
        yield MessagePreview(id="message-preview")
        yield Footer()

    def on_mount(self) -> None:
        preview = self.query_one(MessagePreview)
        preview.show_message(self.email)
        preview.focus()

    def action_back(self) -> None:
        self.app.pop_screen()
