# =============================================================================
# Inbox Screen
# =============================================================================
# The first screen: the inbox table with a status line.
#
#   - Enter opens the highlighted message in the reading screen
#   - Reaching the last row asks the app for the next page
#   - c opens the compose screen
# =============================================================================

from textual.app import ComposeResult
from textual.binding import Binding
from textual.screen import Screen
from textual.widgets import DataTable, Footer, Header, Static

from ectt.core.message import ParsedEmail
from ectt.ui.screens.compose import ComposeScreen
from ectt.ui.screens.reading import ReadingScreen
from ectt.ui.widgets.message_list import MessageList


class InboxScreen(Screen):
    """
    The inbox view.

    Keybindings:
        - j/k or arrows: Navigate
        - Enter: Read message
        - c: Compose
        - q: Quit
    """

    BINDINGS = [
        Binding("c", "compose", "Compose"),
        Binding("q", "quit", "Quit"),
    ]

    CSS = """
    #message-list {
        height: 1fr;
    }

    #status-line {
        height: 1;
        background: $surface-darken-2;
        color: $text-muted;
        padding: 0 1;
    }
    """

    def __init__(self, date_format: str = "%Y-%m-%d %H:%M") -> None:
        super().__init__()
        self._date_format = date_format
        self._loading = False

    def compose(self) -> ComposeResult:
        yield Header()
        yield MessageList(date_format=self._date_format, id="message-list")
        yield Static("", id="status-line")
        yield Footer()

    def on_mount(self) -> None:
        self.query_one(MessageList).focus()
        self._update_status()

    # -------------------------------------------------------------------------
    # Called by the app
    # -------------------------------------------------------------------------

    def add_emails(self, emails: list[ParsedEmail]) -> None:
        """Append a page of messages and clear the loading state."""
        table = self.query_one(MessageList)
        table.append_messages(emails)
        self.set_loading(False)

    def set_loading(self, loading: bool) -> None:
        self._loading = loading
        self._update_status()

    def _update_status(self) -> None:
        table = self.query_one(MessageList)
        status = f"{table.message_count} messages"
        if self._loading:
            status += " - Loading..."
        self.query_one("#status-line", Static).update(status)

    # -------------------------------------------------------------------------
    # Events and actions
    # -------------------------------------------------------------------------

    def on_data_table_row_highlighted(self, event: DataTable.RowHighlighted) -> None:
        """Ask for the next page once the cursor sits on the last row."""
        if self.app.request_more(event.cursor_row):
            self.set_loading(True)

    def on_data_table_row_selected(self, event: DataTable.RowSelected) -> None:
        """Open the selected message."""
        email = self.query_one(MessageList).email_at(event.cursor_row)
        if email is not None:
            self.app.push_screen(ReadingScreen(email))

    def action_compose(self) -> None:
        self.app.push_screen(ComposeScreen())

    def action_quit(self) -> None:
        self.app.exit()
