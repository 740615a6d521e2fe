# =============================================================================
# Message List Widget
# =============================================================================
# The inbox table.
#
# Features:
#   - Columns: Date, Author, Title
#   - Rows are appended page by page, in arrival order
#   - Keyboard navigation (the inbox screen watches the cursor to know when
#     the last row is reached)
# =============================================================================

from textual.binding import Binding
from textual.widgets import DataTable

from ectt.core.message import ParsedEmail
from ectt.ui.widgets.message_preview import escape


class MessageList(DataTable):
    """
    A table widget listing inbox messages.

    Usage:
        >>> table = MessageList()
        >>> table.append_messages(emails)
        >>> table.selected_email()
    """

    BINDINGS = [
        Binding("j", "cursor_down", "Next", show=False),
        Binding("k", "cursor_up", "Previous", show=False),
    ]

    # Column configuration (0 = flexible width)
    COLUMNS = [
        ("Date", 17),
        ("Author", 30),
        ("Title", 0),
    ]

    AUTHOR_WIDTH = 30

    def __init__(self, date_format: str = "%Y-%m-%d %H:%M", **kwargs) -> None:
        """
        Initialize the message list.

        Args:
            date_format: strftime format for the Date column.
            **kwargs: Additional arguments passed to DataTable.
        """
        super().__init__(**kwargs)
        self.date_format = date_format
        self._emails: list[ParsedEmail] = []

        # Configure table
        self.cursor_type = "row"
        self.zebra_stripes = True

    def on_mount(self) -> None:
        """Set up columns when widget is mounted."""
        for label, width in self.COLUMNS:
            if width > 0:
                self.add_column(label, width=width)
            else:
                self.add_column(label)

    def append_messages(self, emails: list[ParsedEmail]) -> None:
        """Add a page of messages below the existing rows."""
        for email in emails:
            self._emails.append(email)
            self.add_row(
                email.date.astimezone().strftime(self.date_format),
                escape(self._truncate(email.from_)),
                escape(email.subject),
            )

    def _truncate(self, text: str) -> str:
        if len(text) > self.AUTHOR_WIDTH:
            return text[: self.AUTHOR_WIDTH - 3] + "..."
        return text

    def email_at(self, index: int) -> ParsedEmail | None:
        """The message shown on a row, if the row exists."""
        if 0 <= index < len(self._emails):
            return self._emails[index]
        return None

    def selected_email(self) -> ParsedEmail | None:
        """The message under the cursor."""
        return self.email_at(self.cursor_row)

    @property
    def message_count(self) -> int:
        return len(self._emails)
