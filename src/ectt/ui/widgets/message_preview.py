# =============================================================================
# Message Preview Widget
# =============================================================================
# Displays one message: a header block (From, CC, BCC, Subject, Date) above
# the plain-text body, in a scrollable container.
#
# Message content is user controlled, so it is escaped before it reaches
# Rich markup.
# =============================================================================

from textual.app import ComposeResult
from textual.containers import ScrollableContainer
from textual.widgets import Static

from ectt.core.message import ParsedEmail


def escape(text: str) -> str:
    """Escape Rich markup in user content."""
    if not text:
        return ""
    return text.replace("[", "\\[")


class MessagePreview(ScrollableContainer):
    """
    A widget for displaying a message.

    Usage:
        >>> preview = MessagePreview()
        >>> preview.show_message(email)
    """

    DEFAULT_CSS = """
    MessagePreview {
        padding: 0 1;
    }

    MessagePreview > #preview-header {
        height: auto;
        margin-bottom: 1;
    }

    MessagePreview > #preview-body {
        height: auto;
    }
    """

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._current_message: ParsedEmail | None = None

    def compose(self) -> ComposeResult:
        yield Static("", id="preview-header")
        yield Static("", id="preview-body")

    def show_message(self, message: ParsedEmail) -> None:
        """Display a message, replacing whatever was shown."""
        self._current_message = message

        header_lines = [f"[bold]From:[/] {escape(message.from_)}"]
        if message.cc:
            header_lines.append(f"[bold]CC:[/] {escape(', '.join(message.cc))}")
        if message.bcc:
            header_lines.append(f"[bold]BCC:[/] {escape(', '.join(message.bcc))}")
        header_lines.extend([
            f"[bold]Subject:[/] {escape(message.subject)}",
            f"[bold]Date:[/] {message.display_date}",
            "─" * 50,
        ])

        self.query_one("#preview-header", Static).update("\n".join(header_lines))

        body = escape(message.body) if message.body else "[dim]No content[/]"
        self.query_one("#preview-body", Static).update(body)

        self.scroll_home()

    @property
    def current_message(self) -> ParsedEmail | None:
        """Get the currently displayed message."""
        return self._current_message
