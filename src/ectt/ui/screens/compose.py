# =============================================================================
# Compose Screen
# =============================================================================
# Screen for writing a new message.
#
# Features:
#   - To/CC/BCC fields (CC and BCC are comma separated)
#   - Subject line
#   - Text editor for the body
#
# Addresses are validated here, before anything reaches the SMTP worker.
# The send itself is asynchronous: the app reports back through sent() or
# send_failed() once the worker answers.
# =============================================================================

from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Grid, Horizontal
from textual.screen import Screen
from textual.widgets import Button, Footer, Header, Input, Label, Static, TextArea

from ectt.core.message import AddressParseError, PartialMessage


class ComposeScreen(Screen):
    """
    Screen for composing a message.

    Keybindings:
        - Ctrl+S: Send
        - Escape: Cancel
    """

    BINDINGS = [
        Binding("ctrl+s", "send", "Send"),
        Binding("escape", "cancel", "Cancel"),
    ]

    CSS = """
    #compose-form {
        grid-size: 2;
        grid-columns: 9 1fr;
        grid-rows: 3;
        height: auto;
        padding: 0 1;
    }

    #compose-form Label {
        padding-top: 1;
        text-style: bold;
    }

    #body-editor {
        height: 1fr;
        margin: 0 1;
    }

    #compose-bar {
        height: 3;
        padding: 0 1;
    }

    #compose-bar Button {
        margin-right: 2;
    }

    #send-status {
        width: 1fr;
        padding-top: 1;
        color: $warning;
    }
    """

    FIELDS = [
        ("To:", "to-input", "recipient@example.com"),
        ("CC:", "cc-input", "cc@example.com, other@example.com"),
        ("BCC:", "bcc-input", "bcc@example.com"),
        ("Subject:", "subject-input", "Subject"),
    ]

    def __init__(self) -> None:
        super().__init__()
        self._sending = False

    def compose(self) -> ComposeResult:
        """Address fields on a two-column grid, the editor below, buttons last."""
        yield Header()

        with Grid(id="compose-form"):
            for label, input_id, placeholder in self.FIELDS:
                yield Label(label)
                yield Input(id=input_id, placeholder=placeholder)

        yield TextArea("", id="body-editor")

        with Horizontal(id="compose-bar"):
            yield Button("Send", id="send-btn", variant="primary")
            yield Button("Cancel", id="cancel-btn")
            yield Static("", id="send-status")

        yield Footer()

    def on_mount(self) -> None:
        self.query_one("#to-input", Input).focus()

    def _update_status(self, text: str) -> None:
        self.query_one("#send-status", Static).update(text)

    def _set_sending(self, sending: bool) -> None:
        self._sending = sending
        self.query_one("#send-btn", Button).disabled = sending

    def build_message(self) -> PartialMessage:
        """
        Read the form into a PartialMessage.

        Raises:
            AddressParseError: If an address field is invalid.
        """
        return PartialMessage.from_input(
            to=self.query_one("#to-input", Input).value,
            cc=self.query_one("#cc-input", Input).value,
            bcc=self.query_one("#bcc-input", Input).value,
            subject=self.query_one("#subject-input", Input).value,
            body=self.query_one("#body-editor", TextArea).text,
        )

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "send-btn":
            self.action_send()
        elif event.button.id == "cancel-btn":
            self.action_cancel()

    def action_send(self) -> None:
        """Validate the form and hand the message to the SMTP worker."""
        if self._sending:
            return

        try:
            message = self.build_message()
        except AddressParseError as e:
            self.notify(str(e), severity="error")
            return

        if not message.recipients:
            self.notify("Please enter at least one recipient", severity="error")
            return

        if not self.app.send_mail(message):
            self.notify("A message is already being sent", severity="warning")
            return

        self._set_sending(True)
        self._update_status("Sending...")

    # -------------------------------------------------------------------------
    # Called by the app when the SMTP worker answers
    # -------------------------------------------------------------------------

    def sent(self) -> None:
        self._set_sending(False)
        self.app.pop_screen()

    def send_failed(self, reason: str) -> None:
        self._set_sending(False)
        self._update_status(f"Send failed: {reason}")

    def action_cancel(self) -> None:
        """Cancel and return to the inbox."""
        self.app.pop_screen()
