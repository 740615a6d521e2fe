# =============================================================================
# Command / Response Envelopes
# =============================================================================
# The only things that cross a thread boundary in ectt. The front end sends
# Commands to a backend worker; the worker answers every Command with
# exactly one Response, in order.
#
#   IMAP:  ReadInbox  ->  Inbox | ErrorResponse
#   SMTP:  SendMail   ->  SendMailSuccess | ErrorResponse
# =============================================================================

from dataclasses import dataclass, field
from typing import Union

from ectt.core.message import ParsedEmail, PartialMessage


@dataclass(frozen=True)
class ReadInbox:
    """Fetch `count` messages, skipping the `offset` most recent UIDs."""
    count: int
    offset: int = 0


@dataclass(frozen=True)
class SendMail:
    """Send a composed message."""
    message: PartialMessage


Command = Union[ReadInbox, SendMail]


@dataclass(frozen=True)
class Inbox:
    """A batch of messages, sorted by UID descending."""
    emails: list[ParsedEmail] = field(default_factory=list)


@dataclass(frozen=True)
class SendMailSuccess:
    """The last SendMail was accepted by the server."""
    pass


@dataclass(frozen=True)
class ErrorResponse:
    """The last command (or the worker's startup) failed."""
    error: Exception


Response = Union[Inbox, SendMailSuccess, ErrorResponse]
