# =============================================================================
# Message Models
# =============================================================================
# The two shapes mail takes inside ectt:
#
#   - ParsedEmail:    a message read from the INBOX, already reduced to the
#                     handful of fields the UI shows
#   - PartialMessage: what the user typed in the compose screen, validated
#                     but not yet turned into a real RFC 5322 message
#
# Neither model knows anything about IMAP or SMTP.
# =============================================================================

from dataclasses import dataclass, field
from datetime import datetime, timezone

from email_validator import EmailNotValidError, validate_email

from ectt.core.errors import ParseError


# Used when a message carries no usable date at all
EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


@dataclass
class ParsedEmail:
    """
    A message from the INBOX, as shown in the inbox table and reader.

    Attributes:
        uid: IMAP UID. Mailbox-scoped and monotonically increasing, so
             larger means newer.
        date: When the message arrived (UTC). Epoch 0 if unknown.
        from_: Rendered sender, e.g. "Jane (jane@example.com)".
        cc: Rendered CC recipients.
        bcc: Rendered BCC recipients (rarely present on received mail).
        subject: Subject line ("No subject" if missing).
        body: Concatenated text of every text part.
    """
    uid: int
    date: datetime = EPOCH
    from_: str = "No sender"
    cc: list[str] = field(default_factory=list)
    bcc: list[str] = field(default_factory=list)
    subject: str = "No subject"
    body: str = ""

    @property
    def display_date(self) -> str:
        """Date in local time, for table cells."""
        return self.date.astimezone().strftime("%Y-%m-%d %H:%M")


def parse_address(value: str) -> str:
    """
    Validate a single email address.

    Args:
        value: Raw user input, surrounding whitespace allowed.

    Returns:
        The normalized address.

    Raises:
        AddressParseError: If the address is not valid.
    """
    value = value.strip()
    try:
        # Syntax only, never hit DNS from the compose screen
        result = validate_email(value, check_deliverability=False)
    except EmailNotValidError as e:
        raise AddressParseError(f"Invalid address {value!r}: {e}") from e
    return result.normalized


def parse_addresses(value: str) -> list[str]:
    """
    Validate a comma-separated address list.

    An empty (or whitespace-only) string is an empty list. Every other
    entry must be a valid address, including empty entries between commas.
    """
    if not value.strip():
        return []
    return [parse_address(part) for part in value.split(",")]


@dataclass
class PartialMessage:
    """
    A message as entered in the compose screen.

    Addresses are validated on construction through from_input(); the
    From address is added later by the SMTP client (it is always the
    configured login).

    Attributes:
        to: Primary recipient, if any.
        cc: CC recipients.
        bcc: BCC recipients (envelope only, never written to headers).
        subject: Subject line, if any.
        body: Plain-text body, if any.
    """
    to: str | None = None
    cc: list[str] = field(default_factory=list)
    bcc: list[str] = field(default_factory=list)
    subject: str | None = None
    body: str | None = None

    @classmethod
    def from_input(
        cls,
        to: str = "",
        cc: str = "",
        bcc: str = "",
        subject: str = "",
        body: str = "",
    ) -> "PartialMessage":
        """
        Build a PartialMessage from raw text fields.

        Raises:
            AddressParseError: If any address field is invalid.
        """
        return cls(
            to=parse_address(to) if to.strip() else None,
            cc=parse_addresses(cc),
            bcc=parse_addresses(bcc),
            subject=subject or None,
            body=body or None,
        )

    @property
    def recipients(self) -> list[str]:
        """Every envelope recipient (To + CC + BCC)."""
        return ([self.to] if self.to else []) + self.cc + self.bcc


class AddressParseError(ParseError):
    """Raised when an email address cannot be parsed."""
    pass
