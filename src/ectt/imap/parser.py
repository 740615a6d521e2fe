# =============================================================================
# IMAP Response Parsing
# =============================================================================
# Turns raw aioimaplib responses into ParsedEmail objects.
#
# aioimaplib returns a FETCH response as a flat list mixing text lines and
# literal payloads:
#
#   b'12 FETCH (UID 40 INTERNALDATE "17-Jul-2024 02:44:25 -0700" RFC822 {2231}'
#   bytearray(b'Return-Path: ...the whole message...')
#   b')'
#   b'13 FETCH (...'
#   ...
#   b'Fetch completed (0.002 + 0.000 secs).'
#
# We group the lines per message, pull UID and INTERNALDATE out of the text
# portions and hand the literal to the stdlib email parser.
#
# Broken messages never abort a batch: they are logged and skipped.
# =============================================================================

import email
import email.policy
import email.utils
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from email.message import Message as EmailMessage

from inscriptis import get_text

from ectt.core.errors import ParseError
from ectt.core.message import EPOCH, ParsedEmail

logger = logging.getLogger(__name__)


_FETCH_START = re.compile(rb"^\*?\s*\d+\s+FETCH\s*\(", re.IGNORECASE)
_LITERAL_MARKER = re.compile(rb"\{(\d+)\}\s*$")
_UID = re.compile(rb"\bUID\s+(\d+)", re.IGNORECASE)
_INTERNALDATE = re.compile(rb'\bINTERNALDATE\s+"([^"]+)"', re.IGNORECASE)

_MONTHS = {
    name: index
    for index, name in enumerate(
        ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
         "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"],
        start=1,
    )
}


@dataclass
class FetchedMessage:
    """One message worth of a FETCH response, before MIME parsing."""
    uid: int | None = None
    internal_date: datetime | None = None
    raw: bytes | None = None


# =============================================================================
# Window and SEARCH
# =============================================================================

def fetch_window(max_uid: int, count: int, offset: int) -> tuple[int, int]:
    """
    Compute the UID range for a page of the inbox, newest first.

    The window slides down from the highest UID as `offset` grows:

        top    = max(max_uid - offset, 1)
        bottom = max(max_uid - offset - count, 1)

    Once offset reaches max_uid the window collapses to (1, 1). That is
    accepted as is, and the caller may receive UID 1 again.

    Returns:
        (bottom, top) - both inclusive, bottom <= top.
    """
    top = max(max_uid - offset, 1)
    bottom = max(max_uid - offset - count, 1)
    return bottom, top


def parse_search_response(lines: list) -> list[int]:
    """
    Extract UIDs from a UID SEARCH response.

    aioimaplib strips the "* SEARCH" prefix, leaving a line of numbers
    followed by the completion line. Lines that are not purely numeric
    are ignored.
    """
    uids: list[int] = []
    for line in lines:
        if isinstance(line, (bytes, bytearray)):
            line = bytes(line).decode("ascii", errors="replace")
        tokens = str(line).split()
        if tokens and tokens[0].upper() == "SEARCH":
            tokens = tokens[1:]
        if tokens and all(token.isdigit() for token in tokens):
            uids.extend(int(token) for token in tokens)
    return uids


# =============================================================================
# FETCH
# =============================================================================

def group_fetch_lines(lines: list) -> list[FetchedMessage]:
    """
    Group the flat FETCH response into one FetchedMessage per message.

    The literal following an RFC822 {N} marker is taken as the raw message;
    text before and after it is scanned for UID and INTERNALDATE.
    """
    groups: list[tuple[bytearray, list[bytes]]] = []
    expect_literal = False

    for item in lines:
        if isinstance(item, (bytes, bytearray)):
            data = bytes(item)
        else:
            data = str(item).encode("utf-8")

        if expect_literal and groups:
            groups[-1][1].append(data)
            expect_literal = False
            continue

        if _FETCH_START.match(data):
            groups.append((bytearray(), []))
        elif not groups:
            # Status lines before the first message
            continue

        meta = groups[-1][0]
        meta.extend(data + b" ")
        expect_literal = bool(_LITERAL_MARKER.search(data))

    messages = []
    for meta, literals in groups:
        fetched = FetchedMessage(raw=literals[0] if literals else None)

        uid_match = _UID.search(meta)
        if uid_match:
            fetched.uid = int(uid_match.group(1))

        date_match = _INTERNALDATE.search(meta)
        if date_match:
            fetched.internal_date = parse_internaldate(date_match.group(1).decode("ascii"))

        messages.append(fetched)

    return messages


def parse_internaldate(value: str) -> datetime | None:
    """
    Parse an IMAP INTERNALDATE ("17-Jul-1996 02:44:25 -0700") into UTC.

    Month names are matched by hand so the result does not depend on the
    process locale.
    """
    match = re.match(
        r"\s*(\d{1,2})-([A-Za-z]{3})-(\d{4})\s+(\d{2}):(\d{2}):(\d{2})\s+([+-])(\d{2})(\d{2})",
        value,
    )
    if not match:
        return None

    day, month_name, year, hour, minute, second, sign, tz_hours, tz_minutes = match.groups()
    month = _MONTHS.get(month_name.capitalize())
    if month is None:
        return None

    offset_minutes = int(tz_hours) * 60 + int(tz_minutes)
    if sign == "-":
        offset_minutes = -offset_minutes

    try:
        local = datetime(
            int(year), month, int(day), int(hour), int(minute), int(second),
            tzinfo=timezone(timedelta(minutes=offset_minutes)),
        )
    except ValueError:
        return None
    return local.astimezone(timezone.utc)


def parse_fetch_response(lines: list) -> list[ParsedEmail]:
    """
    Parse a whole FETCH response into ParsedEmail objects.

    Messages without a UID, without a body, or that fail to parse are
    logged and skipped. The result is in server order; sorting is the
    caller's job.
    """
    emails = []
    for fetched in group_fetch_lines(lines):
        if fetched.uid is None:
            logger.warning("FETCH item without UID, ignoring")
            continue
        if not fetched.raw:
            logger.warning(f"Message {fetched.uid} does not have a body, ignoring")
            continue
        try:
            emails.append(parse_email(fetched.uid, fetched.raw, fetched.internal_date))
        except ParseError as e:
            logger.error(f"Failed to parse message {fetched.uid}, ignoring: {e}")
    return emails


# =============================================================================
# MIME
# =============================================================================

def parse_email(
    uid: int,
    raw: bytes,
    internal_date: datetime | None = None,
) -> ParsedEmail:
    """
    Parse a raw RFC 822 message into a ParsedEmail.

    Args:
        uid: IMAP UID of the message.
        raw: The complete message bytes.
        internal_date: INTERNALDATE from the server, if it sent one.

    Raises:
        ParseError: If the message cannot be parsed at all.
    """
    try:
        msg = email.message_from_bytes(raw, policy=email.policy.default)
        if not msg.keys() and not msg.get_payload():
            raise ParseError("no headers and no content")

        return ParsedEmail(
            uid=uid,
            date=internal_date or _header_date(msg),
            from_=_get_from(msg),
            cc=_get_address_list(msg, "Cc", "Unknown CC"),
            bcc=_get_address_list(msg, "Bcc", "Unknown BCC"),
            subject=str(msg.get("Subject") or "") or "No subject",
            body=_get_body(msg),
        )
    except ParseError:
        raise
    except Exception as e:
        raise ParseError(str(e)) from e


def _header_date(msg: EmailMessage) -> datetime:
    """Date header as UTC, or epoch 0 if missing or unparsable."""
    value = msg.get("Date")
    if value:
        try:
            parsed = email.utils.parsedate_to_datetime(str(value))
        except (TypeError, ValueError):
            parsed = None
        if parsed is not None:
            if parsed.tzinfo is None:
                # No zone in the header, assume UTC
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed.astimezone(timezone.utc)

    logger.warning("No date was found, defaulting to the epoch")
    return EPOCH


def _render_address(address, unknown: str) -> str:
    """Render a header Address as "name (address)", "address" or "name"."""
    name = address.display_name or None
    addr_spec = address.addr_spec if address.username else None

    if name and addr_spec:
        return f"{name} ({addr_spec})"
    return addr_spec or name or unknown


def _addresses(msg: EmailMessage, header: str) -> tuple | None:
    value = msg.get(header)
    if value is None:
        return None
    return getattr(value, "addresses", ())


def _get_from(msg: EmailMessage) -> str:
    addresses = _addresses(msg, "From")
    if not addresses:
        return "No sender"
    return _render_address(addresses[0], "Unknown sender")


def _get_address_list(msg: EmailMessage, header: str, unknown: str) -> list[str]:
    addresses = _addresses(msg, header)
    if not addresses:
        return []
    return [_render_address(address, unknown) for address in addresses]


def _get_body(msg: EmailMessage) -> str:
    """
    Concatenate every inline text part.

    Plain-text parts are preferred; HTML parts are converted to text only
    when the message has no plain-text part at all.
    """
    plain: list[str] = []
    html: list[str] = []

    for part in msg.walk():
        if part.is_multipart() or part.is_attachment():
            continue
        if part.get_content_maintype() != "text":
            continue
        if part.get_content_subtype() == "html":
            html.append(_decode_part(part))
        else:
            plain.append(_decode_part(part))

    if plain:
        return "".join(plain)
    return "".join(get_text(fragment) for fragment in html)


def _decode_part(part: EmailMessage) -> str:
    """Decode a message part to string."""
    payload = part.get_payload(decode=True)
    if isinstance(payload, bytes):
        charset = part.get_content_charset() or "utf-8"
        try:
            return payload.decode(charset, errors="replace")
        except (LookupError, UnicodeDecodeError):
            return payload.decode("utf-8", errors="replace")
    return str(payload) if payload else ""
