# =============================================================================
# ectt Core Module
# =============================================================================
# Protocol-independent building blocks shared by every other package:
#   - Errors: the EcttError taxonomy and what counts as fatal
#   - Credentials: password / OAuth credentials and token refresh
#   - Account: IMAP and SMTP backend configuration
#   - Message: ParsedEmail and PartialMessage
#   - Commands: the envelopes exchanged with worker threads
#   - Channel / Worker: the thread harness behind both backends
# =============================================================================

from ectt.core.account import BackendConfig, ImapConfig, SmtpConfig
from ectt.core.channel import ChannelClosed, Receiver, Sender, channel
from ectt.core.commands import (
    Command,
    ErrorResponse,
    Inbox,
    ReadInbox,
    Response,
    SendMail,
    SendMailSuccess,
)
from ectt.core.credentials import Credentials, OAuthAuth, PasswordAuth, refresh
from ectt.core.errors import (
    AuthError,
    ChannelError,
    ConfigError,
    EcttError,
    ParseError,
    ProtocolError,
    RefreshError,
    is_fatal,
)
from ectt.core.message import AddressParseError, ParsedEmail, PartialMessage
from ectt.core.retry import with_reauth
from ectt.core.worker import BackendWorker

__all__ = [
    # Configuration
    "BackendConfig",
    "ImapConfig",
    "SmtpConfig",
    "Credentials",
    "OAuthAuth",
    "PasswordAuth",
    "refresh",
    "with_reauth",
    # Messages
    "ParsedEmail",
    "PartialMessage",
    # Commands
    "Command",
    "ReadInbox",
    "SendMail",
    "Response",
    "Inbox",
    "SendMailSuccess",
    "ErrorResponse",
    # Threads
    "channel",
    "Sender",
    "Receiver",
    "BackendWorker",
    # Errors
    "EcttError",
    "ConfigError",
    "AuthError",
    "RefreshError",
    "ProtocolError",
    "ParseError",
    "ChannelError",
    "ChannelClosed",
    "AddressParseError",
    "is_fatal",
]
