# =============================================================================
# Error Taxonomy
# =============================================================================
# Base exceptions shared by every layer of ectt. Protocol modules define
# their own, more specific exceptions at the bottom of each module; those
# always derive from one of the classes below so the worker harness and the
# front end can decide what is fatal without knowing about IMAP or SMTP.
#
#   EcttError
#     ├── ConfigError    - config file missing, unreadable or invalid
#     ├── AuthError      - rejected after any permitted refresh + retry
#     ├── RefreshError   - refresh-token exchange failed
#     ├── ProtocolError  - non-auth IMAP/SMTP wire failures
#     ├── ParseError     - malformed message or address (recovered locally)
#     └── ChannelError   - unexpected worker/front-end disconnection
# =============================================================================


class EcttError(Exception):
    """Base exception for every error raised by ectt."""
    pass


class ConfigError(EcttError):
    """Raised when there's an error loading or parsing configuration."""
    pass


class AuthError(EcttError):
    """Raised when a server rejects credentials for good."""
    pass


class RefreshError(EcttError):
    """Raised when an OAuth refresh-token grant fails."""
    pass


class ProtocolError(EcttError):
    """Raised on IMAP/SMTP failures that are not authentication related."""
    pass


class ParseError(EcttError):
    """Raised when a message or address cannot be parsed."""
    pass


class ChannelError(EcttError):
    """Raised when a worker or the front end disappears unexpectedly."""
    pass


def is_fatal(error: BaseException) -> bool:
    """
    Whether an error should end the whole session.

    Auth and refresh failures mean a backend can no longer talk to its
    server, and a broken channel means a worker is gone. Everything else
    (a bad address, a 4xx from the SMTP server) only fails one operation.
    """
    return isinstance(error, (AuthError, RefreshError, ChannelError))
