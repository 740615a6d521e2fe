# =============================================================================
# IMAP Module
# =============================================================================
# Reading the INBOX over IMAP:
#   - Connecting with SSL/STARTTLS
#   - LOGIN or AUTHENTICATE XOAUTH2, with one refresh-and-retry for OAuth
#   - Paginated UID FETCH of the newest messages
#   - Parsing raw messages into ParsedEmail
#
# This module uses aioimaplib; the worker runs it on its own thread's
# event loop.
# =============================================================================

from ectt.imap.client import (
    AuthenticatedState,
    IMAPAuthenticationError,
    IMAPCommandError,
    IMAPConnectionError,
    InvalidStateError,
    UnauthenticatedState,
    connect,
)
from ectt.imap.worker import ImapWorker

__all__ = [
    "connect",
    "UnauthenticatedState",
    "AuthenticatedState",
    "ImapWorker",
    "IMAPConnectionError",
    "IMAPCommandError",
    "IMAPAuthenticationError",
    "InvalidStateError",
]
