# =============================================================================
# SMTP Module
# =============================================================================
# Handles sending mail via SMTP.
#
# Features:
#   - Connection with SSL/STARTTLS
#   - AUTH PLAIN for passwords, AUTH XOAUTH2 for OAuth
#   - One refresh-and-resend when an OAuth token is rejected
# =============================================================================

from ectt.smtp.client import (
    AuthRejectedAfterRetry,
    MessageBuildError,
    SMTPClient,
    SmtpTransport,
    TransportError,
)
from ectt.smtp.worker import SmtpWorker

__all__ = [
    "SMTPClient",
    "SmtpTransport",
    "SmtpWorker",
    "MessageBuildError",
    "TransportError",
    "AuthRejectedAfterRetry",
]
