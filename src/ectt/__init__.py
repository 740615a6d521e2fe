# =============================================================================
# ectt: Email Client in The Terminal
# =============================================================================
#
# ectt is a small terminal email client for one account: it reads the INBOX
# over IMAP and sends mail over SMTP, with either passwords or OAuth2
# (XOAUTH2) credentials.
#
# Features:
#   - `ectt login`: OAuth2 authorization-code flow with PKCE and a local
#     redirect listener
#   - Automatic access-token refresh with a single retry
#   - Paginated, newest-first inbox
#   - Compose and send plain-text mail
#   - XDG Base Directory compliant
#
# =============================================================================

__version__ = "0.1.0"
__app_name__ = "ectt"

# Main entry point - this is what gets called by the 'ectt' command
from ectt.app import main

__all__ = ["main", "__version__", "__app_name__"]
