# =============================================================================
# Backend Configuration
# =============================================================================
# Connection details for the two backends of the single configured account:
#
#   - ImapConfig: the "read" backend (receiving mail)
#   - SmtpConfig: the "send" backend (sending mail)
#
# Each carries its own Credentials. The configs are treated as immutable once
# loaded, with one exception: an OAuth access token is replaced in place when
# the owning worker refreshes it.
# =============================================================================

from dataclasses import dataclass

from ectt.core.credentials import Credentials


# Ports where the connection is TLS from the first byte
IMPLICIT_TLS_PORTS = (993, 465)


def default_security(port: int) -> str:
    """Pick "ssl" for implicit-TLS ports, "starttls" for everything else."""
    return "ssl" if port in IMPLICIT_TLS_PORTS else "starttls"


@dataclass
class BackendConfig:
    """
    Common connection details for a mail backend.

    Attributes:
        host: Server hostname (e.g., "imap.gmail.com").
        port: Server port. Standard ports:
              - IMAP: 993 (SSL/TLS) or 143 (STARTTLS)
              - SMTP: 465 (SSL/TLS) or 587 (STARTTLS)
        login: Username sent to the server. For SMTP this is also the
               From address of outgoing mail.
        auth: Password or OAuth credentials.
        security: "ssl" or "starttls". Derived from the port when empty.
        timeout: Network timeout in seconds.

    Example:
        >>> config = ImapConfig(
        ...     host="imap.example.com",
        ...     port=993,
        ...     login="user@example.com",
        ...     auth=PasswordAuth(secret="hunter2"),
        ... )
        >>> config.security
        'ssl'
    """

    host: str
    port: int
    login: str
    auth: Credentials
    security: str = ""
    timeout: float = 30

    def __post_init__(self) -> None:
        if not self.security:
            self.security = default_security(self.port)

    @property
    def uses_oauth(self) -> bool:
        """True when this backend authenticates with XOAUTH2."""
        return self.auth.is_oauth

    def __str__(self) -> str:
        return f"{self.login}@{self.host}:{self.port}"


@dataclass
class ImapConfig(BackendConfig):
    """The read backend (IMAP)."""
    pass


@dataclass
class SmtpConfig(BackendConfig):
    """The send backend (SMTP)."""
    pass
