# =============================================================================
# SMTP Client
# =============================================================================
# Provides an async SMTP client for sending mail.
#
# Key responsibilities:
#   - Turning a PartialMessage into a real text/plain message
#   - Connecting with SSL/STARTTLS and authenticating (PLAIN or XOAUTH2)
#   - One token refresh + one resend when the server rejects an OAuth token
#
# A transport is bound to the credentials it was built with. After a refresh
# a new transport is built with the new token; it replaces the live one only
# once a send through it succeeds.
#
# Uses aiosmtplib for async operations.
# =============================================================================

import asyncio
import logging
from email.mime.text import MIMEText
from email.utils import formatdate, make_msgid

import aiosmtplib
import httpx

from ectt.core.account import SmtpConfig
from ectt.core.credentials import xoauth2_b64
from ectt.core.errors import AuthError, ParseError, ProtocolError
from ectt.core.message import AddressParseError, PartialMessage, parse_address
from ectt.core.retry import with_reauth

logger = logging.getLogger(__name__)


# 535: authentication credentials invalid
AUTH_REJECTED = 535

# Intermediate reply asking the client to continue a SASL exchange
_SASL_CONTINUE = 334
_AUTH_SUCCESS = 235


def is_auth_rejection(error: BaseException) -> bool:
    """True when an SMTP failure is the server refusing our credentials."""
    return (
        isinstance(error, aiosmtplib.SMTPResponseException)
        and error.code == AUTH_REJECTED
    )


def build_message(partial: PartialMessage, login: str) -> MIMEText:
    """
    Build the message to send from what the user typed.

    From is always the configured login. Bcc recipients only ever go to the
    envelope, never into the headers.

    Args:
        partial: The validated compose input.
        login: The SMTP login, used as the From address.

    Returns:
        A single-part text/plain UTF-8 message with Date and Message-ID set.

    Raises:
        AddressParseError: If the login is not an email address.
        MessageBuildError: If the message has no recipient at all.
    """
    from_addr = parse_address(login)

    if not partial.recipients:
        raise MessageBuildError("No recipients specified")

    msg = MIMEText(partial.body or "", "plain", "utf-8")
    msg["From"] = from_addr
    if partial.to:
        msg["To"] = partial.to
    if partial.cc:
        msg["Cc"] = ", ".join(partial.cc)
    msg["Subject"] = partial.subject or ""
    msg["Date"] = formatdate(localtime=True)
    msg["Message-ID"] = make_msgid(domain=from_addr.split("@")[1])
    msg["X-Mailer"] = "ectt"

    return msg


class SmtpTransport:
    """
    One way of reaching the SMTP server: host, security and credentials.

    The mechanism follows the credentials: OAuth uses AUTH XOAUTH2,
    passwords use AUTH PLAIN.

    Attributes:
        config: Send backend configuration.
        mechanism: "XOAUTH2" or "PLAIN".
    """

    def __init__(self, config: SmtpConfig, mechanism: str, secret: str) -> None:
        self.config = config
        self.mechanism = mechanism
        self._secret = secret

    @classmethod
    def for_config(cls, config: SmtpConfig) -> "SmtpTransport":
        """Build a transport bound to the config's current credentials."""
        if config.uses_oauth:
            return cls(config, "XOAUTH2", config.auth.access_token)
        return cls(config, "PLAIN", config.auth.secret)

    def _connection(self) -> aiosmtplib.SMTP:
        return aiosmtplib.SMTP(
            hostname=self.config.host,
            port=self.config.port,
            use_tls=self.config.security == "ssl",
            start_tls=self.config.security == "starttls",
            timeout=self.config.timeout,
        )

    async def send(self, message: MIMEText, recipients: list[str]) -> None:
        """
        Connect, authenticate, send and quit.

        aiosmtplib exceptions are left for the caller to classify.
        """
        smtp = self._connection()
        await smtp.connect()
        try:
            await self._authenticate(smtp)
            await smtp.send_message(message, recipients=recipients)
        finally:
            if smtp.is_connected:
                try:
                    await smtp.quit()
                except aiosmtplib.SMTPException as e:
                    logger.warning(f"Error during SMTP disconnect: {e}")
                    smtp.close()

    async def _authenticate(self, smtp: aiosmtplib.SMTP) -> None:
        login = self.config.login
        logger.debug(f"AUTH {self.mechanism} as {login}")

        if self.mechanism == "PLAIN":
            await smtp.auth_plain(login, self._secret)
            return

        response = await smtp.execute_command(
            b"AUTH", b"XOAUTH2", xoauth2_b64(login, self._secret).encode("ascii")
        )
        if response.code == _SASL_CONTINUE:
            # The server sent an error challenge; an empty line ends it
            response = await smtp.execute_command(b"")
        if response.code != _AUTH_SUCCESS:
            raise aiosmtplib.SMTPAuthenticationError(response.code, response.message)


class SMTPClient:
    """
    Async SMTP client for sending mail.

    Usage:
        >>> client = SMTPClient(config)
        >>> message_id = await client.send(PartialMessage.from_input(to="a@b.com"))

    Attributes:
        config: Send backend configuration. Its OAuth access token is
                refreshed in place when the server rejects it.
        transport: The live transport.
    """

    def __init__(
        self,
        config: SmtpConfig,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config
        self.transport = SmtpTransport.for_config(config)
        self._http_client = http_client

    async def send(self, partial: PartialMessage) -> str:
        """
        Send a message.

        Returns:
            Message-ID of the sent message.

        Raises:
            AddressParseError: The configured login is not an address.
            MessageBuildError: The message could not be built.
            RefreshError: The OAuth refresh failed.
            AuthRejectedAfterRetry: Rejected again after a refresh.
            TransportError: Any other SMTP or network failure.
        """
        message = build_message(partial, self.config.login)
        recipients = partial.recipients

        attempts = 0
        rebuilt: SmtpTransport | None = None

        async def attempt() -> None:
            nonlocal attempts
            attempts += 1
            await (rebuilt or self.transport).send(message, recipients)

        async def rebuild() -> None:
            nonlocal rebuilt
            rebuilt = SmtpTransport.for_config(self.config)

        logger.info(f"Sending email to {', '.join(recipients)}")
        try:
            await with_reauth(
                attempt,
                self.config.auth,
                is_auth_rejection,
                on_refreshed=rebuild,
                http_client=self._http_client,
            )
        except aiosmtplib.SMTPResponseException as e:
            if attempts > 1 and is_auth_rejection(e):
                raise AuthRejectedAfterRetry(
                    f"SMTP authentication rejected after token refresh: {e.message}"
                ) from e
            raise TransportError(f"SMTP error {e.code}: {e.message}", code=e.code) from e
        except (aiosmtplib.SMTPException, asyncio.TimeoutError, OSError) as e:
            raise TransportError(f"Failed to send email: {e}") from e

        if rebuilt is not None:
            self.transport = rebuilt

        message_id = message["Message-ID"]
        logger.info(f"Email sent successfully: {message_id}")
        return message_id


# =============================================================================
# Exceptions
# =============================================================================

class MessageBuildError(ParseError):
    """Raised when a message cannot be assembled for sending."""
    pass


class TransportError(ProtocolError):
    """
    Raised when the SMTP server or the network fails a send.

    Attributes:
        code: SMTP reply code, if the server sent one.
    """

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code

    @property
    def transient(self) -> bool:
        """4xx replies may succeed if tried again later."""
        return self.code is not None and 400 <= self.code < 500


class AuthRejectedAfterRetry(AuthError):
    """Raised when the server rejects credentials even after a refresh."""
    pass


__all__ = [
    "SMTPClient",
    "SmtpTransport",
    "build_message",
    "is_auth_rejection",
    "AddressParseError",
    "MessageBuildError",
    "TransportError",
    "AuthRejectedAfterRetry",
]
