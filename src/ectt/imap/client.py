# =============================================================================
# IMAP Client
# =============================================================================
# An async IMAP client built on aioimaplib, modelled as two states:
#
#   connect(config) -> UnauthenticatedState
#       .authenticate() -> AuthenticatedState      (consumes the first state)
#           .read_inbox(count, offset) -> list[ParsedEmail]
#           .logout()
#
# Key responsibilities:
#   - Connection setup (implicit SSL or STARTTLS)
#   - LOGIN for passwords, AUTHENTICATE XOAUTH2 for OAuth
#   - One token refresh + one extra login when an OAuth login is rejected
#   - Paginated, newest-first reads of the INBOX
#
# Design notes:
#   - Only the authenticated state can read mail; there is no "logged in"
#     flag to forget to check
#   - Protocol failures are never retried; only authentication is
# =============================================================================

import asyncio
import logging
import ssl

import httpx
from aioimaplib import aioimaplib

from ectt.core.account import ImapConfig
from ectt.core.credentials import OAuthAuth
from ectt.core.errors import AuthError, ProtocolError
from ectt.core.message import ParsedEmail
from ectt.core.retry import with_reauth
from ectt.imap.parser import fetch_window, parse_fetch_response, parse_search_response

logger = logging.getLogger(__name__)


# Items requested for every message in a page
FETCH_ITEMS = "(UID INTERNALDATE RFC822)"

# Errors aioimaplib raises when the connection itself misbehaves
_CONNECTION_ERRORS = (
    asyncio.TimeoutError,
    aioimaplib.Abort,
    aioimaplib.CommandTimeout,
    aioimaplib.IncompleteRead,
    OSError,
)


class SaslProtocol(aioimaplib.IMAP4ClientProtocol):
    """
    aioimaplib's protocol, answering server challenges during AUTHENTICATE.

    A server rejecting an XOAUTH2 token (Gmail does this) first sends a
    `+ <base64 JSON error>` challenge and only says NO once the client
    replies with an empty line.
    """

    def _continuation(self, line: bytes) -> None:
        command = self.pending_sync_command
        if command is not None and command.name == "AUTHENTICATE":
            logger.debug(f"AUTHENTICATE challenge: {line!r}")
            command.append_to_resp(line)
            self.transport.write(b"\r\n")
            return
        super()._continuation(line)


class ImapClient(aioimaplib.IMAP4):
    """
    An aioimaplib client using SaslProtocol, with STARTTLS support.

    Pass an ssl_context for implicit TLS (port 993).
    """

    def create_client(self, host, port, loop, conn_lost_cb=None, ssl_context=None) -> None:
        local_loop = loop if loop is not None else asyncio.get_running_loop()
        self.protocol = SaslProtocol(local_loop, conn_lost_cb)
        self._client_task = local_loop.create_task(
            local_loop.create_connection(lambda: self.protocol, host, port, ssl=ssl_context)
        )

    async def starttls(self, ssl_context: ssl.SSLContext | None = None):
        """Upgrade the plain connection to TLS and refresh capabilities."""
        protocol = self.protocol
        command = aioimaplib.Command("STARTTLS", protocol.new_tag(), loop=protocol.loop)
        response = await asyncio.wait_for(protocol.execute(command), self.timeout)
        if response.result != "OK":
            return response

        loop = asyncio.get_running_loop()
        protocol.transport = await loop.start_tls(
            protocol.transport,
            protocol,
            ssl_context or ssl.create_default_context(),
            server_hostname=self.host,
        )
        await asyncio.wait_for(protocol.capability(), self.timeout)
        return response


async def connect(config: ImapConfig) -> "UnauthenticatedState":
    """
    Open a connection to the IMAP server and wait for its greeting.

    Args:
        config: Read backend configuration.

    Returns:
        A connected, not yet authenticated state.

    Raises:
        IMAPConnectionError: If the server cannot be reached or does not
                             offer STARTTLS when it is required.
    """
    logger.info(f"Connecting to {config.host}:{config.port} ({config.security})")

    try:
        ssl_context = ssl.create_default_context() if config.security == "ssl" else None
        client = ImapClient(
            host=config.host,
            port=config.port,
            timeout=config.timeout,
            ssl_context=ssl_context,
        )

        await client.wait_hello_from_server()

        if config.security == "starttls":
            if not client.has_capability("STARTTLS"):
                raise IMAPConnectionError("Server does not support STARTTLS")
            logger.debug("Upgrading to TLS via STARTTLS")
            response = await client.starttls()
            if response.result != "OK":
                raise IMAPConnectionError(f"STARTTLS refused: {_response_text(response)}")

    except _CONNECTION_ERRORS as e:
        raise IMAPConnectionError(f"Failed to connect to {config.host}:{config.port}: {e}") from e

    logger.debug(f"Connected to {config.host}")
    return UnauthenticatedState(config, client)


class UnauthenticatedState:
    """
    A connected session that has not logged in yet.

    The only thing to do with it is authenticate(). A successful
    authentication hands the connection over to an AuthenticatedState and
    this object becomes unusable.

    Attributes:
        config: The backend configuration, including the credentials that
                get refreshed on an OAuth retry.
    """

    def __init__(self, config: ImapConfig, client) -> None:
        self.config = config
        self._client = client

    @property
    def consumed(self) -> bool:
        return self._client is None

    def _require_client(self):
        if self._client is None:
            raise InvalidStateError("This connection has already been authenticated")
        return self._client

    async def login(self) -> "AuthenticatedState":
        """
        Make a single login attempt with the current credentials.

        Raises:
            LoginRejected: The server said NO to the credentials.
            IMAPConnectionError: The connection failed mid-command.
            IMAPAuthenticationError: The credentials cannot be encoded.
        """
        client = self._require_client()
        auth = self.config.auth

        try:
            if isinstance(auth, OAuthAuth):
                logger.debug(f"AUTHENTICATE XOAUTH2 as {self.config.login}")
                response = await client.xoauth2(self.config.login, auth.access_token)
            else:
                logger.debug(f"LOGIN as {self.config.login}")
                response = await client.login(self.config.login, auth.secret)
        except _CONNECTION_ERRORS as e:
            raise IMAPConnectionError(f"Connection lost during login: {e}") from e
        except UnicodeEncodeError as e:
            # aioimaplib sends the XOAUTH2 string as ASCII
            raise IMAPAuthenticationError(f"Cannot send credentials for {self.config.login}: {e}") from e

        if response.result != "OK":
            raise LoginRejected(_response_text(response))

        # Hand the connection over; this state is spent
        self._client = None
        logger.info(f"Authenticated as {self.config.login}")
        return AuthenticatedState(client)

    async def authenticate(
        self,
        http_client: httpx.AsyncClient | None = None,
    ) -> "AuthenticatedState":
        """
        Log in, refreshing OAuth credentials and retrying once if rejected.

        Password logins are tried exactly once. OAuth logins are tried at
        most twice, with one refresh in between.

        Args:
            http_client: Client for the token endpoint (tests inject one).

        Raises:
            IMAPAuthenticationError: Credentials rejected for good.
            RefreshError: The OAuth refresh failed.
            InvalidStateError: This state was already consumed.
        """
        self._require_client()
        try:
            return await with_reauth(
                self.login,
                self.config.auth,
                lambda e: isinstance(e, LoginRejected),
                http_client=http_client,
            )
        except LoginRejected as e:
            raise IMAPAuthenticationError(
                f"Login failed for {self.config.login}: {e}"
            ) from e


class AuthenticatedState:
    """
    A logged-in IMAP session.

    Usage:
        >>> session = await (await connect(config)).authenticate()
        >>> emails = await session.read_inbox(count=5, offset=0)
        >>> await session.logout()
    """

    def __init__(self, client) -> None:
        self._client = client

    async def _run(self, what: str, command):
        """Await one aioimaplib command and check its status."""
        try:
            response = await command
        except _CONNECTION_ERRORS as e:
            raise IMAPConnectionError(f"{what} failed: {e}") from e

        if response.result != "OK":
            raise IMAPCommandError(f"{what} failed: {_response_text(response)}")
        return response

    async def read_inbox(self, count: int, offset: int = 0) -> list[ParsedEmail]:
        """
        Read a page of the INBOX, newest first.

        Args:
            count: Page size.
            offset: How many of the most recent UIDs to skip.

        Returns:
            Parsed messages sorted by UID, descending. Messages that fail
            to parse are left out.

        Raises:
            IMAPCommandError: SELECT, SEARCH or FETCH was refused.
            IMAPConnectionError: The connection failed.
        """
        await self._run("SELECT INBOX", self._client.select("INBOX"))

        response = await self._run("UID SEARCH", self._client.uid_search("ALL", charset=None))
        uids = parse_search_response(response.lines)
        max_uid = max(uids, default=1)

        bottom, top = fetch_window(max_uid, count, offset)
        logger.debug(f"Fetching UIDs {bottom}:{top} (max {max_uid}, offset {offset})")

        response = await self._run(
            "UID FETCH",
            self._client.uid("fetch", f"{bottom}:{top}", FETCH_ITEMS),
        )
        emails = parse_fetch_response(response.lines)
        emails.sort(key=lambda e: e.uid, reverse=True)

        logger.info(f"Read {len(emails)} messages from INBOX")
        return emails

    async def logout(self) -> None:
        """Log out and close the connection."""
        try:
            await self._client.logout()
        except _CONNECTION_ERRORS as e:
            logger.warning(f"Error during logout: {e}")


def _response_text(response) -> str:
    """Flatten an aioimaplib response into a readable message."""
    parts = []
    for line in response.lines:
        if isinstance(line, (bytes, bytearray)):
            line = bytes(line).decode("utf-8", errors="replace")
        parts.append(str(line))
    return " ".join(parts).strip() or response.result


# =============================================================================
# Exceptions
# =============================================================================

class IMAPConnectionError(ProtocolError):
    """Raised when unable to connect to the IMAP server."""
    pass


class IMAPCommandError(ProtocolError):
    """Raised when the server refuses a command."""
    pass


class InvalidStateError(ProtocolError):
    """Raised when a state is used after it has been consumed."""
    pass


class LoginRejected(ProtocolError):
    """Raised when a single login attempt is rejected."""
    pass


class IMAPAuthenticationError(AuthError):
    """Raised when authentication fails after any permitted retry."""
    pass
