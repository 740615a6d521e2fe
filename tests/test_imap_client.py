"""Tests for the IMAP state machine."""

import asyncio
import base64
from unittest.mock import AsyncMock

import pytest
from aioimaplib.aioimaplib import Response

from conftest import REJECTED, TokenEndpoint, fake_imap_client, make_raw_email

from ectt.core.errors import AuthError, RefreshError
from ectt.imap.client import (
    AuthenticatedState,
    IMAPAuthenticationError,
    IMAPCommandError,
    ImapClient,
    InvalidStateError,
    UnauthenticatedState,
)

OK = Response("OK", [b"Success"])


def five_messages():
    """UIDs 1..5 delivered out of order by the server."""
    return [(uid, make_raw_email(subject=f"message {uid}")) for uid in (3, 1, 5, 2, 4)]


class TestPasswordLogin:
    async def test_login_uses_password(self, password_imap_config):
        client = fake_imap_client([], [])
        state = UnauthenticatedState(password_imap_config, client)

        session = await state.authenticate()

        assert isinstance(session, AuthenticatedState)
        client.login.assert_awaited_once_with("test@example.com", "hunter2")
        client.xoauth2.assert_not_called()

    async def test_rejection_is_final(self, password_imap_config, token_endpoint):
        client = fake_imap_client([], [])
        client.login = AsyncMock(return_value=REJECTED)
        state = UnauthenticatedState(password_imap_config, client)

        async with token_endpoint.client() as http:
            with pytest.raises(AuthError):
                await state.authenticate(http_client=http)

        assert client.login.await_count == 1
        assert token_endpoint.requests == []


class TestOAuthLogin:
    async def test_login_uses_xoauth2(self, oauth_imap_config):
        client = fake_imap_client([], [])
        await UnauthenticatedState(oauth_imap_config, client).authenticate()

        client.xoauth2.assert_awaited_once_with("test@example.com", "stale-token")
        client.login.assert_not_called()

    async def test_rejection_refreshes_and_retries_once(self, oauth_imap_config, token_endpoint):
        client = fake_imap_client([], [])
        client.xoauth2 = AsyncMock(side_effect=[REJECTED, OK])
        state = UnauthenticatedState(oauth_imap_config, client)

        async with token_endpoint.client() as http:
            session = await state.authenticate(http_client=http)

        assert isinstance(session, AuthenticatedState)
        assert client.xoauth2.await_count == 2
        assert client.xoauth2.await_args.args == ("test@example.com", "fresh-token")
        assert len(token_endpoint.requests) == 1

    async def test_second_rejection_is_auth_error(self, oauth_imap_config, token_endpoint):
        client = fake_imap_client([], [])
        client.xoauth2 = AsyncMock(return_value=REJECTED)
        state = UnauthenticatedState(oauth_imap_config, client)

        async with token_endpoint.client() as http:
            with pytest.raises(AuthError):
                await state.authenticate(http_client=http)

        assert client.xoauth2.await_count == 2
        assert len(token_endpoint.requests) == 1

    async def test_refresh_failure_is_refresh_error(self, oauth_imap_config):
        client = fake_imap_client([], [])
        client.xoauth2 = AsyncMock(return_value=REJECTED)
        endpoint = TokenEndpoint((400, {"error": "invalid_grant"}))
        state = UnauthenticatedState(oauth_imap_config, client)

        async with endpoint.client() as http:
            with pytest.raises(RefreshError):
                await state.authenticate(http_client=http)

        assert client.xoauth2.await_count == 1


class TestStates:
    async def test_authenticated_state_consumes_unauthenticated(self, password_imap_config):
        state = UnauthenticatedState(password_imap_config, fake_imap_client([], []))
        await state.authenticate()

        assert state.consumed
        with pytest.raises(InvalidStateError):
            await state.authenticate()

    async def test_read_inbox_sorts_by_uid_descending(self):
        client = fake_imap_client([1, 2, 3, 4, 5], five_messages())
        session = AuthenticatedState(client)

        emails = await session.read_inbox(count=5, offset=0)

        assert [e.uid for e in emails] == [5, 4, 3, 2, 1]
        client.select.assert_awaited_once_with("INBOX")
        client.uid.assert_awaited_once_with("fetch", "1:5", "(UID INTERNALDATE RFC822)")

    async def test_read_inbox_window(self):
        client = fake_imap_client(list(range(1, 101)), [])
        await AuthenticatedState(client).read_inbox(count=5, offset=10)

        client.uid.assert_awaited_once_with("fetch", "85:90", "(UID INTERNALDATE RFC822)")

    async def test_select_failure_is_protocol_error(self):
        client = fake_imap_client([], [])
        client.select = AsyncMock(return_value=Response("NO", [b"Mailbox does not exist"]))

        with pytest.raises(IMAPCommandError):
            await AuthenticatedState(client).read_inbox(count=5)


async def test_stale_token_scenario(oauth_imap_config, token_endpoint):
    """Stale token, working refresh: five messages, newest first."""
    client = fake_imap_client([1, 2, 3, 4, 5], five_messages())
    client.xoauth2 = AsyncMock(side_effect=[REJECTED, OK])

    async with token_endpoint.client() as http:
        session = await UnauthenticatedState(oauth_imap_config, client).authenticate(http_client=http)

    emails = await session.read_inbox(count=5, offset=0)

    assert [e.uid for e in emails] == [5, 4, 3, 2, 1]
    assert [e.subject for e in emails][0] == "message 5"
    assert oauth_imap_config.auth.access_token == "fresh-token"


class ChallengingServer:
    """
    A loopback IMAP server that rejects XOAUTH2 tokens the way Gmail does:
    a `+` challenge first, then NO once the client answers it.

    Attributes:
        tokens: Access tokens presented, in order.
        challenge_replies: What the client sent back for each challenge.
    """

    CHALLENGE = b"+ eyJzdGF0dXMiOiI0MDEiLCJzY2hlbWVzIjoiQmVhcmVyIn0=\r\n"

    def __init__(self, accepted_token: str) -> None:
        self.accepted_token = accepted_token
        self.tokens: list[str] = []
        self.challenge_replies: list[bytes] = []

    async def handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        writer.write(b"* OK IMAP4rev1 Service Ready\r\n")
        await writer.drain()

        while line := await reader.readline():
            tag, _, rest = line.decode().rstrip("\r\n").partition(" ")
            command, _, args = rest.partition(" ")
            command = command.upper()

            if command == "CAPABILITY":
                writer.write(b"* CAPABILITY IMAP4rev1 AUTH=XOAUTH2\r\n")
                writer.write(f"{tag} OK CAPABILITY completed\r\n".encode())
            elif command == "AUTHENTICATE":
                sasl = base64.b64decode(args.split(" ", 1)[1]).decode()
                token = sasl.split("auth=Bearer ", 1)[1].split("\x01", 1)[0]
                self.tokens.append(token)
                if token == self.accepted_token:
                    writer.write(f"{tag} OK Success\r\n".encode())
                else:
                    writer.write(self.CHALLENGE)
                    await writer.drain()
                    self.challenge_replies.append(await reader.readline())
                    writer.write(f"{tag} NO [AUTHENTICATIONFAILED] Invalid credentials (Failure)\r\n".encode())
            elif command == "LOGOUT":
                writer.write(b"* BYE LOGOUT Requested\r\n")
                writer.write(f"{tag} OK LOGOUT completed\r\n".encode())
                await writer.drain()
                break
            else:
                writer.write(f"{tag} BAD Unknown command\r\n".encode())
            await writer.drain()

        writer.close()


class TestChallengedXOAuth2:
    async def connect_to(self, server: ChallengingServer):
        listener = await asyncio.start_server(server.handle, "127.0.0.1", 0)
        port = listener.sockets[0].getsockname()[1]
        client = ImapClient(host="127.0.0.1", port=port, timeout=5)
        await client.wait_hello_from_server()
        return listener, client

    async def test_challenge_is_answered_and_token_refreshed(self, oauth_imap_config, token_endpoint):
        server = ChallengingServer(accepted_token="fresh-token")
        listener, client = await self.connect_to(server)

        async with listener:
            async with token_endpoint.client() as http:
                state = UnauthenticatedState(oauth_imap_config, client)
                session = await asyncio.wait_for(state.authenticate(http_client=http), 10)
            await session.logout()

        assert server.tokens == ["stale-token", "fresh-token"]
        assert server.challenge_replies == [b"\r\n"]
        assert len(token_endpoint.requests) == 1
        assert oauth_imap_config.auth.access_token == "fresh-token"

    async def test_challenge_twice_is_auth_error(self, oauth_imap_config, token_endpoint):
        server = ChallengingServer(accepted_token="never-issued")
        listener, client = await self.connect_to(server)

        async with listener:
            async with token_endpoint.client() as http:
                state = UnauthenticatedState(oauth_imap_config, client)
                with pytest.raises(IMAPAuthenticationError, match="AUTHENTICATIONFAILED"):
                    await asyncio.wait_for(state.authenticate(http_client=http), 10)
            await client.logout()

        assert server.tokens == ["stale-token", "fresh-token"]
        assert server.challenge_replies == [b"\r\n", b"\r\n"]
        assert len(token_endpoint.requests) == 1


async def test_non_ascii_oauth_login_is_auth_error(oauth_imap_config):
    client = fake_imap_client([], [])
    client.xoauth2 = AsyncMock(side_effect=UnicodeEncodeError("ascii", "josé", 3, 4, "ordinal not in range"))
    oauth_imap_config.login = "josé@example.com"

    with pytest.raises(IMAPAuthenticationError):
        await UnauthenticatedState(oauth_imap_config, client).authenticate()
