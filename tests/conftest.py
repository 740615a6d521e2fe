# =============================================================================
# Pytest Configuration and Fixtures
# =============================================================================
# Shared fixtures for the ectt test suite.
# =============================================================================

import json
import tempfile
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from aioimaplib.aioimaplib import Response

from ectt.core.account import ImapConfig, SmtpConfig
from ectt.core.credentials import OAuthAuth, PasswordAuth


TOKEN_URL = "https://oauth.example.com/token"


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def oauth_auth():
    """OAuth credentials holding a stale access token."""
    return OAuthAuth(
        client_id="client-id",
        client_secret="client-secret",
        access_token="stale-token",
        refresh_token="refresh-token",
        auth_url="https://oauth.example.com/auth",
        token_url=TOKEN_URL,
    )


@pytest.fixture
def password_imap_config():
    """IMAP config with password credentials."""
    return ImapConfig(
        host="imap.example.com",
        port=993,
        login="test@example.com",
        auth=PasswordAuth(secret="hunter2"),
    )


@pytest.fixture
def oauth_imap_config(oauth_auth):
    """IMAP config with OAuth credentials."""
    return ImapConfig(
        host="imap.example.com",
        port=993,
        login="test@example.com",
        auth=oauth_auth,
    )


@pytest.fixture
def password_smtp_config():
    """SMTP config with password credentials."""
    return SmtpConfig(
        host="smtp.example.com",
        port=465,
        login="test@example.com",
        auth=PasswordAuth(secret="hunter2"),
    )


@pytest.fixture
def oauth_smtp_config(oauth_auth):
    """SMTP config with OAuth credentials."""
    return SmtpConfig(
        host="smtp.example.com",
        port=465,
        login="test@example.com",
        auth=oauth_auth,
    )


class TokenEndpoint:
    """
    A fake OAuth token endpoint for httpx.MockTransport.

    Attributes:
        requests: Form bodies of every request received.
        responses: Queue of (status, json) answers; the last one repeats.
    """

    def __init__(self, *responses: tuple[int, dict]) -> None:
        self.requests: list[dict[str, str]] = []
        self.responses = list(responses) or [(200, {"access_token": "fresh-token"})]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        form = dict(httpx.QueryParams(request.content.decode()))
        self.requests.append(form)
        status, body = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        return httpx.Response(status, content=json.dumps(body), headers={"Content-Type": "application/json"})

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self), follow_redirects=False)


@pytest.fixture
def token_endpoint():
    """A token endpoint that hands out "fresh-token"."""
    return TokenEndpoint()


def make_raw_email(
    subject: str = "Test Subject",
    sender: str = "Test Sender <sender@example.com>",
    body: str = "This is a test email body.",
    date: str = "Mon, 15 Jan 2024 10:30:00 +0000",
    extra_headers: str = "",
) -> bytes:
    """Build a minimal RFC 822 message."""
    headers = [
        f"From: {sender}",
        "To: test@example.com",
        f"Subject: {subject}",
        f"Date: {date}",
        "Content-Type: text/plain; charset=utf-8",
    ]
    if extra_headers:
        headers.append(extra_headers)
    return ("\r\n".join(headers) + "\r\n\r\n" + body + "\r\n").encode("utf-8")


def fetch_lines(messages: list[tuple[int, bytes]], internaldate: str | None = None) -> list:
    """
    Build an aioimaplib-style UID FETCH response.

    Args:
        messages: (uid, raw message) pairs in server order.
        internaldate: INTERNALDATE to report for every message, if any.
    """
    lines: list = []
    for seq, (uid, raw) in enumerate(messages, start=1):
        date_item = f' INTERNALDATE "{internaldate}"' if internaldate else ""
        lines.append(f"{seq} FETCH (UID {uid}{date_item} RFC822 {{{len(raw)}}}".encode())
        lines.append(bytearray(raw))
        lines.append(b")")
    lines.append(b"Fetch completed (0.001 + 0.000 secs).")
    return lines


def fake_imap_client(uids: list[int], messages: list[tuple[int, bytes]]) -> MagicMock:
    """
    An aioimaplib client double whose commands all succeed.

    Tests override login/xoauth2 side effects to simulate rejections.
    """
    client = MagicMock()
    ok = Response("OK", [b"Success"])
    client.login = AsyncMock(return_value=ok)
    client.xoauth2 = AsyncMock(return_value=ok)
    client.select = AsyncMock(return_value=Response("OK", [b"[READ-WRITE] SELECT completed"]))
    client.uid_search = AsyncMock(
        return_value=Response("OK", [" ".join(str(u) for u in uids).encode(), b"SEARCH completed"])
    )
    client.uid = AsyncMock(return_value=Response("OK", fetch_lines(messages)))
    client.logout = AsyncMock(return_value=Response("OK", [b"LOGOUT completed"]))
    return client


REJECTED = Response("NO", [b"[AUTHENTICATIONFAILED] Invalid credentials (Failure)"])
