# =============================================================================
# Credentials
# =============================================================================
# The secret half of a backend configuration. Exactly one of two variants is
# live per backend:
#
#   - PasswordAuth: a plain password used with IMAP LOGIN / SMTP AUTH PLAIN
#   - OAuthAuth:    OAuth2 client + tokens used with XOAUTH2
#
# OAuthAuth owns its access token: refresh() swaps it in place after a
# successful refresh-token grant. The refresh token itself never changes.
#
# Each worker thread gets its own copy of these objects, so a refresh on the
# IMAP side is never seen by the SMTP side (and vice versa).
# =============================================================================

import base64
import logging
from dataclasses import dataclass, field
from typing import Union

import httpx

from ectt.core.errors import RefreshError

logger = logging.getLogger(__name__)


@dataclass
class PasswordAuth:
    """
    Password credentials.

    Attributes:
        secret: The raw password (or app password).
    """
    secret: str = field(repr=False)

    @property
    def is_oauth(self) -> bool:
        return False


@dataclass
class OAuthAuth:
    """
    OAuth2 credentials for XOAUTH2 authentication.

    Attributes:
        client_id: OAuth client identifier.
        client_secret: OAuth client secret.
        access_token: Bearer token sent to the server. Replaced on refresh.
        refresh_token: Long-lived token used to obtain new access tokens.
        auth_url: Authorization endpoint (kept for completeness, the
                  interactive flow lives in ectt.oauth).
        token_url: Token endpoint used for refresh-token grants.
    """
    client_id: str
    client_secret: str = field(repr=False)
    access_token: str = field(repr=False)
    refresh_token: str = field(repr=False)
    auth_url: str = ""
    token_url: str = ""

    @property
    def is_oauth(self) -> bool:
        return True


# A backend carries exactly one of these
Credentials = Union[PasswordAuth, OAuthAuth]


# Timeout for refresh-token requests (seconds)
REFRESH_TIMEOUT = 30


def new_http_client(timeout: float = REFRESH_TIMEOUT) -> httpx.AsyncClient:
    """
    Create the HTTP client used against OAuth token endpoints.

    Redirects are never followed: a token endpoint that redirects is either
    misconfigured or trying to bounce our secrets somewhere else (SSRF).
    """
    return httpx.AsyncClient(follow_redirects=False, timeout=timeout)


async def refresh(
    credentials: Credentials,
    http_client: httpx.AsyncClient | None = None,
) -> None:
    """
    Refresh the access token of OAuth credentials.

    Performs exactly one refresh-token grant; retry policy belongs to the
    caller. Password credentials are left untouched.

    Args:
        credentials: Credentials to refresh in place.
        http_client: Optional client to use (tests inject a mock transport).
                     Must not follow redirects.

    Raises:
        RefreshError: If the token endpoint could not be reached, rejected
                      the grant, or answered without an access token.
    """
    if not isinstance(credentials, OAuthAuth):
        return

    data = {
        "grant_type": "refresh_token",
        "refresh_token": credentials.refresh_token,
        "client_id": credentials.client_id,
        "client_secret": credentials.client_secret,
    }

    logger.debug(f"Refreshing access token for client {credentials.client_id}")

    owns_client = http_client is None
    client = http_client or new_http_client()
    try:
        response = await client.post(
            credentials.token_url,
            data=data,
            headers={"Accept": "application/json"},
        )
        response.raise_for_status()
        payload = response.json()
    except httpx.HTTPStatusError as e:
        raise RefreshError(
            f"Token endpoint rejected refresh ({e.response.status_code}): {e.response.text}"
        ) from e
    except (httpx.HTTPError, ValueError) as e:
        raise RefreshError(f"Failed to refresh access token: {e}") from e
    finally:
        if owns_client:
            await client.aclose()

    access_token = payload.get("access_token") if isinstance(payload, dict) else None
    if not access_token:
        raise RefreshError("Token endpoint response did not contain an access_token")

    credentials.access_token = access_token
    logger.info("Access token refreshed")


def xoauth2_string(login: str, access_token: str) -> str:
    """
    Build the XOAUTH2 SASL initial response (before base64 encoding).

    Format: user=<login>^Aauth=Bearer <token>^A^A
    """
    return f"user={login}\x01auth=Bearer {access_token}\x01\x01"


def xoauth2_b64(login: str, access_token: str) -> str:
    """Base64-encoded XOAUTH2 initial response, ready for the wire."""
    raw = xoauth2_string(login, access_token).encode("utf-8")
    return base64.b64encode(raw).decode("ascii")
