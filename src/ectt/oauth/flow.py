# =============================================================================
# OAuth2 Authorization-Code Flow (PKCE)
# =============================================================================
# Runs the interactive login used by `ectt login`:
#
#   1. Generate a PKCE verifier/challenge and a CSRF token
#   2. Show the authorization URL to the user
#   3. Wait for the provider to redirect back to the local listener
#   4. Check the CSRF token, then exchange the code for tokens
#
# Two tasks run side by side: the uvicorn listener and the exchange task.
# They share one asyncio.Event. The listener sets it when the callback
# arrives; the exchange task sets it when it finishes for any reason.
# Setting it asks uvicorn to exit gracefully, so the browser still gets its
# acknowledgement page.
#
# Nothing is written anywhere: the caller gets a TokenSet or an exception.
# =============================================================================

import asyncio
import base64
import hashlib
import logging
import secrets
import socket
import webbrowser
from dataclasses import dataclass, field
from typing import Callable
from urllib.parse import quote, urlencode

import httpx

from ectt.core.credentials import OAuthAuth, new_http_client
from ectt.core.errors import AuthError
from ectt.oauth.listener import AuthorizationPayload, build_server, create_app
from ectt.oauth.providers import DEFAULT_REDIRECT_HOST, DEFAULT_REDIRECT_PORT, OAuthClientConfig

logger = logging.getLogger(__name__)


# Timeout for the code exchange request (seconds)
EXCHANGE_TIMEOUT = 30


@dataclass
class TokenSet:
    """
    Tokens returned by a successful code exchange.

    Attributes:
        access_token: Short-lived bearer token.
        refresh_token: Long-lived token for later refreshes (may be empty
                       if the provider did not issue one).
        expires_in: Access token lifetime in seconds, if given.
        scope: Granted scopes, space separated.
        token_type: Usually "Bearer".
    """
    access_token: str = field(repr=False)
    refresh_token: str = field(default="", repr=False)
    expires_in: int | None = None
    scope: str = ""
    token_type: str = "Bearer"

    def to_auth(self, client_config: OAuthClientConfig) -> OAuthAuth:
        """Combine with the client config into backend credentials."""
        return OAuthAuth(
            client_id=client_config.client_id,
            client_secret=client_config.client_secret,
            access_token=self.access_token,
            refresh_token=self.refresh_token,
            auth_url=client_config.auth_url,
            token_url=client_config.token_url,
        )


# =============================================================================
# PKCE / CSRF
# =============================================================================

def generate_pkce_pair() -> tuple[str, str]:
    """
    Generate a PKCE code verifier and its S256 challenge.

    Returns:
        (verifier, challenge). The challenge is the unpadded base64url
        encoding of sha256(verifier).
    """
    verifier = secrets.token_urlsafe(64)
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    challenge = base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
    return verifier, challenge


def new_csrf_token() -> str:
    """Random opaque value sent as `state` and checked on the way back."""
    return secrets.token_urlsafe(32)


def build_authorization_url(
    client_config: OAuthClientConfig,
    scopes: list[str],
    csrf_token: str,
    code_challenge: str,
) -> str:
    """Build the URL the user opens to grant access."""
    params = {
        "response_type": "code",
        "client_id": client_config.client_id,
        "redirect_uri": client_config.redirect_url,
        "scope": " ".join(scopes),
        "state": csrf_token,
        "code_challenge": code_challenge,
        "code_challenge_method": "S256",
    }
    separator = "&" if "?" in client_config.auth_url else "?"
    return f"{client_config.auth_url}{separator}{urlencode(params, quote_via=quote)}"


# =============================================================================
# Token exchange
# =============================================================================

async def exchange_code(
    client_config: OAuthClientConfig,
    code: str,
    code_verifier: str,
    http_client: httpx.AsyncClient | None = None,
) -> TokenSet:
    """
    Exchange an authorization code for tokens.

    Args:
        client_config: Client and endpoint details.
        code: The authorization code from the redirect.
        code_verifier: The PKCE verifier matching the challenge sent.
        http_client: Optional client (must not follow redirects).

    Raises:
        TokenExchangeFailed: On network errors, a non-2xx answer, or a
                             response without an access token.
    """
    data = {
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": client_config.redirect_url,
        "client_id": client_config.client_id,
        "client_secret": client_config.client_secret,
        "code_verifier": code_verifier,
    }

    owns_client = http_client is None
    client = http_client or new_http_client(EXCHANGE_TIMEOUT)
    try:
        response = await client.post(
            client_config.token_url,
            data=data,
            headers={"Accept": "application/json"},
        )
        response.raise_for_status()
        payload = response.json()
    except httpx.HTTPStatusError as e:
        raise TokenExchangeFailed(
            f"Token endpoint rejected the code ({e.response.status_code}): {e.response.text}"
        ) from e
    except (httpx.HTTPError, ValueError) as e:
        raise TokenExchangeFailed(f"Failed to exchange authorization code: {e}") from e
    finally:
        if owns_client:
            await client.aclose()

    if not isinstance(payload, dict) or not payload.get("access_token"):
        raise TokenExchangeFailed("Token endpoint response did not contain an access_token")

    expires_in = payload.get("expires_in")
    return TokenSet(
        access_token=payload["access_token"],
        refresh_token=payload.get("refresh_token") or "",
        expires_in=int(expires_in) if expires_in is not None else None,
        scope=payload.get("scope", ""),
        token_type=payload.get("token_type", "Bearer"),
    )


async def _receive_and_exchange(
    slot: asyncio.Queue,
    csrf_token: str,
    code_verifier: str,
    client_config: OAuthClientConfig,
    http_client: httpx.AsyncClient | None,
) -> TokenSet:
    payload: AuthorizationPayload = await slot.get()

    if not secrets.compare_digest(payload.state, csrf_token):
        raise CsrfMismatch("The state returned by the provider does not match")

    logger.debug(f"Exchanging authorization code (scope: {payload.scope})")
    return await exchange_code(client_config, payload.code, code_verifier, http_client)


# =============================================================================
# Listener socket
# =============================================================================

def bind_socket(host: str, port: int) -> socket.socket:
    """
    Bind the listener socket up front so a busy port fails fast.

    Raises:
        PortInUse: If the address cannot be bound.
    """
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    try:
        sock.bind((host, port))
    except OSError as e:
        sock.close()
        raise PortInUse(f"Cannot listen on {host}:{port}: {e}") from e
    return sock


# =============================================================================
# Flow
# =============================================================================

async def execute_authentication_flow(
    client_config: OAuthClientConfig,
    scopes: list[str],
    *,
    http_client: httpx.AsyncClient | None = None,
    host: str = DEFAULT_REDIRECT_HOST,
    port: int = DEFAULT_REDIRECT_PORT,
    presenter: Callable[[str], None] = print,
    open_browser: bool = False,
) -> TokenSet:
    """
    Run the full authorization-code flow.

    Args:
        client_config: Client and endpoint details; its redirect_url must
                       point at host:port.
        scopes: Scopes to request.
        http_client: Optional client for the token exchange.
        host: Interface the listener binds to.
        port: Port the listener binds to.
        presenter: Receives the "Open URL: ..." line.
        open_browser: Also try to open the URL in a browser.

    Returns:
        The tokens issued by the provider.

    Raises:
        PortInUse: The listener could not bind.
        CsrfMismatch: The callback carried the wrong state; no exchange
                      was attempted.
        TokenExchangeFailed: The code could not be exchanged.
        OAuthFlowError: The listener stopped before a callback arrived.
    """
    code_verifier, code_challenge = generate_pkce_pair()
    csrf_token = new_csrf_token()
    url = build_authorization_url(client_config, scopes, csrf_token, code_challenge)

    sock = bind_socket(host, port)

    slot: asyncio.Queue = asyncio.Queue(maxsize=1)
    stop = asyncio.Event()
    server = build_server(create_app(slot, stop), host, port)

    async def stop_server_when_done() -> None:
        await stop.wait()
        server.should_exit = True

    async def exchange() -> TokenSet:
        try:
            return await _receive_and_exchange(
                slot, csrf_token, code_verifier, client_config, http_client
            )
        finally:
            stop.set()

    logger.info(f"Waiting for authorization callback on {host}:{port}")
    serve_task = asyncio.create_task(server.serve(sockets=[sock]), name="oauth-listener")
    watcher_task = asyncio.create_task(stop_server_when_done(), name="oauth-stop")
    exchange_task = asyncio.create_task(exchange(), name="oauth-exchange")

    presenter(f"Open URL: {url}")
    if open_browser:
        webbrowser.open(url)

    try:
        done, _ = await asyncio.wait(
            {serve_task, exchange_task}, return_when=asyncio.FIRST_COMPLETED
        )

        # The listener exiting is expected once the callback is in
        if exchange_task not in done and not stop.is_set():
            exchange_task.cancel()
            # Surface a listener crash before the generic message
            serve_task.result()
            raise OAuthFlowError("Listener stopped before authorization completed")

        return await exchange_task
    finally:
        stop.set()
        server.should_exit = True
        for task in (exchange_task, watcher_task):
            task.cancel()
        await asyncio.gather(serve_task, watcher_task, exchange_task, return_exceptions=True)
        sock.close()
        logger.debug("OAuth listener stopped")


# =============================================================================
# Exceptions
# =============================================================================

class OAuthFlowError(AuthError):
    """Raised when the interactive OAuth flow fails."""
    pass


class CsrfMismatch(OAuthFlowError):
    """Raised when the callback's state does not match our CSRF token."""
    pass


class TokenExchangeFailed(OAuthFlowError):
    """Raised when the authorization code cannot be exchanged."""
    pass


class PortInUse(OAuthFlowError):
    """Raised when the redirect listener cannot bind its port."""
    pass
