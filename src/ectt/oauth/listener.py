# =============================================================================
# OAuth Redirect Listener
# =============================================================================
# A tiny FastAPI app served by uvicorn on the loopback interface. The
# provider redirects the user's browser to it with the authorization code:
#
#   GET http://localhost:3000/?state=...&code=...&scope=...
#
# The first callback is pushed into a single-slot queue for the flow
# manager and the shared stop event is set. Anything arriving after that
# gets a 409 and is dropped.
# =============================================================================

import asyncio
import logging
from dataclasses import dataclass, field

import uvicorn
from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthorizationPayload:
    """
    What the provider sent back to the redirect URI.

    Attributes:
        state: The CSRF token echoed back by the provider.
        code: Authorization code to exchange for tokens.
        scope: Space-separated scopes that were granted.
    """
    state: str
    code: str = field(repr=False)
    scope: str = ""


ACKNOWLEDGEMENT = "Authorization received. You can close this window and return to ectt."


def create_app(slot: asyncio.Queue, received: asyncio.Event) -> FastAPI:
    """
    Build the redirect app.

    Args:
        slot: Single-slot queue the payload is delivered through.
        received: Set once a payload has been accepted.
    """
    app = FastAPI(
        title="ectt OAuth redirect",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    @app.get("/", response_class=PlainTextResponse)
    async def authorization_callback(state: str, code: str, scope: str = ""):
        if received.is_set():
            logger.warning("Ignoring extra authorization callback")
            return PlainTextResponse("Authorization already received.", status_code=409)

        try:
            slot.put_nowait(AuthorizationPayload(state=state, code=code, scope=scope))
        except asyncio.QueueFull:
            logger.warning("Ignoring extra authorization callback")
            return PlainTextResponse("Authorization already received.", status_code=409)

        logger.info("Authorization callback received")
        received.set()
        return PlainTextResponse(ACKNOWLEDGEMENT)

    return app


def build_server(app: FastAPI, host: str, port: int) -> uvicorn.Server:
    """
    Wrap the app in a uvicorn server.

    Logging is left to ectt's own configuration; the terminal belongs to
    the login command's output.
    """
    config = uvicorn.Config(
        app,
        host=host,
        port=port,
        lifespan="off",
        access_log=False,
        log_config=None,
        log_level="warning",
    )
    return uvicorn.Server(config)
