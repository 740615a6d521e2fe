# =============================================================================
# OAuth Providers
# =============================================================================
# Known OAuth2 providers and the client configuration needed to run the
# authorization-code flow against them.
#
# Client IDs and secrets are never shipped with ectt; they come from the
# environment (e.g. GMAIL_CLIENT_ID / GMAIL_CLIENT_SECRET).
# =============================================================================

import os
from dataclasses import dataclass, field
from enum import Enum

from ectt.core.errors import ConfigError


# Where the local listener receives the authorization redirect
DEFAULT_REDIRECT_HOST = "127.0.0.1"
DEFAULT_REDIRECT_PORT = 3000


def redirect_url_for(port: int) -> str:
    """Redirect URI registered with the provider for a listener port."""
    return f"http://localhost:{port}"


@dataclass
class OAuthClientConfig:
    """
    Everything needed to run the authorization-code flow.

    Attributes:
        client_id: OAuth client identifier.
        client_secret: OAuth client secret.
        auth_url: Authorization endpoint the user is sent to.
        token_url: Token endpoint for code exchange and refresh.
        redirect_url: Where the provider sends the browser back to.
    """
    client_id: str
    client_secret: str = field(repr=False)
    auth_url: str
    token_url: str
    redirect_url: str = redirect_url_for(DEFAULT_REDIRECT_PORT)


class Provider(Enum):
    """Supported OAuth providers."""

    GMAIL = "gmail"

    @property
    def auth_url(self) -> str:
        return _ENDPOINTS[self][0]

    @property
    def token_url(self) -> str:
        return _ENDPOINTS[self][1]

    @property
    def scopes(self) -> list[str]:
        return list(_SCOPES[self])

    def client_config(self, port: int = DEFAULT_REDIRECT_PORT) -> OAuthClientConfig:
        """
        Build the client config from the environment.

        Raises:
            ConfigError: If the client id or secret variable is not set.
        """
        prefix = self.value.upper()
        client_id = os.environ.get(f"{prefix}_CLIENT_ID")
        client_secret = os.environ.get(f"{prefix}_CLIENT_SECRET")

        missing = [
            name
            for name, value in (
                (f"{prefix}_CLIENT_ID", client_id),
                (f"{prefix}_CLIENT_SECRET", client_secret),
            )
            if not value
        ]
        if missing:
            raise ConfigError(f"Missing environment variable(s): {', '.join(missing)}")

        return OAuthClientConfig(
            client_id=client_id,
            client_secret=client_secret,
            auth_url=self.auth_url,
            token_url=self.token_url,
            redirect_url=redirect_url_for(port),
        )


_ENDPOINTS = {
    Provider.GMAIL: (
        "https://accounts.google.com/o/oauth2/auth",
        "https://oauth2.googleapis.com/token",
    ),
}

_SCOPES = {
    Provider.GMAIL: ("https://mail.google.com/",),
}
