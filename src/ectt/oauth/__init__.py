# =============================================================================
# OAuth Module
# =============================================================================
# The interactive OAuth2 login behind `ectt login`:
#   - providers: known providers and their client configuration
#   - listener: the local redirect endpoint (FastAPI + uvicorn)
#   - flow: PKCE, CSRF check and code exchange
# =============================================================================

from ectt.oauth.flow import (
    CsrfMismatch,
    OAuthFlowError,
    PortInUse,
    TokenExchangeFailed,
    TokenSet,
    execute_authentication_flow,
)
from ectt.oauth.providers import OAuthClientConfig, Provider

__all__ = [
    "execute_authentication_flow",
    "TokenSet",
    "OAuthClientConfig",
    "Provider",
    "OAuthFlowError",
    "CsrfMismatch",
    "TokenExchangeFailed",
    "PortInUse",
]
