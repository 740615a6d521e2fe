# =============================================================================
# Reauthentication Retry
# =============================================================================
# IMAP login and SMTP send share one recovery rule:
#
#   1. try the operation
#   2. if it failed because the server rejected our credentials AND we are
#      using OAuth, refresh the access token once
#   3. try the operation exactly one more time
#
# Password credentials are never retried (a wrong password does not get
# better by asking again). Keeping the rule here means the "at most one
# retry" guarantee is enforced in exactly one place.
# =============================================================================

import logging
from typing import Awaitable, Callable, TypeVar

import httpx

from ectt.core.credentials import Credentials, refresh

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def with_reauth(
    attempt: Callable[[], Awaitable[T]],
    credentials: Credentials,
    is_auth_rejection: Callable[[BaseException], bool],
    *,
    on_refreshed: Callable[[], Awaitable[None]] | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> T:
    """
    Run an operation, refreshing OAuth credentials and retrying once on an
    authentication rejection.

    Args:
        attempt: Zero-argument coroutine function performing the operation.
                 Called at most twice.
        credentials: Credentials the operation uses. Refreshed in place.
        is_auth_rejection: Classifies an exception raised by attempt() as
                           "the server rejected our credentials".
        on_refreshed: Called after a successful refresh and before the
                      retry (e.g. to rebuild a transport with the new token).
        http_client: Passed through to refresh().

    Returns:
        Whatever attempt() returns.

    Raises:
        The first attempt's exception if it is not an auth rejection or the
        credentials are not OAuth; RefreshError if the refresh fails; the
        second attempt's exception otherwise.
    """
    try:
        return await attempt()
    except Exception as e:
        if not is_auth_rejection(e) or not credentials.is_oauth:
            raise
        logger.info(f"Credentials rejected, refreshing access token: {e}")

    # Exactly one refresh, exactly one retry
    await refresh(credentials, http_client=http_client)
    if on_refreshed is not None:
        await on_refreshed()

    logger.debug("Retrying after token refresh")
    return await attempt()
