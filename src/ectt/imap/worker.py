# =============================================================================
# IMAP Worker
# =============================================================================
# The read backend's thread.
#
# Key responsibilities:
#   - Connect and authenticate once, at startup
#   - Serve ReadInbox commands with Inbox responses
#   - Log out when the front end hangs up
#
# Design notes:
#   - The worker deep-copies its config so token refreshes stay private
#     to this thread
#   - A failed startup produces a single ErrorResponse; the front end treats
#     it as fatal
# =============================================================================

import copy
import logging
from typing import Awaitable, Callable

from ectt.core.account import ImapConfig
from ectt.core.channel import Receiver, Sender
from ectt.core.commands import Command, Inbox, ReadInbox, Response
from ectt.core.errors import ProtocolError
from ectt.core.worker import BackendWorker
from ectt.imap.client import AuthenticatedState, UnauthenticatedState, connect

logger = logging.getLogger(__name__)


# Type for the connect function (tests inject a fake server)
Connector = Callable[[ImapConfig], Awaitable[UnauthenticatedState]]


class ImapWorker(BackendWorker[Command, Response]):
    """
    Worker thread owning the IMAP session.

    Usage:
        >>> commands_tx, commands_rx = channel()
        >>> responses_tx, responses_rx = channel()
        >>> worker = ImapWorker(config, commands_rx, responses_tx)
        >>> worker.start()
        >>> commands_tx.send(ReadInbox(count=5))
        >>> responses_rx.recv()
        Inbox(emails=[...])
    """

    def __init__(
        self,
        config: ImapConfig,
        commands: Receiver[Command],
        responses: Sender[Response],
        *,
        connector: Connector = connect,
    ) -> None:
        super().__init__(commands, responses, name="imap")
        self.config = copy.deepcopy(config)
        self._connector = connector
        self._session: AuthenticatedState | None = None

    async def setup(self) -> None:
        unauthenticated = await self._connector(self.config)
        self._session = await unauthenticated.authenticate()

    async def handle(self, command: Command) -> Response:
        if isinstance(command, ReadInbox):
            emails = await self._session.read_inbox(command.count, command.offset)
            return Inbox(emails)
        raise ProtocolError(f"IMAP worker cannot handle {type(command).__name__}")

    async def teardown(self) -> None:
        if self._session is not None:
            await self._session.logout()
            self._session = None
