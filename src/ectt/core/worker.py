# =============================================================================
# Backend Worker
# =============================================================================
# Base class for the IMAP and SMTP worker threads.
#
# Each backend runs on exactly one dedicated thread for the whole session.
# The thread owns:
#   - its own asyncio event loop (aioimaplib/aiosmtplib/httpx all run on it)
#   - the receiving end of a command channel
#   - the sending end of a response channel
#   - its own copy of the backend config and credentials
#
# The loop is strictly one-in-one-out:
#
#   recv command -> run handler to completion -> send exactly one response
#
# There is no mid-operation cancellation. Shutdown is cooperative: when the
# front end closes the command channel the worker finishes whatever it is
# doing and exits. A failed response send (front end gone) exits too.
# =============================================================================

import asyncio
import logging
import threading
from typing import Generic, TypeVar

from ectt.core.channel import ChannelClosed, Receiver, Sender
from ectt.core.commands import ErrorResponse
from ectt.core.errors import EcttError, ProtocolError

logger = logging.getLogger(__name__)

C = TypeVar("C")
R = TypeVar("R")


class BackendWorker(threading.Thread, Generic[C, R]):
    """
    A worker thread serving commands for one backend.

    Subclasses implement:
        - setup():    async, run once before the first command. Raising an
                      EcttError sends one ErrorResponse and ends the worker.
        - handle():   async, turns one command into one response. Raising an
                      EcttError produces an ErrorResponse instead.
        - teardown(): async, run once on exit (best effort).

    Exceptions outside the EcttError family are logged with their traceback
    and sent on as a ProtocolError, so every command still gets a response.

    Usage:
        >>> worker = ImapWorker(config, commands_rx, responses_tx)
        >>> worker.start()
        >>> commands_tx.send(ReadInbox(count=5))
        >>> # ... later ...
        >>> commands_tx.close()
        >>> worker.join()
    """

    def __init__(
        self,
        commands: Receiver[C],
        responses: Sender[R],
        *,
        name: str,
    ) -> None:
        super().__init__(name=name, daemon=True)
        self.commands = commands
        self.responses = responses
        self._loop: asyncio.AbstractEventLoop | None = None

    # -------------------------------------------------------------------------
    # Hooks
    # -------------------------------------------------------------------------

    async def setup(self) -> None:
        """Prepare the backend (connect, authenticate, ...)."""

    async def handle(self, command: C) -> R:
        """Execute one command."""
        raise NotImplementedError

    async def teardown(self) -> None:
        """Release backend resources."""

    # -------------------------------------------------------------------------
    # Thread body
    # -------------------------------------------------------------------------

    def run(self) -> None:
        logger.debug(f"Launching {self.name} thread")
        self._loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self._loop)
        try:
            self._serve()
        finally:
            try:
                self._loop.run_until_complete(self.teardown())
            except Exception as e:
                logger.warning(f"Error during {self.name} teardown: {e}")
            self._loop.close()
            # Tell the front end nothing else is coming
            self.responses.close()
            logger.info(f"{self.name} thread stopped")

    def _serve(self) -> None:
        try:
            self._loop.run_until_complete(self.setup())
        except EcttError as e:
            logger.error(f"{self.name} failed to start: {e}")
            self._reply(ErrorResponse(e))
            return
        except Exception as e:
            logger.exception(f"{self.name} crashed during setup")
            self._reply(ErrorResponse(_unexpected(e)))
            return

        while True:
            try:
                command = self.commands.recv()
            except ChannelClosed:
                # The front end dropped its sender: normal shutdown
                logger.info(f"{self.name} command channel closed, exiting")
                return

            response = self._execute(command)

            if not self._reply(response):
                return

    def _execute(self, command: C) -> R | ErrorResponse:
        logger.debug(f"{self.name} executing {command!r}")
        try:
            return self._loop.run_until_complete(self.handle(command))
        except EcttError as e:
            logger.error(f"{self.name} command failed: {e}")
            return ErrorResponse(e)
        except Exception as e:
            logger.exception(f"{self.name} crashed executing {command!r}")
            return ErrorResponse(_unexpected(e))

    def _reply(self, response: R | ErrorResponse) -> bool:
        try:
            self.responses.send(response)
        except ChannelClosed:
            logger.info(f"{self.name} response channel closed, exiting")
            return False
        return True


def _unexpected(error: Exception) -> ProtocolError:
    """Wrap a non-ectt exception so it can travel as an ErrorResponse."""
    wrapped = ProtocolError(f"Unexpected {type(error).__name__}: {error}")
    wrapped.__cause__ = error
    return wrapped
