# =============================================================================
# Front-End Session
# =============================================================================
# Everything the UI needs to talk to the backend workers, without any UI.
#
# Key responsibilities:
#   - Spawning the IMAP and SMTP worker threads and wiring their channels
#   - Holding the inbox as an append-only list of ParsedEmail
#   - Guarding each backend with an in-flight flag so requests never overlap
#   - Draining the response channels without blocking (once per UI tick)
#   - Deciding which failures end the session
#
# Design notes:
#   - poll() never blocks; an empty channel means "nothing yet"
#   - Pages are appended as they come, with no deduplication
#   - A closed response channel means a worker is gone, which is fatal
# =============================================================================

import logging
from dataclasses import dataclass
from typing import Union

from ectt.config import Config
from ectt.core.channel import ChannelClosed, Empty, Receiver, Sender, channel
from ectt.core.commands import (
    Command,
    ErrorResponse,
    Inbox,
    ReadInbox,
    Response,
    SendMail,
    SendMailSuccess,
)
from ectt.core.errors import ChannelError, EcttError, is_fatal
from ectt.core.message import ParsedEmail, PartialMessage
from ectt.core.worker import BackendWorker
from ectt.imap.worker import ImapWorker
from ectt.smtp.client import TransportError
from ectt.smtp.worker import SmtpWorker

logger = logging.getLogger(__name__)


# Messages per inbox page
DEFAULT_PAGE_SIZE = 5

# How long shutdown waits for each worker thread (seconds)
JOIN_TIMEOUT = 5.0


# =============================================================================
# Events
# =============================================================================

@dataclass
class InboxLoaded:
    """A page of messages arrived and was appended to the inbox."""
    emails: list[ParsedEmail]


@dataclass
class InboxLoadFailed:
    """A page could not be read; the session continues."""
    error: EcttError


@dataclass
class MailSent:
    """The last SendMail was accepted."""
    pass


@dataclass
class SendFailed:
    """
    The last SendMail failed; the session continues.

    Attributes:
        error: What went wrong.
        transient: True for 4xx replies, which may work later.
    """
    error: EcttError
    transient: bool = False


Event = Union[InboxLoaded, InboxLoadFailed, MailSent, SendFailed]


class Session:
    """
    Front-end side of the IMAP and SMTP workers.

    Usage:
        >>> session = start_session(config)
        >>> session.load()
        >>> for event in session.poll():   # once per tick
        ...     handle(event)
        >>> session.shutdown()

    Attributes:
        inbox: Every message received so far, in arrival order.
        imap_inflight: A ReadInbox is awaiting its response.
        smtp_inflight: A SendMail is awaiting its response.
        page_size: Messages requested per page.
    """

    def __init__(
        self,
        imap_commands: Sender[Command],
        imap_responses: Receiver[Response],
        smtp_commands: Sender[Command],
        smtp_responses: Receiver[Response],
        *,
        workers: tuple[BackendWorker, ...] = (),
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        self.imap_commands = imap_commands
        self.imap_responses = imap_responses
        self.smtp_commands = smtp_commands
        self.smtp_responses = smtp_responses
        self.workers = workers
        self.page_size = page_size

        self.inbox: list[ParsedEmail] = []
        self.imap_inflight = False
        self.smtp_inflight = False

        # Last error each backend reported, for a useful message if it dies
        self._last_error: dict[str, EcttError] = {}

    # -------------------------------------------------------------------------
    # Requests
    # -------------------------------------------------------------------------

    def load(self) -> bool:
        """
        Request the first page of the inbox.

        Returns:
            False if a read is already in flight.
        """
        return self._read(offset=0)

    def load_more(self, selected_index: int) -> bool:
        """
        Request the next page when the last row is selected.

        Args:
            selected_index: Index of the selected inbox row.

        Returns:
            True if a request was sent.
        """
        if not self.inbox or selected_index != len(self.inbox) - 1:
            return False
        return self._read(offset=len(self.inbox))

    def _read(self, offset: int) -> bool:
        if self.imap_inflight:
            return False
        self._send(self.imap_commands, ReadInbox(count=self.page_size, offset=offset), "imap")
        self.imap_inflight = True
        return True

    def send_mail(self, message: PartialMessage) -> bool:
        """
        Queue a message for the SMTP worker.

        Returns:
            False if a send is already in flight.
        """
        if self.smtp_inflight:
            return False
        self._send(self.smtp_commands, SendMail(message), "smtp")
        self.smtp_inflight = True
        return True

    def _send(self, sender: Sender[Command], command: Command, backend: str) -> None:
        try:
            sender.send(command)
        except ChannelClosed as e:
            raise WorkerDisconnected(self._disconnect_message(backend)) from e

    # -------------------------------------------------------------------------
    # Responses
    # -------------------------------------------------------------------------

    def poll(self) -> list[Event]:
        """
        Drain both response channels without blocking.

        Returns:
            Events for the UI, in arrival order per backend.

        Raises:
            SessionEnded: A backend reported a fatal error.
            WorkerDisconnected: A worker went away.
        """
        events: list[Event] = []
        for response in self._drain(self.imap_responses, "imap"):
            events.append(self._on_imap(response))
        for response in self._drain(self.smtp_responses, "smtp"):
            events.append(self._on_smtp(response))
        return events

    def _drain(self, receiver: Receiver[Response], backend: str) -> list[Response]:
        responses = []
        while True:
            try:
                responses.append(receiver.try_recv())
            except Empty:
                return responses
            except ChannelClosed as e:
                if responses:
                    # Deliver what arrived first; the hangup is seen next tick
                    return responses
                cause = self._last_error.get(backend)
                raise WorkerDisconnected(self._disconnect_message(backend)) from (cause or e)

    def _disconnect_message(self, backend: str) -> str:
        cause = self._last_error.get(backend)
        if cause is not None:
            return f"The {backend} worker stopped: {cause}"
        return f"The {backend} worker stopped unexpectedly"

    def _on_imap(self, response: Response) -> Event:
        self.imap_inflight = False

        if isinstance(response, Inbox):
            self.inbox.extend(response.emails)
            logger.debug(f"Inbox now holds {len(self.inbox)} messages")
            return InboxLoaded(response.emails)

        if isinstance(response, ErrorResponse):
            self._check_fatal("imap", response.error)
            return InboxLoadFailed(response.error)

        raise ProtocolMismatch(f"Unexpected response from the imap worker: {response!r}")

    def _on_smtp(self, response: Response) -> Event:
        self.smtp_inflight = False

        if isinstance(response, SendMailSuccess):
            return MailSent()

        if isinstance(response, ErrorResponse):
            self._check_fatal("smtp", response.error)
            transient = isinstance(response.error, TransportError) and response.error.transient
            return SendFailed(response.error, transient=transient)

        raise ProtocolMismatch(f"Unexpected response from the smtp worker: {response!r}")

    def _check_fatal(self, backend: str, error: EcttError) -> None:
        self._last_error[backend] = error
        if is_fatal(error):
            logger.error(f"Fatal {backend} error: {error}")
            raise SessionEnded(str(error)) from error
        logger.warning(f"{backend} error: {error}")

    # -------------------------------------------------------------------------
    # Shutdown
    # -------------------------------------------------------------------------

    def shutdown(self, timeout: float = JOIN_TIMEOUT) -> None:
        """
        Hang up on the workers and wait for them to exit.

        Workers finish the command they are on before noticing.
        """
        logger.info("Shutting down session")
        self.imap_commands.close()
        self.smtp_commands.close()
        self.imap_responses.close()
        self.smtp_responses.close()

        for worker in self.workers:
            worker.join(timeout)
            if worker.is_alive():
                logger.warning(f"{worker.name} worker did not stop within {timeout}s")


def start_session(config: Config) -> Session:
    """
    Spawn the IMAP and SMTP workers for a config.

    Each worker gets its own deep copy of its backend config, so OAuth
    refreshes on one side are invisible to the other.
    """
    imap_commands_tx, imap_commands_rx = channel()
    imap_responses_tx, imap_responses_rx = channel()
    smtp_commands_tx, smtp_commands_rx = channel()
    smtp_responses_tx, smtp_responses_rx = channel()

    imap_worker = ImapWorker(config.read, imap_commands_rx, imap_responses_tx)
    smtp_worker = SmtpWorker(config.send, smtp_commands_rx, smtp_responses_tx)

    imap_worker.start()
    smtp_worker.start()
    logger.info(f"Started workers for {config.read} and {config.send}")

    return Session(
        imap_commands_tx,
        imap_responses_rx,
        smtp_commands_tx,
        smtp_responses_rx,
        workers=(imap_worker, smtp_worker),
        page_size=config.ui.page_size,
    )


# =============================================================================
# Exceptions
# =============================================================================

class SessionEnded(EcttError):
    """Raised when a backend reports an error the session cannot survive."""
    pass


class WorkerDisconnected(ChannelError):
    """Raised when a worker's channel closes unexpectedly."""
    pass


class ProtocolMismatch(ChannelError):
    """Raised when a worker answers with a response it should not send."""
    pass
