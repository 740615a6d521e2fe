# =============================================================================
# Channels
# =============================================================================
# Single-producer / single-consumer FIFO channels between the front end and
# the backend worker threads.
#
# queue.Queue already gives us a thread-safe FIFO; what it lacks is the
# notion of the other side going away. Channels add that:
#
#   - Sender.close()   -> the receiver drains what is queued, then recv()
#                         raises ChannelClosed
#   - Receiver.close() -> further send() calls raise ChannelClosed
#
# Closing an endpoint is how ectt models "dropping" it: the front end closes
# its command senders on shutdown and the workers exit on their own.
# =============================================================================

import queue
import threading
from queue import Empty
from typing import Generic, Iterator, TypeVar

from ectt.core.errors import ChannelError

T = TypeVar("T")

# Marker put on the queue when the sender hangs up
_HANGUP = object()


class Sender(Generic[T]):
    """The producing end of a channel."""

    def __init__(self, q: queue.Queue, receiver_gone: threading.Event) -> None:
        self._queue = q
        self._receiver_gone = receiver_gone
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, item: T) -> None:
        """
        Queue an item for the receiver. Never blocks.

        Raises:
            ChannelClosed: If either end has been closed.
        """
        if self._closed:
            raise ChannelClosed("send on a closed sender")
        if self._receiver_gone.is_set():
            raise ChannelClosed("receiver has been dropped")
        self._queue.put(item)

    def close(self) -> None:
        """Hang up. Items already queued are still delivered."""
        if not self._closed:
            self._closed = True
            self._queue.put(_HANGUP)

    def __enter__(self) -> "Sender[T]":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class Receiver(Generic[T]):
    """The consuming end of a channel."""

    def __init__(self, q: queue.Queue, receiver_gone: threading.Event) -> None:
        self._queue = q
        self._receiver_gone = receiver_gone
        self._disconnected = False

    @property
    def disconnected(self) -> bool:
        """True once the sender hung up and every queued item was consumed."""
        return self._disconnected

    def recv(self, timeout: float | None = None) -> T:
        """
        Block until an item arrives.

        Args:
            timeout: Seconds to wait, None waits forever.

        Raises:
            ChannelClosed: If the sender hung up and the queue is drained.
            Empty: If timeout expired with nothing to receive.
        """
        if self._disconnected:
            raise ChannelClosed("sender has been dropped")
        item = self._queue.get(timeout=timeout)
        return self._unwrap(item)

    def try_recv(self) -> T:
        """
        Receive without blocking.

        Raises:
            Empty: If nothing is queued.
            ChannelClosed: If the sender hung up and the queue is drained.
        """
        if self._disconnected:
            raise ChannelClosed("sender has been dropped")
        item = self._queue.get_nowait()
        return self._unwrap(item)

    def _unwrap(self, item):
        if item is _HANGUP:
            self._disconnected = True
            raise ChannelClosed("sender has been dropped")
        return item

    def close(self) -> None:
        """Stop accepting items; the sender's next send() fails."""
        self._receiver_gone.set()

    def __iter__(self) -> Iterator[T]:
        """Yield items until the sender hangs up."""
        while True:
            try:
                yield self.recv()
            except ChannelClosed:
                return


def channel() -> tuple[Sender, Receiver]:
    """
    Create a connected (Sender, Receiver) pair.

    Example:
        >>> tx, rx = channel()
        >>> tx.send(1)
        >>> rx.recv()
        1
    """
    q: queue.Queue = queue.Queue()
    receiver_gone = threading.Event()
    return Sender(q, receiver_gone), Receiver(q, receiver_gone)


class ChannelClosed(ChannelError):
    """Raised when the other end of a channel has been dropped."""
    pass


__all__ = ["channel", "Sender", "Receiver", "ChannelClosed", "Empty"]
