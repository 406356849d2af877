# src/outstream/broadcast/subscriber.py
"""Subscriber: one downstream connection of a listening sink.

A Subscriber owns a bounded FIFO of payloads and a connection. The producer
side (``offer``) waits at most a short, caller-chosen time; the sender loop
(``run``) drains the queue onto the connection on the connection's own
thread.

Two ways to stop:
    - close() with no reason is orderly: no new payloads are accepted, the
      sender loop delivers what is already queued and returns, and the
      transport releases the connection when its handler returns.
    - close(reason) drops the subscriber: the connection is shut down at
      once, interrupting any in-flight send, and queued payloads are
      discarded. abort() does the same after an orderly close stalls.

Thread Safety:
    - offer() is called by the Broadcaster with its set lock held
    - run() runs on exactly one thread (the transport's per-connection thread)
    - close() may be called from any thread, any number of times; only the
      first call tears down, guarded by _state_lock
"""

from __future__ import annotations

import queue
import threading
from collections.abc import Callable

import structlog

from outstream.defaults import QUEUE_SIZE
from outstream.errors import SubscriberLostError
from outstream.protocols import ConnectionProtocol

logger = structlog.get_logger(__name__)

# Queue entry that tells the sender loop to stop.
_STOP = None


class Subscriber:
    """A downstream consumer with its own bounded outgoing queue.

    Example:
        subscriber = Subscriber(1, connection, queue_size=10)
        subscriber.offer(b"payload")  # from the producer
        subscriber.run()              # on the connection thread, until closed
    """

    def __init__(
        self,
        subscriber_id: int,
        connection: ConnectionProtocol,
        *,
        queue_size: int = QUEUE_SIZE,
        on_close: Callable[[Subscriber], None] | None = None,
    ) -> None:
        """Initialize the subscriber.

        Args:
            subscriber_id: Identifier unique within the owning Broadcaster
            connection: Downstream connection, owned from now on
            queue_size: Payloads that may wait before offer() reports full
            on_close: Called once, after teardown, with this subscriber

        Raises:
            ValueError: If queue_size < 1.
        """
        if queue_size < 1:
            raise ValueError(f"queue_size must be >= 1, got {queue_size}")
        self._id = subscriber_id
        self._connection = connection
        self._queue: queue.Queue[bytes | None] = queue.Queue(maxsize=queue_size)
        self._on_close = on_close

        self._state_lock = threading.Lock()
        self._alive = True
        self._draining = False
        self._released = False
        self._close_reason: SubscriberLostError | None = None
        self._sent = 0
        self._done = threading.Event()

    @property
    def id(self) -> int:
        return self._id

    @property
    def peer(self) -> str:
        return self._connection.peer

    @property
    def alive(self) -> bool:
        return self._alive

    @property
    def close_reason(self) -> SubscriberLostError | None:
        """Why the subscriber was lost; None while alive or after a plain close."""
        return self._close_reason

    @property
    def pending(self) -> int:
        """Payloads queued but not yet sent."""
        return self._queue.qsize()

    @property
    def sent(self) -> int:
        """Payloads fully written to the connection."""
        return self._sent

    def offer(self, payload: bytes, timeout: float = 0.0) -> bool:
        """Queue a payload, waiting up to ``timeout`` seconds for room.

        A sender that is keeping up frees a slot well within the timeout;
        only a stalled one lets it expire.

        Returns:
            True if queued; False if the queue stayed full or the subscriber
            is no longer alive. The caller decides what to do with a False.
        """
        if not self._alive:
            return False
        try:
            if timeout > 0:
                self._queue.put(payload, timeout=timeout)
            else:
                self._queue.put_nowait(payload)
        except queue.Full:
            return False
        return True

    def run(self) -> None:
        """Sender loop: write queued payloads until the subscriber is closed.

        Blocks on the queue when idle and on the connection while sending.
        After an orderly close it returns once the queue is empty. A send
        failure closes the subscriber with reason ``send_failed``.
        """
        try:
            while True:
                payload = self._queue.get()
                if payload is _STOP:
                    break
                try:
                    self._connection.send(payload)
                except OSError as e:
                    self.close(SubscriberLostError(self._id, "send_failed", str(e)))
                    break
                self._sent += 1
                # The stop sentinel could not be queued behind a full queue
                if self._draining and self._queue.empty():
                    break
        finally:
            self.close()
            self._done.set()

    def wait(self, timeout: float | None = None) -> bool:
        """Wait for the sender loop to exit. Returns False on timeout."""
        return self._done.wait(timeout)

    def close(self, reason: SubscriberLostError | None = None) -> bool:
        """Stop the subscriber.

        Only the first call has an effect.

        Args:
            reason: Why the subscriber is being dropped. None for an orderly
                shutdown by the owning sink: payloads already queued are
                still delivered before the sender loop returns.

        Returns:
            True if this call performed the teardown, False if it was
            already closed.
        """
        with self._state_lock:
            if not self._alive:
                return False
            self._alive = False
            self._close_reason = reason
            self._draining = reason is None

        if reason is None:
            self._queue_stop()
        else:
            self.abort()

        if self._on_close is not None:
            self._on_close(self)
        return True

    def abort(self) -> None:
        """Shut the connection down now, discarding anything still queued.

        Used for drops and when an orderly close does not finish in time.
        """
        with self._state_lock:
            self._alive = False
            self._draining = False
            if self._released:
                return
            self._released = True

        self._connection.close()
        self._wake_sender()

    def _queue_stop(self) -> None:
        """Put the stop sentinel behind the pending payloads.

        A full queue means the sender is busy; it notices _draining once the
        queue is empty.
        """
        try:
            self._queue.put_nowait(_STOP)
        except queue.Full:
            pass

    def _wake_sender(self) -> None:
        """Put the stop sentinel on the queue, discarding stale payloads if full.

        offer() rejects new payloads once _alive is False, so at most one
        racing producer can refill a slot; maxsize + 1 attempts always leave
        room for the sentinel.
        """
        for _ in range(self._queue.maxsize + 1):
            try:
                self._queue.put_nowait(_STOP)
                return
            except queue.Full:
                try:
                    self._queue.get_nowait()
                except queue.Empty:
                    pass
        logger.error(
            "Failed to queue stop sentinel - sender loop may not exit",
            subscriber_id=self._id,
            peer=self.peer,
        )
