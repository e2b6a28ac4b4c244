"""Context-scoped, non-blocking progress event channel.

Producers call :func:`send` (or one of the level helpers) from anywhere in
the call chain. The event goes to whichever :class:`StatusChannel` is
attached to the current context, or nowhere if none is attached. Sending
never blocks: a full channel drops the event.

Typical use::

    cleanup = start_handler(log_status_event)
    try:
        orchestrator.run()
    finally:
        cleanup()
"""

from __future__ import annotations

import contextlib
import contextvars
import queue
import threading
import time
from collections.abc import Callable, Iterator
from datetime import UTC, datetime
from enum import Enum
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field

logger = structlog.get_logger()

DEFAULT_CHANNEL_SIZE = 100
DEFAULT_FLUSH_TIMEOUT = 5.0
_CLOSED_POLL_INTERVAL = 0.1


class StatusLevel(str, Enum):
    """Severity of a status event."""

    INFO = "info"
    PROGRESS = "progress"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class StatusEvent(BaseModel):
    """A single progress report. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    level: StatusLevel
    message: str
    resource: str | None = None
    action: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime | None = None

    @classmethod
    def create(cls, level: StatusLevel, message: str) -> StatusEvent:
        """Create an event stamped with the current UTC time."""
        return cls(level=level, message=message, timestamp=datetime.now(UTC))

    def with_resource(self, resource: str) -> StatusEvent:
        return self.model_copy(update={"resource": resource})

    def with_action(self, action: str) -> StatusEvent:
        return self.model_copy(update={"action": action})

    def with_metadata(self, key: str, value: Any) -> StatusEvent:
        metadata = dict(self.metadata)
        metadata[key] = value
        return self.model_copy(update={"metadata": metadata})


_CLOSED = object()


class StatusChannel:
    """Bounded event buffer with a non-blocking producer side.

    Many threads may call :meth:`offer`; exactly one consumer should
    iterate the channel. Iteration ends once :meth:`close` has been called
    and every buffered event has been consumed.
    """

    def __init__(self, maxsize: int = DEFAULT_CHANNEL_SIZE) -> None:
        if maxsize <= 0:
            raise ValueError("maxsize must be positive")
        self._queue: queue.Queue[Any] = queue.Queue(maxsize=maxsize)
        self._closed = threading.Event()
        self._drop_lock = threading.Lock()
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def offer(self, event: StatusEvent) -> bool:
        """Enqueue ``event`` without blocking.

        Returns:
            False when the channel is full or closed and the event was dropped.
        """
        if self._closed.is_set():
            self._record_drop()
            return False
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            self._record_drop()
            return False
        return True

    def _record_drop(self) -> None:
        with self._drop_lock:
            self.dropped += 1

    def get_nowait(self) -> StatusEvent:
        """Return the next buffered event.

        Raises:
            queue.Empty: If nothing is buffered.
        """
        item = self._queue.get_nowait()
        if item is _CLOSED:
            # Keep the close marker visible to the consumer loop.
            self._queue.put_nowait(_CLOSED)
            raise queue.Empty
        return item

    def drain(self) -> list[StatusEvent]:
        """Return every event currently buffered."""
        events: list[StatusEvent] = []
        while True:
            try:
                events.append(self.get_nowait())
            except queue.Empty:
                return events

    def close(self, timeout: float | None = None) -> bool:
        """Stop accepting events and wake the consumer.

        The close marker is queued behind buffered events so the consumer
        drains them first. If the buffer stays full for ``timeout`` seconds
        the marker cannot be queued.

        Returns:
            True if the close marker was queued.
        """
        if self._closed.is_set():
            return True
        self._closed.set()
        try:
            self._queue.put(_CLOSED, timeout=timeout)
        except queue.Full:
            return False
        return True

    def __iter__(self) -> Iterator[StatusEvent]:
        while True:
            try:
                item = self._queue.get(timeout=_CLOSED_POLL_INTERVAL)
            except queue.Empty:
                # The close marker may never arrive if close() found the buffer full.
                if self._closed.is_set():
                    return
                continue
            if item is _CLOSED:
                return
            yield item


_current_channel: contextvars.ContextVar[StatusChannel | None] = contextvars.ContextVar(
    "gitops_bootstrap_status_channel", default=None
)


@contextlib.contextmanager
def with_channel(channel: StatusChannel | None) -> Iterator[StatusChannel | None]:
    """Attach ``channel`` as the send target for the enclosed block.

    Nested blocks replace the target; leaving a block restores the previous
    one. Passing None detaches reporting for the block.
    """
    token = _current_channel.set(channel)
    try:
        yield channel
    finally:
        _current_channel.reset(token)


def current_channel() -> StatusChannel | None:
    """Return the channel attached to the current context, if any."""
    return _current_channel.get()


def has_channel() -> bool:
    return _current_channel.get() is not None


def send(event: StatusEvent) -> None:
    """Deliver ``event`` to the current channel without blocking."""
    channel = _current_channel.get()
    if channel is None:
        return
    if event.timestamp is None:
        event = event.model_copy(update={"timestamp": datetime.now(UTC)})
    channel.offer(event)


def info(message: str) -> None:
    send(StatusEvent.create(StatusLevel.INFO, message))


def progress(message: str) -> None:
    send(StatusEvent.create(StatusLevel.PROGRESS, message))


def success(message: str) -> None:
    send(StatusEvent.create(StatusLevel.SUCCESS, message))


def warning(message: str) -> None:
    send(StatusEvent.create(StatusLevel.WARNING, message))


def error(message: str) -> None:
    send(StatusEvent.create(StatusLevel.ERROR, message))


StatusHandler = Callable[[StatusEvent], None]


def start_handler(
    handler: StatusHandler,
    channel_size: int = DEFAULT_CHANNEL_SIZE,
    flush_timeout: float = DEFAULT_FLUSH_TIMEOUT,
) -> Callable[[], None]:
    """Attach a fresh channel to the current context and consume it.

    A single daemon thread calls ``handler`` for every event until the
    channel is closed. The returned cleanup function closes the channel,
    waits at most ``flush_timeout`` seconds for the consumer to drain it,
    then detaches the channel. Trailing events may be lost on timeout.
    Calling cleanup more than once is a no-op.

    Args:
        handler: Called once per event on the consumer thread.
        channel_size: Buffer capacity.
        flush_timeout: Upper bound on the shutdown wait, in seconds.

    Returns:
        The cleanup function.
    """
    channel = StatusChannel(channel_size)
    token = _current_channel.set(channel)

    def consume() -> None:
        for event in channel:
            try:
                handler(event)
            except Exception:
                logger.exception("status_handler_failed", message=event.message)

    consumer = threading.Thread(target=consume, name="status-consumer", daemon=True)
    consumer.start()

    done = False

    def cleanup() -> None:
        nonlocal done
        if done:
            return
        done = True
        deadline = time.monotonic() + flush_timeout
        channel.close(timeout=flush_timeout)
        consumer.join(timeout=max(0.0, deadline - time.monotonic()))
        if consumer.is_alive():
            logger.warning("status_flush_timeout", flush_timeout=flush_timeout)
        if channel.dropped:
            logger.debug("status_events_dropped", count=channel.dropped)
        try:
            _current_channel.reset(token)
        except ValueError:
            # Cleanup ran in a different context than start_handler.
            _current_channel.set(None)

    return cleanup
