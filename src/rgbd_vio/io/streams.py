"""In-process streams connecting device producers to the fusion loop.

StreamQueue is the pull side (one per image, depth, features and reset
stream), InertialSource is the push side for inertial packets, and
QueueSink publishes the loop's outputs back onto queues.
"""

from __future__ import annotations

import queue
import threading
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Generic, TypeVar

from .messages import ImageFrame, InertialPacket

if TYPE_CHECKING:
    from ..fusion.observation import StampedPose

T = TypeVar("T")

InertialHandler = Callable[[Sequence[InertialPacket]], None]


class StreamClosed(Exception):
    """Raised by StreamQueue.get() once the stream has been closed."""


class _Closed:
    """Sentinel placed on a queue by close()."""


_CLOSED = _Closed()


class StreamQueue(Generic[T]):
    """Bounded message queue with blocking and non-blocking reads.

    When full, a non-blocking queue drops its oldest message to make room,
    so a slow consumer always sees the freshest data.
    """

    def __init__(self, name: str, maxsize: int = 8, blocking: bool = False) -> None:
        """Initialize the stream.

        Args:
            name: Stream name used in log messages
            maxsize: Maximum number of queued messages
            blocking: If True, put() waits for space instead of dropping
        """
        if maxsize <= 0:
            raise ValueError(f"maxsize must be positive, got {maxsize}")
        self.name = name
        self._queue: queue.Queue = queue.Queue(maxsize=maxsize)
        self._blocking = blocking
        self._put_lock = threading.Lock()
        self._closed = False
        self._num_dropped = 0

    def put(self, item: T) -> bool:
        """Enqueue a message.

        Returns:
            False if the stream is closed, True otherwise
        """
        if self._closed:
            return False
        if self._blocking:
            self._queue.put(item)
            return True

        with self._put_lock:
            while True:
                try:
                    self._queue.put_nowait(item)
                    return True
                except queue.Full:
                    try:
                        self._queue.get_nowait()
                        self._num_dropped += 1
                    except queue.Empty:
                        pass

    def get(self) -> T:
        """Block until the next message arrives.

        Raises:
            StreamClosed: If the stream was closed
        """
        item = self._queue.get()
        if item is _CLOSED:
            # Leave the sentinel for any other waiter
            self._requeue_sentinel()
            raise StreamClosed(self.name)
        return item

    def try_get(self) -> T | None:
        """Return the next message, or None if none is queued.

        Raises:
            StreamClosed: If the stream was closed
        """
        try:
            item = self._queue.get_nowait()
        except queue.Empty:
            return None
        if item is _CLOSED:
            self._requeue_sentinel()
            raise StreamClosed(self.name)
        return item

    def close(self) -> None:
        """Close the stream and wake up any blocked reader."""
        if self._closed:
            return
        self._closed = True
        self._requeue_sentinel()

    def _requeue_sentinel(self) -> None:
        with self._put_lock:
            while True:
                try:
                    self._queue.put_nowait(_CLOSED)
                    return
                except queue.Full:
                    try:
                        self._queue.get_nowait()
                    except queue.Empty:
                        pass

    @property
    def closed(self) -> bool:
        """Return True once close() has been called."""
        return self._closed

    @property
    def num_dropped(self) -> int:
        """Number of messages dropped because the queue was full."""
        return self._num_dropped

    def __len__(self) -> int:
        """Approximate number of queued messages."""
        return self._queue.qsize()


class InertialSource:
    """Push-based inertial stream.

    Handlers are invoked on the publisher's thread with each batch of
    packets, so they must not block.
    """

    def __init__(self) -> None:
        self._handlers: list[InertialHandler] = []
        self._lock = threading.Lock()

    def on_packet(self, handler: InertialHandler) -> None:
        """Register a handler receiving every published batch."""
        with self._lock:
            self._handlers.append(handler)

    def remove_handler(self, handler: InertialHandler) -> None:
        """Unregister a handler. Unknown handlers are ignored."""
        with self._lock:
            if handler in self._handlers:
                self._handlers.remove(handler)

    def publish(self, packets: Sequence[InertialPacket]) -> None:
        """Deliver a batch of packets to every registered handler."""
        with self._lock:
            handlers = list(self._handlers)
        for handler in handlers:
            handler(packets)


class QueueSink:
    """Output sink publishing poses and passthrough frames onto queues."""

    def __init__(self, maxsize: int = 8) -> None:
        self.transform: StreamQueue = StreamQueue("transform", maxsize=maxsize)
        self.passthrough_rect: StreamQueue = StreamQueue(
            "passthrough_rect", maxsize=maxsize
        )

    def send_pose(self, pose: StampedPose) -> None:
        """Publish a stamped pose."""
        self.transform.put(pose)

    def send_passthrough_frame(self, frame: ImageFrame) -> None:
        """Publish the image frame consumed by the fusion cycle."""
        self.passthrough_rect.put(frame)

    def close(self) -> None:
        """Close both output streams."""
        self.transform.close()
        self.passthrough_rect.close()
