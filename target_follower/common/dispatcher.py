#!/usr/bin/env python3
"""
dispatcher.py - Cooperative Event Dispatcher

A single-threaded publish/subscribe loop on top of asyncio. Perception and
telemetry messages are queued by their producers and delivered to subscribed
handlers one at a time on the event loop thread, so controller state never
needs locking.

Shutdown is explicit: every dispatcher owns a ShutdownToken. Cancelling the
token (from any thread, including a signal handler) wakes a blocked spin and
makes it return.

Usage:
    dispatcher = EventDispatcher()
    subscription = dispatcher.subscribe(Topic.TELEMETRY, on_telemetry)

    # Process one event (or time out)
    await dispatcher.spin_once(timeout=0.1)

    # Process events until shutdown
    await dispatcher.spin()
"""

import asyncio
import inspect
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

# Queue marker used to wake a blocked spin on shutdown
_WAKEUP = object()


class ShutdownRequested(Exception):
    """Raised by blocking waits when the shutdown token has been cancelled."""


class ShutdownToken:
    """
    Thread-safe, one-way cancellation flag.

    Attributes:
        reason: Why shutdown was requested (None while not cancelled).
    """

    def __init__(self):
        self._cancelled = threading.Event()
        self._acknowledged = threading.Event()
        self._wakeups: List[Callable[[], None]] = []
        self._lock = threading.Lock()
        self.reason: Optional[str] = None

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self, reason: str = "requested") -> bool:
        """
        Request shutdown.

        Args:
            reason: Short description stored on the token.

        Returns:
            bool: True if this call cancelled the token, False if it was already cancelled.
        """
        with self._lock:
            if self._cancelled.is_set():
                return False
            self.reason = reason
            self._cancelled.set()
            wakeups = list(self._wakeups)

        logger.info("Shutdown requested (%s)", reason)
        for wakeup in wakeups:
            wakeup()
        return True

    def add_wakeup(self, callback: Callable[[], None]) -> None:
        """Register a callback invoked (from the cancelling thread) on cancel."""
        with self._lock:
            self._wakeups.append(callback)

    def acknowledge(self) -> None:
        """Mark that the main loop has finished shutting down."""
        self._acknowledged.set()

    def wait_acknowledged(self, timeout: Optional[float] = None) -> bool:
        """Block until the main loop acknowledges shutdown."""
        return self._acknowledged.wait(timeout)


@dataclass
class Subscription:
    """Handle returned by subscribe(); pass it to unsubscribe()."""

    topic: str
    handler: Callable[[Any], Any]


class EventDispatcher:
    """
    Topic-based event dispatcher driven by spin_once()/spin().

    Attributes:
        shutdown: Token observed by spin() and blocking waits.
        poll_interval: Maximum time spin() blocks before re-checking shutdown.
    """

    def __init__(
        self,
        shutdown: Optional[ShutdownToken] = None,
        poll_interval: float = 0.1,
        max_queue_size: int = 1000,
    ):
        """
        Initialize the dispatcher.

        Args:
            shutdown: Shared shutdown token. Creates a new one if None.
            poll_interval: Seconds between shutdown checks while idle.
            max_queue_size: Pending events kept before new ones are dropped.
        """
        self.shutdown = shutdown or ShutdownToken()
        self.poll_interval = poll_interval

        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_queue_size)
        self._handlers: Dict[str, List[Callable[[Any], Any]]] = {}
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._dispatched_count = 0
        self._dropped_count = 0

        self.shutdown.add_wakeup(self._wake)

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    def subscribe(self, topic: str, handler: Callable[[Any], Any]) -> Subscription:
        """
        Register a handler for a topic.

        Handlers may be plain functions or coroutine functions.

        Args:
            topic: Topic name.
            handler: Called with each message published on the topic.

        Returns:
            Subscription: Handle for unsubscribe().
        """
        self._handlers.setdefault(topic, []).append(handler)
        logger.debug("Subscribed %s to '%s'", getattr(handler, "__name__", handler), topic)
        return Subscription(topic=topic, handler=handler)

    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove a previously registered handler."""
        handlers = self._handlers.get(subscription.topic, [])
        if subscription.handler in handlers:
            handlers.remove(subscription.handler)
            logger.debug("Unsubscribed from '%s'", subscription.topic)

    def subscriber_count(self, topic: str) -> int:
        return len(self._handlers.get(topic, []))

    # -------------------------------------------------------------------------
    # Publishing
    # -------------------------------------------------------------------------

    def publish(self, topic: str, message: Any) -> bool:
        """
        Queue a message for delivery. Must be called on the loop thread.

        Returns:
            bool: False if the queue was full and the message was dropped.
        """
        try:
            self._queue.put_nowait((topic, message))
        except asyncio.QueueFull:
            self._dropped_count += 1
            logger.warning("Dispatcher queue full, dropping '%s' message", topic)
            return False
        return True

    def publish_threadsafe(self, topic: str, message: Any) -> None:
        """Queue a message from a thread other than the loop thread."""
        if self._loop is None:
            raise RuntimeError("Dispatcher is not bound to an event loop yet")
        self._loop.call_soon_threadsafe(self.publish, topic, message)

    @property
    def pending(self) -> int:
        """Number of queued events."""
        return self._queue.qsize()

    # -------------------------------------------------------------------------
    # Dispatch loop
    # -------------------------------------------------------------------------

    def bind(self) -> None:
        """Remember the running loop so other threads can wake it."""
        if self._loop is None:
            self._loop = asyncio.get_running_loop()

    async def spin_once(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for one pending event and deliver it.

        Args:
            timeout: Seconds to wait for an event. None waits indefinitely.

        Returns:
            bool: True if an event was dispatched.
        """
        self.bind()

        try:
            if timeout is None:
                item = await self._queue.get()
            else:
                item = await asyncio.wait_for(self._queue.get(), timeout)
        except asyncio.TimeoutError:
            return False

        if item is _WAKEUP:
            return False

        topic, message = item
        await self._dispatch(topic, message)
        return True

    async def spin(self) -> None:
        """Dispatch events until the shutdown token is cancelled."""
        self.bind()
        logger.debug("Dispatcher spinning")

        while not self.shutdown.is_cancelled:
            await self.spin_once(timeout=self.poll_interval)

        logger.debug(
            "Dispatcher stopped (%d dispatched, %d dropped)",
            self._dispatched_count,
            self._dropped_count,
        )

    async def sleep(self, seconds: float) -> None:
        """
        Sleep without dispatching, waking early on shutdown.

        Raises:
            ShutdownRequested: If shutdown is requested before or during the sleep.
        """
        self.bind()
        deadline = self._loop.time() + seconds

        while True:
            self.raise_if_shutdown()
            remaining = deadline - self._loop.time()
            if remaining <= 0:
                return
            await asyncio.sleep(min(remaining, self.poll_interval))

    def raise_if_shutdown(self) -> None:
        """Raise ShutdownRequested if the token has been cancelled."""
        if self.shutdown.is_cancelled:
            raise ShutdownRequested(self.shutdown.reason)

    def close(self) -> None:
        """Acknowledge shutdown to whoever is waiting on the token."""
        self.shutdown.acknowledge()

    async def _dispatch(self, topic: str, message: Any) -> None:
        """Deliver a message to every handler on its topic."""
        self._dispatched_count += 1

        for handler in list(self._handlers.get(topic, [])):
            try:
                result = handler(message)
                if inspect.isawaitable(result):
                    await result
            except ShutdownRequested:
                raise
            except Exception:
                logger.exception("Handler error on '%s'", topic)

    def _wake(self) -> None:
        """Unblock a pending spin_once (called from the cancelling thread)."""
        loop = self._loop
        if loop is None or loop.is_closed():
            return

        def put_marker():
            try:
                self._queue.put_nowait(_WAKEUP)
            except asyncio.QueueFull:
                # A full queue already guarantees the next get() returns
                pass

        try:
            loop.call_soon_threadsafe(put_marker)
        except RuntimeError:
            # Loop closed between the check and the call
            pass

    def get_status(self) -> dict:
        """
        Get dispatcher statistics.

        Returns:
            dict: Queue and delivery counters.
        """
        return {
            "pending": self.pending,
            "dispatched": self._dispatched_count,
            "dropped": self._dropped_count,
            "shutdown": self.shutdown.is_cancelled,
            "shutdown_reason": self.shutdown.reason,
        }
