#!/usr/bin/env python3
"""
emergency.py - Interrupt-Driven Emergency Landing

Ctrl+C (SIGINT) or SIGTERM at any point in the flight lands the vehicle and
shuts the controller down. The override never touches controller or
orchestrator state and takes none of their locks:

1. The primary command sink is locked out, so no further velocity commands
   reach the vehicle.
2. A dedicated thread with its own event loop opens a fresh command sink,
   waits a short grace delay, and sends the land command. This does not
   depend on the main loop making progress.
3. The shutdown token is cancelled, which stops the dispatcher. If the main
   loop does not acknowledge within exit_timeout, the process exits anyway.

The override is one-shot: later interrupts are ignored.

Usage:
    emergency = EmergencyLanding(make_sink, dispatcher.shutdown, primary_sink=sink)
    emergency.install()
"""

import asyncio
import logging
import os
import signal
import threading
from typing import Callable, Optional

from target_follower.common.command_sink import CommandSink
from target_follower.common.dispatcher import ShutdownToken

logger = logging.getLogger(__name__)

EMERGENCY_LANDING_REASON = "emergency_landing"


class EmergencyLanding:
    """
    One-shot landing override.

    Attributes:
        grace_delay: Seconds between trigger and the land command.
        exit_timeout: Seconds to wait for the main loop to stop before forcing
            process exit. None disables the forced exit.
        landed: Set once the land command has been sent.
    """

    def __init__(
        self,
        sink_factory: Callable[[], CommandSink],
        shutdown: ShutdownToken,
        primary_sink: Optional[CommandSink] = None,
        grace_delay: float = 2.0,
        exit_timeout: Optional[float] = 5.0,
    ):
        """
        Initialize the override.

        Args:
            sink_factory: Creates the command sink used for landing.
            shutdown: Token cancelled after the land command.
            primary_sink: Sink used by the control loop; locked out on trigger.
            grace_delay: Seconds to wait before landing.
            exit_timeout: Seconds to wait for an orderly stop before forcing exit.
        """
        self._sink_factory = sink_factory
        self._shutdown = shutdown
        self._primary_sink = primary_sink
        self.grace_delay = grace_delay
        self.exit_timeout = exit_timeout

        # Acquired once and never released: makes trigger() one-shot
        self._once = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self.landed = threading.Event()

    @property
    def triggered(self) -> bool:
        return self._once.locked()

    def install(self) -> None:
        """Route SIGINT and SIGTERM to the override."""
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)
        logger.debug("Emergency landing armed (SIGINT/SIGTERM)")

    def _signal_handler(self, signum, frame):
        """Handle interrupt signals."""
        logger.warning("Interrupt received (%s)", signal.Signals(signum).name)
        self.trigger()

    def trigger(self) -> bool:
        """
        Start the emergency landing.

        Safe to call from a signal handler or any thread.

        Returns:
            bool: False if the override was already triggered.
        """
        if not self._once.acquire(blocking=False):
            logger.warning("Emergency landing already in progress")
            return False

        logger.warning("EMERGENCY LANDING")

        if self._primary_sink is not None:
            self._primary_sink.lock_out()

        self._thread = threading.Thread(
            target=self._run,
            name="emergency-landing",
            daemon=False,
        )
        self._thread.start()
        return True

    def join(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for the landing thread to finish.

        Returns:
            bool: True if the thread has finished (or never started).
        """
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def _run(self) -> None:
        """Landing thread body."""
        try:
            asyncio.run(self._land())
        except Exception:
            logger.exception("Emergency landing failed")
        finally:
            self._shutdown.cancel(EMERGENCY_LANDING_REASON)

        if self.exit_timeout is not None and not self._shutdown.wait_acknowledged(self.exit_timeout):
            logger.critical(
                "Main loop did not stop within %.1fs, forcing exit", self.exit_timeout
            )
            logging.shutdown()
            os._exit(0)

    async def _land(self) -> None:
        sink = self._sink_factory()
        await sink.open()

        try:
            await asyncio.sleep(self.grace_delay)
            logger.warning("Landing!")
            await sink.land()
            self.landed.set()
        finally:
            if sink is not self._primary_sink:
                await sink.close()
