#!/usr/bin/env python3
"""
altitude_ramp.py - Open-Loop Climb to a Target Altitude

After takeoff the vehicle hovers at its default height. AltitudeRamp commands
a constant climb rate and pumps the dispatcher until telemetry reports the
target altitude, then stops the vehicle.

There is no timeout: if telemetry never arrives, run() waits until shutdown
is requested. This is accepted for the single bring-up phase and logged
periodically so a stalled telemetry source is visible.

Usage:
    ramp = AltitudeRamp(dispatcher, sink, climb_rate=0.6)
    await ramp.run(1300)
"""

import logging
import time
from typing import Optional

from target_follower.common.command_sink import CommandSink
from target_follower.common.dispatcher import EventDispatcher
from target_follower.common.messages import TelemetryFrame, Topic, VelocityCommand

logger = logging.getLogger(__name__)

# Seconds without telemetry before a stall warning is logged
STALL_WARNING_INTERVAL = 5.0


class AltitudeRamp:
    """
    Climbs at a fixed rate until telemetry altitude reaches a target.

    Attributes:
        current_altitude: Latest telemetry altitude in millimetres.
        frames_received: Telemetry frames seen during the current run.
    """

    def __init__(
        self,
        dispatcher: EventDispatcher,
        sink: CommandSink,
        climb_rate: float = 0.6,
        poll_interval: float = 0.1,
    ):
        """
        Initialize the ramp.

        Args:
            dispatcher: Dispatcher delivering telemetry.
            sink: Command sink for velocity commands.
            climb_rate: Normalized vertical velocity while climbing.
            poll_interval: Max seconds to wait for an event per iteration.
        """
        self._dispatcher = dispatcher
        self._sink = sink
        self.climb_rate = climb_rate
        self.poll_interval = poll_interval

        self.current_altitude: int = 0
        self.frames_received: int = 0
        self._last_frame_time: Optional[float] = None

    def on_telemetry(self, frame: TelemetryFrame) -> None:
        """Record the latest altitude."""
        self.current_altitude = frame.altitude
        self.frames_received += 1
        self._last_frame_time = time.monotonic()

    async def run(self, target_altitude: int) -> int:
        """
        Climb until telemetry altitude >= target_altitude.

        Args:
            target_altitude: Target altitude in millimetres.

        Returns:
            int: Altitude reported when the target was reached.

        Raises:
            ShutdownRequested: If shutdown is requested while climbing.
        """
        logger.info("Increasing altitude to %d...", target_altitude)

        self.frames_received = 0
        start_time = time.monotonic()
        last_warning = start_time

        await self._sink.send_velocity(VelocityCommand(linear_z=self.climb_rate))
        subscription = self._dispatcher.subscribe(Topic.TELEMETRY, self.on_telemetry)

        try:
            while self.current_altitude < target_altitude:
                self._dispatcher.raise_if_shutdown()
                await self._dispatcher.spin_once(timeout=self.poll_interval)

                now = time.monotonic()
                last_seen = self._last_frame_time or start_time
                if now - last_seen > STALL_WARNING_INTERVAL and now - last_warning > STALL_WARNING_INTERVAL:
                    logger.warning(
                        "No telemetry for %.1fs while climbing (altitude %d/%d)",
                        now - last_seen,
                        self.current_altitude,
                        target_altitude,
                    )
                    last_warning = now
        finally:
            self._dispatcher.unsubscribe(subscription)

        await self._sink.send_velocity(VelocityCommand())
        logger.info("Altitude is now %d", self.current_altitude)
        return self.current_altitude
