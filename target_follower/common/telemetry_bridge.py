#!/usr/bin/env python3
"""
telemetry_bridge.py - MAVSDK Telemetry to Dispatcher Bridge

Reads the MAVSDK position stream in a background task and republishes the
relative altitude as TelemetryFrames (millimetres) on the event dispatcher.

The reader yields to the event loop after every sample so telemetry never
starves command execution.

Usage:
    bridge = TelemetryBridge(sink.drone, dispatcher)
    await bridge.start()
    ...
    await bridge.stop()
"""

import asyncio
import logging
from typing import Optional

from target_follower.common.messages import TelemetryFrame, Topic

logger = logging.getLogger(__name__)


def altitude_to_mm(relative_altitude_m: float) -> int:
    """Convert a relative altitude in metres to integer millimetres."""
    return int(round(relative_altitude_m * 1000.0))


class TelemetryBridge:
    """
    Publishes vehicle altitude on the telemetry topic.

    Attributes:
        last_frame: Most recently published frame (None before the first sample).
        frame_count: Number of frames published.
    """

    def __init__(self, drone: "System", dispatcher):
        """
        Initialize the bridge.

        Args:
            drone: Connected MAVSDK System.
            dispatcher: EventDispatcher to publish on.
        """
        self._drone = drone
        self._dispatcher = dispatcher
        self._task: Optional[asyncio.Task] = None

        self.last_frame: Optional[TelemetryFrame] = None
        self.frame_count = 0

    async def start(self) -> None:
        """Start the background reader task."""
        if self._task is not None:
            logger.warning("TelemetryBridge already started")
            return

        self._task = asyncio.create_task(self._read_position())
        logger.debug("TelemetryBridge started")

    async def stop(self) -> None:
        """Cancel the reader task and wait for it to finish."""
        if self._task is None:
            return

        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None
        logger.debug("TelemetryBridge stopped (%d frames)", self.frame_count)

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _read_position(self) -> None:
        """Background task reading position telemetry."""
        try:
            async for position in self._drone.telemetry.position():
                if self._dispatcher.shutdown.is_cancelled:
                    break

                frame = TelemetryFrame(altitude=altitude_to_mm(position.relative_altitude_m))
                self._dispatcher.publish(Topic.TELEMETRY, frame)
                self.last_frame = frame
                self.frame_count += 1

                # Critical: yield control immediately to allow commands to execute
                await asyncio.sleep(0)

        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error("Position telemetry error: %s", e)
