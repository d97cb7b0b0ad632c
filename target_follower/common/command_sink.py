#!/usr/bin/env python3
"""
command_sink.py - Vehicle Command Sinks

Turns abstract flight commands (velocity, takeoff, land, flat trim) into
vehicle actions. Two implementations are provided:

- MavsdkCommandSink: PX4 autopilot over MAVLink using MAVSDK
- SimulatedVehicle: in-process vehicle for dry runs and tests

Every sink carries a lock-out latch. Once the emergency path latches a sink,
velocity commands are dropped so nothing can fight the landing.

Usage:
    sink = MavsdkCommandSink(connection_string)
    await sink.open()
    await sink.takeoff()
    await sink.send_velocity(VelocityCommand(linear_x=0.1))
    await sink.land()
"""

import asyncio
import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, List, Optional

from target_follower.common.messages import TelemetryFrame, Topic, VelocityCommand

logger = logging.getLogger(__name__)

# gRPC port mavsdk_server listens on unless told otherwise
DEFAULT_MAVSDK_SERVER_PORT = 50051


class CommandSink(ABC):
    """
    Base class for vehicle command channels.

    Subclasses implement the _publish_velocity/takeoff/land/flat_trim
    primitives; send_velocity() applies the lock-out latch.
    """

    def __init__(self):
        self._locked_out = threading.Event()
        self._velocity_count = 0

    async def open(self) -> None:
        """Prepare the channel for use. No-op by default."""

    async def close(self) -> None:
        """Release the channel. No-op by default."""

    def lock_out(self) -> None:
        """Permanently reject further velocity commands."""
        if not self._locked_out.is_set():
            self._locked_out.set()
            logger.warning("Command sink locked out, velocity commands disabled")

    @property
    def locked_out(self) -> bool:
        return self._locked_out.is_set()

    async def send_velocity(self, command: VelocityCommand) -> bool:
        """
        Send a velocity command unless the sink is locked out.

        Args:
            command: Velocity command to send.

        Returns:
            bool: True if the command was passed to the vehicle.
        """
        if self._locked_out.is_set():
            logger.debug("Dropping %s (locked out)", command)
            return False

        await self._publish_velocity(command)
        self._velocity_count += 1
        return True

    @abstractmethod
    async def _publish_velocity(self, command: VelocityCommand) -> None:
        """Deliver a velocity command to the vehicle."""

    @abstractmethod
    async def takeoff(self) -> None:
        """Command takeoff."""

    @abstractmethod
    async def land(self) -> None:
        """Command landing."""

    @abstractmethod
    async def flat_trim(self) -> None:
        """Calibrate the level horizon (vehicle must be on flat ground)."""


class MavsdkCommandSink(CommandSink):
    """
    Command sink for PX4 over MAVSDK.

    Normalized velocity commands are scaled to m/s and deg/s and sent as
    body-frame offboard setpoints. Offboard mode is started on the first
    velocity command.

    Attributes:
        connection_string: MAVSDK system address (None when attached).
        mavsdk_server_address: Host of a shared mavsdk_server (None when owning one).
        drone: The MAVSDK System instance (None until open()).
    """

    def __init__(
        self,
        connection_string: Optional[str] = None,
        max_speed_m_s: float = 1.0,
        max_yaw_rate_deg_s: float = 90.0,
        mavsdk_server_port: int = DEFAULT_MAVSDK_SERVER_PORT,
        connect_timeout: float = 30.0,
        drone: Any = None,
        mavsdk_server_address: Optional[str] = None,
    ):
        """
        Initialize the sink.

        Args:
            connection_string: MAVSDK system address (e.g. "tcp://localhost:5760").
                Not used when attaching to a running mavsdk_server.
            max_speed_m_s: Speed corresponding to a normalized command of 1.0.
            max_yaw_rate_deg_s: Yaw rate corresponding to a normalized command of 1.0.
            mavsdk_server_port: gRPC port of the mavsdk_server.
            connect_timeout: Seconds to wait for a heartbeat in open().
            drone: Already-connected System to use instead of creating one.
            mavsdk_server_address: Host of an already running mavsdk_server. When
                set, no new server (and no new MAVLink link) is started.
        """
        super().__init__()
        if connection_string is None and mavsdk_server_address is None and drone is None:
            raise ValueError("connection_string or mavsdk_server_address is required")

        self.connection_string = connection_string
        self.max_speed_m_s = max_speed_m_s
        self.max_yaw_rate_deg_s = max_yaw_rate_deg_s
        self.mavsdk_server_port = mavsdk_server_port
        self.mavsdk_server_address = mavsdk_server_address
        self.connect_timeout = connect_timeout
        self.drone = drone
        self._offboard_started = False

    @classmethod
    def attach(
        cls,
        mavsdk_server_address: str = "localhost",
        mavsdk_server_port: int = DEFAULT_MAVSDK_SERVER_PORT,
        **kwargs,
    ) -> "MavsdkCommandSink":
        """
        Create a sink that shares the link of an already running mavsdk_server.

        Serial and udpin endpoints are exclusive, so a second client must go
        through the server that already holds them.
        """
        return cls(
            mavsdk_server_address=mavsdk_server_address,
            mavsdk_server_port=mavsdk_server_port,
            **kwargs,
        )

    @property
    def attached(self) -> bool:
        """Whether this sink talks to an existing mavsdk_server."""
        return self.mavsdk_server_address is not None

    async def open(self) -> None:
        """
        Connect to the vehicle and wait for a heartbeat.

        Raises:
            ConnectionError: If no connection is established within the timeout.
        """
        if self.drone is not None:
            return

        from mavsdk import System

        if self.attached:
            drone = System(
                mavsdk_server_address=self.mavsdk_server_address,
                port=self.mavsdk_server_port,
            )
            logger.info(
                "Attaching to mavsdk_server at %s:%d",
                self.mavsdk_server_address,
                self.mavsdk_server_port,
            )
            await drone.connect()
        else:
            drone = System(port=self.mavsdk_server_port)
            logger.info("Connecting to drone: %s", self.connection_string)
            await drone.connect(system_address=self.connection_string)

        async def wait_connected():
            async for state in drone.core.connection_state():
                if state.is_connected:
                    return

        try:
            await asyncio.wait_for(wait_connected(), self.connect_timeout)
        except asyncio.TimeoutError:
            target = self.connection_string or f"mavsdk_server {self.mavsdk_server_address}:{self.mavsdk_server_port}"
            raise ConnectionError(
                f"No heartbeat from {target} after {self.connect_timeout}s"
            ) from None

        logger.info("Connected to drone")
        self.drone = drone

    async def close(self) -> None:
        """Stop offboard mode if this sink started it."""
        if self._offboard_started and self.drone is not None:
            from mavsdk.offboard import OffboardError

            try:
                await self.drone.offboard.stop()
            except OffboardError as e:
                logger.warning("Failed to stop offboard: %s", e)
            self._offboard_started = False

    def to_body_setpoint(self, command: VelocityCommand):
        """
        Convert a normalized command into a MAVSDK body-frame setpoint.

        MAVSDK uses forward-right-down with clockwise yaw, so lateral, vertical
        and yaw signs flip relative to the command convention.
        """
        from mavsdk.offboard import VelocityBodyYawspeed

        return VelocityBodyYawspeed(
            command.linear_x * self.max_speed_m_s,
            -command.linear_y * self.max_speed_m_s,
            -command.linear_z * self.max_speed_m_s,
            -command.angular_z * self.max_yaw_rate_deg_s,
        )

    async def _publish_velocity(self, command: VelocityCommand) -> None:
        setpoint = self.to_body_setpoint(command)
        await self.drone.offboard.set_velocity_body(setpoint)

        if not self._offboard_started:
            # A setpoint must already be streaming before offboard can start
            logger.info("Starting offboard mode...")
            await self.drone.offboard.start()
            self._offboard_started = True
            logger.info("Offboard mode started")

    async def takeoff(self) -> None:
        logger.info("  Arming...")
        await self.drone.action.arm()
        logger.info("  Taking off...")
        await self.drone.action.takeoff()

    async def land(self) -> None:
        await self.drone.action.land()
        logger.info("  Landing command sent")

    async def flat_trim(self) -> None:
        from mavsdk.calibration import CalibrationError

        try:
            async for progress in self.drone.calibration.calibrate_level_horizon():
                if progress.has_status_text:
                    logger.info("  Flat trim: %s", progress.status_text)
        except CalibrationError as e:
            logger.warning("Flat trim failed: %s", e)


@dataclass
class SinkRecord:
    """A command accepted by the SimulatedVehicle."""

    kind: str
    payload: Any = None
    timestamp: float = field(default_factory=time.monotonic)


class SimulatedVehicle(CommandSink):
    """
    In-process vehicle for dry runs and tests.

    Records every accepted command and, while run_telemetry() is active,
    integrates the commanded vertical velocity into an altitude that it
    publishes as TelemetryFrames.

    Attributes:
        commands: Accepted commands in order.
        altitude_mm: Simulated altitude in millimetres.
        airborne: Whether the vehicle has taken off and not landed.
    """

    def __init__(
        self,
        takeoff_altitude_mm: int = 1000,
        climb_rate_mm_s: float = 1000.0,
    ):
        """
        Initialize the simulator.

        Args:
            takeoff_altitude_mm: Altitude reached right after takeoff.
            climb_rate_mm_s: Climb rate for a normalized vertical command of 1.0.
        """
        super().__init__()
        self.takeoff_altitude_mm = takeoff_altitude_mm
        self.climb_rate_mm_s = climb_rate_mm_s

        self.commands: List[SinkRecord] = []
        self.altitude_mm: float = 0.0
        self.airborne = False
        self._vertical = 0.0

    def kinds(self) -> List[str]:
        """Kinds of all accepted commands, in order."""
        return [record.kind for record in self.commands]

    def velocities(self) -> List[VelocityCommand]:
        """All accepted velocity commands, in order."""
        return [record.payload for record in self.commands if record.kind == "velocity"]

    async def _publish_velocity(self, command: VelocityCommand) -> None:
        self.commands.append(SinkRecord("velocity", command))
        self._vertical = command.linear_z

    async def takeoff(self) -> None:
        self.commands.append(SinkRecord("takeoff"))
        self.airborne = True
        self.altitude_mm = float(self.takeoff_altitude_mm)

    async def land(self) -> None:
        self.commands.append(SinkRecord("land"))
        self.airborne = False
        self._vertical = 0.0
        self.altitude_mm = 0.0

    async def flat_trim(self) -> None:
        self.commands.append(SinkRecord("flat_trim"))

    def step(self, dt: float) -> TelemetryFrame:
        """
        Advance the simulation.

        Args:
            dt: Elapsed time in seconds.

        Returns:
            TelemetryFrame: Telemetry after the step.
        """
        if self.airborne:
            self.altitude_mm = max(0.0, self.altitude_mm + self._vertical * self.climb_rate_mm_s * dt)
        return TelemetryFrame(altitude=int(round(self.altitude_mm)))

    async def run_telemetry(self, dispatcher, rate_hz: float = 20.0) -> None:
        """
        Publish simulated telemetry until cancelled or shutdown.

        Args:
            dispatcher: EventDispatcher to publish on.
            rate_hz: Telemetry rate.
        """
        interval = 1.0 / rate_hz
        last = time.monotonic()

        while not dispatcher.shutdown.is_cancelled:
            await asyncio.sleep(interval)
            now = time.monotonic()
            dispatcher.publish(Topic.TELEMETRY, self.step(now - last))
            last = now
