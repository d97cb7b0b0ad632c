#!/usr/bin/env python3
"""
orchestrator.py - Takeoff Sequencing and Target Tracking

Owns the three axis controllers and drives the vehicle through:

    GROUNDED -> FLAT_TRIMMING -> TAKING_OFF -> STABILIZING
             -> RAMPING_ALTITUDE -> READY -> TRACKING -> LANDED

LANDED is only reached through the emergency landing path, which the
orchestrator observes via the dispatcher's shutdown token.

Architecture:
    PerceptionFrame -> on_perception -> AxisController x3 -> VelocityCommand -> CommandSink

Usage:
    orchestrator = FlightOrchestrator(dispatcher, sink, altitude, velocity, yaw)
    await orchestrator.run()
"""

import logging
from enum import Enum
from typing import Optional

from target_follower.common.command_sink import CommandSink
from target_follower.common.dispatcher import EventDispatcher, ShutdownRequested
from target_follower.common.messages import PerceptionFrame, Topic, VelocityCommand
from target_follower.flight.altitude_ramp import AltitudeRamp
from target_follower.flight.axis_controller import AxisController
from target_follower.flight.config import FLIGHT_CONFIG, AxisConfig, FlightConfig
from target_follower.flight.emergency import EMERGENCY_LANDING_REASON

logger = logging.getLogger(__name__)


class FlightState(Enum):
    """Flight phase of the orchestrator."""

    GROUNDED = "grounded"
    FLAT_TRIMMING = "flat_trimming"
    TAKING_OFF = "taking_off"
    STABILIZING = "stabilizing"
    RAMPING_ALTITUDE = "ramping_altitude"
    READY = "ready"
    TRACKING = "tracking"
    LANDED = "landed"


class FlightOrchestrator:
    """
    Multi-axis flight controller for target following.

    Attributes:
        state: Current flight phase.
        velocity: Forward velocity controller (input: target distance).
        yaw: Yaw rate controller (input: horizontal offset).
        altitude: Vertical velocity controller (input: vertical offset).
        config: Takeoff and tracking parameters.
    """

    def __init__(
        self,
        dispatcher: EventDispatcher,
        sink: CommandSink,
        altitude_config: AxisConfig,
        velocity_config: AxisConfig,
        yaw_config: AxisConfig,
        config: Optional[FlightConfig] = None,
        clock=None,
    ):
        """
        Initialize the orchestrator.

        Args:
            dispatcher: Event dispatcher for perception and telemetry.
            sink: Command sink for vehicle commands.
            altitude_config: Vertical velocity axis configuration.
            velocity_config: Forward velocity axis configuration.
            yaw_config: Yaw rate axis configuration.
            config: Flight parameters. Uses defaults if None.
            clock: Optional time source shared by the axis controllers.
        """
        self.config = config or FLIGHT_CONFIG
        self._dispatcher = dispatcher
        self._sink = sink

        clock_kwargs = {} if clock is None else {"clock": clock}
        self.velocity = AxisController(velocity_config, name="velocity", **clock_kwargs)
        self.yaw = AxisController(yaw_config, name="yaw", **clock_kwargs)
        self.altitude = AxisController(altitude_config, name="altitude", **clock_kwargs)

        self.state = FlightState.GROUNDED
        self._ready_announced = False
        self._tick_count = 0
        self._last_command: Optional[VelocityCommand] = None

        logger.debug("FlightOrchestrator initialized")

    def _set_state(self, state: FlightState) -> None:
        if state != self.state:
            logger.info("Flight state: %s -> %s", self.state.value, state.value)
            self.state = state

    # -------------------------------------------------------------------------
    # Takeoff
    # -------------------------------------------------------------------------

    async def initialize(self) -> None:
        """
        Flat trim, take off, settle, and climb to the takeoff altitude.

        Raises:
            ShutdownRequested: If shutdown is requested during bring-up.
        """
        self._dispatcher.raise_if_shutdown()

        self._set_state(FlightState.FLAT_TRIMMING)
        logger.info("Flat trimming... ensure drone is on a flat surface!")
        await self._sink.flat_trim()

        self._dispatcher.raise_if_shutdown()
        self._set_state(FlightState.TAKING_OFF)
        logger.info("Taking off!")
        await self._sink.takeoff()

        self._set_state(FlightState.STABILIZING)
        await self._dispatcher.sleep(self.config.settle_duration)
        await self._sink.send_velocity(VelocityCommand())

        self._set_state(FlightState.RAMPING_ALTITUDE)
        ramp = AltitudeRamp(
            self._dispatcher,
            self._sink,
            climb_rate=self.config.climb_rate,
            poll_interval=self.config.ramp_poll_interval,
        )
        await ramp.run(self.config.takeoff_altitude)

        self._set_state(FlightState.READY)

    def announce_ready(self) -> bool:
        """
        Publish the one-shot readiness signal.

        Returns:
            bool: False if readiness was already announced.
        """
        if self._ready_announced:
            logger.warning("Ready signal already sent")
            return False

        self._ready_announced = True
        self._dispatcher.publish(Topic.READY, True)
        logger.info("Ready signal sent")
        return True

    # -------------------------------------------------------------------------
    # Tracking
    # -------------------------------------------------------------------------

    async def on_perception(self, frame: PerceptionFrame) -> VelocityCommand:
        """
        Control tick: map a perception frame to a velocity command and send it.

        Args:
            frame: Latest target measurement.

        Returns:
            VelocityCommand: The command sent to the sink.
        """
        # Target farther than the setpoint gives a negative output; invert to fly forward
        x_velocity = -self.velocity.compute_output(frame.distance)
        yaw_rate = self.yaw.compute_output(frame.horizontal_offset)
        z_velocity = self.altitude.compute_output(frame.vertical_offset)

        command = VelocityCommand(
            linear_x=x_velocity,
            linear_z=z_velocity,
            angular_z=yaw_rate,
        )
        await self._sink.send_velocity(command)

        self._tick_count += 1
        self._last_command = command

        logger.debug(
            "x_velocity=%.3f (distance %.1f), yaw=%.3f (horizontal %.1f), z_velocity=%.3f (vertical %.1f)",
            x_velocity,
            frame.distance,
            yaw_rate,
            frame.horizontal_offset,
            z_velocity,
            frame.vertical_offset,
        )
        if self._tick_count % self.config.status_log_interval == 0:
            logger.info("Tracking: frame=%s, cmd=%s", frame, command)

        return command

    async def tracking(self) -> None:
        """Run the perception-driven control loop until shutdown."""
        self._set_state(FlightState.TRACKING)
        subscription = self._dispatcher.subscribe(Topic.PERCEPTION, self.on_perception)

        try:
            await self._dispatcher.spin()
        finally:
            self._dispatcher.unsubscribe(subscription)

        self._after_shutdown()

    async def run(self) -> None:
        """Full flight: initialize, announce ready, track until shutdown."""
        try:
            await self.initialize()
        except ShutdownRequested as e:
            logger.warning("Bring-up interrupted (%s)", e)
            self._after_shutdown()
            return

        self.announce_ready()
        await self.tracking()

    def _after_shutdown(self) -> None:
        if self._dispatcher.shutdown.reason == EMERGENCY_LANDING_REASON:
            self._set_state(FlightState.LANDED)
        logger.info("Control loop stopped after %d ticks", self._tick_count)

    def get_status(self) -> dict:
        """
        Get current orchestrator status.

        Returns:
            dict: Flight state, tick count and per-axis status.
        """
        return {
            "state": self.state.value,
            "ready_announced": self._ready_announced,
            "tick_count": self._tick_count,
            "last_command": str(self._last_command) if self._last_command else None,
            "axes": {
                "velocity": self.velocity.get_status(),
                "yaw": self.yaw.get_status(),
                "altitude": self.altitude.get_status(),
            },
        }
