#!/usr/bin/env python3
"""
messages.py - Messages Exchanged Between Flight Components

Immutable data carried over the event dispatcher and into the command sink:

- PerceptionFrame: target offset measured by the vision pipeline
- TelemetryFrame: vehicle-reported altitude
- VelocityCommand: one control tick worth of velocity setpoints

Usage:
    from target_follower.common.messages import PerceptionFrame, Topic

    dispatcher.publish(Topic.PERCEPTION, PerceptionFrame(250.0, 0.0, 0.0))
"""

from dataclasses import dataclass


class Topic:
    """Dispatcher topic names."""

    PERCEPTION = "perception"
    TELEMETRY = "telemetry"
    READY = "ready"


@dataclass(frozen=True)
class PerceptionFrame:
    """
    One target measurement from the perception pipeline.

    Attributes:
        distance: Forward/back range proxy to the target.
        horizontal_offset: Horizontal deviation from image center (yaw signal).
        vertical_offset: Vertical deviation from image center (height signal).
    """

    distance: float
    horizontal_offset: float
    vertical_offset: float


@dataclass(frozen=True)
class TelemetryFrame:
    """
    Vehicle telemetry sample.

    Attributes:
        altitude: Altitude above takeoff point in millimetres.
    """

    altitude: int


@dataclass(frozen=True)
class VelocityCommand:
    """
    Velocity command in normalized body-frame units ([-1, 1] per axis).

    Follows the Twist convention: x forward, z up, angular z counter-clockwise.
    Lateral motion and roll/pitch rates are not commanded by this controller.

    Attributes:
        linear_x: Forward velocity (positive = forward).
        linear_y: Lateral velocity, always 0.
        linear_z: Vertical velocity (positive = up).
        angular_x: Roll rate, always 0.
        angular_y: Pitch rate, always 0.
        angular_z: Yaw rate (positive = counter-clockwise).
    """

    linear_x: float = 0.0
    linear_y: float = 0.0
    linear_z: float = 0.0
    angular_x: float = 0.0
    angular_y: float = 0.0
    angular_z: float = 0.0

    @property
    def is_zero(self) -> bool:
        """Check if this is a zero/hover command."""
        return (
            self.linear_x == 0.0
            and self.linear_y == 0.0
            and self.linear_z == 0.0
            and self.angular_x == 0.0
            and self.angular_y == 0.0
            and self.angular_z == 0.0
        )

    def __str__(self) -> str:
        return (
            f"Velocity(x={self.linear_x:+.3f}, "
            f"z={self.linear_z:+.3f}, "
            f"yaw={self.angular_z:+.3f})"
        )
