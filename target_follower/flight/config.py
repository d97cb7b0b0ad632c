#!/usr/bin/env python3
"""
config.py - Flight Controller Configuration

Centralized configuration for the target-following flight controller.

Each control axis has fixed limits (setpoint, slew rate, output bounds)
and operator-tuned gains passed on the command line in a fixed order:

    altitude(kp ki kd deadband) velocity(kp ki kd deadband) yaw(kp ki kd deadband)

Usage:
    from target_follower.flight.config import axis_configs_from_tuning, FLIGHT_CONFIG

    altitude, velocity, yaw = axis_configs_from_tuning(values)
"""

import math
from dataclasses import asdict, dataclass, replace
from typing import Any, Dict, Sequence, Tuple


class ConfigurationError(ValueError):
    """Invalid or missing configuration value."""


@dataclass(frozen=True)
class AxisLimits:
    """
    Fixed, non-tunable limits of one control axis.

    Attributes:
        setpoint: Process value the axis regulates toward.
        slew_rate: Maximum output change per control tick.
        output_min: Lower output bound.
        output_max: Upper output bound.
    """

    setpoint: float
    slew_rate: float
    output_min: float
    output_max: float


@dataclass(frozen=True)
class AxisConfig:
    """
    Complete configuration of one AxisController.

    Attributes:
        setpoint: Process value the axis regulates toward.
        slew_rate: Maximum output change per control tick.
        output_min: Lower output bound.
        output_max: Upper output bound.
        kp: Proportional gain.
        ki: Integral gain.
        kd: Derivative gain.
        deadband: Error magnitude at or below which output is zero.
    """

    setpoint: float
    slew_rate: float
    output_min: float
    output_max: float
    kp: float = 0.0
    ki: float = 0.0
    kd: float = 0.0
    deadband: float = 0.0

    def validate(self, name: str = "axis") -> "AxisConfig":
        """
        Check that the configuration is usable.

        Args:
            name: Axis name for error messages.

        Returns:
            AxisConfig: self, for chaining.

        Raises:
            ConfigurationError: If any value is out of range.
        """
        for field_name, value in asdict(self).items():
            if not math.isfinite(value):
                raise ConfigurationError(f"{name}.{field_name} must be finite, got {value!r}")

        if self.output_min >= self.output_max:
            raise ConfigurationError(
                f"{name}: output_min ({self.output_min}) must be below output_max ({self.output_max})"
            )
        if self.slew_rate <= 0:
            raise ConfigurationError(f"{name}: slew_rate must be positive, got {self.slew_rate}")
        if self.deadband < 0:
            raise ConfigurationError(f"{name}: deadband must not be negative, got {self.deadband}")

        return self

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return asdict(self)


# Fixed per-axis limits. Distance is in perception units (setpoint 250).
ALTITUDE_LIMITS = AxisLimits(setpoint=0.0, slew_rate=0.5, output_min=-0.4, output_max=0.4)
VELOCITY_LIMITS = AxisLimits(setpoint=250.0, slew_rate=0.2, output_min=-0.3, output_max=0.3)
YAW_LIMITS = AxisLimits(setpoint=0.0, slew_rate=0.2, output_min=-0.5, output_max=0.5)

AXIS_ORDER = ("altitude", "velocity", "yaw")
GAIN_ORDER = ("kp", "ki", "kd", "deadband")

# Positional argument names, in command line order
TUNING_ARGUMENT_NAMES = tuple(f"{axis}_{gain}" for axis in AXIS_ORDER for gain in GAIN_ORDER)


def make_axis_config(limits: AxisLimits, kp: float, ki: float, kd: float, deadband: float) -> AxisConfig:
    """Combine fixed limits with tuned gains."""
    return AxisConfig(
        setpoint=limits.setpoint,
        slew_rate=limits.slew_rate,
        output_min=limits.output_min,
        output_max=limits.output_max,
        kp=kp,
        ki=ki,
        kd=kd,
        deadband=deadband,
    )


def axis_configs_from_tuning(values: Sequence[float]) -> Tuple[AxisConfig, AxisConfig, AxisConfig]:
    """
    Build the three axis configurations from the twelve tuning values.

    Args:
        values: altitude(kp, ki, kd, deadband), velocity(...), yaw(...).

    Returns:
        Tuple[AxisConfig, AxisConfig, AxisConfig]: (altitude, velocity, yaw).

    Raises:
        ConfigurationError: If the count is wrong or any value is invalid.
    """
    if len(values) != len(TUNING_ARGUMENT_NAMES):
        raise ConfigurationError(
            f"Expected {len(TUNING_ARGUMENT_NAMES)} tuning values "
            f"({' '.join(TUNING_ARGUMENT_NAMES)}), got {len(values)}"
        )

    try:
        numbers = [float(v) for v in values]
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Tuning values must be numeric: {e}") from None

    configs = []
    for index, (axis, limits) in enumerate(
        zip(AXIS_ORDER, (ALTITUDE_LIMITS, VELOCITY_LIMITS, YAW_LIMITS))
    ):
        kp, ki, kd, deadband = numbers[index * 4:index * 4 + 4]
        configs.append(make_axis_config(limits, kp, ki, kd, deadband).validate(axis))

    altitude, velocity, yaw = configs
    return altitude, velocity, yaw


@dataclass
class FlightConfig:
    """
    Takeoff and tracking parameters.

    Attributes:
        takeoff_altitude: Altitude to climb to after takeoff (millimetres).
        settle_duration: Seconds to wait after the takeoff command.
        climb_rate: Normalized vertical velocity used while ramping altitude.
        ramp_poll_interval: Max seconds the altitude ramp waits per iteration.
        status_log_interval: Log a tracking summary every N control ticks.
    """

    takeoff_altitude: int = 1300
    settle_duration: float = 3.0
    climb_rate: float = 0.6
    ramp_poll_interval: float = 0.1
    status_log_interval: int = 30

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return asdict(self)


@dataclass
class EmergencyConfig:
    """
    Emergency landing parameters.

    Attributes:
        grace_delay: Seconds between the interrupt and the land command.
        exit_timeout: Seconds to wait for the main loop to stop before forcing exit.
            None waits forever.
        mavsdk_server_address: Host of the mavsdk_server the landing thread attaches to.
        mavsdk_server_port: gRPC port of that server. The primary link starts its
            server on this port, so both share one MAVLink connection.
    """

    grace_delay: float = 2.0
    exit_timeout: float = 5.0
    mavsdk_server_address: str = "localhost"
    mavsdk_server_port: int = 50051

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return asdict(self)


@dataclass
class PerceptionServerConfig:
    """
    HTTP ingress for perception frames and the readiness signal.

    Attributes:
        http_host: Host to bind.
        http_port: Port to bind.
    """

    http_host: str = "0.0.0.0"
    http_port: int = 8080

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return asdict(self)


# Default configuration instances
FLIGHT_CONFIG = FlightConfig()
EMERGENCY_CONFIG = EmergencyConfig()
PERCEPTION_SERVER_CONFIG = PerceptionServerConfig()


def with_overrides(config, **overrides):
    """Return a copy of a config dataclass with some fields replaced."""
    return replace(config, **{k: v for k, v in overrides.items() if v is not None})


def get_config_summary(
    altitude: AxisConfig,
    velocity: AxisConfig,
    yaw: AxisConfig,
    flight: FlightConfig = FLIGHT_CONFIG,
    emergency: EmergencyConfig = EMERGENCY_CONFIG,
) -> str:
    """
    Get a human-readable summary of the active configuration.

    Returns:
        str: Formatted configuration summary.
    """

    def axis_line(name: str, axis: AxisConfig) -> str:
        return (
            f"  {name:<9} SP={axis.setpoint:g} kp={axis.kp:g} ki={axis.ki:g} kd={axis.kd:g} "
            f"deadband={axis.deadband:g} slew={axis.slew_rate:g} "
            f"out=[{axis.output_min:g}, {axis.output_max:g}]"
        )

    lines = [
        "=" * 50,
        "Target Follower Configuration",
        "=" * 50,
        "",
        "Axis Controllers:",
        axis_line("altitude", altitude),
        axis_line("velocity", velocity),
        axis_line("yaw", yaw),
        "",
        "Takeoff:",
        f"  Target altitude: {flight.takeoff_altitude} mm",
        f"  Settle: {flight.settle_duration:.1f}s, climb rate: {flight.climb_rate:.2f}",
        "",
        "Emergency Landing:",
        f"  Grace delay: {emergency.grace_delay:.1f}s",
        "=" * 50,
    ]
    return "\n".join(lines)
