"""
flight - Target Following Flight Controller

Takes off, climbs to the tracking altitude, and steers the vehicle toward a
target reported by an external perception process until Ctrl+C lands it.

Main components:
- config: Axis limits, tuning arguments and flight parameters
- axis_controller: PID controller used for every control axis
- altitude_ramp: Open-loop climb to the tracking altitude
- orchestrator: Takeoff sequencing and perception-driven tracking
- emergency: Interrupt-driven emergency landing
- perception_server: HTTP ingress for perception frames and readiness
- app: Command line entry point

Usage:
    python -m target_follower.flight.app <12 tuning values> --tcp-host localhost
"""

from target_follower.flight.config import (
    FLIGHT_CONFIG,
    EMERGENCY_CONFIG,
    PERCEPTION_SERVER_CONFIG,
    ALTITUDE_LIMITS,
    VELOCITY_LIMITS,
    YAW_LIMITS,
    TUNING_ARGUMENT_NAMES,
    AxisConfig,
    AxisLimits,
    ConfigurationError,
    EmergencyConfig,
    FlightConfig,
    PerceptionServerConfig,
    axis_configs_from_tuning,
    get_config_summary,
)

from target_follower.flight.axis_controller import AxisController

from target_follower.flight.altitude_ramp import AltitudeRamp

from target_follower.flight.emergency import (
    EMERGENCY_LANDING_REASON,
    EmergencyLanding,
)

from target_follower.flight.orchestrator import (
    FlightOrchestrator,
    FlightState,
)

from target_follower.flight.perception_server import (
    PayloadError,
    PerceptionServer,
    parse_perception_payload,
)

__all__ = [
    # Config
    "FLIGHT_CONFIG",
    "EMERGENCY_CONFIG",
    "PERCEPTION_SERVER_CONFIG",
    "ALTITUDE_LIMITS",
    "VELOCITY_LIMITS",
    "YAW_LIMITS",
    "TUNING_ARGUMENT_NAMES",
    "AxisConfig",
    "AxisLimits",
    "ConfigurationError",
    "EmergencyConfig",
    "FlightConfig",
    "PerceptionServerConfig",
    "axis_configs_from_tuning",
    "get_config_summary",
    # Controllers
    "AxisController",
    "AltitudeRamp",
    # Orchestration
    "FlightOrchestrator",
    "FlightState",
    # Emergency landing
    "EMERGENCY_LANDING_REASON",
    "EmergencyLanding",
    # Perception ingress
    "PayloadError",
    "PerceptionServer",
    "parse_perception_payload",
]
