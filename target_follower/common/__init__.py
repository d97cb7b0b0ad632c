"""
Common building blocks for the flight controller.

Modules:
    messages: Perception, telemetry and velocity messages.
    dispatcher: Cooperative event dispatcher and shutdown token.
    command_sink: Vehicle command sinks (MAVSDK and simulated).
    telemetry_bridge: MAVSDK altitude telemetry publisher.
    connection: Vehicle connection settings.
    logging_setup: Logging configuration.
"""

from .messages import (
    Topic,
    PerceptionFrame,
    TelemetryFrame,
    VelocityCommand,
)

from .dispatcher import (
    EventDispatcher,
    ShutdownToken,
    ShutdownRequested,
    Subscription,
)

from .command_sink import (
    CommandSink,
    MavsdkCommandSink,
    SimulatedVehicle,
    SinkRecord,
)

from .telemetry_bridge import TelemetryBridge, altitude_to_mm

from .connection import (
    ConnectionConfig,
    ConnectionType,
    add_connection_arguments,
)

from .logging_setup import setup_logging

__all__ = [
    # messages
    "Topic",
    "PerceptionFrame",
    "TelemetryFrame",
    "VelocityCommand",
    # dispatcher
    "EventDispatcher",
    "ShutdownToken",
    "ShutdownRequested",
    "Subscription",
    # command_sink
    "CommandSink",
    "MavsdkCommandSink",
    "SimulatedVehicle",
    "SinkRecord",
    # telemetry_bridge
    "TelemetryBridge",
    "altitude_to_mm",
    # connection
    "ConnectionConfig",
    "ConnectionType",
    "add_connection_arguments",
    # logging_setup
    "setup_logging",
]
