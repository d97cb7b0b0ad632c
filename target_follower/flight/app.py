#!/usr/bin/env python3
"""
app.py - Target Following Flight Controller

Entry point wiring the vehicle link, telemetry, perception ingress,
emergency landing and the flight orchestrator together.

Architecture:
    Vision process -> HTTP /perception -> EventDispatcher -> FlightOrchestrator
        -> AxisController x3 -> CommandSink -> MAVSDK -> Drone

Tuning arguments (twelve, fixed order):
    altitude_kp altitude_ki altitude_kd altitude_deadband
    velocity_kp velocity_ki velocity_kd velocity_deadband
    yaw_kp yaw_ki yaw_kd yaw_deadband

Usage:
    # Connect to SITL
    target-follower 0.002 0 0 20  0.004 0 0.001 15  0.003 0 0 20 --tcp-host localhost

    # Dry run against the in-process simulator
    target-follower 0.002 0 0 20  0.004 0 0.001 15  0.003 0 0 20 --no-drone

    # From the vision process
    curl http://localhost:8080/ready
    curl -X POST http://localhost:8080/perception \\
        -d '{"distance": 260, "horizontal_offset": -12, "vertical_offset": 4}'

Press Ctrl+C at any time to land.
"""

import argparse
import asyncio
import logging
import math
import sys
from typing import Optional, Sequence

from target_follower.common.command_sink import MavsdkCommandSink, SimulatedVehicle
from target_follower.common.connection import ConnectionConfig, add_connection_arguments
from target_follower.common.dispatcher import EventDispatcher
from target_follower.common.logging_setup import setup_logging
from target_follower.common.telemetry_bridge import TelemetryBridge
from target_follower.flight.config import (
    EMERGENCY_CONFIG,
    FLIGHT_CONFIG,
    PERCEPTION_SERVER_CONFIG,
    TUNING_ARGUMENT_NAMES,
    AxisConfig,
    ConfigurationError,
    EmergencyConfig,
    FlightConfig,
    PerceptionServerConfig,
    axis_configs_from_tuning,
    get_config_summary,
    with_overrides,
)
from target_follower.flight.emergency import EmergencyLanding
from target_follower.flight.orchestrator import FlightOrchestrator
from target_follower.flight.perception_server import PerceptionServer

logger = logging.getLogger(__name__)


def finite_float(value: str) -> float:
    """argparse type accepting only finite numbers."""
    try:
        number = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid number: '{value}'") from None
    if not math.isfinite(number):
        raise argparse.ArgumentTypeError(f"value must be finite: '{value}'")
    return number


def build_parser() -> argparse.ArgumentParser:
    """Create the command line parser."""
    parser = argparse.ArgumentParser(
        description="Quad-rotor target following controller",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    tuning = parser.add_argument_group("controller tuning")
    for name in TUNING_ARGUMENT_NAMES:
        tuning.add_argument(name, type=finite_float, help=name.replace("_", " "))

    add_connection_arguments(parser)

    parser.add_argument(
        "--no-drone",
        action="store_true",
        help="Fly the in-process simulator instead of a real vehicle",
    )
    parser.add_argument(
        "--http-host",
        default=None,
        help=f"Perception server host (default: {PERCEPTION_SERVER_CONFIG.http_host})",
    )
    parser.add_argument(
        "--http-port",
        type=int,
        default=None,
        help=f"Perception server port (default: {PERCEPTION_SERVER_CONFIG.http_port})",
    )
    parser.add_argument(
        "--grace-delay",
        type=finite_float,
        default=None,
        help=f"Seconds between Ctrl+C and landing (default: {EMERGENCY_CONFIG.grace_delay})",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable per-tick debug logging",
    )
    return parser


def mavsdk_landing_sink_factory(emergency_config: EmergencyConfig = EMERGENCY_CONFIG):
    """
    Build the sink factory used by the landing thread.

    The landing thread runs its own event loop, so it needs its own gRPC
    client. It attaches to the mavsdk_server started by the primary link
    instead of opening the vehicle endpoint a second time.
    """

    def landing_sink() -> MavsdkCommandSink:
        return MavsdkCommandSink.attach(
            emergency_config.mavsdk_server_address,
            emergency_config.mavsdk_server_port,
        )

    return landing_sink


async def run_flight(
    altitude: AxisConfig,
    velocity: AxisConfig,
    yaw: AxisConfig,
    connection: Optional[ConnectionConfig] = None,
    flight_config: FlightConfig = FLIGHT_CONFIG,
    emergency_config: EmergencyConfig = EMERGENCY_CONFIG,
    server_config: PerceptionServerConfig = PERCEPTION_SERVER_CONFIG,
    simulate: bool = False,
) -> None:
    """
    Fly one session: take off, track until interrupted, land.

    Args:
        altitude: Vertical velocity axis configuration.
        velocity: Forward velocity axis configuration.
        yaw: Yaw rate axis configuration.
        connection: Vehicle link. Ignored when simulating.
        flight_config: Takeoff and tracking parameters.
        emergency_config: Emergency landing parameters.
        server_config: Perception server parameters.
        simulate: Use the in-process simulator.

    Raises:
        ConnectionError: If the vehicle cannot be reached.
    """
    dispatcher = EventDispatcher()
    dispatcher.bind()

    telemetry_task: Optional[asyncio.Task] = None
    bridge: Optional[TelemetryBridge] = None

    if simulate:
        sink = SimulatedVehicle()
        await sink.open()
        telemetry_task = asyncio.create_task(sink.run_telemetry(dispatcher))

        def landing_sink():
            return sink

        logger.info("Using simulated vehicle")
    else:
        connection_string = (connection or ConnectionConfig.from_env()).get_connection_string()
        sink = MavsdkCommandSink(
            connection_string,
            mavsdk_server_port=emergency_config.mavsdk_server_port,
        )
        await sink.open()
        bridge = TelemetryBridge(sink.drone, dispatcher)
        await bridge.start()

        landing_sink = mavsdk_landing_sink_factory(emergency_config)

    emergency = EmergencyLanding(
        landing_sink,
        dispatcher.shutdown,
        primary_sink=sink,
        grace_delay=emergency_config.grace_delay,
        exit_timeout=emergency_config.exit_timeout,
    )
    emergency.install()

    orchestrator = FlightOrchestrator(
        dispatcher,
        sink,
        altitude,
        velocity,
        yaw,
        config=flight_config,
    )
    server = PerceptionServer(dispatcher, server_config, status_provider=orchestrator.get_status)

    try:
        await server.start()
        logger.info("Press Ctrl+C to land")
        await orchestrator.run()
    finally:
        await server.stop()
        if bridge is not None:
            await bridge.stop()
        if telemetry_task is not None:
            telemetry_task.cancel()
            await asyncio.gather(telemetry_task, return_exceptions=True)
        if not emergency.triggered:
            await sink.close()
        dispatcher.close()

    # Landing runs on its own thread; let it finish before the loop goes away
    emergency.join()
    logger.info("Flight ended in state %s", orchestrator.state.value)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        altitude, velocity, yaw = axis_configs_from_tuning(
            [getattr(args, name) for name in TUNING_ARGUMENT_NAMES]
        )
        connection = None if args.no_drone else ConnectionConfig.from_args(args)
    except (ConfigurationError, ValueError) as e:
        parser.error(str(e))

    emergency_config = with_overrides(EMERGENCY_CONFIG, grace_delay=args.grace_delay)
    server_config = with_overrides(
        PERCEPTION_SERVER_CONFIG,
        http_host=args.http_host,
        http_port=args.http_port,
    )

    setup_logging(logging.DEBUG if args.verbose else logging.INFO)

    print(get_config_summary(altitude, velocity, yaw, FLIGHT_CONFIG, emergency_config))
    if connection is not None:
        print(f"Connection: {connection}")

    try:
        asyncio.run(
            run_flight(
                altitude,
                velocity,
                yaw,
                connection=connection,
                emergency_config=emergency_config,
                server_config=server_config,
                simulate=args.no_drone,
            )
        )
    except ConnectionError as e:
        logger.error("%s", e)
        return 1
    except KeyboardInterrupt:
        # Ctrl+C before the landing override was armed: nothing was commanded yet
        logger.warning("Interrupted before flight")
        return 0

    return 0


if __name__ == "__main__":
    sys.exit(main())
