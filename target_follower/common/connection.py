#!/usr/bin/env python3
"""
connection.py - Vehicle Connection Settings

Builds MAVSDK connection strings for TCP, UDP, or UART links. Values come
from command line arguments with environment variable fallback.

Connection Types:
    - tcp: TCP connection (default, SITL and companion computers)
    - udp: UDP listener (mavlink-router setups)
    - uart: Serial connection (flight controller TELEM port)

Environment Variables:
    FOLLOWER_CONNECTION_TYPE  - "tcp", "udp", or "uart" (default: tcp)
    FOLLOWER_TCP_HOST         - TCP host (default: localhost)
    FOLLOWER_TCP_PORT         - TCP port (default: 5760)
    FOLLOWER_UDP_HOST         - UDP listen address (default: 0.0.0.0)
    FOLLOWER_UDP_PORT         - UDP port (default: 14540)
    FOLLOWER_UART_DEVICE      - Serial device (default: /dev/ttyAMA0)
    FOLLOWER_UART_BAUD        - Serial baud rate (default: 57600)
"""

import argparse
import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

ENV_PREFIX = "FOLLOWER_"


class ConnectionType(Enum):
    """MAVLink connection types."""
    UART = "uart"
    UDP = "udp"
    TCP = "tcp"


DEFAULTS = {
    "connection_type": "tcp",
    "uart_device": "/dev/ttyAMA0",
    "uart_baud": 57600,
    "udp_host": "0.0.0.0",
    "udp_port": 14540,
    "tcp_host": "localhost",
    "tcp_port": 5760,
}


@dataclass
class ConnectionConfig:
    """
    Vehicle link configuration.

    Attributes:
        connection_type: Type of connection (uart, udp, or tcp).
        uart_device: Serial device path for UART mode.
        uart_baud: Baud rate for UART mode.
        udp_host: Listen address for UDP mode.
        udp_port: UDP port for UDP mode.
        tcp_host: Host for TCP mode.
        tcp_port: Port for TCP mode.
    """
    connection_type: ConnectionType = ConnectionType.TCP
    uart_device: str = DEFAULTS["uart_device"]
    uart_baud: int = DEFAULTS["uart_baud"]
    udp_host: str = DEFAULTS["udp_host"]
    udp_port: int = DEFAULTS["udp_port"]
    tcp_host: str = DEFAULTS["tcp_host"]
    tcp_port: int = DEFAULTS["tcp_port"]

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ConnectionConfig":
        """
        Create configuration from environment variables.

        Args:
            environ: Mapping to read from. Defaults to os.environ.

        Returns:
            ConnectionConfig: Configuration populated from the environment.

        Raises:
            ValueError: If a port or baud rate is not an integer.
        """
        env = os.environ if environ is None else environ

        def get(name: str):
            return env.get(ENV_PREFIX + name.upper(), DEFAULTS[name])

        conn_type_str = str(get("connection_type")).lower()
        try:
            conn_type = ConnectionType(conn_type_str)
        except ValueError:
            logger.warning("Unknown connection type '%s', using tcp", conn_type_str)
            conn_type = ConnectionType.TCP

        return cls(
            connection_type=conn_type,
            uart_device=get("uart_device"),
            uart_baud=int(get("uart_baud")),
            udp_host=get("udp_host"),
            udp_port=int(get("udp_port")),
            tcp_host=get("tcp_host"),
            tcp_port=int(get("tcp_port")),
        )

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "ConnectionConfig":
        """
        Create configuration from parsed arguments with environment fallback.

        Args:
            args: Namespace produced by a parser set up with add_connection_arguments().

        Returns:
            ConnectionConfig: Configuration with argument overrides applied.
        """
        config = cls.from_env()

        if args.connection_type is not None:
            config.connection_type = ConnectionType(args.connection_type)

        for name in ("uart_device", "uart_baud", "udp_host", "udp_port", "tcp_host", "tcp_port"):
            value = getattr(args, name, None)
            if value is not None:
                setattr(config, name, value)

        return config

    def get_connection_string(self) -> str:
        """
        Generate the MAVSDK connection string.

        Returns:
            str: MAVSDK-compatible system address.
        """
        if self.connection_type == ConnectionType.UART:
            return f"serial://{self.uart_device}:{self.uart_baud}"
        elif self.connection_type == ConnectionType.TCP:
            return f"tcp://{self.tcp_host}:{self.tcp_port}"
        else:
            # udpin:// listens for incoming packets (udp:// is deprecated in MAVSDK)
            return f"udpin://{self.udp_host}:{self.udp_port}"

    def __str__(self) -> str:
        if self.connection_type == ConnectionType.UART:
            return f"UART: {self.uart_device} @ {self.uart_baud} baud"
        elif self.connection_type == ConnectionType.TCP:
            return f"TCP: {self.tcp_host}:{self.tcp_port}"
        else:
            return f"UDP: {self.udp_host}:{self.udp_port}"


def add_connection_arguments(parser: argparse.ArgumentParser) -> None:
    """
    Add the standard connection options to a parser.

    Unset options stay None so the environment fallback applies.

    Args:
        parser: Parser to extend.
    """
    group = parser.add_argument_group("vehicle connection")
    group.add_argument(
        "-c",
        "--connection-type",
        choices=[t.value for t in ConnectionType],
        default=None,
        help="Connection type (default: tcp, env FOLLOWER_CONNECTION_TYPE)",
    )
    group.add_argument("--tcp-host", default=None, help="TCP host (default: localhost)")
    group.add_argument("--tcp-port", type=int, default=None, help="TCP port (default: 5760)")
    group.add_argument("--udp-host", default=None, help="UDP listen address (default: 0.0.0.0)")
    group.add_argument("--udp-port", type=int, default=None, help="UDP port (default: 14540)")
    group.add_argument("--uart-device", default=None, help="Serial device (default: /dev/ttyAMA0)")
    group.add_argument("--uart-baud", type=int, default=None, help="Serial baud rate (default: 57600)")
