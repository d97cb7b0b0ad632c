"""
target_follower - Quad-Rotor Target Following

Packages:
    target_follower/common/  - Messages, dispatcher, command sinks, telemetry, connection
    target_follower/flight/  - Axis controllers, orchestrator, emergency landing, entry point

Connection Types:
    - TCP (default): --tcp-host HOST --tcp-port PORT
    - UDP: -c udp --udp-host HOST --udp-port PORT
    - UART: -c uart --uart-device DEVICE --uart-baud BAUD
"""

__version__ = "0.1.0"
