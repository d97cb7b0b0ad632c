#!/usr/bin/env python3
"""
perception_server.py - HTTP Ingress for Perception Frames

The vision pipeline runs as a separate process. It polls the readiness
signal and, once the drone is airborne and stable, posts one target
measurement per processed frame.

Endpoints:
    GET  /ready       - {"ready": bool}
    GET  /status      - Server, dispatcher and flight status
    POST /perception  - {"distance": .., "horizontal_offset": .., "vertical_offset": ..}

    202: frame queued for the control loop
    400: malformed payload
    409: controller not ready yet

Usage:
    server = PerceptionServer(dispatcher, config)
    await server.start()
    ...
    await server.stop()

    # From the vision process:
    curl http://localhost:8080/ready
    curl -X POST http://localhost:8080/perception \\
        -d '{"distance": 260, "horizontal_offset": -12, "vertical_offset": 4}'
"""

import logging
import math
from typing import Callable, Optional

from aiohttp import web

from target_follower.common.dispatcher import EventDispatcher
from target_follower.common.messages import PerceptionFrame, Topic
from target_follower.flight.config import PERCEPTION_SERVER_CONFIG, PerceptionServerConfig

logger = logging.getLogger(__name__)

FRAME_FIELDS = ("distance", "horizontal_offset", "vertical_offset")


class PayloadError(ValueError):
    """Perception payload could not be converted to a frame."""


def parse_perception_payload(payload) -> PerceptionFrame:
    """
    Convert a decoded JSON payload into a PerceptionFrame.

    Args:
        payload: Decoded JSON body.

    Returns:
        PerceptionFrame: Parsed frame.

    Raises:
        PayloadError: If a field is missing, not numeric, out of float range, or not finite.
    """
    if not isinstance(payload, dict):
        raise PayloadError("payload must be a JSON object")

    values = {}
    for name in FRAME_FIELDS:
        if name not in payload:
            raise PayloadError(f"missing field '{name}'")

        value = payload[name]
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise PayloadError(f"field '{name}' must be a number")

        try:
            number = float(value)
        except OverflowError:
            raise PayloadError(f"field '{name}' is out of range") from None
        if not math.isfinite(number):
            raise PayloadError(f"field '{name}' must be finite")
        values[name] = number

    return PerceptionFrame(**values)


class PerceptionServer:
    """
    aiohttp server feeding perception frames into the dispatcher.

    Attributes:
        config: Server configuration.
        ready: Whether the readiness signal has been received.
        frames_accepted: Frames queued for the control loop.
        frames_rejected: Frames refused (not ready, malformed, or queue full).
    """

    def __init__(
        self,
        dispatcher: EventDispatcher,
        config: Optional[PerceptionServerConfig] = None,
        status_provider: Optional[Callable[[], dict]] = None,
    ):
        """
        Initialize the server.

        Args:
            dispatcher: Dispatcher to publish frames on.
            config: Server configuration. Uses defaults if None.
            status_provider: Returns extra status (e.g. orchestrator) for /status.
        """
        self.config = config or PERCEPTION_SERVER_CONFIG
        self._dispatcher = dispatcher
        self._status_provider = status_provider
        self._runner: Optional[web.AppRunner] = None

        self.ready = False
        self.frames_accepted = 0
        self.frames_rejected = 0

        self._ready_subscription = dispatcher.subscribe(Topic.READY, self._on_ready)

    def _on_ready(self, ready: bool) -> None:
        self.ready = bool(ready)
        logger.info("Perception input %s", "enabled" if self.ready else "disabled")

    def create_app(self) -> web.Application:
        """Build the aiohttp application."""
        app = web.Application()
        app.router.add_get("/ready", self._handle_ready)
        app.router.add_get("/status", self._handle_status)
        app.router.add_post("/perception", self._handle_perception)
        return app

    async def start(self) -> None:
        """Start serving."""
        self._runner = web.AppRunner(self.create_app())
        await self._runner.setup()

        site = web.TCPSite(self._runner, self.config.http_host, self.config.http_port)
        await site.start()

        logger.info(
            "Perception server started on http://%s:%d",
            self.config.http_host,
            self.config.http_port,
        )

    async def stop(self) -> None:
        """Stop serving and drop the readiness subscription."""
        self._dispatcher.unsubscribe(self._ready_subscription)
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            logger.info("Perception server stopped")

    def get_status(self) -> dict:
        """
        Get server status.

        Returns:
            dict: Readiness and frame counters.
        """
        status = {
            "ready": self.ready,
            "frames_accepted": self.frames_accepted,
            "frames_rejected": self.frames_rejected,
            "dispatcher": self._dispatcher.get_status(),
        }
        if self._status_provider is not None:
            status["flight"] = self._status_provider()
        return status

    async def _handle_ready(self, request: web.Request) -> web.Response:
        return web.json_response({"ready": self.ready})

    async def _handle_status(self, request: web.Request) -> web.Response:
        return web.json_response(self.get_status())

    async def _handle_perception(self, request: web.Request) -> web.Response:
        if not self.ready:
            self.frames_rejected += 1
            return web.json_response({"error": "controller not ready"}, status=409)

        try:
            payload = await request.json()
            frame = parse_perception_payload(payload)
        except ValueError as e:
            # json.JSONDecodeError and PayloadError are both ValueErrors
            self.frames_rejected += 1
            return web.json_response({"error": str(e)}, status=400)

        if not self._dispatcher.publish(Topic.PERCEPTION, frame):
            self.frames_rejected += 1
            return web.json_response({"error": "queue full"}, status=503)

        self.frames_accepted += 1
        return web.json_response({"accepted": True}, status=202)
