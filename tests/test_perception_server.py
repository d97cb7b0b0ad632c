#!/usr/bin/env python3
"""
test_perception_server.py - Tests for the Perception HTTP Ingress

Tests for:
- Payload parsing
- Readiness gating (409 before ready)
- Accepted frames reaching the dispatcher
- Status endpoint

Run with:
    pytest tests/test_perception_server.py -v
"""

import pytest
from aiohttp.test_utils import TestClient, TestServer

from target_follower.common.messages import PerceptionFrame, Topic
from target_follower.flight.perception_server import (
    PayloadError,
    PerceptionServer,
    parse_perception_payload,
)

FRAME = {"distance": 260, "horizontal_offset": -12.5, "vertical_offset": 4}


async def make_ready(server, dispatcher):
    dispatcher.publish(Topic.READY, True)
    await dispatcher.spin_once(timeout=0.1)
    assert server.ready


class TestParsePayload:
    """Tests for parse_perception_payload()."""

    def test_valid_payload(self):
        """Test conversion to a PerceptionFrame."""
        assert parse_perception_payload(FRAME) == PerceptionFrame(260.0, -12.5, 4.0)

    @pytest.mark.parametrize("payload", [
        [1, 2, 3],
        {"distance": 260, "horizontal_offset": 0},
        {**FRAME, "distance": "far"},
        {**FRAME, "vertical_offset": True},
        {**FRAME, "horizontal_offset": float("nan")},
        {**FRAME, "distance": 10 ** 400},
    ])
    def test_invalid_payload(self, payload):
        """Test that malformed payloads are rejected."""
        with pytest.raises(PayloadError):
            parse_perception_payload(payload)


class TestPerceptionServer:
    """Tests for the HTTP endpoints."""

    @pytest.mark.asyncio
    async def test_rejects_before_ready(self, dispatcher):
        """Test 409 before the ready signal."""
        server = PerceptionServer(dispatcher)

        async with TestClient(TestServer(server.create_app())) as client:
            response = await client.get("/ready")
            assert (await response.json()) == {"ready": False}

            response = await client.post("/perception", json=FRAME)
            assert response.status == 409

        assert dispatcher.pending == 0
        assert server.frames_rejected == 1

    @pytest.mark.asyncio
    async def test_accepts_after_ready(self, dispatcher):
        """Test that frames are queued once ready."""
        server = PerceptionServer(dispatcher)
        received = []
        dispatcher.subscribe(Topic.PERCEPTION, received.append)
        await make_ready(server, dispatcher)

        async with TestClient(TestServer(server.create_app())) as client:
            response = await client.get("/ready")
            assert (await response.json()) == {"ready": True}

            response = await client.post("/perception", json=FRAME)
            assert response.status == 202

        await dispatcher.spin_once(timeout=0.1)
        assert received == [PerceptionFrame(260.0, -12.5, 4.0)]
        assert server.frames_accepted == 1

    @pytest.mark.asyncio
    async def test_malformed_is_400(self, dispatcher):
        """Test that bad JSON and bad fields give 400."""
        server = PerceptionServer(dispatcher)
        await make_ready(server, dispatcher)

        async with TestClient(TestServer(server.create_app())) as client:
            response = await client.post("/perception", data="not json")
            assert response.status == 400

            response = await client.post("/perception", json={"distance": 1})
            assert response.status == 400
            assert "horizontal_offset" in (await response.json())["error"]

        assert dispatcher.pending == 0

    @pytest.mark.asyncio
    async def test_status_includes_flight(self, dispatcher):
        """Test that /status merges the provider's status."""
        server = PerceptionServer(dispatcher, status_provider=lambda: {"state": "tracking"})

        async with TestClient(TestServer(server.create_app())) as client:
            response = await client.get("/status")
            status = await response.json()

        assert status["flight"] == {"state": "tracking"}
        assert status["ready"] is False
        assert "dispatcher" in status

    @pytest.mark.asyncio
    async def test_huge_integer_is_400(self, dispatcher):
        """Test that an integer beyond float range is a malformed payload."""
        server = PerceptionServer(dispatcher)
        await make_ready(server, dispatcher)
        body = '{"distance": 1' + "0" * 400 + ', "horizontal_offset": 0, "vertical_offset": 0}'

        async with TestClient(TestServer(server.create_app())) as client:
            response = await client.post(
                "/perception", data=body, headers={"Content-Type": "application/json"}
            )
            assert response.status == 400
            assert "distance" in (await response.json())["error"]

        assert dispatcher.pending == 0
        assert server.frames_rejected == 1
