"""
Pytest configuration and shared fixtures for flight controller tests.

This module provides:
- Async test support via pytest-asyncio
- Shared fixtures for the dispatcher, simulated vehicle and axis configs
- Test markers configuration
"""

import asyncio

import pytest

from target_follower.common.command_sink import SimulatedVehicle
from target_follower.common.dispatcher import EventDispatcher
from target_follower.flight.config import (
    ALTITUDE_LIMITS,
    VELOCITY_LIMITS,
    YAW_LIMITS,
    make_axis_config,
)


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers",
        "asyncio: mark test as async"
    )
    config.addinivalue_line(
        "markers",
        "slow: mark test as slow running"
    )


@pytest.fixture(scope="session")
def event_loop_policy():
    """Set event loop policy for all tests."""
    return asyncio.DefaultEventLoopPolicy()


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    """
    Fixture providing a manually advanced clock.

    Returns:
        FakeClock: Clock starting at t=100s.
    """
    return FakeClock()


@pytest.fixture
def dispatcher():
    """
    Fixture providing a dispatcher with a short poll interval.

    Returns:
        EventDispatcher: Fresh dispatcher with its own shutdown token.
    """
    return EventDispatcher(poll_interval=0.01)


@pytest.fixture
def vehicle():
    """
    Fixture providing a simulated vehicle that climbs quickly.

    Returns:
        SimulatedVehicle: Recording command sink.
    """
    return SimulatedVehicle(takeoff_altitude_mm=1000, climb_rate_mm_s=2000.0)


@pytest.fixture
def axis_configs():
    """
    Fixture providing modest gains with positive dead-bands on every axis.

    Returns:
        tuple: (altitude, velocity, yaw) AxisConfigs.
    """
    return (
        make_axis_config(ALTITUDE_LIMITS, kp=0.002, ki=0.0, kd=0.0, deadband=20.0),
        make_axis_config(VELOCITY_LIMITS, kp=0.004, ki=0.0, kd=0.0, deadband=15.0),
        make_axis_config(YAW_LIMITS, kp=0.003, ki=0.0, kd=0.0, deadband=20.0),
    )
