#!/usr/bin/env python3
"""
test_config.py - Tests for Configuration and Command Line Parsing

Tests for:
- Axis configuration validation
- Tuning argument parsing (count, numeric, finite)
- Connection settings from arguments and environment
- Entry point argument errors

Run with:
    pytest tests/test_config.py -v
"""

import argparse
import math

import pytest

from target_follower.common.connection import (
    ConnectionConfig,
    ConnectionType,
    add_connection_arguments,
)
from target_follower.flight import app
from target_follower.flight.app import build_parser, finite_float, main, mavsdk_landing_sink_factory
from target_follower.flight.config import (
    ALTITUDE_LIMITS,
    EMERGENCY_CONFIG,
    EmergencyConfig,
    FLIGHT_CONFIG,
    TUNING_ARGUMENT_NAMES,
    VELOCITY_LIMITS,
    YAW_LIMITS,
    AxisConfig,
    ConfigurationError,
    axis_configs_from_tuning,
    get_config_summary,
    with_overrides,
)

TUNING = ["0.002", "0", "0", "20", "0.004", "0", "0.001", "15", "0.003", "0", "0", "20"]


# =============================================================================
# Axis Configuration Tests
# =============================================================================


class TestAxisConfig:
    """Tests for AxisConfig validation."""

    def test_fixed_constants(self):
        """Test the fixed per-axis limits."""
        assert (ALTITUDE_LIMITS.setpoint, ALTITUDE_LIMITS.slew_rate) == (0.0, 0.5)
        assert (ALTITUDE_LIMITS.output_min, ALTITUDE_LIMITS.output_max) == (-0.4, 0.4)
        assert (VELOCITY_LIMITS.setpoint, VELOCITY_LIMITS.slew_rate) == (250.0, 0.2)
        assert (VELOCITY_LIMITS.output_min, VELOCITY_LIMITS.output_max) == (-0.3, 0.3)
        assert (YAW_LIMITS.setpoint, YAW_LIMITS.slew_rate) == (0.0, 0.2)
        assert (YAW_LIMITS.output_min, YAW_LIMITS.output_max) == (-0.5, 0.5)
        assert FLIGHT_CONFIG.takeoff_altitude == 1300

    def test_inverted_bounds_rejected(self):
        """Test that output_min must be below output_max."""
        config = AxisConfig(setpoint=0.0, slew_rate=0.1, output_min=1.0, output_max=-1.0)
        with pytest.raises(ConfigurationError):
            config.validate("yaw")

    def test_nonpositive_slew_rejected(self):
        """Test that the slew rate must be positive."""
        config = AxisConfig(setpoint=0.0, slew_rate=0.0, output_min=-1.0, output_max=1.0)
        with pytest.raises(ConfigurationError):
            config.validate()

    def test_to_dict(self):
        """Test dictionary conversion."""
        config = AxisConfig(setpoint=1.0, slew_rate=0.1, output_min=-1.0, output_max=1.0, kp=2.0)
        assert config.to_dict()["kp"] == 2.0


class TestTuning:
    """Tests for axis_configs_from_tuning()."""

    def test_argument_order(self):
        """Test the fixed positional argument order."""
        assert len(TUNING_ARGUMENT_NAMES) == 12
        assert TUNING_ARGUMENT_NAMES[:4] == ("altitude_kp", "altitude_ki", "altitude_kd", "altitude_deadband")
        assert TUNING_ARGUMENT_NAMES[4] == "velocity_kp"
        assert TUNING_ARGUMENT_NAMES[-1] == "yaw_deadband"

    def test_values_assigned_per_axis(self):
        """Test that values land on the right axis and keep fixed limits."""
        altitude, velocity, yaw = axis_configs_from_tuning(TUNING)

        assert (altitude.kp, altitude.deadband) == (0.002, 20.0)
        assert (velocity.kp, velocity.kd, velocity.deadband) == (0.004, 0.001, 15.0)
        assert (yaw.kp, yaw.deadband) == (0.003, 20.0)
        assert velocity.setpoint == 250.0
        assert yaw.output_max == 0.5

    def test_missing_values_rejected(self):
        """Test that fewer than twelve values are rejected."""
        with pytest.raises(ConfigurationError, match="Expected 12"):
            axis_configs_from_tuning(TUNING[:11])

    def test_non_numeric_rejected(self):
        """Test that malformed values are rejected."""
        with pytest.raises(ConfigurationError, match="numeric"):
            axis_configs_from_tuning(TUNING[:11] + ["fast"])

    def test_non_finite_rejected(self):
        """Test that NaN and infinity are rejected."""
        with pytest.raises(ConfigurationError, match="finite"):
            axis_configs_from_tuning(["nan"] + TUNING[1:])
        with pytest.raises(ConfigurationError, match="finite"):
            axis_configs_from_tuning(TUNING[:5] + ["inf"] + TUNING[6:])

    def test_negative_deadband_rejected(self):
        """Test that a negative dead-band is rejected."""
        with pytest.raises(ConfigurationError, match="deadband"):
            axis_configs_from_tuning(TUNING[:3] + ["-1"] + TUNING[4:])


class TestConfigHelpers:
    """Tests for override and summary helpers."""

    def test_with_overrides_ignores_none(self):
        """Test that None leaves the default in place."""
        config = with_overrides(EMERGENCY_CONFIG, grace_delay=None, exit_timeout=1.0)
        assert config.grace_delay == EMERGENCY_CONFIG.grace_delay
        assert config.exit_timeout == 1.0

    def test_summary_lists_axes(self):
        """Test that the summary mentions every axis."""
        summary = get_config_summary(*axis_configs_from_tuning(TUNING))
        for axis in ("altitude", "velocity", "yaw"):
            assert axis in summary
        assert "1300 mm" in summary


# =============================================================================
# Connection Tests
# =============================================================================


class TestConnectionConfig:
    """Tests for ConnectionConfig."""

    def test_defaults(self):
        """Test default TCP connection string."""
        config = ConnectionConfig.from_env({})
        assert config.connection_type == ConnectionType.TCP
        assert config.get_connection_string() == "tcp://localhost:5760"

    def test_environment(self):
        """Test environment variable fallback."""
        config = ConnectionConfig.from_env({
            "FOLLOWER_CONNECTION_TYPE": "uart",
            "FOLLOWER_UART_DEVICE": "/dev/ttyUSB0",
            "FOLLOWER_UART_BAUD": "921600",
        })
        assert config.get_connection_string() == "serial:///dev/ttyUSB0:921600"

    def test_udp_listens(self):
        """Test UDP uses the udpin scheme."""
        config = ConnectionConfig(connection_type=ConnectionType.UDP, udp_port=14550)
        assert config.get_connection_string() == "udpin://0.0.0.0:14550"

    def test_arguments_override_environment(self, monkeypatch):
        """Test that explicit arguments win over the environment."""
        monkeypatch.setenv("FOLLOWER_TCP_HOST", "px4-sitl")
        monkeypatch.setenv("FOLLOWER_TCP_PORT", "4560")

        parser = argparse.ArgumentParser()
        add_connection_arguments(parser)
        config = ConnectionConfig.from_args(parser.parse_args(["--tcp-port", "5761"]))

        assert config.get_connection_string() == "tcp://px4-sitl:5761"


# =============================================================================
# Command Line Tests
# =============================================================================


class TestCommandLine:
    """Tests for the entry point parser."""

    def test_finite_float(self):
        """Test the finite float argument type."""
        assert finite_float("1.5") == 1.5
        for bad in ("nan", "inf", "-inf", "x"):
            with pytest.raises(argparse.ArgumentTypeError):
                finite_float(bad)

    def test_parse_full_arguments(self):
        """Test parsing twelve values and options."""
        args = build_parser().parse_args(TUNING + ["--no-drone", "--http-port", "9090", "-v"])

        assert args.no_drone
        assert args.http_port == 9090
        assert args.verbose
        assert args.velocity_kd == 0.001
        assert not math.isnan(args.yaw_deadband)

    def test_missing_argument_exits_2(self):
        """Test that a missing tuning value is a usage error."""
        with pytest.raises(SystemExit) as exc_info:
            main(TUNING[:11])
        assert exc_info.value.code == 2

    def test_non_finite_argument_exits_2(self):
        """Test that a non-finite tuning value is a usage error."""
        with pytest.raises(SystemExit) as exc_info:
            main(TUNING[:11] + ["inf"])
        assert exc_info.value.code == 2

    def test_invalid_configuration_exits_2(self):
        """Test that a negative dead-band is reported before flying."""
        with pytest.raises(SystemExit) as exc_info:
            main(TUNING[:3] + ["-5"] + TUNING[4:] + ["--no-drone"])
        assert exc_info.value.code == 2

    def test_interrupt_before_flight_exits_0(self, monkeypatch):
        """Test that Ctrl+C while connecting ends cleanly."""

        async def interrupted(*args, **kwargs):
            raise KeyboardInterrupt

        monkeypatch.setattr(app, "run_flight", interrupted)

        assert main(TUNING + ["--no-drone"]) == 0


class TestLandingSink:
    """Tests for the emergency landing sink factory."""

    def test_attaches_to_running_server(self):
        """Test that landing reuses the primary mavsdk_server."""
        make_sink = mavsdk_landing_sink_factory(EMERGENCY_CONFIG)

        sink = make_sink()

        assert sink.attached
        assert sink.connection_string is None
        assert sink.mavsdk_server_address == "localhost"
        assert sink.mavsdk_server_port == 50051
        assert sink.drone is None

    def test_uses_configured_server(self):
        """Test a non-default server address and port."""
        config = EmergencyConfig(mavsdk_server_address="127.0.0.1", mavsdk_server_port=50060)

        sink = mavsdk_landing_sink_factory(config)()

        assert (sink.mavsdk_server_address, sink.mavsdk_server_port) == ("127.0.0.1", 50060)

    def test_new_sink_per_call(self):
        """Test that each landing gets a fresh client for its own event loop."""
        make_sink = mavsdk_landing_sink_factory()
        assert make_sink() is not make_sink()
