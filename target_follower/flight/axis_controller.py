#!/usr/bin/env python3
"""
axis_controller.py - Single-Axis PID Controller

Generic controller used for every control axis (forward velocity, yaw rate,
vertical velocity). One instance per axis; instances are never shared.

Control law per call:
    e = setpoint - process_value
    integral += e * dt
    d = (e + 3*e[t-3] - 3*e[t-2] - e[t-1]) / (6 * dt)
    raw = 0 if |e| <= deadband else kp*e + ki*integral + kd*d
    output = clamp(slew_limit(raw, last_output), output_min, output_max)

Key features:
- Dead-band: no actuation for small errors
- Smoothed derivative: 4-point stencil over the last three errors
- Slew limiting: output moves at most slew_rate per call
- Output clamping after slew limiting

The integral accumulates without an anti-windup guard; only the output is
clamped. A long saturation can therefore build up a large integral.

Usage:
    controller = AxisController(axis_config)
    output = controller.compute_output(process_value)
"""

import logging
import time
from collections import deque
from typing import Callable, Deque, Optional

from target_follower.flight.config import AxisConfig

logger = logging.getLogger(__name__)

HISTORY_LENGTH = 3


class AxisController:
    """
    PID controller with dead-band, smoothed derivative, slew and clamp.

    Attributes:
        config: Axis configuration (setpoint, gains, limits).
        name: Axis name used in log messages.
        integral: Integral accumulator.
        error_history: Last three errors, oldest first.
        last_output: Output of the previous call.
        last_update_time: Clock reading of the previous call (None before the first).
    """

    def __init__(
        self,
        config: AxisConfig,
        name: str = "axis",
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the controller.

        Args:
            config: Validated axis configuration.
            name: Axis name for logging.
            clock: Monotonic time source in seconds.
        """
        self.config = config
        self.name = name
        self._clock = clock

        self.integral: float = 0.0
        self.error_history: Deque[float] = deque([0.0] * HISTORY_LENGTH, maxlen=HISTORY_LENGTH)
        self.last_output: float = 0.0
        self.last_update_time: Optional[float] = None

        self._update_count = 0
        self._degenerate_count = 0

    def compute_output(self, process_value: float) -> float:
        """
        Run one control step.

        The first call, and any call where the clock did not advance, is a
        degenerate tick: integral and derivative are not updated and the
        previous output is repeated. The error sample is still recorded.

        Args:
            process_value: Measured value of the controlled quantity.

        Returns:
            float: New output, within [output_min, output_max].
        """
        cfg = self.config
        now = self._clock()
        error = cfg.setpoint - process_value

        if self.last_update_time is None:
            dt = None
        else:
            dt = now - self.last_update_time

        if dt is None or dt <= 0:
            self._degenerate_count += 1
            output = self.last_output
            logger.debug("[%s] degenerate tick (dt=%s), holding %.4f", self.name, dt, output)
        else:
            self.integral += error * dt
            derivative = self._derivative(error, dt)

            if abs(error) <= cfg.deadband:
                raw = 0.0
            else:
                raw = cfg.kp * error + cfg.ki * self.integral + cfg.kd * derivative

            output = self._limit(raw)

            logger.debug(
                "[%s] PV=%.3f error=%.3f integral=%.3f derivative=%.3f raw=%.4f out=%.4f",
                self.name,
                process_value,
                error,
                self.integral,
                derivative,
                raw,
                output,
            )

        self.last_output = output
        self.error_history.append(error)
        self.last_update_time = now
        self._update_count += 1

        return output

    def _derivative(self, error: float, dt: float) -> float:
        """4-point finite difference over the current error and the last three."""
        oldest, middle, newest = self.error_history
        return (error + 3 * oldest - 3 * middle - newest) / (6 * dt)

    def _limit(self, raw: float) -> float:
        """Apply slew limiting around the previous output, then range clamping."""
        cfg = self.config
        output = raw

        if output - self.last_output > cfg.slew_rate:
            output = self.last_output + cfg.slew_rate
        elif output - self.last_output < -cfg.slew_rate:
            output = self.last_output - cfg.slew_rate

        return max(cfg.output_min, min(output, cfg.output_max))

    def reset(self) -> None:
        """Reset controller state. Never called implicitly."""
        self.integral = 0.0
        self.error_history = deque([0.0] * HISTORY_LENGTH, maxlen=HISTORY_LENGTH)
        self.last_output = 0.0
        self.last_update_time = None
        logger.debug("[%s] reset", self.name)

    def get_status(self) -> dict:
        """
        Get current controller status.

        Returns:
            dict: Controller status information.
        """
        return {
            "name": self.name,
            "setpoint": self.config.setpoint,
            "integral": self.integral,
            "error_history": list(self.error_history),
            "last_output": self.last_output,
            "update_count": self._update_count,
            "degenerate_count": self._degenerate_count,
        }
