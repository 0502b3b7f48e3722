"""A single-loop PID controller driven by a command topic and a state feedback."""

from __future__ import annotations

import dataclasses
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from garybot.diagnostics import ParameterError, get_parameter

logger = logging.getLogger(__name__)


@dataclass
class PIDState:
    """Gains, limits and the working values of one PID loop."""

    kp: float = 0.0
    ki: float = 0.0
    kd: float = 0.0
    max_out: float = 0.0
    max_iout: float = 0.0
    set: float = 0.0
    feedback: float = 0.0
    error: float = 0.0
    error_sum: float = 0.0
    last_error: float = 0.0
    pout: float = 0.0
    iout: float = 0.0
    dout: float = 0.0
    out: float = 0.0
    frame_id: str = ""
    stamp: float = 0.0

    def reset(self, feedback: float) -> None:
        """Clear the working values, keeping gains and limits."""
        self.set = 0.0
        self.feedback = feedback
        self.error = 0.0
        self.error_sum = 0.0
        self.last_error = 0.0
        self.pout = 0.0
        self.iout = 0.0
        self.dout = 0.0
        self.out = 0.0


@dataclass(frozen=True)
class SetParametersResult:
    """Outcome of a parameter change request."""

    successful: bool
    reason: str


_TUNABLE = ("kp", "ki", "kd", "max_out", "max_iout")


def _clamp(value: float, limit: float) -> float:
    if value > limit:
        value = limit
    if value < -limit:
        value = -limit
    return value


class PIDController:
    """Turns a commanded set point and a measured value into a bounded output."""

    DEFAULTS: dict[str, Any] = {
        "command_interface": "",
        "state_interface": "",
        "kp": 0.0,
        "ki": 0.0,
        "kd": 0.0,
        "max_out": 0.0,
        "max_iout": 0.0,
        "stale_threshold": 0.1,
    }

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        publish: Callable[[PIDState], None] | None = None,
    ) -> None:
        self._clock = clock
        self._publish = publish
        self.pid = PIDState()
        self.command_interface_name = ""
        self.state_interface_name = ""
        self.stale_threshold: float = self.DEFAULTS["stale_threshold"]
        self.configured = False
        self.active = False
        self._command: float | None = None
        self._last_cmd_time = 0.0

    def configure(self, parameters: Mapping[str, Any] | None = None) -> None:
        """Read interface names, gains, limits and the stale threshold."""
        merged = {**self.DEFAULTS, **(parameters or {})}
        self.command_interface_name = get_parameter(merged, "command_interface", str)
        self.state_interface_name = get_parameter(merged, "state_interface", str)
        gains = {name: get_parameter(merged, name, float) for name in _TUNABLE}
        self.stale_threshold = get_parameter(merged, "stale_threshold", float)
        for name, value in gains.items():
            setattr(self.pid, name, value)
        self.configured = True
        logger.info(
            "command_interface: %s, state_interface: %s stale_threshold %f",
            self.command_interface_name,
            self.state_interface_name,
            self.stale_threshold,
        )
        logger.info("configured")

    def activate(self) -> None:
        """Reset the command to zero and start controlling."""
        if not self.configured:
            raise RuntimeError("controller is not configured")
        self._command = 0.0
        self.active = True
        logger.info("activated")

    def deactivate(self) -> None:
        """Stop controlling."""
        self.active = False
        logger.info("deactivated")

    def state_interface_configuration(self) -> list[str]:
        """Names of the state interfaces this controller reads."""
        return [self.state_interface_name]

    def command_interface_configuration(self) -> list[str]:
        """Names of the command interfaces this controller writes."""
        return [self.command_interface_name]

    def set_command(self, value: float) -> None:
        """Receive a new set point."""
        self._command = float(value)
        self._last_cmd_time = self._clock()

    def update(self, feedback: float) -> float | None:
        """Run one control step and return the output, or None with no command yet."""
        if not self.configured:
            raise RuntimeError("controller is not configured")

        snapshot = dataclasses.replace(self.pid, frame_id="", stamp=self._clock())
        if self._publish is not None:
            self._publish(snapshot)

        command = self._command
        if command is None:
            return None

        pid = self.pid
        if self._clock() - self._last_cmd_time > self.stale_threshold:
            pid.reset(feedback)
            return 0.0

        pid.set = command
        pid.feedback = feedback
        pid.error = pid.set - pid.feedback
        pid.pout = pid.error * pid.kp
        pid.error_sum += pid.error
        pid.iout = _clamp(pid.error_sum * pid.ki, pid.max_iout)
        pid.dout = (pid.error - pid.last_error) * pid.kd
        pid.last_error = pid.error
        pid.out = _clamp(pid.pout + pid.iout + pid.dout, pid.max_out)
        return pid.out

    def set_parameters(self, parameters: Mapping[str, Any]) -> SetParametersResult:
        """Update gains and limits at run time; values that are not doubles are ignored."""
        for name, value in parameters.items():
            if name in _TUNABLE and isinstance(value, float):
                setattr(self.pid, name, value)
                logger.info("update param %s %f", name, value)
        return SetParametersResult(successful=True, reason="success")


__all__ = ["PIDState", "SetParametersResult", "PIDController", "ParameterError"]