"""Forward and inverse kinematics of a four-wheel mecanum chassis."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Mapping


class WheelOffline(Enum):
    """Which wheel, if any, is out of service."""

    NONE = 0
    LF = 1
    LB = 2
    RF = 3
    RB = 4


@dataclass(frozen=True)
class MecanumKinematics:
    """Chassis geometry: half wheelbase ``a``, half track ``b``, wheel radius ``r``."""

    a: float
    b: float
    r: float

    def forward_solve(
        self,
        wheel_speed: Mapping[str, float],
        wheel_offline: WheelOffline = WheelOffline.NONE,
    ) -> dict[str, float]:
        """Chassis speed ``vx``, ``vy``, ``az`` from the four wheel speeds."""
        lf = wheel_speed["left_front"]
        lb = wheel_speed["left_back"]
        rf = wheel_speed["right_front"]
        rb = wheel_speed["right_back"]
        return {
            "vx": (-rf + lf + lb - rb) / 4 * self.r,
            "vy": (-rf - lf + lb + rb) / 4 * self.r,
            "az": (-rf - lf - lb - rb) / 4 / (self.a + self.b),
        }

    def inverse_solve(
        self,
        chassis_speed: Mapping[str, float],
        wheel_offline: WheelOffline = WheelOffline.NONE,
    ) -> dict[str, float]:
        """Wheel speeds for a chassis speed, using only the wheels still online."""
        vx = chassis_speed["vx"]
        vy = chassis_speed["vy"]
        az = chassis_speed["az"]
        r = self.r
        spin = az * (self.a + self.b)

        if wheel_offline is WheelOffline.NONE:
            return {
                "right_front": (-vx - vy + spin) / r,
                "left_front": (vx - vy + spin) / r,
                "left_back": (vx + vy + spin) / r,
                "right_back": (-vx + vy + spin) / r,
            }

        translating = vx != 0 or vy != 0
        x_dominant = abs(vx) >= abs(vy)

        if wheel_offline is WheelOffline.LF:
            if translating:
                if x_dominant:
                    return {"left_back": vx / r, "right_back": -vx / r}
                return {"right_front": -vy / r, "right_back": vy / r}
            return {"right_front": spin / r, "left_back": spin / r}

        if wheel_offline is WheelOffline.LB:
            if translating:
                if x_dominant:
                    return {"right_front": -vx / r, "left_front": vx / r}
                return {"right_front": -vy / r, "right_back": vy / r}
            return {"right_front": spin / r, "left_front": spin / r}

        if wheel_offline is WheelOffline.RF:
            if translating:
                if x_dominant:
                    return {"left_back": vx / r, "right_back": -vx / r}
                return {"left_front": -vy / r, "left_back": vy / r}
            return {"left_front": spin / r, "right_back": spin / r}

        # WheelOffline.RB
        if translating:
            if x_dominant:
                return {"right_front": -vx / r, "left_front": vx / r}
            return {"left_front": -vy / r, "left_back": vy / r}
        return {"right_front": spin / r, "left_back": spin / r}