"""Diagnostics, mecanum kinematics, PID control, lifecycle supervision and SocketCAN components."""

__version__ = "0.1.0"