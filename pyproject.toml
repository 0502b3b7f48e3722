[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "garybot"
version = "0.1.0"
description = "Diagnostics, mecanum kinematics, PID control, lifecycle supervision and SocketCAN components for a competition robot."
requires-python = ">=3.10"
dependencies = []
keywords = [
    "robotics",
    "mecanum",
    "kinematics",
    "pid",
    "socketcan",
    "can-bus",
    "diagnostics",
    "lifecycle",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Science/Research",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Human Machine Interfaces",
    "Topic :: Software Development :: Embedded Systems :: Controller Area Network (CAN)",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["garybot"]

[tool.pytest.ini_options]
addopts = "-ra"
