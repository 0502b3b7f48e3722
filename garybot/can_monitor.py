"""Watches SocketCAN buses and reports whether each is offline, jammed or overloaded."""

from __future__ import annotations

import logging
import re
import time
from collections import defaultdict
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, Optional, Protocol

from garybot.diagnostics import (
    DiagnosticArray,
    DiagnosticLevel,
    DiagnosticStatus,
    KeyValue,
    get_parameter,
)

logger = logging.getLogger(__name__)

CAN_STATE_ERROR_ACTIVE = 0
PACKET_BITS = 110
DEFAULT_RCVLIST_DIR = "/proc/net/can"

_RCVLIST_LINE = re.compile(
    r"^ +(.+?) +([\d\w]+) +([\d\w]+) +([\d\w]+) +([\d\w]+) +([\d\w]+) +([\d\w]+)"
)
_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


@dataclass(frozen=True)
class CanRecvInfo:
    """One receive-list entry: device, filter id and how many frames it matched."""

    device: str
    can_id: int
    matches: int


class BusProbe(Protocol):
    """Access to the state of CAN interfaces."""

    def open_socket(self, ifname: str) -> bool:
        """Open a receiving socket on ``ifname``; return whether it worked."""

    def get_state(self, ifname: str) -> int:
        """The controller state; above zero the bus is no longer error-active."""

    def get_bitrate(self, ifname: str) -> Optional[int]:
        """The bitrate in bits per second, or None if it cannot be read."""


def _leading_int(text: str) -> int:
    """Parse the leading decimal number of ``text``, as a C string-to-int would."""
    match = _LEADING_INT.match(text)
    if match is None:
        raise ValueError(f"no number at the start of {text!r}")
    return int(match.group(1))


def parse_rcvlist(lines: Iterable[str]) -> list[CanRecvInfo]:
    """Parse the lines of a receive list, skipping the column titles."""
    entries = []
    for line in lines:
        match = _RCVLIST_LINE.fullmatch(line.rstrip("\r\n"))
        if match is None:
            continue
        device = match.group(1)
        if device == "device":
            continue
        entries.append(
            CanRecvInfo(
                device=device,
                can_id=_leading_int(match.group(2)),
                matches=_leading_int(match.group(6)),
            )
        )
    return entries


def read_rcvlist(path: str | Path) -> list[CanRecvInfo]:
    """Read and parse a receive list file; a missing file gives an empty list."""
    logger.debug("reading rcvlist %s", path)
    try:
        with open(path, encoding="utf-8", errors="replace") as handle:
            entries = parse_rcvlist(handle)
    except OSError as exc:
        logger.debug("cannot read %s: %s", path, exc)
        return []
    logger.debug("total item %d", len(entries))
    return entries


def _to_string(value: float) -> str:
    return f"{value:.6f}"


class SocketCANMonitor:
    """Publishes one diagnostic status per monitored CAN bus on every update."""

    DEFAULTS: dict[str, Any] = {
        "diagnose_topic": "/diagnostics",
        "update_freq": 10.0,
        "monitored_can_bus": [],
        "overload_threshold": 0.8,
    }

    def __init__(
        self,
        publish: Callable[[DiagnosticArray], None],
        bus_probe: BusProbe,
        rcvlist_dir: str | Path = DEFAULT_RCVLIST_DIR,
    ) -> None:
        self._publish = publish
        self._probe = bus_probe
        self.rcvlist_dir = Path(rcvlist_dir)
        self.diagnose_topic: str = self.DEFAULTS["diagnose_topic"]
        self.update_freq: float = self.DEFAULTS["update_freq"]
        self.monitored_can_bus: list[str] = []
        self.overload_threshold: float = self.DEFAULTS["overload_threshold"]
        self.configured = False
        self.active = False
        self.last_recv_cnt: dict[str, int] = defaultdict(int)
        self.last_filter_cnt: dict[str, dict[int, int]] = defaultdict(lambda: defaultdict(int))

    @property
    def period(self) -> float:
        """Seconds between two calls of :meth:`update`."""
        return 1.0 / self.update_freq

    def configure(self, parameters: Mapping[str, Any] | None = None) -> None:
        """Read the parameters, falling back to the defaults for missing ones."""
        merged = {**self.DEFAULTS, **(parameters or {})}
        diagnose_topic = get_parameter(merged, "diagnose_topic", str)
        update_freq = get_parameter(merged, "update_freq", float)
        buses = get_parameter(merged, "monitored_can_bus", list)
        threshold = get_parameter(merged, "overload_threshold", float)
        if not buses:
            logger.warning("no can bus is monitored")
        self.diagnose_topic = diagnose_topic
        self.update_freq = update_freq
        self.monitored_can_bus = buses
        self.overload_threshold = threshold
        self.configured = True
        logger.info("configured")

    def activate(self) -> None:
        """Open a socket on every monitored bus and start publishing."""
        if not self.configured:
            raise RuntimeError("monitor is not configured")
        self.active = True
        for ifname in self.monitored_can_bus:
            self._probe.open_socket(ifname)
        logger.info("activated")

    def deactivate(self) -> None:
        """Stop publishing."""
        if not self.configured:
            raise RuntimeError("monitor is not configured")
        self.active = False
        logger.info("deactivated")

    def _check_bus(
        self,
        ifname: str,
        rcvlist_all: list[CanRecvInfo],
        rcvlist_fil: list[CanRecvInfo],
    ) -> DiagnosticStatus:
        status = DiagnosticStatus(name=ifname, hardware_id=ifname)

        delta_pkt = 0
        found = False
        for entry in rcvlist_all:
            if entry.device == ifname:
                delta_pkt = entry.matches - self.last_recv_cnt[ifname]
                self.last_recv_cnt[ifname] = entry.matches
                found = True
        if not found:
            self.last_recv_cnt[ifname] = 0
            self._probe.open_socket(ifname)
            logger.error("[%s] offline", ifname)
            status.level, status.message = DiagnosticLevel.ERROR, "offline"
            return status

        state = self._probe.get_state(ifname)
        if state > CAN_STATE_ERROR_ACTIVE:
            logger.warning("[%s] transmission jammed, state %d", ifname, state)
            status.level, status.message = DiagnosticLevel.WARN, "transmission jammed"
            return status

        bitrate = self._probe.get_bitrate(ifname)
        if bitrate is None or bitrate <= 0:
            logger.warning("[%s] failed to get bitrate", ifname)
            status.level, status.message = DiagnosticLevel.WARN, "failed to get bitrate"
            return status

        load = (delta_pkt * PACKET_BITS) / (bitrate / self.update_freq)
        if load > self.overload_threshold:
            logger.warning("[%s] can bus overload %f", ifname, load)
            status.level, status.message = DiagnosticLevel.WARN, "can bus overload"
            return status

        logger.debug(
            "[%s] delta pkt %d, bitrate %d, load %f state %d", ifname, delta_pkt, bitrate, load, state
        )
        status.level, status.message = DiagnosticLevel.OK, "ok"
        status.values.append(KeyValue("bus_load", _to_string(load)))

        filters = self.last_filter_cnt[ifname]
        for entry in rcvlist_fil:
            if entry.device == ifname:
                delta = entry.matches - filters[entry.can_id]
                filters[entry.can_id] = entry.matches
                status.values.append(
                    KeyValue(f"id_{entry.can_id}_freq", _to_string(delta * self.update_freq))
                )
        return status

    def update(self) -> DiagnosticArray | None:
        """Check every monitored bus, publish if active, and return the statuses.

        Returns None when no bus is monitored.
        """
        logger.debug("update")
        if not self.monitored_can_bus:
            return None
        rcvlist_all = read_rcvlist(self.rcvlist_dir / "rcvlist_all")
        rcvlist_fil = read_rcvlist(self.rcvlist_dir / "rcvlist_fil")
        statuses = [
            self._check_bus(ifname, rcvlist_all, rcvlist_fil) for ifname in self.monitored_can_bus
        ]
        array = DiagnosticArray(status=statuses, frame_id="", stamp=time.time())
        if self.active:
            self._publish(array)
        return array