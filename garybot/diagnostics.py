"""Diagnostic messages and an aggregator that merges and ages them."""

from __future__ import annotations

import copy
import logging
import time
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Callable, Mapping

logger = logging.getLogger(__name__)


class DiagnosticLevel(IntEnum):
    """Severity of a diagnostic status."""

    OK = 0
    WARN = 1
    ERROR = 2
    STALE = 3


@dataclass
class KeyValue:
    """A named value attached to a diagnostic status."""

    key: str
    value: str


@dataclass
class DiagnosticStatus:
    """The state of one piece of hardware or one node."""

    name: str = ""
    hardware_id: str = ""
    level: DiagnosticLevel = DiagnosticLevel.OK
    message: str = ""
    values: list[KeyValue] = field(default_factory=list)


@dataclass
class DiagnosticArray:
    """A stamped collection of diagnostic statuses."""

    status: list[DiagnosticStatus] = field(default_factory=list)
    frame_id: str = ""
    stamp: float = 0.0


class ParameterError(ValueError):
    """A parameter is missing or has the wrong type."""


_KIND_NAMES = {str: "string", float: "double", bool: "bool", list: "string array"}


def _matches(value: Any, kind: type) -> bool:
    if kind is list:
        return isinstance(value, (list, tuple)) and all(isinstance(v, str) for v in value)
    if kind is float:
        return isinstance(value, float)
    if kind is bool:
        return isinstance(value, bool)
    if kind is str:
        return isinstance(value, str)
    return isinstance(value, kind)


def get_parameter(parameters: Mapping[str, Any], name: str, kind: type) -> Any:
    """Return ``parameters[name]``, raising ParameterError unless it is of ``kind``.

    ``kind`` is one of ``str``, ``float``, ``bool`` or ``list`` (a list of strings).
    """
    kind_name = _KIND_NAMES.get(kind, kind.__name__)
    if name not in parameters or not _matches(parameters[name], kind):
        message = f"{name} type must be {kind_name}"
        logger.error(message)
        raise ParameterError(message)
    value = parameters[name]
    return list(value) if kind is list else value


class DiagnosticAggregator:
    """Merges incoming diagnostics by hardware id and marks silent entries stale."""

    DEFAULTS: dict[str, Any] = {
        "diagnose_topic": "/diagnostics",
        "agg_topic": "/diagnostics_agg",
        "update_freq": 10.0,
        "stale_threshold": 0.5,
    }

    def __init__(
        self,
        publish: Callable[[DiagnosticArray], None],
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._publish = publish
        self._clock = clock
        self.diagnose_topic = self.DEFAULTS["diagnose_topic"]
        self.agg_topic = self.DEFAULTS["agg_topic"]
        self.update_freq: float = self.DEFAULTS["update_freq"]
        self.stale_threshold: float = self.DEFAULTS["stale_threshold"]
        self.configured = False
        self.active = False
        self.diagnostic_array = DiagnosticArray()
        self._last_update: dict[str, float] = {}

    @property
    def period(self) -> float:
        """Seconds between two calls of :meth:`update`."""
        return 1.0 / self.update_freq

    def configure(self, parameters: Mapping[str, Any] | None = None) -> None:
        """Read the parameters, falling back to the defaults for missing ones."""
        merged = {**self.DEFAULTS, **(parameters or {})}
        self.agg_topic = get_parameter(merged, "agg_topic", str)
        self.diagnose_topic = get_parameter(merged, "diagnose_topic", str)
        self.update_freq = get_parameter(merged, "update_freq", float)
        self.stale_threshold = get_parameter(merged, "stale_threshold", float)
        self.configured = True
        logger.info("configured")

    def activate(self) -> None:
        """Start publishing aggregated diagnostics."""
        if not self.configured:
            raise RuntimeError("aggregator is not configured")
        self.active = True
        logger.info("activated")

    def deactivate(self) -> None:
        """Stop publishing aggregated diagnostics."""
        if not self.configured:
            raise RuntimeError("aggregator is not configured")
        self.active = False
        logger.info("deactivated")

    def on_diagnostics(self, array: DiagnosticArray) -> None:
        """Merge incoming statuses into the aggregate, keyed by hardware id."""
        now = self._clock()
        for incoming in array.status:
            existing = next(
                (s for s in self.diagnostic_array.status if s.hardware_id == incoming.hardware_id),
                None,
            )
            if existing is None:
                self.diagnostic_array.status.append(copy.deepcopy(incoming))
            else:
                existing.name = incoming.name
                existing.level = incoming.level
                existing.message = incoming.message
                existing.values = copy.deepcopy(incoming.values)
            self._last_update[incoming.hardware_id] = now

    def update(self) -> DiagnosticArray:
        """Mark stale entries, publish if active, and return the aggregate."""
        now = self._clock()
        self.diagnostic_array.frame_id = ""
        self.diagnostic_array.stamp = now
        for status in self.diagnostic_array.status:
            delta = now - self._last_update.get(status.hardware_id, 0.0)
            if delta > self.stale_threshold:
                status.level = DiagnosticLevel.STALE
                status.message = "stale"
                logger.warning("[%s] stale", status.hardware_id)
        if self.active:
            self._publish(copy.deepcopy(self.diagnostic_array))
        return self.diagnostic_array