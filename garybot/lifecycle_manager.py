"""Drives managed nodes through configure and activate, and reports their state."""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future
from typing import Any, Callable, Mapping, Protocol

from garybot.diagnostics import (
    DiagnosticArray,
    DiagnosticLevel,
    DiagnosticStatus,
    ParameterError,
    get_parameter,
)
from garybot.pid_controller import SetParametersResult

logger = logging.getLogger(__name__)

OFFLINE = "node offline"


class LifecycleClient(Protocol):
    """Access to the state services of one managed node."""

    def service_is_ready(self) -> bool:
        """Whether both the get-state and change-state services answer."""

    def get_state(self) -> Future:
        """Ask for the current state; the future resolves to its label."""

    def change_state(self, transition: str) -> Future:
        """Request a transition by label, such as ``configure`` or ``activate``."""


class LifecycleManager:
    """Keeps managed nodes configured and active and publishes their states."""

    DEFAULTS: dict[str, Any] = {
        "node_names": [],
        "diagnose_topic": "/diagnostics",
        "diag_freq": 10.0,
        "respawn": True,
        "update_rate": 10.0,
    }

    def __init__(
        self,
        client_factory: Callable[[str], LifecycleClient],
        publish: Callable[[DiagnosticArray], None],
        parameters: Mapping[str, Any] | None = None,
        name: str = "lifecycle_manager",
    ) -> None:
        self._client_factory = client_factory
        self._publish = publish
        self.name = name

        merged = {**self.DEFAULTS, **(parameters or {})}
        self.node_names: list[str] = get_parameter(merged, "node_names", list)
        self.diagnose_topic: str = get_parameter(merged, "diagnose_topic", str)
        self.diag_freq: float = get_parameter(merged, "diag_freq", float)
        self.respawn: bool = get_parameter(merged, "respawn", bool)
        self.update_rate: float = get_parameter(merged, "update_rate", float)

        self.clients: dict[str, LifecycleClient] = {}
        self.node_states: dict[str, str] = {}
        self._configure_sent: dict[str, bool] = {}
        self._activate_sent: dict[str, bool] = {}
        self._get_state_pending: dict[str, Future] = {}
        self._change_state_pending: dict[str, Future] = {}

        for node_name in self.node_names:
            self._track(node_name, "offline")

    @property
    def update_period(self) -> float:
        """Seconds between two calls of :meth:`update`."""
        return 1.0 / self.update_rate

    @property
    def diag_period(self) -> float:
        """Seconds between two calls of :meth:`diagnose`."""
        return 1.0 / self.diag_freq

    def _track(self, node_name: str, initial_state: str) -> None:
        if node_name not in self.clients:
            self.clients[node_name] = self._client_factory(node_name)
        self.node_states.setdefault(node_name, initial_state)
        self._configure_sent.setdefault(node_name, False)
        self._activate_sent.setdefault(node_name, False)

    def _request_transition(self, node_name: str, transition: str) -> None:
        self._change_state_pending[node_name] = self.clients[node_name].change_state(transition)
        logger.info("[%s] changing to %s", node_name, transition)

    def update(self) -> dict[str, str]:
        """Poll every managed node, request the next transition, and return the states."""
        for node_name in self.node_names:
            client = self.clients[node_name]
            if not client.service_is_ready():
                logger.error("[%s] node offline", node_name)
                self.node_states[node_name] = OFFLINE
                continue

            pending = self._get_state_pending.get(node_name)
            if pending is None:
                self._get_state_pending[node_name] = client.get_state()
            elif pending.done():
                self.node_states[node_name] = pending.result()
                self._get_state_pending[node_name] = client.get_state()

            if node_name in self._change_state_pending:
                # A transition is only waited on for one cycle, finished or not.
                self._change_state_pending.pop(node_name)
                continue

            state = self.node_states[node_name]
            if state == "unconfigured":
                if not self._configure_sent[node_name] or self.respawn:
                    self._request_transition(node_name, "configure")
                    self._configure_sent[node_name] = True
            elif state == "inactive":
                if not self._activate_sent[node_name] or self.respawn:
                    self._request_transition(node_name, "activate")
                    self._activate_sent[node_name] = True

            logger.debug("[%s] %s", node_name, self.node_states[node_name])
        return dict(self.node_states)

    def diagnose(self) -> DiagnosticArray:
        """Publish and return one status per known node plus one for the manager."""
        statuses = [
            DiagnosticStatus(
                name=node_name,
                hardware_id=node_name,
                level=DiagnosticLevel.ERROR if state == OFFLINE else DiagnosticLevel.OK,
                message=state,
            )
            for node_name, state in sorted(self.node_states.items())
        ]
        statuses.append(
            DiagnosticStatus(
                name=self.name,
                hardware_id=self.name,
                level=DiagnosticLevel.OK,
                message="active",
            )
        )
        array = DiagnosticArray(status=statuses, frame_id="", stamp=time.monotonic())
        self._publish(array)
        return array

    def set_parameters(self, parameters: Mapping[str, Any]) -> SetParametersResult:
        """Apply parameter changes in order, stopping at the first one of a wrong type."""
        kinds = {
            "node_names": list,
            "diagnose_topic": str,
            "diag_freq": float,
            "respawn": bool,
            "update_rate": float,
        }
        for name, value in parameters.items():
            kind = kinds.get(name)
            if kind is None:
                continue
            try:
                checked = get_parameter({name: value}, name, kind)
            except ParameterError as exc:
                return SetParametersResult(successful=False, reason=str(exc))

            if name == "node_names":
                old = set(self.node_names)
                self.node_names = checked
                for node_name in checked:
                    if node_name not in old:
                        self._track(node_name, OFFLINE)
            else:
                setattr(self, name, checked)

        logger.info("update param succ")
        return SetParametersResult(successful=True, reason="ok")