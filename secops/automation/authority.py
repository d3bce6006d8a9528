"""
Consensus Authority Interface

The authority is the external consensus system that supplies per-protocol
reports about monitored entities and executes remediation actions on them.
The engine treats it as a black box: every call is synchronous, returns a
plain success flag, and is assumed idempotent at the entity level.

    fetch_reports(protocol)                        -> List[Report]
    fetch_watchlist(protocol)                      -> FrozenSet[str]
    apply_action(protocol, action, key, payload)   -> bool
    finalize_batch(protocol)                       -> bool
    get_by_id(protocol, key)                       -> Optional[Report]

InMemoryAuthority is a scriptable reference implementation used by the test
suite and by the ``simulate`` CLI command.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, FrozenSet, Iterable, List, Optional, Tuple, Union

from secops.automation.errors import AuthorityError

Signal = Union[float, int, bool]


@dataclass(frozen=True)
class Report:
    """
    A per-cycle snapshot of one monitored entity.

    ``signal`` is the primary anomaly signal (a score or a flag).
    ``attributes`` carries any further named signals a detection clause may
    inspect, e.g. the counterparty address checked against a watchlist.
    ``payload`` is the opaque data sealed before it reaches the authority.
    """
    entity_key: str
    signal: Signal = 0.0
    payload: bytes = b""
    attributes: Dict[str, Any] = field(default_factory=dict)

    def value(self, name: Optional[str]) -> Any:
        """Return the named attribute, or the primary signal when name is None."""
        if name is None or name == "signal":
            return self.signal
        return self.attributes.get(name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity_key": self.entity_key,
            "signal": self.signal,
            "payload": self.payload.hex(),
            "attributes": dict(self.attributes),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Report":
        payload = data.get("payload", b"")
        if isinstance(payload, str):
            payload = payload.encode("utf-8")
        return cls(
            entity_key=str(data["entity_key"]),
            signal=data.get("signal", 0.0),
            payload=payload,
            attributes=dict(data.get("attributes") or {}),
        )


class AuthorityClient(ABC):
    """Interface to the consensus authority."""

    @abstractmethod
    def fetch_reports(self, protocol: str) -> List[Report]:
        """Return the current batch of reports. An empty list is a normal result."""

    def fetch_watchlist(self, protocol: str) -> FrozenSet[str]:
        """Return the blacklist used by membership clauses."""
        return frozenset()

    @abstractmethod
    def apply_action(self, protocol: str, action: str, entity_key: str, payload: bytes) -> bool:
        """Execute a remediation action. Returns True on success."""

    @abstractmethod
    def finalize_batch(self, protocol: str) -> bool:
        """Close out the current batch of cycles. Returns True on success."""

    @abstractmethod
    def get_by_id(self, protocol: str, entity_key: str) -> Optional[Report]:
        """Look up a single entity for manual and emergency operations."""


@dataclass(frozen=True)
class ActionCall:
    """One recorded apply_action invocation."""
    protocol: str
    action: str
    entity_key: str
    payload: bytes
    succeeded: bool


class InMemoryAuthority(AuthorityClient):
    """
    Scriptable in-process authority.

    Reports are served either from a standing snapshot (returned on every
    fetch) or from a queue of batches (one batch per fetch, falling back to
    the snapshot once drained). Action outcomes can be scripted per
    (protocol, action, entity) as a sequence of booleans; unscripted calls
    return ``default_outcome``.

    Example:
        authority = InMemoryAuthority()
        authority.set_reports("bandwidth", [Report("node-1", signal=True)])
        authority.script_action("bandwidth", "throttle_node", "node-1", [False, True])
    """

    def __init__(self, default_outcome: bool = True):
        self.default_outcome = default_outcome
        self._snapshots: Dict[str, List[Report]] = {}
        self._batches: Dict[str, Deque[List[Report]]] = {}
        self._watchlists: Dict[str, FrozenSet[str]] = {}
        self._scripts: Dict[Tuple[str, str, str], Deque[bool]] = {}
        self._finalize_outcomes: Dict[str, Deque[bool]] = {}
        self._fetch_failures: Dict[str, int] = {}
        self._calls: List[ActionCall] = []
        self._finalize_calls: Dict[str, int] = {}
        self._lock = threading.Lock()

    # -- scripting --------------------------------------------------------

    def set_reports(self, protocol: str, reports: Iterable[Report]) -> None:
        with self._lock:
            self._snapshots[protocol] = list(reports)

    def queue_batches(self, protocol: str, batches: Iterable[Iterable[Report]]) -> None:
        with self._lock:
            queue = self._batches.setdefault(protocol, deque())
            queue.extend(list(batch) for batch in batches)

    def set_watchlist(self, protocol: str, keys: Iterable[str]) -> None:
        with self._lock:
            self._watchlists[protocol] = frozenset(keys)

    def script_action(
        self,
        protocol: str,
        action: str,
        entity_key: str,
        outcomes: Iterable[bool],
    ) -> None:
        with self._lock:
            queue = self._scripts.setdefault((protocol, action, entity_key), deque())
            queue.extend(bool(o) for o in outcomes)

    def script_finalize(self, protocol: str, outcomes: Iterable[bool]) -> None:
        with self._lock:
            queue = self._finalize_outcomes.setdefault(protocol, deque())
            queue.extend(bool(o) for o in outcomes)

    def fail_next_fetches(self, protocol: str, count: int = 1) -> None:
        """Make the next ``count`` fetches for a protocol raise AuthorityError."""
        with self._lock:
            self._fetch_failures[protocol] = self._fetch_failures.get(protocol, 0) + count

    # -- AuthorityClient --------------------------------------------------

    def fetch_reports(self, protocol: str) -> List[Report]:
        with self._lock:
            if self._fetch_failures.get(protocol, 0) > 0:
                self._fetch_failures[protocol] -= 1
                raise AuthorityError(protocol, "fetch_reports", "authority unavailable")
            queue = self._batches.get(protocol)
            if queue:
                return list(queue.popleft())
            return list(self._snapshots.get(protocol, []))

    def fetch_watchlist(self, protocol: str) -> FrozenSet[str]:
        with self._lock:
            return self._watchlists.get(protocol, frozenset())

    def apply_action(self, protocol: str, action: str, entity_key: str, payload: bytes) -> bool:
        with self._lock:
            script = self._scripts.get((protocol, action, entity_key))
            outcome = script.popleft() if script else self.default_outcome
            self._calls.append(ActionCall(protocol, action, entity_key, payload, outcome))
            return outcome

    def finalize_batch(self, protocol: str) -> bool:
        with self._lock:
            self._finalize_calls[protocol] = self._finalize_calls.get(protocol, 0) + 1
            script = self._finalize_outcomes.get(protocol)
            return script.popleft() if script else True

    def get_by_id(self, protocol: str, entity_key: str) -> Optional[Report]:
        with self._lock:
            for report in self._snapshots.get(protocol, []):
                if report.entity_key == entity_key:
                    return report
            for batch in self._batches.get(protocol, ()):
                for report in batch:
                    if report.entity_key == entity_key:
                        return report
        return None

    # -- inspection -------------------------------------------------------

    def calls(
        self,
        protocol: Optional[str] = None,
        action: Optional[str] = None,
        entity_key: Optional[str] = None,
    ) -> List[ActionCall]:
        with self._lock:
            return [
                c for c in self._calls
                if (protocol is None or c.protocol == protocol)
                and (action is None or c.action == action)
                and (entity_key is None or c.entity_key == entity_key)
            ]

    def finalize_count(self, protocol: str) -> int:
        with self._lock:
            return self._finalize_calls.get(protocol, 0)

    @classmethod
    def from_scenario(cls, protocol: str, scenario: Dict[str, Any]) -> "InMemoryAuthority":
        """
        Build an authority from a scenario document (as loaded from YAML).

        Recognised keys: ``default_outcome``, ``reports`` (standing snapshot),
        ``batches`` (list of report lists), ``watchlist``, ``actions``
        (list of {action, entity_key, outcomes}), ``finalize`` (outcomes).
        """
        authority = cls(default_outcome=bool(scenario.get("default_outcome", True)))
        if scenario.get("reports"):
            authority.set_reports(protocol, [Report.from_dict(r) for r in scenario["reports"]])
        if scenario.get("batches"):
            authority.queue_batches(
                protocol,
                [[Report.from_dict(r) for r in batch or []] for batch in scenario["batches"]],
            )
        if scenario.get("watchlist"):
            authority.set_watchlist(protocol, scenario["watchlist"])
        for item in scenario.get("actions") or []:
            authority.script_action(protocol, item["action"], item["entity_key"], item["outcomes"])
        if scenario.get("finalize"):
            authority.script_finalize(protocol, scenario["finalize"])
        return authority
