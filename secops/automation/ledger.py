"""
Automation Ledger

Append-only record of every escalation-ladder transition and batch
finalization. Entries are immutable; the engine never reads them back to make
decisions.

    LedgerEntry      {id, timestamp, type, status, details}
    LedgerRecorder   append(entry) -> None
    InMemoryLedger   thread-safe list, used in tests and simulations
    JsonlLedger      one JSON object per line, flushed and fsynced per append
    LedgerAdapter    builds entries for one protocol and appends them

Recorders guard their storage with their own leaf lock and never call back
into the engine, so appending while an engine lock is held cannot deadlock.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import json
import os
import re
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Union

from secops.automation.errors import LedgerError


@dataclass(frozen=True)
class LedgerEntry:
    """Immutable ledger record."""
    id: str
    timestamp: int
    type: str
    status: str
    details: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LedgerEntry":
        return cls(
            id=str(data["id"]),
            timestamp=int(data["timestamp"]),
            type=str(data["type"]),
            status=str(data["status"]),
            details=str(data.get("details", "")),
        )


class LedgerRecorder(ABC):
    """Append-only sink for ledger entries."""

    @abstractmethod
    def append(self, entry: LedgerEntry) -> None:
        """Persist an entry. Returns only once the entry is durably queued."""


class InMemoryLedger(LedgerRecorder):
    """
    In-process ledger.

    Example:
        ledger = InMemoryLedger()
        ledger.append(entry)
        failures = ledger.entries(status="Failed")
    """

    def __init__(self):
        self._entries: List[LedgerEntry] = []
        self._lock = threading.Lock()

    def append(self, entry: LedgerEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def entries(
        self,
        type: Optional[str] = None,
        status: Optional[str] = None,
        id_prefix: Optional[str] = None,
    ) -> List[LedgerEntry]:
        with self._lock:
            return [
                e for e in self._entries
                if (type is None or e.type == type)
                and (status is None or e.status == status)
                and (id_prefix is None or e.id.startswith(id_prefix))
            ]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __iter__(self) -> Iterator[LedgerEntry]:
        with self._lock:
            return iter(list(self._entries))


class JsonlLedger(LedgerRecorder):
    """
    File-backed ledger writing one JSON object per line.

    Each append is flushed and fsynced before returning.
    """

    def __init__(self, path: Union[str, Path], fsync: bool = True):
        self.path = Path(path)
        self.fsync = fsync
        self._lock = threading.Lock()
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def append(self, entry: LedgerEntry) -> None:
        line = entry.to_json() + "\n"
        with self._lock:
            try:
                with open(self.path, "a", encoding="utf-8") as f:
                    f.write(line)
                    f.flush()
                    if self.fsync:
                        os.fsync(f.fileno())
            except OSError as e:
                raise LedgerError(f"Cannot append to ledger {self.path}: {e}") from e

    def read_all(self) -> List[LedgerEntry]:
        if not self.path.exists():
            return []
        with self._lock:
            with open(self.path, encoding="utf-8") as f:
                return [LedgerEntry.from_dict(json.loads(line)) for line in f if line.strip()]


_SLUG_RE = re.compile(r"[^a-z0-9]+")


def slugify(text: str) -> str:
    """'Alert Issued' -> 'alert-issued'."""
    return _SLUG_RE.sub("-", text.lower()).strip("-")


class LedgerAdapter:
    """
    Builds and appends the ledger entries of one protocol.

    Entry ids are derived from the protocol prefix, the entity key and the
    event, so the same event for the same entity always produces the same id
    and repeated occurrences are told apart by timestamp. Finalization ids
    embed the cycle count instead of an entity key.
    """

    def __init__(
        self,
        recorder: LedgerRecorder,
        prefix: str,
        event_type: str,
        failure_type: str,
        finalization_type: str,
        clock: Callable[[], float] = time.time,
    ):
        self.recorder = recorder
        self.prefix = prefix
        self.event_type = event_type
        self.failure_type = failure_type
        self.finalization_type = finalization_type
        self._clock = clock

    def _now(self) -> int:
        return int(self._clock())

    def _append(self, entry: LedgerEntry) -> LedgerEntry:
        self.recorder.append(entry)
        return entry

    def record_action(self, entity_key: str, status: str, details: str = "") -> LedgerEntry:
        """Record a successful remediation action (alert, escalation, emergency)."""
        return self._append(LedgerEntry(
            id=f"{self.prefix}-{entity_key}-{slugify(status)}",
            timestamp=self._now(),
            type=self.event_type,
            status=status,
            details=details or f"Entity {entity_key}: {status}.",
        ))

    def record_failure(self, entity_key: str, action: str, attempts: int) -> LedgerEntry:
        """Record retry exhaustion for an entity."""
        return self._append(LedgerEntry(
            id=f"{self.prefix}-failure-{entity_key}",
            timestamp=self._now(),
            type=self.failure_type,
            status="Failed",
            details=f"Action {action} failed for entity {entity_key} after {attempts} attempts.",
        ))

    def record_finalization(self, cycle: int) -> LedgerEntry:
        """Record a successful batch finalization."""
        return self._append(LedgerEntry(
            id=f"{self.prefix}-cycle-finalization-{cycle}",
            timestamp=self._now(),
            type=self.finalization_type,
            status="Finalized",
            details=f"Batch finalized at cycle {cycle}.",
        ))
