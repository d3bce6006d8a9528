"""
Escalation State Machine

Drives each monitored entity up an escalating ladder of responses:

    NORMAL ──anomaly──► ALERTED ──violations ≥ threshold──► ESCALATED
       ▲                   │                                    │
       │                   └──────── retries exhausted ─────────┴──► FAILED
       └──────────────── observed non-anomalous (recovery) ◄─────────┘

On every anomalous observation ``violation_count`` is incremented. Below
``escalation_threshold`` the low-severity action (alert/warn) is attempted,
at or above it the high-severity action (block/slash/ban). Each action is
retried immediately on failure until it succeeds or ``retry_count`` reaches
``max_retries``; exhaustion writes exactly one failure entry to the ledger
and resets ``retry_count`` so the next pass starts a fresh attempt.

FAILED is terminal only for the current pass: a later anomaly climbs the
ladder again from the current violation count, and a recovery returns the
entity to NORMAL.

The table and the machine are not synchronized; both are owned by exactly
one AutomationCycle and only touched while its lock is held.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import TYPE_CHECKING, Callable, Dict, Iterator, Optional

from secops.automation.ledger import LedgerAdapter
from secops.automation.observability import AutomationLogger
from secops.automation.resilience import RetryDecision, RetryPolicy

if TYPE_CHECKING:
    from secops.automation.authority import Report
    from secops.automation.protocols import ProtocolSpec, RemediationAction


class EscalationState(Enum):
    """Position of an entity on the escalation ladder."""
    NORMAL = "normal"
    ALERTED = "alerted"
    ESCALATED = "escalated"
    FAILED = "failed"


class Severity(Enum):
    """Severity tier of a remediation action."""
    ALERT = "alert"
    ESCALATE = "escalate"
    EMERGENCY = "emergency"


class CounterResetPolicy(Enum):
    """
    Which event clears ``violation_count``.

    RECOVERY: only an observation of the entity as non-anomalous.
    REMEDIATION: recovery, and also a successful high-severity action.
    """
    RECOVERY = "recovery"
    REMEDIATION = "remediation"


@dataclass
class EscalationRecord:
    """Per-entity escalation counters."""
    violation_count: int = 0
    retry_count: int = 0
    state: EscalationState = EscalationState.NORMAL
    last_action: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "violation_count": self.violation_count,
            "retry_count": self.retry_count,
            "state": self.state.value,
            "last_action": self.last_action,
        }


class EscalationTable:
    """Owned mapping of entity key to EscalationRecord."""

    def __init__(self):
        self._records: Dict[str, EscalationRecord] = {}

    def get(self, entity_key: str) -> Optional[EscalationRecord]:
        return self._records.get(entity_key)

    def get_or_create(self, entity_key: str) -> EscalationRecord:
        record = self._records.get(entity_key)
        if record is None:
            record = EscalationRecord()
            self._records[entity_key] = record
        return record

    def snapshot(self) -> Dict[str, EscalationRecord]:
        """Independent copies of every record."""
        return {key: replace(record) for key, record in self._records.items()}

    def __contains__(self, entity_key: object) -> bool:
        return entity_key in self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._records))


@dataclass(frozen=True)
class EscalationOutcome:
    """Result of one remediation ladder step for one entity."""
    entity_key: str
    severity: Severity
    operation: str
    succeeded: bool
    attempts: int
    exhausted: bool = False


ActionInvoker = Callable[["RemediationAction", str, bytes], bool]
Sealer = Callable[[bytes], bytes]


class EscalationMachine:
    """
    Applies the escalation ladder and retry contract of one protocol.

    ``invoke`` performs the authority call and returns a success flag;
    ``seal`` prepares the payload for each attempt. Both are supplied by the
    engine so that the machine itself does no I/O.
    """

    def __init__(
        self,
        spec: "ProtocolSpec",
        invoke: ActionInvoker,
        seal: Sealer,
        ledger: LedgerAdapter,
        policy: RetryPolicy,
        log: AutomationLogger,
        reset_policy: CounterResetPolicy = CounterResetPolicy.RECOVERY,
    ):
        self.spec = spec
        self._invoke = invoke
        self._seal = seal
        self._ledger = ledger
        self._policy = policy
        self._log = log
        self.reset_policy = reset_policy

    def severity_for(self, record: EscalationRecord) -> Severity:
        if record.violation_count >= self.spec.escalation_threshold:
            return Severity.ESCALATE
        return Severity.ALERT

    def on_anomaly(self, record: EscalationRecord, report: "Report") -> EscalationOutcome:
        """Count a violation and respond at the matching severity."""
        record.violation_count += 1
        severity = self.severity_for(record)
        self._log.info(
            "Anomaly detected",
            entity_key=report.entity_key,
            violations=record.violation_count,
            severity=severity.value,
        )
        return self.remediate(record, report, severity)

    def remediate(
        self,
        record: EscalationRecord,
        report: "Report",
        severity: Severity,
    ) -> EscalationOutcome:
        """Run one action through the bounded retry contract."""
        action = self.spec.action_for(severity)
        entity_key = report.entity_key
        attempts = 0

        while True:
            attempts += 1
            payload = self._seal(report.payload)
            if self._invoke(action, entity_key, payload):
                self._policy.after_success()
                record.retry_count = 0
                record.last_action = action.operation
                record.state = (
                    EscalationState.ESCALATED if severity is not Severity.ALERT
                    else EscalationState.ALERTED
                )
                self._ledger.record_action(
                    entity_key,
                    action.status,
                    f"Entity {entity_key}: {action.status} by {action.operation} "
                    f"after {record.violation_count} violation(s).",
                )
                if severity is not Severity.ALERT and self.reset_policy is CounterResetPolicy.REMEDIATION:
                    record.violation_count = 0
                self._log.info(
                    action.status,
                    entity_key=entity_key,
                    operation=action.operation,
                    attempts=attempts,
                )
                return EscalationOutcome(entity_key, severity, action.operation, True, attempts)

            record.retry_count += 1
            if self._policy.after_failure(record.retry_count) is RetryDecision.EXHAUSTED:
                self._ledger.record_failure(entity_key, action.operation, attempts)
                record.retry_count = 0
                record.state = EscalationState.FAILED
                self._log.warning(
                    "Max retries reached, action failed",
                    entity_key=entity_key,
                    action=action.operation,
                    attempts=attempts,
                )
                return EscalationOutcome(
                    entity_key, severity, action.operation, False, attempts, exhausted=True,
                )

            self._log.debug(
                "Action failed, retrying",
                entity_key=entity_key,
                action=action.operation,
                retry_count=record.retry_count,
            )

    def recover(self, record: EscalationRecord) -> bool:
        """Reset an entity observed as non-anomalous. Returns True if anything changed."""
        changed = (
            record.violation_count != 0
            or record.retry_count != 0
            or record.state is not EscalationState.NORMAL
        )
        record.violation_count = 0
        record.retry_count = 0
        record.state = EscalationState.NORMAL
        return changed
