"""
Escalation State Machine and Retry Policy Tests

Copyright (c) 2026 Momentum. All rights reserved.
"""

import pytest

from secops.automation.authority import Report
from secops.automation.detection import AnyOf, Flag
from secops.automation.escalation import (
    CounterResetPolicy,
    EscalationMachine,
    EscalationRecord,
    EscalationState,
    EscalationTable,
    Severity,
)
from secops.automation.ledger import InMemoryLedger, LedgerAdapter
from secops.automation.observability import Component, get_logger
from secops.automation.protocols import ProtocolSpec, RemediationAction
from secops.automation.resilience import RetryDecision, RetryPolicy


SPEC = ProtocolSpec(
    name="slashing",
    title="Slashing",
    predicate=AnyOf(Flag("misbehaved")),
    alert=RemediationAction("warn_validator", "Warning Issued"),
    escalate=RemediationAction("slash_validator", "Slashing Executed"),
    event_type="Slashing Event",
    failure_type="Slashing Failure",
    finalization_type="Slashing Cycle Finalization",
    escalation_threshold=3,
    max_retries=3,
)


class ScriptedInvoker:
    """Records every attempt and the record's retry count at that moment."""

    def __init__(self, record, outcomes=None, default=True):
        self.record = record
        self.outcomes = list(outcomes or [])
        self.default = default
        self.attempts = []

    def __call__(self, action, entity_key, payload):
        self.attempts.append((action.operation, self.record.retry_count))
        return self.outcomes.pop(0) if self.outcomes else self.default


def make_machine(record, outcomes=None, default=True, reset_policy=CounterResetPolicy.RECOVERY):
    ledger = InMemoryLedger()
    invoker = ScriptedInvoker(record, outcomes, default)
    machine = EscalationMachine(
        SPEC,
        invoke=invoker,
        seal=lambda payload: payload,
        ledger=LedgerAdapter(ledger, "pos-slashing", SPEC.event_type, SPEC.failure_type,
                             SPEC.finalization_type, clock=lambda: 1700000000),
        policy=RetryPolicy(SPEC.max_retries),
        log=get_logger(Component.ESCALATION, SPEC.name),
        reset_policy=reset_policy,
    )
    return machine, invoker, ledger


REPORT = Report("validator-1", attributes={"misbehaved": True})


class TestRetryPolicy:
    """Tests for the count-bounded retry decision."""

    def test_retry_until_max(self):
        policy = RetryPolicy(max_attempts=3)
        assert policy.after_failure(1) == RetryDecision.RETRY
        assert policy.after_failure(2) == RetryDecision.RETRY
        assert policy.after_failure(3) == RetryDecision.EXHAUSTED

    def test_metrics(self):
        policy = RetryPolicy(max_attempts=2)
        policy.after_failure(1)
        policy.after_failure(2)
        policy.after_success()
        metrics = policy.metrics
        assert metrics.total_attempts == 3
        assert metrics.failed_attempts == 2
        assert metrics.successful_attempts == 1
        assert metrics.retries_exhausted == 1

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)


class TestEscalationTable:
    """Tests for the per-entity record store."""

    def test_get_or_create(self):
        table = EscalationTable()
        assert table.get("a") is None
        record = table.get_or_create("a")
        assert table.get_or_create("a") is record
        assert "a" in table
        assert len(table) == 1

    def test_snapshot_is_independent(self):
        table = EscalationTable()
        table.get_or_create("a").violation_count = 2
        snap = table.snapshot()
        snap["a"].violation_count = 99
        assert table.get("a").violation_count == 2

    def test_record_to_dict(self):
        record = EscalationRecord(violation_count=1, state=EscalationState.ALERTED, last_action="warn")
        assert record.to_dict() == {
            "violation_count": 1,
            "retry_count": 0,
            "state": "alerted",
            "last_action": "warn",
        }


class TestEscalationMachine:
    """Tests for the alert → escalate ladder."""

    def test_alert_below_threshold(self):
        record = EscalationRecord()
        machine, invoker, ledger = make_machine(record)

        outcome = machine.on_anomaly(record, REPORT)

        assert outcome.severity == Severity.ALERT
        assert outcome.succeeded
        assert record.violation_count == 1
        assert record.state == EscalationState.ALERTED
        entry = ledger.entries()[0]
        assert entry.id == "pos-slashing-validator-1-warning-issued"
        assert entry.type == "Slashing Event"
        assert entry.timestamp == 1700000000
        assert "1 violation" in entry.details

    def test_escalate_at_threshold(self):
        record = EscalationRecord(violation_count=2)
        machine, invoker, ledger = make_machine(record)

        outcome = machine.on_anomaly(record, REPORT)

        assert outcome.severity == Severity.ESCALATE
        assert invoker.attempts == [("slash_validator", 0)]
        assert record.state == EscalationState.ESCALATED
        assert ledger.entries()[0].status == "Slashing Executed"

    def test_retry_count_below_max_on_every_attempt(self):
        record = EscalationRecord()
        machine, invoker, ledger = make_machine(record, default=False)

        outcome = machine.on_anomaly(record, REPORT)

        assert [retry for _, retry in invoker.attempts] == [0, 1, 2]
        assert all(retry < SPEC.max_retries for _, retry in invoker.attempts)
        assert outcome.exhausted
        assert outcome.attempts == 3
        assert record.retry_count == 0
        assert record.state == EscalationState.FAILED
        failures = ledger.entries(status="Failed")
        assert len(failures) == 1
        assert failures[0].id == "pos-slashing-failure-validator-1"
        assert "after 3 attempts" in failures[0].details

    def test_failed_entity_climbs_again(self):
        record = EscalationRecord()
        machine, invoker, ledger = make_machine(record, outcomes=[False, False, False])

        machine.on_anomaly(record, REPORT)
        outcome = machine.on_anomaly(record, REPORT)

        assert outcome.succeeded
        assert record.violation_count == 2
        assert record.state == EscalationState.ALERTED

    def test_remediation_policy_resets_after_escalation(self):
        record = EscalationRecord(violation_count=2)
        machine, _, ledger = make_machine(record, reset_policy=CounterResetPolicy.REMEDIATION)

        machine.on_anomaly(record, REPORT)

        assert record.violation_count == 0
        assert "3 violation" in ledger.entries()[0].details

    def test_remediation_policy_keeps_count_after_alert(self):
        record = EscalationRecord()
        machine, _, _ = make_machine(record, reset_policy=CounterResetPolicy.REMEDIATION)

        machine.on_anomaly(record, REPORT)

        assert record.violation_count == 1

    def test_recover(self):
        record = EscalationRecord(violation_count=4, retry_count=1, state=EscalationState.FAILED)
        machine, _, _ = make_machine(record)

        assert machine.recover(record) is True
        assert record == EscalationRecord(last_action=None)
        assert machine.recover(record) is False

    def test_emergency_requires_action(self):
        from secops.automation.errors import UnsupportedOperationError

        with pytest.raises(UnsupportedOperationError):
            SPEC.action_for(Severity.EMERGENCY)
