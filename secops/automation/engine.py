"""
Automation Cycle Engine

One generic engine drives every security protocol. Each pass:

    1. takes the engine lock for the whole pass
    2. fetches the protocol's reports (and watchlist) from the authority
    3. classifies each report with the protocol's detection predicate
    4. runs anomalous entities through the escalation state machine
    5. resets entities observed as non-anomalous (recovery)
    6. advances the cycle counter and finalizes every ``batch_size`` passes

Passes are fired by a PeriodicScheduler. Manual interventions and emergency
actions share the engine lock with passes; a tick that finds the lock held
is coalesced rather than queued.

Failures are contained inside the pass:

    fetch raises                 pass aborted, cycle counter untouched
    action fails / raises        bounded immediate retry, then a failure entry
    sealing raises               warning, original payload forwarded
    finalization fails / raises  warning, not retried

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import threading
import time
from dataclasses import asdict, dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional, Union

from secops.automation import metrics as m
from secops.automation.authority import AuthorityClient, Report
from secops.automation.config import AutomationConfig, get_config
from secops.automation.detection import DetectionContext
from secops.automation.errors import SealingError, UnknownEntityError
from secops.automation.escalation import (
    CounterResetPolicy,
    EscalationMachine,
    EscalationOutcome,
    EscalationRecord,
    EscalationTable,
    Severity,
)
from secops.automation.ledger import LedgerAdapter, LedgerRecorder
from secops.automation.metrics import MetricsCollector, get_metrics
from secops.automation.observability import Component, correlation_scope, get_logger
from secops.automation.protocols import ProtocolSpec, RemediationAction
from secops.automation.resilience import RetryPolicy
from secops.automation.scheduler import PeriodicScheduler
from secops.automation.sealer import NullSealer, PayloadSealer


@dataclass
class PassResult:
    """Summary of one pass."""
    protocol: str
    cycle: int
    correlation_id: str = ""
    reports: int = 0
    anomalies: int = 0
    recovered: int = 0
    actions_succeeded: int = 0
    actions_failed: int = 0
    exhausted: int = 0
    finalized: bool = False
    aborted: bool = False
    duration_ms: float = 0.0
    outcomes: List[EscalationOutcome] = field(default_factory=list, repr=False)

    def add(self, outcome: EscalationOutcome) -> None:
        self.outcomes.append(outcome)
        if outcome.succeeded:
            self.actions_succeeded += 1
            self.actions_failed += outcome.attempts - 1
        else:
            self.actions_failed += outcome.attempts
        if outcome.exhausted:
            self.exhausted += 1

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["outcomes"] = [
            {**asdict(o), "severity": o.severity.value} for o in self.outcomes
        ]
        return data


class AutomationCycle:
    """
    Periodic security automation for one protocol.

    Example:
        engine = AutomationCycle(get_protocol("phishing_prevention"), authority, ledger)
        engine.start()
        ...
        engine.manual_intervention("0xabc", Severity.ESCALATE)
        engine.stop()

    The escalation table and cycle counter are private to the engine and
    only touched with its lock held. The authority, ledger recorder and
    sealer may be shared between engines.
    """

    def __init__(
        self,
        spec: ProtocolSpec,
        authority: AuthorityClient,
        ledger: LedgerRecorder,
        sealer: Optional[PayloadSealer] = None,
        *,
        config: Optional[AutomationConfig] = None,
        metrics: Optional[MetricsCollector] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
    ):
        self._config = config or get_config()
        self.spec = self._config.resolve_protocol(spec)
        self.authority = authority
        self.sealer = sealer or NullSealer()
        self._metrics = metrics or get_metrics()
        self._sleep = sleep
        self._labels = {"protocol": self.spec.name}
        self._log = get_logger(Component.ENGINE, self.spec.name)

        self._lock = threading.Lock()
        self._table = EscalationTable()
        self._cycle = 0

        self.ledger = LedgerAdapter(
            ledger,
            prefix=self.spec.ledger_prefix,
            event_type=self.spec.event_type,
            failure_type=self.spec.failure_type,
            finalization_type=self.spec.finalization_type,
            clock=clock,
        )
        self.retry_policy = RetryPolicy(max_attempts=self.spec.max_retries)
        self._machine = EscalationMachine(
            self.spec,
            invoke=self._invoke,
            seal=self._seal,
            ledger=self.ledger,
            policy=self.retry_policy,
            log=get_logger(Component.ESCALATION, self.spec.name),
            reset_policy=self.spec.reset_policy or self._config.reset_policy(),
        )
        self._scheduler = PeriodicScheduler(
            self.spec.interval_seconds,
            self.try_run_pass,
            name=f"secops-{self.spec.name}",
        )

    # -- lifecycle --------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._scheduler.running

    @property
    def cycle_count(self) -> int:
        return self._cycle

    @property
    def reset_policy(self) -> CounterResetPolicy:
        return self._machine.reset_policy

    def start(self) -> None:
        """Start periodic passes on a background thread."""
        if self.running:
            return
        self._log.info(
            "Starting automation cycle",
            interval_seconds=self.spec.interval_seconds,
            batch_size=self.spec.batch_size,
        )
        self._scheduler.start()

    def stop(self, timeout: Optional[float] = None) -> bool:
        """Stop periodic passes, letting a pass in progress finish."""
        if timeout is None:
            timeout = self._config.engine.stop_timeout_seconds.get()
        stopped = self._scheduler.stop(timeout)
        self._log.info("Automation cycle stopped", cycles=self._cycle)
        return stopped

    # -- passes -----------------------------------------------------------

    def run_pass(self) -> PassResult:
        """Run one pass, waiting for the engine lock if needed."""
        with self._lock:
            return self._run_pass_locked()

    def try_run_pass(self) -> bool:
        """Run one pass unless the lock is held. Returns False when coalesced."""
        if not self._lock.acquire(blocking=False):
            self._metrics.inc_counter(m.TICKS_COALESCED, labels=self._labels)
            self._log.debug("Tick coalesced, engine busy")
            return False
        try:
            self._run_pass_locked()
        finally:
            self._lock.release()
        return True

    def _run_pass_locked(self) -> PassResult:
        name = self.spec.name
        with correlation_scope("pass") as cid:
            started = time.perf_counter()
            result = PassResult(protocol=name, cycle=self._cycle, correlation_id=cid)

            try:
                reports = self.authority.fetch_reports(name)
                watchlist = (
                    self.authority.fetch_watchlist(name)
                    if self.spec.predicate.needs_watchlist else frozenset()
                )
            except Exception as e:
                result.aborted = True
                self._metrics.inc_counter(m.PASSES_ABORTED, labels=self._labels)
                self._log.error(
                    "Failed to fetch reports, pass aborted",
                    error_code=type(e).__name__,
                    error=str(e),
                )
                return result

            context = DetectionContext(watchlist=frozenset(watchlist))
            result.reports = len(reports)
            for report in reports:
                self._process(report, context, result)

            self._cycle += 1
            result.cycle = self._cycle
            if self._cycle % self.spec.batch_size == 0:
                result.finalized = self._finalize()

            result.duration_ms = (time.perf_counter() - started) * 1000
            self._metrics.inc_counter(m.PASSES_TOTAL, labels=self._labels)
            self._metrics.observe_histogram(m.PASS_DURATION_MS, result.duration_ms, labels=self._labels)
            self._metrics.set_gauge(m.TRACKED_ENTITIES, len(self._table), labels=self._labels)
            if result.anomalies or result.recovered:
                self._log.operation(
                    "pass",
                    result.duration_ms,
                    cycle=result.cycle,
                    reports=result.reports,
                    anomalies=result.anomalies,
                    recovered=result.recovered,
                    exhausted=result.exhausted,
                )
            return result

    def _process(self, report: Report, context: DetectionContext, result: PassResult) -> None:
        key = self.spec.key_extractor(report)
        if key != report.entity_key:
            report = replace(report, entity_key=key)

        if self.spec.predicate.matches(report, context):
            result.anomalies += 1
            self._metrics.inc_counter(m.ANOMALIES_DETECTED, labels=self._labels)
            self._log.debug(
                "Detection matched",
                entity_key=key,
                clauses=self.spec.predicate.matching(report, context),
            )
            outcome = self._machine.on_anomaly(self._table.get_or_create(key), report)
            self._count_outcome(outcome)
            result.add(outcome)
            return

        record = self._table.get(key)
        if record is not None and self._machine.recover(record):
            result.recovered += 1
            self._log.info("Entity recovered", entity_key=key)

    def _count_outcome(self, outcome: EscalationOutcome) -> None:
        if outcome.exhausted:
            self._metrics.inc_counter(m.RETRIES_EXHAUSTED, labels=self._labels)

    # -- authority seams --------------------------------------------------

    def _invoke(self, action: RemediationAction, entity_key: str, payload: bytes) -> bool:
        try:
            ok = bool(self.authority.apply_action(self.spec.name, action.operation, entity_key, payload))
        except Exception as e:
            self._log.warning(
                "Authority action raised",
                entity_key=entity_key,
                action=action.operation,
                error=str(e),
            )
            ok = False
        self._metrics.inc_counter(m.ACTIONS_SUCCEEDED if ok else m.ACTIONS_FAILED, labels=self._labels)
        return ok

    def _seal(self, payload: bytes) -> bytes:
        try:
            return self.sealer.seal(payload)
        except SealingError as e:
            self._metrics.inc_counter(m.SEALING_FALLBACKS, labels=self._labels)
            self._log.warning("Sealing failed, forwarding unsealed payload", error=str(e))
            return payload

    def _finalize(self) -> bool:
        try:
            ok = bool(self.authority.finalize_batch(self.spec.name))
        except Exception as e:
            self._log.warning("Batch finalization raised", cycle=self._cycle, error=str(e))
            ok = False

        if not ok:
            self._metrics.inc_counter(m.FINALIZATION_FAILURES, labels=self._labels)
            self._log.warning("Batch finalization failed", cycle=self._cycle)
            return False

        self.ledger.record_finalization(self._cycle)
        self._metrics.inc_counter(m.FINALIZATIONS, labels=self._labels)
        self._log.info("Batch finalized", cycle=self._cycle)
        return True

    def _lookup(self, entity_key: str) -> Report:
        report = self.authority.get_by_id(self.spec.name, entity_key)
        if report is None:
            raise UnknownEntityError(self.spec.name, entity_key)
        return report

    # -- manual entry points ----------------------------------------------

    def manual_intervention(
        self,
        entity_key: str,
        severity: Union[Severity, str] = Severity.ALERT,
    ) -> EscalationOutcome:
        """
        Apply an alert or escalation to one entity on an administrator's request.

        The action goes through the same retry contract and ledger records as
        an automatic one, but does not count as a violation. EMERGENCY is
        routed to ``emergency_action``.

        Raises:
            UnknownEntityError: The authority does not know the entity.
            UnsupportedOperationError: ALERT on a single-tier protocol.
        """
        severity = Severity(severity)
        if severity is Severity.EMERGENCY:
            return self.emergency_action(entity_key)

        report = self._lookup(entity_key)
        with self._lock, correlation_scope("manual"):
            self._log.info("Manual intervention", entity_key=entity_key, severity=severity.value)
            record = self._table.get_or_create(entity_key)
            outcome = self._machine.remediate(record, report, severity)
            self._count_outcome(outcome)
            return outcome

    def emergency_action(self, entity_key: str) -> EscalationOutcome:
        """
        Apply the protocol's emergency operation to one entity, once.

        The configured cooldown elapses before the engine lock is taken, so
        passes keep running while an emergency is pending. On success the
        entity's escalation record is reset.

        Raises:
            UnsupportedOperationError: The protocol has no emergency operation.
            UnknownEntityError: The authority does not know the entity.
        """
        action = self.spec.action_for(Severity.EMERGENCY)
        report = self._lookup(entity_key)

        cooldown = self.spec.emergency_cooldown_seconds
        if cooldown > 0:
            self._log.info("Emergency action pending cooldown", entity_key=entity_key, cooldown_seconds=cooldown)
            self._sleep(cooldown)

        with self._lock, correlation_scope("emergency"):
            ok = self._invoke(action, entity_key, self._seal(report.payload))
            if not ok:
                self._log.warning("Emergency action failed", entity_key=entity_key, action=action.operation)
                return EscalationOutcome(entity_key, Severity.EMERGENCY, action.operation, False, 1)

            self.ledger.record_action(
                entity_key,
                action.status,
                f"Entity {entity_key}: {action.status} by {action.operation}.",
            )
            record = self._table.get(entity_key)
            if record is not None:
                self._machine.recover(record)
                record.last_action = action.operation
            self._log.warning("Emergency action executed", entity_key=entity_key, operation=action.operation)
            return EscalationOutcome(entity_key, Severity.EMERGENCY, action.operation, True, 1)

    # -- inspection -------------------------------------------------------

    def snapshot(self) -> Dict[str, EscalationRecord]:
        """Copies of every escalation record."""
        with self._lock:
            return self._table.snapshot()

    def record_for(self, entity_key: str) -> Optional[EscalationRecord]:
        with self._lock:
            record = self._table.get(entity_key)
            return replace(record) if record is not None else None

    def stats(self) -> Dict[str, Any]:
        """Engine statistics."""
        labels = self._labels
        return {
            "protocol": self.spec.name,
            "running": self.running,
            "cycle_count": self._cycle,
            "tracked_entities": len(self._table),
            "reset_policy": self.reset_policy.value,
            "passes": self._metrics.counter(m.PASSES_TOTAL, labels),
            "passes_aborted": self._metrics.counter(m.PASSES_ABORTED, labels),
            "ticks_coalesced": self._metrics.counter(m.TICKS_COALESCED, labels),
            "anomalies": self._metrics.counter(m.ANOMALIES_DETECTED, labels),
            "actions_succeeded": self._metrics.counter(m.ACTIONS_SUCCEEDED, labels),
            "actions_failed": self._metrics.counter(m.ACTIONS_FAILED, labels),
            "retries_exhausted": self._metrics.counter(m.RETRIES_EXHAUSTED, labels),
            "sealing_fallbacks": self._metrics.counter(m.SEALING_FALLBACKS, labels),
            "finalizations": self._metrics.counter(m.FINALIZATIONS, labels),
            "finalization_failures": self._metrics.counter(m.FINALIZATION_FAILURES, labels),
            "retry": asdict(self.retry_policy.metrics),
            "scheduler": asdict(self._scheduler.stats),
        }
