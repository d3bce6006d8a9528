"""
Security Protocol Catalog

Every security automation is the same cycle engine with a different
configuration: what to fetch, how to tell an anomalous report, which two
remediation actions make up the ladder, and what to call things in the
ledger. This module holds those configurations.

    ProtocolSpec        one protocol's configuration
    RemediationAction   authority operation + ledger status on success
    CATALOG             the built-in protocols, keyed by name

Constants (intervals, thresholds, retry limits) follow the values the
network has been running with; any of them can be overridden per protocol
from configuration via ``ProtocolSpec.with_overrides``.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional

from secops.automation.authority import Report
from secops.automation.detection import AnyOf, Flag, Threshold, WatchlistMember
from secops.automation.errors import UnsupportedOperationError
from secops.automation.escalation import CounterResetPolicy, Severity

DEFAULT_BATCH_SIZE = 1000


@dataclass(frozen=True)
class RemediationAction:
    """An authority operation and the ledger status recorded when it succeeds."""
    operation: str
    status: str


def entity_key_of(report: Report) -> str:
    return report.entity_key


@dataclass(frozen=True)
class ProtocolSpec:
    """
    Configuration of one security automation.

    Attributes:
        name: Registry key, also passed to the authority on every call.
        title: Human-readable name.
        predicate: Detection clauses, OR-combined.
        alert: Low-severity action, used below ``escalation_threshold``.
            None makes the ladder single-tier; the threshold must then be 1.
        escalate: High-severity action, used at or above it.
        event_type / failure_type / finalization_type: Ledger entry types.
        emergency: Optional immediate action for the emergency entry point.
        emergency_cooldown_seconds: Delay observed before an emergency action.
    """
    name: str
    title: str
    predicate: AnyOf
    alert: Optional[RemediationAction]
    escalate: RemediationAction
    event_type: str
    failure_type: str
    finalization_type: str
    interval_seconds: float = 10.0
    escalation_threshold: int = 3
    max_retries: int = 3
    batch_size: int = DEFAULT_BATCH_SIZE
    emergency: Optional[RemediationAction] = None
    emergency_cooldown_seconds: float = 0.0
    reset_policy: Optional[CounterResetPolicy] = None
    ledger_prefix: str = ""
    key_extractor: Callable[[Report], str] = field(default=entity_key_of, compare=False, repr=False)

    def __post_init__(self):
        if self.interval_seconds <= 0:
            raise ValueError(f"{self.name}: interval_seconds must be positive")
        if self.escalation_threshold < 1:
            raise ValueError(f"{self.name}: escalation_threshold must be at least 1")
        if self.alert is None and self.escalation_threshold != 1:
            raise ValueError(f"{self.name}: a single-tier protocol escalates on the first violation")
        if self.max_retries < 1:
            raise ValueError(f"{self.name}: max_retries must be at least 1")
        if self.batch_size < 1:
            raise ValueError(f"{self.name}: batch_size must be at least 1")
        if not self.ledger_prefix:
            object.__setattr__(self, "ledger_prefix", self.name.replace("_", "-"))

    def action_for(self, severity: Severity) -> RemediationAction:
        if severity is Severity.ALERT:
            if self.alert is None:
                raise UnsupportedOperationError(self.name, "alert")
            return self.alert
        if severity is Severity.ESCALATE:
            return self.escalate
        if self.emergency is None:
            raise UnsupportedOperationError(self.name, "emergency")
        return self.emergency

    def with_overrides(self, **overrides: Any) -> "ProtocolSpec":
        """
        Copy with configuration overrides applied.

        Recognised keys: interval_seconds, escalation_threshold, max_retries,
        batch_size, emergency_cooldown_seconds, counter_reset_policy,
        detection_limit, detection_limits.

        ``detection_limits`` maps threshold attributes to new limits.
        ``detection_limit`` is shorthand for a predicate with exactly one
        threshold clause. Both raise ValueError for clauses the predicate
        does not have.
        """
        changes: Dict[str, Any] = {}
        for key in ("interval_seconds", "escalation_threshold", "max_retries",
                    "batch_size", "emergency_cooldown_seconds"):
            if overrides.get(key) is not None:
                changes[key] = overrides[key]
        if overrides.get("counter_reset_policy") is not None:
            changes["reset_policy"] = CounterResetPolicy(overrides["counter_reset_policy"])
        if overrides.get("detection_limit") is not None:
            changes["predicate"] = self.predicate.with_threshold(float(overrides["detection_limit"]))
        if overrides.get("detection_limits"):
            predicate = changes.get("predicate", self.predicate)
            changes["predicate"] = predicate.with_limits(overrides["detection_limits"])
        return replace(self, **changes) if changes else self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "title": self.title,
            "detection": self.predicate.describe(),
            "alert": self.alert.operation if self.alert else None,
            "escalate": self.escalate.operation,
            "emergency": self.emergency.operation if self.emergency else None,
            "interval_seconds": self.interval_seconds,
            "escalation_threshold": self.escalation_threshold,
            "max_retries": self.max_retries,
            "batch_size": self.batch_size,
            "event_type": self.event_type,
            "failure_type": self.failure_type,
            "finalization_type": self.finalization_type,
        }


ALERT_ISSUED = "Alert Issued"
RESPONSE_ESCALATED = "Response Escalated"
WARNING_ISSUED = "Warning Issued"
EMERGENCY_LOCKDOWN = "Emergency Locked Down"


def _standard(
    name: str,
    title: str,
    noun: str,
    predicate: AnyOf,
    alert_op: Optional[str],
    escalate_op: str,
    *,
    alert_status: str = ALERT_ISSUED,
    escalate_status: str = RESPONSE_ESCALATED,
    emergency_op: Optional[str] = None,
    emergency: Optional[RemediationAction] = None,
    **kwargs: Any,
) -> ProtocolSpec:
    """Build the common alert/escalate protocol shape; no alert_op means single-tier."""
    if emergency is None and emergency_op:
        emergency = RemediationAction(emergency_op, EMERGENCY_LOCKDOWN)
    return ProtocolSpec(
        name=name,
        title=title,
        predicate=predicate,
        alert=RemediationAction(alert_op, alert_status) if alert_op else None,
        escalate=RemediationAction(escalate_op, escalate_status),
        emergency=emergency,
        event_type=f"{noun} Event",
        failure_type=f"{noun} Failure",
        finalization_type=f"{noun} Cycle Finalization",
        **kwargs,
    )


def _build_catalog() -> Dict[str, ProtocolSpec]:
    specs: List[ProtocolSpec] = [
        _standard(
            "asset_freezing", "Asset Freezing", "Asset Freeze",
            AnyOf(Flag("needs_freezing")),
            None, "freeze_asset",
            escalate_status="Frozen",
            interval_seconds=300.0, escalation_threshold=1,
            emergency=RemediationAction("unfreeze_asset", "Emergency Unfrozen"),
            emergency_cooldown_seconds=10.0,
        ),
        _standard(
            "asset_unfreezing", "Asset Unfreezing", "Asset Unfreeze",
            AnyOf(Flag("needs_unfreezing")),
            None, "unfreeze_asset",
            escalate_status="Unfrozen",
            interval_seconds=300.0, escalation_threshold=1,
        ),
        _standard(
            "bandwidth_throttling", "Bandwidth Throttling", "Bandwidth Throttling",
            AnyOf(Flag()),
            None, "throttle_node",
            escalate_status="Throttled",
            escalation_threshold=1,
            emergency=RemediationAction("unthrottle_node", "Unthrottled"),
        ),
        _standard(
            "privilege_escalation", "Privilege Escalation Prevention", "Privilege Escalation",
            AnyOf(Flag("is_privilege_escalation")),
            "warn_escalation_entity", "block_escalation_entity",
            alert_status=WARNING_ISSUED, escalate_status="Entity Blocked",
        ),
        _standard(
            "phishing_prevention", "Phishing Prevention", "Phishing",
            AnyOf(Flag("is_phishing")),
            "warn_phishing_entity", "block_phishing_entity",
            alert_status=WARNING_ISSUED, escalate_status="Entity Blocked",
            escalation_threshold=5, emergency_op="trigger_emergency_phishing_lockdown",
        ),
        _standard(
            "oracle_data_verification", "Oracle Data Verification", "Oracle Data Verification",
            AnyOf(Threshold("consistency", "<", 90.0), Threshold("response_time", ">", 5.0)),
            "flag_oracle_data", "mark_oracle_data_unreliable",
            alert_status="Data Flagged", escalate_status="Data Unreliable",
            emergency_op="trigger_emergency_data_lockdown",
        ),
        _standard(
            "oracle_access_control", "Oracle Access Control", "Oracle Access",
            AnyOf(Flag("unauthorized")),
            "warn_oracle_entity", "block_entity_from_oracle",
            alert_status=WARNING_ISSUED, escalate_status="Access Blocked",
            emergency_op="trigger_emergency_oracle_access_lockdown",
        ),
        _standard(
            "pos_slashing", "Proof-of-Stake Slashing", "Slashing",
            AnyOf(Flag("misbehaved")),
            "warn_validator", "slash_validator",
            alert_status=WARNING_ISSUED, escalate_status="Slashing Executed",
            emergency_op="trigger_emergency_slashing_lockdown",
        ),
        _standard(
            "validator_performance", "Validator Performance", "Validator Performance",
            AnyOf(Threshold("performance", "<", 70.0)),
            "escalate_performance_violation", "apply_performance_sanction",
            alert_status="Performance Violation Escalated",
            escalate_status="Performance Sanction Applied",
        ),
        _standard(
            "node_reputation", "Node Reputation Tracking", "Reputation",
            AnyOf(Threshold("reputation", "<", 60.0)),
            "warn_node", "suspend_node",
            alert_status=WARNING_ISSUED, escalate_status="Suspended",
            interval_seconds=20.0, emergency=RemediationAction("ban_node", "Emergency Banned"),
        ),
        _standard(
            "transaction_sanction_list", "Transaction Sanction List", "Sanction List",
            AnyOf(WatchlistMember("sender"), WatchlistMember("receiver")),
            "issue_sanction_violation_alert", "escalate_sanction_violation_response",
            interval_seconds=5.0,
        ),
        _standard(
            "transaction_anomaly", "Transaction Anomaly Detection", "Transaction Anomaly",
            AnyOf(Threshold(None, ">=", 0.15), WatchlistMember("address")),
            "issue_transaction_anomaly_alert", "escalate_transaction_anomaly_response",
            interval_seconds=5.0,
        ),
        _standard(
            "transaction_rate_limiting", "Transaction Rate Limiting", "Transaction Rate Limit",
            AnyOf(Threshold("tps", ">", 100.0)),
            "issue_rate_limit_violation_alert", "escalate_rate_limit_violation_response",
            interval_seconds=5.0,
        ),
        _standard(
            "reentrancy_prevention", "Reentrancy Attack Prevention", "Reentrancy",
            AnyOf(Threshold(None, ">=", 0.05)),
            "issue_reentrancy_attack_alert", "escalate_reentrancy_response",
            interval_seconds=5.0, emergency_op="trigger_emergency_reentrancy_lockdown",
        ),
        _standard(
            "token_whitelisting", "Token Whitelisting", "Whitelist",
            AnyOf(Threshold(None, ">=", 0.20)),
            "issue_whitelist_anomaly_alert", "escalate_whitelist_anomaly_response",
            emergency_op="trigger_emergency_whitelist_lockdown",
        ),
        _standard(
            "shard_communication", "Shard Communication Security", "Shard Communication",
            AnyOf(Threshold(None, ">=", 0.25)),
            "issue_shard_communication_anomaly_alert",
            "escalate_shard_communication_anomaly_response",
            emergency_op="trigger_emergency_communication_lockdown",
        ),
        _standard(
            "realtime_anomaly", "Real-Time Anomaly Monitoring", "Anomaly",
            AnyOf(Threshold(None, ">=", 0.15)),
            "issue_anomaly_alert", "escalate_anomaly_response",
            interval_seconds=5.0, emergency_op="trigger_emergency_anomaly_lockdown",
        ),
        _standard(
            "user_behavior_sanction", "User Behavior Sanction", "User Behavior",
            AnyOf(Threshold("behavior_score", ">=", 75.0)),
            "issue_behavior_violation_alert", "escalate_behavior_violation_response",
            interval_seconds=5.0,
        ),
        _standard(
            "insider_threat", "Insider Threat Detection", "Insider Threat",
            AnyOf(Flag("is_insider_threat")),
            "respond_to_insider_threat", "lock_down_node",
            alert_status="Responded", escalate_status="Locked Down",
            interval_seconds=20.0, max_retries=5,
        ),
        _standard(
            "identity_theft", "Identity Theft Detection", "Identity Theft",
            AnyOf(Flag("is_identity_theft")),
            "respond_to_identity_theft", "lock_out_account",
            alert_status="Responded", escalate_status="Locked Out",
            interval_seconds=30.0, max_retries=5,
        ),
        _standard(
            "liquidity_pool_protection", "Liquidity Pool Protection", "Liquidity Pool Protection",
            AnyOf(Flag("under_attack"), Threshold("drain_ratio", ">=", 0.5)),
            "protect_liquidity_pool", "lock_liquidity_pool",
            alert_status="Activated", escalate_status="Locked",
            interval_seconds=20.0, max_retries=5,
            emergency=RemediationAction("trigger_emergency_liquidity_pool_lock", "Emergency Locked"),
        ),
    ]
    return {spec.name: spec for spec in specs}


CATALOG: Dict[str, ProtocolSpec] = _build_catalog()


def get_protocol(name: str) -> ProtocolSpec:
    """Look up a built-in protocol by name."""
    try:
        return CATALOG[name]
    except KeyError:
        raise KeyError(f"Unknown protocol: {name}") from None


def list_protocols() -> List[ProtocolSpec]:
    return [CATALOG[name] for name in sorted(CATALOG)]
