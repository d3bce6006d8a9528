"""
SECOPS Automation: Security Automation Cycle Engine

Periodic, ledger-backed security automation for a blockchain network. Every
protocol (phishing prevention, PoS slashing, sanction lists, bandwidth
throttling, ...) is the same engine with a different configuration.

Architecture
────────────

    ┌─────────────────────────────────────────────────────────────────────────┐
    │                        AUTOMATION CYCLE ENGINE                           │
    │                                                                          │
    │  DRIVING                                                                 │
    │    scheduler.py    Fixed-interval ticker, coalesces busy ticks          │
    │    engine.py       Pass body, manual and emergency entry points         │
    │                                                                          │
    │  DECIDING                                                                │
    │    detection.py    Threshold, flag and watchlist clauses (OR)           │
    │    escalation.py   Alert → escalate ladder with bounded retry           │
    │    resilience.py   Immediate, count-bounded retry policy                │
    │    protocols.py    Catalog of protocol configurations                   │
    │                                                                          │
    │  BOUNDARIES                                                              │
    │    authority.py    Consensus authority interface + in-memory adapter    │
    │    ledger.py       Append-only ledger recorders                         │
    │    sealer.py       AES-256-GCM payload sealing                          │
    │                                                                          │
    │  AMBIENT                                                                 │
    │    config.py       YAML + environment configuration                     │
    │    observability.py  Structured logging, correlation IDs                │
    │    metrics.py      Prometheus-style counters                            │
    │    cli.py          secops command line                                  │
    │                                                                          │
    └─────────────────────────────────────────────────────────────────────────┘

Core Concepts
─────────────

    Pass: One scan of the authority's reports for a protocol. A pass holds
    the engine lock from fetch to finalization.

    Escalation ladder: Each anomalous observation bumps an entity's violation
    count. Below the protocol's threshold the entity is alerted, at or above
    it the response is escalated. Each action is retried immediately until it
    succeeds or the retry budget runs out, at which point a single failure
    entry is written.

    Finalization: Every ``batch_size`` passes the authority is asked to close
    out the batch; success is recorded, failure is only logged.

Copyright © 2026 Momentum. All rights reserved.
"""

__version__ = "0.1.0"


# Lazy imports to avoid circular dependencies
def __getattr__(name):
    """Lazy import automation modules on first access."""

    if name in ("AutomationCycle", "PassResult"):
        from secops.automation import engine
        return getattr(engine, name)

    if name in ("ProtocolSpec", "RemediationAction", "CATALOG", "get_protocol", "list_protocols"):
        from secops.automation import protocols
        return getattr(protocols, name)

    if name in ("EscalationState", "EscalationRecord", "EscalationOutcome",
                "CounterResetPolicy", "Severity"):
        from secops.automation import escalation
        return getattr(escalation, name)

    if name in ("AuthorityClient", "InMemoryAuthority", "Report"):
        from secops.automation import authority
        return getattr(authority, name)

    if name in ("LedgerEntry", "LedgerRecorder", "InMemoryLedger", "JsonlLedger"):
        from secops.automation import ledger
        return getattr(ledger, name)

    if name in ("PayloadSealer", "AesGcmSealer", "NullSealer"):
        from secops.automation import sealer
        return getattr(sealer, name)

    if name in ("AnyOf", "Threshold", "Flag", "WatchlistMember"):
        from secops.automation import detection
        return getattr(detection, name)

    if name in ("AutomationError", "AuthorityError", "SealingError", "LedgerError",
                "UnknownEntityError", "UnsupportedOperationError"):
        from secops.automation import errors
        return getattr(errors, name)

    raise AttributeError(f"module 'secops.automation' has no attribute '{name}'")


__all__ = [
    "__version__",
    # Engine
    "AutomationCycle",
    "PassResult",
    # Protocols
    "ProtocolSpec",
    "RemediationAction",
    "CATALOG",
    "get_protocol",
    "list_protocols",
    # Escalation
    "EscalationState",
    "EscalationRecord",
    "EscalationOutcome",
    "CounterResetPolicy",
    "Severity",
    # Boundaries
    "AuthorityClient",
    "InMemoryAuthority",
    "Report",
    "LedgerEntry",
    "LedgerRecorder",
    "InMemoryLedger",
    "JsonlLedger",
    "PayloadSealer",
    "AesGcmSealer",
    "NullSealer",
    # Detection
    "AnyOf",
    "Threshold",
    "Flag",
    "WatchlistMember",
    # Errors
    "AutomationError",
    "AuthorityError",
    "SealingError",
    "LedgerError",
    "UnknownEntityError",
    "UnsupportedOperationError",
]
