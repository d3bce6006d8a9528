"""
Automation error hierarchy.

Every error raised by the automation layer derives from AutomationError so
callers can catch the whole family at a process boundary. None of these are
fatal to a running engine: the engine recovers from authority, sealing and
finalization failures locally and records what happened in the ledger.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations


class AutomationError(Exception):
    """Base class for automation errors."""
    pass


class AuthorityError(AutomationError):
    """Raised when the consensus authority cannot be reached or misbehaves."""

    def __init__(self, protocol: str, operation: str, message: str = ""):
        self.protocol = protocol
        self.operation = operation
        super().__init__(message or f"Authority call '{operation}' failed for protocol '{protocol}'")


class SealingError(AutomationError):
    """Raised by a payload sealer when encryption fails."""
    pass


class UnknownEntityError(AutomationError):
    """Raised when a manual operation names an entity the authority does not know."""

    def __init__(self, protocol: str, entity_key: str):
        self.protocol = protocol
        self.entity_key = entity_key
        super().__init__(f"Entity '{entity_key}' not known to protocol '{protocol}'")


class UnsupportedOperationError(AutomationError):
    """Raised when a protocol does not define the requested operation."""

    def __init__(self, protocol: str, operation: str):
        self.protocol = protocol
        self.operation = operation
        super().__init__(f"Protocol '{protocol}' does not support '{operation}'")


class LedgerError(AutomationError):
    """Raised when a ledger backend cannot persist an entry."""
    pass
