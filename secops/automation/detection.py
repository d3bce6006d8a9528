"""
Detection Predicates

Decide whether a report describes an anomalous entity. The scoring itself is
done by the authority; a predicate only compares the signals it reports.

    Threshold("signal", ">=", 0.15)      anomaly score at or above 15%
    Threshold("reputation", "<", 60)     reputation below warning level
    Flag("is_phishing")                  boolean flag set by the authority
    WatchlistMember("address")           attribute found in the watchlist

AnyOf combines clauses with logical OR: a report is anomalous when any clause
matches.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import operator
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Tuple

from secops.automation.authority import Report

_OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
    "==": operator.eq,
    "!=": operator.ne,
}


@dataclass(frozen=True)
class DetectionContext:
    """Per-pass data shared by all predicates."""
    watchlist: FrozenSet[str] = frozenset()


class Clause(ABC):
    """A single detection condition."""

    @abstractmethod
    def matches(self, report: Report, context: DetectionContext) -> bool:
        ...

    @abstractmethod
    def describe(self) -> str:
        ...


@dataclass(frozen=True)
class Threshold(Clause):
    """Numeric comparison of one report signal against a constant."""
    attribute: Optional[str]
    op: str
    limit: float

    def __post_init__(self):
        if self.op not in _OPERATORS:
            raise ValueError(f"Unknown comparison operator: {self.op}")

    def matches(self, report: Report, context: DetectionContext) -> bool:
        value = report.value(self.attribute)
        if value is None or isinstance(value, bool):
            return False
        try:
            return _OPERATORS[self.op](float(value), self.limit)
        except (TypeError, ValueError):
            return False

    def describe(self) -> str:
        return f"{self.attribute or 'signal'} {self.op} {self.limit}"

    @property
    def key(self) -> str:
        return self.attribute or "signal"

    def with_limit(self, limit: float) -> "Threshold":
        return Threshold(self.attribute, self.op, limit)


@dataclass(frozen=True)
class Flag(Clause):
    """True when a signal is set: boolean True or the integer 1."""
    attribute: Optional[str] = None

    def matches(self, report: Report, context: DetectionContext) -> bool:
        value = report.value(self.attribute)
        if isinstance(value, bool):
            return value
        return isinstance(value, int) and value == 1

    def describe(self) -> str:
        return f"{self.attribute or 'signal'} is set"


@dataclass(frozen=True)
class WatchlistMember(Clause):
    """True when the named attribute (default: the entity key) is on the watchlist."""
    attribute: Optional[str] = None

    def matches(self, report: Report, context: DetectionContext) -> bool:
        value = report.entity_key if self.attribute is None else report.attributes.get(self.attribute)
        return value is not None and str(value) in context.watchlist

    def describe(self) -> str:
        return f"{self.attribute or 'entity_key'} on watchlist"


@dataclass(frozen=True)
class AnyOf:
    """Logical OR over clauses."""
    clauses: Tuple[Clause, ...] = field(default_factory=tuple)

    def __init__(self, *clauses: Clause):
        object.__setattr__(self, "clauses", tuple(clauses))

    def matches(self, report: Report, context: DetectionContext) -> bool:
        return any(c.matches(report, context) for c in self.clauses)

    def matching(self, report: Report, context: DetectionContext) -> List[str]:
        """Descriptions of every clause the report matches."""
        return [c.describe() for c in self.clauses if c.matches(report, context)]

    @property
    def needs_watchlist(self) -> bool:
        return any(isinstance(c, WatchlistMember) for c in self.clauses)

    @property
    def threshold_keys(self) -> List[str]:
        """Attribute names of the numeric clauses (``signal`` for the bare signal)."""
        return [c.key for c in self.clauses if isinstance(c, Threshold)]

    def with_threshold(self, limit: float) -> "AnyOf":
        """Copy with the single Threshold clause moved to a new limit.

        Raises ValueError unless there is exactly one Threshold; predicates
        with several take ``with_limits``.
        """
        keys = self.threshold_keys
        if len(keys) != 1:
            raise ValueError(
                f"a single limit needs exactly one threshold clause, found {len(keys)}"
            )
        return self.with_limits({keys[0]: limit})

    def with_limits(self, limits: Dict[str, float]) -> "AnyOf":
        """Copy with the named Threshold clauses moved to new limits."""
        unknown = sorted(set(limits) - set(self.threshold_keys))
        if unknown:
            raise ValueError(f"no threshold clause on: {', '.join(unknown)}")
        return AnyOf(*(
            c.with_limit(float(limits[c.key])) if isinstance(c, Threshold) and c.key in limits else c
            for c in self.clauses
        ))

    def describe(self) -> str:
        return " OR ".join(c.describe() for c in self.clauses) or "never"
