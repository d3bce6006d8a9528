"""
Automation Metrics

Prometheus-compatible counters, gauges and histograms for the automation
engines. One collector may be shared by many engines; every series carries a
``protocol`` label.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional, Tuple

# Metric names
PASSES_TOTAL = "passes_total"
PASSES_ABORTED = "passes_aborted_total"
TICKS_COALESCED = "ticks_coalesced_total"
ANOMALIES_DETECTED = "anomalies_detected_total"
ACTIONS_SUCCEEDED = "actions_succeeded_total"
ACTIONS_FAILED = "actions_failed_total"
RETRIES_EXHAUSTED = "retries_exhausted_total"
SEALING_FALLBACKS = "sealing_fallbacks_total"
FINALIZATIONS = "finalizations_total"
FINALIZATION_FAILURES = "finalization_failures_total"
TRACKED_ENTITIES = "tracked_entities"
PASS_DURATION_MS = "pass_duration_ms"

HISTOGRAM_WINDOW = 1000

LabelSet = Tuple[Tuple[str, str], ...]
SeriesKey = Tuple[str, LabelSet]


def _series(name: str, labels: Optional[Dict[str, str]]) -> SeriesKey:
    return name, tuple(sorted((labels or {}).items()))


def _render(name: str, labels: LabelSet) -> str:
    if not labels:
        return name
    return name + "{" + ",".join(f'{k}="{v}"' for k, v in labels) + "}"


@dataclass
class HistogramSeries:
    """Exact count and sum, plus the most recent observations."""
    count: int = 0
    total: float = 0.0
    recent: Deque[float] = field(default_factory=lambda: deque(maxlen=HISTOGRAM_WINDOW))

    def observe(self, value: float) -> None:
        self.count += 1
        self.total += value
        self.recent.append(value)


class MetricsCollector:
    """
    Prometheus-compatible metrics collector.

    Series are keyed by metric name and label set. Histograms keep exact
    totals; only the window of recent observations is bounded.
    """

    def __init__(self, namespace: str = "secops"):
        self.namespace = namespace
        self._counters: Dict[SeriesKey, int] = {}
        self._gauges: Dict[SeriesKey, float] = {}
        self._histograms: Dict[SeriesKey, HistogramSeries] = {}
        self._lock = threading.Lock()

    def inc_counter(self, name: str, value: int = 1, labels: Optional[Dict[str, str]] = None) -> None:
        key = _series(name, labels)
        with self._lock:
            self._counters[key] = self._counters.get(key, 0) + value

    def set_gauge(self, name: str, value: float, labels: Optional[Dict[str, str]] = None) -> None:
        with self._lock:
            self._gauges[_series(name, labels)] = value

    def observe_histogram(self, name: str, value: float, labels: Optional[Dict[str, str]] = None) -> None:
        key = _series(name, labels)
        with self._lock:
            self._histograms.setdefault(key, HistogramSeries()).observe(value)

    def counter(self, name: str, labels: Optional[Dict[str, str]] = None) -> int:
        """Read a counter value (0 if never incremented)."""
        with self._lock:
            return self._counters.get(_series(name, labels), 0)

    def gauge(self, name: str, labels: Optional[Dict[str, str]] = None) -> float:
        with self._lock:
            return self._gauges.get(_series(name, labels), 0.0)

    def recent(self, name: str, labels: Optional[Dict[str, str]] = None) -> List[float]:
        """Most recent histogram observations, oldest first."""
        with self._lock:
            series = self._histograms.get(_series(name, labels))
            return list(series.recent) if series else []

    def to_prometheus(self) -> str:
        """Export metrics in Prometheus text format."""
        ns = self.namespace
        lines: List[str] = []

        with self._lock:
            for (name, labels), value in sorted(self._counters.items()):
                lines.append(f"{_render(f'{ns}_{name}', labels)} {value}")
            for (name, labels), value in sorted(self._gauges.items()):
                lines.append(f"{_render(f'{ns}_{name}', labels)} {value}")
            for (name, labels), series in sorted(self._histograms.items(), key=lambda item: item[0]):
                lines.append(f"{_render(f'{ns}_{name}_count', labels)} {series.count}")
                lines.append(f"{_render(f'{ns}_{name}_sum', labels)} {series.total}")

        return "\n".join(lines)


# Global metrics collector
_default: Optional[MetricsCollector] = None
_default_lock = threading.Lock()


def get_metrics() -> MetricsCollector:
    """Process-wide collector used by engines built without one."""
    global _default
    with _default_lock:
        if _default is None:
            _default = MetricsCollector()
        return _default
