"""Lightweight in-memory metrics (Prometheus text format)."""

from __future__ import annotations

import re
import threading
from typing import Dict, Iterable, List, Optional, Tuple


def _sanitize_label_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\"", "\\\"")


def _format_labels(label_names: List[str], values: Tuple[str, ...]) -> str:
    if not label_names:
        return ""
    parts = [f'{name}="{_sanitize_label_value(val)}"' for name, val in zip(label_names, values)]
    return "{" + ",".join(parts) + "}"


class Counter:
    def __init__(self, name: str, label_names: Optional[Iterable[str]] = None):
        self.name = name
        self.label_names = list(label_names or [])
        self._values: Dict[Tuple[str, ...], float] = {}
        self._lock = threading.Lock()

    def inc(self, labels: Optional[Dict[str, str]] = None, amount: float = 1.0):
        key = self._label_tuple(labels)
        with self._lock:
            self._values[key] = self._values.get(key, 0.0) + float(amount)

    def value(self, labels: Optional[Dict[str, str]] = None) -> float:
        with self._lock:
            return self._values.get(self._label_tuple(labels), 0.0)

    def _label_tuple(self, labels: Optional[Dict[str, str]]) -> Tuple[str, ...]:
        labels = labels or {}
        return tuple(str(labels.get(name, "")) for name in self.label_names)

    def export(self) -> List[str]:
        lines = [f"# TYPE {self.name} counter"]
        with self._lock:
            for label_values, value in self._values.items():
                labels = _format_labels(self.label_names, label_values)
                lines.append(f"{self.name}{labels} {value}")
        return lines

    def reset(self):
        with self._lock:
            self._values.clear()


class MetricsRegistry:
    def __init__(self):
        self.counters: Dict[str, Counter] = {}
        self._lock = threading.Lock()

    def counter(self, name: str, label_names: Optional[Iterable[str]] = None) -> Counter:
        with self._lock:
            if name not in self.counters:
                self.counters[name] = Counter(name, label_names)
            return self.counters[name]

    def export_prometheus(self) -> str:
        lines: List[str] = []
        for metric in list(self.counters.values()):
            lines.extend(metric.export())
        return "\n".join(lines) + "\n"

    def reset(self):
        for metric in self.counters.values():
            metric.reset()


METRICS = MetricsRegistry()

http_requests_total = METRICS.counter("http_requests_total", ["method", "path", "status"])
gate_decisions_total = METRICS.counter("gate_decisions_total", ["reason"])
usage_store_errors_total = METRICS.counter("usage_store_errors_total", ["op"])
usage_increments_total = METRICS.counter("usage_increments_total")
llm_calls_total = METRICS.counter("llm_calls_total", ["phase", "status"])


_ID_RE = re.compile(r"^(?:[0-9a-fA-F-]{8,}|user_[A-Za-z0-9]+)$")


def normalize_path(path: str) -> str:
    """Reduce cardinality by replacing id-like segments with :id."""
    parts = []
    for segment in path.split("/"):
        if not segment:
            continue
        if segment.isdigit() or _ID_RE.match(segment):
            parts.append(":id")
        else:
            parts.append(segment)
    return "/" + "/".join(parts)
