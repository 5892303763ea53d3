"""In-process admission counters (Prometheus text format)."""

from __future__ import annotations

import re
import threading
from typing import Dict, Iterable, List, Optional, Tuple


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\"", "\\\"")


class Counter:
    def __init__(self, name: str, label_names: Optional[Iterable[str]] = None, help_text: str = ""):
        self.name = name
        self.help_text = help_text
        self.label_names = list(label_names or [])
        self._values: Dict[Tuple[str, ...], float] = {}
        self._lock = threading.Lock()

    def inc(self, labels: Optional[Dict[str, str]] = None, amount: float = 1.0):
        key = tuple(str((labels or {}).get(name, "")) for name in self.label_names)
        with self._lock:
            self._values[key] = self._values.get(key, 0.0) + float(amount)

    def value(self, labels: Optional[Dict[str, str]] = None) -> float:
        key = tuple(str((labels or {}).get(name, "")) for name in self.label_names)
        with self._lock:
            return self._values.get(key, 0.0)

    def export(self) -> List[str]:
        lines = []
        if self.help_text:
            lines.append(f"# HELP {self.name} {self.help_text}")
        lines.append(f"# TYPE {self.name} counter")
        with self._lock:
            for label_values, value in sorted(self._values.items()):
                if self.label_names:
                    rendered = ",".join(
                        f'{name}="{_escape(val)}"' for name, val in zip(self.label_names, label_values)
                    )
                    lines.append(f"{self.name}{{{rendered}}} {value}")
                else:
                    lines.append(f"{self.name} {value}")
        return lines

    def reset(self):
        with self._lock:
            self._values.clear()


class MetricsRegistry:
    def __init__(self):
        self.counters: Dict[str, Counter] = {}
        self._lock = threading.Lock()

    def counter(self, name: str, label_names: Optional[Iterable[str]] = None, help_text: str = "") -> Counter:
        with self._lock:
            if name not in self.counters:
                self.counters[name] = Counter(name, label_names, help_text)
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

http_requests_total = METRICS.counter(
    "http_requests_total", ["method", "path", "status"], "HTTP requests by route and status"
)
admission_rejections_total = METRICS.counter(
    "admission_rejections_total", ["code"], "Requests rejected by the admission pipeline"
)
routing_decisions_total = METRICS.counter(
    "routing_decisions_total", ["capability", "routed"], "Capabilities selected for admitted requests"
)
ratelimit_block_total = METRICS.counter(
    "ratelimit_block_total", ["plan"], "Requests refused by the fixed-window limiter"
)


_ID_RE = re.compile(r"^[0-9a-fA-F-]{8,}$")


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
