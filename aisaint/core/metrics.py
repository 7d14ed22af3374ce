"""
In-process counters for the chat backend, exposed at /metrics in the
Prometheus text format.

Every series the service tracks is monotonic (requests, message outcomes,
tier resolutions, absorbed storage failures, generation calls), so only
counters are provided. Each counter has a fixed label set; passing a
different set raises ValueError so a misspelt label fails loudly in tests
instead of quietly opening a new series.
"""

from __future__ import annotations

import re
import threading
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

LabelKey = Tuple[str, ...]


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace("\"", "\\\"")


class Counter:
    def __init__(self, name: str, label_names: Iterable[str] = (), help_text: str = ""):
        self.name = name
        self.label_names = tuple(label_names)
        self.help_text = help_text
        self._series: Dict[LabelKey, int] = {}
        self._lock = threading.Lock()

    def _key(self, labels: Optional[Mapping[str, object]]) -> LabelKey:
        labels = labels or {}
        if set(labels) != set(self.label_names):
            raise ValueError(
                f"{self.name} expects labels {sorted(self.label_names)}, got {sorted(labels)}"
            )
        return tuple(str(labels[name]) for name in self.label_names)

    def inc(self, labels: Optional[Mapping[str, object]] = None, amount: int = 1) -> None:
        if amount < 0:
            raise ValueError("counters only go up")
        key = self._key(labels)
        with self._lock:
            self._series[key] = self._series.get(key, 0) + amount

    def value(self, labels: Optional[Mapping[str, object]] = None) -> int:
        key = self._key(labels)
        with self._lock:
            return self._series.get(key, 0)

    def reset(self) -> None:
        with self._lock:
            self._series.clear()

    def render(self) -> List[str]:
        lines = []
        if self.help_text:
            lines.append(f"# HELP {self.name} {self.help_text}")
        lines.append(f"# TYPE {self.name} counter")
        with self._lock:
            series = sorted(self._series.items())
        for key, count in series:
            if key:
                pairs = ",".join(f'{label}="{_escape(val)}"' for label, val in zip(self.label_names, key))
                lines.append(f"{self.name}{{{pairs}}} {count}")
            else:
                lines.append(f"{self.name} {count}")
        return lines


class MetricsRegistry:
    def __init__(self):
        self._counters: Dict[str, Counter] = {}
        self._lock = threading.Lock()

    def counter(self, name: str, label_names: Iterable[str] = (), help_text: str = "") -> Counter:
        """Get or create a counter. Re-registering a name returns the existing one."""
        with self._lock:
            existing = self._counters.get(name)
            if existing is None:
                existing = self._counters[name] = Counter(name, label_names, help_text)
            return existing

    def export_prometheus(self) -> str:
        with self._lock:
            counters = list(self._counters.values())
        lines: List[str] = []
        for counter in counters:
            lines.extend(counter.render())
        return "\n".join(lines) + "\n"

    def reset(self) -> None:
        with self._lock:
            counters = list(self._counters.values())
        for counter in counters:
            counter.reset()


METRICS = MetricsRegistry()

http_requests_total = METRICS.counter(
    "http_requests_total",
    ["method", "path", "status"],
    "HTTP requests by method, normalized path and status code.",
)
chat_messages_total = METRICS.counter(
    "chat_messages_total",
    ["outcome"],
    "process_message calls by outcome (success or error code).",
)
entitlement_resolutions_total = METRICS.counter(
    "entitlement_resolutions_total",
    ["tier", "source"],
    "Tier resolutions by resulting tier and deciding source.",
)
storage_degraded_total = METRICS.counter(
    "storage_degraded_total",
    ["operation"],
    "Store failures absorbed instead of surfaced, by store operation.",
)
generation_requests_total = METRICS.counter(
    "generation_requests_total",
    ["status"],
    "Text generation attempts by status.",
)


_ID_SEGMENT = re.compile(r"^(\d+|[0-9a-fA-F]{32}|[0-9a-fA-F]{8}(-[0-9a-fA-F]{4}){3}-[0-9a-fA-F]{12})$")


def normalize_path(path: str) -> str:
    """Collapse numeric and uuid path segments to :id to bound label cardinality."""
    segments = [seg for seg in path.split("/") if seg]
    return "/" + "/".join(":id" if _ID_SEGMENT.match(seg) else seg for seg in segments)
