"""
In-process metrics with Prometheus text exposition.

Only counters and gauges are needed: request counts, plan denials, and the
live-update stream population.
"""

import re
import threading
from typing import Dict, Iterable, List, Optional, Tuple

LabelValues = Tuple[str, ...]

_ID_SEGMENT = re.compile(r"^(\d+|[0-9a-fA-F]{8}-[0-9a-fA-F-]{27})$")


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


def _format_value(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else repr(value)


class _Metric:
    kind = "untyped"

    def __init__(self, name: str, documentation: str, label_names: Iterable[str] = ()):
        self.name = name
        self.documentation = documentation
        self.label_names = tuple(label_names)
        self._values: Dict[LabelValues, float] = {}
        self._lock = threading.Lock()

    def _key(self, labels: Optional[Dict[str, str]]) -> LabelValues:
        labels = labels or {}
        unknown = set(labels) - set(self.label_names)
        if unknown:
            raise ValueError(f"{self.name}: unknown labels {sorted(unknown)}")
        return tuple(str(labels.get(name, "")) for name in self.label_names)

    def inc(self, labels: Optional[Dict[str, str]] = None, amount: float = 1.0) -> None:
        key = self._key(labels)
        with self._lock:
            self._values[key] = self._values.get(key, 0.0) + amount

    def value(self, labels: Optional[Dict[str, str]] = None) -> float:
        key = self._key(labels)
        with self._lock:
            return self._values.get(key, 0.0)

    def reset(self) -> None:
        with self._lock:
            self._values.clear()

    def samples(self) -> List[str]:
        with self._lock:
            items = sorted(self._values.items())
        lines = []
        for values, value in items:
            if self.label_names:
                pairs = ",".join(f'{n}="{_escape(v)}"' for n, v in zip(self.label_names, values))
                lines.append(f"{self.name}{{{pairs}}} {_format_value(value)}")
            else:
                lines.append(f"{self.name} {_format_value(value)}")
        return lines


class Counter(_Metric):
    kind = "counter"

    def inc(self, labels: Optional[Dict[str, str]] = None, amount: float = 1.0) -> None:
        if amount < 0:
            raise ValueError(f"{self.name}: counters only go up")
        super().inc(labels, amount)


class Gauge(_Metric):
    kind = "gauge"

    def set(self, value: float, labels: Optional[Dict[str, str]] = None) -> None:
        key = self._key(labels)
        with self._lock:
            self._values[key] = float(value)

    def dec(self, labels: Optional[Dict[str, str]] = None, amount: float = 1.0) -> None:
        super().inc(labels, -amount)


class MetricsRegistry:
    def __init__(self):
        self._metrics: Dict[str, _Metric] = {}
        self._lock = threading.Lock()

    def _register(self, cls, name: str, documentation: str, label_names: Iterable[str]):
        with self._lock:
            metric = self._metrics.get(name)
            if metric is None:
                metric = self._metrics[name] = cls(name, documentation, label_names)
            elif not isinstance(metric, cls):
                raise ValueError(f"{name} is already registered as a {metric.kind}")
            return metric

    def counter(self, name: str, documentation: str, label_names: Iterable[str] = ()) -> Counter:
        return self._register(Counter, name, documentation, label_names)

    def gauge(self, name: str, documentation: str, label_names: Iterable[str] = ()) -> Gauge:
        return self._register(Gauge, name, documentation, label_names)

    def export_prometheus(self) -> str:
        lines: List[str] = []
        for metric in list(self._metrics.values()):
            lines.append(f"# HELP {metric.name} {metric.documentation}")
            lines.append(f"# TYPE {metric.name} {metric.kind}")
            lines.extend(metric.samples())
        return "\n".join(lines) + "\n"

    def reset(self) -> None:
        for metric in list(self._metrics.values()):
            metric.reset()


METRICS = MetricsRegistry()

http_requests_total = METRICS.counter(
    "http_requests_total", "HTTP requests by route template", ["method", "path", "status"]
)
http_request_latency_total = METRICS.counter(
    "http_request_latency_total", "HTTP requests by latency bucket", ["path", "bucket"]
)
plan_access_denied_total = METRICS.counter(
    "plan_access_denied_total", "Requests refused by plan gating", ["reason"]
)
sse_connections_total = METRICS.counter("sse_connections_total", "Event streams opened")
sse_events_published_total = METRICS.counter(
    "sse_events_published_total", "Live-update messages published", ["event_type"]
)
sse_events_dropped_total = METRICS.counter(
    "sse_events_dropped_total", "Live-update messages dropped for a full subscriber queue"
)
sse_active_connections = METRICS.gauge("sse_active_connections", "Event streams currently open")


def normalize_path(path: str) -> str:
    """Collapse numeric and UUID segments to :id to bound label cardinality."""
    segments = [s for s in path.split("/") if s]
    return "/" + "/".join(":id" if _ID_SEGMENT.match(s) else s for s in segments)
