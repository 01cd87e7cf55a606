from __future__ import annotations

from collections import defaultdict, deque
from threading import Lock
from time import perf_counter
from typing import Awaitable, Callable

METRIC_PREFIX = "learning_streak"

Labels = tuple[tuple[str, str], ...]


def _labels(labels: dict[str, str]) -> Labels:
    return tuple(sorted((key, str(value)) for key, value in labels.items()))


def _render_labels(labels: Labels, **extra: str) -> str:
    pairs = list(labels) + sorted(extra.items())
    if not pairs:
        return ""
    return "{" + ",".join(f'{key}="{value}"' for key, value in pairs) + "}"


class MetricsStore:
    """Labelled counters and latency windows, e.g.
    ``streak_transitions_total{transition="reset"}`` or
    ``dependency_latency{dependency="upstash"}``.
    """

    def __init__(self, max_samples: int = 500) -> None:
        self._max_samples = max_samples
        self._lock = Lock()
        self._counters: dict[str, dict[Labels, int]] = defaultdict(lambda: defaultdict(int))
        self._latencies: dict[str, dict[Labels, deque[float]]] = defaultdict(dict)

    def inc(self, family: str, value: int = 1, **labels: str) -> None:
        with self._lock:
            self._counters[family][_labels(labels)] += value

    def observe_ms(self, family: str, value_ms: float, **labels: str) -> None:
        key = _labels(labels)
        with self._lock:
            window = self._latencies[family].setdefault(key, deque(maxlen=self._max_samples))
            window.append(max(0.0, float(value_ms)))

    def counter(self, family: str, **labels: str) -> int:
        with self._lock:
            return self._counters.get(family, {}).get(_labels(labels), 0)

    def percentile_ms(self, family: str, percentile: float, **labels: str) -> float:
        with self._lock:
            samples = sorted(self._latencies.get(family, {}).get(_labels(labels), ()))
        return _nearest_rank(samples, percentile)

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._latencies.clear()

    def render_prometheus(self) -> str:
        with self._lock:
            counters = {family: dict(series) for family, series in self._counters.items()}
            latencies = {
                family: {labels: sorted(window) for labels, window in series.items()}
                for family, series in self._latencies.items()
            }

        lines: list[str] = []
        for family in sorted(counters):
            name = f"{METRIC_PREFIX}_{family}"
            lines.append(f"# TYPE {name} counter")
            for labels, value in sorted(counters[family].items()):
                lines.append(f"{name}{_render_labels(labels)} {value}")

        for family in sorted(latencies):
            name = f"{METRIC_PREFIX}_{family}_milliseconds"
            lines.append(f"# TYPE {name} summary")
            for labels, samples in sorted(latencies[family].items()):
                for quantile in ("0.5", "0.95"):
                    value = _nearest_rank(samples, float(quantile) * 100)
                    lines.append(f"{name}{_render_labels(labels, quantile=quantile)} {value:.3f}")
                lines.append(f"{name}_count{_render_labels(labels)} {len(samples)}")

        return "\n".join(lines) + "\n"


def _nearest_rank(samples: list[float], percentile: float) -> float:
    if not samples:
        return 0.0
    idx = round((percentile / 100) * (len(samples) - 1))
    return float(samples[min(max(idx, 0), len(samples) - 1)])


metrics = MetricsStore()


async def record_dependency_call_async(dependency: str, call: Callable[[], Awaitable[object]]) -> object:
    """Time a Supabase/Upstash call; exceptions and 4xx/5xx count as failures."""
    start = perf_counter()
    try:
        result = await call()
    except Exception:
        metrics.inc("dependency_failures_total", dependency=dependency)
        raise
    finally:
        metrics.observe_ms("dependency_latency", (perf_counter() - start) * 1000, dependency=dependency)

    status_code = getattr(result, "status_code", None)
    if isinstance(status_code, int) and status_code >= 400:
        metrics.inc("dependency_failures_total", dependency=dependency)
    return result
