from __future__ import annotations

import time
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Deque


@dataclass(frozen=True)
class DeliverySample:
    ts: float
    transport: str
    latency_ms: float
    success: bool


@dataclass(frozen=True)
class TaskRunSample:
    ts: float
    task: str
    status: str
    duration_ms: float


# In-memory only; delivery history is reconstructed from logs, never persisted.
_delivery_samples: Deque[DeliverySample] = deque(maxlen=5000)
_task_samples: Deque[TaskRunSample] = deque(maxlen=2000)
_counters: dict[str, int] = defaultdict(int)


def record_delivery_attempt(*, transport: str, latency_ms: float, success: bool) -> None:
    # Capture per-transport latency and outcome for the ops surface.
    _delivery_samples.append(
        DeliverySample(
            ts=time.time(),
            transport=transport,
            latency_ms=latency_ms,
            success=success,
        )
    )
    increment_counter(f"delivery_attempts_total.{transport}")
    if not success:
        increment_counter(f"delivery_failures_total.{transport}")


def record_task_run(*, task: str, status: str, duration_ms: float) -> None:
    _task_samples.append(TaskRunSample(ts=time.time(), task=task, status=status, duration_ms=duration_ms))
    increment_counter(f"task_runs_total.{task}.{status}")


def increment_counter(name: str, value: int = 1) -> None:
    _counters[name] += value


def get_counter(name: str) -> int:
    return _counters.get(name, 0)


def _percentile(values: list[float], pct: float) -> float | None:
    if not values:
        return None
    ordered = sorted(values)
    index = min(len(ordered) - 1, max(0, int(round((pct / 100.0) * (len(ordered) - 1)))))
    return ordered[index]


def delivery_summary(window_s: int = 3600) -> dict[str, dict[str, float | int | None]]:
    # Summarize attempts per transport over the window for the ops route.
    cutoff = time.time() - window_s
    grouped: dict[str, list[DeliverySample]] = defaultdict(list)
    for sample in _delivery_samples:
        if sample.ts >= cutoff:
            grouped[sample.transport].append(sample)
    summary: dict[str, dict[str, float | int | None]] = {}
    for transport, samples in grouped.items():
        failures = sum(1 for sample in samples if not sample.success)
        summary[transport] = {
            "attempts": len(samples),
            "failures": failures,
            "p95_latency_ms": _percentile([sample.latency_ms for sample in samples], 95),
        }
    return summary


def counters_snapshot() -> dict[str, int]:
    return dict(_counters)


def reset_telemetry() -> None:
    # Tests reset shared buffers between cases.
    _delivery_samples.clear()
    _task_samples.clear()
    _counters.clear()
