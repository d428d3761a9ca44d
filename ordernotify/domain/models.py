from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable


class TransportKind(str, Enum):
    API = "api"
    SMTP = "smtp"
    FAKE = "fake"


class TaskState(str, Enum):
    RUNNING = "running"
    STOPPED = "stopped"


class TaskRunStatus(str, Enum):
    PENDING = "pending"
    OK = "ok"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class Message:
    # Body is already-rendered HTML; templates live with the caller.
    recipient: str
    subject: str
    html: str
    correlation_id: str | None = None


@dataclass(frozen=True)
class DeliveryOutcome:
    transport: TransportKind | None
    success: bool
    error: str | None = None
    external_id: str | None = None
    # Every transport tried for this message, in order.
    attempted: tuple[TransportKind, ...] = ()
    latency_ms: float | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "transport": self.transport.value if self.transport else None,
            "success": self.success,
            "error": self.error,
            "external_id": self.external_id,
            "attempted": [kind.value for kind in self.attempted],
            "latency_ms": self.latency_ms,
        }


RunFn = Callable[[], Awaitable[Any]]


@dataclass(slots=True)
class BackgroundTask:
    name: str
    interval_s: float
    timeout_s: float
    run_fn: RunFn
    handle: asyncio.Task | None = None
    state: TaskState = TaskState.RUNNING
    last_run_status: TaskRunStatus = TaskRunStatus.PENDING
    last_run_at: datetime | None = None
    last_error: str | None = None
    runs: int = 0
    # Current invocation, tracked so ticks never overlap.
    in_flight: asyncio.Task | None = field(default=None, repr=False)

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state.value,
            "interval_s": self.interval_s,
            "timeout_s": self.timeout_s,
            "last_run_status": self.last_run_status.value,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_error": self.last_error,
            "runs": self.runs,
        }
