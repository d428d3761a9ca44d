from __future__ import annotations

import asyncio
import logging

import httpx
import pytest

from ordernotify.domain.models import TaskRunStatus
from ordernotify.services.health_probe import HEALTH_PROBE_TASK, make_health_probe, probe_health
from ordernotify.services.supervisor import BackgroundTaskSupervisor


def _client(status_code: int) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(lambda _request: httpx.Response(status_code)))


@pytest.mark.asyncio
async def test_probe_reports_reachable_url(caplog) -> None:  # noqa: ANN001
    async with _client(200) as client:
        with caplog.at_level(logging.INFO):
            result = await probe_health("https://shop.example.com/health", timeout_s=1, client=client)

    assert result.reachable is True
    assert result.status_code == 200
    assert "health_probe_ok" in caplog.text


@pytest.mark.asyncio
async def test_probe_reports_network_failure_without_raising() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        result = await probe_health("https://shop.example.com/health", timeout_s=1, client=client)

    assert result.reachable is False
    assert result.status_code is None
    assert "timed out" in (result.error or "")


@pytest.mark.asyncio
async def test_failing_probe_keeps_ticking_every_interval(caplog) -> None:  # noqa: ANN001
    supervisor = BackgroundTaskSupervisor()
    async with _client(503) as client:
        with caplog.at_level(logging.WARNING, logger="ordernotify.services.health_probe"):
            task = supervisor.start(
                HEALTH_PROBE_TASK,
                interval_s=0.1,
                timeout_s=0.5,
                run_fn=make_health_probe("https://shop.example.com/health", timeout_s=0.5, client=client),
                run_immediately=True,
            )
            await asyncio.sleep(0.35)
            supervisor.stop_all()
            await supervisor.wait_idle(timeout_s=1)

    failures = [record for record in caplog.records if record.getMessage().startswith("health_probe_failed")]
    assert len(failures) >= 3
    # Unreachable is a logged outcome, not an error of the tick itself.
    assert task.last_run_status is TaskRunStatus.OK
    assert task.runs >= 3
