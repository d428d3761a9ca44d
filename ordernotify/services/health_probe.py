from __future__ import annotations

from dataclasses import dataclass
import logging
import time

import httpx

from ordernotify.domain.models import RunFn


logger = logging.getLogger(__name__)

HEALTH_PROBE_TASK = "health-probe"


@dataclass(frozen=True)
class HealthProbeResult:
    url: str
    reachable: bool
    status_code: int | None
    latency_ms: float
    error: str | None = None


async def probe_health(
    url: str,
    *,
    timeout_s: float,
    client: httpx.AsyncClient | None = None,
) -> HealthProbeResult:
    # One bounded GET; reachability is reported through the log, never raised.
    start = time.monotonic()
    try:
        if client is not None:
            response = await client.get(url, timeout=timeout_s)
        else:
            async with httpx.AsyncClient(timeout=timeout_s) as owned:
                response = await owned.get(url)
    except httpx.HTTPError as exc:
        latency_ms = (time.monotonic() - start) * 1000.0
        result = HealthProbeResult(
            url=url,
            reachable=False,
            status_code=None,
            latency_ms=latency_ms,
            error=str(exc) or exc.__class__.__name__,
        )
        logger.warning("health_probe_failed url=%s latency_ms=%.1f error=%s", url, latency_ms, result.error)
        return result

    latency_ms = (time.monotonic() - start) * 1000.0
    reachable = response.status_code < 400
    result = HealthProbeResult(
        url=url,
        reachable=reachable,
        status_code=response.status_code,
        latency_ms=latency_ms,
        error=None if reachable else f"status {response.status_code}",
    )
    if reachable:
        logger.info("health_probe_ok url=%s status=%s latency_ms=%.1f", url, response.status_code, latency_ms)
    else:
        logger.warning("health_probe_failed url=%s status=%s latency_ms=%.1f", url, response.status_code, latency_ms)
    return result


def make_health_probe(url: str, *, timeout_s: float, client: httpx.AsyncClient | None = None) -> RunFn:
    async def _probe() -> HealthProbeResult:
        return await probe_health(url, timeout_s=timeout_s, client=client)

    return _probe
