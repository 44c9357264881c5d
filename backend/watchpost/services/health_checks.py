"""
Health Checks
=============

Per-component checks and the overall health reduction.

Components:
- database: trivial store round trip, slow responses are degraded
- authentication: token round trip plus a read of the security-state table
- api: GET probes against the configured endpoints

Overall health weights each component (healthy=3, degraded=2, unhealthy=1)
and reduces the sum:

    9        healthy
    6 - 8    degraded
    < 6      unhealthy
"""

import asyncio
import time
from typing import Awaitable, Callable, List, Optional

import httpx

from watchpost.core.config import Settings, get_settings
from watchpost.core.enums import HealthStatus
from watchpost.core.logging import get_logger
from watchpost.core.security import create_access_token, decode_access_token
from watchpost.db.store import EventStore
from watchpost.schemas.monitoring import ComponentHealth

logger = get_logger(__name__)

HEALTH_WEIGHTS = {
    HealthStatus.HEALTHY: 3,
    HealthStatus.DEGRADED: 2,
    HealthStatus.UNHEALTHY: 1,
}

HEALTHY_SCORE = 9
DEGRADED_SCORE = 6

HEALTH_PROBE_SUBJECT = "watchpost-health-probe"


def determine_overall_health(
    database: HealthStatus,
    authentication: HealthStatus,
    api: HealthStatus,
) -> HealthStatus:
    """Reduce three component statuses to one. Order of arguments does not matter."""
    score = sum(HEALTH_WEIGHTS[status] for status in (database, authentication, api))
    if score == HEALTHY_SCORE:
        return HealthStatus.HEALTHY
    if score >= DEGRADED_SCORE:
        return HealthStatus.DEGRADED
    return HealthStatus.UNHEALTHY


class HealthChecker:
    """
    Runs the component checks, each bounded by ``HEALTH_CHECK_TIMEOUT_SECONDS``.

    Args:
        store: Store probed by the database and authentication checks
        settings: Settings override
        transport: Optional httpx transport for the API probes
    """

    def __init__(
        self,
        store: EventStore,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.store = store
        self.settings = settings or get_settings()
        self._transport = transport
        self.last_database_latency_ms: Optional[float] = None

    async def _bounded(self, component: str, check: Callable[[], Awaitable[HealthStatus]]) -> HealthStatus:
        try:
            return await asyncio.wait_for(check(), timeout=self.settings.HEALTH_CHECK_TIMEOUT_SECONDS)
        except asyncio.TimeoutError:
            logger.warning(
                "health_check_timeout",
                component=component,
                timeout_seconds=self.settings.HEALTH_CHECK_TIMEOUT_SECONDS,
            )
            return HealthStatus.UNHEALTHY
        except Exception as e:
            logger.error("health_check_error", component=component, error=str(e), error_type=type(e).__name__)
            return HealthStatus.UNHEALTHY

    # =====================================
    # Component Checks
    # =====================================

    async def _database(self) -> HealthStatus:
        started = time.perf_counter()
        await self.store.ping()
        elapsed_ms = (time.perf_counter() - started) * 1000
        self.last_database_latency_ms = elapsed_ms

        if elapsed_ms > self.settings.HEALTH_SLOW_RESPONSE_MS:
            logger.warning("database_slow_response", elapsed_ms=round(elapsed_ms, 2))
            return HealthStatus.DEGRADED
        return HealthStatus.HEALTHY

    async def _authentication(self) -> HealthStatus:
        token = create_access_token(HEALTH_PROBE_SUBJECT, settings=self.settings)
        principal = decode_access_token(token, settings=self.settings)
        if principal.subject != HEALTH_PROBE_SUBJECT:
            return HealthStatus.UNHEALTHY
        await self.store.query("user_security", limit=1)
        return HealthStatus.HEALTHY

    async def _probe(self, client: httpx.AsyncClient, url: str) -> bool:
        try:
            response = await client.get(url)
        except httpx.HTTPError as e:
            logger.warning("api_probe_failed", url=url, error=str(e))
            return False
        if response.status_code >= 500:
            logger.warning("api_probe_failed", url=url, status_code=response.status_code)
            return False
        return True

    async def _api(self) -> HealthStatus:
        endpoints: List[str] = list(self.settings.HEALTH_API_ENDPOINTS)
        if not endpoints:
            return HealthStatus.HEALTHY

        async with httpx.AsyncClient(
            timeout=self.settings.HEALTH_CHECK_TIMEOUT_SECONDS,
            transport=self._transport,
        ) as client:
            results = await asyncio.gather(*(self._probe(client, url) for url in endpoints))

        succeeded = sum(results)
        if succeeded == len(endpoints):
            return HealthStatus.HEALTHY
        if succeeded * 2 < len(endpoints):
            return HealthStatus.UNHEALTHY
        return HealthStatus.DEGRADED

    async def check_database_health(self) -> HealthStatus:
        return await self._bounded("database", self._database)

    async def check_authentication_health(self) -> HealthStatus:
        return await self._bounded("authentication", self._authentication)

    async def check_api_health(self) -> HealthStatus:
        return await self._bounded("api", self._api)

    async def check_components(self) -> ComponentHealth:
        """Run the three checks concurrently."""
        database, authentication, api = await asyncio.gather(
            self.check_database_health(),
            self.check_authentication_health(),
            self.check_api_health(),
        )
        return ComponentHealth(database=database, authentication=authentication, api=api)
