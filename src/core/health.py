"""Service health reporting for the site backend.

Each backend collaborator (tables, storage, auth) registers an async check.
``HealthChecker.check_all`` runs them concurrently and folds the results into
one report served by the ``/health`` and ``/ready`` routes.

Example:
    checker = HealthChecker(version="1.0.0")
    checker.add_check("tables", table_store_check(backend.tables))
    report = await checker.check_all()
"""

import asyncio
import time
from collections.abc import Callable, Coroutine
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from src.core.logging import get_logger
from src.ports.backend import TableStore

logger = get_logger(__name__)

DEFAULT_CHECK_TIMEOUT = 10.0


class ServiceStatus(Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    DEGRADED = "degraded"
    UNKNOWN = "unknown"


# Higher is worse; the report takes the worst status of its checks
_SEVERITY = {
    ServiceStatus.HEALTHY: 0,
    ServiceStatus.UNKNOWN: 1,
    ServiceStatus.DEGRADED: 2,
    ServiceStatus.UNHEALTHY: 3,
}


@dataclass
class ServiceCheck:
    """Result of one service check."""

    name: str
    status: ServiceStatus
    latency_ms: float | None = None
    message: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {**asdict(self), "status": self.status.value}


@dataclass
class HealthReport:
    """Aggregated result of every registered check."""

    status: ServiceStatus
    timestamp: str
    checks: list[ServiceCheck]
    version: str | None = None

    @property
    def is_ready(self) -> bool:
        return self.status in (ServiceStatus.HEALTHY, ServiceStatus.DEGRADED)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "timestamp": self.timestamp,
            "version": self.version,
            "checks": [check.to_dict() for check in self.checks],
        }


HealthCheckFunc = Callable[[], Coroutine[Any, Any, ServiceCheck]]


def overall_status(checks: list[ServiceCheck]) -> ServiceStatus:
    """Worst status wins; an empty list is healthy."""
    return max(
        (check.status for check in checks),
        key=_SEVERITY.__getitem__,
        default=ServiceStatus.HEALTHY,
    )


class HealthChecker:
    """Registry of named async service checks."""

    def __init__(self, version: str | None = None, timeout: float = DEFAULT_CHECK_TIMEOUT):
        self._version = version
        self._timeout = timeout
        self._registry: dict[str, HealthCheckFunc] = {}

    @property
    def names(self) -> list[str]:
        return list(self._registry)

    def add_check(self, name: str, check_func: HealthCheckFunc) -> None:
        self._registry[name] = check_func

    def remove_check(self, name: str) -> None:
        self._registry.pop(name, None)

    async def check_one(self, name: str) -> ServiceCheck:
        """Run one check, converting timeouts and exceptions to UNHEALTHY.

        Raises:
            KeyError: If no check is registered under ``name``.
        """
        check_func = self._registry.get(name)
        if check_func is None:
            raise KeyError(f"No health check registered for: {name}")

        started = time.perf_counter()
        try:
            result = await asyncio.wait_for(check_func(), timeout=self._timeout)
        except TimeoutError:
            return _unhealthy(name, "Health check timed out", started)
        except Exception as ex:
            logger.warning("health_check_failed", check=name, error=str(ex))
            return _unhealthy(name, str(ex), started)

        if result.latency_ms is None:
            result.latency_ms = _elapsed_ms(started)
        return result

    async def check_all(self) -> HealthReport:
        checks = list(await asyncio.gather(*map(self.check_one, self._registry)))
        return HealthReport(
            status=overall_status(checks),
            timestamp=datetime.now(UTC).isoformat(),
            checks=checks,
            version=self._version,
        )


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


def _unhealthy(name: str, message: str, started: float) -> ServiceCheck:
    return ServiceCheck(
        name=name,
        status=ServiceStatus.UNHEALTHY,
        latency_ms=_elapsed_ms(started),
        message=message,
    )


def table_store_check(store: TableStore, table: str = "roles") -> HealthCheckFunc:
    """Check that reads against ``table`` succeed.

    An empty ``roles`` table means nobody can be authorized, so it is
    reported as degraded.
    """

    async def check() -> ServiceCheck:
        rows = await store.select(table, limit=1)
        if not rows:
            return ServiceCheck(
                name="tables",
                status=ServiceStatus.DEGRADED,
                message=f"Table '{table}' is empty",
            )
        return ServiceCheck(name="tables", status=ServiceStatus.HEALTHY, message="Connected")

    return check
