"""Health check routes for the HTTP API.

``/health`` reports every backend check, ``/ready`` tells a load balancer
whether to send traffic and ``/live`` only proves the process responds.
"""

from typing import Any

from fastapi import APIRouter, Request, Response

from src.core.health import HealthChecker, ServiceStatus
from src.core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["health"])


def _checker(request: Request) -> HealthChecker:
    return request.app.state.health_checker


@router.get("/health")
async def health_check(request: Request, response: Response) -> dict[str, Any]:
    """Full report; 200 only when every service is healthy, 503 otherwise."""
    report = await _checker(request).check_all()
    response.status_code = 200 if report.status == ServiceStatus.HEALTHY else 503

    logger.info(
        "health_check",
        status=report.status.value,
        checks={c.name: c.status.value for c in report.checks},
    )
    return report.to_dict()


@router.get("/ready")
async def readiness_check(request: Request, response: Response) -> dict[str, Any]:
    """200 while healthy or degraded, 503 when any service is down."""
    report = await _checker(request).check_all()
    response.status_code = 200 if report.is_ready else 503
    return {"ready": report.is_ready, "status": report.status.value}


@router.get("/live")
async def liveness_check() -> dict[str, bool]:
    return {"alive": True}
