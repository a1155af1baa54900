"""
Health and readiness check utilities for the ledger service.
"""

from enum import Enum
from typing import Dict, List, Optional, Callable, Any
from datetime import datetime
from fastapi import FastAPI, Response
from pydantic import BaseModel, Field
from .logging import get_logger

logger = get_logger(__name__)


class HealthStatus(str, Enum):
    """Health check status."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class ComponentHealth(BaseModel):
    """Health status of a single component."""
    name: str
    status: HealthStatus
    message: Optional[str] = None
    last_check: Optional[datetime] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ServiceHealth(BaseModel):
    """Overall service health status."""
    service: str
    status: HealthStatus
    timestamp: datetime
    components: List[ComponentHealth]
    version: str = "1.0.0"


class HealthChecker:
    """Manages health checks for a service."""

    def __init__(self, service_name: str):
        self.service_name = service_name
        self.checks: Dict[str, Callable[[], ComponentHealth]] = {}
        self.last_results: Dict[str, ComponentHealth] = {}

    def register_check(self, name: str, check_func: Callable[[], ComponentHealth]):
        """Register a health check function."""
        self.checks[name] = check_func
        logger.info(f"Registered health check: {name}")

    def check_health(self) -> ServiceHealth:
        """Run all health checks and return overall status."""
        components = []
        overall_status = HealthStatus.HEALTHY

        for name, check_func in self.checks.items():
            try:
                result = check_func()
                result.last_check = datetime.utcnow()
                self.last_results[name] = result
                components.append(result)

                if result.status == HealthStatus.UNHEALTHY:
                    overall_status = HealthStatus.UNHEALTHY
                elif result.status == HealthStatus.DEGRADED and overall_status == HealthStatus.HEALTHY:
                    overall_status = HealthStatus.DEGRADED

            except Exception as e:
                logger.error(f"Health check failed for {name}: {e}")
                error_result = ComponentHealth(
                    name=name,
                    status=HealthStatus.UNHEALTHY,
                    message=f"Check failed: {str(e)}",
                    last_check=datetime.utcnow()
                )
                components.append(error_result)
                overall_status = HealthStatus.UNHEALTHY

        return ServiceHealth(
            service=self.service_name,
            status=overall_status,
            timestamp=datetime.utcnow(),
            components=components
        )

    def is_ready(self) -> bool:
        """Check if service is ready to handle requests."""
        health = self.check_health()
        return health.status != HealthStatus.UNHEALTHY


def create_health_endpoints(app: FastAPI, health_checker: HealthChecker):
    """Add health and readiness endpoints to FastAPI app."""

    @app.get("/healthz")
    async def health_check() -> ServiceHealth:
        """Detailed component health."""
        return health_checker.check_health()

    @app.get("/ready")
    async def readiness_check(response: Response):
        """Readiness check endpoint."""
        if health_checker.is_ready():
            return {"status": "ready"}
        else:
            response.status_code = 503
            return {"status": "not ready"}


# Common health check functions

def ledger_solvency_check(ledger) -> ComponentHealth:
    """Custody must hold at least the collateral of every unresolved loan."""
    held = ledger.native.balance_of(ledger.custody_account)
    locked = ledger.outstanding_collateral()
    metadata = {"collateral_held": held, "outstanding_collateral": locked}

    if held < locked:
        return ComponentHealth(
            name="ledger_solvency",
            status=HealthStatus.UNHEALTHY,
            message=f"Custody holds {held}, loans lock {locked}",
            metadata=metadata
        )
    return ComponentHealth(
        name="ledger_solvency",
        status=HealthStatus.HEALTHY,
        message="Collateral fully covered",
        metadata=metadata
    )


def expired_loans_check(ledger) -> ComponentHealth:
    """Degraded while expired loans wait for a collateral claim."""
    expired = ledger.expired_loans()
    if expired:
        return ComponentHealth(
            name="expired_loans",
            status=HealthStatus.DEGRADED,
            message=f"{len(expired)} loans awaiting collateral claim",
            metadata={"borrowers": [view.borrower for view in expired]}
        )
    return ComponentHealth(name="expired_loans", status=HealthStatus.HEALTHY)
