"""
Health checks for the NewsDesk API.

``/health`` reports the database (required) plus the OpenAI and stock-photo
credentials. Missing credentials only degrade the service: the read API keeps
working, generation or real images do not.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import text

from shared.app_logging.logger import get_logger
from shared.config.settings import get_settings

logger = get_logger("newsdesk.health")


class HealthStatus(Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


# Worst status wins when aggregating.
_SEVERITY = {HealthStatus.HEALTHY: 0, HealthStatus.DEGRADED: 1, HealthStatus.UNHEALTHY: 2}


@dataclass
class HealthCheck:
    """Result of one dependency check."""

    name: str
    status: HealthStatus
    message: str
    response_time_ms: Optional[float] = None
    details: Optional[Dict[str, Any]] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def as_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "message": self.message,
            "response_time_ms": self.response_time_ms,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


class HealthChecker:
    """Runs registered dependency checks and aggregates their status."""

    def __init__(self, service_name: str, session_factory: Optional[Callable[[], Any]] = None):
        self.service_name = service_name
        self.checks: List[Callable[[], HealthCheck]] = []
        self.settings = get_settings()
        self._session_factory = session_factory

    def add_check(self, check_func: Callable[[], HealthCheck]):
        self.checks.append(check_func)

    def _sessions(self):
        if self._session_factory is None:
            from shared.database.session import SessionLocal

            self._session_factory = SessionLocal
        return self._session_factory

    def check_database(self) -> HealthCheck:
        """Round-trip a ``SELECT 1``."""
        started = time.perf_counter()
        try:
            with self._sessions()() as session:
                session.execute(text("SELECT 1"))
        except Exception as e:
            logger.warning(f"Database health check failed: {e}")
            status, message = HealthStatus.UNHEALTHY, f"Database connection failed: {e}"
        else:
            status, message = HealthStatus.HEALTHY, "Database connection successful"
        elapsed_ms = (time.perf_counter() - started) * 1000
        return HealthCheck("database", status, message, response_time_ms=round(elapsed_ms, 2))

    def check_openai(self) -> HealthCheck:
        keys = self.settings.openai.api_keys
        if not keys:
            return HealthCheck("openai", HealthStatus.DEGRADED, "No OpenAI API key configured; generation is disabled")
        return HealthCheck(
            "openai",
            HealthStatus.HEALTHY,
            f"{len(keys)} OpenAI API key(s) configured",
            details={"model": self.settings.openai.model, "fallback_model": self.settings.openai.fallback_model},
        )

    def check_image_provider(self) -> HealthCheck:
        if not self.settings.images.unsplash_access_key:
            return HealthCheck("images", HealthStatus.DEGRADED, "No Unsplash access key; placeholder images only")
        return HealthCheck("images", HealthStatus.HEALTHY, "Stock photo lookup configured")

    def run_all_checks(self) -> Dict[str, Any]:
        results = []
        for check_func in self.checks:
            try:
                results.append(check_func())
            except Exception as e:
                logger.exception(f"Health check {check_func.__name__} raised")
                results.append(
                    HealthCheck(check_func.__name__, HealthStatus.UNHEALTHY, f"Health check raised: {e}")
                )

        overall = max((r.status for r in results), key=_SEVERITY.get, default=HealthStatus.HEALTHY)
        return {
            "service": self.service_name,
            "status": overall.value,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "checks": [r.as_dict() for r in results],
        }


def create_api_health_checker(session_factory: Optional[Callable[[], Any]] = None) -> HealthChecker:
    """Health checker wired with the API's dependency checks."""
    checker = HealthChecker(get_settings().service_name, session_factory=session_factory)
    checker.add_check(checker.check_database)
    checker.add_check(checker.check_openai)
    checker.add_check(checker.check_image_provider)
    return checker
