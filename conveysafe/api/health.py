"""Health check endpoints"""

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends

from conveysafe.container import ServiceContainer, get_container

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/")
async def health_check() -> dict[str, Any]:
    """Basic health check endpoint"""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": "ConveySafe Payments API",
        "version": "0.1.0",
    }


@router.get("/ready")
async def readiness_check(container: ServiceContainer = Depends(get_container)) -> dict[str, Any]:
    """Readiness check: stores wired and configuration free of errors"""
    issues = container.settings.validate_configuration()
    checks = {
        "api": "healthy",
        "stores": "healthy",
        "configuration": "unhealthy" if issues["errors"] else "healthy",
    }
    if issues["errors"]:
        logger.error("Configuration errors reported by readiness check", extra={"errors": issues["errors"]})

    return {
        "status": "unhealthy" if "unhealthy" in checks.values() else "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": checks,
        "warnings": issues["warnings"],
    }


@router.get("/live")
async def liveness_check() -> dict[str, str]:
    """Kubernetes liveness probe endpoint"""
    return {"status": "alive"}
