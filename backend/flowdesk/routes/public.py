# /flowdesk/routes/public.py

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from datetime import datetime, timezone

from flowdesk.config.settings import settings
from flowdesk.utils.dependencies import get_flow_services, verify_metrics_access
from flowdesk.utils.lifecycle import FlowServices

# This file defines public-facing endpoints that do not require authentication,
# such as health checks and the root endpoint. The /metrics endpoint is
# conditionally protected by an API key.

router = APIRouter()


@router.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "flowdesk WhatsApp Flow endpoint",
        "version": "1.0.0",
        "status": "operational",
        "environment": settings.environment
    }


@router.get("/health", summary="Basic Health Check")
async def health_check():
    """Basic health check for load balancers."""
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc)}


@router.get("/health/live", summary="Liveness Probe")
async def liveness_check():
    """Kubernetes/Docker liveness probe."""
    return {"status": "alive"}


@router.get("/health/ready", summary="Readiness Probe")
async def readiness_check(services: FlowServices = Depends(get_flow_services)):
    """Ready once the private key is loaded and the session sweep is running."""
    details = {
        "encryption": "configured" if services.encryption.is_configured else "not_configured",
        "session_sweep": "running" if services.sessions.running else "stopped",
        "active_sessions": services.sessions.count(),
    }
    if not services.encryption.is_configured or not services.sessions.running:
        return JSONResponse({"status": "not_ready", **details}, status_code=503)
    return {"status": "ready", **details}


@router.get("/metrics", tags=["Monitoring"])
async def metrics(_: bool = Depends(verify_metrics_access)):
    """Secured Prometheus metrics endpoint."""
    return PlainTextResponse(generate_latest(), media_type=CONTENT_TYPE_LATEST)
