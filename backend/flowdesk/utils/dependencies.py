# /flowdesk/utils/dependencies.py

from fastapi import Request, HTTPException

from flowdesk.config.settings import settings
from flowdesk.services.security_service import SecurityService
from flowdesk.utils.lifecycle import FlowServices


def get_flow_services(request: Request) -> FlowServices:
    services = getattr(request.app.state, "flow", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Service is starting up")
    return services


async def verify_metrics_access(request: Request):
    if settings.api_key:
        provided_key = request.headers.get("X-API-KEY")
        if not SecurityService.secrets_match(provided_key, settings.api_key):
            raise HTTPException(status_code=403, detail="Invalid or missing API key")
