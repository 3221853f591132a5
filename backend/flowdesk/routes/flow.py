# /flowdesk/routes/flow.py

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError

from flowdesk.config import strings
from flowdesk.config.settings import settings
from flowdesk.models.flow import EncryptedFlowRequest, ErrorCode, FlowRequest, FlowResponse
from flowdesk.services.encryption_service import FlowConfigurationError, FlowDecryptionError
from flowdesk.utils.dependencies import get_flow_services
from flowdesk.utils.lifecycle import FlowServices
from flowdesk.utils.metrics import decryption_failures_counter
from flowdesk.utils.rate_limiter import limiter

# This file defines the WhatsApp Flow data endpoint. It only deals with the
# envelope: decrypt, hand the request to the flow engine, encrypt the answer.
# The handler is synchronous so FastAPI runs each request on its own worker
# thread; the engine and stores do their own locking.

router = APIRouter(
    tags=["Flow"]
)

log = structlog.get_logger(__name__)

# WhatsApp refreshes the business public key when the endpoint answers 421.
DECRYPTION_FAILED_STATUS = 421


@router.post("/endpoint", response_class=PlainTextResponse)
@limiter.limit(f"{settings.rate_limit_per_minute}/minute")
def handle_flow_request(
    request: Request,
    envelope: EncryptedFlowRequest,
    services: FlowServices = Depends(get_flow_services),
):
    """Encrypted WhatsApp Flow data exchange."""
    try:
        decrypted = services.encryption.decrypt_request(
            envelope.encrypted_flow_data,
            envelope.encrypted_aes_key,
            envelope.initial_vector,
        )
    except FlowConfigurationError:
        log.error("Flow request received but encryption is not configured.")
        raise HTTPException(status_code=500, detail="Flow encryption is not configured")
    except FlowDecryptionError:
        decryption_failures_counter.inc()
        raise HTTPException(status_code=DECRYPTION_FAILED_STATUS, detail="Failed to decrypt request")

    try:
        flow_request = FlowRequest.model_validate(decrypted.payload)
    except ValidationError:
        log.warning("Decrypted flow payload is malformed.")
        response = FlowResponse(error_message=strings.INVALID_REQUEST, data={"error_code": ErrorCode.INVALID_REQUEST.value})
    else:
        try:
            response = services.engine.dispatch(flow_request)
        except Exception:
            log.exception("Unhandled error while processing flow request.", action=flow_request.action)
            response = FlowResponse(error_message=strings.INTERNAL_ERROR, data={"error_code": ErrorCode.INTERNAL_ERROR.value})

    body = services.encryption.encrypt_response(
        response.to_payload(),
        decrypted.aes_key,
        decrypted.initial_vector,
    )
    return PlainTextResponse(body, media_type="text/plain")
