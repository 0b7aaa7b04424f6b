"""Chat relay and backend health endpoints.

Streams the backend's NDJSON reply straight through to the client and
translates relay failures into structured JSON error bodies.
"""

import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask

from newton_chat.models.schemas import ChatRequest, ErrorResponse, HealthResponse, HealthStatus
from newton_chat.relay.client import RelayClient, get_relay_client
from newton_chat.relay.config import RelayConfig
from newton_chat.relay.errors import (
    ChatError,
    InvalidRequest,
    UpstreamError,
    UpstreamTimeout,
    UpstreamUnavailable,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["chat"])

NDJSON_MEDIA_TYPE = "application/x-ndjson"
INVALID_REQUEST_MESSAGE = "messages array is required"


def error_body(error: ErrorResponse) -> dict[str, str]:
    return error.model_dump(exclude_none=True)


def _error_response(exc: ChatError, config: RelayConfig) -> JSONResponse:
    """Map a relay failure onto its HTTP status and error body."""
    match exc:
        case InvalidRequest():
            code = status.HTTP_400_BAD_REQUEST
            body = ErrorResponse(error=INVALID_REQUEST_MESSAGE, details=str(exc) or None)
        case UpstreamTimeout():
            code = status.HTTP_504_GATEWAY_TIMEOUT
            body = ErrorResponse(error="Request timeout - Ollama took too long to respond")
        case UpstreamUnavailable():
            code = status.HTTP_503_SERVICE_UNAVAILABLE
            body = ErrorResponse(
                error="Ollama service unavailable",
                details=exc.details or None,
                hint=f"Check if Ollama is running at {config.ollama_url}",
            )
        case UpstreamError():
            code = exc.status
            body = ErrorResponse(
                error=f"Ollama error: {exc.status_text}",
                model=config.model_name,
            )
        case _:
            code = status.HTTP_500_INTERNAL_SERVER_ERROR
            body = ErrorResponse(error=str(exc) or "Chat relay failed")

    return JSONResponse(status_code=code, content=error_body(body))


@router.post(
    "/chat",
    response_model=None,
    response_class=StreamingResponse,
    responses={
        200: {"content": {NDJSON_MEDIA_TYPE: {}}, "description": "Streamed model reply"},
        400: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
        504: {"model": ErrorResponse},
    },
)
async def chat(
    request: ChatRequest,
    relay: RelayClient = Depends(get_relay_client),
) -> StreamingResponse | JSONResponse:
    """Relay a conversation to the model backend and stream its reply.

    Args:
        request: The full conversation history, oldest turn first.
        relay: Backend relay client.

    Returns:
        StreamingResponse carrying the backend's NDJSON body verbatim, or a
        JSON error body when the backend could not produce a stream.
    """
    messages = [message.model_dump(mode="json") for message in request.messages]

    try:
        stream = await relay.relay(messages)
    except ChatError as e:
        return _error_response(e, relay.config)

    logger.info(f"Relaying {len(messages)} messages to {relay.config.model_name}")
    return StreamingResponse(
        stream,
        media_type=NDJSON_MEDIA_TYPE,
        background=BackgroundTask(stream.aclose),
    )


@router.get("/health", response_model=HealthResponse, response_model_exclude_none=True)
async def health(relay: RelayClient = Depends(get_relay_client)) -> JSONResponse:
    """Report whether the model backend is reachable.

    Returns:
        HealthResponse with 200 when healthy, 503 otherwise.
    """
    result = await relay.health()
    code = (
        status.HTTP_200_OK
        if result.status is HealthStatus.HEALTHY
        else status.HTTP_503_SERVICE_UNAVAILABLE
    )
    return JSONResponse(status_code=code, content=result.model_dump(mode="json", exclude_none=True))
