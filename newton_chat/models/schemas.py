from enum import Enum

from pydantic import BaseModel, Field


class Role(str, Enum):
    """Speaker of a conversation turn."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ChatMessage(BaseModel):
    """A single role/content turn as sent to the model backend.

    Attributes:
        role: The speaker (user, assistant, or system).
        content: The message text.
    """

    role: Role
    content: str


class ChatRequest(BaseModel):
    """Request payload for the chat relay endpoint.

    The backend is stateless, so the full history is re-sent on every turn.

    Attributes:
        messages: Ordered conversation turns, oldest first.
    """

    messages: list[ChatMessage] = Field(..., min_length=1)


class ErrorResponse(BaseModel):
    """JSON body returned when a chat request fails.

    Attributes:
        error: Human-readable error summary.
        model: Backend model identifier, when the backend itself failed.
        details: Diagnostic detail (transport error, validation errors).
        hint: Suggested remedy for the operator.
    """

    error: str
    model: str | None = None
    details: str | None = None
    hint: str | None = None


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class BackendStatus(str, Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    UNAVAILABLE = "unavailable"


class HealthResponse(BaseModel):
    """Result of probing the model backend.

    Attributes:
        status: Overall health of the relay.
        ollama: Reachability of the model backend.
        models: Number of models the backend reports, when connected.
        message: Backend status detail when it answered with an error.
        error: Transport error when the backend could not be reached.
    """

    status: HealthStatus
    ollama: BackendStatus
    models: int | None = Field(None, ge=0)
    message: str | None = None
    error: str | None = None
