"""Pydantic models for API requests and responses.

Provides type safety, validation, and automatic OpenAPI documentation.

Models:
    - Role: Closed set of conversation speakers
    - ChatMessage: Individual role/content turn
    - ChatRequest: Incoming relay request payload
    - ErrorResponse: Structured failure body
    - HealthResponse: Backend reachability report
"""

from newton_chat.models.schemas import (
    BackendStatus,
    ChatMessage,
    ChatRequest,
    ErrorResponse,
    HealthResponse,
    HealthStatus,
    Role,
)

__all__ = [
    "BackendStatus",
    "ChatMessage",
    "ChatRequest",
    "ErrorResponse",
    "HealthResponse",
    "HealthStatus",
    "Role",
]
