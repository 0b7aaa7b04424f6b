"""FastAPI application factory and configuration.

Main application entry point with lifespan management, middleware,
error translation and router registration.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from newton_chat.api.chat import INVALID_REQUEST_MESSAGE, error_body
from newton_chat.api.chat import router as chat_router
from newton_chat.models.schemas import ErrorResponse
from newton_chat.relay.client import close_relay_client

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Manage application startup and shutdown lifecycle.

    Closes the pooled backend HTTP client on shutdown.

    Args:
        app: The FastAPI application instance.

    Yields:
        Control to the application while it runs.
    """
    # Startup
    logger.info("Starting Newton Chat relay...")
    yield
    # Shutdown
    await close_relay_client()
    logger.info("Shutting down Newton Chat relay...")


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed chat payloads as 400 with the validation detail."""
    details = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
        for error in exc.errors()
    )
    logger.warning(f"Rejected invalid request to {request.url.path}: {details}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body(ErrorResponse(error=INVALID_REQUEST_MESSAGE, details=details)),
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    application = FastAPI(
        title="Newton Chat API",
        description=(
            "Streaming relay between the Newton chat client and an Ollama-compatible "
            "model backend. Forwards full conversation history and streams the "
            "model's NDJSON reply back token by token."
        ),
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["*"],
    )

    application.add_exception_handler(RequestValidationError, validation_error_handler)
    application.include_router(chat_router)

    return application


app = create_app()
