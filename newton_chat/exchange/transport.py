"""HTTP transport from the chat client to the relay endpoint.

Opens a streamed ``POST /api/chat`` and hands the body back as raw bytes.
Failures come out as the relay's error taxonomy, recovered from the
status code of the JSON error body or from the httpx exception, so the
exchange controller never handles an httpx error itself.
"""

import logging
from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Protocol

import httpx
from fastapi import status

from newton_chat.relay.client import RelayStream
from newton_chat.relay.config import REQUEST_TIMEOUT
from newton_chat.relay.errors import (
    ChatError,
    InvalidRequest,
    UpstreamError,
    UpstreamTimeout,
    UpstreamUnavailable,
)

logger = logging.getLogger(__name__)


class ChatTransport(Protocol):
    """Anything that can stream a reply for a conversation history."""

    def stream(
        self, messages: list[dict[str, str]]
    ) -> AbstractAsyncContextManager[AsyncIterator[bytes]]: ...


def _error_from_response(response: httpx.Response) -> ChatError:
    """Rebuild the relay failure described by an error response."""
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    error = body.get("error") or response.reason_phrase
    details = body.get("details") or error

    # Only a propagated backend status carries the model name
    if "model" in body:
        return UpstreamError(response.status_code, response.reason_phrase)

    match response.status_code:
        case status.HTTP_400_BAD_REQUEST:
            return InvalidRequest(details)
        case status.HTTP_503_SERVICE_UNAVAILABLE:
            return UpstreamUnavailable(details)
        case status.HTTP_504_GATEWAY_TIMEOUT:
            return UpstreamTimeout(error)
        case code:
            return UpstreamError(code, response.reason_phrase)


class ChatApiTransport:
    """Streams replies from the relay's ``/api/chat`` endpoint."""

    def __init__(
        self,
        base_url: str,
        timeout: float = REQUEST_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    @asynccontextmanager
    async def stream(self, messages: list[dict[str, str]]) -> AsyncGenerator[AsyncIterator[bytes]]:
        """Open a reply stream for the given history.

        Args:
            messages: Full conversation history as role/content dicts.

        Yields:
            The reply body as an async iterator of raw byte chunks.

        Raises:
            ChatError: One of the relay failure kinds, before or during
                iteration.
        """
        async with httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=self._transport,
        ) as client:
            request = client.build_request("POST", "/api/chat", json={"messages": messages})
            try:
                response = await client.send(request, stream=True)
            except httpx.TimeoutException as e:
                raise UpstreamTimeout("Chat request timed out") from e
            except httpx.RequestError as e:
                logger.error(f"Connection to chat API failed: {e}")
                raise UpstreamUnavailable(f"Connection failed: {e}") from e

            body = RelayStream(response)
            try:
                if not response.is_success:
                    await response.aread()
                    raise _error_from_response(response)
                yield body
            finally:
                await body.aclose()
