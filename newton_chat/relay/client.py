"""Relay client forwarding conversations to the model backend.

The backend is stateless per request: every turn re-sends the whole
history with ``stream: true`` and answers with a chunked NDJSON body. The
relay does not interpret that body; it hands it back as a byte stream that
the HTTP layer copies through chunk by chunk, so memory stays constant
regardless of reply length.

Failure translation happens here. Callers only ever see
:class:`~newton_chat.relay.errors.ChatError` subclasses:

- empty or non-list input -> ``InvalidRequest`` (no network call made)
- no response headers within the deadline -> ``UpstreamTimeout``
- non-2xx status -> ``UpstreamError`` (body is never streamed)
- refused, DNS failure, reset mid-stream -> ``UpstreamUnavailable``
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Mapping, Sequence
from typing import Any

import httpx

from newton_chat.models.schemas import BackendStatus, HealthResponse, HealthStatus
from newton_chat.relay.config import RelayConfig, get_relay_config
from newton_chat.relay.errors import (
    InvalidRequest,
    UpstreamError,
    UpstreamTimeout,
    UpstreamUnavailable,
)

logger = logging.getLogger(__name__)


class RelayStream:
    """Backend response body exposed as a one-shot async byte stream.

    Iterating yields body chunks as they arrive. The stream closes its
    response when exhausted, on error, or when :meth:`aclose` is called,
    which is also how an in-flight read is abandoned.
    """

    def __init__(self, response: httpx.Response) -> None:
        self._response = response

    @property
    def status_code(self) -> int:
        return self._response.status_code

    @property
    def closed(self) -> bool:
        return self._response.is_closed

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._iter_chunks()

    async def _iter_chunks(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._response.aiter_bytes():
                yield chunk
        except httpx.TimeoutException as e:
            logger.error(f"Stream stalled: {e}")
            raise UpstreamTimeout("Backend stopped sending data") from e
        except (httpx.RequestError, httpx.StreamError) as e:
            logger.error(f"Stream interrupted: {e}")
            raise UpstreamUnavailable(str(e) or type(e).__name__) from e
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if not self._response.is_closed:
            await self._response.aclose()


class RelayClient:
    """Forwards chat requests to the backend over a pooled HTTP client."""

    def __init__(
        self,
        config: RelayConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the relay client.

        Args:
            config: Optional relay configuration.
                    Loads from environment if not provided.
            transport: Optional httpx transport, mainly for tests.
        """
        self._config = config or get_relay_config()
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(self._config.timeout),
            transport=transport,
        )

    @property
    def config(self) -> RelayConfig:
        return self._config

    async def relay(self, messages: Sequence[Mapping[str, Any]]) -> RelayStream:
        """Send a conversation to the backend and return its streamed body.

        Args:
            messages: Ordered ``{role, content}`` turns, oldest first.

        Returns:
            A RelayStream over the backend's NDJSON bytes.

        Raises:
            InvalidRequest: If ``messages`` is not a non-empty list.
            UpstreamTimeout: If no response arrives within the deadline.
            UpstreamError: If the backend answers with a non-success status.
            UpstreamUnavailable: If the backend cannot be reached.
        """
        if not isinstance(messages, (list, tuple)) or not messages:
            raise InvalidRequest("messages array is required")

        payload = {
            "model": self._config.model_name,
            "messages": [dict(message) for message in messages],
            "stream": True,
        }
        request = self._client.build_request("POST", self._config.chat_url, json=payload)

        try:
            async with asyncio.timeout(self._config.timeout):
                response = await self._client.send(request, stream=True)
        except (TimeoutError, httpx.TimeoutException) as e:
            logger.error(f"Ollama request timeout after {self._config.timeout:g} seconds")
            raise UpstreamTimeout("Request timeout - Ollama took too long to respond") from e
        except httpx.RequestError as e:
            logger.error(f"Ollama API error: {e}")
            raise UpstreamUnavailable(str(e) or type(e).__name__) from e

        if not response.is_success:
            logger.error(f"Ollama API error: {response.status_code} {response.reason_phrase}")
            await response.aclose()
            raise UpstreamError(response.status_code, response.reason_phrase)

        return RelayStream(response)

    async def health(self) -> HealthResponse:
        """Probe the backend's model listing.

        Returns:
            HealthResponse describing backend reachability. Never raises
            for backend failures; they are reported in the response.
        """
        try:
            response = await self._client.get(
                self._config.tags_url, timeout=self._config.health_timeout
            )
        except httpx.RequestError as e:
            logger.error(f"Health check failed: {e}")
            return HealthResponse(
                status=HealthStatus.UNHEALTHY,
                ollama=BackendStatus.DISCONNECTED,
                error=str(e) or type(e).__name__,
            )

        if not response.is_success:
            return HealthResponse(
                status=HealthStatus.UNHEALTHY,
                ollama=BackendStatus.UNAVAILABLE,
                message=f"Ollama returned status {response.status_code}",
            )

        try:
            data = response.json()
        except ValueError:
            data = {}
        models = data.get("models") if isinstance(data, dict) else None

        return HealthResponse(
            status=HealthStatus.HEALTHY,
            ollama=BackendStatus.CONNECTED,
            models=len(models) if isinstance(models, list) else 0,
        )

    async def aclose(self) -> None:
        await self._client.aclose()


# Module-level singleton instance
_relay_client: RelayClient | None = None


def get_relay_client() -> RelayClient:
    """Get or create the global relay client.

    One pooled HTTP client is shared by all requests; the relay holds no
    per-conversation state.

    Returns:
        The RelayClient instance.
    """
    global _relay_client
    if _relay_client is None:
        _relay_client = RelayClient()
    return _relay_client


async def close_relay_client() -> None:
    """Close the global relay client, if one was created."""
    global _relay_client
    if _relay_client is not None:
        await _relay_client.aclose()
        _relay_client = None
