"""Server-side relay to the model backend.

Forwards a conversation to an Ollama-compatible chat service and exposes
the streamed NDJSON body for pass-through.

Responsibilities:
    - Backend configuration from the environment
    - Request dispatch with a hard timeout
    - Translation of backend failures into a closed error taxonomy
    - Backend health probing

Holds no conversation state: history is supplied anew on every call.
"""

from newton_chat.relay.client import (
    RelayClient,
    RelayStream,
    close_relay_client,
    get_relay_client,
)
from newton_chat.relay.config import REQUEST_TIMEOUT, RelayConfig, get_relay_config
from newton_chat.relay.errors import (
    ChatError,
    InvalidRequest,
    UpstreamError,
    UpstreamTimeout,
    UpstreamUnavailable,
)

__all__ = [
    "REQUEST_TIMEOUT",
    "ChatError",
    "InvalidRequest",
    "RelayClient",
    "RelayConfig",
    "RelayStream",
    "UpstreamError",
    "UpstreamTimeout",
    "UpstreamUnavailable",
    "close_relay_client",
    "get_relay_client",
    "get_relay_config",
]
