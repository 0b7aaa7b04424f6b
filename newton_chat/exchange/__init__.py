"""Client-side exchange orchestration.

Sends a conversation to the relay, consumes the NDJSON reply as it
streams, renders it incrementally and commits the finished turn.
"""

from newton_chat.exchange.controller import (
    Exchange,
    ExchangeCancelled,
    ExchangeController,
    ExchangeRenderer,
    ExchangeState,
    NullRenderer,
    describe_error,
    thinking_label,
)
from newton_chat.exchange.transport import ChatApiTransport, ChatTransport

__all__ = [
    "ChatApiTransport",
    "ChatTransport",
    "Exchange",
    "ExchangeCancelled",
    "ExchangeController",
    "ExchangeRenderer",
    "ExchangeState",
    "NullRenderer",
    "describe_error",
    "thinking_label",
]
