"""Exchange controller: one user send through to one committed reply.

State machine per conversation::

    IDLE -> SENDING -> STREAMING -> COMMITTING -> IDLE
               \\           \\
                +-----------+--> ABORTED

The user turn is committed optimistically on send. The assistant turn is
committed exactly once, when the reply stream ends cleanly; on any
failure the partial reply is discarded and a single error entry is
rendered instead.

Everything runs on one event loop. The single-exchange guard is checked
and the exchange registered before the first ``await``, so two sends on
the same conversation can never interleave their appends.
"""

import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from newton_chat.exchange.transport import ChatTransport
from newton_chat.models.schemas import Role
from newton_chat.parsing.ndjson import Frame, NDJSONDecoder, frame_content
from newton_chat.relay.errors import (
    ChatError,
    InvalidRequest,
    UpstreamError,
    UpstreamTimeout,
    UpstreamUnavailable,
)
from newton_chat.store.conversation_store import (
    ConversationNotFoundError,
    ConversationStore,
    Turn,
)

logger = logging.getLogger(__name__)

THINKING_WORDS = (
    "Accomplishing", "Actioning", "Actualizing", "Baking", "Brewing",
    "Calculating", "Cerebrating", "Churning", "Coalescing", "Cogitating",
    "Computing", "Conjuring", "Considering", "Cooking", "Crafting",
    "Creating", "Crunching", "Deliberating", "Determining", "Doing",
    "Effecting", "Finagling", "Forging", "Forming", "Generating",
    "Hatching", "Herding", "Honking", "Hustling", "Ideating",
    "Inferring", "Manifesting", "Marinating", "Moseying", "Mulling",
    "Mustering", "Musing", "Noodling", "Percolating", "Pondering",
    "Processing", "Puttering", "Reticulating", "Ruminating", "Schlepping",
    "Shucking", "Simmering", "Smooshing", "Spinning", "Stewing",
    "Synthesizing", "Thinking", "Transmuting", "Vibing", "Working",
)  # fmt: skip


def thinking_label() -> str:
    """Random label for the in-progress indicator."""
    return f"{random.choice(THINKING_WORDS)}..."


class ExchangeState(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    STREAMING = "streaming"
    COMMITTING = "committing"
    ABORTED = "aborted"


class ExchangeCancelled(ChatError):
    """Raised inside an exchange that was cancelled before commit."""


@dataclass
class Exchange:
    """In-flight request/response pair. Never persisted."""

    conversation_id: str
    request: Turn
    accumulated: str = ""
    cancelled: bool = False
    state: ExchangeState = ExchangeState.SENDING


class ExchangeRenderer(Protocol):
    """Display hooks the controller drives during an exchange."""

    def render_turn(self, conversation_id: str, turn: Turn) -> None: ...

    def show_pending(self, conversation_id: str, label: str) -> None: ...

    def update_pending(self, conversation_id: str, text: str) -> None: ...

    def finish_pending(self, conversation_id: str, turn: Turn) -> None: ...

    def show_error(self, conversation_id: str, message: str) -> None: ...


class NullRenderer:
    """Renderer that displays nothing, for headless use."""

    def render_turn(self, conversation_id: str, turn: Turn) -> None:
        pass

    def show_pending(self, conversation_id: str, label: str) -> None:
        pass

    def update_pending(self, conversation_id: str, text: str) -> None:
        pass

    def finish_pending(self, conversation_id: str, turn: Turn) -> None:
        pass

    def show_error(self, conversation_id: str, message: str) -> None:
        pass


def describe_error(exc: ChatError) -> str:
    """User-facing text for a failed exchange."""
    match exc:
        case UpstreamTimeout():
            return "The model took too long to respond. Please try again."
        case UpstreamUnavailable():
            return f"The model service is unavailable: {exc.details}"
        case UpstreamError():
            return f"The model service returned an error ({exc.status} {exc.status_text})."
        case InvalidRequest():
            return f"The request was rejected: {exc}"
        case ExchangeCancelled():
            return "Response cancelled."
        case _:
            return str(exc) or "Something went wrong."


class ExchangeController:
    """Runs send/stream/commit cycles against a conversation store."""

    def __init__(
        self,
        store: ConversationStore,
        transport: ChatTransport,
        renderer: ExchangeRenderer | None = None,
    ) -> None:
        self._store = store
        self._transport = transport
        self._renderer = renderer or NullRenderer()
        self._exchanges: dict[str, Exchange] = {}

    @property
    def store(self) -> ConversationStore:
        return self._store

    def state(self, conversation_id: str) -> ExchangeState:
        exchange = self._exchanges.get(conversation_id)
        return exchange.state if exchange else ExchangeState.IDLE

    def is_busy(self, conversation_id: str) -> bool:
        return conversation_id in self._exchanges

    def cancel(self, conversation_id: str) -> bool:
        """Abandon the live exchange on a conversation at its next read."""
        exchange = self._exchanges.get(conversation_id)
        if exchange is None:
            return False
        exchange.cancelled = True
        return True

    async def send(self, text: str, conversation_id: str | None = None) -> Turn | None:
        """Send a user message and stream the reply into the store.

        Args:
            text: Message text; surrounding whitespace is trimmed.
            conversation_id: Target conversation, the current one by default.

        Returns:
            The committed assistant turn, or None when the send was
            rejected (blank text, exchange already live) or aborted.
        """
        text = text.strip()
        conversation_id = conversation_id or self._store.current_id
        if not text:
            return None
        if conversation_id in self._exchanges:
            logger.debug(f"Ignoring send on busy conversation {conversation_id}")
            return None

        request = self._store.append_turn(conversation_id, Turn(role=Role.USER, content=text))
        exchange = Exchange(conversation_id=conversation_id, request=request)
        self._exchanges[conversation_id] = exchange

        try:
            self._renderer.render_turn(conversation_id, request)
            return await self._run(exchange)
        except ChatError as e:
            exchange.state = ExchangeState.ABORTED
            logger.warning(f"Exchange on {conversation_id} aborted: {type(e).__name__}: {e}")
            self._renderer.show_error(conversation_id, describe_error(e))
            return None
        finally:
            del self._exchanges[conversation_id]

    async def _run(self, exchange: Exchange) -> Turn | None:
        conversation_id = exchange.conversation_id
        history = self._store.history(conversation_id)

        async with self._transport.stream(history) as body:
            exchange.state = ExchangeState.STREAMING
            self._renderer.show_pending(conversation_id, thinking_label())

            decoder = NDJSONDecoder()
            async for chunk in body:
                self._check_cancelled(exchange)
                self._absorb(exchange, decoder.feed(chunk))
            self._check_cancelled(exchange)
            self._absorb(exchange, decoder.close())

        exchange.state = ExchangeState.COMMITTING
        reply = Turn(role=Role.ASSISTANT, content=exchange.accumulated)
        try:
            reply = self._store.append_turn(conversation_id, reply)
        except ConversationNotFoundError:
            logger.warning(f"Conversation {conversation_id} deleted mid-exchange, reply dropped")
            return None

        self._renderer.finish_pending(conversation_id, reply)
        exchange.state = ExchangeState.IDLE
        return reply

    def _absorb(self, exchange: Exchange, frames: list[Frame]) -> None:
        updated = False
        for frame in frames:
            fragment = frame_content(frame)
            if fragment is not None:
                exchange.accumulated += fragment
                updated = True
        if updated:
            self._renderer.update_pending(exchange.conversation_id, exchange.accumulated)

    @staticmethod
    def _check_cancelled(exchange: Exchange) -> None:
        if exchange.cancelled:
            raise ExchangeCancelled("Exchange cancelled")
