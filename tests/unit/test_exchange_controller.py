"""Unit tests for ExchangeController.

The transport is an in-memory fake so these tests cover the state machine,
commit rules and rendering hooks without any HTTP.
"""

import asyncio
from collections.abc import AsyncGenerator, AsyncIterator, Callable, Iterable
from contextlib import asynccontextmanager
from typing import Any

import pytest
import pytest_check as check

from newton_chat.exchange.controller import (
    THINKING_WORDS,
    ExchangeController,
    ExchangeState,
    describe_error,
    thinking_label,
)
from newton_chat.models.schemas import Role
from newton_chat.relay.errors import (
    ChatError,
    InvalidRequest,
    UpstreamError,
    UpstreamTimeout,
    UpstreamUnavailable,
)
from newton_chat.store.conversation_store import ConversationStore, Turn
from tests.conftest import ndjson_body


class FakeTransport:
    """Replays canned chunks, optionally failing before or during the body."""

    def __init__(
        self,
        chunks: Iterable[bytes] = (),
        error: ChatError | None = None,
        mid_error: ChatError | None = None,
        gate: asyncio.Event | None = None,
    ) -> None:
        self.chunks = list(chunks)
        self.error = error
        self.mid_error = mid_error
        self.gate = gate
        self.calls: list[list[dict[str, str]]] = []

    @asynccontextmanager
    async def stream(self, messages: list[dict[str, str]]) -> AsyncGenerator[AsyncIterator[bytes]]:
        self.calls.append(messages)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        yield self._body()

    async def _body(self) -> AsyncIterator[bytes]:
        for chunk in self.chunks:
            yield chunk
        if self.mid_error is not None:
            raise self.mid_error


class RecordingRenderer:
    """Records every display call; hooks let a test act mid-exchange."""

    def __init__(self) -> None:
        self.turns: list[Turn] = []
        self.pending: list[str] = []
        self.updates: list[str] = []
        self.finished: list[Turn] = []
        self.errors: list[str] = []
        self.on_pending: Callable[[str], Any] | None = None
        self.on_update: Callable[[str], Any] | None = None

    def render_turn(self, conversation_id: str, turn: Turn) -> None:
        self.turns.append(turn)

    def show_pending(self, conversation_id: str, label: str) -> None:
        self.pending.append(label)
        if self.on_pending:
            self.on_pending(conversation_id)

    def update_pending(self, conversation_id: str, text: str) -> None:
        self.updates.append(text)
        if self.on_update:
            self.on_update(conversation_id)

    def finish_pending(self, conversation_id: str, turn: Turn) -> None:
        self.finished.append(turn)

    def show_error(self, conversation_id: str, message: str) -> None:
        self.errors.append(message)


@pytest.fixture
def store(storage: dict[str, Any]) -> ConversationStore:
    return ConversationStore(storage)


@pytest.fixture
def renderer() -> RecordingRenderer:
    return RecordingRenderer()


def make_controller(
    store: ConversationStore, renderer: RecordingRenderer, transport: FakeTransport
) -> ExchangeController:
    return ExchangeController(store, transport, renderer)


class TestSuccessfulExchange:
    """Tests for a reply that streams to completion."""

    async def test_fragments_are_committed_as_one_reply(
        self, store: ConversationStore, renderer: RecordingRenderer
    ) -> None:
        transport = FakeTransport([ndjson_body("Hel"), ndjson_body("lo")])
        controller = make_controller(store, renderer, transport)

        reply = await controller.send("Hi")

        assert reply is not None
        messages = store.current.messages
        check.equal([(m.role, m.content) for m in messages], [(Role.USER, "Hi"), (Role.ASSISTANT, "Hello")])
        check.equal(renderer.updates, ["Hel", "Hello"])
        check.equal(renderer.finished, [reply])
        check.equal(renderer.errors, [])

    async def test_history_sent_includes_new_user_turn(
        self, store: ConversationStore, renderer: RecordingRenderer
    ) -> None:
        store.append_turn(store.current_id, Turn(role=Role.USER, content="Earlier"))
        store.append_turn(store.current_id, Turn(role=Role.ASSISTANT, content="Reply"))
        transport = FakeTransport([ndjson_body("ok")])

        await make_controller(store, renderer, transport).send("  Now  ")

        assert transport.calls == [
            [
                {"role": "user", "content": "Earlier"},
                {"role": "assistant", "content": "Reply"},
                {"role": "user", "content": "Now"},
            ]
        ]

    async def test_multibyte_text_split_across_chunks(
        self, store: ConversationStore, renderer: RecordingRenderer
    ) -> None:
        body = ndjson_body("naïve ✓ 日本")
        chunks = [body[i : i + 1] for i in range(len(body))]

        reply = await make_controller(store, renderer, FakeTransport(chunks)).send("Hi")

        assert reply is not None
        assert reply.content == "naïve ✓ 日本"

    async def test_malformed_lines_are_skipped(
        self, store: ConversationStore, renderer: RecordingRenderer
    ) -> None:
        chunks = [
            b'{"message":{"content":"a"}}\nBADJSON\n',
            b'{"message":{"content":"b"}}\n',
        ]

        reply = await make_controller(store, renderer, FakeTransport(chunks)).send("Hi")

        assert reply is not None
        assert reply.content == "ab"

    async def test_final_frame_without_newline_is_used(
        self, store: ConversationStore, renderer: RecordingRenderer
    ) -> None:
        chunks = [b'{"message":{"content":"a"}}\n{"message":{"content":"b"}}']

        reply = await make_controller(store, renderer, FakeTransport(chunks)).send("Hi")

        assert reply is not None
        assert reply.content == "ab"

    async def test_first_message_names_conversation(
        self, store: ConversationStore, renderer: RecordingRenderer
    ) -> None:
        text = "What is the airspeed velocity of an unladen swallow?"

        await make_controller(store, renderer, FakeTransport([ndjson_body("ok")])).send(text)

        assert store.current.title == text[:30] + "..."

    async def test_state_returns_to_idle(
        self, store: ConversationStore, renderer: RecordingRenderer
    ) -> None:
        controller = make_controller(store, renderer, FakeTransport([ndjson_body("ok")]))

        await controller.send("Hi")

        check.equal(controller.state(store.current_id), ExchangeState.IDLE)
        check.is_false(controller.is_busy(store.current_id))

    async def test_pending_label_is_a_thinking_word(
        self, store: ConversationStore, renderer: RecordingRenderer
    ) -> None:
        await make_controller(store, renderer, FakeTransport([ndjson_body("ok")])).send("Hi")

        assert len(renderer.pending) == 1
        assert renderer.pending[0].removesuffix("...") in THINKING_WORDS


class TestRejectedSend:
    """Tests for sends that never start an exchange."""

    @pytest.mark.parametrize("text", ["", "   ", "\n\t"])
    async def test_blank_text_is_ignored(
        self, store: ConversationStore, renderer: RecordingRenderer, text: str
    ) -> None:
        transport = FakeTransport([ndjson_body("ok")])

        result = await make_controller(store, renderer, transport).send(text)

        check.is_none(result)
        check.equal(transport.calls, [])
        check.equal(store.turn_count(store.current_id), 0)

    async def test_second_send_while_live_is_ignored(
        self, store: ConversationStore, renderer: RecordingRenderer
    ) -> None:
        """Only one exchange may be live per conversation."""
        gate = asyncio.Event()
        transport = FakeTransport([ndjson_body("ok")], gate=gate)
        controller = make_controller(store, renderer, transport)
        conversation_id = store.current_id

        first = asyncio.create_task(controller.send("first"))
        await asyncio.sleep(0)

        check.equal(controller.state(conversation_id), ExchangeState.SENDING)
        check.is_none(await controller.send("second"))
        check.equal(store.turn_count(conversation_id), 1)

        gate.set()
        reply = await first

        assert reply is not None
        assert [m.content for m in store.current.messages] == ["first", "ok"]
        assert len(transport.calls) == 1

    async def test_other_conversation_is_not_blocked(
        self, store: ConversationStore, renderer: RecordingRenderer
    ) -> None:
        gate = asyncio.Event()
        transport = FakeTransport([ndjson_body("ok")], gate=gate)
        controller = make_controller(store, renderer, transport)
        first_id = store.current_id
        second_id = store.create_conversation().id

        first = asyncio.create_task(controller.send("one", first_id))
        second = asyncio.create_task(controller.send("two", second_id))
        await asyncio.sleep(0)
        gate.set()
        await asyncio.gather(first, second)

        check.equal(store.turn_count(first_id), 2)
        check.equal(store.turn_count(second_id), 2)


class TestFailedExchange:
    """Tests for failures before and during the reply."""

    @pytest.mark.parametrize(
        "error",
        [
            UpstreamTimeout("Request timeout"),
            UpstreamUnavailable("Connection refused"),
            UpstreamError(500, "Internal Server Error"),
            InvalidRequest("messages array is required"),
        ],
    )
    async def test_failure_keeps_only_user_turn(
        self, store: ConversationStore, renderer: RecordingRenderer, error: ChatError
    ) -> None:
        controller = make_controller(store, renderer, FakeTransport(error=error))

        result = await controller.send("Hi")

        check.is_none(result)
        check.equal([m.role for m in store.current.messages], [Role.USER])
        check.equal(renderer.errors, [describe_error(error)])
        check.equal(renderer.finished, [])
        check.is_false(controller.is_busy(store.current_id))

    async def test_mid_stream_failure_discards_partial_reply(
        self, store: ConversationStore, renderer: RecordingRenderer
    ) -> None:
        transport = FakeTransport(
            [ndjson_body("partial")], mid_error=UpstreamUnavailable("Connection reset")
        )

        result = await make_controller(store, renderer, transport).send("Hi")

        check.is_none(result)
        check.equal([m.content for m in store.current.messages], ["Hi"])
        check.equal(renderer.updates, ["partial"])
        check.equal(len(renderer.errors), 1)

    async def test_cancel_aborts_before_commit(
        self, store: ConversationStore, renderer: RecordingRenderer
    ) -> None:
        controller = make_controller(store, renderer, FakeTransport([ndjson_body("a", "b")]))
        renderer.on_update = controller.cancel

        result = await controller.send("Hi")

        check.is_none(result)
        check.equal(store.turn_count(store.current_id), 1)
        check.equal(renderer.errors, ["Response cancelled."])

    async def test_cancel_without_exchange(self, store: ConversationStore) -> None:
        controller = ExchangeController(store, FakeTransport())

        assert controller.cancel(store.current_id) is False

    async def test_conversation_deleted_mid_exchange(
        self, store: ConversationStore, renderer: RecordingRenderer
    ) -> None:
        """The reply is dropped and nothing else is touched."""
        doomed = store.create_conversation().id
        renderer.on_pending = store.delete_conversation
        controller = make_controller(store, renderer, FakeTransport([ndjson_body("ok")]))

        result = await controller.send("Hi", doomed)

        check.is_none(result)
        check.is_false(doomed in store)
        check.equal(store.turn_count(store.current_id), 0)
        check.equal(renderer.errors, [])

    async def test_renderer_failure_releases_conversation(
        self, store: ConversationStore, renderer: RecordingRenderer
    ) -> None:
        """A display error never leaves the conversation stuck as busy."""
        controller = make_controller(store, renderer, FakeTransport([ndjson_body("ok")]))

        def broken_render(conversation_id: str, turn: Turn) -> None:
            raise RuntimeError("display gone")

        renderer.render_turn = broken_render  # type: ignore[method-assign]

        with pytest.raises(RuntimeError):
            await controller.send("Hi")

        check.is_false(controller.is_busy(store.current_id))
        check.equal(controller.state(store.current_id), ExchangeState.IDLE)

    async def test_can_send_again_after_failure(
        self, store: ConversationStore, renderer: RecordingRenderer
    ) -> None:
        transport = FakeTransport(error=UpstreamTimeout("slow"))
        controller = make_controller(store, renderer, transport)
        await controller.send("Hi")

        transport.error = None
        transport.chunks = [ndjson_body("Hello")]
        reply = await controller.send("Hi again")

        assert reply is not None
        assert [m.content for m in store.current.messages] == ["Hi", "Hi again", "Hello"]


class TestDescribeError:
    """Tests for user-facing error text."""

    def test_timeout(self) -> None:
        assert describe_error(UpstreamTimeout("x")) == (
            "The model took too long to respond. Please try again."
        )

    def test_unavailable_includes_details(self) -> None:
        assert "ECONNREFUSED" in describe_error(UpstreamUnavailable("ECONNREFUSED"))

    def test_upstream_error_includes_status(self) -> None:
        assert "404 Not Found" in describe_error(UpstreamError(404, "Not Found"))


def test_thinking_label_format() -> None:
    label = thinking_label()

    assert label.endswith("...")
    assert label[:-3] in THINKING_WORDS
