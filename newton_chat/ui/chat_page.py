"""NiceGUI chat interface with NDJSON streaming and saved conversations."""

import os
from collections.abc import Callable
from typing import assert_never

from nicegui import app, ui

from newton_chat.exchange import ChatApiTransport, ExchangeController, thinking_label
from newton_chat.models.schemas import Role
from newton_chat.store import ConversationStore, Turn

API_BASE_URL = os.getenv("API_BASE_URL", "http://localhost:8000")
MAX_INPUT_LENGTH = 2000
LABEL_ROTATE_SECONDS = 2.0

WELCOME_TEXT = "Welcome to Newton AI. How can I help you today?"
CLEARED_TEXT = "Conversation cleared. How can I help you?"


def render_message(turn: Turn) -> None:
    """Draw one committed turn."""
    time_text = turn.timestamp.astimezone().strftime("%I:%M %p")
    match turn.role:
        case Role.USER:
            with ui.column().classes("w-full items-end gap-1"):
                ui.label(turn.content).classes(
                    "max-w-[70%] px-4 py-3 rounded-2xl bg-indigo-600 text-white "
                    "text-sm whitespace-pre-wrap"
                )
                ui.label(time_text).classes("text-[10px] text-gray-400")
        case Role.ASSISTANT:
            with ui.column().classes("w-full items-start gap-1"):
                with ui.element("div").classes("max-w-[70%] px-4 py-3 rounded-2xl bg-gray-100"):
                    ui.markdown(turn.content).classes("text-sm")
                ui.label(time_text).classes("text-[10px] text-gray-400")
        case Role.SYSTEM:
            render_system_note(turn.content)
        case _:
            assert_never(turn.role)


def render_system_note(text: str, error: bool = False) -> None:
    color = "text-red-600 bg-red-50" if error else "text-gray-500 bg-gray-50"
    with ui.row().classes("w-full justify-center"):
        ui.label(text).classes(f"px-4 py-2 rounded-lg text-sm italic {color}")


class NiceGuiRenderer:
    """Draws exchange progress into the visible message column.

    Only the current conversation is on screen. Progress for a
    conversation the user switched away from is not drawn; its committed
    turns show up when it is selected again.
    """

    def __init__(
        self,
        store: ConversationStore,
        container: ui.column,
        scroll_area: ui.scroll_area,
        on_turn: Callable[[], None],
    ) -> None:
        self._store = store
        self._container = container
        self._scroll_area = scroll_area
        self._on_turn = on_turn
        self._pending_id: str | None = None
        self._pending_row: ui.row | None = None
        self._pending_label: ui.label | None = None
        self._pending_body: ui.markdown | None = None
        self._label_timer: ui.timer | None = None

    def _visible(self, conversation_id: str) -> bool:
        return conversation_id == self._store.current_id

    def scroll_to_bottom(self) -> None:
        # Defer until the new elements have been laid out
        with self._container:
            ui.timer(0, lambda: self._scroll_area.scroll_to(percent=1.0), once=True)

    def detach(self) -> None:
        """Forget pending elements after the message column was rebuilt."""
        if self._label_timer is not None:
            self._label_timer.cancel()
        self._pending_id = None
        self._pending_row = None
        self._pending_label = None
        self._pending_body = None
        self._label_timer = None

    def render_turn(self, conversation_id: str, turn: Turn) -> None:
        self._on_turn()
        if not self._visible(conversation_id):
            return
        with self._container:
            render_message(turn)
        self.scroll_to_bottom()

    def show_pending(self, conversation_id: str, label: str) -> None:
        if not self._visible(conversation_id):
            return
        with self._container:
            with ui.row().classes("w-full justify-start") as row:
                with ui.element("div").classes("max-w-[70%] px-4 py-3 rounded-2xl bg-gray-100"):
                    self._pending_label = ui.label(label).classes("text-sm text-gray-500 italic")
                    self._pending_body = ui.markdown("").classes("text-sm")
                    self._pending_body.set_visibility(False)
            self._label_timer = ui.timer(LABEL_ROTATE_SECONDS, self._rotate_label)
        self._pending_id = conversation_id
        self._pending_row = row
        self.scroll_to_bottom()

    def _rotate_label(self) -> None:
        if self._pending_label is not None:
            self._pending_label.set_text(thinking_label())

    def update_pending(self, conversation_id: str, text: str) -> None:
        if conversation_id != self._pending_id or self._pending_body is None:
            return
        if self._label_timer is not None:
            self._label_timer.cancel()
            self._label_timer = None
        if self._pending_label is not None:
            self._pending_label.set_visibility(False)
        # Replace the whole text so split multi-byte characters never show
        self._pending_body.set_content(text)
        self._pending_body.set_visibility(True)
        self.scroll_to_bottom()

    def _clear_pending(self, conversation_id: str) -> None:
        if conversation_id != self._pending_id:
            return
        if self._pending_row is not None:
            self._pending_row.delete()
        self.detach()

    def finish_pending(self, conversation_id: str, turn: Turn) -> None:
        self._clear_pending(conversation_id)
        self.render_turn(conversation_id, turn)

    def show_error(self, conversation_id: str, message: str) -> None:
        self._clear_pending(conversation_id)
        if self._visible(conversation_id):
            with self._container:
                render_system_note(message, error=True)
            self.scroll_to_bottom()


@ui.page("/")
def chat_page() -> None:
    """Main chat page."""
    store = ConversationStore(app.storage.user)

    messages_container: ui.column
    scroll_area: ui.scroll_area
    input_field: ui.textarea
    send_btn: ui.button
    char_count: ui.label

    def refresh_messages(note: str | None = None) -> None:
        renderer.detach()
        messages_container.clear()
        with messages_container:
            conversation = store.current
            if note:
                render_system_note(note)
            elif not conversation.messages:
                render_system_note(WELCOME_TEXT)
            for turn in conversation.messages:
                render_message(turn)
        renderer.scroll_to_bottom()

    def update_input_state() -> None:
        text = input_field.value or ""
        char_count.set_text(f"{min(len(text), MAX_INPUT_LENGTH)}/{MAX_INPUT_LENGTH}")
        send_btn.set_enabled(bool(text.strip()) and not controller.is_busy(store.current_id))

    @ui.refreshable
    def conversation_list() -> None:
        for conversation in store.conversations():
            active = "bg-indigo-100" if conversation.id == store.current_id else ""
            with (
                ui.row()
                .classes(f"w-full items-center no-wrap px-3 py-2 rounded cursor-pointer {active}")
                .on("click", lambda cid=conversation.id: switch_conversation(cid))
            ):
                ui.label(conversation.title).classes("flex-grow truncate text-sm")
                ui.button(icon="edit").props("flat dense round size=sm").on(
                    "click.stop", lambda c=conversation: rename_conversation(c.id, c.title)
                )
                ui.button(icon="close").props("flat dense round size=sm").on(
                    "click.stop", lambda cid=conversation.id: delete_conversation(cid)
                )

    def switch_conversation(conversation_id: str) -> None:
        if store.select(conversation_id):
            conversation_list.refresh()
            refresh_messages()
            update_input_state()

    def new_conversation() -> None:
        store.create_conversation()
        conversation_list.refresh()
        refresh_messages()
        update_input_state()

    async def confirm(question: str) -> bool:
        with ui.dialog() as dialog, ui.card():
            ui.label(question)
            with ui.row().classes("w-full justify-end"):
                ui.button("Cancel", on_click=lambda: dialog.submit(False)).props("flat")
                ui.button("OK", on_click=lambda: dialog.submit(True))
        return bool(await dialog)

    async def rename_conversation(conversation_id: str, title: str) -> None:
        with ui.dialog() as dialog, ui.card():
            ui.label("Rename conversation")
            title_input = ui.input(value=title).classes("w-full")
            with ui.row().classes("w-full justify-end"):
                ui.button("Cancel", on_click=lambda: dialog.submit(None)).props("flat")
                ui.button("Save", on_click=lambda: dialog.submit(title_input.value))
        new_title = await dialog
        if new_title and store.rename_conversation(conversation_id, new_title):
            conversation_list.refresh()

    async def delete_conversation(conversation_id: str) -> None:
        if not await confirm("Delete this conversation?"):
            return
        store.delete_conversation(conversation_id)
        conversation_list.refresh()
        refresh_messages()
        update_input_state()

    async def clear_conversation() -> None:
        if not store.current.messages or controller.is_busy(store.current_id):
            return
        if not await confirm("Clear all messages in this conversation?"):
            return
        store.clear_conversation(store.current_id)
        refresh_messages(note=CLEARED_TEXT)

    async def send_message() -> None:
        text = (input_field.value or "").strip()
        conversation_id = store.current_id
        if not text or controller.is_busy(conversation_id):
            return

        input_field.value = ""
        send_btn.disable()
        await controller.send(text[:MAX_INPUT_LENGTH], conversation_id)
        update_input_state()
        conversation_list.refresh()

    # === UI Layout ===
    with ui.left_drawer().classes("bg-gray-50"):
        with ui.row().classes("w-full items-center justify-between"):
            ui.label("Conversations").classes("text-base font-semibold")
            ui.button("New", icon="add", on_click=new_conversation).props("flat dense")
        conversation_list()

    with ui.header().classes("items-center justify-between bg-indigo-600"):
        with ui.row().classes("items-center gap-3"):
            ui.icon("smart_toy").classes("text-white text-3xl")
            ui.label("Newton AI").classes("text-lg font-semibold text-white")
        ui.button(icon="delete_sweep", on_click=clear_conversation).props("flat round color=white")

    with ui.column().classes("w-full max-w-3xl mx-auto").style("height: calc(100vh - 8rem)"):
        with ui.scroll_area().classes("flex-grow w-full") as scroll_area:
            messages_container = ui.column().classes("w-full gap-4 p-4")

        with ui.row().classes("w-full gap-3 items-end"):
            input_field = (
                ui.textarea(placeholder="Type a message...")
                .props(f"autogrow dense rows=1 maxlength={MAX_INPUT_LENGTH}")
                .classes("flex-grow")
                .on("keydown.enter.prevent", send_message)
                .on_value_change(lambda _: update_input_state())
            )
            send_btn = ui.button(icon="send", on_click=send_message).props("round unelevated")
        char_count = ui.label().classes("text-[10px] text-gray-400 self-end")

    renderer = NiceGuiRenderer(store, messages_container, scroll_area, conversation_list.refresh)
    controller = ExchangeController(store, ChatApiTransport(API_BASE_URL), renderer)

    refresh_messages()
    update_input_state()


def main() -> None:
    """Run the chat page on its own server, talking to the relay at API_BASE_URL."""
    ui.run(
        title="Newton AI",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("UI_PORT", "8080")),
        reload=False,
        storage_secret=os.getenv("NICEGUI_STORAGE_SECRET", "newton-chat-secret"),
    )


if __name__ == "__main__":
    main()
