"""Persisted multi-conversation history for the chat client.

The whole store is one JSON blob under a fixed key in a string-keyed
mapping (NiceGUI's per-browser ``app.storage.user`` in the app, a plain
dict in tests). Every mutation re-serializes the full blob and writes it
with a single assignment, so a reader of the mapping never sees a half
written store.

Persisted shape::

    {
        "<conversation id>": {
            "title": "...",
            "messages": [{"role": "user", "content": "...", "timestamp": "..."}],
            "created": "...",
            "renamed": true            # only present after an explicit rename
        }
    }
"""

import json
import logging
import time
from collections.abc import MutableMapping
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from newton_chat.models.schemas import Role

logger = logging.getLogger(__name__)

STORAGE_KEY = "chatbot-conversations"
DEFAULT_CONVERSATION_ID = "default"
DEFAULT_TITLE = "New Conversation"
TITLE_MAX_LENGTH = 30


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _as_aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


class ConversationNotFoundError(KeyError):
    """Raised when an operation names a conversation that does not exist."""


class Turn(BaseModel):
    """One committed message in a conversation.

    Attributes:
        role: The speaker.
        content: Message text, immutable once committed.
        timestamp: Capture time (timezone-aware).
    """

    model_config = ConfigDict(frozen=True)

    role: Role
    content: str
    timestamp: datetime = Field(default_factory=_utcnow)

    @field_validator("timestamp")
    @classmethod
    def ensure_timezone(cls, v: datetime) -> datetime:
        return _as_aware(v)


class Conversation(BaseModel):
    """A titled, ordered log of turns.

    Attributes:
        id: Opaque identifier, unique among live conversations. Stored as
            the blob key rather than inside the record.
        title: Display title.
        messages: Turns in commit order.
        created: Creation time (timezone-aware).
        renamed: Whether the user set the title explicitly.
    """

    id: str = Field(exclude=True)
    title: str
    messages: list[Turn] = Field(default_factory=list)
    created: datetime = Field(default_factory=_utcnow)
    renamed: bool = False

    @field_validator("created")
    @classmethod
    def ensure_timezone(cls, v: datetime) -> datetime:
        return _as_aware(v)


def derive_title(content: str) -> str:
    """Title taken from the first user turn, truncated with a marker."""
    if len(content) > TITLE_MAX_LENGTH:
        return content[:TITLE_MAX_LENGTH] + "..."
    return content


class ConversationStore:
    """Owns every conversation and the current-conversation pointer.

    Conversations handed out by the store are deep copies; the only way to
    change one is through the store's operations, each of which persists
    the full state before returning. The store always holds at least one
    conversation and ``current_id`` always names one of them.

    Calls are expected from a single writer (the client's event loop), so
    there is no internal locking.
    """

    def __init__(
        self,
        storage: MutableMapping[str, Any],
        key: str = STORAGE_KEY,
    ) -> None:
        """Initialize the store from persisted state.

        Args:
            storage: Mapping that holds the serialized blob.
            key: Key the blob lives under.
        """
        self._storage = storage
        self._key = key
        self._conversations = self.load()
        if DEFAULT_CONVERSATION_ID in self._conversations:
            self._current_id = DEFAULT_CONVERSATION_ID
        else:
            self._current_id = next(iter(self._conversations))

    # === Persistence ===

    def load(self) -> dict[str, Conversation]:
        """Read conversations from storage.

        Returns:
            Conversations keyed by id, in stored order. Absent, empty or
            corrupt state yields a single empty default conversation.
        """
        raw = self._storage.get(self._key)
        if raw is None:
            return self._default_state()

        try:
            data = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
            if not isinstance(data, dict) or not data:
                raise ValueError("no conversations in stored state")
            return {
                conversation_id: Conversation.model_validate({**record, "id": conversation_id})
                for conversation_id, record in data.items()
            }
        except (ValueError, TypeError) as e:
            logger.warning(f"Discarding unreadable conversation state: {e}")
            return self._default_state()

    def save(self) -> None:
        """Write the full state back to storage in one assignment."""
        state = {}
        for conversation_id, conversation in self._conversations.items():
            record = conversation.model_dump(mode="json")
            if not conversation.renamed:
                record.pop("renamed")
            state[conversation_id] = record
        self._storage[self._key] = json.dumps(state, ensure_ascii=False)

    @staticmethod
    def _default_state() -> dict[str, Conversation]:
        return {
            DEFAULT_CONVERSATION_ID: Conversation(
                id=DEFAULT_CONVERSATION_ID, title=DEFAULT_TITLE
            )
        }

    # === Queries ===

    @property
    def current_id(self) -> str:
        return self._current_id

    @property
    def current(self) -> Conversation:
        return self._conversations[self._current_id].model_copy(deep=True)

    def get(self, conversation_id: str) -> Conversation | None:
        conversation = self._conversations.get(conversation_id)
        return conversation.model_copy(deep=True) if conversation else None

    def __contains__(self, conversation_id: object) -> bool:
        return conversation_id in self._conversations

    def __len__(self) -> int:
        return len(self._conversations)

    def conversations(self) -> list[Conversation]:
        return [c.model_copy(deep=True) for c in self._conversations.values()]

    def turn_count(self, conversation_id: str) -> int:
        return len(self._require(conversation_id).messages)

    def history(self, conversation_id: str) -> list[dict[str, str]]:
        """Role/content pairs for the whole conversation, oldest first."""
        return [
            {"role": turn.role.value, "content": turn.content}
            for turn in self._require(conversation_id).messages
        ]

    def _require(self, conversation_id: str) -> Conversation:
        try:
            return self._conversations[conversation_id]
        except KeyError:
            raise ConversationNotFoundError(conversation_id) from None

    # === Mutations ===

    def create_conversation(self) -> Conversation:
        """Start an empty conversation and make it current.

        Returns:
            A copy of the new conversation.
        """
        conversation_id = self._new_id()
        conversation = Conversation(
            id=conversation_id,
            title=f"Conversation {len(self._conversations)}",
        )
        self._conversations[conversation_id] = conversation
        self._current_id = conversation_id
        self.save()
        logger.info(f"Created conversation {conversation_id}")
        return conversation.model_copy(deep=True)

    def _new_id(self) -> str:
        stamp = int(time.time() * 1000)
        while f"conv-{stamp}" in self._conversations:
            stamp += 1
        return f"conv-{stamp}"

    def select(self, conversation_id: str) -> bool:
        """Make a conversation current. Unknown ids are ignored."""
        if conversation_id not in self._conversations:
            return False
        self._current_id = conversation_id
        return True

    def delete_conversation(self, conversation_id: str) -> bool:
        """Remove a conversation, keeping ``current`` valid.

        If the deleted conversation was current, another one becomes
        current; if none remain, a fresh default is created.

        Returns:
            Whether anything was deleted.
        """
        if conversation_id not in self._conversations:
            return False

        del self._conversations[conversation_id]
        if not self._conversations:
            self._conversations = self._default_state()
            self._current_id = DEFAULT_CONVERSATION_ID
        elif conversation_id == self._current_id:
            self._current_id = next(iter(self._conversations))

        self.save()
        logger.info(f"Deleted conversation {conversation_id}")
        return True

    def rename_conversation(self, conversation_id: str, title: str) -> bool:
        """Set an explicit title. Blank titles are ignored.

        Returns:
            Whether the title changed.
        """
        title = title.strip()
        if not title:
            return False
        conversation = self._require(conversation_id)
        conversation.title = title
        conversation.renamed = True
        self.save()
        return True

    def append_turn(self, conversation_id: str, turn: Turn) -> Turn:
        """Append a turn to a conversation's log.

        The first user turn of an empty conversation names it, unless the
        user already renamed it. A turn stamped earlier than its predecessor
        takes the predecessor's timestamp so the log stays ordered.

        Returns:
            The turn as stored.

        Raises:
            ConversationNotFoundError: If the conversation does not exist.
        """
        conversation = self._require(conversation_id)

        if conversation.messages and turn.timestamp < conversation.messages[-1].timestamp:
            turn = turn.model_copy(update={"timestamp": conversation.messages[-1].timestamp})

        if not conversation.messages and turn.role is Role.USER and not conversation.renamed:
            conversation.title = derive_title(turn.content)

        conversation.messages.append(turn)
        self.save()
        return turn

    def clear_conversation(self, conversation_id: str) -> bool:
        """Drop every turn of a conversation, keeping its title.

        Returns:
            Whether there was anything to clear.
        """
        conversation = self._require(conversation_id)
        if not conversation.messages:
            return False
        conversation.messages.clear()
        self.save()
        return True
