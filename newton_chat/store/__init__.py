"""Client-side conversation history.

Persists every conversation as one serialized blob and tracks which
conversation currently has focus.
"""

from newton_chat.store.conversation_store import (
    DEFAULT_CONVERSATION_ID,
    STORAGE_KEY,
    Conversation,
    ConversationNotFoundError,
    ConversationStore,
    Turn,
)

__all__ = [
    "DEFAULT_CONVERSATION_ID",
    "STORAGE_KEY",
    "Conversation",
    "ConversationNotFoundError",
    "ConversationStore",
    "Turn",
]
