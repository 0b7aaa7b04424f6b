"""NiceGUI interface - thin visualization layer for chat interactions.

Delivers a web UI with real-time streaming updates.

Responsibilities:
    - Chat message display with incremental rendering of replies
    - Conversation list with create, rename, delete and clear
    - Per-browser persistence through NiceGUI user storage

Contains minimal business logic. Delegates sending and committing to the
exchange controller and all history changes to the conversation store.
"""
