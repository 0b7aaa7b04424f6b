"""Unit tests for individual components in isolation.

Ensures fast execution with no network access.

Coverage:
    - parsing/: NDJSON frame splitting and incremental decoding
    - relay/: Backend settings, request forwarding and error translation
    - store/: Conversation persistence and ownership rules
    - exchange/: Send/stream/commit state machine and HTTP transport

The model backend is replaced by httpx.MockTransport or an in-memory
transport. Leverages pytest-check for multiple assertions per test.
"""
