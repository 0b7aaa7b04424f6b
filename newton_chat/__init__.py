"""Newton Chat - streaming chat client and relay for a local LLM backend.

Combines FastAPI for the streaming relay, httpx for backend and client
HTTP, NiceGUI for the chat interface, and Pydantic for data validation.

Components:
    - api: Relay and health endpoints
    - relay: Backend forwarding, timeout and error translation
    - parsing: NDJSON frame extraction across chunk boundaries
    - store: Persisted multi-conversation history
    - exchange: Send/stream/commit orchestration on the client
    - ui: Web interface for chat interactions
    - models: Request/response schemas
"""

__version__ = "0.1.0"
