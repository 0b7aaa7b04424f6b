"""FastAPI endpoints for the Newton chat relay.

HTTP and streaming routes with async request handling.
Streams newline-delimited JSON from the model backend to the client.

Endpoints:
    - POST /api/chat: Relay a conversation and stream the reply
    - GET /api/health: Model backend reachability
"""

from newton_chat.api.app import app, create_app

__all__ = ["app", "create_app"]
