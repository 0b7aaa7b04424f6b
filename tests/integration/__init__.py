"""Integration tests for components working together as a system.

Coverage:
    - API endpoints with real HTTP requests through ASGITransport
    - Full exchange from user send through the relay to a committed reply

Only the Ollama backend is faked; everything between the chat client and
the backend runs for real.
"""
