"""Test package for Newton Chat.

Unit tests for isolated logic and integration tests for workflows.

Structure:
    - unit/: Parser, store, relay client, transport and controller tests
    - integration/: Endpoint and end-to-end exchange tests

The model backend is always faked with httpx.MockTransport; no test needs
a running Ollama. Leverages pytest with pytest-check for soft assertions.
"""
