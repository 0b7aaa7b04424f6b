"""Failure kinds for a chat exchange.

Every upstream failure is translated into one of these at the relay
boundary, so neither the HTTP layer nor the exchange controller ever
handles a raw transport exception. None of them is retried.
"""


class ChatError(Exception):
    """Base class for chat relay failures."""


class InvalidRequest(ChatError):
    """Raised when the caller's conversation payload is malformed."""


class UpstreamTimeout(ChatError):
    """Raised when the backend exceeds the request deadline."""


class UpstreamError(ChatError):
    """Raised when the backend answers with a non-success status."""

    def __init__(self, status: int, status_text: str = "") -> None:
        self.status = status
        self.status_text = status_text
        super().__init__(f"Backend returned {status} {status_text}".rstrip())


class UpstreamUnavailable(ChatError):
    """Raised when the backend cannot be reached or drops the connection."""

    def __init__(self, details: str = "") -> None:
        self.details = details
        super().__init__(details or "Backend unavailable")
