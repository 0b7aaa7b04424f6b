"""Relay configuration with environment variable loading.

Pydantic-based configuration for the model backend relay.
Targets an Ollama-compatible chat service reachable by URL.
"""

import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

# Load environment variables from .env file
load_dotenv()

# Hard wall-clock limit for a backend request, measured from dispatch
REQUEST_TIMEOUT = 120.0
HEALTH_TIMEOUT = 5.0


class RelayConfig(BaseModel):
    """Configuration for the backend relay.

    Attributes:
        ollama_url: Base URL of the chat backend.
        model_name: Fixed model identifier sent with every request.
        timeout: Seconds allowed between dispatch and response headers.
        health_timeout: Seconds allowed for a health probe.
    """

    ollama_url: str = Field(
        default_factory=lambda: os.getenv("OLLAMA_URL", "http://localhost:11434"),
        description="Base URL of the Ollama chat backend",
    )
    model_name: str = Field(
        default_factory=lambda: os.getenv("OLLAMA_MODEL", "llama2-uncensored"),
        description="Model to use",
    )
    timeout: float = Field(
        default=REQUEST_TIMEOUT,
        gt=0.0,
        description="Backend request timeout in seconds",
    )
    health_timeout: float = Field(
        default=HEALTH_TIMEOUT,
        gt=0.0,
        description="Health probe timeout in seconds",
    )

    @field_validator("ollama_url")
    @classmethod
    def validate_ollama_url(cls, v: str) -> str:
        """Require an http(s) URL and drop any trailing slash."""
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError("OLLAMA_URL must be an http:// or https:// URL")
        return v.rstrip("/")

    @field_validator("model_name")
    @classmethod
    def validate_model_name(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Model name required. Set OLLAMA_MODEL in .env")
        return v.strip()

    @property
    def chat_url(self) -> str:
        return f"{self.ollama_url}/api/chat"

    @property
    def tags_url(self) -> str:
        return f"{self.ollama_url}/api/tags"


def get_relay_config() -> RelayConfig:
    """Create relay configuration from environment.

    Returns:
        Configured RelayConfig instance.

    Raises:
        ValueError: If the backend URL or model name is invalid.
    """
    return RelayConfig()
