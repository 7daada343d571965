from __future__ import annotations  # Re-export llm_gateway public API

from .llm_gateway import (
    UNAVAILABLE_STATUS,
    LlmGatewayError,
    LlmInvalidOutputError,
    LlmUnavailableError,
    chat,
)

__all__ = [
    "UNAVAILABLE_STATUS",
    "LlmGatewayError",
    "LlmInvalidOutputError",
    "LlmUnavailableError",
    "chat",
]
