"""
Base LLM client interface.
All providers stream a turn into a StreamChannel.
"""

import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from toolstream.core.channel import StreamChannel

# Codes carried by error events
RATE_LIMIT = "RATE_LIMIT"
AUTH = "AUTH"
NETWORK = "NETWORK"
UNKNOWN = "UNKNOWN"


def format_stream_error(code: str, message: str) -> str:
    return f"[{code}] {message}"


class BaseLLMClient(ABC):
    """Abstract base class for streaming LLM clients."""

    def __init__(self, api_key: Optional[str], model: str, temperature: float = 0.2):
        """
        Args:
            api_key: API key for the provider
            model: Model identifier
            temperature: Sampling temperature
        """
        self.api_key = api_key
        self.model = model
        self.temperature = temperature

    @abstractmethod
    def stream_turn(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]],
        channel: StreamChannel,
        cancel_event: Optional[threading.Event] = None
    ) -> None:
        """
        Stream one model turn into ``channel``.

        Implementations send text/reasoning/tool-call/usage events as they
        arrive, an error event on failure, and always finish with exactly one
        completion event.
        """

    @abstractmethod
    def is_available(self) -> bool:
        """Check if the provider can be reached."""
