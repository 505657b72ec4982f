"""
OpenAI streaming client.
Works with OpenAI and OpenAI-compatible endpoints (via base_url).
"""

import threading
from typing import Any, Dict, List, Optional

import openai
from loguru import logger
from openai import OpenAI

from toolstream.core.channel import StreamChannel, StreamEvent
from toolstream.llm.base_client import AUTH, NETWORK, RATE_LIMIT, UNKNOWN, BaseLLMClient, format_stream_error
from toolstream.llm.translate import ChunkTranslator


def classify_error(exc: Exception) -> str:
    """Map an SDK exception to an error code."""
    if isinstance(exc, openai.RateLimitError):
        return RATE_LIMIT
    if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return AUTH
    if isinstance(exc, openai.APIConnectionError):
        return NETWORK
    return UNKNOWN


class OpenAIClient(BaseLLMClient):
    """OpenAI LLM client."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        temperature: float = 0.2,
        base_url: Optional[str] = None,
        max_tokens: int = 4096,
        include_usage: bool = True,
        client: Optional[Any] = None
    ):
        """
        Initialize OpenAI client.

        Args:
            api_key: OpenAI API key
            model: Model name
            temperature: Sampling temperature
            base_url: Alternative OpenAI-compatible endpoint
            max_tokens: Max tokens per turn
            include_usage: Ask for a final usage chunk (some compatible servers reject this)
            client: Preconfigured SDK client
        """
        super().__init__(api_key, model, temperature)
        self.max_tokens = max_tokens
        self.include_usage = include_usage
        self.client = client or OpenAI(api_key=api_key, base_url=base_url, timeout=60.0)
        logger.info(f"OpenAI client initialized: {model}")

    def stream_turn(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]],
        channel: StreamChannel,
        cancel_event: Optional[threading.Event] = None
    ) -> None:
        request: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "stream": True,
        }
        if tools:
            request["tools"] = tools
        if self.include_usage:
            request["stream_options"] = {"include_usage": True}

        translator = ChunkTranslator()
        try:
            stream = self.client.chat.completions.create(**request)
            try:
                for chunk in stream:
                    if cancel_event is not None and cancel_event.is_set():
                        logger.info("Stream cancelled")
                        break
                    for event in translator.translate(chunk):
                        channel.send(event)
            finally:
                # Always close stream to stop server-side generation
                if hasattr(stream, "close"):
                    stream.close()
        except openai.OpenAIError as e:
            code = classify_error(e)
            logger.error(f"OpenAI API error ({code}): {e}")
            channel.send(StreamEvent.error_event(format_stream_error(code, str(e))))
        finally:
            channel.send(StreamEvent.completion())

    def is_available(self) -> bool:
        """Check if OpenAI service is available."""
        try:
            self.client.models.list()
            return True
        except openai.OpenAIError as e:
            logger.warning(f"OpenAI not available: {e}")
            return False
