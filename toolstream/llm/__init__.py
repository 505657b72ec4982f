"""
LLM integration layer for toolstream.
Streams model turns into a StreamChannel.
"""

from toolstream.llm.base_client import BaseLLMClient
from toolstream.llm.llm_factory import create_llm_client
from toolstream.llm.mock_client import MockLLMClient
from toolstream.llm.openai_client import OpenAIClient
from toolstream.llm.translate import ChunkTranslator

__all__ = [
    "BaseLLMClient",
    "ChunkTranslator",
    "MockLLMClient",
    "OpenAIClient",
    "create_llm_client",
]
