"""
LLM Factory - creates the streaming client for the current configuration.
"""

from typing import Optional

from loguru import logger

from toolstream.core.config import Config
from toolstream.llm.base_client import BaseLLMClient
from toolstream.llm.mock_client import MockLLMClient
from toolstream.llm.openai_client import OpenAIClient


def create_llm_client(
    config: Optional[Config] = None,
    model: Optional[str] = None,
    api_key: Optional[str] = None,
    mock: Optional[bool] = None
) -> BaseLLMClient:
    """
    Create an LLM client.

    Args:
        config: Configuration object (global config by default)
        model: Model identifier, overrides the configured default
        api_key: API key, overrides the configured one
        mock: Force (or forbid) the offline mock client

    Raises:
        ValueError: If no API key is available outside mock mode
    """
    if config is None:
        from toolstream.core.config import config as default_config
        config = default_config

    use_mock = config.mock_mode if mock is None else mock
    if use_mock:
        logger.warning("Mock mode active - using MockLLMClient.")
        return MockLLMClient()

    key = api_key or config.openai_api_key
    if not key:
        raise ValueError("No API key available. Set OPENAI_API_KEY or enable MOCK_MODE.")

    return OpenAIClient(
        api_key=key,
        model=model or config.default_model,
        temperature=config.temperature,
        base_url=config.openai_base_url,
        max_tokens=config.max_tokens,
    )
