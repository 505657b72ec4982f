"""
Configuration management for toolstream.
Loads settings from environment variables and .env file.
"""

import os
import sys
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from loguru import logger

# Load environment variables from .env file
# Try multiple locations: current directory, project root, user home
_possible_env_paths = [
    Path.cwd() / ".env",
    Path(__file__).parent.parent.parent / ".env",
    Path.home() / ".toolstream" / ".env",
]
for _env_path in _possible_env_paths:
    if _env_path.exists():
        load_dotenv(_env_path)
        break
else:
    load_dotenv()


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in {"true", "1", "yes"}


class Config:
    """Process configuration from the environment."""

    def __init__(self):
        # API
        self.openai_api_key: Optional[str] = os.getenv("OPENAI_API_KEY")
        self.openai_base_url: Optional[str] = os.getenv("OPENAI_BASE_URL")

        # Model Configuration
        self.default_model: str = os.getenv("DEFAULT_MODEL", "gpt-4o-mini")
        self.temperature: float = float(os.getenv("TEMPERATURE", "0.2"))
        self.max_tokens: int = int(os.getenv("MAX_TOKENS", "4096"))

        # Logging
        self.log_level: str = os.getenv("LOG_LEVEL", "INFO")
        self.console_log_level: str = os.getenv("CONSOLE_LOG_LEVEL", "WARNING")
        self.log_file: Path = Path(os.getenv("LOG_FILE", "./toolstream.log"))
        self.console_logging: bool = _env_flag("CONSOLE_LOGGING", "true")

        # Advanced Settings
        self.debug_mode: bool = _env_flag("DEBUG_MODE")

        # Mock / offline mode
        self.mock_mode: bool = _env_flag("MOCK_MODE")

    def validate(self) -> bool:
        """Warn about settings that will make a live run fail."""
        if not self.mock_mode and not self.openai_api_key:
            logger.warning("No API key found! Set OPENAI_API_KEY in .env or enable MOCK_MODE")
            return False
        return True

    def setup_logging(self, console_level: Optional[str] = None):
        """Configure loguru sinks. Call once from an entry point."""
        logger.remove()

        if self.console_logging:
            logger.add(
                sys.stderr,
                level=console_level or ("DEBUG" if self.debug_mode else self.console_log_level),
                colorize=True,
                format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
            )

        logger.add(
            self.log_file,
            level=self.log_level,
            rotation="10 MB",
            retention="1 week",
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function} - {message}"
        )

        if self.debug_mode:
            logger.info("Debug mode enabled")
        if self.mock_mode:
            logger.info("Mock mode enabled (LLM responses will be simulated)")

    def __repr__(self) -> str:
        return (
            f"Config(model={self.default_model}, "
            f"api_key={'set' if self.openai_api_key else 'missing'}, "
            f"mock_mode={self.mock_mode})"
        )


# Global config instance
config = Config()
