"""
Toolstream YAML configuration

Loads configuration from YAML files with support for:
- Default configs in toolstream/config/*.yaml
- Project-level overrides in .toolstream/config.yaml
- Environment variable overrides (TOOLSTREAM_<NAME>_<KEY>)
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from loguru import logger

# Config directory (where default configs live)
CONFIG_DIR = Path(__file__).parent

# Project config locations (checked in order)
PROJECT_CONFIG_PATHS = [
    ".toolstream/config.yaml",
    ".toolstream/config.yml",
    "toolstream.yaml",
    "toolstream.yml",
]


def _load_yaml_file(path: Path) -> Dict[str, Any]:
    """Load a YAML file, returning empty dict if not found or invalid."""
    if not path.exists():
        return {}

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Failed to load config from {path}: {e}")
        return {}

    if not isinstance(data, dict):
        logger.warning(f"Ignoring config {path}: top level is not a mapping")
        return {}
    return data


def _deep_merge(base: Dict, override: Dict) -> Dict:
    """Deep merge two dictionaries, with override taking precedence."""
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def _parse_env_value(value: str) -> Any:
    lowered = value.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    if lowered in ("null", "none", ""):
        return None
    if value.isdigit():
        return int(value)
    try:
        return float(value)
    except ValueError:
        return value


class ConfigLoader:
    """
    Loads and merges configuration from multiple sources.

    Priority (highest to lowest):
    1. Environment variables (TOOLSTREAM_*)
    2. Project-level config (.toolstream/config.yaml)
    3. Default config (toolstream/config/*.yaml)
    """

    _cache: Dict[str, Dict[str, Any]] = {}
    _project_root: Optional[Path] = None

    @classmethod
    def set_project_root(cls, path: Path):
        """Set the project root for loading project-level configs."""
        cls._project_root = Path(path)
        cls._cache.clear()

    @classmethod
    def load(cls, config_name: str) -> Dict[str, Any]:
        """
        Load a configuration by name.

        Args:
            config_name: Name of config file (without .yaml extension), e.g. "agent"

        Returns:
            Merged configuration dictionary
        """
        if config_name in cls._cache:
            return cls._cache[config_name]

        config = _load_yaml_file(CONFIG_DIR / f"{config_name}.yaml")

        if cls._project_root:
            for rel_path in PROJECT_CONFIG_PATHS:
                project_config_path = cls._project_root / rel_path
                if project_config_path.exists():
                    section = _load_yaml_file(project_config_path).get(config_name)
                    if isinstance(section, dict):
                        config = _deep_merge(config, section)
                    break

        config = cls._apply_env_overrides(config_name, config)

        cls._cache[config_name] = config
        return config

    @classmethod
    def _apply_env_overrides(cls, config_name: str, config: Dict) -> Dict:
        """TOOLSTREAM_AGENT_MAX_PARALLEL_TOOLS=4 -> config["max_parallel_tools"] = 4"""
        prefix = f"TOOLSTREAM_{config_name.upper()}_"
        config = dict(config)

        for key, value in os.environ.items():
            if key.startswith(prefix):
                config[key[len(prefix):].lower()] = _parse_env_value(value)

        return config

    @classmethod
    def reload(cls, config_name: Optional[str] = None):
        """Reload configuration(s) from disk."""
        if config_name:
            cls._cache.pop(config_name, None)
        else:
            cls._cache.clear()

    @classmethod
    def get_all_configs(cls) -> List[str]:
        """List all available config files."""
        return sorted(path.stem for path in CONFIG_DIR.glob("*.yaml"))


@dataclass
class AgentSettings:
    """Runtime settings of the agent loop, from the "agent" config."""
    max_parallel_tools: int = 8
    max_tool_result_chars: Optional[int] = None
    auto_approve: bool = False
    disabled_tools: List[str] = field(default_factory=list)
    stream_timeout: float = 300.0
    max_iterations: int = 25

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AgentSettings":
        disabled = data.get("disabled_tools") or []
        if isinstance(disabled, str):
            disabled = [name.strip() for name in disabled.split(",") if name.strip()]

        max_chars = data.get("max_tool_result_chars")
        return cls(
            max_parallel_tools=max(1, int(data.get("max_parallel_tools") or 8)),
            max_tool_result_chars=int(max_chars) if max_chars else None,
            auto_approve=bool(data.get("auto_approve", False)),
            disabled_tools=list(disabled),
            stream_timeout=float(data.get("stream_timeout") or 300),
            max_iterations=int(data.get("max_iterations") or 25),
        )


# Convenience functions
def load_config(name: str) -> Dict[str, Any]:
    """Load a configuration by name."""
    return ConfigLoader.load(name)


def load_agent_settings() -> AgentSettings:
    return AgentSettings.from_dict(ConfigLoader.load("agent"))


def set_project_root(path: Path):
    """Set the project root for config loading."""
    ConfigLoader.set_project_root(path)


def reload_configs():
    """Reload all configurations from disk."""
    ConfigLoader.reload()
