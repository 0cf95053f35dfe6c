"""Configuration loading utilities.

The config file is camelCase JSON; the schema is snake_case. Values not set in
the file fall back to ``REPORTBOT_*`` environment variables, then defaults.
"""

import json
import re
from pathlib import Path
from typing import Any

from loguru import logger

from reportbot.config.schema import Config
from reportbot.utils.helpers import ensure_dir

SECRET_FIELDS = {"renderer": {"password"}, "delivery": {"client_secret"}}


def get_config_path() -> Path:
    """Get the default configuration file path."""
    return Path.home() / ".reportbot" / "config.json"


def get_data_dir(config: Config | None = None) -> Path:
    """Get the data directory, creating it if needed."""
    return ensure_dir((config or Config()).data_path)


def load_config(config_path: Path | None = None) -> Config:
    """
    Load configuration from file or create default.

    Args:
        config_path: Optional path to config file. Uses default if not provided.

    Returns:
        Loaded configuration object.
    """
    path = config_path or get_config_path()

    if path.exists():
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            return Config(**convert_keys(data))
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning(f"Failed to load config from {path}: {e}")
            logger.warning("Using default configuration.")

    return Config()


def save_config(config: Config, config_path: Path | None = None) -> None:
    """Save configuration to file as camelCase JSON.

    Secrets are never written; they come from the environment
    (`REPORTBOT_RENDERER__PASSWORD`, `REPORTBOT_DELIVERY__CLIENT_SECRET`).
    """
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    data = convert_to_camel(config.model_dump(exclude=SECRET_FIELDS))

    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)


def convert_keys(data: Any) -> Any:
    """Convert camelCase keys to snake_case for Pydantic."""
    if isinstance(data, dict):
        return {camel_to_snake(k): convert_keys(v) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_keys(item) for item in data]
    return data


def convert_to_camel(data: Any) -> Any:
    """Convert snake_case keys to camelCase."""
    if isinstance(data, dict):
        return {snake_to_camel(k): convert_to_camel(v) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_to_camel(item) for item in data]
    return data


def camel_to_snake(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


def snake_to_camel(name: str) -> str:
    components = name.split("_")
    return components[0] + "".join(x.title() for x in components[1:])
