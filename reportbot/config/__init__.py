"""Configuration module for reportbot."""

from reportbot.config.loader import get_config_path, get_data_dir, load_config, save_config
from reportbot.config.schema import Config

__all__ = ["Config", "load_config", "save_config", "get_config_path", "get_data_dir"]
