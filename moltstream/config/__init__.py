"""Configuration module for moltstream."""

from moltstream.config.loader import get_config_path, load_config
from moltstream.config.schema import Config

__all__ = ["Config", "load_config", "get_config_path"]
