"""Application configuration."""

from subtrack.config.settings import AppConfig, get_config

__all__ = ["AppConfig", "get_config"]
