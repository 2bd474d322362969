"""Configuration module for Vantage."""

from vantage.config.loader import ConfigLoader, load_config
from vantage.config.schema import TurnConfig, VantageConfig

__all__ = [
    "ConfigLoader",
    "TurnConfig",
    "VantageConfig",
    "load_config",
]
