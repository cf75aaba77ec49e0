"""Configuration loading and logging helpers."""

from .config_loader import ConfigLoader, load_config
from .logging_setup import setup_logging, setup_logging_from_config

__all__ = [
    "ConfigLoader",
    "load_config",
    "setup_logging",
    "setup_logging_from_config",
]
