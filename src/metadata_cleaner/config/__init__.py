"""Configuration management for the metadata cleaner."""

from __future__ import annotations

from .constants import *  # noqa: F403, F401
from .settings import CleanerConfig, get_config, reset_config

__all__ = [
    "CleanerConfig",
    "get_config",
    "reset_config",
]
