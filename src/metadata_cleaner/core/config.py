"""Configuration manager with override contexts."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ..config import CleanerConfig
from ..config import get_config as _get_global_config

if TYPE_CHECKING:
    from pathlib import Path

LOG = logging.getLogger(__name__)


@dataclass
class ProcessingOptions:
    """Command-line options that can override configuration."""

    timeout: int | None = None
    probe_mode: str | None = None
    container: str | None = None


class ConfigManager:
    """Configuration manager with dotted-path overrides and context support."""

    def __init__(self, config_path: Path | None = None) -> None:
        """
        Initialize configuration manager.

        Args:
            config_path: Optional path to config file

        """
        self._config = CleanerConfig.load_from_file(config_path) if config_path else _get_global_config()
        self._overrides: dict[str, Any] = {}
        self._context_stack: list[dict[str, Any]] = []

    @property
    def config(self) -> CleanerConfig:
        """Get the base configuration."""
        return self._config

    def set_override(self, key_path: str, value: object) -> None:
        """Set a temporary configuration override."""
        self._overrides[key_path] = value

    def push_context(self, overrides: dict[str, Any]) -> None:
        """Push a new configuration context."""
        self._context_stack.append(self._overrides.copy())
        self._overrides.update(overrides)

    def pop_context(self) -> None:
        """Pop the current configuration context."""
        if self._context_stack:
            self._overrides = self._context_stack.pop()

    def apply_processing_options(self, options: ProcessingOptions) -> None:
        """Apply processing options as configuration overrides."""
        overrides: dict[str, Any] = {}

        if options.timeout is not None:
            overrides["engine.timeout"] = options.timeout
        if options.probe_mode is not None:
            overrides["engine.probe_mode"] = options.probe_mode
        if options.container is not None:
            overrides["output.container"] = options.container.lstrip(".")

        for key, value in overrides.items():
            self.set_override(key, value)

    def resolved(self) -> CleanerConfig:
        """Return a copy of the configuration with current overrides applied."""
        resolved = copy.deepcopy(self._config)
        for key_path, value in self._overrides.items():
            *parents, leaf = key_path.split(".")
            target: object = resolved
            try:
                for part in parents:
                    target = getattr(target, part)
                if not hasattr(target, leaf):
                    raise AttributeError(leaf)
            except AttributeError:
                LOG.warning("Ignoring unknown configuration override '%s'", key_path)
                continue
            setattr(target, leaf, value)
        return resolved


class ConfigContext:
    """Context manager for temporary configuration changes."""

    def __init__(self, config_manager: ConfigManager, overrides: dict[str, Any]) -> None:
        self.config_manager = config_manager
        self.overrides = overrides

    def __enter__(self) -> ConfigManager:
        """Enter the configuration context."""
        self.config_manager.push_context(self.overrides)
        return self.config_manager

    def __exit__(self, _exc_type: object, _exc_val: object, _exc_tb: object) -> None:
        """Exit the configuration context."""
        self.config_manager.pop_context()


def with_config_overrides(config_manager: ConfigManager, **overrides: object) -> ConfigContext:
    """Create a context with configuration overrides."""
    return ConfigContext(config_manager, overrides)
