"""Configuration management for the metadata cleaner."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

LOG = logging.getLogger(__name__)

VALID_PROBE_MODES = ("json", "log")
VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


# Configuration singleton
class _ConfigSingleton:
    """Configuration singleton holder."""

    _instance: CleanerConfig | None = None

    @classmethod
    def get_instance(cls) -> CleanerConfig:
        """Get the configuration instance."""
        if cls._instance is None:
            config_path = Path.cwd() / "config.yaml"
            if config_path.exists():
                cls._instance = CleanerConfig.load_from_file(config_path)
            else:
                cls._instance = CleanerConfig()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset the configuration instance."""
        cls._instance = None


_config_singleton = _ConfigSingleton()


@dataclass
class EngineConfig:
    """Media engine location and invocation settings."""

    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    probe_mode: str = "json"  # "json" runs ffprobe, "log" parses ``ffmpeg -i`` output
    timeout: int = 300
    workdir: str | None = None  # parent for the engine's private directory


@dataclass
class OutputConfig:
    """Naming and encoding of produced files."""

    container: str = "mp4"
    output_name: str = "output"
    segment_prefix: str = "segment"
    video_codec: str | None = None
    audio_codec: str | None = None

    @property
    def output_file(self) -> str:
        return f"{self.output_name}.{self.container}"

    def segment_file(self, index: int) -> str:
        return f"{self.segment_prefix}_{index:03d}.{self.container}"


@dataclass
class StickerConfig:
    """Appearance of the generated sticker asset."""

    x: int = 10
    y: int = 10
    color: str = "white"
    opacity: float = 0.5


@dataclass
class AudioConfig:
    """Audio filter defaults."""

    default_sample_rate: int = 44100


@dataclass
class ColorConfig:
    """Colour description written when the ICC option is enabled."""

    primaries: str = "bt709"
    transfer: str = "bt709"
    space: str = "bt709"


@dataclass
class GlobalConfig:
    """Global settings."""

    log_level: str = "WARNING"  # used when no -v flag is given


@dataclass
class CleanerConfig:
    """Main configuration class."""

    engine: EngineConfig = field(default_factory=EngineConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    sticker: StickerConfig = field(default_factory=StickerConfig)
    audio: AudioConfig = field(default_factory=AudioConfig)
    color: ColorConfig = field(default_factory=ColorConfig)
    global_: GlobalConfig = field(default_factory=GlobalConfig)

    @classmethod
    def load_from_file(cls, config_path: Path) -> CleanerConfig:
        """Load configuration from YAML file."""
        try:
            with config_path.open("r", encoding="utf-8") as f:
                data = yaml.safe_load(f)

            return cls._from_dict(data or {})
        except (OSError, yaml.YAMLError) as e:
            LOG.warning("Failed to load config from %s: %s", config_path, e)
            return cls()

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> CleanerConfig:
        """Create config from dictionary."""
        if not isinstance(data, dict):
            LOG.warning("Ignoring configuration: expected a mapping, got %s", type(data).__name__)
            return cls()

        return cls(
            engine=cls._parse_engine_config(data.get("engine") or {}),
            output=cls._parse_output_config(data.get("output") or {}),
            sticker=cls._parse_sticker_config(data.get("sticker") or {}),
            audio=AudioConfig(
                default_sample_rate=_positive_int(
                    (data.get("audio") or {}).get("default_sample_rate"), 44100, "audio.default_sample_rate"
                )
            ),
            color=cls._parse_color_config(data.get("color") or {}),
            global_=cls._parse_global_config(data.get("global") or {}),
        )

    @classmethod
    def _parse_engine_config(cls, engine_data: dict[str, Any]) -> EngineConfig:
        """Parse engine configuration."""
        probe_mode = engine_data.get("probe_mode", "json")
        if probe_mode not in VALID_PROBE_MODES:
            LOG.warning(
                "Invalid probe mode '%s'. Using 'json'. Valid options: %s",
                probe_mode,
                ", ".join(VALID_PROBE_MODES),
            )
            probe_mode = "json"

        return EngineConfig(
            ffmpeg_path=str(engine_data.get("ffmpeg_path", "ffmpeg")),
            ffprobe_path=str(engine_data.get("ffprobe_path", "ffprobe")),
            probe_mode=probe_mode,
            timeout=_positive_int(engine_data.get("timeout"), 300, "engine.timeout"),
            workdir=engine_data.get("workdir"),
        )

    @classmethod
    def _parse_output_config(cls, output_data: dict[str, Any]) -> OutputConfig:
        """Parse output configuration."""
        return OutputConfig(
            container=str(output_data.get("container", "mp4")).lstrip("."),
            output_name=str(output_data.get("output_name", "output")),
            segment_prefix=str(output_data.get("segment_prefix", "segment")),
            video_codec=output_data.get("video_codec"),
            audio_codec=output_data.get("audio_codec"),
        )

    @classmethod
    def _parse_sticker_config(cls, sticker_data: dict[str, Any]) -> StickerConfig:
        """Parse sticker configuration."""
        opacity = sticker_data.get("opacity", 0.5)
        try:
            opacity = float(opacity)
        except (TypeError, ValueError):
            opacity = -1.0
        if not 0.0 <= opacity <= 1.0:
            LOG.warning("Invalid sticker opacity '%s'. Using 0.5", sticker_data.get("opacity"))
            opacity = 0.5

        return StickerConfig(
            x=_non_negative_int(sticker_data.get("x"), 10, "sticker.x"),
            y=_non_negative_int(sticker_data.get("y"), 10, "sticker.y"),
            color=str(sticker_data.get("color", "white")),
            opacity=opacity,
        )

    @classmethod
    def _parse_color_config(cls, color_data: dict[str, Any]) -> ColorConfig:
        """Parse colour description configuration."""
        return ColorConfig(
            primaries=str(color_data.get("primaries", "bt709")),
            transfer=str(color_data.get("transfer", "bt709")),
            space=str(color_data.get("space", "bt709")),
        )

    @classmethod
    def _parse_global_config(cls, global_data: dict[str, Any]) -> GlobalConfig:
        """Parse global configuration."""
        log_level = str(global_data.get("log_level", "WARNING")).upper()
        if log_level not in VALID_LOG_LEVELS:
            LOG.warning("Invalid log level '%s'. Using 'WARNING'", log_level)
            log_level = "WARNING"
        return GlobalConfig(log_level=log_level)


def _positive_int(value: object, default: int, name: str) -> int:
    """Coerce a config value to a positive int, warning and defaulting otherwise."""
    if value is None:
        return default
    try:
        number = int(value)  # type: ignore[call-overload]
    except (TypeError, ValueError):
        number = 0
    if number <= 0:
        LOG.warning("Invalid value '%s' for %s. Using %d", value, name, default)
        return default
    return number


def _non_negative_int(value: object, default: int, name: str) -> int:
    """Coerce a config value to an int >= 0, warning and defaulting otherwise."""
    if value is None:
        return default
    try:
        number = int(value)  # type: ignore[call-overload]
    except (TypeError, ValueError):
        number = -1
    if number < 0:
        LOG.warning("Invalid value '%s' for %s. Using %d", value, name, default)
        return default
    return number


def get_config() -> CleanerConfig:
    """Get the global configuration instance."""
    return _config_singleton.get_instance()


def reset_config() -> None:
    """Forget the cached global configuration."""
    _config_singleton.reset()
