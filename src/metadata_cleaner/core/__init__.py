"""Core types, engine abstraction, options and metadata extraction."""

from .base import (
    EngineError,
    EngineExecutionError,
    EngineUnavailableError,
    FileDescriptor,
    InvalidRangeError,
    OptionError,
    OrchestratorBusyError,
    PlanError,
    ProcessingError,
    RunResult,
    RunState,
    SourceFile,
    UnresolvedDependencyError,
    ValidationError,
)
from .config import ConfigManager, ProcessingOptions, with_config_overrides
from .duration import DurationResolver
from .engine import FFmpegEngine, MediaEngine
from .metadata import (
    AudioStreamInfo,
    MediaMetadata,
    VideoStreamInfo,
    extract_metadata,
    parse_frame_rate,
    parse_md5_output,
)
from .options import OPTION_KEYS, TransformOptions

__all__ = [
    "OPTION_KEYS",
    "AudioStreamInfo",
    "ConfigManager",
    "DurationResolver",
    "EngineError",
    "EngineExecutionError",
    "EngineUnavailableError",
    "FFmpegEngine",
    "FileDescriptor",
    "InvalidRangeError",
    "MediaEngine",
    "MediaMetadata",
    "OptionError",
    "OrchestratorBusyError",
    "PlanError",
    "ProcessingError",
    "ProcessingOptions",
    "RunResult",
    "RunState",
    "SourceFile",
    "TransformOptions",
    "UnresolvedDependencyError",
    "ValidationError",
    "VideoStreamInfo",
    "extract_metadata",
    "parse_frame_rate",
    "parse_md5_output",
    "with_config_overrides",
]
