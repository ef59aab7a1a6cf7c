"""Metadata Cleaner - compile video transformation plans and inspect media metadata."""

from __future__ import annotations

__version__ = "0.1.0"
__description__ = "Compile video transformation plans and inspect before/after media metadata"

# Public API exports
from .config import CleanerConfig, get_config
from .core import (
    ConfigManager,
    EngineError,
    EngineExecutionError,
    EngineUnavailableError,
    FFmpegEngine,
    MediaEngine,
    MediaMetadata,
    OrchestratorBusyError,
    ProcessingError,
    RunResult,
    RunState,
    SourceFile,
    TransformOptions,
    ValidationError,
    extract_metadata,
)
from .plan import ExecutionPlan, PlanStep, compile_plan, plan_splits
from .processors import Orchestrator

__all__ = [
    # Configuration
    "CleanerConfig",
    "ConfigManager",
    "get_config",
    # Core functionality
    "Orchestrator",
    "FFmpegEngine",
    "MediaEngine",
    "compile_plan",
    "plan_splits",
    "extract_metadata",
    # Data classes
    "ExecutionPlan",
    "MediaMetadata",
    "PlanStep",
    "RunResult",
    "RunState",
    "SourceFile",
    "TransformOptions",
    # Exceptions
    "ProcessingError",
    "ValidationError",
    "EngineError",
    "EngineExecutionError",
    "EngineUnavailableError",
    "OrchestratorBusyError",
]
