"""Base error taxonomy and run result types."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

    from ..plan.compiler import ExecutionPlan, PlanStep
    from .metadata import MediaMetadata

LOG = logging.getLogger(__name__)


class RunState(Enum):
    """State of the execution orchestrator."""

    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    PROBING_BEFORE = "probing_before"
    COMPILING = "compiling"
    EXECUTING = "executing"
    PROBING_AFTER = "probing_after"
    SPLITTING = "splitting"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_active(self) -> bool:
        """Whether a load or a run currently owns the engine."""
        return self in _ACTIVE_STATES


_ACTIVE_STATES = frozenset(
    {
        RunState.LOADING,
        RunState.PROBING_BEFORE,
        RunState.COMPILING,
        RunState.EXECUTING,
        RunState.PROBING_AFTER,
        RunState.SPLITTING,
    }
)


@dataclass(frozen=True)
class FileDescriptor:
    """Name and size of a media file, as known to the caller."""

    name: str
    size: int | None = None


@dataclass(frozen=True)
class SourceFile:
    """A media file handed to the orchestrator as an in-memory buffer."""

    name: str
    data: bytes = field(repr=False)

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def suffix(self) -> str:
        """File extension including the dot, ``.mp4`` when the name has none."""
        _, dot, ext = self.name.rpartition(".")
        if not dot or not ext or "/" in ext:
            return ".mp4"
        return f".{ext.lower()}"

    @property
    def descriptor(self) -> FileDescriptor:
        return FileDescriptor(name=self.name, size=self.size)

    @classmethod
    def from_path(cls, path: Path) -> SourceFile:
        """Read a file from disk into a source buffer."""
        return cls(name=path.name, data=path.read_bytes())


@dataclass
class RunResult:
    """Outcome of one processing run."""

    plan: ExecutionPlan
    before: MediaMetadata
    after: MediaMetadata | None = None
    output: bytes | None = None
    segments: list[bytes] = field(default_factory=list)
    content_hash: str | None = None
    processing_time: float = 0.0

    @property
    def is_split(self) -> bool:
        return bool(self.segments)


class ProcessingError(Exception):
    """Base exception for media processing errors."""

    def __init__(
        self,
        message: str,
        file_path: Path | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.file_path = file_path
        self.cause = cause


class ValidationError(ProcessingError):
    """Invalid user input, reported before any engine work."""


class OptionError(ValidationError):
    """An option value or option key is not acceptable."""

    def __init__(self, message: str, *, option: str | None = None, field_name: str | None = None) -> None:
        super().__init__(message)
        self.option = option
        self.field_name = field_name


class UnresolvedDependencyError(ValidationError):
    """A duration-dependent option is enabled but the duration is unknown."""

    def __init__(self, message: str, *, options: tuple[str, ...] = ()) -> None:
        super().__init__(message)
        self.options = options


class InvalidRangeError(ValidationError):
    """Trim bounds collapse to an empty or inverted range."""

    def __init__(self, message: str, *, start: float, end: float) -> None:
        super().__init__(message)
        self.start = start
        self.end = end


class PlanError(ValidationError):
    """An execution plan violates its ordering invariant."""


class EngineError(ProcessingError):
    """Media engine failure with command context."""

    def __init__(
        self,
        message: str,
        *,
        command: list[str] | None = None,
        return_code: int | None = None,
        stderr: str | None = None,
        file_path: Path | None = None,
    ) -> None:
        super().__init__(message, file_path=file_path)
        self.command = command
        self.return_code = return_code
        self.stderr = stderr


class EngineUnavailableError(EngineError):
    """The engine could not be loaded, or was used before loading."""


class EngineExecutionError(EngineError):
    """A plan step failed inside the engine."""

    def __init__(
        self,
        message: str,
        *,
        step_index: int,
        step: PlanStep,
        return_code: int | None = None,
        stderr: str | None = None,
    ) -> None:
        super().__init__(
            f"Step {step_index + 1} ({step.kind.value}) failed: {message}",
            command=list(step.arguments),
            return_code=return_code,
            stderr=stderr,
        )
        self.step_index = step_index
        self.step = step
        self.underlying_message = message


class OrchestratorBusyError(ProcessingError):
    """A run was requested while another run still owns the engine."""
