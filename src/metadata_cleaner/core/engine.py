"""Media engine abstraction and its ffmpeg subprocess implementation."""

from __future__ import annotations

import logging
import shutil
import subprocess
import tempfile
import threading
import time
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

from .base import EngineError, EngineUnavailableError

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from ..config.settings import EngineConfig

LOG = logging.getLogger(__name__)


class MediaEngine(ABC):
    """
    The operations the orchestrator needs from a media engine.

    Files live in the engine's own virtual filesystem and are addressed by
    plain names. ``exec`` runs one command at a time.
    """

    @property
    @abstractmethod
    def is_loaded(self) -> bool:
        """Whether ``load`` completed successfully."""

    @abstractmethod
    def load(self, config: EngineConfig) -> None:
        """Initialize the engine; raises ``EngineUnavailableError`` on failure."""

    @abstractmethod
    def write_file(self, name: str, data: bytes) -> None:
        """Store a buffer under ``name``."""

    @abstractmethod
    def exec(self, args: Sequence[str], on_log: Callable[[str], None] | None = None) -> int:
        """
        Run a command and return its exit code.

        ``on_log`` receives each log line while the command runs; returning
        from ``exec`` ends the stream.
        """

    @abstractmethod
    def read_file(self, name: str) -> bytes:
        """Return the buffer stored under ``name``; ``FileNotFoundError`` if absent."""

    @abstractmethod
    def remove_file(self, name: str) -> None:
        """Delete ``name`` if present."""

    def file_exists(self, name: str) -> bool:
        """Whether ``name`` exists in the virtual filesystem."""
        try:
            self.read_file(name)
        except FileNotFoundError:
            return False
        return True


def _check_name(name: str) -> str:
    """Reject names that would escape the virtual filesystem."""
    path = PurePosixPath(name)
    if not name or path.is_absolute() or ".." in path.parts or "\\" in name or len(path.parts) != 1:
        msg = f"Invalid virtual file name: {name!r}"
        raise ValueError(msg)
    return name


class FFmpegEngine(MediaEngine):
    """ffmpeg/ffprobe executables working inside a private temporary directory."""

    def __init__(self) -> None:
        self._config: EngineConfig | None = None
        self._tempdir: tempfile.TemporaryDirectory[str] | None = None
        self._programs: dict[str, str] = {}
        self._lock = threading.Lock()

    @property
    def is_loaded(self) -> bool:
        return self._tempdir is not None

    @property
    def root(self) -> Path:
        if self._tempdir is None:
            msg = "Media engine is not loaded"
            raise EngineUnavailableError(msg)
        return Path(self._tempdir.name)

    def load(self, config: EngineConfig) -> None:
        """Locate the executables and create the working directory."""
        if self.is_loaded:
            LOG.debug("Media engine already loaded")
            return

        programs = {"ffmpeg": config.ffmpeg_path}
        if config.probe_mode == "json":
            programs["ffprobe"] = config.ffprobe_path

        resolved = {}
        missing = []
        for name, location in programs.items():
            found = shutil.which(location)
            if found is None:
                missing.append(f"{name} ({location})")
            else:
                resolved[name] = found

        if missing:
            error_msg = f"Missing FFmpeg executables: {', '.join(missing)}"
            LOG.error(error_msg)
            raise EngineUnavailableError(error_msg)

        try:
            self._tempdir = tempfile.TemporaryDirectory(prefix="metadata-cleaner-", dir=config.workdir)
        except OSError as e:
            msg = f"Cannot create engine working directory: {e}"
            raise EngineUnavailableError(msg) from e

        self._config = config
        self._programs = resolved
        LOG.info("Media engine loaded (%s)", ", ".join(f"{k}={v}" for k, v in resolved.items()))

    def close(self) -> None:
        """Remove the working directory and everything in it."""
        if self._tempdir is not None:
            self._tempdir.cleanup()
            self._tempdir = None
            LOG.debug("Media engine closed")

    def __enter__(self) -> FFmpegEngine:
        return self

    def __exit__(self, _exc_type: object, _exc_val: object, _exc_tb: object) -> None:
        self.close()

    def write_file(self, name: str, data: bytes) -> None:
        (self.root / _check_name(name)).write_bytes(data)

    def read_file(self, name: str) -> bytes:
        return (self.root / _check_name(name)).read_bytes()

    def file_exists(self, name: str) -> bool:
        return (self.root / _check_name(name)).is_file()

    def remove_file(self, name: str) -> None:
        (self.root / _check_name(name)).unlink(missing_ok=True)

    def exec(self, args: Sequence[str], on_log: Callable[[str], None] | None = None) -> int:
        """Run an ffmpeg/ffprobe command with merged stdout/stderr streamed line by line."""
        if not args:
            msg = "Empty engine command"
            raise EngineError(msg)

        root = self.root
        program = self._programs.get(args[0])
        if program is None:
            msg = f"Unsupported engine program: {args[0]}"
            raise EngineError(msg, command=list(args))

        command = [program, *args[1:]]
        timeout = self._config.timeout if self._config else None
        LOG.info("Running engine command: %s", " ".join(args))
        start_time = time.time()

        with self._lock:
            try:
                process = subprocess.Popen(  # noqa: S603
                    command,
                    cwd=root,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.STDOUT,
                    text=True,
                    encoding="utf-8",
                    errors="replace",
                )
            except OSError as e:
                msg = f"Unexpected error starting {args[0]}: {e}"
                raise EngineError(msg, command=list(args)) from e

            timer = None
            if timeout:
                timer = threading.Timer(timeout, process.kill)
                timer.start()
            try:
                for line in process.stdout or ():
                    line = line.rstrip("\r\n")
                    LOG.debug("[%s] %s", args[0], line)
                    if on_log is not None:
                        on_log(line)
                return_code = process.wait()
            finally:
                if timer is not None:
                    timer.cancel()
                if process.poll() is None:
                    process.kill()
                    process.wait()

        processing_time = time.time() - start_time
        if timeout and processing_time >= timeout and return_code != 0:
            msg = f"Engine command timed out after {timeout}s"
            raise EngineError(msg, command=list(args), return_code=return_code)

        LOG.debug("Engine command completed in %.2fs with code %d", processing_time, return_code)
        return return_code
