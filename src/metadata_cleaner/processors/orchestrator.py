"""Execution orchestrator: probe, compile, execute, probe again."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import TYPE_CHECKING

from ..config import get_config
from ..config.constants import INPUT_BASENAME, SOURCE_HASH_OUTPUT_NAME
from ..core import (
    DurationResolver,
    EngineError,
    EngineExecutionError,
    EngineUnavailableError,
    FileDescriptor,
    OrchestratorBusyError,
    RunResult,
    RunState,
    extract_metadata,
    parse_md5_output,
)
from ..plan import build_hash_step, build_probe_step, compile_plan

if TYPE_CHECKING:
    import random
    from collections.abc import Callable

    from ..config.settings import CleanerConfig
    from ..core import MediaEngine, MediaMetadata, SourceFile, TransformOptions
    from ..plan import PlanStep

    StepCallback = Callable[[int, int, PlanStep], None]

LOG = logging.getLogger(__name__)


class Orchestrator:
    """
    Runs one processing job at a time against an owned engine handle.

    ``run`` executes synchronously and rejects overlapping runs; ``submit``
    queues runs on a single worker thread so they execute strictly one
    after another. Abandoning a submitted run means dropping its future:
    an engine command already in flight is not interrupted.
    """

    def __init__(
        self,
        engine: MediaEngine,
        *,
        config: CleanerConfig | None = None,
        resolver: DurationResolver | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.engine = engine
        self.config = config or get_config()
        self.rng = rng
        self.durations = resolver or DurationResolver(self._probe_source)
        self.last_error: Exception | None = None
        self._state = RunState.READY if engine.is_loaded else RunState.IDLE
        self._state_lock = threading.Lock()
        self._executor: ThreadPoolExecutor | None = None
        self.logger = logging.getLogger(f"{self.__class__.__module__}.{self.__class__.__name__}")

    @property
    def state(self) -> RunState:
        return self._state

    def _transition(self, state: RunState) -> None:
        self.logger.debug("State %s -> %s", self._state.value, state.value)
        self._state = state

    def _claim(self, state: RunState) -> None:
        """Atomically move from a resting state into ``state``."""
        with self._state_lock:
            if self._state.is_active:
                msg = f"Engine is busy ({self._state.value}); wait for the current run to finish"
                raise OrchestratorBusyError(msg)
            self._transition(state)

    def _fail(self, error: Exception) -> None:
        self.last_error = error
        self._transition(RunState.FAILED)

    def load(self) -> None:
        """Load the engine once; a failed load may be retried."""
        if self.engine.is_loaded:
            with self._state_lock:
                if self._state is RunState.IDLE:
                    self._transition(RunState.READY)
            return

        self._claim(RunState.LOADING)
        try:
            self.engine.load(self.config.engine)
        except EngineUnavailableError as e:
            self._fail(e)
            raise
        except (EngineError, OSError) as e:
            error = EngineUnavailableError(f"Media engine failed to load: {e}")
            self._fail(error)
            raise error from e
        self.last_error = None
        self._transition(RunState.READY)

    def run(
        self,
        source: SourceFile,
        options: TransformOptions,
        *,
        on_step: StepCallback | None = None,
    ) -> RunResult:
        """
        Process ``source`` with ``options``.

        Args:
            source: The media buffer to transform
            options: Validated transformation options
            on_step: Called with (index, total, step) before each plan step

        Returns:
            Output buffer (or segment buffers) with before/after metadata

        Raises:
            EngineUnavailableError: the engine is not loaded
            OrchestratorBusyError: another run is in progress
            ValidationError: the options cannot be compiled for this source
            EngineExecutionError: a plan step failed

        """
        if not self.engine.is_loaded:
            msg = "Media engine is not loaded; call load() first"
            raise EngineUnavailableError(msg)

        self._claim(RunState.PROBING_BEFORE)
        start_time = time.time()
        try:
            result = self._run(source, options, on_step)
        except Exception as e:
            self.logger.error("Run failed for %s in state %s: %s", source.name, self._state.value, e)
            self._fail(e)
            raise

        result.processing_time = time.time() - start_time
        self.last_error = None
        self._transition(RunState.DONE)
        self.logger.info("Processed %s in %.2fs", source.name, result.processing_time)
        return result

    def inspect(self, source: SourceFile, *, with_hash: bool = False) -> MediaMetadata:
        """Probe ``source`` without transforming it."""
        if not self.engine.is_loaded:
            msg = "Media engine is not loaded; call load() first"
            raise EngineUnavailableError(msg)

        self._claim(RunState.PROBING_BEFORE)
        try:
            input_name = f"{INPUT_BASENAME}{source.suffix}"
            self.engine.write_file(input_name, source.data)
            content_hash = self._hash(input_name) if with_hash else None
            metadata = self._probe(input_name, source.descriptor, content_hash)
        except Exception as e:
            self._fail(e)
            raise
        self.durations.remember(source, metadata)
        self._transition(RunState.DONE)
        return metadata

    def _run(self, source: SourceFile, options: TransformOptions, on_step: StepCallback | None) -> RunResult:
        input_name = f"{INPUT_BASENAME}{source.suffix}"
        self.engine.write_file(input_name, source.data)

        source_hash = self._hash(input_name) if options.change_md5_hash.enabled else None
        before = self._probe(input_name, source.descriptor, source_hash)
        self.durations.remember(source, before)

        self._transition(RunState.COMPILING)
        duration = self.durations.resolve(source) if options.requires_duration else before.duration_seconds
        plan = compile_plan(
            options,
            duration,
            config=self.config,
            source_name=input_name,
            sample_rate=before.audio.sample_rate_hz if before.audio else None,
            rng=self.rng,
        )

        self._transition(RunState.EXECUTING)
        for index, step in enumerate(plan.steps):
            if on_step is not None:
                on_step(index, len(plan), step)
            self._execute(index, step)

        if plan.is_split:
            self._transition(RunState.SPLITTING)
            segments = [self.engine.read_file(name) for name in plan.segment_outputs]
            self.logger.info("Produced %d segments from %s", len(segments), source.name)
            return RunResult(plan=plan, before=before, segments=segments)

        output_name = plan.output_name or ""
        output = self.engine.read_file(output_name)
        content_hash = None
        if plan.hash_output:
            content_hash = parse_md5_output(self.engine.read_file(plan.hash_output).decode("utf-8", "replace"))

        self._transition(RunState.PROBING_AFTER)
        after = self._probe(output_name, FileDescriptor(name=output_name, size=len(output)), content_hash)
        return RunResult(plan=plan, before=before, after=after, output=output, content_hash=content_hash)

    def _execute(self, index: int, step: PlanStep) -> list[str]:
        """Run one plan step; a failed command or a missing output fails the run."""
        if step.expects_output and step.output:
            self.engine.remove_file(step.output)
        lines: list[str] = []
        try:
            return_code = self.engine.exec(step.command, lines.append)
        except EngineError as e:
            raise EngineExecutionError(str(e), step_index=index, step=step, return_code=e.return_code) from e

        if return_code != 0:
            last_line = next((line for line in reversed(lines) if line.strip()), "no output")
            raise EngineExecutionError(
                f"{step.program} exited with code {return_code}: {last_line}",
                step_index=index,
                step=step,
                return_code=return_code,
                stderr="\n".join(lines),
            )

        if step.expects_output and step.output and not self.engine.file_exists(step.output):
            raise EngineExecutionError(
                f"declared output {step.output} was not produced",
                step_index=index,
                step=step,
                return_code=return_code,
                stderr="\n".join(lines),
            )
        return lines

    def _probe(
        self,
        name: str,
        descriptor: FileDescriptor,
        content_hash: str | None = None,
        mode: str | None = None,
    ) -> MediaMetadata:
        """Probe a virtual file; failures degrade the metadata instead of raising."""
        step = build_probe_step(name, mode or self.config.engine.probe_mode)
        lines: list[str] = []
        try:
            return_code = self.engine.exec(step.command, lines.append)
        except EngineError as e:
            self.logger.warning("Probe of %s failed: %s", name, e)
        else:
            if return_code != 0 and step.program == "ffprobe":
                self.logger.warning("Probe of %s exited with code %d", name, return_code)
        return extract_metadata("\n".join(lines), descriptor, content_hash)

    def _probe_source(self, source: SourceFile) -> MediaMetadata:
        """Second-opinion duration probe reading the engine's log output."""
        input_name = f"{INPUT_BASENAME}{source.suffix}"
        if not self.engine.file_exists(input_name):
            self.engine.write_file(input_name, source.data)
        return self._probe(input_name, source.descriptor, mode="log")

    def _hash(self, name: str, output: str = SOURCE_HASH_OUTPUT_NAME) -> str | None:
        """Content hash of a virtual file, ``None`` when the engine cannot compute it."""
        step = build_hash_step(name, output)
        try:
            self._execute(-1, step)
            return parse_md5_output(self.engine.read_file(step.output or "").decode("utf-8", "replace"))
        except (EngineError, OSError) as e:
            self.logger.warning("Could not hash %s: %s", name, e)
            return None

    def _executor_for_runs(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="metadata-cleaner")
        return self._executor

    def submit_load(self) -> Future[None]:
        """Load the engine on the worker; runs submitted afterwards wait for it."""
        return self._executor_for_runs().submit(self.load)

    def submit(
        self,
        source: SourceFile,
        options: TransformOptions,
        *,
        on_step: StepCallback | None = None,
    ) -> Future[RunResult]:
        """Queue a run behind any earlier load or run."""
        return self._executor_for_runs().submit(self._run_queued, source, options, on_step)

    def _run_queued(
        self,
        source: SourceFile,
        options: TransformOptions,
        on_step: StepCallback | None,
    ) -> RunResult:
        if not self.engine.is_loaded:
            self.load()
        return self.run(source, options, on_step=on_step)

    def shutdown(self, *, wait: bool = True) -> None:
        """Stop accepting submissions; pending runs finish when ``wait`` is set."""
        if self._executor is not None:
            self._executor.shutdown(wait=wait, cancel_futures=not wait)
            self._executor = None

    def __enter__(self) -> Orchestrator:
        return self

    def __exit__(self, _exc_type: object, _exc_val: object, _exc_tb: object) -> None:
        self.shutdown()
