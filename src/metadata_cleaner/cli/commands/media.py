"""Media inspection and processing CLI commands."""

from __future__ import annotations

import json
import logging
import random
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml
from tqdm import tqdm

from ...config.constants import INPUT_BASENAME
from ...core import FFmpegEngine, OptionError, SourceFile, TransformOptions, ValidationError
from ...plan import compile_plan
from ...processors import Orchestrator
from ..report import format_metadata_report

if TYPE_CHECKING:
    import argparse

    from ...config.settings import CleanerConfig
    from ...core import ConfigManager, MediaMetadata, RunResult
    from ...plan import PlanStep

LOG = logging.getLogger(__name__)


def load_options_file(path: Path) -> TransformOptions:
    """Read a YAML or JSON options mapping and validate it."""
    try:
        with path.open(encoding="utf-8") as f:
            raw: Any = yaml.safe_load(f)
    except OSError as e:
        msg = f"Cannot read options file: {e}"
        raise ValidationError(msg, file_path=path, cause=e) from e
    except yaml.YAMLError as e:
        msg = f"Options file is not valid YAML or JSON: {e}"
        raise ValidationError(msg, file_path=path, cause=e) from e

    if raw is not None and not isinstance(raw, dict):
        msg = f"Options file must contain a mapping, got {type(raw).__name__}"
        raise OptionError(msg)
    return TransformOptions.from_dict(raw)


def _read_source(path: Path) -> SourceFile:
    if not path.is_file():
        msg = f"Input file not found: {path}"
        raise ValidationError(msg, file_path=path)
    return SourceFile.from_path(path)


class StepProgress:
    """tqdm bar over plan steps, fed by the orchestrator's step callback."""

    def __init__(self, description: str, *, disable: bool = False) -> None:
        self.description = description
        self.disable = disable
        self._bar: tqdm | None = None

    def __call__(self, index: int, total: int, step: PlanStep) -> None:
        if self._bar is None:
            self._bar = tqdm(total=total, desc=self.description, unit="step", disable=self.disable)
        self._bar.n = index
        self._bar.set_postfix_str(step.kind.value)
        self._bar.refresh()

    def finish(self) -> None:
        if self._bar is not None:
            self._bar.n = self._bar.total
            self._bar.set_postfix_str("done")
            self._bar.refresh()

    def close(self) -> None:
        if self._bar is not None:
            self._bar.close()
            self._bar = None


class MediaCommands:
    """Handlers for the probe, plan and process commands."""

    def __init__(self, config_manager: ConfigManager) -> None:
        self.config_manager = config_manager

    def add_subcommands(self, subparsers: argparse._SubParsersAction) -> None:
        """Register the media commands on the top-level subparsers."""
        probe_parser = subparsers.add_parser("probe", help="Show the metadata of a media file")
        probe_parser.add_argument("file", type=Path, help="Path to the media file")
        probe_parser.add_argument("--json", action="store_true", help="Print the metadata record as JSON")
        probe_parser.add_argument("--hash", action="store_true", help="Also compute the content MD5")

        plan_parser = subparsers.add_parser("plan", help="Print the engine commands without running them")
        plan_parser.add_argument("file", type=Path, help="Path to the media file")
        plan_parser.add_argument("--options", type=Path, required=True, help="YAML or JSON options file")
        plan_parser.add_argument("--duration", type=float, help="Source duration in seconds (skips probing)")
        plan_parser.add_argument("--seed", type=int, help="Seed for random split points and random values")
        plan_parser.add_argument(
            "--random-values", action="store_true", help="Draw every enabled option's parameters at random"
        )

        process_parser = subparsers.add_parser("process", help="Transform a media file")
        process_parser.add_argument("file", type=Path, help="Path to the media file")
        process_parser.add_argument("--options", type=Path, required=True, help="YAML or JSON options file")
        process_parser.add_argument("--output-dir", type=Path, help="Where to write results (default: next to input)")
        process_parser.add_argument("--seed", type=int, help="Seed for random split points and random values")
        process_parser.add_argument(
            "--random-values", action="store_true", help="Draw every enabled option's parameters at random"
        )
        process_parser.add_argument("--no-progress", action="store_true", help="Disable the progress bar")

    def handle_command(self, args: argparse.Namespace) -> int:
        """Dispatch a parsed command."""
        handlers = {
            "probe": self._handle_probe,
            "plan": self._handle_plan,
            "process": self._handle_process,
        }
        handler = handlers.get(args.command)
        if handler is None:
            LOG.error("Unknown command: %s", args.command)
            return 1
        return handler(args)

    def _orchestrator(self, engine: FFmpegEngine, config: CleanerConfig, seed: int | None = None) -> Orchestrator:
        rng = random.Random(seed) if seed is not None else None  # noqa: S311
        orchestrator = Orchestrator(engine, config=config, rng=rng)
        orchestrator.load()
        return orchestrator

    def _load_options(self, args: argparse.Namespace) -> TransformOptions:
        options = load_options_file(args.options)
        if args.random_values:
            options = options.randomized(random.Random(args.seed))  # noqa: S311
            LOG.info("Using random option values (seed %s)", args.seed)
        return options

    def _handle_probe(self, args: argparse.Namespace) -> int:
        source = _read_source(args.file)
        config = self.config_manager.resolved()

        with FFmpegEngine() as engine:
            metadata = self._orchestrator(engine, config).inspect(source, with_hash=args.hash)

        if args.json:
            print(json.dumps(metadata.to_dict(), indent=2))
        else:
            print(format_metadata_report(metadata))
        return 0

    def _handle_plan(self, args: argparse.Namespace) -> int:
        source = _read_source(args.file)
        options = self._load_options(args)
        config = self.config_manager.resolved()
        rng = random.Random(args.seed) if args.seed is not None else None  # noqa: S311

        duration = args.duration
        sample_rate = None
        needs_duration = duration is None and options.requires_duration
        if needs_duration or options.voice_changer.enabled:
            LOG.info("Probing %s for its duration and sample rate", source.name)
            metadata = self._probe_for_plan(source, config)
            if duration is None:
                duration = metadata.duration_seconds
            sample_rate = metadata.audio.sample_rate_hz if metadata.audio else None

        plan = compile_plan(
            options,
            duration,
            config=config,
            source_name=f"{INPUT_BASENAME}{source.suffix}",
            sample_rate=sample_rate,
            rng=rng,
        )
        for index, step in enumerate(plan.steps, start=1):
            print(f"{index:>2}. {step.describe()}")
        if plan.segments:
            print("\nSegments:")
            for index, segment in enumerate(plan.segments, start=1):
                print(f"  {index:>2}. {segment.start:.3f}s - {segment.end:.3f}s")
        return 0

    def _probe_for_plan(self, source: SourceFile, config: CleanerConfig) -> MediaMetadata:
        with FFmpegEngine() as engine:
            return self._orchestrator(engine, config).inspect(source)

    def _handle_process(self, args: argparse.Namespace) -> int:
        source = _read_source(args.file)
        options = self._load_options(args)
        config = self.config_manager.resolved()
        output_dir = args.output_dir or args.file.parent

        progress = StepProgress(f"Processing {source.name}", disable=args.no_progress)
        with FFmpegEngine() as engine:
            orchestrator = self._orchestrator(engine, config, args.seed)
            try:
                result = orchestrator.run(source, options, on_step=progress)
                progress.finish()
            finally:
                progress.close()
                orchestrator.shutdown()

        written = write_results(result, args.file, output_dir, config.output.container)
        for path in written:
            print(f"Wrote {path}")
        if result.after is not None:
            print(format_metadata_report(result.before, result.after))
        else:
            print(format_metadata_report(result.before))
        LOG.info("Finished %s in %.2fs", source.name, result.processing_time)
        return 0


def write_results(result: RunResult, source_path: Path, output_dir: Path, container: str) -> list[Path]:
    """Write the output or the split segments beside each other in ``output_dir``."""
    output_dir.mkdir(parents=True, exist_ok=True)
    stem = source_path.stem
    written: list[Path] = []

    if result.is_split:
        for index, data in enumerate(result.segments, start=1):
            path = output_dir / f"{stem}_part{index:02d}.{container}"
            path.write_bytes(data)
            written.append(path)
    elif result.output is not None:
        path = output_dir / f"{stem}_cleaned.{container}"
        path.write_bytes(result.output)
        written.append(path)
    return written
