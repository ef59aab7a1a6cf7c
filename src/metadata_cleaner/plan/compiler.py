"""Compile transformation options into an ordered execution plan."""

from __future__ import annotations

import logging
import shlex
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from ..config import get_config
from ..config.constants import HASH_OUTPUT_NAME, STICKER_ASSET_NAME, STICKER_VIDEO_PAD
from ..core.base import InvalidRangeError, PlanError, UnresolvedDependencyError
from ..core.options import DURATION_DEPENDENT_OPTIONS
from .filter_graph import FilterEntry, FilterGraph
from .splits import SplitInterval, plan_splits

if TYPE_CHECKING:
    import random
    from collections.abc import Iterator

    from ..config.settings import CleanerConfig
    from ..core.options import TransformOptions

LOG = logging.getLogger(__name__)


class StepKind(Enum):
    """What a plan step does to the virtual filesystem."""

    PROBE = "probe"
    TRANSFORM = "transform"
    GENERATE_ASSET = "generate-asset"
    HASH = "hash"


@dataclass(frozen=True)
class PlanStep:
    """
    One engine invocation.

    ``arguments[0]`` names the engine program. ``inputs`` are the virtual
    files the step reads and ``output`` the file it must leave behind when
    ``expects_output`` is set.
    """

    kind: StepKind
    arguments: tuple[str, ...]
    expects_output: bool = True
    output: str | None = None
    inputs: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.arguments:
            msg = f"{self.kind.value} step has no arguments"
            raise PlanError(msg)
        if self.expects_output and not self.output:
            msg = f"{self.kind.value} step expects an output but names none"
            raise PlanError(msg)

    @property
    def program(self) -> str:
        return self.arguments[0]

    @property
    def command(self) -> list[str]:
        """Argument list handed to the engine."""
        return list(self.arguments)

    def describe(self) -> str:
        return f"[{self.kind.value}] {shlex.join(self.arguments)}"


@dataclass(frozen=True)
class TrimBounds:
    """Kept window of the source, in seconds."""

    start: float
    end: float

    @property
    def duration(self) -> float:
        return self.end - self.start


@dataclass(frozen=True)
class ExecutionPlan:
    """Steps in dependency order plus what the compiler decided along the way."""

    steps: tuple[PlanStep, ...]
    source_name: str
    output_name: str | None = None
    trim: TrimBounds | None = None
    filters: tuple[FilterEntry, ...] = ()
    segments: tuple[SplitInterval, ...] = ()

    def __post_init__(self) -> None:
        available = {self.source_name}
        for index, step in enumerate(self.steps):
            missing = [name for name in step.inputs if name not in available]
            if missing:
                msg = f"Step {index + 1} ({step.kind.value}) reads {', '.join(missing)} before it is produced"
                raise PlanError(msg)
            if step.output:
                available.add(step.output)

    @property
    def is_split(self) -> bool:
        return bool(self.segments)

    @property
    def transform_steps(self) -> tuple[PlanStep, ...]:
        return tuple(step for step in self.steps if step.kind is StepKind.TRANSFORM)

    @property
    def segment_outputs(self) -> tuple[str, ...]:
        if not self.is_split:
            return ()
        return tuple(step.output for step in self.transform_steps if step.output)

    @property
    def hash_output(self) -> str | None:
        for step in self.steps:
            if step.kind is StepKind.HASH:
                return step.output
        return None

    def __len__(self) -> int:
        return len(self.steps)

    def __iter__(self) -> Iterator[PlanStep]:
        return iter(self.steps)


def format_number(value: float) -> str:
    """Render a number for an engine argument without float noise."""
    text = f"{float(value):.6f}".rstrip("0").rstrip(".")
    return "0" if text in ("", "-0") else text


def build_probe_step(name: str, mode: str = "json") -> PlanStep:
    """Read-only inspection of a virtual file."""
    if mode == "json":
        arguments = (
            "ffprobe",
            "-v",
            "quiet",
            "-print_format",
            "json",
            "-show_format",
            "-show_streams",
            name,
        )
    else:
        # ffmpeg without an output prints the input description, then exits non-zero
        arguments = ("ffmpeg", "-hide_banner", "-i", name)
    return PlanStep(kind=StepKind.PROBE, arguments=arguments, expects_output=False, inputs=(name,))


def build_hash_step(name: str, output: str = HASH_OUTPUT_NAME) -> PlanStep:
    """Content hash of a virtual file's streams, written to the md5 side file."""
    arguments = (
        "ffmpeg",
        "-y",
        "-hide_banner",
        "-v",
        "error",
        "-i",
        name,
        "-map",
        "0",
        "-c",
        "copy",
        "-f",
        "md5",
        output,
    )
    return PlanStep(kind=StepKind.HASH, arguments=arguments, output=output, inputs=(name,))


def build_sticker_step(size: int, config: CleanerConfig) -> PlanStep:
    """Render a square translucent sticker image."""
    sticker = config.sticker
    source = f"color=c={sticker.color}@{format_number(sticker.opacity)}:s={size}x{size},format=rgba"
    arguments = (
        "ffmpeg",
        "-y",
        "-hide_banner",
        "-f",
        "lavfi",
        "-i",
        source,
        "-frames:v",
        "1",
        STICKER_ASSET_NAME,
    )
    return PlanStep(kind=StepKind.GENERATE_ASSET, arguments=arguments, output=STICKER_ASSET_NAME)


def build_filter_graph(
    options: TransformOptions,
    config: CleanerConfig,
    sample_rate: int | None = None,
) -> FilterGraph:
    """
    Chain the enabled filters in fixed priority order.

    Video: saturation, lightness, padding crop, scale, sticker overlay.
    Audio: pitch shift. The order is part of the result: cropping after
    scaling, or brightening before saturating, looks different.
    """
    graph = FilterGraph()

    if options.change_saturation.enabled:
        graph.chain_video(f"eq=saturation={format_number(options.change_saturation.value)}")

    if options.change_hsl_lightness.enabled:
        brightness = options.change_hsl_lightness.value / 100
        graph.chain_video(f"eq=brightness={format_number(brightness)}")

    if options.remove_padding.enabled:
        padding = options.remove_padding
        graph.chain_video(f"crop=iw-{padding.horizontal}:ih-{padding.vertical}:{padding.left}:{padding.top}")

    if options.change_resolution.enabled:
        resolution = options.change_resolution
        graph.chain_video(f"scale={resolution.width}:{resolution.height}")

    if options.add_sticker.enabled:
        graph.chain_video(
            f"overlay={config.sticker.x}:{config.sticker.y}",
            extra_inputs=(STICKER_VIDEO_PAD,),
        )

    if options.voice_changer.enabled:
        pitch = options.voice_changer.value
        rate = sample_rate or config.audio.default_sample_rate
        graph.chain_audio(
            f"asetrate={rate}*{format_number(pitch)},aresample={rate},atempo={format_number(1 / pitch)}"
        )

    return graph


def compute_trim_bounds(options: TransformOptions, duration: float | None) -> TrimBounds | None:
    """Resolve the kept window, or ``None`` when no trim option is enabled."""
    trim_start = options.trim_video_start
    trim_end = options.trim_video_end
    if not (trim_start.enabled or trim_end.enabled):
        return None
    if duration is None:
        msg = "Trimming requires the source duration"
        raise UnresolvedDependencyError(msg, options=("trimVideoStart", "trimVideoEnd"))

    start = float(trim_start.value) if trim_start.enabled else 0.0
    end = max(0.0, duration - trim_end.value) if trim_end.enabled else float(duration)
    if start >= end:
        msg = f"Trim leaves nothing to keep: start {format_number(start)}s >= end {format_number(end)}s"
        raise InvalidRangeError(msg, start=start, end=end)
    return TrimBounds(start=start, end=end)


def build_global_arguments(options: TransformOptions, config: CleanerConfig) -> list[str]:
    """Output options that apply to the whole file rather than a stream pad."""
    args: list[str] = []

    if options.change_frame_rate.enabled:
        args.extend(["-r", format_number(options.change_frame_rate.value)])
    if options.change_video_bitrate.enabled:
        args.extend(["-b:v", f"{format_number(options.change_video_bitrate.value)}k"])
    if options.change_audio_bitrate.enabled:
        args.extend(["-b:a", f"{format_number(options.change_audio_bitrate.value)}k"])

    if config.output.video_codec:
        args.extend(["-c:v", config.output.video_codec])
    if config.output.audio_codec:
        args.extend(["-c:a", config.output.audio_codec])

    if options.change_exif_data.enabled:
        # Drop everything inherited from the source before new tags are written
        args.extend(["-map_metadata", "-1"])

    if options.change_video_icc.enabled:
        color = config.color
        args.extend(
            [
                "-color_primaries",
                color.primaries,
                "-color_trc",
                color.transfer,
                "-colorspace",
                color.space,
            ]
        )

    if options.change_metadata.enabled:
        # Blank values are written too: they clear the source's tags
        for name, value in options.change_metadata.tags.items():
            args.extend(["-metadata", f"{name}={value}"])

    return args


def _transform_step(
    *,
    source_name: str,
    output: str,
    graph: FilterGraph,
    global_args: list[str],
    window: TrimBounds | SplitInterval | None,
    with_sticker: bool,
) -> PlanStep:
    args = ["ffmpeg", "-y", "-hide_banner"]
    if window is not None:
        args.extend(["-ss", format_number(window.start), "-to", format_number(window.end)])
    args.extend(["-i", source_name])

    inputs = [source_name]
    if with_sticker:
        args.extend(["-i", STICKER_ASSET_NAME])
        inputs.append(STICKER_ASSET_NAME)

    if not graph.is_empty:
        args.extend(["-filter_complex", graph.render(), *graph.map_arguments()])

    args.extend(global_args)
    args.append(output)
    return PlanStep(kind=StepKind.TRANSFORM, arguments=tuple(args), output=output, inputs=tuple(inputs))


def compile_plan(
    options: TransformOptions,
    source_duration: float | None,
    *,
    config: CleanerConfig | None = None,
    source_name: str = "input.mp4",
    sample_rate: int | None = None,
    rng: random.Random | None = None,
) -> ExecutionPlan:
    """
    Turn options into engine steps in dependency order.

    Args:
        options: Validated transformation options
        source_duration: Source length in seconds, ``None`` when unknown
        config: Naming and encoding settings (global config by default)
        source_name: Virtual file name of the source
        sample_rate: Source audio sample rate, used by the pitch filter
        rng: Random source for split points

    Returns:
        The complete plan; nothing is returned when validation fails

    Raises:
        UnresolvedDependencyError: duration needed but unknown
        InvalidRangeError: trim bounds leave an empty range

    """
    config = config or get_config()

    if options.requires_duration and source_duration is None:
        needed = tuple(key for key in DURATION_DEPENDENT_OPTIONS if options.get(key).enabled)
        msg = f"Source duration is unknown but required by: {', '.join(needed)}"
        raise UnresolvedDependencyError(msg, options=needed)

    graph = build_filter_graph(options, config, sample_rate)
    trim = compute_trim_bounds(options, source_duration)
    global_args = build_global_arguments(options, config)
    with_sticker = options.add_sticker.enabled

    steps: list[PlanStep] = []
    if with_sticker:
        steps.append(build_sticker_step(options.add_sticker.size, config))

    if options.random_splits.enabled:
        window_start = trim.start if trim else 0.0
        window_end = trim.end if trim else float(source_duration or 0.0)
        segments = plan_splits(
            options.random_splits.count,
            window_end - window_start,
            rng,
            offset=window_start,
        )
        LOG.info("Random splits enabled: %d segments replace the single output", len(segments))
        if options.change_md5_hash.enabled:
            LOG.info("No single output in split mode, skipping content hash")

        for index, segment in enumerate(segments):
            steps.append(
                _transform_step(
                    source_name=source_name,
                    output=config.output.segment_file(index),
                    graph=graph,
                    global_args=global_args,
                    window=segment,
                    with_sticker=with_sticker,
                )
            )
        return ExecutionPlan(
            steps=tuple(steps),
            source_name=source_name,
            trim=trim,
            filters=graph.entries,
            segments=tuple(segments),
        )

    output_name = config.output.output_file
    steps.append(
        _transform_step(
            source_name=source_name,
            output=output_name,
            graph=graph,
            global_args=global_args,
            window=trim,
            with_sticker=with_sticker,
        )
    )
    if options.change_md5_hash.enabled:
        steps.append(build_hash_step(output_name))

    LOG.info(
        "Compiled %d step(s) with %d filter(s) for %s",
        len(steps),
        len(graph),
        ", ".join(options.enabled_keys) or "no options",
    )
    return ExecutionPlan(
        steps=tuple(steps),
        source_name=source_name,
        output_name=output_name,
        trim=trim,
        filters=graph.entries,
    )
