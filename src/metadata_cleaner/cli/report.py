"""Shared metadata and failure display utilities for CLI commands."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..config.constants import REPORT_LABEL_WIDTH, REPORT_VALUE_WIDTH
from ..core.base import EngineExecutionError

if TYPE_CHECKING:
    from collections.abc import Callable

    from ..core.metadata import MediaMetadata

UNKNOWN = "unknown"
MAX_ERROR_LINES = 5


def _number(value: float | None, unit: str = "", digits: int = 2) -> str:
    if value is None:
        return UNKNOWN
    text = f"{value:.{digits}f}".rstrip("0").rstrip(".")
    return f"{text} {unit}".rstrip()


def _size(value: int | None) -> str:
    if value is None:
        return UNKNOWN
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            return f"{value} B" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024  # type: ignore[assignment]
    return UNKNOWN


def _resolution(metadata: MediaMetadata) -> str:
    video = metadata.video
    if video is None or video.width is None or video.height is None:
        return UNKNOWN
    return f"{video.width}x{video.height}"


ROWS: list[tuple[str, Callable[[MediaMetadata], str]]] = [
    ("File", lambda m: m.filename),
    ("Size", lambda m: _size(m.filesize)),
    ("Container", lambda m: m.container_format or UNKNOWN),
    ("Duration", lambda m: _number(m.duration_seconds, "s")),
    ("Overall bitrate", lambda m: _number(m.overall_bitrate_kbps, "kb/s")),
    ("Video codec", lambda m: (m.video.codec if m.video else None) or UNKNOWN),
    ("Resolution", _resolution),
    ("Aspect ratio", lambda m: (m.video.aspect_ratio if m.video else None) or UNKNOWN),
    ("Frame rate", lambda m: _number(m.video.frame_rate if m.video else None, "fps", 3)),
    ("Video bitrate", lambda m: _number(m.video.bitrate_kbps if m.video else None, "kb/s")),
    ("Audio codec", lambda m: (m.audio.codec if m.audio else None) or UNKNOWN),
    ("Sample rate", lambda m: _number(m.audio.sample_rate_hz if m.audio else None, "Hz", 0)),
    ("Channels", lambda m: _number(m.audio.channels if m.audio else None, "", 0)),
    ("Audio bitrate", lambda m: _number(m.audio.bitrate_kbps if m.audio else None, "kb/s")),
    ("ICC profile", lambda m: m.icc_profile or UNKNOWN),
    ("MD5", lambda m: m.md5 or UNKNOWN),
]


def _clip(text: str) -> str:
    if len(text) > REPORT_VALUE_WIDTH:
        return text[: REPORT_VALUE_WIDTH - 3] + "..."
    return text


def format_metadata_report(before: MediaMetadata, after: MediaMetadata | None = None) -> str:
    """
    Render one or two metadata records as an aligned table.

    Args:
        before: Metadata of the source
        after: Metadata of the processed output, if any

    Returns:
        The table, tags included, as a single string

    """
    width = REPORT_LABEL_WIDTH + (REPORT_VALUE_WIDTH + 3) * (2 if after else 1)
    lines = ["=" * width]
    if after is None:
        lines.append(f"{'':<{REPORT_LABEL_WIDTH}} | {'VALUE':<{REPORT_VALUE_WIDTH}}")
    else:
        lines.append(
            f"{'':<{REPORT_LABEL_WIDTH}} | {'BEFORE':<{REPORT_VALUE_WIDTH}} | {'AFTER':<{REPORT_VALUE_WIDTH}}"
        )
    lines.append("-" * width)

    rows = list(ROWS)
    tag_names = sorted(set(before.tags) | set(after.tags if after else ()))
    for name in tag_names:
        rows.append((f"tag:{name}", lambda m, name=name: m.tags.get(name, "")))

    for label, getter in rows:
        line = f"{_clip(label):<{REPORT_LABEL_WIDTH}} | {_clip(getter(before)):<{REPORT_VALUE_WIDTH}}"
        if after is not None:
            line += f" | {_clip(getter(after)):<{REPORT_VALUE_WIDTH}}"
        lines.append(line.rstrip())

    lines.append("=" * width)
    return "\n".join(lines)


def print_failure(error: Exception) -> None:
    """Print a short failure summary, with the engine's last log lines when available."""
    print("\n" + "=" * 80)
    print(f"{'PROCESSING FAILED':^80}")
    print("=" * 80)
    print(str(error))

    if isinstance(error, EngineExecutionError):
        print(f"\nCommand: {' '.join(error.step.arguments)}")
        if error.stderr:
            tail = [line for line in error.stderr.splitlines() if line.strip()][-MAX_ERROR_LINES:]
            print("\nLast engine output:")
            for line in tail:
                print(f"  {line}")

    print("\n💡 TIP: Check the FFmpeg installation, the input file, or the option values\n")
