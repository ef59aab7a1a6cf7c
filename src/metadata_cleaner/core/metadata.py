"""Media metadata extraction from engine probe output."""

from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import asdict, dataclass, field, fields, replace
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from ..config.constants import BITS_PER_KILOBIT, SECONDS_PER_HOUR, SECONDS_PER_MINUTE

if TYPE_CHECKING:
    from collections.abc import Mapping

    from .base import FileDescriptor

LOG = logging.getLogger(__name__)

# Log-text patterns for the fallback parser
_INPUT_RE = re.compile(r"^\s*Input #\d+,")
_INPUT_FORMAT_RE = re.compile(r"Input #\d+,\s*(?P<fmt>[\w,]+?),\s*from\s")
_OUTPUT_RE = re.compile(r"^\s*Output #\d+,")
_RESOLUTION_RE = re.compile(r"\b(?P<w>\d{2,5})x(?P<h>\d{2,5})\b")
_DURATION_RE = re.compile(r"Duration:\s*(?P<h>\d+):(?P<m>\d{2}):(?P<s>\d{2}(?:\.\d+)?)")
_OVERALL_BITRATE_RE = re.compile(r"bitrate:\s*(?P<kbps>\d+(?:\.\d+)?)\s*kb/s")
_STREAM_BITRATE_RE = re.compile(r"(?P<kbps>\d+(?:\.\d+)?)\s*kb/s")
_VIDEO_RE = re.compile(r"\bVideo:\s*(?P<codec>[\w-]+)")
_AUDIO_RE = re.compile(r"\b(?:Audio|Audin):\s*(?P<codec>[\w-]+)")
_FPS_RE = re.compile(r"(?P<fps>\d+(?:\.\d+)?)\s*fps")
_DAR_RE = re.compile(r"DAR\s+(?P<dar>\d+:\d+)")
_SAMPLE_RATE_RE = re.compile(r"(?P<hz>\d+)\s*Hz")
_CHANNELS_RE = re.compile(r"Hz,\s*(?P<layout>[\w.()]+)")
_TAG_RE = re.compile(r"^(?P<indent>\s*)(?P<key>[^:\s][^:]*?)\s*:\s?(?P<value>.*)$")
_MD5_RE = re.compile(r"(?:MD5=)?\b(?P<digest>[0-9a-fA-F]{32})\b")

_CHANNEL_LAYOUTS = {
    "mono": 1,
    "stereo": 2,
    "2.1": 3,
    "quad": 4,
    "4.0": 4,
    "5.0": 5,
    "5.1": 6,
    "6.1": 7,
    "7.1": 8,
}


@dataclass(frozen=True)
class VideoStreamInfo:
    """Technical characteristics of the first video stream."""

    codec: str | None = None
    width: int | None = None
    height: int | None = None
    aspect_ratio: str | None = None
    frame_rate: float | None = None
    bitrate_kbps: float | None = None


@dataclass(frozen=True)
class AudioStreamInfo:
    """Technical characteristics of the first audio stream."""

    codec: str | None = None
    sample_rate_hz: int | None = None
    channels: int | None = None
    bitrate_kbps: float | None = None


@dataclass(frozen=True)
class MediaMetadata:
    """Best-effort snapshot of a media file; unknown fields are ``None``."""

    filename: str
    filesize: int | None = None
    container_format: str | None = None
    duration_seconds: float | None = None
    overall_bitrate_kbps: float | None = None
    video: VideoStreamInfo | None = None
    audio: AudioStreamInfo | None = None
    icc_profile: str | None = None
    tags: Mapping[str, str] = field(default_factory=dict)
    md5: str | None = None
    source: str = "none"  # "structured", "log" or "none"

    def __post_init__(self) -> None:
        object.__setattr__(self, "tags", MappingProxyType(dict(self.tags)))

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        for item in fields(self):
            value = getattr(self, item.name)
            if isinstance(value, (VideoStreamInfo, AudioStreamInfo)):
                value = asdict(value)
            elif item.name == "tags":
                value = dict(value)
            data[item.name] = value
        return data


def _to_float(value: object) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _to_int(value: object) -> int | None:
    number = _to_float(value)
    return int(number) if number is not None else None


def _to_kbps(bits_per_second: object) -> float | None:
    """Convert a bit-rate in bits/s (number or text) to kb/s."""
    number = _to_float(bits_per_second)
    if number is None or number <= 0:
        return None
    return number / BITS_PER_KILOBIT


def parse_frame_rate(frame_rate: object) -> float | None:
    """Parse frame rate from fraction string like '30/1' or '29.97'."""
    if frame_rate is None:
        return None
    text = str(frame_rate).strip()
    try:
        if "/" in text:
            numerator, denominator = text.split("/", 1)
            if float(denominator) == 0:
                return None
            rate = float(numerator) / float(denominator)
        else:
            rate = float(text)
    except ValueError:
        return None
    return rate if math.isfinite(rate) and rate > 0 else None


def _aspect_ratio(stream: dict[str, Any], width: int | None, height: int | None) -> str | None:
    dar = stream.get("display_aspect_ratio")
    if isinstance(dar, str) and re.fullmatch(r"[1-9]\d*:[1-9]\d*", dar):
        return dar
    if width and height:
        divisor = math.gcd(width, height)
        return f"{width // divisor}:{height // divisor}"
    return None


def _icc_description(stream: dict[str, Any]) -> str | None:
    """Describe the colour profile carried by a video stream."""
    for side_data in stream.get("side_data_list") or []:
        if isinstance(side_data, dict) and "icc" in str(side_data.get("side_data_type", "")).lower():
            return "embedded ICC profile"

    parts = [
        f"{label}={stream[key]}"
        for key, label in (("color_primaries", "primaries"), ("color_transfer", "transfer"), ("color_space", "space"))
        if stream.get(key) and stream[key] != "unknown"
    ]
    return " ".join(parts) or None


def _first_stream(streams: list[Any], codec_type: str) -> dict[str, Any] | None:
    for stream in streams:
        if isinstance(stream, dict) and stream.get("codec_type") == codec_type:
            return stream
    return None


def _string_tags(tags: object) -> dict[str, str]:
    if not isinstance(tags, dict):
        return {}
    return {str(key).lower(): str(value) for key, value in tags.items()}


def _load_structured(raw_output: str) -> dict[str, Any] | None:
    """Slice the outermost JSON object out of raw engine output."""
    start = raw_output.find("{")
    end = raw_output.rfind("}")
    if start == -1 or end <= start:
        return None
    try:
        data = json.loads(raw_output[start : end + 1])
    except (json.JSONDecodeError, RecursionError) as e:
        LOG.debug("Structured probe output did not parse: %s", e)
        return None
    if not isinstance(data, dict) or not ({"streams", "format"} & data.keys()):
        return None
    return data


def _from_structured(data: dict[str, Any], descriptor: FileDescriptor) -> MediaMetadata:
    format_info = data.get("format") or {}
    if not isinstance(format_info, dict):
        format_info = {}
    streams = data.get("streams") or []
    if not isinstance(streams, list):
        streams = []

    video = None
    tags: dict[str, str] = {}
    icc_profile = None
    video_stream = _first_stream(streams, "video")
    if video_stream is not None:
        width = _to_int(video_stream.get("width"))
        height = _to_int(video_stream.get("height"))
        frame_rate = parse_frame_rate(video_stream.get("r_frame_rate")) or parse_frame_rate(
            video_stream.get("avg_frame_rate")
        )
        video = VideoStreamInfo(
            codec=video_stream.get("codec_name"),
            width=width,
            height=height,
            aspect_ratio=_aspect_ratio(video_stream, width, height),
            frame_rate=frame_rate,
            bitrate_kbps=_to_kbps(video_stream.get("bit_rate")),
        )
        icc_profile = _icc_description(video_stream)
        tags.update(_string_tags(video_stream.get("tags")))

    audio = None
    audio_stream = _first_stream(streams, "audio")
    if audio_stream is not None:
        audio = AudioStreamInfo(
            codec=audio_stream.get("codec_name"),
            sample_rate_hz=_to_int(audio_stream.get("sample_rate")),
            channels=_to_int(audio_stream.get("channels")),
            bitrate_kbps=_to_kbps(audio_stream.get("bit_rate")),
        )
        tags.update(_string_tags(audio_stream.get("tags")))

    tags.update(_string_tags(format_info.get("tags")))

    filesize = descriptor.size if descriptor.size is not None else _to_int(format_info.get("size"))
    duration = _to_float(format_info.get("duration"))

    return MediaMetadata(
        filename=descriptor.name,
        filesize=filesize,
        container_format=format_info.get("format_name"),
        duration_seconds=duration if duration is not None and duration >= 0 else None,
        overall_bitrate_kbps=_to_kbps(format_info.get("bit_rate")),
        video=video,
        audio=audio,
        icc_profile=icc_profile,
        tags=tags,
        source="structured",
    )


def _parse_duration(match: re.Match[str]) -> float:
    return (
        int(match.group("h")) * SECONDS_PER_HOUR
        + int(match.group("m")) * SECONDS_PER_MINUTE
        + float(match.group("s"))
    )


def _channel_count(layout: str) -> int | None:
    layout = layout.lower()
    if layout in _CHANNEL_LAYOUTS:
        return _CHANNEL_LAYOUTS[layout]
    base = layout.split("(", 1)[0]
    if base in _CHANNEL_LAYOUTS:
        return _CHANNEL_LAYOUTS[base]
    match = re.fullmatch(r"(\d+)\s*channels?", layout)
    return int(match.group(1)) if match else None


def _video_from_line(line: str, fallback_size: tuple[int, int] | None) -> VideoStreamInfo:
    codec_match = _VIDEO_RE.search(line)
    size_match = _RESOLUTION_RE.search(line[codec_match.end() :] if codec_match else line)
    if size_match:
        width, height = int(size_match.group("w")), int(size_match.group("h"))
    elif fallback_size:
        width, height = fallback_size
    else:
        width = height = None
    fps_match = _FPS_RE.search(line)
    bitrate_match = _STREAM_BITRATE_RE.search(line)
    dar_match = _DAR_RE.search(line)
    return VideoStreamInfo(
        codec=codec_match.group("codec") if codec_match else None,
        width=width,
        height=height,
        aspect_ratio=dar_match.group("dar") if dar_match else _aspect_ratio({}, width, height),
        frame_rate=float(fps_match.group("fps")) if fps_match else None,
        bitrate_kbps=float(bitrate_match.group("kbps")) if bitrate_match else None,
    )


def _audio_from_line(line: str) -> AudioStreamInfo:
    codec_match = _AUDIO_RE.search(line)
    rate_match = _SAMPLE_RATE_RE.search(line)
    layout_match = _CHANNELS_RE.search(line)
    bitrate_match = _STREAM_BITRATE_RE.search(line)
    return AudioStreamInfo(
        codec=codec_match.group("codec") if codec_match else None,
        sample_rate_hz=int(rate_match.group("hz")) if rate_match else None,
        channels=_channel_count(layout_match.group("layout")) if layout_match else None,
        bitrate_kbps=float(bitrate_match.group("kbps")) if bitrate_match else None,
    )


def _from_log(raw_output: str, descriptor: FileDescriptor) -> MediaMetadata:  # noqa: C901
    """Recover what the human-readable engine log exposes."""
    lines = raw_output.splitlines()
    container_format = None
    input_size: tuple[int, int] | None = None
    duration = None
    overall_bitrate = None
    video_line = None
    audio_line = None
    tags: dict[str, str] = {}
    metadata_indent: int | None = None
    seen_stream = False

    for index, line in enumerate(lines):
        if _OUTPUT_RE.match(line):
            break

        if metadata_indent is not None:
            tag_match = _TAG_RE.match(line)
            if tag_match and len(tag_match.group("indent")) > metadata_indent and "Duration:" not in line:
                if not seen_stream:
                    tags[tag_match.group("key").strip().lower()] = tag_match.group("value").strip()
                continue
            metadata_indent = None

        if _INPUT_RE.match(line):
            format_match = _INPUT_FORMAT_RE.search(line)
            if format_match:
                container_format = format_match.group("fmt")
            size_match = _RESOLUTION_RE.search(line)
            if size_match and input_size is None:
                input_size = (int(size_match.group("w")), int(size_match.group("h")))
            continue

        if line.strip() == "Metadata:":
            metadata_indent = len(line) - len(line.lstrip())
            continue

        duration_match = _DURATION_RE.search(line)
        if duration_match and duration is None:
            duration = _parse_duration(duration_match)
            for candidate in lines[index : index + 2]:
                bitrate_match = _OVERALL_BITRATE_RE.search(candidate)
                if bitrate_match:
                    overall_bitrate = float(bitrate_match.group("kbps"))
                    break
            continue

        if _VIDEO_RE.search(line):
            seen_stream = True
            if video_line is None:
                video_line = line
        elif _AUDIO_RE.search(line):
            seen_stream = True
            if audio_line is None:
                audio_line = line

    if overall_bitrate is None:
        # bitrate annotation without a parsable duration line
        for line in lines:
            bitrate_match = _OVERALL_BITRATE_RE.search(line)
            if bitrate_match:
                overall_bitrate = float(bitrate_match.group("kbps"))
                break

    video = None
    if video_line is not None:
        video = _video_from_line(video_line, input_size)
    elif input_size is not None:
        video = VideoStreamInfo(
            width=input_size[0], height=input_size[1], aspect_ratio=_aspect_ratio({}, *input_size)
        )

    return MediaMetadata(
        filename=descriptor.name,
        filesize=descriptor.size,
        container_format=container_format,
        duration_seconds=duration,
        overall_bitrate_kbps=overall_bitrate,
        video=video,
        audio=_audio_from_line(audio_line) if audio_line is not None else None,
        tags=tags,
        source="log" if (video or audio_line or duration is not None or overall_bitrate is not None) else "none",
    )


def normalize_hash(content_hash: str | None) -> str | None:
    """Strip an ``MD5=`` prefix and lowercase a digest."""
    if not content_hash:
        return None
    digest = content_hash.strip()
    if digest.upper().startswith("MD5="):
        digest = digest[4:]
    return digest.lower() or None


def parse_md5_output(text: str) -> str | None:
    """Extract the digest written by the engine's md5 muxer."""
    match = _MD5_RE.search(text)
    return match.group("digest").lower() if match else None


def extract_metadata(
    raw_output: str | None,
    descriptor: FileDescriptor,
    content_hash: str | None = None,
) -> MediaMetadata:
    """
    Parse engine output into a metadata record.

    Tries the structured (JSON) form first and falls back to scanning the
    human-readable log. Never raises: missing data is reported as ``None``.

    Args:
        raw_output: Everything the probe command printed
        descriptor: Name and size of the probed file
        content_hash: Digest computed separately, merged into the record

    Returns:
        A fresh, immutable metadata snapshot

    """
    text = raw_output or ""
    md5 = normalize_hash(content_hash)

    data = _load_structured(text)
    try:
        if data is not None:
            metadata = _from_structured(data, descriptor)
        else:
            metadata = _from_log(text, descriptor)
    except (TypeError, ValueError, AttributeError) as e:
        LOG.warning("Could not interpret probe output for %s: %s", descriptor.name, e)
        metadata = MediaMetadata(filename=descriptor.name, filesize=descriptor.size)

    if metadata.source == "none":
        LOG.warning("No usable metadata in probe output for %s", descriptor.name)
    elif metadata.source == "log":
        LOG.info("Structured probe output unavailable for %s, used log fallback", descriptor.name)

    if md5 is None:
        return metadata
    return replace(metadata, md5=md5)
