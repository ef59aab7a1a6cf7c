"""Tests for metadata extraction from probe output."""

import json

import pytest

from conftest import FFMPEG_LOG, PROBE_PAYLOAD
from metadata_cleaner.core import FileDescriptor, extract_metadata, parse_frame_rate, parse_md5_output
from metadata_cleaner.core.metadata import normalize_hash

DESCRIPTOR = FileDescriptor(name="input.mp4", size=2048)


def test_structured_payload() -> None:
    payload = {
        "format": {"duration": "12.34"},
        "streams": [{"codec_type": "video", "width": 1920, "height": 1080, "r_frame_rate": "30/1"}],
    }

    metadata = extract_metadata(json.dumps(payload), DESCRIPTOR)

    assert metadata.source == "structured"
    assert metadata.duration_seconds == pytest.approx(12.34)
    assert metadata.video.width == 1920
    assert metadata.video.height == 1080
    assert metadata.video.frame_rate == pytest.approx(30.0)
    assert metadata.video.aspect_ratio == "16:9"
    assert metadata.audio is None


def test_structured_payload_full_record() -> None:
    metadata = extract_metadata(json.dumps(PROBE_PAYLOAD), DESCRIPTOR, "MD5=0123456789ABCDEF0123456789ABCDEF")

    assert metadata.filename == "input.mp4"
    assert metadata.filesize == 2048
    assert metadata.container_format == "mov,mp4,m4a,3gp,3g2,mj2"
    assert metadata.overall_bitrate_kbps == pytest.approx(4200.0)
    assert metadata.video.codec == "h264"
    assert metadata.video.bitrate_kbps == pytest.approx(4000.0)
    assert metadata.audio.codec == "aac"
    assert metadata.audio.sample_rate_hz == 48000
    assert metadata.audio.channels == 2
    assert metadata.audio.bitrate_kbps == pytest.approx(128.0)
    assert metadata.tags["title"] == "Holiday"
    assert metadata.md5 == "0123456789abcdef0123456789abcdef"


def test_structured_payload_surrounded_by_log_noise() -> None:
    text = "ffprobe version 6.1\n" + json.dumps(PROBE_PAYLOAD, indent=2) + "\ntrailing line"

    metadata = extract_metadata(text, DESCRIPTOR)

    assert metadata.source == "structured"
    assert metadata.duration_seconds == pytest.approx(12.34)


def test_colour_description_becomes_icc_profile() -> None:
    payload = {
        "streams": [
            {
                "codec_type": "video",
                "width": 640,
                "height": 480,
                "color_primaries": "bt709",
                "color_transfer": "bt709",
                "color_space": "unknown",
            }
        ]
    }

    metadata = extract_metadata(json.dumps(payload), DESCRIPTOR)

    assert metadata.icc_profile == "primaries=bt709 transfer=bt709"
    assert metadata.video.aspect_ratio == "4:3"


def test_embedded_icc_side_data() -> None:
    payload = {"streams": [{"codec_type": "video", "side_data_list": [{"side_data_type": "ICC Profile"}]}]}

    assert extract_metadata(json.dumps(payload), DESCRIPTOR).icc_profile == "embedded ICC profile"


def test_log_fallback_minimal() -> None:
    text = (
        "Input #0, mov,mp4,m4a,3gp,3g2,mj2, from 'input.mp4': 1280x720\n"
        "  Duration: 00:01:30.00, start: 0.000000, bitrate: 512 kb/s\n"
    )

    metadata = extract_metadata(text, DESCRIPTOR)

    assert metadata.source == "log"
    assert metadata.video.width == 1280
    assert metadata.video.height == 720
    assert metadata.duration_seconds == 90.0
    assert metadata.overall_bitrate_kbps == 512


def test_log_fallback_full_description() -> None:
    metadata = extract_metadata(FFMPEG_LOG, DESCRIPTOR)

    assert metadata.source == "log"
    assert metadata.container_format == "mov,mp4,m4a,3gp,3g2,mj2"
    assert metadata.duration_seconds == 90.0
    assert metadata.overall_bitrate_kbps == 512
    assert metadata.video.codec == "h264"
    assert (metadata.video.width, metadata.video.height) == (1280, 720)
    assert metadata.video.frame_rate == 25.0
    assert metadata.video.aspect_ratio == "16:9"
    assert metadata.video.bitrate_kbps == 380
    assert metadata.audio.codec == "aac"
    assert metadata.audio.sample_rate_hz == 44100
    assert metadata.audio.channels == 2
    assert metadata.tags == {"major_brand": "isom", "title": "Holiday"}


def test_log_fallback_bitrate_on_next_line() -> None:
    text = "  Duration: 00:00:05.50, start: 0.000000,\n    bitrate: 64 kb/s\n"

    metadata = extract_metadata(text, DESCRIPTOR)

    assert metadata.duration_seconds == 5.5
    assert metadata.overall_bitrate_kbps == 64


def test_log_fallback_accepts_audin_typo() -> None:
    text = "  Stream #0:0: Audin: mp3, 22050 Hz, mono, s16p, 32 kb/s\n"

    metadata = extract_metadata(text, DESCRIPTOR)

    assert metadata.audio.codec == "mp3"
    assert metadata.audio.channels == 1


def test_output_section_is_ignored() -> None:
    text = FFMPEG_LOG.replace(
        "At least one output file must be specified",
        "Output #0, mp4, to 'output.mp4':\n  Stream #0:0: Video: mpeg4, yuv420p, 320x240, 10 fps",
    )

    metadata = extract_metadata(text, DESCRIPTOR)

    assert metadata.video.width == 1280


@pytest.mark.parametrize("raw", [None, "", "garbage without anything useful", "{not json}", '{"unrelated": 1}'])
def test_unusable_output_degrades_instead_of_raising(raw: str | None) -> None:
    metadata = extract_metadata(raw, DESCRIPTOR)

    assert metadata.source == "none"
    assert metadata.filename == "input.mp4"
    assert metadata.filesize == 2048
    assert metadata.duration_seconds is None
    assert metadata.video is None


def test_deeply_nested_tag_falls_back_to_log() -> None:
    nested = '{"a":' + "[" * 5000 + "]" * 5000 + "}"
    text = f"  Metadata:\n    title           : {nested}\n  Duration: 00:00:05.00, start: 0.000000, bitrate: 64 kb/s\n"

    metadata = extract_metadata(text, DESCRIPTOR)

    assert metadata.source == "log"
    assert metadata.duration_seconds == 5.0


def test_malformed_structured_values_become_none() -> None:
    payload = {"format": {"duration": "N/A", "bit_rate": "oops"}, "streams": [{"codec_type": "video", "width": "x"}]}

    metadata = extract_metadata(json.dumps(payload), DESCRIPTOR)

    assert metadata.duration_seconds is None
    assert metadata.overall_bitrate_kbps is None
    assert metadata.video.width is None


def test_metadata_is_immutable() -> None:
    metadata = extract_metadata(json.dumps(PROBE_PAYLOAD), DESCRIPTOR)

    with pytest.raises(TypeError):
        metadata.tags["title"] = "changed"  # type: ignore[index]


def test_to_dict_is_json_serializable() -> None:
    data = extract_metadata(json.dumps(PROBE_PAYLOAD), DESCRIPTOR).to_dict()

    assert json.loads(json.dumps(data))["video"]["width"] == 1920
    assert data["tags"]["encoder"] == "Lavf60.3.100"


@pytest.mark.parametrize(
    ("value", "expected"),
    [("30/1", 30.0), ("30000/1001", 29.97002997), ("25", 25.0)],
)
def test_parse_frame_rate(value: str, expected: float) -> None:
    assert parse_frame_rate(value) == pytest.approx(expected)


@pytest.mark.parametrize("value", ["0/0", "abc", "-5", None])
def test_parse_frame_rate_rejects_unusable_values(value: object) -> None:
    assert parse_frame_rate(value) is None


def test_parse_md5_output() -> None:
    assert parse_md5_output("MD5=D41D8CD98F00B204E9800998ECF8427E\n") == "d41d8cd98f00b204e9800998ecf8427e"
    assert parse_md5_output("no digest here") is None


@pytest.mark.parametrize(("raw", "expected"), [("MD5=ABC", "abc"), ("  abc ", "abc"), ("", None), (None, None)])
def test_normalize_hash(raw: str | None, expected: str | None) -> None:
    assert normalize_hash(raw) == expected
