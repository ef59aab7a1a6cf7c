"""Shared fixtures: a scripted media engine and canned probe output."""

from __future__ import annotations

import hashlib
import json
import random
from collections.abc import Callable, Sequence

import pytest

from metadata_cleaner.config import reset_config
from metadata_cleaner.config.settings import CleanerConfig, EngineConfig
from metadata_cleaner.core import MediaEngine, SourceFile

PROBE_PAYLOAD = {
    "streams": [
        {
            "codec_type": "video",
            "codec_name": "h264",
            "width": 1920,
            "height": 1080,
            "r_frame_rate": "30/1",
            "bit_rate": "4000000",
        },
        {
            "codec_type": "audio",
            "codec_name": "aac",
            "sample_rate": "48000",
            "channels": 2,
            "bit_rate": "128000",
        },
    ],
    "format": {
        "format_name": "mov,mp4,m4a,3gp,3g2,mj2",
        "duration": "12.34",
        "bit_rate": "4200000",
        "tags": {"title": "Holiday", "encoder": "Lavf60.3.100"},
    },
}

FFMPEG_LOG = """\
Input #0, mov,mp4,m4a,3gp,3g2,mj2, from 'input.mp4':
  Metadata:
    major_brand     : isom
    title           : Holiday
  Duration: 00:01:30.00, start: 0.000000, bitrate: 512 kb/s
  Stream #0:0[0x1](und): Video: h264 (High) (avc1 / 0x31637661), yuv420p(progressive), 1280x720 [SAR 1:1 DAR 16:9], 380 kb/s, 25 fps, 25 tbr, 12800 tbn (default)
  Stream #0:1[0x2](und): Audio: aac (LC) (mp4a / 0x6134706D), 44100 Hz, stereo, fltp, 128 kb/s (default)
At least one output file must be specified
"""


class FakeEngine(MediaEngine):
    """
    In-memory engine that answers plan steps the way ffmpeg would.

    Probes print ``probe_output`` (ffprobe) or ``log_output`` (``ffmpeg -i``),
    md5 steps write the digest of their input, and every other command
    writes a small placeholder to its last argument.
    """

    def __init__(
        self,
        *,
        loaded: bool = True,
        probe_output: str | None = None,
        log_output: str | None = None,
        fail_when: Callable[[list[str]], bool] | None = None,
        skip_outputs: Sequence[str] = (),
    ) -> None:
        self.files: dict[str, bytes] = {}
        self.commands: list[list[str]] = []
        self.load_calls = 0
        self.probe_output = json.dumps(PROBE_PAYLOAD) if probe_output is None else probe_output
        self.log_output = FFMPEG_LOG if log_output is None else log_output
        self.fail_when = fail_when
        self.skip_outputs = set(skip_outputs)
        self._loaded = loaded

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    def load(self, config: EngineConfig) -> None:
        self.load_calls += 1
        self._loaded = True

    def write_file(self, name: str, data: bytes) -> None:
        self.files[name] = data

    def read_file(self, name: str) -> bytes:
        if name not in self.files:
            raise FileNotFoundError(name)
        return self.files[name]

    def remove_file(self, name: str) -> None:
        self.files.pop(name, None)

    def exec(self, args: Sequence[str], on_log: Callable[[str], None] | None = None) -> int:
        args = list(args)
        self.commands.append(args)

        def emit(text: str) -> None:
            for line in text.splitlines():
                if on_log is not None:
                    on_log(line)

        if self.fail_when is not None and self.fail_when(args):
            emit("[error] Conversion failed!")
            return 1

        if args[0] == "ffprobe":
            emit(self.probe_output)
            return 0

        if "-y" not in args:
            # ffmpeg -i without an output: prints the input description
            emit(self.log_output)
            return 1

        source = args[args.index("-i") + 1] if "-i" in args else None
        output = args[-1]
        if output in self.skip_outputs:
            return 0
        if "md5" in args:
            digest = hashlib.md5(self.files.get(source, b"")).hexdigest()  # noqa: S324
            self.files[output] = f"MD5={digest}\n".encode()
            return 0

        self.files[output] = f"rendered:{output}".encode()
        return 0

    def commands_for(self, program: str) -> list[list[str]]:
        return [command for command in self.commands if command[0] == program]


@pytest.fixture(autouse=True)
def _fresh_config():
    """Keep the configuration singleton from leaking between tests."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def config() -> CleanerConfig:
    return CleanerConfig()


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def source() -> SourceFile:
    return SourceFile(name="holiday.mp4", data=b"\x00\x00\x00\x18ftypisom" + bytes(range(64)))


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)
