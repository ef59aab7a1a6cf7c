"""Filter graph assembly with named pads."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ..config.constants import SOURCE_AUDIO_PAD, SOURCE_VIDEO_PAD
from ..core.base import PlanError

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

LOG = logging.getLogger(__name__)

RAW_PAD_RE = re.compile(r"^\d+:[va]$")


def is_raw_pad(label: str) -> bool:
    """Whether ``label`` names a stream of an engine input (``0:v``, ``1:v``, ...)."""
    return RAW_PAD_RE.match(label) is not None


@dataclass(frozen=True)
class FilterEntry:
    """One filter consuming input pads and producing a single output pad."""

    inputs: tuple[str, ...]
    expression: str
    output: str

    def render(self) -> str:
        pads = "".join(f"[{label}]" for label in self.inputs)
        return f"{pads}{self.expression}[{self.output}]"


class FilterGraph:
    """
    Ordered filter entries threading the live video and audio pads.

    Each chained filter consumes the current live pad of its media type and
    produces a fresh one, so effects compose instead of replacing each other.
    Entries may only reference raw input streams or pads produced earlier.
    """

    def __init__(self) -> None:
        self._entries: list[FilterEntry] = []
        self._produced: set[str] = set()
        self._video_pad: str | None = None
        self._audio_pad: str | None = None
        self._counter = 0

    def add(self, inputs: Sequence[str], expression: str, output: str) -> FilterEntry:
        """Append an entry after checking its pad references."""
        if not inputs:
            msg = f"Filter '{expression}' has no input pads"
            raise PlanError(msg)
        for label in inputs:
            if not is_raw_pad(label) and label not in self._produced:
                msg = f"Filter '{expression}' references unknown pad [{label}]"
                raise PlanError(msg)
        if is_raw_pad(output) or output in self._produced:
            msg = f"Filter '{expression}' output pad [{output}] is already taken"
            raise PlanError(msg)

        entry = FilterEntry(inputs=tuple(inputs), expression=expression, output=output)
        self._entries.append(entry)
        self._produced.add(output)
        LOG.debug("Filter graph entry: %s", entry.render())
        return entry

    def _next_label(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}{self._counter}"

    def chain_video(self, expression: str, *, extra_inputs: Sequence[str] = ()) -> str:
        """Apply a video filter to the live video pad and return the new live pad."""
        source = self._video_pad or SOURCE_VIDEO_PAD
        entry = self.add((source, *extra_inputs), expression, self._next_label("v"))
        self._video_pad = entry.output
        return entry.output

    def chain_audio(self, expression: str) -> str:
        """Apply an audio filter to the live audio pad and return the new live pad."""
        source = self._audio_pad or SOURCE_AUDIO_PAD
        entry = self.add((source,), expression, self._next_label("a"))
        self._audio_pad = entry.output
        return entry.output

    @property
    def entries(self) -> tuple[FilterEntry, ...]:
        return tuple(self._entries)

    @property
    def final_video(self) -> str | None:
        """Live video pad, ``None`` when no video filter ran."""
        return self._video_pad

    @property
    def final_audio(self) -> str | None:
        """Live audio pad, ``None`` when no audio filter ran."""
        return self._audio_pad

    @property
    def is_empty(self) -> bool:
        return not self._entries

    def render(self) -> str:
        """Serialize to a ``-filter_complex`` expression."""
        return ";".join(entry.render() for entry in self._entries)

    def map_arguments(self) -> list[str]:
        """
        ``-map`` arguments connecting the final pads to the output.

        Streams no filter touched are mapped straight from the first input;
        ``?`` keeps sources without audio (or video) valid.
        """
        if self.is_empty:
            return []
        video = f"[{self._video_pad}]" if self._video_pad else f"{SOURCE_VIDEO_PAD}?"
        audio = f"[{self._audio_pad}]" if self._audio_pad else f"{SOURCE_AUDIO_PAD}?"
        return ["-map", video, "-map", audio]

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[FilterEntry]:
        return iter(self._entries)
