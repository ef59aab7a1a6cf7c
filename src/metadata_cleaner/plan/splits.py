"""Random split point planning."""

from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass

from ..config.constants import MIN_SPLIT_COUNT
from ..core.base import ValidationError

LOG = logging.getLogger(__name__)


@dataclass(frozen=True)
class SplitInterval:
    """One segment of the source, in seconds."""

    start: float
    end: float

    @property
    def duration(self) -> float:
        return self.end - self.start


def plan_splits(
    count: int,
    duration: float,
    rng: random.Random | None = None,
    *,
    offset: float = 0.0,
) -> list[SplitInterval]:
    """
    Cut ``[0, duration]`` into ``count`` contiguous random intervals.

    ``count - 1`` uniform samples in ``[0, duration)`` become the sorted
    interior cut points. Boundaries differ between calls unless a seeded
    ``rng`` is supplied. ``offset`` shifts every interval, for windows that
    do not start at zero.
    """
    if isinstance(count, bool) or not isinstance(count, int) or count < MIN_SPLIT_COUNT:
        msg = f"Split count must be an integer >= {MIN_SPLIT_COUNT}, got {count!r}"
        raise ValidationError(msg)
    if not isinstance(duration, (int, float)) or not math.isfinite(duration) or duration <= 0:
        msg = f"Split duration must be a positive number, got {duration!r}"
        raise ValidationError(msg)

    rng = rng or random.Random()  # noqa: S311
    cuts = sorted(rng.uniform(0.0, duration) for _ in range(count - 1))
    # uniform() may return the upper bound through rounding
    cuts = [min(cut, math.nextafter(duration, 0.0)) for cut in cuts]

    bounds = [0.0, *cuts, float(duration)]
    intervals = [
        SplitInterval(start=offset + bounds[i], end=offset + bounds[i + 1]) for i in range(count)
    ]
    LOG.debug("Planned %d segments: %s", count, ", ".join(f"{i.start:.3f}-{i.end:.3f}" for i in intervals))
    return intervals
