"""Source duration lookup with per-file memoization."""

from __future__ import annotations

import hashlib
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable

    from .base import SourceFile
    from .metadata import MediaMetadata

LOG = logging.getLogger(__name__)

CacheKey = tuple[str, int, str]


class DurationResolver:
    """Resolve and cache the duration of source files."""

    def __init__(self, probe: Callable[[SourceFile], MediaMetadata]) -> None:
        """
        Initialize the resolver.

        Args:
            probe: Callable returning fresh metadata for a source file

        """
        self._probe = probe
        self._cache: dict[CacheKey, float] = {}

    @staticmethod
    def cache_key(source: SourceFile) -> CacheKey:
        """Identify a source by name, size and content digest."""
        digest = hashlib.blake2b(source.data, digest_size=16).hexdigest()
        return (source.name, source.size, digest)

    def remember(self, source: SourceFile, metadata: MediaMetadata) -> float | None:
        """Seed the cache from metadata probed elsewhere."""
        duration = metadata.duration_seconds
        if duration is not None and duration > 0:
            self._cache[self.cache_key(source)] = duration
        return duration

    def resolve(self, source: SourceFile) -> float | None:
        """Return the duration in seconds, or ``None`` when the probe cannot tell."""
        key = self.cache_key(source)
        if key in self._cache:
            LOG.debug("Duration cache hit for %s", source.name)
            return self._cache[key]

        duration = self.remember(source, self._probe(source))
        if duration is None:
            LOG.warning("Duration of %s could not be determined", source.name)
        return duration

    def clear(self) -> None:
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)
