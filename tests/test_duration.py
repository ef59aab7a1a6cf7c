"""Tests for duration resolution and memoization."""

from unittest.mock import Mock

from metadata_cleaner.core import DurationResolver, MediaMetadata, SourceFile


def _metadata(duration: float | None) -> MediaMetadata:
    return MediaMetadata(filename="clip.mp4", duration_seconds=duration)


def test_probes_once_per_source() -> None:
    probe = Mock(return_value=_metadata(42.0))
    resolver = DurationResolver(probe)
    source = SourceFile(name="clip.mp4", data=b"abc")

    assert resolver.resolve(source) == 42.0
    assert resolver.resolve(source) == 42.0
    probe.assert_called_once_with(source)
    assert len(resolver) == 1


def test_same_name_different_content_is_probed_again() -> None:
    probe = Mock(side_effect=[_metadata(10.0), _metadata(20.0)])
    resolver = DurationResolver(probe)

    assert resolver.resolve(SourceFile(name="clip.mp4", data=b"one")) == 10.0
    assert resolver.resolve(SourceFile(name="clip.mp4", data=b"two")) == 20.0
    assert probe.call_count == 2


def test_unknown_duration_is_not_cached() -> None:
    probe = Mock(side_effect=[_metadata(None), _metadata(7.5)])
    resolver = DurationResolver(probe)
    source = SourceFile(name="clip.mp4", data=b"abc")

    assert resolver.resolve(source) is None
    assert resolver.resolve(source) == 7.5
    assert probe.call_count == 2


def test_remember_seeds_the_cache() -> None:
    probe = Mock()
    resolver = DurationResolver(probe)
    source = SourceFile(name="clip.mp4", data=b"abc")

    assert resolver.remember(source, _metadata(3.0)) == 3.0
    assert resolver.resolve(source) == 3.0
    probe.assert_not_called()


def test_zero_duration_is_not_remembered() -> None:
    resolver = DurationResolver(Mock())
    source = SourceFile(name="clip.mp4", data=b"abc")

    resolver.remember(source, _metadata(0.0))

    assert len(resolver) == 0


def test_clear() -> None:
    resolver = DurationResolver(Mock(return_value=_metadata(1.0)))
    resolver.resolve(SourceFile(name="a.mp4", data=b"a"))

    resolver.clear()

    assert len(resolver) == 0
