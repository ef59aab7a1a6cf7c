"""Tests for the execution orchestrator against a scripted engine."""

import hashlib
import random
import threading
from unittest.mock import Mock

import pytest

from conftest import FakeEngine
from metadata_cleaner.config.settings import CleanerConfig
from metadata_cleaner.core import (
    EngineExecutionError,
    EngineUnavailableError,
    InvalidRangeError,
    OrchestratorBusyError,
    RunState,
    SourceFile,
    TransformOptions,
    UnresolvedDependencyError,
)
from metadata_cleaner.plan import StepKind
from metadata_cleaner.processors import Orchestrator


def _options(**entries: dict) -> TransformOptions:
    return TransformOptions.from_dict({key: {"enabled": True, **params} for key, params in entries.items()})


def test_successful_run(engine: FakeEngine, source: SourceFile, config: CleanerConfig) -> None:
    orchestrator = Orchestrator(engine, config=config)
    options = _options(changeResolution={"width": 640, "height": 360}, changeFrameRate={"value": 24})

    result = orchestrator.run(source, options)

    assert orchestrator.state is RunState.DONE
    assert result.output == b"rendered:output.mp4"
    assert result.segments == []
    assert not result.is_split
    assert result.before.filename == "holiday.mp4"
    assert result.before.filesize == source.size
    assert result.before.duration_seconds == pytest.approx(12.34)
    assert result.after.filename == "output.mp4"
    assert result.after.filesize == len(result.output)
    assert result.processing_time >= 0
    assert engine.files["input.mp4"] == source.data

    programs = [command[0] for command in engine.commands]
    assert programs == ["ffprobe", "ffmpeg", "ffprobe"]
    assert engine.commands[0][-1] == "input.mp4"
    assert engine.commands[2][-1] == "output.mp4"


def test_md5_option_hashes_source_and_output(engine: FakeEngine, source: SourceFile, config: CleanerConfig) -> None:
    orchestrator = Orchestrator(engine, config=config)

    result = orchestrator.run(source, _options(changeMD5Hash={}, changeSaturation={"value": 1.2}))

    expected_before = hashlib.md5(source.data).hexdigest()  # noqa: S324
    expected_after = hashlib.md5(b"rendered:output.mp4").hexdigest()  # noqa: S324
    assert result.before.md5 == expected_before
    assert result.content_hash == expected_after
    assert result.after.md5 == expected_after
    assert result.plan.steps[-1].kind is StepKind.HASH


def test_trim_uses_the_probed_duration(engine: FakeEngine, source: SourceFile, config: CleanerConfig) -> None:
    orchestrator = Orchestrator(engine, config=config)

    result = orchestrator.run(source, _options(trimVideoStart={"value": 1}, trimVideoEnd={"value": 2}))

    assert result.plan.trim.end == pytest.approx(10.34)
    assert len(engine.commands_for("ffprobe")) == 2


def test_split_mode_returns_segments(engine: FakeEngine, source: SourceFile, config: CleanerConfig) -> None:
    orchestrator = Orchestrator(engine, config=config, rng=random.Random(5))

    result = orchestrator.run(source, _options(randomSplits={"count": 3}, changeMD5Hash={}))

    assert orchestrator.state is RunState.DONE
    assert result.is_split
    assert result.output is None
    assert result.after is None
    assert result.segments == [
        b"rendered:segment_000.mp4",
        b"rendered:segment_001.mp4",
        b"rendered:segment_002.mp4",
    ]
    assert all("output.md5" not in command for command in engine.commands[1:])


def test_pitch_filter_uses_probed_sample_rate(engine: FakeEngine, source: SourceFile, config: CleanerConfig) -> None:
    result = Orchestrator(engine, config=config).run(source, _options(voiceChanger={"value": 2}))

    graph = result.plan.steps[0].arguments[result.plan.steps[0].arguments.index("-filter_complex") + 1]
    assert "asetrate=48000*2" in graph


def test_missing_output_fails_the_run(source: SourceFile, config: CleanerConfig) -> None:
    engine = FakeEngine(skip_outputs=("output.mp4",))
    orchestrator = Orchestrator(engine, config=config)

    with pytest.raises(EngineExecutionError) as exc_info:
        orchestrator.run(source, _options(changeSaturation={"value": 2}))

    error = exc_info.value
    assert error.step_index == 0
    assert error.step.kind is StepKind.TRANSFORM
    assert "declared output output.mp4 was not produced" in str(error)
    assert orchestrator.state is RunState.FAILED
    assert orchestrator.last_error is error


def test_output_left_by_an_earlier_run_does_not_count(
    engine: FakeEngine, source: SourceFile, config: CleanerConfig
) -> None:
    orchestrator = Orchestrator(engine, config=config)
    orchestrator.run(source, TransformOptions())

    engine.skip_outputs = {"output.mp4"}
    with pytest.raises(EngineExecutionError, match="declared output output.mp4 was not produced"):
        orchestrator.run(source, _options(changeSaturation={"value": 2}))


def test_source_hash_does_not_stand_in_for_output_hash(source: SourceFile, config: CleanerConfig) -> None:
    engine = FakeEngine(skip_outputs=("output.md5",))
    orchestrator = Orchestrator(engine, config=config)

    with pytest.raises(EngineExecutionError) as exc_info:
        orchestrator.run(source, _options(changeMD5Hash={}))

    assert exc_info.value.step.kind is StepKind.HASH
    assert "input.md5" in engine.files


def test_non_zero_exit_fails_the_run(source: SourceFile, config: CleanerConfig) -> None:
    engine = FakeEngine(fail_when=lambda args: "sticker.png" in args and "-f" not in args[:4])
    orchestrator = Orchestrator(engine, config=config)

    with pytest.raises(EngineExecutionError) as exc_info:
        orchestrator.run(source, _options(addSticker={"value": 40}))

    error = exc_info.value
    assert str(error).startswith("Step 2 (transform) failed: ffmpeg exited with code 1")
    assert error.return_code == 1
    assert "Conversion failed" in error.stderr
    assert error.underlying_message == "ffmpeg exited with code 1: [error] Conversion failed!"
    assert orchestrator.state is RunState.FAILED


def test_failed_asset_step_stops_before_transform(source: SourceFile, config: CleanerConfig) -> None:
    engine = FakeEngine(fail_when=lambda args: "lavfi" in args)
    orchestrator = Orchestrator(engine, config=config)

    with pytest.raises(EngineExecutionError) as exc_info:
        orchestrator.run(source, _options(addSticker={"value": 40}))

    assert exc_info.value.step_index == 0
    assert not any("output.mp4" in command for command in engine.commands)


def test_run_before_load_is_rejected(source: SourceFile, config: CleanerConfig) -> None:
    engine = FakeEngine(loaded=False)
    orchestrator = Orchestrator(engine, config=config)

    assert orchestrator.state is RunState.IDLE
    with pytest.raises(EngineUnavailableError):
        orchestrator.run(source, TransformOptions())
    assert engine.commands == []

    orchestrator.load()
    assert orchestrator.state is RunState.READY
    assert orchestrator.run(source, TransformOptions()).output == b"rendered:output.mp4"


def test_load_failure_can_be_retried(config: CleanerConfig) -> None:
    engine = FakeEngine(loaded=False)
    real_load = engine.load
    engine.load = Mock(side_effect=[OSError("no ffmpeg"), None])
    orchestrator = Orchestrator(engine, config=config)

    with pytest.raises(EngineUnavailableError, match="no ffmpeg"):
        orchestrator.load()
    assert orchestrator.state is RunState.FAILED

    engine.load.side_effect = real_load
    orchestrator.load()
    assert orchestrator.state is RunState.READY
    assert engine.is_loaded


def test_overlapping_run_is_rejected(engine: FakeEngine, source: SourceFile, config: CleanerConfig) -> None:
    orchestrator = Orchestrator(engine, config=config)
    errors = []

    def reenter(index, total, step):
        try:
            orchestrator.run(source, TransformOptions())
        except OrchestratorBusyError as e:
            errors.append(e)

    orchestrator.run(source, TransformOptions(), on_step=reenter)

    assert len(errors) == 1
    assert orchestrator.state is RunState.DONE


def test_step_callback_sees_every_step(engine: FakeEngine, source: SourceFile, config: CleanerConfig) -> None:
    on_step = Mock()

    Orchestrator(engine, config=config).run(source, _options(addSticker={}, changeMD5Hash={}), on_step=on_step)

    assert [(c.args[0], c.args[1], c.args[2].kind) for c in on_step.call_args_list] == [
        (0, 3, StepKind.GENERATE_ASSET),
        (1, 3, StepKind.TRANSFORM),
        (2, 3, StepKind.HASH),
    ]


def test_unknown_duration_fails_before_execution(source: SourceFile, config: CleanerConfig) -> None:
    engine = FakeEngine(probe_output='{"streams": []}', log_output="nothing useful")
    orchestrator = Orchestrator(engine, config=config)

    with pytest.raises(UnresolvedDependencyError):
        orchestrator.run(source, _options(trimVideoEnd={"value": 1}))

    assert orchestrator.state is RunState.FAILED
    assert all("-y" not in command for command in engine.commands)


def test_invalid_trim_range_fails_before_execution(
    engine: FakeEngine, source: SourceFile, config: CleanerConfig
) -> None:
    orchestrator = Orchestrator(engine, config=config)

    with pytest.raises(InvalidRangeError):
        orchestrator.run(source, _options(trimVideoStart={"value": 5}, trimVideoEnd={"value": 10}))

    assert engine.commands_for("ffmpeg") == []


def test_log_probe_mode(source: SourceFile, config: CleanerConfig) -> None:
    config.engine.probe_mode = "log"
    engine = FakeEngine()

    result = Orchestrator(engine, config=config).run(source, TransformOptions())

    assert result.before.source == "log"
    assert result.before.duration_seconds == 90.0
    assert engine.commands_for("ffprobe") == []


def test_failed_probe_degrades_metadata(source: SourceFile, config: CleanerConfig) -> None:
    engine = FakeEngine(fail_when=lambda args: args[0] == "ffprobe")

    result = Orchestrator(engine, config=config).run(source, TransformOptions())

    assert result.before.source == "none"
    assert result.output == b"rendered:output.mp4"


def test_duration_is_memoized_across_runs(engine: FakeEngine, source: SourceFile, config: CleanerConfig) -> None:
    orchestrator = Orchestrator(engine, config=config)

    orchestrator.run(source, TransformOptions())
    assert len(orchestrator.durations) == 1

    engine.probe_output = '{"streams": []}'
    result = orchestrator.run(source, _options(trimVideoEnd={"value": 2}))

    assert result.plan.trim.end == pytest.approx(10.34)


def test_inspect(engine: FakeEngine, source: SourceFile, config: CleanerConfig) -> None:
    orchestrator = Orchestrator(engine, config=config)

    metadata = orchestrator.inspect(source, with_hash=True)

    assert metadata.video.width == 1920
    assert metadata.md5 == hashlib.md5(source.data).hexdigest()  # noqa: S324
    assert orchestrator.state is RunState.DONE


def test_submitted_runs_execute_one_at_a_time(source: SourceFile, config: CleanerConfig) -> None:
    engine = FakeEngine(loaded=False)
    active = []
    overlaps = []
    guard = threading.Lock()
    original_exec = engine.exec

    def tracking_exec(args, on_log=None):
        with guard:
            active.append(args)
            if len(active) > 1:
                overlaps.append(args)
        try:
            return original_exec(args, on_log)
        finally:
            with guard:
                active.remove(args)

    engine.exec = tracking_exec

    with Orchestrator(engine, config=config) as orchestrator:
        orchestrator.submit_load()
        futures = [orchestrator.submit(source, TransformOptions()) for _ in range(3)]
        results = [future.result(timeout=10) for future in futures]

    assert engine.load_calls == 1
    assert overlaps == []
    assert all(result.output == b"rendered:output.mp4" for result in results)
    assert orchestrator.state is RunState.DONE


@pytest.mark.parametrize(
    ("state", "busy"),
    [
        (RunState.IDLE, False),
        (RunState.LOADING, True),
        (RunState.READY, False),
        (RunState.EXECUTING, True),
        (RunState.DONE, False),
        (RunState.FAILED, False),
    ],
)
def test_claims_are_refused_only_while_the_engine_is_owned(
    engine: FakeEngine, source: SourceFile, config: CleanerConfig, state: RunState, busy: bool
) -> None:
    orchestrator = Orchestrator(engine, config=config)
    orchestrator._state = state

    assert state.is_active is busy
    if busy:
        with pytest.raises(OrchestratorBusyError):
            orchestrator.run(source, TransformOptions())
    else:
        assert orchestrator.run(source, TransformOptions()).output == b"rendered:output.mp4"
