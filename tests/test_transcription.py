from __future__ import annotations

from pathlib import Path

from quickdub.errors import ExternalToolFailure, ValidationFailure
from quickdub.stages import TranscriptionStage
from quickdub.stages.transcription import EMPTY_TRANSCRIPT, discover_transcript
from quickdub.state import Stage

from conftest import tool_fails, whisper_stdout_only, whisper_to_file


def _stage(config, runner) -> TranscriptionStage:
    return TranscriptionStage(config, runner)


def test_file_output_attempt_succeeds(config, fake_runner, stage_context):
    ctx = stage_context(Stage.TRANSCRIBE)
    result = _stage(config, fake_runner).execute(ctx)

    assert result.success
    assert result.artifact == ctx.paths.transcript
    assert ctx.paths.transcript.read_text(encoding="utf-8") == "hello world\n"

    (argv,) = fake_runner.calls
    assert argv[:5] == ["whisper", "-m", str(config.whisper_model), "-f", str(ctx.paths.audio)]
    assert argv[5:] == ["-otxt", "-of", str(ctx.paths.transcript_prefix)]


def test_falls_back_to_stdout_capture(config, fake_runner, stage_context):
    stdout = "  selamat pagi\n\tsemua \n"
    fake_runner.on("whisper", whisper_stdout_only(stdout))
    ctx = stage_context(Stage.TRANSCRIBE)

    result = _stage(config, fake_runner).execute(ctx)

    assert result.success
    assert ctx.paths.transcript.read_text(encoding="utf-8") == stdout
    assert len(fake_runner.calls) == 2
    assert "-otxt" not in fake_runner.calls[1]

    fallback = [e for e in ctx.events.read_all() if e.event_type == "transcribe_fallback"]
    assert len(fallback) == 1
    assert "unknown argument" in fallback[0].error


def test_both_attempts_crash_reports_external_tool_failure(config, fake_runner, stage_context):
    calls = []

    def handler(argv):
        calls.append(argv)
        detail = "primary crashed" if "-otxt" in argv else "fallback crashed"
        raise ExternalToolFailure("whisper exited with status 2", detail=detail, exit_status=2)

    fake_runner.on("whisper", handler)
    ctx = stage_context(Stage.TRANSCRIBE)

    result = _stage(config, fake_runner).execute(ctx)

    assert not result.success
    assert isinstance(result.error, ExternalToolFailure)
    assert result.error.stage == "transcribe"
    assert result.error.detail == "fallback crashed"
    assert len(calls) == 2


def test_blank_transcript_is_validation_failure(config, fake_runner, stage_context):
    fake_runner.on("whisper", whisper_to_file(" \n\n"))
    ctx = stage_context(Stage.TRANSCRIBE)

    result = _stage(config, fake_runner).execute(ctx)

    assert not result.success
    assert isinstance(result.error, ValidationFailure)
    assert result.error.message == EMPTY_TRANSCRIPT
    # blank primary output still triggers the fallback
    assert len(fake_runner.calls) == 2


def test_zero_exit_without_any_transcript_is_validation_failure(config, fake_runner, stage_context):
    fake_runner.on("whisper", lambda argv: "")
    ctx = stage_context(Stage.TRANSCRIBE)

    result = _stage(config, fake_runner).execute(ctx)

    assert isinstance(result.error, ValidationFailure)


def test_transcript_written_with_doubled_extension_is_found(config, fake_runner, stage_context):
    def writes_alt(argv):
        prefix = argv[argv.index("-of") + 1]
        Path(prefix + ".txt.txt").write_text("alt name\n", encoding="utf-8")

    fake_runner.on("whisper", writes_alt)
    ctx = stage_context(Stage.TRANSCRIBE)

    result = _stage(config, fake_runner).execute(ctx)

    assert result.success
    assert ctx.paths.transcript.read_text(encoding="utf-8") == "alt name\n"
    assert len(fake_runner.calls) == 1


def test_discovery_scans_only_files_of_this_job(config, stage_context):
    ctx = stage_context(Stage.TRANSCRIBE)
    paths = ctx.paths
    other_job = "1600000000000_" + "c" * 32

    (paths.base_dir / f"{other_job}.txt").write_text("someone else", encoding="utf-8")
    assert discover_transcript(paths) is None

    paths.translation.write_text("translated", encoding="utf-8")
    paths.tts_text.write_text("for tts", encoding="utf-8")
    assert discover_transcript(paths) is None

    odd = paths.base_dir / f"{paths.job_id}.wav.txt"
    odd.write_text("found by scan", encoding="utf-8")
    assert discover_transcript(paths) == odd


def test_failure_of_primary_does_not_leak_into_success(config, fake_runner, stage_context):
    fake_runner.on("whisper", tool_fails("whisper exited with status 1", detail="no -otxt"))
    ctx = stage_context(Stage.TRANSCRIBE)

    result = _stage(config, fake_runner).execute(ctx)

    assert not result.success
    assert not ctx.paths.transcript.exists()
