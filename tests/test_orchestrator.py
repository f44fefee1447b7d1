from __future__ import annotations

from pathlib import Path

import requests

from quickdub.orchestrator import PipelineOrchestrator
from quickdub.state import JobEventLog, Stage, Status

from conftest import FakeResponse, tool_fails


def _orchestrator(config, runner) -> PipelineOrchestrator:
    return PipelineOrchestrator(config, runner=runner)


def test_happy_path_produces_dubbed_video(config, fake_runner, video, translate_response):
    captured = translate_response(FakeResponse({"translatedText": "नमस्ते दुनिया"}))
    orchestrator = _orchestrator(config, fake_runner)

    outcome = orchestrator.dub_file(video)

    assert outcome.succeeded
    assert outcome.output_path.name == f"{outcome.job_id}.dub.mp4"
    assert outcome.output_path.is_file()
    assert outcome.to_payload() == {
        "output": f"/download/{outcome.job_id}.dub.mp4",
        "filename": f"{outcome.job_id}.dub.mp4",
        "job_id": outcome.job_id,
    }
    assert fake_runner.programs() == ["ffmpeg", "whisper", "tts", "ffmpeg"]
    assert captured[0]["json"]["q"] == "hello world\n"


def test_run_job_records_every_artifact(config, fake_runner, video, translate_response):
    translate_response(FakeResponse({"translatedText": "hola"}))
    job = _orchestrator(config, fake_runner).run_job(video)

    assert job.status == Status.SUCCEEDED
    assert [p.name for p in job.artifacts.values()] == [
        f"{job.job_id}.wav",
        f"{job.job_id}.txt",
        f"{job.job_id}.hi.txt",
        f"{job.job_id}.hi.wav",
        f"{job.job_id}.dub.mp4",
    ]


def test_fail_fast_stops_at_first_failing_stage(config, fake_runner, video, translate_response):
    captured = translate_response(FakeResponse({"translatedText": "hola"}))
    fake_runner.on("whisper", tool_fails("whisper exited with status 1", detail="model missing"))

    outcome = _orchestrator(config, fake_runner).run_pipeline(video)

    assert not outcome.succeeded
    assert outcome.stage == "transcribe"
    assert outcome.error_kind == "ExternalToolFailure"
    assert outcome.error == "Whisper transcription failed. Check whisper binary and model."
    assert "model missing" in outcome.detail
    assert outcome.http_status == 500
    assert captured == []
    assert "tts" not in fake_runner.programs()


def test_translation_timeout_leaves_partial_artifacts(config, fake_runner, video, translate_response):
    translate_response(requests.Timeout("read timed out (120s)"))
    orchestrator = _orchestrator(config, fake_runner)

    job = orchestrator.run_job(video)
    paths = orchestrator.workspace.paths_for(job.job_id, job.source_video_path)

    assert job.status == Status.FAILED
    assert job.current_stage == Stage.TRANSLATE
    assert job.failure.kind == "NetworkFailure"
    assert paths.audio.is_file()
    assert paths.transcript.is_file()
    assert not paths.translation.exists()
    assert not paths.output.exists()
    assert orchestrator.workspace.resolve_download(paths.output.name) is None


def test_translation_timeout_outcome(config, fake_runner, video, translate_response):
    translate_response(requests.Timeout("read timed out"))
    outcome = _orchestrator(config, fake_runner).run_pipeline(video)

    assert outcome.stage == "translate"
    assert outcome.timed_out is True
    assert outcome.http_status == 504
    assert outcome.to_payload()["error"] == "Translate failed"


def test_missing_source_video_fails_at_audio_extract(config, fake_runner, tmp_path: Path):
    outcome = _orchestrator(config, fake_runner).run_pipeline(tmp_path / "gone.mp4")

    assert outcome.stage == "audio_extract"
    assert outcome.error_kind == "ValidationFailure"
    assert outcome.error == "Audio extraction failed"
    assert fake_runner.calls == []


def test_events_trace_the_job(config, fake_runner, video, translate_response):
    translate_response(FakeResponse({"translatedText": "hola"}))
    fake_runner.on("tts", lambda argv: None)
    orchestrator = _orchestrator(config, fake_runner)

    job = orchestrator.run_job(video)

    log = JobEventLog(config.paths.artifact_dir / f"{job.job_id}.events.jsonl", job.job_id)
    types = [e.event_type for e in log.read_all()]
    assert types[:2] == ["job_created", "job_started"]
    assert types[-2:] == ["stage_failed", "job_failed"]
    assert types.count("stage_completed") == 3
    assert log.read_all()[-1].stage == "synthesize"


def test_events_can_be_disabled(config, fake_runner, video, translate_response):
    config.events.enabled = False
    translate_response(FakeResponse({"translatedText": "hola"}))

    job = _orchestrator(config, fake_runner).run_job(video)

    assert job.status == Status.SUCCEEDED
    assert not (config.paths.artifact_dir / f"{job.job_id}.events.jsonl").exists()


def test_concurrent_uploads_of_same_name_do_not_collide(config, fake_runner, video, translate_response):
    translate_response(FakeResponse({"translatedText": "hola"}))
    orchestrator = _orchestrator(config, fake_runner)

    first = orchestrator.dub_file(video)
    second = orchestrator.dub_file(video)

    assert first.job_id != second.job_id
    assert first.output_path != second.output_path
    assert first.output_path.is_file() and second.output_path.is_file()
