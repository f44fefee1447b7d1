from __future__ import annotations

from quickdub.errors import ExternalToolFailure, ValidationFailure
from quickdub.stages import AudioExtractStage, RemuxStage, SynthesisStage
from quickdub.state import Stage

from conftest import tool_fails


def test_audio_extract_command(config, fake_runner, stage_context):
    ctx = stage_context(Stage.AUDIO_EXTRACT)
    result = AudioExtractStage(config, fake_runner).execute(ctx)

    assert result.success
    (argv,) = fake_runner.calls
    assert argv == [
        "ffmpeg", "-y", "-i", str(ctx.job.source_video_path),
        "-vn", "-acodec", "pcm_s16le", "-ar", "16000", "-ac", "1",
        str(ctx.paths.audio),
    ]


def test_audio_extract_rejects_empty_source(config, fake_runner, stage_context):
    ctx = stage_context(Stage.AUDIO_EXTRACT)
    ctx.job.source_video_path.write_bytes(b"")

    result = AudioExtractStage(config, fake_runner).execute(ctx)

    assert isinstance(result.error, ValidationFailure)
    assert result.error.stage == "audio_extract"
    assert fake_runner.calls == []


def test_synthesis_renders_template_with_paths(config, fake_runner, stage_context):
    config.tts.command = "tts --lang {lang} --text_file {text_file} --out_path {out_path}"
    ctx = stage_context(Stage.SYNTHESIZE)

    result = SynthesisStage(config, fake_runner).execute(ctx)

    assert result.success
    assert result.artifact == ctx.paths.speech
    (argv,) = fake_runner.calls
    assert argv == [
        "tts", "--lang", "hi",
        "--text_file", str(ctx.paths.tts_text),
        "--out_path", str(ctx.paths.speech),
    ]
    assert ctx.paths.tts_text.read_text(encoding="utf-8") == "नमस्ते दुनिया\n"


def test_synthesis_zero_exit_without_output(config, fake_runner, stage_context):
    fake_runner.on("tts", lambda argv: None)
    ctx = stage_context(Stage.SYNTHESIZE)

    result = SynthesisStage(config, fake_runner).execute(ctx)

    assert isinstance(result.error, ValidationFailure)
    assert result.error.message == "TTS output not found"


def test_synthesis_engine_crash(config, fake_runner, stage_context):
    fake_runner.on("tts", tool_fails("tts exited with status 1", detail="CUDA error"))
    result = SynthesisStage(config, fake_runner).execute(stage_context(Stage.SYNTHESIZE))

    assert isinstance(result.error, ExternalToolFailure)
    assert result.error.stage == "synthesize"
    assert result.error.detail == "CUDA error"


def test_remux_maps_video_from_source_and_audio_from_speech(config, fake_runner, stage_context):
    ctx = stage_context(Stage.REMUX)

    result = RemuxStage(config, fake_runner).execute(ctx)

    assert result.success
    assert result.artifact == ctx.paths.output
    assert result.artifact.name == f"{ctx.job.job_id}.dub.mp4"

    (argv,) = fake_runner.calls
    assert argv[:6] == ["ffmpeg", "-y", "-i", str(ctx.job.source_video_path), "-i", str(ctx.paths.speech)]
    assert argv[6:10] == ["-map", "0:v", "-map", "1:a"]
    assert argv[10:16] == ["-c:v", "copy", "-c:a", "aac", "-b:a", "192k"]
    assert "language=hin" in argv
    assert "title=Hindi (Dubbed)" in argv
    assert argv[-1] == str(ctx.paths.output)


def test_remux_unknown_language_metadata(config, fake_runner):
    config.translate.target_lang = "sw"
    argv = RemuxStage(config, fake_runner).build_command("v.mp4", "s.wav", "o.mp4")
    assert "language=sw" in argv
    assert "title=SW (Dubbed)" in argv


def test_remux_requires_speech_artifact(config, fake_runner, stage_context):
    ctx = stage_context(Stage.REMUX)
    ctx.paths.speech.unlink()

    result = RemuxStage(config, fake_runner).execute(ctx)

    assert isinstance(result.error, ValidationFailure)
    assert "missing" in result.error.detail
    assert fake_runner.calls == []


def test_remux_metadata_for_configured_languages(config, fake_runner):
    config.translate.target_lang = "id"
    argv = RemuxStage(config, fake_runner).build_command("v.mp4", "s.wav", "o.mp4")
    assert "language=ind" in argv
    assert "title=Indonesian (Dubbed)" in argv
