from __future__ import annotations

from pathlib import Path

import pytest

from quickdub.config import DubConfig
from quickdub.errors import ExternalToolFailure
from quickdub.runner import CommandResult, render_template
from quickdub.stages import StageContext
from quickdub.state import STAGE_ORDER, Job, JobEventLog, Stage
from quickdub.workspace import Workspace


WAV_BYTES = b"RIFF\x24\x00\x00\x00WAVEfmt "
MP4_BYTES = b"\x00\x00\x00\x18ftypmp42"


class FakeResponse:
    def __init__(self, data=None, status_code=200, text=None):
        self._data = data
        self.status_code = status_code
        self.text = text if text is not None else repr(data)

    def json(self):
        if isinstance(self._data, Exception):
            raise self._data
        return self._data

    def raise_for_status(self):
        import requests

        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Server Error", response=self)


class FakeRunner:
    """
    Stand-in for CommandRunner.

    Dispatches on the program name to a handler(argv) that may create
    files, return stdout text, or raise ExternalToolFailure.
    """

    def __init__(self):
        self.calls: list[list[str]] = []
        self.handlers = {
            "ffmpeg": ffmpeg_ok,
            "whisper": whisper_to_file("hello world\n"),
            "tts": tts_ok,
        }

    def on(self, program: str, handler) -> None:
        self.handlers[program] = handler

    def programs(self) -> list[str]:
        return [Path(call[0]).name for call in self.calls]

    def run(self, args, timeout_sec=None, max_output_bytes=None, cwd=None):
        argv = [str(a) for a in args]
        self.calls.append(argv)
        handler = self.handlers[Path(argv[0]).name]
        stdout = handler(argv) or ""
        return CommandResult(args=argv, stdout=stdout, stderr="", returncode=0, duration_sec=0.0)

    def run_template(self, template, values, timeout_sec=None):
        return self.run(render_template(template, values), timeout_sec=timeout_sec)


def ffmpeg_ok(argv):
    output = Path(argv[-1])
    output.write_bytes(MP4_BYTES if output.suffix == ".mp4" else WAV_BYTES)


def whisper_to_file(text: str):
    def handler(argv):
        if "-of" in argv:
            prefix = argv[argv.index("-of") + 1]
            Path(prefix + ".txt").write_text(text, encoding="utf-8")
            return ""
        return text
    return handler


def whisper_stdout_only(text: str):
    """Engine that rejects -otxt but prints the transcript"""
    def handler(argv):
        if "-otxt" in argv:
            raise ExternalToolFailure("whisper exited with status 1",
                                      detail="error: unknown argument: -otxt", exit_status=1)
        return text
    return handler


def tool_fails(message="exited with status 1", detail="boom", exit_status=1):
    def handler(argv):
        raise ExternalToolFailure(message, detail=detail, exit_status=exit_status)
    return handler


def tts_ok(argv):
    Path(argv[argv.index("--out_path") + 1]).write_bytes(WAV_BYTES)


@pytest.fixture
def config(tmp_path: Path) -> DubConfig:
    cfg = DubConfig()
    cfg.paths.artifact_dir = tmp_path / "uploads"
    cfg.paths.models_dir = tmp_path / "models"
    cfg.whisper.binary = "whisper"
    cfg.translate.url = "http://translate.invalid/translate"
    return cfg


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def video(tmp_path: Path) -> Path:
    path = tmp_path / "input clip.mp4"
    path.write_bytes(MP4_BYTES)
    return path


STAGE_CONTENT = {
    Stage.AUDIO_EXTRACT: ("audio", WAV_BYTES),
    Stage.TRANSCRIBE: ("transcript", "hello world\n"),
    Stage.TRANSLATE: ("translation", "नमस्ते दुनिया\n"),
    Stage.SYNTHESIZE: ("speech", WAV_BYTES),
}


@pytest.fixture
def stage_context(config: DubConfig, video: Path):
    """
    Build a StageContext positioned at `stage`.

    Every earlier stage is completed with a placeholder artifact at its
    canonical path, and `stage` itself is started.
    """
    def build(stage: Stage) -> StageContext:
        workspace = Workspace(config.paths.artifact_dir, config.translate.target_lang)
        paths = workspace.paths_for_video(video)
        job = Job(job_id=paths.job_id, source_video_path=paths.source_video)
        events = JobEventLog(paths.events, job.job_id)

        for done in STAGE_ORDER[: STAGE_ORDER.index(stage)]:
            attr, content = STAGE_CONTENT[done]
            path = getattr(paths, attr)
            if isinstance(content, bytes):
                path.write_bytes(content)
            else:
                path.write_text(content, encoding="utf-8")
            job.start_stage(done)
            job.record_artifact(done, path)

        job.start_stage(stage)
        return StageContext(job=job, paths=paths, events=events)

    return build


@pytest.fixture
def translate_response(monkeypatch: pytest.MonkeyPatch):
    """
    Patch requests.post for the translation stage.

    Call the fixture with a FakeResponse, or an exception to raise.
    Returns the list of captured request kwargs.
    """
    captured: list[dict] = []

    def install(response):
        def fake_post(url, **kwargs):
            captured.append({"url": url, **kwargs})
            if isinstance(response, Exception):
                raise response
            return response

        monkeypatch.setattr("quickdub.stages.translation.requests.post", fake_post)
        return captured

    return install
