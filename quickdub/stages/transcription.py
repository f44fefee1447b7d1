"""
Transcription Stage
===================

Speech-to-text with the whisper.cpp command-line engine.

The engine is tried through an ordered list of attempts; the stage succeeds
on the first attempt that leaves a non-blank transcript behind:

1. FileOutputAttempt - `whisper -otxt -of <prefix>`, engine writes the file
2. StdoutCaptureAttempt - plain invocation, stdout becomes the transcript

After each attempt the transcript is located by discovery, because the
engine's output naming differs between invocation modes:

1. <job_id>.txt           (expected name)
2. <job_id>.txt.txt       (prefix already carried the extension)
3. any other <job_id>.*.txt in the artifact directory, excluding this
   job's own translation/TTS text files

Discovery only ever looks at files named after the job, so it cannot pick
up another job's transcript.

A run that exits zero but yields a blank transcript is a ValidationFailure;
when every attempt fails the stage reports the last attempt's error.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from quickdub.errors import StageFailure, ValidationFailure
from quickdub.state import Stage
from quickdub.stages.base import (
    BaseStage,
    StageContext,
    StageResult,
    write_text_artifact,
)
from quickdub.workspace import JobPaths, TRANSCRIPT_SUFFIX


EMPTY_TRANSCRIPT = "Transcription empty"


class TranscriptionAttempt(ABC):
    """One way of invoking the recognition engine"""

    name: str

    def __init__(self, stage: "TranscriptionStage"):
        self.stage = stage

    def base_command(self, ctx: StageContext) -> list:
        config = self.stage.config
        return [
            config.whisper.binary,
            "-m", str(config.whisper_model),
            "-f", str(ctx.job.artifact(Stage.AUDIO_EXTRACT)),
        ]

    @abstractmethod
    def invoke(self, ctx: StageContext) -> None:
        """Run the engine; the transcript is located afterwards by discovery"""


class FileOutputAttempt(TranscriptionAttempt):
    name = "file_output"

    def invoke(self, ctx: StageContext) -> None:
        command = self.base_command(ctx) + ["-otxt", "-of", str(ctx.paths.transcript_prefix)]
        self.stage.runner.run(command)


class StdoutCaptureAttempt(TranscriptionAttempt):
    name = "stdout_capture"

    def invoke(self, ctx: StageContext) -> None:
        result = self.stage.runner.run(self.base_command(ctx))
        write_text_artifact(ctx.paths.transcript, result.stdout)


def discover_transcript(paths: JobPaths) -> Optional[Path]:
    """Locate the transcript the engine wrote for this job, if any"""
    for candidate in (paths.transcript, paths.transcript_alt):
        if candidate.is_file():
            return candidate

    if not paths.base_dir.is_dir():
        return None

    excluded = {paths.transcript, paths.transcript_alt, paths.translation, paths.tts_text}
    matches = sorted(
        p for p in paths.base_dir.iterdir()
        if p.is_file()
        and paths.owns(p)
        and p.name.endswith(TRANSCRIPT_SUFFIX)
        and p not in excluded
    )
    return matches[0] if matches else None


class TranscriptionStage(BaseStage):
    """
    Input: <job_id>.wav
    Output: <job_id>.txt (non-blank)
    """

    stage = Stage.TRANSCRIBE
    requires = (Stage.AUDIO_EXTRACT,)
    missing_output_message = EMPTY_TRANSCRIPT

    attempt_classes = (FileOutputAttempt, StdoutCaptureAttempt)

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.attempts = [cls(self) for cls in self.attempt_classes]

    def process(self, ctx: StageContext) -> Path:
        job_id = ctx.job.job_id
        last_error: Optional[StageFailure] = None

        for idx, attempt in enumerate(self.attempts):
            self.logger.info("[%s] Transcribing (%s)", job_id, attempt.name)
            result = self.run_attempt(attempt, ctx)
            if result.success:
                return result.artifact

            last_error = result.error
            if idx + 1 < len(self.attempts):
                self.logger.warning(
                    "[%s] Transcription attempt %s failed (%s), trying %s",
                    job_id, attempt.name, last_error, self.attempts[idx + 1].name,
                )
                ctx.events.log_transcribe_fallback(attempt.name, str(last_error))

        raise last_error

    def run_attempt(self, attempt: TranscriptionAttempt, ctx: StageContext) -> StageResult:
        try:
            attempt.invoke(ctx)
            return StageResult(artifact=self.collect_transcript(ctx))
        except StageFailure as e:
            return StageResult.failed(e)

    def collect_transcript(self, ctx: StageContext) -> Path:
        """
        Find the transcript, check it is not blank and make sure it sits at
        the canonical <job_id>.txt path.
        """
        found = discover_transcript(ctx.paths)
        if found is None:
            raise ValidationFailure(EMPTY_TRANSCRIPT, detail="no transcript file was produced")

        text = found.read_text(encoding="utf-8", errors="replace")
        if not text.strip():
            raise ValidationFailure(EMPTY_TRANSCRIPT, detail=f"{found.name} is blank")

        if found != ctx.paths.transcript:
            self.logger.debug("[%s] Transcript discovered at %s", ctx.job.job_id, found.name)
            write_text_artifact(ctx.paths.transcript, text)
        return ctx.paths.transcript
