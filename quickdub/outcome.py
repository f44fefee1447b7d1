"""
Job Outcome Reporter
====================

Turns a finished Job into the response the caller sees:

    success: {"output": "/download/<job_id>.dub.mp4", "filename": ..., "job_id": ...}
    failure: {"error": <phase message>, "detail": <bounded excerpt>,
              "stage": ..., "kind": ..., "job_id": ...}

Raw tool output never reaches the caller beyond the bounded excerpt.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from quickdub.errors import (
    DEFAULT_DIAGNOSTIC_LIMIT,
    ExternalToolFailure,
    NetworkFailure,
    ValidationFailure,
    excerpt,
)
from quickdub.state import Job, Stage, Status


DOWNLOAD_PREFIX = "/download/"

# (stage, error kind) -> message shown to the caller
USER_MESSAGES = {
    (Stage.TRANSCRIBE, ExternalToolFailure.kind):
        "Whisper transcription failed. Check whisper binary and model.",
    (Stage.TRANSCRIBE, ValidationFailure.kind): "Transcription empty. Check whisper output.",
    (Stage.TRANSLATE, NetworkFailure.kind): "Translate failed",
    (Stage.TRANSLATE, ValidationFailure.kind): "Translation returned empty",
    (Stage.SYNTHESIZE, ExternalToolFailure.kind): "TTS generation failed",
    (Stage.SYNTHESIZE, ValidationFailure.kind): "TTS output not found",
}

# Fallback per stage
STAGE_MESSAGES = {
    Stage.AUDIO_EXTRACT: "Audio extraction failed",
    Stage.TRANSCRIBE: "Transcription failed",
    Stage.TRANSLATE: "Translate failed",
    Stage.SYNTHESIZE: "TTS generation failed",
    Stage.REMUX: "Remux failed",
}


def user_message(stage: Stage, kind: str) -> str:
    return USER_MESSAGES.get((stage, kind), STAGE_MESSAGES.get(stage, "Server error"))


@dataclass
class JobOutcome:
    """Terminal result of one pipeline run"""
    job_id: str
    succeeded: bool
    output_path: Optional[Path] = None
    stage: Optional[str] = None
    error_kind: Optional[str] = None
    error: Optional[str] = None
    detail: str = ""
    timed_out: bool = False
    duration_ms: int = 0

    @classmethod
    def from_job(
        cls,
        job: Job,
        duration_ms: int = 0,
        limit: int = DEFAULT_DIAGNOSTIC_LIMIT,
    ) -> "JobOutcome":
        if job.status == Status.SUCCEEDED:
            return cls(
                job_id=job.job_id,
                succeeded=True,
                output_path=job.output_path,
                duration_ms=duration_ms,
            )

        if job.status != Status.FAILED or job.failure is None:
            raise ValueError(f"Job {job.job_id} is not finished ({job.status.value})")

        failure = job.failure
        return cls(
            job_id=job.job_id,
            succeeded=False,
            stage=job.current_stage.value,
            error_kind=failure.kind,
            error=user_message(job.current_stage, failure.kind),
            detail=excerpt(str(failure), limit),
            timed_out=getattr(failure, "timed_out", False),
            duration_ms=duration_ms,
        )

    @property
    def filename(self) -> Optional[str]:
        return self.output_path.name if self.output_path else None

    @property
    def http_status(self) -> int:
        if self.succeeded:
            return 200
        if self.error_kind == NetworkFailure.kind:
            return 504 if self.timed_out else 502
        return 500

    def to_payload(self, download_prefix: str = DOWNLOAD_PREFIX) -> dict:
        if self.succeeded:
            return {
                "output": f"{download_prefix}{self.filename}",
                "filename": self.filename,
                "job_id": self.job_id,
            }
        return {
            "error": self.error,
            "detail": self.detail,
            "stage": self.stage,
            "kind": self.error_kind,
            "job_id": self.job_id,
        }
