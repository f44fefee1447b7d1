"""
Job State Machine
=================

In-memory state for one dubbing job, owned by the request that runs it.

    PENDING -> RUNNING(audio_extract) -> RUNNING(transcribe) -> ...
            -> RUNNING(remux) -> SUCCEEDED
    any RUNNING(stage) -> FAILED(stage, cause)

Transitions only move forward: stages run in STAGE_ORDER, none is entered
twice, and a terminal job never changes again. Artifacts are write-once.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional

from quickdub.errors import QuickDubError, StageFailure


class Status(str, Enum):
    """Job status values"""
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


class Stage(str, Enum):
    """Pipeline stages, in execution order"""
    AUDIO_EXTRACT = "audio_extract"
    TRANSCRIBE = "transcribe"
    TRANSLATE = "translate"
    SYNTHESIZE = "synthesize"
    REMUX = "remux"


STAGE_ORDER = [
    Stage.AUDIO_EXTRACT,
    Stage.TRANSCRIBE,
    Stage.TRANSLATE,
    Stage.SYNTHESIZE,
    Stage.REMUX,
]

TERMINAL_STATUSES = (Status.SUCCEEDED, Status.FAILED)


class InvalidTransition(QuickDubError):
    """Attempted a backwards, repeated or post-terminal transition"""


@dataclass
class Job:
    """Complete state for a dubbing job"""
    job_id: str
    source_video_path: Path
    status: Status = Status.PENDING
    current_stage: Optional[Stage] = None

    # Stage -> produced artifact, in production order
    artifacts: dict = field(default_factory=dict)

    failure: Optional[StageFailure] = None
    created_at: str = ""
    status_history: list = field(default_factory=list)

    def __post_init__(self):
        self.source_video_path = Path(self.source_video_path)
        if not self.created_at:
            self.created_at = _now()
        if not self.status_history:
            self._record(Status.PENDING, message="Job created")

    # =========================================================================
    # Transitions
    # =========================================================================

    def start_stage(self, stage: Stage) -> None:
        """Enter `stage`; it must be the next stage in STAGE_ORDER"""
        self._require_active()
        expected = self.next_stage()
        if stage != expected:
            raise InvalidTransition(
                f"Job {self.job_id}: cannot start {stage.value}, next stage is "
                f"{expected.value if expected else 'none'}"
            )
        self.status = Status.RUNNING
        self.current_stage = stage
        self._record(Status.RUNNING, stage=stage)

    def record_artifact(self, stage: Stage, path: str | Path) -> None:
        """Register the validated output of the running stage (write-once)"""
        self._require_active()
        if stage != self.current_stage:
            raise InvalidTransition(
                f"Job {self.job_id}: {stage.value} is not the running stage"
            )
        if stage in self.artifacts:
            raise InvalidTransition(
                f"Job {self.job_id}: artifact for {stage.value} already recorded"
            )
        self.artifacts[stage] = Path(path)

    def succeed(self) -> None:
        self._require_active()
        missing = [s.value for s in STAGE_ORDER if s not in self.artifacts]
        if missing:
            raise InvalidTransition(
                f"Job {self.job_id}: cannot succeed, missing artifacts for {', '.join(missing)}"
            )
        self.status = Status.SUCCEEDED
        self._record(Status.SUCCEEDED, message="Job completed")

    def fail(self, stage: Stage, failure: StageFailure) -> None:
        self._require_active()
        if self.current_stage is not None and stage != self.current_stage:
            raise InvalidTransition(
                f"Job {self.job_id}: failure reported for {stage.value} while "
                f"{self.current_stage.value} is running"
            )
        self.status = Status.FAILED
        self.current_stage = stage
        self.failure = failure
        self._record(Status.FAILED, stage=stage, message=str(failure))

    # =========================================================================
    # Queries
    # =========================================================================

    def next_stage(self) -> Optional[Stage]:
        if self.current_stage is None:
            return STAGE_ORDER[0]
        idx = STAGE_ORDER.index(self.current_stage)
        if idx + 1 < len(STAGE_ORDER):
            return STAGE_ORDER[idx + 1]
        return None

    def artifact(self, stage: Stage) -> Path:
        if stage not in self.artifacts:
            raise KeyError(f"Job {self.job_id}: no artifact for {stage.value}")
        return self.artifacts[stage]

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def output_path(self) -> Optional[Path]:
        if self.status != Status.SUCCEEDED:
            return None
        return self.artifacts.get(Stage.REMUX)

    # =========================================================================
    # Internals
    # =========================================================================

    def _require_active(self) -> None:
        if self.is_terminal:
            raise InvalidTransition(f"Job {self.job_id} is already {self.status.value}")

    def _record(self, status: Status, stage: Optional[Stage] = None, message: Optional[str] = None):
        self.status_history.append({
            "status": status.value,
            "stage": stage.value if stage else None,
            "timestamp": _now(),
            "message": message,
        })


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()
