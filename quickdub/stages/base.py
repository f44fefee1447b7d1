"""
Base Stage Framework
====================

Foundation for the five pipeline stages.

Subclasses implement:
- process(): produce the stage's artifact, raising StageFailure on error

The base class handles:
- Checking declared inputs exist and are non-empty before running
- Validating the produced artifact (exists, non-empty)
- Stamping the stage name onto failures raised by shared helpers
- Timing
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from quickdub.config import DubConfig
from quickdub.errors import StageFailure, ValidationFailure
from quickdub.runner import CommandRunner
from quickdub.state import Job, JobEventLog, Stage
from quickdub.workspace import JobPaths


logger = logging.getLogger(__name__)

# Input marker for the job's source video (not produced by any stage)
SOURCE_VIDEO = "source_video"


@dataclass
class StageContext:
    """Everything a stage may touch for one job"""
    job: Job
    paths: JobPaths
    events: JobEventLog


@dataclass
class StageResult:
    """Outcome of one stage (or one attempt inside a stage)"""
    artifact: Optional[Path] = None
    error: Optional[StageFailure] = None
    duration_ms: int = 0
    metrics: dict = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.error is None and self.artifact is not None

    @classmethod
    def failed(cls, error: StageFailure, duration_ms: int = 0) -> "StageResult":
        return cls(error=error, duration_ms=duration_ms)


def require_file(path: Path, message: str, stage: Optional[Stage] = None) -> Path:
    """Raise ValidationFailure unless `path` is an existing, non-empty file"""
    path = Path(path)
    if not path.is_file():
        raise ValidationFailure(message, detail=f"missing: {path.name}",
                                stage=stage.value if stage else None)
    if path.stat().st_size == 0:
        raise ValidationFailure(message, detail=f"empty: {path.name}",
                                stage=stage.value if stage else None)
    return path


def write_text_artifact(path: Path, text: str) -> Path:
    """Persist text as a UTF-8 artifact (a checkpoint later stages read back)"""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(text)
    return path


class BaseStage(ABC):
    """
    Base class for all pipeline stages.

    `requires` lists the inputs the stage reads: SOURCE_VIDEO and/or the
    Stage whose artifact it consumes. A stage never reads in-memory output
    of an earlier stage, only artifacts on disk, so any stage can be re-run
    from its inputs alone.
    """

    stage: Stage
    requires: tuple = ()
    missing_output_message = "Stage output missing"

    def __init__(self, config: DubConfig, runner: CommandRunner):
        self.config = config
        self.runner = runner
        self.logger = logging.getLogger(f"quickdub.stages.{self.stage.value}")

    # =========================================================================
    # Abstract Methods - Subclasses Must Implement
    # =========================================================================

    @abstractmethod
    def process(self, ctx: StageContext) -> Path:
        """
        Produce this stage's artifact.

        Returns:
            Path of the artifact (validated afterwards by validate_output)

        Raises:
            StageFailure: any failure of the external tool or service
        """

    # =========================================================================
    # Execution
    # =========================================================================

    def input_paths(self, ctx: StageContext) -> list[Path]:
        paths = []
        for requirement in self.requires:
            if requirement == SOURCE_VIDEO:
                paths.append(ctx.job.source_video_path)
            else:
                paths.append(ctx.job.artifact(requirement))
        return paths

    def check_inputs(self, ctx: StageContext) -> None:
        for path in self.input_paths(ctx):
            require_file(path, f"Input for {self.stage.value} is missing or empty", self.stage)

    def validate_output(self, ctx: StageContext, artifact: Path) -> Path:
        return require_file(artifact, self.missing_output_message, self.stage)

    def execute(self, ctx: StageContext) -> StageResult:
        """Check inputs, run process(), validate the artifact"""
        start_time = time.monotonic()
        try:
            self.check_inputs(ctx)
            artifact = self.process(ctx)
            artifact = self.validate_output(ctx, artifact)
        except StageFailure as e:
            if e.stage is None:
                e.stage = self.stage.value
            return StageResult.failed(e, _elapsed_ms(start_time))

        return StageResult(artifact=artifact, duration_ms=_elapsed_ms(start_time))


def _elapsed_ms(start_time: float) -> int:
    return int((time.monotonic() - start_time) * 1000)
