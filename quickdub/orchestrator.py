"""
QuickDub Orchestrator
=====================

Drives one job through the pipeline.

Pipeline stages:
1. AudioExtract - source video -> 16 kHz mono wav
2. Transcribe   - wav -> transcript (with engine fallback)
3. Translate    - transcript -> translated text
4. Synthesize   - translated text -> speech wav
5. Remux        - source video + speech -> <job_id>.dub.mp4

Stages run strictly in order, each only after the previous stage's
artifact was validated. The first failure ends the job (fail-fast); there
is no job-level retry. Artifacts of a failed job stay on disk.

The orchestrator keeps no per-job state of its own and can be shared by
concurrent request threads; each call to run_pipeline owns its Job.
"""

import logging
import shutil
import time
from pathlib import Path
from typing import Optional

from quickdub.config import DubConfig
from quickdub.outcome import JobOutcome
from quickdub.runner import CommandRunner, create_runner
from quickdub.stages import (
    AudioExtractStage,
    BaseStage,
    RemuxStage,
    StageContext,
    SynthesisStage,
    TranscriptionStage,
    TranslationStage,
)
from quickdub.state import Job, JobEventLog, Stage
from quickdub.workspace import Workspace, JobPaths


logger = logging.getLogger(__name__)


class PipelineOrchestrator:
    """Orchestrates the dubbing pipeline for one job at a time per call"""

    STAGES = [
        (Stage.AUDIO_EXTRACT, AudioExtractStage),
        (Stage.TRANSCRIBE, TranscriptionStage),
        (Stage.TRANSLATE, TranslationStage),
        (Stage.SYNTHESIZE, SynthesisStage),
        (Stage.REMUX, RemuxStage),
    ]

    def __init__(
        self,
        config: DubConfig,
        runner: Optional[CommandRunner] = None,
        workspace: Optional[Workspace] = None,
    ):
        self.config = config
        self.runner = runner or create_runner(config)
        self.workspace = workspace or create_workspace(config)
        self.workspace.ensure()

        self.stages: list[BaseStage] = [
            stage_class(config, self.runner) for _, stage_class in self.STAGES
        ]

    # =========================================================================
    # Public API
    # =========================================================================

    def run_pipeline(self, source_video_path: str | Path) -> JobOutcome:
        """
        Run all stages over `source_video_path`.

        Returns:
            JobOutcome - succeeded with the output path, or failed with the
            first stage that could not validate its output
        """
        start_time = time.monotonic()
        job = self.run_job(source_video_path)
        return JobOutcome.from_job(
            job,
            duration_ms=_elapsed_ms(start_time),
            limit=self.config.runner.diagnostic_limit,
        )

    def run_job(self, source_video_path: str | Path) -> Job:
        """Run the pipeline and return the terminal Job (see run_pipeline)"""
        paths = self.workspace.paths_for_video(source_video_path)
        job = Job(job_id=paths.job_id, source_video_path=paths.source_video)
        events = JobEventLog(paths.events, job.job_id, enabled=self.config.events.enabled)
        events.log_job_created(paths.source_video)

        self._execute(StageContext(job=job, paths=paths, events=events))
        return job

    def dub_file(self, video_path: str | Path) -> JobOutcome:
        """Copy a local video into the workspace as a new job and dub it"""
        video_path = Path(video_path)
        paths = self.allocate(video_path.name)
        shutil.copyfile(video_path, paths.source_video)
        return self.run_pipeline(paths.source_video)

    def allocate(self, original_filename: Optional[str] = None) -> JobPaths:
        return self.workspace.allocate(original_filename)

    # =========================================================================
    # Stage sequencing
    # =========================================================================

    def _execute(self, ctx: StageContext) -> None:
        job = ctx.job
        start_time = time.monotonic()
        logger.info("[%s] Job started for %s", job.job_id, job.source_video_path.name)
        ctx.events.log_job_started()

        for stage in self.stages:
            job.start_stage(stage.stage)
            ctx.events.log_stage_started(stage.stage.value)

            result = stage.execute(ctx)

            if not result.success:
                failure = result.error
                job.fail(stage.stage, failure)
                logger.error(
                    "[%s] %s failed (%s): %s",
                    job.job_id, stage.stage.value, failure.kind, failure,
                )
                ctx.events.log_stage_failed(
                    stage.stage.value, failure.kind, str(failure), result.duration_ms
                )
                ctx.events.log_job_failed(stage.stage.value, failure.kind, _elapsed_ms(start_time))
                return

            job.record_artifact(stage.stage, result.artifact)
            logger.info(
                "[%s] %s completed in %dms -> %s",
                job.job_id, stage.stage.value, result.duration_ms, result.artifact.name,
            )
            ctx.events.log_stage_completed(stage.stage.value, result.duration_ms, result.artifact)

        job.succeed()
        logger.info("[%s] Job completed -> %s", job.job_id, job.output_path.name)
        ctx.events.log_job_completed(job.output_path, _elapsed_ms(start_time))


def create_workspace(config: DubConfig) -> Workspace:
    """Create the workspace from config"""
    return Workspace(
        artifact_dir=config.paths.artifact_dir,
        target_lang=config.translate.target_lang,
        models_dir=config.paths.models_dir,
    )


def create_orchestrator(config: DubConfig, runner: Optional[CommandRunner] = None) -> PipelineOrchestrator:
    """Create orchestrator from config"""
    return PipelineOrchestrator(config, runner=runner)


def _elapsed_ms(start_time: float) -> int:
    return int((time.monotonic() - start_time) * 1000)
