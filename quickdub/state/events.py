"""
Append-Only Event Log
=====================

Audit trail of one job, kept beside its artifacts as
<artifact_dir>/<job_id>.events.jsonl.

Uses JSONL format (one JSON object per line) for:
- Easy appending without parsing the entire file
- Line-by-line reading even if the file is partially corrupted
- Human-readable format for debugging

The pipeline never reads this log back; it exists for operators
(`quickdub events <job_id>`).
"""

import json
import logging
import os
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional, Iterator, Dict, Any


logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Job event types"""
    JOB_CREATED = "job_created"
    JOB_STARTED = "job_started"
    JOB_COMPLETED = "job_completed"
    JOB_FAILED = "job_failed"

    STAGE_STARTED = "stage_started"
    STAGE_COMPLETED = "stage_completed"
    STAGE_FAILED = "stage_failed"

    TRANSCRIBE_FALLBACK = "transcribe_fallback"


@dataclass
class Event:
    """A single event in the log"""
    event_type: str
    timestamp: str
    job_id: Optional[str] = None
    stage: Optional[str] = None
    message: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    duration_ms: Optional[int] = None
    error: Optional[str] = None


class JobEventLog:
    """
    Per-job event log.

    With `enabled=False` events are still mirrored to the logger at DEBUG
    but nothing is written to disk.
    """

    def __init__(self, log_path: str | Path, job_id: str, enabled: bool = True):
        self.log_path = Path(log_path)
        self.job_id = job_id
        self.enabled = enabled

    def append(
        self,
        event_type: str | EventType,
        stage: Optional[str] = None,
        message: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
        duration_ms: Optional[int] = None,
        error: Optional[str] = None,
    ) -> Event:
        """
        Append an event to the log.

        Uses write + fsync so an event that was reported is on disk.
        """
        event = Event(
            event_type=str(event_type.value if isinstance(event_type, EventType) else event_type),
            timestamp=datetime.now(timezone.utc).isoformat(),
            job_id=self.job_id,
            stage=stage,
            message=message,
            data=data,
            duration_ms=duration_ms,
            error=error,
        )
        logger.debug("[%s] %s %s", self.job_id, event.event_type, stage or "")

        if not self.enabled:
            return event

        # Drop None values for compactness
        event_dict = {k: v for k, v in asdict(event).items() if v is not None}

        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.log_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(event_dict, default=str, ensure_ascii=False) + "\n")
            f.flush()
            os.fsync(f.fileno())

        return event

    def iterate(self) -> Iterator[Event]:
        """
        Iterate over all events in the log.

        Corrupted lines are skipped with a warning.
        """
        if not self.log_path.exists():
            return

        with open(self.log_path, "r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue

                try:
                    yield Event(**json.loads(line))
                except (json.JSONDecodeError, TypeError) as e:
                    logger.warning("Corrupted event at %s:%d: %s", self.log_path, line_num, e)
                    continue

    def read_all(self) -> list[Event]:
        return list(self.iterate())

    # =========================================================================
    # Convenience writers
    # =========================================================================

    def log_job_created(self, video_path: str | Path):
        self.append(
            EventType.JOB_CREATED,
            message=f"Job created for {Path(video_path).name}",
            data={"video_path": str(video_path)},
        )

    def log_job_started(self):
        self.append(EventType.JOB_STARTED)

    def log_stage_started(self, stage: str):
        self.append(EventType.STAGE_STARTED, stage=stage, message=f"Stage {stage} started")

    def log_stage_completed(self, stage: str, duration_ms: int, artifact: str | Path):
        self.append(
            EventType.STAGE_COMPLETED,
            stage=stage,
            message=f"Stage {stage} completed",
            duration_ms=duration_ms,
            data={"artifact": Path(artifact).name},
        )

    def log_stage_failed(self, stage: str, kind: str, error: str, duration_ms: int):
        self.append(
            EventType.STAGE_FAILED,
            stage=stage,
            error=error,
            duration_ms=duration_ms,
            data={"kind": kind},
        )

    def log_transcribe_fallback(self, attempt: str, reason: str):
        self.append(
            EventType.TRANSCRIBE_FALLBACK,
            stage="transcribe",
            message=f"Attempt '{attempt}' did not produce a transcript",
            error=reason,
        )

    def log_job_completed(self, output_path: str | Path, duration_ms: int):
        self.append(
            EventType.JOB_COMPLETED,
            message="Job completed",
            duration_ms=duration_ms,
            data={"output": Path(output_path).name},
        )

    def log_job_failed(self, stage: str, kind: str, duration_ms: int):
        self.append(
            EventType.JOB_FAILED,
            stage=stage,
            duration_ms=duration_ms,
            data={"kind": kind},
        )
