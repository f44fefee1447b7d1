"""
Workspace Manager
=================

Allocates job identifiers and derives every artifact path of a job.

All jobs share one artifact directory. Isolation comes purely from naming:
every file a job touches is named <job_id>.<suffix>, and job ids are
unique (millisecond timestamp + random uuid), so two jobs never write to
the same path and no locking is needed.

Layout for job <id> and target language <lang>:
    <id><ext>              uploaded source video (ext from the client filename)
    <id>.wav               16 kHz mono PCM audio
    <id>.txt               transcript
    <id>.<lang>.txt        translation
    <id>.for_tts.txt       text handed to the TTS engine
    <id>.<lang>.wav        synthesized speech
    <id>.dub.mp4           dubbed video (the only downloadable artifact)
    <id>.events.jsonl      job event log
"""

import logging
import re
import time
import uuid
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Optional


logger = logging.getLogger(__name__)

JOB_ID_PATTERN = re.compile(r"\d{13}_[0-9a-f]{32}")
LANG_PATTERN = re.compile(r"[A-Za-z0-9_-]{1,16}")
_EXTENSION_PATTERN = re.compile(r"\.[a-z0-9]{1,10}")

DEFAULT_EXTENSION = ".mp4"
OUTPUT_SUFFIX = ".dub.mp4"
TRANSCRIPT_SUFFIX = ".txt"

# Upload extensions that would land on one of the job's own artifact paths
RESERVED_EXTENSIONS = frozenset({".wav", TRANSCRIPT_SUFFIX})


def new_job_id() -> str:
    """Time-ordered, collision-resistant job identifier"""
    return f"{int(time.time() * 1000):013d}_{uuid.uuid4().hex}"


def is_job_id(value: str) -> bool:
    return bool(JOB_ID_PATTERN.fullmatch(value or ""))


def safe_extension(original_filename: Optional[str]) -> str:
    """
    Extension of a client-supplied filename, or .mp4.

    Only the extension is ever taken from user input; directories and the
    stem are discarded, so traversal sequences cannot reach a path.
    Extensions of the job's own artifacts (.wav, .txt) fall back to .mp4
    so the stored upload never shares a path with an artifact.
    """
    if not original_filename:
        return DEFAULT_EXTENSION
    name = PurePosixPath(original_filename.replace("\\", "/")).name
    suffix = PurePosixPath(name).suffix.lower()
    if _EXTENSION_PATTERN.fullmatch(suffix) and suffix not in RESERVED_EXTENSIONS:
        return suffix
    return DEFAULT_EXTENSION


@dataclass(frozen=True)
class JobPaths:
    """Deterministic artifact paths for one job"""
    job_id: str
    base_dir: Path
    source_video: Path
    target_lang: str

    def _path(self, suffix: str) -> Path:
        return self.base_dir / f"{self.job_id}{suffix}"

    @property
    def audio(self) -> Path:
        return self._path(".wav")

    @property
    def transcript(self) -> Path:
        return self._path(TRANSCRIPT_SUFFIX)

    @property
    def transcript_prefix(self) -> Path:
        """Prefix handed to whisper's -of flag; whisper appends .txt"""
        return self._path("")

    @property
    def transcript_alt(self) -> Path:
        """Name produced when the prefix already carries the extension"""
        return self._path(TRANSCRIPT_SUFFIX + TRANSCRIPT_SUFFIX)

    @property
    def translation(self) -> Path:
        return self._path(f".{self.target_lang}.txt")

    @property
    def tts_text(self) -> Path:
        return self._path(".for_tts.txt")

    @property
    def speech(self) -> Path:
        return self._path(f".{self.target_lang}.wav")

    @property
    def output(self) -> Path:
        return self._path(OUTPUT_SUFFIX)

    @property
    def events(self) -> Path:
        return self._path(".events.jsonl")

    def owns(self, path: Path) -> bool:
        """True if `path` is named after this job (<job_id>.<anything>)"""
        return path.name.startswith(f"{self.job_id}.")


class Workspace:
    """
    The shared artifact directory.

    Stateless apart from the directory itself, safe to share between
    request threads.
    """

    def __init__(
        self,
        artifact_dir: str | Path,
        target_lang: str,
        models_dir: Optional[str | Path] = None,
    ):
        if not LANG_PATTERN.fullmatch(target_lang or ""):
            raise ValueError(f"Invalid target language code: {target_lang!r}")
        self.artifact_dir = Path(artifact_dir)
        self.models_dir = Path(models_dir) if models_dir else None
        self.target_lang = target_lang

    def ensure(self) -> None:
        """Create the artifact (and models) directory if missing"""
        self.artifact_dir.mkdir(parents=True, exist_ok=True)
        if self.models_dir is not None:
            self.models_dir.mkdir(parents=True, exist_ok=True)

    def allocate(self, original_filename: Optional[str] = None) -> JobPaths:
        """
        Allocate a new job.

        Returns the job's paths; `source_video` is where the upload must be
        written (<job_id><ext>).
        """
        self.ensure()
        job_id = new_job_id()
        source_video = self.artifact_dir / f"{job_id}{safe_extension(original_filename)}"
        logger.debug("Allocated job %s for %r", job_id, original_filename)
        return self.paths_for(job_id, source_video)

    def paths_for(self, job_id: str, source_video: str | Path) -> JobPaths:
        if not is_job_id(job_id):
            raise ValueError(f"Not a job id: {job_id!r}")
        return JobPaths(
            job_id=job_id,
            base_dir=self.artifact_dir,
            source_video=Path(source_video),
            target_lang=self.target_lang,
        )

    def paths_for_video(self, source_video: str | Path) -> JobPaths:
        """
        Paths for a pipeline run over `source_video`.

        A video stored by allocate() keeps its job id; any other file gets a
        fresh one and is read in place.
        """
        source_video = Path(source_video)
        if is_job_id(source_video.stem):
            self.ensure()
            return self.paths_for(source_video.stem, source_video)
        paths = self.allocate(source_video.name)
        return self.paths_for(paths.job_id, source_video)

    def resolve_download(self, filename: str) -> Optional[Path]:
        """
        Path of a finished output, or None.

        Only <job_id>.dub.mp4 names are served; intermediate artifacts are
        never exposed even though they live in the same directory.
        """
        if not filename or not filename.endswith(OUTPUT_SUFFIX):
            return None
        if not is_job_id(filename[: -len(OUTPUT_SUFFIX)]):
            return None
        path = self.artifact_dir / filename
        if not path.is_file():
            return None
        return path
