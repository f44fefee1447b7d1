"""
Error Taxonomy
==============

Every way a job can fail is one of three stage failures:

- ExternalToolFailure: an invoked program exited nonzero, timed out, could
  not be started or flooded its output buffer
- ValidationFailure: the tool or service reported success but its output
  fails a content check (empty transcript, empty translation, missing file)
- NetworkFailure: transport-level failure or timeout calling the
  translation service

Diagnostics carried by these errors are always bounded by excerpt().
"""

from typing import Optional


DEFAULT_DIAGNOSTIC_LIMIT = 1000


def excerpt(text, limit: int = DEFAULT_DIAGNOSTIC_LIMIT) -> str:
    """First `limit` characters of captured diagnostic output"""
    if text is None:
        return ""
    if isinstance(text, (bytes, bytearray)):
        text = bytes(text).decode("utf-8", errors="replace")
    return str(text)[:limit]


class QuickDubError(Exception):
    """Base class for all quickdub errors"""


class ConfigError(QuickDubError):
    """Invalid or unreadable configuration"""


class StageFailure(QuickDubError):
    """
    Terminal failure of one pipeline stage.

    `stage` is filled in by whoever knows it: stages set it themselves,
    BaseStage.execute stamps it onto failures raised by shared helpers
    such as the subprocess runner.
    """

    kind = "StageFailure"

    def __init__(
        self,
        message: str,
        detail: str = "",
        stage: Optional[str] = None,
        limit: int = DEFAULT_DIAGNOSTIC_LIMIT,
    ):
        super().__init__(message)
        self.message = message
        self.detail = excerpt(detail, limit)
        self.stage = stage

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "stage": self.stage,
            "message": self.message,
            "detail": self.detail,
        }

    def __str__(self) -> str:
        if self.detail:
            return f"{self.message}: {self.detail}"
        return self.message


class ExternalToolFailure(StageFailure):
    """An external program failed (nonzero exit, timeout, not startable)"""

    kind = "ExternalToolFailure"

    def __init__(
        self,
        message: str,
        detail: str = "",
        stage: Optional[str] = None,
        exit_status: Optional[int] = None,
        timed_out: bool = False,
        limit: int = DEFAULT_DIAGNOSTIC_LIMIT,
    ):
        super().__init__(message, detail, stage=stage, limit=limit)
        self.exit_status = exit_status
        self.timed_out = timed_out

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["exit_status"] = self.exit_status
        data["timed_out"] = self.timed_out
        return data


class ValidationFailure(StageFailure):
    """A step reported success but produced nothing usable"""

    kind = "ValidationFailure"


class NetworkFailure(StageFailure):
    """Transport failure or timeout talking to a remote service"""

    kind = "NetworkFailure"

    def __init__(
        self,
        message: str,
        detail: str = "",
        stage: Optional[str] = None,
        timed_out: bool = False,
        limit: int = DEFAULT_DIAGNOSTIC_LIMIT,
    ):
        super().__init__(message, detail, stage=stage, limit=limit)
        self.timed_out = timed_out

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["timed_out"] = self.timed_out
        return data
