from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from . import config

RESULT_FILENAME = "gemini_result.jpg"


def has_result(folder: Path) -> bool:
    """Any gemini_result* file marks the set as done, whatever its extension."""
    if not folder.is_dir():
        return False
    return any(
        p.is_file() and p.name.lower().startswith(config.RESULT_PREFIX) for p in folder.iterdir()
    )


class Category(str, Enum):
    """
    Corpus categories. Each maps to a top-level directory of the corpus.
    """

    WITH_REFERENCE = "with_reference"
    WITHOUT_REFERENCE = "without_reference"


@dataclass(frozen=True)
class Job:
    """
    One image set to process. Immutable for the duration of a run.

    Completion is not stored: a job is complete once its output file exists,
    which is also what makes re-running the orchestrator safe.
    """

    job_id: str
    category: Category
    folder: Path
    glare_path: Path
    clear_path: Path | None = None
    human_edited_path: Path | None = None

    @property
    def output_path(self) -> Path:
        return self.folder / RESULT_FILENAME

    @property
    def is_complete(self) -> bool:
        return has_result(self.folder)

    @property
    def wants_reference(self) -> bool:
        return self.category is Category.WITH_REFERENCE

    @property
    def sort_key(self) -> tuple[str, str]:
        return (self.category.value, self.job_id)

    @property
    def display_name(self) -> str:
        # 001_Adams_John -> "Adams, John"
        parts = self.job_id.split("_")
        if len(parts) >= 3:
            return f"{parts[1]}, {parts[2]}"
        return self.job_id


@dataclass(frozen=True)
class ExtractionAttempt:
    """
    One (strategy, candidate) try during result capture. Never persisted.
    """

    strategy: str
    candidate_index: int | None
    ok: bool
    data: bytes = b""
    error: str | None = None

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class ResultPayload:
    job_id: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class ExecResult:
    """
    Outcome of one command run over the exec bridge.

    truncated is set when stdout was cut short (size cap or timeout); such
    output must not be trusted as a complete payload.
    """

    ok: bool
    stdout: str
    returncode: int | None = None
    error: str | None = None
    truncated: bool = False


@dataclass(frozen=True)
class JobOutcome:
    job_id: str
    category: Category
    ok: bool
    error: str | None = None
    elapsed_s: float = 0.0
    result_bytes: int = 0

    def to_json_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "category": self.category.value,
            "ok": self.ok,
            "error": self.error,
            "elapsed_s": round(self.elapsed_s, 1),
            "result_bytes": self.result_bytes,
        }


@dataclass
class RunSummary:
    outcomes: list[JobOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.ok)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.ok)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    def to_json_dict(self) -> dict[str, Any]:
        return {
            "succeeded": self.succeeded,
            "failed": self.failed,
            "total": self.total,
            "outcomes": [o.to_json_dict() for o in self.outcomes],
        }


@dataclass
class GlareError(Exception):
    """
    Explicit engine error. Caught by the sequencer (job marked failed) or by the
    driver CLI (FAILED line + non-zero exit).
    """

    code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class RemoteEnvironmentError(GlareError):
    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__("environment", message, details or {})


class InteractionError(GlareError):
    """A required UI affordance was not found within its wait bound."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__("interaction", message, details or {})


class ExtractionError(GlareError):
    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__("extraction", message, details or {})


class DriverTimeoutError(GlareError):
    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__("timeout", message, details or {})


def is_acceptable(data: bytes | None, min_bytes: int = config.MIN_RESULT_BYTES) -> bool:
    """Size guard: placeholders, icons and thumbnails never exceed min_bytes."""
    return bool(data) and len(data) > min_bytes
