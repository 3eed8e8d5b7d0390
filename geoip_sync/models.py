from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List

UPLOADED = "uploaded"
ALREADY_PRESENT = "already_present"
FAILED = "failed"


def archive_key(database_name: str, release_date: str) -> str:
    return f"{database_name}/{release_date}"


@dataclass(frozen=True)
class Snapshot:
    edition: str
    path: Path
    database_name: str
    release_date: str

    @property
    def archive_key(self) -> str:
        return archive_key(self.database_name, self.release_date)


@dataclass(frozen=True)
class RunOutcome:
    edition: str
    status: str
    release_date: str | None = None
    error: str | None = None
    reason: str | None = None

    @classmethod
    def uploaded(cls, edition: str, release_date: str) -> "RunOutcome":
        return cls(edition=edition, status=UPLOADED, release_date=release_date)

    @classmethod
    def already_present(cls, edition: str, release_date: str | None = None) -> "RunOutcome":
        return cls(edition=edition, status=ALREADY_PRESENT, release_date=release_date)

    @classmethod
    def failed(cls, edition: str, exc: BaseException) -> "RunOutcome":
        return cls(
            edition=edition,
            status=FAILED,
            error=exc.__class__.__name__,
            reason=str(exc) or exc.__class__.__name__,
        )

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"edition": self.edition, "status": self.status}
        if self.release_date is not None:
            payload["release_date"] = self.release_date
        if self.error is not None:
            payload["error"] = self.error
            payload["reason"] = self.reason
        return payload


@dataclass(frozen=True)
class RunSummary:
    uploaded: int = 0
    skipped: int = 0
    failed: int = 0
    release_dates: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.uploaded + self.skipped + self.failed

    def as_dict(self) -> Dict[str, Any]:
        return {
            "uploaded": self.uploaded,
            "skipped": self.skipped,
            "failed": self.failed,
            "release_dates": list(self.release_dates),
        }


@dataclass(frozen=True)
class RunResult:
    outcomes: List[RunOutcome]
    summary: RunSummary
    notified: bool = False
