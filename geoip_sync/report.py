from __future__ import annotations

from pathlib import Path
from typing import Iterable, List

from .backends.base import ArchiveStore, Notifier
from .common import utc_now, write_json
from .constants import MAX_SUBJECT_LENGTH
from .errors import NotifyFailure, StoreUnavailable
from .logger import get_logger
from .models import ALREADY_PRESENT, FAILED, UPLOADED, RunOutcome, RunResult, RunSummary

logger = get_logger(__name__)

UNLISTED = "could not enumerate"


def summarize(outcomes: Iterable[RunOutcome]) -> RunSummary:
    uploaded = skipped = failed = 0
    release_dates: List[str] = []
    for outcome in outcomes:
        if outcome.status == UPLOADED:
            uploaded += 1
            if outcome.release_date:
                release_dates.append(outcome.release_date)
        elif outcome.status == ALREADY_PRESENT:
            skipped += 1
        elif outcome.status == FAILED:
            failed += 1
        else:
            raise ValueError(f"Unknown outcome status: {outcome.status!r}")
    return RunSummary(uploaded=uploaded, skipped=skipped, failed=failed, release_dates=release_dates)


def summary_line(summary: RunSummary) -> str:
    return f"Summary: {summary.uploaded} uploaded, {summary.skipped} skipped, {summary.failed} failed"


class RunReporter:
    """Announces newly archived snapshots on the notification channel.

    Delivery is best-effort: a failed publish is logged and reported back as
    ``False``, never raised.
    """

    def __init__(self, store: ArchiveStore, notifier: Notifier, bucket: str = "") -> None:
        self.store = store
        self.notifier = notifier
        self.bucket = bucket

    def _namespaces(self) -> List[str]:
        try:
            return self.store.list_namespaces()
        except StoreUnavailable as exc:
            logger.warning("Could not enumerate archived databases: %s", exc)
            return []

    def compose(self, summary: RunSummary, representative_date: str) -> tuple[str, str]:
        subject = f"GeoIP DB Update Available - {representative_date}"[:MAX_SUBJECT_LENGTH]

        namespaces = self._namespaces()
        listing = "\n".join(f"  {name}" for name in namespaces) if namespaces else f"  ({UNLISTED})"
        dates = ", ".join(summary.release_dates) or "none"

        lines = [
            "GeoIP Database Update Notification",
            "",
            f"Update Date: {representative_date}",
        ]
        if self.bucket:
            lines.append(f"S3 Bucket: {self.bucket}")
        lines += [
            "",
            summary_line(summary),
            f"Newly archived release dates: {dates}",
            "",
            "Databases in archive:",
            listing,
            "",
            "This is an automated notification from the GeoIP archive sync job.",
        ]
        return subject, "\n".join(lines)

    def notify(self, summary: RunSummary, representative_date: str) -> bool:
        subject, message = self.compose(summary, representative_date)
        logger.info("Sending update notification")
        try:
            self.notifier.publish(subject, message)
        except NotifyFailure as exc:
            logger.warning("Failed to send update notification: %s", exc)
            return False
        logger.info("Update notification sent")
        return True


def write_report(path: str | Path, result: RunResult) -> Path:
    path = Path(path)
    payload = {
        "generated_at": utc_now(),
        "summary": result.summary.as_dict(),
        "notified": result.notified,
        "outcomes": [outcome.as_dict() for outcome in result.outcomes],
    }
    write_json(payload, path)
    return path
