from __future__ import annotations

import argparse
import os
import signal
import tempfile
import time
from contextlib import contextmanager
from dataclasses import replace
from pathlib import Path
from typing import Callable, Iterator, List, Sequence, Tuple

from .backends import S3ArchiveStore, SNSNotifier, SSMSecretProvider
from .backends.base import ArchiveStore, SecretProvider
from .classifier import classify
from .common import ensure_dirs, remove_tree
from .constants import STAGING_PREFIX
from .errors import ConfigError, SecretUnavailable, SyncError, UploadFailure, WorkDirUnavailable
from .fetcher import SnapshotFetcher
from .loader import SyncSettings, load_settings
from .logger import configure_logging, get_logger
from .models import RunOutcome, RunResult, Snapshot
from .report import RunReporter, summarize, summary_line, write_report

logger = get_logger(__name__)

SEPARATOR = "-" * 40


class SyncPipeline:
    """Takes one edition from download to archive.

    Fetching -> Classifying -> CheckingArchive -> Uploading | SkippingExisting,
    ending in Done or Failed. Every ``SyncError`` becomes a ``failed`` outcome;
    the edition's staging directory is removed whatever happens.
    """

    def __init__(self, fetcher: SnapshotFetcher, store: ArchiveStore) -> None:
        self.fetcher = fetcher
        self.store = store

    def process(self, edition: str, credential: str, work_dir: Path) -> RunOutcome:
        logger.info("Processing %s...", edition)
        try:
            staging = Path(tempfile.mkdtemp(prefix=f"{STAGING_PREFIX}{edition}-", dir=work_dir))
        except OSError as exc:
            raise WorkDirUnavailable(f"Cannot create staging directory in {work_dir}: {exc}") from exc

        try:
            outcome = self._process(edition, credential, staging)
        except SyncError as exc:
            logger.error("Failed to process %s: %s: %s", edition, exc.__class__.__name__, exc)
            outcome = RunOutcome.failed(edition, exc)
            self._state(edition, "Failed")
        else:
            self._state(edition, "Done")
        finally:
            remove_tree(staging)
        return outcome

    @staticmethod
    def _state(edition: str, state: str) -> None:
        logger.debug("%s: %s", edition, state)

    def _process(self, edition: str, credential: str, staging: Path) -> RunOutcome:
        self._state(edition, "Fetching")
        snapshot = self.fetcher.fetch(edition, credential, staging)

        self._state(edition, "Classifying")
        if not (snapshot.database_name and snapshot.release_date):
            database_name, release_date = classify(snapshot.path.name)
            snapshot = replace(snapshot, database_name=database_name, release_date=release_date)
        logger.debug("Database: %s, Date: %s", snapshot.database_name, snapshot.release_date)

        self._state(edition, "CheckingArchive")
        if self.store.exists(snapshot.archive_key):
            self._state(edition, "SkippingExisting")
            logger.warning("Database %s already archived for date %s", snapshot.database_name, snapshot.release_date)
            return RunOutcome.already_present(edition, snapshot.release_date)

        self._state(edition, "Uploading")
        staged = self._stage(snapshot)
        logger.info("Uploading %s (%s) to %s", snapshot.database_name, snapshot.release_date, snapshot.archive_key)
        count = self.store.put_recursive(snapshot.archive_key, staged)
        logger.info("Successfully processed %s (%d files)", edition, count)
        return RunOutcome.uploaded(edition, snapshot.release_date)

    @staticmethod
    def _stage(snapshot: Snapshot) -> Path:
        staged = snapshot.path.with_name(snapshot.release_date)
        try:
            snapshot.path.rename(staged)
        except OSError as exc:
            raise UploadFailure(f"Cannot stage {snapshot.path.name} as {staged.name}: {exc}") from exc
        return staged


def purge_staging(work_dir: Path) -> List[str]:
    removed: List[str] = []
    if not work_dir.is_dir():
        return removed
    for child in work_dir.iterdir():
        if child.name.startswith(STAGING_PREFIX):
            remove_tree(child)
            removed.append(child.name)
    return removed


@contextmanager
def working_directory(path: str | Path) -> Iterator[Path]:
    """Make sure ``path`` is usable and leave no staging data in it on exit."""
    path = Path(path)
    try:
        ensure_dirs(path)
    except OSError as exc:
        raise WorkDirUnavailable(f"Cannot create working directory {path}: {exc}") from exc
    if not os.access(path, os.W_OK | os.X_OK):
        raise WorkDirUnavailable(f"Working directory {path} is not writable")

    try:
        yield path
    finally:
        leftovers = purge_staging(path)
        if leftovers:
            logger.debug("Cleaned up leftover staging data: %s", ", ".join(leftovers))


def run_sync(
    settings: SyncSettings,
    secrets: SecretProvider,
    pipeline: SyncPipeline,
    reporter: RunReporter,
    sleep: Callable[[float], None] = time.sleep,
) -> RunResult:
    logger.info("Starting GeoIP archive sync")
    outcomes: List[RunOutcome] = []

    with working_directory(settings.work_dir) as work_dir:
        credential = secrets.resolve(settings.secret_path)

        for index, edition in enumerate(settings.editions):
            if index and settings.edition_pause > 0:
                sleep(settings.edition_pause)
            logger.info(SEPARATOR)
            outcomes.append(pipeline.process(edition, credential, work_dir))

    summary = summarize(outcomes)
    logger.info(SEPARATOR)
    logger.info(summary_line(summary))

    notified = False
    if summary.uploaded > 0:
        notified = reporter.notify(summary, summary.release_dates[0])
    else:
        logger.info("No new databases to report")

    logger.info("GeoIP archive sync completed")
    return RunResult(outcomes=outcomes, summary=summary, notified=notified)


def build_components(settings: SyncSettings) -> Tuple[SecretProvider, SyncPipeline, RunReporter]:
    store = S3ArchiveStore(settings.bucket, settings.archive_prefix, region=settings.region)
    fetcher = SnapshotFetcher(
        download_url=settings.download_url,
        timeout=settings.download_timeout,
        attempts=settings.fetch_attempts,
        retry_delay=settings.fetch_retry_delay,
        retry_jitter=settings.fetch_retry_jitter,
    )
    reporter = RunReporter(store, SNSNotifier(settings.topic_arn, region=settings.region), bucket=settings.bucket)
    return SSMSecretProvider(region=settings.region), SyncPipeline(fetcher, store), reporter


def _terminate(signum, frame) -> None:
    raise SystemExit(128 + signum)


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Archive new GeoIP database releases to S3")
    parser.add_argument("--config", help="YAML settings file")
    parser.add_argument("--edition", action="append", help="process only the given edition (repeatable)")
    parser.add_argument("--work-dir", help="directory used for downloads and extraction")
    parser.add_argument("--report", help="write a JSON run report to this path")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING or ERROR")
    args = parser.parse_args(argv)

    configure_logging(args.log_level or "INFO")
    try:
        settings = load_settings(args.config).with_overrides(
            editions=args.edition,
            work_dir=args.work_dir,
            log_level=args.log_level,
        )
    except ConfigError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 1
    configure_logging(settings.log_level, settings.log_dir)

    previous_handler = signal.signal(signal.SIGTERM, _terminate)
    try:
        secrets, pipeline, reporter = build_components(settings)
        result = run_sync(settings, secrets, pipeline, reporter)
    except (SecretUnavailable, WorkDirUnavailable) as exc:
        logger.error("%s", exc)
        return 1
    finally:
        signal.signal(signal.SIGTERM, previous_handler)

    if args.report:
        try:
            path = write_report(args.report, result)
        except OSError as exc:
            logger.error("Could not write run report to %s: %s", args.report, exc)
        else:
            logger.info("Run report written to %s", path)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
