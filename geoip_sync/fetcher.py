from __future__ import annotations

import os
import tarfile
import tempfile
import zlib
from dataclasses import replace
from pathlib import Path
from typing import BinaryIO, List

import requests
import urllib3
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_fixed,
    wait_random,
)

from .classifier import classify, matches_snapshot_name
from .common import remove_tree
from .constants import (
    ATTEMPT_PREFIX,
    DEFAULT_ARCHIVE_SUFFIX,
    DEFAULT_DOWNLOAD_TIMEOUT,
    DEFAULT_DOWNLOAD_URL,
    DEFAULT_FETCH_ATTEMPTS,
    DEFAULT_FETCH_RETRY_DELAY,
    DEFAULT_FETCH_RETRY_JITTER,
    USER_AGENT,
)
from .errors import ClassificationFailure, DownloadFailure, ExtractionFailure, redact
from .logger import get_logger
from .models import Snapshot

logger = get_logger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "application/gzip, application/octet-stream",
}

ERROR_BODY_EXCERPT = 200


def is_transient(exc: BaseException) -> bool:
    """Transport errors, throttling and server errors are worth another attempt."""
    if not isinstance(exc, DownloadFailure):
        return False
    status = exc.status_code
    return status is None or status == 429 or status >= 500


class SnapshotFetcher:
    """Downloads one edition as a streamed tar.gz and extracts it into a directory.

    The response body is read once, front to back; nothing assumes it can be
    rewound. Each attempt extracts into its own directory under ``work_dir``, so a
    retry only discards what the failed attempt wrote. Transport failures,
    throttling and server errors are retried; other HTTP errors, archive and
    naming problems are not.
    """

    def __init__(
        self,
        download_url: str = DEFAULT_DOWNLOAD_URL,
        timeout: float = DEFAULT_DOWNLOAD_TIMEOUT,
        attempts: int = DEFAULT_FETCH_ATTEMPTS,
        retry_delay: float = DEFAULT_FETCH_RETRY_DELAY,
        retry_jitter: float = DEFAULT_FETCH_RETRY_JITTER,
    ) -> None:
        self.download_url = download_url
        self.timeout = timeout
        self.attempts = max(1, attempts)
        self.retry_delay = retry_delay
        self.retry_jitter = retry_jitter

    def fetch(self, edition: str, credential: str, work_dir: str | Path) -> Snapshot:
        work_dir = Path(work_dir)
        attempt_dirs: List[Path] = []
        retrying = Retrying(
            stop=stop_after_attempt(self.attempts),
            wait=wait_fixed(self.retry_delay) + wait_random(0, self.retry_jitter),
            retry=retry_if_exception(is_transient),
            before_sleep=self._before_retry(edition, attempt_dirs),
            reraise=True,
        )
        attempt_dir = retrying(self._attempt, edition, credential, work_dir, attempt_dirs)

        found = self.locate(edition, attempt_dir)
        target = work_dir / found.path.name
        if target.exists():
            raise ClassificationFailure(f"{target.name} already exists in {work_dir}")
        try:
            found.path.rename(target)
        except OSError as exc:
            raise ExtractionFailure(f"Cannot move {found.path.name} into {work_dir}: {exc}") from exc
        remove_tree(attempt_dir)
        return replace(found, path=target)

    def _before_retry(self, edition: str, attempt_dirs: List[Path]):
        def _hook(state: RetryCallState) -> None:
            exc = state.outcome.exception() if state.outcome else None
            logger.warning(
                "Download of %s failed (attempt %d/%d): %s; retrying",
                edition,
                state.attempt_number,
                self.attempts,
                exc,
            )
            # Only what the failed attempt extracted goes away.
            if attempt_dirs:
                remove_tree(attempt_dirs[-1])

        return _hook

    def _attempt(self, edition: str, credential: str, work_dir: Path, attempt_dirs: List[Path]) -> Path:
        try:
            attempt_dir = Path(tempfile.mkdtemp(prefix=ATTEMPT_PREFIX, dir=work_dir))
        except OSError as exc:
            raise ExtractionFailure(f"Cannot create extraction directory in {work_dir}: {exc}") from exc
        attempt_dirs.append(attempt_dir)
        self._download_and_extract(edition, credential, attempt_dir)
        return attempt_dir

    def _download_and_extract(self, edition: str, credential: str, work_dir: Path) -> int:
        params = {
            "edition_id": edition,
            "license_key": credential,
            "suffix": DEFAULT_ARCHIVE_SUFFIX,
        }
        logger.info("Downloading %s", edition)
        try:
            response = requests.get(
                self.download_url,
                params=params,
                headers=DEFAULT_HEADERS,
                stream=True,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            # Transport messages embed the request URL, license key included.
            raise DownloadFailure(
                redact(f"Request for {edition} failed: {exc.__class__.__name__}: {exc}", credential)
            ) from None

        with response:
            if response.status_code != 200:
                excerpt = (response.text or "").strip()[:ERROR_BODY_EXCERPT]
                raise DownloadFailure(
                    redact(f"Download of {edition} returned HTTP {response.status_code}: {excerpt}", credential),
                    status_code=response.status_code,
                )
            count = self._extract(edition, response.raw, work_dir, credential)

        logger.debug("Extracted %d archive members for %s into %s", count, edition, work_dir)
        return count

    @staticmethod
    def _extract(edition: str, stream: BinaryIO, work_dir: Path, credential: str) -> int:
        count = 0
        try:
            with tarfile.open(fileobj=stream, mode="r|gz") as archive:
                for member in archive:
                    archive.extract(member, path=work_dir, filter="data")
                    count += 1
        except (requests.RequestException, urllib3.exceptions.HTTPError) as exc:
            raise DownloadFailure(
                redact(f"Stream for {edition} broke during extraction: {exc.__class__.__name__}: {exc}", credential)
            ) from None
        except (tarfile.TarError, EOFError, zlib.error) as exc:
            raise ExtractionFailure(f"Malformed archive for {edition}: {exc}") from exc
        except OSError as exc:
            raise ExtractionFailure(f"Cannot write extracted files for {edition}: {exc}") from exc

        if count == 0:
            raise ExtractionFailure(f"Archive for {edition} is empty")
        return count

    @staticmethod
    def locate(edition: str, work_dir: str | Path) -> Snapshot:
        """Find the single ``{databaseName}_{releaseDate}`` directory in ``work_dir``."""
        work_dir = Path(work_dir)
        candidates = _snapshot_directories(work_dir)
        if not candidates:
            raise ClassificationFailure(f"No extracted snapshot directory found for {edition} in {work_dir}")
        if len(candidates) > 1:
            raise ClassificationFailure(
                f"Ambiguous extraction result for {edition}: {', '.join(candidates)}"
            )

        name = candidates[0]
        database_name, release_date = classify(name)
        return Snapshot(
            edition=edition,
            path=work_dir / name,
            database_name=database_name,
            release_date=release_date,
        )


def _snapshot_directories(work_dir: Path) -> List[str]:
    with os.scandir(work_dir) as entries:
        return sorted(
            entry.name
            for entry in entries
            if entry.is_dir(follow_symlinks=False) and matches_snapshot_name(entry.name)
        )

