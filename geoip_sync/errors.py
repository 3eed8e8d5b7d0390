"""Error taxonomy for the archive sync run.

Everything the pipeline records as a per-edition failure derives from
``SyncError``. ``SecretUnavailable`` and the driver preconditions
(``ConfigError``, ``WorkDirUnavailable``) end the run instead.
"""

from __future__ import annotations


class SyncError(Exception):
    """Base class for every failure raised by the sync components."""


class SecretUnavailable(SyncError):
    pass


class DownloadFailure(SyncError):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ExtractionFailure(SyncError):
    pass


class ClassificationFailure(SyncError):
    pass


class MalformedName(ClassificationFailure):
    pass


class StoreUnavailable(SyncError):
    pass


class UploadFailure(SyncError):
    pass


class NotifyFailure(SyncError):
    pass


class ConfigError(Exception):
    pass


class WorkDirUnavailable(Exception):
    pass


def redact(text: str, *secrets: str | None) -> str:
    """Replace every occurrence of the given secrets in ``text``."""
    for secret in secrets:
        if secret:
            text = text.replace(secret, "***")
    return text
