from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping

import yaml

from .constants import (
    DEFAULT_ARCHIVE_PREFIX,
    DEFAULT_BUCKET,
    DEFAULT_DOWNLOAD_TIMEOUT,
    DEFAULT_DOWNLOAD_URL,
    DEFAULT_EDITION_PAUSE,
    DEFAULT_EDITIONS,
    DEFAULT_FETCH_ATTEMPTS,
    DEFAULT_FETCH_RETRY_DELAY,
    DEFAULT_FETCH_RETRY_JITTER,
    DEFAULT_REGION,
    DEFAULT_SECRET_PATH,
    DEFAULT_TOPIC_ARN,
)
from .errors import ConfigError


ENV_VARS = {
    "secret_path": "SSM_PARAMETER_NAME",
    "region": "AWS_REGION",
    "bucket": "S3_BUCKET",
    "archive_prefix": "S3_PREFIX",
    "topic_arn": "SNS_TOPIC_ARN",
    "work_dir": "WORK_DIR",
    "editions": "GEOIP_EDITIONS",
    "download_url": "DOWNLOAD_URL",
    "download_timeout": "DOWNLOAD_TIMEOUT",
    "fetch_attempts": "FETCH_ATTEMPTS",
    "fetch_retry_delay": "FETCH_RETRY_DELAY",
    "fetch_retry_jitter": "FETCH_RETRY_JITTER",
    "edition_pause": "EDITION_PAUSE",
    "log_level": "LOG_LEVEL",
    "log_dir": "LOG_DIR",
}

FLOAT_FIELDS = ("download_timeout", "fetch_retry_delay", "fetch_retry_jitter", "edition_pause")


@dataclass(frozen=True)
class SyncSettings:
    secret_path: str = DEFAULT_SECRET_PATH
    region: str = DEFAULT_REGION
    bucket: str = DEFAULT_BUCKET
    archive_prefix: str = DEFAULT_ARCHIVE_PREFIX
    topic_arn: str = DEFAULT_TOPIC_ARN
    work_dir: Path = field(default_factory=Path.cwd)
    editions: List[str] = field(default_factory=lambda: list(DEFAULT_EDITIONS))
    download_url: str = DEFAULT_DOWNLOAD_URL
    download_timeout: float = DEFAULT_DOWNLOAD_TIMEOUT
    fetch_attempts: int = DEFAULT_FETCH_ATTEMPTS
    fetch_retry_delay: float = DEFAULT_FETCH_RETRY_DELAY
    fetch_retry_jitter: float = DEFAULT_FETCH_RETRY_JITTER
    edition_pause: float = DEFAULT_EDITION_PAUSE
    log_level: str = "INFO"
    log_dir: Path | None = None

    def with_overrides(self, **overrides: Any) -> "SyncSettings":
        values = {key: value for key, value in overrides.items() if value is not None}
        if not values:
            return self
        return _validated(replace(self, **_coerce(values)))


def _split_editions(raw: Any) -> List[str]:
    if isinstance(raw, str):
        items = raw.split(",")
    elif isinstance(raw, (list, tuple)):
        items = [str(item) for item in raw]
    else:
        raise ConfigError(f"editions must be a list or a comma-separated string, got {type(raw).__name__}")
    return [item.strip() for item in items if item and item.strip()]


def _coerce(values: Dict[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for key, value in values.items():
        try:
            if key in FLOAT_FIELDS:
                out[key] = float(value)
            elif key == "fetch_attempts":
                out[key] = int(value)
            elif key == "editions":
                out[key] = _split_editions(value)
            elif key in {"work_dir", "log_dir"}:
                out[key] = Path(value).expanduser()
            else:
                out[key] = str(value)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid value for {key}: {value!r}") from exc
    return out


def _validated(settings: SyncSettings) -> SyncSettings:
    if not settings.editions:
        raise ConfigError("At least one edition must be configured")
    if settings.fetch_attempts < 1:
        raise ConfigError("fetch_attempts must be at least 1")
    for name in FLOAT_FIELDS:
        if getattr(settings, name) < 0:
            raise ConfigError(f"{name} must not be negative")
    if settings.download_timeout == 0:
        raise ConfigError("download_timeout must be positive")
    return settings


def _read_file(path: str | Path) -> Dict[str, Any]:
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as fh:
            payload = yaml.safe_load(fh) or {}
    except OSError as exc:
        raise ConfigError(f"Cannot read settings file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Settings file {path} is not valid YAML: {exc}") from exc

    if not isinstance(payload, dict):
        raise ConfigError(f"Settings file {path} must contain a mapping")
    unknown = sorted(set(payload) - set(ENV_VARS))
    if unknown:
        raise ConfigError(f"Unknown settings in {path}: {', '.join(unknown)}")
    return {key: value for key, value in payload.items() if value is not None}


def load_settings(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> SyncSettings:
    """Build settings from defaults, an optional YAML file and the environment.

    Environment variables win over the file; empty variables are ignored.
    """
    environ = os.environ if environ is None else environ

    values: Dict[str, Any] = {}
    if path:
        values.update(_read_file(path))

    for key, env_name in ENV_VARS.items():
        raw = environ.get(env_name)
        if raw is not None and raw.strip():
            values[key] = raw.strip()

    return _validated(SyncSettings(**_coerce(values)))
