from __future__ import annotations

from typing import Any

import boto3
from botocore.config import Config as BotoConfig

from geoip_sync.constants import AWS_CONNECT_TIMEOUT, AWS_MAX_ATTEMPTS, AWS_READ_TIMEOUT


def make_client(service: str, region: str | None = None, read_timeout: int = AWS_READ_TIMEOUT) -> Any:
    """Create a boto3 client with bounded timeouts and retries so a call cannot hang the run."""
    config = BotoConfig(
        connect_timeout=AWS_CONNECT_TIMEOUT,
        read_timeout=read_timeout,
        retries={"max_attempts": AWS_MAX_ATTEMPTS, "mode": "standard"},
    )
    kwargs = {"config": config}
    if region:
        kwargs["region_name"] = region
    return boto3.client(service, **kwargs)
