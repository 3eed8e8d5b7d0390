from __future__ import annotations

from pathlib import Path
from typing import Any, List

from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import BotoCoreError, ClientError

from geoip_sync.constants import DEFAULT_ARCHIVE_PREFIX
from geoip_sync.errors import StoreUnavailable, UploadFailure
from geoip_sync.logger import get_logger

from .aws import make_client

logger = get_logger(__name__)

# delete_objects accepts at most this many keys per request.
DELETE_BATCH_SIZE = 1000


def _join(*parts: str) -> str:
    return "/".join(part.strip("/") for part in parts if part and part.strip("/"))


class S3ArchiveStore:
    """Snapshots live under ``s3://{bucket}/{root}/{databaseName}/{releaseDate}/``."""

    def __init__(
        self,
        bucket: str,
        root_prefix: str = DEFAULT_ARCHIVE_PREFIX,
        region: str | None = None,
        client: Any = None,
    ) -> None:
        self.bucket = bucket
        self.root_prefix = root_prefix.strip("/")
        self.client = client if client is not None else make_client("s3", region)

    def prefix_for(self, key: str) -> str:
        return _join(self.root_prefix, key) + "/"

    def exists(self, key: str) -> bool:
        prefix = self.prefix_for(key)
        try:
            response = self.client.list_objects_v2(Bucket=self.bucket, Prefix=prefix, MaxKeys=1)
        except (ClientError, BotoCoreError) as exc:
            raise StoreUnavailable(f"Cannot list s3://{self.bucket}/{prefix}: {exc}") from exc
        return int(response.get("KeyCount", len(response.get("Contents") or []))) > 0

    def put_recursive(self, key: str, local_directory: Path) -> int:
        local_directory = Path(local_directory)
        if not local_directory.is_dir():
            raise UploadFailure(f"Nothing to upload, {local_directory} is not a directory")

        files = sorted(path for path in local_directory.rglob("*") if path.is_file())
        if not files:
            raise UploadFailure(f"Nothing to upload, {local_directory} is empty")

        written: List[str] = []
        for path in files:
            object_key = _join(self.root_prefix, key, path.relative_to(local_directory).as_posix())
            try:
                self.client.upload_file(str(path), self.bucket, object_key)
            except (S3UploadFailedError, ClientError, BotoCoreError, OSError) as exc:
                self._discard(written)
                raise UploadFailure(
                    f"Upload of {path.name} to s3://{self.bucket}/{object_key} failed "
                    f"after {len(written)}/{len(files)} files: {exc}"
                ) from exc
            written.append(object_key)
            logger.debug("Uploaded s3://%s/%s", self.bucket, object_key)
        return len(written)

    def _discard(self, object_keys: List[str]) -> None:
        """Remove the objects of an incomplete upload so ``exists`` stays false."""
        if not object_keys:
            return
        leftover: List[str] = []
        for start in range(0, len(object_keys), DELETE_BATCH_SIZE):
            batch = object_keys[start : start + DELETE_BATCH_SIZE]
            try:
                response = self.client.delete_objects(
                    Bucket=self.bucket,
                    Delete={"Objects": [{"Key": object_key} for object_key in batch], "Quiet": True},
                )
            except (ClientError, BotoCoreError) as exc:
                logger.error("Could not remove partial upload from s3://%s: %s", self.bucket, exc)
                leftover.extend(batch)
                continue
            leftover.extend(item.get("Key", "") for item in response.get("Errors") or [])
        if leftover:
            logger.error(
                "Partial upload left in s3://%s, remove it before the next run: %s",
                self.bucket,
                ", ".join(leftover),
            )
        else:
            logger.warning("Removed %d objects of an incomplete upload from s3://%s", len(object_keys), self.bucket)

    def list_namespaces(self, root_prefix: str | None = None) -> List[str]:
        prefix = _join(self.root_prefix if root_prefix is None else root_prefix)
        prefix = f"{prefix}/" if prefix else ""
        names: List[str] = []
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix, Delimiter="/"):
                for item in page.get("CommonPrefixes") or []:
                    name = item.get("Prefix", "")[len(prefix):].strip("/")
                    if name:
                        names.append(name)
        except (ClientError, BotoCoreError) as exc:
            raise StoreUnavailable(f"Cannot enumerate s3://{self.bucket}/{prefix}: {exc}") from exc
        return names
