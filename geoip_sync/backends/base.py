from __future__ import annotations

from pathlib import Path
from typing import List, Protocol


class SecretProvider(Protocol):
    def resolve(self, secret_path: str) -> str:
        ...


class ArchiveStore(Protocol):
    def exists(self, key: str) -> bool:
        ...

    def put_recursive(self, key: str, local_directory: Path) -> int:
        ...

    def list_namespaces(self, root_prefix: str | None = None) -> List[str]:
        ...


class Notifier(Protocol):
    def publish(self, subject: str, message: str) -> None:
        ...
