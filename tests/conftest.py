"""Shared pytest fixtures for the sync tests."""

import io
import tarfile
from pathlib import Path

import pytest

from geoip_sync.loader import SyncSettings


def build_tarball(files: dict[str, bytes], extra_dirs: tuple[str, ...] = ()) -> bytes:
    """Build a .tar.gz in memory.

    Args:
        files: archive member path -> file content
        extra_dirs: directory members to add even when they hold no files

    Returns:
        The compressed archive bytes
    """
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as archive:
        dirs = set(extra_dirs)
        for name in files:
            parts = Path(name).parts[:-1]
            for i in range(1, len(parts) + 1):
                dirs.add("/".join(parts[:i]))
        for name in sorted(dirs):
            info = tarfile.TarInfo(name)
            info.type = tarfile.DIRTYPE
            info.mode = 0o755
            archive.addfile(info)
        for name, content in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(content)
            info.mode = 0o644
            archive.addfile(info, io.BytesIO(content))
    return buffer.getvalue()


@pytest.fixture
def work_dir(tmp_path):
    path = tmp_path / "work"
    path.mkdir()
    return path


@pytest.fixture
def settings(work_dir):
    return SyncSettings(
        work_dir=work_dir,
        editions=["GeoIP2-City"],
        edition_pause=0,
        fetch_attempts=1,
        fetch_retry_delay=0,
        fetch_retry_jitter=0,
    )


@pytest.fixture
def city_tarball():
    return build_tarball(
        {
            "GeoIP2-City_20250101/GeoIP2-City.mmdb": b"\xab\xcd\xefMaxMind.com",
            "GeoIP2-City_20250101/COPYRIGHT.txt": b"Database and Contents Copyright (c) 2025 MaxMind, Inc.\n",
        }
    )


@pytest.fixture
def make_tarball():
    return build_tarball
