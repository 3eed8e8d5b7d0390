from __future__ import annotations

from typing import Tuple

from .constants import SNAPSHOT_NAME_DELIMITER
from .errors import MalformedName


def classify(directory_name: str) -> Tuple[str, str]:
    """Split ``GeoIP2-Country_20200512`` into ``("GeoIP2-Country", "20200512")``."""
    name, delimiter, release_date = directory_name.partition(SNAPSHOT_NAME_DELIMITER)
    if not delimiter:
        raise MalformedName(f"Directory name has no '{SNAPSHOT_NAME_DELIMITER}' delimiter: {directory_name!r}")
    if not name:
        raise MalformedName(f"Directory name has an empty database component: {directory_name!r}")
    if not release_date:
        raise MalformedName(f"Directory name has an empty release date: {directory_name!r}")
    return name, release_date


def matches_snapshot_name(directory_name: str) -> bool:
    try:
        classify(directory_name)
    except MalformedName:
        return False
    return True
