"""Archive new GeoIP database releases to object storage and announce them."""

from .models import RunOutcome, RunResult, RunSummary, Snapshot, archive_key

__version__ = "0.1.0"

__all__ = ["RunOutcome", "RunResult", "RunSummary", "Snapshot", "archive_key", "__version__"]
