"""Tests for the streamed download and extraction of one edition."""

import io
from unittest.mock import MagicMock, patch

import pytest
import requests
from urllib3.exceptions import ProtocolError

from geoip_sync.errors import ClassificationFailure, DownloadFailure, ExtractionFailure
from geoip_sync.fetcher import SnapshotFetcher

LICENSE = "s3cr3t-license"


class StreamOnly(io.RawIOBase):
    """A response body that can only be read forward, like a socket."""

    def __init__(self, data: bytes):
        self._buffer = io.BytesIO(data)

    def readable(self):
        return True

    def seekable(self):
        return False

    def readinto(self, b):
        chunk = self._buffer.read(len(b))
        b[: len(chunk)] = chunk
        return len(chunk)


class BrokenStream(StreamOnly):
    """Serves the first ``limit`` bytes, then drops the connection."""

    def __init__(self, data: bytes, limit: int):
        super().__init__(data)
        self._limit = limit
        self._served = 0

    def readinto(self, b):
        if self._served >= self._limit:
            raise ProtocolError(f"Connection broken: IncompleteRead while fetching license_key={LICENSE}")
        chunk = self._buffer.read(min(len(b), 64, self._limit - self._served))
        b[: len(chunk)] = chunk
        self._served += len(chunk)
        return len(chunk)


def fake_response(body: bytes = b"", status_code: int = 200, text: str = "") -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.raw = StreamOnly(body)
    response.text = text
    return response


def broken_response(body: bytes) -> MagicMock:
    response = fake_response()
    response.raw = BrokenStream(body, limit=len(body) // 2)
    return response


def make_fetcher(**kwargs) -> SnapshotFetcher:
    options = {"download_url": "https://downloads.example/geoip", "attempts": 1, "retry_delay": 0, "retry_jitter": 0}
    options.update(kwargs)
    return SnapshotFetcher(**options)


class TestFetchSuccess:
    def test_extracts_and_classifies_snapshot(self, work_dir, city_tarball):
        with patch("geoip_sync.fetcher.requests.get", return_value=fake_response(city_tarball)) as get:
            snapshot = make_fetcher(timeout=12).fetch("GeoIP2-City", LICENSE, work_dir)

        assert snapshot.edition == "GeoIP2-City"
        assert snapshot.database_name == "GeoIP2-City"
        assert snapshot.release_date == "20250101"
        assert snapshot.archive_key == "GeoIP2-City/20250101"
        assert snapshot.path == work_dir / "GeoIP2-City_20250101"
        assert (snapshot.path / "GeoIP2-City.mmdb").read_bytes() == b"\xab\xcd\xefMaxMind.com"
        assert not list(work_dir.glob("download-*"))

        args, kwargs = get.call_args
        assert args == ("https://downloads.example/geoip",)
        assert kwargs["params"] == {"edition_id": "GeoIP2-City", "license_key": LICENSE, "suffix": "tar.gz"}
        assert kwargs["stream"] is True
        assert kwargs["timeout"] == 12

    def test_ignores_loose_files_next_to_snapshot_directory(self, work_dir, make_tarball):
        body = make_tarball({"GeoIP2-ISP_20250107/GeoIP2-ISP.mmdb": b"isp", "README": b"hello"})
        with patch("geoip_sync.fetcher.requests.get", return_value=fake_response(body)):
            snapshot = make_fetcher().fetch("GeoIP2-ISP", LICENSE, work_dir)

        assert snapshot.release_date == "20250107"


class TestFetchFailures:
    def test_non_success_status_is_download_failure(self, work_dir):
        response = fake_response(status_code=401, text=f"Invalid license key {LICENSE}")
        with patch("geoip_sync.fetcher.requests.get", return_value=response):
            with pytest.raises(DownloadFailure) as excinfo:
                make_fetcher().fetch("GeoIP2-City", LICENSE, work_dir)

        assert excinfo.value.status_code == 401
        assert "HTTP 401" in str(excinfo.value)
        assert LICENSE not in str(excinfo.value)

    def test_transport_error_is_download_failure_without_credential(self, work_dir):
        error = requests.ConnectionError(
            f"HTTPSConnectionPool: Max retries exceeded with url: /geoip?license_key={LICENSE}"
        )
        with patch("geoip_sync.fetcher.requests.get", side_effect=error):
            with pytest.raises(DownloadFailure) as excinfo:
                make_fetcher().fetch("GeoIP2-City", LICENSE, work_dir)

        assert LICENSE not in str(excinfo.value)
        assert excinfo.value.__cause__ is None

    def test_malformed_archive_is_extraction_failure(self, work_dir):
        with patch("geoip_sync.fetcher.requests.get", return_value=fake_response(b"this is not a tarball")):
            with pytest.raises(ExtractionFailure):
                make_fetcher().fetch("GeoIP2-City", LICENSE, work_dir)

    def test_member_escaping_work_dir_is_extraction_failure(self, work_dir, make_tarball):
        body = make_tarball({"../escaped.txt": b"x"})
        with patch("geoip_sync.fetcher.requests.get", return_value=fake_response(body)):
            with pytest.raises(ExtractionFailure):
                make_fetcher().fetch("GeoIP2-City", LICENSE, work_dir)

        assert not (work_dir / "escaped.txt").exists()
        assert not (work_dir.parent / "escaped.txt").exists()

    def test_two_snapshot_directories_are_ambiguous(self, work_dir, make_tarball):
        body = make_tarball(
            {
                "GeoIP2-City_20250101/GeoIP2-City.mmdb": b"a",
                "GeoIP2-City_20250108/GeoIP2-City.mmdb": b"b",
            }
        )
        with patch("geoip_sync.fetcher.requests.get", return_value=fake_response(body)):
            with pytest.raises(ClassificationFailure, match="Ambiguous"):
                make_fetcher().fetch("GeoIP2-City", LICENSE, work_dir)

        # Left in place for diagnosis; the caller cleans up.
        assert any(work_dir.glob("download-*/GeoIP2-City_20250101"))

    def test_connection_dropped_mid_stream_is_download_failure(self, work_dir, city_tarball):
        with patch("geoip_sync.fetcher.requests.get", return_value=broken_response(city_tarball)):
            with pytest.raises(DownloadFailure) as excinfo:
                make_fetcher().fetch("GeoIP2-City", LICENSE, work_dir)

        assert "ProtocolError" in str(excinfo.value)
        assert LICENSE not in str(excinfo.value)
        assert excinfo.value.__cause__ is None

    def test_missing_snapshot_directory_is_classification_failure(self, work_dir, make_tarball):
        body = make_tarball({"data/GeoIP2-City.mmdb": b"a"})
        with patch("geoip_sync.fetcher.requests.get", return_value=fake_response(body)):
            with pytest.raises(ClassificationFailure, match="No extracted snapshot"):
                make_fetcher().fetch("GeoIP2-City", LICENSE, work_dir)


class TestFetchRetry:
    def test_retries_transport_errors(self, work_dir, city_tarball):
        responses = [requests.ConnectionError("connection reset"), fake_response(city_tarball)]
        with patch("geoip_sync.fetcher.requests.get", side_effect=responses) as get:
            snapshot = make_fetcher(attempts=3).fetch("GeoIP2-City", LICENSE, work_dir)

        assert get.call_count == 2
        assert snapshot.release_date == "20250101"

    def test_gives_up_after_configured_attempts(self, work_dir):
        with patch("geoip_sync.fetcher.requests.get", return_value=fake_response(status_code=503)) as get:
            with pytest.raises(DownloadFailure):
                make_fetcher(attempts=2).fetch("GeoIP2-City", LICENSE, work_dir)

        assert get.call_count == 2

    def test_does_not_retry_malformed_archives(self, work_dir):
        with patch("geoip_sync.fetcher.requests.get", return_value=fake_response(b"garbage")) as get:
            with pytest.raises(ExtractionFailure):
                make_fetcher(attempts=3).fetch("GeoIP2-City", LICENSE, work_dir)

        assert get.call_count == 1

    def test_does_not_retry_client_errors(self, work_dir):
        with patch("geoip_sync.fetcher.requests.get", return_value=fake_response(status_code=404)) as get:
            with pytest.raises(DownloadFailure) as excinfo:
                make_fetcher(attempts=3).fetch("GeoIP2-Unknown", LICENSE, work_dir)

        assert excinfo.value.status_code == 404
        assert get.call_count == 1

    def test_retries_throttled_requests(self, work_dir, city_tarball):
        responses = [fake_response(status_code=429), fake_response(city_tarball)]
        with patch("geoip_sync.fetcher.requests.get", side_effect=responses) as get:
            snapshot = make_fetcher(attempts=2).fetch("GeoIP2-City", LICENSE, work_dir)

        assert get.call_count == 2
        assert snapshot.release_date == "20250101"

    def test_retries_connection_dropped_mid_stream(self, work_dir, city_tarball):
        responses = [broken_response(city_tarball), fake_response(city_tarball)]
        with patch("geoip_sync.fetcher.requests.get", side_effect=responses) as get:
            snapshot = make_fetcher(attempts=2).fetch("GeoIP2-City", LICENSE, work_dir)

        assert get.call_count == 2
        assert (snapshot.path / "GeoIP2-City.mmdb").is_file()
        assert not list(work_dir.glob("download-*"))

    def test_discards_partial_extraction_before_retrying(self, work_dir, city_tarball):
        def first_attempt(*args, **kwargs):
            (attempt_dir,) = work_dir.glob("download-*")
            (attempt_dir / "GeoIP2-City_20241224").mkdir()
            raise requests.Timeout("read timed out")

        responses = iter([first_attempt, lambda *a, **k: fake_response(city_tarball)])
        with patch("geoip_sync.fetcher.requests.get", side_effect=lambda *a, **k: next(responses)(*a, **k)):
            snapshot = make_fetcher(attempts=2).fetch("GeoIP2-City", LICENSE, work_dir)

        assert snapshot.release_date == "20250101"
        assert not list(work_dir.glob("download-*"))
        assert not list(work_dir.glob("*/GeoIP2-City_20241224"))

    def test_retry_leaves_other_files_in_work_dir_alone(self, work_dir, city_tarball):
        notes = work_dir / "operator-notes.txt"
        notes.write_text("do not delete\n")
        kept = work_dir / "GeoIP2-ASN_20241231"
        kept.mkdir()

        responses = [requests.ConnectionError("connection reset"), fake_response(city_tarball)]
        with patch("geoip_sync.fetcher.requests.get", side_effect=responses):
            snapshot = make_fetcher(attempts=2).fetch("GeoIP2-City", LICENSE, work_dir)

        assert notes.read_text() == "do not delete\n"
        assert kept.is_dir()
        assert snapshot.path == work_dir / "GeoIP2-City_20250101"
