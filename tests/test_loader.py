from pathlib import Path

import pytest

from geoip_sync.constants import DEFAULT_EDITIONS
from geoip_sync.errors import ConfigError
from geoip_sync.loader import load_settings


def test_defaults_without_file_or_environment():
    settings = load_settings(environ={})

    assert settings.editions == list(DEFAULT_EDITIONS)
    assert settings.secret_path == "/dev/MAXMIND/MAX_MIND_LICENSE"
    assert settings.bucket == "databases-backup"
    assert settings.archive_prefix == "maxmind"
    assert settings.region == "us-east-1"
    assert settings.work_dir == Path.cwd()
    assert settings.fetch_attempts == 3


def test_file_then_environment_precedence(tmp_path):
    config = tmp_path / "settings.yaml"
    config.write_text(
        "bucket: from-file\nregion: eu-west-1\neditions:\n  - GeoIP2-Country\nedition_pause: 0\n",
        encoding="utf-8",
    )

    settings = load_settings(config, environ={"S3_BUCKET": "from-env", "WORK_DIR": str(tmp_path), "LOG_LEVEL": ""})

    assert settings.bucket == "from-env"
    assert settings.region == "eu-west-1"
    assert settings.editions == ["GeoIP2-Country"]
    assert settings.edition_pause == 0.0
    assert settings.work_dir == tmp_path
    assert settings.log_level == "INFO"


def test_editions_from_comma_separated_environment():
    settings = load_settings(environ={"GEOIP_EDITIONS": "GeoIP2-City, GeoLite2-ASN ,"})

    assert settings.editions == ["GeoIP2-City", "GeoLite2-ASN"]


@pytest.mark.parametrize(
    "environ",
    [
        {"FETCH_ATTEMPTS": "three"},
        {"FETCH_ATTEMPTS": "0"},
        {"DOWNLOAD_TIMEOUT": "0"},
        {"EDITION_PAUSE": "-1"},
        {"GEOIP_EDITIONS": " , "},
    ],
)
def test_invalid_values(environ):
    with pytest.raises(ConfigError):
        load_settings(environ=environ)


def test_unknown_keys_in_file(tmp_path):
    config = tmp_path / "settings.yaml"
    config.write_text("bukket: typo\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="bukket"):
        load_settings(config, environ={})


def test_missing_file(tmp_path):
    with pytest.raises(ConfigError):
        load_settings(tmp_path / "absent.yaml", environ={})


def test_overrides_skip_unset_values():
    settings = load_settings(environ={})

    assert settings.with_overrides(editions=None, work_dir=None) is settings
    assert settings.with_overrides(editions=["GeoIP2-ISP"]).editions == ["GeoIP2-ISP"]
