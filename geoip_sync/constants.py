"""Defaults shared by the settings loader, the fetcher and the driver."""

DEFAULT_EDITIONS = (
    "GeoIP2-City",
    "GeoIP2-Connection-Type",
    "GeoIP2-Country",
    "GeoIP2-ISP",
)

DEFAULT_SECRET_PATH = "/dev/MAXMIND/MAX_MIND_LICENSE"
DEFAULT_REGION = "us-east-1"
DEFAULT_BUCKET = "databases-backup"
DEFAULT_ARCHIVE_PREFIX = "maxmind"
DEFAULT_TOPIC_ARN = "arn:aws:sns:us-east-1:XXXXXXXXX:alert"
DEFAULT_DOWNLOAD_URL = "https://download.maxmind.com/app/geoip_download"
DEFAULT_ARCHIVE_SUFFIX = "tar.gz"

DEFAULT_DOWNLOAD_TIMEOUT = 60.0
DEFAULT_FETCH_ATTEMPTS = 3
DEFAULT_FETCH_RETRY_DELAY = 10.0
DEFAULT_FETCH_RETRY_JITTER = 2.0
DEFAULT_EDITION_PAUSE = 2.0

# Boto clients
AWS_CONNECT_TIMEOUT = 5
AWS_READ_TIMEOUT = 30
AWS_MAX_ATTEMPTS = 3

USER_AGENT = "geoip-archive-sync/0.1"

# Staging directories created inside the working directory start with this.
STAGING_PREFIX = "geoip-sync-"
# Each download attempt extracts into its own directory with this prefix.
ATTEMPT_PREFIX = "download-"

# Extracted snapshot directories look like GeoIP2-Country_20200512.
SNAPSHOT_NAME_DELIMITER = "_"

# SNS rejects subjects longer than this.
MAX_SUBJECT_LENGTH = 100

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOGGER_ROOT = "geoip_sync"
QUIET_LOGGERS = ("boto3", "botocore", "s3transfer", "urllib3")
