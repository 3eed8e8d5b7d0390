from __future__ import annotations

from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from geoip_sync.errors import SecretUnavailable
from geoip_sync.logger import get_logger

from .aws import make_client

logger = get_logger(__name__)


class SSMSecretProvider:
    """Reads one SecureString parameter from SSM Parameter Store."""

    def __init__(self, region: str | None = None, client: Any = None) -> None:
        self.client = client if client is not None else make_client("ssm", region)

    def resolve(self, secret_path: str) -> str:
        logger.info("Retrieving license from SSM parameter %s", secret_path)
        try:
            response = self.client.get_parameter(Name=secret_path, WithDecryption=True)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code", "ClientError")
            raise SecretUnavailable(f"Cannot read SSM parameter {secret_path}: {code}") from exc
        except BotoCoreError as exc:
            raise SecretUnavailable(f"SSM is unreachable for parameter {secret_path}: {exc}") from exc

        value = (response.get("Parameter") or {}).get("Value") or ""
        if not value.strip():
            raise SecretUnavailable(f"SSM parameter {secret_path} is empty")
        return value.strip()
