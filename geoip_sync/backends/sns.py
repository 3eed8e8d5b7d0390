from __future__ import annotations

from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from geoip_sync.constants import MAX_SUBJECT_LENGTH
from geoip_sync.errors import NotifyFailure

from .aws import make_client


class SNSNotifier:
    def __init__(self, topic_arn: str, region: str | None = None, client: Any = None) -> None:
        self.topic_arn = topic_arn
        self.client = client if client is not None else make_client("sns", region)

    def publish(self, subject: str, message: str) -> None:
        try:
            self.client.publish(
                TopicArn=self.topic_arn,
                Subject=subject[:MAX_SUBJECT_LENGTH],
                Message=message,
            )
        except (ClientError, BotoCoreError) as exc:
            raise NotifyFailure(f"Publishing to {self.topic_arn} failed: {exc}") from exc
