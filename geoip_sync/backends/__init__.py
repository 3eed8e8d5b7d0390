from .base import ArchiveStore, Notifier, SecretProvider
from .s3 import S3ArchiveStore
from .sns import SNSNotifier
from .ssm import SSMSecretProvider

__all__ = [
    "ArchiveStore",
    "Notifier",
    "SecretProvider",
    "S3ArchiveStore",
    "SNSNotifier",
    "SSMSecretProvider",
]
