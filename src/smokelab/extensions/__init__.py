"""Bootstrap extensions."""

from .aws import AwsCredentialsLoader, AwsKeyManager
from .env import BootstrapFromEnv, BootstrapFromPath, RequireEnv

__all__ = [
    "BootstrapFromEnv",
    "BootstrapFromPath",
    "RequireEnv",
    "AwsCredentialsLoader",
    "AwsKeyManager",
]
