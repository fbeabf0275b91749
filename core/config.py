"""
Application Configuration
Add constants, secrets, env variables here
"""

from functools import lru_cache
import os
import json
import logging
from pathlib import Path
from pydantic import computed_field, PrivateAttr
from pydantic_settings import BaseSettings, SettingsConfigDict
import boto3
from botocore.exceptions import BotoCoreError, ClientError
from dotenv import load_dotenv

# Load .env file into os.environ so os.getenv() works correctly
# This must happen before Settings class is instantiated
env_path = Path(__file__).parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)

log = logging.getLogger(__name__)


def get_secret(secret_name: str, region_name: str) -> dict:
    """
    Retrieve secrets from AWS Secrets Manager

    Args:
        secret_name: Name of the secret in Secrets Manager
        region_name: AWS region where secret is stored

    Returns:
        dict: Parsed secret value

    Raises:
        ClientError: If secret cannot be retrieved
    """
    session = boto3.session.Session()
    client = session.client(
        service_name='secretsmanager',
        region_name=region_name
    )
    get_secret_value_response = client.get_secret_value(
        SecretId=secret_name
    )
    # Parse and return the secret
    secret = get_secret_value_response['SecretString']
    return json.loads(
        secret.replace('\n', '')
    )


# Define settings class for univeral access
class Settings(BaseSettings):
    # Computed or constant values
    client_origin: str | None = os.getenv("client_origin")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Cache for AWS Secrets Manager to avoid multiple API calls
    # Note: Must use PrivateAttr for Pydantic v2 private attributes
    _secret_cache: dict | None = PrivateAttr(default=None)

    def _get_config_value(
        self,
        env_var_name: str,
        secret_key_name: str | None = None,
        default: str | None = None
    ) -> str | None:
        """
        Get configuration value from environment variable or AWS Secrets Manager (with caching).

        Args:
            env_var_name: Environment variable name to check first
            secret_key_name: Key name in AWS Secrets (defaults to env_var_name if not provided)
            default: Default value to return if not found in env or secrets

        Returns:
            Configuration value, or default value if not found
        """
        # 1. Check environment variable first
        env_value = os.getenv(env_var_name)
        if env_value:
            return env_value

        # 2. Try to get from AWS Secrets Manager with caching
        if secret_key_name is None:
            secret_key_name = env_var_name

        env_secret = os.getenv('ENV_SECRETS')
        if env_secret:
            try:
                # Use cached secret if available
                if self._secret_cache is None:
                    self._secret_cache = get_secret(
                        env_secret, os.getenv("AWS_REGION", 'us-east-1')
                    )

                secret_value = self._secret_cache.get(secret_key_name)
                if secret_value is not None:
                    return secret_value
            except (BotoCoreError, ClientError, ValueError) as exc:
                log.warning("Could not read %s from secret %s: %s", secret_key_name, env_secret, exc)

        # 3. Return default value if provided
        return default

    # SQLAlchemy - Create db connection string
    @computed_field
    @property
    def SQLALCHEMY_DATABASE_URI(self) -> str:
        """Build database URI from env or secrets, defaults to sqlite://"""
        return self._get_config_value("SQLALCHEMY_DATABASE_URI", default="sqlite://")

    # Blob storage configuration
    @computed_field
    @property
    def FILE_STORAGE_BUCKET(self) -> str:
        """Bucket holding uploaded attachments, from env or secrets"""
        return self._get_config_value("FILE_STORAGE_BUCKET", default="local-dev-bucket")

    # AWS Credentials
    AWS_ACCESS_KEY_ID: str | None = os.getenv("AWS_ACCESS_KEY_ID")
    AWS_SECRET_ACCESS_KEY: str | None = os.getenv("AWS_SECRET_ACCESS_KEY")
    AWS_REGION: str | None = os.getenv("AWS_REGION")
    # Set for S3-compatible stores (MinIO, LocalStack)
    AWS_ENDPOINT_URL: str | None = os.getenv("AWS_ENDPOINT_URL")

    # Credential file used for URL signing when no ambient credential resolves
    FILE_STORAGE_CREDENTIALS_FILE: str | None = os.getenv("FILE_STORAGE_CREDENTIALS_FILE")
    FILE_STORAGE_CREDENTIALS_PROFILE: str | None = os.getenv("FILE_STORAGE_CREDENTIALS_PROFILE")

    # Signed URL lifetime policy, in minutes
    SIGNED_URL_DEFAULT_TTL_MINUTES: int = 15
    SIGNED_URL_MIN_TTL_MINUTES: int = 1
    SIGNED_URL_MAX_TTL_MINUTES: int = 7 * 24 * 60

    # Read environment variables from .env file, if it exists
    # extra='ignore' prevents validation errors from extra env vars
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


class InMemoryDbSettings(Settings):
    """Settings profile for unit tests"""
    TESTING: bool = True

    @computed_field
    @property
    def SQLALCHEMY_DATABASE_URI(self) -> str:
        return "sqlite:///:memory:"


# Export settings
@lru_cache
def get_settings() -> Settings:
    """
    Get settings instance, cached for performance
    """
    if os.getenv("SETTINGS_MODE") == "test":
        return InMemoryDbSettings()
    return Settings()


if __name__ == "__main__":
    # To use in other modules
    # from core.config import get_settings
    print(get_settings().SQLALCHEMY_DATABASE_URI)
