# cwl_loader/settings.py
"""
Settings for the log loader and the Lambda version cleaner.

Values come from environment variables (and a local .env file). An instance is
built once at startup and handed to every component that needs it.
"""
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from cwl_loader.opensearch.signer import Credentials


class ConfigurationError(ValueError):
    """Raised when a required setting is missing for the requested command."""
    pass


class AppSettings(BaseSettings):
    """
    Manages env vars using Pydantic BaseSettings.
    Reads the process environment first, then the .env file.
    """
    model_config = SettingsConfigDict(
        env_file='.env', env_file_encoding='utf-8', extra='ignore', populate_by_name=True
    )

    # Deployment tag used in every index name (cwl-<env>-...)
    app_env: str = Field("", alias='APP_ENV')
    opensearch_endpoint: str = Field("", alias='OPENSEARCH_ENDPOINT')
    aws_region: str = Field("", alias='AWS_REGION')
    aws_access_key_id: str = Field("", alias='AWS_ACCESS_KEY_ID')
    aws_secret_access_key: str = Field("", alias='AWS_SECRET_ACCESS_KEY')
    aws_session_token: Optional[str] = Field(None, alias='AWS_SESSION_TOKEN')
    # Seconds; None waits on the transport forever
    request_timeout: Optional[float] = Field(30.0, alias='REQUEST_TIMEOUT')
    logs_file: str = Field("storage/logs.csv", alias='LOGS_FILE')
    log_level: str = Field("INFO", alias='LOG_LEVEL')

    # Lambda cleaner
    database_file: str = Field("storage/database.json", alias='DATABASE_FILE')
    lambda_regex_pattern: str = Field("", alias='LAMBDA_REGEX_PATTERN')
    versions_keep: int = Field(5, alias='VERSIONS_KEEP')
    versions_retain: int = Field(2, alias='VERSIONS_RETAIN')
    delete_delay_seconds: float = Field(0.1, alias='DELETE_DELAY_SECONDS')

    @field_validator('request_timeout', mode='before')
    @classmethod
    def _disable_empty_timeout(cls, value):
        if value in ("", "0", 0, None):
            return None
        return value

    @field_validator('aws_session_token', mode='before')
    @classmethod
    def _blank_token_is_none(cls, value):
        return value or None

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() in ("prod", "production")

    def credentials(self) -> Credentials:
        """Builds the static credentials used to sign OpenSearch requests."""
        return Credentials(
            access_key_id=self.aws_access_key_id,
            secret_access_key=self.aws_secret_access_key,
            session_token=self.aws_session_token,
        )

    def missing_for_load(self) -> List[str]:
        """Returns the env var names the log loader needs but that are unset."""
        required = {
            'OPENSEARCH_ENDPOINT': self.opensearch_endpoint,
            'AWS_ACCESS_KEY_ID': self.aws_access_key_id,
            'AWS_SECRET_ACCESS_KEY': self.aws_secret_access_key,
        }
        return [name for name, value in required.items() if not value]


@lru_cache()
def get_settings() -> AppSettings:
    """Returns the process-wide settings, loaded on first use."""
    return AppSettings()
