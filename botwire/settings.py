"""Application settings and configuration.

This module provides Pydantic settings classes for the bot client, loaded
from `BOTWIRE_`-prefixed environment variables with `__` as the nesting
delimiter (e.g. `BOTWIRE_CLIENT__NUM_TRIES=3`).
"""

import logging

import pydantic_settings
from pydantic import BaseModel, Field, field_validator

from botwire.client.config import (
    DEFAULT_BASE_URL,
    DEFAULT_NUM_TRIES,
    DEFAULT_QUEUE_SIZE,
    DEFAULT_RETRY_SLEEP_SECONDS,
    DEFAULT_TIMEOUT_SECONDS,
    AuthConfig,
    StreamClientConfig,
)
from botwire.observability.logging import configure_logging


class ClientSettings(BaseModel):
    base_url: str = Field(DEFAULT_BASE_URL)
    api_key: str | None = Field(None)
    num_tries: int = Field(DEFAULT_NUM_TRIES, ge=1)
    retry_sleep_seconds: float = Field(DEFAULT_RETRY_SLEEP_SECONDS, gt=0)
    timeout_seconds: float = Field(DEFAULT_TIMEOUT_SECONDS, gt=0)
    queue_size: int = Field(DEFAULT_QUEUE_SIZE, ge=1)
    extra_headers: dict[str, str] = Field(default_factory=dict)


class LoggingSettings(BaseModel):
    level: str = Field("INFO")
    json_output: bool = Field(True)

    @field_validator("level")
    @classmethod
    def _validate_log_level(cls, v):
        v_upper = v.upper()
        if v_upper not in logging._nameToLevel:
            raise ValueError(f'invalid value "{v}"')
        return v_upper


class Settings(pydantic_settings.BaseSettings):
    model_config = pydantic_settings.SettingsConfigDict(
        env_prefix="BOTWIRE_",
        env_nested_delimiter="__",
    )

    client: ClientSettings = ClientSettings()
    log: LoggingSettings = LoggingSettings()

    def client_config(self) -> StreamClientConfig:
        """Build the stream client configuration."""
        return StreamClientConfig(
            base_url=self.client.base_url,
            num_tries=self.client.num_tries,
            retry_sleep_seconds=self.client.retry_sleep_seconds,
            timeout_seconds=self.client.timeout_seconds,
            queue_size=self.client.queue_size,
        )

    def auth_config(self) -> AuthConfig:
        """Build the authentication configuration."""
        return AuthConfig(api_key=self.client.api_key, extra_headers=dict(self.client.extra_headers))

    def configure_logging(self) -> None:
        """Apply the logging settings to structlog and the root logger."""
        configure_logging(self.log.level, json_output=self.log.json_output)
