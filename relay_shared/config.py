"""
Shared configuration management for the interview relay services.
"""

from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="RELAY_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = "local"
    log_level: str = "info"

    # Shared-secret guard for server-to-server calls
    shared_secret: str = ""
    shared_secret_header: str = "x-shared-secret"

    # Token broker
    token_ttl_seconds: int = Field(default=600, gt=0)
    token_sweep_interval_seconds: float = Field(default=0.0, ge=0)

    # Speech-to-text provider
    stt_api_key: str = ""
    stt_ws_url: str = "wss://api.deepgram.com/v1/listen"
    stt_listen_params: str = "model=nova-2&smart_format=true&interim_results=true"
    upstream_connect_timeout: float = Field(default=10.0, gt=0)

    # Recording provider
    daily_api_key: str = ""
    daily_api_base_url: str = "https://api.daily.co/v1"
    http_timeout: float = Field(default=25.0, gt=0)
    allowed_interview_minutes: List[int] = [15, 30]
    default_interview_minutes: int = 15
    room_grace_minutes: int = 5


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
