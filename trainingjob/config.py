"""
Configuration management for the TrainingJob controller.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


SERVICE_ACCOUNT_DIR = "/var/run/secrets/kubernetes.io/serviceaccount"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Settings(BaseSettings):
    """Controller settings loaded from environment variables."""

    # Orchestration API
    kube_api_server: str = Field(default="https://kubernetes.default.svc")
    kube_token: Optional[str] = Field(default=None)
    kube_token_file: Optional[str] = Field(default=f"{SERVICE_ACCOUNT_DIR}/token")
    kube_ca_file: Optional[str] = Field(default=f"{SERVICE_ACCOUNT_DIR}/ca.crt")
    kube_verify_ssl: bool = Field(default=True)
    kube_request_timeout: Optional[float] = Field(
        default=None,
        description="Per-request timeout in seconds; unset means no timeout"
    )

    # TrainingJob resource
    trainingjob_group: str = Field(default="paddlepaddle.org")
    trainingjob_version: str = Field(default="v1")
    trainingjob_plural: str = Field(default="trainingjobs")

    # Watch
    watch_namespace: str = Field(
        default="",
        description="Namespace to watch; empty watches all namespaces"
    )
    watch_timeout_seconds: int = Field(default=300, ge=1)
    relist_delay_seconds: float = Field(default=1.0, ge=0)
    resync_period: float = Field(default=0)

    # Autoscaler
    max_load_desired: float = Field(default=0.97, gt=0, le=1)
    autoscaler_interval_seconds: float = Field(default=5.0, gt=0)

    # Lifecycle
    shutdown_grace_seconds: float = Field(default=10.0, ge=0)

    # Monitoring
    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=False)
    enable_metrics: bool = Field(default=True)
    metrics_port: int = Field(default=9090, ge=0, le=65535)

    @field_validator("resync_period")
    @classmethod
    def _no_resync(cls, value: float) -> float:
        if value != 0:
            raise ValueError("periodic resync is not supported; resync_period must be 0")
        return value

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}, got {value}")
        return level

    @property
    def namespace(self) -> Optional[str]:
        """Namespace to watch, or None for all namespaces."""
        return self.watch_namespace or None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
