"""
Configuration — typed, validated settings loaded from environment/.env.

Uses pydantic-settings so that a Kubernetes ConfigMap (environment
variables) overrides the .env file, which overrides defaults. Validation
runs once at startup; a bad value stops the process before any secret is
touched.

Only AppSettings is a BaseSettings instance. Sub-settings are plain
BaseModel classes populated through env_nested_delimiter="__", so
SYNC__LOOKAHEAD_HOURS maps to sync.lookahead_hours, AWS__REGION to
aws.region, and so on.
"""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve the .env file relative to the project root (two levels above this file),
# so settings load correctly regardless of the working directory at runtime.
_ENV_FILE = Path(__file__).parent.parent.parent / ".env"


class AwsSettings(BaseModel):
    """
    ACM client configuration.

    Credentials are not configured here; boto3 resolves them through its
    default chain (environment, web identity token, instance profile).
    """

    region: str | None = Field(default=None, description="AWS region hosting the certificates")
    endpoint_url: str | None = Field(
        default=None, description="Override ACM endpoint (e.g. a local emulator)"
    )
    max_attempts: int = Field(default=3, ge=1, description="botocore retry attempts per call")
    retry_mode: Literal["legacy", "standard", "adaptive"] = Field(default="standard")
    connect_timeout_seconds: float = Field(default=10, gt=0)
    read_timeout_seconds: float = Field(default=30, gt=0)


class KubernetesSettings(BaseModel):
    """Secret store and watch configuration."""

    namespace: str | None = Field(
        default=None, description="Watch a single namespace; all namespaces when unset"
    )
    kubeconfig: str | None = Field(
        default=None,
        description="Path to a kubeconfig file; in-cluster config is tried first when unset",
    )
    watch_timeout_seconds: int = Field(default=300, ge=1)


class SyncSettings(BaseModel):
    """
    Reconciliation policy.

    The success requeue interval must be shorter than the lookahead
    window, otherwise a certificate could expire between two passes.
    """

    lookahead_hours: float = Field(default=72, ge=0)
    success_requeue_hours: float = Field(default=24, gt=0)
    failure_requeue_minutes: float = Field(default=5, gt=0)
    reconcile_timeout_seconds: float = Field(default=120, gt=0)
    ownership_tag_key: str = Field(default="kubernetes-secrets", min_length=1, max_length=128)

    @model_validator(mode="after")
    def check_cadence(self) -> SyncSettings:
        """Reject a requeue interval that would let a certificate lapse unnoticed."""
        if self.lookahead_hours > 0 and self.success_requeue_hours >= self.lookahead_hours:
            raise ValueError(
                f"sync.success_requeue_hours ({self.success_requeue_hours}) must be shorter "
                f"than sync.lookahead_hours ({self.lookahead_hours})"
            )
        return self

    @property
    def lookahead(self) -> timedelta:
        return timedelta(hours=self.lookahead_hours)

    @property
    def success_requeue(self) -> timedelta:
        return timedelta(hours=self.success_requeue_hours)

    @property
    def failure_requeue(self) -> timedelta:
        return timedelta(minutes=self.failure_requeue_minutes)


class AppSettings(BaseSettings):
    """
    Root application settings — aggregates all sub-settings.

    Load order (highest priority first):
      1. Environment variables (Kubernetes ConfigMap)
      2. .env file
      3. Default values
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    aws: AwsSettings = Field(default_factory=lambda: AwsSettings())
    kubernetes: KubernetesSettings = Field(default_factory=lambda: KubernetesSettings())
    sync: SyncSettings = Field(default_factory=lambda: SyncSettings())

    workers: int = Field(default=4, ge=1, description="Concurrent reconciliations")
    log_level: str = Field(default="INFO")
