from __future__ import annotations

import os
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field

from .utils.retry import BackoffStrategy, RetryPolicy

DEFAULT_PROVIDER_URL = "https://app.fullenrich.com/api"


class ProviderConfig(BaseModel):
    """Enrichment provider API settings."""

    api_key: Optional[str] = None
    base_url: str = DEFAULT_PROVIDER_URL
    webhook_url: Optional[str] = None
    timeout: float = 30.0
    max_attempts: int = 5
    initial_delay: float = 1.0
    max_delay: float = 60.0
    multiplier: float = 2.0
    retryable_status_codes: List[int] = [429, 500, 502, 503, 504]

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            backoff=BackoffStrategy.EXPONENTIAL,
            initial_delay=self.initial_delay,
            max_delay=self.max_delay,
            multiplier=self.multiplier,
            retry_on=frozenset(self.retryable_status_codes),
        )


class WebhookConfig(BaseModel):
    """Shared secrets for signed inbound webhooks."""

    enrichment_secret: Optional[str] = None
    subscribe_secret: Optional[str] = None


class FailureConfig(BaseModel):
    max_retries: int = 3
    stale_threshold_hours: float = 24


class WorkflowConfig(BaseModel):
    batch_size: int = 100
    callback_timeout: str = "24h"


class EnrichflowConfig(BaseModel):
    """Top-level configuration model."""

    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    webhooks: WebhookConfig = Field(default_factory=WebhookConfig)
    failures: FailureConfig = Field(default_factory=FailureConfig)
    workflow: WorkflowConfig = Field(default_factory=WorkflowConfig)
    database_url: Optional[str] = None
    jobs_database_url: Optional[str] = None


def load_config(path: Optional[str] = None) -> EnrichflowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to ENRICHFLOW_CONFIG env
            variable or 'config.yaml' in the current directory.
    """

    config_path = path or os.getenv("ENRICHFLOW_CONFIG", "config.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = EnrichflowConfig(**data)
    else:
        config = EnrichflowConfig()

    env_db_url = os.getenv("ENRICHFLOW_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    env_jobs_url = os.getenv("ENRICHFLOW_JOBS_DATABASE_URL")
    if env_jobs_url:
        config.jobs_database_url = env_jobs_url

    if os.getenv("FULLENRICH_API_KEY"):
        config.provider.api_key = os.getenv("FULLENRICH_API_KEY")
    if os.getenv("FULLENRICH_WEBHOOK_URL"):
        config.provider.webhook_url = os.getenv("FULLENRICH_WEBHOOK_URL")
    if os.getenv("FULLENRICH_WEBHOOK_SECRET"):
        config.webhooks.enrichment_secret = os.getenv("FULLENRICH_WEBHOOK_SECRET")
    if os.getenv("NEWSLETTER_WEBHOOK_SECRET"):
        config.webhooks.subscribe_secret = os.getenv("NEWSLETTER_WEBHOOK_SECRET")
    return config
