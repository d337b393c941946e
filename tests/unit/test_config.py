"""Tests for configuration loading."""

from enrichflow.config import load_config
from enrichflow.persistence import SQLiteWorkflowRepository, get_repository
from enrichflow.utils.retry import BackoffStrategy


def test_load_config_from_env(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
provider:
  base_url: https://provider.example/api
  max_attempts: 4
failures:
  max_retries: 5
workflow:
  batch_size: 50
  callback_timeout: 2h
"""
    )
    monkeypatch.setenv("ENRICHFLOW_CONFIG", str(config_path))
    monkeypatch.setenv("FULLENRICH_API_KEY", "secret-key")
    monkeypatch.setenv("FULLENRICH_WEBHOOK_SECRET", "hook-secret")

    config = load_config()
    assert config.provider.base_url == "https://provider.example/api"
    assert config.provider.api_key == "secret-key"
    assert config.webhooks.enrichment_secret == "hook-secret"
    assert config.failures.max_retries == 5
    assert config.failures.stale_threshold_hours == 24
    assert config.workflow.batch_size == 50
    assert config.workflow.callback_timeout == "2h"

    policy = config.provider.retry_policy()
    assert policy.max_attempts == 4
    assert policy.backoff == BackoffStrategy.EXPONENTIAL
    assert policy.retry_on == frozenset({429, 500, 502, 503, 504})


def test_defaults_without_file(tmp_path, monkeypatch):
    monkeypatch.setenv("ENRICHFLOW_CONFIG", str(tmp_path / "absent.yaml"))
    for var in ("FULLENRICH_API_KEY", "ENRICHFLOW_DATABASE_URL", "DATABASE_URL"):
        monkeypatch.delenv(var, raising=False)

    config = load_config()
    assert config.provider.api_key is None
    assert config.provider.max_attempts == 5
    assert config.failures.max_retries == 3
    assert config.database_url is None


def test_get_repository_uses_config(tmp_path, monkeypatch):
    db_path = tmp_path / "wf.db"
    config_path = tmp_path / "config.yaml"
    config_path.write_text(f"database_url: sqlite://{db_path}\n")
    monkeypatch.setenv("ENRICHFLOW_CONFIG", str(config_path))
    monkeypatch.delenv("ENRICHFLOW_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)

    repo = get_repository()
    assert isinstance(repo, SQLiteWorkflowRepository)
    assert repo.db_path == str(db_path)
