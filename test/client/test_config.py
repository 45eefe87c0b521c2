import pytest
from pydantic import ValidationError

from schemaflow.client import BackendConfig


def test_defaults(monkeypatch):
    monkeypatch.delenv("SCHEMAFLOW_URL", raising=False)
    monkeypatch.delenv("SCHEMAFLOW_TIMEOUT", raising=False)
    config = BackendConfig()
    assert config.url == "http://localhost:3000"
    assert config.timeout == 30.0


def test_from_environment(monkeypatch):
    monkeypatch.setenv("SCHEMAFLOW_URL", "http://schema.internal:8080")
    monkeypatch.setenv("SCHEMAFLOW_TIMEOUT", "5")
    config = BackendConfig.from_env()
    assert config.url == "http://schema.internal:8080"
    assert config.timeout == 5.0


def test_from_environment_with_prefix(monkeypatch):
    monkeypatch.setenv("SCHEMAFLOW_URL", "http://default")
    monkeypatch.setenv("STAGING_SCHEMAFLOW_URL", "http://staging")
    config = BackendConfig.from_env(prefix="staging")
    assert config.url == "http://staging"
    assert isinstance(config, BackendConfig)


def test_timeout_must_be_positive():
    with pytest.raises(ValidationError):
        BackendConfig(timeout=0)
