# tests/test_config.py
import pytest

from services.errors import ConfigError
from utils.config import load_config

ENV_KEYS = (
    "STRIVIO_DATABASE_URL", "DATABASE_URL", "STRIVIO_LOG_LEVEL", "STRIVIO_LOG_JSON",
    "STRIVIO_SWEEP_INTERVAL_SECONDS", "STRIVIO_SENDGRID_API_KEY", "STRIVIO_MAIL_FROM",
    "STRIVIO_EMAIL_MAX_ATTEMPTS", "STRIVIO_EMAIL_BATCH_SIZE",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_defaults():
    config = load_config()
    assert config.database_url == "sqlite:///strivio.db"
    assert config.sweep_interval_seconds == 300
    assert config.email_enabled is False


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql://fallback/db")
    monkeypatch.setenv("STRIVIO_SWEEP_INTERVAL_SECONDS", "60")
    monkeypatch.setenv("STRIVIO_LOG_JSON", "true")
    monkeypatch.setenv("STRIVIO_SENDGRID_API_KEY", "SG.key")

    config = load_config()

    assert config.database_url == "postgresql://fallback/db"
    assert config.sweep_interval_seconds == 60
    assert config.log_json is True
    assert config.email_enabled is True


def test_prefixed_url_wins(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql://fallback/db")
    monkeypatch.setenv("STRIVIO_DATABASE_URL", "sqlite:///other.db")
    assert load_config().database_url == "sqlite:///other.db"


@pytest.mark.parametrize("value", ["0", "-5", "soon"])
def test_invalid_interval(monkeypatch, value):
    monkeypatch.setenv("STRIVIO_SWEEP_INTERVAL_SECONDS", value)
    with pytest.raises(ConfigError):
        load_config()
