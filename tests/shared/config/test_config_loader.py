# -*- coding: utf-8 -*-
"""
tests/shared/config/test_config_loader.py

Suite: selección de settings por PYTHON_ENV (con alias), validaciones de
producción (seguridad y cobro) y normalización de la URL de base de datos.

Autor: ScholarPay
Fecha: 2026-10-18
"""

import pytest

from scholarpay.shared.config.config_loader import get_settings, reset_settings, resolve_environment
from scholarpay.shared.config.settings_base import BaseAppSettings


@pytest.fixture(autouse=True)
def _reset_loader_cache():
    reset_settings()
    yield
    reset_settings()


def test_loader_returns_dev_by_default(monkeypatch):
    monkeypatch.delenv("PYTHON_ENV", raising=False)
    s = get_settings()
    assert s.python_env == "development"
    assert s.debug is True


def test_loader_selects_test(monkeypatch):
    monkeypatch.setenv("PYTHON_ENV", "test")
    s = get_settings()
    assert s.python_env == "test"
    assert s.jwt_secret_key.get_secret_value() == "test-secret-key"


@pytest.fixture
def prod_env(monkeypatch):
    monkeypatch.setenv("PYTHON_ENV", "production")
    monkeypatch.setenv("JWT_SECRET_KEY", "X" * 40)
    monkeypatch.setenv("STRIPE_SECRET_KEY", "sk_live_dummy")
    monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", "whsec_live_dummy")
    monkeypatch.delenv("DEBUG", raising=False)
    monkeypatch.delenv("ALLOW_INSECURE_WEBHOOKS", raising=False)
    monkeypatch.delenv("PAYMENTS_ENABLED", raising=False)
    return monkeypatch


def test_loader_selects_prod(prod_env):
    s = get_settings()
    assert s.python_env == "production"
    assert s.log_format == "json"


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("prod", "production"),
        (" Production ", "production"),
        ("testing", "test"),
        ("dev", "development"),
        (None, "development"),
    ],
)
def test_environment_aliases(raw, expected):
    assert resolve_environment(raw) == expected


def test_prod_alias_loads_prod_settings(prod_env):
    prod_env.setenv("PYTHON_ENV", "prod")
    assert get_settings().python_env == "production"


def test_prod_requires_webhook_secret(prod_env):
    prod_env.delenv("STRIPE_WEBHOOK_SECRET")
    with pytest.raises(ValueError) as ei:
        get_settings()
    assert "STRIPE_WEBHOOK_SECRET" in str(ei.value)


def test_prod_rejects_insecure_webhooks(prod_env):
    prod_env.setenv("ALLOW_INSECURE_WEBHOOKS", "true")
    with pytest.raises(ValueError) as ei:
        get_settings()
    assert "ALLOW_INSECURE_WEBHOOKS" in str(ei.value)


def test_prod_without_payments_skips_stripe_checks(prod_env):
    prod_env.setenv("PAYMENTS_ENABLED", "false")
    prod_env.delenv("STRIPE_SECRET_KEY")
    prod_env.delenv("STRIPE_WEBHOOK_SECRET")
    assert get_settings().python_env == "production"


def test_prod_rejects_default_jwt_secret(monkeypatch):
    monkeypatch.setenv("PYTHON_ENV", "production")
    monkeypatch.delenv("JWT_SECRET_KEY", raising=False)
    with pytest.raises(ValueError) as ei:
        get_settings()
    assert "JWT_SECRET_KEY" in str(ei.value)


def test_loader_caches_singleton():
    assert get_settings() is get_settings()


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("postgres://u:p@db:5432/sp", "postgresql+asyncpg://u:p@db:5432/sp"),
        ("postgresql://u:p@db/sp", "postgresql+asyncpg://u:p@db/sp"),
        ("sqlite+aiosqlite:///./local.db", "sqlite+aiosqlite:///./local.db"),
    ],
)
def test_database_url_normalization(raw, expected):
    s = BaseAppSettings(_env_file=None, DB_URL=raw)
    assert s.database_url == expected


def test_database_url_from_parts(monkeypatch):
    monkeypatch.delenv("DB_URL", raising=False)
    s = BaseAppSettings(_env_file=None, DB_PASSWORD="p@ss word", DB_HOST="pg", DB_NAME="sp")
    assert s.database_url == "postgresql+asyncpg://postgres:p%40ss+word@pg:5432/sp"
    assert s.is_sqlite is False


def test_cors_origins_parsing():
    assert BaseAppSettings(_env_file=None, CORS_ORIGINS="*").get_cors_origins() == ["*"]
    s = BaseAppSettings(_env_file=None, CORS_ORIGINS="https://a.test, https://b.test,")
    assert s.get_cors_origins() == ["https://a.test", "https://b.test"]
