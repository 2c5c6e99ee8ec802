"""Tests for Settings."""

from parley.config import Settings


def test_test_environment_uses_the_test_database(monkeypatch):
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("TEST_DATABASE_URL", "sqlite:///parley_test.db")

    settings = Settings()

    assert settings.database_url == "sqlite:///parley_test.db"


def test_other_environments_use_database_url(monkeypatch):
    monkeypatch.setenv("ENV", "production")
    monkeypatch.setenv("DATABASE_URL", "postgresql://parley:secret@db:5432/parley")

    settings = Settings()

    assert settings.database_url == "postgresql://parley:secret@db:5432/parley"
    assert settings.environment == "production"
