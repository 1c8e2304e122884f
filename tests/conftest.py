"""Pytest configuration for all tests."""

import os

import pytest


@pytest.fixture
def isolated_environment(monkeypatch, tmp_path):
    """Keep HOOKLINE_ variables and any .env file out of a test."""
    for name in list(os.environ):
        if name.startswith("HOOKLINE_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def sample_settings_env(monkeypatch):
    """Set a complete HOOKLINE_ environment."""
    monkeypatch.setenv("HOOKLINE_WEBHOOK_SECRET", "test-secret")
    monkeypatch.setenv("HOOKLINE_ENFORCE_SIGNATURE", "true")
    monkeypatch.setenv("HOOKLINE_DATABASE_URL", "postgresql://hookline:pw@db:5432/hookline")
    monkeypatch.setenv("HOOKLINE_TEMPLATES_PATH", "/srv/prompts")
    monkeypatch.setenv("HOOKLINE_AUTO_DISPATCH_ENABLED", "false")
    monkeypatch.setenv("HOOKLINE_DISPATCH_TAG", "@clide")
    monkeypatch.setenv("HOOKLINE_AGENT_TIMEOUT_SECONDS", "120")
    monkeypatch.setenv("HOOKLINE_LOG_LEVEL", "debug")
    monkeypatch.setenv("HOOKLINE_PORT", "8080")
