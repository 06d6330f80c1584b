"""Tests for RepoConfig — defaults and environment overrides."""

from __future__ import annotations

from pathlib import Path

import pytest

from datarepo.config import (
    DATAFILE_PID_DEPENDENT,
    IDENTIFIER_STYLE_RANDOM,
    RepoConfig,
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in (
        "DATAREPO_ENVIRONMENT",
        "DATAREPO_AUTHORITY",
        "DATAREPO_ALWAYS_MUTED",
        "DATAREPO_NEVER_MUTED",
        "DATAREPO_REGISTER_WHEN_PUBLISHED",
        "DATAREPO_IDENTIFIER_RETRY_LIMIT",
        "DATAREPO_DB_PATH",
        "DATAREPO_SHOULDER",
    ):
        monkeypatch.delenv(name, raising=False)


class TestDefaults:
    def test_defaults(self):
        config = RepoConfig(_env_file=None)
        assert config.environment == "development"
        assert config.is_production is False
        assert config.identifier_generation_style == IDENTIFIER_STYLE_RANDOM
        assert config.datafile_pid_format == DATAFILE_PID_DEPENDENT
        assert config.identifier_retry_limit == 10
        assert config.register_when_published is False
        assert config.always_muted == frozenset()
        assert config.max_background_workers == 4

    def test_is_production(self):
        assert RepoConfig(_env_file=None, environment="production").is_production is True


class TestEnvironmentOverrides:
    def test_scalar_overrides(self, monkeypatch):
        monkeypatch.setenv("DATAREPO_AUTHORITY", "10.5072")
        monkeypatch.setenv("DATAREPO_REGISTER_WHEN_PUBLISHED", "true")
        monkeypatch.setenv("DATAREPO_IDENTIFIER_RETRY_LIMIT", "3")
        monkeypatch.setenv("DATAREPO_DB_PATH", "/tmp/elsewhere/repo.db")
        config = RepoConfig(_env_file=None)
        assert config.authority == "10.5072"
        assert config.register_when_published is True
        assert config.identifier_retry_limit == 3
        assert config.db_path == Path("/tmp/elsewhere/repo.db")

    def test_comma_separated_mute_list(self, monkeypatch):
        monkeypatch.setenv("DATAREPO_ALWAYS_MUTED", "ASSIGNROLE, REVOKEROLE,")
        config = RepoConfig(_env_file=None)
        assert config.always_muted == frozenset({"ASSIGNROLE", "REVOKEROLE"})

    def test_json_mute_list(self, monkeypatch):
        monkeypatch.setenv("DATAREPO_NEVER_MUTED", '["CHECKSUMFAIL", "CONFIRMEMAIL"]')
        config = RepoConfig(_env_file=None)
        assert config.never_muted == frozenset({"CHECKSUMFAIL", "CONFIRMEMAIL"})

    def test_iterable_mute_list(self):
        config = RepoConfig(_env_file=None, always_muted=["CREATEDS"])
        assert config.always_muted == frozenset({"CREATEDS"})

    def test_dotenv_file(self, tmp_path, monkeypatch):
        env_file = tmp_path / ".env"
        env_file.write_text("DATAREPO_ENVIRONMENT=production\nDATAREPO_SHOULDER=FK2/\n")
        config = RepoConfig(_env_file=env_file)
        assert config.is_production is True
        assert config.shoulder == "FK2/"

    def test_explicit_arguments_win(self, monkeypatch):
        monkeypatch.setenv("DATAREPO_AUTHORITY", "10.1111")
        assert RepoConfig(_env_file=None, authority="10.2222").authority == "10.2222"
