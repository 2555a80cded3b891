# ABOUTME: Unit tests for configuration loading.
# ABOUTME: Covers defaults, YAML sections, validation, and environment overrides.

from pathlib import Path

import pytest
from pydantic import ValidationError

from bookswap.config import DEV_SECRET_KEY, AppConfig, load_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Run each test from an empty directory with no bookswap variables set."""
    monkeypatch.chdir(tmp_path)
    for name in ("BOOKSWAP_DB", "BOOKSWAP_SECRET_KEY", "BOOKSWAP_WEBHOOK_URL"):
        monkeypatch.delenv(name, raising=False)


class TestDefaults:
    """Tests for configuration without a file."""

    def test_missing_file_gives_defaults(self) -> None:
        config = load_config()
        assert config == AppConfig()
        assert config.locks.duration_hours == 48
        assert config.locks.max_extensions == 2
        assert config.locks.extension_hours == 24
        assert config.auth.secret_key == DEV_SECRET_KEY
        assert config.notifications.webhook_url is None

    def test_explicit_missing_path(self, tmp_path: Path) -> None:
        assert load_config(tmp_path / "nope.yaml") == AppConfig()


class TestYamlFile:
    """Tests for YAML configuration files."""

    def test_sections_are_read(self, tmp_path: Path) -> None:
        path = tmp_path / "custom.yaml"
        path.write_text(
            "storage:\n"
            "  db_path: /srv/bookswap/market.db\n"
            "locks:\n"
            "  duration_hours: 12\n"
            "  sweep_interval_seconds: 30\n"
            "matching:\n"
            "  background: true\n"
        )
        config = load_config(path)
        assert config.storage.db_path == Path("/srv/bookswap/market.db")
        assert config.locks.duration_hours == 12
        assert config.locks.sweep_interval_seconds == 30
        assert config.locks.max_extensions == 2
        assert config.matching.background is True

    def test_default_file_in_cwd(self, tmp_path: Path) -> None:
        (tmp_path / "bookswap.yaml").write_text("api:\n  port: 9000\n")
        assert load_config().api.port == 9000

    def test_empty_file(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(path) == AppConfig()

    def test_invalid_value_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("locks:\n  duration_hours: 0\n")
        with pytest.raises(ValidationError):
            load_config(path)


class TestEnvironment:
    """Tests for environment variable overrides."""

    def test_env_wins_over_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = tmp_path / "custom.yaml"
        path.write_text("auth:\n  secret_key: from-file\n")
        monkeypatch.setenv("BOOKSWAP_SECRET_KEY", "from-env")
        monkeypatch.setenv("BOOKSWAP_DB", str(tmp_path / "env.db"))
        monkeypatch.setenv("BOOKSWAP_WEBHOOK_URL", "https://hooks.example.com/trades")

        config = load_config(path)
        assert config.auth.secret_key == "from-env"
        assert config.storage.db_path == tmp_path / "env.db"
        assert config.notifications.webhook_url == "https://hooks.example.com/trades"
