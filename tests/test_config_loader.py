"""
Tests for configuration loading.

Covers defaults, the user < project < env precedence chain, invalid
environment values, and layered .env loading.
"""

import json
import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from pkgsync.core.config import (
    PkgSyncConfig,
    get_project_config_path,
    get_user_config_path,
    load_config,
    load_layered_env,
)
from pkgsync.core.config.loader import apply_env_overrides, deep_merge


class TestDefaults:
    """Default configuration values."""

    def test_defaults(self, clean_env: Path) -> None:
        """Test defaults when no files or env vars exist."""
        config = load_config(use_cache=False)

        assert config.github.token is None
        assert config.github.concurrency == 10
        assert config.github.page_size == 100
        assert config.github.rate_limit_retries == 5
        assert config.github.transient_retries == 3
        assert config.database.concurrency == 5
        assert config.database.transaction_timeout == 30.0
        assert config.sync.batch_size == 10
        assert config.sync.batch_delay == 2.0
        assert config.discovery.mode == "root"
        assert "node_modules" in config.discovery.skip_dirs

    def test_paths(self, clean_env: Path) -> None:
        """Test config file locations."""
        assert get_user_config_path() == Path(os.environ["XDG_CONFIG_HOME"]) / "pkgsync" / "config.json"
        assert get_project_config_path(clean_env) == clean_env / ".pkgsync.json"

    def test_invalid_values_rejected(self) -> None:
        """Test pydantic validation of out-of-range values."""
        with pytest.raises(ValidationError):
            PkgSyncConfig(sync={"batch_size": 0})
        with pytest.raises(ValidationError):
            PkgSyncConfig(discovery={"mode": "everything"})

    def test_blank_token_is_none(self) -> None:
        """Test an empty token string is treated as no token."""
        config = PkgSyncConfig(github={"token": ""})
        assert config.github.token is None


class TestPrecedence:
    """Layer merging: defaults < user < project < env."""

    def test_project_overrides_user(self, clean_env: Path) -> None:
        """Test project config wins over user config."""
        user_path = get_user_config_path()
        user_path.parent.mkdir(parents=True)
        user_path.write_text(json.dumps({"sync": {"batch_size": 3, "batch_delay": 9}}))
        (clean_env / ".pkgsync.json").write_text(json.dumps({"sync": {"batch_size": 7}}))

        config = load_config(use_cache=False)

        assert config.sync.batch_size == 7
        assert config.sync.batch_delay == 9

    def test_env_overrides_files(self, clean_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test environment variables win over config files."""
        (clean_env / ".pkgsync.json").write_text(json.dumps({"github": {"concurrency": 2}}))
        monkeypatch.setenv("PKGSYNC_GITHUB_CONCURRENCY", "4")
        monkeypatch.setenv("GITHUB_TOKEN", "ghp_env")
        monkeypatch.setenv("PKGSYNC_DISCOVERY_MODE", "recursive")
        monkeypatch.setenv("PKGSYNC_DB_PATH", "/tmp/other.db")

        config = load_config(use_cache=False)

        assert config.github.concurrency == 4
        assert config.github.token == "ghp_env"
        assert config.discovery.mode == "recursive"
        assert config.database.path == Path("/tmp/other.db")

    def test_invalid_env_value_ignored(
        self, clean_env: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture
    ) -> None:
        """Test invalid env values print a warning and keep the lower layer."""
        monkeypatch.setenv("PKGSYNC_BATCH_SIZE", "zero")
        monkeypatch.setenv("PKGSYNC_BATCH_DELAY", "-1")

        config = load_config(use_cache=False)

        assert config.sync.batch_size == 10
        assert config.sync.batch_delay == 2.0
        assert "PKGSYNC_BATCH_SIZE" in capsys.readouterr().out

    def test_broken_project_file_is_skipped(self, clean_env: Path) -> None:
        """Test an unparseable config file does not break loading."""
        (clean_env / ".pkgsync.json").write_text("{not json")

        config = load_config(use_cache=False)

        assert config.sync.batch_size == 10

    def test_cache(self, clean_env: Path) -> None:
        """Test load_config caches until use_cache=False."""
        first = load_config()
        assert load_config() is first
        assert load_config(use_cache=False) is not first


class TestHelpers:
    """deep_merge and apply_env_overrides."""

    def test_deep_merge(self) -> None:
        base = {"a": 1, "b": {"x": 10, "y": 20}}
        override = {"b": {"y": 30, "z": 40}, "c": 3}
        assert deep_merge(base, override) == {"a": 1, "b": {"x": 10, "y": 30, "z": 40}, "c": 3}
        assert base == {"a": 1, "b": {"x": 10, "y": 20}}

    def test_apply_env_overrides_keeps_section(
        self, clean_env: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("PKGSYNC_BATCH_DELAY", "0.5")
        result = apply_env_overrides({"sync": {"batch_size": 4}})
        assert result["sync"] == {"batch_size": 4, "batch_delay": 0.5}


class TestLayeredEnv:
    """load_layered_env precedence."""

    def test_precedence(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test os.environ > project .env > user .env."""
        for name in ("PKGSYNC_A", "PKGSYNC_B", "PKGSYNC_C"):
            monkeypatch.delenv(name, raising=False)
        monkeypatch.setenv("PKGSYNC_A", "os")

        user_env = tmp_path / "user.env"
        user_env.write_text("PKGSYNC_A=user\nPKGSYNC_B=user\nPKGSYNC_C=user\n")
        project_env = tmp_path / "project.env"
        project_env.write_text("PKGSYNC_A=project\nPKGSYNC_B=project\n")

        loaded = load_layered_env(
            project_dir=tmp_path,
            user_env_paths=[user_env],
            project_env_paths=[project_env],
        )

        assert os.environ["PKGSYNC_A"] == "os"
        assert os.environ["PKGSYNC_B"] == "project"
        assert os.environ["PKGSYNC_C"] == "user"
        assert loaded == {"PKGSYNC_B", "PKGSYNC_C"}
