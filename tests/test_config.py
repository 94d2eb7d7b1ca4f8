"""Tests for configuration loading."""

from pathlib import Path

import pytest

from synchub.config import expand_env_vars, load_config, write_default_config
from synchub.exceptions import ConfigError
from synchub.models import SyncHubConfig


class TestExpandEnvVars:
    """Tests for expand_env_vars function."""

    def test_braced_and_bare(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SYNCHUB_DIR", "/var/lib/synchub")
        assert expand_env_vars("${SYNCHUB_DIR}/workspace.db") == "/var/lib/synchub/workspace.db"
        assert expand_env_vars("$SYNCHUB_DIR") == "/var/lib/synchub"

    def test_unset_left_unchanged(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("SYNCHUB_MISSING", raising=False)
        assert expand_env_vars("${SYNCHUB_MISSING}") == "${SYNCHUB_MISSING}"

    def test_nested(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LEVEL", "DEBUG")
        assert expand_env_vars({"logging": {"level": "$LEVEL"}, "n": [1, "$LEVEL"]}) == {
            "logging": {"level": "DEBUG"},
            "n": [1, "DEBUG"],
        }


class TestLoadConfig:
    """Tests for load_config function."""

    def test_missing_file_gives_defaults(self, tmp_path: Path) -> None:
        config = load_config(tmp_path / "absent.yaml")

        assert config == SyncHubConfig()
        assert config.scheduler.tick_interval_seconds == 30
        assert config.lock.stale_after_seconds == 300
        assert config.executor.timeout_seconds == 300

    def test_default_template_round_trips(self, tmp_path: Path) -> None:
        path = tmp_path / ".synchub.yaml"
        write_default_config(path)

        assert load_config(path) == SyncHubConfig()

    def test_overrides(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DB_DIR", str(tmp_path))
        path = tmp_path / ".synchub.yaml"
        path.write_text(
            "storage:\n"
            '  path: "${DB_DIR}/hub.db"\n'
            "lock:\n"
            "  stale_after_seconds: 60\n"
            "scheduler:\n"
            "  enabled: false\n"
        )

        config = load_config(path)

        assert config.storage.path == f"{tmp_path}/hub.db"
        assert config.lock.stale_after_seconds == 60
        assert config.scheduler.enabled is False

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / ".synchub.yaml"
        path.write_text("storage: [unclosed\n")

        with pytest.raises(ConfigError):
            load_config(path)

    def test_not_a_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / ".synchub.yaml"
        path.write_text("- just\n- a list\n")

        with pytest.raises(ConfigError):
            load_config(path)

    def test_invalid_values(self, tmp_path: Path) -> None:
        path = tmp_path / ".synchub.yaml"
        path.write_text("executor:\n  timeout_seconds: -1\n")

        with pytest.raises(ConfigError) as exc_info:
            load_config(path)
        assert "Invalid configuration" in str(exc_info.value)

    def test_found_in_parent_directory(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        (tmp_path / ".synchub.yaml").write_text("logging:\n  level: DEBUG\n")
        child = tmp_path / "sub" / "dir"
        child.mkdir(parents=True)
        monkeypatch.chdir(child)

        assert load_config().logging.level == "DEBUG"
