"""Tests for the configuration system."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    from pathlib import Path

from stashreview.config import (
    CONFIG_FILENAME,
    Config,
    ConfigError,
    ReviewConfig,
    _collect_unknown_keys,
    _find_config_file,
    get_config,
    load_config,
    set_config,
)


class TestDefaults:
    def test_review_defaults(self):
        rc = ReviewConfig()
        assert rc.comment_preview_len == 40
        assert rc.version_retries == 3
        assert rc.strict_changes is False
        assert rc.ignore_whitespace is False

    def test_config_defaults(self):
        config = Config()
        assert config.stash.url == ""
        assert config.stash.timeout == 30.0
        assert config.logging.level == "WARNING"

    def test_retries_must_be_positive(self):
        with pytest.raises(ValueError, match="version_retries"):
            ReviewConfig(version_retries=0)

    def test_log_level_normalized(self):
        assert Config.model_validate({"logging": {"level": "debug"}}).logging.level == "DEBUG"

    def test_bad_log_level_rejected(self):
        with pytest.raises(ValueError, match="unknown log level"):
            Config.model_validate({"logging": {"level": "chatty"}})


class TestUnknownKeys:
    def test_flags_unknown_top_level_and_nested(self):
        data = {"stash": {"url": "x", "passwd": "y"}, "extras": {}}
        assert sorted(_collect_unknown_keys(data, Config)) == ["extras", "stash.passwd"]

    def test_clean_data(self):
        assert _collect_unknown_keys({"review": {"strict_changes": True}}, Config) == []


class TestFindConfigFile:
    def test_finds_in_parent(self, tmp_path: Path):
        (tmp_path / CONFIG_FILENAME).write_text("", encoding="utf-8")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert _find_config_file(nested) == (tmp_path / CONFIG_FILENAME).resolve()

    def test_stops_at_git_root(self, tmp_path: Path):
        (tmp_path / CONFIG_FILENAME).write_text("", encoding="utf-8")
        repo = tmp_path / "repo"
        (repo / ".git").mkdir(parents=True)
        assert _find_config_file(repo) is None


class TestLoadConfig:
    def test_no_file_uses_defaults(self, tmp_path: Path):
        (tmp_path / ".git").mkdir()
        config, path = load_config(tmp_path, environ={})
        assert path is None
        assert config == Config()

    def test_reads_file(self, tmp_path: Path):
        (tmp_path / ".git").mkdir()
        (tmp_path / CONFIG_FILENAME).write_text(
            '[stash]\nurl = "https://stash.example.com"\nuser = "alice"\n\n[review]\nversion_retries = 5\n',
            encoding="utf-8",
        )
        config, path = load_config(tmp_path, environ={})
        assert path == (tmp_path / CONFIG_FILENAME).resolve()
        assert config.stash.url == "https://stash.example.com"
        assert config.stash.user == "alice"
        assert config.review.version_retries == 5

    def test_env_overrides_file(self, tmp_path: Path):
        (tmp_path / ".git").mkdir()
        (tmp_path / CONFIG_FILENAME).write_text('[stash]\nurl = "https://old"\ntoken = "file"\n', encoding="utf-8")
        config, _ = load_config(tmp_path, environ={"STASH_URL": "https://new", "STASH_TIMEOUT": "5"})
        assert config.stash.url == "https://new"
        assert config.stash.token == "file"
        assert config.stash.timeout == 5.0

    def test_env_only(self, tmp_path: Path):
        (tmp_path / ".git").mkdir()
        config, _ = load_config(tmp_path, environ={"STASH_TOKEN": "t0k", "STASHREVIEW_LOG_LEVEL": "info"})
        assert config.stash.token == "t0k"
        assert config.logging.level == "INFO"

    def test_invalid_toml(self, tmp_path: Path):
        (tmp_path / ".git").mkdir()
        (tmp_path / CONFIG_FILENAME).write_text("[stash\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="Invalid TOML"):
            load_config(tmp_path, environ={})

    def test_invalid_values(self, tmp_path: Path):
        (tmp_path / ".git").mkdir()
        (tmp_path / CONFIG_FILENAME).write_text("[review]\ncomment_preview_len = 0\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="Invalid config"):
            load_config(tmp_path, environ={})

    def test_unknown_keys_warned(self, tmp_path: Path, caplog):
        (tmp_path / ".git").mkdir()
        (tmp_path / CONFIG_FILENAME).write_text("[review]\nretries = 2\n", encoding="utf-8")
        config, _ = load_config(tmp_path, environ={})
        assert config.review.version_retries == 3
        assert "review.retries" in caplog.text


class TestActiveConfig:
    def test_set_and_get(self):
        config = Config.model_validate({"review": {"strict_changes": True}})
        set_config(config)
        assert get_config() is config
