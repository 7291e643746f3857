"""Tests for config file discovery, merging and env interpolation."""

from __future__ import annotations

import pytest

from diary_sync.config_loader import (
    discover_config_files,
    ensure_config,
    interpolate_env_vars,
    load_hierarchical_config,
)


@pytest.fixture
def isolated(tmp_path, monkeypatch):
    """Run with an empty CWD and HOME and no explicit config path."""
    cwd = tmp_path / "work"
    home = tmp_path / "home"
    cwd.mkdir()
    home.mkdir()
    monkeypatch.chdir(cwd)
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.delenv("DIARY_SYNC_CONFIG", raising=False)
    return cwd, home


def _write(path, text):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


class TestInterpolateEnvVars:
    def test_set_variable(self, monkeypatch):
        monkeypatch.setenv("DIARY_HOME", "/data")
        assert interpolate_env_vars("${DIARY_HOME}/epistle") == "/data/epistle"

    def test_default_used_when_unset_or_empty(self, monkeypatch):
        monkeypatch.delenv("NOT_SET_ANYWHERE", raising=False)
        monkeypatch.setenv("EMPTY_VAR", "")
        assert interpolate_env_vars("${NOT_SET_ANYWHERE:-x}") == "x"
        assert interpolate_env_vars("${EMPTY_VAR:-y}") == "y"
        assert interpolate_env_vars("${NOT_SET_ANYWHERE}") == ""

    def test_plain_text_untouched(self):
        assert interpolate_env_vars("no vars here $HOME") == "no vars here $HOME"


class TestDiscovery:
    def test_nothing_found(self, isolated):
        assert discover_config_files() == []
        assert load_hierarchical_config() == {}

    def test_precedence_order(self, isolated, tmp_path, monkeypatch):
        cwd, home = isolated
        explicit = _write(tmp_path / "explicit.yml", "diary: {}\n")
        project = _write(cwd / ".diary_sync" / "config.yml", "diary: {}\n")
        user = _write(home / ".config" / "diary_sync" / "config.yml", "diary: {}\n")
        monkeypatch.setenv("DIARY_SYNC_CONFIG", str(explicit))

        found = [p.resolve() for p in discover_config_files()]
        assert found == [explicit.resolve(), project.resolve(), user.resolve()]


class TestLoadHierarchicalConfig:
    def test_project_sections_replace_user_sections(self, isolated, monkeypatch):
        cwd, home = isolated
        _write(
            home / ".config" / "diary_sync" / "config.yml",
            "diary:\n  diary_path: /user\nlogging:\n  level: DEBUG\n",
        )
        _write(cwd / ".diary_sync" / "config.yml", "diary:\n  diary_path: /project\n")

        merged = load_hierarchical_config()

        assert merged == {
            "diary": {"diary_path": "/project"},
            "logging": {"level": "DEBUG"},
        }

    def test_interpolates_after_merge(self, isolated, monkeypatch):
        cwd, _ = isolated
        monkeypatch.setenv("BUCKET_NAME", "my-diary")
        _write(
            cwd / ".diary_sync" / "config.yml",
            "diary:\n  diary_bucket: ${BUCKET_NAME}\n  aws_region_name: ${REGION_X:-eu-west-1}\n",
        )
        monkeypatch.delenv("REGION_X", raising=False)

        diary = load_hierarchical_config()["diary"]
        assert diary == {"diary_bucket": "my-diary", "aws_region_name": "eu-west-1"}

    def test_non_dict_root_skipped(self, isolated):
        cwd, _ = isolated
        _write(cwd / ".diary_sync" / "config.yml", "- just\n- a list\n")
        assert load_hierarchical_config() == {}


class TestEnsureConfig:
    def test_writes_starter_file(self, isolated):
        cwd, _ = isolated
        path = ensure_config()
        assert path.resolve() == (cwd / ".diary_sync" / "config.yml").resolve()
        assert "diary-sync configuration" in path.read_text()
        # the starter file is all comments, so it loads as empty
        assert load_hierarchical_config() == {}

    def test_returns_existing_file(self, isolated):
        cwd, _ = isolated
        existing = _write(cwd / ".diary_sync" / "config.yaml", "diary: {}\n")
        assert ensure_config().resolve() == existing.resolve()
        assert not (cwd / ".diary_sync" / "config.yml").exists()
