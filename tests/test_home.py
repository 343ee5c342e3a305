"""Tests for locating and creating the Pebble home directory."""

from pathlib import Path

import pytest

import pebble.settings as settings
from pebble.local.home import PebbleHome
from pebble.local.errors import IoFailure


class TestHomeDir:

    def test_env_override(self, pebble_home):
        assert PebbleHome.get_home_dir() == pebble_home

    def test_defaults_to_dot_pebble_in_user_home(self, monkeypatch, tmp_path):
        monkeypatch.delenv(settings.HOME_ENV_VAR, raising=False)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))
        assert PebbleHome.get_home_dir() == tmp_path / ".pebble"

    def test_empty_override_is_ignored(self, monkeypatch, tmp_path):
        monkeypatch.setenv(settings.HOME_ENV_VAR, "")
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))
        assert PebbleHome.get_home_dir() == tmp_path / ".pebble"


class TestLayout:

    def test_from_root_paths(self, tmp_path):
        home = PebbleHome.from_root(tmp_path)
        assert home.config_path == tmp_path / "config.json"
        assert home.registry_path == tmp_path / "registry.json"
        assert home.registry_dir == tmp_path / "registry"
        assert home.logs_dir == tmp_path / "logs"
        assert home.log_db_path == tmp_path / "logs" / "pebble.log.db"
        assert home.site_path("blog") == tmp_path / "registry" / "blog"

    def test_from_root_does_not_touch_disk(self, tmp_path):
        PebbleHome.from_root(tmp_path / "nowhere")
        assert not (tmp_path / "nowhere").exists()


class TestInit:

    def test_creates_root_and_registry_dir(self, pebble_home):
        assert not PebbleHome.exists()
        home = PebbleHome.init()
        assert home.root == pebble_home
        assert home.root.is_dir()
        assert home.registry_dir.is_dir()
        assert PebbleHome.exists()

    def test_is_idempotent(self, pebble_home):
        PebbleHome.init()
        (pebble_home / "registry" / "keep").mkdir()
        PebbleHome.init()
        assert (pebble_home / "registry" / "keep").is_dir()

    def test_unwritable_location_raises_io_failure(self, tmp_path, monkeypatch):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        monkeypatch.setenv(settings.HOME_ENV_VAR, str(blocker / "home"))
        with pytest.raises(IoFailure):
            PebbleHome.init()
