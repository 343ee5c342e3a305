"""Tests for the site lifecycle operations behind the CLI."""

import json
import shutil
import sqlite3
import tomllib

import pytest

from pebble.local.manager import SiteManager, is_valid_site_name, render_site_config
from pebble.local.global_config import GlobalConfig
from pebble.local.registry import Registry, RegistrySite, Running, SiteStatus, Stopped
from pebble.local.errors import (
    AlreadyExists,
    InvalidKey,
    InvalidName,
    IoFailure,
    NotFound,
    StillRunning,
)


def _reload(fake_backend) -> SiteManager:
    return SiteManager.load(backend=fake_backend, executable="pebble-server")


class TestSiteNames:

    @pytest.mark.parametrize("name", ["blog", "my-blog", "a", "site2", "a" * 64])
    def test_valid(self, name):
        assert is_valid_site_name(name)

    @pytest.mark.parametrize("name", ["", "-blog", "blog-", "My-Blog", "my_blog", "blog.dev", "a" * 65, "blög", "blog\n"])
    def test_invalid(self, name):
        assert not is_valid_site_name(name)


class TestInit:

    def test_creates_site_layout(self, manager, home):
        site = manager.init("my-blog")
        site_path = home.site_path("my-blog")

        assert (site_path / "data" / "media").is_dir()
        assert (site_path / "pebble.toml").is_file()
        assert (site_path / "data" / "pebble.db").is_file()
        assert site.title == "my blog"
        assert site.state == Stopped()

    def test_init_then_list(self, manager, fake_backend):
        manager.init("blog")
        sites = _reload(fake_backend).list()
        assert len(sites) == 1
        assert sites[0].name == "blog"
        assert sites[0].status == SiteStatus.STOPPED
        assert sites[0].port is None
        assert sites[0].pid is None

    def test_custom_title(self, manager, home):
        manager.init("blog", title='The "Best" Blog')
        config_text = (home.site_path("blog") / "pebble.toml").read_text()
        assert 'title = "The \\"Best\\" Blog"' in config_text

    def test_config_uses_global_defaults(self, manager, home):
        manager.config_set("defaults.theme", "dark")
        manager.config_set("defaults.posts_per_page", "25")
        manager.init("blog")
        config_text = (home.site_path("blog") / "pebble.toml").read_text()
        assert 'name = "dark"' in config_text
        assert "posts_per_page = 25" in config_text
        assert 'host = "127.0.0.1"' in config_text

    def test_database_is_migrated(self, manager, home):
        manager.init("blog")
        conn = sqlite3.connect(home.site_path("blog") / "data" / "pebble.db")
        try:
            tables = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
        finally:
            conn.close()
        assert {"users", "content", "media", "settings", "schema_migrations"} <= tables
        assert "content_fts" in tables

    def test_invalid_name(self, manager, home):
        with pytest.raises(InvalidName):
            manager.init("Bad_Name")
        assert list(home.registry_dir.iterdir()) == []

    def test_init_twice_fails_and_keeps_first(self, manager, fake_backend):
        manager.init("blog", title="First")
        first = manager.status("blog").to_dict()
        with pytest.raises(AlreadyExists):
            manager.init("blog", title="Second")
        assert _reload(fake_backend).status("blog").to_dict() == first

    def test_existing_directory_is_rejected(self, manager, home):
        home.site_path("blog").mkdir(parents=True)
        with pytest.raises(AlreadyExists):
            manager.init("blog")
        assert manager.registry.get_site("blog") is None

    def test_registry_entry_without_directory_is_rejected(self, manager, home):
        manager.init("blog")
        shutil.rmtree(home.site_path("blog"))
        with pytest.raises(AlreadyExists):
            manager.init("blog")

    def test_failure_removes_partial_directory(self, manager, home, monkeypatch):
        def broken_migrations(self):
            raise IoFailure("disk full")
        monkeypatch.setattr("pebble.local.manager.SiteDBManager.initialize_database", broken_migrations)

        with pytest.raises(IoFailure):
            manager.init("blog")
        assert not home.site_path("blog").exists()
        assert manager.registry.get_site("blog") is None


class TestServeStop:

    def test_serve_persists_state(self, manager, fake_backend):
        manager.init("blog")
        outcome = manager.serve("blog", port=4000)

        site = _reload(fake_backend).status("blog")
        assert site.status == SiteStatus.RUNNING
        assert site.port == 4000
        assert site.pid == outcome.pid

    def test_serve_again_reports_already_running(self, manager, fake_backend):
        manager.init("blog")
        manager.serve("blog", port=4000)

        again = _reload(fake_backend).serve("blog")
        assert again.already_running
        assert again.port == 4000
        assert len(fake_backend.started) == 1

    def test_deploy_persists_deploying(self, manager, fake_backend):
        manager.init("blog")
        manager.deploy("blog", port=8081)
        assert _reload(fake_backend).status("blog").status == SiteStatus.DEPLOYING

    def test_stop_persists_stopped(self, manager, fake_backend):
        manager.init("blog")
        manager.serve("blog", port=4000)
        manager.stop("blog")
        site = _reload(fake_backend).status("blog")
        assert site.state == Stopped()

    def test_stop_on_stopped_site_changes_nothing(self, manager, fake_backend):
        manager.init("blog")
        before = manager.status("blog").to_dict()
        outcome = manager.stop("blog")
        assert not outcome.stopped
        assert _reload(fake_backend).status("blog").to_dict() == before

    def test_stop_all(self, manager, fake_backend):
        for name in ("a", "b", "c"):
            manager.init(name)
        manager.serve("a", port=4000)
        manager.deploy("b", port=4001)

        outcomes = manager.stop_all()

        assert sorted(o.name for o in outcomes) == ["a", "b"]
        assert all(s.state == Stopped() for s in _reload(fake_backend).list())

    def test_load_resets_dead_sites(self, manager, fake_backend):
        manager.init("blog")
        manager.serve("blog", port=4000)
        fake_backend.alive.clear()

        reloaded = _reload(fake_backend)
        assert reloaded.status("blog").state == Stopped()

    def test_real_backend_cleanup(self, pebble_home, home, dead_pid, sleeper):
        registry = Registry.load(home.registry_path)
        registry.add_site(RegistrySite(name="dead", title="Dead", state=Running(port=4000, pid=dead_pid)))
        registry.add_site(RegistrySite(name="live", title="Live", state=Running(port=4001, pid=sleeper.pid)))
        registry.save(home.registry_path)

        manager = SiteManager.load()
        assert manager.status("dead").state == Stopped()
        assert manager.status("live").status == SiteStatus.RUNNING


class TestRemove:

    def test_stop_then_remove(self, manager, home, fake_backend):
        manager.init("blog")
        manager.serve("blog", port=4000)
        manager.stop("blog")
        manager.remove("blog")

        assert not home.site_path("blog").exists()
        assert _reload(fake_backend).list() == []

    def test_remove_running_without_force(self, manager, home, fake_backend):
        manager.init("blog")
        manager.serve("blog", port=4000)

        with pytest.raises(StillRunning):
            manager.remove("blog")

        site = _reload(fake_backend).status("blog")
        assert site.status == SiteStatus.RUNNING
        assert home.site_path("blog").is_dir()

    def test_remove_deploying_without_force(self, manager):
        manager.init("blog")
        manager.deploy("blog", port=8081)
        with pytest.raises(StillRunning):
            manager.remove("blog")

    def test_force_remove_stops_first(self, manager, home, fake_backend):
        manager.init("blog")
        outcome = manager.serve("blog", port=4000)
        manager.remove("blog", force=True)
        assert fake_backend.terminated == [outcome.pid]
        assert not home.site_path("blog").exists()
        assert manager.registry.get_site("blog") is None

    def test_force_remove_ignores_signal_failure(self, manager, home, fake_backend):
        manager.init("blog")
        outcome = manager.serve("blog", port=4000)
        fake_backend.fail_terminate[outcome.pid] = "permission denied"
        manager.remove("blog", force=True)
        assert manager.registry.get_site("blog") is None

    def test_directory_failure_keeps_entry(self, manager, fake_backend, monkeypatch):
        manager.init("blog")

        def refuse(path, *args, **kwargs):
            raise PermissionError(13, "Permission denied", str(path))
        monkeypatch.setattr("pebble.local.manager.shutil.rmtree", refuse)

        with pytest.raises(IoFailure):
            manager.remove("blog")
        assert _reload(fake_backend).status("blog") is not None

    def test_missing_directory_still_removes_entry(self, manager, home):
        manager.init("blog")
        shutil.rmtree(home.site_path("blog"))
        manager.remove("blog")
        assert manager.registry.get_site("blog") is None

    def test_unknown_site(self, manager):
        with pytest.raises(NotFound):
            manager.remove("ghost")


class TestProjections:

    def test_status_unknown(self, manager):
        with pytest.raises(NotFound):
            manager.status("ghost")

    def test_path(self, manager, home):
        manager.init("blog")
        assert manager.path("blog") == home.site_path("blog")
        assert manager.path() == home.registry_dir
        with pytest.raises(NotFound):
            manager.path("ghost")

    def test_list_sorted(self, manager):
        for name in ("zeta", "alpha"):
            manager.init(name)
        assert [s.name for s in manager.list()] == ["alpha", "zeta"]


class TestConfigOperations:

    def test_set_persists(self, manager, fake_backend, home):
        manager.config_set("defaults.dev_port", "4500")
        assert _reload(fake_backend).config_get("defaults.dev_port") == "4500"
        assert json.loads(home.config_path.read_text())["defaults"]["dev_port"] == 4500

    def test_remove_custom(self, manager, fake_backend):
        manager.config_set("custom.editor", "vim")
        assert manager.config_remove("custom.editor")
        assert _reload(fake_backend).config_get("custom.editor") is None

    def test_remove_typed_key(self, manager):
        with pytest.raises(InvalidKey):
            manager.config_remove("defaults.theme")

    def test_list_and_path(self, manager, home):
        keys = dict(manager.config_list())
        assert keys["defaults.language"] == "en"
        assert manager.config_path() == home.config_path


class TestRenderSiteConfig:

    def test_placeholders_are_filled(self):
        text = render_site_config("blog", "Blog", GlobalConfig())
        assert "{" not in text
        assert 'title = "Blog"' in text
        assert "port = 3000" in text
        assert 'path = "./data/pebble.db"' in text
        assert 'upload_dir = "./data/media"' in text


class TestSiteConfigEscaping:

    def test_quotes_and_backslashes_stay_parseable(self):
        config = GlobalConfig()
        config.set("defaults.theme", 'my "dark" theme\\v2')
        config.set("defaults.language", 'en"\\US')
        title = 'The "Best" C:\\Blog'

        parsed = tomllib.loads(render_site_config("blog", title, config))

        assert parsed["site"]["title"] == title
        assert parsed["site"]["language"] == 'en"\\US'
        assert parsed["theme"]["name"] == 'my "dark" theme\\v2'

    def test_control_characters(self):
        config = GlobalConfig()
        config.set("defaults.theme", "line\nbreak\ttab\x01")
        parsed = tomllib.loads(render_site_config("blog", "Blog", config))
        assert parsed["theme"]["name"] == "line\nbreak\ttab\x01"

    def test_init_writes_parseable_file(self, manager, home):
        manager.config_set("defaults.theme", 'quoted "theme"')
        manager.init("blog", title='Say "hi"')
        parsed = tomllib.loads((home.site_path("blog") / "pebble.toml").read_text())
        assert parsed["theme"]["name"] == 'quoted "theme"'
        assert parsed["site"]["title"] == 'Say "hi"'
        assert parsed["server"]["port"] == 3000
