"""Tests for the per-site migration runner and the activity log database."""

import sqlite3

import pytest

from pebble.local.database import LogDBManager, SiteDBManager
from pebble.local.database.site import MIGRATIONS
from pebble.local.errors import IoFailure


class TestSiteDatabase:

    def test_fresh_database_applies_all_migrations(self, tmp_path):
        db = SiteDBManager(tmp_path / "data" / "pebble.db")
        assert db.initialize_database() == len(MIGRATIONS)
        assert db.current_version() == MIGRATIONS[-1][0]
        assert all(applied_at is not None for _, applied_at in db.migration_status())

    def test_second_run_applies_nothing(self, tmp_path):
        db = SiteDBManager(tmp_path / "pebble.db")
        db.initialize_database()
        assert db.initialize_database() == 0

    def test_empty_database_reports_pending(self, tmp_path):
        db = SiteDBManager(tmp_path / "pebble.db")
        assert db.current_version() == 0
        assert [applied for _, applied in db.migration_status()] == [None] * len(MIGRATIONS)

    def test_foreign_keys_enforced(self, tmp_path):
        db = SiteDBManager(tmp_path / "pebble.db")
        db.initialize_database()
        with db._get_connection() as conn:
            with pytest.raises(sqlite3.IntegrityError):
                conn.execute("INSERT INTO content_tags (content_id, tag_id) VALUES (999, 999)")

    def test_unwritable_location(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")
        with pytest.raises(IoFailure):
            SiteDBManager(blocker / "pebble.db").initialize_database()


class TestLogDatabase:

    def _entry(self, ts, level, message):
        return {"timestamp": ts, "level": level, "module": "tests", "funcName": "f", "lineno": 1, "message": message}

    def test_missing_database_has_no_entries(self, tmp_path):
        assert LogDBManager(tmp_path / "none.db").fetch_last_entries(10) == []

    def test_last_entries_oldest_first(self, tmp_path):
        db = LogDBManager(tmp_path / "logs" / "pebble.log.db")
        db.initialize_database()
        db.insert_log_batch([self._entry(float(i), "INFO", f"message {i}") for i in range(5)])

        entries = db.fetch_last_entries(3)
        assert [e.timestamp for e in entries] == [2.0, 3.0, 4.0]
        assert entries[-1].message.endswith("message 4")

    def test_debug_entries_hidden_by_default(self, tmp_path):
        db = LogDBManager(tmp_path / "pebble.log.db")
        db.initialize_database()
        db.insert_log_batch([self._entry(1.0, "DEBUG", "noise"), self._entry(2.0, "WARNING", "signal")])

        assert [e.level for e in db.fetch_last_entries(10)] == ["WARNING"]
        assert [e.level for e in db.fetch_last_entries(10, include_debug=True)] == ["DEBUG", "WARNING"]

    def test_empty_batch_is_noop(self, tmp_path):
        db = LogDBManager(tmp_path / "pebble.log.db")
        db.insert_log_batch([])
        assert not (tmp_path / "pebble.log.db").exists()


class TestSiteSchema:

    def _names(self, db, kind):
        with db._get_connection() as conn:
            return {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type = ?", (kind,))}

    def test_versions_follow_server_numbering(self, tmp_path):
        db = SiteDBManager(tmp_path / "pebble.db")
        db.initialize_database()
        assert [version for version, _ in db.migration_status()] == [1, 2]
        assert db.current_version() == 2

    def test_initial_schema_is_complete(self, tmp_path):
        db = SiteDBManager(tmp_path / "pebble.db")
        db.initialize_database()
        assert "idx_content_slug" in self._names(db, "index")
        assert {"update_content_timestamp", "update_users_timestamp"} <= self._names(db, "trigger")

    def test_full_text_search_is_indexed(self, tmp_path):
        db = SiteDBManager(tmp_path / "pebble.db")
        db.initialize_database()
        assert "content_fts" in self._names(db, "table")
        with db._get_connection() as conn:
            conn.execute("INSERT INTO content (slug, title, body_markdown) VALUES ('hello', 'Hello', 'pebble stones')")
            conn.commit()
            hits = conn.execute("SELECT rowid FROM content_fts WHERE content_fts MATCH 'stones'").fetchall()
        assert len(hits) == 1
