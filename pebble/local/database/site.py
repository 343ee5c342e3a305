import sqlite3
import logging
from pathlib import Path
from typing import List, Optional, Tuple

from pebble.local.errors import IoFailure
from pebble.local.database.base import BaseDBManager

log = logging.getLogger(__name__)

SITE_DB_PRAGMAS = (
    "journal_mode=WAL",
    "foreign_keys=ON",
    "busy_timeout=5000",
)

# (version, SQL). Applied in order; each version is recorded in schema_migrations.
# Version numbers are shared with the content server, which applies any later
# versions itself when it opens the database.
MIGRATIONS: List[Tuple[int, str]] = [
    (1, """
        CREATE TABLE users (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            username TEXT NOT NULL UNIQUE,
            email TEXT NOT NULL UNIQUE,
            password_hash TEXT NOT NULL,
            role TEXT NOT NULL DEFAULT 'author' CHECK (role IN ('admin', 'author', 'viewer')),
            created_at TEXT DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT DEFAULT CURRENT_TIMESTAMP
        );

        CREATE TABLE sessions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            token TEXT NOT NULL UNIQUE,
            expires_at TEXT NOT NULL,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP
        );

        CREATE TABLE content (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            slug TEXT NOT NULL UNIQUE,
            title TEXT NOT NULL,
            content_type TEXT NOT NULL DEFAULT 'post' CHECK (content_type IN ('post', 'page', 'snippet')),
            body_markdown TEXT NOT NULL DEFAULT '',
            body_html TEXT NOT NULL DEFAULT '',
            excerpt TEXT,
            featured_image TEXT,
            status TEXT NOT NULL DEFAULT 'draft' CHECK (status IN ('draft', 'published', 'archived')),
            published_at TEXT,
            author_id INTEGER REFERENCES users(id) ON DELETE SET NULL,
            metadata TEXT DEFAULT '{}',
            created_at TEXT DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT DEFAULT CURRENT_TIMESTAMP
        );

        CREATE TABLE tags (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL UNIQUE,
            slug TEXT NOT NULL UNIQUE,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP
        );

        CREATE TABLE content_tags (
            content_id INTEGER NOT NULL REFERENCES content(id) ON DELETE CASCADE,
            tag_id INTEGER NOT NULL REFERENCES tags(id) ON DELETE CASCADE,
            PRIMARY KEY (content_id, tag_id)
        );

        CREATE TABLE media (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            filename TEXT NOT NULL UNIQUE,
            original_name TEXT NOT NULL,
            mime_type TEXT NOT NULL,
            size_bytes INTEGER NOT NULL,
            alt_text TEXT DEFAULT '',
            uploaded_by INTEGER REFERENCES users(id) ON DELETE SET NULL,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP
        );

        CREATE TABLE settings (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT DEFAULT CURRENT_TIMESTAMP
        );

        CREATE INDEX idx_content_status ON content(status);
        CREATE INDEX idx_content_type ON content(content_type);
        CREATE INDEX idx_content_published ON content(published_at DESC);
        CREATE INDEX idx_content_slug ON content(slug);
        CREATE INDEX idx_sessions_token ON sessions(token);
        CREATE INDEX idx_sessions_expires ON sessions(expires_at);

        CREATE TRIGGER update_content_timestamp
        AFTER UPDATE ON content
        BEGIN
            UPDATE content SET updated_at = CURRENT_TIMESTAMP WHERE id = NEW.id;
        END;

        CREATE TRIGGER update_users_timestamp
        AFTER UPDATE ON users
        BEGIN
            UPDATE users SET updated_at = CURRENT_TIMESTAMP WHERE id = NEW.id;
        END;
    """),
    (2, """
        CREATE VIRTUAL TABLE content_fts USING fts5(
            title,
            body,
            tags,
            content='',
            content_rowid='rowid'
        );

        CREATE TRIGGER content_fts_insert AFTER INSERT ON content BEGIN
            INSERT INTO content_fts(rowid, title, body, tags)
            SELECT NEW.id, NEW.title, NEW.body_markdown,
                   COALESCE((SELECT GROUP_CONCAT(t.name, ' ') FROM tags t
                             JOIN content_tags ct ON t.id = ct.tag_id
                             WHERE ct.content_id = NEW.id), '');
        END;

        CREATE TRIGGER content_fts_update AFTER UPDATE ON content BEGIN
            INSERT INTO content_fts(content_fts, rowid, title, body, tags)
            VALUES('delete', OLD.id, OLD.title, OLD.body_markdown,
                   COALESCE((SELECT GROUP_CONCAT(t.name, ' ') FROM tags t
                             JOIN content_tags ct ON t.id = ct.tag_id
                             WHERE ct.content_id = OLD.id), ''));
            INSERT INTO content_fts(rowid, title, body, tags)
            SELECT NEW.id, NEW.title, NEW.body_markdown,
                   COALESCE((SELECT GROUP_CONCAT(t.name, ' ') FROM tags t
                             JOIN content_tags ct ON t.id = ct.tag_id
                             WHERE ct.content_id = NEW.id), '');
        END;

        CREATE TRIGGER content_fts_delete AFTER DELETE ON content BEGIN
            INSERT INTO content_fts(content_fts, rowid, title, body, tags)
            VALUES('delete', OLD.id, OLD.title, OLD.body_markdown,
                   COALESCE((SELECT GROUP_CONCAT(t.name, ' ') FROM tags t
                             JOIN content_tags ct ON t.id = ct.tag_id
                             WHERE ct.content_id = OLD.id), ''));
        END;
    """),
]


class SiteDBManager(BaseDBManager):
    """
    Creates a site's embedded database and brings its schema up to date.
    """

    def __init__(self, db_path: Path):
        super().__init__(db_path, pragmas=SITE_DB_PRAGMAS)

    def _ensure_migrations_table(self, conn: sqlite3.Connection) -> None:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS schema_migrations (
                version INTEGER PRIMARY KEY,
                applied_at TEXT DEFAULT CURRENT_TIMESTAMP
            )
        """)
        conn.commit()

    def current_version(self) -> int:
        """Highest applied migration version, 0 for a fresh database."""
        with self._get_connection() as conn:
            self._ensure_migrations_table(conn)
            row = conn.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations").fetchone()
            return int(row[0])

    def initialize_database(self) -> int:
        """
        Creates the database file if needed and applies every pending migration.

        Each migration runs in its own transaction together with the insert
        that records its version.

        :return int: The number of migrations applied.
        :raises IoFailure: If the database cannot be created or migrated.
        """
        applied = 0
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            with self._get_connection() as conn:
                self._ensure_migrations_table(conn)
                current = conn.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations").fetchone()[0]
                for version, sql in MIGRATIONS:
                    if version <= current:
                        continue
                    log.info(f"Running migration {version} on {self.db_path}")
                    conn.executescript(
                        f"BEGIN;\n{sql}\nINSERT INTO schema_migrations (version) VALUES ({int(version)});\nCOMMIT;"
                    )
                    applied += 1
        except (sqlite3.Error, OSError) as e:
            log.critical(f"Could not migrate site database {self.db_path}: {e}", exc_info=True)
            raise IoFailure(f"Failed to initialize site database {self.db_path}: {e}") from e
        return applied

    def migration_status(self) -> List[Tuple[int, Optional[str]]]:
        """(version, applied_at) for every known migration; applied_at is None when pending."""
        with self._get_connection() as conn:
            self._ensure_migrations_table(conn)
            applied = dict(conn.execute("SELECT version, applied_at FROM schema_migrations").fetchall())
        return [(version, applied.get(version)) for version, _ in MIGRATIONS]
