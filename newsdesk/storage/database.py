import json
import sqlite3
from datetime import datetime, timedelta
from pathlib import Path
from typing import Iterable, Optional

from newsdesk.models import SOURCE_KINDS, ContentItem, PipelineStatus, Source, utcnow
from newsdesk.processing.deduplicator import (
    SimilarityUnavailable,
    normalize_url,
    title_similarity,
)


SCHEMA = """
CREATE TABLE IF NOT EXISTS sources (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    url TEXT NOT NULL,
    kind TEXT NOT NULL DEFAULT 'rss',
    channel_id TEXT,
    style TEXT NOT NULL DEFAULT '',
    is_active INTEGER NOT NULL DEFAULT 1,
    last_fetched_at TEXT,
    test_status TEXT,
    created_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS categories (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE
);
CREATE TABLE IF NOT EXISTS content_items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    source_id INTEGER REFERENCES sources(id),
    original_url TEXT NOT NULL,
    title TEXT NOT NULL,
    body TEXT,
    content_kind TEXT NOT NULL DEFAULT 'article',
    video_id TEXT,
    image_url TEXT,
    published TEXT,
    summary TEXT DEFAULT '',
    commentary TEXT DEFAULT '',
    category_id INTEGER REFERENCES categories(id),
    tags TEXT DEFAULT '[]',
    location TEXT,
    is_published INTEGER NOT NULL DEFAULT 0,
    batch_id TEXT,
    batch_completed_at TEXT,
    published_at TEXT,
    is_pinned INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_items_created ON content_items(created_at);
CREATE INDEX IF NOT EXISTS idx_items_published ON content_items(is_published);
CREATE INDEX IF NOT EXISTS idx_items_url ON content_items(original_url);
CREATE INDEX IF NOT EXISTS idx_items_video ON content_items(video_id);
CREATE TABLE IF NOT EXISTS ai_config (
    config_key TEXT PRIMARY KEY,
    config_value TEXT NOT NULL,
    description TEXT DEFAULT '',
    updated_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS system_settings (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""

# Columns added after the first release; migrated in place on open
_MIGRATIONS = (
    "ALTER TABLE content_items ADD COLUMN enrich_attempts INTEGER NOT NULL DEFAULT 0",
    "ALTER TABLE content_items ADD COLUMN last_error TEXT",
    "ALTER TABLE content_items ADD COLUMN deep_background TEXT",
    "ALTER TABLE content_items ADD COLUMN deep_prediction TEXT",
)

DEFAULT_CATEGORIES = (
    "Local", "Trending", "Politics", "Technology",
    "Finance", "Entertainment", "Sports", "In-Depth",
)

STATUS_KEY = "fetch_status"

_UPDATABLE_COLUMNS = {
    "title", "body", "summary", "commentary", "category_id", "tags", "location",
    "is_published", "batch_id", "batch_completed_at", "published_at", "is_pinned",
    "image_url", "enrich_attempts", "last_error", "deep_background", "deep_prediction",
}


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


class Database:
    def __init__(self, db_path: str):
        self.db_path = db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(db_path)
        self.conn.row_factory = sqlite3.Row
        self._init_schema()

    def _init_schema(self):
        self.conn.executescript(SCHEMA)
        for statement in _MIGRATIONS:
            try:
                self.conn.execute(statement)
                self.conn.commit()
            except sqlite3.OperationalError:
                pass  # Column already exists
        self.conn.executemany(
            "INSERT OR IGNORE INTO categories (name) VALUES (?)",
            [(name,) for name in DEFAULT_CATEGORIES],
        )
        self.conn.commit()

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    def insert_source(self, source: Source) -> int:
        if source.kind not in SOURCE_KINDS:
            raise ValueError(f"Unknown source kind: {source.kind}")
        cursor = self.conn.execute(
            """INSERT INTO sources
               (name, url, kind, channel_id, style, is_active, last_fetched_at, test_status, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                source.name,
                source.url,
                source.kind,
                source.channel_id,
                source.style,
                int(source.is_active),
                _iso(source.last_fetched_at),
                source.test_status,
                utcnow().isoformat(),
            ),
        )
        self.conn.commit()
        source.id = cursor.lastrowid
        return cursor.lastrowid

    def get_source(self, source_id: int) -> Optional[Source]:
        row = self.conn.execute("SELECT * FROM sources WHERE id = ?", (source_id,)).fetchone()
        return self._row_to_source(row) if row else None

    def find_source(self, ref: str) -> Optional[Source]:
        """Look a source up by numeric id or by exact name."""
        if str(ref).isdigit():
            source = self.get_source(int(ref))
            if source:
                return source
        row = self.conn.execute(
            "SELECT * FROM sources WHERE name = ? ORDER BY id LIMIT 1", (str(ref),)
        ).fetchone()
        return self._row_to_source(row) if row else None

    def get_active_sources(self) -> list[Source]:
        rows = self.conn.execute(
            "SELECT * FROM sources WHERE is_active = 1 ORDER BY id"
        ).fetchall()
        return [self._row_to_source(r) for r in rows]

    def update_source_last_fetched(self, source_id: int):
        self.conn.execute(
            "UPDATE sources SET last_fetched_at = ? WHERE id = ?",
            (utcnow().isoformat(), source_id),
        )
        self.conn.commit()

    # ------------------------------------------------------------------
    # Content items
    # ------------------------------------------------------------------

    def insert_draft(self, item: ContentItem) -> int:
        cursor = self.conn.execute(
            """INSERT INTO content_items
               (source_id, original_url, title, body, content_kind, video_id, image_url,
                published, tags, is_published, batch_id, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 0, ?, ?)""",
            (
                item.source_id,
                item.url,
                item.title,
                item.body,
                item.content_kind,
                item.video_id,
                item.image_url,
                _iso(item.published),
                json.dumps(list(item.tags), ensure_ascii=False),
                item.batch_id,
                item.created_at.isoformat(),
            ),
        )
        self.conn.commit()
        item.id = cursor.lastrowid
        return cursor.lastrowid

    def get_item(self, item_id: int) -> Optional[ContentItem]:
        row = self.conn.execute(
            "SELECT * FROM content_items WHERE id = ?", (item_id,)
        ).fetchone()
        return self._row_to_item(row) if row else None

    def update_item(self, item_id: int, **fields) -> None:
        """Update the given columns of one content item in a single statement."""
        unknown = set(fields) - _UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Cannot update columns: {sorted(unknown)}")
        if not fields:
            return

        values = []
        for column, value in fields.items():
            if column == "tags":
                value = json.dumps(list(value or []), ensure_ascii=False)
            elif isinstance(value, bool):
                value = int(value)
            elif isinstance(value, datetime):
                value = value.isoformat()
            values.append(value)

        assignments = ", ".join(f"{column} = ?" for column in fields)
        self.conn.execute(
            f"UPDATE content_items SET {assignments} WHERE id = ?",
            (*values, item_id),
        )
        self.conn.commit()

    def delete_item(self, item_id: int) -> None:
        self.conn.execute("DELETE FROM content_items WHERE id = ?", (item_id,))
        self.conn.commit()

    def record_enrich_failure(self, item_id: int, error: str) -> int:
        """Bump the attempt counter of a draft that failed enrichment. Returns the new count."""
        self.conn.execute(
            """UPDATE content_items
               SET enrich_attempts = enrich_attempts + 1, last_error = ?
               WHERE id = ?""",
            (error[:1000], item_id),
        )
        self.conn.commit()
        row = self.conn.execute(
            "SELECT enrich_attempts FROM content_items WHERE id = ?", (item_id,)
        ).fetchone()
        return row["enrich_attempts"] if row else 0

    def find_similar(
        self, title: str, url: str, window_hours: int = 48, threshold: float = 0.8
    ) -> list[dict]:
        """Items created within the window whose title is similar or whose URL matches.

        Raises SimilarityUnavailable if the lookup itself cannot run.
        """
        cutoff = (utcnow() - timedelta(hours=window_hours)).isoformat()
        try:
            rows = self.conn.execute(
                "SELECT id, title, original_url FROM content_items WHERE created_at >= ?",
                (cutoff,),
            ).fetchall()
        except sqlite3.Error as e:
            raise SimilarityUnavailable(str(e)) from e

        norm_url = normalize_url(url) if url else ""
        matches = []
        for row in rows:
            score = title_similarity(title, row["title"])
            same_url = bool(norm_url) and normalize_url(row["original_url"]) == norm_url
            if score >= threshold or same_url:
                matches.append({
                    "id": row["id"],
                    "title": row["title"],
                    "url": row["original_url"],
                    "similarity": score,
                })
        return matches

    def find_exact(self, url: str, video_id: Optional[str] = None) -> Optional[int]:
        """Exact-match lookup: video id first when present, then original URL."""
        if video_id:
            row = self.conn.execute(
                "SELECT id FROM content_items WHERE video_id = ? LIMIT 1", (video_id,)
            ).fetchone()
            if row:
                return row["id"]
        row = self.conn.execute(
            "SELECT id FROM content_items WHERE original_url = ? LIMIT 1", (url,)
        ).fetchone()
        return row["id"] if row else None

    def list_unpublished(self, limit: int = 200, oldest_first: bool = True) -> list[ContentItem]:
        direction = "ASC" if oldest_first else "DESC"
        rows = self.conn.execute(
            f"""SELECT * FROM content_items WHERE is_published = 0
                ORDER BY created_at {direction}, id {direction} LIMIT ?""",
            (limit,),
        ).fetchall()
        return [self._row_to_item(r) for r in rows]

    def list_uncategorized(self, limit: int = 50) -> list[ContentItem]:
        rows = self.conn.execute(
            """SELECT * FROM content_items WHERE category_id IS NULL
               ORDER BY created_at DESC, id DESC LIMIT ?""",
            (limit,),
        ).fetchall()
        return [self._row_to_item(r) for r in rows]

    def list_deep_dive_candidates(self, category_id: int, limit: int = 20) -> list[ContentItem]:
        rows = self.conn.execute(
            """SELECT * FROM content_items
               WHERE category_id = ? AND is_published = 1 AND deep_background IS NULL
               ORDER BY created_at DESC, id DESC LIMIT ?""",
            (category_id, limit),
        ).fetchall()
        return [self._row_to_item(r) for r in rows]

    def delete_items_older_than(self, hours: int) -> int:
        cutoff = (utcnow() - timedelta(hours=hours)).isoformat()
        cursor = self.conn.execute(
            "DELETE FROM content_items WHERE created_at < ? AND is_pinned = 0", (cutoff,)
        )
        self.conn.commit()
        return cursor.rowcount

    def count_items(self, published: Optional[bool] = None) -> int:
        sql = "SELECT COUNT(*) AS cnt FROM content_items"
        params: list = []
        if published is not None:
            sql += " WHERE is_published = ?"
            params.append(int(published))
        return self.conn.execute(sql, params).fetchone()["cnt"]

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    def get_categories(self) -> dict[str, int]:
        """Category name -> id."""
        rows = self.conn.execute("SELECT id, name FROM categories").fetchall()
        return {r["name"]: r["id"] for r in rows}

    def get_category_name(self, category_id: Optional[int]) -> Optional[str]:
        if category_id is None:
            return None
        row = self.conn.execute(
            "SELECT name FROM categories WHERE id = ?", (category_id,)
        ).fetchone()
        return row["name"] if row else None

    # ------------------------------------------------------------------
    # AI config and system settings
    # ------------------------------------------------------------------

    def get_config(self, keys: Optional[Iterable[str]] = None) -> dict[str, str]:
        sql = "SELECT config_key, config_value FROM ai_config"
        params: list = []
        if keys is not None:
            keys = list(keys)
            if not keys:
                return {}
            placeholders = ",".join("?" for _ in keys)
            sql += f" WHERE config_key IN ({placeholders})"
            params.extend(keys)
        rows = self.conn.execute(sql, params).fetchall()
        return {r["config_key"]: r["config_value"] for r in rows}

    def set_config(self, key: str, value: str, description: str = ""):
        self.conn.execute(
            """INSERT INTO ai_config (config_key, config_value, description, updated_at)
               VALUES (?, ?, ?, ?)
               ON CONFLICT(config_key) DO UPDATE SET
                   config_value = excluded.config_value,
                   updated_at = excluded.updated_at""",
            (key, value, description, utcnow().isoformat()),
        )
        self.conn.commit()

    def upsert_status(self, status: PipelineStatus):
        self.conn.execute(
            """INSERT INTO system_settings (key, value, updated_at) VALUES (?, ?, ?)
               ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at""",
            (STATUS_KEY, json.dumps(status.to_dict(), ensure_ascii=False), utcnow().isoformat()),
        )
        self.conn.commit()

    def get_status(self) -> PipelineStatus:
        row = self.conn.execute(
            "SELECT value FROM system_settings WHERE key = ?", (STATUS_KEY,)
        ).fetchone()
        if not row:
            return PipelineStatus()
        return PipelineStatus.from_dict(json.loads(row["value"]))

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------

    def _row_to_source(self, row: sqlite3.Row) -> Source:
        return Source(
            id=row["id"],
            name=row["name"],
            url=row["url"],
            kind=row["kind"],
            channel_id=row["channel_id"],
            style=row["style"] or "",
            is_active=bool(row["is_active"]),
            last_fetched_at=_parse_dt(row["last_fetched_at"]),
            test_status=row["test_status"],
        )

    def _row_to_item(self, row: sqlite3.Row) -> ContentItem:
        try:
            tags = json.loads(row["tags"] or "[]")
        except json.JSONDecodeError:
            tags = []
        return ContentItem(
            id=row["id"],
            source_id=row["source_id"],
            url=row["original_url"],
            title=row["title"],
            body=row["body"] or "",
            content_kind=row["content_kind"],
            video_id=row["video_id"],
            image_url=row["image_url"],
            published=_parse_dt(row["published"]),
            summary=row["summary"] or "",
            commentary=row["commentary"] or "",
            category_id=row["category_id"],
            tags=tags,
            location=row["location"],
            is_published=bool(row["is_published"]),
            batch_id=row["batch_id"],
            batch_completed_at=_parse_dt(row["batch_completed_at"]),
            published_at=_parse_dt(row["published_at"]),
            is_pinned=bool(row["is_pinned"]),
            enrich_attempts=row["enrich_attempts"] or 0,
            last_error=row["last_error"],
            deep_background=row["deep_background"],
            deep_prediction=row["deep_prediction"],
            created_at=_parse_dt(row["created_at"]),
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self):
        self.conn.close()
