"""SQLite database for stored page content, crawl sources, and scraping jobs."""

import json
import sqlite3
import threading
from typing import List, Optional, Set, Tuple

from .models import ContentRecord, Job, JobStatus, snippets_to_json, utcnow

JOB_COLUMNS = (
    "target", "status", "total_urls", "urls_processed", "urls_failed",
    "items_scraped", "items_new", "items_updated", "items_unchanged",
    "progress_percentage", "retry_count", "scheduled_at", "started_at",
    "completed_at", "error_message", "duration_seconds", "avg_time_per_url",
    "config",
)


class Database:
    def __init__(self, db_path: str = "devdocs.db"):
        self.db_path = db_path
        self._local = threading.local()
        self._init_db()

    @property
    def _conn(self) -> sqlite3.Connection:
        if not hasattr(self._local, "conn") or self._local.conn is None:
            self._local.conn = sqlite3.connect(self.db_path, timeout=30)
            self._local.conn.row_factory = sqlite3.Row
            self._local.conn.execute("PRAGMA journal_mode=WAL")
        return self._local.conn

    def close(self):
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            conn.close()
            self._local.conn = None

    def _init_db(self):
        conn = self._conn
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS content (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                url TEXT NOT NULL,
                source TEXT NOT NULL,
                doc_slug TEXT NOT NULL,
                title TEXT DEFAULT '',
                content_type TEXT DEFAULT 'documentation_page',
                content TEXT DEFAULT '',
                markdown TEXT DEFAULT '',
                code_snippets TEXT DEFAULT '[]',
                word_count INTEGER DEFAULT 0,
                character_count INTEGER DEFAULT 0,
                keywords TEXT DEFAULT '[]',
                topics TEXT DEFAULT '[]',
                content_hash TEXT NOT NULL,
                version INTEGER DEFAULT 1,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                UNIQUE(url)
            );

            CREATE INDEX IF NOT EXISTS idx_content_slug ON content(doc_slug);
            CREATE INDEX IF NOT EXISTS idx_content_hash ON content(content_hash);

            CREATE TABLE IF NOT EXISTS sources (
                name TEXT PRIMARY KEY,
                base_url TEXT DEFAULT '',
                last_scraped_at TIMESTAMP,
                last_job_id TEXT,
                state TEXT DEFAULT '{}',
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );

            CREATE TABLE IF NOT EXISTS jobs (
                id TEXT PRIMARY KEY,
                target TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'pending',
                total_urls INTEGER DEFAULT 0,
                urls_processed INTEGER DEFAULT 0,
                urls_failed INTEGER DEFAULT 0,
                items_scraped INTEGER DEFAULT 0,
                items_new INTEGER DEFAULT 0,
                items_updated INTEGER DEFAULT 0,
                items_unchanged INTEGER DEFAULT 0,
                progress_percentage REAL DEFAULT 0,
                retry_count INTEGER DEFAULT 0,
                scheduled_at TIMESTAMP,
                started_at TIMESTAMP,
                completed_at TIMESTAMP,
                error_message TEXT,
                duration_seconds REAL,
                avg_time_per_url REAL,
                config TEXT DEFAULT '{}',
                cancel_requested INTEGER DEFAULT 0,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );

            CREATE INDEX IF NOT EXISTS idx_jobs_status ON jobs(status);
            CREATE INDEX IF NOT EXISTS idx_jobs_target ON jobs(target);
        """)
        conn.commit()

    # --- content store ---

    def lookup(self, url: str) -> Optional[str]:
        """Return the last stored content hash for a URL, or None."""
        row = self._conn.execute(
            "SELECT content_hash FROM content WHERE url = ?", (url,)
        ).fetchone()
        return row["content_hash"] if row else None

    def upsert(self, record: ContentRecord, source: str, doc_slug: str) -> int:
        """Insert or replace the stored page for record.url. Returns its version."""
        params = (
            record.url, source, doc_slug, record.title, record.content,
            record.markdown, json.dumps(snippets_to_json(record.code_snippets)),
            record.word_count, record.character_count,
            json.dumps(list(record.keywords)), json.dumps(list(record.topics)),
            record.content_hash,
        )
        self._conn.execute(
            """INSERT INTO content (url, source, doc_slug, title, content, markdown,
                                    code_snippets, word_count, character_count,
                                    keywords, topics, content_hash)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
               ON CONFLICT(url) DO UPDATE SET
                   source = excluded.source,
                   doc_slug = excluded.doc_slug,
                   title = excluded.title,
                   content = excluded.content,
                   markdown = excluded.markdown,
                   code_snippets = excluded.code_snippets,
                   word_count = excluded.word_count,
                   character_count = excluded.character_count,
                   keywords = excluded.keywords,
                   topics = excluded.topics,
                   version = CASE WHEN content.content_hash = excluded.content_hash
                                  THEN content.version ELSE content.version + 1 END,
                   content_hash = excluded.content_hash,
                   updated_at = CURRENT_TIMESTAMP""",
            params,
        )
        self._conn.commit()
        row = self._conn.execute(
            "SELECT version FROM content WHERE url = ?", (record.url,)
        ).fetchone()
        return row["version"]

    def get_content(self, url: str) -> Optional[dict]:
        row = self._conn.execute("SELECT * FROM content WHERE url = ?", (url,)).fetchone()
        if not row:
            return None
        doc = dict(row)
        for key in ("code_snippets", "keywords", "topics"):
            doc[key] = json.loads(doc[key] or "[]")
        return doc

    def scraped_slugs(self) -> Set[str]:
        rows = self._conn.execute("SELECT DISTINCT doc_slug FROM content").fetchall()
        return {r["doc_slug"] for r in rows}

    def get_stats(self) -> List[Tuple]:
        rows = self._conn.execute(
            """SELECT doc_slug, COUNT(*) as pages,
                      COALESCE(SUM(word_count), 0) as words,
                      COALESCE(SUM(version - 1), 0) as revisions
               FROM content GROUP BY doc_slug ORDER BY doc_slug"""
        ).fetchall()
        return [tuple(r) for r in rows]

    # --- source bookkeeping ---

    def touch_source(self, name: str, base_url: str, job_id: str, state: dict):
        now = utcnow()
        self._conn.execute(
            """INSERT INTO sources (name, base_url, last_scraped_at, last_job_id, state, updated_at)
               VALUES (?, ?, ?, ?, ?, CURRENT_TIMESTAMP)
               ON CONFLICT(name) DO UPDATE SET base_url = ?, last_scraped_at = ?,
                   last_job_id = ?, state = ?, updated_at = CURRENT_TIMESTAMP""",
            (name, base_url, now, job_id, json.dumps(state),
             base_url, now, job_id, json.dumps(state)),
        )
        self._conn.commit()

    def get_source(self, name: str) -> Optional[dict]:
        row = self._conn.execute("SELECT * FROM sources WHERE name = ?", (name,)).fetchone()
        if not row:
            return None
        src = dict(row)
        src["state"] = json.loads(src["state"] or "{}")
        return src

    # --- job store ---

    def create_job(self, job: Job):
        fields = self._job_fields(job)
        cols = ", ".join(("id",) + tuple(fields))
        marks = ", ".join("?" for _ in range(len(fields) + 1))
        self._conn.execute(
            f"INSERT INTO jobs ({cols}) VALUES ({marks})",
            (job.id, *fields.values()),
        )
        self._conn.commit()

    def update_job(self, job_id: str, **fields):
        """Merge the given columns into a job row; other columns are left alone."""
        if not fields:
            return
        unknown = set(fields) - set(JOB_COLUMNS)
        if unknown:
            raise ValueError(f"Unknown job fields: {sorted(unknown)}")

        values = []
        for key, value in fields.items():
            if isinstance(value, JobStatus):
                value = value.value
            elif key == "config":
                value = json.dumps(value or {})
            values.append(value)

        assignments = ", ".join(f"{key} = ?" for key in fields)
        cur = self._conn.execute(
            f"UPDATE jobs SET {assignments}, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
            (*values, job_id),
        )
        self._conn.commit()
        if cur.rowcount == 0:
            raise KeyError(f"Job not found: {job_id}")

    def get_job(self, job_id: str) -> Optional[Job]:
        row = self._conn.execute("SELECT * FROM jobs WHERE id = ?", (job_id,)).fetchone()
        return self._row_to_job(row) if row else None

    def list_jobs(self, limit: int = 50, status: Optional[str] = None) -> List[Job]:
        if status:
            rows = self._conn.execute(
                "SELECT * FROM jobs WHERE status = ? ORDER BY scheduled_at DESC LIMIT ?",
                (status, limit),
            ).fetchall()
        else:
            rows = self._conn.execute(
                "SELECT * FROM jobs ORDER BY scheduled_at DESC LIMIT ?", (limit,)
            ).fetchall()
        return [self._row_to_job(r) for r in rows]

    def request_cancel(self, job_id: str) -> bool:
        cur = self._conn.execute(
            "UPDATE jobs SET cancel_requested = 1, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
            (job_id,),
        )
        self._conn.commit()
        return cur.rowcount > 0

    def is_cancel_requested(self, job_id: str) -> bool:
        row = self._conn.execute(
            "SELECT cancel_requested FROM jobs WHERE id = ?", (job_id,)
        ).fetchone()
        return bool(row and row["cancel_requested"])

    def get_job_stats(self) -> List[Tuple]:
        rows = self._conn.execute(
            """SELECT status, COUNT(*) as cnt,
                      COALESCE(SUM(urls_processed), 0) as processed,
                      COALESCE(SUM(urls_failed), 0) as failed
               FROM jobs GROUP BY status ORDER BY status"""
        ).fetchall()
        return [tuple(r) for r in rows]

    @staticmethod
    def _job_fields(job: Job) -> dict:
        data = job.to_dict()
        data.pop("id")
        data["config"] = json.dumps(data["config"] or {})
        return {key: data[key] for key in JOB_COLUMNS}

    @staticmethod
    def _row_to_job(row: sqlite3.Row) -> Job:
        return Job(
            id=row["id"],
            target=row["target"],
            status=JobStatus(row["status"]),
            total_urls=row["total_urls"],
            urls_processed=row["urls_processed"],
            urls_failed=row["urls_failed"],
            items_new=row["items_new"],
            items_updated=row["items_updated"],
            items_unchanged=row["items_unchanged"],
            progress_percentage=row["progress_percentage"],
            retry_count=row["retry_count"],
            scheduled_at=row["scheduled_at"],
            started_at=row["started_at"],
            completed_at=row["completed_at"],
            error_message=row["error_message"],
            duration_seconds=row["duration_seconds"],
            avg_time_per_url=row["avg_time_per_url"],
            config=json.loads(row["config"] or "{}"),
        )
