"""
Database - SQLite storage for synced messages, links, leads and sync progress

Every call opens its own connection, so message pipelines running on
different threads never share one. Writes that must be atomic go through
transaction(), which takes SQLite's write lock up front (BEGIN IMMEDIATE).
"""

import json
import logging
import os
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from leadsync.models import (
    CanonicalMessage,
    ExtractedLink,
    ExtractionJob,
    LeadCandidate,
    LeadStatus,
    SyncWatermark,
    compare_progress_tokens,
)

logger = logging.getLogger(__name__)

DB_PATH = Path(os.environ.get("LEADSYNC_DB_PATH") or Path(__file__).parent.parent / "leads.db")

TABLES = (
    "sync_state",
    "email_messages",
    "email_links",
    "extraction_jobs",
    "job_leads",
    "user_settings",
)


def set_db_path(path) -> None:
    """Point the module at a different database file (config or tests)."""
    global DB_PATH
    DB_PATH = Path(path)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_id() -> str:
    return str(uuid.uuid4())


def get_db() -> sqlite3.Connection:
    """
    Create and return a database connection with Row factory.

    The 30-second timeout lets concurrent writers wait for the lock
    instead of failing immediately.
    """
    conn = sqlite3.connect(DB_PATH, timeout=30.0)
    conn.row_factory = sqlite3.Row
    return conn


@contextmanager
def transaction() -> Iterator[sqlite3.Connection]:
    """
    Serialized write transaction.

    Usage:
        with transaction() as conn:
            conn.execute(...)
    """
    conn = get_db()
    conn.isolation_level = None
    try:
        conn.execute("BEGIN IMMEDIATE")
        yield conn
        conn.execute("COMMIT")
    except Exception:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        raise
    finally:
        conn.close()


def init_db() -> None:
    """
    Initialize SQLite database with required tables.

    Creates tables for:
    - sync_state: per-user incremental sync watermark
    - email_messages: canonical messages, unique per (user, provider, message id)
    - email_links: classified links, unique per (message, normalized url)
    - extraction_jobs: audit trail of extraction attempts
    - job_leads: deduplicated leads, unique per (user, normalized url)
    - user_settings: custom extraction instructions and watched labels

    Uses WAL (Write-Ahead Logging) mode for better concurrency.
    """
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(DB_PATH, timeout=30.0)
    conn.execute("PRAGMA journal_mode=WAL")

    conn.execute("""
        CREATE TABLE IF NOT EXISTS sync_state (
            user_id TEXT PRIMARY KEY,
            last_progress_token TEXT NOT NULL,
            last_run_at TEXT
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS email_messages (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            provider TEXT NOT NULL,
            provider_message_id TEXT NOT NULL,
            provider_thread_id TEXT,
            from_email TEXT,
            from_name TEXT,
            to_emails TEXT,
            cc_emails TEXT,
            bcc_emails TEXT,
            subject TEXT,
            snippet TEXT,
            sent_at TEXT,
            body_text TEXT,
            body_html_clean TEXT,
            labels TEXT,
            history_id TEXT,
            message_hash TEXT,
            job_signal_score REAL DEFAULT 0,
            parse_status TEXT DEFAULT 'unparsed',
            parse_error TEXT,
            created_at TEXT,
            updated_at TEXT,
            UNIQUE (user_id, provider, provider_message_id)
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS email_links (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            email_id TEXT NOT NULL REFERENCES email_messages(id),
            url TEXT NOT NULL,
            normalized_url TEXT NOT NULL,
            domain TEXT,
            type TEXT NOT NULL,
            anchor_text TEXT,
            created_at TEXT,
            UNIQUE (email_id, normalized_url)
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS extraction_jobs (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            email_id TEXT NOT NULL REFERENCES email_messages(id),
            status TEXT NOT NULL,
            model TEXT,
            prompt_version TEXT,
            instructions_snapshot TEXT,
            output TEXT,
            tokens_prompt INTEGER DEFAULT 0,
            tokens_completion INTEGER DEFAULT 0,
            error TEXT,
            created_at TEXT
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS job_leads (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            email_id TEXT REFERENCES email_messages(id),
            extraction_job_id TEXT REFERENCES extraction_jobs(id),
            status TEXT NOT NULL DEFAULT 'new',
            url TEXT NOT NULL,
            normalized_url TEXT NOT NULL,
            type TEXT,
            title TEXT,
            company TEXT,
            location TEXT,
            canonical_job_key TEXT,
            anchor_text TEXT,
            source_label_id TEXT,
            confidence REAL,
            created_at TEXT,
            updated_at TEXT,
            UNIQUE (user_id, normalized_url)
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS user_settings (
            user_id TEXT PRIMARY KEY,
            custom_instructions TEXT,
            watched_label_ids TEXT,
            updated_at TEXT
        )
    """)

    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_job_leads_key ON job_leads(user_id, canonical_job_key)"
    )
    conn.execute("CREATE INDEX IF NOT EXISTS idx_email_links_email ON email_links(email_id)")
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_extraction_jobs_email ON extraction_jobs(email_id)"
    )

    conn.commit()
    conn.close()
    logger.debug(f"Database initialized at {DB_PATH}")


def get_table_names() -> List[str]:
    conn = get_db()
    try:
        rows = conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
        return [row["name"] for row in rows]
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# Sync watermark
# ---------------------------------------------------------------------------


def get_sync_watermark(user_id: str) -> Optional[SyncWatermark]:
    conn = get_db()
    try:
        row = conn.execute(
            "SELECT user_id, last_progress_token, last_run_at FROM sync_state WHERE user_id = ?",
            (user_id,),
        ).fetchone()
    finally:
        conn.close()
    if not row:
        return None
    return SyncWatermark(
        user_id=row["user_id"],
        last_progress_token=row["last_progress_token"],
        last_run_at=row["last_run_at"],
    )


def save_sync_watermark(user_id: str, token: str) -> SyncWatermark:
    """
    Store a new progress token for a user.

    A token older than the stored one is ignored, so the stored
    watermark never moves backwards.

    Returns:
        The watermark now stored
    """
    now = _now()
    with transaction() as conn:
        row = conn.execute(
            "SELECT last_progress_token FROM sync_state WHERE user_id = ?", (user_id,)
        ).fetchone()

        if row and compare_progress_tokens(token, row["last_progress_token"]) < 0:
            logger.warning(
                f"Refusing to move watermark for {user_id} back from "
                f"{row['last_progress_token']} to {token}"
            )
            token = row["last_progress_token"]

        conn.execute(
            """
            INSERT INTO sync_state (user_id, last_progress_token, last_run_at)
            VALUES (?, ?, ?)
            ON CONFLICT(user_id) DO UPDATE SET
                last_progress_token = excluded.last_progress_token,
                last_run_at = excluded.last_run_at
            """,
            (user_id, token, now),
        )
    return SyncWatermark(user_id=user_id, last_progress_token=token, last_run_at=now)


# ---------------------------------------------------------------------------
# Messages and links
# ---------------------------------------------------------------------------


def _participants_json(participants) -> str:
    return json.dumps([p.to_dict() for p in participants])


def upsert_email_message(message: CanonicalMessage) -> Tuple[str, bool]:
    """
    Insert or update a message by (user_id, provider, provider_message_id).

    Returns:
        (row id, True if a new row was inserted)
    """
    now = _now()
    values = {
        "provider_thread_id": message.thread_id,
        "from_email": message.sender.email,
        "from_name": message.sender.name,
        "to_emails": _participants_json(message.to),
        "cc_emails": _participants_json(message.cc),
        "bcc_emails": _participants_json(message.bcc),
        "subject": message.subject,
        "snippet": message.snippet,
        "sent_at": message.sent_at.isoformat() if message.sent_at else None,
        "body_text": message.body_text,
        "body_html_clean": message.body_html,
        "labels": json.dumps(message.labels),
        "history_id": message.history_id,
        "message_hash": message.content_hash,
        "job_signal_score": message.job_signal_score,
        "parse_status": message.parse_status.value,
        "parse_error": message.parse_error,
    }

    with transaction() as conn:
        row = conn.execute(
            """
            SELECT id FROM email_messages
            WHERE user_id = ? AND provider = ? AND provider_message_id = ?
            """,
            (message.user_id, message.provider, message.provider_message_id),
        ).fetchone()

        if row:
            assignments = ", ".join(f"{column} = ?" for column in values)
            conn.execute(
                f"UPDATE email_messages SET {assignments}, updated_at = ? WHERE id = ?",
                (*values.values(), now, row["id"]),
            )
            return row["id"], False

        message_id = _new_id()
        columns = ["id", "user_id", "provider", "provider_message_id", *values, "created_at", "updated_at"]
        conn.execute(
            f"INSERT INTO email_messages ({', '.join(columns)}) "
            f"VALUES ({', '.join('?' for _ in columns)})",
            (
                message_id,
                message.user_id,
                message.provider,
                message.provider_message_id,
                *values.values(),
                now,
                now,
            ),
        )
        return message_id, True


def get_email_message(email_id: str) -> Optional[Dict[str, Any]]:
    conn = get_db()
    try:
        row = conn.execute("SELECT * FROM email_messages WHERE id = ?", (email_id,)).fetchone()
        return dict(row) if row else None
    finally:
        conn.close()


def save_email_links(email_id: str, links: List[ExtractedLink]) -> int:
    """Store a message's links, skipping ones already recorded. Returns rows added."""
    if not links:
        return 0
    now = _now()
    added = 0
    with transaction() as conn:
        for link in links:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO email_links
                    (email_id, url, normalized_url, domain, type, anchor_text, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    email_id,
                    link.url,
                    link.normalized_url,
                    link.domain,
                    link.type.value,
                    link.anchor_text,
                    now,
                ),
            )
            added += cursor.rowcount
    return added


def list_email_links(email_id: str) -> List[Dict[str, Any]]:
    conn = get_db()
    try:
        rows = conn.execute(
            "SELECT * FROM email_links WHERE email_id = ? ORDER BY id", (email_id,)
        ).fetchall()
        return [dict(row) for row in rows]
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# Extraction audit
# ---------------------------------------------------------------------------


def record_extraction_job(job: ExtractionJob) -> str:
    """Persist an immutable ExtractionJob row and return its id."""
    conn = get_db()
    try:
        conn.execute(
            """
            INSERT INTO extraction_jobs
                (id, user_id, email_id, status, model, prompt_version, instructions_snapshot,
                 output, tokens_prompt, tokens_completion, error, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                job.id,
                job.user_id,
                job.email_id,
                job.status.value,
                job.model,
                job.prompt_version,
                job.instructions_snapshot,
                json.dumps(job.output),
                job.tokens_prompt,
                job.tokens_completion,
                job.error,
                job.created_at or _now(),
            ),
        )
        conn.commit()
    finally:
        conn.close()
    return job.id


def list_extraction_jobs(user_id: str, email_id: Optional[str] = None) -> List[Dict[str, Any]]:
    query = "SELECT * FROM extraction_jobs WHERE user_id = ?"
    params: List[Any] = [user_id]
    if email_id:
        query += " AND email_id = ?"
        params.append(email_id)
    conn = get_db()
    try:
        rows = conn.execute(query + " ORDER BY created_at", params).fetchall()
    finally:
        conn.close()

    jobs = []
    for row in rows:
        job = dict(row)
        job["output"] = json.loads(job["output"]) if job["output"] else []
        jobs.append(job)
    return jobs


# ---------------------------------------------------------------------------
# Job leads
# ---------------------------------------------------------------------------


def find_lead_by_url(conn: sqlite3.Connection, user_id: str, normalized_url: str) -> Optional[sqlite3.Row]:
    return conn.execute(
        "SELECT id, status FROM job_leads WHERE user_id = ? AND normalized_url = ?",
        (user_id, normalized_url),
    ).fetchone()


def find_lead_by_canonical_key(
    conn: sqlite3.Connection, user_id: str, canonical_job_key: str
) -> Optional[sqlite3.Row]:
    """First non-duplicate lead sharing a canonical job key."""
    return conn.execute(
        """
        SELECT id, status FROM job_leads
        WHERE user_id = ? AND canonical_job_key = ? AND status != ?
        ORDER BY created_at LIMIT 1
        """,
        (user_id, canonical_job_key, LeadStatus.DUPLICATE.value),
    ).fetchone()


def insert_job_lead(
    conn: sqlite3.Connection,
    user_id: str,
    candidate: LeadCandidate,
    status: LeadStatus,
    email_id: Optional[str] = None,
    extraction_job_id: Optional[str] = None,
    source_label_id: Optional[str] = None,
) -> str:
    """
    Insert a lead row on an open connection.

    Raises:
        sqlite3.IntegrityError: a lead with the same normalized URL exists
    """
    lead_id = _new_id()
    now = _now()
    conn.execute(
        """
        INSERT INTO job_leads
            (id, user_id, email_id, extraction_job_id, status, url, normalized_url, type,
             title, company, location, canonical_job_key, anchor_text, source_label_id,
             confidence, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            lead_id,
            user_id,
            email_id,
            extraction_job_id,
            status.value,
            candidate.url,
            candidate.normalized_url,
            candidate.type.value,
            candidate.title,
            candidate.company,
            candidate.location,
            candidate.dedupe_key,
            candidate.anchor_text,
            source_label_id,
            candidate.confidence,
            now,
            now,
        ),
    )
    return lead_id


def list_job_leads(user_id: str, status: Optional[str] = None) -> List[Dict[str, Any]]:
    query = "SELECT * FROM job_leads WHERE user_id = ?"
    params: List[Any] = [user_id]
    if status:
        query += " AND status = ?"
        params.append(status)
    conn = get_db()
    try:
        rows = conn.execute(query + " ORDER BY created_at", params).fetchall()
        return [dict(row) for row in rows]
    finally:
        conn.close()


def update_lead_status(lead_id: str, status: LeadStatus) -> bool:
    """Set a lead's review status. Returns False if the lead does not exist."""
    conn = get_db()
    try:
        cursor = conn.execute(
            "UPDATE job_leads SET status = ?, updated_at = ? WHERE id = ?",
            (LeadStatus(status).value, _now(), lead_id),
        )
        conn.commit()
        return cursor.rowcount > 0
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# User settings
# ---------------------------------------------------------------------------


def get_user_settings(user_id: str) -> Dict[str, Any]:
    """Settings for a user; defaults when none were saved."""
    conn = get_db()
    try:
        row = conn.execute(
            "SELECT custom_instructions, watched_label_ids FROM user_settings WHERE user_id = ?",
            (user_id,),
        ).fetchone()
    finally:
        conn.close()

    if not row:
        return {"user_id": user_id, "custom_instructions": None, "watched_label_ids": []}
    return {
        "user_id": user_id,
        "custom_instructions": row["custom_instructions"],
        "watched_label_ids": json.loads(row["watched_label_ids"] or "[]"),
    }


def save_user_settings(
    user_id: str,
    custom_instructions: Optional[str] = None,
    watched_label_ids: Optional[List[str]] = None,
) -> None:
    conn = get_db()
    try:
        conn.execute(
            """
            INSERT INTO user_settings (user_id, custom_instructions, watched_label_ids, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(user_id) DO UPDATE SET
                custom_instructions = excluded.custom_instructions,
                watched_label_ids = excluded.watched_label_ids,
                updated_at = excluded.updated_at
            """,
            (user_id, custom_instructions, json.dumps(watched_label_ids or []), _now()),
        )
        conn.commit()
    finally:
        conn.close()


def list_users_with_watched_labels() -> List[str]:
    conn = get_db()
    try:
        rows = conn.execute(
            "SELECT user_id, watched_label_ids FROM user_settings ORDER BY user_id"
        ).fetchall()
    finally:
        conn.close()
    return [row["user_id"] for row in rows if json.loads(row["watched_label_ids"] or "[]")]
