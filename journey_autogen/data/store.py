"""Local data store — SQLite at ~/.journey-autogen/data.db."""

from __future__ import annotations

import json
import os
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from journey_autogen.core.blocked import BlockedStepRecord
from journey_autogen.core.models import LessonLearned

_DEFAULT_DB_PATH = os.path.join(
    str(Path.home()), ".journey-autogen", "data.db"
)

DEFAULT_MODEL = "claude-sonnet-4-20250514"

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS config (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS refinement_state (
    test_key TEXT PRIMARY KEY,
    payload TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS lessons (
    id TEXT PRIMARY KEY,
    type TEXT NOT NULL,
    journey_id TEXT,
    error_category TEXT,
    confidence REAL,
    verified INTEGER DEFAULT 1,
    payload TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS learned_patterns (
    id TEXT PRIMARY KEY,
    original_text TEXT NOT NULL,
    normalized_text TEXT NOT NULL UNIQUE,
    primitive TEXT NOT NULL,
    confidence REAL NOT NULL,
    source_journeys TEXT NOT NULL,
    success_count INTEGER DEFAULT 0,
    fail_count INTEGER DEFAULT 0,
    last_used TEXT,
    created_at TEXT NOT NULL,
    promoted INTEGER DEFAULT 0,
    promoted_at TEXT
);

CREATE TABLE IF NOT EXISTS blocked_steps (
    id TEXT PRIMARY KEY,
    journey_id TEXT,
    step_text TEXT NOT NULL,
    normalized_text TEXT NOT NULL,
    category TEXT,
    reason TEXT,
    nearest_pattern TEXT,
    nearest_distance INTEGER,
    suggested_fix TEXT,
    timestamp TEXT NOT NULL
);

INSERT OR IGNORE INTO config (key, value) VALUES ('telemetry', 'true');
INSERT OR IGNORE INTO config (key, value) VALUES ('model', 'claude-sonnet-4-20250514');
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class DataStore:
    """Local SQLite data store."""

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path or _DEFAULT_DB_PATH
        os.makedirs(os.path.dirname(self.db_path), exist_ok=True)
        self._conn: Optional[sqlite3.Connection] = None
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(self.db_path)
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def _init_db(self) -> None:
        conn = self._get_conn()
        conn.executescript(_SCHEMA)
        conn.commit()

    def close(self) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None

    # ── Config ───────────────────────────────────────────────────────

    def get_config(self, key: str) -> Optional[str]:
        conn = self._get_conn()
        row = conn.execute(
            "SELECT value FROM config WHERE key = ?", (key,)
        ).fetchone()
        return row["value"] if row else None

    def set_config(self, key: str, value: str) -> None:
        conn = self._get_conn()
        conn.execute(
            "INSERT OR REPLACE INTO config (key, value) VALUES (?, ?)",
            (key, value),
        )
        conn.commit()

    def telemetry_enabled(self) -> bool:
        return (self.get_config("telemetry") or "true").lower() in ("true", "on")

    # ── Refinement state ─────────────────────────────────────────────

    def get_state_payload(self, test_key: str) -> Optional[str]:
        conn = self._get_conn()
        row = conn.execute(
            "SELECT payload FROM refinement_state WHERE test_key = ?", (test_key,)
        ).fetchone()
        return row["payload"] if row else None

    def save_state_payload(self, test_key: str, payload: str) -> None:
        conn = self._get_conn()
        conn.execute(
            """INSERT OR REPLACE INTO refinement_state (test_key, payload, updated_at)
               VALUES (?, ?, ?)""",
            (test_key, payload, _now()),
        )
        conn.commit()

    def delete_state(self, test_key: str) -> bool:
        conn = self._get_conn()
        cur = conn.execute(
            "DELETE FROM refinement_state WHERE test_key = ?", (test_key,)
        )
        conn.commit()
        return cur.rowcount > 0

    def list_states(self) -> list[dict]:
        conn = self._get_conn()
        rows = conn.execute(
            "SELECT test_key, updated_at FROM refinement_state ORDER BY updated_at DESC"
        ).fetchall()
        return [dict(r) for r in rows]

    # ── Lessons ──────────────────────────────────────────────────────

    def save_lessons(self, lessons: list[LessonLearned]) -> None:
        conn = self._get_conn()
        for lesson in lessons:
            conn.execute(
                """INSERT OR REPLACE INTO lessons
                   (id, type, journey_id, error_category, confidence, verified,
                    payload, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    lesson.id,
                    lesson.type.value,
                    lesson.journey_id,
                    lesson.error_category,
                    lesson.confidence,
                    1 if lesson.verified else 0,
                    json.dumps(lesson.to_dict()),
                    lesson.created_at.isoformat(),
                ),
            )
        conn.commit()

    def get_lessons(
        self,
        lesson_type: Optional[str] = None,
        journey_id: Optional[str] = None,
        error_category: Optional[str] = None,
        min_confidence: Optional[float] = None,
    ) -> list[LessonLearned]:
        clauses, params = [], []
        for column, value in (
            ("type", lesson_type),
            ("journey_id", journey_id),
            ("error_category", error_category),
        ):
            if value is not None:
                clauses.append(f"{column} = ?")
                params.append(value)
        if min_confidence is not None:
            clauses.append("confidence >= ?")
            params.append(min_confidence)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        conn = self._get_conn()
        rows = conn.execute(
            f"SELECT payload FROM lessons {where} ORDER BY confidence DESC, created_at",
            params,
        ).fetchall()
        return [LessonLearned.from_dict(json.loads(r["payload"])) for r in rows]

    def count_lessons_by_type(self) -> dict[str, int]:
        conn = self._get_conn()
        rows = conn.execute(
            "SELECT type, COUNT(*) AS n FROM lessons GROUP BY type"
        ).fetchall()
        return {r["type"]: r["n"] for r in rows}

    # ── Learned patterns ─────────────────────────────────────────────

    @staticmethod
    def _pattern_row(row: sqlite3.Row) -> dict:
        d = dict(row)
        d["primitive"] = json.loads(d["primitive"])
        d["source_journeys"] = json.loads(d["source_journeys"])
        d["promoted"] = bool(d["promoted"])
        return d

    def get_learned_pattern(self, normalized_text: str) -> Optional[dict]:
        conn = self._get_conn()
        row = conn.execute(
            "SELECT * FROM learned_patterns WHERE normalized_text = ?",
            (normalized_text,),
        ).fetchone()
        return self._pattern_row(row) if row else None

    def list_learned_patterns(self, include_promoted: bool = True) -> list[dict]:
        conn = self._get_conn()
        query = "SELECT * FROM learned_patterns"
        if not include_promoted:
            query += " WHERE promoted = 0"
        rows = conn.execute(query + " ORDER BY confidence DESC").fetchall()
        return [self._pattern_row(r) for r in rows]

    def upsert_learned_pattern(self, pattern: dict) -> None:
        conn = self._get_conn()
        conn.execute(
            """INSERT OR REPLACE INTO learned_patterns
               (id, original_text, normalized_text, primitive, confidence,
                source_journeys, success_count, fail_count, last_used,
                created_at, promoted, promoted_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                pattern.get("id") or f"LP{uuid.uuid4().hex[:12]}",
                pattern["original_text"],
                pattern["normalized_text"],
                json.dumps(pattern["primitive"]),
                pattern["confidence"],
                json.dumps(pattern.get("source_journeys", [])),
                pattern.get("success_count", 0),
                pattern.get("fail_count", 0),
                pattern.get("last_used"),
                pattern.get("created_at") or _now(),
                1 if pattern.get("promoted") else 0,
                pattern.get("promoted_at"),
            ),
        )
        conn.commit()

    def delete_learned_patterns(self, ids: list[str]) -> int:
        if not ids:
            return 0
        conn = self._get_conn()
        placeholders = ", ".join("?" for _ in ids)
        cur = conn.execute(
            f"DELETE FROM learned_patterns WHERE id IN ({placeholders})", ids
        )
        conn.commit()
        return cur.rowcount

    # ── Blocked-step telemetry ───────────────────────────────────────

    def record_blocked_step(self, record: BlockedStepRecord) -> None:
        conn = self._get_conn()
        conn.execute(
            """INSERT INTO blocked_steps
               (id, journey_id, step_text, normalized_text, category, reason,
                nearest_pattern, nearest_distance, suggested_fix, timestamp)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                str(uuid.uuid4()),
                record.journey_id,
                record.step_text,
                record.normalized_text,
                record.category,
                record.reason,
                record.nearest_pattern,
                record.nearest_distance,
                record.suggested_fix,
                record.timestamp,
            ),
        )
        conn.commit()

    def get_blocked_steps(self, limit: Optional[int] = None) -> list[BlockedStepRecord]:
        conn = self._get_conn()
        query = "SELECT * FROM blocked_steps ORDER BY timestamp DESC"
        params: tuple[Any, ...] = ()
        if limit is not None:
            query += " LIMIT ?"
            params = (limit,)
        rows = conn.execute(query, params).fetchall()
        return [
            BlockedStepRecord(
                step_text=r["step_text"],
                reason=r["reason"] or "",
                journey_id=r["journey_id"] or "",
                category=r["category"] or "",
                normalized_text=r["normalized_text"],
                nearest_pattern=r["nearest_pattern"],
                nearest_distance=r["nearest_distance"],
                suggested_fix=r["suggested_fix"],
                timestamp=r["timestamp"],
            )
            for r in rows
        ]

    def clear_blocked_steps(self) -> None:
        conn = self._get_conn()
        conn.execute("DELETE FROM blocked_steps")
        conn.commit()
