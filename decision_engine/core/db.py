"""SQLite layer for recommendations and match-quality telemetry."""

from __future__ import annotations

import sqlite3
from datetime import datetime
from pathlib import Path

from decision_engine.core.errors import TelemetryUnavailableError
from decision_engine.core.schemas import Recommendation
from decision_engine.optimization.recommendations import FeedbackRecord, QualitySnapshot

_RECOMMENDATIONS_TABLE = """
CREATE TABLE IF NOT EXISTS guardrail_recommendations (
    tenant_id          TEXT NOT NULL,
    recommendation_id  TEXT NOT NULL,
    position           INTEGER NOT NULL DEFAULT 0,
    payload_json       TEXT NOT NULL,
    status             TEXT NOT NULL DEFAULT 'pending',
    updated_at         TEXT NOT NULL,
    PRIMARY KEY (tenant_id, recommendation_id)
);
"""

_QUALITY_SNAPSHOTS_TABLE = """
CREATE TABLE IF NOT EXISTS match_quality_snapshots (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    tenant_id    TEXT NOT NULL,
    scope        TEXT NOT NULL DEFAULT 'tenant',
    mqi          REAL NOT NULL,
    captured_at  TEXT NOT NULL
);
"""

_FEEDBACK_TABLE = """
CREATE TABLE IF NOT EXISTS match_feedback (
    id                INTEGER PRIMARY KEY AUTOINCREMENT,
    tenant_id         TEXT NOT NULL,
    direction         TEXT NOT NULL CHECK (direction IN ('UP', 'DOWN')),
    match_score       REAL,
    confidence_score  REAL,
    created_at        TEXT NOT NULL
);
"""

RECOMMENDATIONS_TABLE = "guardrail_recommendations"
QUALITY_SNAPSHOTS_TABLE = "match_quality_snapshots"
FEEDBACK_TABLE = "match_feedback"


def init_db(path: str | Path) -> sqlite3.Connection:
    """Create the database and tables, returning a connection."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute(_RECOMMENDATIONS_TABLE)
    conn.execute(_QUALITY_SNAPSHOTS_TABLE)
    conn.execute(_FEEDBACK_TABLE)
    conn.commit()
    return conn


def is_table_available(conn: sqlite3.Connection, table: str) -> bool:
    row = conn.execute(
        "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ? LIMIT 1",
        (table,),
    ).fetchone()
    return row is not None


def insert_quality_snapshot(
    conn: sqlite3.Connection,
    tenant_id: str,
    mqi: float,
    captured_at: datetime | None = None,
    scope: str = "tenant",
) -> int:
    """Record a match-quality index reading. Returns the row ID."""
    cursor = conn.execute(
        """
        INSERT INTO match_quality_snapshots (tenant_id, scope, mqi, captured_at)
        VALUES (?, ?, ?, ?)
        """,
        (tenant_id, scope, mqi, (captured_at or datetime.now()).isoformat()),
    )
    conn.commit()
    return cursor.lastrowid or 0


def insert_feedback(
    conn: sqlite3.Connection,
    tenant_id: str,
    direction: str,
    match_score: float | None = None,
    confidence_score: float | None = None,
    created_at: datetime | None = None,
) -> int:
    """Record recruiter feedback on a match. Scores are on the 0-100 scale."""
    cursor = conn.execute(
        """
        INSERT INTO match_feedback
            (tenant_id, direction, match_score, confidence_score, created_at)
        VALUES (?, ?, ?, ?, ?)
        """,
        (
            tenant_id,
            direction,
            match_score,
            confidence_score,
            (created_at or datetime.now()).isoformat(),
        ),
    )
    conn.commit()
    return cursor.lastrowid or 0


def list_recommendations(conn: sqlite3.Connection, tenant_id: str) -> list[Recommendation]:
    rows = conn.execute(
        """
        SELECT payload_json, status FROM guardrail_recommendations
        WHERE tenant_id = ?
        ORDER BY position
        """,
        (tenant_id,),
    ).fetchall()
    return [
        Recommendation.model_validate_json(row["payload_json"]).model_copy(
            update={"status": row["status"]}
        )
        for row in rows
    ]


def replace_recommendations(
    conn: sqlite3.Connection,
    tenant_id: str,
    recommendations: list[Recommendation],
) -> None:
    """Replace a tenant's stored batch in one transaction."""
    now = datetime.now().isoformat()
    with conn:
        conn.execute("DELETE FROM guardrail_recommendations WHERE tenant_id = ?", (tenant_id,))
        conn.executemany(
            """
            INSERT INTO guardrail_recommendations
                (tenant_id, recommendation_id, position, payload_json, status, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            [
                (tenant_id, r.id, i, r.model_dump_json(), r.status, now)
                for i, r in enumerate(recommendations)
            ],
        )


class SqliteRecommendationStore:
    """RecommendationStore backed by the guardrail_recommendations table."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    async def list(self, tenant_id: str) -> list[Recommendation]:
        return list_recommendations(self._conn, tenant_id)

    async def save(self, tenant_id: str, recommendations: list[Recommendation]) -> None:
        replace_recommendations(self._conn, tenant_id, recommendations)


class SqliteTelemetryReader:
    """TelemetryReader over the snapshot and feedback tables.

    Queries run inline on the event loop; the tables are local and small.

    Raises TelemetryUnavailableError when a table has not been created.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def _require(self, table: str) -> None:
        if not is_table_available(self._conn, table):
            msg = f"Telemetry table '{table}' does not exist"
            raise TelemetryUnavailableError(msg)

    def _quality_snapshots(self, tenant_id: str, limit: int) -> list[QualitySnapshot]:
        self._require(QUALITY_SNAPSHOTS_TABLE)
        rows = self._conn.execute(
            """
            SELECT mqi, captured_at FROM match_quality_snapshots
            WHERE tenant_id = ? AND scope = 'tenant'
            ORDER BY captured_at DESC, id DESC
            LIMIT ?
            """,
            (tenant_id, limit),
        ).fetchall()
        return [
            QualitySnapshot(mqi=row["mqi"], captured_at=datetime.fromisoformat(row["captured_at"]))
            for row in rows
        ]

    def _feedback(self, tenant_id: str, limit: int) -> list[FeedbackRecord]:
        self._require(FEEDBACK_TABLE)
        rows = self._conn.execute(
            """
            SELECT direction, match_score, confidence_score FROM match_feedback
            WHERE tenant_id = ?
            ORDER BY created_at DESC, id DESC
            LIMIT ?
            """,
            (tenant_id, limit),
        ).fetchall()
        return [
            FeedbackRecord(
                direction=row["direction"],
                match_score=row["match_score"],
                confidence_score=row["confidence_score"],
            )
            for row in rows
        ]

    async def quality_snapshots(self, tenant_id: str, limit: int) -> list[QualitySnapshot]:
        return self._quality_snapshots(tenant_id, limit)

    async def feedback(self, tenant_id: str, limit: int) -> list[FeedbackRecord]:
        return self._feedback(tenant_id, limit)

