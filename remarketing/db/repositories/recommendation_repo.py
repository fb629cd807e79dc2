"""
Repository for ``customer_recommendations``.

Status and expiry semantics live in SQL here:

  active, unexpired   status = 'active' AND expires_at > now
  past due            status = 'active' AND expires_at < now
  retention target    status IN (terminal) AND last_updated < cutoff

Every mutating method takes ``now`` from the caller; nothing in this module
reads the system clock.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Iterable
from datetime import datetime
from typing import Optional

from remarketing.db.repositories.base import (
    BaseRepository,
    in_placeholders,
    where_clause,
)
from remarketing.errors import InvalidStatusTransitionError
from remarketing.models.recommendation import (
    AIAnalysis,
    CustomerInsights,
    RecommendationRecord,
)
from remarketing.taxonomy.recommendation_taxonomy import (
    RecommendationStatus,
    RecommendationType,
)
from remarketing.utils.time_utils import from_db_timestamp, to_db_timestamp

logger = logging.getLogger(__name__)

_ACTIVE = RecommendationStatus.ACTIVE.value
_EXPIRED = RecommendationStatus.EXPIRED.value


class RecommendationRepository(BaseRepository):
    """Read/write access to the ``customer_recommendations`` table."""

    def insert(self, record: RecommendationRecord) -> int:
        """Insert a recommendation and return its ``rec_id``.

        Args:
            record: The ``RecommendationRecord`` to persist (``rec_id`` ignored).

        Returns:
            The newly assigned ``rec_id``.
        """
        return self.insert_returning_id(
            """
            INSERT INTO customer_recommendations (
                customer_id, customer_email, customer_name,
                recommendation_type, priority_score,
                reasons, suggested_actions, customer_insights, ai_analysis,
                status, generated_at, expires_at, last_updated
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
            """,
            (
                record.customer_id,
                record.customer_email,
                record.customer_name,
                record.recommendation_type.value,
                record.priority_score,
                json.dumps(record.reasons),
                json.dumps(record.suggested_actions),
                record.customer_insights.model_dump_json(),
                record.ai_analysis.model_dump_json(),
                record.status.value,
                to_db_timestamp(record.generated_at),
                to_db_timestamp(record.expires_at),
                to_db_timestamp(record.last_updated),
            ),
        )

    def get_by_id(self, rec_id: int) -> Optional[RecommendationRecord]:
        """Fetch a recommendation by primary key, or ``None``."""
        row = self.fetchone(
            "SELECT * FROM customer_recommendations WHERE rec_id = ?;", (rec_id,)
        )
        return _row_to_recommendation(row) if row else None

    def find_active_unexpired(
        self, customer_id: str, now: datetime
    ) -> list[RecommendationRecord]:
        """Active records for ``customer_id`` whose ``expires_at`` is after ``now``.

        Returns:
            Records ordered by priority, highest first.
        """
        rows = self.fetchall(
            """
            SELECT * FROM customer_recommendations
            WHERE customer_id = ? AND status = ? AND expires_at > ?
            ORDER BY priority_score DESC, rec_id;
            """,
            (customer_id, _ACTIVE, to_db_timestamp(now)),
        )
        return [_row_to_recommendation(r) for r in rows]

    def bulk_expire_active(
        self, now: datetime, customer_id: Optional[str] = None
    ) -> int:
        """Move every active record (optionally one customer's) to ``expired``.

        Returns:
            Number of records transitioned.
        """
        where, params = where_clause([
            ("status = ?", _ACTIVE),
            ("customer_id = ?", customer_id),
        ])
        return self.execute(
            f"UPDATE customer_recommendations SET status = ?, last_updated = ? {where};",
            (_EXPIRED, to_db_timestamp(now), *params),
        ).rowcount

    def bulk_expire_past_due(self, now: datetime) -> int:
        """Move active records with ``expires_at < now`` to ``expired``.

        Returns:
            Number of records transitioned.
        """
        stamp = to_db_timestamp(now)
        cursor = self.execute(
            """
            UPDATE customer_recommendations
            SET status = ?, last_updated = ?
            WHERE status = ? AND expires_at < ?;
            """,
            (_EXPIRED, stamp, _ACTIVE, stamp),
        )
        return cursor.rowcount

    def delete_older_than(
        self,
        statuses: Iterable[RecommendationStatus],
        cutoff: datetime,
    ) -> int:
        """Delete records in ``statuses`` whose ``last_updated`` is before ``cutoff``.

        Args:
            statuses: Terminal statuses to purge.
            cutoff: Records last touched strictly before this instant go.

        Returns:
            Number of rows deleted.

        Raises:
            ValueError: If ``statuses`` includes ``active``.
        """
        values = sorted({RecommendationStatus(s).value for s in statuses})
        if _ACTIVE in values:
            raise ValueError("Retention cleanup never deletes active recommendations.")
        if not values:
            return 0
        cursor = self.execute(
            f"""
            DELETE FROM customer_recommendations
            WHERE status IN ({in_placeholders(values)}) AND last_updated < ?;
            """,
            (*values, to_db_timestamp(cutoff)),
        )
        return cursor.rowcount

    def update_status(
        self,
        rec_id: int,
        status: RecommendationStatus,
        now: datetime,
        notes: Optional[str] = None,
    ) -> Optional[RecommendationRecord]:
        """Set the status of one record, stamping ``last_updated``.

        Args:
            rec_id: Record to update.
            status: New status (``processed``, ``dismissed`` or ``expired``).
            now: Timestamp written to ``last_updated``.
            notes: When given, replaces ``ai_analysis.personalization_notes``.

        Returns:
            The updated record, or ``None`` if ``rec_id`` does not exist.

        Raises:
            InvalidStatusTransitionError: If ``status`` is ``active``.
        """
        status = RecommendationStatus(status)
        if status == RecommendationStatus.ACTIVE:
            raise InvalidStatusTransitionError(
                "Recommendations cannot be re-activated; generate a new one instead."
            )

        current = self.get_by_id(rec_id)
        if current is None:
            return None

        ai_analysis = current.ai_analysis
        if notes is not None:
            ai_analysis = ai_analysis.model_copy(update={"personalization_notes": notes})

        self.execute(
            """
            UPDATE customer_recommendations
            SET status = ?, ai_analysis = ?, last_updated = ?
            WHERE rec_id = ?;
            """,
            (status.value, ai_analysis.model_dump_json(), to_db_timestamp(now), rec_id),
        )
        return self.get_by_id(rec_id)

    def list_recommendations(
        self,
        customer_id: Optional[str] = None,
        status: Optional[RecommendationStatus] = None,
        recommendation_type: Optional[RecommendationType] = None,
        priority_min: Optional[int] = None,
        priority_max: Optional[int] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[RecommendationRecord]:
        """Filtered, paginated listing ordered by priority (highest first).

        Returns:
            Up to ``limit`` records after skipping ``offset``.
        """
        where, params = where_clause([
            ("customer_id = ?", customer_id),
            ("status = ?", RecommendationStatus(status).value if status else None),
            ("recommendation_type = ?",
             RecommendationType(recommendation_type).value if recommendation_type else None),
            ("priority_score >= ?", priority_min),
            ("priority_score <= ?", priority_max),
        ])
        rows = self.fetchall(
            f"""
            SELECT * FROM customer_recommendations
            {where}
            ORDER BY priority_score DESC, generated_at DESC, rec_id DESC
            LIMIT ? OFFSET ?;
            """,
            (*params, limit, offset),
        )
        return [_row_to_recommendation(r) for r in rows]

    def count_by_status(self) -> dict[str, int]:
        """Return ``{status: count}`` over all stored recommendations."""
        rows = self.fetchall(
            """
            SELECT status, COUNT(*) AS n FROM customer_recommendations
            GROUP BY status;
            """
        )
        return {r["status"]: r["n"] for r in rows}


# ── Row → model converter ─────────────────────────────────────────────────────

def _row_to_recommendation(row: sqlite3.Row) -> RecommendationRecord:
    return RecommendationRecord(
        rec_id=row["rec_id"],
        customer_id=row["customer_id"],
        customer_email=row["customer_email"],
        customer_name=row["customer_name"],
        recommendation_type=RecommendationType(row["recommendation_type"]),
        priority_score=row["priority_score"],
        reasons=json.loads(row["reasons"]),
        suggested_actions=json.loads(row["suggested_actions"]),
        customer_insights=CustomerInsights.model_validate_json(row["customer_insights"]),
        ai_analysis=AIAnalysis.model_validate_json(row["ai_analysis"]),
        status=RecommendationStatus(row["status"]),
        generated_at=from_db_timestamp(row["generated_at"]),
        expires_at=from_db_timestamp(row["expires_at"]),
        last_updated=from_db_timestamp(row["last_updated"]),
    )
