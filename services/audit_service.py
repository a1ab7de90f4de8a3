"""Audit log of operator actions on promotions."""

import json
from datetime import datetime
from typing import Any, Dict, List, Optional

from core.logger import get_logger
from database.base_repository import BaseRepository
from database.models import from_db_timestamp, to_db_timestamp

logger = get_logger(__name__)


def _dump(value: Any) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, default=str, sort_keys=True)


def _row_to_log(row) -> Dict[str, Any]:
    log = {key: row[key] for key in row.keys()}
    for column in ("old_value", "new_value"):
        if log.get(column):
            log[column] = json.loads(log[column])
    log["created_at"] = from_db_timestamp(log["created_at"])
    return log


class AuditService:
    """Writes and reads the ``audit_log`` table."""

    @staticmethod
    async def log_action(
        operator: str,
        action_type: str,
        entity_type: str,
        now: datetime,
        entity_id: Optional[int] = None,
        old_value: Optional[Any] = None,
        new_value: Optional[Any] = None,
        reason: Optional[str] = None,
    ) -> int:
        """
        Record one operator action.

        Args:
            operator: Who performed the action
            action_type: One of ``OperatorAction``
            entity_type: Kind of entity touched (``promotion``)
            now: Time of the action
            entity_id: Entity id
            old_value: JSON-serializable state before the action
            new_value: JSON-serializable state after the action
            reason: Free-text reason supplied by the operator

        Returns:
            ID of the new audit log row
        """
        log_id = await BaseRepository.insert(
            """
            INSERT INTO audit_log (
                operator, action_type, entity_type, entity_id,
                old_value, new_value, reason, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                operator,
                action_type,
                entity_type,
                entity_id,
                _dump(old_value),
                _dump(new_value),
                reason,
                to_db_timestamp(now),
            ),
        )
        logger.info(f"Audit: {operator} {action_type} {entity_type}#{entity_id}")
        return log_id

    @staticmethod
    async def get_audit_logs(
        limit: int = 100,
        offset: int = 0,
        operator: Optional[str] = None,
        action_type: Optional[str] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[int] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        """Newest-first audit rows matching every given filter."""
        query = "SELECT * FROM audit_log WHERE 1=1"
        params: List[Any] = []

        if operator:
            query += " AND operator = ?"
            params.append(operator)

        if action_type:
            query += " AND action_type = ?"
            params.append(action_type)

        if entity_type:
            query += " AND entity_type = ?"
            params.append(entity_type)

        if entity_id is not None:
            query += " AND entity_id = ?"
            params.append(entity_id)

        if start_date:
            query += " AND created_at >= ?"
            params.append(to_db_timestamp(start_date))

        if end_date:
            query += " AND created_at < ?"
            params.append(to_db_timestamp(end_date))

        query += " ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])

        rows = await BaseRepository.fetch_all(query, params)
        return [_row_to_log(row) for row in rows]

    @staticmethod
    async def get_entity_history(entity_type: str, entity_id: int) -> List[Dict[str, Any]]:
        rows = await BaseRepository.fetch_all(
            """
            SELECT * FROM audit_log
            WHERE entity_type = ? AND entity_id = ?
            ORDER BY created_at DESC, id DESC
            """,
            (entity_type, entity_id),
        )
        return [_row_to_log(row) for row in rows]

    @staticmethod
    async def get_operator_stats() -> List[Dict[str, Any]]:
        rows = await BaseRepository.fetch_all(
            """
            SELECT
                operator,
                COUNT(*) AS total_actions,
                COUNT(DISTINCT action_type) AS action_types_count,
                MAX(created_at) AS last_action
            FROM audit_log
            GROUP BY operator
            ORDER BY total_actions DESC
            """
        )
        return [{key: row[key] for key in row.keys()} for row in rows]
