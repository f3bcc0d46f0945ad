"""
Append-only audit trail writer.

`log_action` never raises: the insert runs inside a nested `conn.transaction()` (a SAVEPOINT
when the caller already has a transaction open), so a failed audit row rolls back only
itself and the caller's own writes still commit.
"""

import json
from typing import Optional

from pydantic import TypeAdapter

from .jsonlog import json_log
from .validation import AuditAction

_AUDIT_ACTION = TypeAdapter(AuditAction)


def log_action(
    conn,
    user_id: int,
    action: str,
    entity_type: str,
    entity_id: int,
    details: Optional[dict] = None,
) -> Optional[int]:
    try:
        action = _AUDIT_ACTION.validate_python(action)
        with conn.transaction():
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO audit_logs (user_id, action, entity_type, entity_id, details)
                    VALUES (%s, %s, %s, %s, %s::jsonb)
                    RETURNING id
                    """,
                    (user_id, action, entity_type, entity_id, json.dumps(details) if details else None),
                )
                row = cur.fetchone()
                return row["id"] if row else None
    except Exception as ex:
        json_log(
            "warn",
            "audit.write_failed",
            user_id=user_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            error=str(ex),
        )
        return None


def log_action_standalone(db, user_id: int, action: str, entity_type: str, entity_id: int, details: Optional[dict] = None):
    # For callers that already committed their own write on another connection.
    try:
        with db.connection() as conn:
            return log_action(conn, user_id, action, entity_type, entity_id, details)
    except Exception as ex:
        json_log("warn", "audit.write_failed", user_id=user_id, action=action, entity_type=entity_type, error=str(ex))
        return None
