from fastapi import APIRouter, Depends
from typing import Optional

from ..deps import get_db
from ..tables import load_audit_logs, load_users, newest_first

router = APIRouter(prefix="/audit", tags=["audit"])


@router.get("/logs")
def list_audit_logs(
    entity_type: Optional[str] = None,
    action: Optional[str] = None,
    user_id: Optional[int] = None,
    db=Depends(get_db),
):
    """
    Audit trail feed, newest first, with the acting user's name joined in.
    Filters are applied in memory after the full scan.
    """
    with db.connection() as conn:
        with conn.cursor() as cur:
            logs = load_audit_logs(cur)
            users = load_users(cur)

    entity_type = (entity_type or "").strip() or None
    action = (action or "").strip().upper() or None
    if entity_type:
        logs = [l for l in logs if l["entity_type"] == entity_type]
    if action:
        logs = [l for l in logs if l["action"] == action]
    if user_id is not None:
        logs = [l for l in logs if l["user_id"] == user_id]

    user_names = {u["id"]: u["name"] for u in users}
    rows = [{**l, "user_name": user_names.get(l["user_id"]) or "Unknown User"} for l in logs]
    return {"audit_logs": newest_first(rows)}
