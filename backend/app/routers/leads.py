from fastapi import APIRouter, Depends
from pydantic import BaseModel
from datetime import date, datetime, timezone
from typing import Optional

from ..audit import log_action
from ..deps import get_db
from ..outcomes import LedgerError, ledger_operation, ok
from ..tables import get_user, load_items, load_leads, load_users, newest_first
from ..validation import LeadPriority, LeadStatus, OptionalPhone, OptionalText, RequiredText

router = APIRouter(prefix="/leads", tags=["leads"])


class LeadIn(BaseModel):
    admin_user_id: int
    customer_name: RequiredText
    customer_phone: OptionalPhone = None
    customer_email: OptionalText = None
    customer_address: OptionalText = None
    interested_item_id: Optional[int] = None
    notes: OptionalText = None
    priority: LeadPriority = "medium"
    follow_up_date: Optional[date] = None


class LeadUpdate(BaseModel):
    customer_name: Optional[str] = None
    customer_phone: OptionalPhone = None
    customer_email: OptionalText = None
    customer_address: OptionalText = None
    interested_item_id: Optional[int] = None
    notes: OptionalText = None
    status: Optional[LeadStatus] = None
    priority: Optional[LeadPriority] = None
    follow_up_date: Optional[date] = None
    user_id: Optional[int] = None


@router.get("")
def list_leads(user_id: Optional[int] = None, db=Depends(get_db)):
    with db.connection() as conn:
        with conn.cursor() as cur:
            viewer = get_user(cur, user_id) if user_id is not None else None
            if not viewer:
                return {"leads": []}
            leads = load_leads(cur)
            users = load_users(cur)
            items = load_items(cur)
    if viewer["role"] != "superadmin":
        leads = [l for l in leads if l["admin_user_id"] == viewer["id"]]
    admin_names = {u["id"]: u["name"] for u in users}
    item_names = {i["id"]: i["name"] for i in items}
    rows = [
        {
            **l,
            "admin_name": admin_names.get(l["admin_user_id"]) or "Unknown Admin",
            "interested_item_name": item_names.get(l["interested_item_id"]),
        }
        for l in leads
    ]
    return {"leads": newest_first(rows)}


@router.post("")
@ledger_operation("lead.create", "Failed to create lead.")
def create_lead(data: LeadIn, db=Depends(get_db)):
    with db.connection() as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO leads (admin_user_id, customer_name, customer_phone, customer_email, customer_address,
                                       interested_item_id, notes, status, priority, follow_up_date)
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                    RETURNING id
                    """,
                    (
                        data.admin_user_id,
                        data.customer_name,
                        data.customer_phone,
                        data.customer_email,
                        data.customer_address,
                        data.interested_item_id,
                        data.notes,
                        "new",
                        data.priority,
                        data.follow_up_date,
                    ),
                )
                lead_id = cur.fetchone()["id"]
            log_action(conn, data.admin_user_id, "CREATE", "Lead", lead_id)
    return ok("Lead created successfully.", lead_id=lead_id)


@router.patch("/{lead_id}")
@ledger_operation("lead.update", "Failed to update lead.")
def update_lead(lead_id: int, data: LeadUpdate, db=Depends(get_db)):
    patch = data.model_dump(exclude_unset=True, exclude={"user_id"})
    if "customer_name" in patch and not (patch["customer_name"] or "").strip():
        raise LedgerError("Customer name is required.")
    if not patch:
        return ok("Lead updated successfully.")
    fields = [f"{k} = %s" for k in patch] + ["updated_at = %s"]
    params = list(patch.values()) + [datetime.now(timezone.utc), lead_id]
    with db.connection() as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    UPDATE leads
                    SET {', '.join(fields)}
                    WHERE id = %s
                    RETURNING id, admin_user_id
                    """,
                    params,
                )
                row = cur.fetchone()
                if not row:
                    raise LedgerError("Lead not found.")
            log_action(conn, data.user_id or row["admin_user_id"], "UPDATE", "Lead", lead_id, {k: str(v) for k, v in patch.items()})
    return ok("Lead updated successfully.")


@router.delete("/{lead_id}")
@ledger_operation("lead.delete", "Failed to delete lead.")
def delete_lead(lead_id: int, user_id: int, db=Depends(get_db)):
    with db.connection() as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                cur.execute("DELETE FROM leads WHERE id = %s RETURNING id", (lead_id,))
                if not cur.fetchone():
                    raise LedgerError("Lead not found.")
            log_action(conn, user_id, "DELETE", "Lead", lead_id)
    return ok("Lead deleted successfully.")
