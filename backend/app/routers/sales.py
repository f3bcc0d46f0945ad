from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from decimal import Decimal
from typing import Optional

from ..audit import log_action
from ..deps import get_db
from ..outcomes import LedgerError, ledger_operation, ok
from ..stock import admin_available, load_assignments, load_sales
from ..tables import get_item, get_user, load_categories, load_items, load_users, newest_first
from ..validation import OptionalPhone, OptionalText, RequiredText

router = APIRouter(prefix="/sales", tags=["sales"])


class SaleIn(BaseModel):
    item_id: int
    admin_id: int
    quantity: int = Field(ge=1)
    customer_name: RequiredText
    customer_address: OptionalText = None
    customer_phone: OptionalPhone = None


def insert_sale(cur, item_id: int, admin_id: int, qty: int, unit_price, total_price, customer_name: str, customer_address, customer_phone) -> int:
    cur.execute(
        """
        INSERT INTO sales (item_id, admin_user_id, qty_sold, unit_price, total_price,
                           customer_name, customer_address, customer_phone)
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
        RETURNING id
        """,
        (item_id, admin_id, qty, unit_price, total_price, customer_name, customer_address, customer_phone),
    )
    return cur.fetchone()["id"]


@router.post("")
@ledger_operation("sales.record", "Failed to record sale.")
def record_sale(data: SaleIn, db=Depends(get_db)):
    """
    Sell from an admin's own allotment.

    The unit price is read from the item at the moment of sale; clients never send it.
    Same unlocked check-then-insert as stock assignment: concurrent sales by one admin
    can oversell their allotment.
    """
    with db.connection() as conn:
        with conn.cursor() as cur:
            item = get_item(cur, data.item_id)
            if not item:
                raise LedgerError("Item not found.")
            current_price = Decimal(str(item.get("default_selling_price") or 0))

            available = admin_available(load_assignments(cur), load_sales(cur), data.admin_id, data.item_id)
            if data.quantity > available:
                raise LedgerError("Not enough stock to sell.")

            sale_id = insert_sale(
                cur,
                data.item_id,
                data.admin_id,
                data.quantity,
                current_price,
                current_price * data.quantity,
                data.customer_name,
                data.customer_address,
                data.customer_phone,
            )
        log_action(conn, data.admin_id, "SELL", "Sale", sale_id, {"qty": data.quantity})
    return ok("Sale recorded successfully.", sale_id=sale_id)


@router.get("")
def sales_page(user_id: Optional[int] = None, db=Depends(get_db)):
    with db.connection() as conn:
        with conn.cursor() as cur:
            users = load_users(cur)
            viewer = get_user(cur, user_id) if user_id is not None else None
            if not viewer:
                return {"users": users, "sales": []}
            sales = load_sales(cur)
            items = load_items(cur)
            categories = load_categories(cur)

    if viewer["role"] != "superadmin":
        sales = [s for s in sales if s["admin_user_id"] == viewer["id"]]

    items_by_id = {i["id"]: i for i in items}
    category_names = {c["id"]: c["name"] for c in categories}
    admin_names = {u["id"]: u["name"] for u in users}
    rows = []
    for s in sales:
        item = items_by_id.get(s["item_id"])
        category_name = category_names.get(item["category_id"]) if item else None
        rows.append(
            {
                **s,
                "item_name": item["name"] if item else "Unknown Item",
                "category_name": category_name or "Uncategorized",
                "admin_name": admin_names.get(s["admin_user_id"]) or "Unknown Admin",
            }
        )
    return {"users": users, "sales": newest_first(rows)}
