from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from decimal import Decimal

from ..audit import log_action
from ..deps import get_db
from ..outcomes import LedgerError, ledger_operation, ok
from ..stock import first_lot_for_item, global_available, load_assignments, load_lots, load_sales, total_sold
from ..tables import load_items

router = APIRouter(prefix="/assignments", tags=["assignments"])


class AssignStockIn(BaseModel):
    item_id: int
    admin_id: int
    quantity: int = Field(ge=1)
    user_id: int


@router.get("")
def list_assignments(db=Depends(get_db)):
    with db.connection() as conn:
        with conn.cursor() as cur:
            return {"assignments": load_assignments(cur)}


@router.post("")
@ledger_operation("stock.assign", "Failed to assign stock.")
def assign_stock(data: AssignStockIn, db=Depends(get_db)):
    """
    Move `quantity` units of an item from the global pool to one admin.

    Check-then-insert without row locks: two concurrent assigns can both read the same
    global_available and jointly over-assign. Known limitation, kept as-is.
    """
    with db.connection() as conn:
        with conn.cursor() as cur:
            lots = load_lots(cur)
            assignments = load_assignments(cur)
            if data.quantity > global_available(lots, assignments, data.item_id):
                raise LedgerError("Not enough global stock to assign.")

            source_lot = first_lot_for_item(lots, data.item_id)
            if not source_lot:
                raise LedgerError("Cannot assign stock as there are no inventory lots for this item.")

            cur.execute(
                """
                INSERT INTO assignments (item_id, admin_user_id, qty_assigned, source_lot_id)
                VALUES (%s, %s, %s, %s)
                RETURNING id
                """,
                (data.item_id, data.admin_id, data.quantity, source_lot["id"]),
            )
            assignment_id = cur.fetchone()["id"]
        log_action(conn, data.user_id, "ASSIGN", "Assignment", assignment_id, {"qty": data.quantity, "admin_user_id": data.admin_id})
    return ok("Stock assigned successfully.", assignment_id=assignment_id)


def _admin_stock_rows(admin_id: int, items: list, assignments: list, sales: list) -> list:
    mine = [a for a in assignments if a["admin_user_id"] == admin_id]
    by_item = {}
    for a in mine:
        by_item[a["item_id"]] = by_item.get(a["item_id"], 0) + int(a["qty_assigned"] or 0)
    items_by_id = {i["id"]: i for i in items}
    out = []
    for item_id, assigned in by_item.items():
        item = items_by_id.get(item_id) or {}
        sold = total_sold(sales, item_id, admin_id)
        out.append(
            {
                "item_id": item_id,
                "item_name": item.get("name") or "Unknown Item",
                "sku": item.get("sku"),
                "assigned": assigned,
                "sold": sold,
                "available": assigned - sold,
                "selling_price": Decimal(str(item.get("default_selling_price") or 0)),
            }
        )
    return out


@router.get("/admins/{admin_id}/stock")
def admin_stock(admin_id: int, db=Depends(get_db)):
    with db.connection() as conn:
        with conn.cursor() as cur:
            items = load_items(cur)
            assignments = load_assignments(cur)
            sales = load_sales(cur)
    rows = _admin_stock_rows(admin_id, items, assignments, sales)
    return {
        "admin_user_id": admin_id,
        "stock": rows,
        "total_assigned": sum(r["assigned"] for r in rows),
        "total_sold": sum(int(s["qty_sold"] or 0) for s in sales if s["admin_user_id"] == admin_id),
        "total_available": sum(r["available"] for r in rows),
    }
