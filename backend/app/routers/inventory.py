from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from decimal import Decimal
from typing import Optional

from ..audit import log_action
from ..config import settings
from ..deps import get_db
from ..outcomes import LedgerError, ledger_operation, ok
from ..stock import load_assignments, load_lots, total_assigned, total_purchased
from ..tables import load_categories, load_items
from ..validation import LotKind, RequiredText

router = APIRouter(prefix="/inventory", tags=["inventory"])


class InventoryIn(BaseModel):
    item_id: int
    quantity: int = Field(ge=1)
    cost_price: Decimal = Field(ge=0)
    selling_price: Decimal = Field(ge=0)
    user_id: Optional[int] = None


class InventoryPriceIn(BaseModel):
    item_id: int
    cost_price: Decimal = Field(ge=0)
    selling_price: Decimal = Field(ge=0)
    user_id: int


class QuantityAdjustIn(BaseModel):
    item_id: int
    adjustment: int
    reason: RequiredText
    user_id: int


def _insert_lot(cur, item_id: int, qty: int, cost_price, selling_price, lot_kind: LotKind = "purchase", note: Optional[str] = None) -> int:
    cur.execute(
        """
        INSERT INTO inventory_lots (item_id, qty_purchased, cost_price, selling_price, lot_kind, note)
        VALUES (%s, %s, %s, %s, %s, %s)
        RETURNING id
        """,
        (item_id, qty, cost_price, selling_price, lot_kind, note),
    )
    return cur.fetchone()["id"]


def _latest_lot(lots: list) -> Optional[dict]:
    if not lots:
        return None
    return max(lots, key=lambda l: (l.get("created_at") is not None, l.get("created_at"), l["id"]))


def _inventory_rows(items: list, categories: list, lots: list, assignments: list) -> list:
    category_names = {c["id"]: c["name"] for c in categories}
    out = []
    for item in items:
        item_lots = [l for l in lots if l["item_id"] == item["id"]]
        purchased = total_purchased(item_lots, item["id"])
        assigned = total_assigned(assignments, item["id"])
        latest = _latest_lot(item_lots)
        cost = Decimal(str((latest or {}).get("cost_price") or 0))
        # Adjustment lots carry a zero price; fall back to the item's list price then.
        selling = Decimal(str((latest or {}).get("selling_price") or 0)) or Decimal(str(item.get("default_selling_price") or 0))
        out.append(
            {
                "item_id": item["id"],
                "item_name": item["name"],
                "category_name": category_names.get(item["category_id"]) or "Uncategorized",
                "sku": item["sku"],
                "total_purchased": purchased,
                "total_assigned": assigned,
                "global_available": purchased - assigned,
                "cost_price": cost,
                "selling_price": selling,
            }
        )
    return out


@router.get("")
def inventory_overview(db=Depends(get_db)):
    with db.connection() as conn:
        with conn.cursor() as cur:
            items = load_items(cur)
            categories = load_categories(cur)
            lots = load_lots(cur)
            assignments = load_assignments(cur)
    return {"inventory": _inventory_rows(items, categories, lots, assignments)}


@router.post("/lots")
@ledger_operation("inventory.add", "Failed to add inventory.")
def add_inventory(data: InventoryIn, db=Depends(get_db)):
    user_id = data.user_id or settings.superadmin_user_id
    with db.connection() as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                lot_id = _insert_lot(cur, data.item_id, data.quantity, data.cost_price, data.selling_price)
            log_action(conn, user_id, "CREATE", "InventoryLot", lot_id, {"qty": data.quantity})
    return ok("Inventory added successfully.", lot_id=lot_id)


@router.post("/prices")
@ledger_operation("inventory.update", "Failed to update inventory.")
def update_inventory(data: InventoryPriceIn, db=Depends(get_db)):
    """
    Reprice an item: every lot of the item (history included, adjustment lots too) and the
    item's default selling price, which is what new sales are charged at.
    """
    with db.connection() as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE items
                    SET default_selling_price = %s
                    WHERE id = %s
                    RETURNING id
                    """,
                    (data.selling_price, data.item_id),
                )
                if not cur.fetchone():
                    raise LedgerError("Item not found.")
                cur.execute(
                    """
                    UPDATE inventory_lots
                    SET cost_price = %s, selling_price = %s
                    WHERE item_id = %s
                    """,
                    (data.cost_price, data.selling_price, data.item_id),
                )
            log_action(
                conn,
                data.user_id,
                "UPDATE",
                "InventoryLot",
                data.item_id,
                {"cost_price": str(data.cost_price), "selling_price": str(data.selling_price)},
            )
    return ok("Inventory updated successfully.")


@router.post("/adjustments")
@ledger_operation("inventory.adjust", "Failed to adjust inventory quantity.")
def adjust_inventory_quantity(data: QuantityAdjustIn, db=Depends(get_db)):
    """
    Corrections never edit history: a compensating zero-priced lot carries the signed delta.
    Nothing stops the item's total from going negative.
    """
    with db.connection() as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                lot_id = _insert_lot(cur, data.item_id, data.adjustment, 0, 0, "adjustment", data.reason)
            log_action(conn, data.user_id, "ADJUST", "InventoryLot", lot_id, {"adjustment": data.adjustment, "reason": data.reason})
    sign = "+" if data.adjustment > 0 else ""
    return ok(f"Inventory quantity adjusted by {sign}{data.adjustment} successfully.", lot_id=lot_id)


@router.delete("/items/{item_id}")
@ledger_operation("inventory.delete", "Failed to delete inventory item.")
def delete_inventory_item(item_id: int, user_id: int, db=Depends(get_db)):
    # Drops the item's lots only; the item row and its sales history stay.
    with db.connection() as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT id FROM assignments WHERE item_id = %s LIMIT 1",
                    (item_id,),
                )
                if cur.fetchone():
                    raise LedgerError("Cannot delete item with existing assignments.")
                cur.execute("DELETE FROM inventory_lots WHERE item_id = %s", (item_id,))
            log_action(conn, user_id, "DELETE", "InventoryLot", item_id)
    return ok("Inventory item deleted successfully.")
