from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from decimal import Decimal
from typing import Optional
import re
import uuid

from ..audit import log_action
from ..config import settings
from ..deps import get_db
from ..outcomes import LedgerError, ledger_operation, ok
from ..tables import load_items
from ..validation import OptionalText

router = APIRouter(prefix="/items", tags=["items"])


class ItemIn(BaseModel):
    category_id: int
    name: str = Field(min_length=2)
    sku: OptionalText = None
    default_selling_price: Decimal = Field(ge=0)
    user_id: Optional[int] = None


class ItemUpdate(BaseModel):
    category_id: Optional[int] = None
    name: Optional[str] = Field(default=None, min_length=2)
    sku: Optional[str] = Field(default=None, min_length=1)
    default_selling_price: Optional[Decimal] = Field(default=None, ge=0)
    user_id: Optional[int] = None


def generate_sku(name: str) -> str:
    prefix = re.sub(r"[^A-Z0-9]", "", (name or "").upper())[:4] or "ITEM"
    return f"{prefix}-{uuid.uuid4().hex[:6].upper()}"


def _sku_taken(cur, sku: str, exclude_id: Optional[int] = None) -> bool:
    wanted = sku.strip().lower()
    return any(
        (i["sku"] or "").strip().lower() == wanted and i["id"] != exclude_id
        for i in load_items(cur)
    )


def _assert_category(cur, category_id: int) -> None:
    cur.execute("SELECT id FROM categories WHERE id = %s", (category_id,))
    if not cur.fetchone():
        raise LedgerError("Category not found.")


@router.get("")
def list_items(db=Depends(get_db)):
    with db.connection() as conn:
        with conn.cursor() as cur:
            return {"items": load_items(cur)}


@router.post("")
@ledger_operation("item.create", "Failed to create item.")
def create_item(data: ItemIn, db=Depends(get_db)):
    name = data.name.strip()
    with db.connection() as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                sku = data.sku or generate_sku(name)
                if _sku_taken(cur, sku):
                    raise LedgerError("An item with this SKU already exists.")
                _assert_category(cur, data.category_id)
                cur.execute(
                    """
                    INSERT INTO items (category_id, name, sku, default_selling_price)
                    VALUES (%s, %s, %s, %s)
                    RETURNING id
                    """,
                    (data.category_id, name, sku, data.default_selling_price),
                )
                item_id = cur.fetchone()["id"]
            log_action(conn, data.user_id or settings.superadmin_user_id, "CREATE", "Item", item_id, {"sku": sku})
    return ok("Item created successfully.", item_id=item_id, sku=sku)


@router.patch("/{item_id}")
@ledger_operation("item.update", "Failed to update item.")
def update_item(item_id: int, data: ItemUpdate, db=Depends(get_db)):
    patch = data.model_dump(exclude_unset=True, exclude={"user_id"})
    if not patch:
        return ok("Item updated successfully.")
    fields = []
    params = []
    with db.connection() as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                if "sku" in patch:
                    sku = (patch["sku"] or "").strip()
                    if not sku:
                        raise LedgerError("SKU is required.")
                    if _sku_taken(cur, sku, exclude_id=item_id):
                        raise LedgerError("An item with this SKU already exists.")
                    fields.append("sku = %s")
                    params.append(sku)
                if "category_id" in patch:
                    if patch["category_id"] is None:
                        raise LedgerError("Category is required.")
                    _assert_category(cur, patch["category_id"])
                    fields.append("category_id = %s")
                    params.append(patch["category_id"])
                if "name" in patch:
                    nm = (patch["name"] or "").strip()
                    if len(nm) < 2:
                        raise LedgerError("Item name must be at least 2 characters.")
                    fields.append("name = %s")
                    params.append(nm)
                if "default_selling_price" in patch:
                    if patch["default_selling_price"] is None:
                        raise LedgerError("Selling price is required.")
                    fields.append("default_selling_price = %s")
                    params.append(patch["default_selling_price"])
                if not fields:
                    return ok("Item updated successfully.")
                params.append(item_id)
                cur.execute(
                    f"""
                    UPDATE items
                    SET {', '.join(fields)}
                    WHERE id = %s
                    RETURNING id
                    """,
                    params,
                )
                if not cur.fetchone():
                    raise LedgerError("Item not found.")
            log_action(
                conn,
                data.user_id or settings.superadmin_user_id,
                "UPDATE",
                "Item",
                item_id,
                {k: str(v) for k, v in patch.items()},
            )
    return ok("Item updated successfully.")


@router.delete("/{item_id}")
@ledger_operation("item.delete", "Failed to delete item.")
def delete_item(item_id: int, user_id: Optional[int] = None, db=Depends(get_db)):
    with db.connection() as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                cur.execute("SELECT id FROM inventory_lots WHERE item_id = %s LIMIT 1", (item_id,))
                if cur.fetchone():
                    raise LedgerError("Cannot delete item with existing inventory.")
                cur.execute("SELECT id FROM assignments WHERE item_id = %s LIMIT 1", (item_id,))
                if cur.fetchone():
                    raise LedgerError("Cannot delete item with existing assignments.")
                cur.execute("DELETE FROM items WHERE id = %s", (item_id,))
            log_action(conn, user_id or settings.superadmin_user_id, "DELETE", "Item", item_id)
    return ok("Item deleted successfully.")
