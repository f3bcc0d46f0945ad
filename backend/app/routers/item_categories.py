from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from typing import Optional

from ..audit import log_action
from ..config import settings
from ..deps import get_db
from ..outcomes import LedgerError, ledger_operation, ok
from ..tables import load_categories
from ..validation import OptionalText

router = APIRouter(prefix="/categories", tags=["categories"])


class CategoryIn(BaseModel):
    name: str = Field(min_length=2)
    description: OptionalText = None
    user_id: Optional[int] = None


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=2)
    description: OptionalText = None
    user_id: Optional[int] = None


def _name_taken(cur, name: str, exclude_id: Optional[int] = None) -> bool:
    wanted = name.strip().lower()
    return any(
        (c["name"] or "").strip().lower() == wanted and c["id"] != exclude_id
        for c in load_categories(cur)
    )


@router.get("")
def list_categories(db=Depends(get_db)):
    with db.connection() as conn:
        with conn.cursor() as cur:
            return {"categories": load_categories(cur)}


@router.post("")
@ledger_operation("category.create", "Failed to create category.")
def create_category(data: CategoryIn, db=Depends(get_db)):
    name = data.name.strip()
    with db.connection() as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                if _name_taken(cur, name):
                    raise LedgerError("A category with this name already exists.")
                cur.execute(
                    """
                    INSERT INTO categories (name, description)
                    VALUES (%s, %s)
                    RETURNING id
                    """,
                    (name, data.description),
                )
                cid = cur.fetchone()["id"]
            log_action(conn, data.user_id or settings.superadmin_user_id, "CREATE", "Category", cid, {"name": name})
    return ok("Category created successfully.", category_id=cid)


@router.patch("/{category_id}")
@ledger_operation("category.update", "Failed to update category.")
def update_category(category_id: int, data: CategoryUpdate, db=Depends(get_db)):
    patch = data.model_dump(exclude_unset=True, exclude={"user_id"})
    if not patch:
        return ok("Category updated successfully.")
    fields = []
    params = []
    with db.connection() as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                if "name" in patch:
                    nm = (patch["name"] or "").strip()
                    if len(nm) < 2:
                        raise LedgerError("Category name must be at least 2 characters.")
                    if _name_taken(cur, nm, exclude_id=category_id):
                        raise LedgerError("A category with this name already exists.")
                    fields.append("name = %s")
                    params.append(nm)
                if "description" in patch:
                    fields.append("description = %s")
                    params.append(patch["description"])
                params.append(category_id)
                cur.execute(
                    f"""
                    UPDATE categories
                    SET {', '.join(fields)}
                    WHERE id = %s
                    RETURNING id
                    """,
                    params,
                )
                if not cur.fetchone():
                    raise LedgerError("Category not found.")
            log_action(conn, data.user_id or settings.superadmin_user_id, "UPDATE", "Category", category_id, patch)
    return ok("Category updated successfully.")


@router.delete("/{category_id}")
@ledger_operation("category.delete", "Failed to delete category.")
def delete_category(category_id: int, user_id: Optional[int] = None, db=Depends(get_db)):
    with db.connection() as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                cur.execute("SELECT id FROM items WHERE category_id = %s LIMIT 1", (category_id,))
                if cur.fetchone():
                    raise LedgerError("Cannot delete category with existing items.")
                cur.execute("DELETE FROM categories WHERE id = %s", (category_id,))
            log_action(conn, user_id or settings.superadmin_user_id, "DELETE", "Category", category_id)
    return ok("Category deleted successfully.")
