from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from typing import Optional

from ..audit import log_action, log_action_standalone
from ..config import settings
from ..deps import get_db
from ..outcomes import LedgerError, ledger_operation, ok
from ..security import hash_password
from ..tables import get_user, load_users
from ..validation import EmailAddress, UserRole

router = APIRouter(prefix="/users", tags=["users"])


class UserIn(BaseModel):
    name: str = Field(min_length=2)
    email: EmailAddress
    password: str = Field(min_length=8)
    role: UserRole
    user_id: Optional[int] = None


class PasswordResetIn(BaseModel):
    user_id: int
    new_password: str = Field(min_length=8)
    acting_user_id: Optional[int] = None


def _require_managed_user(cur, user_id: int, superadmin_message: str) -> dict:
    target = get_user(cur, user_id)
    if not target:
        raise LedgerError("User not found.")
    if target["role"] == "superadmin":
        raise LedgerError(superadmin_message)
    return target


@router.get("")
def list_users(db=Depends(get_db)):
    with db.connection() as conn:
        with conn.cursor() as cur:
            return {"users": load_users(cur)}


@router.post("")
@ledger_operation("user.create", "Failed to create user.")
def create_user(data: UserIn, db=Depends(get_db)):
    with db.connection() as conn:
        with conn.cursor() as cur:
            if any((u["email"] or "").lower() == data.email for u in load_users(cur)):
                raise LedgerError("A user with this email already exists.")
            cur.execute(
                """
                INSERT INTO users (name, email, password, role, is_active)
                VALUES (%s, %s, %s, %s, %s)
                RETURNING id
                """,
                (data.name.strip(), data.email, hash_password(data.password), data.role, True),
            )
            new_id = cur.fetchone()["id"]
    # The user row is committed by now; the audit entry goes in on its own.
    log_action_standalone(db, data.user_id or settings.superadmin_user_id, "CREATE", "User", new_id, {"role": data.role})
    return ok("User created successfully.", user_id=new_id)


@router.delete("/{user_id}")
@ledger_operation("user.delete", "Failed to delete user.")
def delete_user(user_id: int, acting_user_id: Optional[int] = None, db=Depends(get_db)):
    with db.connection() as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                _require_managed_user(cur, user_id, "Cannot delete superadmin users.")
                cur.execute("SELECT id FROM assignments WHERE admin_user_id = %s LIMIT 1", (user_id,))
                if cur.fetchone():
                    raise LedgerError("Cannot delete user with existing assignments.")
                cur.execute("DELETE FROM users WHERE id = %s", (user_id,))
            # Audit history of the removed user is kept.
            log_action(conn, acting_user_id or settings.superadmin_user_id, "DELETE", "User", user_id)
    return ok("User deleted successfully.")


@router.post("/{user_id}/toggle-status")
@ledger_operation("user.toggle_status", "Failed to update user status.")
def toggle_user_status(user_id: int, acting_user_id: Optional[int] = None, db=Depends(get_db)):
    with db.connection() as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                target = _require_managed_user(cur, user_id, "Cannot modify superadmin users.")
                new_status = not bool(target["is_active"])
                cur.execute(
                    "UPDATE users SET is_active = %s WHERE id = %s",
                    (new_status, user_id),
                )
            log_action(conn, acting_user_id or settings.superadmin_user_id, "UPDATE", "User", user_id, {"is_active": new_status})
    return ok(f"User {'activated' if new_status else 'deactivated'} successfully.", is_active=new_status)


@router.post("/reset-password")
@ledger_operation("user.reset_password", "Failed to reset password.")
def reset_user_password(data: PasswordResetIn, db=Depends(get_db)):
    with db.connection() as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                _require_managed_user(cur, data.user_id, "Cannot reset superadmin password.")
                cur.execute(
                    "UPDATE users SET password = %s WHERE id = %s",
                    (hash_password(data.new_password), data.user_id),
                )
            log_action(conn, data.acting_user_id or settings.superadmin_user_id, "UPDATE", "User", data.user_id)
    return ok("Password reset successfully.")
