"""
Full-table readers for the non-ledger tables.

Dashboards fetch whole tables and join/filter in memory; the data set of a single shop
stays small enough for that. Ledger tables (lots, assignments, sales) live in `stock.py`.
"""


def load_users(cur) -> list:
    cur.execute(
        """
        SELECT id, name, email, role, is_active, created_at
        FROM users
        ORDER BY id
        """
    )
    return list(cur.fetchall() or [])


def get_user(cur, user_id: int):
    cur.execute(
        """
        SELECT id, name, email, role, is_active, created_at
        FROM users
        WHERE id = %s
        """,
        (user_id,),
    )
    return cur.fetchone()


def load_categories(cur) -> list:
    cur.execute(
        """
        SELECT id, name, description, created_at
        FROM categories
        ORDER BY id
        """
    )
    return list(cur.fetchall() or [])


def load_items(cur) -> list:
    cur.execute(
        """
        SELECT id, category_id, name, sku, default_selling_price, created_at
        FROM items
        ORDER BY id
        """
    )
    return list(cur.fetchall() or [])


def get_item(cur, item_id: int):
    cur.execute(
        """
        SELECT id, category_id, name, sku, default_selling_price, created_at
        FROM items
        WHERE id = %s
        """,
        (item_id,),
    )
    return cur.fetchone()


def load_audit_logs(cur) -> list:
    cur.execute(
        """
        SELECT id, user_id, action, entity_type, entity_id, details, created_at
        FROM audit_logs
        ORDER BY id
        """
    )
    return list(cur.fetchall() or [])


def load_leads(cur) -> list:
    cur.execute(
        """
        SELECT id, admin_user_id, customer_name, customer_phone, customer_email, customer_address,
               interested_item_id, notes, status, priority, follow_up_date, created_at, updated_at
        FROM leads
        ORDER BY id
        """
    )
    return list(cur.fetchall() or [])


def newest_first(rows, field: str = "created_at") -> list:
    # Ties (same timestamp) fall back to id so the order is stable.
    return sorted(rows, key=lambda r: (r.get(field) is not None, r.get(field), r.get("id") or 0), reverse=True)
