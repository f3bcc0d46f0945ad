"""
Stock ledger arithmetic.

There is no balance column anywhere: availability is always derived from the three
ledgers (lots, assignments, sales) at read time.

    total_purchased  = sum(lots.qty_purchased)             (adjustment lots may be negative)
    global_available = total_purchased - sum(assignments.qty_assigned)
    admin_available  = sum(admin's assignments) - sum(admin's sales)

Loaders scan the whole table and folds run in memory; nothing is cached between calls.
Inside a transaction the figures match what that transaction can see, nothing more.
"""

from typing import Iterable, Optional


def load_lots(cur) -> list:
    cur.execute(
        """
        SELECT id, item_id, qty_purchased, cost_price, selling_price, lot_kind, note, created_at
        FROM inventory_lots
        ORDER BY id
        """
    )
    return list(cur.fetchall() or [])


def load_assignments(cur) -> list:
    cur.execute(
        """
        SELECT id, item_id, admin_user_id, qty_assigned, source_lot_id, created_at
        FROM assignments
        ORDER BY id
        """
    )
    return list(cur.fetchall() or [])


def load_sales(cur) -> list:
    cur.execute(
        """
        SELECT id, item_id, admin_user_id, qty_sold, unit_price, total_price,
               customer_name, customer_address, customer_phone, created_at
        FROM sales
        ORDER BY id
        """
    )
    return list(cur.fetchall() or [])


def _sum(rows: Iterable[dict], field: str) -> int:
    return sum(int(r.get(field) or 0) for r in rows)


def total_purchased(lots: Iterable[dict], item_id: int) -> int:
    return _sum((l for l in lots if l["item_id"] == item_id), "qty_purchased")


def total_assigned(assignments: Iterable[dict], item_id: int, admin_id: Optional[int] = None) -> int:
    return _sum(
        (
            a for a in assignments
            if a["item_id"] == item_id and (admin_id is None or a["admin_user_id"] == admin_id)
        ),
        "qty_assigned",
    )


def total_sold(sales: Iterable[dict], item_id: int, admin_id: Optional[int] = None) -> int:
    return _sum(
        (
            s for s in sales
            if s["item_id"] == item_id and (admin_id is None or s["admin_user_id"] == admin_id)
        ),
        "qty_sold",
    )


def global_available(lots: Iterable[dict], assignments: Iterable[dict], item_id: int) -> int:
    return total_purchased(lots, item_id) - total_assigned(assignments, item_id)


def admin_available(assignments: Iterable[dict], sales: Iterable[dict], admin_id: int, item_id: int) -> int:
    return total_assigned(assignments, item_id, admin_id) - total_sold(sales, item_id, admin_id)


def first_lot_for_item(lots: Iterable[dict], item_id: int) -> Optional[dict]:
    # Any lot will do: source_lot_id is informational, lots are never drawn down (no FIFO).
    return next((l for l in lots if l["item_id"] == item_id), None)
