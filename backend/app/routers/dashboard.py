from fastapi import APIRouter, Depends
from datetime import date, datetime, timedelta
from typing import Optional
from decimal import Decimal

from ..deps import get_db
from ..schedule import add_months
from ..stock import load_assignments, load_lots, load_sales
from ..tables import load_categories, load_items, load_users
from .credit import credit_tables_exist

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


def _today() -> date:
    return date.today()


def _money(v) -> Decimal:
    return Decimal(str(v or 0))


def _sale_day(sale: dict):
    ts = sale.get("created_at")
    if isinstance(ts, datetime):
        return ts.date()
    if isinstance(ts, date):
        return ts
    return None


def _category_rows(categories: list, items: list, lots: list, assignments: list, sales: list) -> list:
    out = []
    for c in categories:
        item_ids = {i["id"] for i in items if i["category_id"] == c["id"]}
        cat_sales = [s for s in sales if s["item_id"] in item_ids]
        purchased = sum(int(l["qty_purchased"] or 0) for l in lots if l["item_id"] in item_ids)
        assigned = sum(int(a["qty_assigned"] or 0) for a in assignments if a["item_id"] in item_ids)
        out.append(
            {
                "category_id": c["id"],
                "category_name": c["name"],
                "revenue": sum((_money(s["total_price"]) for s in cat_sales), Decimal("0")),
                "total_purchased": purchased,
                "total_assigned": assigned,
                "total_sold": sum(int(s["qty_sold"] or 0) for s in cat_sales),
                "global_available": purchased - assigned,
            }
        )
    return out


def _daily_revenue(sales: list, today: date, days: int = 7) -> list:
    out = []
    for offset in range(days - 1, -1, -1):
        d = today - timedelta(days=offset)
        out.append(
            {
                "date": d,
                "revenue": sum((_money(s["total_price"]) for s in sales if _sale_day(s) == d), Decimal("0")),
            }
        )
    return out


def _monthly_revenue(sales: list, today: date, months: int = 6) -> list:
    first = today.replace(day=1)
    out = []
    for offset in range(months - 1, -1, -1):
        m = add_months(first, -offset)
        total = Decimal("0")
        for s in sales:
            d = _sale_day(s)
            if d and d.year == m.year and d.month == m.month:
                total += _money(s["total_price"])
        out.append({"month": m.strftime("%Y-%m"), "revenue": total})
    return out


@router.get("/summary")
def dashboard_summary(today: Optional[date] = None, db=Depends(get_db)):
    with db.connection() as conn:
        with conn.cursor() as cur:
            users = load_users(cur)
            categories = load_categories(cur)
            items = load_items(cur)
            lots = load_lots(cur)
            assignments = load_assignments(cur)
            sales = load_sales(cur)
            credit_sales = []
            if credit_tables_exist(cur):
                cur.execute("SELECT id, status, pending_balance FROM credit_sales ORDER BY id")
                credit_sales = list(cur.fetchall() or [])

    today = today or _today()
    by_category = _category_rows(categories, items, lots, assignments, sales)
    role_counts = {}
    for u in users:
        if u["role"] != "superadmin":
            role_counts[u["role"]] = role_counts.get(u["role"], 0) + 1

    return {
        "totals": {
            "total_stock": sum(int(l["qty_purchased"] or 0) for l in lots),
            "total_assigned": sum(int(a["qty_assigned"] or 0) for a in assignments),
            "total_sold": sum(int(s["qty_sold"] or 0) for s in sales),
            "total_sales_value": sum((_money(s["total_price"]) for s in sales), Decimal("0")),
            "pending_credit": sum(
                (_money(c["pending_balance"]) for c in credit_sales if c["status"] == "active"),
                Decimal("0"),
            ),
        },
        "category_revenue": [
            {"category_name": r["category_name"], "revenue": r["revenue"]}
            for r in by_category
            if r["revenue"] > 0
        ],
        "category_stock": by_category,
        "daily_revenue": _daily_revenue(sales, today),
        "monthly_revenue": _monthly_revenue(sales, today),
        "admins_by_role": role_counts,
    }
