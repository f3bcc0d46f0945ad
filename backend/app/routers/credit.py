from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

from ..audit import log_action
from ..deps import get_db
from ..jsonlog import json_log
from ..outcomes import LedgerError, ledger_operation, ok
from ..schedule import emi_due_dates, resolve_pay_later_date
from ..stock import admin_available, load_assignments, load_sales
from ..tables import get_user, load_items, load_users, newest_first
from ..validation import EmailAddress, OptionalText, PaymentType, PhoneNumber, RequiredText
from .sales import insert_sale

router = APIRouter(prefix="/credit-sales", tags=["credit"])

# Credit tables are not part of 001_init.sql: the first credit sale creates them.
CREDIT_SALES_DDL = """
CREATE TABLE IF NOT EXISTS credit_sales (
  id BIGINT GENERATED BY DEFAULT AS IDENTITY PRIMARY KEY,
  item_id BIGINT NOT NULL REFERENCES items(id),
  admin_user_id BIGINT NOT NULL REFERENCES users(id),
  customer_name TEXT NOT NULL,
  customer_email TEXT NOT NULL,
  customer_phone TEXT NOT NULL,
  total_price NUMERIC(12,2) NOT NULL,
  down_payment NUMERIC(12,2) NOT NULL DEFAULT 0,
  pending_balance NUMERIC(12,2) NOT NULL,
  payment_type TEXT NOT NULL CHECK (payment_type IN ('emi', 'pay_later')),
  emi_periods INTEGER NOT NULL DEFAULT 1,
  monthly_emi NUMERIC(12,2) NOT NULL DEFAULT 0,
  pay_later_date DATE,
  status TEXT NOT NULL DEFAULT 'active' CHECK (status IN ('active', 'completed', 'defaulted')),
  created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
  updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
)
"""

CREDIT_PAYMENTS_DDL = """
CREATE TABLE IF NOT EXISTS credit_payments (
  id BIGINT GENERATED BY DEFAULT AS IDENTITY PRIMARY KEY,
  credit_sale_id BIGINT NOT NULL REFERENCES credit_sales(id) ON DELETE CASCADE,
  installment_no INTEGER NOT NULL,
  due_date DATE NOT NULL,
  amount_due NUMERIC(12,2) NOT NULL,
  amount_paid NUMERIC(12,2) NOT NULL DEFAULT 0,
  status TEXT NOT NULL DEFAULT 'pending' CHECK (status IN ('pending', 'paid', 'overdue')),
  paid_at TIMESTAMPTZ,
  created_at TIMESTAMPTZ NOT NULL DEFAULT now()
)
"""

MONEY_EPS = Decimal("0.01")


def _today() -> date:
    return date.today()


class CreditSaleIn(BaseModel):
    item_id: int
    admin_id: int
    customer_name: RequiredText
    customer_email: EmailAddress
    customer_phone: PhoneNumber
    total_price: Decimal = Field(ge=0)
    down_payment: Decimal = Field(ge=0)
    payment_type: PaymentType
    emi_periods: int = Field(default=1, ge=1)
    pay_later_date: OptionalText = None
    # Derived client-side; stored as given (see _check_derived_amounts).
    pending_balance: Decimal
    monthly_emi: Decimal


class CreditCompleteIn(BaseModel):
    sale_id: int
    user_id: Optional[int] = None


def ensure_credit_tables(cur) -> None:
    cur.execute(CREDIT_SALES_DDL)
    cur.execute(CREDIT_PAYMENTS_DDL)


def credit_tables_exist(cur) -> bool:
    # Read paths never bootstrap: before the first credit sale there is simply nothing to show.
    cur.execute("SELECT to_regclass('public.credit_sales') IS NOT NULL AS ok")
    return bool((cur.fetchone() or {}).get("ok"))


def _check_derived_amounts(data: CreditSaleIn) -> None:
    expected_pending = data.total_price - data.down_payment
    if data.payment_type == "emi":
        expected_emi = expected_pending / Decimal(data.emi_periods)
    else:
        expected_emi = expected_pending
    if abs(expected_pending - data.pending_balance) > MONEY_EPS or abs(expected_emi - data.monthly_emi) > MONEY_EPS:
        json_log(
            "warn",
            "credit.sale.derived_mismatch",
            item_id=data.item_id,
            admin_id=data.admin_id,
            pending_balance=data.pending_balance,
            expected_pending_balance=expected_pending,
            monthly_emi=data.monthly_emi,
            expected_monthly_emi=expected_emi,
        )


def _payment_schedule(data: CreditSaleIn, pay_later_date: Optional[str], today: date) -> list:
    if data.payment_type == "emi":
        return [
            (n, due, data.monthly_emi)
            for n, due in enumerate(emi_due_dates(data.emi_periods, today), start=1)
        ]
    return [(1, pay_later_date, data.pending_balance)]


@router.post("")
@ledger_operation("credit.sale.record", "Failed to record credit sale.")
def record_credit_sale(data: CreditSaleIn, db=Depends(get_db)):
    """
    Sell exactly one unit on credit (EMI or pay-later).

    One transaction: bootstrap the credit tables, write the credit sale and its full
    installment schedule, then mirror a 1-unit row into `sales` so the stock ledger sees
    the unit leave the admin's allotment.
    """
    today = _today()
    _check_derived_amounts(data)

    pay_later_date = None
    emi_periods = data.emi_periods
    if data.payment_type == "pay_later":
        pay_later_date = resolve_pay_later_date(data.pay_later_date, today)
        if not pay_later_date:
            raise LedgerError("A valid pay later date is required.")
        emi_periods = 1

    with db.connection() as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                available = admin_available(load_assignments(cur), load_sales(cur), data.admin_id, data.item_id)
                if available <= 0:
                    raise LedgerError("No available stock")

                ensure_credit_tables(cur)

                cur.execute(
                    """
                    INSERT INTO credit_sales (item_id, admin_user_id, customer_name, customer_email, customer_phone,
                                              total_price, down_payment, pending_balance, payment_type,
                                              emi_periods, monthly_emi, pay_later_date, status)
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                    RETURNING id
                    """,
                    (
                        data.item_id,
                        data.admin_id,
                        data.customer_name,
                        data.customer_email,
                        data.customer_phone,
                        data.total_price,
                        data.down_payment,
                        data.pending_balance,
                        data.payment_type,
                        emi_periods,
                        data.monthly_emi,
                        pay_later_date,
                        "active",
                    ),
                )
                credit_sale_id = cur.fetchone()["id"]

                for installment_no, due_date, amount in _payment_schedule(data, pay_later_date, today):
                    cur.execute(
                        """
                        INSERT INTO credit_payments (credit_sale_id, installment_no, due_date, amount_due)
                        VALUES (%s, %s, %s, %s)
                        """,
                        (credit_sale_id, installment_no, due_date, amount),
                    )

                # Mirror row: 1 unit at the full credit price, no address.
                sale_id = insert_sale(
                    cur,
                    data.item_id,
                    data.admin_id,
                    1,
                    data.total_price,
                    data.total_price,
                    data.customer_name,
                    None,
                    data.customer_phone,
                )

            label = "Credit Sale (EMI)" if data.payment_type == "emi" else "Credit Sale (Pay Later)"
            log_action(conn, data.admin_id, "CREATE", label, credit_sale_id, {"sale_id": sale_id})
    return ok("Credit sale recorded successfully.", credit_sale_id=credit_sale_id, sale_id=sale_id)


@router.post("/complete")
@ledger_operation("credit.sale.complete", "Failed to update credit sale.")
def mark_credit_sale_completed(data: CreditCompleteIn, db=Depends(get_db)):
    # Only the credit sale row changes; its credit_payments rows keep their original status.
    with db.connection() as conn:
        with conn.transaction():
            with conn.cursor() as cur:
                if not credit_tables_exist(cur):
                    raise LedgerError("Credit sale not found.")
                cur.execute(
                    """
                    UPDATE credit_sales
                    SET status = %s, pending_balance = %s, updated_at = %s
                    WHERE id = %s
                    RETURNING id, admin_user_id
                    """,
                    ("completed", 0, datetime.now(timezone.utc), data.sale_id),
                )
                row = cur.fetchone()
                if not row:
                    raise LedgerError("Credit sale not found.")
            log_action(conn, data.user_id or row["admin_user_id"], "UPDATE", "CreditSale", data.sale_id)
    return ok("Credit sale marked as completed.")


def _credit_summary(rows: list) -> dict:
    active = [r for r in rows if r["status"] == "active"]
    return {
        "total": len(rows),
        "active": len(active),
        "completed": sum(1 for r in rows if r["status"] == "completed"),
        "defaulted": sum(1 for r in rows if r["status"] == "defaulted"),
        "pending_balance": sum((Decimal(str(r["pending_balance"] or 0)) for r in active), Decimal("0")),
        "down_payments": sum((Decimal(str(r["down_payment"] or 0)) for r in rows), Decimal("0")),
    }


@router.get("")
def list_credit_sales(user_id: Optional[int] = None, db=Depends(get_db)):
    with db.connection() as conn:
        with conn.cursor() as cur:
            viewer = get_user(cur, user_id) if user_id is not None else None
            if not viewer or not credit_tables_exist(cur):
                return {"credit_sales": [], "summary": _credit_summary([])}
            cur.execute(
                """
                SELECT id, item_id, admin_user_id, customer_name, customer_email, customer_phone,
                       total_price, down_payment, pending_balance, payment_type, emi_periods,
                       monthly_emi, pay_later_date, status, created_at, updated_at
                FROM credit_sales
                ORDER BY id
                """
            )
            credit_sales = list(cur.fetchall() or [])
            items = load_items(cur)
            users = load_users(cur)

    if viewer["role"] != "superadmin":
        credit_sales = [r for r in credit_sales if r["admin_user_id"] == viewer["id"]]

    item_names = {i["id"]: i["name"] for i in items}
    admin_names = {u["id"]: u["name"] for u in users}
    rows = [
        {
            **r,
            "item_name": item_names.get(r["item_id"]) or "Unknown Item",
            "admin_name": admin_names.get(r["admin_user_id"]) or "Unknown Admin",
        }
        for r in credit_sales
    ]
    return {"credit_sales": newest_first(rows), "summary": _credit_summary(rows)}


@router.get("/{credit_sale_id}/payments")
def list_credit_payments(credit_sale_id: int, db=Depends(get_db)):
    with db.connection() as conn:
        with conn.cursor() as cur:
            if not credit_tables_exist(cur):
                return {"payments": []}
            cur.execute(
                """
                SELECT id, credit_sale_id, installment_no, due_date, amount_due, amount_paid, status, paid_at, created_at
                FROM credit_payments
                WHERE credit_sale_id = %s
                ORDER BY installment_no
                """,
                (credit_sale_id,),
            )
            return {"payments": cur.fetchall()}
