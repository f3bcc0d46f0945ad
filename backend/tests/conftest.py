import copy
import os
import re
import sys
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone

import psycopg
import pytest


# Allow running pytest from either the repo root or from within `backend/`.
# Tests import `backend.*`, which requires the repo root on sys.path.
REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)


BASE_TABLES = ("users", "categories", "items", "inventory_lots", "assignments", "sales", "leads", "audit_logs")

# Column defaults the real schema fills in on INSERT.
DEFAULTS = {
    "users": {"is_active": True, "password": None},
    "categories": {"description": None},
    "inventory_lots": {"lot_kind": "purchase", "note": None, "cost_price": 0, "selling_price": 0},
    "leads": {"status": "new", "priority": "medium"},
    "audit_logs": {"details": None},
    "credit_sales": {"status": "active"},
    "credit_payments": {"amount_paid": 0, "status": "pending", "paid_at": None},
}

_INSERT = re.compile(r"^insert into (\w+) \(([^)]*)\) values \(([^)]*)\)(?: returning (.+))?$")
_SELECT = re.compile(r"^select (.+?) from (\w+)(?: where (.+?))?(?: order by (\w+))?(?: limit (\d+))?$")
_UPDATE = re.compile(r"^update (\w+) set (.+?) where (.+?)(?: returning (.+))?$")
_DELETE = re.compile(r"^delete from (\w+) where (.+?)(?: returning (.+))?$")
_REGCLASS = re.compile(r"^select to_regclass\('public\.(\w+)'\) is not null as ok$")


def _cols(raw: str) -> list:
    return [c.strip() for c in raw.split(",") if c.strip()]


class FakeStore:
    """
    In-memory tables that understand the small, parameterized SQL dialect the handlers use:
    single-table INSERT/SELECT/UPDATE/DELETE with `col = %s` predicates joined by AND.
    """

    def __init__(self):
        self.tables = {name: [] for name in BASE_TABLES}
        self.seq = {}
        self.fail_on = set()  # {("insert", "audit_logs"), ...}
        self.ddl_runs = 0
        self.executed = []
        self._clock = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        self._clock += timedelta(seconds=1)
        return self._clock

    def add(self, table: str, **values) -> dict:
        self.seq[table] = self.seq.get(table, 0) + 1
        row = {"id": self.seq[table], "created_at": self.now(), **DEFAULTS.get(table, {})}
        if table in {"leads", "credit_sales"}:
            row["updated_at"] = row["created_at"]
        row.update(values)
        self.tables.setdefault(table, []).append(row)
        return row

    def rows(self, table: str) -> list:
        return self.tables.get(table, [])

    def snapshot(self):
        return copy.deepcopy((self.tables, self.seq))

    def restore(self, snap) -> None:
        self.tables, self.seq = copy.deepcopy(snap)

    def _table(self, name: str) -> list:
        if name not in self.tables:
            raise psycopg.ProgrammingError(f'relation "{name}" does not exist')
        return self.tables[name]

    def _check_fail(self, verb: str, table: str) -> None:
        if (verb, table) in self.fail_on:
            raise psycopg.OperationalError(f"simulated failure on {verb} {table}")


def _match(row: dict, where: str, params: list) -> bool:
    for cond in where.split(" and "):
        col, _, _ = cond.partition("=")
        if row.get(col.strip()) != params.pop(0):
            return False
    return True


def _project(row: dict, cols) -> dict:
    return {c: row.get(c) for c in cols}


class FakeCursor:
    def __init__(self, store: FakeStore):
        self.store = store
        self._rows = []

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def execute(self, sql, params=None):
        text = " ".join(str(sql or "").lower().split())
        params = list(params or [])
        self.store.executed.append((text, tuple(params)))
        self._rows = []

        m = _REGCLASS.match(text)
        if m:
            self._rows = [{"ok": m.group(1) in self.store.tables}]
            return

        if text.startswith("create table if not exists"):
            self.store.tables.setdefault(text.split()[5], [])
            self.store.ddl_runs += 1
            return

        m = _INSERT.match(text)
        if m:
            table, cols, values, returning = m.groups()
            self.store._check_fail("insert", table)
            self.store._table(table)
            cols = _cols(cols)
            assert len(cols) == len(_cols(values)) == len(params), text
            row = self.store.add(table, **dict(zip(cols, params)))
            if returning:
                self._rows = [_project(row, _cols(returning))]
            return

        m = _SELECT.match(text)
        if m:
            cols, table, where, order_by, limit = m.groups()
            self.store._check_fail("select", table)
            rows = [r for r in self.store._table(table) if not where or _match(r, where, list(params))]
            if order_by:
                rows = sorted(rows, key=lambda r: r.get(order_by))
            if limit:
                rows = rows[: int(limit)]
            self._rows = [_project(r, _cols(cols)) for r in rows]
            return

        m = _UPDATE.match(text)
        if m:
            table, assignments, where, returning = m.groups()
            self.store._check_fail("update", table)
            set_cols = [a.partition("=")[0].strip() for a in assignments.split(",")]
            set_params, where_params = params[: len(set_cols)], params[len(set_cols):]
            for row in self.store._table(table):
                if _match(row, where, list(where_params)):
                    row.update(dict(zip(set_cols, set_params)))
                    if returning:
                        self._rows.append(_project(row, _cols(returning)))
            return

        m = _DELETE.match(text)
        if m:
            table, where, returning = m.groups()
            self.store._check_fail("delete", table)
            keep, gone = [], []
            for row in self.store._table(table):
                (gone if _match(row, where, list(params)) else keep).append(row)
            self.store.tables[table] = keep
            if returning:
                self._rows = [_project(r, _cols(returning)) for r in gone]
            return

        raise AssertionError(f"unexpected SQL in fake cursor: {text}")

    def fetchone(self):
        return self._rows[0] if self._rows else None

    def fetchall(self):
        return list(self._rows)


class FakeConnection:
    def __init__(self, store: FakeStore):
        self.store = store

    def cursor(self):
        return FakeCursor(self.store)

    @contextmanager
    def transaction(self):
        # Same shape as psycopg: outer block is BEGIN/COMMIT, nested blocks are savepoints.
        snap = self.store.snapshot()
        try:
            yield self
        except BaseException:
            self.store.restore(snap)
            raise


class FakeDatabase:
    def __init__(self):
        self.store = FakeStore()
        self.acquired = 0
        self.released = 0

    @contextmanager
    def connection(self):
        self.acquired += 1
        snap = self.store.snapshot()
        try:
            yield FakeConnection(self.store)
        except BaseException:
            self.store.restore(snap)
            raise
        finally:
            self.released += 1


@pytest.fixture
def db():
    return FakeDatabase()


@pytest.fixture
def shop(db):
    """Superadmin (id 1), two category admins, one category and one item (X) priced 80."""
    store = db.store
    superadmin = store.add("users", name="Owner", email="owner@shop.test", role="superadmin")
    admin_a = store.add("users", name="Admin A", email="a@shop.test", role="book_admin")
    admin_b = store.add("users", name="Admin B", email="b@shop.test", role="counter_admin")
    books = store.add("categories", name="Books", description="Printed books")
    item_x = store.add("items", category_id=books["id"], name="Item X", sku="X-1", default_selling_price=80)
    return {
        "db": db,
        "superadmin": superadmin,
        "admin_a": admin_a,
        "admin_b": admin_b,
        "category": books,
        "item": item_x,
    }
