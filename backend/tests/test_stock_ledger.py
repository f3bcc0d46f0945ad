from decimal import Decimal

from backend.app.routers import inventory
from backend.app.routers.assignments import AssignStockIn, assign_stock
from backend.app.routers.inventory import InventoryIn, InventoryPriceIn, QuantityAdjustIn
from backend.app.stock import (
    admin_available,
    first_lot_for_item,
    global_available,
    total_assigned,
    total_purchased,
    total_sold,
)


LOTS = [
    {"id": 1, "item_id": 1, "qty_purchased": 100},
    {"id": 2, "item_id": 2, "qty_purchased": 40},
    {"id": 3, "item_id": 1, "qty_purchased": -7},
]
ASSIGNMENTS = [
    {"id": 1, "item_id": 1, "admin_user_id": 2, "qty_assigned": 30},
    {"id": 2, "item_id": 1, "admin_user_id": 3, "qty_assigned": 10},
    {"id": 3, "item_id": 2, "admin_user_id": 2, "qty_assigned": 5},
]
SALES = [
    {"id": 1, "item_id": 1, "admin_user_id": 2, "qty_sold": 5},
    {"id": 2, "item_id": 1, "admin_user_id": 2, "qty_sold": 1},
    {"id": 3, "item_id": 1, "admin_user_id": 3, "qty_sold": 4},
]


def test_folds_sum_per_item_and_admin():
    assert total_purchased(LOTS, 1) == 93
    assert total_assigned(ASSIGNMENTS, 1) == 40
    assert total_assigned(ASSIGNMENTS, 1, admin_id=2) == 30
    assert total_sold(SALES, 1) == 10
    assert total_sold(SALES, 1, admin_id=3) == 4


def test_availability_conserves_units():
    purchased = total_purchased(LOTS, 1)
    pooled = global_available(LOTS, ASSIGNMENTS, 1)
    held = admin_available(ASSIGNMENTS, SALES, 2, 1) + admin_available(ASSIGNMENTS, SALES, 3, 1)
    assert pooled == 53
    assert held == 30
    assert pooled + held + total_sold(SALES, 1) == purchased


def test_unknown_item_folds_to_zero():
    assert total_purchased(LOTS, 99) == 0
    assert global_available(LOTS, ASSIGNMENTS, 99) == 0
    assert admin_available(ASSIGNMENTS, SALES, 2, 99) == 0
    assert first_lot_for_item(LOTS, 99) is None
    assert first_lot_for_item(LOTS, 1)["id"] == 1


def test_add_inventory_appends_lot_and_audits(shop):
    db = shop["db"]
    res = inventory.add_inventory(InventoryIn(item_id=1, quantity=100, cost_price=50, selling_price=80), db=db)
    assert res["success"] == "Inventory added successfully."

    lots = db.store.rows("inventory_lots")
    assert len(lots) == 1
    assert lots[0]["qty_purchased"] == 100
    assert lots[0]["lot_kind"] == "purchase"
    (log,) = db.store.rows("audit_logs")
    assert (log["action"], log["entity_type"], log["entity_id"], log["user_id"]) == ("CREATE", "InventoryLot", res["lot_id"], 1)


def test_adjustment_is_a_signed_compensating_lot(shop):
    db = shop["db"]
    inventory.add_inventory(InventoryIn(item_id=1, quantity=10, cost_price=50, selling_price=80), db=db)

    down = inventory.adjust_inventory_quantity(QuantityAdjustIn(item_id=1, adjustment=-4, reason="Water damage", user_id=1), db=db)
    up = inventory.adjust_inventory_quantity(QuantityAdjustIn(item_id=1, adjustment=3, reason="Recount", user_id=1), db=db)
    assert down["success"] == "Inventory quantity adjusted by -4 successfully."
    assert up["success"] == "Inventory quantity adjusted by +3 successfully."

    adj = [l for l in db.store.rows("inventory_lots") if l["lot_kind"] == "adjustment"]
    assert [(l["qty_purchased"], l["note"], l["cost_price"], l["selling_price"]) for l in adj] == [
        (-4, "Water damage", 0, 0),
        (3, "Recount", 0, 0),
    ]
    assert total_purchased(db.store.rows("inventory_lots"), 1) == 9
    assert [l["action"] for l in db.store.rows("audit_logs")][-2:] == ["ADJUST", "ADJUST"]


def test_adjustment_may_drive_total_negative(shop):
    db = shop["db"]
    inventory.add_inventory(InventoryIn(item_id=1, quantity=2, cost_price=50, selling_price=80), db=db)
    res = inventory.adjust_inventory_quantity(QuantityAdjustIn(item_id=1, adjustment=-5, reason="Lost", user_id=1), db=db)
    assert "success" in res
    store = db.store
    assert global_available(store.rows("inventory_lots"), store.rows("assignments"), 1) == -3


def test_update_inventory_reprices_every_lot_and_the_item(shop):
    db = shop["db"]
    inventory.add_inventory(InventoryIn(item_id=1, quantity=10, cost_price=50, selling_price=80), db=db)
    inventory.add_inventory(InventoryIn(item_id=1, quantity=5, cost_price=52, selling_price=82), db=db)

    res = inventory.update_inventory(InventoryPriceIn(item_id=1, cost_price=55, selling_price=90, user_id=1), db=db)
    assert res == {"success": "Inventory updated successfully."}
    assert {(l["cost_price"], l["selling_price"]) for l in db.store.rows("inventory_lots")} == {(Decimal("55"), Decimal("90"))}
    assert db.store.rows("items")[0]["default_selling_price"] == Decimal("90")


def test_update_inventory_unknown_item(shop):
    db = shop["db"]
    res = inventory.update_inventory(InventoryPriceIn(item_id=42, cost_price=1, selling_price=2, user_id=1), db=db)
    assert res == {"error": "Item not found."}
    assert db.store.rows("audit_logs") == []


def test_delete_inventory_item_is_blocked_by_assignments(shop):
    db = shop["db"]
    inventory.add_inventory(InventoryIn(item_id=1, quantity=10, cost_price=50, selling_price=80), db=db)
    assign_stock(AssignStockIn(item_id=1, admin_id=2, quantity=1, user_id=1), db=db)

    res = inventory.delete_inventory_item(1, user_id=1, db=db)
    assert res == {"error": "Cannot delete item with existing assignments."}
    assert len(db.store.rows("inventory_lots")) == 1


def test_delete_inventory_item_drops_lots_but_keeps_item(shop):
    db = shop["db"]
    inventory.add_inventory(InventoryIn(item_id=1, quantity=10, cost_price=50, selling_price=80), db=db)

    res = inventory.delete_inventory_item(1, user_id=1, db=db)
    assert res == {"success": "Inventory item deleted successfully."}
    assert db.store.rows("inventory_lots") == []
    assert len(db.store.rows("items")) == 1
    assert db.store.rows("audit_logs")[-1]["action"] == "DELETE"


def test_inventory_overview_rows(shop):
    db = shop["db"]
    store = db.store
    store.add("items", category_id=None, name="Loose Item", sku="L-1", default_selling_price=15)
    inventory.add_inventory(InventoryIn(item_id=1, quantity=100, cost_price=50, selling_price=80), db=db)
    assign_stock(AssignStockIn(item_id=1, admin_id=2, quantity=30, user_id=1), db=db)
    inventory.adjust_inventory_quantity(QuantityAdjustIn(item_id=1, adjustment=-10, reason="Damaged", user_id=1), db=db)

    rows = {r["item_id"]: r for r in inventory.inventory_overview(db=db)["inventory"]}
    x = rows[1]
    assert (x["total_purchased"], x["total_assigned"], x["global_available"]) == (90, 30, 60)
    assert x["category_name"] == "Books"
    # Latest lot is a zero-priced adjustment: the item's list price is shown instead.
    assert x["selling_price"] == Decimal("80")

    loose = rows[2]
    assert loose["category_name"] == "Uncategorized"
    assert (loose["total_purchased"], loose["global_available"]) == (0, 0)
    assert loose["selling_price"] == Decimal("15")
