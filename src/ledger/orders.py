"""
orders.py: Manually created purchase orders.

Manual orders have no project link and never touch a project's balances.
Lines name an inventory item; the unit price comes from inventory unless
the line carries its own unit_price.
"""

import logging
from datetime import datetime

from dateutil.parser import parse as parse_date

from src.ledger.amounts import money, parse_amount
from src.ledger.quotes import line_total
from src.ledger.results import ok, fail, NOT_FOUND, VALIDATION, INVALID_STATE

log = logging.getLogger("ledger.orders")

ORDER_STATUSES = ("pending", "settled")


def normalize_date(value) -> tuple:
    """Any recognizable date → YYYY-MM-DD. Empty → today. Returns (date, error)."""
    if not value:
        return datetime.now().strftime("%Y-%m-%d"), None
    try:
        return parse_date(str(value)).strftime("%Y-%m-%d"), None
    except (ValueError, OverflowError):
        return None, f"Unrecognized date {value!r}"


def new_order(state, supplier_id, supplier, items, date, project_id=None, notes="") -> dict:
    """Build a purchase order record with the next PO id. Not added to state.

    An order with nothing to pay is settled on the spot.
    """
    total = money(sum(line_total(it) for it in items))
    settled = total <= 0
    return {
        "id": state.next_code("PO"),
        "project_id": project_id,
        "supplier_id": supplier_id,
        "supplier": supplier,
        "date": date,
        "items": items,
        "total_amount": total,
        "status": "settled" if settled else "pending",
        "paid_amount": 0.0,
        "paid_date": date if settled else None,
        "payments": [],
        "notes": notes or "",
    }


def create_manual_order(state, supplier, lines, date=None, notes="") -> dict:
    """Create an ad hoc purchase order (no project)."""
    sup = state.find_supplier(supplier) or state.find_supplier_by_name(supplier)
    if not sup:
        return fail(NOT_FOUND, f"Supplier {supplier!r} not found")
    if not lines:
        return fail(VALIDATION, "At least one item is required")
    order_date, err = normalize_date(date)
    if err:
        return fail(VALIDATION, err)

    items = []
    for n, raw in enumerate(lines, start=1):
        name = str((raw or {}).get("name") or "").strip()
        qty = parse_amount((raw or {}).get("quantity"))
        if not name or qty is None or qty != int(qty):
            return fail(VALIDATION, f"line {n}: item name and whole quantity > 0 required")
        inv = state.find_inventory_item(name)
        if "unit_price" in raw:
            price = parse_amount(raw["unit_price"], allow_zero=True)
            if price is None:
                return fail(VALIDATION, f"line {n} ({name}): unit price must be a number ≥ 0")
        elif inv:
            price = money(inv.get("price", 0))
        else:
            return fail(NOT_FOUND, f"line {n}: inventory item {name!r} not found")
        items.append({"name": inv["name"] if inv else name,
                      "quantity": int(qty), "unit_price": price})

    order = new_order(state, sup["id"], sup["name"], items, order_date, notes=notes)
    state.orders.append(order)
    state.log_activity("order_created",
                       f"PO {order['id']} to {sup['name']}: ${order['total_amount']:,.2f}",
                       order_id=order["id"])
    log.info("Manual PO %s → %s ($%.2f, %d lines)", order["id"], sup["name"],
             order["total_amount"], len(items), extra={"order_id": order["id"]})
    return ok(order=order)


def delete_order(state, order_id) -> dict:
    """Delete an unpaid manual order. Project orders and paid orders stay."""
    order = state.find_order(order_id)
    if not order:
        return fail(NOT_FOUND, f"Purchase order {order_id} not found")
    if order.get("project_id"):
        return fail(INVALID_STATE,
                    f"Purchase order {order_id} belongs to project {order['project_id']}")
    if order.get("paid_amount", 0) > 0:
        return fail(INVALID_STATE, f"Purchase order {order_id} has payments recorded")
    state.orders.remove(order)
    state.log_activity("order_deleted", f"Deleted PO {order_id}", order_id=order_id)
    return ok(order_id=order_id)


def list_orders(state, status=None, project_id=None) -> list:
    orders = state.orders
    if status:
        orders = [o for o in orders if o.get("status") == status]
    if project_id:
        orders = [o for o in orders if o.get("project_id") == project_id]
    return list(orders)
