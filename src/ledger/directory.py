"""
directory.py: Suppliers, inventory and customers.

Inventory items reference their supplier by id (supplier_id); the supplier
name on the item is only a display copy. Item codes are unique.
"""

import logging
from datetime import datetime

from src.ledger.amounts import parse_amount
from src.ledger.results import ok, fail, NOT_FOUND, VALIDATION

log = logging.getLogger("ledger.directory")

SUPPLIER_FIELDS = ("name", "contact", "email", "phone", "address")
CUSTOMER_FIELDS = ("name", "email", "phone", "address")


def _text(data: dict, fields) -> dict:
    return {f: str(data.get(f) or "").strip() for f in fields if f in data}


# ── Suppliers ─────────────────────────────────────────────────────────────────
def add_supplier(state, data: dict) -> dict:
    fields = _text(data, SUPPLIER_FIELDS)
    if not fields.get("name"):
        return fail(VALIDATION, "Supplier name required")
    if state.find_supplier_by_name(fields["name"]):
        return fail(VALIDATION, f"Supplier {fields['name']!r} already exists")
    supplier = {f: "" for f in SUPPLIER_FIELDS}
    supplier.update(fields)
    supplier["id"] = state.next_code("SUP")
    state.suppliers.append(supplier)
    state.log_activity("supplier_added", f"Added supplier: {supplier['name']}",
                       supplier_id=supplier["id"])
    return ok(supplier=supplier)


def update_supplier(state, supplier_id, data: dict) -> dict:
    supplier = state.find_supplier(supplier_id)
    if not supplier:
        return fail(NOT_FOUND, f"Supplier {supplier_id} not found")
    fields = _text(data, SUPPLIER_FIELDS)
    if "name" in fields:
        if not fields["name"]:
            return fail(VALIDATION, "Supplier name required")
        other = state.find_supplier_by_name(fields["name"])
        if other and other["id"] != supplier_id:
            return fail(VALIDATION, f"Supplier {fields['name']!r} already exists")
    supplier.update(fields)
    # keep display copies in step with the directory
    for item in state.inventory:
        if item.get("supplier_id") == supplier_id:
            item["supplier"] = supplier["name"]
    return ok(supplier=supplier)


def delete_supplier(state, supplier_id) -> dict:
    """Remove a supplier. Its items fall back to the unassigned bucket."""
    supplier = state.find_supplier(supplier_id)
    if not supplier:
        return fail(NOT_FOUND, f"Supplier {supplier_id} not found")
    state.suppliers.remove(supplier)
    orphaned = 0
    for item in state.inventory:
        if item.get("supplier_id") == supplier_id:
            item["supplier_id"] = None
            orphaned += 1
    if orphaned:
        log.warning("Supplier %s deleted; %d inventory items now unassigned",
                    supplier_id, orphaned)
    state.log_activity("supplier_deleted", f"Deleted supplier: {supplier['name']}",
                       supplier_id=supplier_id, orphaned_items=orphaned)
    return ok(supplier_id=supplier_id, orphaned_items=orphaned)


def list_suppliers(state) -> list:
    return list(state.suppliers)


# ── Inventory ─────────────────────────────────────────────────────────────────
def _resolve_supplier(state, data: dict):
    """Supplier from supplier_id, else by supplier name. (record|None, error|None)"""
    if data.get("supplier_id"):
        sup = state.find_supplier(data["supplier_id"])
        if not sup:
            return None, f"Supplier {data['supplier_id']} not found"
        return sup, None
    name = str(data.get("supplier") or "").strip()
    if not name:
        return None, None
    sup = state.find_supplier_by_name(name)
    if not sup:
        return None, f"Supplier {name!r} not found"
    return sup, None


def _item_numbers(data: dict, partial: bool):
    """Validated quantity/price. Returns (values, error)."""
    values = {}
    if "quantity" in data or not partial:
        qty = parse_amount(data.get("quantity", 0), allow_zero=True)
        if qty is None or qty != int(qty):
            return None, "Quantity must be a whole number ≥ 0"
        values["quantity"] = int(qty)
    if "price" in data or not partial:
        price = parse_amount(data.get("price", 0), allow_zero=True)
        if price is None:
            return None, "Price must be a number ≥ 0"
        values["price"] = price
    return values, None


def add_item(state, data: dict) -> dict:
    code = str(data.get("code") or "").strip()
    name = str(data.get("name") or "").strip()
    if not code or not name:
        return fail(VALIDATION, "Item code and name required")
    if state.find_item_by_code(code):
        return fail(VALIDATION, f"Item code {code} already exists")
    sup, err = _resolve_supplier(state, data)
    if err:
        return fail(NOT_FOUND, err)
    numbers, err = _item_numbers(data, partial=False)
    if err:
        return fail(VALIDATION, err)

    item = {
        "code": code,
        "name": name,
        "type": str(data.get("type") or "").strip(),
        "supplier_id": sup["id"] if sup else None,
        "supplier": sup["name"] if sup else "",
        "description": str(data.get("description") or "").strip(),
        "created_at": datetime.now().isoformat(),
    }
    item.update(numbers)
    state.inventory.append(item)
    state.log_activity("item_added",
                       f"Added new {item['type'] or 'item'}: {item['name']}", code=code)
    return ok(item=item)


def update_item(state, code, data: dict) -> dict:
    item = state.find_item_by_code(code)
    if not item:
        return fail(NOT_FOUND, f"Item {code} not found")
    changes = {}
    if "name" in data:
        name = str(data.get("name") or "").strip()
        if not name:
            return fail(VALIDATION, "Item name required")
        changes["name"] = name
    for f in ("type", "description"):
        if f in data:
            changes[f] = str(data.get(f) or "").strip()
    if "supplier_id" in data or "supplier" in data:
        sup, err = _resolve_supplier(state, data)
        if err:
            return fail(NOT_FOUND, err)
        changes["supplier_id"] = sup["id"] if sup else None
        changes["supplier"] = sup["name"] if sup else ""
    numbers, err = _item_numbers(data, partial=True)
    if err:
        return fail(VALIDATION, err)
    changes.update(numbers)
    item.update(changes)
    item["updated_at"] = datetime.now().isoformat()
    return ok(item=item)


def delete_item(state, code) -> dict:
    item = state.find_item_by_code(code)
    if not item:
        return fail(NOT_FOUND, f"Item {code} not found")
    state.inventory.remove(item)
    state.log_activity("item_deleted", f"Deleted item: {item['name']}", code=code)
    return ok(code=code)


def list_inventory(state, item_type=None) -> list:
    """All items, or only those of one type (`all` means no filter)."""
    if item_type and item_type != "all":
        return [it for it in state.inventory if it.get("type") == item_type]
    return list(state.inventory)


# ── Customers ─────────────────────────────────────────────────────────────────
def add_customer(state, data: dict) -> dict:
    fields = _text(data, CUSTOMER_FIELDS)
    if not fields.get("name"):
        return fail(VALIDATION, "Customer name required")
    customer = {f: "" for f in CUSTOMER_FIELDS}
    customer.update(fields)
    customer["id"] = state.next_code("CUST")
    customer["created_at"] = datetime.now().isoformat()
    state.customers.append(customer)
    state.log_activity("customer_added", f"Added customer: {customer['name']}",
                       customer_id=customer["id"])
    return ok(customer=customer)


def update_customer(state, customer_id, data: dict) -> dict:
    customer = state.find_customer(customer_id)
    if not customer:
        return fail(NOT_FOUND, f"Customer {customer_id} not found")
    fields = _text(data, CUSTOMER_FIELDS)
    if "name" in fields and not fields["name"]:
        return fail(VALIDATION, "Customer name required")
    customer.update(fields)
    # projects carry a denormalized name
    if "name" in fields:
        for project in state.projects:
            if project.get("customer_id") == customer_id:
                project["customer_name"] = customer["name"]
    return ok(customer=customer)


def list_customers(state) -> list:
    return list(state.customers)
