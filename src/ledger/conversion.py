"""
conversion.py: Quote → Project + supplier Purchase Orders

WORKFLOW (quote accepted, customer pays an advance):
  1. Reject quotes with no items, resolve the customer
  2. Compute subtotal / profit / total
  3. Validate the advance against the total (advance_policy setting)
  4. Partition items by the supplier of their inventory match
  5. One pending PO per supplier partition, linked back to the project
  6. Project carries total_po_cost = Σ PO totals = quote subtotal
  7. Originating lead → won, quote → converted

Everything is validated before the first mutation. The caller (LedgerService)
commits the project, its orders, the quote and the lead in one save.
"""

import logging
from datetime import datetime

from src.ledger.amounts import money, parse_amount
from src.ledger.orders import new_order
from src.ledger.quotes import compute_totals, clean_items, create_quote, CONVERTED
from src.ledger.leads import WON, LOST, set_stage
from src.ledger.results import (ok, fail, NOT_FOUND, INVALID_AMOUNT, OVERPAYMENT,
                                INVALID_STATE, VALIDATION)
from src.ledger.state import UNASSIGNED

log = logging.getLogger("ledger.conversion")

DEFAULT_UNKNOWN_SUPPLIER = "Unknown Supplier"


def partition_by_supplier(state, items: list, unknown_name: str = None) -> dict:
    """Group quote items by the supplier of the inventory item with the same name.

    Returns {supplier_id or UNASSIGNED: {"supplier_id", "supplier", "items"}},
    in first-seen order. Every item lands in exactly one partition; items with
    no inventory match or no resolvable supplier go to UNASSIGNED.
    """
    unknown_name = unknown_name or DEFAULT_UNKNOWN_SUPPLIER
    partitions = {}
    unmatched = 0
    for line in items:
        inv = state.find_inventory_item(line.get("name"))
        sup = state.find_supplier(inv.get("supplier_id")) if inv else None
        key = sup["id"] if sup else UNASSIGNED
        if key is UNASSIGNED:
            unmatched += 1
        part = partitions.get(key)
        if part is None:
            part = partitions[key] = {
                "supplier_id": key,
                "supplier": sup["name"] if sup else unknown_name,
                "items": [],
            }
        part["items"].append(line)
    if unmatched:
        log.warning("%d of %d quote items have no supplier match → %s",
                    unmatched, len(items), unknown_name)
    return partitions


def _check_advance(advance, total: float, settings: dict):
    """Returns (amount, None) or (None, failure result)."""
    amount = parse_amount(advance, allow_zero=True)
    if amount is None:
        return None, fail(INVALID_AMOUNT, "Advance must be a number ≥ 0")
    if amount > total and settings.get("advance_policy") != "allow":
        return None, fail(OVERPAYMENT,
                          f"Advance ${amount:,.2f} exceeds quote total ${total:,.2f}",
                          total=total)
    return amount, None


def convert_quote(state, quote_id, advance, settings: dict = None) -> dict:
    """Turn a draft quote into a Project plus one Purchase Order per supplier."""
    settings = settings or {}
    quote = state.find_quote(quote_id)
    if not quote:
        return fail(NOT_FOUND, f"Quote {quote_id} not found")
    if not quote.get("items"):
        return fail(VALIDATION, f"Quote {quote_id} has no items to convert")
    if quote.get("status") == CONVERTED:
        return fail(INVALID_STATE,
                    f"Quote {quote_id} already converted to {quote.get('project_id')}")
    customer = state.find_customer(quote.get("customer_id"))
    if not customer:
        return fail(NOT_FOUND, f"Customer {quote.get('customer_id')} not found")

    totals = compute_totals(quote["items"], quote.get("profit_margin_percent", 0))
    amount, err = _check_advance(advance, totals["total"], settings)
    if err:
        return err

    lead = state.find_lead(quote.get("lead_id")) if quote.get("lead_id") else None
    if lead and lead.get("stage") in (WON, LOST):
        return fail(INVALID_STATE, f"Lead {lead['id']} is already {lead['stage']}")

    partitions = partition_by_supplier(state, quote["items"],
                                       settings.get("unknown_supplier_name"))

    # ── Validation done: build the records ─────────────────────────────────
    now = datetime.now()
    today = now.strftime("%Y-%m-%d")
    project_id = state.next_code("PRJ")

    orders = []
    for part in partitions.values():
        lines = [{"name": it["name"], "quantity": it["quantity"],
                  "unit_price": it["unit_price"]} for it in part["items"]]
        orders.append(new_order(state, part["supplier_id"], part["supplier"], lines, today,
                                project_id=project_id,
                                notes=f"Generated from quote {quote_id}"))

    total_po_cost = money(sum(o["total_amount"] for o in orders))
    balance = money(totals["total"] - amount)
    project = {
        "id": project_id,
        "quote_id": quote_id,
        "customer_id": customer["id"],
        "customer_name": customer.get("name", ""),
        "project_name": quote.get("project_name", ""),
        "items": [dict(it) for it in quote["items"]],
        "total_value": totals["total"],
        "advance_received": amount,
        "balance_remaining": balance,
        "purchase_order_ids": [o["id"] for o in orders],
        "total_po_cost": total_po_cost,
        "paid_to_pos": 0.0,
        "pending_po_payments": total_po_cost,
        "status": "completed" if balance <= 0 else "active",
        "payments": [],
        "created_at": now.isoformat(),
        "completed_at": now.isoformat() if balance <= 0 else None,
    }
    if amount > 0:
        project["payments"].append({
            "amount": amount, "date": today, "method": "advance",
            "reference": quote_id, "recorded_at": now.isoformat(),
        })

    state.projects.append(project)
    state.orders.extend(orders)
    quote.update(totals)
    quote["status"] = CONVERTED
    quote["project_id"] = project_id
    quote["updated_at"] = now.isoformat()
    if lead:
        set_stage(lead, WON, note=f"Converted to {project_id}")

    state.log_activity(
        "quote_converted",
        f"Quote {quote_id} → {project_id} (${totals['total']:,.2f}, "
        f"{len(orders)} PO{'s' if len(orders) != 1 else ''})",
        quote_id=quote_id, project_id=project_id,
        order_ids=project["purchase_order_ids"], advance=amount)
    log.info("Quote %s converted to %s: total $%.2f, advance $%.2f, %d POs ($%.2f)",
             quote_id, project_id, totals["total"], amount, len(orders), total_po_cost,
             extra={"quote_id": quote_id, "project_id": project_id, "amount": amount})
    return ok(project=project, orders=orders, quote=quote)


def convert_lead(state, lead_id, advance, settings: dict = None) -> dict:
    """Convert a lead's quote (or its BOM, materialized as a quote first)."""
    settings = settings or {}
    lead = state.find_lead(lead_id)
    if not lead:
        return fail(NOT_FOUND, f"Lead {lead_id} not found")
    if lead.get("stage") in (WON, LOST):
        return fail(INVALID_STATE, f"Lead {lead_id} is already {lead['stage']}")

    quote = state.find_quote(lead.get("quote_id")) if lead.get("quote_id") else None
    if quote:
        return convert_quote(state, quote["id"], advance, settings)

    bom = lead.get("bom") or {}
    items, err = clean_items(bom.get("items"))
    if err:
        return fail(VALIDATION, f"Lead {lead_id} BOM: {err}")
    if not items:
        return fail(VALIDATION, f"Lead {lead_id} has no BOM to convert")
    if not state.find_customer(lead.get("customer_id")):
        return fail(NOT_FOUND, f"Customer {lead.get('customer_id')} not found")
    margin = parse_amount(bom.get("profit_margin_percent", 0), allow_zero=True)
    if margin is None:
        return fail(VALIDATION, f"Lead {lead_id} BOM: profit margin must be a number ≥ 0")
    _, err = _check_advance(advance, compute_totals(items, margin)["total"], settings)
    if err:
        return err

    created = create_quote(state, lead["customer_id"],
                           bom.get("project_name") or lead.get("title", ""),
                           items, margin, lead_id=lead_id)
    if not created["ok"]:
        return created
    lead["quote_id"] = created["quote"]["id"]
    return convert_quote(state, created["quote"]["id"], advance, settings)
