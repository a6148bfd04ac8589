"""
quotes.py: Quote / BOM estimation.

A quote is a list of line items plus a profit margin:
  subtotal = Σ quantity × unit_price
  profit   = subtotal × margin / 100
  total    = subtotal + profit
Quotes stay editable while `draft`; conversion flips them to `converted`.
"""

import logging
from datetime import datetime

from src.ledger.amounts import money, parse_amount
from src.ledger.results import ok, fail, NOT_FOUND, VALIDATION, INVALID_STATE

log = logging.getLogger("ledger.quotes")

DRAFT = "draft"
CONVERTED = "converted"
QUOTE_STATUSES = (DRAFT, CONVERTED)


def line_total(line: dict) -> float:
    """quantity × unit_price, rounded to cents per line so any grouping of
    lines sums to the same amount."""
    return money((line.get("quantity") or 0) * (line.get("unit_price") or 0))


def compute_totals(items: list, profit_margin_percent) -> dict:
    """Subtotal, profit and total for a list of line items, rounded to cents."""
    subtotal = money(sum(line_total(it) for it in items))
    profit = money(subtotal * float(profit_margin_percent or 0) / 100)
    return {"subtotal": subtotal, "profit": profit, "total": money(subtotal + profit)}


def clean_items(items) -> tuple:
    """Validate raw line items. Returns (items, None) or (None, error message)."""
    if items is None:
        return [], None
    if not isinstance(items, list):
        return None, "items must be a list"
    cleaned = []
    for n, raw in enumerate(items, start=1):
        if not isinstance(raw, dict):
            return None, f"line {n}: not an object"
        name = str(raw.get("name") or "").strip()
        if not name:
            return None, f"line {n}: name required"
        qty = parse_amount(raw.get("quantity"))
        if qty is None:
            return None, f"line {n} ({name}): quantity must be a positive number"
        price = parse_amount(raw.get("unit_price", raw.get("price")), allow_zero=True)
        if price is None:
            return None, f"line {n} ({name}): unit price must be a number ≥ 0"
        cleaned.append({
            "name": name,
            "type": str(raw.get("type") or "").strip(),
            "quantity": int(qty) if qty == int(qty) else qty,
            "unit_price": price,
        })
    return cleaned, None


def _apply_totals(quote: dict):
    quote.update(compute_totals(quote["items"], quote["profit_margin_percent"]))


def create_quote(state, customer_id, project_name="", items=None,
                 profit_margin_percent=0, lead_id=None) -> dict:
    """Create a draft quote for an existing customer."""
    customer = state.find_customer(customer_id)
    if not customer:
        return fail(NOT_FOUND, f"Customer {customer_id} not found")
    cleaned, err = clean_items(items)
    if err:
        return fail(VALIDATION, err)
    margin = parse_amount(profit_margin_percent, allow_zero=True)
    if margin is None:
        return fail(VALIDATION, "Profit margin must be a number ≥ 0")

    now = datetime.now().isoformat()
    quote = {
        "id": state.next_code("QUO"),
        "customer_id": customer_id,
        "project_name": (project_name or "").strip(),
        "items": cleaned,
        "profit_margin_percent": margin,
        "lead_id": lead_id,
        "status": DRAFT,
        "project_id": None,
        "created_at": now,
        "updated_at": now,
    }
    _apply_totals(quote)
    state.quotes.append(quote)
    state.log_activity("quote_created",
                       f"Quote {quote['id']} for {customer.get('name', customer_id)}: "
                       f"${quote['total']:,.2f}",
                       quote_id=quote["id"], customer_id=customer_id)
    log.info("Quote %s created (%d items, total $%.2f)",
             quote["id"], len(cleaned), quote["total"],
             extra={"quote_id": quote["id"], "customer_id": customer_id})
    return ok(quote=quote)


def update_quote(state, quote_id, items=None, profit_margin_percent=None,
                 project_name=None, customer_id=None) -> dict:
    """Edit a draft quote. Totals are recomputed."""
    quote = state.find_quote(quote_id)
    if not quote:
        return fail(NOT_FOUND, f"Quote {quote_id} not found")
    if quote.get("status") != DRAFT:
        return fail(INVALID_STATE, f"Quote {quote_id} is {quote.get('status')}, not editable")

    changes = {}
    if items is not None:
        cleaned, err = clean_items(items)
        if err:
            return fail(VALIDATION, err)
        changes["items"] = cleaned
    if profit_margin_percent is not None:
        margin = parse_amount(profit_margin_percent, allow_zero=True)
        if margin is None:
            return fail(VALIDATION, "Profit margin must be a number ≥ 0")
        changes["profit_margin_percent"] = margin
    if customer_id is not None:
        if not state.find_customer(customer_id):
            return fail(NOT_FOUND, f"Customer {customer_id} not found")
        changes["customer_id"] = customer_id
    if project_name is not None:
        changes["project_name"] = project_name.strip()

    quote.update(changes)
    quote["updated_at"] = datetime.now().isoformat()
    _apply_totals(quote)
    state.log_activity("quote_updated", f"Quote {quote_id} updated", quote_id=quote_id)
    return ok(quote=quote)


def delete_quote(state, quote_id) -> dict:
    quote = state.find_quote(quote_id)
    if not quote:
        return fail(NOT_FOUND, f"Quote {quote_id} not found")
    if quote.get("status") == CONVERTED:
        return fail(INVALID_STATE, f"Quote {quote_id} was converted to {quote.get('project_id')}")
    state.quotes.remove(quote)
    for lead in state.leads:
        if lead.get("quote_id") == quote_id:
            lead["quote_id"] = None
    state.log_activity("quote_deleted", f"Quote {quote_id} deleted", quote_id=quote_id)
    return ok(quote_id=quote_id)


def list_quotes(state, status=None) -> list:
    if status:
        return [q for q in state.quotes if q.get("status") == status]
    return list(state.quotes)
