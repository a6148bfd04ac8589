"""
leads.py: CRM pipeline (kanban stages) and lead BOMs.

Stages run in a fixed order. `won` is only reached through quote
conversion, so every won lead has a project behind it.
"""

import logging
from datetime import datetime

from src.ledger.quotes import clean_items, create_quote, update_quote, DRAFT
from src.ledger.amounts import parse_amount
from src.ledger.results import ok, fail, NOT_FOUND, INVALID_STATE, VALIDATION

log = logging.getLogger("ledger.leads")

WON = "won"
LOST = "lost"
LEAD_STAGES = (
    "initial-discussion",
    "site-visit",
    "measurements",
    "estimate",
    "estimate-approval",
    WON,
    LOST,
)


def set_stage(lead: dict, stage: str, note: str = ""):
    """Record a stage change on the lead. No validation."""
    entry = {"from": lead.get("stage"), "to": stage,
             "timestamp": datetime.now().isoformat()}
    if note:
        entry["note"] = note
    lead["stage"] = stage
    lead.setdefault("stage_history", []).append(entry)


def create_lead(state, customer_id, title="", stage=LEAD_STAGES[0], notes="") -> dict:
    customer = state.find_customer(customer_id)
    if not customer:
        return fail(NOT_FOUND, f"Customer {customer_id} not found")
    if stage not in LEAD_STAGES:
        return fail(VALIDATION, f"Unknown stage {stage!r}")
    if stage == WON:
        return fail(INVALID_STATE, "A lead is won by converting its quote")

    lead = {
        "id": state.next_code("LEAD"),
        "customer_id": customer_id,
        "title": (title or "").strip(),
        "notes": notes or "",
        "stage": stage,
        "bom": None,
        "quote_id": None,
        "stage_history": [],
        "created_at": datetime.now().isoformat(),
    }
    state.leads.append(lead)
    state.log_activity("lead_created",
                       f"Lead {lead['id']} for {customer.get('name', customer_id)}",
                       lead_id=lead["id"], customer_id=customer_id)
    return ok(lead=lead)


def move_lead(state, lead_id, stage: str) -> dict:
    """Move a lead to another pipeline stage (drag-and-drop on the board)."""
    lead = state.find_lead(lead_id)
    if not lead:
        return fail(NOT_FOUND, f"Lead {lead_id} not found")
    if stage not in LEAD_STAGES:
        return fail(VALIDATION, f"Unknown stage {stage!r}")
    if stage == WON:
        return fail(INVALID_STATE, "A lead is won by converting its quote")
    if lead.get("stage") == WON:
        return fail(INVALID_STATE, f"Lead {lead_id} is won and already has a project")
    if lead.get("stage") == stage:
        return ok(lead=lead, unchanged=True)

    old = lead.get("stage")
    set_stage(lead, stage)
    state.log_activity("lead_moved", f"Lead {lead_id}: {old} → {stage}", lead_id=lead_id)
    log.info("Lead %s moved %s → %s", lead_id, old, stage, extra={"lead_id": lead_id})
    return ok(lead=lead)


def attach_bom(state, lead_id, items, profit_margin_percent=0, project_name="") -> dict:
    """Store a BOM on the lead and keep its linked draft quote in sync."""
    lead = state.find_lead(lead_id)
    if not lead:
        return fail(NOT_FOUND, f"Lead {lead_id} not found")
    if lead.get("stage") in (WON, LOST):
        return fail(INVALID_STATE, f"Lead {lead_id} is {lead['stage']}")
    cleaned, err = clean_items(items)
    if err:
        return fail(VALIDATION, err)
    margin = parse_amount(profit_margin_percent, allow_zero=True)
    if margin is None:
        return fail(VALIDATION, "Profit margin must be a number ≥ 0")
    project_name = (project_name or lead.get("title") or "").strip()

    quote = state.find_quote(lead.get("quote_id")) if lead.get("quote_id") else None
    if quote and quote.get("status") == DRAFT:
        result = update_quote(state, quote["id"], items=cleaned,
                              profit_margin_percent=margin, project_name=project_name)
    else:
        result = create_quote(state, lead["customer_id"], project_name, cleaned,
                              margin, lead_id=lead_id)
    if not result["ok"]:
        return result

    lead["bom"] = {"items": cleaned, "profit_margin_percent": margin,
                   "project_name": project_name}
    lead["quote_id"] = result["quote"]["id"]
    return ok(lead=lead, quote=result["quote"])


def list_leads(state, stage=None) -> list:
    if stage:
        return [ld for ld in state.leads if ld.get("stage") == stage]
    return list(state.leads)


def pipeline_board(state) -> dict:
    """{stage: [leads]} in stage order, the kanban view's data."""
    board = {stage: [] for stage in LEAD_STAGES}
    for lead in state.leads:
        board.setdefault(lead.get("stage"), []).append(lead)
    return board
