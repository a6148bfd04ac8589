"""
finance.py: Read-side rollups. Computed from projects and orders on every
call, never stored.
"""

from src.ledger.amounts import money


def finance_rollup(state) -> dict:
    """Revenue, expenses, profit and pending supplier payments across all projects.

    Manual purchase orders (no project) never enter the four headline totals;
    their spend is reported on its own as unlinked_po_spend / unlinked_po_pending.
    """
    projects = state.projects
    total_revenue = money(sum(p.get("advance_received", 0) for p in projects))
    total_expenses = money(sum(p.get("paid_to_pos", 0) for p in projects))
    pending_payments = money(sum(p.get("pending_po_payments", 0) for p in projects))

    unlinked = [o for o in state.orders if not o.get("project_id")]
    by_status = {}
    for p in projects:
        s = p.get("status", "active")
        by_status[s] = by_status.get(s, 0) + 1

    return {
        "total_revenue": total_revenue,
        "total_expenses": total_expenses,
        "total_profit": money(total_revenue - total_expenses),
        "pending_payments": pending_payments,
        "outstanding_receivables": money(
            sum(max(p.get("balance_remaining", 0), 0) for p in projects)),
        "contract_value": money(sum(p.get("total_value", 0) for p in projects)),
        "unlinked_po_spend": money(sum(o.get("paid_amount", 0) for o in unlinked)),
        "unlinked_po_pending": money(
            sum(o.get("total_amount", 0) - o.get("paid_amount", 0) for o in unlinked)),
        "projects": len(projects),
        "projects_by_status": by_status,
    }


def project_summary(project: dict) -> dict:
    """Per-project margin view: what the customer owes vs what suppliers are owed."""
    return {
        "id": project["id"],
        "customer_name": project.get("customer_name", ""),
        "total_value": project.get("total_value", 0),
        "received": project.get("advance_received", 0),
        "balance_remaining": project.get("balance_remaining", 0),
        "po_cost": project.get("total_po_cost", 0),
        "paid_to_pos": project.get("paid_to_pos", 0),
        "gross_margin": money(project.get("total_value", 0) - project.get("total_po_cost", 0)),
        "cash_position": money(project.get("advance_received", 0) - project.get("paid_to_pos", 0)),
        "status": project.get("status", "active"),
    }


def dashboard_summary(state, recent: int = 5) -> dict:
    """Headline counters for the dashboard plus the latest activity."""
    return {
        "total_items": len(state.inventory),
        "total_suppliers": len(state.suppliers),
        "total_customers": len(state.customers),
        "pending_orders": sum(1 for o in state.orders if o.get("status") == "pending"),
        "active_projects": sum(1 for p in state.projects if p.get("status") == "active"),
        "inventory_value": money(sum((it.get("quantity") or 0) * (it.get("price") or 0)
                                     for it in state.inventory)),
        "recent_activity": list(reversed(state.activity[-recent:])) if recent else [],
    }


def audit_invariants(state) -> list:
    """Check the ledger's balance invariants. Returns a list of problem strings."""
    problems = []
    for p in state.projects:
        pid = p.get("id")
        if money(p.get("total_value", 0) - p.get("advance_received", 0)) != money(p.get("balance_remaining", 0)):
            problems.append(f"{pid}: balance_remaining != total_value - advance_received")
        if money(p.get("total_po_cost", 0) - p.get("paid_to_pos", 0)) != money(p.get("pending_po_payments", 0)):
            problems.append(f"{pid}: pending_po_payments != total_po_cost - paid_to_pos")
        if p.get("status") == "completed" and p.get("balance_remaining", 0) > 0:
            problems.append(f"{pid}: completed with balance {p.get('balance_remaining')}")
        linked = [o for o in state.orders if o.get("project_id") == pid]
        if money(sum(o.get("paid_amount", 0) for o in linked)) != money(p.get("paid_to_pos", 0)):
            problems.append(f"{pid}: paid_to_pos does not match its orders")
        missing = [oid for oid in p.get("purchase_order_ids", []) if not state.find_order(oid)]
        if missing:
            problems.append(f"{pid}: missing orders {', '.join(missing)}")
    for o in state.orders:
        paid, total = o.get("paid_amount", 0), o.get("total_amount", 0)
        if paid < 0 or paid > total:
            problems.append(f"{o.get('id')}: paid_amount {paid} outside 0..{total}")
        if o.get("status") == "settled" and not o.get("paid_date"):
            problems.append(f"{o.get('id')}: settled without paid_date")
    return problems
