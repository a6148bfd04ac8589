"""
payments.py: Payment reconciliation on both sides of a project.

  Company → supplier:  apply_po_payment()       PO paid_amount up, project
                                                 paid_to_pos / pending_po_payments follow
  Customer → company:  apply_customer_payment()  project advance_received up,
                                                 balance_remaining down

Payments only move amounts upward; there is no reversal. An amount above
the outstanding balance is rejected and nothing changes.
"""

import logging
from datetime import datetime

from src.ledger.amounts import money, parse_amount
from src.ledger.results import (ok, fail, NOT_FOUND, INVALID_AMOUNT, OVERPAYMENT,
                                INVALID_STATE)

log = logging.getLogger("ledger.payments")


def _payment_entry(amount, method, reference, now) -> dict:
    return {
        "amount": amount,
        "date": now.strftime("%Y-%m-%d"),
        "method": method or "",
        "reference": reference or "",
        "recorded_at": now.isoformat(),
    }


def apply_po_payment(state, order_id, amount, method="", reference="") -> dict:
    """Record a company payment against a pending purchase order."""
    p = parse_amount(amount)
    if p is None:
        return fail(INVALID_AMOUNT, "Payment must be a positive number")
    order = state.find_order(order_id)
    if not order:
        return fail(NOT_FOUND, f"Purchase order {order_id} not found")
    if order.get("status") != "pending":
        return fail(INVALID_STATE, f"Purchase order {order_id} is already {order.get('status')}")
    outstanding = money(order["total_amount"] - order.get("paid_amount", 0))
    if p > outstanding:
        return fail(OVERPAYMENT,
                    f"Payment ${p:,.2f} exceeds outstanding ${outstanding:,.2f} on {order_id}",
                    outstanding=outstanding)
    project = None
    if order.get("project_id"):
        project = state.find_project(order["project_id"])
        if not project:
            return fail(NOT_FOUND,
                        f"Project {order['project_id']} linked from {order_id} not found")

    now = datetime.now()
    order["paid_amount"] = money(order.get("paid_amount", 0) + p)
    order.setdefault("payments", []).append(_payment_entry(p, method, reference, now))
    if order["paid_amount"] >= order["total_amount"]:
        order["status"] = "settled"
        order["paid_date"] = now.strftime("%Y-%m-%d")
    if project:
        project["paid_to_pos"] = money(project.get("paid_to_pos", 0) + p)
        project["pending_po_payments"] = money(project.get("pending_po_payments", 0) - p)

    state.log_activity("po_payment",
                       f"Paid ${p:,.2f} on {order_id} ({order.get('supplier', '')})"
                       + (", settled" if order["status"] == "settled" else ""),
                       order_id=order_id, project_id=order.get("project_id"), amount=p)
    log.info("PO %s payment $%.2f → paid $%.2f / $%.2f [%s]",
             order_id, p, order["paid_amount"], order["total_amount"], order["status"],
             extra={"order_id": order_id, "project_id": order.get("project_id"), "amount": p})
    return ok(order=order, project=project)


def apply_customer_payment(state, project_id, amount, method="", reference="") -> dict:
    """Record a customer payment against an active project's balance."""
    p = parse_amount(amount)
    if p is None:
        return fail(INVALID_AMOUNT, "Payment must be a positive number")
    project = state.find_project(project_id)
    if not project:
        return fail(NOT_FOUND, f"Project {project_id} not found")
    if project.get("status") == "completed":
        return fail(INVALID_STATE, f"Project {project_id} is completed; no further payments")
    balance = money(project.get("balance_remaining", 0))
    if p > balance:
        return fail(OVERPAYMENT,
                    f"Payment ${p:,.2f} exceeds balance ${balance:,.2f} on {project_id}",
                    outstanding=balance)

    now = datetime.now()
    project["advance_received"] = money(project.get("advance_received", 0) + p)
    project["balance_remaining"] = money(balance - p)
    project.setdefault("payments", []).append(_payment_entry(p, method, reference, now))
    if project["balance_remaining"] <= 0:
        project["status"] = "completed"
        project["completed_at"] = now.isoformat()

    state.log_activity("customer_payment",
                       f"Received ${p:,.2f} on {project_id} ({project.get('customer_name', '')})"
                       + (", completed" if project["status"] == "completed" else ""),
                       project_id=project_id, amount=p)
    log.info("Project %s payment $%.2f → balance $%.2f [%s]",
             project_id, p, project["balance_remaining"], project["status"],
             extra={"project_id": project_id, "amount": p})
    return ok(project=project)
