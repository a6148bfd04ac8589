"""Tests for the finance rollup, project summaries, dashboard and integrity audit."""

import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from src.ledger.conversion import convert_quote
from src.ledger.finance import (
    finance_rollup, project_summary, dashboard_summary, audit_invariants,
)
from src.ledger.orders import create_manual_order
from src.ledger.payments import apply_po_payment, apply_customer_payment
from src.ledger.quotes import create_quote


class TestFinanceRollup:
    def test_empty_ledger(self, state):
        totals = finance_rollup(state)
        assert totals["total_revenue"] == 0.0
        assert totals["total_expenses"] == 0.0
        assert totals["total_profit"] == 0.0
        assert totals["pending_payments"] == 0.0
        assert totals["projects"] == 0

    def test_after_conversion(self, state, quote):
        convert_quote(state, quote["id"], 500)
        totals = finance_rollup(state)
        assert totals["total_revenue"] == 500.0
        assert totals["total_expenses"] == 0.0
        assert totals["total_profit"] == 500.0
        assert totals["pending_payments"] == 970.0
        assert totals["outstanding_receivables"] == 664.0
        assert totals["contract_value"] == 1164.0

    def test_after_payments(self, state, quote):
        project = convert_quote(state, quote["id"], 500)["project"]
        apply_po_payment(state, "PO-00001", 900)
        apply_customer_payment(state, project["id"], 164)
        totals = finance_rollup(state)
        assert totals["total_revenue"] == 664.0
        assert totals["total_expenses"] == 900.0
        assert totals["total_profit"] == -236.0
        assert totals["pending_payments"] == 70.0

    def test_manual_orders_reported_apart(self, state, quote):
        convert_quote(state, quote["id"], 500)
        order = create_manual_order(state, "Metal Works Co",
                                    [{"name": "Bracket", "quantity": 10}])["order"]
        apply_po_payment(state, order["id"], 100)
        totals = finance_rollup(state)
        assert totals["total_expenses"] == 0.0
        assert totals["pending_payments"] == 970.0
        assert totals["unlinked_po_spend"] == 100.0
        assert totals["unlinked_po_pending"] == 250.0

    def test_projects_by_status(self, state, quote, quote_items):
        convert_quote(state, quote["id"], 1164)
        other = create_quote(state, "CUST-00001", "Second", quote_items, 0)["quote"]
        convert_quote(state, other["id"], 0)
        assert finance_rollup(state)["projects_by_status"] == {"completed": 1, "active": 1}

    def test_multiple_projects_sum(self, state, quote, quote_items):
        convert_quote(state, quote["id"], 500)
        other = create_quote(state, "CUST-00001", "Second", quote_items, 0)["quote"]
        convert_quote(state, other["id"], 100)
        totals = finance_rollup(state)
        assert totals["total_revenue"] == 600.0
        assert totals["pending_payments"] == 1940.0


class TestProjectSummary:
    def test_margin_and_cash(self, state, quote):
        project = convert_quote(state, quote["id"], 500)["project"]
        apply_po_payment(state, "PO-00002", 70)
        s = project_summary(project)
        assert s["gross_margin"] == 194.0
        assert s["cash_position"] == 430.0
        assert s["received"] == 500.0
        assert s["status"] == "active"


class TestDashboard:
    def test_counts(self, state, quote):
        convert_quote(state, quote["id"], 500)
        d = dashboard_summary(state)
        assert d["total_items"] == 2
        assert d["total_suppliers"] == 2
        assert d["total_customers"] == 1
        assert d["pending_orders"] == 2
        assert d["active_projects"] == 1
        assert d["inventory_value"] == 40 * 450 + 200 * 35

    def test_recent_activity_newest_first(self, state, quote):
        convert_quote(state, quote["id"], 500)
        recent = dashboard_summary(state, recent=2)["recent_activity"]
        assert len(recent) == 2
        assert recent[0]["event_type"] == "quote_converted"


class TestAuditInvariants:
    def test_clean_ledger(self, state, quote):
        convert_quote(state, quote["id"], 500)
        apply_po_payment(state, "PO-00001", 250)
        assert audit_invariants(state) == []

    def test_detects_balance_drift(self, state, quote):
        project = convert_quote(state, quote["id"], 500)["project"]
        project["balance_remaining"] = 1.0
        problems = audit_invariants(state)
        assert any("balance_remaining" in p for p in problems)

    def test_detects_paid_to_pos_mismatch(self, state, quote):
        convert_quote(state, quote["id"], 500)
        state.find_order("PO-00001")["paid_amount"] = 10.0
        problems = audit_invariants(state)
        assert any("paid_to_pos does not match" in p for p in problems)

    def test_detects_missing_order(self, state, quote):
        convert_quote(state, quote["id"], 500)
        state.orders.pop()
        assert any("missing orders" in p for p in audit_invariants(state))
