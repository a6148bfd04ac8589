"""Tests for quote → project conversion and per-supplier purchase orders."""

import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from src.ledger import directory
from src.ledger.conversion import convert_quote, convert_lead, partition_by_supplier
from src.ledger.finance import audit_invariants, dashboard_summary
from src.ledger.leads import create_lead, attach_bom, move_lead
from src.ledger.quotes import create_quote
from src.ledger.state import UNASSIGNED


class TestPartitionBySupplier:
    def test_two_suppliers(self, state, quote_items):
        parts = partition_by_supplier(state, quote_items)
        assert list(parts) == ["SUP-00001", "SUP-00002"]
        assert parts["SUP-00001"]["supplier"] == "SolarTech Supply"
        assert [it["name"] for it in parts["SUP-00002"]["items"]] == ["Bracket"]

    def test_every_item_lands_once(self, state, quote_items):
        items = quote_items + [{"name": "panel", "quantity": 1, "unit_price": 450},
                               {"name": "Mystery Box", "quantity": 1, "unit_price": 9}]
        parts = partition_by_supplier(state, items)
        assert sum(len(p["items"]) for p in parts.values()) == len(items)
        assert len(parts["SUP-00001"]["items"]) == 2

    def test_unmatched_goes_to_unassigned(self, state):
        parts = partition_by_supplier(state, [{"name": "Mystery Box", "quantity": 1,
                                               "unit_price": 9}], "Misc Vendor")
        assert list(parts) == [UNASSIGNED]
        assert parts[UNASSIGNED]["supplier"] == "Misc Vendor"

    def test_item_without_supplier_unassigned(self, state):
        state.find_item_by_code("BRK-001")["supplier_id"] = None
        parts = partition_by_supplier(state, [{"name": "Bracket", "quantity": 1,
                                               "unit_price": 35}])
        assert parts[UNASSIGNED]["supplier"] == "Unknown Supplier"


class TestConvertQuote:
    def test_worked_example(self, state, quote):
        result = convert_quote(state, quote["id"], 500)
        assert result["ok"]
        project = result["project"]
        assert project["id"] == "PRJ-00001"
        assert project["total_value"] == 1164.0
        assert project["advance_received"] == 500.0
        assert project["balance_remaining"] == 664.0
        assert project["status"] == "active"
        assert project["customer_name"] == "Acme Homes"
        assert project["total_po_cost"] == 970.0
        assert project["paid_to_pos"] == 0.0
        assert project["pending_po_payments"] == 970.0

    def test_one_po_per_supplier(self, state, quote):
        result = convert_quote(state, quote["id"], 500)
        orders = result["orders"]
        assert [o["id"] for o in orders] == ["PO-00001", "PO-00002"]
        assert {o["supplier"]: o["total_amount"] for o in orders} == {
            "SolarTech Supply": 900.0, "Metal Works Co": 70.0}
        assert sum(o["total_amount"] for o in orders) == 970.0
        assert result["project"]["purchase_order_ids"] == ["PO-00001", "PO-00002"]
        for o in orders:
            assert o["project_id"] == "PRJ-00001"
            assert o["status"] == "pending"
            assert o["paid_amount"] == 0.0
            assert o["paid_date"] is None
            assert state.find_order(o["id"]) is not None

    def test_quote_marked_converted(self, state, quote):
        convert_quote(state, quote["id"], 0)
        q = state.find_quote(quote["id"])
        assert q["status"] == "converted"
        assert q["project_id"] == "PRJ-00001"

    def test_zero_advance_no_payment_entry(self, state, quote):
        project = convert_quote(state, quote["id"], 0)["project"]
        assert project["payments"] == []
        assert project["balance_remaining"] == 1164.0

    def test_advance_recorded_as_payment(self, state, quote):
        project = convert_quote(state, quote["id"], "500")["project"]
        assert project["payments"][0]["amount"] == 500.0
        assert project["payments"][0]["method"] == "advance"

    def test_full_advance_completes(self, state, quote):
        project = convert_quote(state, quote["id"], 1164)["project"]
        assert project["balance_remaining"] == 0.0
        assert project["status"] == "completed"
        assert project["completed_at"]

    def test_unknown_supplier_bucket(self, state):
        q = create_quote(state, "CUST-00001", "Odd job",
                         [{"name": "Mystery Box", "quantity": 2, "unit_price": 10}], 0)["quote"]
        result = convert_quote(state, q["id"], 0, {"unknown_supplier_name": "TBD Vendor"})
        assert len(result["orders"]) == 1
        order = result["orders"][0]
        assert order["supplier_id"] is None
        assert order["supplier"] == "TBD Vendor"
        assert order["total_amount"] == 20.0

    def test_fractional_lines_po_totals_match_subtotal(self, state):
        directory.add_item(state, {"code": "WIR-001", "name": "Wire", "supplier": "SolarTech Supply",
                                   "quantity": 100, "price": 0.33})
        directory.add_item(state, {"code": "SCR-001", "name": "Screw", "supplier": "Metal Works Co",
                                   "quantity": 100, "price": 0.33})
        q = create_quote(state, "CUST-00001", "Small parts",
                         [{"name": "Wire", "quantity": 1.5, "unit_price": 0.33},
                          {"name": "Screw", "quantity": 1.5, "unit_price": 0.33}], 0)["quote"]
        result = convert_quote(state, q["id"], 0)
        assert result["ok"]
        orders = result["orders"]
        assert len(orders) == 2
        assert orders[0]["total_amount"] == orders[1]["total_amount"]
        assert result["project"]["total_po_cost"] == result["quote"]["subtotal"]
        assert round(sum(o["total_amount"] for o in orders), 2) == result["quote"]["subtotal"]
        assert audit_invariants(state) == []

    def test_zero_total_po_settled_at_creation(self, state, quote_items):
        items = quote_items + [{"name": "Bracket", "quantity": 3, "unit_price": 0}]
        items[1]["unit_price"] = 0
        q = create_quote(state, "CUST-00001", "Warranty swap", items, 20)["quote"]
        result = convert_quote(state, q["id"], 0)
        free = state.find_order("PO-00002")
        assert free["supplier_id"] == "SUP-00002"
        assert free["total_amount"] == 0.0
        assert free["status"] == "settled"
        assert free["paid_date"] == free["date"]
        assert state.find_order("PO-00001")["status"] == "pending"
        assert result["project"]["pending_po_payments"] == 900.0
        assert dashboard_summary(state)["pending_orders"] == 1
        assert audit_invariants(state) == []

    def test_unknown_quote(self, state):
        result = convert_quote(state, "QUO-00404", 0)
        assert result["kind"] == "not_found"
        assert state.projects == [] and state.orders == []

    def test_empty_quote_rejected(self, state):
        q = create_quote(state, "CUST-00001", "Empty")["quote"]
        result = convert_quote(state, q["id"], 0)
        assert not result["ok"]
        assert result["kind"] == "validation"
        assert state.projects == [] and state.orders == []

    def test_missing_customer(self, state, quote):
        state.customers.clear()
        result = convert_quote(state, quote["id"], 0)
        assert result["kind"] == "not_found"
        assert state.projects == []

    def test_negative_advance(self, state, quote):
        assert convert_quote(state, quote["id"], -1)["kind"] == "invalid_amount"

    def test_non_numeric_advance(self, state, quote):
        assert convert_quote(state, quote["id"], "lots")["kind"] == "invalid_amount"

    def test_advance_above_total_rejected(self, state, quote):
        result = convert_quote(state, quote["id"], 2000)
        assert result["kind"] == "overpayment_rejected"
        assert state.find_quote(quote["id"])["status"] == "draft"
        assert state.counters.get("PRJ") is None

    def test_advance_above_total_allowed_by_policy(self, state, quote):
        result = convert_quote(state, quote["id"], 2000, {"advance_policy": "allow"})
        assert result["ok"]
        assert result["project"]["balance_remaining"] == -836.0
        assert result["project"]["status"] == "completed"

    def test_double_conversion_rejected(self, state, quote):
        convert_quote(state, quote["id"], 0)
        result = convert_quote(state, quote["id"], 0)
        assert result["kind"] == "invalid_state"
        assert len(state.projects) == 1
        assert len(state.orders) == 2

    def test_activity_logged(self, state, quote):
        convert_quote(state, quote["id"], 500)
        entry = state.activity[-1]
        assert entry["event_type"] == "quote_converted"
        assert entry["metadata"]["project_id"] == "PRJ-00001"


class TestConvertLead:
    def test_converts_linked_quote(self, state, quote_items):
        lead = create_lead(state, "CUST-00001", "Roof")["lead"]
        attach_bom(state, lead["id"], quote_items, 20)
        result = convert_lead(state, lead["id"], 500)
        assert result["ok"]
        assert result["project"]["total_value"] == 1164.0
        assert state.find_lead(lead["id"])["stage"] == "won"

    def test_bom_without_quote_materialized(self, state, quote_items):
        lead = create_lead(state, "CUST-00001", "Carport")["lead"]
        lead["bom"] = {"items": quote_items, "profit_margin_percent": 20}
        result = convert_lead(state, lead["id"], 0)
        assert result["ok"]
        assert lead["quote_id"] == result["quote"]["id"]
        assert result["quote"]["lead_id"] == lead["id"]
        assert result["project"]["project_name"] == "Carport"

    def test_no_bom(self, state):
        lead = create_lead(state, "CUST-00001", "Empty")["lead"]
        result = convert_lead(state, lead["id"], 0)
        assert result["kind"] == "validation"
        assert state.quotes == []

    def test_bad_advance_creates_nothing(self, state, quote_items):
        lead = create_lead(state, "CUST-00001", "Roof")["lead"]
        lead["bom"] = {"items": quote_items, "profit_margin_percent": 20}
        result = convert_lead(state, lead["id"], 5000)
        assert result["kind"] == "overpayment_rejected"
        assert state.quotes == []

    def test_won_lead_not_reconverted(self, state, quote_items):
        lead = create_lead(state, "CUST-00001", "Roof")["lead"]
        attach_bom(state, lead["id"], quote_items, 20)
        convert_lead(state, lead["id"], 0)
        assert convert_lead(state, lead["id"], 0)["kind"] == "invalid_state"

    def test_lost_lead(self, state, quote_items):
        lead = create_lead(state, "CUST-00001", "Roof")["lead"]
        attach_bom(state, lead["id"], quote_items, 20)
        move_lead(state, lead["id"], "lost")
        assert convert_lead(state, lead["id"], 0)["kind"] == "invalid_state"
        assert convert_quote(state, lead["quote_id"], 0)["kind"] == "invalid_state"

    def test_unknown_lead(self, state):
        assert convert_lead(state, "LEAD-00404", 0)["kind"] == "not_found"
