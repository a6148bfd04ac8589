"""
service.py: LedgerService, the single owner of the ledger state.

Every mutating call runs the same way:
  1. take the service lock (one writer at a time)
  2. run the operation against a deep copy of the state
  3. save the complete snapshot through the store (one transaction)
  4. swap the copy in only after the save succeeded

A rejected operation or a failed save leaves the live state exactly as it
was. Reads hand out deep copies so callers can't mutate the ledger.

The store is anything with load_state() -> dict and save_state(dict);
by default the SQLite store in src.core.db.
"""

import copy
import logging
import threading

from src.core import settings as ledger_settings
from src.ledger import conversion, directory, finance, leads, orders, payments, quotes
from src.ledger.results import fail, PERSISTENCE
from src.ledger.state import AppState

log = logging.getLogger("ledger.service")


class LedgerService:

    def __init__(self, store=None, settings: dict = None):
        if store is None:
            from src.core import db as store
        self.store = store
        self.settings = settings if settings is not None else ledger_settings.get_all()
        self._lock = threading.Lock()
        self.state = AppState.from_snapshot(
            self.store.load_state(), self.settings.get("activity_limit", 200))
        log.info("Ledger loaded: %s",
                 {k: len(getattr(self.state, k)) for k in
                  ("projects", "orders", "quotes", "leads", "inventory")})

    # ── Transaction core ─────────────────────────────────────────────────────
    def _apply(self, action: str, fn, *args, **kwargs) -> dict:
        with self._lock:
            working = self.state.copy()
            result = fn(working, *args, **kwargs)
            if not result.get("ok"):
                log.info("%s rejected: %s", action, result.get("error"),
                         extra={"kind": result.get("kind")})
                return result
            snapshot = working.snapshot()
            try:
                self.store.save_state(snapshot)
            except Exception as e:
                log.error("%s: save failed, state unchanged: %s", action, e,
                          extra={"kind": PERSISTENCE})
                return fail(PERSISTENCE, f"Could not save ledger: {e}")
            self.state = working
            if self.settings.get("json_mirror") and hasattr(self.store, "sync_state_to_json"):
                self.store.sync_state_to_json(snapshot)
            return copy.deepcopy(result)

    def reload(self) -> dict:
        """Re-read the store, dropping the in-memory state."""
        with self._lock:
            try:
                snap = self.store.load_state()
            except Exception as e:
                log.error("reload failed: %s", e)
                return fail(PERSISTENCE, f"Could not load ledger: {e}")
            self.state = AppState.from_snapshot(snap, self.settings.get("activity_limit", 200))
        return {"ok": True}

    def _read(self, fn, *args, **kwargs):
        with self._lock:
            return copy.deepcopy(fn(self.state, *args, **kwargs))

    # ── Quote → Project ──────────────────────────────────────────────────────
    def convert_quote(self, quote_id, advance) -> dict:
        return self._apply("convert_quote", conversion.convert_quote,
                           quote_id, advance, self.settings)

    def convert_lead(self, lead_id, advance) -> dict:
        return self._apply("convert_lead", conversion.convert_lead,
                           lead_id, advance, self.settings)

    # ── Payments ─────────────────────────────────────────────────────────────
    def pay_order(self, order_id, amount, method="", reference="") -> dict:
        return self._apply("pay_order", payments.apply_po_payment,
                           order_id, amount, method, reference)

    def receive_payment(self, project_id, amount, method="", reference="") -> dict:
        return self._apply("receive_payment", payments.apply_customer_payment,
                           project_id, amount, method, reference)

    # ── Quotes ───────────────────────────────────────────────────────────────
    def create_quote(self, customer_id, project_name="", items=None,
                     profit_margin_percent=0, lead_id=None) -> dict:
        return self._apply("create_quote", quotes.create_quote, customer_id,
                           project_name, items, profit_margin_percent, lead_id)

    def update_quote(self, quote_id, **fields) -> dict:
        return self._apply("update_quote", quotes.update_quote, quote_id, **fields)

    def delete_quote(self, quote_id) -> dict:
        return self._apply("delete_quote", quotes.delete_quote, quote_id)

    def get_quote(self, quote_id):
        return self._read(lambda s: s.find_quote(quote_id))

    def list_quotes(self, status=None) -> list:
        return self._read(quotes.list_quotes, status)

    # ── Leads ────────────────────────────────────────────────────────────────
    def create_lead(self, customer_id, title="", stage=leads.LEAD_STAGES[0], notes="") -> dict:
        return self._apply("create_lead", leads.create_lead, customer_id, title, stage, notes)

    def move_lead(self, lead_id, stage) -> dict:
        return self._apply("move_lead", leads.move_lead, lead_id, stage)

    def attach_bom(self, lead_id, items, profit_margin_percent=0, project_name="") -> dict:
        return self._apply("attach_bom", leads.attach_bom, lead_id, items,
                           profit_margin_percent, project_name)

    def get_lead(self, lead_id):
        return self._read(lambda s: s.find_lead(lead_id))

    def list_leads(self, stage=None) -> list:
        return self._read(leads.list_leads, stage)

    def pipeline_board(self) -> dict:
        return self._read(leads.pipeline_board)

    # ── Orders ───────────────────────────────────────────────────────────────
    def create_order(self, supplier, lines, date=None, notes="") -> dict:
        return self._apply("create_order", orders.create_manual_order,
                           supplier, lines, date, notes)

    def delete_order(self, order_id) -> dict:
        return self._apply("delete_order", orders.delete_order, order_id)

    def get_order(self, order_id):
        return self._read(lambda s: s.find_order(order_id))

    def list_orders(self, status=None, project_id=None) -> list:
        return self._read(orders.list_orders, status, project_id)

    # ── Projects ─────────────────────────────────────────────────────────────
    def get_project(self, project_id):
        return self._read(lambda s: s.find_project(project_id))

    def list_projects(self, status=None) -> list:
        return self._read(lambda s: [p for p in s.projects
                                     if not status or p.get("status") == status])

    # ── Directory ────────────────────────────────────────────────────────────
    def add_supplier(self, data) -> dict:
        return self._apply("add_supplier", directory.add_supplier, data)

    def update_supplier(self, supplier_id, data) -> dict:
        return self._apply("update_supplier", directory.update_supplier, supplier_id, data)

    def delete_supplier(self, supplier_id) -> dict:
        return self._apply("delete_supplier", directory.delete_supplier, supplier_id)

    def list_suppliers(self) -> list:
        return self._read(directory.list_suppliers)

    def add_item(self, data) -> dict:
        return self._apply("add_item", directory.add_item, data)

    def update_item(self, code, data) -> dict:
        return self._apply("update_item", directory.update_item, code, data)

    def delete_item(self, code) -> dict:
        return self._apply("delete_item", directory.delete_item, code)

    def list_inventory(self, item_type=None) -> list:
        return self._read(directory.list_inventory, item_type)

    def add_customer(self, data) -> dict:
        return self._apply("add_customer", directory.add_customer, data)

    def update_customer(self, customer_id, data) -> dict:
        return self._apply("update_customer", directory.update_customer, customer_id, data)

    def list_customers(self) -> list:
        return self._read(directory.list_customers)

    def find_customer(self, customer_id):
        return self._read(lambda s: s.find_customer(customer_id))

    def find_inventory_item(self, name):
        return self._read(lambda s: s.find_inventory_item(name))

    # ── Read-side rollups ────────────────────────────────────────────────────
    def finance(self) -> dict:
        return self._read(finance.finance_rollup)

    def project_summaries(self) -> list:
        return self._read(lambda s: [finance.project_summary(p) for p in s.projects])

    def dashboard(self) -> dict:
        return self._read(finance.dashboard_summary)

    def activity(self, limit: int = 50) -> list:
        return self._read(lambda s: list(reversed(s.activity[-limit:])) if limit else [])

    def audit(self) -> list:
        return self._read(finance.audit_invariants)

    def snapshot(self) -> dict:
        return self._read(lambda s: s.snapshot())
