"""
state.py: The ledger's application state.

AppState is the one object that holds every entity list. It is owned by
LedgerService and passed explicitly into each operation; nothing in the
ledger keeps entity data at module level.
"""

import copy
import logging
import math
import re
from datetime import datetime

log = logging.getLogger("ledger.state")

ENTITY_KINDS = ("inventory", "suppliers", "orders", "customers",
                "leads", "quotes", "projects")

# entity kind → id prefix for sequential codes (inventory codes are user supplied)
ID_PREFIXES = {
    "orders": "PO",
    "projects": "PRJ",
    "quotes": "QUO",
    "leads": "LEAD",
    "customers": "CUST",
    "suppliers": "SUP",
}
ID_WIDTH = 5

# Partition key for quote items whose supplier can't be resolved
UNASSIGNED = None


class AppState:
    """All ledger entities plus id counters and the activity trail."""

    def __init__(self, activity_limit: int = 200, **lists):
        for kind in ENTITY_KINDS:
            setattr(self, kind, list(lists.get(kind) or []))
        self.counters = dict(lists.get("counters") or {})
        self.activity = list(lists.get("activity") or [])
        self.activity_limit = activity_limit

    @classmethod
    def from_snapshot(cls, snap: dict, activity_limit: int = 200) -> "AppState":
        snap = copy.deepcopy(snap or {})
        return cls(activity_limit=activity_limit,
                   **{k: snap.get(k) for k in ENTITY_KINDS + ("counters", "activity")})

    def snapshot(self) -> dict:
        """Full JSON-serializable copy of the state."""
        snap = {kind: copy.deepcopy(getattr(self, kind)) for kind in ENTITY_KINDS}
        snap["counters"] = dict(self.counters)
        snap["activity"] = copy.deepcopy(self.activity)
        return snap

    def copy(self) -> "AppState":
        return AppState.from_snapshot(self.snapshot(), self.activity_limit)

    # ── Identifiers ──────────────────────────────────────────────────────────
    def next_code(self, prefix: str) -> str:
        """PREFIX-00001 style code from a running counter."""
        if prefix not in self.counters:
            self.counters[prefix] = self._highest_suffix(prefix)
        self.counters[prefix] += 1
        return f"{prefix}-{self.counters[prefix]:0{ID_WIDTH}d}"

    def _highest_suffix(self, prefix: str) -> int:
        pattern = re.compile(rf"^{re.escape(prefix)}-(\d+)$")
        highest = 0
        for kind, kind_prefix in ID_PREFIXES.items():
            if kind_prefix != prefix:
                continue
            for rec in getattr(self, kind):
                m = pattern.match(str(rec.get("id", "")))
                if m:
                    highest = max(highest, int(m.group(1)))
        return highest

    # ── Lookups ──────────────────────────────────────────────────────────────
    def _find(self, kind: str, value, key: str = "id"):
        if value is None:
            return None
        for rec in getattr(self, kind):
            if rec.get(key) == value:
                return rec
        return None

    def find_customer(self, customer_id):
        return self._find("customers", customer_id)

    def find_supplier(self, supplier_id):
        return self._find("suppliers", supplier_id)

    def find_supplier_by_name(self, name):
        wanted = _norm(name)
        if not wanted:
            return None
        for sup in self.suppliers:
            if _norm(sup.get("name")) == wanted:
                return sup
        return None

    def find_inventory_item(self, name):
        """Inventory lookup by item name (case-insensitive), falling back to code."""
        wanted = _norm(name)
        if not wanted:
            return None
        for item in self.inventory:
            if _norm(item.get("name")) == wanted:
                return item
        for item in self.inventory:
            if _norm(item.get("code")) == wanted:
                return item
        return None

    def find_item_by_code(self, code):
        return self._find("inventory", code, key="code")

    def find_quote(self, quote_id):
        return self._find("quotes", quote_id)

    def find_project(self, project_id):
        return self._find("projects", project_id)

    def find_order(self, order_id):
        return self._find("orders", order_id)

    def find_lead(self, lead_id):
        return self._find("leads", lead_id)

    # ── Activity ─────────────────────────────────────────────────────────────
    def log_activity(self, event_type: str, message: str, **metadata):
        self.activity.append({
            "logged_at": datetime.now().isoformat(),
            "event_type": event_type,
            "message": message,
            "metadata": metadata,
        })
        if len(self.activity) > self.activity_limit:
            del self.activity[:len(self.activity) - self.activity_limit]


def _norm(value) -> str:
    return " ".join(str(value or "").split()).lower()


# ══════════════════════════════════════════════════════════════════════════════
# Legacy import: the browser app's localStorage / document-store export
# ══════════════════════════════════════════════════════════════════════════════

LEGACY_KEYS = {
    "totalAmount": "total_amount",
    "paidAmount": "paid_amount",
    "paidDate": "paid_date",
    "projectId": "project_id",
    "customerId": "customer_id",
    "customerName": "customer_name",
    "projectName": "project_name",
    "supplierId": "supplier_id",
    "unitPrice": "unit_price",
    "profitMargin": "profit_margin_percent",
    "profitMarginPercent": "profit_margin_percent",
    "quoteId": "quote_id",
    "leadId": "lead_id",
    "totalValue": "total_value",
    "advanceReceived": "advance_received",
    "balanceRemaining": "balance_remaining",
    "purchaseOrderIds": "purchase_order_ids",
    "poIds": "purchase_order_ids",
    "totalPOCost": "total_po_cost",
    "paidToPOs": "paid_to_pos",
    "pendingPOPayments": "pending_po_payments",
    "createdAt": "created_at",
    "completedAt": "completed_at",
}

# numeric fields the browser app sometimes stored as form strings ("450.00")
LEGACY_NUMBERS = {
    "inventory": ("quantity", "price"),
    "orders": ("total_amount", "paid_amount"),
    "quotes": ("profit_margin_percent", "subtotal", "profit", "total"),
    "projects": ("total_value", "advance_received", "balance_remaining",
                 "total_po_cost", "paid_to_pos", "pending_po_payments"),
}
LINE_NUMBERS = ("quantity", "unit_price")


def _legacy_number(value, where: str):
    """Numeric string → int/float ("$1,200.50" → 1200.5). Numbers pass through.

    Unreadable strings become 0 with a warning so one bad field does not
    block the import.
    """
    if not isinstance(value, str):
        return value
    text = value.strip().replace(",", "").replace("$", "")
    try:
        number = float(text) if text else 0.0
    except ValueError:
        number = None
    if number is None or not math.isfinite(number):
        log.warning("Legacy import: %s=%r is not a number, using 0", where, value)
        return 0
    return int(number) if number == int(number) else number


def _coerce_numbers(rec: dict, fields: tuple, where: str):
    for field in fields:
        if field in rec:
            rec[field] = _legacy_number(rec[field], f"{where}.{field}")


def _snake(key: str) -> str:
    if key in LEGACY_KEYS:
        return LEGACY_KEYS[key]
    return re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", key).lower()


def _snake_keys(value):
    if isinstance(value, dict):
        return {_snake(k): _snake_keys(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_snake_keys(v) for v in value]
    return value


def normalize_legacy_snapshot(raw: dict) -> dict:
    """Convert a camelCase export into the current snapshot shape.

    Already-normalized snapshots pass through unchanged. Suppliers get
    SUP-ids, inventory and orders get supplier_id resolved by supplier name,
    line items' `price` becomes `unit_price`, and numbers stored as
    strings ("450.00") become numbers.
    """
    raw = raw or {}
    snap = _snake_keys({k: v for k, v in raw.items() if k != "counters"})
    snap["counters"] = dict(raw.get("counters") or {})  # keys are id prefixes
    state = AppState(**{k: snap.get(k) for k in ENTITY_KINDS + ("counters", "activity")})

    for sup in state.suppliers:
        if not sup.get("id"):
            sup["id"] = state.next_code("SUP")

    for item in state.inventory:
        if "supplier_id" not in item:
            sup = state.find_supplier_by_name(item.get("supplier"))
            item["supplier_id"] = sup["id"] if sup else None

    for kind in ("orders", "quotes", "projects"):
        for rec in getattr(state, kind):
            for line in rec.get("items", []) or []:
                if "unit_price" not in line and "price" in line:
                    line["unit_price"] = line.pop("price")
                _coerce_numbers(line, LINE_NUMBERS, f"{rec.get('id')}.items")

    for kind, fields in LEGACY_NUMBERS.items():
        for rec in getattr(state, kind):
            _coerce_numbers(rec, fields, str(rec.get("id") or rec.get("code")))

    for order in state.orders:
        if "supplier_id" not in order:
            sup = state.find_supplier_by_name(order.get("supplier"))
            order["supplier_id"] = sup["id"] if sup else None
        order.setdefault("paid_amount", 0.0)
        order.setdefault("paid_date", None)
        order.setdefault("project_id", None)
        order.setdefault("payments", [])

    for project in state.projects:
        project.setdefault("payments", [])
        project.setdefault("purchase_order_ids", [])

    return state.snapshot()
