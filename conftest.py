"""
Shared pytest fixtures for the Quote Ledger test suite.

Every test runs against its own temporary data directory: the SQLite
database, the JSON mirror and the config path are redirected there.
"""
import os
import sys
import pytest

_PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))
if _PROJECT_ROOT not in sys.path:
    sys.path.insert(0, _PROJECT_ROOT)

_LEDGER_ENV = ("LEDGER_ADVANCE_POLICY", "LEDGER_UNKNOWN_SUPPLIER",
               "LEDGER_JSON_MIRROR", "LEDGER_ACTIVITY_LIMIT", "LOG_LEVEL", "LEDGER_JSON_LOGS",
               "SECRET_KEY")


# ── Temp data directory (per-test isolation) ──────────────────────────────────

@pytest.fixture(autouse=True)
def temp_data_dir(tmp_path, monkeypatch):
    """Redirect the database, JSON mirror and config to an isolated tmp directory."""
    data = str(tmp_path / "data")
    os.makedirs(data, exist_ok=True)
    for var in _LEDGER_ENV:
        monkeypatch.delenv(var, raising=False)

    from src.core import paths, db
    monkeypatch.setattr(paths, "DATA_DIR", data)
    monkeypatch.setattr(paths, "CONFIG_PATH", os.path.join(data, "ledger_config.json"))
    monkeypatch.setattr(db, "DATA_DIR", data)
    monkeypatch.setattr(db, "DB_PATH", os.path.join(data, "ledger.db"))
    monkeypatch.setattr(db, "STATE_JSON_PATH", os.path.join(data, "ledger_state.json"))
    return data


# ── Stores ────────────────────────────────────────────────────────────────────

class MemoryStore:
    """In-memory stand-in for src.core.db: keeps the last saved snapshot."""
    def __init__(self, snapshot=None):
        self.saved = snapshot or {}
        self.saves = 0

    def load_state(self):
        return self.saved

    def save_state(self, snapshot):
        self.saves += 1
        self.saved = snapshot
        return True


class FailingStore(MemoryStore):
    """Loads fine, then fails every save (disk full, locked DB, ...)."""
    def save_state(self, snapshot):
        raise OSError("disk I/O error")


# ── Sample data ───────────────────────────────────────────────────────────────

@pytest.fixture
def ledger_settings():
    return {
        "advance_policy": "reject",
        "unknown_supplier_name": "Unknown Supplier",
        "json_mirror": False,
        "activity_limit": 200,
    }


def seed(state):
    """Two suppliers, two stocked items, one customer."""
    from src.ledger import directory
    directory.add_supplier(state, {"name": "SolarTech Supply", "contact": "Dana Reyes",
                                   "email": "orders@solartech.test", "phone": "555-0101"})
    directory.add_supplier(state, {"name": "Metal Works Co", "contact": "Sam Ortiz",
                                   "email": "sales@metalworks.test", "phone": "555-0102"})
    directory.add_item(state, {"code": "PNL-001", "name": "Panel", "type": "panel",
                               "supplier": "SolarTech Supply", "quantity": 40, "price": 450})
    directory.add_item(state, {"code": "BRK-001", "name": "Bracket", "type": "hardware",
                               "supplier": "Metal Works Co", "quantity": 200, "price": 35})
    directory.add_customer(state, {"name": "Acme Homes", "email": "build@acme.test"})
    return state


@pytest.fixture
def state():
    from src.ledger.state import AppState
    return seed(AppState())


@pytest.fixture
def quote_items():
    """Panel ×2 @ 450 + Bracket ×2 @ 35 → subtotal 970.00."""
    return [
        {"name": "Panel", "type": "panel", "quantity": 2, "unit_price": 450.00},
        {"name": "Bracket", "type": "hardware", "quantity": 2, "unit_price": 35.00},
    ]


@pytest.fixture
def quote(state, quote_items):
    """Draft QUO-00001 for CUST-00001 at 20% margin (total 1164.00)."""
    from src.ledger.quotes import create_quote
    return create_quote(state, "CUST-00001", "Rooftop array", quote_items, 20)["quote"]


@pytest.fixture
def memory_store(state):
    return MemoryStore(state.snapshot())


@pytest.fixture
def ledger(state, ledger_settings):
    """LedgerService on the real SQLite store (tmp dir), pre-seeded."""
    from src.core import db
    from src.ledger.service import LedgerService
    db.save_state(state.snapshot())
    return LedgerService(store=db, settings=ledger_settings)


# ── Flask test client ─────────────────────────────────────────────────────────

@pytest.fixture
def app(ledger):
    from app import create_app
    _app = create_app(ledger=ledger, run_checks=False)
    _app.config["TESTING"] = True
    return _app


@pytest.fixture
def client(app):
    with app.test_client() as c:
        yield c
