"""
src/core/db.py: Persistent SQLite Snapshot Store

The ledger is saved as a whole-state snapshot: every mutation rewrites all
entity tables inside ONE SQLite transaction. A quote conversion writes a
Project plus N Purchase Orders; either all of them are durable or none are.

  1. SQLite database at DATA_DIR/ledger.db for all structured data
     → WAL mode, one connection per call, commit/rollback in get_db()
  2. JSON mirror at DATA_DIR/ledger_state.json as secondary write path
     → written after the SQLite commit, failures are logged only

TABLES:
  inventory    : stock items, keyed by item code
  suppliers    : supplier directory
  customers    : customer directory
  orders       : purchase orders (project-linked and manual)
  quotes       : quotes / BOM estimates
  leads        : CRM pipeline leads
  projects     : projects created from converted quotes
  settings     : key/value (id counters)
  activity_log : audit trail of ledger mutations
"""

import os
import json
import sqlite3
import logging
import threading
from datetime import datetime
from contextlib import contextmanager

from src.core.paths import DATA_DIR, DB_PATH, STATE_JSON_PATH

log = logging.getLogger("ledger.db")

_db_lock = threading.Lock()

# entity table → primary key field of the record
ENTITY_TABLES = {
    "inventory": "code",
    "suppliers": "id",
    "customers": "id",
    "orders": "id",
    "quotes": "id",
    "leads": "id",
    "projects": "id",
}

# ── Connection factory ────────────────────────────────────────────────────────
@contextmanager
def get_db():
    """Thread-safe SQLite connection. Commits on success, rolls back on error."""
    with _db_lock:
        conn = sqlite3.connect(DB_PATH, timeout=30, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

# ── Schema ────────────────────────────────────────────────────────────────────
SCHEMA = """
CREATE TABLE IF NOT EXISTS inventory (
    id              TEXT PRIMARY KEY,   -- item code
    position        INTEGER NOT NULL,
    name            TEXT,
    supplier_id     TEXT,
    data            TEXT NOT NULL       -- JSON record
);

CREATE INDEX IF NOT EXISTS idx_inventory_name ON inventory(name);

CREATE TABLE IF NOT EXISTS suppliers (
    id              TEXT PRIMARY KEY,
    position        INTEGER NOT NULL,
    name            TEXT,
    data            TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS customers (
    id              TEXT PRIMARY KEY,
    position        INTEGER NOT NULL,
    name            TEXT,
    data            TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS orders (
    id              TEXT PRIMARY KEY,
    position        INTEGER NOT NULL,
    project_id      TEXT,
    status          TEXT,
    total_amount    REAL DEFAULT 0,
    paid_amount     REAL DEFAULT 0,
    data            TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_orders_project ON orders(project_id);
CREATE INDEX IF NOT EXISTS idx_orders_status ON orders(status);

CREATE TABLE IF NOT EXISTS quotes (
    id              TEXT PRIMARY KEY,
    position        INTEGER NOT NULL,
    customer_id     TEXT,
    status          TEXT,
    total           REAL DEFAULT 0,
    data            TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS leads (
    id              TEXT PRIMARY KEY,
    position        INTEGER NOT NULL,
    customer_id     TEXT,
    stage           TEXT,
    data            TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS projects (
    id              TEXT PRIMARY KEY,
    position        INTEGER NOT NULL,
    customer_id     TEXT,
    status          TEXT,
    total_value     REAL DEFAULT 0,
    balance_remaining REAL DEFAULT 0,
    data            TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_projects_status ON projects(status);

CREATE TABLE IF NOT EXISTS settings (
    key             TEXT PRIMARY KEY,
    value           TEXT,
    updated_at      TEXT
);

CREATE TABLE IF NOT EXISTS activity_log (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    logged_at       TEXT NOT NULL,
    event_type      TEXT NOT NULL,
    message         TEXT,
    metadata        TEXT            -- JSON for extra fields
);
"""

# Index columns copied out of the JSON record, per table
_INDEX_COLUMNS = {
    "inventory": ("name", "supplier_id"),
    "suppliers": ("name",),
    "customers": ("name",),
    "orders": ("project_id", "status", "total_amount", "paid_amount"),
    "quotes": ("customer_id", "status", "total"),
    "leads": ("customer_id", "stage"),
    "projects": ("customer_id", "status", "total_value", "balance_remaining"),
}


def init_db():
    """Create all tables if they don't exist. Safe to call multiple times."""
    os.makedirs(os.path.dirname(DB_PATH) or ".", exist_ok=True)
    with get_db() as conn:
        conn.executescript(SCHEMA)
    log.debug("DB initialized at %s", DB_PATH)
    return True


def _jl(val, default=None):
    """JSON-load a DB column value safely."""
    if val is None:
        return default
    try:
        return json.loads(val)
    except (TypeError, ValueError):
        return default


def _jd(val) -> str:
    """JSON-dump a value for DB storage."""
    return json.dumps(val, default=str)


# ── Snapshot operations ───────────────────────────────────────────────────────
def empty_snapshot() -> dict:
    snap = {table: [] for table in ENTITY_TABLES}
    snap["counters"] = {}
    snap["activity"] = []
    return snap


def load_state() -> dict:
    """Read the complete ledger snapshot. Empty database → empty snapshot."""
    init_db()
    snap = empty_snapshot()
    with get_db() as conn:
        for table in ENTITY_TABLES:
            rows = conn.execute(
                f"SELECT data FROM {table} ORDER BY position").fetchall()
            snap[table] = [r for r in (_jl(row["data"]) for row in rows) if r]
        for row in conn.execute(
                "SELECT key, value FROM settings WHERE key LIKE 'counter:%'"):
            try:
                snap["counters"][row["key"].split(":", 1)[1]] = int(row["value"])
            except (TypeError, ValueError):
                log.warning("Bad counter value %s=%r", row["key"], row["value"])
        rows = conn.execute(
            "SELECT logged_at, event_type, message, metadata "
            "FROM activity_log ORDER BY id").fetchall()
        snap["activity"] = [{
            "logged_at": r["logged_at"],
            "event_type": r["event_type"],
            "message": r["message"],
            "metadata": _jl(r["metadata"], {}),
        } for r in rows]
    return snap


def save_state(snapshot: dict) -> bool:
    """Replace the stored state with `snapshot` in a single transaction.

    Raises on any SQLite error; nothing is written in that case.
    """
    init_db()
    now = datetime.now().isoformat()
    with get_db() as conn:
        for table, key in ENTITY_TABLES.items():
            cols = _INDEX_COLUMNS[table]
            conn.execute(f"DELETE FROM {table}")
            rows = []
            for pos, rec in enumerate(snapshot.get(table, [])):
                rows.append((str(rec[key]), pos)
                            + tuple(rec.get(c) for c in cols)
                            + (_jd(rec),))
            if rows:
                placeholders = ",".join("?" * (len(cols) + 3))
                conn.executemany(
                    f"INSERT INTO {table} (id, position, {', '.join(cols)}, data) "
                    f"VALUES ({placeholders})", rows)
        conn.execute("DELETE FROM settings WHERE key LIKE 'counter:%'")
        conn.executemany(
            "INSERT INTO settings (key, value, updated_at) VALUES (?,?,?)",
            [(f"counter:{k}", str(v), now)
             for k, v in snapshot.get("counters", {}).items()])
        conn.execute("DELETE FROM activity_log")
        conn.executemany(
            "INSERT INTO activity_log (logged_at, event_type, message, metadata) "
            "VALUES (?,?,?,?)",
            [(a.get("logged_at", now), a.get("event_type", "note"),
              a.get("message", ""), _jd(a.get("metadata", {})))
             for a in snapshot.get("activity", [])])
    return True


def sync_state_to_json(snapshot: dict, path: str = None) -> bool:
    """Write the snapshot to ledger_state.json (secondary copy)."""
    path = path or STATE_JSON_PATH
    tmp = path + ".tmp"
    try:
        with open(tmp, "w") as f:
            json.dump(snapshot, f, indent=2, default=str)
        os.replace(tmp, path)
        return True
    except OSError as e:
        log.warning("sync_state_to_json: %s", e)
        return False


# ── Migration: JSON → SQLite ──────────────────────────────────────────────────
def migrate_json_to_db(path: str = None) -> dict:
    """One-time import of a JSON snapshot into an EMPTY database.

    Accepts the current snapshot shape or the legacy camelCase export
    ({inventory, suppliers, orders, ...} with totalAmount, balanceRemaining,
    price, supplier names). Skipped when the database already holds data.
    """
    from src.ledger.state import AppState, normalize_legacy_snapshot

    path = path or STATE_JSON_PATH
    if not os.path.exists(path):
        return {"ok": True, "skipped": "no file", "path": path}
    stats = get_db_stats()
    if any(stats.get(t, 0) for t in ENTITY_TABLES):
        return {"ok": True, "skipped": "database not empty", "path": path}
    try:
        with open(path) as f:
            raw = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        log.error("migrate_json_to_db %s: %s", path, e)
        return {"ok": False, "error": str(e), "path": path}
    state = AppState.from_snapshot(normalize_legacy_snapshot(raw))
    save_state(state.snapshot())
    counts = {t: len(getattr(state, t)) for t in ENTITY_TABLES}
    log.info("Migrated %s into SQLite: %s", path, counts)
    return {"ok": True, "path": path, "imported": counts}


def get_db_stats() -> dict:
    """Return row counts for all tables."""
    stats = {"db_path": DB_PATH, "db_size_kb": 0}
    try:
        stats["db_size_kb"] = round(os.path.getsize(DB_PATH) / 1024, 1)
    except FileNotFoundError:
        pass
    init_db()
    with get_db() as conn:
        for table in list(ENTITY_TABLES) + ["activity_log"]:
            try:
                stats[table] = conn.execute(
                    f"SELECT COUNT(*) FROM {table}").fetchone()[0]
            except sqlite3.Error:
                stats[table] = 0
    return stats


def startup() -> dict:
    """Initialize DB and migrate an existing JSON snapshot. Call once at app start."""
    init_db()
    migrated = migrate_json_to_db()
    if migrated.get("imported"):
        log.info("First-run migration complete: %s", migrated["imported"])
    stats = get_db_stats()
    log.info("DB ready: %s",
             {k: v for k, v in stats.items() if k not in ("db_path", "db_size_kb")})
    return {"ok": True, "db_path": DB_PATH, "data_dir": DATA_DIR, "stats": stats}
