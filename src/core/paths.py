"""
src/core/paths.py: Centralized Path Configuration

Single source of truth for all directory paths across the application.
Every module imports from here instead of computing its own DATA_DIR.
"""

import os
import logging

log = logging.getLogger("ledger.paths")

# ── Project Root ──────────────────────────────────────────────────────────────
_THIS_FILE = os.path.abspath(__file__)
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.dirname(_THIS_FILE)))

_DEFAULT_DATA_DIR = os.path.join(PROJECT_ROOT, "data")


# Priority: LEDGER_DATA_DIR env → project data/
def _resolve_data_dir() -> str:
    """Find the data directory."""
    env_dir = os.environ.get("LEDGER_DATA_DIR", "")
    if env_dir:
        return env_dir
    return _DEFAULT_DATA_DIR


DATA_DIR = _resolve_data_dir()
os.makedirs(DATA_DIR, exist_ok=True)

# ── Key File Paths ───────────────────────────────────────────────────────────
DB_PATH = os.path.join(DATA_DIR, "ledger.db")
STATE_JSON_PATH = os.path.join(DATA_DIR, "ledger_state.json")
CONFIG_PATH = os.path.join(PROJECT_ROOT, "ledger_config.json")
LOG_DIR = os.path.join(DATA_DIR, "logs")

if DATA_DIR == _DEFAULT_DATA_DIR:
    log.debug("DATA_DIR: %s (project default)", DATA_DIR)
else:
    log.debug("DATA_DIR: %s (LEDGER_DATA_DIR)", DATA_DIR)


def validate_paths() -> dict:
    """Runtime validation: call at app startup to catch path issues early.

    Returns:
        {"ok": bool, "errors": [str], "warnings": [str], "resolved": {name: path}}
    """
    result = {"ok": True, "errors": [], "warnings": [], "resolved": {}}

    checks = {
        "PROJECT_ROOT": (PROJECT_ROOT, True),
        "DATA_DIR": (DATA_DIR, True),
        "CONFIG_PATH": (CONFIG_PATH, False),
    }

    for name, (path, required) in checks.items():
        result["resolved"][name] = path
        if not os.path.exists(path):
            if required:
                result["errors"].append(f"{name} not found: {path}")
                result["ok"] = False
            else:
                result["warnings"].append(f"{name} not found: {path}")

    # Verify DATA_DIR is writable
    test_file = os.path.join(DATA_DIR, ".write_test")
    try:
        with open(test_file, "w") as f:
            f.write("ok")
        os.remove(test_file)
    except OSError as e:
        result["errors"].append(f"DATA_DIR not writable: {e}")
        result["ok"] = False

    return result
