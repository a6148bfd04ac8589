"""
settings.py: Centralized Ledger Settings

Single source of truth for every tunable the ledger reads at runtime.
Each setting has an env var, a default and a description. Resolution
order: env var → ledger_config.json → default.

Env vars:
  LEDGER_ADVANCE_POLICY  : reject | allow an advance larger than the quote total
  LEDGER_UNKNOWN_SUPPLIER: display name of the unassigned supplier bucket
  LEDGER_JSON_MIRROR     : mirror every saved snapshot to ledger_state.json
  LEDGER_ACTIVITY_LIMIT  : how many activity entries the state keeps
  LOG_LEVEL              : root log level
  LEDGER_JSON_LOGS       : console log lines as JSON ledger records
  SECRET_KEY             : Flask secret key
"""

import os
import json
import logging

log = logging.getLogger("ledger.settings")

# ─── Setting Definitions ────────────────────────────────────────────────────

_REGISTRY = {
    "advance_policy": {
        "env": "LEDGER_ADVANCE_POLICY",
        "default": "reject",
        "choices": ["reject", "allow"],
        "desc": "What to do with an advance payment above the quote total",
    },
    "unknown_supplier_name": {
        "env": "LEDGER_UNKNOWN_SUPPLIER",
        "default": "Unknown Supplier",
        "desc": "Supplier label for quote items with no inventory match",
    },
    "json_mirror": {
        "env": "LEDGER_JSON_MIRROR",
        "default": True,
        "type": bool,
        "desc": "Mirror each saved snapshot to ledger_state.json",
    },
    "activity_limit": {
        "env": "LEDGER_ACTIVITY_LIMIT",
        "default": 200,
        "type": int,
        "desc": "Number of activity log entries kept in state",
    },
    "log_level": {
        "env": "LOG_LEVEL",
        "default": "INFO",
        "choices": ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        "desc": "Root log level",
    },
    "json_logs": {
        "env": "LEDGER_JSON_LOGS",
        "default": False,
        "type": bool,
        "desc": "Console log lines as JSON ledger records",
    },
    "secret_key": {
        "env": "SECRET_KEY",
        "default": "quote-ledger-dev",
        "secret": True,
        "desc": "Flask secret key",
    },
}

_TRUE = ("1", "true", "yes", "on")


def load_config(path: str = None) -> dict:
    """Read ledger_config.json. Missing file → {}."""
    if path is None:
        from src.core.paths import CONFIG_PATH
        path = CONFIG_PATH
    try:
        with open(path) as f:
            cfg = json.load(f)
    except FileNotFoundError:
        return {}
    except json.JSONDecodeError as e:
        log.warning("Config %s is not valid JSON: %s", path, e)
        return {}
    return cfg if isinstance(cfg, dict) else {}


def _coerce(entry: dict, raw):
    kind = entry.get("type")
    if kind is bool:
        if isinstance(raw, bool):
            return raw
        return str(raw).strip().lower() in _TRUE
    if kind is int:
        try:
            return int(raw)
        except (TypeError, ValueError):
            return entry["default"]
    if entry.get("choices"):
        value = str(raw).strip()
        if value.upper() in entry["choices"]:
            return value.upper()
        return value.lower()
    return raw


def get(name: str, config: dict = None):
    """Resolve a setting by registry name. Unknown names → None."""
    entry = _REGISTRY.get(name)
    if not entry:
        return None
    raw = os.environ.get(entry["env"], "")
    if raw != "":
        return _coerce(entry, raw)
    if config is None:
        config = load_config()
    if name in config:
        return _coerce(entry, config[name])
    return entry["default"]


def get_all(config: dict = None) -> dict:
    """Resolve every setting once: what LedgerService keeps."""
    if config is None:
        config = load_config()
    return {name: get(name, config) for name in _REGISTRY}


def mask(value) -> str:
    value = str(value or "")
    if not value:
        return "(not set)"
    if len(value) <= 8:
        return "****"
    return value[:4] + "****"


def validate_all(config: dict = None) -> dict:
    """Report every setting's resolved value and flag invalid ones."""
    resolved = get_all(config)
    report = {"settings": {}, "total": len(_REGISTRY), "warnings": []}
    for name, entry in _REGISTRY.items():
        value = resolved[name]
        shown = mask(value) if entry.get("secret") else value
        from_env = os.environ.get(entry["env"], "") != ""
        report["settings"][name] = {
            "value": shown,
            "env": entry["env"],
            "source": "env" if from_env else "config/default",
            "desc": entry["desc"],
        }
        choices = entry.get("choices")
        if choices and value not in choices:
            report["warnings"].append(
                f"{name}={value!r} not one of {choices}")
        if entry.get("secret") and value == entry["default"]:
            report["warnings"].append(f"{name} uses the development default")
    return report
