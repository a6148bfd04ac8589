"""
logging_config.py: Ledger log records.

Every JSON log line has the same shape as a ledger activity entry, with
the amount and entity ids a call passed through `extra=` pulled into
fixed slots:

    {"logged_at": "2024-03-05T17:02:11+00:00", "level": "INFO",
     "logger": "ledger.payments", "message": "PO PO-00001 paid $70.00",
     "kind": null, "amount": 70.0,
     "refs": {"order_id": "PO-00001", "project_id": "PRJ-00001"}}

The rotating file DATA_DIR/logs/ledger.log always gets JSON; the console
gets it when the json_logs setting is on. Call setup_logging() once, from
the process entry point.
"""
import json
import logging
import logging.handlers
import os
from datetime import datetime, timezone

from src.core import paths, settings

log = logging.getLogger("ledger")

# extra= keys naming a ledger entity
REF_FIELDS = ("project_id", "order_id", "quote_id", "lead_id", "customer_id")
# extra= keys the API blueprint sets on its per-request line
REQUEST_FIELDS = ("route", "method", "status", "duration_ms")

CONSOLE_FORMAT = "%(asctime)s %(levelname).1s %(name)s: %(message)s"
LOG_FILE = "ledger.log"


def _pick(record, fields) -> dict:
    return {f: getattr(record, f) for f in fields if getattr(record, f, None) is not None}


class LedgerRecordFormatter(logging.Formatter):
    """One ledger record per line, JSON encoded."""

    def format(self, record):
        entry = {
            "logged_at": datetime.now(timezone.utc).isoformat(timespec="seconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "kind": getattr(record, "kind", None),
            "amount": getattr(record, "amount", None),
            "refs": _pick(record, REF_FIELDS),
        }
        request = _pick(record, REQUEST_FIELDS)
        if request:
            entry["request"] = request
        if record.exc_info:
            entry["error"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(level=None, json_logs=None, log_dir=None):
    """Point the root logger at the console and the rotating ledger.log.

    level and json_logs default to the log_level and json_logs settings.
    """
    level = str(level or settings.get("log_level")).upper()
    if json_logs is None:
        json_logs = settings.get("json_logs")
    log_dir = log_dir or paths.LOG_DIR

    root = logging.getLogger()
    root.setLevel(getattr(logging, level, logging.INFO))
    root.handlers.clear()

    console = logging.StreamHandler()
    if json_logs:
        console.setFormatter(LedgerRecordFormatter())
    else:
        console.setFormatter(logging.Formatter(CONSOLE_FORMAT, "%H:%M:%S"))
    root.addHandler(console)

    try:
        os.makedirs(log_dir, exist_ok=True)
        fh = logging.handlers.RotatingFileHandler(
            os.path.join(log_dir, LOG_FILE), maxBytes=5_000_000, backupCount=5)
    except OSError as e:
        log.warning("File logging disabled, %s not writable: %s", log_dir, e)
    else:
        fh.setFormatter(LedgerRecordFormatter())
        root.addHandler(fh)

    log.info("Logging at %s (json console: %s)", level, bool(json_logs))
