"""
src/core/startup_checks.py: Runtime Self-Test on App Boot

Runs automatically when the app starts:

  1. Path resolution: DATA_DIR exists and is writable
  2. Settings: every registered setting resolves to a valid value
  3. Database: ledger.db readable, tables present
  4. Ledger integrity: project and purchase-order balance invariants
  5. Routes: the API blueprint is registered

Failures are logged; boot continues.
"""

import logging

log = logging.getLogger("ledger.startup")


def run_startup_checks(app=None) -> dict:
    """Run all startup validation checks. Call from create_app() after blueprint registration.

    Returns:
        {"passed": int, "failed": int, "warnings": int, "details": [...]}
    """
    results = {"passed": 0, "failed": 0, "warnings": 0, "details": []}

    def _pass(msg):
        results["passed"] += 1
        results["details"].append(("PASS", msg))
        log.info("✅ %s", msg)

    def _fail(msg):
        results["failed"] += 1
        results["details"].append(("FAIL", msg))
        log.error("❌ STARTUP CHECK FAILED: %s", msg)

    def _warn(msg):
        results["warnings"] += 1
        results["details"].append(("WARN", msg))
        log.warning("⚠️  %s", msg)

    # ── 1. Path Validation ────────────────────────────────────────────────────
    try:
        from src.core.paths import validate_paths, DATA_DIR
        path_result = validate_paths()
        if path_result["ok"]:
            _pass(f"All paths valid (DATA_DIR={DATA_DIR})")
        else:
            for err in path_result["errors"]:
                _fail(err)
        for warn in path_result.get("warnings", []):
            _warn(warn)
    except Exception as e:
        _fail(f"Path validation error: {e}")

    # ── 2. Settings ───────────────────────────────────────────────────────────
    try:
        from src.core.settings import validate_all
        report = validate_all()
        if report["warnings"]:
            for w in report["warnings"]:
                _warn(f"Setting: {w}")
        else:
            _pass(f"Settings valid ({report['total']} registered)")
    except Exception as e:
        _fail(f"Settings validation error: {e}")

    # ── 3. Database ───────────────────────────────────────────────────────────
    try:
        from src.core.db import get_db_stats
        stats = get_db_stats()
        _pass(f"ledger.db readable ({stats.get('projects', 0)} projects, "
              f"{stats.get('orders', 0)} orders)")
    except Exception as e:
        _fail(f"Database check error: {e}")

    # ── 4. Ledger Integrity ───────────────────────────────────────────────────
    ledger = app.extensions.get("ledger") if app is not None else None
    if ledger is None:
        _warn("No ledger attached: integrity audit skipped")
    else:
        try:
            problems = ledger.audit()
            if problems:
                for p in problems:
                    _fail(f"Ledger integrity: {p}")
            else:
                _pass("Ledger balances consistent")
        except Exception as e:
            _fail(f"Ledger audit error: {e}")

    # ── 5. Routes ─────────────────────────────────────────────────────────────
    if app is not None:
        rules = {r.rule for r in app.url_map.iter_rules()}
        required = ["/api/health", "/api/quotes/<qid>/convert",
                    "/api/orders/<oid>/payment", "/api/projects/<pid>/payment",
                    "/api/finance"]
        missing = [r for r in required if r not in rules]
        if missing:
            _fail(f"Routes not registered: {', '.join(missing)}")
        else:
            _pass(f"{len(rules)} routes registered")

    log.info("Startup checks: %d passed, %d failed, %d warnings",
             results["passed"], results["failed"], results["warnings"])
    return results
