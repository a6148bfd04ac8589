#!/usr/bin/env python3
"""
Quote Ledger: Application Entry Point
Creates the Flask app, loads the ledger and registers the API Blueprint.
"""

import os
import logging

from flask import Flask

log = logging.getLogger("ledger")


def create_app(ledger=None, run_checks=True):
    """Application factory.

    Args:
        ledger: a ready LedgerService (tests pass one in); default loads
            the SQLite-backed ledger from DATA_DIR.
        run_checks: run startup self-tests after registration.
    """
    from src.core import settings

    app = Flask(__name__)
    app.secret_key = settings.get("secret_key")

    # ── Persistent database init ──────────────────────────────────────────────
    # No fallback store: a ledger that cannot load its data must not serve.
    if ledger is None:
        from src.core.db import startup as db_startup
        try:
            result = db_startup()
        except Exception as e:
            log.error("DB init failed: %s", e)
            raise
        log.info("DB: %s | projects=%d orders=%d quotes=%d",
                 result["db_path"],
                 result["stats"].get("projects", 0),
                 result["stats"].get("orders", 0),
                 result["stats"].get("quotes", 0))

        from src.ledger.service import LedgerService
        ledger = LedgerService()

    app.extensions["ledger"] = ledger

    from src.api.dashboard import bp
    app.register_blueprint(bp)

    # ── Runtime self-test: catches path/config/data bugs at boot ─────────────
    if run_checks:
        try:
            from src.core.startup_checks import run_startup_checks
            with app.app_context():
                checks = run_startup_checks(app)
                if checks["failed"] > 0:
                    log.error("STARTUP: %d checks FAILED: review logs", checks["failed"])
        except Exception as e:
            log.warning("Startup checks skipped: %s", e)

    return app


if __name__ == "__main__":
    from logging_config import setup_logging
    setup_logging()
    port = int(os.environ.get("PORT", 5000))
    create_app().run(host="0.0.0.0", port=port)
