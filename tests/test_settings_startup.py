"""Tests for settings resolution, path validation, startup checks and logging setup."""

import json
import logging
import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from src.core import settings, paths


class TestSettings:
    def test_defaults(self):
        resolved = settings.get_all({})
        assert resolved["advance_policy"] == "reject"
        assert resolved["json_mirror"] is True
        assert resolved["activity_limit"] == 200

    def test_config_file(self):
        with open(paths.CONFIG_PATH, "w") as f:
            json.dump({"advance_policy": "allow", "activity_limit": "50"}, f)
        assert settings.get("advance_policy") == "allow"
        assert settings.get("activity_limit") == 50

    def test_env_beats_config(self, monkeypatch):
        monkeypatch.setenv("LEDGER_ADVANCE_POLICY", "Allow")
        assert settings.get("advance_policy", {"advance_policy": "reject"}) == "allow"

    def test_bool_env(self, monkeypatch):
        monkeypatch.setenv("LEDGER_JSON_MIRROR", "off")
        assert settings.get("json_mirror", {}) is False

    def test_bad_int_falls_back(self, monkeypatch):
        monkeypatch.setenv("LEDGER_ACTIVITY_LIMIT", "many")
        assert settings.get("activity_limit", {}) == 200

    def test_unknown_setting(self):
        assert settings.get("nope", {}) is None

    def test_invalid_config_json(self):
        with open(paths.CONFIG_PATH, "w") as f:
            f.write("{broken")
        assert settings.load_config() == {}

    def test_validate_flags_bad_choice(self):
        report = settings.validate_all({"advance_policy": "sometimes"})
        assert any("advance_policy" in w for w in report["warnings"])
        assert report["total"] == len(settings.get_all({}))

    def test_secret_masked(self, monkeypatch):
        monkeypatch.setenv("SECRET_KEY", "super-secret-value")
        report = settings.validate_all({})
        assert report["settings"]["secret_key"]["value"] == "supe****"
        assert report["settings"]["secret_key"]["source"] == "env"


class TestPaths:
    def test_data_dir_writable(self):
        result = paths.validate_paths()
        assert result["ok"]
        assert result["resolved"]["DATA_DIR"] == paths.DATA_DIR


class TestStartupChecks:
    def test_clean_boot(self, app):
        from src.core.startup_checks import run_startup_checks
        with app.app_context():
            result = run_startup_checks(app)
        assert result["failed"] == 0
        assert result["passed"] >= 4

    def test_integrity_failure_reported(self, app, ledger):
        from src.core.startup_checks import run_startup_checks
        ledger.state.projects.append({"id": "PRJ-00099", "total_value": 10,
                                      "advance_received": 0, "balance_remaining": 3})
        result = run_startup_checks(app)
        assert result["failed"] >= 1
        assert any("PRJ-00099" in msg for _, msg in result["details"])

    def test_without_app(self):
        from src.core.startup_checks import run_startup_checks
        result = run_startup_checks()
        assert result["warnings"] >= 1


class TestCreateApp:
    def test_default_boot_uses_sqlite(self):
        from app import create_app
        app = create_app(run_checks=False)
        ledger = app.extensions["ledger"]
        assert ledger.list_projects() == []
        assert app.test_client().get("/api/health").status_code == 200

    def test_db_init_failure_stops_boot(self, monkeypatch):
        import sqlite3
        from app import create_app
        from src.core import db

        def broken_startup():
            raise sqlite3.OperationalError("unable to open database file")

        monkeypatch.setattr(db, "startup", broken_startup)
        with pytest.raises(sqlite3.OperationalError):
            create_app(run_checks=False)


class TestLogging:
    def _record(self, msg, args=(), **extra):
        record = logging.LogRecord("ledger.payments", logging.INFO, __file__, 1, msg, args, None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_ledger_record_shape(self):
        from logging_config import LedgerRecordFormatter
        record = self._record("PO %s paid", ("PO-00001",), order_id="PO-00001",
                              project_id="PRJ-00001", amount=70.0)
        data = json.loads(LedgerRecordFormatter().format(record))
        assert data["message"] == "PO PO-00001 paid"
        assert data["logger"] == "ledger.payments"
        assert data["amount"] == 70.0
        assert data["kind"] is None
        assert data["refs"] == {"order_id": "PO-00001", "project_id": "PRJ-00001"}
        assert "request" not in data

    def test_request_fields_grouped(self):
        from logging_config import LedgerRecordFormatter
        record = self._record("POST /api/quotes → 409", kind="invalid_state",
                              route="/api/quotes", method="POST", status=409)
        data = json.loads(LedgerRecordFormatter().format(record))
        assert data["kind"] == "invalid_state"
        assert data["refs"] == {}
        assert data["request"] == {"route": "/api/quotes", "method": "POST", "status": 409}

    def test_setup_writes_ledger_log(self, tmp_path):
        from logging_config import setup_logging
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            setup_logging(level="info", json_logs=False, log_dir=str(tmp_path))
            logging.getLogger("ledger.payments").info(
                "Customer payment", extra={"project_id": "PRJ-00001", "amount": 164.0})
            added = root.handlers[:]
            for handler in added:
                handler.flush()
        finally:
            for handler in root.handlers[:]:
                root.removeHandler(handler)
                handler.close()
            for handler in saved_handlers:
                root.addHandler(handler)
            root.setLevel(saved_level)

        with open(tmp_path / "ledger.log") as f:
            lines = [json.loads(line) for line in f]
        assert lines[-1]["refs"] == {"project_id": "PRJ-00001"}
        assert lines[-1]["amount"] == 164.0
        assert len(added) == 2
