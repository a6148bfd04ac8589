"""
src/api/dashboard.py: JSON API over the ledger.

Thin routes only: parse the request, call LedgerService, map the result.
The service instance lives in app.extensions["ledger"] (see app.create_app).
Failed operations come back as {"ok": false, "error", "kind"} with an HTTP
status picked from the error kind.
"""

import time
import logging

from flask import Blueprint, current_app, jsonify, request

from src.ledger.results import HTTP_STATUS

log = logging.getLogger("ledger.api")

bp = Blueprint("dashboard", __name__)


def _ledger():
    return current_app.extensions["ledger"]


def _body() -> dict:
    return request.get_json(silent=True) or {}


def _respond(result: dict, created: bool = False):
    if result.get("ok"):
        return jsonify(result), (201 if created else 200)
    return jsonify(result), HTTP_STATUS.get(result.get("kind"), 400)


def _missing(what: str, key):
    return jsonify({"ok": False, "error": f"{what} {key} not found", "kind": "not_found"}), 404


# ── Request-level structured logging ────────────────────────────────────────
@bp.before_app_request
def _log_request_start():
    request._start_time = time.time()


@bp.after_app_request
def _log_request_end(response):
    if hasattr(request, "_start_time"):
        duration_ms = round((time.time() - request._start_time) * 1000, 1)
        if request.path != "/api/health":
            log.info("%s %s → %d (%.0fms)",
                     request.method, request.path, response.status_code, duration_ms,
                     extra={"route": request.path, "method": request.method,
                            "status": response.status_code, "duration_ms": duration_ms})
    return response


# ═══════════════════════════════════════════════════════════════════════
# Health / Dashboard / Finance
# ═══════════════════════════════════════════════════════════════════════

@bp.route("/api/health")
def api_health():
    ledger = _ledger()
    problems = ledger.audit()
    return jsonify({"ok": not problems, "status": "ok" if not problems else "degraded",
                    "integrity_problems": problems})


@bp.route("/api/dashboard")
def api_dashboard():
    return jsonify({"ok": True, **_ledger().dashboard()})


@bp.route("/api/finance")
def api_finance():
    ledger = _ledger()
    return jsonify({"ok": True, "totals": ledger.finance(),
                    "projects": ledger.project_summaries()})


@bp.route("/api/activity")
def api_activity():
    limit = request.args.get("limit", 50, type=int)
    return jsonify({"ok": True, "activity": _ledger().activity(limit)})


# ═══════════════════════════════════════════════════════════════════════
# Inventory / Suppliers / Customers
# ═══════════════════════════════════════════════════════════════════════

@bp.route("/api/inventory", methods=["GET", "POST"])
def api_inventory():
    if request.method == "POST":
        return _respond(_ledger().add_item(_body()), created=True)
    items = _ledger().list_inventory(request.args.get("type"))
    return jsonify({"ok": True, "items": items, "count": len(items)})


@bp.route("/api/inventory/<code>", methods=["POST"])
def api_inventory_update(code):
    return _respond(_ledger().update_item(code, _body()))


@bp.route("/api/inventory/<code>/delete", methods=["POST"])
def api_inventory_delete(code):
    return _respond(_ledger().delete_item(code))


@bp.route("/api/suppliers", methods=["GET", "POST"])
def api_suppliers():
    if request.method == "POST":
        return _respond(_ledger().add_supplier(_body()), created=True)
    return jsonify({"ok": True, "suppliers": _ledger().list_suppliers()})


@bp.route("/api/suppliers/<sid>", methods=["POST"])
def api_supplier_update(sid):
    return _respond(_ledger().update_supplier(sid, _body()))


@bp.route("/api/suppliers/<sid>/delete", methods=["POST"])
def api_supplier_delete(sid):
    return _respond(_ledger().delete_supplier(sid))


@bp.route("/api/customers", methods=["GET", "POST"])
def api_customers():
    if request.method == "POST":
        return _respond(_ledger().add_customer(_body()), created=True)
    return jsonify({"ok": True, "customers": _ledger().list_customers()})


@bp.route("/api/customers/<cid>", methods=["POST"])
def api_customer_update(cid):
    return _respond(_ledger().update_customer(cid, _body()))


# ═══════════════════════════════════════════════════════════════════════
# Quotes
# ═══════════════════════════════════════════════════════════════════════

@bp.route("/api/quotes", methods=["GET", "POST"])
def api_quotes():
    """POST JSON: {customer_id, project_name, items: [{name, type, quantity, unit_price}],
    profit_margin_percent}"""
    if request.method == "POST":
        data = _body()
        return _respond(_ledger().create_quote(
            data.get("customer_id"), data.get("project_name", ""),
            data.get("items", []), data.get("profit_margin_percent", 0)), created=True)
    return jsonify({"ok": True, "quotes": _ledger().list_quotes(request.args.get("status"))})


@bp.route("/api/quotes/<qid>")
def api_quote_detail(qid):
    quote = _ledger().get_quote(qid)
    if not quote:
        return _missing("Quote", qid)
    return jsonify({"ok": True, "quote": quote})


@bp.route("/api/quotes/<qid>/update", methods=["POST"])
def api_quote_update(qid):
    data = _body()
    fields = {k: data[k] for k in ("items", "profit_margin_percent", "project_name", "customer_id")
              if k in data}
    return _respond(_ledger().update_quote(qid, **fields))


@bp.route("/api/quotes/<qid>/delete", methods=["POST"])
def api_quote_delete(qid):
    return _respond(_ledger().delete_quote(qid))


@bp.route("/api/quotes/<qid>/convert", methods=["POST"])
def api_quote_convert(qid):
    """POST JSON: {advance}"""
    return _respond(_ledger().convert_quote(qid, _body().get("advance", 0)), created=True)


# ═══════════════════════════════════════════════════════════════════════
# Leads (CRM pipeline)
# ═══════════════════════════════════════════════════════════════════════

@bp.route("/api/leads", methods=["GET", "POST"])
def api_leads():
    if request.method == "POST":
        data = _body()
        kwargs = {"title": data.get("title", ""), "notes": data.get("notes", "")}
        if data.get("stage"):
            kwargs["stage"] = data["stage"]
        return _respond(_ledger().create_lead(data.get("customer_id"), **kwargs), created=True)
    if request.args.get("view") == "board":
        return jsonify({"ok": True, "board": _ledger().pipeline_board()})
    return jsonify({"ok": True, "leads": _ledger().list_leads(request.args.get("stage"))})


@bp.route("/api/leads/<lid>")
def api_lead_detail(lid):
    lead = _ledger().get_lead(lid)
    if not lead:
        return _missing("Lead", lid)
    return jsonify({"ok": True, "lead": lead})


@bp.route("/api/leads/<lid>/stage", methods=["POST"])
def api_lead_stage(lid):
    return _respond(_ledger().move_lead(lid, _body().get("stage", "")))


@bp.route("/api/leads/<lid>/bom", methods=["POST"])
def api_lead_bom(lid):
    data = _body()
    return _respond(_ledger().attach_bom(lid, data.get("items", []),
                                         data.get("profit_margin_percent", 0),
                                         data.get("project_name", "")))


@bp.route("/api/leads/<lid>/convert", methods=["POST"])
def api_lead_convert(lid):
    return _respond(_ledger().convert_lead(lid, _body().get("advance", 0)), created=True)


# ═══════════════════════════════════════════════════════════════════════
# Purchase Orders
# ═══════════════════════════════════════════════════════════════════════

@bp.route("/api/orders", methods=["GET", "POST"])
def api_orders():
    """POST JSON: {supplier, date, notes, items: [{name, quantity, unit_price?}]}"""
    if request.method == "POST":
        data = _body()
        return _respond(_ledger().create_order(data.get("supplier", ""), data.get("items", []),
                                               data.get("date"), data.get("notes", "")),
                        created=True)
    orders = _ledger().list_orders(request.args.get("status"), request.args.get("project_id"))
    return jsonify({"ok": True, "orders": orders, "count": len(orders)})


@bp.route("/api/orders/<oid>")
def api_order_detail(oid):
    order = _ledger().get_order(oid)
    if not order:
        return _missing("Purchase order", oid)
    return jsonify({"ok": True, "order": order})


@bp.route("/api/orders/<oid>/payment", methods=["POST"])
def api_order_payment(oid):
    """Record a payment to the supplier. POST: {amount, method, reference}"""
    data = _body()
    return _respond(_ledger().pay_order(oid, data.get("amount"),
                                        data.get("method", ""), data.get("reference", "")))


@bp.route("/api/orders/<oid>/delete", methods=["POST"])
def api_order_delete(oid):
    return _respond(_ledger().delete_order(oid))


# ═══════════════════════════════════════════════════════════════════════
# Projects
# ═══════════════════════════════════════════════════════════════════════

@bp.route("/api/projects")
def api_projects():
    return jsonify({"ok": True, "projects": _ledger().list_projects(request.args.get("status"))})


@bp.route("/api/projects/<pid>")
def api_project_detail(pid):
    ledger = _ledger()
    project = ledger.get_project(pid)
    if not project:
        return _missing("Project", pid)
    return jsonify({"ok": True, "project": project, "orders": ledger.list_orders(project_id=pid)})


@bp.route("/api/projects/<pid>/payment", methods=["POST"])
def api_project_payment(pid):
    """Record a customer payment. POST: {amount, method, reference}"""
    data = _body()
    return _respond(_ledger().receive_payment(pid, data.get("amount"),
                                              data.get("method", ""), data.get("reference", "")))
