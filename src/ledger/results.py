"""
results.py: Structured operation outcomes.

Every ledger operation returns a plain dict:
  success → {"ok": True, ...payload}
  failure → {"ok": False, "error": "<message>", "kind": "<error kind>"}
"""

NOT_FOUND = "not_found"
INVALID_AMOUNT = "invalid_amount"
OVERPAYMENT = "overpayment_rejected"
PERSISTENCE = "persistence_failure"
INVALID_STATE = "invalid_state"
VALIDATION = "validation"

ERROR_KINDS = (NOT_FOUND, INVALID_AMOUNT, OVERPAYMENT, PERSISTENCE,
               INVALID_STATE, VALIDATION)

# HTTP status per error kind, used by the API layer
HTTP_STATUS = {
    NOT_FOUND: 404,
    INVALID_AMOUNT: 400,
    VALIDATION: 400,
    OVERPAYMENT: 409,
    INVALID_STATE: 409,
    PERSISTENCE: 500,
}


def ok(**payload) -> dict:
    result = {"ok": True}
    result.update(payload)
    return result


def fail(kind: str, error: str, **extra) -> dict:
    result = {"ok": False, "error": error, "kind": kind}
    result.update(extra)
    return result
