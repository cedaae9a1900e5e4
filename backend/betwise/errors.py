from __future__ import annotations

from typing import Any


class BetwiseError(Exception):
    """Base error; carries the HTTP status the API answers with."""

    status_code = 500
    code = "error"

    def __init__(self, message: str, *, meta: dict | None = None):
        super().__init__(message)
        self.message = message
        self.meta = meta or {}

    def to_dict(self) -> dict:
        out: dict[str, Any] = {"ok": False, "message": self.message, "error": self.code}
        if self.meta:
            out["meta"] = self.meta
        return out


class ValidationError(BetwiseError):
    """Bad amount, bad phone, missing fields. Raised before any gateway or storage call."""

    status_code = 400
    code = "validation_error"


class InsufficientFunds(ValidationError):
    code = "insufficient_funds"


class NotFound(BetwiseError):
    status_code = 404
    code = "not_found"


class AuthError(BetwiseError):
    """Gateway rejected our credentials or answered the token call with junk."""

    status_code = 503
    code = "payment_unavailable"

    def to_dict(self) -> dict:
        return {"ok": False, "message": "Payment temporarily unavailable", "error": self.code}


class GatewayError(BetwiseError):
    """Non-2xx or malformed provider response. `payload` keeps the raw body for diagnostics."""

    status_code = 502
    code = "gateway_error"

    def __init__(self, message: str, *, payload: Any = None, status: int | None = None, transient: bool = False):
        super().__init__(message)
        self.payload = payload
        self.status = status
        self.transient = transient


class ReconciliationConflict(BetwiseError):
    """Callback/IPN for an unknown or already-terminal transaction. Never an error to the gateway."""

    status_code = 200
    code = "reconciliation_conflict"


class SettlementFailure(BetwiseError):
    status_code = 500
    code = "settlement_failure"


class ResultConflict(BetwiseError):
    status_code = 409
    code = "result_conflict"


class InUse(BetwiseError):
    """Delete refused: other rows still point at this one."""

    status_code = 409
    code = "in_use"
