from __future__ import annotations

import hashlib
import json
from typing import Any

from flask import request
from sqlalchemy.exc import IntegrityError

from betwise.extensions import db
from betwise.models import IdempotencyKey


def _hash_request(payload: Any) -> str:
    try:
        raw = json.dumps(payload, sort_keys=True, default=str).encode("utf-8")
    except (TypeError, ValueError):
        raw = str(payload).encode("utf-8")
    return hashlib.sha256(raw).hexdigest()


def get_idempotency_key() -> str | None:
    # Common header pattern
    k = request.headers.get("Idempotency-Key") or request.headers.get("X-Idempotency-Key")
    if not k:
        return None
    return k.strip()[:128]


def lookup_response(user_id: int | None, route: str, payload: Any):
    """Returns None (no header), ("hit", body, status), ("conflict", body, 409) or ("miss", row, 0)."""
    k = get_idempotency_key()
    if not k:
        return None

    rh = _hash_request(payload)
    row = IdempotencyKey.query.filter_by(key=k).first()
    if row:
        # Same key, different payload or different caller: conflict
        if (row.request_hash and row.request_hash != rh) or row.user_id != user_id or row.route != route:
            return ("conflict", {"ok": False, "message": "Idempotency key reuse with different payload"}, 409)
        if row.response_json:
            return ("hit", json.loads(row.response_json), int(row.status_code or 200))
        return ("conflict", {"ok": False, "message": "Request with this idempotency key is still in progress"}, 409)

    row = IdempotencyKey(key=k, user_id=int(user_id) if user_id is not None else None, route=route, request_hash=rh)
    db.session.add(row)
    try:
        db.session.commit()
    except IntegrityError:
        # Concurrent first use of the same key
        db.session.rollback()
        return ("conflict", {"ok": False, "message": "Request with this idempotency key is still in progress"}, 409)
    return ("miss", row, 0)


def store_response(row: IdempotencyKey, response_json: Any, status_code: int):
    row.response_json = json.dumps(response_json, default=str)
    row.status_code = int(status_code)
    db.session.add(row)
    db.session.commit()


def release_key(row: IdempotencyKey):
    """Forget a key whose request did not start a checkout so the client can resend."""
    db.session.rollback()
    db.session.delete(row)
    db.session.commit()
