from __future__ import annotations

import json

from flask import current_app

from betwise.extensions import db
from betwise.models import AuditLog


def record_audit(action: str, *, actor_user_id: int | None = None, target_type: str | None = None,
                 target_id=None, meta: dict | None = None) -> None:
    """Best-effort audit row in its own commit; a failing audit never breaks the caller."""
    try:
        db.session.add(AuditLog(
            actor_user_id=actor_user_id,
            action=action,
            target_type=target_type,
            target_id=str(target_id) if target_id is not None else None,
            meta=json.dumps(meta or {}, default=str),
        ))
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.warning("audit write failed for %s", action, exc_info=True)
