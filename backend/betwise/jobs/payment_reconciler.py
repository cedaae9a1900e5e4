from __future__ import annotations

from datetime import datetime, timedelta

from flask import current_app

from betwise.errors import SettlementFailure
from betwise.models import PaymentStatus, PaymentTransaction
from betwise.payments.callbacks import handle_payment_notification


def reconcile_pending_payments(*, older_than_minutes: int | None = None, limit: int = 200) -> dict:
    """Poll the gateway for payments still pending after their IPN should have arrived.

    Runs through the same handler as the IPN, so it settles at most once and
    leaves anything the gateway still calls pending alone.
    """
    if older_than_minutes is None:
        older_than_minutes = int(current_app.config.get("RECONCILE_MIN_AGE_MINUTES", 5))
    cutoff = datetime.utcnow() - timedelta(minutes=int(older_than_minutes))

    rows = (
        PaymentTransaction.query
        .filter(PaymentTransaction.status == PaymentStatus.PENDING.value)
        .filter(PaymentTransaction.transaction_id.isnot(None))
        .filter(PaymentTransaction.created_at <= cutoff)
        .order_by(PaymentTransaction.created_at.asc())
        .limit(int(limit))
        .all()
    )
    targets = [(p.id, p.transaction_id) for p in rows]

    counts = {"checked": 0, "completed": 0, "failed": 0, "pending": 0, "errors": 0}
    errors = []
    for reference, order_id in targets:
        counts["checked"] += 1
        try:
            outcome = handle_payment_notification(reference=reference, order_id=order_id, source="poller")
        except SettlementFailure as e:
            counts["errors"] += 1
            errors.append({"reference": reference, "message": e.message})
            continue
        if outcome.status == "completed":
            counts["completed"] += 1
        elif outcome.status == "failed":
            counts["failed"] += 1
        else:
            counts["pending"] += 1

    current_app.logger.info("payment reconciliation: %s", counts)
    return {"ok": True, **counts, "failures": errors}
