"""Payment status reconciliation for IPN pushes, browser returns and the poller.

State machine: pending -> completed | failed. Terminal states are final.
Every entry point funnels into `handle_payment_notification`.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from flask import current_app

from betwise.errors import AuthError, GatewayError, ReconciliationConflict, SettlementFailure
from betwise.extensions import db
from betwise.models import PaymentStatus, PaymentTransaction
from betwise.payments.gateway import COMPLETED, FAILED, get_gateway
from betwise.payments.settlement import apply_payment_settlement
from betwise.utils.audit import record_audit

# UI-facing outcomes
PROCESSING = "processing"
SUPPORT = "support"
IGNORED = "ignored"


@dataclass
class NotificationOutcome:
    status: str
    reference: str | None = None
    order_id: str | None = None
    settled: bool = False

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "reference": self.reference,
            "orderTrackingId": self.order_id,
            "settled": self.settled,
        }


def find_payment(*, reference: str | None = None, order_id: str | None = None,
                 prefer: str = "reference") -> PaymentTransaction | None:
    lookups = [("reference", reference), ("order_id", order_id)]
    if prefer == "order_id":
        lookups.reverse()
    for kind, value in lookups:
        if not value:
            continue
        if kind == "reference":
            ptx = db.session.get(PaymentTransaction, value)
        else:
            ptx = PaymentTransaction.query.filter_by(transaction_id=value).first()
        if ptx is not None:
            return ptx
    return None


def _conflict(reason: str, *, reference, order_id, source: str, status: str | None = None) -> None:
    conflict = ReconciliationConflict(reason, meta={
        "reference": reference, "order_id": order_id, "source": source, "status": status,
    })
    if status is None:
        current_app.logger.warning("payment notification for unknown transaction ref=%s order=%s via %s",
                                   reference, order_id, source)
    else:
        current_app.logger.info("duplicate %s notification for %s (already %s)", source, reference, status)
    record_audit("reconciliation_conflict", target_type="payment_transaction", target_id=reference or order_id,
                 meta={"reason": conflict.message, **conflict.meta})


def _mark_failed(ptx: PaymentTransaction, source: str) -> NotificationOutcome:
    reference, order_id = ptx.id, ptx.transaction_id
    rows = (
        PaymentTransaction.query.filter_by(id=reference, status=PaymentStatus.PENDING.value)
        .update({"status": PaymentStatus.FAILED.value, "updated_at": datetime.utcnow()}, synchronize_session=False)
    )
    db.session.commit()
    if rows == 1:
        current_app.logger.info("payment %s failed at gateway (via %s)", reference, source)
        return NotificationOutcome(FAILED, reference, order_id)
    current = db.session.get(PaymentTransaction, reference)
    return NotificationOutcome(current.status, reference, order_id)


def _complete_and_settle(ptx: PaymentTransaction, source: str) -> NotificationOutcome:
    reference, order_id = ptx.id, ptx.transaction_id
    claimed = (
        PaymentTransaction.query.filter_by(id=reference, status=PaymentStatus.PENDING.value)
        .update({"status": PaymentStatus.COMPLETED.value, "updated_at": datetime.utcnow()}, synchronize_session=False)
    )
    if claimed != 1:
        # A concurrent delivery got here first and owns the settlement.
        db.session.rollback()
        current = db.session.get(PaymentTransaction, reference)
        return NotificationOutcome(current.status, reference, order_id)

    try:
        apply_payment_settlement(ptx)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        current_app.logger.exception(
            "SETTLEMENT FAILURE payment=%s user=%s type=%s amount=%s: left pending for retry",
            reference, ptx.user_id, ptx.type, ptx.amount,
        )
        record_audit("settlement_failure", target_type="payment_transaction", target_id=reference,
                     meta={"source": source, "error": str(e)})
        raise SettlementFailure(f"Settlement failed for {reference}", meta={"reference": reference}) from e

    current_app.logger.info("payment %s completed and settled (via %s)", reference, source)
    return NotificationOutcome(COMPLETED, reference, order_id, settled=True)


def handle_payment_notification(*, reference: str | None = None, order_id: str | None = None,
                                source: str = "ipn") -> NotificationOutcome:
    """Bring one local payment in line with the gateway.

    Raises `SettlementFailure` only when the gateway says completed and the
    wallet/access write failed; the transaction stays pending in that case.
    """
    prefer = "order_id" if source in ("ipn", "poller") else "reference"
    ptx = find_payment(reference=reference, order_id=order_id, prefer=prefer)
    if ptx is None:
        _conflict("unknown transaction", reference=reference, order_id=order_id, source=source)
        return NotificationOutcome(IGNORED, reference, order_id)

    if ptx.payment_status.is_terminal:
        _conflict("already terminal", reference=ptx.id, order_id=ptx.transaction_id, source=source, status=ptx.status)
        return NotificationOutcome(ptx.status, ptx.id, ptx.transaction_id)

    if not ptx.transaction_id:
        return NotificationOutcome(PROCESSING, ptx.id, None)

    gateway = get_gateway()
    try:
        status = gateway.query_order_status(ptx.transaction_id)
    except (GatewayError, AuthError) as e:
        # Unknown outcome: neither settle nor fail. The poller will come back to it.
        current_app.logger.warning("status query for %s failed (%s): %s", ptx.id, gateway.name, e.message)
        return NotificationOutcome(PROCESSING, ptx.id, ptx.transaction_id)

    if status == COMPLETED:
        return _complete_and_settle(ptx, source)
    if status == FAILED:
        return _mark_failed(ptx, source)
    return NotificationOutcome(PROCESSING, ptx.id, ptx.transaction_id)
