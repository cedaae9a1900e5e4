from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import func

from betwise.extensions import db
from betwise.models import Profile, Transaction, CREDIT_TYPES, DEBIT_TYPES
from betwise.utils.audit import record_audit


def _sum_ledger(user_id: int) -> Decimal:
    def total(types) -> Decimal:
        value = db.session.query(func.coalesce(func.sum(Transaction.amount), 0)).filter(
            Transaction.user_id == int(user_id),
            Transaction.type.in_(types),
        ).scalar()
        return Decimal(str(value or 0))

    return total(CREDIT_TYPES) - total(DEBIT_TYPES)


def reconcile_wallets(*, limit: int = 500, tolerance: Decimal = Decimal("0.01")) -> dict:
    """Detect wallet anomalies (ledger vs stored balance).

    This does NOT auto-correct balances. It logs anomalies into AuditLog so they are visible.
    """
    checked = 0
    anomalies = []
    now = datetime.utcnow()

    profiles = Profile.query.order_by(Profile.id.asc()).limit(int(limit)).all()
    for p in profiles:
        checked += 1
        computed = _sum_ledger(int(p.id))
        stored = Decimal(str(p.wallet_balance or 0))

        issues = []
        if abs(computed - stored) > tolerance:
            issues.append("ledger_mismatch")
        if stored < 0:
            issues.append("negative_balance")
        if not issues:
            continue

        meta = {
            "issues": issues,
            "user_id": int(p.id),
            "computed_balance": str(computed),
            "stored_balance": str(stored),
            "at": now.isoformat(),
        }
        anomalies.append(meta)
        record_audit("wallet_anomaly", target_type="profile", target_id=int(p.id), meta=meta)

    return {"checked": checked, "anomalies": len(anomalies), "details": anomalies[:25]}
