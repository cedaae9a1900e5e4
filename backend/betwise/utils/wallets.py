from __future__ import annotations

from decimal import Decimal

from betwise.errors import InsufficientFunds, NotFound, ValidationError
from betwise.extensions import db
from betwise.models import Profile, Transaction, LEDGER_TYPES


def _ledger_entry(user_id: int, amount: Decimal, kind: str, description: str, reference: str | None) -> Transaction:
    if kind not in LEDGER_TYPES:
        raise ValueError(f"unknown ledger type {kind!r}")
    txn = Transaction(
        user_id=int(user_id),
        type=kind,
        amount=amount,
        description=(description or "")[:255],
        reference=(reference or None) and reference[:80],
    )
    db.session.add(txn)
    return txn


def credit_wallet(user_id: int, amount: Decimal, *, kind: str, description: str, reference: str | None = None) -> Transaction:
    """Add to the wallet with a single UPDATE expression and append the ledger entry.

    Does not commit: the caller decides the transaction boundary so the credit
    lands together with whatever status change triggered it.
    """
    if amount <= 0:
        raise ValidationError("amount must be > 0")
    rows = (
        db.session.query(Profile)
        .filter(Profile.id == int(user_id))
        .update({Profile.wallet_balance: Profile.wallet_balance + amount}, synchronize_session=False)
    )
    if rows != 1:
        raise NotFound(f"profile {user_id} not found")
    return _ledger_entry(user_id, amount, kind, description, reference)


def debit_wallet(user_id: int, amount: Decimal, *, kind: str, description: str, reference: str | None = None) -> Transaction:
    """Conditional debit: only succeeds while the balance covers the amount. Caller commits."""
    if amount <= 0:
        raise ValidationError("amount must be > 0")
    rows = (
        db.session.query(Profile)
        .filter(Profile.id == int(user_id), Profile.wallet_balance >= amount)
        .update({Profile.wallet_balance: Profile.wallet_balance - amount}, synchronize_session=False)
    )
    if rows != 1:
        if db.session.get(Profile, int(user_id)) is None:
            raise NotFound(f"profile {user_id} not found")
        raise InsufficientFunds("Your stake exceeds your wallet balance")
    return _ledger_entry(user_id, amount, kind, description, reference)


def wallet_snapshot(user_id: int) -> dict:
    """Authoritative balance straight from the row (bypasses anything stale in the session)."""
    profile = db.session.query(Profile).populate_existing().filter(Profile.id == int(user_id)).first()
    if profile is None:
        raise NotFound(f"profile {user_id} not found")
    return {
        "user_id": int(profile.id),
        "balance": float(profile.wallet_balance or 0),
        "currency": "KES",
        "daily_access_granted_until": profile.daily_access_granted_until.isoformat() if profile.daily_access_granted_until else None,
        "has_daily_access": profile.has_daily_access(),
    }
