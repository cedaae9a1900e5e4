from __future__ import annotations

from flask import Blueprint, jsonify
from flask_login import current_user, login_required

from betwise.models import Transaction
from betwise.utils.wallets import wallet_snapshot

wallets_bp = Blueprint("wallets_bp", __name__, url_prefix="/api/wallet")


@wallets_bp.get("")
@login_required
def my_wallet():
    return jsonify({"ok": True, "wallet": wallet_snapshot(int(current_user.id))}), 200


@wallets_bp.get("/ledger")
@login_required
def my_ledger():
    rows = (
        Transaction.query.filter_by(user_id=int(current_user.id))
        .order_by(Transaction.created_at.desc(), Transaction.id.desc())
        .limit(200)
        .all()
    )
    return jsonify({"ok": True, "items": [t.to_dict() for t in rows]}), 200
