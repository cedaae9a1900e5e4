from __future__ import annotations

from urllib.parse import urlencode

from flask import Blueprint, current_app, jsonify, redirect, request
from flask_login import current_user, login_required

from betwise.errors import SettlementFailure
from betwise.models import PaymentTransaction, PaymentType
from betwise.payments.callbacks import SUPPORT, handle_payment_notification
from betwise.payments.service import initiate_payment
from betwise.utils.audit import record_audit
from betwise.utils.idempotency import lookup_response, release_key, store_response

payments_bp = Blueprint("payments_bp", __name__, url_prefix="/api/payments")


def _first(source, *names) -> str | None:
    for name in names:
        value = source.get(name)
        if value:
            return str(value).strip()
    return None


def _notification_params() -> dict:
    merged = {}
    merged.update(request.args.to_dict())
    merged.update(request.form.to_dict())
    body = request.get_json(silent=True)
    if isinstance(body, dict):
        merged.update({k: v for k, v in body.items() if isinstance(v, (str, int))})
    return merged


def _order_id(params: dict) -> str | None:
    # PesaPal: OrderTrackingId; PayPal return: token; legacy IPN body: transaction_id
    return _first(params, "OrderTrackingId", "orderTrackingId", "order_tracking_id", "transaction_id", "token")


def _reference(params: dict) -> str | None:
    return _first(params, "OrderMerchantReference", "orderMerchantReference", "reference")


def _initiate(payment_type: PaymentType):
    data = request.get_json(silent=True) or {}
    uid = int(current_user.id)
    if data.get("userId") not in (None, "") and str(data.get("userId")) != str(uid):
        return jsonify({"success": False, "error": "userId does not match the signed-in user"}), 403

    route = f"/api/payments/{payment_type.value}/initiate"
    idem = lookup_response(uid, route, data)
    if idem and idem[0] in ("hit", "conflict"):
        return jsonify(idem[1]), idem[2]
    idem_row = idem[1] if idem and idem[0] == "miss" else None

    # Only a started checkout is replayed; any failure frees the key for a retry.
    stored = False
    try:
        result = initiate_payment(uid, payment_type, amount=data.get("amount"), phone=data.get("phone") or "")
        body = result.to_dict()
        if result.success and idem_row is not None:
            store_response(idem_row, body, 200)
            stored = True
    finally:
        if idem_row is not None and not stored:
            release_key(idem_row)

    return jsonify(body), 200 if result.success else 502


@payments_bp.post("/deposit/initiate")
@login_required
def initiate_deposit():
    return _initiate(PaymentType.DEPOSIT)


@payments_bp.post("/subscription/initiate")
@login_required
def initiate_subscription():
    return _initiate(PaymentType.SUBSCRIPTION)


@payments_bp.route("/callback", methods=["GET", "POST"])
def payment_callback():
    """Browser return from checkout. Always ends on the UI result page."""
    params = _notification_params()
    reference, order_id = _reference(params), _order_id(params)

    if not reference and not order_id:
        status = SUPPORT
    else:
        try:
            outcome = handle_payment_notification(reference=reference, order_id=order_id, source="callback")
            status = SUPPORT if outcome.status == "ignored" else outcome.status
            reference = outcome.reference or reference
        except SettlementFailure:
            status = SUPPORT

    target = current_app.config.get("PAYMENT_RESULT_URL") or "/"
    sep = "&" if "?" in target else "?"
    return redirect(f"{target}{sep}{urlencode({'status': status, 'reference': reference or ''})}", code=302)


@payments_bp.route("/ipn", methods=["GET", "POST"])
def payment_ipn():
    """Gateway push. 200 on anything we could process, so the gateway stops retrying."""
    params = _notification_params()
    reference, order_id = _reference(params), _order_id(params)
    record_audit("payment_ipn", target_type="payment_transaction", target_id=reference or order_id,
                 meta={"params": params, "remote_addr": request.remote_addr})

    if not reference and not order_id:
        return jsonify({"status": 400, "message": "OrderTrackingId or reference required"}), 400

    ack = {
        "orderNotificationType": params.get("OrderNotificationType") or "IPNCHANGE",
        "orderTrackingId": order_id,
        "orderMerchantReference": reference,
    }
    try:
        outcome = handle_payment_notification(reference=reference, order_id=order_id, source="ipn")
    except SettlementFailure as e:
        # Leave it pending and ask for re-delivery.
        return jsonify({**ack, "status": 500, "message": e.message}), 500

    ack["orderMerchantReference"] = outcome.reference or reference
    return jsonify({**ack, "status": 200, "paymentStatus": outcome.status}), 200


@payments_bp.get("/transactions")
@login_required
def my_payment_transactions():
    rows = (
        PaymentTransaction.query.filter_by(user_id=int(current_user.id))
        .order_by(PaymentTransaction.created_at.desc())
        .limit(200)
        .all()
    )
    return jsonify({"ok": True, "items": [r.to_dict() for r in rows]}), 200


@payments_bp.get("/transactions/<reference>")
@login_required
def payment_status(reference: str):
    ptx = PaymentTransaction.query.filter_by(id=reference, user_id=int(current_user.id)).first()
    if not ptx:
        return jsonify({"message": "Not found"}), 404
    return jsonify({"ok": True, "transaction": ptx.to_dict()}), 200
