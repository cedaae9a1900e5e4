from __future__ import annotations

import secrets
import time
from dataclasses import dataclass
from urllib.parse import urlencode

from flask import current_app

from betwise.errors import AuthError, GatewayError, ValidationError
from betwise.extensions import db
from betwise.models import PaymentStatus, PaymentTransaction, PaymentType, Profile
from betwise.payments.gateway import get_gateway
from betwise.utils.money import to_money
from betwise.utils.phone import normalize_phone_number

REFERENCE_PREFIX = {
    PaymentType.DEPOSIT: "DEP",
    PaymentType.SUBSCRIPTION: "SUB",
}


@dataclass
class InitiationResult:
    success: bool
    reference: str | None = None
    checkout_url: str | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        out = {"success": self.success}
        if self.success:
            out["reference"] = self.reference
            out["checkoutUrl"] = self.checkout_url
        else:
            out["error"] = self.error
        return out


def make_reference(payment_type: PaymentType, user_id: int) -> str:
    millis = int(time.time() * 1000)
    return f"{REFERENCE_PREFIX[payment_type]}_{int(user_id)}_{millis}_{secrets.token_hex(2)}"


def callback_url_for(reference: str) -> str:
    base = (current_app.config.get("PUBLIC_BASE_URL") or "").rstrip("/")
    return f"{base}/api/payments/callback?{urlencode({'reference': reference})}"


def _describe(payment_type: PaymentType, amount) -> str:
    if payment_type is PaymentType.DEPOSIT:
        return f"Wallet deposit of KES {amount:,.2f}"
    return "Daily subscription for BetWise sure odds access"


def initiate_payment(user_id: int, payment_type, amount=None, phone: str = "") -> InitiationResult:
    """Start a gateway checkout and track it locally as a pending payment.

    Validation happens before anything else. The local row is written only
    after the gateway accepted the order, and committed before the checkout URL
    goes back to the caller: the callback and IPN paths look it up.
    """
    try:
        ptype = PaymentType(payment_type)
    except ValueError:
        raise ValidationError("type must be deposit or subscription", meta={"field": "type"})

    phone_number = normalize_phone_number(phone)
    cfg = current_app.config
    if ptype is PaymentType.DEPOSIT:
        value = to_money(amount, maximum=cfg.get("MAX_AMOUNT"))
        minimum = to_money(cfg.get("MIN_DEPOSIT", 100), "MIN_DEPOSIT")
        if value < minimum:
            raise ValidationError(f"Minimum deposit is KES {minimum:,.2f}", meta={"field": "amount", "minimum": float(minimum)})
    else:
        value = to_money(cfg.get("SUBSCRIPTION_FEE", 500), "SUBSCRIPTION_FEE")

    if db.session.get(Profile, int(user_id)) is None:
        raise ValidationError("Unknown user", meta={"field": "userId"})

    reference = make_reference(ptype, user_id)
    description = _describe(ptype, value)
    gateway = get_gateway()

    try:
        order = gateway.submit_order(
            amount=value,
            currency=cfg.get("CURRENCY", "KES"),
            payer=phone_number,
            reference=reference,
            description=description,
            callback_url=callback_url_for(reference),
        )
    except AuthError as e:
        current_app.logger.error("gateway auth failed for %s (%s): %s", reference, gateway.name, e.meta)
        return InitiationResult(False, error="Payment temporarily unavailable")
    except GatewayError as e:
        current_app.logger.warning("gateway rejected %s (%s) status=%s payload=%r", reference, gateway.name, e.status, e.payload)
        return InitiationResult(False, error="Payment initiation failed. Please try again.")

    ptx = PaymentTransaction(
        id=reference,
        user_id=int(user_id),
        type=ptype.value,
        amount=value,
        status=PaymentStatus.PENDING.value,
        provider=gateway.name,
        transaction_id=order.order_id,
        phone_number=phone_number,
        description=description,
    )
    db.session.add(ptx)
    db.session.commit()

    current_app.logger.info("payment %s initiated: %s KES %s order=%s", reference, ptype.value, value, order.order_id)
    return InitiationResult(True, reference=reference, checkout_url=order.checkout_url)
