"""Payment gateway clients.

One `PaymentGateway` interface, three providers:

- PesaPal v3 (M-Pesa / card checkout, KES)
- PayPal Orders v2
- a simulator that never leaves the process, for development and tests

`get_gateway()` picks the provider from `PAYMENT_PROVIDER`. Callers only ever see
`GatewayOrder` and the three local statuses (pending / completed / failed).
"""
from __future__ import annotations

import hashlib
import time
from dataclasses import dataclass
from decimal import Decimal
from urllib.parse import urlencode

import requests
from flask import current_app
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from betwise.errors import AuthError, GatewayError

PENDING = "pending"
COMPLETED = "completed"
FAILED = "failed"


@dataclass(frozen=True)
class GatewayOrder:
    order_id: str
    checkout_url: str


def build_session(retries: int) -> requests.Session:
    """Session with bounded retries.

    Connection failures are retried for every method; read/status retries only
    for GET so an order submission is never replayed after the provider saw it.
    """
    session = requests.Session()
    retry_strategy = Retry(
        total=retries,
        connect=retries,
        read=retries,
        status=retries,
        backoff_factor=0.5,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods=frozenset({"GET"}),
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry_strategy)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


def _json_or_none(resp: requests.Response):
    try:
        return resp.json()
    except ValueError:
        return None


class PaymentGateway:
    name = "base"
    # Provider status string (upper-cased) -> local status. Anything missing is pending.
    STATUS_MAP: dict[str, str] = {}

    def __init__(self, *, timeout: float = 20, retries: int = 2, session: requests.Session | None = None):
        self.timeout = float(timeout)
        self.session = session or build_session(int(retries))

    def map_status(self, provider_status) -> str:
        return self.STATUS_MAP.get(str(provider_status or "").strip().upper(), PENDING)

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        kwargs.setdefault("timeout", self.timeout)
        try:
            return self.session.request(method, url, **kwargs)
        except requests.RequestException as e:
            # Timeouts and connection errors: outcome unknown, callers must not settle or fail on this.
            raise GatewayError(f"{self.name} unreachable: {e.__class__.__name__}", transient=True) from e

    def get_access_token(self) -> str:
        raise NotImplementedError

    def submit_order(self, *, amount: Decimal, currency: str, payer: str, reference: str,
                     description: str, callback_url: str) -> GatewayOrder:
        raise NotImplementedError

    def query_order_status(self, order_id: str) -> str:
        raise NotImplementedError


class PesapalGateway(PaymentGateway):
    name = "pesapal"
    STATUS_MAP = {
        "COMPLETED": COMPLETED,
        "PENDING": PENDING,
        "FAILED": FAILED,
        "CANCELLED": FAILED,
        "INVALID": FAILED,
        "REVERSED": FAILED,
    }

    SANDBOX_URL = "https://cybqa.pesapal.com/pesapalv3"
    LIVE_URL = "https://pay.pesapal.com/v3"

    def __init__(self, *, consumer_key: str, consumer_secret: str, base_url: str = "",
                 environment: str = "sandbox", ipn_id: str = "", **kwargs):
        super().__init__(**kwargs)
        self.consumer_key = consumer_key
        self.consumer_secret = consumer_secret
        self.ipn_id = ipn_id
        if not base_url:
            base_url = self.LIVE_URL if (environment or "").lower() == "live" else self.SANDBOX_URL
        self.base_url = base_url.rstrip("/")

    def get_access_token(self) -> str:
        if not self.consumer_key or not self.consumer_secret:
            raise AuthError("PesaPal credentials not configured")
        resp = self._request(
            "POST",
            f"{self.base_url}/api/Auth/RequestToken",
            json={"consumer_key": self.consumer_key, "consumer_secret": self.consumer_secret},
            headers={"Accept": "application/json"},
        )
        data = _json_or_none(resp)
        if not isinstance(data, dict):
            raise AuthError("PesaPal token endpoint returned non-JSON", meta={"status": resp.status_code, "raw": resp.text[:500]})
        token = data.get("token")
        if resp.status_code >= 400 or data.get("error") or not token:
            raise AuthError("PesaPal rejected credentials", meta={"status": resp.status_code, "error": data.get("error")})
        return token

    def submit_order(self, *, amount, currency, payer, reference, description, callback_url) -> GatewayOrder:
        token = self.get_access_token()
        payload = {
            "id": reference,
            "currency": currency,
            "amount": float(amount),
            "description": description[:100],
            "callback_url": callback_url,
            "notification_id": self.ipn_id or reference,
            "billing_address": {
                "email_address": "user@betwise.com",
                "phone_number": payer,
                "country_code": "KE",
                "first_name": "BetWise",
                "last_name": "User",
            },
        }
        resp = self._request(
            "POST",
            f"{self.base_url}/api/Transactions/SubmitOrderRequest",
            json=payload,
            headers={"Accept": "application/json", "Authorization": f"Bearer {token}"},
        )
        data = _json_or_none(resp)
        if not isinstance(data, dict):
            raise GatewayError("PesaPal order response was not JSON", payload=resp.text[:2000], status=resp.status_code)
        order_id = data.get("order_tracking_id")
        if resp.status_code >= 400 or data.get("error") or not order_id:
            raise GatewayError("PesaPal rejected the order", payload=data, status=resp.status_code)
        return GatewayOrder(order_id=str(order_id), checkout_url=data.get("redirect_url") or "")

    def query_order_status(self, order_id: str) -> str:
        token = self.get_access_token()
        resp = self._request(
            "GET",
            f"{self.base_url}/api/Transactions/GetTransactionStatus",
            params={"orderTrackingId": order_id},
            headers={"Accept": "application/json", "Authorization": f"Bearer {token}"},
        )
        data = _json_or_none(resp)
        if resp.status_code >= 400 or not isinstance(data, dict):
            raise GatewayError("PesaPal status query failed", payload=data if data is not None else resp.text[:2000],
                               status=resp.status_code, transient=resp.status_code >= 500)
        return self.map_status(data.get("payment_status_description"))


class PaypalGateway(PaymentGateway):
    name = "paypal"
    STATUS_MAP = {
        "COMPLETED": COMPLETED,
        "VOIDED": FAILED,
        "DECLINED": FAILED,
        "CREATED": PENDING,
        "SAVED": PENDING,
        "APPROVED": PENDING,
        "PAYER_ACTION_REQUIRED": PENDING,
    }

    SANDBOX_URL = "https://api-m.sandbox.paypal.com"
    LIVE_URL = "https://api-m.paypal.com"

    def __init__(self, *, client_id: str, secret: str, environment: str = "sandbox", **kwargs):
        super().__init__(**kwargs)
        self.client_id = client_id
        self.secret = secret
        self.base_url = self.LIVE_URL if (environment or "").lower() == "live" else self.SANDBOX_URL

    def get_access_token(self) -> str:
        if not self.client_id or not self.secret:
            raise AuthError("PayPal credentials not configured")
        resp = self._request(
            "POST",
            f"{self.base_url}/v1/oauth2/token",
            auth=(self.client_id, self.secret),
            data={"grant_type": "client_credentials"},
            headers={"Accept": "application/json"},
        )
        data = _json_or_none(resp)
        if not isinstance(data, dict):
            raise AuthError("PayPal token endpoint returned non-JSON", meta={"status": resp.status_code, "raw": resp.text[:500]})
        token = data.get("access_token")
        if resp.status_code >= 400 or not token:
            raise AuthError("PayPal rejected credentials", meta={"status": resp.status_code, "error": data.get("error")})
        return token

    def _headers(self, token: str) -> dict:
        return {"Content-Type": "application/json", "Authorization": f"Bearer {token}"}

    def submit_order(self, *, amount, currency, payer, reference, description, callback_url) -> GatewayOrder:
        token = self.get_access_token()
        payload = {
            "intent": "CAPTURE",
            "purchase_units": [{
                "reference_id": reference,
                "custom_id": reference,
                "description": description[:127],
                "amount": {"currency_code": currency, "value": f"{Decimal(amount):.2f}"},
            }],
            "application_context": {
                "return_url": callback_url,
                "cancel_url": callback_url,
            },
        }
        resp = self._request("POST", f"{self.base_url}/v2/checkout/orders", json=payload, headers=self._headers(token))
        data = _json_or_none(resp)
        if not isinstance(data, dict):
            raise GatewayError("PayPal order response was not JSON", payload=resp.text[:2000], status=resp.status_code)
        if resp.status_code >= 400 or not data.get("id"):
            raise GatewayError("PayPal rejected the order", payload=data, status=resp.status_code)
        approve = next(
            (link.get("href") for link in data.get("links") or [] if link.get("rel") in ("approve", "payer-action")),
            "",
        )
        return GatewayOrder(order_id=str(data["id"]), checkout_url=approve)

    def query_order_status(self, order_id: str) -> str:
        token = self.get_access_token()
        resp = self._request("GET", f"{self.base_url}/v2/checkout/orders/{order_id}", headers=self._headers(token))
        data = _json_or_none(resp)
        if resp.status_code >= 400 or not isinstance(data, dict):
            raise GatewayError("PayPal order lookup failed", payload=data if data is not None else resp.text[:2000],
                               status=resp.status_code, transient=resp.status_code >= 500)
        status = str(data.get("status") or "").upper()
        if status == "APPROVED":
            # Buyer approved; money only moves once we capture.
            cap = self._request("POST", f"{self.base_url}/v2/checkout/orders/{order_id}/capture", headers=self._headers(token))
            cap_data = _json_or_none(cap)
            if cap.status_code >= 400 or not isinstance(cap_data, dict):
                raise GatewayError("PayPal capture failed", payload=cap_data if cap_data is not None else cap.text[:2000],
                                   status=cap.status_code, transient=cap.status_code >= 500)
            status = str(cap_data.get("status") or "").upper()
        return self.map_status(status)


class SimulatedGateway(PaymentGateway):
    """Loops the browser straight back to our callback; nothing leaves the process."""

    name = "sim"
    STATUS_MAP = {"COMPLETED": COMPLETED, "PENDING": PENDING, "FAILED": FAILED}

    def __init__(self, *, delay: float = 0, outcome: str = COMPLETED, **kwargs):
        super().__init__(**kwargs)
        self.delay = float(delay)
        self.outcome = outcome

    @staticmethod
    def order_id_for(reference: str) -> str:
        return "TXN_" + hashlib.sha1(reference.encode("utf-8")).hexdigest()[:16].upper()

    def get_access_token(self) -> str:
        return "sim-token"

    def submit_order(self, *, amount, currency, payer, reference, description, callback_url) -> GatewayOrder:
        if self.delay:
            time.sleep(self.delay)
        order_id = self.order_id_for(reference)
        sep = "&" if "?" in callback_url else "?"
        query = urlencode({
            "OrderTrackingId": order_id,
            "OrderMerchantReference": reference,
            "payment_status": self.outcome,
        })
        return GatewayOrder(order_id=order_id, checkout_url=f"{callback_url}{sep}{query}")

    def query_order_status(self, order_id: str) -> str:
        if self.delay:
            time.sleep(self.delay)
        return self.map_status(self.outcome)


def build_gateway(config) -> PaymentGateway:
    provider = (config.get("PAYMENT_PROVIDER") or "sim").strip().lower()
    common = {
        "timeout": config.get("GATEWAY_TIMEOUT", 20),
        "retries": config.get("GATEWAY_RETRIES", 2),
    }
    if provider == "pesapal":
        return PesapalGateway(
            consumer_key=config.get("PESAPAL_CONSUMER_KEY", ""),
            consumer_secret=config.get("PESAPAL_CONSUMER_SECRET", ""),
            base_url=config.get("PESAPAL_API_BASE_URL", ""),
            environment=config.get("PESAPAL_ENVIRONMENT", "sandbox"),
            ipn_id=config.get("PESAPAL_IPN_ID", ""),
            **common,
        )
    if provider == "paypal":
        return PaypalGateway(
            client_id=config.get("PAYPAL_CLIENT_ID", ""),
            secret=config.get("PAYPAL_SECRET", ""),
            environment=config.get("PAYPAL_ENVIRONMENT", "sandbox"),
            **common,
        )
    if provider == "sim":
        return SimulatedGateway(
            delay=config.get("SIM_GATEWAY_DELAY", 0),
            outcome=config.get("SIM_GATEWAY_OUTCOME", COMPLETED),
            **common,
        )
    raise ValueError(f"unknown PAYMENT_PROVIDER {provider!r}")


def get_gateway() -> PaymentGateway:
    """Gateway for the current app, built once and kept on `app.extensions`."""
    gw = current_app.extensions.get("payment_gateway")
    if gw is None:
        gw = build_gateway(current_app.config)
        current_app.extensions["payment_gateway"] = gw
    return gw
