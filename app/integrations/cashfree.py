"""
Cashfree Payment Gateway (PG) REST client and payload parsing.

API auth: static client id / secret headers plus a pinned API version.
Environment (sandbox/production) selects the base URL.

The payment payload shape varies with the payment method, so the method
sub-object is parsed into one variant per method before anything reads it.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

import httpx

from app.config import settings

logger = logging.getLogger(__name__)

ORDER_PAID = "PAID"
ORDER_ACTIVE = "ACTIVE"
PAYMENT_SUCCESS = "SUCCESS"


class CashfreeError(Exception):
    """Raised when a Cashfree API call fails (transport error or non-2xx)"""

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


def _headers() -> Dict[str, str]:
    return {
        "x-client-id": settings.cashfree_client_id,
        "x-client-secret": settings.cashfree_client_secret,
        "x-api-version": settings.cashfree_api_version,
        "Content-Type": "application/json",
    }


def _request(method: str, path: str, json: Optional[dict] = None) -> Any:
    url = f"{settings.cashfree_base_url}{path}"
    try:
        with httpx.Client(timeout=settings.cashfree_timeout_seconds) as client:
            resp = client.request(method, url, headers=_headers(), json=json)
    except httpx.HTTPError as e:
        logger.error("Cashfree %s %s failed: %s", method, path, e)
        raise CashfreeError(f"Cashfree request failed: {e}") from e

    if resp.status_code < 200 or resp.status_code >= 300:
        logger.error("Cashfree %s %s returned %s: %s", method, path, resp.status_code, resp.text)
        raise CashfreeError(
            f"Cashfree responded with status {resp.status_code}",
            status_code=resp.status_code,
            body=resp.text,
        )

    try:
        return resp.json()
    except ValueError as e:
        raise CashfreeError("Cashfree returned a non-JSON body", status_code=resp.status_code, body=resp.text) from e


def fetch_order(order_id: str) -> dict:
    """GET /orders/{order_id}. Authoritative order status; raises CashfreeError on failure."""
    return _request("GET", f"/orders/{order_id}")


def fetch_payments(order_id: str) -> List[dict]:
    """GET /orders/{order_id}/payments. All payment attempts for the order."""
    body = _request("GET", f"/orders/{order_id}/payments")
    if not isinstance(body, list):
        logger.warning("Unexpected payments payload for order %s: %s", order_id, body)
        return []
    return body


def create_order(
    order_id: str,
    amount: float,
    customer_id: str,
    customer_email: str,
    customer_phone: str,
    return_url: str,
    order_tags: Optional[Dict[str, str]] = None,
) -> dict:
    """POST /orders. Opens a checkout session; the response carries payment_session_id."""
    payload = {
        "order_id": order_id,
        "order_amount": amount,
        "order_currency": settings.order_currency,
        "customer_details": {
            "customer_id": customer_id,
            "customer_email": customer_email,
            "customer_phone": customer_phone,
        },
        "order_meta": {
            "return_url": return_url,
        },
    }
    if order_tags:
        payload["order_tags"] = order_tags
    return _request("POST", "/orders", json=payload)


def terminate_order(order_id: str) -> dict:
    """
    PATCH /orders/{order_id}. Closes an unpaid order so it can no longer be paid.
    Cashfree refuses to terminate an order that is already paid.
    """
    return _request("PATCH", f"/orders/{order_id}", json={"order_status": "TERMINATED"})


def select_payment(payments: Optional[List[dict]]) -> Optional[dict]:
    """Pick the successful attempt, else the first attempt, else None"""
    if not payments:
        return None
    for payment in payments:
        if payment.get("payment_status") == PAYMENT_SUCCESS:
            return payment
    return payments[0]


# ---------------------------------------------------------------------------
# Payment method variants
# ---------------------------------------------------------------------------

@dataclass
class UpiMethod:
    utr: Optional[str]
    upi_id: Optional[str] = None


@dataclass
class NetbankingMethod:
    bank_reference: Optional[str]
    bank_name: Optional[str] = None


@dataclass
class CardMethod:
    bank_reference: Optional[str]
    card_network: Optional[str] = None


@dataclass
class UnknownMethod:
    raw: Optional[dict] = None


PaymentMethod = Union[UpiMethod, NetbankingMethod, CardMethod, UnknownMethod]


def _reference(data: dict) -> Optional[str]:
    value = data.get("utr") or data.get("bank_reference")
    return str(value) if value else None


def parse_payment_method(payment: Optional[dict]) -> PaymentMethod:
    """
    Parse payment["payment_method"] into a single variant.

    Preference order when several sub-objects are populated: UPI, netbanking, card.
    """
    if not payment:
        return UnknownMethod()
    method = payment.get("payment_method") or {}
    if not isinstance(method, dict):
        return UnknownMethod(raw=None)

    upi = method.get("upi")
    if isinstance(upi, dict) and upi:
        return UpiMethod(utr=_reference(upi), upi_id=upi.get("upi_id"))

    netbanking = method.get("netbanking")
    if isinstance(netbanking, dict) and netbanking:
        return NetbankingMethod(
            bank_reference=_reference(netbanking),
            bank_name=netbanking.get("netbanking_bank_name"),
        )

    card = method.get("card")
    if isinstance(card, dict) and card:
        return CardMethod(bank_reference=_reference(card), card_network=card.get("card_network"))

    return UnknownMethod(raw=method)


def extract_utr(payment: Optional[dict]) -> Optional[str]:
    """Bank/UPI settlement reference for a payment attempt, if any"""
    if not payment:
        return None

    method = parse_payment_method(payment)
    if isinstance(method, UpiMethod):
        reference = method.utr
    elif isinstance(method, (NetbankingMethod, CardMethod)):
        reference = method.bank_reference
    else:
        reference = None

    if reference:
        return reference
    fallback = payment.get("bank_reference")
    return str(fallback) if fallback else None
