"""
Checkout order creation.

Prices the selection server-side, opens a Cashfree order whose return URL
points at the reconciliation endpoint, and leaves one pending enrollment row
per purchased line under the new order id.
"""
import logging
import time
from dataclasses import dataclass
from typing import List, Optional
from urllib.parse import urlencode

from sqlalchemy.orm import Session

from app.config import settings
from app.integrations import cashfree
from app.models.country_code import CountryCode
from app.models.enrollment import EnrollmentStatus
from app.services import reconciliation
from app.services.enrollment import (
    EnrollmentError,
    enroll_free,
    get_course,
    get_course_addons,
    get_user_course_enrollments,
    quote_price,
    status_value,
    upsert_pending_enrollments,
)

logger = logging.getLogger(__name__)

AMOUNT_TOLERANCE = 0.01


class InvalidPhoneError(EnrollmentError):
    pass


class AmountMismatchError(EnrollmentError):
    pass


class NothingToPayError(EnrollmentError):
    pass


@dataclass
class CreatedOrder:
    order_id: str
    payment_session_id: str
    environment: str
    verify_url: str
    amount: float


def normalize_phone(dial_code: str, number: str) -> tuple:
    dial = "+" + "".join(c for c in (dial_code or "") if c.isdigit())
    digits = "".join(c for c in (number or "") if c.isdigit())
    return dial, digits


def validate_phone(db: Session, dial_code: str, number: str) -> str:
    """
    Check the local number against the expected length for its dial code.
    Returns the number as sent to the gateway (digits only, no dial code for +91).
    """
    dial, digits = normalize_phone(dial_code, number)
    if dial == "+" or not digits:
        raise InvalidPhoneError("Phone number requires both a dial code and a number")

    country = db.query(CountryCode).filter(CountryCode.dial_code == dial).first()
    if not country:
        raise InvalidPhoneError(f"Unsupported dial code {dial}")
    if len(digits) != country.phone_length:
        raise InvalidPhoneError(
            f"Phone number for {country.name} must have {country.phone_length} digits"
        )

    # Cashfree takes domestic numbers bare and international ones with the dial code
    if dial == "+91":
        return digits
    return f"{dial}{digits}"


def generate_order_id(user_id: str) -> str:
    suffix = "".join(c for c in str(user_id) if c.isalnum())[:12]
    return f"order_{int(time.time() * 1000)}_{suffix}"


def build_verify_url(order_id: str, frontend_url: Optional[str]) -> str:
    params = {"order_id": order_id}
    if frontend_url:
        params["redirect_url"] = frontend_url
    return f"{settings.public_api_url.rstrip('/')}/payments/verify?{urlencode(params)}"


def order_tags_for(course_id: str, items) -> dict:
    """Order tags that let a paid order be matched back to its purchase"""
    return {
        "course_id": str(course_id),
        "main_course": "1" if any(subject is None for subject, _ in items) else "0",
        "subjects": reconciliation.SUBJECT_TAG_SEPARATOR.join(subject for subject, _ in items if subject),
    }


def settle_previous_orders(db: Session, rows) -> bool:
    """
    Make sure no earlier gateway order still owns the user's pending rows
    before they are moved to a new order.

    A paid order is reconciled (its rows are granted). An open order is
    terminated at the gateway, so it can no longer be paid. Returns True when
    something was reconciled and the rows must be reloaded.
    """
    order_ids = sorted({
        r.order_id for r in rows
        if r.order_id and status_value(r) == EnrollmentStatus.PENDING.value
    })
    reconciled = False
    for previous in order_ids:
        order = cashfree.fetch_order(previous)
        order_status = order.get("order_status")
        if order_status == cashfree.ORDER_PAID:
            logger.info("Previous order %s was paid; reconciling before new checkout", previous)
            reconciliation.reconcile_order(db, previous)
            reconciled = True
        elif order_status == cashfree.ORDER_ACTIVE:
            logger.info("Terminating open order %s before new checkout", previous)
            cashfree.terminate_order(previous)
    return reconciled


def create_checkout_order(
    db: Session,
    user_id: str,
    course_id: str,
    customer_email: str,
    dial_code: str,
    phone_number: str,
    selected_subjects: List[str],
    amount: Optional[float] = None,
    frontend_url: Optional[str] = None,
) -> CreatedOrder:
    """
    Create a gateway order for the user's selection.

    Raises EnrollmentError subclasses for invalid input and CashfreeError when
    the gateway refuses the order. Earlier orders still holding the user's
    pending rows are settled first; nothing else is written unless the gateway
    accepts the new order.
    """
    course = get_course(db, course_id)
    addons = get_course_addons(db, course_id)
    rows = get_user_course_enrollments(db, user_id, course_id)
    if settle_previous_orders(db, rows):
        rows = get_user_course_enrollments(db, user_id, course_id)

    customer_phone = validate_phone(db, dial_code, phone_number)

    quote = quote_price(course, addons, rows, selected_subjects)
    if quote.total <= 0:
        raise NothingToPayError("Nothing to pay for this selection")
    if amount is not None and abs(float(amount) - quote.total) > AMOUNT_TOLERANCE:
        raise AmountMismatchError(
            f"Amount {amount} does not match the current price {quote.total}"
        )

    order_id = generate_order_id(user_id)
    verify_url = build_verify_url(order_id, frontend_url)

    logger.info("Creating Cashfree order %s for user %s, course %s, amount %s",
                order_id, user_id, course_id, quote.total)
    order = cashfree.create_order(
        order_id=order_id,
        amount=quote.total,
        customer_id=user_id,
        customer_email=customer_email,
        customer_phone=customer_phone,
        return_url=verify_url,
        order_tags=order_tags_for(course_id, quote.items),
    )

    payment_session_id = order.get("payment_session_id")
    if not payment_session_id:
        raise cashfree.CashfreeError("Cashfree order response has no payment_session_id")

    if course.is_free and not any(
        r.subject_name is None and status_value(r) != EnrollmentStatus.FAILED.value
        for r in rows
    ):
        enroll_free(db, user_id, course)
    upsert_pending_enrollments(db, user_id, course_id, quote.items, order_id)
    db.commit()

    return CreatedOrder(
        order_id=order_id,
        payment_session_id=payment_session_id,
        environment=settings.cashfree_environment,
        verify_url=verify_url,
        amount=quote.total,
    )
