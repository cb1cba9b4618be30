"""
Payment reconciliation.

Runs when Cashfree redirects the buyer back after checkout. The gateway is the
source of truth: its order status decides the terminal state of every
enrollment row sharing the order id (pending -> success | failed), and a
successful order is recorded once in the payments ledger.

Every path ends in a redirect to the dashboard with ?payment=success|failed|error.
Failures after the gateway answered are logged and never change the redirect.
"""
import logging
import re
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple
from urllib.parse import urlparse

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.integrations import cashfree
from app.models.course import Course, CourseAddon
from app.models.enrollment import Enrollment, EnrollmentStatus
from app.models.payment import Payment
from app.services import notifications

logger = logging.getLogger(__name__)

STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"
STATUS_ERROR = "error"
# Only reported to background sweeps for orders still open at the gateway
STATUS_PENDING = "pending"

NO_SUBJECTS = "No subjects"
SUBJECT_TAG_SEPARATOR = "|"

_UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


@dataclass
class ReconciliationResult:
    status: str
    redirect_to: str
    recorded: bool = False


@dataclass
class DiscountInfo:
    discount_applied: bool
    discount_type: Optional[str]
    discount_value: Optional[float]
    coupon_code: Optional[str]
    net_amount: float


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def is_uuid(value: str) -> bool:
    return bool(value) and bool(_UUID_RE.match(value.strip()))


def derive_status(order: dict) -> str:
    return STATUS_SUCCESS if order.get("order_status") == cashfree.ORDER_PAID else STATUS_FAILED


def resolve_frontend(redirect_url: Optional[str]) -> str:
    """Frontend base URL to send the buyer back to"""
    fallback = settings.frontend_fallback_url.rstrip("/")
    if not redirect_url:
        return fallback

    candidate = redirect_url.strip()
    parsed = urlparse(candidate)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        logger.warning("Ignoring malformed redirect_url %r", redirect_url)
        return fallback

    allowed = settings.allowed_redirect_host_list
    if allowed and (parsed.hostname or "").lower() not in allowed:
        logger.warning("redirect_url host %s not allowed, using fallback", parsed.hostname)
        return fallback

    return candidate.rstrip("/")


def build_redirect(frontend: str, status: str) -> str:
    return f"{frontend}/dashboard?payment={status}"


def merge_subjects(mandatory: Sequence[str], addons: Iterable[str]) -> str:
    """
    Union of mandatory and add-on subjects, deduplicated.
    Mandatory subjects keep the course's order; add-ons follow sorted, so the
    result does not depend on row order.
    """
    merged: List[str] = []
    seen = set()
    for subject in mandatory:
        name = subject.strip()
        if name and name not in seen:
            seen.add(name)
            merged.append(name)
    for subject in sorted({s.strip() for s in addons if s and s.strip()}):
        if subject not in seen:
            seen.add(subject)
            merged.append(subject)
    return ", ".join(merged) if merged else NO_SUBJECTS


def _to_float(value) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _first_offer(payment: Optional[dict]) -> Optional[dict]:
    if not payment:
        return None
    offers = payment.get("payment_offers") or payment.get("offers")
    if isinstance(offers, list) and offers and isinstance(offers[0], dict):
        return offers[0]
    return None


def _discount_split(order: dict) -> Optional[dict]:
    for split in order.get("order_splits") or []:
        if not isinstance(split, dict):
            continue
        kind = split.get("type") or split.get("vendor_id") or split.get("description") or ""
        if str(kind).lower() == "discount":
            return split
    return None


def reconcile_discount(order: dict, payment: Optional[dict]) -> DiscountInfo:
    """
    Work out what discount, if any, was applied to the order.

    Tiers are consulted in order and the first one that yields a discount wins:
    1. an explicit offer on the payment (payment_offers / offers)
    2. a "discount" entry in the order's order_splits
    3. payment_amount lower than order_amount
    """
    order_amount = _to_float(order.get("order_amount")) or 0.0
    payment_amount = _to_float(payment.get("payment_amount")) if payment else None

    offer = _first_offer(payment)
    if offer is not None:
        redemption = offer.get("offer_redemption") or {}
        meta = offer.get("offer_meta") or {}
        value = _to_float(
            redemption.get("discount_amount")
            or offer.get("offer_amount")
            or offer.get("discount_amount")
            or offer.get("amount")
        )
        return DiscountInfo(
            discount_applied=True,
            discount_type=offer.get("offer_type") or offer.get("type") or "offer",
            discount_value=value,
            coupon_code=meta.get("offer_code") or offer.get("offer_code") or offer.get("code"),
            net_amount=payment_amount if payment_amount is not None else order_amount,
        )

    split = _discount_split(order)
    if split is not None:
        value = _to_float(split.get("amount")) or 0.0
        return DiscountInfo(
            discount_applied=True,
            discount_type="split",
            discount_value=value,
            coupon_code=split.get("coupon_code"),
            net_amount=round(order_amount - value, 2),
        )

    if payment_amount is not None and payment_amount < order_amount:
        return DiscountInfo(
            discount_applied=True,
            discount_type="flat",
            discount_value=round(order_amount - payment_amount, 2),
            coupon_code=None,
            net_amount=payment_amount,
        )

    return DiscountInfo(
        discount_applied=False,
        discount_type=None,
        discount_value=None,
        coupon_code=None,
        net_amount=order_amount,
    )


def run_best_effort(tasks: Sequence[Tuple[str, Callable[[], object]]]) -> None:
    """Run non-critical tasks one by one; a failure is logged and never propagates"""
    for name, task in tasks:
        try:
            task()
        except Exception as e:
            logger.error("Non-critical task %s failed: %s", name, e)


# ---------------------------------------------------------------------------
# Store access
# ---------------------------------------------------------------------------

def load_order_enrollments(db: Session, order_id: str) -> List[Enrollment]:
    return db.query(Enrollment).filter(Enrollment.order_id == order_id).all()


def resolve_subjects(db: Session, rows: Sequence[Enrollment]) -> Tuple[Optional[Course], str]:
    """
    Purchased subjects for an order: the course's mandatory subjects plus
    every add-on row. Add-on rows holding an add-on id are resolved to its name.
    """
    if not rows:
        return None, NO_SUBJECTS

    course = rows[0].course
    mandatory = course.subject_list if course else []

    candidates = [r.subject_name.strip() for r in rows if r.subject_name and r.subject_name.strip()]
    addon_ids = [c for c in candidates if is_uuid(c)]

    names_by_id: Dict[str, str] = {}
    if addon_ids:
        for addon in db.query(CourseAddon).filter(CourseAddon.id.in_(addon_ids)).all():
            names_by_id[str(addon.id).lower()] = addon.subject_name

    resolved = []
    for candidate in candidates:
        if is_uuid(candidate):
            name = names_by_id.get(candidate.lower())
            if not name:
                logger.warning("Add-on id %s not found; keeping raw value", candidate)
                name = candidate
            resolved.append(name)
        else:
            resolved.append(candidate)

    return course, merge_subjects(mandatory, resolved)


def _acquire_lock(order_id: str) -> bool:
    """Best-effort per-order lock; Redis being unavailable never blocks reconciliation"""
    try:
        from app.redis_client import get_redis_client
        acquired = get_redis_client().set(
            f"reconcile:{order_id}", "1", nx=True, ex=settings.reconcile_lock_seconds,
        )
        return bool(acquired)
    except Exception as e:
        logger.warning("Redis unavailable for reconcile lock on %s: %s", order_id, e)
        return True


def _release_lock(order_id: str) -> None:
    try:
        from app.redis_client import get_redis_client
        get_redis_client().delete(f"reconcile:{order_id}")
    except Exception as e:
        logger.warning("Failed to release reconcile lock on %s: %s", order_id, e)


def _build_ledger_row(
    order: dict,
    payment: Optional[dict],
    rows: Sequence[Enrollment],
    batch: Optional[str],
    subjects: str,
    utr: Optional[str],
    discount: DiscountInfo,
    status: str,
) -> Payment:
    customer = order.get("customer_details") or {}
    user_id = rows[0].user_id if rows else customer.get("customer_id")
    return Payment(
        order_id=order.get("order_id"),
        payment_id=str(payment["cf_payment_id"]) if payment and payment.get("cf_payment_id") else None,
        user_id=user_id,
        amount=_to_float(order.get("order_amount")) or 0.0,
        status=status,
        payment_mode=payment.get("payment_group") if payment else None,
        payment_group=payment.get("payment_group") if payment else None,
        payment_time=payment.get("payment_time") if payment else None,
        utr=utr,
        customer_email=customer.get("customer_email"),
        customer_phone=customer.get("customer_phone"),
        raw_response={"order": order, "payment": payment},
        batch=batch,
        courses=subjects,
        discount_applied=discount.discount_applied,
        discount_type=discount.discount_type,
        discount_value=discount.discount_value,
        coupon_code=discount.coupon_code,
        net_amount=discount.net_amount,
    )


def _record_payment(db: Session, ledger_row: Payment) -> bool:
    """
    Insert the ledger row inside a savepoint.
    Returns True only when this call recorded it; an existing row means the
    order was already reconciled.
    """
    existing = db.query(Payment).filter(Payment.order_id == ledger_row.order_id).first()
    if existing:
        logger.info("Order %s already reconciled; ledger row %s kept", ledger_row.order_id, existing.id)
        return False

    try:
        with db.begin_nested():
            db.add(ledger_row)
    except IntegrityError:
        logger.info("Order %s reconciled concurrently; skipping ledger insert", ledger_row.order_id)
        return False
    except SQLAlchemyError as e:
        logger.error("Failed to write payment ledger for order %s: %s", ledger_row.order_id, e)
        return False
    return True


def _restore_order_enrollments(db: Session, order: dict) -> List[Enrollment]:
    """
    Rebuild the rows of a paid order that no enrollment references, from the
    customer id and the purchase tags written at checkout. A pending row for the
    same line held by another order is taken over; a granted one is left alone.
    """
    order_id = order.get("order_id")
    tags = order.get("order_tags") or {}
    user_id = (order.get("customer_details") or {}).get("customer_id")
    course_id = tags.get("course_id")
    if not user_id or not course_id:
        logger.error("Paid order %s matches no enrollment rows and carries no purchase tags", order_id)
        return []

    lines: List[Optional[str]] = [None] if tags.get("main_course") == "1" else []
    lines += [s for s in (tags.get("subjects") or "").split(SUBJECT_TAG_SEPARATOR) if s]

    restored = []
    for subject_name in lines:
        subject_filter = (
            Enrollment.subject_name.is_(None) if subject_name is None
            else Enrollment.subject_name == subject_name
        )
        existing = db.query(Enrollment).filter(
            Enrollment.user_id == user_id,
            Enrollment.course_id == course_id,
            subject_filter,
            Enrollment.status != EnrollmentStatus.FAILED,
        ).first()
        if existing is not None:
            if existing.status == EnrollmentStatus.PENDING:
                logger.warning("Paid order %s takes over pending row %s from order %s",
                               order_id, existing.id, existing.order_id)
                existing.order_id = order_id
                db.flush()
                restored.append(existing)
            continue

        row = Enrollment(
            user_id=user_id,
            course_id=course_id,
            subject_name=subject_name,
            order_id=order_id,
            status=EnrollmentStatus.PENDING,
        )
        try:
            with db.begin_nested():
                db.add(row)
        except IntegrityError:
            logger.warning("Order %s: %s on course %s was granted concurrently",
                           order_id, subject_name or "main course", course_id)
            continue
        restored.append(row)

    logger.warning("Restored %s enrollment row(s) for paid order %s", len(restored), order_id)
    return restored


def _update_enrollments(db: Session, order_id: str, status: str, payment_id: Optional[str]) -> int:
    updated = db.query(Enrollment).filter(Enrollment.order_id == order_id).update(
        {
            Enrollment.status: EnrollmentStatus(status),
            Enrollment.payment_id: payment_id,
        },
        synchronize_session=False,
    )
    return updated


def _missing_configuration() -> List[str]:
    required = {
        "DATABASE_URL": settings.database_url,
        "CASHFREE_CLIENT_ID": settings.cashfree_client_id,
        "CASHFREE_CLIENT_SECRET": settings.cashfree_client_secret,
    }
    return [name for name, value in required.items() if not value]


# ---------------------------------------------------------------------------
# Flow
# ---------------------------------------------------------------------------

def reconcile_order(
    db: Session,
    order_id: Optional[str],
    redirect_url: Optional[str] = None,
    keep_open: bool = False,
) -> ReconciliationResult:
    """
    Apply the gateway's verdict for order_id to the enrollment store.
    Never raises; the result always carries a redirect target.

    keep_open: leave an order the gateway still reports as open untouched
    instead of failing it (background sweeps, where the buyer may still pay).
    """
    frontend = resolve_frontend(redirect_url)

    def _error() -> ReconciliationResult:
        return ReconciliationResult(status=STATUS_ERROR, redirect_to=build_redirect(frontend, STATUS_ERROR))

    missing = _missing_configuration()
    if missing:
        logger.error("Reconciliation misconfigured, missing: %s", ", ".join(missing))
        return _error()
    if not order_id:
        logger.error("Reconciliation called without order_id")
        return _error()

    logger.info("Verifying payment for order %s", order_id)

    try:
        order = cashfree.fetch_order(order_id)
    except cashfree.CashfreeError as e:
        logger.error("Order fetch failed for %s: %s", order_id, e)
        return _error()

    if keep_open and order.get("order_status") == cashfree.ORDER_ACTIVE:
        logger.info("Order %s is still open at the gateway; leaving it pending", order_id)
        return ReconciliationResult(status=STATUS_PENDING, redirect_to=build_redirect(frontend, STATUS_PENDING))

    try:
        payments = cashfree.fetch_payments(order_id)
    except cashfree.CashfreeError as e:
        logger.warning("Payment details unavailable for %s, continuing with order data: %s", order_id, e)
        payments = None
    payment = cashfree.select_payment(payments)

    status = derive_status(order)
    order.setdefault("order_id", order_id)
    payment_id = (
        str(payment["cf_payment_id"]) if payment and payment.get("cf_payment_id")
        else (str(order["cf_order_id"]) if order.get("cf_order_id") else None)
    )
    redirect_to = build_redirect(frontend, status)

    if not _acquire_lock(order_id):
        logger.info("Order %s is being reconciled by another request; skipping writes", order_id)
        return ReconciliationResult(status=status, redirect_to=redirect_to)

    recorded = False
    post_commit: List[Tuple[str, Callable[[], object]]] = []
    try:
        try:
            rows = load_order_enrollments(db, order_id)
            course, subjects = resolve_subjects(db, rows)
        except SQLAlchemyError as e:
            logger.error("Failed to load enrollments for order %s: %s", order_id, e)
            db.rollback()
            rows, course, subjects = [], None, NO_SUBJECTS

        if not rows:
            logger.warning("No enrollment rows found for order %s", order_id)
            if status == STATUS_SUCCESS:
                rows = _restore_order_enrollments(db, order)
                course, subjects = resolve_subjects(db, rows)

        if status == STATUS_SUCCESS:
            utr = cashfree.extract_utr(payment)
            discount = reconcile_discount(order, payment)
            batch = course.title if course else None
            ledger_row = _build_ledger_row(order, payment, rows, batch, subjects, utr, discount, status)
            recorded = _record_payment(db, ledger_row)

            customer_email = (order.get("customer_details") or {}).get("customer_email")
            if recorded and customer_email:
                transaction_id = ledger_row.payment_id or order_id
                post_commit.append((
                    "payment_confirmation_email",
                    lambda: notifications.notify_payment_confirmed(
                        customer_email, batch, subjects, discount.net_amount, transaction_id,
                    ),
                ))

        try:
            updated = _update_enrollments(db, order_id, status, payment_id)
            db.commit()
            logger.info("Order %s: %s enrollment row(s) set to %s", order_id, updated, status)
        except SQLAlchemyError as e:
            db.rollback()
            recorded = False
            post_commit.clear()
            logger.error("Failed to update enrollments for order %s: %s", order_id, e)
    finally:
        _release_lock(order_id)

    run_best_effort(post_commit)
    return ReconciliationResult(status=status, redirect_to=redirect_to, recorded=recorded)
