"""
Enrollment state, pricing and grants.

A user owns a course (or add-on) through enrollment rows keyed by
(user, course, subject); subject_name NULL is the main course. Rows are never
deleted: a failed payment leaves a `failed` row behind, which is ignored here.
"""
import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.course import Course, CourseAddon
from app.models.enrollment import Enrollment, EnrollmentStatus, GRANTING_STATUSES
from app.models.payment import Payment

logger = logging.getLogger(__name__)

_GRANTING_VALUES = {s.value for s in GRANTING_STATUSES}


class EnrollmentError(Exception):
    """Base class for enrollment domain errors"""


class CourseNotFoundError(EnrollmentError):
    pass


class NotFreeCourseError(EnrollmentError):
    pass


class UnknownSubjectError(EnrollmentError):
    pass


class CallToAction(str, enum.Enum):
    ENROLL = "enroll"
    COMPLETE_PAYMENT = "complete_payment"
    UPGRADE = "upgrade"
    ALREADY_ENROLLED = "already_enrolled"


@dataclass
class EnrollmentState:
    is_main_course_owned: bool = False
    owned_addons: List[str] = field(default_factory=list)
    is_fully_enrolled: bool = False
    has_remaining_addons: bool = False
    has_pending_payment: bool = False
    call_to_action: CallToAction = CallToAction.ENROLL


@dataclass
class PriceQuote:
    base_price: float
    addons_total: float
    total: float
    # (subject_name or None for the main course, amount) per line to be paid
    items: List[Tuple[Optional[str], float]] = field(default_factory=list)


@dataclass
class EnrollmentResult:
    enrolled: bool
    already_enrolled: bool
    enrollment: Optional[Enrollment] = None


@dataclass
class CourseReceipt:
    course: Course
    enrollments: List[Enrollment]
    payments: List[Payment]


def status_value(row) -> str:
    status = getattr(row, "status", None)
    if isinstance(status, enum.Enum):
        status = status.value
    return (status or EnrollmentStatus.PENDING.value).lower()


def _addon_owned(addon, owned: Iterable[str]) -> bool:
    owned = set(owned)
    return str(addon.id) in owned or addon.subject_name in owned


def compute_enrollment_state(rows: Sequence, addons: Sequence) -> EnrollmentState:
    """
    Derive ownership flags for one user and one course.

    rows: the user's enrollment rows for the course (any status).
    addons: the course's add-ons.
    Add-on rows may hold either the add-on's subject name or, for older rows, its id.
    """
    live = [r for r in rows if status_value(r) != EnrollmentStatus.FAILED.value]

    is_main_course_owned = any(not r.subject_name for r in live)
    owned_addons = [r.subject_name for r in live if r.subject_name]
    all_addons_owned = all(_addon_owned(a, owned_addons) for a in addons)

    is_fully_enrolled = is_main_course_owned and all_addons_owned
    has_pending_payment = any(status_value(r) == EnrollmentStatus.PENDING.value for r in live)

    if not is_main_course_owned:
        cta = CallToAction.ENROLL
    elif has_pending_payment:
        cta = CallToAction.COMPLETE_PAYMENT
    elif is_fully_enrolled:
        cta = CallToAction.ALREADY_ENROLLED
    else:
        cta = CallToAction.UPGRADE

    return EnrollmentState(
        is_main_course_owned=is_main_course_owned,
        owned_addons=owned_addons,
        is_fully_enrolled=is_fully_enrolled,
        has_remaining_addons=is_main_course_owned and not all_addons_owned,
        has_pending_payment=has_pending_payment,
        call_to_action=cta,
    )


def get_course(db: Session, course_id: str) -> Course:
    course = db.query(Course).filter(Course.id == course_id).first()
    if not course:
        raise CourseNotFoundError(f"Course {course_id} not found")
    return course


def get_course_addons(db: Session, course_id: str) -> List[CourseAddon]:
    return db.query(CourseAddon).filter(CourseAddon.course_id == course_id).all()


def get_user_course_enrollments(db: Session, user_id: str, course_id: str) -> List[Enrollment]:
    return db.query(Enrollment).filter(
        Enrollment.user_id == user_id,
        Enrollment.course_id == course_id,
    ).all()


def list_user_enrollments(db: Session, user_id: str) -> List[Enrollment]:
    return db.query(Enrollment).filter(
        Enrollment.user_id == user_id,
    ).order_by(Enrollment.created_at.desc()).all()


def get_enrollment_state(db: Session, user_id: str, course_id: str) -> EnrollmentState:
    rows = get_user_course_enrollments(db, user_id, course_id)
    addons = get_course_addons(db, course_id)
    return compute_enrollment_state(rows, addons)


def starting_price(course: Course, addons: Sequence[CourseAddon]) -> float:
    """The "starts at" price shown on catalog cards"""
    if course.effective_price > 0:
        return course.effective_price
    prices = [float(a.price or 0) for a in addons]
    return min(prices) if prices else 0.0


def quote_price(
    course: Course,
    addons: Sequence[CourseAddon],
    rows: Sequence,
    selected_subjects: Sequence[str],
) -> PriceQuote:
    """
    Price of a checkout: the main course (unless already granted) plus every
    selected add-on the user does not already have.
    """
    granted = [r for r in rows if status_value(r) in _GRANTING_VALUES]
    main_granted = any(not r.subject_name for r in granted)
    granted_subjects = [r.subject_name for r in granted if r.subject_name]

    items: List[Tuple[Optional[str], float]] = []
    base_price = 0.0 if main_granted else course.effective_price
    # A free main course is granted directly, never through a gateway order
    if not main_granted and base_price > 0:
        items.append((None, base_price))

    by_key = {}
    for addon in addons:
        by_key[addon.subject_name] = addon
        by_key[str(addon.id)] = addon

    addons_total = 0.0
    seen = set()
    for selected in selected_subjects:
        addon = by_key.get(selected)
        if addon is None:
            raise UnknownSubjectError(f"'{selected}' is not an add-on of course {course.id}")
        if addon.subject_name in seen or _addon_owned(addon, granted_subjects):
            continue
        seen.add(addon.subject_name)
        price = float(addon.price or 0)
        addons_total += price
        items.append((addon.subject_name, price))

    return PriceQuote(
        base_price=base_price,
        addons_total=addons_total,
        total=round(base_price + addons_total, 2),
        items=items,
    )


def enroll_free(db: Session, user_id: str, course: Course) -> EnrollmentResult:
    """
    Grant a free course.

    A duplicate grant trips the enrollment unique index; that is reported as
    already enrolled rather than raised.
    """
    if not course.is_free:
        raise NotFreeCourseError(f"Course {course.id} is not free")

    pending = db.query(Enrollment).filter(
        Enrollment.user_id == user_id,
        Enrollment.course_id == course.id,
        Enrollment.subject_name.is_(None),
        Enrollment.status == EnrollmentStatus.PENDING,
    ).first()
    if pending:
        # Left behind by an earlier checkout of add-ons; detach it so that
        # order's outcome can no longer change the grant
        pending.status = EnrollmentStatus.ACTIVE
        pending.order_id = None
        pending.order_created_at = None
        pending.amount = 0
        db.flush()
        logger.info("Promoted pending main-course row %s to active for user %s", pending.id, user_id)
        return EnrollmentResult(enrolled=True, already_enrolled=False, enrollment=pending)

    enrollment = Enrollment(
        user_id=user_id,
        course_id=course.id,
        subject_name=None,
        amount=0,
        status=EnrollmentStatus.ACTIVE,
    )
    db.add(enrollment)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        logger.info("User %s already enrolled in free course %s", user_id, course.id)
        return EnrollmentResult(enrolled=False, already_enrolled=True)

    logger.info("Enrolled user %s in free course %s", user_id, course.id)
    return EnrollmentResult(enrolled=True, already_enrolled=False, enrollment=enrollment)


def upsert_pending_enrollments(
    db: Session,
    user_id: str,
    course_id: str,
    items: Sequence[Tuple[Optional[str], float]],
    order_id: str,
) -> List[Enrollment]:
    """
    Insert or reuse one pending row per checkout line and stamp it with order_id.
    A pending row left over from an abandoned checkout is moved to the new order;
    the caller must first make sure that order can no longer be paid.
    """
    stamped_at = datetime.now(timezone.utc)
    rows = []
    for subject_name, amount in items:
        subject_filter = (
            Enrollment.subject_name.is_(None) if subject_name is None
            else Enrollment.subject_name == subject_name
        )
        existing = db.query(Enrollment).filter(
            Enrollment.user_id == user_id,
            Enrollment.course_id == course_id,
            subject_filter,
            Enrollment.status == EnrollmentStatus.PENDING,
        ).first()

        if existing:
            logger.info(
                "Reusing pending enrollment %s (order %s -> %s)",
                existing.id, existing.order_id, order_id,
            )
            existing.order_id = order_id
            existing.order_created_at = stamped_at
            existing.amount = amount
            rows.append(existing)
            continue

        enrollment = Enrollment(
            user_id=user_id,
            course_id=course_id,
            subject_name=subject_name,
            amount=amount,
            order_id=order_id,
            order_created_at=stamped_at,
            status=EnrollmentStatus.PENDING,
        )
        db.add(enrollment)
        rows.append(enrollment)

    db.flush()
    return rows


def get_course_receipt(db: Session, user_id: str, course_id: str) -> Optional[CourseReceipt]:
    """
    The user's granted rows for a course, newest first, with the ledger rows of
    the orders that paid for them. None when nothing is granted.
    """
    course = get_course(db, course_id)
    rows = db.query(Enrollment).filter(
        Enrollment.user_id == user_id,
        Enrollment.course_id == course_id,
        Enrollment.status.in_(list(GRANTING_STATUSES)),
    ).order_by(Enrollment.created_at.desc()).all()
    if not rows:
        return None

    order_ids = sorted({r.order_id for r in rows if r.order_id})
    payments = []
    if order_ids:
        payments = db.query(Payment).filter(
            Payment.order_id.in_(order_ids),
        ).order_by(Payment.created_at.desc()).all()

    return CourseReceipt(course=course, enrollments=rows, payments=payments)
