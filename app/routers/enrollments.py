"""
Enrollment state, free enrollment and receipts for the signed-in student.
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.auth.dependencies import CurrentUser, get_current_user
from app.database import get_db
from app.schemas.enrollments import (
    AddonPrice,
    CoursePricingResponse,
    CourseReceiptResponse,
    EnrollmentResponse,
    EnrollmentStateResponse,
    FreeEnrollmentResponse,
    PaymentReceipt,
)
from app.services.enrollment import (
    CourseNotFoundError,
    NotFreeCourseError,
    enroll_free,
    get_course,
    get_course_addons,
    get_course_receipt,
    get_enrollment_state,
    list_user_enrollments,
    starting_price,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Enrollments"])


def _get_course_or_404(db: Session, course_id: str):
    try:
        return get_course(db, course_id)
    except CourseNotFoundError:
        raise HTTPException(status_code=404, detail="Course not found")


@router.get("/courses/{course_id}/enrollment", response_model=EnrollmentStateResponse)
def get_course_enrollment_state(
    course_id: str,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    _get_course_or_404(db, course_id)
    state = get_enrollment_state(db, current_user.id, course_id)
    return EnrollmentStateResponse(**state.__dict__)


@router.get("/courses/{course_id}/pricing", response_model=CoursePricingResponse)
def get_course_pricing(course_id: str, db: Session = Depends(get_db)):
    course = _get_course_or_404(db, course_id)
    addons = get_course_addons(db, course_id)
    return CoursePricingResponse(
        course_id=str(course.id),
        price=float(course.price or 0),
        effective_price=course.effective_price,
        starting_price=starting_price(course, addons),
        is_free=course.is_free,
        addons=[
            AddonPrice(id=str(a.id), subject_name=a.subject_name, price=float(a.price or 0))
            for a in addons
        ],
    )


@router.post("/courses/{course_id}/enroll-free", response_model=FreeEnrollmentResponse)
def enroll_in_free_course(
    course_id: str,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    course = _get_course_or_404(db, course_id)
    try:
        result = enroll_free(db, current_user.id, course)
    except NotFreeCourseError:
        raise HTTPException(status_code=400, detail="This course requires payment")

    if result.already_enrolled:
        return FreeEnrollmentResponse(enrolled=False, already_enrolled=True, message="Already enrolled")

    db.commit()
    return FreeEnrollmentResponse(enrolled=True, already_enrolled=False, message="Enrolled successfully")


@router.get("/enrollments/me", response_model=List[EnrollmentResponse])
def list_my_enrollments(
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return list_user_enrollments(db, current_user.id)


@router.get("/courses/{course_id}/receipt", response_model=CourseReceiptResponse)
def get_my_course_receipt(
    course_id: str,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """The signed-in student's grants for a course with the payments behind them."""
    try:
        receipt = get_course_receipt(db, current_user.id, course_id)
    except CourseNotFoundError:
        raise HTTPException(status_code=404, detail="Course not found")
    if receipt is None:
        raise HTTPException(status_code=404, detail="No enrollment found for this course")

    payments = [PaymentReceipt.model_validate(p) for p in receipt.payments]
    if payments:
        total_paid = sum(p.net_amount if p.net_amount is not None else p.amount for p in payments)
    else:
        total_paid = sum(float(r.amount or 0) for r in receipt.enrollments)

    return CourseReceiptResponse(
        course_id=str(receipt.course.id),
        course_title=receipt.course.title,
        enrollments=[EnrollmentResponse.model_validate(r) for r in receipt.enrollments],
        payments=payments,
        total_paid=round(total_paid, 2),
    )
