from pydantic import BaseModel
from datetime import datetime
from typing import Optional, List

from app.models.enrollment import EnrollmentStatus
from app.services.enrollment import CallToAction


class EnrollmentStateResponse(BaseModel):
    is_main_course_owned: bool
    owned_addons: List[str]
    is_fully_enrolled: bool
    has_remaining_addons: bool
    has_pending_payment: bool
    call_to_action: CallToAction


class FreeEnrollmentResponse(BaseModel):
    enrolled: bool
    already_enrolled: bool
    message: str


class AddonPrice(BaseModel):
    id: str
    subject_name: str
    price: float


class CoursePricingResponse(BaseModel):
    course_id: str
    price: float
    effective_price: float
    starting_price: float
    is_free: bool
    addons: List[AddonPrice] = []


class EnrollmentResponse(BaseModel):
    id: str
    course_id: str
    subject_name: Optional[str] = None
    amount: Optional[float] = None
    status: EnrollmentStatus
    order_id: Optional[str] = None
    payment_id: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class PaymentReceipt(BaseModel):
    order_id: str
    payment_id: Optional[str] = None
    amount: float
    net_amount: Optional[float] = None
    status: str
    payment_mode: Optional[str] = None
    utr: Optional[str] = None
    discount_applied: bool = False
    discount_type: Optional[str] = None
    discount_value: Optional[float] = None
    coupon_code: Optional[str] = None
    courses: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class CourseReceiptResponse(BaseModel):
    course_id: str
    course_title: str
    enrollments: List[EnrollmentResponse]
    payments: List[PaymentReceipt]
    total_paid: float
