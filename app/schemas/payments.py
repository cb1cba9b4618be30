from pydantic import BaseModel, Field
from typing import Optional, List


class CustomerPhone(BaseModel):
    dial_code: str = Field(..., min_length=1, max_length=8)
    number: str = Field(..., min_length=1, max_length=20)


class CreateOrderRequest(BaseModel):
    course_id: str = Field(..., min_length=1)
    amount: Optional[float] = Field(None, ge=0)
    customer_email: Optional[str] = None
    customer_phone: CustomerPhone
    selected_subjects: List[str] = []
    redirect_url: Optional[str] = None


class CreateOrderResponse(BaseModel):
    order_id: str
    payment_session_id: str
    environment: str
    verify_url: str
    amount: float
