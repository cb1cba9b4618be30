"""
Checkout and Cashfree return endpoints.

/payments/verify is where Cashfree sends the buyer after checkout. It always
answers with a 302 to the dashboard, whatever happened.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from app.auth.dependencies import CurrentUser, get_current_user
from app.database import get_db
from app.integrations.cashfree import CashfreeError
from app.schemas.payments import CreateOrderRequest, CreateOrderResponse
from app.services.enrollment import CourseNotFoundError, EnrollmentError
from app.services.orders import create_checkout_order
from app.services.reconciliation import reconcile_order

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.get("/verify", status_code=status.HTTP_302_FOUND, response_class=RedirectResponse)
def verify_payment(
    order_id: Optional[str] = None,
    redirect_url: Optional[str] = None,
    db: Session = Depends(get_db),
):
    """Reconcile the order with Cashfree and send the buyer back to the dashboard."""
    result = reconcile_order(db, order_id, redirect_url)
    return RedirectResponse(url=result.redirect_to, status_code=status.HTTP_302_FOUND)


@router.options("/verify", status_code=status.HTTP_204_NO_CONTENT)
def verify_payment_preflight():
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/orders", response_model=CreateOrderResponse)
def create_order(
    data: CreateOrderRequest,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Open a Cashfree checkout session for the selected course and add-ons."""
    customer_email = data.customer_email or current_user.email
    if not customer_email:
        raise HTTPException(status_code=400, detail="Customer e-mail is required")

    try:
        order = create_checkout_order(
            db,
            user_id=current_user.id,
            course_id=data.course_id,
            customer_email=customer_email,
            dial_code=data.customer_phone.dial_code,
            phone_number=data.customer_phone.number,
            selected_subjects=data.selected_subjects,
            amount=data.amount,
            frontend_url=data.redirect_url,
        )
    except CourseNotFoundError:
        raise HTTPException(status_code=404, detail="Course not found")
    except EnrollmentError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except CashfreeError as e:
        db.rollback()
        logger.error("Order creation failed for user %s: %s", current_user.id, e)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Payment provider unavailable")

    return CreateOrderResponse(
        order_id=order.order_id,
        payment_session_id=order.payment_session_id,
        environment=order.environment,
        verify_url=order.verify_url,
        amount=order.amount,
    )
