import uuid
from sqlalchemy import Column, String, Numeric, Boolean, DateTime, Text
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.sql import func

from .base import Base


class Payment(Base):
    """Ledger row for a settled order, written once by reconciliation"""
    __tablename__ = "payments"

    id = Column(UUID(as_uuid=False), primary_key=True, default=lambda: str(uuid.uuid4()))
    order_id = Column(String(64), unique=True, nullable=False, index=True)
    payment_id = Column(String(64), nullable=True)
    user_id = Column(UUID(as_uuid=False), nullable=True, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    status = Column(String(32), nullable=False)
    payment_mode = Column(String(64), nullable=True)
    payment_group = Column(String(64), nullable=True)
    payment_time = Column(String(64), nullable=True)
    utr = Column(String(128), nullable=True)
    customer_email = Column(String(255), nullable=True)
    customer_phone = Column(String(32), nullable=True)
    raw_response = Column(JSONB, nullable=False, default=dict)
    batch = Column(String(255), nullable=True)
    courses = Column(Text, nullable=True)
    discount_applied = Column(Boolean, nullable=False, default=False)
    discount_type = Column(String(64), nullable=True)
    discount_value = Column(Numeric(10, 2), nullable=True)
    coupon_code = Column(String(64), nullable=True)
    net_amount = Column(Numeric(10, 2), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
