import enum
import uuid
from sqlalchemy import Column, String, Numeric, DateTime, ForeignKey, Index, Enum, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from .base import Base


class EnrollmentStatus(str, enum.Enum):
    ACTIVE = "active"
    SUCCESS = "success"
    PAID = "paid"
    PENDING = "pending"
    FAILED = "failed"


# Statuses that grant access to the course or add-on
GRANTING_STATUSES = frozenset({EnrollmentStatus.ACTIVE, EnrollmentStatus.SUCCESS, EnrollmentStatus.PAID})


class Enrollment(Base):
    """
    One (user, course, optional subject) grant of access.

    subject_name is NULL for the main course; otherwise an add-on subject name
    (or, for legacy rows, the add-on id). Rows are never deleted.
    """
    __tablename__ = "enrollments"
    __table_args__ = (
        Index(
            "uq_enrollments_user_course_subject",
            "user_id",
            "course_id",
            text("coalesce(subject_name, '')"),
            unique=True,
            postgresql_where=text("status <> 'failed'"),
        ),
        Index("ix_enrollments_user_course", "user_id", "course_id"),
    )

    id = Column(UUID(as_uuid=False), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(UUID(as_uuid=False), nullable=False, index=True)
    course_id = Column(UUID(as_uuid=False), ForeignKey("courses.id"), nullable=False, index=True)
    subject_name = Column(String(255), nullable=True)
    amount = Column(Numeric(10, 2), nullable=True)
    status = Column(
        Enum(EnrollmentStatus, values_callable=lambda e: [m.value for m in e], name="enrollmentstatus"),
        nullable=False,
        default=EnrollmentStatus.PENDING,
    )
    order_id = Column(String(64), nullable=True, index=True)
    payment_id = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    # When the row was last attached to a gateway order; drives the stale-order sweep
    order_created_at = Column(DateTime(timezone=True), nullable=True)

    course = relationship("Course", back_populates="enrollments")
