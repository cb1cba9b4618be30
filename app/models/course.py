import uuid
from sqlalchemy import Column, String, Text, Numeric, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from .base import Base


class Course(Base):
    """Catalog entry a student can enroll in (a "batch" in the storefront)"""
    __tablename__ = "courses"
    __table_args__ = (
        CheckConstraint(
            "discounted_price IS NULL OR price IS NULL OR discounted_price <= price",
            name="ck_courses_discount_not_above_price",
        ),
    )

    id = Column(UUID(as_uuid=False), primary_key=True, default=lambda: str(uuid.uuid4()))
    title = Column(String(255), nullable=False)
    # Comma-separated list of the subjects bundled with the main course
    subject = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=True)
    discounted_price = Column(Numeric(10, 2), nullable=True)
    exam_category = Column(String(100), nullable=True, index=True)
    branch = Column(String(100), nullable=True)
    level = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    addons = relationship("CourseAddon", back_populates="course", cascade="all, delete-orphan")
    enrollments = relationship("Enrollment", back_populates="course")

    @property
    def effective_price(self) -> float:
        """Price actually charged for the main course; 0 for free courses"""
        if self.discounted_price is not None:
            return float(self.discounted_price)
        return float(self.price or 0)

    @property
    def is_free(self) -> bool:
        return not self.price

    @property
    def subject_list(self) -> list[str]:
        if not self.subject:
            return []
        return [s.strip() for s in self.subject.split(",") if s.strip()]


class CourseAddon(Base):
    """Optional, separately priced subject that can be bundled onto a course"""
    __tablename__ = "course_addons"

    id = Column(UUID(as_uuid=False), primary_key=True, default=lambda: str(uuid.uuid4()))
    course_id = Column(UUID(as_uuid=False), ForeignKey("courses.id"), nullable=False, index=True)
    subject_name = Column(String(255), nullable=False)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    course = relationship("Course", back_populates="addons")
