# Database models
from .base import Base
from .course import Course, CourseAddon
from .enrollment import Enrollment, EnrollmentStatus, GRANTING_STATUSES
from .payment import Payment
from .country_code import CountryCode

__all__ = [
    "Base",
    "Course",
    "CourseAddon",
    "Enrollment",
    "EnrollmentStatus",
    "GRANTING_STATUSES",
    "Payment",
    "CountryCode",
]
