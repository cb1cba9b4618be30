from sqlalchemy import Column, Integer, String

from .base import Base


class CountryCode(Base):
    """Dial code and expected local number length used to validate phone numbers"""
    __tablename__ = "country_codes"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(2), unique=True, nullable=False)
    name = Column(String(100), nullable=False)
    dial_code = Column(String(8), nullable=False, index=True)
    phone_length = Column(Integer, nullable=False)
