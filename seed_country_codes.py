"""
Seed script: phone dial codes and expected local number lengths.

Usage:
    python seed_country_codes.py

Idempotent: upsert by ISO country code.
"""
from app.database import SessionLocal
from app.models.country_code import CountryCode

COUNTRY_CODES = [
    {"code": "IN", "name": "India", "dial_code": "+91", "phone_length": 10},
    {"code": "US", "name": "United States", "dial_code": "+1", "phone_length": 10},
    {"code": "GB", "name": "United Kingdom", "dial_code": "+44", "phone_length": 10},
    {"code": "AE", "name": "United Arab Emirates", "dial_code": "+971", "phone_length": 9},
    {"code": "SA", "name": "Saudi Arabia", "dial_code": "+966", "phone_length": 9},
    {"code": "QA", "name": "Qatar", "dial_code": "+974", "phone_length": 8},
    {"code": "KW", "name": "Kuwait", "dial_code": "+965", "phone_length": 8},
    {"code": "OM", "name": "Oman", "dial_code": "+968", "phone_length": 8},
    {"code": "NP", "name": "Nepal", "dial_code": "+977", "phone_length": 10},
    {"code": "BD", "name": "Bangladesh", "dial_code": "+880", "phone_length": 10},
    {"code": "LK", "name": "Sri Lanka", "dial_code": "+94", "phone_length": 9},
    {"code": "SG", "name": "Singapore", "dial_code": "+65", "phone_length": 8},
    {"code": "AU", "name": "Australia", "dial_code": "+61", "phone_length": 9},
]

db = SessionLocal()
try:
    for c in COUNTRY_CODES:
        country = db.query(CountryCode).filter(CountryCode.code == c["code"]).first()
        if not country:
            db.add(CountryCode(**c))
            print(f"  Created: {c['name']} ({c['dial_code']})")
        else:
            country.name = c["name"]
            country.dial_code = c["dial_code"]
            country.phone_length = c["phone_length"]
            print(f"  Updated: {c['name']} ({c['dial_code']})")
    db.commit()
finally:
    db.close()
