from typing import Optional
from jose import JWTError, jwt
from app.config import settings


def verify_token(token: str) -> Optional[dict]:
    """
    Verify an access token issued by the identity provider (Supabase Auth)
    and return its claims if valid.
    """
    if not settings.supabase_jwt_secret:
        return None
    try:
        payload = jwt.decode(
            token,
            settings.supabase_jwt_secret,
            algorithms=[settings.supabase_jwt_algorithm],
            audience=settings.supabase_jwt_audience,
        )
    except JWTError:
        return None
    if payload.get("role") == "anon":
        return None
    return payload
