"""
Transactional e-mail client (Resend-compatible HTTP API).

Disabled when no API key is configured.
"""
import logging
import httpx

from app.config import settings

logger = logging.getLogger(__name__)


def is_enabled() -> bool:
    return bool(settings.email_api_key)


def send_email(to: str, subject: str, html: str) -> bool:
    """
    Send a single HTML e-mail.
    Returns True on success, False on error or when e-mail is disabled.
    """
    if not is_enabled():
        logger.info("E-mail API not configured. Skipping send_email to %s", to)
        return False

    if not to:
        logger.warning("send_email called with empty recipient. Skipping.")
        return False

    headers = {
        "Authorization": f"Bearer {settings.email_api_key}",
        "Content-Type": "application/json",
    }
    payload = {
        "from": settings.email_from,
        "to": [to],
        "subject": subject,
        "html": html,
    }

    try:
        with httpx.Client(timeout=10) as client:
            resp = client.post(settings.email_api_url, headers=headers, json=payload)
        if resp.status_code in (200, 201, 202):
            return True
        logger.error("send_email failed: %s %s", resp.status_code, resp.text)
        return False
    except Exception as e:
        logger.error("send_email exception: %s", e)
        return False
