import logging
from typing import Optional

import httpx
from classifieds.core.config import settings

logger = logging.getLogger(__name__)

VERIFY_URL = "https://www.google.com/recaptcha/api/siteverify"


async def verify_recaptcha(token: Optional[str], expected_action: Optional[str] = None) -> bool:
    """Check a reCAPTCHA v3 token. Any failure to verify counts as a failed check."""
    if not token:
        return False
    if not settings.RECAPTCHA_SECRET_KEY:
        logger.error("reCAPTCHA secret key is not configured")
        return False

    data = {
        "secret": settings.RECAPTCHA_SECRET_KEY.get_secret_value(),
        "response": token,
    }
    try:
        async with httpx.AsyncClient(timeout=10) as client:
            response = await client.post(VERIFY_URL, data=data)
            response.raise_for_status()
            result = response.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("reCAPTCHA verification request failed: %s", e)
        return False

    if not result.get("success"):
        logger.info("reCAPTCHA rejected token: %s", result.get("error-codes"))
        return False
    if expected_action and result.get("action") != expected_action:
        logger.info("reCAPTCHA action mismatch: %s", result.get("action"))
        return False
    # v2 responses carry no score
    score = result.get("score")
    return score is None or score >= settings.RECAPTCHA_MIN_SCORE
