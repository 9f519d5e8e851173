# classifieds/helper/email_sender.py
import logging

import httpx
from fastapi import HTTPException, status
from classifieds.core.config import settings

logger = logging.getLogger(__name__)


async def send_email(email_to: str, subject: str, body: str):
    """
    Sends an email using the Resend API.
    """
    if not settings.RESEND_API_KEY:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Email service is not configured.")

    headers = {
        "Authorization": f"Bearer {settings.RESEND_API_KEY.get_secret_value()}",
        "Content-Type": "application/json",
    }
    json_payload = {
        "from": f"{settings.EMAIL_FROM_NAME} <{settings.EMAIL_FROM}>",
        "to": [email_to],
        "subject": subject,
        "html": body,
    }

    try:
        async with httpx.AsyncClient(timeout=15) as client:
            response = await client.post(settings.RESEND_API_URL, headers=headers, json=json_payload)
            response.raise_for_status()
    except httpx.HTTPStatusError as e:
        logger.error("Error sending email via Resend: %s", e.response.text)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to send email.")
    except httpx.HTTPError as e:
        logger.error("Email provider unreachable: %s", e)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to send email.")
