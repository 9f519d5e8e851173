# classifieds/helper/email.py
import logging
from html import escape
from typing import List, Optional, Sequence, Tuple

from fastapi import HTTPException

from classifieds.core.config import settings
from classifieds.core.security import create_email_verification_token, create_password_reset_token
from .email_sender import send_email

logger = logging.getLogger(__name__)


def format_price(amount: Optional[float]) -> str:
    if amount is None:
        return "N/A"
    return f"${amount:,.2f}"


def _layout(heading: str, body_html: str, button_text: str, button_link: str, color: str = "#2563eb") -> str:
    return f"""
    <html>
        <body style="margin:0; padding:0; background:#f4f6f8; font-family:Arial, sans-serif; color:#333;">
            <table role="presentation" width="100%" cellpadding="0" cellspacing="0" style="background:#f4f6f8; padding:30px 0;">
            <tr>
                <td align="center">
                <table role="presentation" width="600" cellpadding="0" cellspacing="0" style="background:#ffffff; border-radius:10px; padding:40px 30px;">
                    <tr>
                    <td style="font-size:22px; font-weight:bold; color:{color}; padding-bottom:15px;">
                        {heading}
                    </td>
                    </tr>
                    <tr>
                    <td style="font-size:16px; line-height:1.6; padding-bottom:25px;">
                        {body_html}
                    </td>
                    </tr>
                    <tr>
                    <td align="center" style="padding-bottom:30px;">
                        <a href="{button_link}"
                        style="display:inline-block; background-color:{color}; color:#ffffff; text-decoration:none;
                               padding:14px 30px; border-radius:6px; font-weight:bold; font-size:16px;">
                        {button_text}
                        </a>
                    </td>
                    </tr>
                    <tr>
                    <td align="center" style="font-size:12px; color:#999;">
                        <a href="{settings.FRONTEND_SERVER_HOST}/account" style="color:#999;">Unsubscribe from email notifications</a>
                    </td>
                    </tr>
                </table>
                </td>
            </tr>
            </table>
        </body>
    </html>
    """


async def send_verification_email(email: str):
    token = create_email_verification_token(email)
    verification_url = f"{settings.FRONTEND_SERVER_HOST}/verify-email/{token}"

    body = (
        "Thank you for signing up.<br><br>"
        "Please confirm your email address by clicking the button below. "
        "If you didn't create an account, you can safely ignore this message."
    )
    html_content = _layout(f"Welcome to {escape(settings.EMAIL_FROM_NAME)}!", body, "Verify My Email", verification_url)

    await send_email(email_to=email, subject="Verify Your Email", body=html_content)


async def send_password_reset_email(email: str):
    token = create_password_reset_token(email)
    reset_url = f"{settings.FRONTEND_SERVER_HOST}/reset-password/{token}"

    body = (
        "You have requested to reset your password.<br><br>"
        f"This link is valid for {settings.PASSWORD_RESET_TOKEN_EXPIRE_MINUTES} minutes. "
        "If you did not request a password reset, please ignore this email."
    )
    html_content = _layout("Password Reset Request", body, "Reset Password", reset_url)

    await send_email(email_to=email, subject="Password Reset Request", body=html_content)


async def send_offer_email(
    kind: str,
    offer_id: int,
    recipient_email: Optional[str],
    actor_name: str,
    listing_title: str,
    amount: float,
    counter_amount: Optional[float] = None,
) -> bool:
    """
    Tell the other party about an offer decision. `kind` is one of
    accepted / declined / countered. Failures are logged, never raised.
    """
    if not recipient_email:
        logger.info("Offer %s email for offer %s skipped: no recipient address", kind, offer_id)
        return False

    title = escape(listing_title)
    actor = escape(actor_name)
    button_text = "View Offer"
    button_link = f"{settings.FRONTEND_SERVER_HOST}/offers"

    if kind == "accepted":
        subject = f"Your offer was accepted: {listing_title}"
        heading = "Offer Accepted!"
        message = (
            f"{actor} accepted the offer of {format_price(counter_amount or amount)} "
            f"for \"{title}\". You can now message them to complete the transaction."
        )
        button_text = "Start Messaging"
        button_link = f"{settings.FRONTEND_SERVER_HOST}/messages"
    elif kind == "declined":
        subject = f"Offer update: {listing_title}"
        heading = "Offer Declined"
        message = f"{actor} declined the offer of {format_price(counter_amount or amount)} for \"{title}\"."
    elif kind == "countered":
        subject = f"Counter-offer received: {listing_title}"
        heading = "You received a counter-offer!"
        message = (
            f"{actor} countered your offer of {format_price(amount)} with "
            f"{format_price(counter_amount)} for \"{title}\". "
            f"The counter-offer expires in {settings.OFFER_EXPIRY_HOURS} hours."
        )
    else:
        raise ValueError(f"Unknown offer email kind: {kind}")

    try:
        await send_email(email_to=recipient_email, subject=subject, body=_layout(heading, message, button_text, button_link))
    except HTTPException as e:
        logger.warning("Offer %s email for offer %s failed: %s", kind, offer_id, e.detail)
        return False
    return True


async def send_unread_messages_email(email: str, name: str, unread_count: int):
    noun = "message" if unread_count == 1 else "messages"
    body = (
        f"Hi {escape(name)},<br><br>"
        f"You have {unread_count} unread {noun} waiting for you."
    )
    html_content = _layout("New Messages", body, "View Messages", f"{settings.FRONTEND_SERVER_HOST}/messages")
    await send_email(email_to=email, subject="You have new messages", body=html_content)


async def send_new_offers_email(email: str, name: str, offers: Sequence[Tuple[str, float]]):
    count = len(offers)
    items = "".join(
        f"<p style=\"margin:8px 0;\"><strong>{escape(title)}</strong>: {format_price(amount)}</p>"
        for title, amount in offers[:5]
    )
    body = (
        f"Hi {escape(name)},<br><br>"
        f"You have {'a new offer' if count == 1 else f'{count} new offers'} on your listings.{items}"
    )
    subject = "New Offer on Your Listing" if count == 1 else f"{count} New Offers on Your Listings"
    html_content = _layout("New Offers", body, "Review Offers", f"{settings.FRONTEND_SERVER_HOST}/offers", color="#16a34a")
    await send_email(email_to=email, subject=subject, body=html_content)


async def send_expired_listings_email(email: str, name: str, titles: List[str]):
    count = len(titles)
    items = "".join(
        f"<p style=\"margin:8px 0;\"><strong>{escape(title)}</strong></p>" for title in titles[:3]
    ) if count <= 3 else ""
    body = (
        f"Hi {escape(name)},<br><br>"
        f"Your {'listing has' if count == 1 else f'{count} listings have'} expired and "
        f"{'is' if count == 1 else 'are'} no longer visible to buyers.{items}<br>"
        f"You can renew {'it' if count == 1 else 'them'} for another {settings.LISTING_LIFETIME_DAYS} days with one click."
    )
    subject = "Your Listing Has Expired - Renew Now!" if count == 1 else f"{count} Listings Have Expired - Renew Now!"
    html_content = _layout("Listings Expired", body, "Renew Now", f"{settings.FRONTEND_SERVER_HOST}/my-listings", color="#d97706")
    await send_email(email_to=email, subject=subject, body=html_content)
