"""Scheduled sweeps: offer/listing expiry and email notification digests."""

import asyncio
import logging
from collections import defaultdict
from datetime import timedelta
from typing import Dict

from fastapi import HTTPException
from sqlalchemy import exists
from sqlalchemy.orm import Session

from classifieds import crud, models
from classifieds.core.config import settings
from classifieds.database import SessionLocal
from classifieds.helper import email
from classifieds.models import utcnow
from classifieds.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


async def run_expiry_sweep(db: Session) -> Dict[str, int]:
    """Expire lapsed offers and archive listings past their expiry date."""
    now = utcnow()
    expired_offers = crud.expire_stale_offers(db)

    archived_listings = db.query(models.Listing).filter(
        models.Listing.status == models.ListingStatusEnum.active,
        models.Listing.expires_at.isnot(None),
        models.Listing.expires_at < now
    ).update({
        models.Listing.status: models.ListingStatusEnum.archived,
        models.Listing.archived_at: now,
    }, synchronize_session=False)
    db.commit()

    logger.info("Expiry sweep: %s offers expired, %s listings archived", expired_offers, archived_listings)
    return {"expiredOffers": expired_offers, "archivedListings": archived_listings}


def _unnotified(ledger_column, target_column):
    return ~exists().where(ledger_column == target_column)


def _recipients(db: Session, user_ids):
    """Profiles that still want email, keyed by id."""
    if not user_ids:
        return {}
    profiles = db.query(models.Profile).filter(models.Profile.id.in_(user_ids)).all()
    opted_out = {
        pref.user_id for pref in db.query(models.NotificationPreference).filter(
            models.NotificationPreference.user_id.in_(user_ids),
            models.NotificationPreference.email_notifications_enabled.is_(False)
        )
    }
    return {p.id: p for p in profiles if p.email and p.id not in opted_out}


def _record_sent(db: Session, user_id: int, field: str, item_ids):
    for item_id in item_ids:
        db.add(models.EmailNotificationSent(user_id=user_id, **{field: item_id}))
    db.commit()


async def _send(send, *args) -> bool:
    try:
        await send(*args)
    except HTTPException as e:
        logger.warning("Notification email to %s failed: %s", args[0], e.detail)
        return False
    # Stay under the email provider's rate limit
    await asyncio.sleep(settings.NOTIFICATION_EMAIL_DELAY_SECONDS)
    return True


async def notify_unread_messages(db: Session) -> Dict[str, int]:
    messages = db.query(models.Message).filter(
        models.Message.is_read.is_(False),
        _unnotified(models.EmailNotificationSent.message_id, models.Message.id)
    ).all()

    by_recipient = defaultdict(list)
    for message in messages:
        by_recipient[message.recipient_id].append(message.id)

    recipients = _recipients(db, list(by_recipient))
    sent = processed = 0
    for user_id, message_ids in by_recipient.items():
        profile = recipients.get(user_id)
        if profile is None:
            continue
        if await _send(email.send_unread_messages_email, profile.email, profile.name, len(message_ids)):
            _record_sent(db, user_id, "message_id", message_ids)
            sent += 1
            processed += len(message_ids)
    return {"emailsSent": sent, "messagesProcessed": processed}


async def notify_pending_offers(db: Session) -> int:
    rows = (
        db.query(models.Offer.id, models.Offer.seller_id, models.Offer.amount, models.Listing.title)
        .join(models.Listing, models.Offer.listing_id == models.Listing.id)
        .filter(
            models.Offer.status == models.OfferStatusEnum.pending,
            models.Offer.expires_at >= utcnow(),
            _unnotified(models.EmailNotificationSent.offer_id, models.Offer.id)
        )
        .order_by(models.Offer.created_at.desc())
        .all()
    )

    by_seller = defaultdict(list)
    for offer_id, seller_id, amount, title in rows:
        by_seller[seller_id].append((offer_id, title, amount))

    recipients = _recipients(db, list(by_seller))
    sent = 0
    for seller_id, offers in by_seller.items():
        profile = recipients.get(seller_id)
        if profile is None:
            continue
        summary = [(title, amount) for _, title, amount in offers]
        if await _send(email.send_new_offers_email, profile.email, profile.name, summary):
            _record_sent(db, seller_id, "offer_id", [offer_id for offer_id, _, _ in offers])
            sent += 1
    return sent


async def notify_expired_listings(db: Session) -> int:
    since = utcnow() - timedelta(hours=24)
    listings = db.query(models.Listing).filter(
        models.Listing.status == models.ListingStatusEnum.archived,
        models.Listing.archived_at.isnot(None),
        models.Listing.archived_at >= since,
        _unnotified(models.EmailNotificationSent.listing_id, models.Listing.id)
    ).all()

    by_owner = defaultdict(list)
    for listing in listings:
        by_owner[listing.user_id].append(listing)

    recipients = _recipients(db, list(by_owner))
    sent = 0
    for user_id, owned in by_owner.items():
        profile = recipients.get(user_id)
        if profile is None:
            continue
        titles = [listing.title for listing in owned]
        if await _send(email.send_expired_listings_email, profile.email, profile.name, titles):
            _record_sent(db, user_id, "listing_id", [listing.id for listing in owned])
            sent += 1
    return sent


async def run_notification_sweep(db: Session) -> Dict[str, int]:
    """
    Send one digest per recipient for unread messages, pending offers and
    recently archived listings. Items are written to the ledger only after
    their email went out, so a failed send is retried on the next run.
    """
    messages = await notify_unread_messages(db)
    offer_emails = await notify_pending_offers(db)
    expired_emails = await notify_expired_listings(db)

    result = {
        "emailsSent": messages["emailsSent"],
        "offerEmailsSent": offer_emails,
        "expiredListingEmailsSent": expired_emails,
        "messagesProcessed": messages["messagesProcessed"],
    }
    logger.info("Notification sweep: %s", result)
    return result


@celery_app.task(name="classifieds.tasks.scheduled_tasks.expiry_sweep")
def expiry_sweep() -> Dict[str, int]:
    db = SessionLocal()
    try:
        return asyncio.run(run_expiry_sweep(db))
    except Exception as e:
        logger.error("Expiry sweep failed: %s", e)
        raise
    finally:
        db.close()


@celery_app.task(name="classifieds.tasks.scheduled_tasks.notification_sweep")
def notification_sweep() -> Dict[str, int]:
    db = SessionLocal()
    try:
        return asyncio.run(run_notification_sweep(db))
    except Exception as e:
        logger.error("Notification sweep failed: %s", e)
        raise
    finally:
        db.close()
