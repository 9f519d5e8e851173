import asyncio
from datetime import timedelta

import pytest
from fastapi import HTTPException
from sqlalchemy.orm import Session

from classifieds import crud, models
from classifieds.models import utcnow
from classifieds.tasks.scheduled_tasks import run_expiry_sweep, run_notification_sweep


def add_message(db: Session, sender, recipient, content="Still available?", is_read=False):
    message = models.Message(
        conversation_id=crud.build_conversation_id(sender.id, recipient.id, None),
        sender_id=sender.id,
        recipient_id=recipient.id,
        content=content,
        is_read=is_read,
    )
    db.add(message)
    db.commit()
    return message


def add_offer(db: Session, listing, buyer, status=models.OfferStatusEnum.pending, expires_in=timedelta(hours=48)):
    offer = models.Offer(
        listing_id=listing.id,
        buyer_id=buyer.id,
        seller_id=listing.user_id,
        amount=75,
        status=status,
        expires_at=utcnow() + expires_in,
    )
    db.add(offer)
    db.commit()
    return offer


def test_expiry_sweep(db_session: Session, make_user, make_listing):
    seller = make_user()
    buyer = make_user()
    now = utcnow()
    stale = make_listing(seller, expires_at=now - timedelta(minutes=5))
    fresh = make_listing(seller)
    disabled = make_listing(seller, status=models.ListingStatusEnum.disabled, expires_at=now - timedelta(days=1))
    lapsed = add_offer(db_session, fresh, buyer, expires_in=timedelta(minutes=-1))
    live = add_offer(db_session, stale, buyer)

    result = asyncio.run(run_expiry_sweep(db_session))
    assert result == {"expiredOffers": 1, "archivedListings": 1}

    db_session.expire_all()
    assert stale.status == models.ListingStatusEnum.archived
    assert stale.archived_at is not None
    assert fresh.status == models.ListingStatusEnum.active
    assert disabled.status == models.ListingStatusEnum.disabled
    assert lapsed.status == models.OfferStatusEnum.expired
    assert live.status == models.OfferStatusEnum.pending

    # Nothing left to do on a second pass
    assert asyncio.run(run_expiry_sweep(db_session)) == {"expiredOffers": 0, "archivedListings": 0}


def test_unread_messages_are_batched_per_recipient(db_session: Session, make_user, mock_send_email):
    alice = make_user(name="Alice")
    bob = make_user(name="Bob")
    carol = make_user(name="Carol")
    add_message(db_session, bob, alice)
    add_message(db_session, carol, alice)
    add_message(db_session, alice, bob)
    add_message(db_session, alice, carol, is_read=True)

    result = asyncio.run(run_notification_sweep(db_session))
    assert result["emailsSent"] == 2
    assert result["messagesProcessed"] == 3

    recipients = sorted(call.kwargs["email_to"] for call in mock_send_email.await_args_list)
    assert recipients == sorted([alice.email, bob.email])
    assert db_session.query(models.EmailNotificationSent).count() == 3

    # Already notified messages are not emailed again
    mock_send_email.reset_mock()
    result = asyncio.run(run_notification_sweep(db_session))
    assert result["emailsSent"] == 0
    mock_send_email.assert_not_awaited()


def test_opted_out_users_are_skipped(db_session: Session, make_user, mock_send_email):
    alice = make_user()
    bob = make_user()
    crud.set_email_notifications_enabled(db_session, alice.id, False)
    add_message(db_session, bob, alice)

    result = asyncio.run(run_notification_sweep(db_session))
    assert result["emailsSent"] == 0
    mock_send_email.assert_not_awaited()
    assert db_session.query(models.EmailNotificationSent).count() == 0


def test_failed_send_is_retried_next_run(db_session: Session, make_user, mock_send_email):
    alice = make_user()
    bob = make_user()
    add_message(db_session, bob, alice)

    mock_send_email.side_effect = HTTPException(status_code=500, detail="Failed to send email.")
    result = asyncio.run(run_notification_sweep(db_session))
    assert result["emailsSent"] == 0
    assert db_session.query(models.EmailNotificationSent).count() == 0

    mock_send_email.side_effect = None
    result = asyncio.run(run_notification_sweep(db_session))
    assert result["emailsSent"] == 1
    assert db_session.query(models.EmailNotificationSent).count() == 1


def test_pending_offers_digest(db_session: Session, make_user, make_listing, mock_send_email):
    seller = make_user(name="Sally")
    first = make_user()
    second = make_user()
    listing = make_listing(seller, title="Vintage camera")
    add_offer(db_session, listing, first)
    add_offer(db_session, listing, second)
    add_offer(db_session, make_listing(seller), make_user(), status=models.OfferStatusEnum.declined)

    result = asyncio.run(run_notification_sweep(db_session))
    assert result["offerEmailsSent"] == 1
    mock_send_email.assert_awaited_once()
    kwargs = mock_send_email.await_args.kwargs
    assert kwargs["email_to"] == seller.email
    assert kwargs["subject"] == "2 New Offers on Your Listings"
    assert "Vintage camera" in kwargs["body"]

    assert asyncio.run(run_notification_sweep(db_session))["offerEmailsSent"] == 0


def test_recently_archived_listings_digest(db_session: Session, make_user, make_listing, mock_send_email):
    seller = make_user()
    now = utcnow()
    make_listing(seller, title="Old couch", status=models.ListingStatusEnum.archived, archived_at=now - timedelta(hours=1))
    make_listing(seller, title="Ancient couch", status=models.ListingStatusEnum.archived, archived_at=now - timedelta(days=3))

    result = asyncio.run(run_notification_sweep(db_session))
    assert result["expiredListingEmailsSent"] == 1
    kwargs = mock_send_email.await_args.kwargs
    assert kwargs["subject"] == "Your Listing Has Expired - Renew Now!"
    assert "Old couch" in kwargs["body"]
    assert "Ancient couch" not in kwargs["body"]


@pytest.mark.parametrize("task_name", ["expiry_sweep", "notification_sweep"])
def test_celery_tasks_are_scheduled(task_name):
    from classifieds.tasks.celery_app import celery_app

    scheduled = {entry["task"] for entry in celery_app.conf.beat_schedule.values()}
    assert f"classifieds.tasks.scheduled_tasks.{task_name}" in scheduled
