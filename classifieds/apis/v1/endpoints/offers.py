import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status, BackgroundTasks
from sqlalchemy.orm import Session

from classifieds import crud, schemas, models
from classifieds.database import get_db
from classifieds.dependencies import get_current_profile
from classifieds.helper.email import send_offer_email

logger = logging.getLogger(__name__)

router = APIRouter()


def notify_counterpart(background_tasks: BackgroundTasks, kind: str, offer: models.Offer, actor: models.Profile):
    """Email whichever side of the offer did not act."""
    recipient = offer.seller if actor.id == offer.buyer_id else offer.buyer
    background_tasks.add_task(
        send_offer_email,
        kind,
        offer.id,
        recipient.email if recipient else None,
        actor.name,
        offer.listing.title,
        offer.amount,
        offer.counter_amount,
    )


@router.post("", response_model=schemas.OfferResponse, status_code=status.HTTP_201_CREATED)
def create_offer(
    offer_in: schemas.OfferCreate,
    db: Session = Depends(get_db),
    profile: models.Profile = Depends(get_current_profile),
) -> Any:
    offer = crud.create_offer(db, profile.id, offer_in)
    logger.info("Offer %s created on listing %s by %s", offer.id, offer.listing_id, profile.id)
    return {"offer": offer}


@router.get("/sent", response_model=schemas.OfferList)
def read_sent_offers(
    db: Session = Depends(get_db),
    profile: models.Profile = Depends(get_current_profile),
) -> Any:
    crud.expire_stale_offers(db, buyer_id=profile.id)
    return {"offers": crud.get_sent_offers(db, profile.id)}


@router.get("/received", response_model=schemas.OfferList)
def read_received_offers(
    db: Session = Depends(get_db),
    profile: models.Profile = Depends(get_current_profile),
) -> Any:
    crud.expire_stale_offers(db, seller_id=profile.id)
    return {"offers": crud.get_received_offers(db, profile.id)}


@router.put("/mark-read/{listing_id}", response_model=schemas.SuccessResponse)
def mark_offers_read(
    listing_id: int,
    db: Session = Depends(get_db),
    profile: models.Profile = Depends(get_current_profile),
) -> Any:
    crud.mark_offers_read(db, listing_id, profile.id)
    return {"success": True}


@router.put("/{offer_id}/accept", response_model=schemas.OfferResponse)
def accept_offer(
    offer_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    profile: models.Profile = Depends(get_current_profile),
) -> Any:
    offer = crud.accept_offer(db, offer_id, profile.id)
    notify_counterpart(background_tasks, "accepted", offer, profile)
    return {"offer": offer}


@router.put("/{offer_id}/decline", response_model=schemas.OfferResponse)
def decline_offer(
    offer_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    profile: models.Profile = Depends(get_current_profile),
) -> Any:
    offer = crud.decline_offer(db, offer_id, profile.id)
    notify_counterpart(background_tasks, "declined", offer, profile)
    return {"offer": offer}


@router.put("/{offer_id}/counter", response_model=schemas.OfferResponse)
def counter_offer(
    offer_id: int,
    counter_in: schemas.CounterOfferRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    profile: models.Profile = Depends(get_current_profile),
) -> Any:
    offer = crud.counter_offer(db, offer_id, profile.id, counter_in.counter_amount)
    notify_counterpart(background_tasks, "countered", offer, profile)
    return {"offer": offer}


@router.delete("/{offer_id}", response_model=schemas.SuccessResponse)
def withdraw_offer(
    offer_id: int,
    db: Session = Depends(get_db),
    profile: models.Profile = Depends(get_current_profile),
) -> Any:
    if not crud.withdraw_offer(db, offer_id, profile.id):
        raise HTTPException(status_code=404, detail="Offer not found")
    return {"success": True}
