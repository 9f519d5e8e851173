# classifieds/crud.py

import logging
import random
from typing import Optional, List, Tuple
from datetime import timedelta

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload, selectinload
from fastapi import HTTPException

from . import models, schemas
from .core.config import settings
from .core.security import get_password_hash
from .database import SessionLocal
from .helper import locationServices
from .models import utcnow

logger = logging.getLogger(__name__)

RESERVED_NAMES = ['admin', 'administrator', 'moderator', 'support', 'system']
RANDOM_BATCH_MIN = 100


# --- Helper Functions ---

def contains_reserved_name(name: str) -> bool:
    name_lower = name.lower().strip()
    return any(reserved in name_lower for reserved in RESERVED_NAMES)


def _like(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def build_conversation_id(user_a: int, user_b: int, listing_id: Optional[int]) -> str:
    low, high = sorted((user_a, user_b))
    return f"{low}_{high}_{listing_id if listing_id is not None else 'direct'}"


def _listing_load_options():
    return (
        joinedload(models.Listing.seller),
        joinedload(models.Listing.category),
        joinedload(models.Listing.subcategory),
        selectinload(models.Listing.real_estate_details),
    )


# --- User / Profile CRUD ---

def get_user_by_email(db: Session, email: str):
    return db.query(models.User).filter(models.User.email == email.lower()).first()


def create_user(db: Session, email: str, password: str, name: str):
    db_user = models.User(email=email.lower(), hashed_password=get_password_hash(password))
    db.add(db_user)
    db.flush()
    db.add(models.Profile(id=db_user.id, email=db_user.email, name=name.strip()))
    db.commit()
    db.refresh(db_user)
    return db_user


def get_profile(db: Session, profile_id: int):
    return db.query(models.Profile).filter(models.Profile.id == profile_id).first()


def get_or_create_profile(db: Session, user: models.User):
    profile = get_profile(db, user.id)
    if profile:
        return profile
    logger.info("Profile not found, creating new profile for user %s", user.id)
    profile = models.Profile(id=user.id, email=user.email, name=user.email.split("@")[0] or "User")
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


def update_profile(db: Session, profile: models.Profile, profile_in: schemas.ProfileUpdate):
    profile.name = profile_in.name.strip()
    profile.city = profile_in.city or None
    profile.zipcode = profile_in.zipcode or None
    profile.avatar_url = profile_in.avatar_url or None
    db.commit()
    db.refresh(profile)
    return profile


# --- Category CRUD ---

def get_category_tree(db: Session):
    return (
        db.query(models.Category)
        .options(selectinload(models.Category.subcategories))
        .order_by(models.Category.sort_order, models.Category.id)
        .all()
    )


def get_category_by_slug(db: Session, slug: str):
    return db.query(models.Category).filter(models.Category.slug == slug).first()


def get_subcategory_by_slug(db: Session, slug: str):
    return db.query(models.Subcategory).filter(models.Subcategory.slug == slug).first()


def _check_category(db: Session, category_id: Optional[int], subcategory_id: Optional[int]):
    if category_id is not None and db.get(models.Category, category_id) is None:
        raise HTTPException(status_code=400, detail="Invalid category")
    if subcategory_id is not None:
        subcategory = db.get(models.Subcategory, subcategory_id)
        if subcategory is None or (category_id is not None and subcategory.category_id != category_id):
            raise HTTPException(status_code=400, detail="Invalid subcategory")


# --- Listing CRUD ---

LISTING_FIELDS = ("title", "description", "price", "category_id", "subcategory_id", "images", "zip_code")
REAL_ESTATE_FIELDS = (
    "property_type", "listing_type", "bedrooms", "bathrooms", "square_feet", "lot_size",
    "year_built", "parking_spaces", "address", "city", "state", "amenities",
)


def _real_estate_data(data: dict, zip_code: Optional[str]) -> dict:
    re_data = {k: data.get(k) for k in REAL_ESTATE_FIELDS}
    re_data["listing_type"] = re_data["listing_type"] or "sale"
    re_data["amenities"] = re_data["amenities"] or []
    re_data["zip_code"] = zip_code
    return re_data


def create_listing(db: Session, listing_in: schemas.ListingCreate, user_id: int):
    _check_category(db, listing_in.category_id, listing_in.subcategory_id)
    data = listing_in.model_dump()
    now = utcnow()

    db_listing = models.Listing(
        user_id=user_id,
        title=data["title"].strip(),
        description=data["description"],
        price=data["price"],
        category_id=data["category_id"],
        subcategory_id=data["subcategory_id"] or None,
        images=data["images"] or [],
        zip_code=data["zip_code"] or None,
        status=models.ListingStatusEnum.active,
        expires_at=now + timedelta(days=settings.LISTING_LIFETIME_DAYS),
        created_at=now,
    )
    db.add(db_listing)

    try:
        db.flush()
        if listing_in.property_type:
            re_data = _real_estate_data(data, db_listing.zip_code)
            db_listing.listing_type = re_data["listing_type"]
            db.add(models.RealEstateDetails(listing_id=db_listing.id, **re_data))
        db.commit()
    except SQLAlchemyError as e:
        # Listing and details share one transaction, so nothing is left behind
        db.rollback()
        logger.error("Create listing error: %s", e)
        raise HTTPException(status_code=400, detail="Failed to create real estate details")

    db.refresh(db_listing)
    return db_listing


def update_listing(db: Session, listing_id: int, listing_in: schemas.ListingUpdate, user_id: int):
    listing = db.query(models.Listing).filter(
        models.Listing.id == listing_id,
        models.Listing.user_id == user_id
    ).first()

    if not listing:
        return None

    data = listing_in.model_dump(exclude_unset=True)
    _check_category(
        db,
        data.get("category_id", listing.category_id),
        data.get("subcategory_id", listing.subcategory_id),
    )

    for field in LISTING_FIELDS:
        if field in data:
            value = data[field]
            if field == "images":
                value = value or []
            elif field in ("zip_code", "subcategory_id"):
                value = value or None
            setattr(listing, field, value)

    if "zip_code" in data:
        # Coordinates belong to the old zip until geocoding catches up
        listing.latitude = None
        listing.longitude = None

    if data.get("property_type"):
        details = listing.real_estate_details
        if details:
            for field in REAL_ESTATE_FIELDS:
                if field in data:
                    setattr(details, field, data[field])
            details.listing_type = details.listing_type or "sale"
            details.amenities = details.amenities or []
            details.zip_code = listing.zip_code
        else:
            details = models.RealEstateDetails(**_real_estate_data(data, listing.zip_code))
            listing.real_estate_details = details
        listing.listing_type = details.listing_type

    db.commit()
    db.refresh(listing)
    return listing


def get_listing_by_id(db: Session, listing_id: int):
    return (
        db.query(models.Listing)
        .options(*_listing_load_options())
        .filter(models.Listing.id == listing_id)
        .first()
    )


def increment_listing_views(db: Session, listing: models.Listing):
    db.execute(
        update(models.Listing)
        .where(models.Listing.id == listing.id)
        .values(views=func.coalesce(models.Listing.views, 0) + 1)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    db.refresh(listing)
    return listing


def renew_listing(db: Session, listing_id: int, user_id: Optional[int] = None):
    query = db.query(models.Listing).filter(models.Listing.id == listing_id)
    if user_id is not None:
        query = query.filter(models.Listing.user_id == user_id)
    listing = query.first()
    if not listing:
        return None

    listing.status = models.ListingStatusEnum.active
    listing.expires_at = utcnow() + timedelta(days=settings.LISTING_LIFETIME_DAYS)
    listing.archived_at = None
    db.commit()
    db.refresh(listing)
    return listing


def archive_listing(db: Session, listing_id: int, user_id: int):
    listing = db.query(models.Listing).filter(
        models.Listing.id == listing_id,
        models.Listing.user_id == user_id
    ).first()
    if not listing:
        return None

    if listing.status != models.ListingStatusEnum.archived:
        listing.status = models.ListingStatusEnum.archived
        listing.archived_at = utcnow()
        db.commit()
        db.refresh(listing)
    return listing


def set_listing_status(db: Session, listing_id: int, status: models.ListingStatusEnum):
    listing = db.query(models.Listing).filter(models.Listing.id == listing_id).first()
    if not listing:
        return None
    listing.status = status
    db.commit()
    db.refresh(listing)
    return listing


def update_listing_category(db: Session, listing_id: int, category_in: schemas.ListingCategoryUpdate):
    listing = db.query(models.Listing).filter(models.Listing.id == listing_id).first()
    if not listing:
        return None
    _check_category(db, category_in.category_id, category_in.subcategory_id)
    listing.category_id = category_in.category_id
    listing.subcategory_id = category_in.subcategory_id or None
    db.commit()
    db.refresh(listing)
    return listing


def delete_listing(db: Session, listing_id: int, user_id: Optional[int] = None) -> bool:
    query = db.query(models.Listing).filter(models.Listing.id == listing_id)
    if user_id is not None:
        query = query.filter(models.Listing.user_id == user_id)
    listing = query.first()
    if not listing:
        return False
    db.delete(listing)
    db.commit()
    return True


def save_listing_coordinates(db: Session, listing_id: int, lat: float, lon: float):
    db.execute(
        update(models.Listing)
        .where(models.Listing.id == listing_id)
        .values(latitude=lat, longitude=lon)
        .execution_options(synchronize_session=False)
    )
    db.commit()


def geocode_and_save(listing_id: int, zip_code: Optional[str]):
    """Background task: resolve the listing's zip code and cache lat/lon on the row."""
    if not locationServices.is_searchable_zipcode(zip_code):
        logger.info("[GEOCODE] Skipping listing %s - invalid zipcode: %s", listing_id, zip_code)
        return

    coords = locationServices.get_zipcode_coords(zip_code)
    if coords is None:
        logger.info("[GEOCODE] Could not get coordinates for zipcode: %s", zip_code)
        return

    db = SessionLocal()
    try:
        save_listing_coordinates(db, listing_id, coords[0], coords[1])
        logger.info("[GEOCODE] Saved coordinates for listing %s: lat=%s, lon=%s", listing_id, *coords)
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning("[GEOCODE] Error saving coordinates for listing %s: %s", listing_id, e)
    finally:
        db.close()


# --- Listing Search ---

def _filtered_listings_query(
    db: Session,
    category: Optional[str] = None,
    subcategory: Optional[str] = None,
    search: Optional[str] = None,
    status: Optional[str] = None,
    user_id: Optional[int] = None,
    listing_type: Optional[str] = None,
    location: Optional[str] = None,
):
    query = db.query(models.Listing)

    if status:
        query = query.filter(models.Listing.status == status)

    # Unknown slugs are ignored rather than matching nothing
    if category and category != 'all':
        category_row = get_category_by_slug(db, category)
        if category_row:
            query = query.filter(models.Listing.category_id == category_row.id)

    if subcategory and subcategory != 'all':
        subcategory_row = get_subcategory_by_slug(db, subcategory)
        if subcategory_row:
            query = query.filter(models.Listing.subcategory_id == subcategory_row.id)

    for term in (search, location):
        if term:
            pattern = _like(term)
            query = query.filter(or_(
                models.Listing.title.ilike(pattern, escape="\\"),
                models.Listing.description.ilike(pattern, escape="\\"),
            ))

    if user_id is not None:
        query = query.filter(models.Listing.user_id == user_id)

    if listing_type and listing_type != 'all':
        query = query.filter(models.Listing.listing_type == listing_type)

    return query


def _order_clauses(sort: str):
    listing = models.Listing
    if sort == 'oldest':
        return (listing.created_at.asc(), listing.id.asc())
    if sort == 'price_low':
        return (listing.price.asc().nulls_last(), listing.id.asc())
    if sort == 'price_high':
        return (listing.price.desc().nulls_last(), listing.id.asc())
    return (listing.created_at.desc(), listing.id.desc())


def sort_listings_in_memory(items: List[Tuple[models.Listing, float]], sort: str):
    """Sort (listing, distance) pairs with the same comparators as the SQL path."""
    items = list(items)
    if sort == 'random':
        random.shuffle(items)
    elif sort == 'nearest':
        items.sort(key=lambda item: (item[1], item[0].id))
    elif sort == 'oldest':
        items.sort(key=lambda item: (item[0].created_at, item[0].id))
    elif sort == 'price_low':
        items.sort(key=lambda item: (item[0].price is None, item[0].price or 0, item[0].id))
    elif sort == 'price_high':
        items.sort(key=lambda item: (item[0].price is None, -(item[0].price or 0), item[0].id))
    else:
        items.sort(key=lambda item: (item[0].created_at, item[0].id), reverse=True)
    return items


def filter_by_distance(listings, origin: Tuple[float, float], radius: float):
    within = []
    for listing in listings:
        distance = locationServices.haversine_miles(origin[0], origin[1], listing.latitude, listing.longitude)
        if distance <= radius:
            within.append((listing, distance))
    return within


def search_listings(
    db: Session,
    category: Optional[str] = None,
    subcategory: Optional[str] = None,
    search: Optional[str] = None,
    status: Optional[str] = 'active',
    user_id: Optional[int] = None,
    sort: str = 'random',
    listing_type: Optional[str] = None,
    location: Optional[str] = None,
    zipcode: Optional[str] = None,
    distance: float = 50,
    limit: int = 30,
    offset: int = 0,
) -> dict:
    query = _filtered_listings_query(
        db, category=category, subcategory=subcategory, search=search, status=status,
        user_id=user_id, listing_type=listing_type, location=location,
    ).options(*_listing_load_options())

    if zipcode and len(zipcode) == 5:
        # Radius search runs over every matching row with stored coordinates
        logger.info("[ZIP FILTER] zipcode=%s distance=%s miles", zipcode, distance)
        origin = locationServices.get_zipcode_coords(zipcode)
        if origin is None:
            return {"listings": [], "total": 0, "hasMore": False}

        rows = (
            query
            .filter(models.Listing.latitude.isnot(None))
            .filter(models.Listing.longitude.isnot(None))
            .all()
        )
        within = sort_listings_in_memory(filter_by_distance(rows, origin, distance), sort)
        logger.info("[ZIP FILTER] Found %s listings within %s miles", len(within), distance)

        page = within[offset:offset + limit]
        for listing, dist in page:
            listing.distance = round(dist, 2)
        return {
            "listings": [listing for listing, _ in page],
            "total": len(within),
            "hasMore": offset + limit < len(within),
        }

    total = query.order_by(None).count()

    if sort == 'random':
        batch_size = max(limit * 3, RANDOM_BATCH_MIN)
        batch = query.order_by(*_order_clauses('newest')).limit(batch_size).all()
        random.shuffle(batch)
        return {"listings": batch[:limit], "total": total, "hasMore": total > batch_size}

    listings = query.order_by(*_order_clauses(sort)).offset(offset).limit(limit).all()
    return {"listings": listings, "total": total, "hasMore": total > offset + limit}


# --- Saved Listing CRUD ---

def get_saved_listings(db: Session, user_id: int, limit: int = 30, offset: int = 0):
    base = db.query(models.SavedListing).filter(models.SavedListing.user_id == user_id)
    total = base.count()
    items = (
        base.options(
            joinedload(models.SavedListing.listing).joinedload(models.Listing.seller),
            joinedload(models.SavedListing.listing).joinedload(models.Listing.category),
            joinedload(models.SavedListing.listing).joinedload(models.Listing.subcategory),
        )
        .order_by(models.SavedListing.created_at.desc(), models.SavedListing.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return items, total


def save_listing(db: Session, user_id: int, listing_id: int):
    if db.get(models.Listing, listing_id) is None:
        raise HTTPException(status_code=400, detail="Listing not found")
    saved = models.SavedListing(user_id=user_id, listing_id=listing_id)
    db.add(saved)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=400, detail="Listing already saved")
    db.refresh(saved)
    return saved


def unsave_listing(db: Session, user_id: int, listing_id: int) -> bool:
    deleted = db.query(models.SavedListing).filter(
        models.SavedListing.user_id == user_id,
        models.SavedListing.listing_id == listing_id
    ).delete(synchronize_session=False)
    db.commit()
    return deleted > 0


# --- Messaging CRUD ---

def _message_load_options():
    return (joinedload(models.Message.sender), joinedload(models.Message.recipient))


def get_conversations(db: Session, user_id: int) -> List[dict]:
    # Ids grow with insertion, so the highest id per thread is its newest message
    latest_ids = (
        select(func.max(models.Message.id))
        .where(or_(models.Message.sender_id == user_id, models.Message.recipient_id == user_id))
        .group_by(models.Message.conversation_id)
    )
    latest = (
        db.query(models.Message)
        .options(*_message_load_options())
        .filter(models.Message.id.in_(latest_ids))
        .order_by(models.Message.created_at.desc(), models.Message.id.desc())
        .all()
    )

    unread = dict(
        db.query(models.Message.conversation_id, func.count(models.Message.id))
        .filter(
            models.Message.recipient_id == user_id,
            models.Message.is_read.is_(False)
        )
        .group_by(models.Message.conversation_id)
        .all()
    )

    return [
        {
            "conversation_id": message.conversation_id,
            "listing_id": message.listing_id,
            "other_user": message.recipient if message.sender_id == user_id else message.sender,
            "last_message": message,
            "unread_count": unread.get(message.conversation_id, 0),
        }
        for message in latest
    ]


def count_unread_messages(db: Session, user_id: int) -> int:
    return db.query(func.count(models.Message.id)).filter(
        models.Message.recipient_id == user_id,
        models.Message.is_read.is_(False)
    ).scalar() or 0


def conversation_members(conversation_id: str) -> Optional[Tuple[int, int]]:
    """The two user ids embedded in a `{low}_{high}_{listing}` id, or None for free-form ids."""
    parts = conversation_id.split("_")
    if len(parts) != 3 or not (parts[0].isdigit() and parts[1].isdigit()):
        return None
    return int(parts[0]), int(parts[1])


def _thread_participants(db: Session, conversation_id: str) -> set:
    rows = db.query(models.Message.sender_id, models.Message.recipient_id).filter(
        models.Message.conversation_id == conversation_id
    ).distinct().all()
    return {user_id for row in rows for user_id in row}


def is_conversation_participant(db: Session, conversation_id: str, user_id: int) -> bool:
    members = conversation_members(conversation_id)
    if members is not None:
        return user_id in members
    participants = _thread_participants(db, conversation_id)
    # A free-form thread belongs to whoever opens it
    return not participants or user_id in participants


def get_conversation_messages(db: Session, conversation_id: str):
    return (
        db.query(models.Message)
        .options(*_message_load_options())
        .filter(models.Message.conversation_id == conversation_id)
        .order_by(models.Message.created_at.asc(), models.Message.id.asc())
        .all()
    )


def mark_conversation_read(db: Session, conversation_id: str, user_id: int) -> int:
    updated = db.query(models.Message).filter(
        models.Message.conversation_id == conversation_id,
        models.Message.recipient_id == user_id,
        models.Message.is_read.is_(False)
    ).update({models.Message.is_read: True}, synchronize_session=False)
    db.commit()
    return updated


def count_conversation_messages(db: Session, conversation_id: str) -> int:
    return db.query(func.count(models.Message.id)).filter(
        models.Message.conversation_id == conversation_id
    ).scalar() or 0


def create_message(db: Session, sender_id: int, message_in: schemas.MessageCreate):
    content = message_in.content.strip()
    if not content:
        raise HTTPException(status_code=400, detail="Message content is required")
    if message_in.recipient_id == sender_id:
        raise HTTPException(status_code=400, detail="You cannot message yourself")
    if get_profile(db, message_in.recipient_id) is None:
        raise HTTPException(status_code=404, detail="Recipient not found")

    members = conversation_members(message_in.conversation_id)
    if members is not None:
        allowed = set(members) - {sender_id}
    else:
        participants = _thread_participants(db, message_in.conversation_id)
        allowed = participants - {sender_id} if participants else {message_in.recipient_id}
    if message_in.recipient_id not in allowed:
        raise HTTPException(status_code=403, detail="Recipient is not part of this conversation")

    message = models.Message(
        conversation_id=message_in.conversation_id,
        sender_id=sender_id,
        recipient_id=message_in.recipient_id,
        listing_id=message_in.listing_id,
        content=content,
    )
    db.add(message)
    db.commit()
    db.refresh(message)
    return message


# --- Offer CRUD ---

def _offer_load_options():
    return (
        joinedload(models.Offer.listing),
        joinedload(models.Offer.buyer),
        joinedload(models.Offer.seller),
    )


def expire_stale_offers(
    db: Session,
    listing_id: Optional[int] = None,
    buyer_id: Optional[int] = None,
    seller_id: Optional[int] = None,
) -> int:
    query = db.query(models.Offer).filter(
        models.Offer.status.in_(models.ACTIVE_OFFER_STATUSES),
        models.Offer.expires_at < utcnow()
    )
    if listing_id is not None:
        query = query.filter(models.Offer.listing_id == listing_id)
    if buyer_id is not None:
        query = query.filter(models.Offer.buyer_id == buyer_id)
    if seller_id is not None:
        query = query.filter(models.Offer.seller_id == seller_id)
    expired = query.update({models.Offer.status: models.OfferStatusEnum.expired}, synchronize_session=False)
    db.commit()
    return expired


def get_active_offer(db: Session, listing_id: int, buyer_id: int):
    return db.query(models.Offer).filter(
        models.Offer.listing_id == listing_id,
        models.Offer.buyer_id == buyer_id,
        models.Offer.status.in_(models.ACTIVE_OFFER_STATUSES),
        models.Offer.expires_at >= utcnow()
    ).first()


def create_offer(db: Session, buyer_id: int, offer_in: schemas.OfferCreate):
    listing = db.query(models.Listing).filter(models.Listing.id == offer_in.listing_id).first()
    if not listing:
        raise HTTPException(status_code=404, detail="Listing not found")
    if listing.status != models.ListingStatusEnum.active:
        raise HTTPException(status_code=400, detail="This listing is not accepting offers")
    if listing.user_id == buyer_id:
        raise HTTPException(status_code=400, detail="You cannot make an offer on your own listing")
    if listing.price is not None and offer_in.amount > listing.price:
        raise HTTPException(status_code=400, detail="Offer cannot exceed the asking price")

    expire_stale_offers(db, listing_id=listing.id, buyer_id=buyer_id)
    if get_active_offer(db, listing.id, buyer_id):
        raise HTTPException(status_code=400, detail="You already have an active offer on this listing")

    now = utcnow()
    offer = models.Offer(
        listing_id=listing.id,
        buyer_id=buyer_id,
        seller_id=listing.user_id,
        amount=offer_in.amount,
        message=(offer_in.message or "").strip() or None,
        status=models.OfferStatusEnum.pending,
        expires_at=now + timedelta(hours=settings.OFFER_EXPIRY_HOURS),
        created_at=now,
    )
    db.add(offer)
    try:
        db.commit()
    except IntegrityError:
        # Lost a race with a concurrent submission; the partial unique index caught it
        db.rollback()
        raise HTTPException(status_code=400, detail="You already have an active offer on this listing")
    return get_offer(db, offer.id)


def get_offer(db: Session, offer_id: int):
    return db.query(models.Offer).options(*_offer_load_options()).filter(models.Offer.id == offer_id).first()


def get_sent_offers(db: Session, buyer_id: int):
    return (
        db.query(models.Offer)
        .options(*_offer_load_options())
        .filter(models.Offer.buyer_id == buyer_id)
        .order_by(models.Offer.created_at.desc(), models.Offer.id.desc())
        .all()
    )


def get_received_offers(db: Session, seller_id: int):
    return (
        db.query(models.Offer)
        .options(*_offer_load_options())
        .filter(models.Offer.seller_id == seller_id)
        .order_by(models.Offer.created_at.desc(), models.Offer.id.desc())
        .all()
    )


def _get_actionable_offer(db: Session, offer_id: int, user_id: int):
    offer = get_offer(db, offer_id)
    if not offer or user_id not in (offer.buyer_id, offer.seller_id):
        raise HTTPException(status_code=404, detail="Offer not found")

    if offer.status in models.ACTIVE_OFFER_STATUSES and offer.expires_at < utcnow():
        offer.status = models.OfferStatusEnum.expired
        db.commit()
        raise HTTPException(status_code=400, detail="Offer has expired")

    # The seller answers a pending offer; the buyer answers a counter-offer
    if offer.status == models.OfferStatusEnum.pending:
        responder_id = offer.seller_id
    elif offer.status == models.OfferStatusEnum.countered:
        responder_id = offer.buyer_id
    else:
        raise HTTPException(status_code=400, detail=f"Offer is already {offer.status.value}")

    if user_id != responder_id:
        raise HTTPException(status_code=403, detail="You cannot respond to this offer")
    return offer


def accept_offer(db: Session, offer_id: int, user_id: int):
    offer = _get_actionable_offer(db, offer_id, user_id)
    offer.status = models.OfferStatusEnum.accepted
    offer.updated_at = utcnow()
    db.commit()
    db.refresh(offer)
    return offer


def decline_offer(db: Session, offer_id: int, user_id: int):
    offer = _get_actionable_offer(db, offer_id, user_id)
    offer.status = models.OfferStatusEnum.declined
    offer.updated_at = utcnow()
    db.commit()
    db.refresh(offer)
    return offer


def counter_offer(db: Session, offer_id: int, user_id: int, counter_amount: float):
    offer = _get_actionable_offer(db, offer_id, user_id)
    if offer.status != models.OfferStatusEnum.pending:
        raise HTTPException(status_code=400, detail="Only pending offers can be countered")
    price = offer.listing.price
    if price is not None and counter_amount > price:
        raise HTTPException(status_code=400, detail="Counter-offer cannot exceed the asking price")

    now = utcnow()
    offer.status = models.OfferStatusEnum.countered
    offer.counter_amount = counter_amount
    offer.expires_at = now + timedelta(hours=settings.OFFER_EXPIRY_HOURS)
    offer.updated_at = now
    db.commit()
    db.refresh(offer)
    return offer


def withdraw_offer(db: Session, offer_id: int, buyer_id: int) -> bool:
    offer = db.query(models.Offer).filter(
        models.Offer.id == offer_id,
        models.Offer.buyer_id == buyer_id
    ).first()
    if not offer:
        return False
    db.delete(offer)
    db.commit()
    return True


def mark_offers_read(db: Session, listing_id: int, seller_id: int) -> int:
    updated = db.query(models.Offer).filter(
        models.Offer.listing_id == listing_id,
        models.Offer.seller_id == seller_id,
        models.Offer.is_read.is_(False)
    ).update({models.Offer.is_read: True}, synchronize_session=False)
    db.commit()
    return updated


# --- Review CRUD ---

def has_reviewed(db: Session, reviewer_id: int, reviewee_id: int) -> bool:
    return db.query(models.Review.id).filter(
        models.Review.reviewer_id == reviewer_id,
        models.Review.reviewee_id == reviewee_id
    ).first() is not None


def refresh_profile_rating(db: Session, profile_id: int):
    count, average = db.query(func.count(models.Review.id), func.avg(models.Review.rating)).filter(
        models.Review.reviewee_id == profile_id
    ).one()
    db.query(models.Profile).filter(models.Profile.id == profile_id).update({
        models.Profile.rating_count: count or 0,
        models.Profile.rating_average: round(float(average or 0), 2),
    }, synchronize_session=False)


def create_review(db: Session, reviewer_id: int, review_in: schemas.ReviewCreate):
    if review_in.reviewee_id == reviewer_id:
        raise HTTPException(status_code=400, detail="You cannot review yourself")
    if get_profile(db, review_in.reviewee_id) is None:
        raise HTTPException(status_code=404, detail="User not found")
    if has_reviewed(db, reviewer_id, review_in.reviewee_id):
        raise HTTPException(status_code=400, detail="You have already reviewed this user")

    review = models.Review(
        reviewer_id=reviewer_id,
        reviewee_id=review_in.reviewee_id,
        conversation_id=review_in.conversation_id,
        rating=review_in.rating,
        comment=review_in.comment,
    )
    db.add(review)
    try:
        db.flush()
        refresh_profile_rating(db, review_in.reviewee_id)
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=400, detail="You have already reviewed this user")
    db.refresh(review)
    return review


def get_reviews_for_user(db: Session, user_id: int):
    return (
        db.query(models.Review)
        .options(joinedload(models.Review.reviewer))
        .filter(models.Review.reviewee_id == user_id)
        .order_by(models.Review.created_at.desc(), models.Review.id.desc())
        .all()
    )


# --- Report CRUD ---

def create_report(db: Session, reporter_id: int, report_in: schemas.ReportCreate):
    if report_in.listing_id is not None and db.get(models.Listing, report_in.listing_id) is None:
        raise HTTPException(status_code=404, detail="Listing not found")
    if report_in.user_id is not None and get_profile(db, report_in.user_id) is None:
        raise HTTPException(status_code=404, detail="User not found")

    report = models.Report(
        reporter_id=reporter_id,
        listing_id=report_in.listing_id,
        user_id=report_in.user_id,
        reason=report_in.reason.strip(),
    )
    db.add(report)
    db.commit()
    db.refresh(report)
    return report


def get_reports(db: Session, status: models.ReportStatusEnum, limit: int = 1000, offset: int = 0):
    base = db.query(models.Report).filter(models.Report.status == status)
    total = base.count()
    reports = (
        base.options(
            joinedload(models.Report.reporter),
            joinedload(models.Report.reported_user),
            joinedload(models.Report.listing),
        )
        .order_by(models.Report.created_at.desc(), models.Report.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return reports, total


def resolve_report(db: Session, report_id: int, admin_id: int, report_in: schemas.ReportUpdate):
    report = db.query(models.Report).filter(models.Report.id == report_id).first()
    if not report:
        return None

    report.status = report_in.status
    report.admin_notes = report_in.admin_notes
    report.resolved_at = utcnow()
    report.resolved_by = admin_id

    if report_in.restore_listing and report.listing_id:
        db.query(models.Listing).filter(models.Listing.id == report.listing_id).update(
            {models.Listing.status: models.ListingStatusEnum.active}, synchronize_session=False
        )

    db.commit()
    db.refresh(report)
    return report


# --- Admin CRUD ---

def get_analytics(db: Session) -> dict:
    def count(model, *criteria):
        return db.query(func.count()).select_from(model).filter(*criteria).scalar() or 0

    category_stats = {}
    rows = (
        db.query(models.Category.name, func.count(models.Listing.id))
        .select_from(models.Listing)
        .outerjoin(models.Category, models.Listing.category_id == models.Category.id)
        .filter(models.Listing.status == models.ListingStatusEnum.active)
        .group_by(models.Category.name)
        .all()
    )
    for name, listing_count in rows:
        key = name or 'Unknown'
        category_stats[key] = category_stats.get(key, 0) + listing_count

    subcategory_counts = (
        db.query(models.Category.name, func.count(models.Subcategory.id))
        .outerjoin(models.Subcategory, models.Subcategory.category_id == models.Category.id)
        .group_by(models.Category.id, models.Category.name, models.Category.sort_order)
        .order_by(models.Category.sort_order, models.Category.id)
        .all()
    )

    return {
        "totalUsers": count(models.Profile),
        "totalListings": count(models.Listing),
        "activeListings": count(models.Listing, models.Listing.status == models.ListingStatusEnum.active),
        "pendingReports": count(models.Report, models.Report.status == models.ReportStatusEnum.pending),
        "totalMessages": count(models.Message),
        "totalReviews": count(models.Review),
        "categoryStats": category_stats,
        "categorySubcategoryCounts": [
            {"name": name, "subcategoryCount": sub_count} for name, sub_count in subcategory_counts
        ],
    }


def admin_list_listings(
    db: Session,
    status_filter: str = 'all',
    sort: str = 'newest',
    search: str = '',
    limit: int = 1000,
    offset: int = 0,
):
    query = db.query(models.Listing)

    if status_filter in ('active', 'archived', 'disabled'):
        query = query.filter(models.Listing.status == status_filter)

    if search:
        # Search spans the seller and category joins, so it runs in SQL instead of in memory
        pattern = _like(search)
        query = (
            query
            .outerjoin(models.Profile, models.Listing.user_id == models.Profile.id)
            .outerjoin(models.Category, models.Listing.category_id == models.Category.id)
            .outerjoin(models.Subcategory, models.Listing.subcategory_id == models.Subcategory.id)
            .filter(or_(
                models.Listing.title.ilike(pattern, escape="\\"),
                models.Listing.description.ilike(pattern, escape="\\"),
                models.Profile.name.ilike(pattern, escape="\\"),
                models.Profile.email.ilike(pattern, escape="\\"),
                models.Category.name.ilike(pattern, escape="\\"),
                models.Subcategory.name.ilike(pattern, escape="\\"),
            ))
        )

    total = query.order_by(None).count()
    listings = (
        query.options(*_listing_load_options())
        .order_by(*_order_clauses(sort))
        .offset(offset)
        .limit(limit)
        .all()
    )
    return listings, total


def admin_list_users(db: Session, status_filter: str = 'all', search: str = '', limit: int = 1000, offset: int = 0):
    query = db.query(models.Profile)

    if status_filter == 'active':
        query = query.filter(or_(models.Profile.is_banned.is_(None), models.Profile.is_banned.is_(False)))
    elif status_filter == 'banned':
        query = query.filter(models.Profile.is_banned.is_(True))

    if search:
        pattern = _like(search)
        query = query.filter(or_(
            models.Profile.name.ilike(pattern, escape="\\"),
            models.Profile.email.ilike(pattern, escape="\\"),
        ))

    total = query.count()
    profiles = (
        query.order_by(models.Profile.created_at.desc(), models.Profile.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )

    ids = [p.id for p in profiles]
    listing_counts = dict(
        db.query(models.Listing.user_id, func.count(models.Listing.id))
        .filter(models.Listing.user_id.in_(ids))
        .group_by(models.Listing.user_id)
        .all()
    ) if ids else {}
    report_counts = dict(
        db.query(models.Report.user_id, func.count(models.Report.id))
        .filter(models.Report.user_id.in_(ids))
        .group_by(models.Report.user_id)
        .all()
    ) if ids else {}

    users = []
    for profile in profiles:
        user = schemas.AdminUser.model_validate(profile)
        user.listing_count = listing_counts.get(profile.id, 0)
        user.report_count = report_counts.get(profile.id, 0)
        users.append(user)
    return users, total


def ban_user(db: Session, user_id: int, reason: Optional[str] = None):
    profile = get_profile(db, user_id)
    if not profile:
        return None
    profile.is_banned = True
    profile.ban_reason = reason or 'Banned by admin'
    profile.banned_at = utcnow()

    db.query(models.Listing).filter(
        models.Listing.user_id == user_id,
        models.Listing.status == models.ListingStatusEnum.active
    ).update({models.Listing.status: models.ListingStatusEnum.disabled}, synchronize_session=False)

    db.commit()
    db.refresh(profile)
    return profile


def unban_user(db: Session, user_id: int):
    profile = get_profile(db, user_id)
    if not profile:
        return None
    profile.is_banned = False
    profile.ban_reason = None
    profile.banned_at = None
    db.commit()
    db.refresh(profile)
    return profile


# --- Notification Preference CRUD ---

def get_email_notifications_enabled(db: Session, user_id: int) -> bool:
    pref = db.get(models.NotificationPreference, user_id)
    # Default is enabled
    return pref is None or pref.email_notifications_enabled is not False


def set_email_notifications_enabled(db: Session, user_id: int, enabled: bool) -> bool:
    pref = db.get(models.NotificationPreference, user_id)
    if pref is None:
        pref = models.NotificationPreference(user_id=user_id)
        db.add(pref)
    pref.email_notifications_enabled = enabled
    db.commit()
    return enabled
