# classifieds/models.py
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    DateTime,
    Float,
    Boolean,
    ForeignKey,
    Enum,
    Index,
    JSON,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import JSONB
from classifieds.database import Base
import enum


def utcnow() -> datetime:
    # Naive UTC so comparisons behave the same on Postgres and SQLite
    return datetime.now(timezone.utc).replace(tzinfo=None)


JSONList = JSON().with_variant(JSONB(), "postgresql")


class ListingStatusEnum(str, enum.Enum):
    active = "active"
    archived = "archived"
    disabled = "disabled"


class OfferStatusEnum(str, enum.Enum):
    pending = "pending"
    countered = "countered"
    accepted = "accepted"
    declined = "declined"
    expired = "expired"


ACTIVE_OFFER_STATUSES = (OfferStatusEnum.pending, OfferStatusEnum.countered)


class ReportStatusEnum(str, enum.Enum):
    pending = "pending"
    resolved = "resolved"
    dismissed = "dismissed"


class User(Base):
    """Login identity. Marketplace-facing data lives on Profile."""
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    is_active = Column(Boolean, default=True)
    is_email_verified = Column(Boolean, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    profile = relationship("Profile", back_populates="user", uselist=False)


class Profile(Base):
    __tablename__ = "profiles"
    id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    email = Column(String, index=True)
    name = Column(String, nullable=False)
    avatar_url = Column(String, nullable=True)
    city = Column(String, nullable=True)
    zipcode = Column(String, nullable=True)
    is_admin = Column(Boolean, default=False)
    is_banned = Column(Boolean, default=False)
    ban_reason = Column(String, nullable=True)
    banned_at = Column(DateTime(timezone=True), nullable=True)
    rating_count = Column(Integer, default=0)
    rating_average = Column(Float, default=0.0)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    user = relationship("User", back_populates="profile")
    listings = relationship("Listing", back_populates="seller")


class Category(Base):
    __tablename__ = "categories"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    slug = Column(String, unique=True, index=True, nullable=False)
    icon = Column(String, nullable=True)
    sort_order = Column(Integer, default=0)

    subcategories = relationship(
        "Subcategory", back_populates="category", order_by="Subcategory.sort_order"
    )


class Subcategory(Base):
    __tablename__ = "subcategories"
    id = Column(Integer, primary_key=True, index=True)
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="CASCADE"), nullable=False)
    name = Column(String, nullable=False)
    slug = Column(String, unique=True, index=True, nullable=False)
    sort_order = Column(Integer, default=0)

    category = relationship("Category", back_populates="subcategories")


class Listing(Base):
    __tablename__ = "listings"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("profiles.id", ondelete="CASCADE"), index=True, nullable=False)
    category_id = Column(Integer, ForeignKey("categories.id"), index=True, nullable=True)
    subcategory_id = Column(Integer, ForeignKey("subcategories.id"), index=True, nullable=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Float, nullable=True)
    images = Column(JSONList, default=list)
    zip_code = Column(String(10), nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    listing_type = Column(String, index=True, nullable=True)
    status = Column(Enum(ListingStatusEnum), default=ListingStatusEnum.active, index=True)
    views = Column(Integer, default=0)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    archived_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow)

    seller = relationship("Profile", back_populates="listings")
    category = relationship("Category")
    subcategory = relationship("Subcategory")
    real_estate_details = relationship(
        "RealEstateDetails", back_populates="listing", uselist=False,
        cascade="all, delete-orphan"
    )
    offers = relationship("Offer", back_populates="listing", cascade="all, delete-orphan")
    saved_by = relationship("SavedListing", back_populates="listing", cascade="all, delete-orphan")

    __table_args__ = (
        Index('idx_listings_location', 'latitude', 'longitude'),
    )


class RealEstateDetails(Base):
    __tablename__ = "real_estate_details"

    id = Column(Integer, primary_key=True, index=True)
    listing_id = Column(Integer, ForeignKey("listings.id", ondelete="CASCADE"), unique=True, nullable=False)
    property_type = Column(String, nullable=False)
    listing_type = Column(String, default="sale")
    bedrooms = Column(Integer, nullable=True)
    bathrooms = Column(Float, nullable=True)
    square_feet = Column(Integer, nullable=True)
    lot_size = Column(Float, nullable=True)
    year_built = Column(Integer, nullable=True)
    parking_spaces = Column(Integer, nullable=True)
    address = Column(String, nullable=True)
    city = Column(String, nullable=True)
    state = Column(String, nullable=True)
    zip_code = Column(String(10), nullable=True)
    amenities = Column(JSONList, default=list)

    listing = relationship("Listing", back_populates="real_estate_details")


class SavedListing(Base):
    __tablename__ = "saved_listings"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("profiles.id", ondelete="CASCADE"), index=True, nullable=False)
    listing_id = Column(Integer, ForeignKey("listings.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    listing = relationship("Listing", back_populates="saved_by")

    __table_args__ = (
        UniqueConstraint("user_id", "listing_id", name="uq_saved_listings_user_listing"),
    )


class Message(Base):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, index=True)
    conversation_id = Column(String, index=True, nullable=False)
    sender_id = Column(Integer, ForeignKey("profiles.id", ondelete="CASCADE"), index=True, nullable=False)
    recipient_id = Column(Integer, ForeignKey("profiles.id", ondelete="CASCADE"), index=True, nullable=False)
    listing_id = Column(Integer, ForeignKey("listings.id", ondelete="SET NULL"), nullable=True)
    content = Column(Text, nullable=False)
    is_read = Column(Boolean, default=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)

    sender = relationship("Profile", foreign_keys=[sender_id])
    recipient = relationship("Profile", foreign_keys=[recipient_id])


class Offer(Base):
    __tablename__ = "offers"

    id = Column(Integer, primary_key=True, index=True)
    listing_id = Column(Integer, ForeignKey("listings.id", ondelete="CASCADE"), index=True, nullable=False)
    buyer_id = Column(Integer, ForeignKey("profiles.id", ondelete="CASCADE"), index=True, nullable=False)
    seller_id = Column(Integer, ForeignKey("profiles.id", ondelete="CASCADE"), index=True, nullable=False)
    amount = Column(Float, nullable=False)
    counter_amount = Column(Float, nullable=True)
    message = Column(Text, nullable=True)
    status = Column(Enum(OfferStatusEnum), default=OfferStatusEnum.pending, index=True)
    is_read = Column(Boolean, default=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow)

    listing = relationship("Listing", back_populates="offers")
    buyer = relationship("Profile", foreign_keys=[buyer_id])
    seller = relationship("Profile", foreign_keys=[seller_id])

    __table_args__ = (
        # At most one live offer per buyer per listing
        Index(
            'uq_offers_active_listing_buyer',
            'listing_id',
            'buyer_id',
            unique=True,
            postgresql_where=text("status IN ('pending', 'countered')"),
            sqlite_where=text("status IN ('pending', 'countered')"),
        ),
    )


class Review(Base):
    __tablename__ = "reviews"

    id = Column(Integer, primary_key=True, index=True)
    reviewer_id = Column(Integer, ForeignKey("profiles.id", ondelete="CASCADE"), index=True, nullable=False)
    reviewee_id = Column(Integer, ForeignKey("profiles.id", ondelete="CASCADE"), index=True, nullable=False)
    conversation_id = Column(String, nullable=True)
    rating = Column(Integer, nullable=False)
    comment = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    reviewer = relationship("Profile", foreign_keys=[reviewer_id])

    __table_args__ = (
        UniqueConstraint("reviewer_id", "reviewee_id", name="uq_reviews_reviewer_reviewee"),
    )


class Report(Base):
    __tablename__ = "reports"

    id = Column(Integer, primary_key=True, index=True)
    reporter_id = Column(Integer, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    listing_id = Column(Integer, ForeignKey("listings.id", ondelete="SET NULL"), nullable=True)
    user_id = Column(Integer, ForeignKey("profiles.id", ondelete="CASCADE"), index=True, nullable=True)
    reason = Column(Text, nullable=False)
    status = Column(Enum(ReportStatusEnum), default=ReportStatusEnum.pending, index=True)
    admin_notes = Column(Text, nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    resolved_by = Column(Integer, ForeignKey("profiles.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    reporter = relationship("Profile", foreign_keys=[reporter_id])
    reported_user = relationship("Profile", foreign_keys=[user_id])
    listing = relationship("Listing")


class NotificationPreference(Base):
    __tablename__ = "notification_preferences"

    user_id = Column(Integer, ForeignKey("profiles.id", ondelete="CASCADE"), primary_key=True)
    email_notifications_enabled = Column(Boolean, default=True, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class EmailNotificationSent(Base):
    """Ledger of items already covered by a notification email."""
    __tablename__ = "email_notifications_sent"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    message_id = Column(Integer, ForeignKey("messages.id", ondelete="CASCADE"), index=True, nullable=True)
    offer_id = Column(Integer, ForeignKey("offers.id", ondelete="CASCADE"), index=True, nullable=True)
    listing_id = Column(Integer, ForeignKey("listings.id", ondelete="CASCADE"), index=True, nullable=True)
    notified_at = Column(DateTime(timezone=True), default=utcnow)
