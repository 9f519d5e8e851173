# classifieds/schemas.py
from pydantic import BaseModel, EmailStr, Field, model_validator
from typing import Optional, List, Dict
from datetime import datetime
from .models import ListingStatusEnum, OfferStatusEnum, ReportStatusEnum

# --- User Schemas ---


class UserBase(BaseModel):
    email: EmailStr


class User(UserBase):
    id: int
    is_active: bool
    is_email_verified: bool
    created_at: datetime

    class Config:
        from_attributes = True


class SignupRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    name: str = Field(..., min_length=1, max_length=80)
    recaptchaToken: Optional[str] = None


class SignupResponse(BaseModel):
    user: User
    message: str

# --- Token Schemas (for JWT) ---


class Token(BaseModel):
    access_token: str
    token_type: str


class TokenData(BaseModel):
    email: Optional[str] = None


class LoginResponse(Token):
    user: User


class ResendEmailRequest(BaseModel):
    email: EmailStr


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str
    new_password: str = Field(..., min_length=8)


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=8)
    new_password: str = Field(..., min_length=8)


class MessageResponse(BaseModel):
    message: str


class SuccessResponse(BaseModel):
    success: bool = True


# --- Profile Schemas ---


class ProfileSummary(BaseModel):
    id: int
    name: str
    avatar_url: Optional[str] = None
    rating_count: Optional[int] = 0
    rating_average: Optional[float] = 0.0
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ProfileWithEmail(ProfileSummary):
    email: Optional[str] = None


class Profile(ProfileWithEmail):
    city: Optional[str] = None
    zipcode: Optional[str] = None
    is_admin: bool = False
    is_banned: bool = False
    ban_reason: Optional[str] = None
    banned_at: Optional[datetime] = None


class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    city: Optional[str] = None
    zipcode: Optional[str] = None
    avatar_url: Optional[str] = None


class ProfileResponse(BaseModel):
    profile: Profile


class PublicProfileResponse(BaseModel):
    profile: ProfileSummary


# --- Category Schemas ---


class CategoryRef(BaseModel):
    id: int
    name: str
    slug: str

    class Config:
        from_attributes = True


class Subcategory(CategoryRef):
    category_id: int
    sort_order: Optional[int] = 0


class Category(CategoryRef):
    icon: Optional[str] = None
    sort_order: Optional[int] = 0
    subcategories: List[Subcategory] = []


class CategoryTreeResponse(BaseModel):
    categories: List[Category]


# --- Listing Schemas ---


class RealEstateFields(BaseModel):
    property_type: Optional[str] = None
    listing_type: Optional[str] = None
    bedrooms: Optional[int] = Field(None, ge=0)
    bathrooms: Optional[float] = Field(None, ge=0)
    square_feet: Optional[int] = Field(None, ge=0)
    lot_size: Optional[float] = Field(None, ge=0)
    year_built: Optional[int] = Field(None, ge=1600, le=2200)
    parking_spaces: Optional[int] = Field(None, ge=0)
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    amenities: Optional[List[str]] = None


class RealEstateDetails(BaseModel):
    id: int
    listing_id: int
    property_type: str
    listing_type: Optional[str] = None
    bedrooms: Optional[int] = None
    bathrooms: Optional[float] = None
    square_feet: Optional[int] = None
    lot_size: Optional[float] = None
    year_built: Optional[int] = None
    parking_spaces: Optional[int] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    amenities: List[str] = []

    class Config:
        from_attributes = True


class ListingCreate(RealEstateFields):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    price: Optional[float] = Field(None, ge=0)
    category_id: int
    subcategory_id: Optional[int] = None
    images: List[str] = Field(default_factory=list, max_length=10)
    zip_code: Optional[str] = Field(None, max_length=10)


class ListingUpdate(RealEstateFields):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    price: Optional[float] = Field(None, ge=0)
    category_id: Optional[int] = None
    subcategory_id: Optional[int] = None
    images: Optional[List[str]] = Field(None, max_length=10)
    zip_code: Optional[str] = Field(None, max_length=10)


class ListingSummary(BaseModel):
    id: int
    title: str
    price: Optional[float] = None
    images: List[str] = []
    status: ListingStatusEnum
    user_id: int

    class Config:
        from_attributes = True


class Listing(BaseModel):
    id: int
    user_id: int
    title: str
    description: Optional[str] = None
    price: Optional[float] = None
    category_id: Optional[int] = None
    subcategory_id: Optional[int] = None
    images: List[str] = []
    zip_code: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    listing_type: Optional[str] = None
    status: ListingStatusEnum
    views: int = 0
    expires_at: Optional[datetime] = None
    archived_at: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    seller: Optional[ProfileSummary] = None
    category: Optional[CategoryRef] = None
    subcategory: Optional[CategoryRef] = None
    real_estate_details: Optional[RealEstateDetails] = None
    distance: Optional[float] = None

    class Config:
        from_attributes = True


class ListingResponse(BaseModel):
    listing: Listing


class ListingPage(BaseModel):
    listings: List[Listing]
    total: int
    hasMore: bool


# --- Saved Listing Schemas ---


class SavedListingCreate(BaseModel):
    listing_id: int


class SavedListing(BaseModel):
    id: int
    user_id: int
    listing_id: int
    created_at: datetime
    listing: Optional[Listing] = None

    class Config:
        from_attributes = True


class SavedListingResponse(BaseModel):
    savedListing: SavedListing


class SavedListingPage(BaseModel):
    savedListings: List[SavedListing]
    total: int
    hasMore: bool


# --- Messaging Schemas ---


class Participant(BaseModel):
    id: int
    name: str
    avatar_url: Optional[str] = None

    class Config:
        from_attributes = True


class MessageCreate(BaseModel):
    conversation_id: str = Field(..., min_length=1, max_length=200)
    recipient_id: int
    listing_id: Optional[int] = None
    content: str = Field(..., max_length=5000)


class Message(BaseModel):
    id: int
    conversation_id: str
    sender_id: int
    recipient_id: int
    listing_id: Optional[int] = None
    content: str
    is_read: bool
    created_at: datetime
    sender: Optional[Participant] = None
    recipient: Optional[Participant] = None

    class Config:
        from_attributes = True


class MessageOut(BaseModel):
    message: Message


class MessageList(BaseModel):
    messages: List[Message]


class Conversation(BaseModel):
    conversation_id: str
    listing_id: Optional[int] = None
    other_user: Optional[Participant] = None
    last_message: Message
    unread_count: int


class ConversationList(BaseModel):
    conversations: List[Conversation]


class UnreadCount(BaseModel):
    unread_count: int


class MessageCount(BaseModel):
    count: int


# --- Offer Schemas ---


class OfferCreate(BaseModel):
    listing_id: int
    amount: float = Field(..., gt=0)
    message: Optional[str] = Field(None, max_length=1000)


class CounterOfferRequest(BaseModel):
    counter_amount: float = Field(..., gt=0)


class Offer(BaseModel):
    id: int
    listing_id: int
    buyer_id: int
    seller_id: int
    amount: float
    counter_amount: Optional[float] = None
    message: Optional[str] = None
    status: OfferStatusEnum
    is_read: bool = False
    expires_at: datetime
    created_at: datetime
    updated_at: Optional[datetime] = None
    listing: Optional[ListingSummary] = None
    buyer: Optional[Participant] = None
    seller: Optional[Participant] = None

    class Config:
        from_attributes = True


class OfferResponse(BaseModel):
    offer: Offer


class OfferList(BaseModel):
    offers: List[Offer]


# --- Review Schemas ---


class ReviewCreate(BaseModel):
    reviewee_id: int
    conversation_id: Optional[str] = None
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=2000)


class Review(BaseModel):
    id: int
    reviewer_id: int
    reviewee_id: int
    conversation_id: Optional[str] = None
    rating: int
    comment: Optional[str] = None
    created_at: datetime
    reviewer: Optional[Participant] = None

    class Config:
        from_attributes = True


class ReviewResponse(BaseModel):
    review: Review


class ReviewList(BaseModel):
    reviews: List[Review]


class ReviewCheck(BaseModel):
    hasReviewed: bool


# --- Report Schemas ---


class ReportCreate(BaseModel):
    listing_id: Optional[int] = None
    user_id: Optional[int] = None
    reason: str = Field(..., min_length=1, max_length=2000)

    @model_validator(mode="after")
    def check_target(self):
        if self.listing_id is None and self.user_id is None:
            raise ValueError("A listing_id or user_id must be reported")
        return self


class ReportUpdate(BaseModel):
    status: ReportStatusEnum
    admin_notes: Optional[str] = None
    restore_listing: bool = False


class Report(BaseModel):
    id: int
    reporter_id: int
    listing_id: Optional[int] = None
    user_id: Optional[int] = None
    reason: str
    status: ReportStatusEnum
    admin_notes: Optional[str] = None
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[int] = None
    created_at: datetime
    reporter: Optional[Participant] = None
    reported_user: Optional[Participant] = None
    listing: Optional[ListingSummary] = None

    class Config:
        from_attributes = True


class ReportResponse(BaseModel):
    report: Report


class ReportPage(BaseModel):
    reports: List[Report]
    total: int


# --- Admin Schemas ---


class CategorySubcategoryCount(BaseModel):
    name: str
    subcategoryCount: int


class Analytics(BaseModel):
    totalUsers: int
    totalListings: int
    activeListings: int
    pendingReports: int
    totalMessages: int
    totalReviews: int
    categoryStats: Dict[str, int]
    categorySubcategoryCounts: List[CategorySubcategoryCount]


class AnalyticsResponse(BaseModel):
    analytics: Analytics


class AdminListing(Listing):
    seller: Optional[ProfileWithEmail] = None


class AdminListingPage(BaseModel):
    listings: List[AdminListing]
    total: int


class AdminUser(Profile):
    listing_count: int = 0
    report_count: int = 0


class AdminUserPage(BaseModel):
    users: List[AdminUser]
    total: int


class ReasonRequest(BaseModel):
    reason: Optional[str] = None


class ListingCategoryUpdate(BaseModel):
    category_id: int
    subcategory_id: Optional[int] = None


class BulkRenewRequest(BaseModel):
    listing_ids: List[int] = Field(..., min_length=1)


class BulkRenewResult(BaseModel):
    success: int
    failed: int


class SweepResult(BaseModel):
    expiredOffers: int
    archivedListings: int
    emailsSent: int
    offerEmailsSent: int
    expiredListingEmailsSent: int
    messagesProcessed: int


# --- Notification Preference Schemas ---


class NotificationPreference(BaseModel):
    email_notifications_enabled: bool


# --- Upload Schemas ---


class UploadResponse(BaseModel):
    url: str


class SiteKeyResponse(BaseModel):
    siteKey: str
