# classifieds/apis/v1/api.py
from fastapi import APIRouter
from .endpoints import (
    auth, profiles, listings, saved_listings, categories, messages, offers,
    reviews, reports, admin, notifications, uploads,
)
from classifieds.core.config import settings

api_router = APIRouter()

api_router.include_router(auth.router, prefix=settings.API_V1_STR, tags=["auth"])
api_router.include_router(profiles.router, prefix=settings.API_V1_STR + "/profile", tags=["profiles"])
api_router.include_router(listings.router, prefix=settings.API_V1_STR + "/listings", tags=["listings"])
api_router.include_router(saved_listings.router, prefix=settings.API_V1_STR + "/saved-listings", tags=["saved listings"])
api_router.include_router(categories.router, prefix=settings.API_V1_STR + "/categories", tags=["categories"])
api_router.include_router(messages.router, prefix=settings.API_V1_STR, tags=["messaging"])
api_router.include_router(offers.router, prefix=settings.API_V1_STR + "/offers", tags=["offers"])
api_router.include_router(reviews.router, prefix=settings.API_V1_STR + "/reviews", tags=["reviews"])
api_router.include_router(reports.router, prefix=settings.API_V1_STR + "/reports", tags=["reports"])
api_router.include_router(admin.router, prefix=settings.API_V1_STR + "/admin", tags=["admin"])
api_router.include_router(
    notifications.router, prefix=settings.API_V1_STR + "/notification-preferences", tags=["notifications"]
)
api_router.include_router(uploads.router, prefix=settings.API_V1_STR + "/upload-image", tags=["uploads"])
