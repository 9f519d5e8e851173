import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from classifieds import crud, schemas, models
from classifieds.database import get_db
from classifieds.dependencies import get_current_admin
from classifieds.tasks.scheduled_tasks import run_expiry_sweep, run_notification_sweep

logger = logging.getLogger(__name__)

# Every route here is admin only
router = APIRouter(dependencies=[Depends(get_current_admin)])


@router.get("/analytics", response_model=schemas.AnalyticsResponse)
def read_analytics(db: Session = Depends(get_db)) -> Any:
    return {"analytics": crud.get_analytics(db)}


# --- Listings ---


@router.get("/listings", response_model=schemas.AdminListingPage)
def read_listings(
    db: Session = Depends(get_db),
    status_filter: str = Query("all", alias="filter"),
    sort: str = "newest",
    search: str = "",
    limit: int = Query(1000, ge=1, le=1000),
    offset: int = Query(0, ge=0),
) -> Any:
    listings, total = crud.admin_list_listings(
        db, status_filter=status_filter, sort=sort, search=search.strip(), limit=limit, offset=offset
    )
    return {"listings": listings, "total": total}


@router.delete("/listings/{listing_id}", response_model=schemas.SuccessResponse)
def delete_listing(
    listing_id: int,
    db: Session = Depends(get_db),
    admin: models.Profile = Depends(get_current_admin),
) -> Any:
    if not crud.delete_listing(db, listing_id):
        raise HTTPException(status_code=404, detail="Listing not found")
    logger.info("Admin %s deleted listing %s", admin.id, listing_id)
    return {"success": True}


@router.post("/listings/bulk-renew", response_model=schemas.BulkRenewResult)
def bulk_renew_listings(renew_in: schemas.BulkRenewRequest, db: Session = Depends(get_db)) -> Any:
    success = failed = 0
    for listing_id in renew_in.listing_ids:
        if crud.renew_listing(db, listing_id):
            success += 1
        else:
            failed += 1
    return {"success": success, "failed": failed}


@router.post("/listings/{listing_id}/disable", response_model=schemas.ListingResponse)
def disable_listing(
    listing_id: int,
    reason_in: Optional[schemas.ReasonRequest] = None,
    db: Session = Depends(get_db),
    admin: models.Profile = Depends(get_current_admin),
) -> Any:
    listing = crud.set_listing_status(db, listing_id, models.ListingStatusEnum.disabled)
    if not listing:
        raise HTTPException(status_code=404, detail="Listing not found")
    logger.info(
        "Admin %s disabled listing %s: %s", admin.id, listing_id, reason_in.reason if reason_in else None
    )
    return {"listing": listing}


@router.post("/listings/{listing_id}/enable", response_model=schemas.ListingResponse)
def enable_listing(listing_id: int, db: Session = Depends(get_db)) -> Any:
    listing = crud.set_listing_status(db, listing_id, models.ListingStatusEnum.active)
    if not listing:
        raise HTTPException(status_code=404, detail="Listing not found")
    return {"listing": listing}


@router.put("/listings/{listing_id}/category", response_model=schemas.ListingResponse)
def update_listing_category(
    listing_id: int,
    category_in: schemas.ListingCategoryUpdate,
    db: Session = Depends(get_db),
) -> Any:
    listing = crud.update_listing_category(db, listing_id, category_in)
    if not listing:
        raise HTTPException(status_code=404, detail="Listing not found")
    return {"listing": listing}


@router.post("/listings/{listing_id}/renew", response_model=schemas.ListingResponse)
def renew_listing(listing_id: int, db: Session = Depends(get_db)) -> Any:
    listing = crud.renew_listing(db, listing_id)
    if not listing:
        raise HTTPException(status_code=404, detail="Listing not found")
    return {"listing": listing}


# --- Users ---


@router.get("/users", response_model=schemas.AdminUserPage)
def read_users(
    db: Session = Depends(get_db),
    status_filter: str = Query("all", alias="filter"),
    search: str = "",
    limit: int = Query(1000, ge=1, le=1000),
    offset: int = Query(0, ge=0),
) -> Any:
    users, total = crud.admin_list_users(
        db, status_filter=status_filter, search=search.strip(), limit=limit, offset=offset
    )
    return {"users": users, "total": total}


@router.post("/users/{user_id}/ban", response_model=schemas.ProfileResponse)
def ban_user(
    user_id: int,
    reason_in: Optional[schemas.ReasonRequest] = None,
    db: Session = Depends(get_db),
    admin: models.Profile = Depends(get_current_admin),
) -> Any:
    if user_id == admin.id:
        raise HTTPException(status_code=400, detail="You cannot ban yourself")
    profile = crud.ban_user(db, user_id, reason_in.reason if reason_in else None)
    if not profile:
        raise HTTPException(status_code=404, detail="User not found")
    logger.info("Admin %s banned user %s", admin.id, user_id)
    return {"profile": profile}


@router.post("/users/{user_id}/unban", response_model=schemas.ProfileResponse)
def unban_user(user_id: int, db: Session = Depends(get_db)) -> Any:
    profile = crud.unban_user(db, user_id)
    if not profile:
        raise HTTPException(status_code=404, detail="User not found")
    return {"profile": profile}


# --- Jobs ---


@router.post("/jobs/run-sweeps", response_model=schemas.SweepResult)
async def run_sweeps(db: Session = Depends(get_db)) -> Any:
    expiry = await run_expiry_sweep(db)
    notifications = await run_notification_sweep(db)
    return {**expiry, **notifications}
