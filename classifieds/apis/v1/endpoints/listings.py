import logging
from typing import Optional, Any

from fastapi import APIRouter, Depends, HTTPException, status, Query, BackgroundTasks
from sqlalchemy.orm import Session

from classifieds import crud, schemas, models
from classifieds.database import get_db
from classifieds.dependencies import get_current_profile
from classifieds.helper import locationServices

logger = logging.getLogger(__name__)

router = APIRouter()


def schedule_geocode(background_tasks: BackgroundTasks, listing: models.Listing):
    if locationServices.is_searchable_zipcode(listing.zip_code):
        background_tasks.add_task(crud.geocode_and_save, listing.id, listing.zip_code)


@router.get("", response_model=schemas.ListingPage)
def read_listings(
    db: Session = Depends(get_db),
    category: Optional[str] = None,
    subcategory: Optional[str] = None,
    search: Optional[str] = None,
    listing_status: Optional[models.ListingStatusEnum] = Query(models.ListingStatusEnum.active, alias="status"),
    user_id: Optional[int] = Query(None, alias="userId"),
    sort: str = "random",
    listing_type: Optional[str] = Query(None, alias="type"),
    location: Optional[str] = None,
    zipcode: Optional[str] = None,
    distance: float = Query(50, ge=0),
    limit: int = Query(30, ge=1, le=100),
    offset: int = Query(0, ge=0),
) -> Any:
    return crud.search_listings(
        db,
        category=category,
        subcategory=subcategory,
        search=search,
        status=listing_status,
        user_id=user_id,
        sort=sort,
        listing_type=listing_type,
        location=location,
        zipcode=zipcode,
        distance=distance,
        limit=limit,
        offset=offset,
    )


@router.post("", response_model=schemas.ListingResponse, status_code=status.HTTP_201_CREATED)
def create_listing(
    listing_in: schemas.ListingCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    profile: models.Profile = Depends(get_current_profile),
) -> Any:
    listing = crud.create_listing(db, listing_in, user_id=profile.id)
    logger.info("Listing %s created by user %s", listing.id, profile.id)
    schedule_geocode(background_tasks, listing)
    return {"listing": listing}


@router.get("/{listing_id}", response_model=schemas.ListingResponse)
def read_listing(listing_id: int, db: Session = Depends(get_db)) -> Any:
    listing = crud.get_listing_by_id(db, listing_id)
    if not listing:
        raise HTTPException(status_code=404, detail="Listing not found")
    crud.increment_listing_views(db, listing)
    return {"listing": listing}


@router.put("/{listing_id}", response_model=schemas.ListingResponse)
def update_listing(
    listing_id: int,
    listing_in: schemas.ListingUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    profile: models.Profile = Depends(get_current_profile),
) -> Any:
    listing = crud.update_listing(db, listing_id, listing_in, user_id=profile.id)
    if not listing:
        raise HTTPException(status_code=404, detail="Listing not found or unauthorized")
    if "zip_code" in listing_in.model_fields_set:
        schedule_geocode(background_tasks, listing)
    return {"listing": listing}


@router.post("/{listing_id}/renew", response_model=schemas.ListingResponse)
def renew_listing(
    listing_id: int,
    db: Session = Depends(get_db),
    profile: models.Profile = Depends(get_current_profile),
) -> Any:
    listing = crud.renew_listing(db, listing_id, user_id=profile.id)
    if not listing:
        raise HTTPException(status_code=404, detail="Listing not found or unauthorized")
    return {"listing": listing}


@router.post("/{listing_id}/archive", response_model=schemas.ListingResponse)
def archive_listing(
    listing_id: int,
    db: Session = Depends(get_db),
    profile: models.Profile = Depends(get_current_profile),
) -> Any:
    listing = crud.archive_listing(db, listing_id, user_id=profile.id)
    if not listing:
        raise HTTPException(status_code=404, detail="Listing not found or unauthorized")
    return {"listing": listing}


@router.delete("/{listing_id}", response_model=schemas.SuccessResponse)
def delete_listing(
    listing_id: int,
    db: Session = Depends(get_db),
    profile: models.Profile = Depends(get_current_profile),
) -> Any:
    if not crud.delete_listing(db, listing_id, user_id=profile.id):
        raise HTTPException(status_code=404, detail="Listing not found or unauthorized")
    return {"success": True}
