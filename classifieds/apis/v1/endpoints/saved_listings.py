from typing import Any

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from classifieds import crud, schemas, models
from classifieds.database import get_db
from classifieds.dependencies import get_current_profile

router = APIRouter()


@router.get("", response_model=schemas.SavedListingPage)
def read_saved_listings(
    db: Session = Depends(get_db),
    profile: models.Profile = Depends(get_current_profile),
    limit: int = Query(30, ge=1, le=100),
    offset: int = Query(0, ge=0),
) -> Any:
    items, total = crud.get_saved_listings(db, profile.id, limit=limit, offset=offset)
    return {"savedListings": items, "total": total, "hasMore": total > offset + limit}


@router.post("", response_model=schemas.SavedListingResponse)
def save_listing(
    saved_in: schemas.SavedListingCreate,
    db: Session = Depends(get_db),
    profile: models.Profile = Depends(get_current_profile),
) -> Any:
    saved = crud.save_listing(db, profile.id, saved_in.listing_id)
    return {"savedListing": saved}


@router.delete("/{listing_id}", response_model=schemas.SuccessResponse)
def unsave_listing(
    listing_id: int,
    db: Session = Depends(get_db),
    profile: models.Profile = Depends(get_current_profile),
) -> Any:
    crud.unsave_listing(db, profile.id, listing_id)
    return {"success": True}
