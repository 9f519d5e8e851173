from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from classifieds import crud, schemas, models
from classifieds.database import get_db
from classifieds.dependencies import get_current_profile

router = APIRouter()


@router.get("", response_model=schemas.ProfileResponse)
def read_own_profile(profile: models.Profile = Depends(get_current_profile)) -> Any:
    return {"profile": profile}


@router.put("", response_model=schemas.ProfileResponse)
def update_own_profile(
    profile_in: schemas.ProfileUpdate,
    db: Session = Depends(get_db),
    profile: models.Profile = Depends(get_current_profile),
) -> Any:
    if not profile_in.name or not profile_in.name.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Name is required")
    if not profile.is_admin and crud.contains_reserved_name(profile_in.name):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="This name is reserved and cannot be used",
        )
    return {"profile": crud.update_profile(db, profile, profile_in)}


@router.get("/{profile_id}", response_model=schemas.PublicProfileResponse)
def read_profile(profile_id: int, db: Session = Depends(get_db)) -> Any:
    profile = crud.get_profile(db, profile_id)
    if not profile:
        raise HTTPException(status_code=404, detail="Profile not found")
    return {"profile": profile}
