from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from classifieds import crud, schemas, models
from classifieds.database import get_db
from classifieds.dependencies import get_current_profile

router = APIRouter()


@router.get("", response_model=schemas.NotificationPreference)
def read_preferences(
    db: Session = Depends(get_db),
    profile: models.Profile = Depends(get_current_profile),
) -> Any:
    return {"email_notifications_enabled": crud.get_email_notifications_enabled(db, profile.id)}


@router.put("", response_model=schemas.NotificationPreference)
def update_preferences(
    pref_in: schemas.NotificationPreference,
    db: Session = Depends(get_db),
    profile: models.Profile = Depends(get_current_profile),
) -> Any:
    enabled = crud.set_email_notifications_enabled(db, profile.id, pref_in.email_notifications_enabled)
    return {"email_notifications_enabled": enabled}
