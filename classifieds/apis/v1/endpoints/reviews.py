from typing import Any, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from classifieds import crud, schemas, models
from classifieds.database import get_db
from classifieds.dependencies import get_current_profile

router = APIRouter()


@router.post("", response_model=schemas.ReviewResponse, status_code=status.HTTP_201_CREATED)
def create_review(
    review_in: schemas.ReviewCreate,
    db: Session = Depends(get_db),
    profile: models.Profile = Depends(get_current_profile),
) -> Any:
    return {"review": crud.create_review(db, profile.id, review_in)}


@router.get("/check", response_model=schemas.ReviewCheck)
def check_review(
    reviewee_id: int,
    conversation_id: Optional[str] = None,
    db: Session = Depends(get_db),
    profile: models.Profile = Depends(get_current_profile),
) -> Any:
    # One review per pair, so the conversation doesn't narrow the check
    return {"hasReviewed": crud.has_reviewed(db, profile.id, reviewee_id)}


@router.get("/{user_id}", response_model=schemas.ReviewList)
def read_reviews(user_id: int, db: Session = Depends(get_db)) -> Any:
    return {"reviews": crud.get_reviews_for_user(db, user_id)}
