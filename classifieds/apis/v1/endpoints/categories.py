from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from classifieds import crud, schemas
from classifieds.database import get_db

router = APIRouter()


@router.get("", response_model=schemas.CategoryTreeResponse)
def read_categories(db: Session = Depends(get_db)) -> Any:
    return {"categories": crud.get_category_tree(db)}
