from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from classifieds import crud, models
from classifieds.database import get_db
from classifieds.core.config import settings
from classifieds.core.security import decode_access_token

# auto_error=False so a missing header produces our own 401 body
oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_V1_STR}/auth/login", auto_error=False)


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    db: Session = Depends(get_db),
    token: Optional[str] = Depends(oauth2_scheme)
) -> models.User:
    if not token:
        raise _unauthorized()
    payload = decode_access_token(token)
    email = payload.get("sub")
    if email is None:
        raise _unauthorized()
    user = crud.get_user_by_email(db, email=email)
    if user is None:
        raise _unauthorized()
    if not user.is_active:
        raise HTTPException(status_code=400, detail="Inactive user")
    if not user.is_email_verified:
        raise HTTPException(status_code=400, detail="Email not verified. Please check your inbox for the verification link")
    return user


async def get_current_profile(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user)
) -> models.Profile:
    profile = crud.get_or_create_profile(db, current_user)
    if profile.is_banned:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Your account has been banned")
    return profile


async def get_current_admin(
    profile: models.Profile = Depends(get_current_profile)
) -> models.Profile:
    if not profile.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden - Admin access required")
    return profile
