# classifieds/apis/v1/endpoints/auth.py
import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from classifieds import crud, schemas, models
from classifieds.database import get_db
from classifieds.core.config import settings
from classifieds.core.recaptcha import verify_recaptcha
from classifieds.core.redis import is_email_resend_throttled
from classifieds.core.security import (
    create_access_token, verify_password, get_password_hash,
    verify_email_verification_token, verify_password_reset_token,
)
from classifieds.helper.email import send_verification_email, send_password_reset_email
from classifieds.dependencies import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/auth/signup", response_model=schemas.SignupResponse)
async def signup(user_in: schemas.SignupRequest, db: Session = Depends(get_db)) -> Any:
    """
    Create a new account and send the email verification link.
    """
    if not await verify_recaptcha(user_in.recaptchaToken, expected_action="signup"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="reCAPTCHA verification failed")

    if crud.contains_reserved_name(user_in.name):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="This name is reserved and cannot be used",
        )

    if crud.get_user_by_email(db, email=user_in.email):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered",
        )

    user = crud.create_user(db, email=user_in.email, password=user_in.password, name=user_in.name)
    logger.info("Created user %s", user.id)

    # A failed send fails the request; the user can ask for a new link
    await send_verification_email(user.email)

    return {
        "user": user,
        "message": "Account created. Please check your email to verify your account.",
    }


@router.post("/auth/login", response_model=schemas.LoginResponse)
def login_for_access_token(
    db: Session = Depends(get_db), form_data: OAuth2PasswordRequestForm = Depends()
) -> Any:
    """
    OAuth2 compatible token login, get an access token for future requests.
    """
    user = crud.get_user_by_email(db, email=form_data.username)
    if not user or not verify_password(form_data.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    elif not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Inactive user"
        )

    access_token = create_access_token(data={"sub": user.email})
    return {"access_token": access_token, "token_type": "bearer", "user": user}


@router.get("/auth/verify-email", response_model=schemas.User)
def verify_email(token: str, db: Session = Depends(get_db)) -> Any:
    """
    Verify user's email address from the token sent to their email.
    """
    email = verify_email_verification_token(token)
    if not email:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid or expired email verification token.",
        )

    user = crud.get_user_by_email(db, email=email)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found.")

    if not user.is_email_verified:
        user.is_email_verified = True
        db.commit()
        db.refresh(user)

    return user


@router.post("/auth/resend-verification-email", response_model=schemas.MessageResponse)
async def resend_verification_email(
    request: schemas.ResendEmailRequest,
    db: Session = Depends(get_db)
) -> dict:
    generic = {"message": "If the email exists and is not verified, a new link will be sent shortly."}

    if await is_email_resend_throttled(request.email):
        return generic

    user = crud.get_user_by_email(db, email=request.email)
    if not user:
        return generic

    if user.is_email_verified:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email is already verified.",
        )

    await send_verification_email(user.email)
    return {"message": "Verification email sent successfully."}


@router.post("/auth/forgot-password", response_model=schemas.MessageResponse)
async def forgot_password(
    request: schemas.ForgotPasswordRequest,
    db: Session = Depends(get_db)
) -> dict:
    # Same answer whether or not the account exists
    user = crud.get_user_by_email(db, email=request.email)
    if user:
        await send_password_reset_email(user.email)

    return {"message": "If a user with that email exists, a password reset link will be sent."}


@router.post("/auth/reset-password", response_model=schemas.MessageResponse)
async def reset_password(
    request: schemas.ResetPasswordRequest,
    db: Session = Depends(get_db)
) -> dict:
    email = verify_password_reset_token(request.token)
    if not email:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid or expired password reset token.",
        )

    user = crud.get_user_by_email(db, email=email)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found.")

    user.hashed_password = get_password_hash(request.new_password)
    db.commit()

    return {"message": "Password has been reset successfully."}


@router.post("/auth/change-password", response_model=schemas.MessageResponse)
async def change_password(
    request: schemas.ChangePasswordRequest,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> dict:
    if not verify_password(request.current_password, current_user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Incorrect current password.",
        )

    current_user.hashed_password = get_password_hash(request.new_password)
    db.commit()

    return {"message": "Password changed successfully."}


@router.get("/recaptcha-site-key", response_model=schemas.SiteKeyResponse)
def get_recaptcha_site_key() -> Any:
    if not settings.RECAPTCHA_SITE_KEY:
        logger.error("RECAPTCHA_SITE_KEY is not configured")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="reCAPTCHA not configured")
    return {"siteKey": settings.RECAPTCHA_SITE_KEY}
