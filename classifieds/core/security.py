# classifieds/core/security.py
from datetime import datetime, timedelta, timezone
from typing import Optional
from passlib.context import CryptContext
from jose import JWTError, jwt
from .config import settings
from fastapi import HTTPException, status

# Password Hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)

def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


# JWT Handling
SECRET_KEY = settings.SECRET_KEY.get_secret_value()
ALGORITHM = settings.ALGORITHM
ACCESS_TOKEN_EXPIRE_MINUTES = settings.ACCESS_TOKEN_EXPIRE_MINUTES

# Each token carries a purpose claim so a verification link can't be used as a session.
ACCESS_PURPOSE = "access"
EMAIL_VERIFICATION_PURPOSE = "email_verification"
PASSWORD_RESET_PURPOSE = "password_reset"


def _encode(subject: str, purpose: str, expires_delta: timedelta) -> str:
    expire = datetime.now(timezone.utc) + expires_delta
    to_encode = {"sub": subject, "purpose": purpose, "exp": expire}
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def _decode_subject(token: str, purpose: str) -> Optional[str]:
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None
    if payload.get("purpose") != purpose:
        return None
    return payload.get("sub")


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    if expires_delta is None:
        expires_delta = timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    return _encode(data["sub"], ACCESS_PURPOSE, expires_delta)

def decode_access_token(token: str) -> dict:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise credentials_exception
    if payload.get("purpose") != ACCESS_PURPOSE:
        raise credentials_exception
    return payload

# --- Email Verification Token ---
def create_email_verification_token(email: str) -> str:
    return _encode(email, EMAIL_VERIFICATION_PURPOSE,
                   timedelta(minutes=settings.EMAIL_VERIFICATION_TOKEN_EXPIRE_MINUTES))

def verify_email_verification_token(token: str) -> Optional[str]:
    return _decode_subject(token, EMAIL_VERIFICATION_PURPOSE)

# --- Password Reset Token ---
def create_password_reset_token(email: str) -> str:
    return _encode(email, PASSWORD_RESET_PURPOSE,
                   timedelta(minutes=settings.PASSWORD_RESET_TOKEN_EXPIRE_MINUTES))

def verify_password_reset_token(token: str) -> Optional[str]:
    return _decode_subject(token, PASSWORD_RESET_PURPOSE)
