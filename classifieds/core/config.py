# classifieds/core/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import EmailStr, SecretStr, Field
from typing import Optional

class Settings(BaseSettings):
    # Loaded from .env and the environment, case-insensitive; unknown keys are ignored.
    model_config = SettingsConfigDict(env_file='.env', case_sensitive=False, extra='ignore')

    # Project Settings
    PROJECT_NAME: str = Field("Classifieds API", env="PROJECT_NAME")
    API_V1_STR: str = Field("/api/v1", env="API_V1_STR")
    ENV: str = Field("nonprod", env="ENV")
    LOG_LEVEL: str = Field("INFO", env="LOG_LEVEL")
    FRONTEND_SERVER_HOST: str = Field("http://localhost:3000", env="FRONTEND_SERVER_HOST")

    # Database Settings
    DATABASE_URL: str = Field(..., env="DATABASE_URL") # '...' makes this field required

    # JWT Authentication Settings
    SECRET_KEY: SecretStr = Field(..., env="SECRET_KEY") # Required secret
    ALGORITHM: str = Field("HS256", env="ALGORITHM")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(60, env="ACCESS_TOKEN_EXPIRE_MINUTES")
    EMAIL_VERIFICATION_TOKEN_EXPIRE_MINUTES: int = Field(24 * 60, env="EMAIL_VERIFICATION_TOKEN_EXPIRE_MINUTES")
    EMAIL_RESEND_COOLDOWN_SECONDS: int = Field(60, env="EMAIL_RESEND_COOLDOWN_SECONDS")
    PASSWORD_RESET_TOKEN_EXPIRE_MINUTES: int = Field(60, env="PASSWORD_RESET_TOKEN_EXPIRE_MINUTES")

    # Cloudinary Settings (public image bucket)
    CLOUDINARY_CLOUD_NAME: Optional[str] = Field(None, env="CLOUDINARY_CLOUD_NAME")
    CLOUDINARY_API_KEY: Optional[str] = Field(None, env="CLOUDINARY_API_KEY")
    CLOUDINARY_API_SECRET: Optional[SecretStr] = Field(None, env="CLOUDINARY_API_SECRET")
    CLOUDINARY_FOLDER: str = Field("listings", env="CLOUDINARY_FOLDER")
    MAX_UPLOAD_BYTES: int = Field(5 * 1024 * 1024, env="MAX_UPLOAD_BYTES")

    # Zip code geocoding
    ZIPCODE_API_URL: str = Field("https://api.zippopotam.us/us", env="ZIPCODE_API_URL")
    GEOCODE_TIMEOUT_SECONDS: float = Field(5.0, env="GEOCODE_TIMEOUT_SECONDS")

    # Redis URL (with a default for local development)
    REDIS_URL: str = Field("redis://localhost:6379/0", env="REDIS_URL")

    # reCAPTCHA v3
    RECAPTCHA_SITE_KEY: Optional[str] = Field(None, env="RECAPTCHA_SITE_KEY")
    RECAPTCHA_SECRET_KEY: Optional[SecretStr] = Field(None, env="RECAPTCHA_SECRET_KEY")
    RECAPTCHA_MIN_SCORE: float = Field(0.5, env="RECAPTCHA_MIN_SCORE")

    # Email settings (Resend transactional API)
    RESEND_API_KEY: Optional[SecretStr] = Field(None, env="RESEND_API_KEY")
    RESEND_API_URL: str = Field("https://api.resend.com/emails", env="RESEND_API_URL")
    EMAIL_FROM: EmailStr = Field("noreply@example.com", env="EMAIL_FROM")
    EMAIL_FROM_NAME: str = Field("Classifieds", env="EMAIL_FROM_NAME")

    # Marketplace rules
    LISTING_LIFETIME_DAYS: int = Field(7, env="LISTING_LIFETIME_DAYS")
    OFFER_EXPIRY_HOURS: int = Field(48, env="OFFER_EXPIRY_HOURS")

    # Scheduled jobs
    NOTIFICATION_SWEEP_MINUTES: int = Field(30, env="NOTIFICATION_SWEEP_MINUTES")
    NOTIFICATION_EMAIL_DELAY_SECONDS: float = Field(0.7, env="NOTIFICATION_EMAIL_DELAY_SECONDS")

settings = Settings()
