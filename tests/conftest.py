import os

# Settings are read at import time, so the environment must be ready first
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("RECAPTCHA_SITE_KEY", "test-site-key")
os.environ.setdefault("NOTIFICATION_EMAIL_DELAY_SECONDS", "0")

import itertools
from datetime import timedelta
from unittest.mock import patch, AsyncMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from classifieds.main import app
from classifieds.database import Base, get_db
from classifieds import crud, models
from classifieds.core.security import create_access_token
from classifieds.models import utcnow


# --- Test Database Setup ---
# Use an in-memory SQLite database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,  # Use StaticPool for in-memory SQLite to persist connections
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Two Manhattan zip codes about 2.3 miles apart
ZIP_COORDS = {
    "10001": (40.7506, -73.9972),
    "10002": (40.7178, -73.9870),
}


@pytest.fixture(name="db_session")
def override_get_db():
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(name="client")
def get_client(db_session: Session):
    app.dependency_overrides[get_db] = lambda: db_session
    with TestClient(app) as client:
        yield client
    app.dependency_overrides = {}


@pytest.fixture(autouse=True)
def mock_send_email():
    """Every outgoing email goes through this mock."""
    with patch("classifieds.helper.email.send_email", new_callable=AsyncMock) as mock:
        yield mock


@pytest.fixture
def fake_geocoder():
    with patch(
        "classifieds.helper.locationServices.get_zipcode_coords",
        side_effect=lambda zipcode: ZIP_COORDS.get(zipcode),
    ) as mock, patch("classifieds.crud.SessionLocal", TestingSessionLocal):
        yield mock


# --- Factories ---


@pytest.fixture
def make_user(db_session: Session):
    counter = itertools.count(1)

    def _make(name: str = "Test User", email: str = None, is_admin: bool = False, verified: bool = True):
        n = next(counter)
        user = crud.create_user(
            db_session, email=email or f"user{n}@example.com", password="password123", name=name
        )
        user.is_email_verified = verified
        user.profile.is_admin = is_admin
        db_session.commit()
        return user.profile

    return _make


def auth_headers(profile: models.Profile) -> dict:
    token = create_access_token(data={"sub": profile.email})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def category(db_session: Session):
    electronics = models.Category(name="Electronics", slug="electronics", icon="cpu", sort_order=1)
    electronics.subcategories = [
        models.Subcategory(name="Phones", slug="phones", sort_order=1),
        models.Subcategory(name="Laptops", slug="laptops", sort_order=2),
    ]
    db_session.add(electronics)
    db_session.commit()
    db_session.refresh(electronics)
    return electronics


@pytest.fixture
def make_listing(db_session: Session, category: models.Category):
    counter = itertools.count(1)

    def _make(owner: models.Profile, **overrides):
        n = next(counter)
        now = utcnow()
        values = dict(
            user_id=owner.id,
            title=f"Listing {n}",
            description="Gently used",
            price=100.0,
            category_id=category.id,
            images=[],
            status=models.ListingStatusEnum.active,
            created_at=now,
            expires_at=now + timedelta(days=7),
        )
        values.update(overrides)
        listing = models.Listing(**values)
        db_session.add(listing)
        db_session.commit()
        db_session.refresh(listing)
        return listing

    return _make


@pytest.fixture
def headers_for():
    return auth_headers
