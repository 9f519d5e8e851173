from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from classifieds import models
from classifieds.core.security import get_password_hash


def test_profile_is_created_on_first_read(client: TestClient, db_session: Session, headers_for):
    user = models.User(
        email="orphan@example.com", hashed_password=get_password_hash("password123"), is_email_verified=True
    )
    db_session.add(user)
    db_session.commit()
    profile_stub = models.Profile(id=user.id, email=user.email, name="unused")

    response = client.get("/api/v1/profile", headers=headers_for(profile_stub))
    assert response.status_code == 200
    data = response.json()["profile"]
    assert data["id"] == user.id
    assert data["name"] == "orphan"
    assert db_session.get(models.Profile, user.id) is not None


def test_update_profile(client: TestClient, make_user, headers_for):
    profile = make_user()
    response = client.put(
        "/api/v1/profile",
        json={"name": "  Sam Seller ", "city": "Brooklyn", "zipcode": "11201"},
        headers=headers_for(profile),
    )
    assert response.status_code == 200
    data = response.json()["profile"]
    assert data["name"] == "Sam Seller"
    assert data["city"] == "Brooklyn"
    assert data["zipcode"] == "11201"


def test_update_profile_requires_name(client: TestClient, make_user, headers_for):
    profile = make_user()
    response = client.put("/api/v1/profile", json={"name": "   "}, headers=headers_for(profile))
    assert response.status_code == 400
    assert response.json() == {"error": "Name is required"}


def test_reserved_names_are_blocked_for_non_admins(client: TestClient, make_user, headers_for):
    member = make_user()
    admin = make_user(is_admin=True)

    response = client.put("/api/v1/profile", json={"name": "Support Team"}, headers=headers_for(member))
    assert response.status_code == 400

    response = client.put("/api/v1/profile", json={"name": "Support Team"}, headers=headers_for(admin))
    assert response.status_code == 200


def test_public_profile_hides_email(client: TestClient, make_user):
    profile = make_user(name="Public Person")
    response = client.get(f"/api/v1/profile/{profile.id}")
    assert response.status_code == 200
    data = response.json()["profile"]
    assert data["name"] == "Public Person"
    assert "email" not in data


def test_public_profile_not_found(client: TestClient, db_session: Session):
    response = client.get("/api/v1/profile/9999")
    assert response.status_code == 404


def test_banned_user_is_forbidden(client: TestClient, db_session: Session, make_user, headers_for):
    profile = make_user()
    profile.is_banned = True
    db_session.commit()

    response = client.get("/api/v1/profile", headers=headers_for(profile))
    assert response.status_code == 403
    assert response.json() == {"error": "Your account has been banned"}


def test_notification_preferences(client: TestClient, make_user, headers_for):
    profile = make_user()
    url = "/api/v1/notification-preferences"

    assert client.get(url, headers=headers_for(profile)).json() == {"email_notifications_enabled": True}
    response = client.put(url, json={"email_notifications_enabled": False}, headers=headers_for(profile))
    assert response.json() == {"email_notifications_enabled": False}
    assert client.get(url, headers=headers_for(profile)).json() == {"email_notifications_enabled": False}


def test_health(client: TestClient):
    assert client.get("/api/v1/health").status_code == 200
