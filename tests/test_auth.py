from unittest.mock import patch, AsyncMock

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from classifieds import models
from classifieds.core.security import create_email_verification_token, create_password_reset_token


@pytest.fixture(autouse=True)
def captcha():
    with patch(
        "classifieds.apis.v1.endpoints.auth.verify_recaptcha", new_callable=AsyncMock, return_value=True
    ) as mock:
        yield mock


def signup(client: TestClient, email="new@example.com", name="Jane Doe", password="password123"):
    return client.post(
        "/api/v1/auth/signup",
        json={"email": email, "password": password, "name": name, "recaptchaToken": "token"},
    )


def test_signup_creates_user_and_profile(client: TestClient, db_session: Session, mock_send_email):
    response = signup(client, email="New@Example.com")
    assert response.status_code == 200
    data = response.json()
    assert data["user"]["email"] == "new@example.com"
    assert data["user"]["is_email_verified"] is False

    profile = db_session.get(models.Profile, data["user"]["id"])
    assert profile.name == "Jane Doe"
    assert profile.email == "new@example.com"

    mock_send_email.assert_awaited_once()
    assert mock_send_email.await_args.kwargs["email_to"] == "new@example.com"


def test_signup_rejects_reserved_names(client: TestClient, db_session: Session):
    response = signup(client, name="SiteAdmin")
    assert response.status_code == 400
    assert response.json() == {"error": "This name is reserved and cannot be used"}
    assert db_session.query(models.User).count() == 0


def test_signup_rejects_failed_captcha(client: TestClient, captcha):
    captcha.return_value = False
    response = signup(client)
    assert response.status_code == 400
    assert response.json() == {"error": "reCAPTCHA verification failed"}


def test_signup_duplicate_email(client: TestClient):
    signup(client)
    response = signup(client)
    assert response.status_code == 400
    assert response.json()["error"] == "Email already registered"


def test_signup_fails_when_verification_email_fails(client: TestClient, mock_send_email):
    mock_send_email.side_effect = HTTPException(status_code=500, detail="Failed to send email.")
    response = signup(client)
    assert response.status_code == 500
    assert response.json() == {"error": "Failed to send email."}


def test_validation_errors_are_400(client: TestClient):
    response = signup(client, password="short")
    assert response.status_code == 400
    assert "error" in response.json()


def test_login_requires_verified_email_for_protected_routes(client: TestClient):
    signup(client)
    response = client.post(
        "/api/v1/auth/login", data={"username": "new@example.com", "password": "password123"}
    )
    assert response.status_code == 200
    token = response.json()["access_token"]
    assert response.json()["token_type"] == "bearer"

    response = client.get("/api/v1/profile", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 400

    response = client.get(
        "/api/v1/auth/verify-email", params={"token": create_email_verification_token("new@example.com")}
    )
    assert response.status_code == 200
    assert response.json()["is_email_verified"] is True

    response = client.get("/api/v1/profile", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 200
    assert response.json()["profile"]["name"] == "Jane Doe"


def test_login_invalid_credentials(client: TestClient):
    response = client.post(
        "/api/v1/auth/login", data={"username": "nobody@example.com", "password": "wrongpassword"}
    )
    assert response.status_code == 401
    assert response.json() == {"error": "Incorrect email or password"}


def test_missing_token_is_unauthorized(client: TestClient):
    response = client.get("/api/v1/profile")
    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}


def test_verification_token_is_not_a_session_token(client: TestClient, make_user):
    profile = make_user()
    token = create_email_verification_token(profile.email)
    response = client.get("/api/v1/profile", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


def test_verify_email_rejects_bad_token(client: TestClient):
    response = client.get("/api/v1/auth/verify-email", params={"token": "not-a-token"})
    assert response.status_code == 400


def test_resend_verification_does_not_reveal_unknown_emails(client: TestClient, mock_send_email):
    with patch(
        "classifieds.apis.v1.endpoints.auth.is_email_resend_throttled",
        new_callable=AsyncMock, return_value=False,
    ):
        response = client.post(
            "/api/v1/auth/resend-verification-email", json={"email": "ghost@example.com"}
        )
    assert response.status_code == 200
    assert "If the email exists" in response.json()["message"]
    mock_send_email.assert_not_awaited()


def test_resend_verification_is_throttled(client: TestClient, make_user, mock_send_email):
    profile = make_user(verified=False)
    with patch(
        "classifieds.apis.v1.endpoints.auth.is_email_resend_throttled",
        new_callable=AsyncMock, return_value=True,
    ):
        response = client.post("/api/v1/auth/resend-verification-email", json={"email": profile.email})
    assert response.status_code == 200
    mock_send_email.assert_not_awaited()


def test_reset_password_with_token(client: TestClient, make_user):
    profile = make_user()
    token = create_password_reset_token(profile.email)
    response = client.post(
        "/api/v1/auth/reset-password", json={"token": token, "new_password": "brandnewpass"}
    )
    assert response.status_code == 200

    response = client.post(
        "/api/v1/auth/login", data={"username": profile.email, "password": "brandnewpass"}
    )
    assert response.status_code == 200


def test_change_password(client: TestClient, make_user, headers_for):
    profile = make_user()
    response = client.post(
        "/api/v1/auth/change-password",
        json={"current_password": "wrongpassword", "new_password": "newpassword456"},
        headers=headers_for(profile),
    )
    assert response.status_code == 400

    response = client.post(
        "/api/v1/auth/change-password",
        json={"current_password": "password123", "new_password": "newpassword456"},
        headers=headers_for(profile),
    )
    assert response.status_code == 200

    response = client.post(
        "/api/v1/auth/login", data={"username": profile.email, "password": "newpassword456"}
    )
    assert response.status_code == 200


def test_recaptcha_site_key(client: TestClient):
    response = client.get("/api/v1/recaptcha-site-key")
    assert response.status_code == 200
    assert response.json() == {"siteKey": "test-site-key"}
