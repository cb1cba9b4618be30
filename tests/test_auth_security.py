"""Tests for access token verification (app/auth/security.py)"""
import time
from unittest.mock import patch

from jose import jwt

from app.auth.security import verify_token

SECRET = "test-jwt-secret"


def _token(secret=SECRET, **claims):
    payload = {
        "sub": "7d2f5a8e-1c3b-4f6a-9e0d-2b4c6d8e0f11",
        "email": "student@test.com",
        "aud": "authenticated",
        "role": "authenticated",
        "exp": int(time.time()) + 3600,
    }
    payload.update(claims)
    return jwt.encode(payload, secret, algorithm="HS256")


def _settings(mock_settings, secret=SECRET):
    mock_settings.supabase_jwt_secret = secret
    mock_settings.supabase_jwt_algorithm = "HS256"
    mock_settings.supabase_jwt_audience = "authenticated"


class TestVerifyToken:
    def test_valid_token_returns_claims(self):
        with patch("app.auth.security.settings") as mock_settings:
            _settings(mock_settings)
            payload = verify_token(_token())
        assert payload["email"] == "student@test.com"

    def test_wrong_secret_rejected(self):
        with patch("app.auth.security.settings") as mock_settings:
            _settings(mock_settings)
            assert verify_token(_token(secret="other")) is None

    def test_expired_token_rejected(self):
        with patch("app.auth.security.settings") as mock_settings:
            _settings(mock_settings)
            assert verify_token(_token(exp=int(time.time()) - 10)) is None

    def test_wrong_audience_rejected(self):
        with patch("app.auth.security.settings") as mock_settings:
            _settings(mock_settings)
            assert verify_token(_token(aud="service")) is None

    def test_anon_role_rejected(self):
        with patch("app.auth.security.settings") as mock_settings:
            _settings(mock_settings)
            assert verify_token(_token(role="anon")) is None

    def test_unconfigured_secret_rejects_everything(self):
        with patch("app.auth.security.settings") as mock_settings:
            _settings(mock_settings, secret="")
            assert verify_token(_token()) is None


class TestCurrentUserDependency:
    def test_missing_token_is_rejected(self, unauthenticated_client):
        client, _ = unauthenticated_client
        response = client.get("/enrollments/me")
        assert response.status_code in (401, 403)

    def test_bearer_token_resolves_user(self, unauthenticated_client):
        client, mock_db = unauthenticated_client
        with patch("app.auth.security.settings") as mock_settings:
            _settings(mock_settings)
            response = client.get(
                "/enrollments/me", headers={"Authorization": f"Bearer {_token()}"},
            )
        assert response.status_code == 200
        assert response.json() == []

    def test_invalid_token_is_401(self, unauthenticated_client):
        client, _ = unauthenticated_client
        with patch("app.auth.security.settings") as mock_settings:
            _settings(mock_settings)
            response = client.get("/enrollments/me", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401
