"""Tests for OIDC JWT authentication."""

from __future__ import annotations

import time
from unittest.mock import patch

import pytest
import requests
from fastapi import HTTPException
from fastapi.testclient import TestClient

from dari.api.auth import CurrentUser, verify_token
from dari.api.factory import create_app
from helpers import _create_jwks, _create_token, _generate_rsa_keypair

USER_ID = "guest-42"


@pytest.fixture(scope="module")
def rsa_keypair():
    return _generate_rsa_keypair()


@pytest.fixture
def jwks(rsa_keypair):
    _, public_key = rsa_keypair
    return _create_jwks(public_key)


@pytest.fixture
def oidc_env(monkeypatch):
    monkeypatch.setenv("OIDC_ISSUER", "https://auth.example.com")
    monkeypatch.setenv("OIDC_AUDIENCE", "dari-api")
    monkeypatch.setenv("OIDC_JWKS_URL", "https://auth.example.com/.well-known/jwks.json")
    monkeypatch.delenv("OIDC_AUTHORIZED_PARTIES", raising=False)


@pytest.fixture
def mock_jwks_fetch(jwks):
    with patch("dari.api.auth._fetch_jwks", return_value=jwks) as mock:
        yield mock


@pytest.fixture
def mock_db_user():
    def lookup(external_subject: str):
        if external_subject == "user-123":
            return CurrentUser(
                id=USER_ID, external_subject="user-123", email="guest@example.com", name="Guest"
            )
        return None

    with patch("dari.api.auth._get_user_from_db", side_effect=lookup) as mock:
        yield mock


@pytest.fixture
def client(store):
    """Public app over the in-memory store, with one booking owned by USER_ID."""
    store.add_booking(id="b-auth", guest_id=USER_ID)
    return TestClient(create_app(role="public"))


def _get(client: TestClient, token: str | None = None, scheme: str = "Bearer"):
    headers = {"Authorization": f"{scheme} {token}"} if token is not None else {}
    return client.get("/bookings/b-auth", headers=headers)


class TestAuthNoToken:
    def test_missing_auth_header(self, oidc_env, client):
        response = _get(client)
        assert response.status_code == 401
        assert "Missing authorization header" in response.json()["detail"]

    def test_invalid_bearer_format(self, oidc_env, client):
        response = _get(client, "abc", scheme="Basic")
        assert response.status_code == 401
        assert "Invalid authorization header" in response.json()["detail"]

    def test_oidc_not_configured(self, client, monkeypatch):
        monkeypatch.delenv("OIDC_ISSUER", raising=False)
        response = _get(client, "abc")
        assert response.status_code == 401
        assert response.json()["detail"] == "OIDC not configured"


class TestAuthInvalidToken:
    def test_malformed_token(self, oidc_env, mock_jwks_fetch, client):
        response = _get(client, "abc")
        assert response.status_code == 401
        assert "Invalid token" in response.json()["detail"]

    def test_expired_token(self, oidc_env, rsa_keypair, mock_jwks_fetch, client):
        private_key, _ = rsa_keypair
        token = _create_token(private_key, exp=int(time.time()) - 3600)

        response = _get(client, token)

        assert response.status_code == 401
        assert "Token expired" in response.json()["detail"]

    @pytest.mark.parametrize(
        "claims",
        [{"iss": "https://wrong-issuer.com"}, {"aud": "wrong-audience"}, {"kid": "unknown-key"}],
    )
    def test_rejected_claims(self, oidc_env, rsa_keypair, mock_jwks_fetch, client, claims):
        private_key, _ = rsa_keypair
        response = _get(client, _create_token(private_key, **claims))
        assert response.status_code == 401
        assert "Invalid token" in response.json()["detail"]

    def test_signed_by_another_key(self, oidc_env, mock_jwks_fetch, client):
        other_private_key, _ = _generate_rsa_keypair()
        response = _get(client, _create_token(other_private_key))
        assert response.status_code == 401
        # Bad signature triggers one refresh before giving up
        assert mock_jwks_fetch.call_count == 2


class TestAuthUserNotFound:
    def test_user_not_found(self, oidc_env, rsa_keypair, mock_jwks_fetch, mock_db_user, client):
        private_key, _ = rsa_keypair
        response = _get(client, _create_token(private_key, sub="unknown-user"))
        assert response.status_code == 403
        assert "User not found" in response.json()["detail"]


class TestAuthSuccess:
    def test_valid_token_and_user(self, oidc_env, rsa_keypair, mock_jwks_fetch, mock_db_user, client):
        private_key, _ = rsa_keypair

        response = _get(client, _create_token(private_key, sub="user-123"))

        assert response.status_code == 200
        assert response.json()["guest_id"] == USER_ID

    def test_verify_token_returns_subject(self, oidc_env, rsa_keypair, mock_jwks_fetch):
        private_key, _ = rsa_keypair
        assert verify_token(_create_token(private_key, sub="user-123")) == "user-123"


class TestAuthorizedParties:
    def test_azp_valid(self, oidc_env, rsa_keypair, mock_jwks_fetch, monkeypatch):
        monkeypatch.setenv("OIDC_AUTHORIZED_PARTIES", "allowed-app, another-app")
        private_key, _ = rsa_keypair
        assert verify_token(_create_token(private_key, azp="allowed-app")) == "user-123"

    def test_azp_invalid(self, oidc_env, rsa_keypair, mock_jwks_fetch, monkeypatch):
        monkeypatch.setenv("OIDC_AUTHORIZED_PARTIES", "allowed-app")
        private_key, _ = rsa_keypair
        with pytest.raises(HTTPException) as exc_info:
            verify_token(_create_token(private_key, azp="unauthorized-app"))
        assert exc_info.value.status_code == 401

    def test_azp_not_required_when_not_configured(self, oidc_env, rsa_keypair, mock_jwks_fetch):
        private_key, _ = rsa_keypair
        assert verify_token(_create_token(private_key, azp="any-app")) == "user-123"


class TestJWKSCache:
    def test_jwks_cached(self, oidc_env, rsa_keypair, mock_jwks_fetch):
        private_key, _ = rsa_keypair
        token = _create_token(private_key)

        verify_token(token)
        verify_token(token)

        assert mock_jwks_fetch.call_count == 1

    def test_jwks_refresh_on_unknown_kid(self, oidc_env, rsa_keypair, jwks):
        private_key, _ = rsa_keypair
        with patch("dari.api.auth._fetch_jwks", side_effect=[{"keys": []}, jwks]) as fetch:
            assert verify_token(_create_token(private_key)) == "user-123"
        assert fetch.call_count == 2


class TestJWKSFetchError:
    @pytest.mark.parametrize(
        "error", [requests.RequestException("Network error"), requests.Timeout("Timeout")]
    )
    def test_jwks_unreachable(self, oidc_env, rsa_keypair, client, error):
        private_key, _ = rsa_keypair
        with patch("dari.api.auth._fetch_jwks", side_effect=error):
            response = _get(client, _create_token(private_key))
        assert response.status_code == 503
        assert "Auth temporarily unavailable" in response.json()["detail"]
