"""Credential verifiers, session tokens and password hashing."""
import time

import pytest
from httpx import AsyncClient
from jose import jwt

from app.auth import CredentialError, FakeCredentialVerifier, JwtCredentialVerifier
from app.config import settings
from app.dependencies import get_credential_verifier
from app.main import app
from app.models import Role
from app.security import (
    create_session_token,
    generate_opaque_token,
    hash_password,
    verify_password,
)


@pytest.fixture
def verifier() -> JwtCredentialVerifier:
    return JwtCredentialVerifier(settings.SECRET_KEY, settings.JWT_ALGORITHM)


# ---------------------------------------------------------------------------
# JWT verifier
# ---------------------------------------------------------------------------

def test_jwt_round_trip(verifier: JwtCredentialVerifier):
    claims = verifier.verify(create_session_token(17))
    assert claims.user_id == 17
    assert claims.expires_at > time.time()


def test_jwt_expired_token_rejected(verifier: JwtCredentialVerifier):
    token = create_session_token(17, ttl_seconds=-60)
    with pytest.raises(CredentialError):
        verifier.verify(token)


def test_jwt_tampered_token_rejected(verifier: JwtCredentialVerifier):
    token = create_session_token(17)
    header, payload, signature = token.split(".")
    forged = jwt.encode({"sub": "1", "exp": int(time.time()) + 60}, "attacker-secret")
    forged_payload = forged.split(".")[1]
    with pytest.raises(CredentialError):
        verifier.verify(f"{header}.{forged_payload}.{signature}")


def test_jwt_wrong_secret_rejected():
    token = create_session_token(17)
    with pytest.raises(CredentialError):
        JwtCredentialVerifier("some-other-secret").verify(token)


@pytest.mark.parametrize("sub", [None, "", "abc", "-4", "1.5"])
def test_jwt_requires_numeric_subject(verifier: JwtCredentialVerifier, sub):
    claims = {"exp": int(time.time()) + 60}
    if sub is not None:
        claims["sub"] = sub
    token = jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
    with pytest.raises(CredentialError):
        verifier.verify(token)


def test_jwt_garbage_rejected(verifier: JwtCredentialVerifier):
    with pytest.raises(CredentialError):
        verifier.verify("not-a-jwt")


# ---------------------------------------------------------------------------
# Fake verifier
# ---------------------------------------------------------------------------

def test_fake_verifier_accepts_test_tokens():
    assert FakeCredentialVerifier().verify("test:42").user_id == 42


@pytest.mark.parametrize("token", ["42", "prod:42", "test:", "test:abc", "test:-1"])
def test_fake_verifier_rejects_everything_else(token: str):
    with pytest.raises(CredentialError):
        FakeCredentialVerifier().verify(token)


def test_verifier_selected_from_settings(monkeypatch):
    monkeypatch.setattr(settings, "AUTH_VERIFIER", "fake")
    assert isinstance(get_credential_verifier(), FakeCredentialVerifier)
    monkeypatch.setattr(settings, "AUTH_VERIFIER", "jwt")
    assert isinstance(get_credential_verifier(), JwtCredentialVerifier)


@pytest.mark.asyncio
async def test_routes_use_injected_verifier(async_client: AsyncClient, make_user):
    """Swapping the verifier dependency changes which credentials the API accepts."""
    user, jwt_headers = await make_user("root", role=Role.SUPERADMIN)
    app.dependency_overrides[get_credential_verifier] = FakeCredentialVerifier
    try:
        resp = await async_client.post(
            "/api/v1/category",
            json={"category": "Gardening"},
            headers={"authorization": f"test:{user.id}"},
        )
        assert resp.status_code == 201

        rejected = await async_client.post(
            "/api/v1/category", json={"category": "Cooking"}, headers=jwt_headers
        )
        assert rejected.status_code == 401
    finally:
        app.dependency_overrides.pop(get_credential_verifier, None)


# ---------------------------------------------------------------------------
# Passwords and opaque tokens
# ---------------------------------------------------------------------------

def test_password_hash_round_trip():
    hashed = hash_password("passw0rd123")
    assert hashed != "passw0rd123"
    assert verify_password("passw0rd123", hashed)
    assert not verify_password("passw0rd124", hashed)


def test_opaque_tokens_are_unique_and_url_safe():
    tokens = {generate_opaque_token() for _ in range(50)}
    assert len(tokens) == 50
    assert all("/" not in t and "+" not in t for t in tokens)
