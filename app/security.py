"""
Password hashing and session token issuance.

Passwords are hashed with bcrypt through passlib; session tokens are
HS256-signed JWTs carrying the user id in ``sub`` and an ``exp`` claim.
Verifying a token is the job of ``app.auth.JwtCredentialVerifier``.
"""
import secrets
from datetime import datetime, timedelta, timezone

from jose import jwt
from passlib.context import CryptContext

from app.config import settings

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.BCRYPT_ROUNDS,
)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_session_token(user_id: int, ttl_seconds: int | None = None) -> str:
    """
    Issue a signed session token for *user_id*.

    The token expires after ``settings.TOKEN_TTL_SECONDS`` unless
    *ttl_seconds* overrides it (a negative value yields an already
    expired token, which tests use to exercise the expiry path).
    """
    ttl = settings.TOKEN_TTL_SECONDS if ttl_seconds is None else ttl_seconds
    expire = datetime.now(timezone.utc) + timedelta(seconds=ttl)
    payload = {"sub": str(user_id), "exp": expire}
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def generate_opaque_token() -> str:
    """Random URL-safe token for verification and password-reset links."""
    return secrets.token_urlsafe(32)
