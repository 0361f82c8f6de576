"""Signature and expiry checking verifier for session JWTs."""

from __future__ import annotations

from jose import JWTError, jwt

from app.auth.base import CredentialError, CredentialVerifier
from app.schemas import TokenClaims


class JwtCredentialVerifier(CredentialVerifier):
    """Verifies tokens issued by ``app.security.create_session_token``."""

    def __init__(self, secret_key: str, algorithm: str = "HS256") -> None:
        self._secret_key = secret_key
        self._algorithm = algorithm

    def verify(self, token: str) -> TokenClaims:
        try:
            # python-jose rejects bad signatures and past "exp" claims here.
            payload = jwt.decode(token, self._secret_key, algorithms=[self._algorithm])
        except JWTError as exc:
            raise CredentialError("Invalid or expired session token") from exc

        subject = str(payload.get("sub") or "").strip()
        if not subject.isdecimal():
            raise CredentialError("Session token missing user identity")

        return TokenClaims(user_id=int(subject), expires_at=payload.get("exp"))


__all__ = ["JwtCredentialVerifier"]
