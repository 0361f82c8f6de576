"""Deterministic verifier for local development and tests."""

from app.auth.base import CredentialError, CredentialVerifier
from app.schemas import TokenClaims


class FakeCredentialVerifier(CredentialVerifier):
    """Accepts tokens of the form ``test:<user_id>`` only."""

    def verify(self, token: str) -> TokenClaims:
        prefix, _, user_id = token.partition(":")
        if prefix != "test" or not user_id.strip().isdecimal():
            raise CredentialError("Invalid test token")
        return TokenClaims(user_id=int(user_id))


__all__ = ["FakeCredentialVerifier"]
