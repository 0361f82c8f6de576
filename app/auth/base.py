"""Credential verifier interface."""

from abc import ABC, abstractmethod

from app.schemas import TokenClaims


class CredentialError(Exception):
    """Raised when a credential is malformed, tampered with or expired."""


class CredentialVerifier(ABC):
    """Turns an opaque bearer credential into token claims."""

    @abstractmethod
    def verify(self, token: str) -> TokenClaims:
        """Verify *token* and return its claims, or raise ``CredentialError``."""


__all__ = ["CredentialError", "CredentialVerifier"]
