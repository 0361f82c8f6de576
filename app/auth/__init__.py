"""Credential verifier adapters."""

from .base import CredentialError, CredentialVerifier
from .fake import FakeCredentialVerifier
from .jwt_verifier import JwtCredentialVerifier

__all__ = [
    "CredentialError",
    "CredentialVerifier",
    "FakeCredentialVerifier",
    "JwtCredentialVerifier",
]
