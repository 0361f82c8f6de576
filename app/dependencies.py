from fastapi import Query

from app.auth import CredentialVerifier, FakeCredentialVerifier, JwtCredentialVerifier
from app.config import settings
from app.schemas import MAX_ID


class PaginationParams:
    """
    Reusable FastAPI dependency that parses and validates pagination
    query parameters for list endpoints.

    Attributes
    ----------
    page:
        1-based page number, at most ``settings.MAX_PAGE``.
    page_size:
        Number of items per page, clamped to ``settings.MAX_PAGE_SIZE``
        regardless of the value supplied by the caller.
    category:
        Optional category id filter.
    offset:
        Computed SQL OFFSET derived from *page* and *page_size*.
    """

    def __init__(
        self,
        page: int = Query(1, ge=1, le=settings.MAX_PAGE, description="Page number (1-based)."),
        page_size: int = Query(
            settings.DEFAULT_PAGE_SIZE,
            ge=1,
            le=100,
            description="Number of items returned per page (max 100).",
        ),
        category: int | None = Query(
            None, ge=1, le=MAX_ID, description="Only articles in this category."
        ),
    ) -> None:
        self.page = page
        self.page_size = min(page_size, settings.MAX_PAGE_SIZE)
        self.category = category

    @property
    def offset(self) -> int:
        """SQL OFFSET value computed from the current page and page size."""
        return (self.page - 1) * self.page_size


def get_credential_verifier() -> CredentialVerifier:
    """Resolve the credential verifier from configuration."""
    if settings.AUTH_VERIFIER == "fake":
        return FakeCredentialVerifier()
    return JwtCredentialVerifier(settings.SECRET_KEY, settings.JWT_ALGORITHM)
