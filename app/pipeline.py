"""
Authorization-and-validation pipeline for API routes.

Every route declares a ``RoutePolicy``.  ``guard(policy)`` turns it into a
FastAPI dependency that builds a ``RequestContext`` and runs the fixed,
ordered list of stages over it:

    authenticate -> require_verified -> authorize -> validate

Each stage is an async function ``(policy, context) -> context``.  A stage
that rejects the request raises an ``ApiError``; nothing after it runs and
the route handler is never called.  Stages the policy does not ask for
pass the context through untouched.

The context is immutable; stages return a copy with ``identity`` or
``resource`` filled in.  The handler receives the final context and
performs its single persistence operation with ``context.payload`` (the
validated body model) and ``context.resource`` (already loaded and
authorized).
"""
from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Mapping

from fastapi import Depends, Request
from pydantic import BaseModel, ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import CredentialError, CredentialVerifier
from app.database import get_db
from app.dependencies import get_credential_verifier
from app.errors import (
    ApiError,
    Forbidden,
    InsufficientRole,
    InvalidIdentifier,
    NotFound,
    NotVerified,
    SessionExpired,
    Unauthenticated,
    ValidationFailed,
)
from app.models import Role, User
from app.schemas import MAX_ID, Identity, error_messages

logger = logging.getLogger(__name__)

# Checked in order; the first non-empty header wins.
CREDENTIAL_HEADERS = ("authorization", "x-access-token")

_NUMERIC_ID_RE = re.compile(r"[0-9]+")


# ---------------------------------------------------------------------------
# Policy and context
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ResourceLookup:
    """
    How the authorize stage loads the row a route operates on.

    The path parameter *param* is matched against *column* of *model*.
    When *owner_field* is set the loaded row must belong to the caller.
    """

    model: type
    label: str
    param: str = "id"
    column: str = "id"
    numeric: bool = True
    owner_field: str | None = None

    def parse_key(self, raw: str | None) -> Any:
        if not self.numeric:
            return raw
        if raw is None or not _NUMERIC_ID_RE.fullmatch(raw) or not 0 < int(raw) <= MAX_ID:
            raise InvalidIdentifier(f"Invalid {self.label} id.")
        return int(raw)

    @property
    def not_found_message(self) -> str:
        if self.numeric:
            return (
                f"No {self.label} matches the specified id. "
                f"Please confirm the {self.label} Id and try again."
            )
        return f"No {self.label} matches the specified {self.param}."


@dataclass(frozen=True)
class RoutePolicy:
    """
    Declarative description of the gates a route runs.

    *required_roles* is a hard requirement on routes without an ownership
    check.  On routes with one it is an override: holders of those roles
    may act on rows they do not own.

    *schema* is the pydantic model the JSON body must satisfy;
    *references* returns extra field errors that need the database (they
    join the same 422 response); *conflicts* runs only once the body is
    valid and raises on a clash with existing data.
    """

    requires_auth: bool = True
    requires_verified: bool = True
    required_roles: frozenset[Role] | None = None
    resource: ResourceLookup | None = None
    schema: type[BaseModel] | None = None
    references: Callable[["RequestContext"], Awaitable[list[str]]] | None = None
    conflicts: Callable[["RequestContext"], Awaitable[None]] | None = None

    def __post_init__(self) -> None:
        needs_identity = (
            self.requires_verified
            or self.required_roles
            or (self.resource is not None and self.resource.owner_field is not None)
        )
        if needs_identity and not self.requires_auth:
            raise ValueError("verification, role and ownership checks need requires_auth=True")


PUBLIC = RoutePolicy(requires_auth=False, requires_verified=False)


@dataclass(frozen=True)
class RequestContext:
    db: AsyncSession
    verifier: CredentialVerifier
    method: str
    path: str
    headers: Mapping[str, str]
    path_params: Mapping[str, str]
    body: Any
    identity: Identity | None = None
    resource: Any = None
    payload: Any = None


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------

def read_credential(headers: Mapping[str, str]) -> str | None:
    for name in CREDENTIAL_HEADERS:
        value = (headers.get(name) or "").strip()
        scheme, _, rest = value.partition(" ")
        if scheme.lower() == "bearer":
            # A bare "Bearer" carries no token.
            value = rest.strip()
        if value:
            return value
    return None


async def authenticate(policy: RoutePolicy, ctx: RequestContext) -> RequestContext:
    if not policy.requires_auth:
        return ctx

    token = read_credential(ctx.headers)
    if token is None:
        raise Unauthenticated()

    try:
        claims = ctx.verifier.verify(token)
    except CredentialError as exc:
        raise SessionExpired() from exc

    user = await ctx.db.get(User, claims.user_id)
    if user is None:
        # Signed for an account that no longer exists.
        raise SessionExpired()
    return replace(ctx, identity=Identity.from_user(user))


async def require_verified(policy: RoutePolicy, ctx: RequestContext) -> RequestContext:
    if policy.requires_verified and not ctx.identity.verified:
        raise NotVerified()
    return ctx


async def authorize(policy: RoutePolicy, ctx: RequestContext) -> RequestContext:
    lookup = policy.resource
    owned = lookup is not None and lookup.owner_field is not None

    if policy.required_roles and not owned and ctx.identity.role not in policy.required_roles:
        raise InsufficientRole()
    if lookup is None:
        return ctx

    key = lookup.parse_key(ctx.path_params.get(lookup.param))
    column = getattr(lookup.model, lookup.column)
    result = await ctx.db.execute(select(lookup.model).where(column == key))
    row = result.scalar_one_or_none()
    if row is None:
        raise NotFound(lookup.not_found_message)

    if owned and getattr(row, lookup.owner_field) != ctx.identity.id:
        if not policy.required_roles or ctx.identity.role not in policy.required_roles:
            raise Forbidden(f"Unauthorized! You can only modify {lookup.label}s you created.")
    return replace(ctx, resource=row)


async def validate(policy: RoutePolicy, ctx: RequestContext) -> RequestContext:
    if policy.schema is None:
        return ctx

    payload = None
    errors: list[str] = []
    try:
        payload = policy.schema.model_validate(ctx.body)
    except ValidationError as exc:
        if any(error["type"] == "model_type" for error in exc.errors()):
            raise ValidationFailed("Request body must be a JSON object.") from exc
        errors = error_messages(exc)

    if policy.references is not None:
        errors = errors + await policy.references(ctx)
    if errors:
        raise ValidationFailed(*errors)

    ctx = replace(ctx, payload=payload)
    if policy.conflicts is not None:
        await policy.conflicts(ctx)
    return ctx


STAGES: tuple[Callable[[RoutePolicy, RequestContext], Awaitable[RequestContext]], ...] = (
    authenticate,
    require_verified,
    authorize,
    validate,
)


def _safe_identity(identity: Identity | None) -> str:
    if identity is None:
        return "anonymous"
    digest = hashlib.sha256(str(identity.id).encode("utf-8")).hexdigest()[:12]
    return f"uid-{digest}"


async def run_pipeline(policy: RoutePolicy, ctx: RequestContext) -> RequestContext:
    """Run every stage in order and return the enriched context."""
    for stage in STAGES:
        try:
            ctx = await stage(policy, ctx)
        except ApiError as exc:
            logger.warning(
                "pipeline.rejected method=%s path=%s stage=%s status=%s principal=%s",
                ctx.method,
                ctx.path,
                stage.__name__,
                exc.status_code,
                _safe_identity(ctx.identity),
            )
            raise
    logger.debug(
        "pipeline.accepted method=%s path=%s principal=%s",
        ctx.method,
        ctx.path,
        _safe_identity(ctx.identity),
    )
    return ctx


# ---------------------------------------------------------------------------
# FastAPI integration
# ---------------------------------------------------------------------------

async def read_json_body(request: Request) -> Any:
    """Decode the request body; an empty body is ``{}``, undecodable JSON is None."""
    if not (await request.body()).strip():
        return {}
    try:
        return await request.json()
    except ValueError:
        return None


def guard(policy: RoutePolicy):
    """Build a route dependency that runs *policy* and yields the final context."""

    async def dependency(
        request: Request,
        db: AsyncSession = Depends(get_db),
        verifier: CredentialVerifier = Depends(get_credential_verifier),
    ) -> RequestContext:
        ctx = RequestContext(
            db=db,
            verifier=verifier,
            method=request.method,
            path=request.url.path,
            headers=request.headers,
            path_params=request.path_params,
            body=await read_json_body(request),
        )
        return await run_pipeline(policy, ctx)

    return dependency
