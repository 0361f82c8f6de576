"""
Unit tests for the request pipeline stages.

The stages are called directly with a hand-built ``RequestContext`` and
the deterministic ``FakeCredentialVerifier`` (tokens ``test:<id>``), so
no HTTP round trip or JWT signing is involved.
"""
import logging
from typing import Annotated

import pytest
from pydantic import BeforeValidator
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import FakeCredentialVerifier
from app.errors import (
    DuplicateResource,
    Forbidden,
    InsufficientRole,
    InvalidIdentifier,
    NotFound,
    NotVerified,
    SessionExpired,
    Unauthenticated,
    ValidationFailed,
)
from app.models import ADMIN_ROLES, Article, Category, Role
from app.pipeline import (
    PUBLIC,
    RequestContext,
    ResourceLookup,
    RoutePolicy,
    authenticate,
    authorize,
    read_credential,
    require_verified,
    run_pipeline,
    validate,
)
from app.schemas import CategoryIn, RequestBody

CATEGORY = ResourceLookup(model=Category, label="category", param="category_id")
OWN_ARTICLE = ResourceLookup(
    model=Article, label="article", param="slug", column="slug", numeric=False, owner_field="user_id"
)


def _needed(message: str) -> BeforeValidator:
    def check(value):
        if value is None:
            raise ValueError(message)
        return value

    return BeforeValidator(check)


class _Pair(RequestBody):
    first: Annotated[str | None, _needed("first")] = None
    second: Annotated[str | None, _needed("second")] = None


def _ctx(db, headers=None, path_params=None, body=None) -> RequestContext:
    return RequestContext(
        db=db,
        verifier=FakeCredentialVerifier(),
        method="POST",
        path="/api/v1/test",
        headers=headers or {},
        path_params=path_params or {},
        body={} if body is None else body,
    )


def _auth(user) -> dict:
    return {"authorization": f"test:{user.id}"}


async def _article(db: AsyncSession, owner_id: int, slug: str = "owned") -> Article:
    article = Article(slug=slug, title="Owned", description="D", body="B", user_id=owner_id)
    db.add(article)
    await db.commit()
    return article


# ---------------------------------------------------------------------------
# Credential extraction
# ---------------------------------------------------------------------------

def test_read_credential_prefers_authorization():
    assert read_credential({"authorization": "a", "x-access-token": "b"}) == "a"


def test_read_credential_strips_bearer_prefix():
    assert read_credential({"authorization": "Bearer abc.def"}) == "abc.def"
    assert read_credential({"authorization": "bearer   abc.def"}) == "abc.def"


def test_read_credential_falls_back_to_access_token_header():
    assert read_credential({"authorization": "   ", "x-access-token": "tok"}) == "tok"


def test_read_credential_missing():
    assert read_credential({}) is None


@pytest.mark.parametrize("value", ["Bearer ", "Bearer", "bearer    ", "  BEARER  "])
def test_read_credential_bare_bearer_is_missing(value):
    assert read_credential({"authorization": value}) is None


def test_read_credential_bare_bearer_falls_back():
    assert read_credential({"authorization": "Bearer ", "x-access-token": "tok"}) == "tok"


# ---------------------------------------------------------------------------
# Policy construction
# ---------------------------------------------------------------------------

def test_policy_rejects_identity_checks_without_auth():
    with pytest.raises(ValueError):
        RoutePolicy(requires_auth=False, requires_verified=True)
    with pytest.raises(ValueError):
        RoutePolicy(requires_auth=False, requires_verified=False, required_roles=ADMIN_ROLES)


@pytest.mark.parametrize("raw", [None, "", "abc", "1e3", "-1", "0", "+5", "2147483648", "١٢"])
def test_parse_key_rejects_malformed_ids(raw):
    with pytest.raises(InvalidIdentifier) as info:
        CATEGORY.parse_key(raw)
    assert info.value.errors == ["Invalid category id."]


def test_parse_key_accepts_positive_ids():
    assert CATEGORY.parse_key("42") == 42
    assert CATEGORY.parse_key("2147483647") == 2147483647


def test_parse_key_passes_slugs_through():
    assert OWN_ARTICLE.parse_key("some-slug") == "some-slug"


# ---------------------------------------------------------------------------
# authenticate / require_verified
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_public_policy_skips_authentication(db_session: AsyncSession):
    ctx = await authenticate(PUBLIC, _ctx(db_session))
    assert ctx.identity is None


@pytest.mark.asyncio
async def test_missing_credential_is_unauthenticated(db_session: AsyncSession):
    with pytest.raises(Unauthenticated):
        await authenticate(RoutePolicy(), _ctx(db_session))


@pytest.mark.asyncio
async def test_bad_credential_is_session_expired(db_session: AsyncSession):
    with pytest.raises(SessionExpired):
        await authenticate(RoutePolicy(), _ctx(db_session, {"authorization": "garbage"}))


@pytest.mark.asyncio
async def test_credential_for_deleted_user_is_session_expired(db_session: AsyncSession):
    with pytest.raises(SessionExpired):
        await authenticate(RoutePolicy(), _ctx(db_session, {"authorization": "test:9999"}))


@pytest.mark.asyncio
async def test_authenticate_attaches_identity(db_session: AsyncSession, make_user):
    user, _ = await make_user("writer", role=Role.ADMIN)
    ctx = await authenticate(RoutePolicy(), _ctx(db_session, _auth(user)))
    assert ctx.identity.id == user.id
    assert ctx.identity.username == "writer"
    assert ctx.identity.role is Role.ADMIN
    assert ctx.identity.verified is True


@pytest.mark.asyncio
async def test_unverified_identity_rejected(db_session: AsyncSession, make_user):
    user, _ = await make_user(verified=False)
    ctx = await authenticate(RoutePolicy(), _ctx(db_session, _auth(user)))
    with pytest.raises(NotVerified):
        await require_verified(RoutePolicy(), ctx)
    # Routes that do not ask for verification let the same caller through.
    assert await require_verified(RoutePolicy(requires_verified=False), ctx) is ctx


# ---------------------------------------------------------------------------
# authorize
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_role_gate(db_session: AsyncSession, make_user):
    user, _ = await make_user()
    policy = RoutePolicy(required_roles=ADMIN_ROLES)
    ctx = await authenticate(policy, _ctx(db_session, _auth(user)))
    with pytest.raises(InsufficientRole):
        await authorize(policy, ctx)


@pytest.mark.asyncio
async def test_role_gate_runs_before_lookup(db_session: AsyncSession, make_user):
    """A non-admin gets the role error even for a malformed id."""
    user, _ = await make_user()
    policy = RoutePolicy(required_roles=ADMIN_ROLES, resource=CATEGORY)
    ctx = await authenticate(policy, _ctx(db_session, _auth(user), {"category_id": "abc"}))
    with pytest.raises(InsufficientRole):
        await authorize(policy, ctx)


@pytest.mark.asyncio
async def test_lookup_loads_resource(db_session: AsyncSession, make_user, make_category):
    user, _ = await make_user(role=Role.SUPERADMIN)
    category = await make_category("history")
    policy = RoutePolicy(required_roles=ADMIN_ROLES, resource=CATEGORY)
    ctx = await authenticate(policy, _ctx(db_session, _auth(user), {"category_id": str(category.id)}))
    ctx = await authorize(policy, ctx)
    assert ctx.resource.id == category.id
    assert ctx.resource.name == "history"


@pytest.mark.asyncio
async def test_lookup_missing_row(db_session: AsyncSession, make_user):
    user, _ = await make_user(role=Role.ADMIN)
    policy = RoutePolicy(required_roles=ADMIN_ROLES, resource=CATEGORY)
    ctx = await authenticate(policy, _ctx(db_session, _auth(user), {"category_id": "100000"}))
    with pytest.raises(NotFound):
        await authorize(policy, ctx)


@pytest.mark.asyncio
async def test_owner_passes_and_stranger_is_forbidden(db_session: AsyncSession, make_user):
    owner, _ = await make_user("owner")
    stranger, _ = await make_user("stranger")
    await _article(db_session, owner.id)
    policy = RoutePolicy(resource=OWN_ARTICLE)

    ctx = await authenticate(policy, _ctx(db_session, _auth(owner), {"slug": "owned"}))
    assert (await authorize(policy, ctx)).resource.slug == "owned"

    ctx = await authenticate(policy, _ctx(db_session, _auth(stranger), {"slug": "owned"}))
    with pytest.raises(Forbidden) as info:
        await authorize(policy, ctx)
    assert info.value.errors == ["Unauthorized! You can only modify articles you created."]


@pytest.mark.asyncio
async def test_admin_override_on_owned_resource(db_session: AsyncSession, make_user):
    owner, _ = await make_user("owner")
    admin, _ = await make_user("admin", role=Role.ADMIN)
    await _article(db_session, owner.id)
    policy = RoutePolicy(resource=OWN_ARTICLE, required_roles=ADMIN_ROLES)

    ctx = await authenticate(policy, _ctx(db_session, _auth(admin), {"slug": "owned"}))
    assert (await authorize(policy, ctx)).resource is not None

    # The override does not turn into a role requirement for the owner.
    ctx = await authenticate(policy, _ctx(db_session, _auth(owner), {"slug": "owned"}))
    assert (await authorize(policy, ctx)).resource is not None


# ---------------------------------------------------------------------------
# validate
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_validate_accumulates_field_and_reference_errors(db_session: AsyncSession):
    async def references(ctx):
        return ["reference problem"]

    policy = RoutePolicy(
        requires_auth=False,
        requires_verified=False,
        schema=_Pair,
        references=references,
    )
    with pytest.raises(ValidationFailed) as info:
        await validate(policy, _ctx(db_session))
    assert info.value.errors == ["first", "second", "reference problem"]
    assert info.value.status_code == 422


@pytest.mark.asyncio
async def test_validate_attaches_the_model(db_session: AsyncSession):
    policy = RoutePolicy(requires_auth=False, requires_verified=False, schema=CategoryIn)
    ctx = await validate(policy, _ctx(db_session, body={"category": "  Jazz "}))
    assert isinstance(ctx.payload, CategoryIn)
    assert ctx.payload.category == "Jazz"
    assert ctx.body == {"category": "  Jazz "}


@pytest.mark.asyncio
async def test_conflicts_only_run_on_valid_body(db_session: AsyncSession):
    calls = []

    async def conflicts(ctx):
        calls.append(ctx.payload)
        raise DuplicateResource("taken")

    policy = RoutePolicy(
        requires_auth=False,
        requires_verified=False,
        schema=_Pair,
        conflicts=conflicts,
    )
    with pytest.raises(ValidationFailed):
        await validate(policy, _ctx(db_session, body={"first": "a"}))
    assert calls == []

    with pytest.raises(DuplicateResource):
        await validate(policy, _ctx(db_session, body={"first": "a", "second": "b"}))
    assert [(p.first, p.second) for p in calls] == [("a", "b")]


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [[], "text", 3, ["a"]])
async def test_validate_requires_json_object(db_session: AsyncSession, body):
    policy = RoutePolicy(requires_auth=False, requires_verified=False, schema=_Pair)
    with pytest.raises(ValidationFailed) as info:
        await validate(policy, _ctx(db_session, body=body))
    assert info.value.errors == ["Request body must be a JSON object."]


# ---------------------------------------------------------------------------
# run_pipeline
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_pipeline_stops_at_first_rejection(db_session: AsyncSession, make_user, caplog):
    user, _ = await make_user(verified=False)
    seen = []

    async def references(ctx):
        seen.append(ctx.body)
        return []

    policy = RoutePolicy(schema=_Pair, references=references)
    with caplog.at_level(logging.WARNING, logger="app.pipeline"):
        with pytest.raises(NotVerified):
            await run_pipeline(policy, _ctx(db_session, _auth(user)))

    assert seen == []
    record = next(r for r in caplog.records if r.name == "app.pipeline")
    message = record.getMessage()
    assert "stage=require_verified" in message
    assert "status=403" in message
    assert "principal=uid-" in message
    assert user.email not in message


@pytest.mark.asyncio
async def test_pipeline_returns_enriched_context(db_session: AsyncSession, make_user, make_category):
    user, _ = await make_user(role=Role.ADMIN)
    category = await make_category("music")
    policy = RoutePolicy(
        required_roles=ADMIN_ROLES,
        resource=CATEGORY,
        schema=CategoryIn,
    )
    ctx = await run_pipeline(
        policy,
        _ctx(db_session, _auth(user), {"category_id": str(category.id)}, {"category": "jazz"}),
    )
    assert ctx.identity.id == user.id
    assert ctx.resource.id == category.id
    assert ctx.payload.category == "jazz"
