"""
User service: accounts, sessions and profiles.

Accounts start unverified.  Signup generates a verification id and
password-reset requests generate a one-time token; no e-mail is sent,
the resulting links are written to the log for an operator (or a mail
relay tailing it) to deliver.

bcrypt hashing and verification run in the threadpool so a login does
not stall the event loop for the duration of the hash.
"""
import logging

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from app.config import settings
from app.errors import (
    DuplicateResource,
    InvalidCredentials,
    NotFound,
    NotVerified,
    PersistenceFailure,
)
from app.models import User
from app.schemas import ProfileUpdate, SignupIn
from app.security import (
    create_session_token,
    generate_opaque_token,
    hash_password,
    verify_password,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def _user_to_dict(user: User) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "role": user.role.value,
        "verified": user.is_verified,
    }


def _profile_to_dict(user: User) -> dict:
    data = _user_to_dict(user)
    data["bio"] = user.bio
    data["image"] = user.image
    data["createdAt"] = user.created_at.isoformat() if user.created_at else None
    return data


async def _flush(db: AsyncSession, user: User | None = None) -> None:
    try:
        await db.flush()
        if user is not None:
            await db.refresh(user)
    except IntegrityError as exc:
        raise DuplicateResource("A user with this username or email already exists") from exc
    except SQLAlchemyError as exc:
        raise PersistenceFailure(str(exc)) from exc


async def username_taken(db: AsyncSession, username: str, exclude_id: int | None = None) -> bool:
    q = select(User.id).where(func.lower(User.username) == username.strip().lower())
    if exclude_id is not None:
        q = q.where(User.id != exclude_id)
    return (await db.execute(q)).first() is not None


async def email_taken(db: AsyncSession, email: str) -> bool:
    return await get_by_email(db, email) is not None


async def get_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(
        select(User).where(func.lower(User.email) == email.strip().lower())
    )
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Accounts and sessions
# ---------------------------------------------------------------------------

async def register_user(db: AsyncSession, payload: SignupIn) -> dict:
    """
    Create an unverified account and return ``{token, user}``.

    The signup route checks username and e-mail availability first; the
    unique constraints back that up under concurrent signups.
    """
    user = User(
        email=payload.email.lower(),
        username=payload.username,
        password_hash=await run_in_threadpool(hash_password, payload.password),
        verification_id=generate_opaque_token(),
    )
    db.add(user)
    await _flush(db, user)

    logger.info(
        "user.registered user_id=%s verify_url=%s/api/v1/verify/%s",
        user.id,
        settings.APP_BASE_URL,
        user.verification_id,
    )
    return {"token": create_session_token(user.id), "user": _user_to_dict(user)}


async def login_user(db: AsyncSession, email: str, password: str) -> dict:
    """Check credentials and issue a session token; unverified accounts may not log in."""
    user = await get_by_email(db, email)
    if user is None or not await run_in_threadpool(verify_password, password, user.password_hash):
        raise InvalidCredentials()
    if not user.is_verified:
        raise NotVerified()
    return {"token": create_session_token(user.id), "user": _user_to_dict(user)}


async def verify_account(db: AsyncSession, verification_id: str) -> None:
    result = await db.execute(select(User).where(User.verification_id == verification_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFound("Invalid or unknown verification link.")
    user.is_verified = True
    await _flush(db)


async def request_password_reset(db: AsyncSession, email: str) -> None:
    user = await get_by_email(db, email)
    if user is None:
        raise NotFound("No account is registered with this email address.")
    if not user.is_verified:
        raise NotVerified()

    user.password_reset_token = generate_opaque_token()
    await _flush(db)
    logger.info(
        "user.password_reset_requested user_id=%s reset_url=%s/api/v1/resetpassword/%s",
        user.id,
        settings.APP_BASE_URL,
        user.password_reset_token,
    )


async def reset_password(db: AsyncSession, token: str, password: str) -> None:
    result = await db.execute(select(User).where(User.password_reset_token == token))
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFound("Invalid or expired password reset link.")
    user.password_hash = await run_in_threadpool(hash_password, password)
    user.password_reset_token = None
    await _flush(db)


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------

async def get_profile(db: AsyncSession, user_id: int) -> dict:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFound("User not found.")
    return _profile_to_dict(user)


async def update_profile(db: AsyncSession, user_id: int, payload: ProfileUpdate) -> dict:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFound("User not found.")

    # Fields absent from the request body are left untouched.
    changes = payload.model_dump(exclude_unset=True)
    if "username" in changes:
        user.username = changes["username"]
    if "bio" in changes:
        user.bio = changes["bio"] or None
    if "image" in changes:
        user.image = changes["image"]

    await _flush(db, user)
    return _profile_to_dict(user)
