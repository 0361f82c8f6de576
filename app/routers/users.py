from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.errors import DuplicateResource
from app.pipeline import RequestContext, RoutePolicy, guard
from app.schemas import EmailIn, LoginIn, PasswordIn, SignupIn
from app.services import user_service

router = APIRouter(prefix="/api/v1", tags=["users"])


async def _account_taken(ctx: RequestContext) -> None:
    problems = []
    if await user_service.email_taken(ctx.db, ctx.payload.email):
        problems.append("A user with this email already exists")
    if await user_service.username_taken(ctx.db, ctx.payload.username):
        problems.append("The specified username is already taken")
    if problems:
        raise DuplicateResource(*problems)


def _anonymous(**kwargs) -> RoutePolicy:
    return RoutePolicy(requires_auth=False, requires_verified=False, **kwargs)


SIGNUP = _anonymous(schema=SignupIn, conflicts=_account_taken)
LOGIN = _anonymous(schema=LoginIn)
REQUEST_RESET = _anonymous(schema=EmailIn)
RESET_PASSWORD = _anonymous(schema=PasswordIn)


@router.post("/user", status_code=201)
@router.post("/user/signup", status_code=201)
async def register_user(ctx: RequestContext = Depends(guard(SIGNUP))):
    session = await user_service.register_user(ctx.db, ctx.payload)
    return {
        "success": True,
        "message": "Account created. Check your email to verify your account.",
        **session,
    }


@router.post("/user/login")
async def login_user(ctx: RequestContext = Depends(guard(LOGIN))):
    session = await user_service.login_user(ctx.db, ctx.payload.email, ctx.payload.password)
    return {"success": True, "message": "Login successful.", **session}


@router.get("/verify/{verification_id}")
async def verify_account(verification_id: str, db: AsyncSession = Depends(get_db)):
    await user_service.verify_account(db, verification_id)
    return {"success": True, "message": "Account verified."}


@router.post("/requestpasswordreset")
async def request_password_reset(ctx: RequestContext = Depends(guard(REQUEST_RESET))):
    await user_service.request_password_reset(ctx.db, ctx.payload.email)
    return {
        "success": True,
        "message": "A password reset link has been sent to your email.",
    }


@router.post("/resetpassword/{token}")
async def reset_password(token: str, ctx: RequestContext = Depends(guard(RESET_PASSWORD))):
    await user_service.reset_password(ctx.db, token, ctx.payload.password)
    return {"success": True, "message": "Password reset successful. You can now log in."}
