from fastapi import APIRouter, Depends

from app.errors import DuplicateResource
from app.pipeline import RequestContext, RoutePolicy, guard
from app.schemas import ProfileUpdate
from app.services import user_service

router = APIRouter(prefix="/api/v1/userprofile", tags=["profiles"])


async def _username_taken(ctx: RequestContext) -> None:
    username = ctx.payload.username
    if username and await user_service.username_taken(ctx.db, username, exclude_id=ctx.identity.id):
        raise DuplicateResource("The specified username is already taken")


VIEW_PROFILE = RoutePolicy()
EDIT_PROFILE = RoutePolicy(schema=ProfileUpdate, conflicts=_username_taken)


@router.get("")
async def view_profile(ctx: RequestContext = Depends(guard(VIEW_PROFILE))):
    return {"success": True, "profile": await user_service.get_profile(ctx.db, ctx.identity.id)}


@router.patch("")
async def edit_profile(ctx: RequestContext = Depends(guard(EDIT_PROFILE))):
    profile = await user_service.update_profile(ctx.db, ctx.identity.id, ctx.payload)
    return {"success": True, "message": "Profile updated successfully", "profile": profile}
