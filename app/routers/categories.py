from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.errors import DuplicateResource
from app.models import ADMIN_ROLES, Category
from app.pipeline import RequestContext, ResourceLookup, RoutePolicy, guard
from app.schemas import CategoryIn
from app.services import category_service

router = APIRouter(prefix="/api/v1/category", tags=["categories"])


async def _name_taken(ctx: RequestContext) -> None:
    exclude_id = ctx.resource.id if ctx.resource is not None else None
    if await category_service.find_duplicate(ctx.db, ctx.payload.category, exclude_id=exclude_id):
        raise DuplicateResource(category_service.DUPLICATE_MESSAGE)


CATEGORY = ResourceLookup(model=Category, label="category", param="category_id")

CREATE_CATEGORY = RoutePolicy(
    required_roles=ADMIN_ROLES,
    schema=CategoryIn,
    conflicts=_name_taken,
)
EDIT_CATEGORY = RoutePolicy(
    required_roles=ADMIN_ROLES,
    resource=CATEGORY,
    schema=CategoryIn,
    conflicts=_name_taken,
)
DELETE_CATEGORY = RoutePolicy(required_roles=ADMIN_ROLES, resource=CATEGORY)


@router.get("")
async def list_categories(db: AsyncSession = Depends(get_db)):
    return {"success": True, "categories": await category_service.list_categories(db)}


@router.post("", status_code=201)
async def create_category(ctx: RequestContext = Depends(guard(CREATE_CATEGORY))):
    category = await category_service.create_category(ctx.db, ctx.payload.category)
    return {"success": True, "message": "Category successfully added.", **category}


@router.patch("/{category_id}")
async def edit_category(
    category_id: str,
    ctx: RequestContext = Depends(guard(EDIT_CATEGORY)),
):
    category = await category_service.rename_category(ctx.db, ctx.resource, ctx.payload.category)
    return {"success": True, "message": "Category successfully updated", **category}


@router.delete("/{category_id}")
async def delete_category(
    category_id: str,
    ctx: RequestContext = Depends(guard(DELETE_CATEGORY)),
):
    await category_service.delete_category(ctx.db, ctx.resource.id)
    return {"success": True, "message": "Category deleted."}
