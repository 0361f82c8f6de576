from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import PaginationParams
from app.models import ADMIN_ROLES, Article
from app.pipeline import RequestContext, ResourceLookup, RoutePolicy, guard
from app.schemas import ArticleIn, PaginatedResponse, is_valid_id
from app.services import article_service, category_service

router = APIRouter(prefix="/api/v1/articles", tags=["articles"])


async def _category_exists(ctx: RequestContext) -> list[str]:
    # Reads the raw body: the check joins the shape errors in one 422.
    category = ctx.body.get("category")
    if is_valid_id(category) and not await category_service.exists(ctx.db, category):
        return ["The specified category does not exist."]
    return []


OWN_ARTICLE = ResourceLookup(
    model=Article,
    label="article",
    param="slug",
    column="slug",
    numeric=False,
    owner_field="user_id",
)

CREATE_ARTICLE = RoutePolicy(schema=ArticleIn, references=_category_exists)
UPDATE_ARTICLE = RoutePolicy(
    resource=OWN_ARTICLE,
    schema=ArticleIn,
    references=_category_exists,
)
# Admins may take down any article.
DELETE_ARTICLE = RoutePolicy(resource=OWN_ARTICLE, required_roles=ADMIN_ROLES)


@router.get("", response_model=PaginatedResponse)
async def list_articles(
    pagination: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    return await article_service.get_articles(
        db, pagination.page, pagination.page_size, pagination.category
    )


@router.get("/{slug}")
async def get_article(slug: str, db: AsyncSession = Depends(get_db)):
    return {"success": True, "article": await article_service.get_article(db, slug)}


@router.post("", status_code=201)
async def create_article(ctx: RequestContext = Depends(guard(CREATE_ARTICLE))):
    article = await article_service.create_article(ctx.db, ctx.identity.id, ctx.payload)
    return {"success": True, "message": "Article created successfully", "article": article}


@router.put("/{slug}")
async def update_article(slug: str, ctx: RequestContext = Depends(guard(UPDATE_ARTICLE))):
    article = await article_service.update_article(ctx.db, ctx.resource, ctx.payload)
    return {"success": True, "message": "Article updated successfully", "article": article}


@router.delete("/{slug}")
async def delete_article(slug: str, ctx: RequestContext = Depends(guard(DELETE_ARTICLE))):
    await article_service.delete_article(ctx.db, ctx.resource)
    return {"success": True, "message": "Article deleted successfully"}
