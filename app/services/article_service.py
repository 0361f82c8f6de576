"""
Article service: business logic for the Article aggregate.

Design notes
------------
- Public reads (list and detail-by-slug) go through the cache-aside
  pattern (Redis, then the database).  Cache keys encode every
  dimension that affects the result.
- Eager loading via ``joinedload`` (many-to-one: author, category) and
  ``selectinload`` (one-to-many: comments) avoids N+1 queries.
- Writes receive the validated ``ArticleIn`` body and, for update/delete, the row
  the request pipeline already loaded and authorized.  Service
  functions flush but do not commit; the ``get_db`` dependency owns the
  transaction.
"""
import math
import re
import secrets

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from app.cache import article_detail_key, article_list_key, cache
from app.config import settings
from app.errors import NotFound, PersistenceFailure
from app.models import Article
from app.schemas import ArticleIn, PaginatedResponse
from app.services.comment_service import comment_to_dict

_SLUG_STRIP_RE = re.compile(r"[^\w\s-]")
_SLUG_SPACE_RE = re.compile(r"[\s_]+")
_SLUG_DASH_RE = re.compile(r"-+")


def slugify(text: str) -> str:
    """Return a URL-safe, lowercase slug derived from *text*."""
    text = _SLUG_STRIP_RE.sub("", text.lower().strip())
    text = _SLUG_SPACE_RE.sub("-", text)
    return _SLUG_DASH_RE.sub("-", text).strip("-")


async def _unique_slug(db: AsyncSession, title: str, exclude_id: int | None = None) -> str:
    """
    Slug for *title*, suffixed with a short random token when another
    article already uses the bare slug.
    """
    base = slugify(title)[:180] or "article"
    q = select(Article.id).where(Article.slug == base)
    if exclude_id is not None:
        q = q.where(Article.id != exclude_id)
    if (await db.execute(q)).first() is None:
        return base
    return f"{base}-{secrets.token_hex(4)}"


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def _article_to_dict(article: Article) -> dict:
    """Serialise an Article ORM instance to a plain dict (list view)."""
    author = article.author
    category = article.category
    return {
        "id": article.id,
        "slug": article.slug,
        "title": article.title,
        "description": article.description,
        "image": article.image,
        "userId": article.user_id,
        "author": {"id": author.id, "username": author.username} if author else None,
        "categoryId": article.category_id,
        "categoryName": category.name if category else None,
        "createdAt": article.created_at.isoformat() if article.created_at else None,
    }


def _article_detail_to_dict(article: Article) -> dict:
    data = _article_to_dict(article)
    data["body"] = article.body
    data["updatedAt"] = article.updated_at.isoformat() if article.updated_at else None
    data["comments"] = [comment_to_dict(c) for c in article.comments]
    return data


async def _load_detail(db: AsyncSession, article_id: int) -> Article:
    q = (
        select(Article)
        .where(Article.id == article_id)
        .options(
            joinedload(Article.author),
            joinedload(Article.category),
            selectinload(Article.comments),
        )
        .execution_options(populate_existing=True)
    )
    result = await db.execute(q)
    return result.unique().scalar_one()


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

async def get_articles(
    db: AsyncSession,
    page: int = 1,
    page_size: int = 20,
    category: int | None = None,
) -> PaginatedResponse:
    """Return one page of articles, newest first, optionally in one category."""
    cache_key = article_list_key(page, page_size, category)
    cached = await cache.get(cache_key)
    if cached:
        return PaginatedResponse(**cached)

    count_q = select(func.count()).select_from(Article)
    articles_q = (
        select(Article)
        .options(joinedload(Article.author), joinedload(Article.category))
        .order_by(Article.created_at.desc(), Article.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    if category is not None:
        count_q = count_q.where(Article.category_id == category)
        articles_q = articles_q.where(Article.category_id == category)

    total: int = (await db.execute(count_q)).scalar_one()
    articles = (await db.execute(articles_q)).unique().scalars().all()

    response = PaginatedResponse(
        items=[_article_to_dict(a) for a in articles],
        total=total,
        page=page,
        page_size=page_size,
        pages=math.ceil(total / page_size) if total > 0 else 0,
    )
    await cache.set(cache_key, response.model_dump(), ttl=settings.CACHE_TTL_LIST)
    return response


async def get_article(db: AsyncSession, slug: str) -> dict:
    """Return the full detail dict (body and comments) for *slug*."""
    cache_key = article_detail_key(slug)
    cached = await cache.get(cache_key)
    if cached:
        return cached

    q = (
        select(Article)
        .where(Article.slug == slug)
        .options(
            joinedload(Article.author),
            joinedload(Article.category),
            selectinload(Article.comments),
        )
        .execution_options(populate_existing=True)
    )
    result = await db.execute(q)
    article = result.unique().scalar_one_or_none()
    if article is None:
        raise NotFound("No article matches the specified slug.")

    data = _article_detail_to_dict(article)
    await cache.set(cache_key, data, ttl=settings.CACHE_TTL_DETAIL)
    return data


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

async def create_article(db: AsyncSession, user_id: int, payload: ArticleIn) -> dict:
    try:
        article = Article(
            slug=await _unique_slug(db, payload.title),
            title=payload.title,
            description=payload.description,
            body=payload.body,
            image=payload.image,
            user_id=user_id,
            category_id=payload.category,
        )
        db.add(article)
        await db.flush()
        article = await _load_detail(db, article.id)
    except SQLAlchemyError as exc:
        raise PersistenceFailure(str(exc)) from exc

    await cache.invalidate_articles()
    return _article_detail_to_dict(article)


async def update_article(db: AsyncSession, article: Article, payload: ArticleIn) -> dict:
    """
    Replace the editable fields of *article* with *payload*.

    The slug is regenerated when the title changes; the old slug's
    cached detail is dropped either way.
    """
    old_slug = article.slug
    try:
        if payload.title != article.title:
            article.slug = await _unique_slug(db, payload.title, exclude_id=article.id)
        article.title = payload.title
        article.description = payload.description
        article.body = payload.body
        article.image = payload.image
        article.category_id = payload.category
        await db.flush()
        article = await _load_detail(db, article.id)
    except SQLAlchemyError as exc:
        raise PersistenceFailure(str(exc)) from exc

    await cache.invalidate_articles(old_slug, article.slug)
    return _article_detail_to_dict(article)


async def delete_article(db: AsyncSession, article: Article) -> None:
    try:
        # Comments go with the article through ON DELETE CASCADE.
        result = await db.execute(delete(Article).where(Article.id == article.id))
    except SQLAlchemyError as exc:
        raise PersistenceFailure(str(exc)) from exc
    if result.rowcount != 1:
        raise NotFound("No article matches the specified slug.")
    await cache.invalidate_articles(article.slug)
