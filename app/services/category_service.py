"""
Category service: admin-managed article categories.

Names are normalised (trimmed, lower-cased) before they are stored, so
the unique constraint on ``categories.name`` is case-insensitive in
effect and ``find_duplicate`` can compare with a plain equality.
"""
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.cache import CATEGORY_LIST_KEY, cache
from app.config import settings
from app.errors import DuplicateResource, NotFound, PersistenceFailure
from app.models import Category

DUPLICATE_MESSAGE = "The specified category already exists"


def normalise_name(name: str) -> str:
    return name.strip().lower()


def _category_to_dict(category: Category) -> dict:
    return {"id": category.id, "categoryName": category.name}


async def find_duplicate(
    db: AsyncSession, name: str, exclude_id: int | None = None
) -> Category | None:
    """Return the category already using *name* (case-insensitive), if any."""
    q = select(Category).where(Category.name == normalise_name(name))
    if exclude_id is not None:
        q = q.where(Category.id != exclude_id)
    result = await db.execute(q)
    return result.scalar_one_or_none()


async def exists(db: AsyncSession, category_id: int) -> bool:
    return await db.get(Category, category_id) is not None


async def list_categories(db: AsyncSession) -> list[dict]:
    cached = await cache.get(CATEGORY_LIST_KEY)
    if cached is not None:
        return cached

    result = await db.execute(select(Category).order_by(Category.name))
    data = [_category_to_dict(c) for c in result.scalars().all()]
    await cache.set(CATEGORY_LIST_KEY, data, ttl=settings.CACHE_TTL_LIST)
    return data


async def create_category(db: AsyncSession, name: str) -> dict:
    category = Category(name=normalise_name(name))
    db.add(category)
    try:
        await db.flush()
    except IntegrityError as exc:
        # Lost a race with a concurrent create of the same name.
        raise DuplicateResource(DUPLICATE_MESSAGE) from exc
    except SQLAlchemyError as exc:
        raise PersistenceFailure(str(exc)) from exc

    await cache.invalidate_categories()
    return _category_to_dict(category)


async def rename_category(db: AsyncSession, category: Category, name: str) -> dict:
    category.name = normalise_name(name)
    try:
        await db.flush()
    except IntegrityError as exc:
        raise DuplicateResource(DUPLICATE_MESSAGE) from exc
    except SQLAlchemyError as exc:
        raise PersistenceFailure(str(exc)) from exc

    await cache.invalidate_categories()
    return _category_to_dict(category)


async def delete_category(db: AsyncSession, category_id: int) -> None:
    """Delete one category; raises NotFound unless exactly one row went away."""
    try:
        result = await db.execute(delete(Category).where(Category.id == category_id))
    except SQLAlchemyError as exc:
        raise PersistenceFailure(str(exc)) from exc
    if result.rowcount != 1:
        raise NotFound(
            "No category matches the specified id. Please confirm the category Id and try again."
        )
    await cache.invalidate_categories()
