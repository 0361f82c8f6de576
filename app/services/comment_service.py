"""
Comment service: comments on articles.

Callers pass in the rows the request pipeline already loaded (the parent
article on create, the comment itself on edit/delete), so each function
issues exactly one write.  Every write drops the parent article's
cached detail view.
"""
from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.cache import cache
from app.errors import NotFound, PersistenceFailure
from app.models import Article, Comment


def comment_to_dict(comment: Comment) -> dict:
    return {
        "id": comment.id,
        "comment": comment.comment,
        "userId": comment.user_id,
        "articleId": comment.article_id,
        "createdAt": comment.created_at.isoformat() if comment.created_at else None,
        "updatedAt": comment.updated_at.isoformat() if comment.updated_at else None,
    }


async def _flush_and_refresh(db: AsyncSession, comment: Comment) -> None:
    try:
        await db.flush()
        await db.refresh(comment)
    except SQLAlchemyError as exc:
        raise PersistenceFailure(str(exc)) from exc


async def add_comment(db: AsyncSession, article: Article, user_id: int, text: str) -> dict:
    comment = Comment(comment=text.strip(), user_id=user_id, article_id=article.id)
    db.add(comment)
    await _flush_and_refresh(db, comment)
    await cache.invalidate_articles(article.slug)
    return comment_to_dict(comment)


async def edit_comment(db: AsyncSession, comment: Comment, text: str) -> dict:
    comment.comment = text.strip()
    await _flush_and_refresh(db, comment)
    await cache.delete_pattern("articles:detail:*")
    return comment_to_dict(comment)


async def delete_comment(db: AsyncSession, comment_id: int) -> None:
    try:
        result = await db.execute(delete(Comment).where(Comment.id == comment_id))
    except SQLAlchemyError as exc:
        raise PersistenceFailure(str(exc)) from exc
    if result.rowcount != 1:
        raise NotFound(
            "No comment matches the specified id. Please confirm the comment Id and try again."
        )
    await cache.delete_pattern("articles:detail:*")
