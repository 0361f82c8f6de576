from fastapi import APIRouter, Depends

from app.models import ADMIN_ROLES, Article, Comment
from app.pipeline import RequestContext, ResourceLookup, RoutePolicy, guard
from app.schemas import CommentIn
from app.services import comment_service

router = APIRouter(prefix="/api/v1/comment", tags=["comments"])

PARENT_ARTICLE = ResourceLookup(model=Article, label="article", param="article_id")
OWN_COMMENT = ResourceLookup(
    model=Comment, label="comment", param="comment_id", owner_field="user_id"
)

CREATE_COMMENT = RoutePolicy(resource=PARENT_ARTICLE, schema=CommentIn)
EDIT_COMMENT = RoutePolicy(resource=OWN_COMMENT, schema=CommentIn)
# Admins may remove any comment.
DELETE_COMMENT = RoutePolicy(resource=OWN_COMMENT, required_roles=ADMIN_ROLES)


@router.post("/{article_id}", status_code=201)
async def create_comment(
    article_id: str,
    ctx: RequestContext = Depends(guard(CREATE_COMMENT)),
):
    comment = await comment_service.add_comment(
        ctx.db, ctx.resource, ctx.identity.id, ctx.payload.comment
    )
    return {
        "success": True,
        "message": "New article comment created successfully",
        "comment": comment,
    }


@router.patch("/{comment_id}")
async def edit_comment(
    comment_id: str,
    ctx: RequestContext = Depends(guard(EDIT_COMMENT)),
):
    comment = await comment_service.edit_comment(ctx.db, ctx.resource, ctx.payload.comment)
    return {"success": True, "message": "Comment updated successfully", "body": comment}


@router.delete("/{comment_id}")
async def delete_comment(
    comment_id: str,
    ctx: RequestContext = Depends(guard(DELETE_COMMENT)),
):
    await comment_service.delete_comment(ctx.db, ctx.resource.id)
    return {"success": True, "message": "Comment deleted successfully"}
