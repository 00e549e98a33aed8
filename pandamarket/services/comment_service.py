"""
Comment service — comments on articles and products.

A comment belongs to exactly one target.  Listing is cursor-based (newest
first, ``cursor`` = id of the last comment already seen) so that new
comments arriving between pages do not shift the window.  Edit and delete
are owner-only and go through ``mutation_service``.
"""
import enum

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pandamarket.errors import NotFoundError
from pandamarket.models import Article, Comment, Product
from pandamarket.schemas import CommentCreate, CommentUpdate
from pandamarket.services import mutation_service


class CommentTarget(enum.Enum):
    ARTICLE = "article"
    PRODUCT = "product"


_TARGETS = {
    CommentTarget.ARTICLE: (Article, "article_id", "Article"),
    CommentTarget.PRODUCT: (Product, "product_id", "Product"),
}


def comment_to_dict(comment: Comment) -> dict:
    return {
        "id": comment.id,
        "content": comment.content,
        "user_id": comment.user_id,
        "article_id": comment.article_id,
        "product_id": comment.product_id,
        "created_at": comment.created_at.isoformat() if comment.created_at else None,
    }


async def _ensure_target(db: AsyncSession, target: CommentTarget, target_id: int) -> str:
    model, column, label = _TARGETS[target]
    if (await db.execute(select(model.id).where(model.id == target_id))).scalar_one_or_none() is None:
        raise NotFoundError(f"{label} not found")
    return column


async def list_comments(
    db: AsyncSession,
    target: CommentTarget,
    target_id: int,
    cursor: int | None = None,
    limit: int = 10,
) -> dict:
    """
    Return up to *limit* comments older than *cursor*, plus ``next_cursor``
    (None on the last page).
    """
    column = await _ensure_target(db, target, target_id)

    q = select(Comment).where(getattr(Comment, column) == target_id)
    if cursor is not None:
        q = q.where(Comment.id < cursor)
    # One extra row tells us whether another page exists.
    rows = (await db.execute(q.order_by(Comment.id.desc()).limit(limit + 1))).scalars().all()

    has_more = len(rows) > limit
    items = rows[:limit]
    return {
        "items": [comment_to_dict(c) for c in items],
        "next_cursor": items[-1].id if has_more else None,
    }


async def add_comment(
    db: AsyncSession,
    target: CommentTarget,
    target_id: int,
    user_id: int,
    data: CommentCreate,
) -> dict:
    """Create a comment by *user_id*; 404 when the target does not exist."""
    column = await _ensure_target(db, target, target_id)

    comment = Comment(content=data.content, user_id=user_id, **{column: target_id})
    db.add(comment)
    await db.flush()
    return comment_to_dict(comment)


async def update_comment(db: AsyncSession, comment_id: int, user_id: int, data: CommentUpdate) -> dict:
    result = await mutation_service.mutate_owned(
        db, Comment, comment_id, user_id, data.model_dump(exclude_unset=True),
        required_fields=("content",),
    )
    return comment_to_dict(result.resource)


async def delete_comment(db: AsyncSession, comment_id: int, user_id: int) -> None:
    await mutation_service.delete_owned(db, Comment, comment_id, user_id)
