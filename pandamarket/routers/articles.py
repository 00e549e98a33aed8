from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from pandamarket.database import get_db
from pandamarket.dependencies import PaginationParams, get_current_identity, get_optional_identity
from pandamarket.middleware import SessionIdentity
from pandamarket.schemas import (
    ArticleCreate,
    ArticleUpdate,
    CommentCreate,
    CommentPage,
    CommentResponse,
    PaginatedResponse,
    ReactionResponse,
)
from pandamarket.services import article_service, comment_service, reaction_service
from pandamarket.services.comment_service import CommentTarget
from pandamarket.services.reaction_service import ReactionKind

router = APIRouter(prefix="/api/v1/articles", tags=["articles"])


@router.get("", response_model=PaginatedResponse)
async def list_articles(
    pagination: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    return await article_service.get_articles(
        db, pagination.page, pagination.page_size, pagination.order_by, pagination.keyword
    )


@router.get("/{article_id}")
async def get_article(
    article_id: int,
    identity: SessionIdentity | None = Depends(get_optional_identity),
    db: AsyncSession = Depends(get_db),
):
    return await article_service.get_article(db, article_id, identity.user_id if identity else None)


@router.post("", status_code=201)
async def create_article(
    data: ArticleCreate,
    identity: SessionIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    return await article_service.create_article(db, identity.user_id, data)


@router.patch("/{article_id}")
async def update_article(
    article_id: int,
    data: ArticleUpdate,
    identity: SessionIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    return await article_service.update_article(db, article_id, identity.user_id, data)


@router.delete("/{article_id}", status_code=204)
async def delete_article(
    article_id: int,
    identity: SessionIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    await article_service.delete_article(db, article_id, identity.user_id)


# ---------------------------------------------------------------------------
# Likes
# ---------------------------------------------------------------------------

@router.post("/{article_id}/likes", status_code=201, response_model=ReactionResponse)
async def like_article(
    article_id: int,
    response: Response,
    identity: SessionIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    result = await reaction_service.add_reaction(db, ReactionKind.LIKE, article_id, identity.user_id)
    if not result.created:
        response.status_code = 200
    return ReactionResponse(
        count=result.state.count, is_reacted=result.state.is_reacted, created=result.created
    )


@router.delete("/{article_id}/likes", status_code=204)
async def unlike_article(
    article_id: int,
    identity: SessionIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    await reaction_service.remove_reaction(db, ReactionKind.LIKE, article_id, identity.user_id)


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------

@router.get("/{article_id}/comments", response_model=CommentPage)
async def list_comments(
    article_id: int,
    cursor: int | None = Query(None, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    return await comment_service.list_comments(db, CommentTarget.ARTICLE, article_id, cursor, limit)


@router.post("/{article_id}/comments", status_code=201, response_model=CommentResponse)
async def add_comment(
    article_id: int,
    data: CommentCreate,
    identity: SessionIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    return await comment_service.add_comment(
        db, CommentTarget.ARTICLE, article_id, identity.user_id, data
    )
