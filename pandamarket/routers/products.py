from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from pandamarket.database import get_db
from pandamarket.dependencies import PaginationParams, get_current_identity, get_optional_identity
from pandamarket.middleware import SessionIdentity
from pandamarket.schemas import (
    CommentCreate,
    CommentPage,
    CommentResponse,
    PaginatedResponse,
    ProductCreate,
    ProductUpdate,
    ReactionResponse,
)
from pandamarket.services import comment_service, product_service, reaction_service
from pandamarket.services.comment_service import CommentTarget
from pandamarket.services.reaction_service import ReactionKind

router = APIRouter(prefix="/api/v1/products", tags=["products"])


@router.get("", response_model=PaginatedResponse)
async def list_products(
    pagination: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    return await product_service.get_products(
        db, pagination.page, pagination.page_size, pagination.order_by, pagination.keyword
    )


@router.get("/{product_id}")
async def get_product(
    product_id: int,
    identity: SessionIdentity | None = Depends(get_optional_identity),
    db: AsyncSession = Depends(get_db),
):
    return await product_service.get_product(db, product_id, identity.user_id if identity else None)


@router.post("", status_code=201)
async def create_product(
    data: ProductCreate,
    identity: SessionIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    return await product_service.create_product(db, identity.user_id, data)


@router.patch("/{product_id}")
async def update_product(
    product_id: int,
    data: ProductUpdate,
    identity: SessionIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    return await product_service.update_product(db, product_id, identity.user_id, data)


@router.delete("/{product_id}", status_code=204)
async def delete_product(
    product_id: int,
    identity: SessionIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    await product_service.delete_product(db, product_id, identity.user_id)


# ---------------------------------------------------------------------------
# Favorites
# ---------------------------------------------------------------------------

@router.post("/{product_id}/favorites", status_code=201, response_model=ReactionResponse)
async def favorite_product(
    product_id: int,
    response: Response,
    identity: SessionIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    result = await reaction_service.add_reaction(db, ReactionKind.FAVORITE, product_id, identity.user_id)
    if not result.created:
        response.status_code = 200
    return ReactionResponse(
        count=result.state.count, is_reacted=result.state.is_reacted, created=result.created
    )


@router.delete("/{product_id}/favorites", status_code=204)
async def unfavorite_product(
    product_id: int,
    identity: SessionIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    await reaction_service.remove_reaction(db, ReactionKind.FAVORITE, product_id, identity.user_id)


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------

@router.get("/{product_id}/comments", response_model=CommentPage)
async def list_comments(
    product_id: int,
    cursor: int | None = Query(None, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    return await comment_service.list_comments(db, CommentTarget.PRODUCT, product_id, cursor, limit)


@router.post("/{product_id}/comments", status_code=201, response_model=CommentResponse)
async def add_comment(
    product_id: int,
    data: CommentCreate,
    identity: SessionIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    return await comment_service.add_comment(
        db, CommentTarget.PRODUCT, product_id, identity.user_id, data
    )
