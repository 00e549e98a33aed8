"""
Product service — business logic for the Product aggregate.

Design notes
------------
- Reads mirror the article service: cached, requester-independent list
  pages with ``favorite_count``; uncached detail views with the caller's
  ``is_favorited`` flag.
- ``price`` is a tracked field.  An update that changes it runs, in order:
  apply + flush, read the post-mutation state and favorite flags, commit,
  drop the list caches, then ``notification_service.fan_out_price_change``.  Reading the
  favoriting set after the commit means no favorite that existed before
  the change can be missed.  If the fan-out cannot be persisted the
  product change stays committed and ``FanOutPartialFailure`` propagates.
- Deleting a product removes its favorites and comments.  It does not
  notify anyone, and earlier notifications that mention it are kept.
"""
import logging
import math

from sqlalchemy import delete, desc, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from pandamarket.cache import PRODUCTS, cache, list_key
from pandamarket.errors import NotFoundError
from pandamarket.models import Comment, Product
from pandamarket.schemas import PaginatedResponse, ProductCreate, ProductUpdate
from pandamarket.services import mutation_service, notification_service
from pandamarket.services.reaction_service import (
    ReactionKind,
    ReactionState,
    count_expression,
    delete_edges,
    get_reaction_state,
)

logger = logging.getLogger(__name__)

TRACKED_FIELDS = ("price",)
REQUIRED_FIELDS = ("name", "description", "price", "tags", "images")

# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def _serialize_owner(owner) -> dict | None:
    if owner is None:
        return None
    return {"id": owner.id, "nickname": owner.nickname, "image": owner.image}


def _product_to_dict(product: Product, favorite_count: int) -> dict:
    """List view: no per-requester fields."""
    return {
        "id": product.id,
        "name": product.name,
        "description": product.description,
        "price": product.price,
        "tags": list(product.tags or []),
        "images": list(product.images or []),
        "user_id": product.user_id,
        "owner": _serialize_owner(product.owner),
        "favorite_count": favorite_count,
        "created_at": product.created_at.isoformat() if product.created_at else None,
    }


def _product_detail_to_dict(product: Product, state: ReactionState) -> dict:
    data = _product_to_dict(product, state.count)
    data["is_favorited"] = state.is_reacted
    data["updated_at"] = product.updated_at.isoformat() if product.updated_at else None
    return data


async def _load_product(db: AsyncSession, product_id: int) -> Product | None:
    q = (
        select(Product)
        .where(Product.id == product_id)
        .options(joinedload(Product.owner))
        .execution_options(populate_existing=True)
    )
    return (await db.execute(q)).unique().scalar_one_or_none()


async def _detail(db: AsyncSession, product_id: int, requester_id: int | None) -> dict:
    product = await _load_product(db, product_id)
    if product is None:
        raise NotFoundError("Product not found")
    state = await get_reaction_state(db, ReactionKind.FAVORITE, product_id, requester_id)
    return _product_detail_to_dict(product, state)


async def _delete_favorites(db: AsyncSession, product_id: int) -> None:
    await delete_edges(db, ReactionKind.FAVORITE, product_id)


async def _delete_comments(db: AsyncSession, product_id: int) -> None:
    await db.execute(delete(Comment).where(Comment.product_id == product_id))


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def get_products(
    db: AsyncSession,
    page: int = 1,
    page_size: int = 10,
    order_by: str = "recent",
    keyword: str | None = None,
) -> PaginatedResponse:
    """
    Return a page of products, newest first or most favorited first.

    *keyword* matches name or description, case-insensitively.
    """
    cache_key = list_key(PRODUCTS, page, page_size, order_by, keyword)
    cached = await cache.get(cache_key)
    if cached:
        return PaginatedResponse(**cached)

    conditions = []
    if keyword:
        pattern = f"%{keyword}%"
        conditions.append(or_(Product.name.ilike(pattern), Product.description.ilike(pattern)))

    total: int = (
        await db.execute(select(func.count()).select_from(Product).where(*conditions))
    ).scalar_one()

    favorite_count = count_expression(ReactionKind.FAVORITE).label("favorite_count")
    q = select(Product, favorite_count).where(*conditions).options(joinedload(Product.owner))
    if order_by == "popular":
        q = q.order_by(desc(favorite_count), Product.id.desc())
    else:
        q = q.order_by(Product.created_at.desc(), Product.id.desc())
    rows = (
        await db.execute(q.offset((page - 1) * page_size).limit(page_size))
    ).unique().all()

    response = PaginatedResponse(
        items=[_product_to_dict(product, count) for product, count in rows],
        total=total,
        page=page,
        page_size=page_size,
        pages=math.ceil(total / page_size) if total > 0 else 0,
    )
    await cache.set(cache_key, response.model_dump())
    return response


async def get_product(db: AsyncSession, product_id: int, requester_id: int | None = None) -> dict:
    """Detail view including ``favorite_count`` and the requester's ``is_favorited``."""
    return await _detail(db, product_id, requester_id)


async def create_product(db: AsyncSession, user_id: int, data: ProductCreate) -> dict:
    product = Product(
        name=data.name,
        description=data.description,
        price=data.price,
        tags=data.tags,
        images=data.images,
        user_id=user_id,
    )
    db.add(product)
    await db.flush()

    cache.invalidate_after_commit(db, PRODUCTS)
    return await _detail(db, product.id, user_id)


async def update_product(
    db: AsyncSession, product_id: int, user_id: int, data: ProductUpdate
) -> dict:
    """
    Partially update a product owned by *user_id*.

    When the price changes, every user who favorited the product gets one
    ``PRICE_CHANGED`` notification before this returns.  That path commits
    the session itself (see module notes).
    """
    result = await mutation_service.mutate_owned(
        db,
        Product,
        product_id,
        user_id,
        data.model_dump(exclude_unset=True),
        tracked_fields=TRACKED_FIELDS,
        required_fields=REQUIRED_FIELDS,
    )
    response = await _detail(db, product_id, user_id)
    cache.invalidate_after_commit(db, PRODUCTS)

    if "price" in result.tracked_changes:
        old_price, new_price = result.tracked_changes["price"]
        logger.info("Product id=%s price changed %s -> %s", product_id, old_price, new_price)
        await db.commit()
        await cache.flush_pending(db)
        await notification_service.fan_out_price_change(db, product_id, new_price)

    return response


async def delete_product(db: AsyncSession, product_id: int, user_id: int) -> None:
    """Delete a product owned by *user_id* together with its favorites and comments."""
    await mutation_service.delete_owned(
        db, Product, product_id, user_id, cascade=(_delete_favorites, _delete_comments)
    )
    cache.invalidate_after_commit(db, PRODUCTS)
