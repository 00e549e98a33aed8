"""
User service — the authenticated user's own profile and collections.

The password digest never leaves this module: ``user_to_dict`` is the only
serialiser and it omits it.
"""
import math

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from pandamarket.errors import AuthenticationError, NotFoundError, ValidationError
from pandamarket.models import Favorite, Product, User
from pandamarket.passwords import hash_password, verify_password
from pandamarket.schemas import PaginatedResponse, PasswordChange, UserUpdate
from pandamarket.services.reaction_service import ReactionKind, count_expression


def user_to_dict(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "nickname": user.nickname,
        "image": user.image,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


def _product_summary(product: Product, favorite_count: int) -> dict:
    return {
        "id": product.id,
        "name": product.name,
        "price": product.price,
        "images": product.images,
        "favorite_count": favorite_count,
        "created_at": product.created_at.isoformat() if product.created_at else None,
    }


async def _get_user(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None:
        # The token outlived its user.
        raise NotFoundError("User not found")
    return user


async def get_me(db: AsyncSession, user_id: int) -> dict:
    return user_to_dict(await _get_user(db, user_id))


async def update_me(db: AsyncSession, user_id: int, data: UserUpdate) -> dict:
    changes = data.model_dump(exclude_unset=True)
    if not changes:
        raise ValidationError("No fields to update")
    if changes.get("nickname", "") is None:
        raise ValidationError("Nickname cannot be empty")

    user = await _get_user(db, user_id)
    for name, value in changes.items():
        setattr(user, name, value)
    await db.flush()
    return user_to_dict(user)


async def change_password(db: AsyncSession, user_id: int, data: PasswordChange) -> None:
    user = await _get_user(db, user_id)
    if not verify_password(data.current_password, user.password_hash):
        raise AuthenticationError("Invalid credentials")
    user.password_hash = hash_password(data.new_password)
    await db.flush()


async def _paginate_products(db: AsyncSession, condition, page: int, page_size: int, join_favorites: bool):
    base = select(Product)
    if join_favorites:
        base = base.join(Favorite, Favorite.product_id == Product.id)
    base = base.where(condition)

    total: int = (
        await db.execute(select(func.count()).select_from(base.subquery()))
    ).scalar_one()
    rows = (
        await db.execute(
            base.add_columns(count_expression(ReactionKind.FAVORITE))
            .order_by(Product.created_at.desc(), Product.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
    ).all()

    return PaginatedResponse(
        items=[_product_summary(product, count) for product, count in rows],
        total=total,
        page=page,
        page_size=page_size,
        pages=math.ceil(total / page_size) if total > 0 else 0,
    )


async def list_my_products(db: AsyncSession, user_id: int, page: int = 1, page_size: int = 10) -> PaginatedResponse:
    """Products the user is selling."""
    return await _paginate_products(db, Product.user_id == user_id, page, page_size, join_favorites=False)


async def list_my_favorites(db: AsyncSession, user_id: int, page: int = 1, page_size: int = 10) -> PaginatedResponse:
    """Products the user has favorited."""
    return await _paginate_products(db, Favorite.user_id == user_id, page, page_size, join_favorites=True)
