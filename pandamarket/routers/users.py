from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from pandamarket.database import get_db
from pandamarket.dependencies import get_current_identity
from pandamarket.middleware import SessionIdentity
from pandamarket.schemas import PaginatedResponse, PasswordChange, UserResponse, UserUpdate
from pandamarket.services import user_service

router = APIRouter(prefix="/api/v1/users", tags=["users"])


@router.get("/me", response_model=UserResponse)
async def get_me(
    identity: SessionIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    return await user_service.get_me(db, identity.user_id)


@router.patch("/me", response_model=UserResponse)
async def update_me(
    data: UserUpdate,
    identity: SessionIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    return await user_service.update_me(db, identity.user_id, data)


@router.patch("/me/password", status_code=204)
async def change_password(
    data: PasswordChange,
    identity: SessionIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    await user_service.change_password(db, identity.user_id, data)


@router.get("/me/products", response_model=PaginatedResponse)
async def list_my_products(
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    identity: SessionIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    return await user_service.list_my_products(db, identity.user_id, page, page_size)


@router.get("/me/favorites", response_model=PaginatedResponse)
async def list_my_favorites(
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    identity: SessionIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    return await user_service.list_my_favorites(db, identity.user_id, page, page_size)
