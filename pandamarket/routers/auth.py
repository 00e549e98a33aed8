from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from pandamarket.config import settings
from pandamarket.database import get_db
from pandamarket.schemas import LoginRequest, RegisterRequest, UserResponse
from pandamarket.services import auth_service
from pandamarket.tokens import clear_auth_cookies, set_auth_cookies

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


@router.post("/register", status_code=201, response_model=UserResponse)
async def register(data: RegisterRequest, response: Response, db: AsyncSession = Depends(get_db)):
    result = await auth_service.register(db, data)
    set_auth_cookies(response, result.tokens)
    return result.user


@router.post("/login", response_model=UserResponse)
async def login(data: LoginRequest, response: Response, db: AsyncSession = Depends(get_db)):
    result = await auth_service.login(db, data)
    set_auth_cookies(response, result.tokens)
    return result.user


@router.post("/refresh", response_model=UserResponse)
async def refresh(request: Request, response: Response, db: AsyncSession = Depends(get_db)):
    token = request.cookies.get(settings.REFRESH_TOKEN_COOKIE_NAME)
    result = await auth_service.refresh(db, token)
    set_auth_cookies(response, result.tokens)
    return result.user


@router.post("/logout", status_code=204)
async def logout(response: Response):
    clear_auth_cookies(response)
