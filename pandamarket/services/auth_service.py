"""
Auth service — registration, login and token refresh.

Registration and login both end in ``tokens.issue_token_pair``; the router
turns the pair into cookies.  Login never reveals whether the email or the
password was wrong.
"""
import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from pandamarket.errors import AuthenticationError, ConflictError
from pandamarket.models import User
from pandamarket.passwords import hash_password, verify_password
from pandamarket.schemas import LoginRequest, RegisterRequest
from pandamarket.services.user_service import user_to_dict
from pandamarket.tokens import TokenKind, TokenPair, issue_token_pair, verify_token

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid credentials"


@dataclass(frozen=True)
class AuthResult:
    user: dict
    tokens: TokenPair


async def _find_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


async def register(db: AsyncSession, data: RegisterRequest) -> AuthResult:
    """
    Create a user and issue a session.

    The email is checked before the password is hashed so a duplicate costs
    no bcrypt work.  A concurrent registration that slips past the check is
    caught by the unique constraint and reported the same way.
    """
    email = data.email.strip().lower()
    if await _find_by_email(db, email) is not None:
        raise ConflictError("User already exists")

    user = User(
        email=email,
        nickname=data.nickname,
        password_hash=hash_password(data.password),
        image=data.image,
    )
    db.add(user)
    try:
        await db.flush()
    except IntegrityError:
        raise ConflictError("User already exists") from None

    logger.info("Registered user id=%s", user.id)
    return AuthResult(user=user_to_dict(user), tokens=issue_token_pair(user.id))


async def login(db: AsyncSession, data: LoginRequest) -> AuthResult:
    user = await _find_by_email(db, data.email.strip().lower())
    if user is None or not verify_password(data.password, user.password_hash):
        logger.info("Failed login for email=%s", data.email)
        raise AuthenticationError(INVALID_CREDENTIALS)

    logger.info("User id=%s logged in", user.id)
    return AuthResult(user=user_to_dict(user), tokens=issue_token_pair(user.id))


async def refresh(db: AsyncSession, refresh_token: str | None) -> AuthResult:
    """
    Exchange a valid refresh token for a new token pair.

    Both tokens are rotated.  The presented refresh token is not revoked and
    stays usable until it expires.  A token whose user no longer exists is
    rejected like an invalid one.
    """
    if not refresh_token:
        raise AuthenticationError("Refresh token required")
    claims = verify_token(refresh_token, TokenKind.REFRESH)

    user = await db.get(User, claims.user_id)
    if user is None:
        raise AuthenticationError("Invalid or expired token")

    return AuthResult(user=user_to_dict(user), tokens=issue_token_pair(user.id))
