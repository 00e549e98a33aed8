"""
Token service — signed access/refresh tokens and their cookie contract.

Design notes
------------
- Access and refresh tokens are HS256 JWTs signed with two independent
  secrets, so a leaked access-signing key cannot forge refresh tokens and
  vice versa.  The ``typ`` claim is checked as well.
- Verification failures (bad signature, expired, wrong kind, malformed
  claims) all surface as the same ``AuthenticationError`` message.
- Tokens are stateless.  There is no server-side revocation: a token stays
  valid until it expires.  The ``jti`` claim is carried so a denylist can
  be added later without changing the token format.
- ``issue_token_pair`` is the only issuance path; register, login and
  refresh all go through it.
"""
import enum
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from fastapi import Response
from jose import JWTError, jwt

from pandamarket.config import settings
from pandamarket.errors import AuthenticationError

logger = logging.getLogger(__name__)

INVALID_TOKEN_MESSAGE = "Invalid or expired token"


class TokenKind(str, enum.Enum):
    ACCESS = "access"
    REFRESH = "refresh"


@dataclass(frozen=True)
class SessionClaims:
    user_id: int
    kind: TokenKind
    issued_at: datetime
    expires_at: datetime
    token_id: str


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


def _secret_for(kind: TokenKind) -> str:
    if kind is TokenKind.ACCESS:
        return settings.JWT_ACCESS_TOKEN_SECRET
    return settings.JWT_REFRESH_TOKEN_SECRET


def _default_ttl(kind: TokenKind) -> timedelta:
    if kind is TokenKind.ACCESS:
        return timedelta(minutes=settings.ACCESS_TOKEN_TTL_MINUTES)
    return timedelta(days=settings.REFRESH_TOKEN_TTL_DAYS)


def create_token(
    user_id: int,
    kind: TokenKind,
    *,
    now: datetime | None = None,
    ttl: timedelta | None = None,
) -> str:
    """Sign a token of *kind* for *user_id*."""
    issued_at = now or datetime.now(timezone.utc)
    expires_at = issued_at + (ttl if ttl is not None else _default_ttl(kind))
    payload = {
        "sub": str(user_id),
        "typ": kind.value,
        "iat": int(issued_at.timestamp()),
        "exp": int(expires_at.timestamp()),
        "jti": uuid.uuid4().hex,
    }
    return jwt.encode(payload, _secret_for(kind), algorithm=settings.JWT_ALGORITHM)


def verify_token(token: str, kind: TokenKind) -> SessionClaims:
    """
    Validate *token* as a token of *kind* and return its claims.

    Raises ``AuthenticationError`` for any failure.
    """
    try:
        payload = jwt.decode(token, _secret_for(kind), algorithms=[settings.JWT_ALGORITHM])
        if payload.get("typ") != kind.value:
            raise JWTError("token kind mismatch")
        return SessionClaims(
            user_id=int(payload["sub"]),
            kind=kind,
            issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            token_id=str(payload.get("jti", "")),
        )
    except (JWTError, KeyError, TypeError, ValueError) as exc:
        logger.debug("Rejected %s token: %s", kind.value, exc)
        raise AuthenticationError(INVALID_TOKEN_MESSAGE) from None


def issue_token_pair(user_id: int) -> TokenPair:
    return TokenPair(
        access_token=create_token(user_id, TokenKind.ACCESS),
        refresh_token=create_token(user_id, TokenKind.REFRESH),
    )


# ---------------------------------------------------------------------------
# Cookie contract
# ---------------------------------------------------------------------------

def set_auth_cookies(response: Response, pair: TokenPair) -> None:
    """Attach both tokens to *response* as HttpOnly cookies."""
    secure = settings.is_production
    response.set_cookie(
        key=settings.ACCESS_TOKEN_COOKIE_NAME,
        value=pair.access_token,
        max_age=settings.ACCESS_TOKEN_TTL_MINUTES * 60,
        path="/",
        httponly=True,
        secure=secure,
        samesite=settings.COOKIE_SAMESITE,
    )
    response.set_cookie(
        key=settings.REFRESH_TOKEN_COOKIE_NAME,
        value=pair.refresh_token,
        max_age=settings.REFRESH_TOKEN_TTL_DAYS * 24 * 60 * 60,
        path=settings.REFRESH_TOKEN_COOKIE_PATH,
        httponly=True,
        secure=secure,
        samesite=settings.COOKIE_SAMESITE,
    )


def clear_auth_cookies(response: Response) -> None:
    secure = settings.is_production
    response.delete_cookie(
        key=settings.ACCESS_TOKEN_COOKIE_NAME,
        path="/",
        httponly=True,
        secure=secure,
        samesite=settings.COOKIE_SAMESITE,
    )
    response.delete_cookie(
        key=settings.REFRESH_TOKEN_COOKIE_NAME,
        path=settings.REFRESH_TOKEN_COOKIE_PATH,
        httponly=True,
        secure=secure,
        samesite=settings.COOKIE_SAMESITE,
    )
