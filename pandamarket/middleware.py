import logging
import time
from contextvars import ContextVar
from dataclasses import dataclass

from sqlalchemy import event
from starlette.requests import HTTPConnection
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Receive, Scope, Send

from pandamarket.config import settings
from pandamarket.errors import AuthenticationError
from pandamarket.tokens import TokenKind, verify_token

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Per-request context variable
# ---------------------------------------------------------------------------

query_count_var: ContextVar[int] = ContextVar("query_count", default=0)


def install_query_counter(engine) -> None:
    """
    Register a ``before_cursor_execute`` event listener on *engine* that
    increments the per-request ``query_count_var`` for every SQL statement.

    Must be called once per engine (production engine in ``database.py``,
    test engine in ``conftest.py``).
    """
    sync_engine = engine.sync_engine

    @event.listens_for(sync_engine, "before_cursor_execute")
    def _count_query(conn, cursor, statement, parameters, context, executemany):
        query_count_var.set(query_count_var.get() + 1)


# ---------------------------------------------------------------------------
# Middleware (pure ASGI; BaseHTTPMiddleware would isolate the ContextVar)
# ---------------------------------------------------------------------------

class TimingMiddleware:
    """
    Pure ASGI middleware that adds two diagnostic response headers:

    - ``X-Response-Time-Ms``: wall-clock time for the entire request.
    - ``X-Query-Count``: total SQL queries executed during the request.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] not in ("http", "websocket"):
            await self.app(scope, receive, send)
            return

        query_count_var.set(0)
        start = time.perf_counter()

        async def send_wrapper(message):
            if message["type"] == "http.response.start":
                duration_ms = round((time.perf_counter() - start) * 1000, 2)
                headers = list(message.get("headers", []))
                headers.append((b"x-response-time-ms", str(duration_ms).encode()))
                headers.append((b"x-query-count", str(query_count_var.get()).encode()))
                message["headers"] = headers
            await send(message)

        await self.app(scope, receive, send_wrapper)


# ---------------------------------------------------------------------------
# Session middleware
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SessionIdentity:
    """Authenticated caller, taken from the access-token claims."""

    user_id: int


# Paths that establish or end a session.  A stale access cookie must not
# block the caller from logging in again or refreshing.
PUBLIC_PATHS: frozenset[str] = frozenset(
    {
        "/health",
        "/api/v1/auth/register",
        "/api/v1/auth/login",
        "/api/v1/auth/refresh",
        "/api/v1/auth/logout",
    }
)


class SessionMiddleware:
    """
    Pure ASGI middleware that resolves the caller's identity from the
    access-token cookie.

    - No cookie: the request continues anonymously; routes that require a
      user reject it in ``get_current_identity``.
    - Invalid or expired cookie: 401 before any handler runs (ignored on
      ``PUBLIC_PATHS``).
    - Valid cookie: ``request.state.identity`` is set.

    No database lookup is made; the token claims are authoritative for the
    token's lifetime.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        state = scope.setdefault("state", {})
        state["identity"] = None

        conn = HTTPConnection(scope)
        token = conn.cookies.get(settings.ACCESS_TOKEN_COOKIE_NAME)
        if token:
            try:
                claims = verify_token(token, TokenKind.ACCESS)
            except AuthenticationError as exc:
                if scope["path"] not in PUBLIC_PATHS:
                    logger.info("Rejected request to %s: %s", scope["path"], exc.message)
                    response = JSONResponse(
                        status_code=exc.status_code,
                        content={"detail": exc.message, "code": exc.code},
                    )
                    await response(scope, receive, send)
                    return
            else:
                state["identity"] = SessionIdentity(user_id=claims.user_id)

        await self.app(scope, receive, send)
