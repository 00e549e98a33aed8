from fastapi import Query, Request

from pandamarket.config import settings
from pandamarket.errors import AuthenticationError
from pandamarket.middleware import SessionIdentity


class PaginationParams:
    """
    Reusable FastAPI dependency that parses and validates pagination /
    ordering / search query parameters for list endpoints.

    Attributes
    ----------
    page:
        1-based page number (minimum 1).
    page_size:
        Number of items per page, clamped to ``settings.MAX_PAGE_SIZE``
        regardless of the value supplied by the caller.
    order_by:
        ``"recent"`` (newest first) or ``"popular"`` (most liked /
        favorited first).
    keyword:
        Optional case-insensitive substring filter; each service decides
        which columns it matches.
    offset:
        Computed SQL OFFSET derived from *page* and *page_size*.
    """

    def __init__(
        self,
        page: int = Query(
            1,
            ge=1,
            description="Page number (1-based).",
        ),
        page_size: int = Query(
            settings.DEFAULT_PAGE_SIZE,
            ge=1,
            le=100,
            description="Number of items returned per page (max 100).",
        ),
        order_by: str = Query(
            "recent",
            pattern="^(recent|popular)$",
            description="Ordering: 'recent' or 'popular'.",
        ),
        keyword: str | None = Query(
            None,
            max_length=100,
            description="Search keyword.",
        ),
    ) -> None:
        self.page = page
        self.page_size = min(page_size, settings.MAX_PAGE_SIZE)
        self.order_by = order_by
        self.keyword = keyword.strip() if keyword and keyword.strip() else None

    @property
    def offset(self) -> int:
        """SQL OFFSET value computed from the current page and page size."""
        return (self.page - 1) * self.page_size


def get_optional_identity(request: Request) -> SessionIdentity | None:
    """Identity attached by ``SessionMiddleware``, or None for anonymous callers."""
    return getattr(request.state, "identity", None)


def get_current_identity(request: Request) -> SessionIdentity:
    """
    Require an authenticated caller.

    Declared as a route dependency so it resolves before the handler body:
    anonymous mutations fail here, ahead of any existence or ownership check.
    """
    identity = get_optional_identity(request)
    if identity is None:
        raise AuthenticationError("Authentication required")
    return identity
