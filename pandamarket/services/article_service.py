"""
Article service — business logic for the Article aggregate.

Design notes
------------
- List pages are requester-independent (they carry ``like_count`` but no
  ``is_liked``) and go through the cache-aside pattern.  Detail views carry
  the caller's ``is_liked`` flag and are never cached.
- Like counts are computed from the ``likes`` edges at read time: a
  correlated subquery for lists, ``get_reaction_state`` for details.
- Update and delete go through ``mutation_service`` so the existence and
  ownership checks are shared with every other owned resource.
- Service functions flush but do not commit; the transaction boundary
  is owned by the ``get_db`` dependency in the router layer.  List caches
  are queued with ``cache.invalidate_after_commit`` and dropped by it.
"""
import math

from sqlalchemy import delete, desc, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from pandamarket.cache import ARTICLES, cache, list_key
from pandamarket.errors import NotFoundError
from pandamarket.models import Article, Comment
from pandamarket.schemas import ArticleCreate, ArticleUpdate, PaginatedResponse
from pandamarket.services import mutation_service
from pandamarket.services.reaction_service import (
    ReactionKind,
    ReactionState,
    count_expression,
    delete_edges,
    get_reaction_state,
)

# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def _serialize_author(author) -> dict | None:
    if author is None:
        return None
    return {"id": author.id, "nickname": author.nickname, "image": author.image}


def _article_to_dict(article: Article, like_count: int) -> dict:
    """List view: no per-requester fields."""
    return {
        "id": article.id,
        "title": article.title,
        "content": article.content,
        "image": article.image,
        "user_id": article.user_id,
        "author": _serialize_author(article.author),
        "like_count": like_count,
        "created_at": article.created_at.isoformat() if article.created_at else None,
    }


def _article_detail_to_dict(article: Article, state: ReactionState) -> dict:
    data = _article_to_dict(article, state.count)
    data["is_liked"] = state.is_reacted
    data["updated_at"] = article.updated_at.isoformat() if article.updated_at else None
    return data


async def _load_article(db: AsyncSession, article_id: int) -> Article | None:
    q = (
        select(Article)
        .where(Article.id == article_id)
        .options(joinedload(Article.author))
        .execution_options(populate_existing=True)
    )
    return (await db.execute(q)).unique().scalar_one_or_none()


async def _detail(db: AsyncSession, article_id: int, requester_id: int | None) -> dict:
    article = await _load_article(db, article_id)
    if article is None:
        raise NotFoundError("Article not found")
    state = await get_reaction_state(db, ReactionKind.LIKE, article_id, requester_id)
    return _article_detail_to_dict(article, state)


async def _delete_comments(db: AsyncSession, article_id: int) -> None:
    await db.execute(delete(Comment).where(Comment.article_id == article_id))


async def _delete_likes(db: AsyncSession, article_id: int) -> None:
    await delete_edges(db, ReactionKind.LIKE, article_id)


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def get_articles(
    db: AsyncSession,
    page: int = 1,
    page_size: int = 10,
    order_by: str = "recent",
    keyword: str | None = None,
) -> PaginatedResponse:
    """
    Return a page of articles, newest first or most liked first.

    *keyword* matches title or content, case-insensitively.
    """
    cache_key = list_key(ARTICLES, page, page_size, order_by, keyword)
    cached = await cache.get(cache_key)
    if cached:
        return PaginatedResponse(**cached)

    conditions = []
    if keyword:
        pattern = f"%{keyword}%"
        conditions.append(or_(Article.title.ilike(pattern), Article.content.ilike(pattern)))

    total: int = (
        await db.execute(select(func.count()).select_from(Article).where(*conditions))
    ).scalar_one()

    like_count = count_expression(ReactionKind.LIKE).label("like_count")
    q = select(Article, like_count).where(*conditions).options(joinedload(Article.author))
    if order_by == "popular":
        q = q.order_by(desc(like_count), Article.id.desc())
    else:
        q = q.order_by(Article.created_at.desc(), Article.id.desc())
    rows = (
        await db.execute(q.offset((page - 1) * page_size).limit(page_size))
    ).unique().all()

    response = PaginatedResponse(
        items=[_article_to_dict(article, count) for article, count in rows],
        total=total,
        page=page,
        page_size=page_size,
        pages=math.ceil(total / page_size) if total > 0 else 0,
    )
    await cache.set(cache_key, response.model_dump())
    return response


async def get_article(db: AsyncSession, article_id: int, requester_id: int | None = None) -> dict:
    """Detail view including ``like_count`` and the requester's ``is_liked``."""
    return await _detail(db, article_id, requester_id)


async def create_article(db: AsyncSession, user_id: int, data: ArticleCreate) -> dict:
    article = Article(
        title=data.title,
        content=data.content,
        image=data.image,
        user_id=user_id,
    )
    db.add(article)
    await db.flush()

    cache.invalidate_after_commit(db, ARTICLES)
    return await _detail(db, article.id, user_id)


async def update_article(
    db: AsyncSession, article_id: int, user_id: int, data: ArticleUpdate
) -> dict:
    """
    Partially update an article owned by *user_id*.

    Only fields explicitly set in the payload are modified
    (``model_dump(exclude_unset=True)``).
    """
    await mutation_service.mutate_owned(
        db,
        Article,
        article_id,
        user_id,
        data.model_dump(exclude_unset=True),
        required_fields=("title", "content"),
    )
    cache.invalidate_after_commit(db, ARTICLES)
    return await _detail(db, article_id, user_id)


async def delete_article(db: AsyncSession, article_id: int, user_id: int) -> None:
    """Delete an article owned by *user_id* together with its likes and comments."""
    await mutation_service.delete_owned(
        db, Article, article_id, user_id, cascade=(_delete_likes, _delete_comments)
    )
    cache.invalidate_after_commit(db, ARTICLES)
