"""
Reaction toggle engine — likes on articles, favorites on products.

Design notes
------------
- The edge row is the only source of truth for "has reacted".  Counts are
  always ``COUNT(*)`` over the edges at read time; nothing is stored on the
  target row.
- Add is ``INSERT ... ON CONFLICT DO NOTHING RETURNING id`` against the
  unique ``(target, user)`` constraint.  A concurrent double-add therefore
  lands as ``ALREADY_EXISTS`` instead of an IntegrityError, and the caller's
  transaction stays usable.
- Remove of a missing edge is a successful no-op.
- Count and "reacted by me" come from one aggregate statement, so they are
  read from the same snapshot.
"""
import enum
import logging
from dataclasses import dataclass

from sqlalchemy import case, delete, func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from pandamarket.cache import ARTICLES, PRODUCTS, cache
from pandamarket.errors import NotFoundError
from pandamarket.models import Article, Favorite, Like, Product

logger = logging.getLogger(__name__)


class ReactionKind(enum.Enum):
    LIKE = "like"
    FAVORITE = "favorite"


class AddOutcome(str, enum.Enum):
    CREATED = "created"
    ALREADY_EXISTS = "already_exists"


@dataclass(frozen=True)
class _EdgeSpec:
    edge: type
    target: type
    fk: str
    label: str
    cache_namespace: str

    @property
    def fk_column(self):
        return getattr(self.edge, self.fk)


_EDGES: dict[ReactionKind, _EdgeSpec] = {
    ReactionKind.LIKE: _EdgeSpec(Like, Article, "article_id", "Article", ARTICLES),
    ReactionKind.FAVORITE: _EdgeSpec(Favorite, Product, "product_id", "Product", PRODUCTS),
}


@dataclass(frozen=True)
class ReactionState:
    count: int
    is_reacted: bool


@dataclass(frozen=True)
class AddResult:
    outcome: AddOutcome
    state: ReactionState

    @property
    def created(self) -> bool:
        return self.outcome is AddOutcome.CREATED


@dataclass(frozen=True)
class RemoveResult:
    removed: bool
    state: ReactionState


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def _ensure_target(db: AsyncSession, spec: _EdgeSpec, resource_id: int) -> None:
    q = select(spec.target.id).where(spec.target.id == resource_id)
    if (await db.execute(q)).scalar_one_or_none() is None:
        raise NotFoundError(f"{spec.label} not found")


def _insert_edge_ignoring_duplicates(db: AsyncSession, spec: _EdgeSpec, resource_id: int, user_id: int):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = postgresql.insert(spec.edge)
    elif dialect == "sqlite":
        stmt = sqlite.insert(spec.edge)
    else:
        raise RuntimeError(f"Unsupported database dialect for reactions: {dialect}")
    return (
        stmt.values({spec.fk: resource_id, "user_id": user_id})
        .on_conflict_do_nothing(index_elements=[spec.fk, "user_id"])
        .returning(spec.edge.id)
    )


def count_expression(kind: ReactionKind):
    """
    Correlated scalar subquery counting *kind* edges of the outer target row.

    Used by list queries that embed the count in every item.
    """
    spec = _EDGES[kind]
    return (
        select(func.count(spec.edge.id))
        .where(spec.fk_column == spec.target.id)
        .correlate(spec.target)
        .scalar_subquery()
    )


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def get_reaction_state(
    db: AsyncSession,
    kind: ReactionKind,
    resource_id: int,
    user_id: int | None = None,
) -> ReactionState:
    """Return the edge count and whether *user_id* holds one of the edges."""
    spec = _EDGES[kind]
    mine = func.coalesce(func.sum(case((spec.edge.user_id == user_id, 1), else_=0)), 0)
    q = select(func.count(spec.edge.id), mine).where(spec.fk_column == resource_id)
    count, reacted = (await db.execute(q)).one()
    return ReactionState(count=int(count), is_reacted=user_id is not None and int(reacted) > 0)


async def add_reaction(
    db: AsyncSession, kind: ReactionKind, resource_id: int, user_id: int
) -> AddResult:
    """
    Create the ``(resource_id, user_id)`` edge if it does not exist yet.

    Raises ``NotFoundError`` when the target is missing.  An existing edge
    is reported as ``AddOutcome.ALREADY_EXISTS``; it is not an error.
    """
    spec = _EDGES[kind]
    await _ensure_target(db, spec, resource_id)

    result = await db.execute(_insert_edge_ignoring_duplicates(db, spec, resource_id, user_id))
    outcome = AddOutcome.CREATED if result.scalar_one_or_none() is not None else AddOutcome.ALREADY_EXISTS

    if outcome is AddOutcome.CREATED:
        cache.invalidate_after_commit(db, spec.cache_namespace)
    logger.debug("%s %s=%s user=%s: %s", kind.value, spec.fk, resource_id, user_id, outcome.value)

    state = await get_reaction_state(db, kind, resource_id, user_id)
    return AddResult(outcome=outcome, state=state)


async def remove_reaction(
    db: AsyncSession, kind: ReactionKind, resource_id: int, user_id: int
) -> RemoveResult:
    """Delete the edge if present.  Removing a missing edge succeeds as a no-op."""
    spec = _EDGES[kind]
    await _ensure_target(db, spec, resource_id)

    result = await db.execute(
        delete(spec.edge).where(spec.fk_column == resource_id, spec.edge.user_id == user_id)
    )
    removed = (result.rowcount or 0) > 0
    if removed:
        cache.invalidate_after_commit(db, spec.cache_namespace)

    state = await get_reaction_state(db, kind, resource_id, user_id)
    return RemoveResult(removed=removed, state=state)


async def list_reacting_user_ids(db: AsyncSession, kind: ReactionKind, resource_id: int) -> set[int]:
    """Distinct ids of users holding a *kind* edge on *resource_id*."""
    spec = _EDGES[kind]
    q = select(spec.edge.user_id).where(spec.fk_column == resource_id).distinct()
    return set((await db.execute(q)).scalars().all())


async def delete_edges(db: AsyncSession, kind: ReactionKind, resource_id: int) -> int:
    """Remove every *kind* edge of *resource_id* (target deletion cascade)."""
    spec = _EDGES[kind]
    result = await db.execute(delete(spec.edge).where(spec.fk_column == resource_id))
    return result.rowcount or 0
