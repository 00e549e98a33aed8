"""
Mutation orchestrator for owned resources.

Every update/delete of an article, product or comment runs the same
sequence::

    Lookup -> (NotFound | OwnershipCheck) -> (Forbidden | Apply)
           -> (no tracked change | tracked change detected)

Existence is always checked before ownership, so a missing row is a 404
and a row owned by someone else is a 403.  Detecting a tracked change is
this module's job; acting on it (notification fan-out) belongs to the
caller, which decides when to commit.
"""
from dataclasses import dataclass, field
from typing import Any, Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pandamarket.errors import NotFoundError, ValidationError
from pandamarket.ownership import Owned, ensure_owner


@dataclass
class MutationResult:
    resource: Any
    # field -> (old, new), only for tracked fields whose value changed
    tracked_changes: dict[str, tuple[Any, Any]] = field(default_factory=dict)

    @property
    def tracked_change_detected(self) -> bool:
        return bool(self.tracked_changes)


def _label(model) -> str:
    return model.__name__


def reject_null_fields(changes: dict[str, Any], required: Iterable[str]) -> None:
    """Partial updates may omit a required column but never null it."""
    for name in required:
        if name in changes and changes[name] is None:
            raise ValidationError(f"'{name}' cannot be null")


async def get_owned(db: AsyncSession, model, resource_id: int, requester_id: int) -> Owned:
    """Lookup then OwnershipCheck; returns the row when *requester_id* owns it."""
    resource = (
        await db.execute(select(model).where(model.id == resource_id))
    ).scalar_one_or_none()
    if resource is None:
        raise NotFoundError(f"{_label(model)} not found")
    ensure_owner(resource, requester_id)
    return resource


async def mutate_owned(
    db: AsyncSession,
    model,
    resource_id: int,
    requester_id: int,
    changes: dict[str, Any],
    tracked_fields: Iterable[str] = (),
    required_fields: Iterable[str] = (),
) -> MutationResult:
    """
    Apply *changes* to an owned resource and report tracked-field deltas.

    The payload is only judged once the caller is known to own the row: a
    missing row is a 404 and a foreign one a 403 whatever the body holds.
    Only keys present in *changes* are written; none of *required_fields*
    may be set to null.  The row is flushed and refreshed so server-side
    columns (``updated_at``) are loaded; nothing is committed here.
    """
    resource = await get_owned(db, model, resource_id, requester_id)

    if not changes:
        raise ValidationError("No fields to update")
    reject_null_fields(changes, required_fields)

    before = {name: getattr(resource, name) for name in tracked_fields}
    for name, value in changes.items():
        setattr(resource, name, value)
    await db.flush()
    await db.refresh(resource)

    deltas = {
        name: (old, getattr(resource, name))
        for name, old in before.items()
        if getattr(resource, name) != old
    }
    return MutationResult(resource=resource, tracked_changes=deltas)


async def delete_owned(
    db: AsyncSession,
    model,
    resource_id: int,
    requester_id: int,
    cascade: Iterable = (),
) -> None:
    """
    Lookup, OwnershipCheck, then delete the row.

    *cascade* holds async callables ``(db, resource_id)`` run before the
    delete (reaction edges, comments).  Rows that merely mention the
    resource, such as notifications, are left in place.
    """
    resource = await get_owned(db, model, resource_id, requester_id)
    for remove_children in cascade:
        await remove_children(db, resource_id)
    await db.delete(resource)
    await db.flush()
