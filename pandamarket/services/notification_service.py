"""
Notification service — price-change fan-out and the recipient's inbox.

Notifications are never created by a client request; the only producer is
``fan_out_price_change``, called by the product service after a committed
price change.

Fan-out contract
----------------
- One ``PRICE_CHANGED`` notification per distinct favoriting user, payload
  ``{"product_id": ..., "price": ...}``.
- The whole batch is one multi-row INSERT committed in its own
  transaction: either every recipient gets a row or none does.
- A failed batch is rolled back and retried up to
  ``settings.FANOUT_MAX_ATTEMPTS`` times.  After that the product change is
  still committed and ``FanOutPartialFailure`` is raised; recipients are
  never dropped silently.
- Once the batch is committed each recipient with an open WebSocket gets
  the same payload pushed; the push is best effort.
"""
import logging
import math
from datetime import datetime, timezone

from sqlalchemy import func, insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from pandamarket.config import settings
from pandamarket.errors import FanOutPartialFailure, NotFoundError
from pandamarket.models import Notification, NotificationType
from pandamarket.ownership import ensure_owner
from pandamarket.realtime import hub
from pandamarket.schemas import PaginatedResponse
from pandamarket.services.reaction_service import ReactionKind, list_reacting_user_ids

logger = logging.getLogger(__name__)


def _notification_to_dict(notification: Notification) -> dict:
    return {
        "id": notification.id,
        "type": notification.type.value,
        "payload": notification.payload,
        "created_at": notification.created_at.isoformat() if notification.created_at else None,
        "read_at": notification.read_at.isoformat() if notification.read_at else None,
    }


# ---------------------------------------------------------------------------
# Fan-out
# ---------------------------------------------------------------------------

def build_price_changed_batch(recipient_ids: set[int], product_id: int, price: int) -> list[dict]:
    return [
        {
            "user_id": user_id,
            "type": NotificationType.PRICE_CHANGED,
            "payload": {"product_id": product_id, "price": price},
        }
        for user_id in sorted(recipient_ids)
    ]


async def create_notifications(db: AsyncSession, batch: list[dict]) -> None:
    """Persist *batch* with a single INSERT; all rows or none."""
    if not batch:
        return
    await db.execute(insert(Notification), batch)


async def fan_out_price_change(db: AsyncSession, product_id: int, price: int) -> int:
    """
    Notify every user who favorited *product_id* of its new *price*.

    Must be called after the price change is committed: the favoriting set
    is read afterwards, so every favorite that existed before the change is
    included.  Commits on success and returns the number of notifications.
    """
    recipients = await list_reacting_user_ids(db, ReactionKind.FAVORITE, product_id)
    if not recipients:
        return 0

    batch = build_price_changed_batch(recipients, product_id, price)
    attempts = max(1, settings.FANOUT_MAX_ATTEMPTS)
    for attempt in range(1, attempts + 1):
        try:
            await create_notifications(db, batch)
            await db.commit()
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.warning(
                "Price fan-out for product=%s failed (attempt %d/%d): %s",
                product_id, attempt, attempts, exc,
            )
            continue
        logger.info(
            "Price fan-out for product=%s: %d notification(s), price=%s",
            product_id, len(batch), price,
        )
        await hub.publish_many(
            sorted(recipients),
            {"type": NotificationType.PRICE_CHANGED.value, "payload": {"product_id": product_id, "price": price}},
        )
        return len(batch)

    logger.error(
        "Price fan-out for product=%s gave up after %d attempts; %d recipient(s) not notified",
        product_id, attempts, len(batch),
    )
    raise FanOutPartialFailure(
        "Product updated but price-change notifications could not be delivered",
        resource_id=product_id,
        recipients=len(batch),
    )


# ---------------------------------------------------------------------------
# Inbox
# ---------------------------------------------------------------------------

async def list_notifications(
    db: AsyncSession,
    user_id: int,
    page: int = 1,
    page_size: int = 10,
    unread_only: bool = False,
) -> PaginatedResponse:
    """Return the recipient's notifications, newest first."""
    conditions = [Notification.user_id == user_id]
    if unread_only:
        conditions.append(Notification.read_at.is_(None))

    total: int = (
        await db.execute(select(func.count()).select_from(Notification).where(*conditions))
    ).scalar_one()
    rows = (
        await db.execute(
            select(Notification)
            .where(*conditions)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
    ).scalars().all()

    return PaginatedResponse(
        items=[_notification_to_dict(n) for n in rows],
        total=total,
        page=page,
        page_size=page_size,
        pages=math.ceil(total / page_size) if total > 0 else 0,
    )


async def count_unread(db: AsyncSession, user_id: int) -> int:
    q = (
        select(func.count())
        .select_from(Notification)
        .where(Notification.user_id == user_id, Notification.read_at.is_(None))
    )
    return (await db.execute(q)).scalar_one()


async def mark_read(db: AsyncSession, notification_id: int, user_id: int) -> dict:
    """
    Mark one notification as read.

    404 when it does not exist, 403 when it belongs to someone else.
    Marking an already-read notification keeps its original ``read_at``.
    """
    notification = (
        await db.execute(select(Notification).where(Notification.id == notification_id))
    ).scalar_one_or_none()
    if notification is None:
        raise NotFoundError("Notification not found")
    ensure_owner(notification, user_id)

    if notification.read_at is None:
        notification.read_at = datetime.now(timezone.utc)
        await db.flush()
    return _notification_to_dict(notification)


async def mark_all_read(db: AsyncSession, user_id: int) -> int:
    """Mark every unread notification of *user_id* as read; returns how many changed."""
    result = await db.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.read_at.is_(None))
        .values(read_at=datetime.now(timezone.utc))
    )
    return result.rowcount or 0
