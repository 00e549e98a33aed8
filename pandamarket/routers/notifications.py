from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from sqlalchemy.ext.asyncio import AsyncSession

from pandamarket.config import settings
from pandamarket.database import get_db
from pandamarket.dependencies import get_current_identity
from pandamarket.errors import AuthenticationError
from pandamarket.middleware import SessionIdentity
from pandamarket.realtime import hub
from pandamarket.schemas import NotificationResponse, PaginatedResponse, UnreadCount
from pandamarket.services import notification_service
from pandamarket.tokens import TokenKind, verify_token

router = APIRouter(prefix="/api/v1/notifications", tags=["notifications"])


@router.get("", response_model=PaginatedResponse)
async def list_notifications(
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    unread_only: bool = False,
    identity: SessionIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    return await notification_service.list_notifications(
        db, identity.user_id, page, page_size, unread_only
    )


@router.get("/unread-count", response_model=UnreadCount)
async def unread_count(
    identity: SessionIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    return UnreadCount(count=await notification_service.count_unread(db, identity.user_id))


@router.patch("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    notification_id: int,
    identity: SessionIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    return await notification_service.mark_read(db, notification_id, identity.user_id)


@router.post("/read-all", response_model=UnreadCount)
async def mark_all_read(
    identity: SessionIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    await notification_service.mark_all_read(db, identity.user_id)
    return UnreadCount(count=0)


@router.websocket("/ws")
async def notification_stream(websocket: WebSocket):
    """
    Push ``PRICE_CHANGED`` notifications to the caller as they are created.

    The socket is authenticated from the access-token cookie sent with the
    handshake; a missing or invalid token closes it with 1008.  A "ping"
    text frame is answered with ``{"type": "PONG"}``.
    """
    token = websocket.cookies.get(settings.ACCESS_TOKEN_COOKIE_NAME)
    try:
        if not token:
            raise AuthenticationError("Authentication required")
        claims = verify_token(token, TokenKind.ACCESS)
    except AuthenticationError as exc:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=exc.message)
        return

    await hub.connect(claims.user_id, websocket)
    try:
        # The only inbound frame is a keepalive "ping"; anything else is ignored.
        while True:
            if await websocket.receive_text() == "ping":
                await websocket.send_json({"type": "PONG"})
    except WebSocketDisconnect:
        pass
    finally:
        hub.disconnect(claims.user_id, websocket)
