from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from pandamarket.database import get_db
from pandamarket.dependencies import get_current_identity
from pandamarket.middleware import SessionIdentity
from pandamarket.schemas import CommentResponse, CommentUpdate
from pandamarket.services import comment_service

router = APIRouter(prefix="/api/v1/comments", tags=["comments"])


@router.patch("/{comment_id}", response_model=CommentResponse)
async def update_comment(
    comment_id: int,
    data: CommentUpdate,
    identity: SessionIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    return await comment_service.update_comment(db, comment_id, identity.user_id, data)


@router.delete("/{comment_id}", status_code=204)
async def delete_comment(
    comment_id: int,
    identity: SessionIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    await comment_service.delete_comment(db, comment_id, identity.user_id)
