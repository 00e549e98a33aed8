from fastapi import APIRouter, Depends
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from pandamarket.database import get_db
from pandamarket.models import Article, Comment, Favorite, Notification, Product, User
from pandamarket.schemas import MetricsResponse
from pandamarket.cache import cache

router = APIRouter(prefix="/api/v1/metrics", tags=["metrics"])


async def _count(db: AsyncSession, model) -> int:
    return (await db.execute(select(func.count()).select_from(model))).scalar_one()


@router.get("", response_model=MetricsResponse)
async def get_metrics(db: AsyncSession = Depends(get_db)):
    total_products = await _count(db, Product)
    total_favorites = await _count(db, Favorite)
    avg_favorites = total_favorites / total_products if total_products > 0 else 0

    return MetricsResponse(
        total_users=await _count(db, User),
        total_articles=await _count(db, Article),
        total_products=total_products,
        total_comments=await _count(db, Comment),
        total_favorites=total_favorites,
        total_notifications=await _count(db, Notification),
        avg_favorites_per_product=round(avg_favorites, 2),
        cache_info=cache.stats,
    )
