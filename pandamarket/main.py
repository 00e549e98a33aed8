import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pandamarket.cache import cache
from pandamarket.errors import register_exception_handlers
from pandamarket.middleware import SessionMiddleware, TimingMiddleware
from pandamarket.routers import articles, auth, comments, images, metrics, notifications, products, users
from pandamarket.config import settings

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    try:
        await cache.connect()
    except Exception as exc:
        logger.warning("Cache unavailable, continuing without it: %s", exc)
    yield
    # Shutdown
    await cache.disconnect()

app = FastAPI(
    title="Pandamarket API",
    description="Marketplace backend: products, articles, comments, favorites and notifications",
    version="1.0.0",
    lifespan=lifespan,
)

# Middleware (last added runs first: CORS -> timing -> session)
app.add_middleware(SessionMiddleware)
app.add_middleware(TimingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Routers
app.include_router(auth.router)
app.include_router(users.router)
app.include_router(articles.router)
app.include_router(products.router)
app.include_router(comments.router)
app.include_router(notifications.router)
app.include_router(images.router)
app.include_router(metrics.router)

@app.get("/health")
async def health():
    return {"status": "healthy", "version": "1.0.0"}
