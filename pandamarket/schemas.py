from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime


# --- Auth / User ---

class RegisterRequest(BaseModel):
    email: str = Field(min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    nickname: str = Field(min_length=1, max_length=100)
    password: str = Field(min_length=4, max_length=72)
    image: str | None = Field(None, max_length=500)


class LoginRequest(BaseModel):
    email: str = Field(max_length=255)
    password: str = Field(max_length=72)


class UserResponse(BaseModel):
    id: int
    email: str
    nickname: str
    image: str | None = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class UserUpdate(BaseModel):
    nickname: str | None = Field(None, min_length=1, max_length=100)
    image: str | None = Field(None, max_length=500)


class PasswordChange(BaseModel):
    current_password: str = Field(max_length=72)
    new_password: str = Field(min_length=4, max_length=72)


# --- Article ---

class ArticleCreate(BaseModel):
    title: str = Field(min_length=1, max_length=300)
    content: str = Field(min_length=1)
    image: str | None = Field(None, max_length=500)


class ArticleUpdate(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=300)
    content: str | None = Field(None, min_length=1)
    image: str | None = Field(None, max_length=500)


# --- Product ---

class ProductCreate(BaseModel):
    name: str = Field(min_length=1, max_length=300)
    description: str = Field(min_length=1)
    price: int = Field(ge=0)
    tags: list[str] = []
    images: list[str] = []


class ProductUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=300)
    description: str | None = Field(None, min_length=1)
    price: int | None = Field(None, ge=0)
    tags: list[str] | None = None
    images: list[str] | None = None


# --- Comment ---

class CommentCreate(BaseModel):
    content: str = Field(min_length=1)


class CommentUpdate(BaseModel):
    content: str = Field(min_length=1)


class CommentResponse(BaseModel):
    id: int
    content: str
    user_id: int
    article_id: int | None = None
    product_id: int | None = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class CommentPage(BaseModel):
    items: list[CommentResponse]
    next_cursor: int | None


# --- Reactions ---

class ReactionResponse(BaseModel):
    count: int
    is_reacted: bool
    created: bool


# --- Notification ---

class NotificationResponse(BaseModel):
    id: int
    type: str
    payload: dict
    created_at: datetime
    read_at: datetime | None = None
    model_config = ConfigDict(from_attributes=True)


class UnreadCount(BaseModel):
    count: int


# --- Images ---

class ImageUploadResponse(BaseModel):
    url: str


# --- Pagination ---

class PaginatedResponse(BaseModel):
    items: list  # Will be typed in router
    total: int
    page: int
    page_size: int
    pages: int


# --- Metrics ---

class MetricsResponse(BaseModel):
    total_users: int
    total_articles: int
    total_products: int
    total_comments: int
    total_favorites: int
    total_notifications: int
    avg_favorites_per_product: float
    cache_info: dict = {}
