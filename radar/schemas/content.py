"""内容管理的请求/响应模型"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

ContentStatus = Literal["draft", "published", "archived"]
ContentType = Literal["article", "guide", "video", "checklist", "faq"]


class ContentCreate(BaseModel):
    slug: str = Field(..., min_length=1, max_length=150, pattern=r"^[a-z0-9][a-z0-9-]*$")
    title: str = Field(..., min_length=1, max_length=255)
    summary: str | None = None
    body: str = ""
    content_type: ContentType = "article"
    category: str | None = Field(default=None, max_length=50)
    tags: list[str] = Field(default_factory=list)
    status: ContentStatus = "draft"


class ContentUpdate(BaseModel):
    slug: str | None = Field(default=None, min_length=1, max_length=150, pattern=r"^[a-z0-9][a-z0-9-]*$")
    title: str | None = Field(default=None, min_length=1, max_length=255)
    summary: str | None = None
    body: str | None = None
    content_type: ContentType | None = None
    category: str | None = Field(default=None, max_length=50)
    tags: list[str] | None = None
    status: ContentStatus | None = None


class ContentResponse(BaseModel):
    id: str
    tenant_id: str | None = None
    slug: str
    title: str
    summary: str | None = None
    body: str
    content_type: str
    category: str | None = None
    tags: list[str]
    status: str
    published_at: datetime | None = None
    author_id: str | None = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ContentListResponse(BaseModel):
    items: list[ContentResponse]
    total: int
