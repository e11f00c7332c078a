from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ArticleSummaryOut(CamelModel):
    """Article without its body, as returned by list endpoints."""

    id: UUID = Field(..., alias="_id", description="Server-assigned article id")
    slug: str
    title: str
    excerpt: str
    category: str
    subcategory: Optional[str] = None
    state: Optional[str] = None
    city: Optional[str] = None
    image_url: str = ""
    tags: List[str] = Field(default_factory=list)
    source: str = "AI Generated"
    views: int = 0
    likes: int = 0
    shares: int = 0
    trending: bool = False
    featured: bool = False
    seo_title: Optional[str] = None
    seo_description: Optional[str] = None
    seo_keywords: List[str] = Field(default_factory=list)
    published_at: datetime
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ArticleOut(ArticleSummaryOut):
    """Full article."""

    content: str
    image_prompt: Optional[str] = None
    generation_metadata: Optional[Dict[str, Any]] = None


class NewsListOut(CamelModel):
    news: List[ArticleSummaryOut]
    total_pages: int = Field(..., description="ceil(total / limit)")
    current_page: int
    total: int


class CategoryNewsListOut(NewsListOut):
    category: str


class CategoryCountOut(CamelModel):
    category: str = Field(..., alias="_id")
    count: int
    latest: Optional[datetime] = None


class EngagementIn(BaseModel):
    action: Literal["like", "share"]


class GenerateNewsIn(BaseModel):
    count: int = Field(default=10, ge=1, le=100, description="Number of articles to generate")
