import re
import uuid
from datetime import datetime, timezone

from sqlalchemy import (JSON, Boolean, CheckConstraint, Column, DateTime, Enum,
                        Index, Integer, String, Text, Uuid, event, func)
from sqlalchemy.orm import validates

from ..base import Base

CATEGORIES = (
    "politics",
    "sports",
    "technology",
    "entertainment",
    "business",
    "health",
    "education",
    "crime",
    "weather",
    "trending",
)

SLUG_MAX_LENGTH = 60
_NON_ALNUM = re.compile(r"[^a-z0-9]+")


class InvalidCategory(ValueError):
    """Raised when an article category is outside the fixed set."""


def slugify(title: str) -> str:
    """Derive a URL-safe slug: lowercase, hyphen-separated, at most 60 characters."""
    slug = _NON_ALNUM.sub("-", (title or "").lower()).strip("-")
    slug = slug[:SLUG_MAX_LENGTH].rstrip("-")
    return slug or "article"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Article(Base):
    __tablename__ = "news_articles"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    slug = Column(String(SLUG_MAX_LENGTH), unique=True, nullable=False, index=True)
    title = Column(Text, nullable=False, index=True)
    content = Column(Text, nullable=False)
    excerpt = Column(Text, nullable=False)
    category = Column(
        Enum(
            *CATEGORIES,
            name="news_category",
            native_enum=False,
            create_constraint=True,
            validate_strings=True,
        ),
        nullable=False,
        index=True,
    )
    subcategory = Column(String, nullable=True, index=True)
    state = Column(String, nullable=True, index=True)
    city = Column(String, nullable=True, index=True)
    image_url = Column(Text, nullable=False, default="")
    image_prompt = Column(Text, nullable=True)
    tags = Column(JSON, nullable=False, default=list)
    source = Column(String, nullable=False, default="AI Generated")
    views = Column(Integer, nullable=False, default=0)
    likes = Column(Integer, nullable=False, default=0)
    shares = Column(Integer, nullable=False, default=0)
    trending = Column(Boolean, nullable=False, default=False, index=True)
    featured = Column(Boolean, nullable=False, default=False, index=True)
    seo_title = Column(Text, nullable=True)
    seo_description = Column(Text, nullable=True)
    seo_keywords = Column(JSON, nullable=False, default=list)
    generation_metadata = Column(JSON, nullable=True)
    published_at = Column(DateTime, nullable=False, default=_utcnow, index=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("views >= 0", name="ck_news_articles_views_non_negative"),
        CheckConstraint("likes >= 0", name="ck_news_articles_likes_non_negative"),
        CheckConstraint("shares >= 0", name="ck_news_articles_shares_non_negative"),
        Index("ix_news_articles_category_published", "category", "published_at"),
        Index("ix_news_articles_trending_published", "trending", "published_at"),
        Index("ix_news_articles_featured_published", "featured", "published_at"),
        Index("ix_news_articles_state_category_published", "state", "category", "published_at"),
    )

    @validates("category")
    def validate_category(self, key, value):
        if value not in CATEGORIES:
            raise InvalidCategory(f"Unknown category {value!r}; expected one of {', '.join(CATEGORIES)}")
        return value

    @validates("slug")
    def validate_slug(self, key, value):
        if self.slug is not None and value != self.slug:
            raise ValueError(f"Slug of article {self.id} is immutable")
        return value

    def __repr__(self):
        return f"<Article {self.slug!r} ({self.category})>"


@event.listens_for(Article, "before_insert")
def _assign_slug(mapper, connection, target):
    if not target.slug:
        target.slug = slugify(target.title)
