import math
import uuid
from dataclasses import dataclass
from functools import wraps
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import String, column, delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, defer
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from shared.app_logging.logger import get_logger
from shared.database.models.article import (CATEGORIES, SLUG_MAX_LENGTH,
                                            Article, InvalidCategory, slugify)

logger = get_logger("newsdesk.crud")

ENGAGEMENT_FIELDS = {"like": "likes", "share": "shares"}
MAX_SLUG_SUFFIX = 100


class DuplicateSlug(Exception):
    """Raised when an article slug is already taken."""

    def __init__(self, slug: str):
        self.slug = slug
        super().__init__(f"Slug already exists: {slug}")


class ArticleNotFound(Exception):
    """Raised when no article matches the given identifier."""


@dataclass
class ArticleFilters:
    category: Optional[str] = None
    state: Optional[str] = None
    trending: Optional[bool] = None
    featured: Optional[bool] = None
    search: Optional[str] = None


def transient_retry(func):
    """Retry a read on dropped connections, rolling the session back in between."""

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, max=5),
        retry=retry_if_exception_type(OperationalError),
        reraise=True,
    )
    @wraps(func)
    def wrapper(db: Session, *args, **kwargs):
        try:
            return func(db, *args, **kwargs)
        except OperationalError as e:
            logger.warning(f"Transient database error in {func.__name__}: {e}")
            db.rollback()
            raise

    return wrapper


def total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _slug_exists(db: Session, slug: str) -> bool:
    return db.execute(select(Article.id).where(Article.slug == slug)).first() is not None


def _unique_slug(db: Session, base: str) -> str:
    """Append -2, -3, ... to a derived slug until it is free."""
    if not _slug_exists(db, base):
        return base
    for n in range(2, MAX_SLUG_SUFFIX + 1):
        suffix = f"-{n}"
        candidate = base[: SLUG_MAX_LENGTH - len(suffix)].rstrip("-") + suffix
        if not _slug_exists(db, candidate):
            return candidate
    raise DuplicateSlug(base)


def create_article(db: Session, data: Dict[str, Any]) -> Article:
    """
    Persist a new article.

    A slug derived from the title is disambiguated when taken; an explicitly
    supplied slug that is taken raises DuplicateSlug.
    """
    data = dict(data)
    if data.get("category") not in CATEGORIES:
        raise InvalidCategory(f"Unknown category {data.get('category')!r}")

    explicit_slug = data.pop("slug", None)
    if explicit_slug:
        if _slug_exists(db, explicit_slug):
            raise DuplicateSlug(explicit_slug)
        slug = explicit_slug
    else:
        slug = _unique_slug(db, slugify(data.get("title", "")))

    article = Article(slug=slug, **data)
    try:
        db.add(article)
        db.commit()
        db.refresh(article)
        logger.info(f"✅ Article saved: {article.slug}")
        return article
    except IntegrityError as e:
        db.rollback()
        if _slug_exists(db, slug):
            logger.warning(f"Slug conflict on insert: {slug}")
            raise DuplicateSlug(slug) from e
        logger.error(f"❌ Error saving article {slug}: {e}")
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Error saving article {slug}: {e}")
        raise


@transient_retry
def get_article_by_slug(db: Session, slug: str) -> Optional[Article]:
    return db.execute(select(Article).where(Article.slug == slug)).scalar_one_or_none()


@transient_retry
def get_article(db: Session, article_id: uuid.UUID) -> Optional[Article]:
    return db.get(Article, article_id)


def _tag_matches(pattern: str, dialect: str):
    """EXISTS over the individual tags, so the JSON punctuation never matches."""
    elements = func.json_each if dialect == "sqlite" else func.json_array_elements_text
    values = elements(Article.tags).table_valued(column("value", String))
    # PostgreSQL names the column after the alias unless it is listed: tag(value)
    tag = values.alias("tag") if dialect == "sqlite" else values.render_derived(name="tag")
    return select(1).select_from(tag).where(tag.c.value.ilike(pattern, escape="\\")).exists()


def _filtered(stmt, filters: ArticleFilters, dialect: str = "postgresql"):
    if filters.category:
        stmt = stmt.where(Article.category == filters.category)
    if filters.state:
        stmt = stmt.where(Article.state == filters.state)
    if filters.trending:
        stmt = stmt.where(Article.trending.is_(True))
    if filters.featured:
        stmt = stmt.where(Article.featured.is_(True))
    if filters.search and filters.search.strip():
        pattern = f"%{_escape_like(filters.search.strip())}%"
        stmt = stmt.where(
            or_(
                Article.title.ilike(pattern, escape="\\"),
                Article.content.ilike(pattern, escape="\\"),
                _tag_matches(pattern, dialect),
            )
        )
    return stmt


@transient_retry
def list_articles(
    db: Session,
    filters: Optional[ArticleFilters] = None,
    page: int = 1,
    limit: int = 12,
) -> Tuple[List[Article], int]:
    """Newest-first page of articles matching the filters, plus the total count."""
    filters = filters or ArticleFilters()
    dialect = db.get_bind().dialect.name
    try:
        total = db.execute(_filtered(select(func.count(Article.id)), filters, dialect)).scalar_one()
        stmt = (
            _filtered(select(Article), filters, dialect)
            .options(defer(Article.content))
            .order_by(Article.published_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        articles = list(db.execute(stmt).scalars())
        logger.debug(f"Listed {len(articles)}/{total} articles (page={page}, limit={limit})")
        return articles, total
    except Exception as e:
        db.rollback()
        logger.error(f"Error listing articles: {e}")
        raise


def list_by_category(db: Session, category: str, page: int = 1, limit: int = 12) -> Tuple[List[Article], int]:
    return list_articles(db, ArticleFilters(category=category), page=page, limit=limit)


def search_articles(db: Session, text: str, page: int = 1, limit: int = 12) -> Tuple[List[Article], int]:
    return list_articles(db, ArticleFilters(search=text), page=page, limit=limit)


def latest_trending(db: Session, limit: int = 10) -> List[Article]:
    articles, _ = list_articles(db, ArticleFilters(trending=True), page=1, limit=limit)
    return articles


def latest_featured(db: Session, limit: int = 6) -> List[Article]:
    articles, _ = list_articles(db, ArticleFilters(featured=True), page=1, limit=limit)
    return articles


@transient_retry
def count_by_category(db: Session, category: str) -> int:
    return db.execute(
        select(func.count(Article.id)).where(Article.category == category)
    ).scalar_one()


@transient_retry
def category_counts(db: Session) -> List[Dict[str, Any]]:
    """Per-category article counts and latest publish time, largest first."""
    count = func.count(Article.id).label("count")
    rows = db.execute(
        select(Article.category, count, func.max(Article.published_at).label("latest"))
        .group_by(Article.category)
        .order_by(count.desc(), Article.category)
    ).all()
    return [{"category": category, "count": n, "latest": latest} for category, n, latest in rows]


def _increment(db: Session, article_id: uuid.UUID, field: str) -> int:
    column = getattr(Article, field)
    try:
        new_value = db.execute(
            update(Article)
            .where(Article.id == article_id)
            .values({field: column + 1})
            .returning(column)
        ).scalar_one_or_none()
        if new_value is None:
            db.rollback()
            raise ArticleNotFound(f"Article {article_id} not found")
        db.commit()
        return new_value
    except ArticleNotFound:
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Error incrementing {field} for {article_id}: {e}")
        raise


def increment_views(db: Session, article_id: uuid.UUID) -> int:
    return _increment(db, article_id, "views")


def increment_engagement(db: Session, article_id: uuid.UUID, kind: str) -> int:
    """Add one like or share; returns the new counter value."""
    if kind not in ENGAGEMENT_FIELDS:
        raise ValueError(f"Unknown engagement kind {kind!r}")
    return _increment(db, article_id, ENGAGEMENT_FIELDS[kind])


def delete_all_articles(db: Session) -> int:
    """Administrative wipe of every article."""
    try:
        result = db.execute(delete(Article))
        db.commit()
        logger.warning(f"Deleted {result.rowcount} articles")
        return result.rowcount
    except Exception as e:
        db.rollback()
        logger.error(f"Error deleting articles: {e}")
        raise
