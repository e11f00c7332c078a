from typing import List, Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from services.news_api.app.schema import (ArticleOut, ArticleSummaryOut,
                                          CategoryCountOut,
                                          CategoryNewsListOut, EngagementIn,
                                          NewsListOut)
from shared.app_logging.logger import get_logger
from shared.database import crud
from shared.database.session import get_db_session

logger = get_logger("newsdesk.api.routes")

router = APIRouter(prefix="/news", tags=["news"])

Category = Literal[
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
]


def _summaries(articles) -> List[ArticleSummaryOut]:
    return [ArticleSummaryOut.model_validate(article) for article in articles]


@router.get("", response_model=NewsListOut)
def list_news(
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=100),
    category: Optional[Category] = None,
    state: Optional[str] = None,
    trending: Optional[bool] = None,
    featured: Optional[bool] = None,
    search: Optional[str] = None,
    db: Session = Depends(get_db_session),
):
    """Paginated, filtered article list (content omitted)."""
    filters = crud.ArticleFilters(
        category=category,
        state=state,
        trending=trending,
        featured=featured,
        search=search,
    )
    try:
        articles, total = crud.list_articles(db, filters, page=page, limit=limit)
    except Exception as e:
        logger.exception("Error listing news: %s", e)
        raise HTTPException(500, "Failed to fetch news")

    return NewsListOut(
        news=_summaries(articles),
        total_pages=crud.total_pages(total, limit),
        current_page=page,
        total=total,
    )


@router.get("/trending/latest", response_model=List[ArticleSummaryOut])
def trending_news(db: Session = Depends(get_db_session)):
    try:
        return _summaries(crud.latest_trending(db, limit=10))
    except Exception as e:
        logger.exception("Error fetching trending news: %s", e)
        raise HTTPException(500, "Failed to fetch trending news")


@router.get("/featured/latest", response_model=List[ArticleSummaryOut])
def featured_news(db: Session = Depends(get_db_session)):
    try:
        return _summaries(crud.latest_featured(db, limit=6))
    except Exception as e:
        logger.exception("Error fetching featured news: %s", e)
        raise HTTPException(500, "Failed to fetch featured news")


@router.get("/meta/categories", response_model=List[CategoryCountOut])
def categories_meta(db: Session = Depends(get_db_session)):
    try:
        return [CategoryCountOut(**row) for row in crud.category_counts(db)]
    except Exception as e:
        logger.exception("Error fetching category counts: %s", e)
        raise HTTPException(500, "Failed to fetch categories")


@router.get("/category/{category}", response_model=CategoryNewsListOut)
def news_by_category(
    category: Category,
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=100),
    db: Session = Depends(get_db_session),
):
    try:
        articles, total = crud.list_by_category(db, category, page=page, limit=limit)
    except Exception as e:
        logger.exception("Error fetching %s news: %s", category, e)
        raise HTTPException(500, "Failed to fetch news")

    return CategoryNewsListOut(
        news=_summaries(articles),
        total_pages=crud.total_pages(total, limit),
        current_page=page,
        total=total,
        category=category,
    )


@router.get("/{slug}", response_model=ArticleOut)
def news_detail(slug: str, db: Session = Depends(get_db_session)):
    """Full article; each read counts as a view."""
    article = crud.get_article_by_slug(db, slug)
    if article is None:
        raise HTTPException(404, "News article not found")

    try:
        crud.increment_views(db, article.id)
        db.refresh(article)
    except crud.ArticleNotFound:
        raise HTTPException(404, "News article not found")
    except Exception as e:
        logger.exception("Error recording view for %s: %s", slug, e)
        raise HTTPException(500, "Failed to fetch news article")

    return ArticleOut.model_validate(article)


@router.patch("/{article_id}/engagement")
def update_engagement(article_id: UUID, body: EngagementIn, db: Session = Depends(get_db_session)):
    """Add one like or share and return the new counter."""
    field = crud.ENGAGEMENT_FIELDS[body.action]
    try:
        value = crud.increment_engagement(db, article_id, body.action)
    except crud.ArticleNotFound:
        raise HTTPException(404, "News article not found")
    except Exception as e:
        logger.exception("Error updating engagement for %s: %s", article_id, e)
        raise HTTPException(500, "Failed to update engagement")

    return {field: value}
