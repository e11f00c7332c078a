"""
Generation loop: drives article generation and persistence.

Articles are produced one at a time with a fixed pause between iterations to
stay under upstream rate limits. A failure on one article is logged and
skipped; quota exhaustion stops the run for the day.
"""

import random
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from prometheus_client import Counter

from services.generator.app.content import (ContentGenerator, GeneratedArticle,
                                            Location)
from services.generator.app.errors import NoArticlesGenerated, QuotaExceeded
from services.generator.app.images import ImageResult, ImageService
from services.generator.app.quota import QuotaTracker
from shared.app_logging.logger import (CorrelationContext, get_logger,
                                       log_error_with_context)
from shared.database.crud import count_by_category, create_article

logger = get_logger("newsdesk.generator.loop")

ARTICLES_GENERATED = Counter("newsdesk_articles_generated_total", "Articles generated and stored", ["category"])
ARTICLES_FAILED = Counter("newsdesk_article_failures_total", "Article generation attempts that failed")
QUOTA_HALTS = Counter("newsdesk_quota_halts_total", "Generation runs stopped by the daily quota")

# Categories the generator writes; "trending" is a storage category only.
GENERATION_CATEGORIES = (
    "politics",
    "sports",
    "technology",
    "entertainment",
    "business",
    "health",
    "education",
    "crime",
    "weather",
)

LOCATIONS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("Maharashtra", ("Mumbai", "Pune", "Nagpur", "Nashik")),
    ("Delhi", ("New Delhi", "Delhi")),
    ("Karnataka", ("Bangalore", "Mysore", "Hubli")),
    ("Tamil Nadu", ("Chennai", "Coimbatore", "Madurai")),
    ("Gujarat", ("Ahmedabad", "Surat", "Vadodara")),
    ("Rajasthan", ("Jaipur", "Udaipur", "Jodhpur")),
    ("West Bengal", ("Kolkata", "Durgapur", "Siliguri")),
    ("Uttar Pradesh", ("Lucknow", "Kanpur", "Varanasi", "Agra")),
    ("Haryana", ("Gurgaon", "Faridabad", "Chandigarh")),
    ("Punjab", ("Ludhiana", "Amritsar", "Jalandhar")),
)


@dataclass
class GenerationReport:
    requested: int
    completed: int = 0
    failed: int = 0
    quota_exhausted: bool = False
    article_ids: List[str] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "requested": self.requested,
            "completed": self.completed,
            "failed": self.failed,
            "quotaExhausted": self.quota_exhausted,
            "articleIds": list(self.article_ids),
        }


class NewsGenerationService:
    """Generates, flags and stores articles."""

    def __init__(
        self,
        generator: ContentGenerator,
        images: ImageService,
        quota: QuotaTracker,
        session_factory: Callable[[], Any],
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], None] = time.sleep,
        delay_seconds: float = 2.0,
        trending_probability: float = 0.15,
        featured_probability: float = 0.10,
    ):
        self.generator = generator
        self.images = images
        self.quota = quota
        self.session_factory = session_factory
        self.rng = rng or random.Random()
        self.sleep = sleep
        self.delay_seconds = delay_seconds
        self.trending_probability = trending_probability
        self.featured_probability = featured_probability

    def pick_target(self) -> Tuple[str, Location]:
        category = self.rng.choice(GENERATION_CATEGORIES)
        state, cities = self.rng.choice(LOCATIONS)
        city = self.rng.choice(cities)
        return category, Location(state=state, city=city)

    def _build_document(
        self,
        article: GeneratedArticle,
        image: ImageResult,
        category: str,
        location: Location,
        trending: bool,
        featured: bool,
    ) -> Dict[str, Any]:
        return {
            "title": article.title,
            "content": article.content,
            "excerpt": article.excerpt,
            "category": category,
            "state": location.state,
            "city": location.city,
            "image_url": image.url or "",
            "image_prompt": image.prompt,
            "tags": article.tags,
            "trending": trending,
            "featured": featured,
            "seo_title": article.seo_title or article.title,
            "seo_description": article.seo_description or article.excerpt,
            "seo_keywords": article.seo_keywords,
            "generation_metadata": {
                "model": article.model,
                "generatedAt": datetime.now(timezone.utc).isoformat(),
                "tokensUsed": article.tokens_used,
                "apiKeyUsed": None if article.api_key_index is None else str(article.api_key_index),
            },
        }

    def _produce(self, category: str, location: Location, trending: bool, featured: bool) -> str:
        """Generate and persist one article; returns its id."""
        article = self.generator.generate_article(category, location)
        image = self.images.generate_image(article.title, category, location)
        document = self._build_document(article, image, category, location, trending, featured)

        db = self.session_factory()
        try:
            stored = create_article(db, document)
        finally:
            db.close()

        ARTICLES_GENERATED.labels(category=category).inc()
        logger.info(f"Generated: {stored.title} ({category} - {location.city})")
        return str(stored.id)

    def generate_daily_news(self, count: int) -> GenerationReport:
        """Generate ``count`` articles at random categories and locations."""
        report = GenerationReport(requested=count)

        with CorrelationContext() as correlation_id:
            logger.info(f"Starting generation of {count} news articles (run {correlation_id})")

            for i in range(count):
                if i > 0 and self.delay_seconds:
                    self.sleep(self.delay_seconds)

                category, location = self.pick_target()
                try:
                    self.quota.check_token_quota(self.generator.estimate_tokens(category, location))
                    trending = self.rng.random() < self.trending_probability
                    featured = self.rng.random() < self.featured_probability
                    report.article_ids.append(self._produce(category, location, trending, featured))
                    report.completed += 1
                except QuotaExceeded as e:
                    report.quota_exhausted = True
                    QUOTA_HALTS.inc()
                    logger.warning(
                        f"Stopping generation: {e}. Completed {report.completed}/{count} articles"
                    )
                    break
                except Exception as e:
                    report.failed += 1
                    ARTICLES_FAILED.inc()
                    log_error_with_context(
                        logger, e, {"iteration": i + 1, "category": category, "city": location.city}
                    )
                    continue

            logger.info(
                f"Generation finished: {report.completed}/{count} completed, {report.failed} failed"
            )
        return report

    def generate_initial_news(self, min_per_category: int = 5) -> GenerationReport:
        """
        Top up every category to ``min_per_category`` articles.

        Within a category the article at position 0 is featured and the one at
        position 1 is trending, counting existing articles first. Raises
        NoArticlesGenerated when articles were needed but none could be made.
        """
        plan: List[Tuple[str, int, int]] = []
        db = self.session_factory()
        try:
            for category in GENERATION_CATEGORIES:
                existing = count_by_category(db, category)
                needed = max(0, min_per_category - existing)
                plan.append((category, existing, needed))
        finally:
            db.close()

        total_needed = sum(needed for _, _, needed in plan)
        report = GenerationReport(requested=total_needed)
        if total_needed == 0:
            logger.info("Every category already has enough articles")
            return report

        with CorrelationContext() as correlation_id:
            logger.info(f"Bootstrapping {total_needed} articles (run {correlation_id})")
            first = True
            for category, existing, needed in plan:
                if report.quota_exhausted:
                    break
                for i in range(needed):
                    if not first and self.delay_seconds:
                        self.sleep(self.delay_seconds)
                    first = False

                    position = existing + i
                    _, location = self.pick_target()
                    try:
                        self.quota.check_token_quota(self.generator.estimate_tokens(category, location))
                        report.article_ids.append(
                            self._produce(category, location, trending=position == 1, featured=position == 0)
                        )
                        report.completed += 1
                    except QuotaExceeded as e:
                        report.quota_exhausted = True
                        QUOTA_HALTS.inc()
                        logger.warning(f"Stopping bootstrap: {e}")
                        break
                    except Exception as e:
                        report.failed += 1
                        ARTICLES_FAILED.inc()
                        log_error_with_context(logger, e, {"category": category, "position": position})

        if report.completed == 0:
            raise NoArticlesGenerated(
                f"Could not generate any of the {total_needed} articles needed to seed categories"
            )
        logger.info(f"Bootstrap finished: {report.completed}/{total_needed} completed")
        return report
