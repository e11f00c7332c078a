import random
from functools import lru_cache

from services.generator.app.content import ContentGenerator, default_model_chain
from services.generator.app.images import ImageService
from services.generator.app.key_pool import ApiKeyPool
from services.generator.app.loop import NewsGenerationService
from services.generator.app.quota import QuotaTracker, create_quota_tracker
from shared.config.settings import get_settings


@lru_cache()
def get_quota_tracker() -> QuotaTracker:
    """Process-wide quota tracker shared by every generation run."""
    return create_quota_tracker(get_settings())


def create_generation_service(settings=None, quota=None, session_factory=None) -> NewsGenerationService:
    """Wire the generation pipeline from configuration.

    Raises ValueError when no OpenAI API key is configured.
    """
    settings = settings or get_settings()
    quota = quota or get_quota_tracker()
    if session_factory is None:
        from shared.database.session import SessionLocal

        session_factory = SessionLocal

    generator = ContentGenerator(
        quota=quota,
        key_pool=ApiKeyPool(settings.openai.api_keys),
        models=default_model_chain(settings),
        timeout=settings.openai.timeout,
    )
    images = ImageService(
        quota=quota,
        access_key=settings.images.unsplash_access_key,
        api_url=settings.images.unsplash_api_url,
        placeholder_url=settings.images.placeholder_image_url,
        timeout=settings.images.http_timeout,
    )
    return NewsGenerationService(
        generator=generator,
        images=images,
        quota=quota,
        session_factory=session_factory,
        rng=random.Random(),
        delay_seconds=settings.generation.delay_seconds,
        trending_probability=settings.generation.trending_probability,
        featured_probability=settings.generation.featured_probability,
    )
