from sqlalchemy import select

import pytest

from services.generator.app.content import ContentGenerator, ModelConfig
from services.generator.app.errors import NoArticlesGenerated
from services.generator.app.key_pool import ApiKeyPool
from services.generator.app.loop import (GENERATION_CATEGORIES, LOCATIONS,
                                         NewsGenerationService)
from services.generator.app.quota import QuotaTracker
from shared.database.crud import create_article
from shared.database.models.article import Article


def all_articles(session_factory):
    with session_factory() as db:
        return list(db.execute(select(Article).order_by(Article.published_at)).scalars())


def test_end_to_end_article_is_stored(make_service, session_factory):
    service = make_service()

    report = service.generate_daily_news(1)

    assert report.completed == 1
    [article] = all_articles(session_factory)
    # ScriptedRandom picks the first category/state/city
    assert article.slug == "mumbai-launches-metro-line"
    assert article.category == GENERATION_CATEGORIES[0]
    assert article.state == LOCATIONS[0][0]
    assert article.city == "Mumbai"
    assert article.views == 0 and article.likes == 0 and article.shares == 0
    assert article.tags == ["metro", "mumbai"]
    assert article.generation_metadata["model"] == "gpt-4"
    assert article.generation_metadata["tokensUsed"] == 400
    assert article.image_url.startswith("https://placehold.co/")
    assert report.article_ids == [str(article.id)]


def test_flags_follow_random_draws(make_service, session_factory, scripted_random):
    # (trending draw, featured draw) per article
    rng = scripted_random([0.10, 0.50, 0.50, 0.05, 0.14, 0.09, 0.15, 0.10])
    service = make_service(rng=rng)

    service.generate_daily_news(4)

    flags = [(a.trending, a.featured) for a in all_articles(session_factory)]
    assert flags == [(True, False), (False, True), (True, True), (False, False)]


def test_duplicate_titles_get_distinct_slugs(make_service, session_factory):
    make_service().generate_daily_news(3)

    slugs = [a.slug for a in all_articles(session_factory)]
    assert slugs == [
        "mumbai-launches-metro-line",
        "mumbai-launches-metro-line-2",
        "mumbai-launches-metro-line-3",
    ]


def test_sleeps_between_iterations_only(make_service, sleeps):
    make_service().generate_daily_news(3)
    assert sleeps == [2.0, 2.0]


def test_failures_are_absorbed(make_service, failing_generator, session_factory):
    service = make_service(generator=failing_generator)

    report = service.generate_daily_news(5)

    assert report.completed == 0
    assert report.failed == 5
    assert report.quota_exhausted is False
    assert failing_generator.calls == 5
    assert all_articles(session_factory) == []


def test_quota_stops_loop_before_exceeding(fake_openai, images, session_factory, sleeps):
    # each call reserves 1500 and uses 400: the fourth check would pass 2500
    quota = QuotaTracker(daily_token_quota=2500, daily_image_quota=0)
    generator = ContentGenerator(
        quota=quota,
        key_pool=ApiKeyPool(["k"]),
        models=[ModelConfig("gpt-4", 1000, prompt_token_allowance=500)],
        client_factory=fake_openai.factory,
    )
    service = NewsGenerationService(
        generator=generator,
        images=images,
        quota=quota,
        session_factory=session_factory,
        sleep=sleeps.append,
    )

    report = service.generate_daily_news(10)

    assert report.quota_exhausted is True
    assert report.completed == 3
    assert quota.daily_token_usage <= quota.daily_token_quota
    assert len(all_articles(session_factory)) == 3


def test_quota_covers_prompt_tokens(fake_openai, images, session_factory, sleeps):
    # usage includes the prompt, so each call reports more than max_tokens
    fake_openai.tokens = 1250
    quota = QuotaTracker(daily_token_quota=2300, daily_image_quota=0)
    generator = ContentGenerator(
        quota=quota,
        key_pool=ApiKeyPool(["k"]),
        models=[ModelConfig("gpt-4", 1000)],
        client_factory=fake_openai.factory,
    )
    service = NewsGenerationService(
        generator=generator,
        images=images,
        quota=quota,
        session_factory=session_factory,
        sleep=sleeps.append,
    )

    report = service.generate_daily_news(10)

    assert report.quota_exhausted is True
    assert report.completed == 1
    assert quota.daily_token_usage == 1250
    assert quota.daily_token_usage <= quota.daily_token_quota


def test_partial_failure_continues(make_service, fake_openai, session_factory):
    fake_openai.script("gpt-4", RuntimeError("down"), "not json")
    fake_openai.script("gpt-3.5-turbo", RuntimeError("down"))

    report = make_service().generate_daily_news(2)

    # first article: both models fail; second: primary malformed, fallback succeeds
    assert report.failed == 1
    assert report.completed == 1
    assert len(all_articles(session_factory)) == 1


def test_initial_news_fills_each_category(make_service, session_factory):
    report = make_service().generate_initial_news(min_per_category=2)

    assert report.requested == 2 * len(GENERATION_CATEGORIES)
    assert report.completed == report.requested
    articles = all_articles(session_factory)
    for category in GENERATION_CATEGORIES:
        in_category = [a for a in articles if a.category == category]
        assert [(a.featured, a.trending) for a in in_category] == [(True, False), (False, True)]


def test_initial_news_counts_existing_articles(make_service, session_factory):
    with session_factory() as db:
        create_article(db, {"title": "Existing Sports Story", "content": "c", "excerpt": "e", "category": "sports"})

    report = make_service().generate_initial_news(min_per_category=3)

    assert report.requested == 3 * len(GENERATION_CATEGORIES) - 1
    sports = [a for a in all_articles(session_factory) if a.category == "sports"]
    # the existing article holds position 0, so the first new one is trending
    assert [(a.featured, a.trending) for a in sports[1:]] == [(False, True), (False, False)]


def test_initial_news_nothing_needed(make_service):
    report = make_service().generate_initial_news(min_per_category=0)
    assert report.requested == 0
    assert report.completed == 0


def test_initial_news_raises_when_nothing_generated(make_service, failing_generator, session_factory):
    service = make_service(generator=failing_generator)

    with pytest.raises(NoArticlesGenerated):
        service.generate_initial_news(min_per_category=1)
    assert all_articles(session_factory) == []
