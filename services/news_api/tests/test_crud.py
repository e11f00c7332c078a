import uuid
from datetime import timedelta

import pytest
from sqlalchemy import text

from shared.database import crud
from shared.database.models.article import Article, InvalidCategory, slugify


@pytest.mark.parametrize(
    "title,expected",
    [
        ("Mumbai Launches Metro Line", "mumbai-launches-metro-line"),
        ("  GST Council: Rates Cut 5%!  ", "gst-council-rates-cut-5"),
        ("Pune's IT-Park -- Phase 2", "pune-s-it-park-phase-2"),
        ("!!!", "article"),
    ],
)
def test_slugify(title, expected):
    assert slugify(title) == expected


def test_slug_is_capped_without_trailing_hyphen():
    slug = slugify("word " * 30)
    assert len(slug) <= 60
    assert not slug.endswith("-")
    assert not slug.startswith("-")


def test_create_derives_slug_and_defaults(db, make_article):
    article = make_article(title="Monsoon Reaches Kerala Coast")

    assert article.slug == "monsoon-reaches-kerala-coast"
    assert isinstance(article.id, uuid.UUID)
    assert (article.views, article.likes, article.shares) == (0, 0, 0)
    assert article.trending is False and article.featured is False
    assert article.source == "AI Generated"
    assert article.tags == []


def test_derived_slug_collisions_are_disambiguated(make_article):
    first = make_article(title="Budget Session Begins")
    second = make_article(title="Budget Session Begins")
    third = make_article(title="Budget session begins!")

    assert [first.slug, second.slug, third.slug] == [
        "budget-session-begins",
        "budget-session-begins-2",
        "budget-session-begins-3",
    ]


def test_long_slug_suffix_stays_within_limit(make_article):
    title = "A very long headline about the state assembly election results tonight"
    make_article(title=title)
    second = make_article(title=title)
    assert len(second.slug) <= 60
    assert second.slug.endswith("-2")


def test_explicit_duplicate_slug_rejected(make_article):
    make_article(slug="fixed-slug")
    with pytest.raises(crud.DuplicateSlug) as exc_info:
        make_article(slug="fixed-slug")
    assert exc_info.value.slug == "fixed-slug"


def test_unknown_category_rejected(make_article, db):
    with pytest.raises(InvalidCategory):
        make_article(category="gossip")
    assert db.query(Article).count() == 0


def test_category_validated_on_model():
    with pytest.raises(InvalidCategory):
        Article(title="t", content="c", excerpt="e", category="gossip")


def test_slug_is_immutable(make_article):
    article = make_article()
    with pytest.raises(ValueError):
        article.slug = "something-else"


def test_list_is_newest_first_and_paginated(db, make_article):
    for _ in range(25):
        make_article()

    page, total = crud.list_articles(db, page=3, limit=10)

    assert total == 25
    assert len(page) == 5
    assert crud.total_pages(total, 10) == 3
    first_page, _ = crud.list_articles(db, page=1, limit=10)
    assert first_page[0].title == "Story number 25"
    dates = [a.published_at for a in first_page]
    assert dates == sorted(dates, reverse=True)


def test_total_pages_edges():
    assert crud.total_pages(0, 12) == 0
    assert crud.total_pages(12, 12) == 1
    assert crud.total_pages(13, 12) == 2


def test_filters(db, make_article):
    make_article(category="sports", state="Karnataka", trending=True)
    make_article(category="sports", state="Maharashtra", featured=True)
    make_article(category="health", state="Karnataka")

    def titles(**filters):
        articles, _ = crud.list_articles(db, crud.ArticleFilters(**filters))
        return sorted(a.title for a in articles)

    assert titles(category="sports") == ["Story number 1", "Story number 2"]
    assert titles(state="Karnataka") == ["Story number 1", "Story number 3"]
    assert titles(category="sports", state="Karnataka") == ["Story number 1"]
    assert titles(trending=True) == ["Story number 1"]
    assert titles(featured=True) == ["Story number 2"]
    # false flags do not filter
    assert len(titles(trending=False)) == 3


def test_search_is_case_insensitive_across_fields(db, make_article):
    make_article(title="Monsoon Floods Hit Assam")
    make_article(content="A cyclone warning was issued for the coast.")
    make_article(tags=["Cricket", "IPL"])
    make_article(title="Unrelated")

    def found(text):
        articles, total = crud.search_articles(db, text)
        return total

    assert found("MONSOON") == 1
    assert found("Cyclone") == 1
    assert found("cricket") == 1
    assert found("   ") == 4
    assert found("no such words") == 0


def test_search_treats_wildcards_literally(db, make_article):
    make_article(title="Rates cut by 5%")
    make_article(title="Rates cut by 50 points")

    _, total = crud.search_articles(db, "5%")
    assert total == 1



def test_search_matches_individual_tags(db, make_article):
    make_article(tags=["Cricket", "IPL"])
    make_article(tags=["Café Culture"])
    make_article()

    def found(text):
        _, total = crud.search_articles(db, text)
        return total

    assert found("[") == 0
    assert found('", "') == 0
    assert found("café") == 1
    assert found("culture") == 1
    assert found("ipl") == 1


def test_non_ascii_tags_stored_unescaped(db, make_article):
    article = make_article(tags=["Café Culture"])
    stored = db.execute(
        text("SELECT tags FROM news_articles WHERE slug = :slug"), {"slug": article.slug}
    ).scalar_one()
    assert "Café" in stored


def test_latest_trending_and_featured_limits(db, make_article):
    for _ in range(12):
        make_article(trending=True, featured=True)
    make_article()

    trending = crud.latest_trending(db)
    featured = crud.latest_featured(db)

    assert len(trending) == 10
    assert len(featured) == 6
    assert trending[0].title == "Story number 12"


def test_category_counts(db, make_article):
    make_article(category="sports")
    latest = make_article(category="sports")
    make_article(category="weather")

    counts = crud.category_counts(db)

    assert counts[0] == {"category": "sports", "count": 2, "latest": latest.published_at}
    assert counts[1]["category"] == "weather"
    assert crud.count_by_category(db, "sports") == 2
    assert crud.count_by_category(db, "crime") == 0


def test_increment_views(db, make_article):
    article = make_article()
    assert crud.increment_views(db, article.id) == 1
    assert crud.increment_views(db, article.id) == 2
    db.refresh(article)
    assert article.views == 2


def test_increment_engagement(db, make_article):
    article = make_article()
    assert crud.increment_engagement(db, article.id, "like") == 1
    assert crud.increment_engagement(db, article.id, "share") == 1
    assert crud.increment_engagement(db, article.id, "like") == 2
    db.refresh(article)
    assert (article.likes, article.shares, article.views) == (2, 1, 0)


def test_increment_unknown_article(db):
    with pytest.raises(crud.ArticleNotFound):
        crud.increment_views(db, uuid.uuid4())


def test_increment_unknown_kind(db, make_article):
    article = make_article()
    with pytest.raises(ValueError):
        crud.increment_engagement(db, article.id, "dislike")


def test_get_by_slug_and_id(db, make_article):
    article = make_article(title="Find Me")
    assert crud.get_article_by_slug(db, "find-me").id == article.id
    assert crud.get_article(db, article.id).slug == "find-me"
    assert crud.get_article_by_slug(db, "missing") is None


def test_delete_all(db, make_article):
    make_article()
    make_article()
    assert crud.delete_all_articles(db) == 2
    assert crud.list_articles(db) == ([], 0)


def test_published_at_defaults_to_now(db):
    article = crud.create_article(
        db, {"title": "Fresh", "content": "c", "excerpt": "e", "category": "business"}
    )
    assert article.published_at is not None
    assert article.created_at is not None
    assert abs(article.published_at - article.created_at) < timedelta(minutes=5)
