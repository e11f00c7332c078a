import itertools
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from services.news_api.app.main import app
from shared.database.crud import create_article
from shared.database.session import get_db_session

BASE_TIME = datetime(2024, 3, 1, 8, 0, 0)


@pytest.fixture
def make_article(db):
    """Store an article; each one is published a minute after the previous."""
    counter = itertools.count(1)

    def _make(**overrides):
        n = next(counter)
        data = {
            "title": f"Story number {n}",
            "content": f"Body of story {n}.",
            "excerpt": f"Excerpt {n}",
            "category": "politics",
            "state": "Maharashtra",
            "city": "Mumbai",
            "published_at": BASE_TIME + timedelta(minutes=n),
        }
        data.update(overrides)
        return create_article(db, data)

    return _make


@pytest.fixture
def client(session_factory):
    def override_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db_session] = override_db
    yield TestClient(app)
    app.dependency_overrides.clear()
