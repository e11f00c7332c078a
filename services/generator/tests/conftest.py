import json
from collections import defaultdict, deque
from types import SimpleNamespace

import pytest

from services.generator.app.content import ContentGenerator, ModelConfig
from services.generator.app.images import ImageService
from services.generator.app.key_pool import ApiKeyPool
from services.generator.app.loop import NewsGenerationService
from services.generator.app.quota import QuotaTracker

METRO_ARTICLE = {
    "title": "Mumbai Launches Metro Line",
    "content": "The new metro line connects the western suburbs to the business district.",
    "excerpt": "Mumbai opens a new metro corridor.",
    "tags": ["metro", "mumbai"],
}

PRIMARY = ModelConfig(name="gpt-4", max_tokens=1000)
FALLBACK = ModelConfig(name="gpt-3.5-turbo", max_tokens=500, simplified_prompt=True)


class DummyResponse:
    def __init__(self, content, total_tokens):
        # the real .choices[0].message.content / .usage.total_tokens
        msg = SimpleNamespace(content=content)
        self.choices = [SimpleNamespace(message=msg)]
        self.usage = SimpleNamespace(total_tokens=total_tokens)


class FakeOpenAI:
    """Stands in for openai.OpenAI; outcomes are scripted per model name.

    An outcome is a response string or an exception instance; when a model's
    script runs out the default outcome is used.
    """

    def __init__(self, default=None, tokens=400):
        self.default = json.dumps(METRO_ARTICLE) if default is None else default
        self.tokens = tokens
        self.outcomes = defaultdict(deque)
        self.calls = []

    def script(self, model, *outcomes):
        self.outcomes[model].extend(outcomes)

    def factory(self, key):
        fake = self

        class Completions:
            def create(self, **kwargs):
                fake.calls.append({"key": key, **kwargs})
                queue = fake.outcomes[kwargs["model"]]
                outcome = queue.popleft() if queue else fake.default
                if isinstance(outcome, Exception):
                    raise outcome
                return DummyResponse(outcome, fake.tokens)

        return SimpleNamespace(chat=SimpleNamespace(completions=Completions()))


class ScriptedRandom:
    """random.Random stand-in: fixed random() values, first element for choice()."""

    def __init__(self, values=()):
        self.values = deque(values)

    def random(self):
        return self.values.popleft() if self.values else 0.99

    def choice(self, seq):
        return seq[0]


class FailingGenerator:
    """Generator double that fails every call."""

    def __init__(self):
        self.calls = 0

    def estimate_tokens(self, category, location):
        return 100

    def generate_article(self, category, location):
        self.calls += 1
        raise RuntimeError("model unavailable")


@pytest.fixture
def fake_openai():
    return FakeOpenAI()


@pytest.fixture
def quota():
    return QuotaTracker(daily_token_quota=100_000, daily_image_quota=10)


@pytest.fixture
def generator(fake_openai, quota):
    return ContentGenerator(
        quota=quota,
        key_pool=ApiKeyPool(["key-a", "key-b"]),
        models=[PRIMARY, FALLBACK],
        client_factory=fake_openai.factory,
    )


@pytest.fixture
def images(quota):
    return ImageService(quota=quota, access_key=None)


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def make_service(generator, images, quota, session_factory, sleeps):
    def _make(**overrides):
        options = dict(
            generator=generator,
            images=images,
            quota=quota,
            session_factory=session_factory,
            rng=ScriptedRandom(),
            sleep=sleeps.append,
            delay_seconds=2.0,
        )
        options.update(overrides)
        return NewsGenerationService(**options)

    return _make


@pytest.fixture
def metro_article():
    return dict(METRO_ARTICLE)


@pytest.fixture
def scripted_random():
    return ScriptedRandom


@pytest.fixture
def failing_generator():
    return FailingGenerator()
