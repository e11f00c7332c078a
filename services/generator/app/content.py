"""
Article text generation through the OpenAI chat completions API.

The generator walks an ordered chain of model configurations (primary first,
then fallbacks). Every model failure surfaces as a ``ModelCallError``; quota
exhaustion is raised straight through and never retried.
"""

import json
import math
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from openai import OpenAI

from services.generator.app.errors import (GenerationFailed, MalformedResponse,
                                           ModelCallError, QuotaExceeded)
from services.generator.app.key_pool import ApiKeyPool
from services.generator.app.quota import QuotaTracker
from shared.app_logging.logger import get_logger

logger = get_logger("newsdesk.generator.content")

SYSTEM_PROMPT = (
    "You are a professional Indian news writer. Generate realistic, engaging news "
    "articles with proper structure including title, content, and relevant details. "
    "Ensure the content is appropriate and factual in tone. Always answer with a "
    "single JSON object and nothing else."
)

RESPONSE_FORMAT = """Please provide the response in the following JSON format:
{
  "title": "Engaging news headline",
  "content": "Full article content (minimum 300 words)",
  "excerpt": "Brief summary (50-100 words)",
  "tags": ["tag1", "tag2", "tag3"],
  "seoTitle": "SEO optimized title",
  "seoDescription": "SEO meta description",
  "seoKeywords": ["keyword1", "keyword2", "keyword3"]
}"""

SIMPLE_RESPONSE_FORMAT = (
    'Respond only with JSON: {"title": "...", "content": "...", "excerpt": "...", "tags": ["..."]}'
)

CATEGORY_PROMPTS = {
    "politics": "Generate a realistic Indian political news article about {city}, {state}. Include current political developments, government policies, or local political events. Make it engaging and informative.",
    "sports": "Create an Indian sports news article related to {city}, {state}. Cover local sports events, achievements, or sports infrastructure developments.",
    "technology": "Write a technology news article about IT developments, startups, or digital initiatives in {city}, {state}. Focus on innovation and technological progress.",
    "entertainment": "Generate an entertainment news article about Bollywood, regional cinema, or cultural events in {city}, {state}.",
    "business": "Create a business news article about economic developments, new business launches, or market trends in {city}, {state}.",
    "health": "Write a health-related news article about medical developments, health initiatives, or wellness programs in {city}, {state}.",
    "education": "Generate an education news article about schools, colleges, educational policies, or academic achievements in {city}, {state}.",
    "crime": "Create a crime news article about law enforcement activities or public safety measures in {city}, {state}. Keep it factual and responsible.",
    "weather": "Write a weather-related news article about climate conditions, monsoon updates, or weather alerts for {city}, {state}.",
}

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


@dataclass(frozen=True)
class Location:
    state: str
    city: str


@dataclass(frozen=True)
class ModelConfig:
    name: str
    max_tokens: int
    temperature: float = 0.8
    simplified_prompt: bool = False
    # floor for the prompt side of the per-call token reservation
    prompt_token_allowance: int = 0
    # send response_format=json_object (gpt-4-turbo, gpt-3.5-turbo-1106 and later)
    json_mode: bool = False


@dataclass
class GeneratedArticle:
    title: str
    content: str
    excerpt: str
    tags: List[str] = field(default_factory=list)
    seo_title: str = ""
    seo_description: str = ""
    seo_keywords: List[str] = field(default_factory=list)
    model: str = ""
    tokens_used: int = 0
    api_key_index: Optional[int] = None


def build_prompt(category: str, location: Location) -> str:
    template = CATEGORY_PROMPTS.get(category, CATEGORY_PROMPTS["politics"])
    prompt = template.format(city=location.city, state=location.state)
    return f"{prompt}\n\n{RESPONSE_FORMAT}"


def build_simple_prompt(category: str, location: Location) -> str:
    return (
        f"Write a short {category} news article about {location.city}, {location.state}, India. "
        f"{SIMPLE_RESPONSE_FORMAT}"
    )


def _string_list(value: Any) -> List[str]:
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, list):
        return []
    return [str(item).strip() for item in value if str(item).strip()]


def parse_article_response(raw: Optional[str], model: str = "unknown") -> Dict[str, Any]:
    """Parse and validate the JSON article returned by a model.

    Required keys are ``title``, ``content`` and ``excerpt``; list fields are
    coerced to lists of strings and the SEO fields fall back to title/excerpt.
    """
    if not raw or not raw.strip():
        raise MalformedResponse(model, "empty response")

    match = _JSON_OBJECT.search(raw)
    if not match:
        raise MalformedResponse(model, "no JSON object found in response")

    try:
        obj = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise MalformedResponse(model, f"invalid JSON: {exc}") from exc

    if not isinstance(obj, dict):
        raise MalformedResponse(model, "response JSON is not an object")

    parsed = {}
    for key in ("title", "content", "excerpt"):
        value = obj.get(key)
        if not isinstance(value, str) or not value.strip():
            raise MalformedResponse(model, f"missing or empty '{key}'")
        parsed[key] = value.strip()

    parsed["tags"] = _string_list(obj.get("tags"))
    parsed["seo_title"] = str(obj.get("seoTitle") or parsed["title"]).strip()
    parsed["seo_description"] = str(obj.get("seoDescription") or parsed["excerpt"]).strip()
    parsed["seo_keywords"] = _string_list(obj.get("seoKeywords"))
    return parsed


# Characters per token is ~4 for English with OpenAI tokenizers; 3 over-reserves.
_CHARS_PER_TOKEN = 3
_TOKENS_PER_MESSAGE = 4
_TOKENS_PER_REPLY = 3


def estimate_prompt_tokens(messages: Sequence[Dict[str, str]]) -> int:
    """Conservative upper estimate of the prompt tokens for a chat request."""
    total = _TOKENS_PER_REPLY
    for message in messages:
        total += _TOKENS_PER_MESSAGE + math.ceil(len(message["content"]) / _CHARS_PER_TOKEN)
    return total


def build_messages(model: ModelConfig, category: str, location: Location) -> List[Dict[str, str]]:
    prompt = (
        build_simple_prompt(category, location)
        if model.simplified_prompt
        else build_prompt(category, location)
    )
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": prompt},
    ]


def reserve_tokens(model: ModelConfig, messages: Sequence[Dict[str, str]]) -> int:
    """Tokens one call may consume: the prompt plus the full completion budget."""
    return max(model.prompt_token_allowance, estimate_prompt_tokens(messages)) + model.max_tokens


class ContentGenerator:
    """Writes articles with a primary model and falls back down the chain.

    Each call is checked against the quota for its prompt plus ``max_tokens``
    before it is sent, so ``usage.total_tokens`` stays within what was checked.
    """

    def __init__(
        self,
        quota: QuotaTracker,
        key_pool: ApiKeyPool,
        models: Sequence[ModelConfig],
        client_factory: Optional[Callable[[str], Any]] = None,
        timeout: float = 60.0,
    ):
        if not models:
            raise ValueError("At least one model configuration is required")
        self.quota = quota
        self.key_pool = key_pool
        self.models = list(models)
        self._client_factory = client_factory or (lambda key: OpenAI(api_key=key, timeout=timeout))
        self._clients: Dict[str, Any] = {}

    def estimate_tokens(self, category: str, location: Location) -> int:
        """Tokens the first attempt at this article may consume."""
        model = self.models[0]
        return reserve_tokens(model, build_messages(model, category, location))

    def _client(self, key: str):
        if key not in self._clients:
            self._clients[key] = self._client_factory(key)
        return self._clients[key]

    def _call_model(self, model: ModelConfig, category: str, location: Location) -> GeneratedArticle:
        messages = build_messages(model, category, location)
        reserved = reserve_tokens(model, messages)
        self.quota.check_token_quota(reserved)

        credential = self.key_pool.next_credential()
        request: Dict[str, Any] = dict(
            model=model.name,
            messages=messages,
            max_tokens=model.max_tokens,
            temperature=model.temperature,
        )
        if model.json_mode:
            request["response_format"] = {"type": "json_object"}

        try:
            response = self._client(credential.key).chat.completions.create(**request)
        except Exception as e:
            raise ModelCallError(model.name, f"API call failed: {e}") from e

        usage = getattr(response, "usage", None)
        tokens_used = getattr(usage, "total_tokens", None)
        if tokens_used is None:
            tokens_used = reserved
        elif tokens_used > reserved:
            logger.warning(f"{model.name} used {tokens_used} tokens, above the {reserved} reserved")
        self.quota.record_tokens(tokens_used)

        try:
            raw = response.choices[0].message.content
        except (AttributeError, IndexError, TypeError) as e:
            raise MalformedResponse(model.name, f"unexpected completion shape: {e}") from e

        parsed = parse_article_response(raw, model.name)
        return GeneratedArticle(
            **parsed,
            model=model.name,
            tokens_used=tokens_used,
            api_key_index=credential.index,
        )

    def generate_article(self, category: str, location: Location) -> GeneratedArticle:
        """Generate one article, trying each configured model in order."""
        errors: List[ModelCallError] = []
        for model in self.models:
            try:
                article = self._call_model(model, category, location)
            except QuotaExceeded:
                raise
            except Exception as e:
                error = e if isinstance(e, ModelCallError) else ModelCallError(model.name, str(e))
                logger.warning(f"Model {model.name} failed for {category}/{location.city}: {error}")
                errors.append(error)
                continue
            if errors:
                logger.info(f"Fallback model {model.name} succeeded for {category}/{location.city}")
            return article

        raise GenerationFailed(
            f"All {len(self.models)} models failed for {category}/{location.city}",
            errors=errors,
        )


def default_model_chain(settings) -> List[ModelConfig]:
    """Primary model followed by the simplified-prompt fallback."""
    openai = settings.openai
    return [
        ModelConfig(
            name=openai.model,
            max_tokens=openai.max_tokens,
            temperature=openai.temperature,
            prompt_token_allowance=openai.prompt_token_allowance,
            json_mode=openai.json_mode,
        ),
        ModelConfig(
            name=openai.fallback_model,
            max_tokens=openai.fallback_max_tokens,
            temperature=openai.temperature,
            simplified_prompt=True,
            prompt_token_allowance=openai.prompt_token_allowance,
            json_mode=openai.fallback_json_mode,
        ),
    ]
