from dataclasses import dataclass
from typing import List, Optional
from urllib.parse import quote_plus

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_fixed

from services.generator.app.content import Location
from services.generator.app.errors import QuotaExceeded
from services.generator.app.quota import QuotaTracker
from shared.app_logging.logger import get_logger

logger = get_logger("newsdesk.generator.images")

STOPWORDS = frozenset(
    """
    a an and are as at be by for from has have in into is it its new news of on
    or over says than that the their this to under up was were will with after
    amid about against during city state india indian
    """.split()
)

MAX_TITLE_KEYWORDS = 3

DEFAULT_PLACEHOLDER_URL = "https://placehold.co/1200x630?text={category}+News"


@dataclass
class ImageResult:
    url: str
    prompt: str
    source: str  # "unsplash" or "placeholder"


def extract_keywords(title: str, category: str, location: Location) -> List[str]:
    """Category, city and up to three significant title words, deduplicated."""
    keywords: List[str] = []

    def add(word: str) -> bool:
        word = word.strip().lower()
        if word and word not in keywords:
            keywords.append(word)
            return True
        return False

    add(category)
    add(location.city)

    title_words = 0
    for token in (title or "").lower().split():
        word = "".join(ch for ch in token if ch.isalnum())
        if len(word) <= 2 or word in STOPWORDS or word.isdigit():
            continue
        if add(word):
            title_words += 1
        if title_words == MAX_TITLE_KEYWORDS:
            break
    return keywords


class ImageService:
    """Looks up a stock photo for an article, falling back to a placeholder."""

    def __init__(
        self,
        quota: QuotaTracker,
        access_key: Optional[str],
        api_url: str = "https://api.unsplash.com",
        placeholder_url: str = DEFAULT_PLACEHOLDER_URL,
        timeout: float = 10.0,
        http_client: Optional[httpx.Client] = None,
    ):
        self.quota = quota
        self.access_key = access_key
        self.api_url = api_url.rstrip("/")
        self.placeholder_url = placeholder_url
        self._http = http_client or httpx.Client(timeout=timeout)

    def placeholder(self, category: str) -> str:
        label = quote_plus(category.title())
        try:
            return self.placeholder_url.format(category=label)
        except (KeyError, IndexError, ValueError) as e:
            logger.warning(f"Bad placeholder template {self.placeholder_url!r}: {e!r}")
            return DEFAULT_PLACEHOLDER_URL.format(category=label)

    @retry(
        stop=stop_after_attempt(2),
        wait=wait_fixed(1),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    def _search(self, query: str) -> Optional[str]:
        response = self._http.get(
            f"{self.api_url}/search/photos",
            params={"query": query, "per_page": 1, "orientation": "landscape"},
            headers={"Authorization": f"Client-ID {self.access_key}", "Accept-Version": "v1"},
        )
        response.raise_for_status()
        results = response.json().get("results") or []
        if not results:
            return None
        return (results[0].get("urls") or {}).get("regular")

    def generate_image(self, title: str, category: str, location: Location) -> ImageResult:
        """Return a usable image URL for the article. Never raises."""
        query = " ".join(extract_keywords(title, category, location))
        fallback = ImageResult(url=self.placeholder(category), prompt=query, source="placeholder")

        if not self.access_key:
            return fallback

        try:
            self.quota.check_image_quota()
        except QuotaExceeded as e:
            logger.info(f"Image quota reached, using placeholder: {e}")
            return fallback

        try:
            url = self._search(query)
        except Exception as e:
            logger.warning(f"Stock photo search failed for {query!r}: {e}")
            return fallback
        finally:
            self.quota.record_image()

        if not url:
            logger.info(f"No stock photo found for {query!r}, using placeholder")
            return fallback
        return ImageResult(url=url, prompt=query, source="unsplash")
