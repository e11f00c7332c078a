"""
Daily usage accounting for model tokens and image lookups.

Callers check before an expensive call and record the real usage afterwards,
so a call that fails before consuming anything never debits the budget.
State is in-memory and process-wide; one tracker is built at startup and
passed to the generation service.
"""

from datetime import date
from typing import Any, Callable, Dict, Optional

from services.generator.app.errors import QuotaExceeded
from shared.app_logging.logger import get_logger

logger = get_logger("newsdesk.generator.quota")


class QuotaTracker:
    """In-memory daily counters for token and image usage."""

    def __init__(
        self,
        daily_token_quota: int,
        daily_image_quota: int,
        today: Callable[[], date] = date.today,
    ):
        self.daily_token_quota = daily_token_quota
        self.daily_image_quota = daily_image_quota
        self._today = today
        self.daily_token_usage = 0
        self.daily_image_usage = 0
        self.last_reset_date: date = today()

    def reset_if_new_day(self) -> bool:
        """Zero both counters when the calendar day has changed."""
        current = self._today()
        if current == self.last_reset_date:
            return False
        logger.info(
            f"New day {current.isoformat()}: resetting quota "
            f"(tokens={self.daily_token_usage}, images={self.daily_image_usage})"
        )
        self.daily_token_usage = 0
        self.daily_image_usage = 0
        self.last_reset_date = current
        return True

    def check_token_quota(self, estimate: int) -> None:
        self.reset_if_new_day()
        if self.daily_token_usage + estimate > self.daily_token_quota:
            raise QuotaExceeded("token", self.daily_token_usage, estimate, self.daily_token_quota)

    def record_tokens(self, actual: int) -> None:
        if actual < 0:
            raise ValueError(f"Token usage cannot be negative: {actual}")
        self.reset_if_new_day()
        self.daily_token_usage += actual
        logger.debug(f"Recorded {actual} tokens ({self.daily_token_usage}/{self.daily_token_quota})")

    def check_image_quota(self, count: int = 1) -> None:
        self.reset_if_new_day()
        if self.daily_image_usage + count > self.daily_image_quota:
            raise QuotaExceeded("image", self.daily_image_usage, count, self.daily_image_quota)

    def record_image(self, count: int = 1) -> None:
        self.reset_if_new_day()
        self.daily_image_usage += count

    @property
    def remaining_tokens(self) -> int:
        self.reset_if_new_day()
        return max(0, self.daily_token_quota - self.daily_token_usage)

    def snapshot(self) -> Dict[str, Any]:
        """Current usage, for diagnostics endpoints."""
        self.reset_if_new_day()
        return {
            "date": self.last_reset_date.isoformat(),
            "tokens": {"used": self.daily_token_usage, "limit": self.daily_token_quota},
            "images": {"used": self.daily_image_usage, "limit": self.daily_image_quota},
        }


def create_quota_tracker(settings: Optional[Any] = None) -> QuotaTracker:
    """Build a tracker from the configured daily ceilings."""
    from shared.config.settings import get_settings

    settings = settings or get_settings()
    return QuotaTracker(
        daily_token_quota=settings.quota.daily_token_quota,
        daily_image_quota=settings.quota.daily_image_quota,
    )
