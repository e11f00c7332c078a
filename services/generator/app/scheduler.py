import threading
from typing import Callable, List, Optional

import schedule

from services.generator.app.loop import NewsGenerationService
from shared.app_logging.logger import get_logger
from shared.config.settings import get_settings

logger = get_logger("newsdesk.scheduler")


def run_generation_job(
    service_provider: Callable[[], NewsGenerationService],
    count: int,
    label: str,
) -> None:
    """Run one scheduled generation batch; failures are logged, never raised."""
    logger.info(f"Starting {label} news generation ({count} articles)...")
    try:
        report = service_provider().generate_daily_news(count)
    except Exception:
        logger.exception(f"Error in {label} news generation")
        return

    if report.quota_exhausted:
        logger.warning(
            f"{label.capitalize()} generation stopped by quota after "
            f"{report.completed}/{report.requested} articles"
        )
    else:
        logger.info(f"{label.capitalize()} news generation completed: {report.completed}/{report.requested}")


def build_scheduler(
    service_provider: Callable[[], NewsGenerationService],
    settings=None,
) -> schedule.Scheduler:
    """Register the daily bulk job and the clock-aligned batch jobs.

    Both run in ``SCHEDULER_TIMEZONE``. Batches fire on the hours divisible by
    ``BATCH_INTERVAL_HOURS`` (00:00, 04:00, ... for the default of 4), one
    daily job per slot, since ``schedule`` has no cron-style hour steps.
    """
    settings = settings or get_settings()
    gen = settings.generation
    tz = gen.scheduler_timezone
    scheduler = schedule.Scheduler()

    scheduler.every().day.at(gen.daily_generation_time, tz).do(
        run_generation_job, service_provider, gen.daily_article_count, "daily"
    )
    for hour in batch_hours(gen.batch_interval_hours):
        scheduler.every().day.at(f"{hour:02d}:00", tz).do(
            run_generation_job, service_provider, gen.batch_article_count, "batch"
        )
    logger.info(
        f"Scheduled daily generation at {gen.daily_generation_time} {tz} "
        f"and batches every {gen.batch_interval_hours}h on the hour"
    )
    return scheduler


def batch_hours(interval_hours: int) -> List[int]:
    if interval_hours <= 0 or 24 % interval_hours:
        raise ValueError(f"Batch interval must divide 24 hours, got {interval_hours}")
    return list(range(0, 24, interval_hours))


class SchedulerThread:
    """Runs pending scheduled jobs on a daemon thread until stopped."""

    def __init__(self, scheduler: schedule.Scheduler, poll_interval: float = 1.0):
        self.scheduler = scheduler
        self.poll_interval = poll_interval
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def _run(self):
        while not self._stop.is_set():
            self.scheduler.run_pending()
            self._stop.wait(self.poll_interval)

    def start(self) -> None:
        self._thread = threading.Thread(target=self._run, name="news-scheduler", daemon=True)
        self._thread.start()
        logger.info("Scheduler thread started")

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            logger.info("Scheduler thread stopped")
