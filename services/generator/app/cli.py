"""Command-line entry point for generation runs and administration."""

import argparse
import sys
from typing import Optional, Sequence

from services.generator.app.errors import NoArticlesGenerated
from shared.app_logging.logger import setup_logging
from shared.config.settings import get_settings


def _non_negative_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected an integer, got {value!r}") from exc
    if number < 0:
        raise argparse.ArgumentTypeError(f"must not be negative, got {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="newsdesk", description="NewsDesk generation and admin commands")
    sub = parser.add_subparsers(dest="command", required=True)

    daily = sub.add_parser("daily", help="Generate a batch of random articles")
    daily.add_argument("--count", type=_non_negative_int, default=None, help="Articles to generate (default: DAILY_ARTICLE_COUNT)")

    initial = sub.add_parser("initial", help="Seed every category up to a minimum number of articles")
    initial.add_argument("--min-per-category", type=_non_negative_int, default=None)

    clear = sub.add_parser("clear-db", help="Delete every stored article")
    clear.add_argument("--yes", action="store_true", help="Confirm the wipe")

    serve = sub.add_parser("serve", help="Run the API server with the scheduler")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=None)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    logger = setup_logging("newsdesk")

    if args.command == "serve":
        import uvicorn

        uvicorn.run("services.news_api.app.main:app", host=args.host, port=args.port or settings.port)
        return 0

    from shared.database.session import SessionLocal, init_db

    init_db()

    if args.command == "clear-db":
        if not args.yes:
            logger.error("Refusing to delete articles without --yes")
            return 2
        from shared.database.crud import delete_all_articles

        with SessionLocal() as db:
            deleted = delete_all_articles(db)
        logger.info(f"✅ Deleted {deleted} news articles")
        return 0

    from services.generator.app.factory import create_generation_service

    service = create_generation_service(settings)

    if args.command == "daily":
        count = args.count
        if count is None:
            count = settings.generation.daily_article_count
        report = service.generate_daily_news(count)
        logger.info(f"Daily run: {report.as_dict()}")
        return 0

    minimum = args.min_per_category
    if minimum is None:
        minimum = settings.generation.min_articles_per_category
    try:
        report = service.generate_initial_news(minimum)
    except NoArticlesGenerated as e:
        logger.error(f"❌ {e}")
        return 1
    logger.info(f"Initial run: {report.as_dict()}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
