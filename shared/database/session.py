import json

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker

from .base import Base
from .models.article import Article  # noqa: F401  registers the table
from shared.config.settings import get_settings
from shared.app_logging.logger import get_logger

logger = get_logger("newsdesk.database")

# Get database configuration
settings = get_settings()
DATABASE_URL = settings.database.database_url


def _json_serializer(value) -> str:
    return json.dumps(value, ensure_ascii=False)


def _engine_options(url: str) -> dict:
    """Pooling options for server databases; SQLite keeps its default pool."""
    if make_url(url).get_backend_name() == "sqlite":
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_size": 10,
        "max_overflow": 20,
        "pool_pre_ping": True,
        "pool_recycle": 3600,
    }


logger.info(
    f"▶︎ Connecting to database: {DATABASE_URL.split('@')[1] if '@' in DATABASE_URL else DATABASE_URL}"
)

engine = create_engine(
    DATABASE_URL,
    echo=settings.database.echo,
    json_serializer=_json_serializer,
    **_engine_options(DATABASE_URL),
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)


def init_db(bind=None):
    """Initialize database tables."""
    try:
        Base.metadata.create_all(bind=bind or engine)
        logger.info("✅ Database initialized successfully")
    except Exception as e:
        logger.error(f"❌ Failed to initialize database: {e}")
        raise


def get_db_session():
    """Get a database session with proper error handling."""
    session = SessionLocal()
    try:
        yield session
    except Exception as e:
        logger.error(f"Database session error: {e}")
        session.rollback()
        raise
    finally:
        session.close()
