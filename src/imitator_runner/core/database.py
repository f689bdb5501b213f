"""Engine and session factory of the job history database."""
import logging
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base
from imitator_runner.config import Settings, get_settings

logger = logging.getLogger(__name__)


def build_engine(settings: Settings) -> Engine:
    """
    Create the engine for ``DATABASE_URL``.

    SQLite is the default backend; any SQLAlchemy URL with an installed
    driver works too.

    Args:
        settings: Application settings

    Returns:
        Engine: SQLAlchemy engine
    """
    url = settings.DATABASE_URL
    if url.startswith("sqlite"):
        # Requests use sessions from the threadpool
        options = {"connect_args": {"check_same_thread": False}}
    else:
        options = {"pool_pre_ping": True, "pool_size": 5, "max_overflow": 10}
    return create_engine(url, echo=settings.DATABASE_ECHO, **options)


engine = build_engine(get_settings())

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def init_db() -> None:
    """Create the history tables that do not exist yet."""
    # Registers the table with Base
    from imitator_runner.models.job import JobRecord  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.info(f"Job history tables ready on {engine.url.render_as_string(hide_password=True)}")
