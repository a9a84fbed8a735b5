import logging
import time
from typing import Generator
from sqlalchemy import create_engine, event, text, Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import QueuePool, StaticPool

from .config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    """SQLite ignores ON DELETE CASCADE unless foreign keys are switched on per connection"""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create a SQLAlchemy engine configured for the target backend.

    Server databases get a pre-pinged QueuePool. SQLite gets a thread-agnostic
    connection (a single shared one for in-memory URLs) with foreign keys on.
    """
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        db_engine = create_engine(database_url, echo=echo, **kwargs)
        event.listen(db_engine, "connect", _enable_sqlite_foreign_keys)
    else:
        db_engine = create_engine(
            database_url,
            poolclass=QueuePool,
            pool_size=10,
            max_overflow=20,
            pool_pre_ping=True,
            pool_recycle=300,
            echo=echo
        )

    # Database event listeners for monitoring
    @event.listens_for(db_engine, "connect")
    def receive_connect(dbapi_connection, connection_record):
        """Event listener for database connections"""
        logger.debug("Database connection established")

    @event.listens_for(db_engine, "checkout")
    def receive_checkout(dbapi_connection, connection_record, connection_proxy):
        """Event listener for connection checkout"""
        logger.debug("Database connection checked out from pool")

    return db_engine


engine = create_db_engine(settings.database_url, echo=settings.debug)

# Session factory
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine
)

# Base class for models
Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """
    Database dependency for FastAPI

    Yields:
        Session: Database session
    """
    db = SessionLocal()
    try:
        yield db
    except Exception as e:
        logger.error(f"Database session error: {e}")
        db.rollback()
        raise
    finally:
        db.close()


def init_db(max_retries: int = None, delay: int = None, bind: Engine = None) -> bool:
    """
    Create database tables, retrying while the database is still coming up

    Returns:
        bool: True if successful

    Raises:
        OperationalError: If the database is still unreachable after all retries
    """
    # Import all models here to ensure they are registered
    from .. import models  # noqa: F401

    max_retries = max_retries or settings.db_connect_retries
    delay = settings.db_connect_delay if delay is None else delay
    bind = bind or engine

    for attempt in range(max_retries):
        try:
            logger.info(f"Attempting to create tables (attempt {attempt + 1}/{max_retries})")
            Base.metadata.create_all(bind=bind)
            logger.info("Database tables created successfully")
            return True
        except OperationalError as e:
            logger.warning(f"Database connection failed (attempt {attempt + 1}): {e}")
            if attempt < max_retries - 1:
                logger.info(f"Retrying in {delay} seconds...")
                time.sleep(delay)
            else:
                logger.error("Failed to connect to database after all retries")
                raise
    return False


def check_db_connection(bind: Engine = None) -> bool:
    """
    Check database connectivity

    Returns:
        bool: True if connected, False otherwise
    """
    try:
        with (bind or engine).connect() as connection:
            connection.execute(text("SELECT 1"))
        logger.debug("Database connection check successful")
        return True
    except Exception as e:
        logger.error(f"Database connection check failed: {e}")
        return False
