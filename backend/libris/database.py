from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from libris.core.config import settings
import logging
import os
import time

logger = logging.getLogger(__name__)

SLOW_QUERY_THRESHOLD_MS = 200.0


def build_engine(database_url: str, debug: bool = False) -> Engine:
    """
    Create an engine for the given URL.

    SQLite connections are shared across the store reader's worker threads,
    so the same-thread check is disabled for them.
    """
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False

    new_engine = create_engine(
        database_url,
        pool_pre_ping=True,  # Verify connections before using them
        echo=False,
        connect_args=connect_args,
    )

    # Slow query logging (DEBUG mode only)
    if debug:
        @event.listens_for(new_engine, "before_cursor_execute")
        def receive_before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
            """Store query start time before execution."""
            context._query_start_time = time.perf_counter()

        @event.listens_for(new_engine, "after_cursor_execute")
        def receive_after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
            """Log slow queries after execution."""
            if hasattr(context, "_query_start_time"):
                elapsed_ms = (time.perf_counter() - context._query_start_time) * 1000
                if elapsed_ms >= SLOW_QUERY_THRESHOLD_MS:
                    statement_first_line = statement.split("\n")[0].strip()[:100]
                    logger.warning(
                        f"SLOW_QUERY: {elapsed_ms:.2f}ms - {statement_first_line}"
                    )

    return new_engine


logger.info("LIBRIS DATABASE_URL = %s", settings.get_masked_database_url())

engine = build_engine(settings.DATABASE_URL, debug=settings.DEBUG)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Dependency for getting database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory() -> sessionmaker:
    """
    Dependency for the recommendation engine.

    The engine opens one short-lived session per concurrent read, so it needs
    the factory rather than a single request-scoped session.
    """
    return SessionLocal


def init_db() -> None:
    """
    Dev convenience: ensure all tables exist.
    In production, prefer running Alembic migrations instead.

    WARNING: create_all() will NOT add missing columns to existing tables.
    It only creates tables that don't exist. Use Alembic migrations for schema changes.
    """
    if not settings.DATABASE_URL.startswith("sqlite"):
        alembic_versions_path = os.path.join(os.path.dirname(__file__), "..", "alembic", "versions")
        if os.path.exists(alembic_versions_path) and os.listdir(alembic_versions_path):
            logger.info("Alembic migrations detected. Skipping create_all(); run 'alembic upgrade head'.")
            return

    # Import all models to ensure they're registered with Base.metadata
    from libris import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
