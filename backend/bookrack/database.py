from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from bookrack.core.config import settings
from bookrack.utils.timing import now_ms
import logging

logger = logging.getLogger(__name__)

logger.info("BOOKRACK DATABASE_URL = %s", settings.get_masked_database_url())


def install_slow_query_logging(target: Engine, threshold_ms: float) -> None:
    """Log a SLOW_QUERY warning for statements slower than threshold_ms."""

    @event.listens_for(target, "before_cursor_execute")
    def _start_timer(conn, cursor, statement, parameters, context, executemany):
        context._bookrack_started_ms = now_ms()

    @event.listens_for(target, "after_cursor_execute")
    def _log_if_slow(conn, cursor, statement, parameters, context, executemany):
        started = getattr(context, "_bookrack_started_ms", None)
        if started is None:
            return
        elapsed_ms = now_ms() - started
        if elapsed_ms >= threshold_ms:
            first_line = statement.strip().splitlines()[0][:100] if statement.strip() else ""
            logger.warning(f"SLOW_QUERY: {elapsed_ms:.2f}ms - {first_line}")


# SQLite connections are shared with the scheduler's worker thread
connect_args = {"check_same_thread": False} if settings.is_sqlite else {}

engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
    echo=False,
    connect_args=connect_args,
)

if settings.DEBUG:
    install_slow_query_logging(engine, settings.SLOW_QUERY_THRESHOLD_MS)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Request-scoped session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """
    Create missing tables outside production.

    Alembic (backend/alembic/versions) owns the production schema. create_all()
    never alters existing tables, so column changes still need a migration.
    """
    if settings.ENVIRONMENT == "production":
        logger.info("Skipping create_all() in production; run 'alembic upgrade head' instead")
        return

    from bookrack import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
