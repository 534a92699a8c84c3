import logging

from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from config import settings

logger = logging.getLogger(__name__)


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}, "echo": False}
    return {"pool_pre_ping": True, "echo": False}


engine = create_engine(settings.DATABASE_URL, **_engine_kwargs(settings.DATABASE_URL))


def enable_sqlite_pragmas(target_engine) -> None:
    """Turn on foreign keys (and WAL for file databases) for every new connection."""

    @event.listens_for(target_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        _ = connection_record
        cursor = dbapi_connection.cursor()
        if ":memory:" not in str(target_engine.url):
            cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


if engine.dialect.name == "sqlite":
    enable_sqlite_pragmas(engine)


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    pass


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Create tables, plus the pgvector extension and ANN index on Postgres.

    Idempotent; safe to run on every startup.
    """
    is_postgres = engine.dialect.name == "postgresql"
    if is_postgres:
        with engine.connect() as conn:
            conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
            conn.commit()

    from db import models  # noqa: F401

    Base.metadata.create_all(bind=engine)

    if is_postgres:
        with engine.connect() as conn:
            conn.execute(
                text(
                    """
                    CREATE INDEX IF NOT EXISTS health_embeddings_hnsw_idx
                    ON health_embeddings USING hnsw (embedding vector_cosine_ops)
                    """
                )
            )
            conn.commit()
    logger.info("Database initialised (%s)", engine.dialect.name)
